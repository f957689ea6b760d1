"""
Credential helpers for the Event Check-in Application

Random identifiers for sessions, SHA-256 digests of session secrets with
constant-time comparison, and salted hashing of event passwords.
"""

import hashlib
import secrets

from werkzeug.security import check_password_hash, generate_password_hash


# Lowercase alphanumerics without the easily confused 'l', 'o', '0' and '1'
TOKEN_ALPHABET = "abcdefghijkmnpqrstuvwxyz23456789"
TOKEN_LENGTH = 24


def generate_secure_random_string(length: int = TOKEN_LENGTH) -> str:
    """
    Generate a random identifier from the 32-symbol token alphabet

    Each random byte contributes its top five bits, which index the
    alphabet directly.

    Args:
        length: Number of characters to produce

    Returns:
        Random lowercase alphanumeric string
    """
    return "".join(TOKEN_ALPHABET[byte >> 3] for byte in secrets.token_bytes(length))


def hash_secret(secret: str) -> bytes:
    """Return the 32-byte SHA-256 digest of the UTF-8 encoded secret"""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def constant_time_equal(a: bytes, b: bytes) -> bool:
    """
    Compare two digests without stopping at the first differing byte

    Args:
        a: First digest
        b: Second digest

    Returns:
        True if both digests are identical
    """
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


def hash_password(password: str) -> str:
    """Hash an event management password with a salted KDF"""
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Check a plaintext event password against its stored hash

    Args:
        password: Password supplied by the organizer
        password_hash: Hash stored with the event

    Returns:
        True if the password matches
    """
    if not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)
