"""
Configuration for the Event Check-in Application

Settings are plain dictionaries merged over ``DEFAULT_CONFIG`` by the
app factories. Table names live in an explicit ``TableNames`` value that
is handed to the store when it is built.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


SESSION_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days


@dataclass(frozen=True)
class TableNames:
    """Names of the four tables backing the service"""
    events: str = "events"
    attendees: str = "attendees"
    checkins: str = "checkins"
    sessions: str = "sessions"


DEFAULT_CONFIG = {
    'DATABASE_URL': 'sqlite:///checkin.db',
    'TABLES': TableNames(),
    'SESSION_TTL_SECONDS': SESSION_TTL_SECONDS,
    'SESSION_COOKIE_NAME': 'session_token',
    'SESSION_COOKIE_SECURE': True,
    'ALLOWED_ORIGIN_SCHEMES': ('https', 'http'),
    'RECENT_CHECKINS_LIMIT': 10,
    'DEBUG': False,
    'LOG_LEVEL': 'INFO',
    'LOG_FILE': None,
}


def build_config(overrides: Optional[Dict] = None) -> Dict:
    """
    Merge overrides on top of the default configuration

    Args:
        overrides: Optional configuration dictionary

    Returns:
        New configuration dictionary
    """
    config = dict(DEFAULT_CONFIG)
    if overrides:
        config.update(overrides)
    return config


class EnvSettings(BaseSettings):
    """Deployment settings read from ``CHECKIN_*`` environment variables"""
    DATABASE_URL: Optional[str] = None
    SESSION_TTL_SECONDS: Optional[int] = None
    COOKIE_SECURE: Optional[bool] = None
    DEBUG: Optional[bool] = None
    LOG_LEVEL: Optional[str] = None
    LOG_FILE: Optional[str] = None
    TABLE_PREFIX: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="CHECKIN_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


def load_config_from_env() -> Dict:
    """
    Read deployment settings from the environment

    Only variables that are set are returned, so the result can be passed
    straight to ``build_config``.
    """
    settings = EnvSettings()
    config = {}

    if settings.DATABASE_URL is not None:
        config['DATABASE_URL'] = settings.DATABASE_URL
    if settings.SESSION_TTL_SECONDS is not None:
        config['SESSION_TTL_SECONDS'] = settings.SESSION_TTL_SECONDS
    if settings.COOKIE_SECURE is not None:
        config['SESSION_COOKIE_SECURE'] = settings.COOKIE_SECURE
    if settings.DEBUG is not None:
        config['DEBUG'] = settings.DEBUG
    if settings.LOG_LEVEL is not None:
        config['LOG_LEVEL'] = settings.LOG_LEVEL
    if settings.LOG_FILE is not None:
        config['LOG_FILE'] = settings.LOG_FILE

    if settings.TABLE_PREFIX:
        prefix = settings.TABLE_PREFIX
        config['TABLES'] = TableNames(
            events=f"{prefix}events",
            attendees=f"{prefix}attendees",
            checkins=f"{prefix}checkins",
            sessions=f"{prefix}sessions",
        )

    return config
