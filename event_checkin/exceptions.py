"""
Custom Exceptions for the Event Check-in Application

This module defines the exception classes used across the check-in
service. Each one carries an error code for programmatic handling and
maps to a single HTTP status in the Flask error handlers.
"""

from typing import List, Optional


class CheckInException(Exception):
    """
    Base exception for the check-in application

    All custom exceptions raised by the service inherit from this class
    so the app can register one fallback handler for the whole family.
    """

    status_code = 500

    def __init__(self, message: str, error_code: str = None):
        """
        Initialize check-in exception

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ValidationException(CheckInException):
    """
    Raised when a request body or field fails validation
    """

    status_code = 400

    def __init__(self, field_name: str, validation_error: str):
        """
        Initialize validation exception

        Args:
            field_name: Name of the field that failed validation
            validation_error: Description of the validation error
        """
        message = f"Validation error in field '{field_name}': {validation_error}"
        super().__init__(message, "VALIDATION_ERROR")
        self.field_name = field_name
        self.validation_error = validation_error


class EmptyRosterException(CheckInException):
    """Raised when an uploaded roster contains no lines at all"""

    status_code = 400

    def __init__(self):
        super().__init__("CSV file is empty", "EMPTY_INPUT")


class NoValidAttendeesException(CheckInException):
    """
    Raised when a roster parsed but yielded zero usable attendees

    The per-row errors are kept so the client can show what went wrong.
    """

    status_code = 400

    def __init__(self, csv_errors: Optional[List[str]] = None):
        super().__init__("No valid attendees found in CSV", "NO_VALID_ATTENDEES")
        self.csv_errors = list(csv_errors or [])


class EventNotFoundException(CheckInException):
    """
    Raised when an event id does not match any stored event
    """

    status_code = 404

    def __init__(self, event_id: int):
        """
        Initialize event not found exception

        Args:
            event_id: The ID of the event that was not found
        """
        super().__init__("Event not found", "EVENT_NOT_FOUND")
        self.event_id = event_id


class AttendeeNotFoundException(CheckInException):
    """
    Raised when an attendee does not exist or belongs to another event
    """

    status_code = 404

    def __init__(self, attendee_id: int, event_id: int):
        super().__init__("Attendee not found for this event", "ATTENDEE_NOT_FOUND")
        self.attendee_id = attendee_id
        self.event_id = event_id


class AuthenticationFailedException(CheckInException):
    """Raised when an event password or management session is rejected"""

    status_code = 401

    def __init__(self, reason: str = "Invalid password"):
        super().__init__(reason, "AUTH_FAILED")


class OriginRejectedException(CheckInException):
    """Raised when a state-changing request fails the same-origin check"""

    status_code = 403

    def __init__(self, origin: Optional[str] = None):
        super().__init__("Forbidden", "CSRF_REJECTED")
        self.origin = origin


class DataAccessException(CheckInException):
    """
    Raised when data access operations fail

    This exception is thrown when there are issues reading from or
    writing to the backing database.
    """

    def __init__(self, operation: str, details: str):
        """
        Initialize data access exception

        Args:
            operation: The operation that failed (e.g., 'create_event')
            details: Detailed error information
        """
        message = f"Data access error during {operation}: {details}"
        super().__init__(message, "DATA_ACCESS_ERROR")
        self.operation = operation
        self.details = details
