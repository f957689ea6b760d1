"""
Event Check-in Package

A self-service event check-in system built with Flask. Organizers
create an event from an uploaded attendee spreadsheet, attendees find
their name and check themselves in, and organizers view attendance
analytics and export the results.

Main Components:
- roster: CSV ingestion with loose header matching
- security: random tokens, secret digests and password hashing
- sessions: management sessions bound to one event
- repositories: relational storage through SQLAlchemy
- services: business logic for events, access and attendance
- exceptions: custom exception classes for error handling
- app: Flask application class and factories

Usage:
    from event_checkin import create_app

    app = create_app({'DATABASE_URL': 'sqlite:///checkin.db'})
    app.run()
"""

__version__ = "1.0.0"

from .app import CheckInApp, create_app, create_development_app, create_production_app
from .config import TableNames
from .exceptions import (
    AttendeeNotFoundException,
    AuthenticationFailedException,
    CheckInException,
    DataAccessException,
    EmptyRosterException,
    EventNotFoundException,
    NoValidAttendeesException,
    OriginRejectedException,
    ValidationException,
)
from .models import Attendee, AttendeeRecord, CheckIn, Event, Session
from .roster import parse_roster
from .sessions import SessionManager

__all__ = [
    # App factory functions
    'CheckInApp',
    'create_app',
    'create_development_app',
    'create_production_app',

    # Configuration
    'TableNames',

    # Data models
    'Attendee',
    'AttendeeRecord',
    'CheckIn',
    'Event',
    'Session',

    # Core components
    'parse_roster',
    'SessionManager',

    # Exceptions
    'CheckInException',
    'ValidationException',
    'EmptyRosterException',
    'NoValidAttendeesException',
    'EventNotFoundException',
    'AttendeeNotFoundException',
    'AuthenticationFailedException',
    'OriginRejectedException',
    'DataAccessException',
]
