"""
Data Models for the Event Check-in Application

This module contains the dataclasses that represent the core entities
(events, attendees, check-ins and management sessions) plus the small
value types produced by roster parsing and the analytics queries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp the way the API exposes it"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.strftime(TIMESTAMP_FORMAT)


@dataclass
class Event:
    """
    Data model for a check-in event

    The password hash is loaded from storage for verification but is
    never part of the serialized form.
    """
    event_id: int
    name: str
    password_hash: str
    location: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict:
        """
        Convert event to dictionary (excluding password hash)

        Returns:
            Dictionary representation safe to return to clients
        """
        return {
            "id": self.event_id,
            "name": self.name,
            "location": self.location,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class Attendee:
    """
    Data model for an attendee registered against one event

    Names are not unique; two attendees with the same name are told
    apart by ``attendee_id`` only.
    """
    attendee_id: int
    event_id: int
    name: str
    external_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.attendee_id,
            "name": self.name,
            "external_id": self.external_id,
            "event_id": self.event_id,
        }


@dataclass
class AttendeeStatus:
    """Attendee as shown on the sign-in list"""
    attendee_id: int
    name: str
    checked_in: bool

    def to_dict(self) -> Dict:
        return {"id": self.attendee_id, "name": self.name, "checkedIn": self.checked_in}


@dataclass
class CheckIn:
    """
    Data model for a single check-in row

    An attendee may own several of these; repeat check-ins are kept.
    """
    checkin_id: int
    event_id: int
    attendee_id: int
    checked_in_at: datetime


@dataclass
class SignInResult:
    """Outcome of recording a check-in"""
    attendee_name: str
    already_signed_in: bool


@dataclass
class Session:
    """
    Data model for a management session

    Only the SHA-256 digest of the secret is held; ``created_at`` is unix
    seconds.
    """
    session_id: str
    secret_hash: bytes
    event_id: int
    created_at: int


@dataclass
class AttendeeRecord:
    """Attendee parsed from a roster, before it is stored"""
    name: str
    external_id: Optional[str] = None


@dataclass
class RosterParseResult:
    """Valid attendee records plus the row-level errors collected on the way"""
    attendees: List[AttendeeRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class DailyCount:
    date: str
    count: int

    def to_dict(self) -> Dict:
        return {"date": self.date, "count": self.count}


@dataclass
class RecentCheckIn:
    attendee_name: str
    checked_in_at: datetime

    def to_dict(self) -> Dict:
        return {
            "attendeeName": self.attendee_name,
            "checkedInAt": format_timestamp(self.checked_in_at),
        }


@dataclass
class ExportRow:
    """One attendee line of the check-in export"""
    name: str
    external_id: Optional[str]
    checked_in_at: Optional[datetime]

    @property
    def checked_in(self) -> bool:
        return self.checked_in_at is not None


@dataclass
class EventCreationResult:
    """Outcome of creating an event from an uploaded roster"""
    event_id: int
    attendee_count: int
    csv_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "success": True,
            "eventId": self.event_id,
            "attendeeCount": self.attendee_count,
            "csvErrors": list(self.csv_errors),
        }
