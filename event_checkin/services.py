"""
Business Logic Services for the Event Check-in Application

This module contains the service classes that implement event creation
from an uploaded roster, attendee self check-in, password/session gated
management access, and the analytics and export views.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from .exceptions import (
    AttendeeNotFoundException,
    AuthenticationFailedException,
    EventNotFoundException,
    NoValidAttendeesException,
)
from .models import Attendee, AttendeeStatus, Event, EventCreationResult, Session, SignInResult
from .repositories import EventStore
from .roster import parse_roster, render_export_csv
from .security import hash_password, verify_password
from .sessions import SessionManager

logger = logging.getLogger(__name__)


ALREADY_SIGNED_IN_MESSAGE = (
    "You were already signed in, but we've recorded this additional check-in."
)


class EventService:
    """
    Handles event creation and roster operations

    Events are created together with the attendees parsed from the
    uploaded CSV; further attendees can be added one at a time.
    """

    def __init__(self, store: EventStore):
        """
        Initialize event service

        Args:
            store: Event/attendee/check-in store
        """
        self.store = store

    def create_event(self, name: str, password: str, csv_content: str,
                     location: Optional[str] = None) -> EventCreationResult:
        """
        Create an event and its roster from CSV text

        Args:
            name: Event display name
            password: Management password (stored hashed)
            csv_content: Raw text of the uploaded attendee list
            location: Optional event location

        Returns:
            EventCreationResult with the new id, attendee count and row errors

        Raises:
            EmptyRosterException: If the CSV has no content
            NoValidAttendeesException: If no row produced an attendee
        """
        logger.info(f"Creating event '{name}' at {location or 'N/A'}")

        roster = parse_roster(csv_content)
        if not roster.attendees:
            raise NoValidAttendeesException(roster.errors)

        event_id = self.store.create_event_with_attendees(
            name, hash_password(password), location, roster.attendees
        )

        return EventCreationResult(
            event_id=event_id,
            attendee_count=len(roster.attendees),
            csv_errors=roster.errors,
        )

    def get_event_or_raise(self, event_id: int) -> Event:
        """
        Get event by ID or raise exception if not found

        Raises:
            EventNotFoundException: If event not found
        """
        event = self.store.get_event(event_id)
        if event is None:
            raise EventNotFoundException(event_id)
        return event

    def list_attendees(self, event_id: int) -> List[AttendeeStatus]:
        """
        Attendee list for the sign-in page

        Raises:
            EventNotFoundException: If event not found
        """
        self.get_event_or_raise(event_id)
        attendees = self.store.list_attendees_with_status(event_id)
        logger.info(f"Found {len(attendees)} attendees for event {event_id}")
        return attendees

    def add_attendee(self, event_id: int, name: str,
                     external_id: Optional[str] = None) -> Attendee:
        """
        Add one attendee to an existing event

        Raises:
            EventNotFoundException: If event not found
        """
        self.get_event_or_raise(event_id)
        attendee = self.store.add_attendee(event_id, name, external_id)
        logger.info(f"Added attendee {attendee.attendee_id} to event {event_id}")
        return attendee


class AuthenticationService:
    """
    Handles management access to an event

    Access is granted by a session bound to the same event or by the
    event password. Every rejection surfaces as the same
    AuthenticationFailedException.
    """

    def __init__(self, event_service: EventService, session_manager: SessionManager):
        self.event_service = event_service
        self.session_manager = session_manager

    def authorize(self, event_id: int, password: Optional[str] = None,
                  session: Optional[Session] = None) -> Event:
        """
        Check management access to an event

        Args:
            event_id: Event being managed
            password: Password from the request body, if any
            session: Session resolved from the request cookie, if any

        Returns:
            The event on success

        Raises:
            EventNotFoundException: If event not found
            AuthenticationFailedException: If neither credential is valid
        """
        event = self.event_service.get_event_or_raise(event_id)

        if session is not None and session.event_id == event.event_id:
            return event

        if not password:
            raise AuthenticationFailedException("Password required")

        if not verify_password(password, event.password_hash):
            logger.warning(f"Invalid management password for event {event_id}")
            raise AuthenticationFailedException("Invalid password")

        return event

    def login(self, event_id: int, password: Optional[str]) -> Tuple[Session, str]:
        """
        Exchange the event password for a management session

        Returns:
            The new session and its bearer token
        """
        event = self.authorize(event_id, password=password)
        return self.session_manager.create(event.event_id)

    def logout(self, session: Optional[Session]) -> None:
        if session is not None:
            self.session_manager.revoke(session.session_id)


class AttendanceService:
    """
    Handles check-ins and the attendance views built on them

    Repeat check-ins are recorded and flagged, never rejected.
    """

    def __init__(self, store: EventStore, recent_limit: int = 10):
        """
        Initialize attendance service

        Args:
            store: Event/attendee/check-in store
            recent_limit: How many recent check-ins analytics should list
        """
        self.store = store
        self.recent_limit = recent_limit

    def sign_in(self, event_id: int, attendee_id: int) -> SignInResult:
        """
        Record an attendee's self check-in

        Args:
            event_id: Event being checked into
            attendee_id: Attendee checking in

        Returns:
            SignInResult naming the attendee and flagging repeats

        Raises:
            AttendeeNotFoundException: If the attendee is not on this event
        """
        attendee = self.store.get_attendee(event_id, attendee_id)
        if attendee is None:
            raise AttendeeNotFoundException(attendee_id, event_id)

        already_signed_in = self.store.record_check_in(event_id, attendee_id)
        if already_signed_in:
            logger.warning(f"Attendee {attendee_id} checked in again to event {event_id}")
        else:
            logger.info(f"Attendee {attendee_id} signed in to event {event_id}")

        return SignInResult(attendee.name, already_signed_in)

    def get_details(self, event: Event) -> Dict:
        """
        Event summary for the management page

        Returns:
            Dictionary with the event and its headline counts
        """
        return {
            "event": event.to_dict(),
            "attendeeCount": self.store.count_attendees(event.event_id),
            "checkedInCount": self.store.count_checked_in(event.event_id),
        }

    def get_analytics(self, event: Event) -> Dict:
        """
        Attendance analytics for an event

        Returns:
            Dictionary with totals, check-ins per date and recent check-ins
        """
        event_id = event.event_id
        return {
            "totalAttendees": self.store.count_attendees(event_id),
            "totalCheckedIn": self.store.count_checked_in(event_id),
            "checkInsByDate": [day.to_dict() for day in self.store.check_ins_by_date(event_id)],
            "recentCheckIns": [
                checkin.to_dict()
                for checkin in self.store.recent_check_ins(event_id, self.recent_limit)
            ],
        }

    def export_csv(self, event: Event) -> Tuple[str, str]:
        """
        Build the check-in export for an event

        Returns:
            Tuple of (download filename, CSV content)
        """
        content = render_export_csv(self.store.export_rows(event.event_id))
        filename = f"{re.sub(r'[^a-zA-Z0-9]', '_', event.name)}_checkins.csv"
        logger.info(f"Exported check-ins for event {event.event_id}")
        return filename, content
