"""
Data Repository Classes for the Event Check-in Application

This module implements the Repository pattern over a relational
database through SQLAlchemy Core. Table names come from an injected
``TableNames`` value, and every statement is built with bound
parameters.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import TableNames
from .exceptions import DataAccessException
from .models import (
    Attendee,
    AttendeeRecord,
    AttendeeStatus,
    CheckIn,
    DailyCount,
    Event,
    ExportRow,
    RecentCheckIn,
    Session,
)

logger = logging.getLogger(__name__)


MAX_ROW_ID = 2 ** 63 - 1
EVENT_INSERT_ATTEMPTS = 2


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_storable_id(value: int) -> bool:
    """True if the id fits the signed 64-bit INTEGER column type"""
    return 0 < value <= MAX_ROW_ID


@dataclass
class DatabaseSchema:
    """SQLAlchemy table objects for one set of table names"""
    metadata: MetaData
    events: Table
    attendees: Table
    checkins: Table
    sessions: Table


def build_schema(tables: TableNames) -> DatabaseSchema:
    """
    Build the table definitions for the given table names

    Args:
        tables: Names to use for the four tables

    Returns:
        DatabaseSchema holding the metadata and tables
    """
    metadata = MetaData()

    events = Table(
        tables.events, metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("name", String, nullable=False),
        Column("password_hash", String, nullable=False),
        Column("location", String, nullable=True),
        Column("created_at", DateTime, nullable=False),
    )
    attendees = Table(
        tables.attendees, metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("event_id", Integer, ForeignKey(f"{tables.events}.id"), nullable=False, index=True),
        Column("name", String, nullable=False),
        Column("external_id", String, nullable=True),
    )
    checkins = Table(
        tables.checkins, metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("event_id", Integer, ForeignKey(f"{tables.events}.id"), nullable=False, index=True),
        Column("attendee_id", Integer, ForeignKey(f"{tables.attendees}.id"), nullable=False, index=True),
        Column("checked_in_at", DateTime, nullable=False),
    )
    sessions = Table(
        tables.sessions, metadata,
        Column("id", String, primary_key=True),
        Column("secret_hash", LargeBinary, nullable=False),
        Column("event_id", Integer, ForeignKey(f"{tables.events}.id"), nullable=False),
        Column("created_at", Integer, nullable=False),
    )

    return DatabaseSchema(metadata, events, attendees, checkins, sessions)


class DataRepository:
    """
    Base class for database-backed repositories

    Holds the engine and schema and wraps driver errors into
    DataAccessException.
    """

    def __init__(self, engine: Engine, schema: DatabaseSchema):
        """
        Initialize repository

        Args:
            engine: SQLAlchemy engine for the backing database
            schema: Table definitions to query against
        """
        self.engine = engine
        self.schema = schema

    @contextmanager
    def _transaction(self, operation: str):
        """Yield a connection inside a transaction committed on success"""
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise DataAccessException(operation, str(e)) from e

    def create_schema(self) -> None:
        """
        Create all tables that do not exist yet

        Raises:
            DataAccessException: If table creation fails
        """
        try:
            self.schema.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise DataAccessException("create_schema", str(e)) from e


class EventStore(DataRepository):
    """
    Persistence for events, attendees and check-ins

    Each public method runs in its own transaction. Event creation with
    its roster is a single transaction, so a failure part-way leaves no
    half-populated event behind.
    """

    def __init__(self, engine: Engine, schema: DatabaseSchema,
                 clock: Callable[[], datetime] = utc_now):
        super().__init__(engine, schema)
        self.clock = clock

    # Events

    def _next_event_id(self, conn: Connection, now: datetime) -> int:
        events = self.schema.events
        candidate = int(now.replace(tzinfo=timezone.utc).timestamp())
        highest = conn.execute(select(func.max(events.c.id))).scalar()
        if highest is not None and highest >= candidate:
            candidate = highest + 1
        return candidate

    def _insert_event(self, conn: Connection, name: str, password_hash: str,
                      location: Optional[str]) -> int:
        now = self.clock()
        event_id = self._next_event_id(conn, now)
        conn.execute(
            insert(self.schema.events).values(
                id=event_id,
                name=name,
                password_hash=password_hash,
                location=location or None,
                created_at=now,
            )
        )
        return event_id

    def _insert_attendees(self, conn: Connection, event_id: int,
                          records: Iterable[AttendeeRecord]) -> int:
        rows = [
            {"event_id": event_id, "name": record.name, "external_id": record.external_id or None}
            for record in records
        ]
        if rows:
            conn.execute(insert(self.schema.attendees), rows)
        return len(rows)

    def create_event(self, name: str, password_hash: str,
                     location: Optional[str] = None) -> int:
        """
        Create an event without attendees

        Returns:
            The new event id
        """
        return self.create_event_with_attendees(name, password_hash, location, [])

    def create_event_with_attendees(self, name: str, password_hash: str,
                                    location: Optional[str],
                                    records: Iterable[AttendeeRecord]) -> int:
        """
        Create an event and its roster atomically

        Args:
            name: Display name of the event
            password_hash: Hash of the management password
            location: Optional location
            records: Attendees parsed from the uploaded roster

        Returns:
            The new event id

        Raises:
            DataAccessException: If the insert fails, including a second
                event id collision with a concurrent creation
        """
        records = list(records)
        for attempt in range(1, EVENT_INSERT_ATTEMPTS + 1):
            try:
                with self._transaction("create_event") as conn:
                    event_id = self._insert_event(conn, name, password_hash, location)
                    count = self._insert_attendees(conn, event_id, records)
            except DataAccessException as e:
                if not isinstance(e.__cause__, IntegrityError) or attempt == EVENT_INSERT_ATTEMPTS:
                    raise
                logger.warning(f"Event insert conflicted, retrying (attempt {attempt})")
                continue
            logger.info(f"Created event {event_id} with {count} attendees")
            return event_id

    def get_event(self, event_id: int) -> Optional[Event]:
        if not is_storable_id(event_id):
            return None
        events = self.schema.events
        with self._transaction("get_event") as conn:
            row = conn.execute(
                select(events).where(events.c.id == event_id)
            ).mappings().first()
        if row is None:
            return None
        return Event(
            event_id=row["id"],
            name=row["name"],
            password_hash=row["password_hash"],
            location=row["location"],
            created_at=row["created_at"],
        )

    def event_password_hash(self, event_id: int) -> Optional[str]:
        if not is_storable_id(event_id):
            return None
        events = self.schema.events
        with self._transaction("event_password_hash") as conn:
            return conn.execute(
                select(events.c.password_hash).where(events.c.id == event_id)
            ).scalar()

    # Attendees

    def bulk_insert_attendees(self, event_id: int, records: Iterable[AttendeeRecord]) -> int:
        """
        Insert many attendees for an existing event

        Returns:
            Number of attendees inserted
        """
        with self._transaction("bulk_insert_attendees") as conn:
            return self._insert_attendees(conn, event_id, records)

    def add_attendee(self, event_id: int, name: str,
                     external_id: Optional[str] = None) -> Attendee:
        """
        Add a single attendee; duplicate names are allowed

        Returns:
            The stored Attendee with its assigned id
        """
        with self._transaction("add_attendee") as conn:
            result = conn.execute(
                insert(self.schema.attendees).values(
                    event_id=event_id, name=name, external_id=external_id or None
                )
            )
            attendee_id = result.inserted_primary_key[0]
        return Attendee(attendee_id, event_id, name, external_id or None)

    def get_attendee(self, event_id: int, attendee_id: int) -> Optional[Attendee]:
        """Fetch an attendee only if it belongs to the given event"""
        if not (is_storable_id(event_id) and is_storable_id(attendee_id)):
            return None
        attendees = self.schema.attendees
        with self._transaction("get_attendee") as conn:
            row = conn.execute(
                select(attendees).where(
                    attendees.c.id == attendee_id,
                    attendees.c.event_id == event_id,
                )
            ).mappings().first()
        if row is None:
            return None
        return Attendee(row["id"], row["event_id"], row["name"], row["external_id"])

    def list_attendees_with_status(self, event_id: int) -> List[AttendeeStatus]:
        """
        List an event's attendees ordered by name

        ``checked_in`` is true when at least one check-in row exists.
        """
        attendees = self.schema.attendees
        checkins = self.schema.checkins
        stmt = (
            select(
                attendees.c.id,
                attendees.c.name,
                func.count(checkins.c.id).label("checkin_count"),
            )
            .select_from(
                attendees.outerjoin(checkins, checkins.c.attendee_id == attendees.c.id)
            )
            .where(attendees.c.event_id == event_id)
            .group_by(attendees.c.id, attendees.c.name)
            .order_by(attendees.c.name, attendees.c.id)
        )
        with self._transaction("list_attendees") as conn:
            rows = conn.execute(stmt).all()
        return [AttendeeStatus(row.id, row.name, row.checkin_count > 0) for row in rows]

    # Check-ins

    def record_check_in(self, event_id: int, attendee_id: int) -> bool:
        """
        Record a check-in for an attendee

        A new row is written even when the attendee already has one;
        repeat check-ins are kept rather than deduplicated.

        Returns:
            True if the attendee had already checked in before this call
        """
        checkins = self.schema.checkins
        with self._transaction("record_check_in") as conn:
            existing = conn.execute(
                select(func.count()).select_from(checkins).where(
                    checkins.c.event_id == event_id,
                    checkins.c.attendee_id == attendee_id,
                )
            ).scalar()
            conn.execute(
                insert(checkins).values(
                    event_id=event_id,
                    attendee_id=attendee_id,
                    checked_in_at=self.clock(),
                )
            )
        return existing > 0

    def check_ins_for_attendee(self, event_id: int, attendee_id: int) -> List[CheckIn]:
        """Every check-in row recorded for an attendee, oldest first"""
        checkins = self.schema.checkins
        with self._transaction("check_ins_for_attendee") as conn:
            rows = conn.execute(
                select(checkins)
                .where(checkins.c.event_id == event_id, checkins.c.attendee_id == attendee_id)
                .order_by(checkins.c.id)
            ).mappings().all()
        return [
            CheckIn(row["id"], row["event_id"], row["attendee_id"], row["checked_in_at"])
            for row in rows
        ]

    # Analytics

    def count_attendees(self, event_id: int) -> int:
        attendees = self.schema.attendees
        with self._transaction("count_attendees") as conn:
            return conn.execute(
                select(func.count()).select_from(attendees).where(attendees.c.event_id == event_id)
            ).scalar()

    def count_checked_in(self, event_id: int) -> int:
        """Number of distinct attendees with at least one check-in"""
        checkins = self.schema.checkins
        with self._transaction("count_checked_in") as conn:
            return conn.execute(
                select(func.count(func.distinct(checkins.c.attendee_id))).where(
                    checkins.c.event_id == event_id
                )
            ).scalar()

    def check_ins_by_date(self, event_id: int) -> List[DailyCount]:
        """Raw check-in rows per calendar date, oldest first"""
        checkins = self.schema.checkins
        day = func.date(checkins.c.checked_in_at)
        stmt = (
            select(day.label("day"), func.count().label("total"))
            .where(checkins.c.event_id == event_id)
            .group_by(day)
            .order_by(day)
        )
        with self._transaction("check_ins_by_date") as conn:
            rows = conn.execute(stmt).all()
        return [DailyCount(str(row.day), row.total) for row in rows]

    def recent_check_ins(self, event_id: int, limit: int = 10) -> List[RecentCheckIn]:
        """Most recent check-ins with attendee names, newest first"""
        attendees = self.schema.attendees
        checkins = self.schema.checkins
        stmt = (
            select(attendees.c.name, checkins.c.checked_in_at)
            .select_from(checkins.join(attendees, checkins.c.attendee_id == attendees.c.id))
            .where(checkins.c.event_id == event_id)
            .order_by(checkins.c.checked_in_at.desc(), checkins.c.id.desc())
            .limit(limit)
        )
        with self._transaction("recent_check_ins") as conn:
            rows = conn.execute(stmt).all()
        return [RecentCheckIn(row.name, row.checked_in_at) for row in rows]

    def export_rows(self, event_id: int) -> List[ExportRow]:
        """
        One row per check-in, ordered by attendee name then check-in time

        Repeat check-ins each get their own row. Attendees who never
        checked in appear once with no time.
        """
        attendees = self.schema.attendees
        checkins = self.schema.checkins
        stmt = (
            select(attendees.c.name, attendees.c.external_id, checkins.c.checked_in_at)
            .select_from(
                attendees.outerjoin(checkins, checkins.c.attendee_id == attendees.c.id)
            )
            .where(attendees.c.event_id == event_id)
            .order_by(attendees.c.name, attendees.c.id, checkins.c.checked_in_at, checkins.c.id)
        )
        with self._transaction("export_rows") as conn:
            rows = conn.execute(stmt).all()
        return [ExportRow(row.name, row.external_id, row.checked_in_at) for row in rows]


class SessionRepository(DataRepository):
    """
    Persistence for management sessions

    Rows hold only the digest of the session secret.
    """

    def insert_session(self, session: Session) -> None:
        with self._transaction("insert_session") as conn:
            conn.execute(
                insert(self.schema.sessions).values(
                    id=session.session_id,
                    secret_hash=session.secret_hash,
                    event_id=session.event_id,
                    created_at=session.created_at,
                )
            )

    def get_session(self, session_id: str) -> Optional[Session]:
        sessions = self.schema.sessions
        with self._transaction("get_session") as conn:
            row = conn.execute(
                select(sessions).where(sessions.c.id == session_id)
            ).mappings().first()
        if row is None:
            return None
        return Session(
            session_id=row["id"],
            secret_hash=bytes(row["secret_hash"]),
            event_id=row["event_id"],
            created_at=row["created_at"],
        )

    def delete_session(self, session_id: str) -> None:
        """Delete a session row; deleting a missing id is not an error"""
        sessions = self.schema.sessions
        with self._transaction("delete_session") as conn:
            conn.execute(delete(sessions).where(sessions.c.id == session_id))


class RepositoryFactory:
    """
    Factory class for creating repository instances

    This class provides a centralized way to build the engine and the
    repositories that share it.
    """

    @staticmethod
    def create_engine(database_url: str) -> Engine:
        """
        Create a SQLAlchemy engine

        Args:
            database_url: SQLAlchemy database URL

        Returns:
            Engine instance
        """
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        return create_engine(database_url, connect_args=connect_args)

    @staticmethod
    def create_event_store(engine: Engine, tables: TableNames,
                           clock: Callable[[], datetime] = utc_now) -> EventStore:
        return EventStore(engine, build_schema(tables), clock=clock)

    @staticmethod
    def create_session_repository(engine: Engine, tables: TableNames) -> SessionRepository:
        return SessionRepository(engine, build_schema(tables))
