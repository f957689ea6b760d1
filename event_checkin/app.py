"""
Main Application Module for the Event Check-in Service

This module contains the Flask application class that wires the store,
session manager and services together and maps the JSON API onto them.
It also provides the app factories and the command-line entry point.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import build_config, load_config_from_env
from .exceptions import (
    CheckInException,
    DataAccessException,
    NoValidAttendeesException,
    OriginRejectedException,
)
from .logging_config import setup_logging
from .models import Session
from .repositories import RepositoryFactory, utc_now
from .schemas import (
    AddAttendeeRequest,
    CreateEventRequest,
    PasswordRequest,
    SignInRequest,
    validate_body,
)
from .services import (
    ALREADY_SIGNED_IN_MESSAGE,
    AttendanceService,
    AuthenticationService,
    EventService,
)
from .sessions import (
    SessionManager,
    clear_session_cookie,
    set_session_cookie,
    token_from_request,
    verify_request_origin,
)

logger = logging.getLogger(__name__)


class CheckInApp:
    """
    Main Flask application class for the check-in service

    Attendees sign themselves in without credentials; organizers reach
    the management endpoints with the event password or a session.
    """

    def __init__(self, config: Optional[Dict] = None,
                 store_clock: Callable[[], datetime] = utc_now,
                 session_clock: Optional[Callable[[], float]] = None):
        """
        Initialize the check-in application

        Args:
            config: Optional configuration dictionary
            store_clock: Source of check-in and event creation timestamps
            session_clock: Source of unix time for session expiry
        """
        self.app = Flask(__name__)
        self.config = build_config(config)
        self._configure_app()

        # Initialize repositories
        engine = RepositoryFactory.create_engine(self.config['DATABASE_URL'])
        tables = self.config['TABLES']
        self.store = RepositoryFactory.create_event_store(engine, tables, clock=store_clock)
        self.session_repository = RepositoryFactory.create_session_repository(engine, tables)
        self.store.create_schema()

        # Initialize services
        session_kwargs = {"clock": session_clock} if session_clock else {}
        self.session_manager = SessionManager(
            self.session_repository, self.config['SESSION_TTL_SECONDS'], **session_kwargs
        )
        self.event_service = EventService(self.store)
        self.auth_service = AuthenticationService(self.event_service, self.session_manager)
        self.attendance_service = AttendanceService(
            self.store, self.config['RECENT_CHECKINS_LIMIT']
        )

        self._register_routes()
        self._register_hooks()
        self._register_error_handlers()

        logger.info("Event check-in system ready")

    def _configure_app(self) -> None:
        """Apply Flask-level settings"""
        self.app.config['DEBUG'] = self.config['DEBUG']
        self.app.json.sort_keys = False

    def _register_routes(self) -> None:
        """Register all API routes"""
        rule = self.app.add_url_rule
        rule("/api/events", "create_event", self.create_event, methods=["POST"])
        rule("/api/events/<int:event_id>", "get_event", self.get_event)
        rule("/api/events/<int:event_id>/attendees", "list_attendees", self.list_attendees)
        rule("/api/events/<int:event_id>/attendees", "add_attendee", self.add_attendee,
             methods=["POST"])
        rule("/api/events/<int:event_id>/signin", "signin", self.signin, methods=["POST"])
        rule("/api/events/<int:event_id>/details", "details", self.details, methods=["POST"])
        rule("/api/events/<int:event_id>/analytics", "analytics", self.analytics,
             methods=["POST"])
        rule("/api/events/<int:event_id>/export", "export", self.export, methods=["POST"])
        rule("/api/events/<int:event_id>/login", "login", self.login, methods=["POST"])
        rule("/api/events/<int:event_id>/logout", "logout", self.logout, methods=["POST"])

    def _register_hooks(self) -> None:
        """Reject cross-origin state-changing requests before any handler runs"""

        @self.app.before_request
        def check_origin():
            origin = request.headers.get("Origin")
            if not verify_request_origin(request.method, origin, request.host,
                                         self.config['ALLOWED_ORIGIN_SCHEMES']):
                logger.warning(f"Rejected {request.method} {request.path} from origin {origin}")
                raise OriginRejectedException(origin)

    def _register_error_handlers(self) -> None:
        """Register error handlers for custom exceptions"""

        @self.app.errorhandler(NoValidAttendeesException)
        def handle_no_valid_attendees(e):
            return jsonify({"error": e.message, "csvErrors": e.csv_errors}), e.status_code

        @self.app.errorhandler(DataAccessException)
        def handle_data_access(e):
            logger.error(f"Data access failure: {e}", exc_info=True)
            return jsonify({"error": "Internal server error"}), 500

        @self.app.errorhandler(CheckInException)
        def handle_check_in_exception(e):
            return jsonify({"error": e.message}), e.status_code

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(e):
            return jsonify({"error": e.description}), e.code

        @self.app.errorhandler(Exception)
        def handle_unexpected(e):
            logger.error(f"Unhandled error on {request.path}: {e}", exc_info=True)
            return jsonify({"error": "Internal server error"}), 500

    def _parse(self, schema):
        """Validate the JSON body, raising the ValidationException on failure"""
        result = validate_body(schema, request.get_json(silent=True))
        if not result.ok:
            raise result.error
        return result.value

    def _current_session(self) -> Optional[Session]:
        token = token_from_request(request, self.config['SESSION_COOKIE_NAME'])
        return self.session_manager.validate(token)

    def create_event(self):
        """
        Create an event from a name, password and CSV roster

        Returns:
            JSON with the event id, attendee count and CSV row errors
        """
        body = self._parse(CreateEventRequest)
        result = self.event_service.create_event(
            body.name, body.password, body.csv_content, body.location
        )
        return jsonify(result.to_dict())

    def get_event(self, event_id: int):
        """Public event summary, used by the sign-in and share pages"""
        event = self.event_service.get_event_or_raise(event_id)
        return jsonify({"event": event.to_dict()})

    def list_attendees(self, event_id: int):
        """
        Attendee list with check-in status

        Returns:
            JSON list of attendees ordered by name
        """
        attendees = self.event_service.list_attendees(event_id)
        return jsonify({"attendees": [attendee.to_dict() for attendee in attendees]})

    def add_attendee(self, event_id: int):
        """Add a single attendee; requires management access"""
        body = self._parse(AddAttendeeRequest)
        self.auth_service.authorize(event_id, body.password, self._current_session())
        attendee = self.event_service.add_attendee(event_id, body.name, body.external_id)
        return jsonify({"success": True, "attendee": attendee.to_dict()}), 201

    def signin(self, event_id: int):
        """
        Attendee self check-in

        Returns:
            JSON naming the attendee and whether they had signed in before
        """
        body = self._parse(SignInRequest)
        result = self.attendance_service.sign_in(event_id, body.attendee_id)

        payload = {
            "success": True,
            "attendeeName": result.attendee_name,
            "alreadySignedIn": result.already_signed_in,
        }
        if result.already_signed_in:
            payload["message"] = ALREADY_SIGNED_IN_MESSAGE
        return jsonify(payload)

    def details(self, event_id: int):
        body = self._parse(PasswordRequest)
        event = self.auth_service.authorize(event_id, body.password, self._current_session())
        return jsonify(self.attendance_service.get_details(event))

    def analytics(self, event_id: int):
        body = self._parse(PasswordRequest)
        event = self.auth_service.authorize(event_id, body.password, self._current_session())
        return jsonify(self.attendance_service.get_analytics(event))

    def export(self, event_id: int):
        """
        Download check-in data as CSV

        Returns:
            text/csv attachment
        """
        body = self._parse(PasswordRequest)
        event = self.auth_service.authorize(event_id, body.password, self._current_session())
        filename, content = self.attendance_service.export_csv(event)
        return Response(
            content,
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    def login(self, event_id: int):
        """
        Exchange the event password for a session cookie

        Returns:
            JSON confirmation with the session cookie set
        """
        body = self._parse(PasswordRequest)
        _, token = self.auth_service.login(event_id, body.password)

        response = jsonify({"success": True, "eventId": event_id})
        set_session_cookie(
            response,
            token,
            self.config['SESSION_COOKIE_NAME'],
            self.config['SESSION_TTL_SECONDS'],
            secure=self.config['SESSION_COOKIE_SECURE'],
        )
        return response

    def logout(self, event_id: int):
        """Revoke the presented session and clear the cookie"""
        self.auth_service.logout(self._current_session())

        response = jsonify({"success": True})
        clear_session_cookie(
            response,
            self.config['SESSION_COOKIE_NAME'],
            secure=self.config['SESSION_COOKIE_SECURE'],
        )
        return response

    def run(self, host: str = '127.0.0.1', port: int = 5000, debug: bool = None) -> None:
        """
        Run the Flask development server

        Args:
            host: Host address to bind to
            port: Port number to listen on
            debug: Debug mode (overrides config if provided)
        """
        if debug is not None:
            self.app.config['DEBUG'] = debug

        self.app.run(host=host, port=port, debug=self.app.config['DEBUG'])


def create_app(config: Optional[Dict] = None, **kwargs) -> CheckInApp:
    """
    Factory function to create and configure the application

    Args:
        config: Optional configuration dictionary
        **kwargs: Clock overrides passed to CheckInApp

    Returns:
        Configured CheckInApp instance
    """
    return CheckInApp(config, **kwargs)


def create_development_app() -> CheckInApp:
    """
    Create application configured for local development

    Cookies are not marked secure so the session works over plain http.
    """
    dev_config = {
        'DEBUG': True,
        'DATABASE_URL': 'sqlite:///checkin-dev.db',
        'SESSION_COOKIE_SECURE': False,
        'LOG_LEVEL': 'DEBUG',
    }
    dev_config.update(load_config_from_env())
    setup_logging(dev_config['LOG_LEVEL'], dev_config.get('LOG_FILE'))
    return create_app(dev_config)


def create_production_app() -> CheckInApp:
    """Create application configured from the environment for production"""
    prod_config = {'DEBUG': False}
    prod_config.update(load_config_from_env())
    config = build_config(prod_config)
    setup_logging(config['LOG_LEVEL'], config['LOG_FILE'])
    return create_app(config)


def main() -> None:
    app = create_development_app()
    app.run()


if __name__ == "__main__":
    main()
