# tests/conftest.py

from datetime import datetime, timedelta, timezone

import pytest

from event_checkin.app import create_app
from event_checkin.config import SESSION_TTL_SECONDS, TableNames
from event_checkin.repositories import RepositoryFactory
from event_checkin.sessions import SessionManager

ORIGIN = "http://localhost"
START = datetime(2025, 3, 14, 9, 30, 0)

SAMPLE_CSV = "\n".join([
    "Full Name,Member ID,Email",
    "Jane Doe,42,jane@example.com",
    "John Smith,,john@example.com",
    "Ada Lovelace,7,ada@example.com",
])


class DateTimeClock:
    """Controllable replacement for the store's utc_now"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def timestamp(self) -> int:
        return int(self.now.replace(tzinfo=timezone.utc).timestamp())


class SecondsClock:
    """Controllable replacement for time.time"""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def cookie_value(response, name="session_token"):
    """Pull a cookie value out of a response's Set-Cookie headers"""
    for header in response.headers.getlist("Set-Cookie"):
        key, _, rest = header.partition("=")
        if key == name:
            return rest.split(";", 1)[0]
    return None


class ApiClient:
    """Flask test client wrapper that sends a same-origin Origin header"""

    def __init__(self, client):
        self.client = client

    def _headers(self, origin, cookie):
        headers = {}
        if origin:
            headers["Origin"] = origin
        if cookie:
            headers["Cookie"] = f"session_token={cookie}"
        return headers

    def get(self, path, cookie=None):
        return self.client.get(path, headers=self._headers(None, cookie))

    def post(self, path, json=None, origin=ORIGIN, cookie=None):
        return self.client.post(path, json=json, headers=self._headers(origin, cookie))


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'checkin-test.db'}"


@pytest.fixture
def store_clock():
    return DateTimeClock(START)


@pytest.fixture
def session_clock():
    return SecondsClock(1_700_000_000)


@pytest.fixture
def engine(database_url):
    engine = RepositoryFactory.create_engine(database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine, store_clock):
    store = RepositoryFactory.create_event_store(engine, TableNames(), clock=store_clock)
    store.create_schema()
    return store


@pytest.fixture
def session_repository(engine, store):
    return RepositoryFactory.create_session_repository(engine, TableNames())


@pytest.fixture
def session_manager(session_repository, session_clock):
    return SessionManager(session_repository, SESSION_TTL_SECONDS, clock=session_clock)


@pytest.fixture
def checkin_app(database_url, store_clock, session_clock):
    app = create_app(
        {'DATABASE_URL': database_url},
        store_clock=store_clock,
        session_clock=session_clock,
    )
    app.app.config['TESTING'] = True
    yield app
    app.store.engine.dispose()


@pytest.fixture
def api(checkin_app):
    return ApiClient(checkin_app.app.test_client(use_cookies=False))


@pytest.fixture
def event_id(api):
    """An event created through the API with SAMPLE_CSV as its roster"""
    response = api.post("/api/events", json={
        "name": "Spring Meetup",
        "password": "hunter2",
        "location": "Hall B",
        "csvContent": SAMPLE_CSV,
    })
    assert response.status_code == 200
    return response.get_json()["eventId"]
