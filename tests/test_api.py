import pytest

from .conftest import SAMPLE_CSV, cookie_value


def _attendees(api, event_id):
    response = api.get(f"/api/events/{event_id}/attendees")
    assert response.status_code == 200
    return response.get_json()["attendees"]


def _attendee_id(api, event_id, name):
    return next(a["id"] for a in _attendees(api, event_id) if a["name"] == name)


# Event creation

def test_create_event(api, checkin_app, store_clock):
    response = api.post("/api/events", json={
        "name": "  Launch  ",
        "password": "pw",
        "csvContent": "Name\nAda\n\nBob",
    })

    assert response.status_code == 200
    body = response.get_json()
    assert body == {
        "success": True,
        "eventId": store_clock.timestamp(),
        "attendeeCount": 2,
        "csvErrors": ["Row 3: No name found"],
    }
    event = checkin_app.store.get_event(body["eventId"])
    assert event.name == "Launch"
    assert event.password_hash != "pw"


@pytest.mark.parametrize("missing", ["name", "password", "csvContent"])
def test_create_event_requires_fields(api, missing):
    body = {"name": "Launch", "password": "pw", "csvContent": SAMPLE_CSV}
    del body[missing]

    response = api.post("/api/events", json=body)

    assert response.status_code == 400
    assert "error" in response.get_json()


def test_create_event_rejects_blank_csv(api):
    response = api.post("/api/events", json={
        "name": "Launch", "password": "pw", "csvContent": "   \n ",
    })

    assert response.status_code == 400


def test_create_event_without_valid_attendees(api, checkin_app, store_clock):
    response = api.post("/api/events", json={
        "name": "Launch", "password": "pw", "csvContent": "Name,ID\nAda",
    })

    assert response.status_code == 400
    assert response.get_json() == {
        "error": "No valid attendees found in CSV",
        "csvErrors": ["Row 2: Column count mismatch (expected 2, got 1)"],
    }
    assert checkin_app.store.get_event(store_clock.timestamp()) is None


def test_non_object_body_is_rejected(api):
    response = api.post("/api/events", json=["Launch"])

    assert response.status_code == 400


# Public views

def test_public_event_summary(api, event_id):
    response = api.get(f"/api/events/{event_id}")

    assert response.status_code == 200
    event = response.get_json()["event"]
    assert event["name"] == "Spring Meetup"
    assert event["location"] == "Hall B"
    assert "password_hash" not in event


def test_unknown_event_is_404(api):
    assert api.get("/api/events/999").status_code == 404
    assert api.get("/api/events/999/attendees").status_code == 404
    assert api.post("/api/events/999/details", json={"password": "x"}).status_code == 404


def test_event_id_beyond_integer_range_is_404(api):
    huge = 2 ** 70

    assert api.get(f"/api/events/{huge}").status_code == 404
    assert api.get(f"/api/events/{huge}/attendees").status_code == 404
    assert api.post(f"/api/events/{huge}/signin", json={"attendeeId": 1}).status_code == 404
    assert api.post(f"/api/events/{huge}/details", json={"password": "x"}).status_code == 404


def test_attendee_list(api, event_id):
    attendees = _attendees(api, event_id)

    assert [a["name"] for a in attendees] == ["Ada Lovelace", "Jane Doe", "John Smith"]
    assert all(a["checkedIn"] is False for a in attendees)
    assert set(attendees[0]) == {"id", "name", "checkedIn"}


# Sign-in

def test_sign_in_then_repeat(api, event_id):
    attendee_id = _attendee_id(api, event_id, "Jane Doe")

    first = api.post(f"/api/events/{event_id}/signin", json={"attendeeId": attendee_id})
    assert first.status_code == 200
    assert first.get_json() == {
        "success": True,
        "attendeeName": "Jane Doe",
        "alreadySignedIn": False,
    }

    second = api.post(f"/api/events/{event_id}/signin", json={"attendeeId": attendee_id})
    body = second.get_json()
    assert second.status_code == 200
    assert body["alreadySignedIn"] is True
    assert "already signed in" in body["message"]

    jane = next(a for a in _attendees(api, event_id) if a["id"] == attendee_id)
    assert jane["checkedIn"] is True


def test_sign_in_rejects_attendee_of_another_event(api, event_id):
    other = api.post("/api/events", json={
        "name": "Other", "password": "pw", "csvContent": "Name\nMallory",
    }).get_json()["eventId"]
    mallory = _attendee_id(api, other, "Mallory")

    response = api.post(f"/api/events/{event_id}/signin", json={"attendeeId": mallory})

    assert response.status_code == 404
    assert response.get_json() == {"error": "Attendee not found for this event"}


def test_sign_in_attendee_id_beyond_integer_range_is_404(api, event_id):
    response = api.post(f"/api/events/{event_id}/signin", json={"attendeeId": 2 ** 70})

    assert response.status_code == 404
    assert response.get_json() == {"error": "Attendee not found for this event"}


@pytest.mark.parametrize("body", [{}, {"attendeeId": 0}, {"attendeeId": "abc"}])
def test_sign_in_validates_attendee_id(api, event_id, body):
    response = api.post(f"/api/events/{event_id}/signin", json=body)

    assert response.status_code == 400


# Management with password

def test_details(api, event_id):
    api.post(f"/api/events/{event_id}/signin",
             json={"attendeeId": _attendee_id(api, event_id, "Ada Lovelace")})

    response = api.post(f"/api/events/{event_id}/details", json={"password": "hunter2"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["attendeeCount"] == 3
    assert body["checkedInCount"] == 1
    assert body["event"]["name"] == "Spring Meetup"
    assert "password_hash" not in body["event"]
    assert b"scrypt" not in response.data


@pytest.mark.parametrize("body", [
    {"password": "wrong"}, {}, {"password": ""}, {"password": 123}, {"password": ["hunter2"]},
])
def test_details_rejects_bad_credentials(api, event_id, body):
    response = api.post(f"/api/events/{event_id}/details", json=body)

    assert response.status_code == 401
    assert "error" in response.get_json()


def test_analytics(api, event_id, store_clock):
    ada = _attendee_id(api, event_id, "Ada Lovelace")
    jane = _attendee_id(api, event_id, "Jane Doe")
    api.post(f"/api/events/{event_id}/signin", json={"attendeeId": ada})
    store_clock.advance(days=1)
    api.post(f"/api/events/{event_id}/signin", json={"attendeeId": jane})
    api.post(f"/api/events/{event_id}/signin", json={"attendeeId": ada})

    response = api.post(f"/api/events/{event_id}/analytics", json={"password": "hunter2"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["totalAttendees"] == 3
    assert body["totalCheckedIn"] == 2
    assert body["checkInsByDate"] == [
        {"date": "2025-03-14", "count": 1},
        {"date": "2025-03-15", "count": 2},
    ]
    assert len(body["recentCheckIns"]) == 3
    assert body["recentCheckIns"][-1] == {
        "attendeeName": "Ada Lovelace",
        "checkedInAt": "2025-03-14 09:30:00",
    }


def test_export(api, event_id):
    api.post(f"/api/events/{event_id}/signin",
             json={"attendeeId": _attendee_id(api, event_id, "Jane Doe")})

    response = api.post(f"/api/events/{event_id}/export", json={"password": "hunter2"})

    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("text/csv")
    assert 'filename="Spring_Meetup_checkins.csv"' in response.headers["Content-Disposition"]
    assert response.get_data(as_text=True).split("\n") == [
        "Name,External ID,Checked In,Check-in Time",
        '"Ada Lovelace","7","No",""',
        '"Jane Doe","42","Yes","2025-03-14 09:30:00"',
        '"John Smith","","No",""',
    ]


def test_export_lists_repeat_check_ins(api, event_id, store_clock):
    jane = _attendee_id(api, event_id, "Jane Doe")
    api.post(f"/api/events/{event_id}/signin", json={"attendeeId": jane})
    store_clock.advance(hours=2)
    api.post(f"/api/events/{event_id}/signin", json={"attendeeId": jane})

    response = api.post(f"/api/events/{event_id}/export", json={"password": "hunter2"})

    lines = response.get_data(as_text=True).split("\n")
    assert [line for line in lines if line.startswith('"Jane Doe"')] == [
        '"Jane Doe","42","Yes","2025-03-14 09:30:00"',
        '"Jane Doe","42","Yes","2025-03-14 11:30:00"',
    ]
    assert len(lines) == 5


def test_export_requires_password(api, event_id):
    response = api.post(f"/api/events/{event_id}/export", json={"password": "nope"})

    assert response.status_code == 401


def test_login_with_non_string_password(api, event_id):
    response = api.post(f"/api/events/{event_id}/login", json={"password": 12345})

    assert response.status_code == 401
    assert cookie_value(response) is None


def test_add_attendee(api, event_id):
    response = api.post(f"/api/events/{event_id}/attendees", json={
        "password": "hunter2", "name": " Grace Hopper ", "external_id": "",
    })

    assert response.status_code == 201
    attendee = response.get_json()["attendee"]
    assert attendee["name"] == "Grace Hopper"
    assert attendee["external_id"] is None
    assert "Grace Hopper" in [a["name"] for a in _attendees(api, event_id)]


def test_add_attendee_requires_access(api, event_id):
    response = api.post(f"/api/events/{event_id}/attendees", json={"name": "Eve"})

    assert response.status_code == 401
    assert len(_attendees(api, event_id)) == 3


# Same-origin check

@pytest.mark.parametrize("origin", ["https://evil.example", "http://localhost:9999", None])
def test_cross_origin_post_is_rejected(api, checkin_app, store_clock, origin):
    response = api.post("/api/events", json={
        "name": "Launch", "password": "pw", "csvContent": SAMPLE_CSV,
    }, origin=origin)

    assert response.status_code == 403
    assert response.get_json() == {"error": "Forbidden"}
    assert checkin_app.store.get_event(store_clock.timestamp()) is None


def test_get_needs_no_origin(api, event_id):
    assert api.get(f"/api/events/{event_id}").status_code == 200


# Sessions

def test_login_cookie_grants_management_access(api, event_id):
    login = api.post(f"/api/events/{event_id}/login", json={"password": "hunter2"})

    assert login.status_code == 200
    token = cookie_value(login)
    assert token

    response = api.post(f"/api/events/{event_id}/details", json={}, cookie=token)
    assert response.status_code == 200
    assert response.get_json()["attendeeCount"] == 3


def test_login_with_wrong_password(api, event_id):
    response = api.post(f"/api/events/{event_id}/login", json={"password": "nope"})

    assert response.status_code == 401
    assert cookie_value(response) is None


def test_session_is_bound_to_its_event(api, event_id):
    other = api.post("/api/events", json={
        "name": "Other", "password": "other-pw", "csvContent": "Name\nMallory",
    }).get_json()["eventId"]
    token = cookie_value(api.post(f"/api/events/{other}/login", json={"password": "other-pw"}))

    response = api.post(f"/api/events/{event_id}/details", json={}, cookie=token)

    assert response.status_code == 401


def test_expired_session_is_rejected(api, event_id, session_clock, checkin_app):
    token = cookie_value(api.post(f"/api/events/{event_id}/login", json={"password": "hunter2"}))

    session_clock.advance(checkin_app.config['SESSION_TTL_SECONDS'])

    response = api.post(f"/api/events/{event_id}/analytics", json={}, cookie=token)
    assert response.status_code == 401


def test_logout_revokes_session(api, event_id):
    token = cookie_value(api.post(f"/api/events/{event_id}/login", json={"password": "hunter2"}))

    logout = api.post(f"/api/events/{event_id}/logout", cookie=token)

    assert logout.status_code == 200
    assert "Max-Age=0" in logout.headers["Set-Cookie"]
    response = api.post(f"/api/events/{event_id}/details", json={}, cookie=token)
    assert response.status_code == 401
