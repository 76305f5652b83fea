"""Calendar connection, proxying and view endpoints"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from sqlalchemy.exc import SQLAlchemyError

from slotbook.domain.calendar import service as calendar_service
from slotbook.domain.calendar.repository import CalendarTokenRepository
from slotbook.models_google_calendar import GoogleCalendarToken
from slotbook.security_utils import generate_timed_token, verify_timed_token

FRONTEND = "http://frontend.test"


def _callback(client, **params):
    return client.get("/api/auth/callback/google", params=params, follow_redirects=False)


class TestConnect:
    def test_auth_url_carries_signed_state(self, client, user):
        response = client.get("/api/google/calendar/auth")

        assert response.status_code == 200
        query = parse_qs(urlparse(response.json()["url"]).query)
        assert verify_timed_token(query["state"][0]) == {"uid": user.firebase_uid}

    def test_auth_requires_session(self, anonymous_client):
        response = anonymous_client.get("/api/google/calendar/auth")

        assert response.status_code in (401, 403)

    def test_callback_without_code(self, client):
        response = _callback(client, state="anything")

        assert response.status_code == 302
        assert response.headers["location"] == f"{FRONTEND}/dashboard/calendar?error=no_code"

    def test_callback_with_bad_state_goes_to_login(self, client):
        response = _callback(client, code="abc", state="forged")

        assert response.headers["location"] == f"{FRONTEND}/login"

    def test_callback_stores_encrypted_tokens(self, client, user, db_session):
        state = generate_timed_token({"uid": user.firebase_uid})

        response = _callback(client, code="abc", state=state)

        assert response.headers["location"] == f"{FRONTEND}/dashboard/calendar?connected=true"
        record = db_session.query(GoogleCalendarToken).filter_by(user_id=user.id).one()
        assert record.access_token != "mock-access-abc"
        assert CalendarTokenRepository.decrypted(record).access_token == "mock-access-abc"
        assert record.email == "user@example.com"

    def test_second_connect_overwrites(self, client, user, db_session):
        for code in ("first", "second"):
            _callback(client, code=code, state=generate_timed_token({"uid": user.firebase_uid}))

        records = db_session.query(GoogleCalendarToken).filter_by(user_id=user.id).all()
        assert len(records) == 1
        assert CalendarTokenRepository.decrypted(records[0]).access_token == "mock-access-second"

    def test_exchange_failure(self, client, user, provider):
        provider.fail_exchange = True

        response = _callback(
            client, code="abc", state=generate_timed_token({"uid": user.firebase_uid})
        )

        assert response.headers["location"] == f"{FRONTEND}/dashboard/calendar?error=callback_failed"

    def test_email_mismatch_rejected_when_enforced(self, client, user, provider, monkeypatch):
        monkeypatch.setattr(calendar_service, "ENFORCE_CALENDAR_EMAIL_MATCH", True)
        provider.email = "different@gmail.com"

        response = _callback(
            client, code="abc", state=generate_timed_token({"uid": user.firebase_uid})
        )

        assert response.headers["location"] == f"{FRONTEND}/dashboard/calendar?error=email_mismatch"
        assert client.get("/api/google/calendar/status").json()["connected"] is False

    def test_email_mismatch_allowed_by_default(self, client, user, provider):
        provider.email = "different@gmail.com"

        response = _callback(
            client, code="abc", state=generate_timed_token({"uid": user.firebase_uid})
        )

        assert response.headers["location"].endswith("connected=true")


class TestStatusAndDisconnect:
    def test_status_not_connected(self, client):
        assert client.get("/api/google/calendar/status").json() == {
            "connected": False,
            "email": None,
            "expiresAt": None,
        }

    def test_status_connected(self, client, connected):
        connected()

        body = client.get("/api/google/calendar/status").json()

        assert body["connected"] is True
        assert body["email"] == "owner@example.com"

    def test_disconnect_revokes_and_deletes(self, client, connected, provider):
        connected()

        response = client.post("/api/google/calendar/disconnect")

        assert response.status_code == 200
        assert provider.revoked == ["stored-refresh"]
        assert client.get("/api/google/calendar/status").json()["connected"] is False

    def test_disconnect_when_not_connected(self, client):
        response = client.post("/api/google/calendar/disconnect")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_connected"


class TestCalendarsAndEvents:
    def test_list_not_connected(self, client):
        response = client.get("/api/google/calendar/list")

        assert response.status_code == 404
        assert response.json()["detail"] == {
            "error": "Google Calendar not connected",
            "code": "not_connected",
        }

    def test_list_calendars(self, client, connected):
        connected()

        calendars = client.get("/api/google/calendar/list").json()["calendars"]

        assert calendars[0]["name"] == "Work Calendar"
        assert calendars[0]["provider"] == "google"

    def test_events_missing_parameters(self, client, connected):
        connected()

        response = client.get(
            "/api/google/calendar/events", params={"calendarId": "primary", "timeMin": "2025-03-02T00:00:00Z"}
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_parameters"

    def test_events_unparseable_parameters(self, client, connected):
        connected()

        response = client.get(
            "/api/google/calendar/events",
            params={"calendarId": "primary", "timeMin": "yesterday", "timeMax": "today"},
        )

        assert response.status_code == 400

    def test_events_for_range(self, client, connected, provider):
        connected()

        response = client.get(
            "/api/google/calendar/events",
            params={
                "calendarId": "primary",
                "timeMin": "2025-03-02T00:00:00Z",
                "timeMax": "2025-03-08T23:59:59Z",
            },
        )

        assert response.status_code == 200
        events = response.json()["events"]
        assert events
        assert all(event["calendarId"] == "primary" for event in events)
        assert provider.last_access_token == "stored-access"

    def test_events_provider_failure(self, client, connected, provider):
        connected()
        provider.fail_events = True

        response = client.get(
            "/api/google/calendar/events",
            params={
                "calendarId": "primary",
                "timeMin": "2025-03-02T00:00:00Z",
                "timeMax": "2025-03-08T23:59:59Z",
            },
        )

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "provider_error"

    def test_expiring_token_refreshed_before_use(self, client, connected, provider, db_session, user):
        connected(expires_in=timedelta(minutes=2))

        client.get("/api/google/calendar/list")

        assert provider.refresh_calls == 1
        record = db_session.query(GoogleCalendarToken).filter_by(user_id=user.id).one()
        db_session.refresh(record)
        stored = CalendarTokenRepository.decrypted(record)
        assert stored.access_token == "mock-access-refreshed"
        assert stored.refresh_token == "stored-refresh"

    def test_fresh_token_not_refreshed(self, client, connected, provider):
        connected(expires_in=timedelta(hours=1))

        client.get("/api/google/calendar/list")

        assert provider.refresh_calls == 0

    def test_failed_refresh_is_provider_error(self, client, connected, provider):
        connected(expires_in=timedelta(minutes=-5))
        provider.fail_refresh = True

        response = client.get("/api/google/calendar/list")

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "provider_error"

    def test_create_event(self, client, connected):
        connected()

        response = client.post(
            "/api/google/calendar/events",
            json={
                "title": "Kickoff",
                "startTime": "2025-03-04T10:00:00Z",
                "endTime": "2025-03-04T11:00:00Z",
                "attendees": ["guest@example.com"],
            },
        )

        assert response.status_code == 201
        assert response.json()["event"]["title"] == "Kickoff"

    def test_create_event_rejects_inverted_times(self, client, connected):
        connected()

        response = client.post(
            "/api/google/calendar/events",
            json={
                "title": "Backwards",
                "startTime": "2025-03-04T11:00:00Z",
                "endTime": "2025-03-04T10:00:00Z",
            },
        )

        assert response.status_code == 422


    def test_create_event_mixed_naive_and_offset_times(self, client, connected):
        connected()

        ok = client.post(
            "/api/google/calendar/events",
            json={
                "title": "Standup",
                "startTime": "2025-03-10T10:00:00",
                "endTime": "2025-03-10T11:00:00Z",
            },
        )
        backwards = client.post(
            "/api/google/calendar/events",
            json={
                "title": "Standup",
                "startTime": "2025-03-10T12:00:00",
                "endTime": "2025-03-10T11:00:00Z",
            },
        )

        assert ok.status_code == 201
        assert backwards.status_code == 422


class TestCalendarView:
    def test_week_view(self, client, connected):
        connected()

        response = client.get("/calendar/view", params={"date": "2025-03-05", "mode": "week"})

        assert response.status_code == 200
        body = response.json()
        assert [cell["date"] for cell in body["cells"]] == [
            "2025-03-02", "2025-03-03", "2025-03-04", "2025-03-05",
            "2025-03-06", "2025-03-07", "2025-03-08",
        ]
        assert body["title"] == "March 2 - March 8, 2025"
        assert body["notice"] is None
        assert any(cell["events"] for cell in body["cells"])
        assert body["nextDate"].startswith("2025-03-12")
        assert body["previousDate"].startswith("2025-02-26")

    def test_month_view_padded_to_weeks(self, client, connected):
        connected()

        body = client.get("/calendar/view", params={"date": "2025-03-15", "mode": "month"}).json()

        cells = body["cells"]
        assert len(cells) % 7 == 0
        in_month = [cell["date"] for cell in cells if cell["inMonth"]]
        assert in_month[0] == "2025-03-01"
        assert in_month[-1] == "2025-03-31"
        assert len(in_month) == 31
        assert body["title"] == "March 2025"

    def test_day_view_has_hour_slots(self, client, connected):
        connected()

        body = client.get("/calendar/view", params={"date": "2025-03-05", "mode": "day"}).json()

        assert [slot["hour"] for slot in body["slots"]] == list(range(7, 21))
        assert body["slots"][0]["label"] == "7:00 AM"
        assert body["slots"][-1]["label"] == "8:00 PM"
        placed = [p for slot in body["slots"] for p in slot["events"]]
        assert placed
        assert all(p["heightHours"] >= 0.33 for p in placed)

    def test_fetch_failure_returns_empty_grid_with_notice(self, client, connected, provider):
        connected()
        provider.fail_events = True

        response = client.get("/calendar/view", params={"date": "2025-03-05", "mode": "week"})

        assert response.status_code == 200
        body = response.json()
        assert body["notice"] == calendar_service.EVENTS_LOAD_FAILED_NOTICE
        assert len(body["cells"]) == 7
        assert all(cell["events"] == [] for cell in body["cells"])

    def test_refresh_save_failure_returns_notice(self, client, connected, provider, monkeypatch):
        connected(expires_in=timedelta(minutes=-5))

        def failing_update(self, record, tokens):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(CalendarTokenRepository, "update_tokens", failing_update)

        response = client.get("/calendar/view", params={"date": "2025-03-05", "mode": "week"})

        assert response.status_code == 200
        body = response.json()
        assert body["notice"] == calendar_service.EVENTS_LOAD_FAILED_NOTICE
        assert all(cell["events"] == [] for cell in body["cells"])

    def test_view_not_connected(self, client):
        response = client.get("/calendar/view", params={"date": "2025-03-05"})

        assert response.status_code == 404

    def test_unknown_timezone(self, client, connected):
        connected()

        response = client.get("/calendar/view", params={"date": "2025-03-05", "tz": "Mars/Olympus"})

        assert response.status_code == 400

    def test_unknown_mode(self, client, connected):
        connected()

        response = client.get("/calendar/view", params={"mode": "year"})

        assert response.status_code == 422
