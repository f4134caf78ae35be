"""
Integration tests for the password recovery endpoints.

Tests:
- Response shapes and status codes
- Account enumeration safety
- Lockouts surfaced as 429
- Full request -> verify -> complete flow, then login with the new password
- Generic 500 on unexpected errors
"""

import time
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.exc import OperationalError

from app.api.endpoints.recovery import request_password_reset
from app.core.config import settings
from app.core.recovery import ensure_utc
from app.schemas.recovery import ResetRequestIn
from app.services import recovery_service
from app.services.recovery_service import REQUEST_ACCEPTED_MESSAGE

API = settings.API_V1_STR
REQUEST_URL = f"{API}/reset/request"
VERIFY_URL = f"{API}/reset/verify"
COMPLETE_URL = f"{API}/reset/complete"


def _request_code(client, dispatcher, email="user@example.com"):
    response = client.post(REQUEST_URL, json={"email": email})
    assert response.status_code == 200
    return dispatcher.last_code


def _verify(client, dispatcher, email="user@example.com"):
    code = _request_code(client, dispatcher, email)
    response = client.post(VERIFY_URL, json={"email": email, "otp": code})
    assert response.status_code == 200
    return response.json()["resetToken"]


class TestResetRequest:
    """Test POST /reset/request"""

    def test_known_and_unknown_email_get_identical_responses(self, client, user):
        known = client.post(REQUEST_URL, json={"email": "user@example.com"})
        unknown = client.post(REQUEST_URL, json={"email": "ghost@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {
            "success": True,
            "message": REQUEST_ACCEPTED_MESSAGE,
        }

    def test_code_never_in_response(self, client, dispatcher, user):
        response = client.post(REQUEST_URL, json={"email": user.email})
        assert dispatcher.last_code not in response.text

    @pytest.mark.parametrize("body, message", [
        ({}, "Email is required"),
        ({"email": ""}, "Email is required"),
        ({"email": "invalid"}, "Invalid email format"),
    ])
    def test_bad_email(self, client, body, message):
        response = client.post(REQUEST_URL, json=body)
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": message}

    def test_sixth_request_is_rate_limited(self, client, dispatcher, user):
        for _ in range(5):
            assert client.post(REQUEST_URL, json={"email": user.email}).status_code == 200

        response = client.post(REQUEST_URL, json={"email": user.email})
        assert response.status_code == 429
        assert response.json()["success"] is False
        assert "15 minutes" in response.json()["message"]
        assert len(dispatcher.reset_codes) == 5

    def test_locked_account(self, client, dispatcher, make_user):
        make_user(reset_locked_until=datetime.now(timezone.utc) + timedelta(minutes=10))

        response = client.post(REQUEST_URL, json={"email": "user@example.com"})
        assert response.status_code == 429
        assert response.json()["message"].startswith("Too many reset attempts. Please try again in")
        assert dispatcher.reset_codes == []

    def test_delivery_failure_still_succeeds(self, client, dispatcher, user):
        dispatcher.succeed = False
        response = client.post(REQUEST_URL, json={"email": user.email})
        assert response.status_code == 200
        assert response.json()["message"] == REQUEST_ACCEPTED_MESSAGE

    def test_database_error_is_generic(self, client, user, monkeypatch):
        def fail(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(recovery_service, "find_account", fail)
        response = client.post(REQUEST_URL, json={"email": user.email})

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "message": "An error occurred. Please try again later.",
        }
        assert "connection refused" not in response.text


class TestResetVerify:
    """Test POST /reset/verify"""

    def test_success(self, client, dispatcher, user):
        code = _request_code(client, dispatcher)
        response = client.post(VERIFY_URL, json={"email": user.email, "otp": code})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert len(data["resetToken"]) == 43
        assert data["resetToken"] != code

    def test_missing_fields(self, client):
        response = client.post(VERIFY_URL, json={"email": "user@example.com"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Email and OTP are required"}

    def test_unknown_email(self, client):
        response = client.post(VERIFY_URL, json={"email": "ghost@example.com", "otp": "123456"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid verification code"

    def test_wrong_code_reports_remaining_attempts(self, client, dispatcher, user):
        code = _request_code(client, dispatcher)
        response = client.post(VERIFY_URL, json={"email": user.email, "otp": "x" + code})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Invalid verification code. 2 attempts remaining.",
            "remainingAttempts": 2,
        }

    def test_three_wrong_codes_lock_even_the_right_one(self, client, dispatcher, user, db_session):
        code = _request_code(client, dispatcher)
        for expected in (400, 400, 429):
            response = client.post(VERIFY_URL, json={"email": user.email, "otp": "x" + code})
            assert response.status_code == expected

        assert response.json()["locked"] is True

        response = client.post(VERIFY_URL, json={"email": user.email, "otp": code})
        assert response.status_code == 429
        assert response.json()["locked"] is True
        assert "minutes" in response.json()["error"]

        db_session.refresh(user)
        assert user.reset_otp is None
        assert ensure_utc(user.reset_locked_until) > datetime.now(timezone.utc)

    def test_one_prior_failure_then_lock(self, client, make_user, db_session):
        user = make_user(
            reset_otp="123456",
            reset_otp_expires_at=datetime.now(timezone.utc) + timedelta(minutes=10),
            reset_attempts=1,
        )

        response = client.post(VERIFY_URL, json={"email": user.email, "otp": "654321"})
        assert response.status_code == 400
        assert response.json()["remainingAttempts"] == 1

        before = datetime.now(timezone.utc)
        response = client.post(VERIFY_URL, json={"email": user.email, "otp": "654321"})
        assert response.status_code == 429
        assert response.json()["locked"] is True

        db_session.refresh(user)
        locked_until = ensure_utc(user.reset_locked_until)
        assert before + timedelta(minutes=14) < locked_until <= datetime.now(timezone.utc) + timedelta(minutes=15)

    def test_expired_code(self, client, make_user, db_session):
        user = make_user(
            reset_otp="123456",
            reset_otp_expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        )

        response = client.post(VERIFY_URL, json={"email": user.email, "otp": "123456"})
        assert response.status_code == 400
        assert response.json()["error"] == "Verification code expired. Please request a new one."

        db_session.refresh(user)
        assert user.reset_otp is None

    def test_code_is_single_use(self, client, dispatcher, user):
        code = _request_code(client, dispatcher)
        assert client.post(VERIFY_URL, json={"email": user.email, "otp": code}).status_code == 200

        response = client.post(VERIFY_URL, json={"email": user.email, "otp": code})
        assert response.status_code == 400
        assert response.json()["error"] == "No verification code found. Please request a new one."

    def test_database_error_is_generic(self, client, monkeypatch):
        def fail(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("boom"))

        monkeypatch.setattr(recovery_service, "find_account", fail)
        response = client.post(VERIFY_URL, json={"email": "user@example.com", "otp": "123456"})

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "An error occurred. Please try again later.",
        }


class TestResetComplete:
    """Test POST /reset/complete"""

    def test_full_flow_then_login(self, client, dispatcher, user, db_session):
        token = _verify(client, dispatcher)
        response = client.post(
            COMPLETE_URL,
            json={"email": user.email, "otp": token, "newPassword": "BrandNew789"},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert dispatcher.password_changed == [{"to": user.email}]

        db_session.refresh(user)
        assert user.reset_otp is None
        assert user.reset_token is None
        assert user.reset_attempts == 0
        assert user.reset_requests == 0
        assert user.reset_locked_until is None
        assert len(user.password_history) == 1

        old_login = client.post(f"{API}/auth/login", json={"email": user.email, "password": "OldPass123"})
        assert old_login.status_code == 401

        new_login = client.post(f"{API}/auth/login", json={"email": user.email, "password": "BrandNew789"})
        assert new_login.status_code == 200

    def test_replay_is_rejected(self, client, dispatcher, user):
        token = _verify(client, dispatcher)
        body = {"email": user.email, "otp": token, "newPassword": "BrandNew789"}
        assert client.post(COMPLETE_URL, json=body).status_code == 200

        body["newPassword"] = "Different456"
        response = client.post(COMPLETE_URL, json=body)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_raw_code_cannot_complete(self, client, dispatcher, user):
        code = _request_code(client, dispatcher)
        response = client.post(
            COMPLETE_URL,
            json={"email": user.email, "otp": code, "newPassword": "BrandNew789"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "No reset request found. Please request a new reset code."

    def test_wrong_token(self, client, dispatcher, user):
        _verify(client, dispatcher)
        response = client.post(
            COMPLETE_URL,
            json={"email": user.email, "otp": "not-the-token", "newPassword": "BrandNew789"},
        )
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid reset code"}

    def test_missing_fields(self, client):
        response = client.post(COMPLETE_URL, json={"email": "user@example.com", "otp": "abc"})
        assert response.status_code == 400
        assert response.json()["message"] == "Email, reset token, and new password are required"

    def test_short_password(self, client, dispatcher, user):
        token = _verify(client, dispatcher)
        response = client.post(
            COMPLETE_URL,
            json={"email": user.email, "otp": token, "newPassword": "abc"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Password must be at least 6 characters"

    def test_reusing_current_password(self, client, dispatcher, user):
        token = _verify(client, dispatcher)
        response = client.post(
            COMPLETE_URL,
            json={"email": user.email, "otp": token, "newPassword": "OldPass123"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "New password must be different from your recent passwords"

    def test_locked_account(self, client, dispatcher, make_user):
        make_user(
            reset_token="continuation-token",
            reset_token_expires_at=datetime.now(timezone.utc) + timedelta(minutes=5),
            reset_locked_until=datetime.now(timezone.utc) + timedelta(minutes=5),
        )
        response = client.post(
            COMPLETE_URL,
            json={"email": "user@example.com", "otp": "continuation-token", "newPassword": "BrandNew789"},
        )
        assert response.status_code == 429
        assert response.json()["locked"] is True
        assert dispatcher.password_changed == []


class StalledDispatcher:
    """Dispatcher whose broker hangs on every publish."""

    def __init__(self, delay):
        self.delay = delay
        self.calls = 0

    def send_reset_code(self, to_email, code, user_name=None):
        self.calls += 1
        time.sleep(self.delay)
        return False


class TestResetRequestTiming:
    """Test that a slow broker cannot reveal which accounts exist"""

    def test_stalled_publish_does_not_delay_known_email(self, db_session, user):
        stalled = StalledDispatcher(delay=2)
        answers = {}

        for email in ("ghost@example.com", user.email):
            background = BackgroundTasks()
            started = time.monotonic()
            response = request_password_reset(
                ResetRequestIn(email=email),
                background,
                throttled=None,
                db=db_session,
                dispatcher=stalled,
            )
            answers[email] = (time.monotonic() - started, response, background)

        ghost_elapsed, ghost_response, ghost_tasks = answers["ghost@example.com"]
        known_elapsed, known_response, known_tasks = answers[user.email]

        assert known_elapsed < 1
        assert stalled.calls == 0
        assert known_response.status_code == ghost_response.status_code == 200
        assert known_response.body == ghost_response.body
        assert len(known_tasks.tasks) == 1
        assert ghost_tasks.tasks == []

    def test_email_still_sent_after_response(self, client, dispatcher, user):
        """The client waits for background work, so the code has been dispatched"""
        client.post(REQUEST_URL, json={"email": user.email})
        assert len(dispatcher.reset_codes) == 1
