"""
Password recovery flow.

Three operations drive the per-account recovery state machine:

    IDLE --request_reset--> OTP_ISSUED --verify_otp--> VERIFIED --complete_reset--> IDLE

with LOCKED reachable from IDLE (too many code requests) and OTP_ISSUED
(too many wrong codes). A lockout ends by itself once its deadline passes.

Each operation returns a RecoveryOutcome instead of raising for expected
conditions (lockout, expiry, mismatch). Database errors propagate to the
endpoint, which rolls back and answers with a generic 500.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.otp import generate_otp
from app.core.recovery import (
    OtpPending,
    OutcomeKind,
    RecoveryOutcome,
    RecoveryState,
    TokenPending,
    utcnow,
)
from app.core.security import (
    generate_reset_token,
    get_password_hash,
    secrets_match,
    validate_password_strength,
    verify_password,
)
from app.models.user import User
from app.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Identical for known and unknown emails
REQUEST_ACCEPTED_MESSAGE = "If an account exists with this email, a password reset code has been sent."


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def find_account(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def _request_accepted() -> RecoveryOutcome:
    return RecoveryOutcome(kind=OutcomeKind.SUCCESS, message=REQUEST_ACCEPTED_MESSAGE)


def _save(db: Session, user: User, state: RecoveryState) -> None:
    state.apply_to(user)
    db.commit()


def _send_reset_code(dispatcher: NotificationDispatcher, email: str, code: str, name: Optional[str]) -> None:
    if not dispatcher.send_reset_code(email, code, name):
        logger.error(f"Failed to dispatch password reset email to {email}")


def _send_password_changed(dispatcher: NotificationDispatcher, email: str, name: Optional[str]) -> None:
    if not dispatcher.send_password_changed(email, name):
        logger.error(f"Failed to dispatch password changed email to {email}")


def _schedule(background_tasks: Optional[BackgroundTasks], func, *args) -> None:
    """Run func after the response is sent, or right away without a request."""
    if background_tasks is None:
        func(*args)
    else:
        background_tasks.add_task(func, *args)


def request_reset(
    db: Session,
    email: Optional[str],
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None,
    background_tasks: Optional[BackgroundTasks] = None
) -> RecoveryOutcome:
    """
    Issue a new reset code for an account and email it.

    Unknown emails get exactly the same response as known ones. The code is
    never part of the response. With background_tasks the email is queued
    after the response goes out, so a slow broker does not make known
    accounts answer later than unknown ones.
    """
    now = now or utcnow()
    normalized = normalize_email(email)

    if not normalized:
        return RecoveryOutcome(kind=OutcomeKind.VALIDATION, message="Email is required")
    if not EMAIL_PATTERN.match(normalized):
        return RecoveryOutcome(kind=OutcomeKind.VALIDATION, message="Invalid email format")

    user = find_account(db, normalized)
    if user is None:
        logger.info(f"Password reset requested for non-existent email: {normalized}")
        return _request_accepted()

    state = RecoveryState.from_user(user)

    if state.is_locked(now):
        minutes = state.lock_minutes_remaining(now)
        return RecoveryOutcome(
            kind=OutcomeKind.RATE_LIMITED,
            message=f"Too many reset attempts. Please try again in {minutes} minutes.",
        )

    if state.request_count >= settings.MAX_RESET_REQUESTS:
        state.lock(now, settings.RESET_LOCKOUT_MINUTES)
        _save(db, user, state)
        logger.warning(f"Password reset locked for {user.email}: too many code requests")
        return RecoveryOutcome(
            kind=OutcomeKind.RATE_LIMITED,
            message=f"Too many reset attempts. Please try again in {settings.RESET_LOCKOUT_MINUTES} minutes.",
        )

    code = generate_otp()
    state.issue_otp(code, now, settings.OTP_EXPIRE_MINUTES)
    _save(db, user, state)
    logger.info(f"Password reset code issued for {user.email} (request {state.request_count})")

    _schedule(background_tasks, _send_reset_code, dispatcher, user.email, code, user.full_name)

    return _request_accepted()


def verify_otp(
    db: Session,
    email: Optional[str],
    otp: Optional[str],
    now: Optional[datetime] = None
) -> RecoveryOutcome:
    """
    Check a submitted reset code.

    On success the code is replaced by a continuation token, which is the
    only recovery secret ever returned to a client.
    """
    now = now or utcnow()
    normalized = normalize_email(email)
    code = (otp or "").strip()

    if not normalized or not code:
        return RecoveryOutcome(kind=OutcomeKind.VALIDATION, message="Email and OTP are required")

    user = find_account(db, normalized)
    if user is None:
        return RecoveryOutcome(kind=OutcomeKind.NOT_FOUND, message="Invalid verification code")

    state = RecoveryState.from_user(user)

    if state.is_locked(now):
        minutes = state.lock_minutes_remaining(now)
        return RecoveryOutcome(
            kind=OutcomeKind.RATE_LIMITED,
            message=f"Too many attempts. Please try again in {minutes} minutes.",
            locked=True,
        )

    pending = state.pending
    if not isinstance(pending, OtpPending):
        return RecoveryOutcome(
            kind=OutcomeKind.VALIDATION,
            message="No verification code found. Please request a new one.",
        )

    # Expiry wins over comparison: a matching but stale code is still expired
    if pending.is_expired(now):
        state.expire_pending()
        _save(db, user, state)
        return RecoveryOutcome(
            kind=OutcomeKind.EXPIRED,
            message="Verification code expired. Please request a new one.",
        )

    if not secrets_match(pending.code, code):
        attempts = state.record_failure()

        if attempts >= settings.MAX_VERIFY_ATTEMPTS:
            state.lock(now, settings.RESET_LOCKOUT_MINUTES)
            _save(db, user, state)
            logger.warning(f"Password reset locked for {user.email}: too many wrong codes")
            return RecoveryOutcome(
                kind=OutcomeKind.RATE_LIMITED,
                message="Too many attempts. Please try again later.",
                locked=True,
            )

        _save(db, user, state)
        remaining = settings.MAX_VERIFY_ATTEMPTS - attempts
        plural = "s" if remaining != 1 else ""
        return RecoveryOutcome(
            kind=OutcomeKind.MISMATCH,
            message=f"Invalid verification code. {remaining} attempt{plural} remaining.",
            remaining_attempts=remaining,
        )

    reset_token = generate_reset_token()
    state.mark_verified(reset_token, now, settings.RESET_TOKEN_EXPIRE_MINUTES)
    _save(db, user, state)
    logger.info(f"Password reset code verified for {user.email}")

    return RecoveryOutcome(
        kind=OutcomeKind.SUCCESS,
        message="Verification successful. You can now reset your password.",
        reset_token=reset_token,
    )


def is_recent_password(user: User, password: str) -> bool:
    """True if password matches the current hash or one kept in the history."""
    hashes = [user.hashed_password] + list(user.password_history or [])
    return any(verify_password(password, hashed) for hashed in hashes if hashed)


def complete_reset(
    db: Session,
    email: Optional[str],
    token: Optional[str],
    new_password: Optional[str],
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None,
    background_tasks: Optional[BackgroundTasks] = None
) -> RecoveryOutcome:
    """
    Replace the account password using a continuation token from verify_otp.

    A wrong token does not count against the attempt limit: tokens carry
    256 bits of entropy, so guessing is not a practical attack.
    """
    now = now or utcnow()
    normalized = normalize_email(email)
    submitted = (token or "").strip()

    if not normalized or not submitted or not new_password:
        return RecoveryOutcome(
            kind=OutcomeKind.VALIDATION,
            message="Email, reset token, and new password are required",
        )

    violations = validate_password_strength(new_password)
    if violations:
        return RecoveryOutcome(kind=OutcomeKind.VALIDATION, message=violations[0])

    user = find_account(db, normalized)
    if user is None:
        return RecoveryOutcome(kind=OutcomeKind.NOT_FOUND, message="Invalid or expired reset code")

    state = RecoveryState.from_user(user)

    if state.is_locked(now):
        minutes = state.lock_minutes_remaining(now)
        return RecoveryOutcome(
            kind=OutcomeKind.RATE_LIMITED,
            message=f"Too many reset attempts. Please try again in {minutes} minutes.",
            locked=True,
        )

    pending = state.pending
    if not isinstance(pending, TokenPending):
        return RecoveryOutcome(
            kind=OutcomeKind.VALIDATION,
            message="No reset request found. Please request a new reset code.",
        )

    if pending.is_expired(now):
        return RecoveryOutcome(
            kind=OutcomeKind.EXPIRED,
            message="Reset code has expired. Please request a new one.",
        )

    if not secrets_match(pending.token, submitted):
        return RecoveryOutcome(kind=OutcomeKind.MISMATCH, message="Invalid reset code")

    if is_recent_password(user, new_password):
        return RecoveryOutcome(
            kind=OutcomeKind.VALIDATION,
            message="New password must be different from your recent passwords",
        )

    new_hash = get_password_hash(new_password)
    history = list(user.password_history or []) + [new_hash]

    user.hashed_password = new_hash
    user.password_history = history[-settings.PASSWORD_HISTORY_SIZE:]
    user.last_password_reset_at = now
    state.clear()
    _save(db, user, state)
    logger.info(f"Password successfully reset for user: {user.email}")

    _schedule(background_tasks, _send_password_changed, dispatcher, user.email, user.full_name)

    return RecoveryOutcome(
        kind=OutcomeKind.SUCCESS,
        message="Password has been reset successfully. You can now login with your new password.",
    )
