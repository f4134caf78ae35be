"""
Password recovery endpoints.

- POST /reset/request:  email a one-time code (same answer whether or not the account exists)
- POST /reset/verify:   exchange the code for a short-lived continuation token
- POST /reset/complete: set a new password with the continuation token

Expected failures come back from the recovery flow as explicit outcomes and
are rendered here. Anything unexpected (database, broker) is rolled back,
logged, and answered with a generic 500 that carries no internal detail.

All three share a per-IP throttle; a tripped limit is answered with 429 in the
endpoint's own body shape. Emails are sent from background tasks so a known
and an unknown address take the same time to answer.
"""

import logging
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.rate_limiter import check_reset_ip_limit
from app.core.recovery import OutcomeKind, RecoveryOutcome
from app.schemas.recovery import (
    ResetCompleteIn,
    ResetMessageResponse,
    ResetRequestIn,
    ResetVerifyIn,
    ResetVerifyResponse,
)
from app.services import recovery_service
from app.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher

router = APIRouter(prefix="/reset", tags=["Password Recovery"])
logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again later."


def _message_response(outcome: RecoveryOutcome) -> JSONResponse:
    content = {"success": outcome.success, "message": outcome.message}
    if outcome.locked:
        content["locked"] = True
    return JSONResponse(status_code=outcome.status_code, content=content)


def _verify_response(outcome: RecoveryOutcome) -> JSONResponse:
    if outcome.success:
        content = {
            "success": True,
            "message": outcome.message,
            "resetToken": outcome.reset_token,
        }
    else:
        content = {"success": False, "error": outcome.message}
        if outcome.remaining_attempts is not None:
            content["remainingAttempts"] = outcome.remaining_attempts
        if outcome.locked:
            content["locked"] = True
    return JSONResponse(status_code=outcome.status_code, content=content)


def ip_throttle(request: Request) -> Optional[RecoveryOutcome]:
    """
    Per-IP limit shared by the reset endpoints.

    Returns a RATE_LIMITED outcome instead of raising so each endpoint answers
    429 in its own body shape.
    """
    try:
        check_reset_ip_limit(request)
    except HTTPException as e:
        if e.status_code != status.HTTP_429_TOO_MANY_REQUESTS:
            raise
        return RecoveryOutcome(kind=OutcomeKind.RATE_LIMITED, message=e.detail)
    return None


def _server_error(key: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, key: GENERIC_ERROR_MESSAGE},
    )


@router.post("/request", response_model=ResetMessageResponse)
def request_password_reset(
    payload: ResetRequestIn,
    background_tasks: BackgroundTasks,
    throttled: Optional[RecoveryOutcome] = Depends(ip_throttle),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Send a password reset code.

    Always returns the same success message for well-formed emails, whether
    or not an account exists, unless the account is locked out (429). The
    email is queued after the response is sent.
    """
    if throttled:
        return _message_response(throttled)

    try:
        outcome = recovery_service.request_reset(
            db, payload.email, dispatcher, background_tasks=background_tasks
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Forgot password error: {e}", exc_info=True)
        return _server_error("message")

    return _message_response(outcome)


@router.post("/verify", response_model=ResetVerifyResponse)
def verify_reset_code(
    payload: ResetVerifyIn,
    throttled: Optional[RecoveryOutcome] = Depends(ip_throttle),
    db: Session = Depends(get_db)
):
    """
    Verify a password reset code.

    On success returns `resetToken`, valid for a few minutes, which must be
    sent as `otp` to /reset/complete. Three wrong codes lock recovery for
    the account (429, `locked: true`).
    """
    if throttled:
        return _verify_response(throttled)

    try:
        outcome = recovery_service.verify_otp(db, payload.email, payload.otp)
    except Exception as e:
        db.rollback()
        logger.error(f"Verify OTP error: {e}", exc_info=True)
        return _server_error("error")

    return _verify_response(outcome)


@router.post("/complete", response_model=ResetMessageResponse)
def complete_password_reset(
    payload: ResetCompleteIn,
    background_tasks: BackgroundTasks,
    throttled: Optional[RecoveryOutcome] = Depends(ip_throttle),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Set a new password.

    Body: `{email, otp, newPassword}` where `otp` is the continuation token
    returned by /reset/verify.
    """
    if throttled:
        return _message_response(throttled)

    try:
        outcome = recovery_service.complete_reset(
            db, payload.email, payload.otp, payload.new_password, dispatcher,
            background_tasks=background_tasks
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Reset password error: {e}", exc_info=True)
        return _server_error("message")

    return _message_response(outcome)
