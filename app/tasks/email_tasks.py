"""
Celery tasks for email operations.

Handles asynchronous email sending with retry logic.
"""

import logging
from typing import Optional
from celery import shared_task
from app.services.email_service import email_service

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised inside a task so Celery retries the delivery."""


@shared_task(
    bind=True,
    name="send_password_reset_email_task",
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True
)
def send_password_reset_email_task(
    self,
    to_email: str,
    reset_code: str,
    user_name: Optional[str] = None
):
    """
    Celery task to send a password reset code asynchronously.

    Retries with exponential backoff; a code that is still undelivered when
    it expires is simply useless, so the retry window stays short.
    """
    logger.info(f"Sending password reset email to {to_email} (attempt {self.request.retries + 1})")

    success = email_service.send_password_reset_email(
        to_email=to_email,
        reset_code=reset_code,
        user_name=user_name
    )

    if not success:
        if self.request.retries >= self.max_retries:
            logger.error(f"All retry attempts exhausted for {to_email}")
        raise EmailDeliveryError(f"Failed to send password reset email to {to_email}")

    logger.info(f"Password reset email sent successfully to {to_email}")
    return {"status": "success", "email": to_email}


@shared_task(
    bind=True,
    name="send_password_changed_email_task",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True
)
def send_password_changed_email_task(
    self,
    to_email: str,
    user_name: Optional[str] = None
):
    """Celery task confirming a completed password reset."""
    success = email_service.send_password_changed_email(
        to_email=to_email,
        user_name=user_name
    )

    if not success:
        raise EmailDeliveryError(f"Failed to send password changed email to {to_email}")

    logger.info(f"Password changed email sent to {to_email}")
    return {"status": "success", "email": to_email}
