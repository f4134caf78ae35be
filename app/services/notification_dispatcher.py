"""
Out-of-band delivery of password recovery notifications.

The recovery flow calls the dispatcher fire-and-forget: every method logs
and swallows failures and only reports them through its bool return value,
so delivery problems can never change an HTTP response.
"""

import logging
from typing import Optional

from app.core.celery_app import celery_app  # noqa: F401  (binds shared tasks to our app)
from app.core.celery_utils import queue_task_safely
from app.tasks.email_tasks import send_password_changed_email_task, send_password_reset_email_task

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Queues recovery emails on the Celery worker."""

    def send_reset_code(self, to_email: str, code: str, user_name: Optional[str] = None) -> bool:
        try:
            queued = queue_task_safely(
                send_password_reset_email_task,
                to_email=to_email,
                reset_code=code,
                user_name=user_name
            )
        except Exception as e:
            logger.error(f"Error dispatching password reset email to {to_email}: {e}", exc_info=True)
            return False

        if not queued:
            logger.error(f"Password reset email for {to_email} was not queued")
        return queued

    def send_password_changed(self, to_email: str, user_name: Optional[str] = None) -> bool:
        try:
            queued = queue_task_safely(
                send_password_changed_email_task,
                to_email=to_email,
                user_name=user_name
            )
        except Exception as e:
            logger.error(f"Error dispatching password changed email to {to_email}: {e}", exc_info=True)
            return False

        if not queued:
            logger.error(f"Password changed email for {to_email} was not queued")
        return queued


# Singleton instance
notification_dispatcher = NotificationDispatcher()


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; tests override it with a recording fake."""
    return notification_dispatcher
