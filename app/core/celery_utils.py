"""
Queueing Celery tasks from request handlers.

Publishing happens on a small thread pool with a fresh kombu connection per
call and a hard timeout, so a slow or missing broker delays the caller by at
most QUEUE_TIMEOUT_SECONDS and never fails it. Recovery emails are queued
from background tasks after the response has been sent.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from celery import Task
from kombu import Connection

from app.core.config import settings

logger = logging.getLogger(__name__)

QUEUE_TIMEOUT_SECONDS = 5

PUBLISH_RETRY_POLICY = {
    'max_retries': 3,
    'interval_start': 0,
    'interval_step': 0.2,
    'interval_max': 0.2,
}

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="celery_queue")


def _publish(task: Task, args: tuple, kwargs: dict) -> str:
    """Send one task message and return its id. Runs on the executor."""
    with Connection(settings.REDIS_URL) as conn:
        result = task.apply_async(
            args=args,
            kwargs=kwargs,
            connection=conn,
            retry=True,
            retry_policy=PUBLISH_RETRY_POLICY,
        )
    return result.id


def queue_task_safely(task: Task, *args, **kwargs) -> bool:
    """
    Queue a Celery task without letting broker trouble reach the caller.

    Returns:
        bool: True if the message was published, False on error or timeout

    Example:
        queue_task_safely(
            send_password_reset_email_task,
            to_email='user@example.com',
            reset_code='123456',
        )
    """
    future = _executor.submit(_publish, task, args, kwargs)
    try:
        task_id = future.result(timeout=QUEUE_TIMEOUT_SECONDS)
    except FutureTimeoutError:
        logger.error(f"Timed out queueing task {task.name} after {QUEUE_TIMEOUT_SECONDS}s")
        return False
    except Exception as e:
        logger.error(f"Failed to queue task {task.name}: {e}")
        return False

    logger.info(f"Task {task.name} queued: {task_id}")
    return True
