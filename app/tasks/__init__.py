"""
Celery tasks package.

Tasks are organized by domain:
- email_tasks: Password reset codes and password-changed confirmations
"""

from app.tasks import email_tasks

__all__ = ["email_tasks"]
