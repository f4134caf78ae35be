"""
Structured logging configuration for the application.

JSON logs in production, plain text in development. A handler filter masks
recovery secrets passed through `extra=` so a careless log call cannot leak
an OTP or a continuation token.
"""

import logging
import sys
from typing import Any, Dict
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger

MASKED = "***"

# LogRecord attributes that may carry secrets when supplied via extra=
SECRET_FIELDS = frozenset({
    "otp",
    "reset_code",
    "reset_token",
    "token",
    "password",
    "new_password",
})


class SecretMaskingFilter(logging.Filter):
    """Replace secret-named extra fields with a placeholder."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in SECRET_FIELDS:
            if getattr(record, name, None):
                setattr(record, name, MASKED)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName

        if record.levelno >= logging.WARNING:
            log_record['line'] = record.lineno
            log_record['pathname'] = record.pathname


def build_handler(json_logs: bool) -> logging.Handler:
    """Stdout handler with the masking filter and the chosen formatter."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(SecretMaskingFilter())

    if json_logs:
        handler.setFormatter(CustomJsonFormatter(
            '%(timestamp)s %(level)s %(logger)s %(module)s %(funcName)s %(message)s'
        ))
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
    return handler


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure root logging.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON output for production, human readable otherwise
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.addHandler(build_handler(json_logs))

    # Quieter third-party loggers
    for name in ("urllib3", "boto3", "botocore", "kombu"):
        logging.getLogger(name).setLevel(logging.WARNING)
    # passlib logs a harmless bcrypt version lookup failure at WARNING
    logging.getLogger("passlib").setLevel(logging.ERROR)
