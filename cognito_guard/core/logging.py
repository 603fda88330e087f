"""
Structured logging for Cognito Guard.

Modules log through standard ``logging`` loggers and pass structured fields
with ``extra={...}``. configure_logging() installs a JSON formatter that keeps
those fields, so a rejection reason or a JWKS URL arrives in the log
aggregator as its own key.

Environment Variables:
    TESTING: Set to "true" to use plain text logs regardless of LOG_JSON
"""

import logging
import os
from typing import Any

from pythonjsonlogger import jsonlogger

from cognito_guard.core.config import Settings, settings

# Reserved log record attributes that should not be treated as extra fields
RESERVED_LOG_ATTRS = frozenset({
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
    "service",
})

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that includes extra fields and the service name.

    Example output:
        {"timestamp": "2025-01-15T10:30:00Z", "level": "WARNING",
         "logger": "cognito_guard.services.token_service",
         "message": "Token rejected", "service": "cognito-guard",
         "reason": "Wrong number of segments"}
    """

    def __init__(self, *args: Any, service_name: str = "cognito-guard", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs, timestamp=True)
        self.service_name = service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the JSON log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self.service_name

        # Add all extra fields that aren't reserved attributes
        for key, value in record.__dict__.items():
            if key not in RESERVED_LOG_ATTRS and not key.startswith("_"):
                if key not in log_record:
                    log_record[key] = value


def configure_logging(config: Settings = settings) -> logging.Handler:
    """
    Configure the ``cognito_guard`` logger.

    JSON output is used unless LOG_JSON is false or TESTING=true. The handler
    is attached to the package logger only, leaving the host application's
    root logger alone.

    Returns:
        The installed handler
    """
    is_testing = os.getenv("TESTING", "false").lower() == "true"

    handler = logging.StreamHandler()
    if config.LOG_JSON and not is_testing:
        handler.setFormatter(StructuredJsonFormatter(service_name=config.APP_NAME))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    package_logger = logging.getLogger("cognito_guard")
    package_logger.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    # Remove any existing handlers and add our configured one
    package_logger.handlers.clear()
    package_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return handler
