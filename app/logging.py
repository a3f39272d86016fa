from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.core.config import Settings, get_settings
from app.core.context import get_correlation_id

# Only these ``extra`` keys reach the output; anything else passed to a logger
# (tokens, password hashes) is dropped.
_KNOWN_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "user_id",
        "role",
        "resource",
        "resource_id",
        "action",
        "activity_type",
        "outcome",
        "attempts",
        "deleted_count",
        "teams",
        "users",
        "customers",
        "leads",
        "error",
    }
)
_MAX_ERROR_LENGTH = 500
_NOISY_LOGGERS = ("uvicorn.access",)


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


_default_record_factory = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    # Stamp at creation so handlers other than ours (pytest caplog) see the id too.
    record = _default_record_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = {key: value for key, value in vars(record).items() if key in _KNOWN_FIELDS}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "fields": fields,
            },
            default=str,
        )


def configure_logging(settings: Settings | None = None) -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_crm_configured", False):
        return

    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger.handlers.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    for name in _NOISY_LOGGERS:
        # Request lines already come from the request logging middleware.
        logging.getLogger(name).setLevel(logging.WARNING)
    root_logger._crm_configured = True  # type: ignore[attr-defined]
