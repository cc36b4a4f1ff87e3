"""Custom log formatters for structured logging."""

import json
import logging
import traceback
from datetime import datetime, timezone

from attribution_engine.logging.context import get_context

# Record attributes promoted to top-level JSON fields when present
PROMOTED_FIELDS = ("config_id", "sequence_id", "channel_state", "attempt")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        context = get_context()
        if context:
            log_data["context"] = context

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        for field in PROMOTED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)
