"""JSON log output for the command line."""

import json
import logging
import sys
from typing import Any, TextIO

# LogRecord attributes that are not user-supplied ``extra`` fields.
_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formatter that renders each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` as a JSON string.

        Values passed through ``extra=`` are included as top-level keys.

        Args:
            record: The log record to format.

        Returns:
            A JSON string representation of the log record.

        """
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and key not in log_record:
                log_record[key] = value
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def setup_logging(level: int = logging.WARNING, stream: TextIO | None = None) -> None:
    """Configure the root logger with a JSON formatter.

    Args:
        level: Root level. The CLI keeps diagnostics quiet by default.
        stream: Destination; defaults to stderr so command output stays clean.

    """
    root = logging.getLogger()
    # Avoid adding multiple handlers if setup is called multiple times
    if root.handlers:
        return
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(level)
