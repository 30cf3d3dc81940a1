"""
Log Formatters for console and JSON output
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

# Internal LogRecord attributes that never belong in the "extra" block
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName",
    "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName", "execution_id",
}


class SimpleConsoleFormatter(logging.Formatter):
    """
    Single-line text formatter
    格式示例: INFO:     2025-08-11 14:03:25 - workflow_engine.core.engine - [engine.py:123] [Exec:exec_ab12] - Node completed
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        file_location = f"{record.filename}:{record.lineno}"

        # Engine adds it via extra={"execution_id": ...}
        execution_id = ""
        if getattr(record, "execution_id", None):
            execution_id = f" [Exec:{record.execution_id}]"

        formatted = (
            f"{record.levelname}:     {timestamp} - {record.name} - "
            f"[{file_location}]{execution_id} - {record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter for log aggregation queries"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "file": f"{record.filename}:{record.lineno}",
            "function": record.funcName,
        }

        if getattr(record, "execution_id", None):
            log_obj["execution_id"] = record.execution_id

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if extra_fields:
            log_obj["extra"] = extra_fields

        return json.dumps(log_obj, ensure_ascii=False, default=str)
