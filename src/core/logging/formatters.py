"""Log formatters: one JSON object per line for files, colored lines for terminals."""

import json
import logging
import re
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.logging.message_context import get_message_context
from core.utils.json_serializers import json_serializer

_SECRET = re.compile(r"(password|secret|token|sasl_plain_password)=[^&\s,]*", re.IGNORECASE)


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _SECRET.sub(r"\1=[REDACTED]", value)
    return value


def _as(kind: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def coerce(value: Any) -> Any:
        try:
            return kind(value)
        except (TypeError, ValueError):
            return None

    return coerce


class JSONFormatter(logging.Formatter):
    """
    Structured formatter for log files and log shippers.

    Worker context (stage, worker_id, domain) and the current message's
    topic/partition/offset are added to every line. Only the extras listed in
    FIELDS are emitted; numeric ones are coerced so aggregations never see
    strings, and fields that may echo connection strings are redacted.
    """

    # extra name -> coercion (None keeps the value as is)
    FIELDS: dict[str, Callable[[Any], Any] | None] = {
        # event
        "trace_id": None,
        "event_id": None,
        "event_type": None,
        "aggregate_id": None,
        "individual_id": None,
        "amount": None,
        "currency": None,
        # failure handling
        "error_category": None,
        "error_message": None,
        "error_type": None,
        "error": None,
        "callback_error": None,
        "outcome": None,
        "attempt": _as(int),
        "max_attempts": _as(int),
        "delay_ms": _as(int),
        "duration_ms": _as(float),
        # transport
        "topic": None,
        "partition": _as(int),
        "offset": _as(int),
        "seek_offset": _as(int),
        "group_id": None,
        "dead_letter_topic": None,
        "dead_letter_partition": _as(int),
        "dead_letter_offset": _as(int),
        "original_topic": None,
        "original_partition": _as(int),
        "original_offset": _as(int),
        # lifecycle
        "worker_name": None,
        "worker_count": _as(int),
        "bootstrap_servers": None,
        "port": _as(int),
    }

    REDACTED_FIELDS = frozenset({"bootstrap_servers", "error_message", "error"})

    # Source file:line is noise on INFO/WARNING lines
    LOCATION_LEVELS = frozenset({logging.DEBUG, logging.ERROR, logging.CRITICAL})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in get_log_context().items() if v})
        entry.update(get_message_context())

        if record.levelno in self.LOCATION_LEVELS:
            entry["file"] = f"{record.filename}:{record.lineno}"

        for name, coerce in self.FIELDS.items():
            value = getattr(record, name, None)
            if value is None:
                continue
            if coerce is not None:
                value = coerce(value)
            entry[name] = _redact(value) if name in self.REDACTED_FIELDS else value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Single-line console output: ``time - LEVEL - [domain] - [stage] - [topic:p@o] msg``.

    Levels are colored only when stdout is a terminal.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _level(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno) if self._use_colors else None
        return f"{color}{record.levelname}{self.RESET}" if color else record.levelname

    def format(self, record: logging.LogRecord) -> str:
        log_context = get_log_context()
        parts = [datetime.now().strftime("%Y-%m-%d %H:%M:%S"), self._level(record)]
        parts.extend(f"[{log_context[k]}]" for k in ("domain", "stage") if log_context[k])

        tags = []
        message_context = get_message_context()
        if message_context:
            tags.append(
                f"[{message_context['message_topic']}:"
                f"{message_context['message_partition']}@{message_context['message_offset']}]"
            )
        attempt = getattr(record, "attempt", None)
        if attempt:
            tags.append(f"[attempt:{attempt}]")

        parts.append(" ".join([*tags, record.getMessage()]))
        line = " - ".join(parts)

        if record.exc_info and record.levelno >= logging.ERROR:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
