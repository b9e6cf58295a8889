"""
Centralized Logging

Architectural Intent:
- Human-readable or JSON-lines diagnostics on stderr for the whole fleet run
- Diagnostics go through logging; user-facing progress goes to the console
- Records about one forum carry ``host`` and ``step`` context via ``extra=``
  so interleaved output from parallel upgrades can be told apart
- Supports configurable log levels via CLI flags (--verbose, --debug)
"""

import json
import logging
import sys
from datetime import datetime, UTC

# Attributes callers attach with ``extra=`` that formatters surface.
CONTEXT_FIELDS = ("host", "step")

HUMAN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def record_context(record: logging.LogRecord) -> dict[str, str]:
    """Return the host/step context attached to a record, if any."""
    context = {}
    for field in CONTEXT_FIELDS:
        value = getattr(record, field, None)
        if value is not None:
            context[field] = str(value)
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with host/step context as top-level fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(record_context(record))
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """Plain text lines ending in ``[host=... step=...]`` when context is set."""

    def __init__(self) -> None:
        super().__init__(HUMAN_FORMAT)

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = record_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
) -> None:
    """Point the ``forumfleet`` logger at stderr.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.)
        json_format: Emit JSON lines instead of human-readable text.
    """
    root = logging.getLogger("forumfleet")
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    root.addHandler(handler)


def level_from_name(name: str, default: int = logging.WARNING) -> int:
    """Map a configured level name such as "info" to a logging level."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default
