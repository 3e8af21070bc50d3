"""Log output for the engine and the CLI.

Every stageflow module logs through `logging.getLogger(__name__)` and attaches
run context (session, stage, attempt) with `extra={...}`. `configure_logging`
decides how those records leave the process: one JSON object per line for
machines, or a short human-readable line for a terminal.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

# Attributes every LogRecord carries; anything else on a record came from `extra`.
_STANDARD_RECORD_FIELDS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PLAIN_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Return the `extra={...}` values attached to a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """Format records as single-line JSON with the caller's context under `extra`."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = record_context(record)
        if context:
            entry["extra"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Session ids, enums and timestamps in context fall back to str().
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: str, json_output: bool = True, stream: TextIO | None = None) -> None:
    """Send all log records to one stream handler on the root logger.

    Calling it again replaces the handler, so the level or format can be
    switched at runtime without duplicating output.

    Args:
        level: Level name, case-insensitive.
        json_output: JSON lines when true, `PLAIN_FORMAT` otherwise.
        stream: Destination; stdout when omitted.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATE_FORMAT))

    root.addHandler(handler)
    root.setLevel(level.upper())
