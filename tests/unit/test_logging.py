"""Unit tests for structured logging."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from stageflow.logging import JsonFormatter, configure_logging, record_context


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="stageflow.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Stage %s completed",
        args=("s1",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_renders_message_and_extra() -> None:
    payload = json.loads(JsonFormatter().format(_record(session_id="abc", attempts=2)))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "stageflow.test"
    assert payload["message"] == "Stage s1 completed"
    assert payload["extra"] == {"session_id": "abc", "attempts": 2}
    assert "timestamp" in payload


def test_json_formatter_omits_empty_extra() -> None:
    payload = json.loads(JsonFormatter().format(_record()))

    assert "extra" not in payload


def test_json_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exception"]


def test_json_formatter_stringifies_unserialisable_extra() -> None:
    payload = json.loads(JsonFormatter().format(_record(marker=object())))

    assert payload["extra"]["marker"].startswith("<object object")


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_replaces_root_handlers(restore_root_logger) -> None:
    root = restore_root_logger

    configure_logging("warning")

    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert root.level == logging.WARNING


def test_configure_logging_plain_text(restore_root_logger) -> None:
    root = restore_root_logger

    configure_logging("INFO", json_output=False)

    assert not isinstance(root.handlers[0].formatter, JsonFormatter)


def test_record_context_keeps_only_caller_extras() -> None:
    record = _record(stage_id="s1", _private=1)

    assert record_context(record) == {"stage_id": "s1"}


def test_configure_logging_writes_json_lines_to_given_stream(restore_root_logger) -> None:
    out = io.StringIO()
    configure_logging("INFO", stream=out)

    logging.getLogger("stageflow.test").info("Stage started", extra={"stage_id": "s1"})

    line = json.loads(out.getvalue().strip())
    assert line["message"] == "Stage started"
    assert line["extra"] == {"stage_id": "s1"}
