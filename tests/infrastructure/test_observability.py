"""Structured Logging — JSON formatter surfaces sync context fields."""

import json
import logging
import sys

from territory_sync.infrastructure.observability import (
    ContextTextFormatter, JSONFormatter, setup_logging,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "territory_sync.test", logging.WARNING, __file__, 1,
        "Push channel %s", ("reconnecting",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context_fields():
    line = JSONFormatter().format(_record(
        room_id="alpha", connection_state="reconnecting", attempt=2,
    ))
    log = json.loads(line)
    assert log["message"] == "Push channel reconnecting"
    assert log["level"] == "WARNING"
    assert log["room_id"] == "alpha"
    assert log["attempt"] == 2
    assert "actor_id" not in log


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()
    log = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in log["exception"]


def test_text_formatter_appends_context_pairs():
    line = ContextTextFormatter().format(_record(room_id="alpha", attempt=2))
    assert "Push channel reconnecting" in line
    assert line.endswith("room_id=alpha attempt=2")


def test_setup_logging_replaces_its_own_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging("DEBUG", "text")
        setup_logging("WARNING", "json")
        ours = [h for h in root.handlers if h.get_name() == "territory_sync"]
        assert len(ours) == 1
        assert isinstance(ours[0].formatter, JSONFormatter)
        assert root.level == logging.WARNING
        assert logging.getLogger("websockets").level == logging.WARNING
    finally:
        for handler in [h for h in root.handlers if h not in before]:
            root.removeHandler(handler)
