"""Tests for structured logging."""

import json
import logging
import sys

import pytest

from attribution_engine.core.config import LogFormat, LoggingConfig, Settings
from attribution_engine.logging import (
    JSONFormatter,
    LogContext,
    add_context,
    clear_context,
    configure_logging,
    get_context,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="attribution_engine.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Computed %d sequences",
        args=(3,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def reset_context():
    clear_context()
    yield
    clear_context()


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "attribution_engine.test"
        assert data["message"] == "Computed 3 sequences"
        assert "timestamp" in data
        assert "context" not in data

    def test_promoted_fields(self):
        record = make_record(config_id="cfg-1", attempt=2, channel_state="reconnecting")

        data = json.loads(JSONFormatter().format(record))

        assert data["config_id"] == "cfg-1"
        assert data["attempt"] == 2
        assert data["channel_state"] == "reconnecting"

    def test_includes_log_context(self):
        with LogContext(sequence_id="journey-1"):
            data = json.loads(JSONFormatter().format(make_record()))

        assert data["context"] == {"sequence_id": "journey-1"}
        assert get_context() == {}

    def test_exception_info(self):
        try:
            raise ValueError("bad weights")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad weights"


class TestLogContext:
    def test_add_and_clear(self):
        add_context(config_id="cfg-1")
        add_context(sequence_id="journey-1")

        assert get_context() == {"config_id": "cfg-1", "sequence_id": "journey-1"}

        clear_context()
        assert get_context() == {}

    def test_nested_contexts_restore(self):
        with LogContext(config_id="outer"):
            with LogContext(config_id="inner", sequence_id="s"):
                assert get_context() == {"config_id": "inner", "sequence_id": "s"}
            assert get_context() == {"config_id": "outer"}

    def test_missing_identifiers_are_not_recorded(self):
        add_context(config_id=None, attempt=2)

        with LogContext(config_id="cfg-1", sequence_id=None):
            assert get_context() == {"attempt": 2, "config_id": "cfg-1"}

    def test_inner_scope_without_config_keeps_outer_config(self):
        with LogContext(config_id="cfg-1"):
            with LogContext(sequence_id="journey-1"):
                assert get_context() == {
                    "config_id": "cfg-1",
                    "sequence_id": "journey-1",
                }
        assert get_context() == {}


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_format(self):
        configure_logging(Settings())

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.INFO

    def test_text_format_and_level(self):
        configure_logging(
            Settings(), LoggingConfig(level="warning", format=LogFormat.TEXT)
        )

        root = logging.getLogger()
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.WARNING

    def test_debug_overrides_level(self):
        configure_logging(Settings(debug=True))
        assert logging.getLogger().level == logging.DEBUG
