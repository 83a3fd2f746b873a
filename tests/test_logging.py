"""Tests for logging setup and run-aware formatters."""

import json
import logging
import sys

import pytest

from workflow_engine.config import AppConfig, LogLevel
from workflow_engine.core.logging import (
    NodeRetryLogger,
    RunContextFormatter,
    StructuredFormatter,
    setup_logging,
)


def make_record(message="Node A completed", **fields):
    record = logging.LogRecord("workflow_engine.test", logging.INFO, __file__, 10, message, None, None)
    if fields:
        record.extra_fields = fields
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestStructuredFormatter:

    def test_run_fields_are_top_level(self):
        record = make_record(
            event_type="node_complete", execution_id="exec_1", workflow_id="wf",
            node_id="A", node_type="task"
        )

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Node A completed"
        assert entry["execution_id"] == "exec_1"
        assert entry["workflow_id"] == "wf"
        assert entry["node_id"] == "A"
        assert entry["event_type"] == "node_complete"
        assert entry["context"] == {"node_type": "task"}

    def test_unset_fields_are_omitted(self):
        entry = json.loads(StructuredFormatter().format(make_record(execution_id="exec_1", node_id=None)))

        assert "node_id" not in entry
        assert "context" not in entry

    def test_exception_is_serialized(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["exception"]["type"] == "RuntimeError"
        assert "boom" in entry["exception"]["traceback"]


class TestRunContextFormatter:

    def test_run_fields_appended(self):
        formatter = RunContextFormatter(fmt="%(message)s")

        text = formatter.format(make_record(execution_id="exec_1", node_id="A", attempt=2))

        assert text == "Node A completed [execution_id=exec_1 node_id=A]"

    def test_plain_record_unchanged(self):
        assert RunContextFormatter(fmt="%(message)s").format(make_record()) == "Node A completed"


class TestSetupLogging:

    def test_file_handler_uses_structured_output(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "engine.log"
        config = AppConfig(log_file=str(log_file), structured_logging=True, log_level=LogLevel.DEBUG)

        root = setup_logging(config)
        NodeRetryLogger("test").attempt_failed("A", ValueError("bad"), 1, 3, 0.5, execution_id="exec_9")
        for handler in root.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert root.level == logging.DEBUG
        assert entry["event_type"] == "node_retry"
        assert entry["execution_id"] == "exec_9"
        assert entry["node_id"] == "A"
        assert entry["context"]["attempt"] == 1

    def test_quiet_loggers_respect_higher_level(self, restore_root_logger):
        setup_logging(AppConfig(log_level=LogLevel.ERROR))

        assert logging.getLogger("httpx").level == logging.ERROR
        assert logging.getLogger("workflow_engine").level == logging.ERROR
