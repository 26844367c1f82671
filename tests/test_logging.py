"""Tests for logging output, turn context propagation and operation lifecycle."""
import json
import logging
import sys
import time

import pytest

from docent.observability import (
    ContextFormatter,
    OperationContext,
    OperationLogger,
    StructuredFormatter,
    generate_turn_id,
    get_conversation_id,
    get_logger,
    get_turn_id,
    log_exception,
    preview,
    set_conversation_id,
    set_turn_id,
    setup_logging,
    setup_logging_from_settings,
)


def _record(msg="Test message", args=()):
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None
    )


class TestLoggingSetup:
    """Root logger configuration."""

    def test_console_handler(self):
        """Console handler is installed on the root logger."""
        setup_logging(level="INFO", json_format=False, log_to_console=True)
        logger = get_logger("docent.tests.console")

        assert logger is not None
        assert logger.name == "docent.tests.console"

    def test_level_filters_records(self):
        """Records below the configured level are dropped."""
        setup_logging(level="WARNING", json_format=False)
        logger = get_logger("docent.tests.levels")

        assert not logger.isEnabledFor(logging.INFO)
        assert logger.isEnabledFor(logging.WARNING)
        assert logger.isEnabledFor(logging.ERROR)

    def test_file_logging(self, tmp_path):
        """Should write to a rotating log file when requested."""
        log_file = tmp_path / "logs" / "docent.log"
        setup_logging(level="INFO", json_format=True, log_to_console=False,
                      log_to_file=True, log_file_path=str(log_file))
        get_logger("test_file").info("written to disk")

        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "written to disk" in log_file.read_text()
        setup_logging(level="INFO", json_format=False)

    def test_configured_from_settings(self, settings):
        """LOG_LEVEL and LOG_JSON drive the root logger."""
        setup_logging_from_settings(settings.model_copy(update={"LOG_LEVEL": "ERROR", "LOG_JSON": True}))

        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("openai").level == logging.WARNING
        setup_logging(level="INFO", json_format=False)


class TestTurnIds:
    """Turn and conversation id variables."""

    def test_turn_id_set_and_get(self):
        """Should set and retrieve turn ID."""
        set_turn_id("turn-123")
        assert get_turn_id() == "turn-123"
        set_turn_id(None)

    def test_conversation_id_set_and_get(self):
        """Should set and retrieve conversation ID."""
        set_conversation_id("conv-456")
        assert get_conversation_id() == "conv-456"
        set_conversation_id(None)

    def test_generate_turn_id_format(self):
        """Generated turn ID should have expected format."""
        turn_id = generate_turn_id()
        assert turn_id.startswith("turn-")
        assert len(turn_id) == 17  # "turn-" + 12 hex chars


class TestBoundContext:
    """Binding ids for the span of a block."""

    def test_context_sets_ids(self):
        """OperationContext should set and then reset both IDs."""
        set_turn_id(None)
        set_conversation_id(None)

        with OperationContext(turn_id="turn-ctx", conversation_id="conv-ctx"):
            assert get_turn_id() == "turn-ctx"
            assert get_conversation_id() == "conv-ctx"

        assert get_turn_id() is None
        assert get_conversation_id() is None

    def test_context_auto_generates_turn(self):
        """OperationContext can auto-generate a turn ID."""
        set_turn_id(None)

        with OperationContext(auto_generate_turn=True):
            assert get_turn_id() is not None
            assert get_turn_id().startswith("turn-")

        assert get_turn_id() is None

    def test_inner_block_restores_outer_ids(self):
        """Inner contexts inherit and then restore outer values."""
        with OperationContext(turn_id="outer-turn"):
            with OperationContext(conversation_id="inner-conv"):
                assert get_turn_id() == "outer-turn"
                assert get_conversation_id() == "inner-conv"

            assert get_conversation_id() is None


class TestJsonFormat:
    """JSON line format."""

    def test_one_object_per_record(self):
        """Each record renders as one parseable JSON object."""
        parsed = json.loads(StructuredFormatter().format(_record()))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["timestamp"].endswith("Z")
        assert parsed["location"]["line"] == 10

    def test_carries_bound_ids_and_fields(self):
        """Should include turn and conversation IDs and extra context."""
        formatter = StructuredFormatter(include_context=True)

        with OperationContext(turn_id="turn-test", conversation_id="conv-test", root="/src"):
            output = formatter.format(_record())

        parsed = json.loads(output)
        assert parsed["turn_id"] == "turn-test"
        assert parsed["conversation_id"] == "conv-test"
        assert parsed["context"] == {"root": "/src"}

    def test_includes_extra_data(self):
        """Records carrying extra_data expose it under "data"."""
        record = _record()
        record.extra_data = {"item_id": "abc", "embedded": True}

        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["data"] == {"item_id": "abc", "embedded": True}

    def test_includes_exception(self):
        """Exception type and message are serialized."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()

        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["exception"]["type"] == "RuntimeError"
        assert parsed["exception"]["message"] == "boom"


class TestReadableFormat:
    """Readable line format."""

    def test_prefixes_bound_ids(self):
        """Bound ids appear as a bracketed prefix."""
        formatter = ContextFormatter()

        with OperationContext(turn_id="turn-abc", conversation_id="conv-xyz"):
            output = formatter.format(_record())

        assert "[turn-abc] [conv-xyz] " in output
        assert output.endswith("test - Test message")

    def test_no_prefix_without_context(self):
        """No brackets are rendered when no IDs are set."""
        set_turn_id(None)
        set_conversation_id(None)
        output = ContextFormatter().format(_record())
        assert "[" not in output


class TestOperationLifecycle:
    """Lifecycle logging around a unit of work."""

    def test_logs_operation_lifecycle(self, caplog):
        """A clean block logs a start and a completion line."""
        logger = get_logger("docent.tests.lifecycle")

        with caplog.at_level(logging.INFO, logger="docent.tests.lifecycle"):
            with OperationLogger(logger, "ingest_directory"):
                pass

        messages = [r.getMessage() for r in caplog.records]
        assert "Starting operation: ingest_directory" in messages
        assert any(m.startswith("Completed operation: ingest_directory") for m in messages)

    def test_logs_operation_failure(self, caplog):
        """Should log failures and re-raise."""
        logger = get_logger("docent.tests.failure")

        with caplog.at_level(logging.INFO, logger="docent.tests.failure"):
            with pytest.raises(ValueError):
                with OperationLogger(logger, "build_personality"):
                    raise ValueError("summary model unavailable")

        failed = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert failed
        assert "summary model unavailable" in failed[0].getMessage()

    def test_propagates_turn_and_conversation(self):
        """IDs are visible inside the block and cleared afterwards."""
        set_turn_id(None)
        logger = get_logger("test_ids")

        with OperationLogger(logger, "turn", conversation_id="conv-1") as op:
            assert get_turn_id() == op.turn_id
            assert get_conversation_id() == "conv-1"

        assert get_turn_id() is None
        assert get_conversation_id() is None

    def test_reports_elapsed_time(self):
        """Elapsed wall time is reported in milliseconds."""
        op_logger = OperationLogger(get_logger("test_duration"), "timed_operation")
        with op_logger:
            time.sleep(0.1)

        assert op_logger.duration_ms >= 100


class TestHelpers:
    """Tests for log_exception and preview."""

    def test_log_exception_with_context(self, caplog):
        """Should log exception with traceback and extra data."""
        logger = get_logger("docent.tests.exception")

        with caplog.at_level(logging.ERROR, logger="docent.tests.exception"):
            try:
                raise RuntimeError("Test")
            except RuntimeError as e:
                log_exception(logger, "Operation failed", exception=e, item_id="k-1")

        record = caplog.records[-1]
        assert record.exc_info[0] is RuntimeError
        assert record.extra_data == {"item_id": "k-1"}

    def test_preview_truncates(self):
        """Long text is cut to the preview length plus an ellipsis."""
        assert preview("short") == "short"
        assert preview("x" * 60) == "x" * 50 + "..."
        assert preview(None) == ""
