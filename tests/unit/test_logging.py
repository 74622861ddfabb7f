"""Tests for mergeview._logging module."""

import io
import logging

import pytest

import mergeview
from mergeview._logging import (
    disable_logging,
    enable_debug_logging,
    get_logger,
    setup_basic_logging,
    statement_logger,
)


@pytest.fixture(autouse=True)
def cleanup_handlers():
    """Restore mergeview loggers after each test."""
    logger = logging.getLogger("mergeview")
    original_handlers = logger.handlers[:]
    original_level = logger.level
    original_propagate = logger.propagate
    yield
    logger.handlers = original_handlers
    logger.level = original_level
    logger.propagate = original_propagate
    statement_logger.setLevel(logging.NOTSET)


class TestGetLogger:
    """get_logger() namespace handling."""

    def test_already_namespaced_unchanged(self):
        assert get_logger("mergeview.compose._unify").name == "mergeview.compose._unify"

    def test_bare_name_gets_prefixed(self):
        assert get_logger("mymodule").name == "mergeview.mymodule"

    def test_lookalike_prefix_gets_nested(self):
        assert get_logger("mergeviewer").name == "mergeview.mergeviewer"

    def test_dunder_main_becomes_root(self):
        assert get_logger("__main__").name == "mergeview"


class TestSetupBasicLogging:
    """setup_basic_logging() configuration."""

    def test_sets_requested_level(self):
        setup_basic_logging(level=logging.WARNING)
        assert logging.getLogger("mergeview").level == logging.WARNING

    def test_repeated_calls_reuse_one_handler(self):
        logging.getLogger("mergeview").handlers = []
        setup_basic_logging(level=logging.INFO)
        setup_basic_logging(level=logging.DEBUG, format="%(message)s")

        (handler,) = logging.getLogger("mergeview").handlers
        assert handler.level == logging.DEBUG
        assert handler.formatter._fmt == "%(message)s"

    def test_disables_propagation(self):
        setup_basic_logging()
        assert logging.getLogger("mergeview").propagate is False

    def test_writes_to_stream(self):
        logging.getLogger("mergeview").handlers = []
        stream = io.StringIO()
        setup_basic_logging(stream=stream)

        get_logger("lifecycle").info("Loaded dataset abc")
        assert stream.getvalue() == "INFO [mergeview.lifecycle] Loaded dataset abc\n"


class TestStatementTraces:

    @pytest.fixture
    def stream(self):
        logging.getLogger("mergeview").handlers = []
        stream = io.StringIO()
        setup_basic_logging(level=logging.DEBUG, format="%(name)s %(message)s", stream=stream)
        return stream

    def test_debug_includes_statements(self, stream):
        enable_debug_logging()
        statement_logger.debug("SELECT 1")
        assert "mergeview.statements SELECT 1" in stream.getvalue()

    def test_statements_can_be_silenced(self, stream):
        enable_debug_logging(statements=False)
        statement_logger.debug("SELECT 1")
        get_logger("engine").debug("Opened DuckDB database")

        output = stream.getvalue()
        assert "SELECT 1" not in output
        assert "Opened DuckDB database" in output

    def test_disable_silences_statements(self, stream):
        enable_debug_logging()
        disable_logging()
        statement_logger.debug("SELECT 1")
        assert stream.getvalue() == ""


class TestVerbose:

    @pytest.mark.parametrize(
        "level,expected",
        [(True, logging.INFO), ("info", logging.INFO), ("debug", logging.DEBUG)],
    )
    def test_levels(self, level, expected):
        mergeview.verbose(level)
        assert logging.getLogger("mergeview").level == expected

    def test_false_disables(self):
        mergeview.verbose(False)
        assert not logging.getLogger("mergeview").isEnabledFor(logging.CRITICAL)

    def test_invalid_level(self):
        with pytest.raises(ValueError, match="Invalid verbose level"):
            mergeview.verbose("loud")
