"""
Logging for mergeview.

Every logger lives under the "mergeview" namespace. Generated SQL goes to
the dedicated "mergeview.statements" logger at DEBUG, so statement traces
can be silenced without losing load and build messages.

Usage:
    from mergeview._logging import get_logger, statement_logger

    logger = get_logger(__name__)
    logger.info("Loaded dataset")
    statement_logger.debug(sql)
"""

import logging
from typing import Optional, TextIO

ROOT_LOGGER = "mergeview"
STATEMENTS_LOGGER = f"{ROOT_LOGGER}.statements"
DEFAULT_FORMAT = "%(levelname)s [%(name)s] %(message)s"

statement_logger = logging.getLogger(STATEMENTS_LOGGER)


def get_logger(name: str) -> logging.Logger:
    """Logger for a mergeview module; foreign names are nested under mergeview."""
    if name == "__main__":
        return logging.getLogger(ROOT_LOGGER)
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def _own_handler(logger: logging.Logger) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if getattr(handler, "_mergeview", False):
            return handler
    return None


def setup_basic_logging(
    level: int = logging.INFO,
    format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Attach one stream handler to the mergeview logger.

    Calling again updates level and format instead of stacking handlers.
    Advanced users should configure via logging.config instead.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    handler = _own_handler(logger)
    if handler is None:
        handler = logging.StreamHandler(stream)
        handler._mergeview = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format or DEFAULT_FORMAT))

    # Records stop here; the root logger would print them twice
    logger.propagate = False


def enable_debug_logging(statements: bool = True) -> None:
    """
    Enable DEBUG output.

    Args:
        statements: Also print every SQL statement sent to DuckDB
    """
    setup_basic_logging(level=logging.DEBUG)
    statement_logger.setLevel(logging.NOTSET if statements else logging.INFO)


def disable_logging() -> None:
    """Silence all mergeview logging, statement traces included."""
    logging.getLogger(ROOT_LOGGER).setLevel(logging.CRITICAL + 1)
    statement_logger.setLevel(logging.NOTSET)
