"""Global test configuration."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_bandwatch_logger():
    """Undo configure_logging() calls made by CLI and logging tests."""
    logger = logging.getLogger("bandwatch")
    level, handlers = logger.level, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers
