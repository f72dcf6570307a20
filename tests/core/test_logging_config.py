"""Tests for logging configuration module.

- AAA pattern (Arrange-Act-Assert)
- Descriptive test names: test_unit_scenario_expectedBehavior
- Test isolation (handlers added by configure_logging are removed after each test)
"""

import logging

import pytest
import structlog

from dataset_explorer.core.logging_config import configure_logging


@pytest.fixture
def bare_root_logger():
    """Root logger; handlers are cleared in the test body (pytest adds its own per phase)."""
    root_logger = logging.getLogger()
    saved_level = root_logger.level
    yield root_logger
    for handler in list(root_logger.handlers):
        if type(handler) is logging.StreamHandler:
            root_logger.removeHandler(handler)
    root_logger.setLevel(saved_level)
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_configure_logging_is_idempotent(self, bare_root_logger):
        # Arrange
        bare_root_logger.handlers.clear()

        # Act
        configure_logging()
        handler_count = len(bare_root_logger.handlers)
        configure_logging()

        # Assert
        assert handler_count == 1
        assert len(bare_root_logger.handlers) == handler_count

    def test_configure_logging_accepts_level_name(self, bare_root_logger):
        bare_root_logger.handlers.clear()

        configure_logging("debug")

        assert bare_root_logger.level == logging.DEBUG

    def test_configure_logging_json_renderer_selected(self, bare_root_logger):
        # Arrange
        bare_root_logger.handlers.clear()

        # Act
        configure_logging(logging.INFO, json_logs=True)

        # Assert
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
