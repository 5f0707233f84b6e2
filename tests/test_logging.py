"""
Tests for environment-driven logger setup.
"""
import itertools
import logging

import pytest

from lifeline.utils.logging import (
    LOG_FORMAT_ENV,
    LOG_LEVEL_ENV,
    resolve_level,
    set_log_level,
    setup_logger,
)

_names = itertools.count(1)


@pytest.fixture
def agent_name():
    """Fresh logger name per test; loggers are process-wide singletons."""
    name = f"TestAgent{next(_names)}"
    yield name
    logger = logging.getLogger(f"lifeline.{name}")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def render(logger, message="hello", level=logging.INFO):
    record = logging.makeLogRecord({"msg": message, "levelno": level, "levelname": logging.getLevelName(level)})
    return logger.handlers[0].formatter.format(record)


class TestResolveLevel:
    """Test level parsing."""

    def test_default_is_info(self, monkeypatch):
        monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)

        assert resolve_level() == logging.INFO

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "debug")

        assert resolve_level() == logging.DEBUG

    @pytest.mark.parametrize("level,expected", [
        ("WARNING", logging.WARNING),
        (" error ", logging.ERROR),
        ("15", 15),
        (logging.CRITICAL, logging.CRITICAL),
    ])
    def test_explicit_levels(self, level, expected):
        assert resolve_level(level) == expected

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            resolve_level("chatty")


class TestSetupLogger:
    """Test handler configuration."""

    def test_defaults(self, monkeypatch, agent_name):
        monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
        monkeypatch.delenv(LOG_FORMAT_ENV, raising=False)

        logger = setup_logger(agent_name)

        assert logger.name == f"lifeline.{agent_name}"
        assert logger.level == logging.INFO
        assert f" - {agent_name} - INFO - hello" in render(logger)

    def test_level_and_format_from_environment(self, monkeypatch, agent_name):
        monkeypatch.setenv(LOG_LEVEL_ENV, "WARNING")
        monkeypatch.setenv(LOG_FORMAT_ENV, "%(levelname)s|%(message)s")

        logger = setup_logger(agent_name)

        assert logger.level == logging.WARNING
        assert render(logger, level=logging.ERROR) == "ERROR|hello"

    def test_arguments_override_environment(self, monkeypatch, agent_name):
        monkeypatch.setenv(LOG_LEVEL_ENV, "WARNING")
        monkeypatch.setenv(LOG_FORMAT_ENV, "%(levelname)s|%(message)s")

        logger = setup_logger(agent_name, level="DEBUG", format_string="%(message)s")

        assert logger.level == logging.DEBUG
        assert render(logger) == "hello"

    def test_configured_once(self, monkeypatch, agent_name):
        monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)

        first = setup_logger(agent_name)
        second = setup_logger(agent_name, level=logging.ERROR)

        assert first is second
        assert len(second.handlers) == 1
        assert second.level != logging.ERROR

    def test_set_log_level_applies_to_existing(self, monkeypatch, agent_name):
        monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
        logger = setup_logger(agent_name)

        try:
            assert set_log_level("error") == logging.ERROR
            assert logger.level == logging.ERROR
        finally:
            set_log_level(logging.INFO)
