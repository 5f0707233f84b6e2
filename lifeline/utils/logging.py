"""
Logging Utilities

Standardized loggers for the wastage agents, engine and orchestrator.

Level and format default from the environment so the CLI, batch jobs and
services can be tuned without code changes:

    LIFELINE_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR or a number (default: INFO)
    LIFELINE_LOG_FORMAT  logging.Formatter string (default: time - agent - level - message)
"""

import logging
import os
from typing import Dict, Optional, Union

LOG_LEVEL_ENV = "LIFELINE_LOG_LEVEL"
LOG_FORMAT_ENV = "LIFELINE_LOG_FORMAT"

# Loggers created through setup_logger, by agent name
_loggers: Dict[str, logging.Logger] = {}


def resolve_level(level: Optional[Union[int, str]] = None) -> int:
    """
    Numeric logging level from an int, a level name, or LIFELINE_LOG_LEVEL.

    Raises:
        ValueError: If the level name is unknown
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or "INFO"
    if isinstance(level, int):
        return level

    text = str(level).strip().upper()
    if text.isdigit():
        return int(text)

    resolved = logging.getLevelName(text)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}; use DEBUG, INFO, WARNING or ERROR")
    return resolved


def setup_logger(
    name: str,
    level: Optional[Union[int, str]] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger under the `lifeline` namespace.

    Args:
        name: Logger name (typically agent name)
        level: Logging level (default: $LIFELINE_LOG_LEVEL or INFO)
        format_string: Custom format string (default: $LIFELINE_LOG_FORMAT)

    Returns:
        Configured logger instance

    Example:
        >>> logger = setup_logger("RiskScoringAgent")
        >>> logger.info("Agent initialized")
    """
    logger = logging.getLogger(f"lifeline.{name}")

    # Configure once; later agents with the same name share the handler
    if not logger.handlers:
        if format_string is None:
            format_string = os.environ.get(LOG_FORMAT_ENV) or f'%(asctime)s - {name} - %(levelname)s - %(message)s'

        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(format_string))
        logger.addHandler(handler)
        logger.setLevel(resolve_level(level))

    _loggers[name] = logger
    return logger


def set_log_level(level: Union[int, str]) -> int:
    """Apply a level to every logger created so far. Returns the numeric level."""
    numeric = resolve_level(level)
    for logger in _loggers.values():
        logger.setLevel(numeric)
    return numeric
