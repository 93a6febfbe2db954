"""
Logging setup for jellyrpc with console and optional file output.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "jellyrpc"

# CLI level names, "trace" has no stdlib counterpart so it maps to DEBUG
LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}

_logger: Optional[logging.Logger] = None


def parse_level(name: str) -> int:
    """Translate a CLI log level name into a logging level."""
    try:
        return LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level '{name}', expected one of: {', '.join(LEVELS)}") from None


def setup_logger(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up the application logger.

    Args:
        level: Logging level for the console handler
        log_file: Path to a log file. If None, only console logging is enabled

    Returns:
        Configured logger instance
    """
    global _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(min(level, logging.DEBUG) if log_file else level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # File gets all messages
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)-8s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not set up file logging: {e}")

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured logger instance."""
    global _logger
    if _logger is None:
        _logger = setup_logger()
    return _logger
