"""Logging configuration for the shipctl package."""
import logging
import sys

from shipctl.config import Config

NOISY_LOGGERS = ("paramiko", "urllib3", "kubernetes")


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(handler)

    # Library chatter only when debugging
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return logger


def redact_sensitive_data(data, keys=None):
    """Return a copy of ``data`` with values under sensitive keys masked."""
    keys = tuple(k.lower() for k in (keys or Config.REDACT_KEYS))
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if any(k in str(key).lower() for k in keys) and value:
                redacted[key] = "***REDACTED***"
            else:
                redacted[key] = redact_sensitive_data(value, keys)
        return redacted
    if isinstance(data, list):
        return [redact_sensitive_data(item, keys) for item in data]
    return data
