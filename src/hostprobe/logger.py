"""
Logger setup for hostprobe.

The package logs through the ``hostprobe`` logger hierarchy. Modules obtain
a child logger with :func:`get_logger`; the CLI calls :func:`setup_logger`
once to attach console and optional rotating file handlers.
"""

import logging
import logging.handlers
import os

ROOT_LOGGER_NAME = "hostprobe"
DEFAULT_LEVEL_NAME = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _get_log_level(level_name: str, default_level: int = logging.INFO) -> int:
    """
    Convert a log level name to a logging level constant.

    Args:
        level_name: Name of the log level (e.g., "DEBUG").
        default_level: Level to use if level_name is invalid.

    Returns:
        The corresponding logging level constant.
    """
    level = logging.getLevelName(str(level_name).upper())
    if isinstance(level, int):
        return level
    logging.getLogger(ROOT_LOGGER_NAME).warning(
        "Invalid log level name %r. Using default level %s.",
        level_name,
        logging.getLevelName(default_level),
    )
    return default_level


def setup_logger(
    level_name: str = DEFAULT_LEVEL_NAME,
    log_file_path: str | None = None,
    log_format: str = DEFAULT_LOG_FORMAT,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the ``hostprobe`` logger.

    Replaces any handlers attached by a previous call, so it is safe to call
    again after the configuration changes (e.g. after daemonizing).

    Args:
        level_name: Logging level for all handlers.
        log_file_path: Path to a log file. If None, file logging is disabled.
        log_format: The format string for log messages.
        max_bytes: Maximum size of the log file before rotation.
        backup_count: Number of rotated log files to keep.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(_get_log_level(level_name))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file_path:
        try:
            log_dir = os.path.dirname(log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error("Failed to set up file logging to %s: %s", log_file_path, e)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger inside the ``hostprobe`` hierarchy."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
