import logging
import sys
from typing import Union

# Per-timer events (armed, fired, cancelled) are logged below DEBUG
TRACE_LEVEL = 5

logging.addLevelName(TRACE_LEVEL, "TRACE")


class ColoredFormatter(logging.Formatter):
    """Formatter that colors each record by level when writing to a terminal."""

    COLORS = {
        "TRACE": "\033[90m",  # Bright Black (Gray)
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if sys.stderr.isatty():
            level_color = self.COLORS.get(record.levelname, "")
            return f"{level_color}{message}{self.COLORS['RESET']}"

        return message


def resolve_level(level: Union[int, str]) -> int:
    """
    Turn a level name ("TRACE", "debug", ...) or number into a logging level.

    Raises:
        ValueError: If the name is not a known level
    """
    if isinstance(level, int):
        return level

    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_colored_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure colored logging on the root logger.

    Args:
        level: Logging level or level name (default: logging.INFO)
    """
    formatter = ColoredFormatter(
        fmt="%(asctime)s - %(threadName)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(level))

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


class EnhancedLogger:
    """Logger wrapper adding the TRACE level used for timer bookkeeping."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def trace(self, msg, *args, **kwargs):
        """Log with TRACE level (gray) - individual timer events."""
        self._logger.log(TRACE_LEVEL, msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        self._logger.critical(msg, *args, **kwargs)

    # Delegate other logger methods
    def __getattr__(self, name):
        return getattr(self._logger, name)


def get_colored_logger(name: str) -> EnhancedLogger:
    """
    Get an enhanced logger instance with the TRACE level method.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Enhanced logger wrapping logging.getLogger(name)
    """
    return EnhancedLogger(logging.getLogger(name))
