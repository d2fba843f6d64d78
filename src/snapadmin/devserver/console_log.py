"""
Colorized console output for the dev tools.

Records carry a ``prefix`` (e.g. ``BACKEND``) and an ANSI ``color`` via
``extra``; the formatter renders them as ``<color>[PREFIX]<reset> message``.
"""

import io
import logging
import sys


class Colors:
    RESET = "\x1b[0m"
    BRIGHT = "\x1b[1m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    BLUE = "\x1b[34m"
    CYAN = "\x1b[36m"


class PrefixFormatter(logging.Formatter):
    """Render ``[PREFIX] message`` with the prefix in the record's color."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = getattr(record, "prefix", record.name.rsplit(".", 1)[-1].upper())
        color = getattr(record, "color", Colors.RESET)
        return f"{color}[{prefix}]{Colors.RESET} {record.getMessage()}"


def configure_console_logging(logger_name: str = "snapadmin.devserver", level: str = "INFO") -> logging.Logger:
    """Attach a colorized stdout handler to the dev tools logger."""
    # Force UTF-8 on stdout so child output with emoji survives on Windows
    if sys.platform == "win32":
        stream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    else:
        stream = sys.stdout

    logger = logging.getLogger(logger_name)
    if not any(isinstance(h.formatter, PrefixFormatter) for h in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(PrefixFormatter())
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def log(logger: logging.Logger, prefix: str, message: str, color: str = Colors.RESET, level: int = logging.INFO) -> None:
    logger.log(level, message, extra={"prefix": prefix, "color": color})
