"""Colored status lines for the terminal."""

import logging
import os
import sys

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

RESET = "\x1b[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\x1b[36m",  # cyan
    logging.INFO: "\x1b[34m",  # blue
    SUCCESS: "\x1b[32m",  # green
    logging.WARNING: "\x1b[33m",  # yellow
    logging.ERROR: "\x1b[31m",  # red
    logging.CRITICAL: "\x1b[1m\x1b[31m",
}


class ColorFormatter(logging.Formatter):
    """Wraps each formatted record in the ANSI color of its level."""

    def __init__(self, fmt: str = "%(message)s", use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not self.use_color or color is None:
            return message
        return f"{color}{message}{RESET}"


def supports_color(stream) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def configure_logging(verbose: bool = False, stream=None) -> None:
    """Install the colored handler on the root logger."""
    stream = stream or sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColorFormatter(use_color=supports_color(stream)))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO; the probe reports its own progress
    logging.getLogger("httpx").setLevel(logging.WARNING)
