"""
Console logging for SongPrint: colored level formatter, section headers and a
step timer.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Dict, Optional

from wcwidth import wcswidth

LOGGER_NAME = "songprint"


class PrettyFormatter(logging.Formatter):
    """Custom formatter with colors and clear step indicators."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    ICONS = {
        'DEBUG': '🔍',
        'INFO': '✅',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🔥',
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.RESET)
        icon = self.ICONS.get(record.levelname, '')
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        formatted = (
            f"{self.BOLD}[{timestamp}]{self.RESET} "
            f"{color}{icon} {record.levelname:<8}{self.RESET} │ "
            f"{record.getMessage()}"
        )
        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the ``songprint`` logger with pretty console output."""
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    # calling twice must not duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, "_songprint", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(PrettyFormatter())
    console_handler._songprint = True
    logger.addHandler(console_handler)
    return logger


def _center_display(s: str, target_cols: int) -> str:
    """Center using terminal display width (handles emoji/double-width chars)."""
    w = wcswidth(s)
    if w < 0:
        w = len(s)  # fallback

    if w >= target_cols:
        return s  # too wide, don't pad

    pad = target_cols - w
    left = pad // 2
    right = pad - left
    return (" " * left) + s + (" " * right)


def log_section(title: str):
    """Print a visually distinct section header."""
    width = 50
    border = "═" * width
    print(f"\n\033[1;34m╔{border}╗\033[0m")
    centered = _center_display(title, width - 2)
    print(f"\033[1;34m║\033[0m {centered} \033[1;34m║\033[0m")
    print(f"\033[1;34m╚{border}╝\033[0m\n")


def log_step(step_num: int, description: str):
    print(f"  \033[1;36m[Step {step_num}]\033[0m ➜  {description}")


def log_success(message: str):
    print(f"  \033[1;32m✓\033[0m {message}")


def log_detail(key: str, value: str):
    print(f"      \033[90m•\033[0m {key}: \033[1m{value}\033[0m")


class Timer:
    """Context manager for timing code blocks, logged at DEBUG level."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.timings: Dict[str, float] = {}

    @contextmanager
    def measure(self, label: str):
        """Time a block of code and record it under ``label``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.timings[label] = elapsed
            self.logger.debug(f"{label}: {elapsed:.4f}s")

    @property
    def total(self) -> float:
        return sum(self.timings.values())
