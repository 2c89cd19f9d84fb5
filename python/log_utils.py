"""
Logging utilities - Quiet-mode aware logger for user-facing progress

Quiet mode (LLM_QUIET=1) drops informational chatter such as model loading
progress so that only the generated text reaches the terminal:
- info/debug messages are suppressed
- warnings and errors are always printed

Library code that isn't user-facing logs through ``logging.getLogger``.
"""

import os
import sys
from typing import Any, Optional, TextIO

QUIET_ENV_VAR = "LLM_QUIET"


def is_quiet_mode() -> bool:
    """
    Check if running in quiet mode

    Returns:
        True if LLM_QUIET=1 is set
    """
    return os.getenv(QUIET_ENV_VAR, "").strip() == "1"


class QuietAwareLogger:
    """
    Logger that respects quiet mode

    Usage:
        logger = QuietAwareLogger("loader")
        logger.info("Loaded tensor 8/291")   # hidden when LLM_QUIET=1
        logger.error("Could not load model")  # always printed
    """

    def __init__(self, name: str, stream: Optional[TextIO] = None, quiet: Optional[bool] = None):
        """
        Initialize logger

        Args:
            name: Logger name (typically module name)
            stream: Output stream (defaults to sys.stderr at call time)
            quiet: Force quiet mode on/off (defaults to LLM_QUIET)
        """
        self.name = name
        self.stream = stream
        self.quiet = is_quiet_mode() if quiet is None else quiet

    def _format_message(self, level: str, msg: str, **kwargs: Any) -> str:
        """Format log message with context"""
        if kwargs:
            ctx = " ".join(f"{k}={v}" for k, v in kwargs.items())
            return f"[{self.name}] {level}: {msg} ({ctx})"
        return f"[{self.name}] {level}: {msg}"

    def _emit(self, level: str, msg: str, **kwargs: Any) -> None:
        stream = self.stream if self.stream is not None else sys.stderr
        print(self._format_message(level, msg, **kwargs), file=stream, flush=True)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log debug message (disabled in quiet mode)"""
        if not self.quiet:
            self._emit("DEBUG", msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log info message (disabled in quiet mode)"""
        if not self.quiet:
            self._emit("INFO", msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log warning message (always enabled)"""
        self._emit("WARNING", msg, **kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log error message (always enabled)"""
        self._emit("ERROR", msg, **kwargs)
