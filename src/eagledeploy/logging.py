"""Structured logging for EagleDeploy.

Console (and optional file) logging is set up once by the CLI through
configure_logging(). Components log through a StructuredLogger, which
renders keyword context as a trailing "(key=value, ...)" block and tags
lifecycle events with a category:

    INFO [eagledeploy.executor] [Execution] Task succeeded (task=uptime, host=10.0.0.5)

Loggers are injected into the discoverer, renderer and executor so tests
can swap or capture them.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

CONSOLE_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DETAILED_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"

# Below DEBUG; every remote command and its output size
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

VERBOSITY_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG, TRACE]


def get_level_from_verbosity(verbosity: int) -> int:
    """Map a count of -v flags to a logging level (-vvv and beyond is TRACE)."""
    return VERBOSITY_LEVELS[max(0, min(verbosity, len(VERBOSITY_LEVELS) - 1))]


def configure_logging(
    level: int = logging.WARNING,
    log_file: str | Path | None = None,
    file_level: int | None = None,
) -> None:
    """Replace the root handlers with a console handler and an optional file handler.

    Args:
        level: Console level
        log_file: File that also receives records, created with its parents
        file_level: Level for the file handler (defaults to level)
    """
    console_format = DETAILED_FORMAT if level <= logging.DEBUG else CONSOLE_FORMAT
    file_level = file_level or level

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(min(level, file_level) if log_file else level)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(console_format))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        root.addHandler(file_handler)


class StructuredLogger:
    """Logger that appends key=value context to each message.

    Attributes:
        logger: Underlying standard library logger
        context: Context added to every message

    Example:
        >>> logger = StructuredLogger("eagledeploy.executor", run="nightly")
        >>> logger.event(logging.INFO, "Execution", "Task succeeded", task="uptime")
        INFO [eagledeploy.executor] [Execution] Task succeeded (run=nightly, task=uptime)
    """

    def __init__(self, name: str, **context: Any) -> None:
        self.logger = logging.getLogger(name)
        self.context: dict[str, Any] = dict(context)

    def _format(self, message: str, extra: dict[str, Any]) -> str:
        combined = {**self.context, **extra}
        if not combined:
            return message
        pairs = ", ".join(f"{key}={value}" for key, value in combined.items())
        return f"{message} ({pairs})"

    def log(self, level: int, message: str, **extra: Any) -> None:
        self.logger.log(level, self._format(message, extra))

    def trace(self, message: str, **extra: Any) -> None:
        self.log(TRACE, message, **extra)

    def debug(self, message: str, **extra: Any) -> None:
        self.log(logging.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log(logging.INFO, message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, **extra)

    def event(self, level: int, category: str, message: str, **data: Any) -> None:
        """Record a lifecycle event.

        Categories in use: SSH, Detection, Discovery, Inventory, Render,
        Execution.
        """
        self.log(level, f"[{category}] {message}", **data)

    @contextmanager
    def performance(
        self,
        operation: str,
        level: int = logging.INFO,
        **extra: Any,
    ) -> Generator[None, None, None]:
        """Log how long the block took."""
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.log(level, f"{operation} completed in {duration:.3f}s", **extra)


def get_logger(name: str, **context: Any) -> StructuredLogger:
    """Create a StructuredLogger for a module or component."""
    return StructuredLogger(name, **context)
