"""Logging setup and the bounded per-step log."""

import logging
import traceback
from typing import List

import structlog

SKIPPED_MESSAGE = "  ... skipped logging of {count} additional errors ..."
DEFAULT_MAX_LINES = 20


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for console output.

    Args:
        level: Name of the minimum log level (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


class FilteredLog:
    """Collects the messages of a single build step.

    Info messages are always kept. Error messages are limited to ``max_lines``
    entries; once the limit is exceeded subsequent errors are only counted and
    :meth:`log_summary` appends a single line with the number of skipped
    errors. Every message is forwarded to structlog as well.
    """

    def __init__(self, title: str, max_lines: int = DEFAULT_MAX_LINES) -> None:
        """Initialize the log.

        Args:
            title: Headline written before the first error message
            max_lines: Maximum number of error messages to keep
        """
        self.title = title
        self.max_lines = max_lines
        self._lines = 0
        self._info_messages: List[str] = []
        self._error_messages: List[str] = []
        self._logger = structlog.get_logger(__name__).bind(log=title)

    def log_info(self, message: str, *args: object) -> None:
        """Log an info message, formatted with %-style arguments."""
        text = message % args if args else message
        self._info_messages.append(text)
        self._logger.info(text)

    def log_error(self, message: str, *args: object) -> None:
        """Log an error message, formatted with %-style arguments."""
        text = message % args if args else message
        self._print_title()
        if self._lines < self.max_lines:
            self._error_messages.append(text)
        self._lines += 1
        self._logger.error(text)

    def log_exception(self, exception: BaseException, message: str, *args: object) -> None:
        """Log an error message together with the exception details.

        Message and details are stored as a single line, so every call uses
        exactly one of the ``max_lines`` error lines.

        Args:
            exception: The exception to report
            message: Message format string
            *args: Arguments for the format string
        """
        text = message % args if args else message
        details = " ".join(
            line.strip() for line in traceback.format_exception_only(type(exception), exception)
        )
        self.log_error("%s: %s", text, details)

    def log_summary(self) -> None:
        """Append the number of suppressed errors, if any."""
        if self._lines > self.max_lines:
            self._error_messages.append(SKIPPED_MESSAGE.format(count=self._lines - self.max_lines))

    def _print_title(self) -> None:
        if self._lines == 0:
            self._error_messages.append(self.title)

    def __len__(self) -> int:
        return self._lines

    @property
    def info_messages(self) -> List[str]:
        return list(self._info_messages)

    @property
    def error_messages(self) -> List[str]:
        return list(self._error_messages)
