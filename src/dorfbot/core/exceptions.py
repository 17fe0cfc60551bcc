"""Custom exceptions for the dorfbot automation."""

from __future__ import annotations

SCAN_INCOMPLETE_RETRY = "SCAN_INCOMPLETE_RETRY"

# Messages raised by the browser driver once the page, context or browser is gone
CLOSED_ERROR_MARKERS = (
    "Target page, context or browser has been closed",
    "Session closed",
    "browser has been closed",
)


class DorfbotError(Exception):
    """Base exception for all bot errors."""


class ScanIncompleteError(DorfbotError):
    """Raised when a field scan could not read every resource slot."""

    def __init__(self, found: int, expected: int) -> None:
        super().__init__(SCAN_INCOMPLETE_RETRY)
        self.found = found
        self.expected = expected


class SessionClosedError(DorfbotError):
    """Raised when the page, browser context or browser has been closed."""


class LoginError(DorfbotError):
    """Raised when the login form was submitted but no session was established."""


class ExtractionError(DorfbotError):
    """Raised when game data cannot be extracted from a page."""


class CenterNotFoundError(DorfbotError):
    """Raised when the farm search center cannot be determined."""


class FeedError(DorfbotError):
    """Raised when the inactive village feed cannot be downloaded."""


def is_closed_error(exc: BaseException) -> bool:
    """Whether an exception signals that the browser session is gone."""
    if isinstance(exc, SessionClosedError):
        return True
    message = str(exc)
    return any(marker in message for marker in CLOSED_ERROR_MARKERS)
