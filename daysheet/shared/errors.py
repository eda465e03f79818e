# daysheet/shared/errors.py
"""
Error taxonomy shared by the processing service, the API service and the
review client.
"""

from typing import Optional


class DaysheetError(Exception):
    """Base class for all errors raised by Daysheet."""


class SourceFetchError(DaysheetError):
    """A single activity source failed. Recovered locally to an empty list."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ValidationError(DaysheetError):
    """Malformed request input (bad date, missing fields, out-of-range hours)."""


class AuthError(DaysheetError):
    """Missing, invalid or expired session token."""


class ModelTransportError(DaysheetError):
    """The generative model timed out, blocked the prompt or returned nothing."""


class ParseError(DaysheetError):
    """No suggestion array could be recovered from the model output."""


class SubmissionError(DaysheetError):
    """A single time-log entry could not be submitted."""

    def __init__(self, entry_id: str, message: str):
        super().__init__(message)
        self.entry_id = entry_id


class LockViolation(DaysheetError):
    """A submission batch touched a date on or before the time-lock date."""

    def __init__(self, lock_date, message: Optional[str] = None):
        super().__init__(message or f"Hours are locked through {lock_date}")
        self.lock_date = lock_date


class ActionNotAllowed(DaysheetError):
    """A review action was attempted in a state that does not permit it."""
