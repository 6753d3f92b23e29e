"""Errors raised at the availability engine boundary.

An empty availability result is never an error; these cover input the caller
must fix before asking again.
"""


class SchedulingInputError(ValueError):
    """Base class for invalid availability or suggestion requests."""


class InvalidRangeError(SchedulingInputError):
    """The requested range is not a valid, timezone-aware ``from < to`` pair."""


class UnknownTimezoneError(SchedulingInputError):
    """The timezone identifier is not in the IANA database."""


class InvalidDurationError(SchedulingInputError):
    """A requested duration is negative."""
