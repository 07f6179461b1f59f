"""Domain errors raised by services and translated by the API layer."""


class PhaselineError(Exception):
    """Base class for errors raised by Phaseline services."""


class ValidationError(PhaselineError, ValueError):
    """Input was rejected; never silently corrected."""


class OrderingError(ValidationError):
    """Deadlines are not in green <= yellow <= red order."""


class PastDeadlineError(ValidationError):
    """The red deadline is already in the past at creation time."""


class InvalidDateError(ValidationError):
    """A deadline could not be parsed into a timestamp."""


class NotFoundError(PhaselineError, LookupError):
    """Record does not exist or belongs to another owner."""


class TransientIOError(PhaselineError):
    """Persistence failed in a way a retry may fix."""
