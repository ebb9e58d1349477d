"""Custom exception hierarchy for microlend."""


class MicrolendError(Exception):
    """Base exception for all microlend errors."""


class NotFoundError(MicrolendError):
    """Raised when a referenced application, loan or client does not exist."""


class ReferentialIntegrityError(NotFoundError):
    """Raised when a foreign key reference is violated."""


class ComputationError(MicrolendError):
    """Raised when numeric inputs are malformed (e.g. negative principal)."""


class InvalidTermError(ComputationError):
    """Raised when a loan term is shorter than one month."""


class DuplicateLoanError(MicrolendError):
    """Raised by a store when a second loan is inserted for one application."""


class InvalidTransitionError(MicrolendError):
    """Raised when an application status change is not in the transition table."""


class DataSourceError(MicrolendError):
    """Raised when an upstream read or write fails."""


class ConfigurationError(MicrolendError):
    """Raised when configuration is invalid or missing."""


class SinkError(MicrolendError):
    """Raised when a sink operation fails."""
