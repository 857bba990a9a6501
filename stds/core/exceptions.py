"""
Engine Errors
=============
Every boundary operation either returns an explicit result or raises one
of these. The transport layer turns them into user-visible messages.
"""


class STDSError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidConfigError(STDSError, ValueError):
    """Raised when engine configuration values are malformed."""
    pass


class InvalidStateError(STDSError):
    """Raised when an operation is invoked out of lifecycle order."""
    pass


class DataLoadError(STDSError):
    """Raised when a bar source is missing, empty, or malformed."""
    pass


class InsufficientDataError(STDSError):
    """Raised when there are too few bars to extract a single sequence."""

    def __init__(self, message: str, available: int = 0, required: int = 0):
        super().__init__(message)
        self.available = available
        self.required = required


class InsufficientWarmupError(STDSError):
    """
    Raised internally while the live window is still filling.

    Never escapes the engine: live inference reports it as a NONE decision.
    """
    pass
