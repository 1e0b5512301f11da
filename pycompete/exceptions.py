"""
Exception classes for the PyCompete core.

Centralized location for all custom exceptions to avoid circular imports.
"""


class PyCompeteError(Exception):
    """Base exception for all PyCompete errors."""
    pass


class SandboxError(PyCompeteError):
    """Sandbox infrastructure failure (interpreter unavailable or crashed).

    Never raised for faults in contestant code.
    """
    pass


class StoreError(PyCompeteError):
    """A call to the contest store failed."""
    pass


class NotFoundError(StoreError):
    """The store has no record with the requested ID."""
    pass


class ValidationError(PyCompeteError):
    """Base exception for validation-related errors."""
    pass


class ConfigurationError(PyCompeteError):
    """Base exception for configuration-related errors."""
    pass


class SubmissionRefusedError(PyCompeteError):
    """Raised when a submission is not allowed in the current contest phase."""
    pass
