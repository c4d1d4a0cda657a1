"""
Error taxonomy for the essay assist service.

Each error carries the HTTP status the API layer answers with.
"""


class EssayAssistError(Exception):
    """Base class for all service errors."""
    status_code = 500


class InputError(EssayAssistError):
    """Request is missing data or the essay is too short to review."""
    status_code = 400


class NotFoundError(EssayAssistError):
    """Unknown essay assist id."""
    status_code = 404


class UpstreamGenerationError(EssayAssistError):
    """The AI call failed, timed out or returned unusable data. Safe to retry."""
    status_code = 502


class StateError(EssayAssistError):
    """A programming-contract violation on per-essay state."""
    status_code = 500


class IllegalStateError(StateError):
    """Operation requires state that has not been established (e.g. a baseline score)."""


class EmptyHistoryError(StateError):
    """A history was read before anything was appended to it."""


class ConcurrentModificationError(EssayAssistError):
    """The stored record changed between read and write."""
    status_code = 409
