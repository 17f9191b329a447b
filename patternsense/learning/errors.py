"""Error taxonomy of the pattern confidence engine.

Every failure here is local and recoverable: the engine degrades to fewer or
no suggestions instead of propagating these to the editor surfaces.
"""


class PatternEngineError(Exception):
    """Base exception for pattern engine errors."""


class StorageReadError(PatternEngineError):
    """A persisted blob is missing, unreadable or corrupt."""


class StorageWriteError(PatternEngineError):
    """Flushing state to durable storage failed."""


class MalformedObservationError(PatternEngineError):
    """An observation lacks required fields or carries invalid values."""


class InvalidFeedbackError(PatternEngineError):
    """Feedback references a pattern id the store does not know."""

    def __init__(self, pattern_id: str, message: str = ""):
        self.pattern_id = pattern_id
        super().__init__(message or f"Unknown pattern id: {pattern_id}")


class EngineStoppedError(PatternEngineError):
    """A mutation was submitted after the store stopped accepting work."""


class ConcurrentMutationConflict(PatternEngineError):
    """Two writers touched the same record.

    Never raised: the store's single writer thread rules this out.
    """
