"""Error taxonomy shared by the ingestion path, the stores and the workers.

Every error carries an ``ErrorKind`` so callers branch on the kind instead of
the message text. ``status_code`` is only used by the HTTP layer.
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    CLASSIFICATION = "classification_failure"
    PERSISTENCE = "persistence_error"
    DISPATCH = "dispatch_error"
    WORKER = "worker_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class SentinelError(Exception):
    kind: ErrorKind = ErrorKind.PERSISTENCE
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SentinelError):
    kind = ErrorKind.VALIDATION
    status_code = 422

    def __init__(self, message: str = "Validation error"):
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Flatten a pydantic ``ValidationError`` into one readable message."""
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
        return cls("; ".join(parts) or "Validation error")


class ClassificationFailure(SentinelError):
    """Raised by classification providers; never leaves the gateway."""

    kind = ErrorKind.CLASSIFICATION
    status_code = 502


class PersistenceError(SentinelError):
    kind = ErrorKind.PERSISTENCE
    status_code = 503


class DispatchError(SentinelError):
    kind = ErrorKind.DISPATCH
    status_code = 503


class WorkerError(SentinelError):
    kind = ErrorKind.WORKER
    status_code = 500


class NotFoundError(SentinelError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConflictError(SentinelError):
    kind = ErrorKind.CONFLICT
    status_code = 409

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} already exists")
