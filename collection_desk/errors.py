"""
Typed Exception Hierarchy

Every failure a lifecycle operation can report has its own class with a
machine-readable ``code`` so the API layer and reconciliation tooling can
branch on type instead of message text.

    CollectionDeskError
    +-- ValidationError
    |   +-- InvalidTransitionError
    +-- AuthorizationError
    +-- CollectionNotFoundError
    +-- PersistenceError

ReconciliationWarning is not raised. It is logged and returned on the
operation result when the collection and its order momentarily diverge.
"""

from typing import List, Optional, Sequence


class CollectionDeskError(Exception):
    """Base exception for all collection desk errors."""

    code: str = "COLLECTION_DESK_ERROR"


class ValidationError(CollectionDeskError):
    """Malformed or incomplete input. Raised before any store call."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InvalidTransitionError(ValidationError):
    """The collection's status or kind does not allow the operation."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, collection_id: str, operation: str, reason: str):
        self.collection_id = collection_id
        self.operation = operation
        self.reason = reason
        super().__init__(f"Cannot {operation} collection {collection_id}: {reason}")


class AuthorizationError(CollectionDeskError):
    """Capability or secondary-secret check failed."""

    code: str = "AUTHORIZATION_ERROR"

    def __init__(self, message: str, capability: Optional[str] = None):
        self.capability = capability
        super().__init__(message)


class CollectionNotFoundError(CollectionDeskError):
    """Collection with the given ID does not exist."""

    code: str = "COLLECTION_NOT_FOUND"

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(f"Collection {collection_id} not found")


class PersistenceError(CollectionDeskError):
    """
    A store call failed part way through an operation.

    Writes made by earlier steps are left in place. ``completed_steps``
    names them in order so the operation can be reconciled by hand or
    resumed from ``failed_step``.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(
        self,
        operation: str,
        failed_step: str,
        completed_steps: Sequence[str] = (),
        cause: Optional[BaseException] = None
    ):
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps: List[str] = list(completed_steps)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        done = ", ".join(self.completed_steps) or "none"
        super().__init__(
            f"{operation} failed at step '{failed_step}'{detail} "
            f"(completed steps: {done})"
        )


class ReconciliationWarning(UserWarning):
    """Collection and order records diverged; fix out of band."""

    code: str = "RECONCILIATION_WARNING"

    def __init__(self, operation: str, step: str, message: str):
        self.operation = operation
        self.step = step
        self.message = message
        super().__init__(f"{operation}/{step}: {message}")

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'operation': self.operation,
            'step': self.step,
            'message': self.message,
        }
