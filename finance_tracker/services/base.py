"""
Service Base Class and Errors

Every domain service operates on behalf of one signed-in user. The user is
injected at construction time (from the UI session or AppSettings.user_id);
an operation invoked without one fails before touching storage.
"""

from typing import Any, Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel

from finance_tracker.audit import AuditLogger

ModelT = TypeVar("ModelT", bound=BaseModel)


class ServiceError(Exception):
    """Base exception for domain service errors."""
    pass


class AuthenticationError(ServiceError):
    """No signed-in user."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class InvalidOperationError(ServiceError):
    """The requested change is not allowed in the current state."""
    pass


class CategoryInUseError(InvalidOperationError):
    """A category cannot be deleted while transactions reference it."""

    def __init__(self, category_id: UUID, usage_count: int):
        self.category_id = category_id
        self.usage_count = usage_count
        super().__init__(
            f"Cannot delete category that is used by {usage_count} transactions"
        )


class UserScopedService:
    """
    Shared plumbing for services that act on one user's data.

    Subclasses call `_require_user()` at the top of every public operation.
    """

    def __init__(
        self,
        user_id: Optional[UUID],
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._user_id = user_id
        self._audit = audit_logger or AuditLogger()
        self._logger = structlog.get_logger(type(self).__module__)

    @property
    def user_id(self) -> Optional[UUID]:
        return self._user_id

    def _require_user(self) -> UUID:
        if self._user_id is None:
            raise AuthenticationError()
        return self._user_id


IMMUTABLE_FIELDS = frozenset({"id", "user_id", "created_at", "updated_at"})


def apply_changes(model: ModelT, changes: dict[str, Any]) -> ModelT:
    """
    Return a re-validated copy of `model` with `changes` applied.

    Unknown and immutable fields are rejected rather than ignored.
    """
    unknown = set(changes) - set(type(model).model_fields)
    if unknown:
        raise InvalidOperationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    locked = set(changes) & IMMUTABLE_FIELDS
    if locked:
        raise InvalidOperationError(f"Fields cannot be changed: {', '.join(sorted(locked))}")

    data = model.model_dump()
    data.update(changes)
    return type(model).model_validate(data)
