"""
Error taxonomy for the petty cash core.

Every service raises one of these before touching state. Blueprints map
`http_status` onto the response; callers that prefer values over exceptions
wrap a call in `capture()` and branch on the returned OperationResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from typing import Any, Callable, Generic, Optional, TypeVar

from .extensions import db


T = TypeVar("T")


class PettyCashError(Exception):
    """Base class; carries a machine-readable kind and the offending field."""
    kind = "error"
    http_status = 400

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.field:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(PettyCashError, ValueError):
    """400-level input problem."""
    kind = "validation"
    http_status = 400


class UnauthorizedError(PettyCashError):
    """Actor lacks the capability, or tried to review their own submission."""
    kind = "unauthorized"
    http_status = 403


class ConflictError(PettyCashError):
    """409-level lifecycle conflict (double reconcile, overlapping period, ...)."""
    kind = "conflict"
    http_status = 409


class NotFoundError(PettyCashError):
    kind = "not_found"
    http_status = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message, details={"resource": resource, "id": resource_id})


@dataclass
class OperationResult(Generic[T]):
    """Explicit success/failure value for a core operation."""
    ok: bool
    value: Optional[T] = None
    error: Optional[PettyCashError] = None
    details: dict = dc_field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.ok

    @property
    def kind(self) -> str | None:
        return self.error.kind if self.error else None

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None


def capture(func: Callable[..., T], *args, **kwargs) -> OperationResult[T]:
    """
    Run a service call and fold PettyCashError into an OperationResult.

    The session is rolled back on failure so no partial write survives.
    Infrastructure errors (database down, programming errors) still propagate.
    """
    try:
        return OperationResult(ok=True, value=func(*args, **kwargs))
    except PettyCashError as exc:
        db.session.rollback()
        return OperationResult(ok=False, error=exc, details=exc.details)
