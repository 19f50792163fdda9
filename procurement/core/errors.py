"""Typed errors raised by the purchase-order workflow.

Every error carries a machine-readable ``code`` and the HTTP status it is
rendered with, so API handlers never need to parse messages. Services raise
these before mutating anything, except ``MaterialCreationFailed`` which is
raised after delivery evidence has already been stored.
"""
from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    code: str = "workflow_error"
    status_code: int = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(WorkflowError):
    code = "validation_error"
    status_code = 400


class InvalidStateTransition(WorkflowError):
    code = "invalid_state_transition"
    status_code = 400

    def __init__(self, current_status: str, action: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Cannot {action.replace('_', ' ')} a purchase order in status '{current_status}'",
            current_status=current_status,
            action=action,
        )
        self.current_status = current_status
        self.action = action


class InsufficientCapital(WorkflowError):
    code = "insufficient_capital"
    status_code = 400

    def __init__(self, available: float, required: float) -> None:
        super().__init__(
            f"Insufficient capital: {available:.2f} available, {required:.2f} required",
            available=round(available, 2),
            required=round(required, 2),
        )
        self.available = available
        self.required = required


class TokenInvalid(WorkflowError):
    code = "token_invalid"
    status_code = 404

    def __init__(self, message: str = "Invalid response link") -> None:
        super().__init__(message)


class TokenExpired(WorkflowError):
    code = "token_expired"
    status_code = 410

    def __init__(self, message: str = "This response link has expired. Please contact the buyer for a new link.") -> None:
        super().__init__(message)


class TokenAlreadyUsed(WorkflowError):
    code = "token_already_used"
    status_code = 410

    def __init__(
        self,
        message: str = "This response link has already been used. Each link can only be used once.",
    ) -> None:
        super().__init__(message)


class MaterialCreationFailed(WorkflowError):
    code = "material_creation_failed"
    status_code = 502

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to create material: {reason}")
        self.reason = reason


class PermissionDenied(WorkflowError):
    code = "permission_denied"
    status_code = 403


class NotFound(WorkflowError):
    code = "not_found"
    status_code = 404
