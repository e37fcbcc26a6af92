"""
Error types raised by the promotions services.

Every error carries a machine-readable ``error_code`` and the HTTP status the
API layer maps it to, so views never need to inspect messages.
"""

from __future__ import annotations

from typing import Any, ClassVar


class PromotionError(Exception):
    """Base class for all promotion engine errors."""

    default_code: ClassVar[str] = "PROMOTION_ERROR"
    http_status: ClassVar[int] = 400

    def __init__(self, message: str, error_code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}


class ValidationError(PromotionError):
    """Malformed input: negative amount, empty code, bad discount shape."""

    default_code = "VALIDATION_ERROR"
    http_status = 400


class ConstraintViolation(PromotionError):
    """A business constraint rejected the operation; ``reason`` says which one."""

    default_code = "CONSTRAINT_VIOLATION"
    http_status = 422

    def __init__(self, reason: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_code=str(reason).upper().replace("-", "_"), details=details)
        self.reason = reason


class NotFound(PromotionError):
    default_code = "NOT_FOUND"
    http_status = 404


class Conflict(PromotionError):
    """The atomic cap claim lost a race, or the entity is still referenced."""

    default_code = "CONFLICT"
    http_status = 409


class IllegalTransition(PromotionError):
    """Lifecycle operation requested from a state that does not allow it."""

    default_code = "ILLEGAL_TRANSITION"
    http_status = 409

    def __init__(self, current: str, target: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Cannot move redemption from {current} to {target}",
            details={"current_status": current, "target_status": target},
        )
        self.current = current
        self.target = target
