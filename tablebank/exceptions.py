"""Custom exception hierarchy for tablebank."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tablebank.models.enums import RejectionReason


class TableBankError(Exception):
    """Base exception for all tablebank errors."""


class ValidationError(TableBankError):
    """Raised when a monetary or date field is malformed or missing."""


class InvariantViolation(TableBankError):
    """Raised when a caller breaks an internal invariant (programming error)."""


class DomainRejection(TableBankError):
    """Raised when a business rule refuses an operation.

    Rejections are expected outcomes: they carry a machine readable
    ``reason`` and a ``details`` mapping the caller can render.
    """

    def __init__(
        self,
        reason: RejectionReason,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.reason = reason
        self.details = details or {}
        super().__init__(message or reason.value)


class EntityNotFoundError(TableBankError):
    """Raised when a referenced entity does not exist."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a foreign key reference is violated."""


class InvalidEntityStateError(TableBankError):
    """Raised when an entity is in an invalid state for the operation."""


class ConfigurationError(TableBankError):
    """Raised when configuration is invalid or missing."""


class SinkError(TableBankError):
    """Raised when a sink operation fails."""
