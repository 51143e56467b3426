"""Standardized exception hierarchy for DebtFlow.

All exceptions carry structured context so they can be logged with
structlog without losing detail.

Usage:
    from debtflow.exceptions import ValidationError

    try:
        service.submit(request)
    except ValidationError as e:
        logger.error("payment_rejected", error=str(e), context=e.context)
"""

from __future__ import annotations

from typing import Any


class DebtFlowError(Exception):
    """Base exception for all DebtFlow errors.

    Attributes:
        message: Human-readable error message
        context: Additional context for debugging (dict)
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Format exception with context for logging."""
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        if self.original_error:
            base = f"{base} [caused by: {type(self.original_error).__name__}]"
        return base

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# =============================================================================
# Validation & Input Errors
# =============================================================================


class ValidationError(DebtFlowError):
    """Raised when input validation fails.

    Used for non-positive payment amounts, empty sale sets and malformed
    manual overrides. The caller must block the submission.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        if constraint:
            context["constraint"] = constraint
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class ConfigurationError(DebtFlowError):
    """Raised when application configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if setting:
            context["setting"] = setting
        if expected:
            context["expected"] = expected
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Business Logic Errors
# =============================================================================


class BusinessLogicError(DebtFlowError):
    """Base class for business rule violations."""


class ConsistencyWarning(BusinessLogicError):
    """Raised when the distributed total differs from the entered amount.

    Not fatal: the caller asks the user for confirmation and resubmits with
    the mismatch explicitly confirmed.
    """

    def __init__(
        self,
        message: str,
        *,
        amount: Any = None,
        distributed: Any = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if amount is not None:
            context["amount"] = str(amount)
        if distributed is not None:
            context["distributed"] = str(distributed)
        kwargs["context"] = context
        super().__init__(message, **kwargs)
        self.amount = amount
        self.distributed = distributed

    @property
    def difference(self) -> Any:
        """Distributed total minus entered amount."""
        if self.amount is None or self.distributed is None:
            return None
        return self.distributed - self.amount


class PaymentError(BusinessLogicError):
    """Raised when a payment cannot be processed."""


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(DebtFlowError):
    """Raised when a write or read against the persistence gateway fails."""


class RecordNotFoundError(PersistenceError):
    """Raised when a record is not found.

    Args:
        entity_type: Type of entity (e.g., "Installment")
        entity_id: ID of the missing entity
    """

    def __init__(
        self,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: int | str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if entity_type:
            context["entity_type"] = entity_type
        if entity_id is not None:
            context["entity_id"] = str(entity_id)
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class PaymentPersistenceError(PersistenceError):
    """Raised when some installment updates of a payment could not be written.

    Nothing is rolled back: ``succeeded`` lists the installments already
    written, ``failed`` maps each failing installment to its error message.
    ``record_persisted`` tells whether a history record covering only the
    succeeded installments was saved.
    """

    def __init__(
        self,
        message: str,
        *,
        succeeded: list[int] | None = None,
        failed: dict[int, str] | None = None,
        record_persisted: bool = False,
        **kwargs: Any,
    ) -> None:
        self.succeeded = list(succeeded or [])
        self.failed = dict(failed or {})
        self.record_persisted = record_persisted
        context = kwargs.get("context", {})
        context["succeeded_count"] = len(self.succeeded)
        context["failed_count"] = len(self.failed)
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Offline Queue Errors
# =============================================================================


class ReplayExhaustedError(DebtFlowError):
    """Raised when a queued offline action is abandoned.

    The intended payment is lost unless the user re-enters it manually.
    """

    def __init__(
        self,
        message: str,
        *,
        action_id: str | None = None,
        attempts: int | None = None,
        last_error: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if action_id:
            context["action_id"] = action_id
        if attempts is not None:
            context["attempts"] = attempts
        if last_error:
            context["last_error"] = last_error[:200]
        kwargs["context"] = context
        super().__init__(message, **kwargs)
        self.action_id = action_id
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    error: Exception,
    message: str,
    *,
    exception_class: type[DebtFlowError] = DebtFlowError,
    **context: Any,
) -> DebtFlowError:
    """Wrap an external exception in the DebtFlow hierarchy.

    Example:
        try:
            session.commit()
        except SQLAlchemyError as e:
            raise wrap_exception(
                e,
                "Failed to update installment",
                exception_class=PersistenceError,
                installment_id=42,
            )
    """
    return exception_class(
        message,
        context=context,
        original_error=error,
    )


__all__ = [
    "DebtFlowError",
    "ValidationError",
    "ConfigurationError",
    "BusinessLogicError",
    "ConsistencyWarning",
    "PaymentError",
    "PersistenceError",
    "RecordNotFoundError",
    "PaymentPersistenceError",
    "ReplayExhaustedError",
    "wrap_exception",
]
