"""Domain enums for payment collection."""

from enum import Enum


class InstallmentStatus(str, Enum):
    """Installment payment status.

    Lifecycle:
        PENDING → PARTIALLY_PAID → PAID
        PENDING → PAID (single payment covering the balance)
    """

    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"

    def __str__(self) -> str:
        return self.value


class SaleStatus(str, Enum):
    """Status of a sale derived from its installments."""

    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"

    def __str__(self) -> str:
        return self.value


class DistributionMode(str, Enum):
    """How a payment is spread across a client's sales."""

    AUTO = "auto"  # Greedy, smallest pending balance first
    MANUAL = "manual"  # Caller sets a target received amount per sale

    def __str__(self) -> str:
        return self.value


class OfflineActionType(str, Enum):
    """Kinds of mutating actions that can wait in the offline queue."""

    DISTRIBUTE_PAYMENT = "DISTRIBUTE_PAYMENT"

    def __str__(self) -> str:
        return self.value


class ReplayOutcome(str, Enum):
    """Result of settling one queued action."""

    APPLIED = "applied"
    PARTIALLY_APPLIED = "partially_applied"
    RETRYING = "retrying"
    ABANDONED = "abandoned"

    def __str__(self) -> str:
        return self.value
