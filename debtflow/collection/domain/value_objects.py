"""Domain value objects for payment distribution.

Value Objects in DDD:
- Immutable (frozen dataclasses)
- No identity (equality based on attributes)
- Passed by value between the calculator, the engine and the applier
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from ...exceptions import ValidationError
from .enums import DistributionMode, InstallmentStatus, SaleStatus

# Currency rounding tolerance for every "is this paid off" comparison
EPSILON = Decimal("0.01")
ZERO = Decimal("0")

# Sale number used for installments that belong to no sale (renegotiated debt)
RENEGOTIATED_SALE_NUMBER = 0


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Convert a user or storage value to a finite Decimal.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", field=field_name, value=value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(
            f"{field_name} must be a number", field=field_name, value=value, original_error=e
        )
    if not result.is_finite():
        raise ValidationError(
            f"{field_name} must be finite", field=field_name, value=value, constraint="finite"
        )
    return result


def installment_status_for(original_amount: Decimal, received_amount: Decimal) -> InstallmentStatus:
    """Derive an installment status from its amounts."""
    if original_amount - received_amount <= EPSILON:
        return InstallmentStatus.PAID
    if received_amount > ZERO:
        return InstallmentStatus.PARTIALLY_PAID
    return InstallmentStatus.PENDING


def sale_status_for(total_value: Decimal, total_received: Decimal) -> SaleStatus:
    """Derive a sale status from its totals."""
    pending_value = max(ZERO, total_value - total_received)
    if pending_value <= EPSILON:
        return SaleStatus.FULLY_PAID
    if total_received > ZERO:
        return SaleStatus.PARTIALLY_PAID
    return SaleStatus.PENDING


@dataclass(frozen=True)
class Installment:
    """One scheduled debt payment line of a sale.

    The status is never stored on the object: it is always derived from the
    current amounts so it cannot drift.
    """

    id: int
    client_document: str
    original_amount: Decimal
    received_amount: Decimal = ZERO
    sale_number: int | None = None
    installment_number: int | None = None
    due_date: date | None = None
    received_date: date | None = None
    client_name: str | None = None
    store_name: str | None = None

    def __post_init__(self) -> None:
        """Normalize amounts and validate invariants."""
        original = to_decimal(self.original_amount, "original_amount")
        received = to_decimal(self.received_amount, "received_amount")
        if original < ZERO:
            raise ValidationError(
                "original_amount must be >= 0", field="original_amount", value=original
            )
        if received < ZERO:
            raise ValidationError(
                "received_amount must be >= 0", field="received_amount", value=received
            )
        object.__setattr__(self, "original_amount", original)
        object.__setattr__(self, "received_amount", received)

    @property
    def status(self) -> InstallmentStatus:
        return installment_status_for(self.original_amount, self.received_amount)

    @property
    def remaining_amount(self) -> Decimal:
        """Outstanding balance, never negative."""
        return max(ZERO, self.original_amount - self.received_amount)

    @property
    def sale_key(self) -> int:
        """Sale number used for grouping (renegotiated installments share 0)."""
        return self.sale_number or RENEGOTIATED_SALE_NUMBER


@dataclass(frozen=True)
class InstallmentBreakdown:
    """Per-installment line of a sale balance."""

    installment_id: int
    original_value: Decimal
    paid_value: Decimal
    remaining_value: Decimal
    status: InstallmentStatus


@dataclass(frozen=True)
class SaleBalance:
    """Totals and status of one sale at read time."""

    total_value: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    status: SaleStatus
    installment_breakdown: tuple[InstallmentBreakdown, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_value": str(self.total_value),
            "total_paid": str(self.total_paid),
            "remaining_balance": str(self.remaining_balance),
            "status": self.status.value,
            "installment_breakdown": [
                {
                    "installment_id": line.installment_id,
                    "original_value": str(line.original_value),
                    "paid_value": str(line.paid_value),
                    "remaining_value": str(line.remaining_value),
                    "status": line.status.value,
                }
                for line in self.installment_breakdown
            ],
        }


@dataclass(frozen=True)
class SaleGroup:
    """Installments sharing a sale number and client document.

    Derived on demand and never stored, so it always reflects the
    installments it was built from.
    """

    sale_number: int
    client_document: str
    installments: tuple[Installment, ...] = ()

    @property
    def total_value(self) -> Decimal:
        return sum((i.original_amount for i in self.installments), ZERO)

    @property
    def total_received(self) -> Decimal:
        return sum((i.received_amount for i in self.installments), ZERO)

    @property
    def pending_value(self) -> Decimal:
        return max(ZERO, self.total_value - self.total_received)

    @property
    def status(self) -> SaleStatus:
        if not self.installments:
            return SaleStatus.PENDING
        return sale_status_for(self.total_value, self.total_received)

    @property
    def is_renegotiated(self) -> bool:
        return self.sale_number == RENEGOTIATED_SALE_NUMBER

    @property
    def description(self) -> str:
        if self.is_renegotiated:
            count = len(self.installments)
            return f"Renegociada ({count} parcela{'s' if count != 1 else ''})"
        return f"Venda {self.sale_number}"


@dataclass(frozen=True)
class ClientBalanceSummary:
    """Totals across every sale of one client."""

    client_document: str
    total_value: Decimal
    total_received: Decimal
    total_pending: Decimal
    sale_count: int
    fully_paid_count: int
    partially_paid_count: int
    pending_count: int


@dataclass(frozen=True)
class SaleDistributionItem:
    """Share of a payment assigned to one sale."""

    sale: SaleGroup
    current_received: Decimal
    new_amount: Decimal
    applied_amount: Decimal

    @property
    def sale_number(self) -> int:
        return self.sale.sale_number

    def to_dict(self) -> dict[str, Any]:
        return {
            "sale_number": self.sale_number,
            "current_received": str(self.current_received),
            "new_amount": str(self.new_amount),
            "applied_amount": str(self.applied_amount),
        }


@dataclass(frozen=True)
class DistributionResult:
    """Computed allocation of a payment across sales.

    ``unapplied`` is the part of the amount no sale could absorb; it is
    reported, never silently applied.
    """

    amount: Decimal
    mode: DistributionMode
    items: tuple[SaleDistributionItem, ...] = ()

    @property
    def total_distributed(self) -> Decimal:
        return sum((item.applied_amount for item in self.items), ZERO)

    @property
    def unapplied(self) -> Decimal:
        return max(ZERO, self.amount - self.total_distributed)

    @property
    def difference(self) -> Decimal:
        """Distributed total minus entered amount."""
        return self.total_distributed - self.amount

    @property
    def requires_confirmation(self) -> bool:
        return abs(self.difference) > EPSILON

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": str(self.amount),
            "mode": self.mode.value,
            "items": [item.to_dict() for item in self.items],
            "total_distributed": str(self.total_distributed),
            "unapplied": str(self.unapplied),
            "requires_confirmation": self.requires_confirmation,
        }


@dataclass(frozen=True)
class InstallmentUpdate:
    """A concrete mutation for one installment."""

    installment_id: int
    sale_number: int
    original_amount: Decimal
    previous_received: Decimal
    applied_amount: Decimal
    new_received: Decimal
    new_status: InstallmentStatus
    received_date: date
    overpaid: bool = False


@dataclass(frozen=True)
class DistributionDetail:
    """Audit line of a payment record."""

    installment_id: int
    sale_number: int
    original_amount: Decimal
    applied_amount: Decimal
    installment_status: InstallmentStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "installment_id": self.installment_id,
            "sale_number": self.sale_number,
            "original_amount": str(self.original_amount),
            "applied_amount": str(self.applied_amount),
            "installment_status": self.installment_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DistributionDetail":
        return cls(
            installment_id=int(data["installment_id"]),
            sale_number=int(data["sale_number"]),
            original_amount=to_decimal(data["original_amount"], "original_amount"),
            applied_amount=to_decimal(data["applied_amount"], "applied_amount"),
            installment_status=InstallmentStatus(data["installment_status"]),
        )


@dataclass(frozen=True)
class PaymentRecord:
    """Append-only audit record of one confirmed distribution.

    ``sale_number`` is None when the payment was spread across several sales.
    """

    id: str
    client_document: str
    payment_amount: Decimal
    payment_date: date
    payment_method: str
    collector_id: str
    distribution_details: tuple[DistributionDetail, ...] = ()
    sale_number: int | None = None
    notes: str = ""
    mismatch_confirmed: bool = False

    @property
    def applied_total(self) -> Decimal:
        return sum((d.applied_amount for d in self.distribution_details), ZERO)

    @property
    def is_balanced(self) -> bool:
        return abs(self.applied_total - self.payment_amount) <= EPSILON

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "client_document": self.client_document,
            "payment_amount": str(self.payment_amount),
            "payment_date": self.payment_date.isoformat(),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "collector_id": self.collector_id,
            "mismatch_confirmed": self.mismatch_confirmed,
            "distribution_details": [d.to_dict() for d in self.distribution_details],
        }


@dataclass(frozen=True)
class ReconciliationPlan:
    """Everything a confirmed distribution will write, in apply order."""

    payment_record: PaymentRecord
    installment_updates: tuple[InstallmentUpdate, ...] = ()
    unapplied: Decimal = ZERO

    @property
    def applied_total(self) -> Decimal:
        return sum((u.applied_amount for u in self.installment_updates), ZERO)

    @property
    def touched_sales(self) -> tuple[int, ...]:
        seen: dict[int, None] = {}
        for update in self.installment_updates:
            seen.setdefault(update.sale_number, None)
        return tuple(seen)

    @property
    def has_overpayment(self) -> bool:
        return any(u.overpaid for u in self.installment_updates)


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of submitting a payment, online or queued."""

    plan: ReconciliationPlan
    queued: bool = False
    action_id: str | None = None
    record_persisted: bool = False
    updated_installments: tuple[int, ...] = ()
    balances: dict[int, SaleBalance] = field(default_factory=dict)
