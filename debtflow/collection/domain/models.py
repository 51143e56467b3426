"""Database entities for collection tracking.

Mapped to the billing table (one row per installment) and to the append-only
``sale_payments`` history. Domain logic works on the immutable value objects;
these rows only convert to and from them.
"""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, Enum, Integer, Numeric, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from ...storage.database.base import Base
from .enums import InstallmentStatus
from .value_objects import (
    DistributionDetail,
    Installment,
    InstallmentUpdate,
    PaymentRecord,
    installment_status_for,
)


class InstallmentRow(Base):
    """One installment of a client's sale.

    Attributes:
        sale_number: Sale the installment belongs to (NULL for renegotiated debt)
        client_document: Client tax document, the client identity
        installment_number: Position of the installment in the sale plan
        original_amount: Face value, immutable after import
        received_amount: Running total received
        status: Last persisted status
        received_date: Date of the last payment applied
    """

    __tablename__ = "installments"

    sale_number: Mapped[int | None] = mapped_column(Integer, index=True)
    client_document: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    client_name: Mapped[str | None] = mapped_column(String(200))
    store_name: Mapped[str | None] = mapped_column(String(200))
    installment_number: Mapped[int | None] = mapped_column(Integer)

    due_date: Mapped[date | None] = mapped_column(Date)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    received_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    status: Mapped[InstallmentStatus] = mapped_column(
        Enum(InstallmentStatus), nullable=False, default=InstallmentStatus.PENDING, index=True
    )
    received_date: Mapped[date | None] = mapped_column(Date)

    def to_value(self) -> Installment:
        """Snapshot of the current row state."""
        return Installment(
            id=self.id,
            client_document=self.client_document,
            original_amount=Decimal(str(self.original_amount)),
            received_amount=Decimal(str(self.received_amount or 0)),
            sale_number=self.sale_number,
            installment_number=self.installment_number,
            due_date=self.due_date,
            received_date=self.received_date,
            client_name=self.client_name,
            store_name=self.store_name,
        )

    def apply_update(self, update: InstallmentUpdate) -> None:
        """Write a computed update onto this row."""
        if update.installment_id != self.id:
            raise ValueError(
                f"Update for installment {update.installment_id} applied to row {self.id}"
            )
        self.received_amount = update.new_received
        self.status = update.new_status
        self.received_date = update.received_date

    def refresh_status(self) -> None:
        """Recompute status from the stored amounts."""
        self.status = installment_status_for(
            Decimal(str(self.original_amount)), Decimal(str(self.received_amount or 0))
        )

    def __repr__(self) -> str:
        return (
            f"<InstallmentRow(id={self.id}, sale_number={self.sale_number}, "
            f"received={self.received_amount}/{self.original_amount}, "
            f"status='{self.status.value if self.status else None}')>"
        )


def _derive_status_on_insert(mapper, connection, target: InstallmentRow) -> None:
    """Imported rows get a status consistent with their amounts."""
    target.refresh_status()


event.listen(InstallmentRow, "before_insert", _derive_status_on_insert)


class SalePaymentRow(Base):
    """Persisted payment record (audit trail, never updated)."""

    __tablename__ = "sale_payments"

    payment_id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4())
    )
    sale_number: Mapped[int | None] = mapped_column(Integer, index=True)
    client_document: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    collector_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    mismatch_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    distribution_details: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "SalePaymentRow":
        return cls(
            payment_id=record.id,
            sale_number=record.sale_number,
            client_document=record.client_document,
            payment_amount=record.payment_amount,
            payment_date=record.payment_date,
            payment_method=record.payment_method,
            notes=record.notes,
            collector_id=record.collector_id,
            mismatch_confirmed=record.mismatch_confirmed,
            distribution_details=[d.to_dict() for d in record.distribution_details],
        )

    def to_record(self) -> PaymentRecord:
        return PaymentRecord(
            id=self.payment_id,
            client_document=self.client_document,
            payment_amount=Decimal(str(self.payment_amount)),
            payment_date=self.payment_date,
            payment_method=self.payment_method,
            collector_id=self.collector_id,
            distribution_details=tuple(
                DistributionDetail.from_dict(d) for d in (self.distribution_details or [])
            ),
            sale_number=self.sale_number,
            notes=self.notes or "",
            mismatch_confirmed=self.mismatch_confirmed,
        )

    def __repr__(self) -> str:
        return (
            f"<SalePaymentRow(payment_id='{self.payment_id}', "
            f"client_document='{self.client_document}', amount={self.payment_amount})>"
        )
