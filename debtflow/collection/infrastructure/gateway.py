"""Persistence gateway for installments and payment records.

The services only talk to the ``CollectionGateway`` protocol, so the same
distribution code runs against the SQL database, an in-memory fake in tests,
or any remote backend that can read installments and accept single writes.
"""

from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import PersistenceError, RecordNotFoundError, wrap_exception
from ...utils.logging import get_logger
from ..domain.models import InstallmentRow, SalePaymentRow
from ..domain.value_objects import Installment, InstallmentUpdate, PaymentRecord

logger = get_logger(__name__)


class CollectionGateway(Protocol):
    """Reads and writes needed by payment distribution.

    Every failure surfaces as ``PersistenceError`` (or a subclass).
    """

    def fetch_installments(self, client_document: str) -> Sequence[Installment]:
        """Current state of every installment of a client."""
        ...

    def persist_installment_update(self, update: InstallmentUpdate) -> Installment:
        """Write one installment mutation and return the stored state."""
        ...

    def persist_payment_record(self, record: PaymentRecord) -> None:
        """Append a payment record to the history."""
        ...


class SqlAlchemyCollectionGateway:
    """Gateway over the ``installments`` and ``sale_payments`` tables.

    Each write is committed on its own: a payment touching several
    installments is a sequence of independent writes, and a failure leaves
    the earlier ones in place.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def fetch_installments(self, client_document: str) -> list[Installment]:
        try:
            rows = self.session.scalars(
                select(InstallmentRow)
                .where(InstallmentRow.client_document == client_document)
                .order_by(InstallmentRow.id)
            ).all()
        except SQLAlchemyError as e:
            raise wrap_exception(
                e,
                "Failed to load installments",
                exception_class=PersistenceError,
                client_document=client_document,
            )

        logger.debug("installments_fetched", client_document=client_document, count=len(rows))
        return [row.to_value() for row in rows]

    def persist_installment_update(self, update: InstallmentUpdate) -> Installment:
        try:
            row = self.session.get(InstallmentRow, update.installment_id)
            if row is None:
                raise RecordNotFoundError(
                    f"Installment {update.installment_id} not found",
                    entity_type="Installment",
                    entity_id=update.installment_id,
                )

            row.apply_update(update)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise wrap_exception(
                e,
                "Failed to update installment",
                exception_class=PersistenceError,
                installment_id=update.installment_id,
            )

        logger.debug(
            "installment_updated",
            installment_id=update.installment_id,
            applied=str(update.applied_amount),
            status=update.new_status.value,
        )
        return row.to_value()

    def persist_payment_record(self, record: PaymentRecord) -> None:
        try:
            self.session.add(SalePaymentRow.from_record(record))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise wrap_exception(
                e,
                "Failed to save payment record",
                exception_class=PersistenceError,
                payment_id=record.id,
            )

    def list_payment_records(self, client_document: str) -> list[PaymentRecord]:
        """Payment history of a client, oldest first."""
        try:
            rows = self.session.scalars(
                select(SalePaymentRow)
                .where(SalePaymentRow.client_document == client_document)
                .order_by(SalePaymentRow.payment_date, SalePaymentRow.id)
            ).all()
        except SQLAlchemyError as e:
            raise wrap_exception(
                e,
                "Failed to load payment history",
                exception_class=PersistenceError,
                client_document=client_document,
            )
        return [row.to_record() for row in rows]
