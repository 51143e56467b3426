"""Tests for the SQLAlchemy collection gateway."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from debtflow.collection.domain.enums import InstallmentStatus
from debtflow.collection.domain.models import InstallmentRow
from debtflow.collection.domain.value_objects import (
    DistributionDetail,
    InstallmentUpdate,
    PaymentRecord,
)
from debtflow.collection.infrastructure.gateway import SqlAlchemyCollectionGateway
from debtflow.exceptions import PersistenceError, RecordNotFoundError

pytestmark = pytest.mark.unit

CLIENT = "12345678900"


@pytest.fixture
def gateway(db_session) -> SqlAlchemyCollectionGateway:
    return SqlAlchemyCollectionGateway(db_session)


def _update(installment_id: int, previous: str, applied: str, original: str = "100"):
    new_received = Decimal(previous) + Decimal(applied)
    return InstallmentUpdate(
        installment_id=installment_id,
        sale_number=1,
        original_amount=Decimal(original),
        previous_received=Decimal(previous),
        applied_amount=Decimal(applied),
        new_received=new_received,
        new_status=(
            InstallmentStatus.PAID
            if new_received >= Decimal(original)
            else InstallmentStatus.PARTIALLY_PAID
        ),
        received_date=date(2024, 3, 15),
    )


def _record(payment_id: str, payment_date: date, amount: str = "40") -> PaymentRecord:
    return PaymentRecord(
        id=payment_id,
        client_document=CLIENT,
        payment_amount=Decimal(amount),
        payment_date=payment_date,
        payment_method="pix",
        collector_id="c-01",
        distribution_details=(
            DistributionDetail(
                installment_id=1,
                sale_number=1,
                original_amount=Decimal("100"),
                applied_amount=Decimal(amount),
                installment_status=InstallmentStatus.PARTIALLY_PAID,
            ),
        ),
        sale_number=1,
        notes="cobranca",
    )


class TestFetchInstallments:
    """Tests for reading installments."""

    def test_fetch_client_installments(self, gateway, seed_installments):
        seed_installments([(1, "100", "0"), (None, "50", "20")])
        seed_installments([(9, "10", "0")], client_document="99999999999")

        installments = gateway.fetch_installments(CLIENT)

        assert [i.sale_number for i in installments] == [1, None]
        assert installments[1].received_amount == Decimal("20")
        assert installments[1].status == InstallmentStatus.PARTIALLY_PAID
        assert installments[0].client_name == "Maria Souza"

    def test_fetch_unknown_client(self, gateway):
        assert gateway.fetch_installments("00000000000") == []


class TestPersistInstallmentUpdate:
    """Tests for single installment writes."""

    def test_update_is_committed(self, gateway, seed_installments, db_session):
        (row,) = seed_installments([(1, "100", "0")])

        stored = gateway.persist_installment_update(_update(row.id, "0", "40"))

        assert stored.received_amount == Decimal("40")
        assert stored.received_date == date(2024, 3, 15)
        db_session.expire_all()
        persisted = db_session.get(InstallmentRow, row.id)
        assert persisted.received_amount == Decimal("40")
        assert persisted.status == InstallmentStatus.PARTIALLY_PAID

    def test_missing_installment(self, gateway):
        with pytest.raises(RecordNotFoundError) as exc_info:
            gateway.persist_installment_update(_update(404, "0", "10"))

        assert exc_info.value.context["entity_id"] == "404"

    def test_database_error_is_wrapped(self, gateway, seed_installments, db_session, mocker):
        (row,) = seed_installments([(1, "100", "0")])
        mocker.patch.object(db_session, "commit", side_effect=SQLAlchemyError("database is locked"))
        rollback = mocker.spy(db_session, "rollback")

        with pytest.raises(PersistenceError, match="Failed to update installment"):
            gateway.persist_installment_update(_update(row.id, "0", "10"))

        rollback.assert_called_once()


class TestPaymentRecords:
    """Tests for the payment history."""

    def test_record_round_trip(self, gateway):
        gateway.persist_payment_record(_record("pay-1", date(2024, 3, 15)))

        (record,) = gateway.list_payment_records(CLIENT)

        assert record.id == "pay-1"
        assert record.payment_amount == Decimal("40")
        assert record.payment_method == "pix"
        assert record.notes == "cobranca"
        assert record.distribution_details[0].installment_status == InstallmentStatus.PARTIALLY_PAID
        assert record.is_balanced

    def test_history_is_oldest_first(self, gateway):
        gateway.persist_payment_record(_record("late", date(2024, 3, 20)))
        gateway.persist_payment_record(_record("early", date(2024, 3, 1)))

        assert [r.id for r in gateway.list_payment_records(CLIENT)] == ["early", "late"]

    def test_duplicate_record_is_rejected(self, gateway):
        gateway.persist_payment_record(_record("pay-1", date(2024, 3, 15)))

        with pytest.raises(PersistenceError, match="Failed to save payment record"):
            gateway.persist_payment_record(_record("pay-1", date(2024, 3, 16)))

        assert len(gateway.list_payment_records(CLIENT)) == 1
