"""Tests for collection database entities."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from debtflow.collection.domain.enums import InstallmentStatus
from debtflow.collection.domain.models import InstallmentRow, SalePaymentRow
from debtflow.collection.domain.value_objects import (
    DistributionDetail,
    InstallmentUpdate,
    PaymentRecord,
)

pytestmark = pytest.mark.unit


class TestInstallmentRow:
    """Tests for InstallmentRow."""

    def test_to_value_snapshot(self, seed_installments):
        row = seed_installments([(7, "100.00", "40.00")])[0]

        value = row.to_value()

        assert value.id == row.id
        assert value.sale_number == 7
        assert value.original_amount == Decimal("100.00")
        assert value.received_amount == Decimal("40.00")
        assert value.status == InstallmentStatus.PARTIALLY_PAID
        assert row.status == InstallmentStatus.PARTIALLY_PAID

    @pytest.mark.parametrize(
        ("received", "expected"),
        [
            ("0", InstallmentStatus.PENDING),
            ("60", InstallmentStatus.PARTIALLY_PAID),
            ("99.995", InstallmentStatus.PAID),
        ],
    )
    def test_status_derived_on_insert(self, db_session: Session, received, expected):
        row = InstallmentRow(
            sale_number=3,
            client_document="12345678900",
            original_amount=Decimal("100"),
            received_amount=Decimal(received),
            status=InstallmentStatus.PENDING,
        )

        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)

        assert row.status == expected

    def test_apply_update(self, db_session: Session, seed_installments):
        row = seed_installments([(7, "100", "40")])[0]
        update = InstallmentUpdate(
            installment_id=row.id,
            sale_number=7,
            original_amount=Decimal("100"),
            previous_received=Decimal("40"),
            applied_amount=Decimal("60"),
            new_received=Decimal("100"),
            new_status=InstallmentStatus.PAID,
            received_date=date(2024, 3, 15),
        )

        row.apply_update(update)
        db_session.commit()
        db_session.refresh(row)

        assert row.received_amount == Decimal("100")
        assert row.status == InstallmentStatus.PAID
        assert row.received_date == date(2024, 3, 15)

    def test_apply_update_rejects_other_installment(self, seed_installments):
        row = seed_installments([(7, "100", "0")])[0]
        update = InstallmentUpdate(
            installment_id=row.id + 1,
            sale_number=7,
            original_amount=Decimal("100"),
            previous_received=Decimal("0"),
            applied_amount=Decimal("10"),
            new_received=Decimal("10"),
            new_status=InstallmentStatus.PARTIALLY_PAID,
            received_date=date(2024, 3, 15),
        )

        with pytest.raises(ValueError):
            row.apply_update(update)


class TestSalePaymentRow:
    """Tests for SalePaymentRow."""

    def test_record_round_trip(self, db_session: Session):
        record = PaymentRecord(
            id="3f1c9a2e-0000-4000-8000-000000000001",
            client_document="12345678900",
            payment_amount=Decimal("150.00"),
            payment_date=date(2024, 3, 15),
            payment_method="pix",
            collector_id="c-01",
            distribution_details=(
                DistributionDetail(
                    installment_id=1,
                    sale_number=7,
                    original_amount=Decimal("100"),
                    applied_amount=Decimal("100"),
                    installment_status=InstallmentStatus.PAID,
                ),
                DistributionDetail(
                    installment_id=2,
                    sale_number=7,
                    original_amount=Decimal("100"),
                    applied_amount=Decimal("50"),
                    installment_status=InstallmentStatus.PARTIALLY_PAID,
                ),
            ),
            sale_number=7,
            notes="pagamento em loja",
        )

        db_session.add(SalePaymentRow.from_record(record))
        db_session.commit()

        stored = db_session.query(SalePaymentRow).one()
        assert stored.to_record() == record
