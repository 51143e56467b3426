"""
Pytest configuration and global fixtures.

This module provides shared fixtures used across all tests: an in-memory
SQLite database, installment factories, and in-memory fakes for the
persistence gateway and the offline action store.
"""

import os
from collections.abc import Callable, Generator, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from debtflow.collection.domain.models import InstallmentRow
from debtflow.collection.domain.value_objects import (
    Installment,
    InstallmentUpdate,
    PaymentRecord,
    SaleGroup,
)
from debtflow.collection.infrastructure.action_store import InMemoryActionStore
from debtflow.collection.services.balance import group_sales
from debtflow.exceptions import PersistenceError
from debtflow.storage.database.base import Base

CLIENT_DOCUMENT = "12345678900"
PAYMENT_DATE = date(2024, 3, 15)


@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create a database session for testing.

    Each test gets a fresh session with automatic rollback.
    """
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()


# ============================================================================
# Installment factories
# ============================================================================


@pytest.fixture
def make_installment() -> Callable[..., Installment]:
    """Factory for installments with sequential ids."""
    counter = {"id": 0}

    def _make(
        original: Any,
        received: Any = "0",
        sale_number: int | None = 1,
        client_document: str = CLIENT_DOCUMENT,
        **kwargs: Any,
    ) -> Installment:
        counter["id"] += 1
        return Installment(
            id=kwargs.pop("id", counter["id"]),
            client_document=client_document,
            original_amount=Decimal(str(original)),
            received_amount=Decimal(str(received)),
            sale_number=sale_number,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_sale(make_installment) -> Callable[..., SaleGroup]:
    """Factory for a sale from (original, received) pairs."""

    def _make(sale_number: int, *lines: tuple[Any, Any]) -> SaleGroup:
        installments = [make_installment(o, r, sale_number=sale_number) for o, r in lines]
        return group_sales(installments)[0]

    return _make


@pytest.fixture
def seed_installments(db_session: Session) -> Callable[..., list[InstallmentRow]]:
    """Insert installment rows given as (sale_number, original, received) tuples."""

    def _seed(
        lines: Sequence[tuple[int | None, Any, Any]],
        client_document: str = CLIENT_DOCUMENT,
    ) -> list[InstallmentRow]:
        rows = [
            InstallmentRow(
                sale_number=sale_number,
                client_document=client_document,
                client_name="Maria Souza",
                store_name="Loja Centro",
                installment_number=index,
                original_amount=Decimal(str(original)),
                received_amount=Decimal(str(received)),
            )
            for index, (sale_number, original, received) in enumerate(lines, start=1)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


# ============================================================================
# In-memory fakes
# ============================================================================


class FakeCollectionGateway:
    """In-memory gateway with failure injection.

    Attributes:
        fail_installments: Installment ids whose update raises PersistenceError
        fail_update_calls: Number of upcoming update calls that fail, whatever the id
        fail_records: Whether persisting a payment record fails
    """

    def __init__(self, installments: Sequence[Installment] = ()) -> None:
        self.installments: dict[int, Installment] = {i.id: i for i in installments}
        self.records: list[PaymentRecord] = []
        self.updates: list[InstallmentUpdate] = []
        self.fail_installments: set[int] = set()
        self.fail_update_calls = 0
        self.fail_records = False
        self.fetch_calls = 0

    def add(self, *installments: Installment) -> "FakeCollectionGateway":
        for installment in installments:
            self.installments[installment.id] = installment
        return self

    def fetch_installments(self, client_document: str) -> list[Installment]:
        self.fetch_calls += 1
        return [
            self.installments[key]
            for key in sorted(self.installments)
            if self.installments[key].client_document == client_document
        ]

    def persist_installment_update(self, update: InstallmentUpdate) -> Installment:
        if self.fail_update_calls > 0:
            self.fail_update_calls -= 1
            raise PersistenceError("backend unavailable")
        if update.installment_id in self.fail_installments:
            raise PersistenceError(f"cannot write installment {update.installment_id}")

        current = self.installments[update.installment_id]
        stored = replace(
            current,
            received_amount=update.new_received,
            received_date=update.received_date,
        )
        self.installments[update.installment_id] = stored
        self.updates.append(update)
        return stored

    def persist_payment_record(self, record: PaymentRecord) -> None:
        if self.fail_records:
            raise PersistenceError("sale_payments unavailable")
        self.records.append(record)

    def received(self, installment_id: int) -> Decimal:
        return self.installments[installment_id].received_amount


@pytest.fixture
def fake_gateway() -> FakeCollectionGateway:
    return FakeCollectionGateway()


@pytest.fixture
def action_store() -> InMemoryActionStore:
    return InMemoryActionStore()


@pytest.fixture
def no_sleep() -> Callable[[float], Any]:
    """Async sleep replacement that records requested delays."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables and the settings singleton after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)

    import debtflow.utils.config as config_module

    config_module._settings = None


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
