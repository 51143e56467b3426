"""Tests for the exception hierarchy."""

from decimal import Decimal

import pytest

from debtflow.exceptions import (
    BusinessLogicError,
    ConsistencyWarning,
    DebtFlowError,
    PaymentPersistenceError,
    PersistenceError,
    RecordNotFoundError,
    ReplayExhaustedError,
    ValidationError,
    wrap_exception,
)

pytestmark = pytest.mark.unit


def test_context_in_message():
    error = ValidationError("Invalid amount", field="amount", value="abc", constraint="> 0")

    assert str(error) == "Invalid amount (field=amount, value=abc, constraint=> 0)"
    assert error.message == "Invalid amount"


def test_consistency_warning_difference():
    warning = ConsistencyWarning("mismatch", amount=Decimal("100"), distributed=Decimal("80"))

    assert isinstance(warning, BusinessLogicError)
    assert warning.difference == Decimal("-20")
    assert ConsistencyWarning("mismatch").difference is None


def test_payment_persistence_error_lists_outcomes():
    error = PaymentPersistenceError("partial", succeeded=[1, 2], failed={3: "timeout"})

    assert isinstance(error, PersistenceError)
    assert error.succeeded == [1, 2]
    assert error.failed == {3: "timeout"}
    assert not error.record_persisted
    assert error.context == {"succeeded_count": 2, "failed_count": 1}


def test_replay_exhausted_truncates_last_error():
    error = ReplayExhaustedError("abandoned", action_id="a-1", attempts=4, last_error="x" * 500)

    assert error.last_error == "x" * 500
    assert len(error.context["last_error"]) == 200
    assert error.context["attempts"] == 4


def test_record_not_found_is_persistence_error():
    error = RecordNotFoundError("missing", entity_type="Installment", entity_id=7)

    assert isinstance(error, PersistenceError)
    assert error.context == {"entity_type": "Installment", "entity_id": "7"}


def test_wrap_exception():
    cause = OSError("disk full")

    wrapped = wrap_exception(cause, "Failed to write", exception_class=PersistenceError, path="/q")

    assert isinstance(wrapped, PersistenceError)
    assert wrapped.original_error is cause
    assert str(wrapped) == "Failed to write (path=/q) [caused by: OSError]"
    assert isinstance(wrap_exception(cause, "generic"), DebtFlowError)
