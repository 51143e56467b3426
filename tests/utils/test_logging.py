"""Tests for the structlog processors and correlation ids."""

import pytest

from debtflow.utils.logging import (
    add_correlation_id,
    clear_correlation_id,
    filter_sensitive_data,
    get_correlation_id,
    log_offline_action_abandoned,
    set_correlation_id,
)

pytestmark = pytest.mark.unit


class TestCorrelationId:
    def test_set_and_clear(self):
        correlation_id = set_correlation_id("action-1")

        assert correlation_id == "action-1"
        assert add_correlation_id(None, "info", {})["correlation_id"] == "action-1"

        clear_correlation_id()
        assert get_correlation_id() is None

    def test_generated_when_missing(self):
        correlation_id = set_correlation_id()

        assert len(correlation_id) == 36
        clear_correlation_id()

    def test_explicit_value_wins(self):
        set_correlation_id("outer")

        event = add_correlation_id(None, "info", {"correlation_id": "inner"})

        assert event["correlation_id"] == "inner"
        clear_correlation_id()


class TestSensitiveData:
    def test_client_document_is_masked(self):
        event = filter_sensitive_data(None, "info", {"client_document": "12345678900"})

        assert event["client_document"] == "*******8900"

    def test_secrets_are_redacted(self):
        event = filter_sensitive_data(None, "info", {"password": "hunter2", "amount": "10"})

        assert event == {"password": "***REDACTED***", "amount": "10"}


def test_abandoned_action_is_logged_at_error(mocker):
    logger = mocker.Mock()

    log_offline_action_abandoned(
        logger,
        action_id="a-1",
        client_document="12345678900",
        amount="80.00",
        attempts=4,
        last_error="backend unavailable",
    )

    logger.error.assert_called_once()
    (event,) = logger.error.call_args.args
    assert event == "offline_action_abandoned"
    assert logger.error.call_args.kwargs["requires_manual_reentry"] is True
