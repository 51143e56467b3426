"""Tests for the collection CLI commands."""

from decimal import Decimal

import pytest
from typer.testing import CliRunner

from debtflow.collection.cli import collection_cli
from debtflow.collection.cli.collection_cli import app
from debtflow.collection.domain.models import InstallmentRow, SalePaymentRow
from debtflow.storage.database.base import init_db
from debtflow.storage.session import db_session
from debtflow.utils.config import reload_settings

pytestmark = pytest.mark.unit

runner = CliRunner()
CLIENT = "12345678900"


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point settings at a temporary database and queue."""
    monkeypatch.setenv("DEBTFLOW_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DEBTFLOW_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("DEBTFLOW_OFFLINE_QUEUE_PATH", str(tmp_path / "queue.json"))
    monkeypatch.setenv("DEBTFLOW_LOG_LEVEL", "WARNING")
    settings = reload_settings()
    monkeypatch.setattr(collection_cli.console, "width", 200)
    return settings


@pytest.fixture
def seeded(cli_env):
    """Sale 1 pending 100, sale 2 pending 30."""
    init_db(cli_env.database_url)
    with db_session() as session:
        rows = [
            InstallmentRow(
                sale_number=1,
                client_document=CLIENT,
                installment_number=1,
                original_amount=Decimal("100"),
                received_amount=Decimal("0"),
            ),
            InstallmentRow(
                sale_number=2,
                client_document=CLIENT,
                installment_number=1,
                original_amount=Decimal("50"),
                received_amount=Decimal("20"),
            ),
        ]
        session.add_all(rows)
        session.commit()
    return cli_env


def _received() -> dict[int, Decimal]:
    init_db(reload_settings().database_url)
    with db_session() as session:
        rows = session.query(InstallmentRow).order_by(InstallmentRow.id).all()
        return {row.sale_number: Decimal(str(row.received_amount)) for row in rows}


def _record_count() -> int:
    with db_session() as session:
        return session.query(SalePaymentRow).count()


class TestVersionAndInit:
    """Tests for the app callback and init-db."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "version" in result.stdout

    def test_init_db(self, cli_env):
        result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        assert "Database ready" in result.stdout
        assert (cli_env.data_dir / "cli.db").exists()


class TestBalanceCommand:
    """Tests for 'debtflow balance'."""

    def test_balance_lists_sales(self, seeded):
        result = runner.invoke(app, ["balance", CLIENT])

        assert result.exit_code == 0
        assert "Venda 1" in result.stdout
        assert "Venda 2" in result.stdout
        assert "R$ 130.00" in result.stdout
        assert "0/2 paid" in result.stdout

    def test_balance_with_installments(self, seeded):
        result = runner.invoke(app, ["balance", CLIENT, "--installments"])

        assert result.exit_code == 0
        assert "partially_paid" in result.stdout

    def test_unknown_client(self, seeded):
        result = runner.invoke(app, ["balance", "00000000000"])

        assert result.exit_code == 1
        assert "No installments found" in result.stdout


class TestPreviewCommand:
    """Tests for 'debtflow preview'."""

    def test_preview_auto(self, seeded):
        result = runner.invoke(app, ["preview", CLIENT, "50"])

        assert result.exit_code == 0
        assert "Distribution (auto)" in result.stdout
        assert "R$ 30.00" in result.stdout
        assert "R$ 20.00" in result.stdout
        assert _received() == {1: Decimal("0"), 2: Decimal("20")}

    def test_preview_manual_mismatch_warning(self, seeded):
        result = runner.invoke(app, ["preview", CLIENT, "50", "--mode", "manual", "--set", "1=10"])

        assert result.exit_code == 0
        assert "differs from the amount" in result.stdout

    def test_bad_override(self, seeded):
        result = runner.invoke(app, ["preview", CLIENT, "50", "--mode", "manual", "--set", "1:10"])

        assert result.exit_code == 2


class TestPayCommand:
    """Tests for 'debtflow pay'."""

    def test_pay_auto(self, seeded):
        result = runner.invoke(app, ["pay", CLIENT, "50", "--collector", "c-01"])

        assert result.exit_code == 0
        assert "Installments updated" in result.stdout
        assert _received() == {1: Decimal("20"), 2: Decimal("50")}
        assert _record_count() == 1

    def test_pay_requires_collector(self, seeded):
        result = runner.invoke(app, ["pay", CLIENT, "50"])

        assert result.exit_code == 2

    def test_invalid_amount(self, seeded):
        result = runner.invoke(app, ["pay", CLIENT, "abc", "-c", "c-01"])

        assert result.exit_code == 1
        assert _record_count() == 0

    def test_mismatch_declined(self, seeded, mocker):
        mocker.patch.object(collection_cli.Confirm, "ask", return_value=False)

        result = runner.invoke(app, ["pay", CLIENT, "500", "-c", "c-01"])

        assert result.exit_code == 1
        assert "Cancelled" in result.stdout
        assert _received() == {1: Decimal("0"), 2: Decimal("20")}

    def test_mismatch_confirmed_interactively(self, seeded, mocker):
        ask = mocker.patch.object(collection_cli.Confirm, "ask", return_value=True)

        result = runner.invoke(app, ["pay", CLIENT, "500", "-c", "c-01"])

        assert result.exit_code == 0
        ask.assert_called_once()
        assert "Unapplied: R$ 370.00" in result.stdout
        assert _received() == {1: Decimal("100"), 2: Decimal("50")}

    def test_mismatch_accepted_with_yes(self, seeded):
        result = runner.invoke(app, ["pay", CLIENT, "500", "-c", "c-01", "--yes"])

        assert result.exit_code == 0
        assert _record_count() == 1

    def test_history_after_payment(self, seeded):
        runner.invoke(app, ["pay", CLIENT, "50", "-c", "c-01", "--method", "pix"])

        result = runner.invoke(app, ["history", CLIENT])

        assert result.exit_code == 0
        assert "R$ 50.00" in result.stdout
        assert "pix" in result.stdout
        assert "several" in result.stdout

    def test_empty_history(self, seeded):
        result = runner.invoke(app, ["history", CLIENT])

        assert result.exit_code == 0
        assert "No payments recorded" in result.stdout


class TestQueueCommands:
    """Tests for offline queueing and synchronization."""

    def test_offline_payment_then_sync(self, seeded):
        queued = runner.invoke(app, ["pay", CLIENT, "50", "-c", "c-01", "--offline"])
        assert queued.exit_code == 0
        assert "Payment queued" in queued.stdout
        assert _received() == {1: Decimal("0"), 2: Decimal("20")}

        listed = runner.invoke(app, ["queue", "list"])
        assert listed.exit_code == 0
        assert "Offline queue (1)" in listed.stdout
        assert "R$ 50.00" in listed.stdout

        synced = runner.invoke(app, ["queue", "sync"])
        assert synced.exit_code == 0
        assert "Applied: 1" in synced.stdout
        assert _received() == {1: Decimal("20"), 2: Decimal("50")}
        assert _record_count() == 1

        assert "Offline queue is empty" in runner.invoke(app, ["queue", "list"]).stdout

    def test_sync_reports_unapplied_shortfall(self, seeded):
        runner.invoke(app, ["pay", CLIENT, "100", "-c", "c-01", "--offline"])
        runner.invoke(app, ["pay", CLIENT, "100", "-c", "c-01", "--offline"])

        result = runner.invoke(app, ["queue", "sync"])

        assert result.exit_code == 0
        assert "Applied: 2" in result.stdout
        assert "unapplied R$ 70.00" in result.stdout
        assert _received() == {1: Decimal("100"), 2: Decimal("50")}
        assert _record_count() == 2

    def test_sync_empty_queue(self, seeded):
        result = runner.invoke(app, ["queue", "sync"])

        assert result.exit_code == 0
        assert "Nothing to synchronize" in result.stdout

    def test_sync_reports_abandoned(self, seeded):
        runner.invoke(app, ["pay", CLIENT, "50", "-c", "c-01", "--offline"])
        with db_session() as session:
            session.query(InstallmentRow).delete()
            session.commit()

        result = runner.invoke(app, ["queue", "sync"])

        assert result.exit_code == 1
        assert "Abandoned: 1" in result.stdout

    def test_clear_with_yes(self, seeded):
        runner.invoke(app, ["pay", CLIENT, "50", "-c", "c-01", "--offline"])
        runner.invoke(app, ["pay", CLIENT, "10", "-c", "c-01", "--offline"])

        result = runner.invoke(app, ["queue", "clear", "--yes"])

        assert result.exit_code == 0
        assert "Discarded 2" in result.stdout
        assert "Offline queue is empty" in runner.invoke(app, ["queue", "list"]).stdout

    def test_clear_declined(self, seeded, mocker):
        runner.invoke(app, ["pay", CLIENT, "50", "-c", "c-01", "--offline"])
        mocker.patch.object(collection_cli.Confirm, "ask", return_value=False)

        result = runner.invoke(app, ["queue", "clear"])

        assert result.exit_code == 1
        assert "Offline queue (1)" in runner.invoke(app, ["queue", "list"]).stdout
