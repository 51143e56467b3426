"""Collection CLI commands.

Commands for checking client balances, previewing and recording payments,
and synchronizing payments queued while offline.
"""

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Optional

import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from ... import __version__
from ...exceptions import ConsistencyWarning, DebtFlowError, PaymentPersistenceError
from ...storage.database.base import init_db
from ...storage.session import db_session
from ...utils.config import get_settings
from ...utils.logging import configure_logging, get_logger
from ..domain.enums import DistributionMode, InstallmentStatus, ReplayOutcome, SaleStatus
from ..domain.value_objects import DistributionResult, PaymentOutcome
from ..infrastructure.action_store import JsonFileActionStore
from ..infrastructure.gateway import SqlAlchemyCollectionGateway
from ..services.balance import calculate_sale_balance
from ..services.offline_replay import OfflineReplayAdapter
from ..services.payment_service import PaymentRequest, PaymentService

app = typer.Typer(
    name="debtflow",
    help="💸 Debt collection payments & sale balances",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
queue_app = typer.Typer(help="📴 Offline payment queue", no_args_is_help=True)
app.add_typer(queue_app, name="queue")

console = Console()
logger = get_logger(__name__)

_STATUS_STYLE = {
    SaleStatus.PENDING: "red",
    SaleStatus.PARTIALLY_PAID: "yellow",
    SaleStatus.FULLY_PAID: "green",
    InstallmentStatus.PENDING: "red",
    InstallmentStatus.PARTIALLY_PAID: "yellow",
    InstallmentStatus.PAID: "green",
}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]DebtFlow[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """DebtFlow - distribute collector payments across a client's sales."""
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.json_logs)


# ============================================================================
# Wiring
# ============================================================================


def _init_database() -> str:
    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    init_db(settings.database_url)
    return settings.database_url


def _offline_adapter(gateway: SqlAlchemyCollectionGateway) -> OfflineReplayAdapter:
    settings = get_settings()
    return OfflineReplayAdapter(
        JsonFileActionStore(settings.offline_queue_path),
        gateway,
        retry_config=settings.replay_retry_config(),
    )


@contextmanager
def _payment_service() -> Iterator[PaymentService]:
    _init_database()
    with db_session() as session:
        gateway = SqlAlchemyCollectionGateway(session)
        yield PaymentService(gateway, offline=_offline_adapter(gateway))


def _parse_overrides(values: list[str] | None) -> dict[int, str]:
    """Parse ``--set SALE=AMOUNT`` options."""
    overrides: dict[int, str] = {}
    for value in values or []:
        sale, sep, amount = value.partition("=")
        if not sep or not sale.strip().isdigit() or not amount.strip():
            raise typer.BadParameter(f"Expected SALE=AMOUNT, got '{value}'", param_hint="--set")
        overrides[int(sale)] = amount.strip()
    return overrides


def _money(value: Decimal) -> str:
    return f"R$ {value:,.2f}"


def _status(status: SaleStatus | InstallmentStatus) -> str:
    return f"[{_STATUS_STYLE[status]}]{status.value}[/]"


def _print_distribution(result: DistributionResult) -> None:
    table = Table(title=f"📊 Distribution ({result.mode.value})", show_header=True)
    table.add_column("Sale", style="cyan")
    table.add_column("Received", justify="right")
    table.add_column("Applied", justify="right", style="bold green")
    table.add_column("New received", justify="right")

    for item in result.items:
        table.add_row(
            item.sale.description,
            _money(item.current_received),
            _money(item.applied_amount),
            _money(item.new_amount),
        )
    console.print(table)
    console.print(f"Amount: {_money(result.amount)}  Distributed: {_money(result.total_distributed)}")

    if result.unapplied > 0:
        console.print(f"[yellow]⚠️  Not absorbed by any sale: {_money(result.unapplied)}[/]")
    if result.requires_confirmation:
        console.print(
            f"[yellow]⚠️  Distributed total differs from the amount by "
            f"{_money(abs(result.difference))}[/]"
        )


def _print_outcome(outcome: PaymentOutcome) -> None:
    if outcome.queued:
        console.print(f"[cyan]📴 Payment queued for synchronization (action {outcome.action_id})[/]")
        return

    table = Table(title="✅ Installments updated", show_header=True)
    table.add_column("Installment", style="cyan")
    table.add_column("Sale")
    table.add_column("Applied", justify="right", style="bold green")
    table.add_column("Received", justify="right")
    table.add_column("Status")
    for update in outcome.plan.installment_updates:
        table.add_row(
            str(update.installment_id),
            str(update.sale_number),
            _money(update.applied_amount),
            f"{_money(update.new_received)} / {_money(update.original_amount)}",
            _status(update.new_status) + (" [red](overpaid)[/]" if update.overpaid else ""),
        )
    console.print(table)

    for sale_number, balance in outcome.balances.items():
        console.print(
            f"  Sale {sale_number}: remaining {_money(balance.remaining_balance)} "
            f"{_status(balance.status)}"
        )

    if outcome.plan.unapplied > 0:
        console.print(f"[yellow]⚠️  Unapplied: {_money(outcome.plan.unapplied)}[/]")
    if not outcome.record_persisted:
        console.print("[yellow]⚠️  Payment history could not be saved; installments were updated[/]")


# ============================================================================
# COMMAND: balance
# ============================================================================


@app.command()
def balance(
    client_document: str = typer.Argument(..., help="Client document"),
    installments: bool = typer.Option(
        False, "--installments", "-i", help="Show every installment"
    ),
):
    """📋 Show the sales and outstanding balance of a client."""
    try:
        with _payment_service() as service:
            summary, sales = service.client_summary(client_document)
    except DebtFlowError as e:
        console.print(f"[red]✗ {e.message}[/]")
        raise typer.Exit(1)

    table = Table(title=f"📋 Sales of {client_document}", show_header=True)
    table.add_column("Sale", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Received", justify="right")
    table.add_column("Pending", justify="right", style="bold")
    table.add_column("Status")
    for sale in sales:
        table.add_row(
            sale.description,
            _money(sale.total_value),
            _money(sale.total_received),
            _money(sale.pending_value),
            _status(sale.status),
        )
    table.add_row("━" * 12, "", "", "", "")
    table.add_row(
        "[bold]Total[/]",
        _money(summary.total_value),
        _money(summary.total_received),
        _money(summary.total_pending),
        f"{summary.fully_paid_count}/{summary.sale_count} paid",
    )
    console.print(table)

    if installments:
        for sale in sales:
            detail = Table(title=sale.description, show_header=True)
            detail.add_column("Installment", style="cyan")
            detail.add_column("Original", justify="right")
            detail.add_column("Paid", justify="right")
            detail.add_column("Remaining", justify="right")
            detail.add_column("Status")
            for line in calculate_sale_balance(sale.installments).installment_breakdown:
                detail.add_row(
                    str(line.installment_id),
                    _money(line.original_value),
                    _money(line.paid_value),
                    _money(line.remaining_value),
                    _status(line.status),
                )
            console.print(detail)


# ============================================================================
# COMMAND: preview
# ============================================================================


@app.command()
def preview(
    client_document: str = typer.Argument(..., help="Client document"),
    amount: str = typer.Argument(..., help="Payment amount"),
    mode: DistributionMode = typer.Option(DistributionMode.AUTO, "--mode", "-m"),
    overrides: Optional[list[str]] = typer.Option(
        None, "--set", "-s", help="Manual target received amount, SALE=AMOUNT"
    ),
    sale_number: Optional[int] = typer.Option(None, "--sale", help="Restrict to one sale"),
):
    """🔍 Show how a payment would be distributed, without recording it."""
    request = PaymentRequest(
        client_document=client_document,
        amount=amount,
        collector_id="preview",
        mode=mode,
        manual_overrides=_parse_overrides(overrides),
        sale_number=sale_number,
    )
    try:
        with _payment_service() as service:
            result = service.preview(request)
    except DebtFlowError as e:
        console.print(f"[red]✗ {e.message}[/]")
        raise typer.Exit(1)

    if result.is_empty:
        console.print("[yellow]Nothing to distribute for this amount[/]")
        return
    _print_distribution(result)


# ============================================================================
# COMMAND: pay
# ============================================================================


@app.command()
def pay(
    client_document: str = typer.Argument(..., help="Client document"),
    amount: str = typer.Argument(..., help="Payment amount"),
    collector_id: str = typer.Option(..., "--collector", "-c", help="Collector id"),
    payment_method: Optional[str] = typer.Option(None, "--method", help="Payment method"),
    notes: str = typer.Option("", "--notes", "-n"),
    mode: DistributionMode = typer.Option(DistributionMode.AUTO, "--mode", "-m"),
    overrides: Optional[list[str]] = typer.Option(
        None, "--set", "-s", help="Manual target received amount, SALE=AMOUNT"
    ),
    sale_number: Optional[int] = typer.Option(None, "--sale", help="Restrict to one sale"),
    offline: bool = typer.Option(False, "--offline", help="Queue instead of writing now"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept an amount mismatch"),
    allow_overpayment: bool = typer.Option(
        False, "--allow-overpayment", help="Let a sale absorb more than its balance"
    ),
):
    """💰 Distribute and record a payment.

    Examples:
        # Automatic distribution, smallest balance first
        debtflow pay 12345678900 150.00 --collector c-01

        # Manual target for sale 7
        debtflow pay 12345678900 150.00 -c c-01 --mode manual --set 7=400
    """
    request = PaymentRequest(
        client_document=client_document,
        amount=amount,
        collector_id=collector_id,
        mode=mode,
        manual_overrides=_parse_overrides(overrides),
        sale_number=sale_number,
        payment_method=payment_method or get_settings().default_payment_method,
        notes=notes,
        confirm_mismatch=yes,
        allow_overpayment=allow_overpayment,
    )

    try:
        with _payment_service() as service:
            try:
                outcome = service.submit(request, online=not offline)
            except ConsistencyWarning as warning:
                console.print(
                    f"[yellow]⚠️  {warning.message} (difference {_money(warning.difference)})[/]"
                )
                if not Confirm.ask("Record the payment anyway?", default=False):
                    console.print("[dim]Cancelled[/]")
                    raise typer.Exit(1)
                request.confirm_mismatch = True
                outcome = service.submit(request, online=not offline)
    except PaymentPersistenceError as e:
        console.print(f"[red]✗ {e.message}[/]")
        console.print(f"  Written: {', '.join(map(str, e.succeeded)) or '-'}")
        for installment_id, error in e.failed.items():
            console.print(f"  [red]Failed {installment_id}: {error}[/]")
        if e.record_persisted:
            console.print("  History saved for the written installments only")
        raise typer.Exit(1)
    except DebtFlowError as e:
        console.print(f"[red]✗ {e.message}[/]")
        raise typer.Exit(1)

    _print_outcome(outcome)


# ============================================================================
# COMMAND: history
# ============================================================================


@app.command()
def history(client_document: str = typer.Argument(..., help="Client document")):
    """📜 List the recorded payments of a client."""
    _init_database()
    try:
        with db_session() as session:
            records = SqlAlchemyCollectionGateway(session).list_payment_records(client_document)
    except DebtFlowError as e:
        console.print(f"[red]✗ {e.message}[/]")
        raise typer.Exit(1)

    if not records:
        console.print("[dim]No payments recorded[/]")
        return

    table = Table(title=f"📜 Payments of {client_document}", show_header=True)
    table.add_column("Date")
    table.add_column("Amount", justify="right", style="bold")
    table.add_column("Sale")
    table.add_column("Method")
    table.add_column("Collector")
    table.add_column("Installments", justify="right")
    for record in records:
        table.add_row(
            record.payment_date.strftime("%d/%m/%Y"),
            _money(record.payment_amount),
            str(record.sale_number) if record.sale_number is not None else "several",
            record.payment_method,
            record.collector_id,
            str(len(record.distribution_details)),
        )
    console.print(table)


# ============================================================================
# COMMAND: init-db
# ============================================================================


@app.command(name="init-db")
def init_database():
    """🗄️  Create the database tables."""
    url = _init_database()
    console.print(f"[green]✓ Database ready: {url}[/]")


# ============================================================================
# QUEUE COMMANDS
# ============================================================================


@queue_app.command(name="list")
def queue_list():
    """List payments waiting for synchronization."""
    store = JsonFileActionStore(get_settings().offline_queue_path)
    actions = store.list()
    if not actions:
        console.print("[green]✅ Offline queue is empty[/]")
        return

    table = Table(title=f"📴 Offline queue ({len(actions)})", show_header=True)
    table.add_column("Action", style="dim")
    table.add_column("Queued at")
    table.add_column("Client", style="cyan")
    table.add_column("Amount", justify="right", style="bold")
    table.add_column("Mode")
    table.add_column("Retries", justify="right")
    table.add_column("Last error", style="red")
    for action in actions:
        table.add_row(
            action.id[:8],
            action.timestamp.strftime("%d/%m/%Y %H:%M"),
            action.data.client_document,
            _money(action.data.amount),
            action.data.mode.value,
            f"{action.retry_count}/{action.max_retries}",
            (action.last_error or "")[:40],
        )
    console.print(table)


@queue_app.command(name="sync")
def queue_sync():
    """Replay queued payments against the database."""
    _init_database()
    with db_session() as session:
        adapter = _offline_adapter(SqlAlchemyCollectionGateway(session))
        if not adapter.pending():
            console.print("[green]✅ Nothing to synchronize[/]")
            return
        report = asyncio.run(adapter.process_queue())

    console.print(f"[green]✅ Applied: {len(report.applied)}[/]")
    for result in report.applied:
        if result.outcome is ReplayOutcome.PARTIALLY_APPLIED:
            console.print(
                f"[yellow]⚠️  {result.action_id[:8]}: unapplied {_money(result.unapplied)}[/]"
            )
    if report.abandoned:
        console.print(f"[red]✗ Abandoned: {len(report.abandoned)} (re-enter manually)[/]")
        for error in report.abandoned:
            console.print(f"  • {error.action_id}: {error.last_error}")
        raise typer.Exit(1)


@queue_app.command(name="clear")
def queue_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Discard every queued payment."""
    store = JsonFileActionStore(get_settings().offline_queue_path)
    pending = len(store.list())
    if not pending:
        console.print("[green]✅ Offline queue is empty[/]")
        return
    if not yes and not Confirm.ask(f"Discard {pending} queued payment(s)?", default=False):
        console.print("[dim]Cancelled[/]")
        raise typer.Exit(1)

    removed = store.clear()
    logger.warning("offline_queue_cleared", discarded=removed)
    console.print(f"[yellow]🗑️  Discarded {removed} queued payment(s)[/]")


if __name__ == "__main__":
    app()
