"""Payment submission service.

Orchestrates one collector payment end to end: load the client's sales,
compute the distribution, plan the installment updates, check consistency,
then either write everything through the gateway or park the payment in the
offline queue.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from ...exceptions import (
    ConfigurationError,
    ConsistencyWarning,
    PaymentError,
    PaymentPersistenceError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from ...utils.logging import LogPerformance, get_logger, log_payment_recorded
from ..domain.enums import DistributionMode
from ..domain.offline import DistributePaymentData, DistributionDetailData
from ..domain.value_objects import (
    EPSILON,
    ZERO,
    ClientBalanceSummary,
    DistributionResult,
    PaymentOutcome,
    PaymentRecord,
    ReconciliationPlan,
    SaleBalance,
    SaleGroup,
    to_decimal,
)
from ..infrastructure.gateway import CollectionGateway
from .balance import calculate_sale_balance, group_sales, summarize_client
from .distribution import compute_distribution
from .offline_replay import OfflineReplayAdapter
from .reconciliation import apply_distribution

logger = get_logger(__name__)


@dataclass
class PaymentRequest:
    """A payment as entered by the collector.

    Attributes:
        client_document: Client paying
        amount: Amount received
        collector_id: Collector recording the payment
        mode: "auto" or "manual" distribution
        manual_overrides: Target received amount per sale number (manual mode)
        sale_number: Restrict the payment to one sale
        confirm_mismatch: Accept a distributed total that differs from amount
        allow_overpayment: Let a sale absorb more than its balance
    """

    client_document: str
    amount: Any
    collector_id: str
    mode: DistributionMode | str = DistributionMode.AUTO
    manual_overrides: dict[int, Any] = field(default_factory=dict)
    sale_number: int | None = None
    payment_method: str = "dinheiro"
    notes: str = ""
    confirm_mismatch: bool = False
    allow_overpayment: bool = False


class PaymentService:
    """Preview and submit collector payments.

    Args:
        gateway: Backend holding installments and payment history
        offline: Offline queue used when submitting without connectivity
        clock: Returns the payment date
    """

    def __init__(
        self,
        gateway: CollectionGateway,
        offline: OfflineReplayAdapter | None = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.gateway = gateway
        self.offline = offline
        self.clock = clock

    def load_sales(self, client_document: str, sale_number: int | None = None) -> list[SaleGroup]:
        """Current sales of a client, optionally restricted to one sale.

        Raises:
            RecordNotFoundError: No installment matches
        """
        sales = group_sales(self.gateway.fetch_installments(client_document))
        if sale_number is not None:
            sales = [s for s in sales if s.sale_number == sale_number]

        if not sales:
            entity = "Client" if sale_number is None else "Sale"
            raise RecordNotFoundError(
                f"No installments found for {client_document}"
                + (f" sale {sale_number}" if sale_number is not None else ""),
                entity_type=entity,
                entity_id=client_document if sale_number is None else sale_number,
            )
        return sales

    def client_summary(self, client_document: str) -> tuple[ClientBalanceSummary, list[SaleGroup]]:
        """Totals panel and sales of a client."""
        sales = self.load_sales(client_document)
        return summarize_client(client_document, sales), sales

    def preview(self, request: PaymentRequest) -> DistributionResult:
        """Distribution the request would produce against the current state."""
        sales = self.load_sales(request.client_document, request.sale_number)
        return compute_distribution(sales, request.amount, request.mode, request.manual_overrides)

    def submit(self, request: PaymentRequest, online: bool = True) -> PaymentOutcome:
        """Distribute and record a payment.

        Args:
            request: Payment as entered by the collector
            online: Write through the gateway now, or queue for later replay

        Returns:
            PaymentOutcome with the plan and, online, the refreshed balances

        Raises:
            ValidationError: Invalid amount, collector or overrides
            ConsistencyWarning: Distributed total differs from the amount and
                the request does not confirm the mismatch
            PaymentError: Nothing left to pay on the selected sales
            PaymentPersistenceError: Some installment updates failed online
        """
        if not request.collector_id:
            raise ValidationError("A collector is required to record a payment", field="collector_id")

        amount = to_decimal(request.amount, "amount")
        if amount <= ZERO:
            raise ValidationError(
                "Payment amount must be greater than zero",
                field="amount",
                value=amount,
                constraint="> 0",
            )

        with LogPerformance("payment_submission", logger):
            sales = self.load_sales(request.client_document, request.sale_number)
            distribution = compute_distribution(
                sales, amount, request.mode, request.manual_overrides
            )
            if distribution.total_distributed <= ZERO:
                raise PaymentError(
                    "Nothing to distribute: the selected sales are fully paid",
                    context={"client_document": request.client_document},
                )

            plan = apply_distribution(
                distribution,
                request.collector_id,
                payment_date=self.clock(),
                payment_method=request.payment_method,
                notes=request.notes,
                allow_overpayment=request.allow_overpayment,
                mismatch_confirmed=request.confirm_mismatch,
            )

            if abs(plan.applied_total - amount) > EPSILON and not request.confirm_mismatch:
                raise ConsistencyWarning(
                    f"Distributed {plan.applied_total} differs from payment amount {amount}",
                    amount=amount,
                    distributed=plan.applied_total,
                )

            if not online:
                return self._queue(request, amount, distribution, plan)
            return self._persist(plan)

    def _queue(
        self,
        request: PaymentRequest,
        amount: Any,
        distribution: DistributionResult,
        plan: ReconciliationPlan,
    ) -> PaymentOutcome:
        if self.offline is None:
            raise ConfigurationError(
                "Offline queue is not configured", setting="offline_queue_path"
            )

        # Manual payments replay from the confirmed absolute targets
        targets = (
            {item.sale_number: item.new_amount for item in distribution.items}
            if distribution.mode is DistributionMode.MANUAL
            else {}
        )
        data = DistributePaymentData(
            client_document=request.client_document,
            sale_number=request.sale_number,
            amount=amount,
            mode=distribution.mode,
            manual_overrides=targets,
            payment_method=request.payment_method,
            notes=request.notes,
            collector_id=request.collector_id,
            confirm_mismatch=request.confirm_mismatch,
            allow_overpayment=request.allow_overpayment,
            distribution_details=[
                DistributionDetailData.from_detail(d)
                for d in plan.payment_record.distribution_details
            ],
        )
        action = self.offline.queue_payment(data)
        return PaymentOutcome(plan=plan, queued=True, action_id=action.id)

    def _persist(self, plan: ReconciliationPlan) -> PaymentOutcome:
        record = plan.payment_record
        succeeded: list[int] = []
        failed: dict[int, str] = {}

        for update in plan.installment_updates:
            try:
                self.gateway.persist_installment_update(update)
            except PersistenceError as e:
                logger.error(
                    "installment_update_failed",
                    installment_id=update.installment_id,
                    payment_id=record.id,
                    error=str(e),
                )
                failed[update.installment_id] = str(e)
            else:
                succeeded.append(update.installment_id)

        if failed:
            record_persisted = False
            if succeeded:
                written = set(succeeded)
                partial = replace(
                    record,
                    distribution_details=tuple(
                        d for d in record.distribution_details if d.installment_id in written
                    ),
                    mismatch_confirmed=True,
                )
                record_persisted = self._persist_record(partial)
            raise PaymentPersistenceError(
                f"{len(failed)} of {len(plan.installment_updates)} installment updates failed",
                succeeded=succeeded,
                failed=failed,
                record_persisted=record_persisted,
                context={"payment_id": record.id},
            )

        return PaymentOutcome(
            plan=plan,
            record_persisted=self._persist_record(record),
            updated_installments=tuple(succeeded),
            balances=self._balances_for(record.client_document, plan.touched_sales),
        )

    def _persist_record(self, record: PaymentRecord) -> bool:
        # History is non-critical: the installments already carry the payment
        try:
            self.gateway.persist_payment_record(record)
        except PersistenceError as e:
            logger.warning("payment_record_not_saved", payment_id=record.id, error=str(e))
            return False

        log_payment_recorded(
            logger,
            payment_id=record.id,
            client_document=record.client_document,
            amount=record.payment_amount,
            collector_id=record.collector_id,
            installments=len(record.distribution_details),
        )
        return True

    def _balances_for(self, client_document: str, sale_numbers: Iterable[int]) -> dict[int, SaleBalance]:
        wanted = set(sale_numbers)
        try:
            sales = group_sales(self.gateway.fetch_installments(client_document))
        except PersistenceError as e:
            logger.warning("balance_refresh_failed", client_document=client_document, error=str(e))
            return {}
        return {
            sale.sale_number: calculate_sale_balance(sale.installments)
            for sale in sales
            if sale.sale_number in wanted
        }
