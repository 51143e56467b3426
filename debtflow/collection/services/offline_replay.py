"""Offline replay adapter.

Payments confirmed while disconnected are queued as DISTRIBUTE_PAYMENT
actions. At synchronization time each action is replayed against the
installment state read *at replay time*, never against the snapshot the
collector saw, so two queued payments for the same client cannot both claim
the same balance.

Lifecycle of an action::

    queued -> attempting -> applied (removed from the queue)
                         -> retrying (retry_count += 1, backoff, attempt again)
                         -> abandoned (removed, ReplayExhaustedError)

Every installment write is recorded on the action's ``progress`` before the
next one starts, so a retry after a partial failure only applies what is
still missing.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from ...exceptions import (
    DebtFlowError,
    RecordNotFoundError,
    ReplayExhaustedError,
    ValidationError,
)
from ...utils.logging import (
    clear_correlation_id,
    get_logger,
    log_offline_action_abandoned,
    set_correlation_id,
)
from ...utils.retry import OFFLINE_REPLAY_RETRY, RetryConfig
from ..domain.enums import DistributionMode, ReplayOutcome
from ..domain.offline import (
    DistributePaymentAction,
    DistributePaymentData,
    DistributionDetailData,
    OfflineAction,
)
from ..domain.value_objects import (
    EPSILON,
    ZERO,
    PaymentRecord,
    ReconciliationPlan,
    SaleGroup,
)
from ..infrastructure.action_store import OfflineActionStore
from ..infrastructure.gateway import CollectionGateway
from .balance import group_sales
from .distribution import compute_distribution, distribution_from_targets
from .reconciliation import apply_distribution

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of a successful replay.

    ``unapplied`` is the part of the queued amount that found nothing left to
    pay at replay time. Above EPSILON the outcome is PARTIALLY_APPLIED.
    """

    action_id: str
    plan: ReconciliationPlan | None
    applied_installments: tuple[int, ...] = ()
    record_persisted: bool = False
    attempts: int = 1
    outcome: ReplayOutcome = ReplayOutcome.APPLIED
    unapplied: Decimal = ZERO


@dataclass
class SyncReport:
    """Summary of one pass over the offline queue."""

    applied: list[ReplayResult] = field(default_factory=list)
    abandoned: list[ReplayExhaustedError] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.applied) + len(self.abandoned)


class OfflineReplayAdapter:
    """Queue offline payments and replay them once the backend is reachable.

    Args:
        store: Durable queue of pending actions
        gateway: Backend the payments are replayed against
        retry_config: Backoff policy (1s, 2s, 4s ... capped at 10s by default)
        sleep: Awaitable sleep, replaced in tests
        clock: Returns the date stamped on replayed payments
    """

    def __init__(
        self,
        store: OfflineActionStore,
        gateway: CollectionGateway,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.retry_config = retry_config or OFFLINE_REPLAY_RETRY
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    def enqueue(self, action: OfflineAction) -> OfflineAction:
        """Persist an action to the queue."""
        self.store.upsert(action)
        logger.info(
            "offline_action_queued",
            action_id=action.id,
            action_type=action.type,
            client_document=action.data.client_document,
            amount=str(action.data.amount),
        )
        return action

    def queue_payment(self, data: DistributePaymentData) -> DistributePaymentAction:
        """Create and enqueue a DISTRIBUTE_PAYMENT action."""
        action = DistributePaymentAction(data=data, max_retries=self.retry_config.max_retries)
        self.enqueue(action)
        return action

    def pending(self) -> list[OfflineAction]:
        """Queued actions, oldest first."""
        return self.store.list()

    def clear_queue(self) -> int:
        """Drop every queued action. Returns how many were discarded."""
        count = self.store.clear()
        logger.warning("offline_queue_cleared", discarded=count)
        return count

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def replay(self, action: OfflineAction) -> ReplayResult:
        """Make one attempt at applying an action.

        Raises:
            PersistenceError: A write failed (retryable)
            ValidationError: The action can no longer be applied
        """
        data = action.data
        progress = action.progress
        payment_date = self.clock()
        if progress.applied:
            logger.info(
                "offline_replay_resumed",
                action_id=action.id,
                already_applied=sorted(progress.applied_installment_ids),
                applied_total=str(progress.applied_total),
            )

        sales = self._load_sales(data)
        plan = self._plan_remaining(action, sales, payment_date)

        written: list[int] = []
        if plan is not None:
            for update in plan.installment_updates:
                self.gateway.persist_installment_update(update)
                progress.applied.append(
                    DistributionDetailData(
                        installment_id=update.installment_id,
                        sale_number=update.sale_number,
                        original_amount=update.original_amount,
                        applied_amount=update.applied_amount,
                        installment_status=update.new_status,
                    )
                )
                self.store.upsert(action)
                written.append(update.installment_id)

        unapplied = max(ZERO, data.amount - progress.applied_total)
        short = unapplied > EPSILON
        if short:
            logger.warning(
                "offline_replay_unapplied",
                action_id=action.id,
                amount=str(data.amount),
                applied=str(progress.applied_total),
                unapplied=str(unapplied),
            )

        if not progress.record_persisted:
            # A shortfall found at sync time is recorded as an accepted mismatch.
            record = self._build_record(
                action, payment_date, mismatch_confirmed=data.confirm_mismatch or short
            )
            if not record.is_balanced and not record.mismatch_confirmed:
                logger.warning(
                    "offline_replay_amount_mismatch",
                    action_id=action.id,
                    amount=str(data.amount),
                    applied=str(record.applied_total),
                )
            self.gateway.persist_payment_record(record)
            progress.record_persisted = True
            self.store.upsert(action)

        return ReplayResult(
            action_id=action.id,
            plan=plan,
            applied_installments=tuple(written),
            record_persisted=progress.record_persisted,
            outcome=ReplayOutcome.PARTIALLY_APPLIED if short else ReplayOutcome.APPLIED,
            unapplied=unapplied,
        )

    async def settle(self, action: OfflineAction) -> ReplayResult:
        """Replay an action until it is applied or abandoned.

        The first attempt runs immediately. Each failure increments
        ``retry_count``; the action is abandoned once ``retry_count`` exceeds
        ``max_retries`` or as soon as the error is not retryable.

        Raises:
            ReplayExhaustedError: The action was abandoned and removed
        """
        set_correlation_id(action.id)
        try:
            return await self._settle(action)
        finally:
            clear_correlation_id()

    async def _settle(self, action: OfflineAction) -> ReplayResult:
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await self.replay(action)
            except DebtFlowError as e:
                action.retry_count += 1
                action.last_error = str(e)

                retryable = self.retry_config.is_retryable(e) and not isinstance(
                    e, (ValidationError, RecordNotFoundError)
                )
                if not retryable or action.exhausted:
                    raise self._abandon(action, e)

                self.store.upsert(action)
                delay = self.retry_config.calculate_delay(action.retry_count - 1)
                logger.warning(
                    "offline_action_retry_scheduled",
                    action_id=action.id,
                    outcome=ReplayOutcome.RETRYING.value,
                    retry_count=action.retry_count,
                    max_retries=action.max_retries,
                    delay_seconds=delay,
                    error=str(e),
                )
                await self.sleep(delay)
                continue

            self.store.remove(action.id)
            logger.info(
                "offline_action_applied",
                action_id=action.id,
                client_document=action.data.client_document,
                installments=len(action.progress.applied),
                attempts=attempts,
                outcome=result.outcome.value,
            )
            return replace(result, attempts=attempts)

    async def process_queue(self) -> SyncReport:
        """Settle every queued action, strictly one after another, oldest first."""
        report = SyncReport()
        actions = self.store.list()
        if not actions:
            return report

        logger.info("offline_sync_started", pending=len(actions))
        for action in actions:
            try:
                report.applied.append(await self.settle(action))
            except ReplayExhaustedError as e:
                report.abandoned.append(e)

        logger.info(
            "offline_sync_completed",
            applied=len(report.applied),
            abandoned=len(report.abandoned),
        )
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_sales(self, data: DistributePaymentData) -> list[SaleGroup]:
        sales = group_sales(self.gateway.fetch_installments(data.client_document))
        if data.sale_number is not None:
            sales = [s for s in sales if s.sale_number == data.sale_number]
        if not sales:
            raise ValidationError(
                "Client has no installments to apply the payment to",
                field="client_document",
                value=data.client_document,
            )
        return sales

    def _plan_remaining(
        self, action: OfflineAction, sales: list[SaleGroup], payment_date: date
    ) -> ReconciliationPlan | None:
        """Plan whatever earlier attempts did not already write."""
        data = action.data
        if data.mode is DistributionMode.MANUAL:
            distribution = distribution_from_targets(sales, data.amount, data.manual_overrides)
        else:
            remaining = data.amount - action.progress.applied_total
            if remaining <= ZERO:
                return None
            distribution = compute_distribution(sales, remaining, DistributionMode.AUTO)

        if distribution.total_distributed <= ZERO:
            return None

        return apply_distribution(
            distribution,
            data.collector_id,
            payment_date=payment_date,
            payment_method=data.payment_method,
            notes=data.notes,
            payment_amount=data.amount,
            allow_overpayment=data.allow_overpayment,
            mismatch_confirmed=data.confirm_mismatch,
            payment_id=action.id,
        )

    def _build_record(
        self, action: OfflineAction, payment_date: date, mismatch_confirmed: bool
    ) -> PaymentRecord:
        data = action.data
        details = tuple(d.to_detail() for d in action.progress.applied)
        sale_numbers = {d.sale_number for d in details}
        if len(sale_numbers) == 1:
            sale_number: int | None = next(iter(sale_numbers))
        else:
            sale_number = data.sale_number if not details else None

        return PaymentRecord(
            id=action.id,
            client_document=data.client_document,
            payment_amount=Decimal(data.amount),
            payment_date=payment_date,
            payment_method=data.payment_method,
            collector_id=data.collector_id,
            distribution_details=details,
            sale_number=sale_number,
            notes=data.notes,
            mismatch_confirmed=mismatch_confirmed,
        )

    def _abandon(self, action: OfflineAction, error: DebtFlowError) -> ReplayExhaustedError:
        self.store.remove(action.id)
        log_offline_action_abandoned(
            logger,
            action_id=action.id,
            client_document=action.data.client_document,
            amount=action.data.amount,
            attempts=action.retry_count,
            last_error=action.last_error,
        )
        return ReplayExhaustedError(
            f"Offline payment {action.id} abandoned after {action.retry_count} attempt(s)",
            action_id=action.id,
            attempts=action.retry_count,
            last_error=action.last_error,
            original_error=error,
        )
