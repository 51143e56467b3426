"""Reconciliation applier: turn a sale-level distribution into installment updates.

Within each sale the applied amount is spread over the open installments
using the same smallest-remaining-first greedy policy as the distribution
engine. The applier is pure: it returns a ReconciliationPlan and never writes
anything; persisting the plan belongs to the gateway or the offline queue.

Overpayment policy:
    By default each installment is capped at its remaining balance and any
    amount a sale cannot absorb is reported in ``plan.unapplied``. Only when
    the caller passes ``allow_overpayment=True`` is the excess added to the
    last installment touched, and that update is flagged ``overpaid``.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import uuid4

from ...exceptions import ValidationError
from ...utils.logging import get_logger
from ..domain.value_objects import (
    ZERO,
    DistributionDetail,
    DistributionResult,
    Installment,
    InstallmentUpdate,
    PaymentRecord,
    ReconciliationPlan,
    SaleDistributionItem,
    installment_status_for,
    to_decimal,
)

logger = get_logger(__name__)


def apply_distribution(
    distribution: DistributionResult | Sequence[SaleDistributionItem],
    collector_id: str,
    *,
    payment_date: date,
    payment_method: str = "dinheiro",
    notes: str = "",
    payment_amount: Any = None,
    allow_overpayment: bool = False,
    mismatch_confirmed: bool = False,
    payment_id: str | None = None,
) -> ReconciliationPlan:
    """Compute the installment updates and payment record for a distribution.

    Args:
        distribution: Result of ``compute_distribution`` or its items
        collector_id: Collector recording the payment (audit field)
        payment_date: Date stamped on the record and on touched installments
        payment_method: Payment method for the record
        notes: Free-text notes for the record
        payment_amount: Amount entered by the collector; taken from the
            DistributionResult when omitted, else the sum of applied amounts
        allow_overpayment: Put amounts exceeding a sale's balance on its
            last installment instead of reporting them as unapplied
        mismatch_confirmed: The user accepted a distributed total that
            differs from the entered amount
        payment_id: Record id (generated when omitted)

    Returns:
        ReconciliationPlan with updates in the order they must be applied

    Raises:
        ValidationError: Missing collector, nothing to apply, or items of
            more than one client
    """
    if not collector_id:
        raise ValidationError("A collector is required to record a payment", field="collector_id")

    if isinstance(distribution, DistributionResult):
        items = distribution.items
        amount = distribution.amount
        unapplied = distribution.unapplied
    else:
        items = tuple(distribution)
        amount = None
        unapplied = ZERO

    if payment_amount is not None:
        amount = to_decimal(payment_amount, "payment_amount")

    active = [item for item in items if item.applied_amount > ZERO]
    if not active:
        raise ValidationError("The distribution does not apply any amount", field="distribution")

    documents = {item.sale.client_document for item in active}
    if len(documents) > 1:
        raise ValidationError(
            "A payment record cannot span several clients",
            field="distribution",
            context={"clients": len(documents)},
        )
    client_document = documents.pop()

    updates: list[InstallmentUpdate] = []
    for item in active:
        sale_updates, excess = _allocate_sale(item, payment_date, allow_overpayment)
        updates.extend(sale_updates)
        if excess > ZERO:
            logger.info(
                "overpayment_capped",
                sale_number=item.sale_number,
                client_document=client_document,
                applied=str(item.applied_amount),
                unapplied=str(excess),
            )
            unapplied += excess

    details = tuple(
        DistributionDetail(
            installment_id=u.installment_id,
            sale_number=u.sale_number,
            original_amount=u.original_amount,
            applied_amount=u.applied_amount,
            installment_status=u.new_status,
        )
        for u in updates
    )

    applied_total = sum((u.applied_amount for u in updates), ZERO)
    sale_numbers = {item.sale_number for item in active}

    record = PaymentRecord(
        id=payment_id or str(uuid4()),
        client_document=client_document,
        payment_amount=amount if amount is not None else applied_total,
        payment_date=payment_date,
        payment_method=payment_method,
        collector_id=collector_id,
        distribution_details=details,
        sale_number=next(iter(sale_numbers)) if len(sale_numbers) == 1 else None,
        notes=notes,
        mismatch_confirmed=mismatch_confirmed,
    )

    return ReconciliationPlan(
        payment_record=record,
        installment_updates=tuple(updates),
        unapplied=unapplied,
    )


def _allocate_sale(
    item: SaleDistributionItem,
    payment_date: date,
    allow_overpayment: bool,
) -> tuple[list[InstallmentUpdate], Decimal]:
    """Spread one sale's applied amount over its installments.

    Returns:
        (updates, amount the sale could not absorb)
    """
    sale_number = item.sale_number
    open_installments = sorted(
        (i for i in item.sale.installments if i.remaining_amount > ZERO),
        key=lambda i: i.remaining_amount,
    )

    left = item.applied_amount
    updates: list[InstallmentUpdate] = []
    for installment in open_installments:
        if left <= ZERO:
            break
        share = min(left, installment.remaining_amount)
        updates.append(_build_update(installment, sale_number, share, payment_date))
        left -= share

    if left <= ZERO or not allow_overpayment or not item.sale.installments:
        return updates, max(left, ZERO)

    # Overpayment explicitly tolerated: the excess lands on the last touched installment
    if updates:
        last = updates.pop()
        installment = next(i for i in item.sale.installments if i.id == last.installment_id)
        applied = last.applied_amount + left
    else:
        installment = item.sale.installments[-1]
        applied = left

    updates.append(_build_update(installment, sale_number, applied, payment_date, overpaid=True))
    return updates, ZERO


def _build_update(
    installment: Installment,
    sale_number: int,
    applied: Decimal,
    payment_date: date,
    overpaid: bool = False,
) -> InstallmentUpdate:
    new_received = installment.received_amount + applied
    return InstallmentUpdate(
        installment_id=installment.id,
        sale_number=sale_number,
        original_amount=installment.original_amount,
        previous_received=installment.received_amount,
        applied_amount=applied,
        new_received=new_received,
        new_status=installment_status_for(installment.original_amount, new_received),
        received_date=payment_date,
        overpaid=overpaid,
    )
