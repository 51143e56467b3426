"""Sale balance calculation.

Pure functions over installment snapshots: totals, remaining balance and
status of a sale, grouping of a client's installments into sales, and the
client-level totals shown before a payment is distributed.
"""

from collections.abc import Iterable, Sequence

from ..domain.enums import SaleStatus
from ..domain.value_objects import (
    RENEGOTIATED_SALE_NUMBER,
    ZERO,
    ClientBalanceSummary,
    Installment,
    InstallmentBreakdown,
    SaleBalance,
    SaleGroup,
    sale_status_for,
)


def calculate_sale_balance(installments: Sequence[Installment]) -> SaleBalance:
    """Compute totals and status of one sale.

    Args:
        installments: Installments sharing one (sale number, client document)

    Returns:
        SaleBalance with one breakdown line per installment, in input order.
        An empty sequence yields zero totals and PENDING status.
    """
    if not installments:
        return SaleBalance(
            total_value=ZERO,
            total_paid=ZERO,
            remaining_balance=ZERO,
            status=SaleStatus.PENDING,
        )

    total_value = sum((i.original_amount for i in installments), ZERO)
    total_paid = sum((i.received_amount for i in installments), ZERO)
    remaining = max(ZERO, total_value - total_paid)

    breakdown = tuple(
        InstallmentBreakdown(
            installment_id=i.id,
            original_value=i.original_amount,
            paid_value=i.received_amount,
            remaining_value=i.remaining_amount,
            status=i.status,
        )
        for i in installments
    )

    return SaleBalance(
        total_value=total_value,
        total_paid=total_paid,
        remaining_balance=remaining,
        status=sale_status_for(total_value, total_paid),
        installment_breakdown=breakdown,
    )


def group_sales(installments: Iterable[Installment]) -> list[SaleGroup]:
    """Group a client's installments into sales.

    Numbered sales keep the order in which they first appear. Installments
    without a sale number are gathered into a single renegotiated sale
    (number 0) placed last. Installments of different clients are kept apart.
    """
    numbered: dict[tuple[int, str], list[Installment]] = {}
    renegotiated: dict[tuple[int, str], list[Installment]] = {}

    for installment in installments:
        key = (installment.sale_key, installment.client_document)
        bucket = renegotiated if installment.sale_key == RENEGOTIATED_SALE_NUMBER else numbered
        bucket.setdefault(key, []).append(installment)

    return [
        SaleGroup(sale_number=sale_number, client_document=document, installments=tuple(items))
        for (sale_number, document), items in [*numbered.items(), *renegotiated.items()]
    ]


def summarize_client(client_document: str, sales: Sequence[SaleGroup]) -> ClientBalanceSummary:
    """Totals across all sales of a client."""
    statuses = [sale.status for sale in sales]
    return ClientBalanceSummary(
        client_document=client_document,
        total_value=sum((s.total_value for s in sales), ZERO),
        total_received=sum((s.total_received for s in sales), ZERO),
        total_pending=sum((s.pending_value for s in sales), ZERO),
        sale_count=len(sales),
        fully_paid_count=statuses.count(SaleStatus.FULLY_PAID),
        partially_paid_count=statuses.count(SaleStatus.PARTIALLY_PAID),
        pending_count=statuses.count(SaleStatus.PENDING),
    )
