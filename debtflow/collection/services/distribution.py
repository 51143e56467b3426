"""Distribution engine: spread one payment across a client's sales.

Two strategies:

1. **Automatic** - sales are ordered by pending balance, smallest first
   (stable, so equal balances keep their input order), and the payment is
   applied greedily. Whatever no sale can absorb stays in
   ``DistributionResult.unapplied``.

2. **Manual** - the caller sets the target received amount of some sales.
   The list starts from the automatic distribution and each override
   replaces the target of its sale; the engine does not rebalance other
   sales. The caller checks ``requires_confirmation`` before committing.

The result is a deterministic function of the sale state and the inputs, so
the preview is simply recomputed from scratch whenever the amount or the
mode changes.

Example:
    >>> result = compute_distribution(sales, Decimal("150.00"))
    >>> [(item.sale_number, item.applied_amount) for item in result.items]
    [(12, Decimal('30.00')), (7, Decimal('120.00'))]
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from ...exceptions import ValidationError
from ...utils.logging import get_logger
from ..domain.enums import DistributionMode
from ..domain.value_objects import (
    ZERO,
    DistributionResult,
    SaleDistributionItem,
    SaleGroup,
    to_decimal,
)

logger = get_logger(__name__)


def compute_distribution(
    sales: Sequence[SaleGroup],
    amount: Any,
    mode: DistributionMode | str = DistributionMode.AUTO,
    manual_overrides: Mapping[Any, Any] | None = None,
) -> DistributionResult:
    """Compute how a payment is allocated across sales.

    Args:
        sales: The client's sales with their current installment state
        amount: Payment amount entered by the collector
        mode: "auto" (greedy, smallest balance first) or "manual"
        manual_overrides: For manual mode, target received amount per sale number

    Returns:
        DistributionResult. Empty when the amount is zero or negative, which
        tells the caller to block submission.

    Raises:
        ValidationError: Non-finite amount, empty sale set, unknown mode or
            malformed overrides
    """
    mode = _parse_mode(mode)
    value = to_decimal(amount, "amount")

    if not sales:
        raise ValidationError("No sales to distribute the payment across", field="sales")

    if value <= ZERO:
        return DistributionResult(amount=value, mode=mode)

    items = _auto_items(sales, value)

    if mode is DistributionMode.MANUAL:
        overrides = _validate_overrides(sales, manual_overrides or {})
        items = _apply_overrides(sales, items, overrides)

    result = DistributionResult(amount=value, mode=mode, items=tuple(items))
    logger.debug(
        "distribution_computed",
        mode=mode.value,
        amount=str(value),
        sales=len(sales),
        items=len(result.items),
        unapplied=str(result.unapplied),
        requires_confirmation=result.requires_confirmation,
    )
    return result


def distribution_from_targets(
    sales: Sequence[SaleGroup],
    amount: Any,
    targets: Mapping[Any, Any],
) -> DistributionResult:
    """Manual distribution built only from absolute per-sale targets.

    Used when replaying a confirmed manual distribution against fresh state.
    A target below the sale's current received total is raised to it, so a
    target that was already reached applies nothing. Items follow ``sales``
    order.

    Raises:
        ValidationError: Unknown sale, non-finite or negative target
    """
    value = to_decimal(amount, "amount")
    by_number = {sale.sale_number: sale for sale in sales}
    clamped: dict[int, Decimal] = {}

    for raw_number, raw_target in targets.items():
        sale, target = _parse_override(by_number, raw_number, raw_target)
        clamped[sale.sale_number] = max(target, sale.total_received)

    items = [
        _manual_item(sale, clamped[sale.sale_number])
        for sale in sales
        if sale.sale_number in clamped and clamped[sale.sale_number] > sale.total_received
    ]
    return DistributionResult(amount=value, mode=DistributionMode.MANUAL, items=tuple(items))


def _parse_mode(mode: DistributionMode | str) -> DistributionMode:
    try:
        return DistributionMode(mode)
    except ValueError as e:
        raise ValidationError(
            f"Unknown distribution mode: {mode}",
            field="mode",
            value=mode,
            constraint="auto|manual",
            original_error=e,
        )


def _auto_items(sales: Sequence[SaleGroup], amount: Decimal) -> list[SaleDistributionItem]:
    """Greedy allocation, smallest pending balance first."""
    ordered = sorted(sales, key=lambda sale: sale.pending_value)

    remaining = amount
    items: list[SaleDistributionItem] = []
    for sale in ordered:
        if remaining <= ZERO:
            break

        pending = sale.pending_value
        if pending <= ZERO:
            continue

        applied = min(remaining, pending)
        current = sale.total_received
        items.append(
            SaleDistributionItem(
                sale=sale,
                current_received=current,
                new_amount=current + applied,
                applied_amount=applied,
            )
        )
        remaining -= applied

    return items


def _parse_override(
    by_number: Mapping[int, SaleGroup], raw_number: Any, raw_target: Any
) -> tuple[SaleGroup, Decimal]:
    try:
        sale_number = int(raw_number)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            "Manual override keys must be sale numbers",
            field="manual_overrides",
            value=raw_number,
            original_error=e,
        )

    sale = by_number.get(sale_number)
    if sale is None:
        raise ValidationError(
            f"Sale {sale_number} does not belong to this client",
            field="manual_overrides",
            value=sale_number,
        )

    target = to_decimal(raw_target, f"manual_overrides[{sale_number}]")
    if target < ZERO:
        raise ValidationError(
            "Manual override must not be negative",
            field="manual_overrides",
            value=target,
            constraint=">= 0",
        )
    return sale, target


def _validate_overrides(
    sales: Sequence[SaleGroup], overrides: Mapping[Any, Any]
) -> dict[int, Decimal]:
    """Normalize the override map and reject anything that cannot be applied."""
    by_number = {sale.sale_number: sale for sale in sales}
    validated: dict[int, Decimal] = {}

    for raw_number, raw_target in overrides.items():
        sale, target = _parse_override(by_number, raw_number, raw_target)
        if target < sale.total_received:
            raise ValidationError(
                f"Sale {sale.sale_number} has already received {sale.total_received}",
                field="manual_overrides",
                value=target,
                constraint=">= current received",
            )

        validated[sale.sale_number] = target

    return validated


def _manual_item(sale: SaleGroup, target: Decimal) -> SaleDistributionItem:
    current = sale.total_received
    return SaleDistributionItem(
        sale=sale,
        current_received=current,
        new_amount=target,
        applied_amount=target - current,
    )


def _apply_overrides(
    sales: Sequence[SaleGroup],
    seed: list[SaleDistributionItem],
    overrides: dict[int, Decimal],
) -> list[SaleDistributionItem]:
    """Replace seeded targets; append overridden sales the seed did not reach."""
    items: list[SaleDistributionItem] = []
    seen: set[int] = set()

    for item in seed:
        target = overrides.get(item.sale_number)
        items.append(item if target is None else _manual_item(item.sale, target))
        seen.add(item.sale_number)

    for sale in sales:
        if sale.sale_number in overrides and sale.sale_number not in seen:
            items.append(_manual_item(sale, overrides[sale.sale_number]))
            seen.add(sale.sale_number)

    return items
