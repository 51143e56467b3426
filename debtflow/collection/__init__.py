"""Payment distribution and sale-balance reconciliation.

This module implements collector payment handling with:
- Sale balance calculation over installments
- Automatic (smallest balance first) and manual distribution
- Installment-level reconciliation with an overpayment guard
- Offline queue with replay against fresh state

Architecture: Domain-Driven Design (DDD) + Hexagonal Architecture
"""

__all__ = [
    "Installment",
    "SaleGroup",
    "SaleBalance",
    "DistributionResult",
    "ReconciliationPlan",
    "PaymentRecord",
    "DistributionMode",
    "InstallmentStatus",
    "SaleStatus",
    "calculate_sale_balance",
    "compute_distribution",
    "apply_distribution",
    "PaymentRequest",
    "PaymentService",
    "OfflineReplayAdapter",
]

from .domain.enums import DistributionMode, InstallmentStatus, SaleStatus
from .domain.value_objects import (
    DistributionResult,
    Installment,
    PaymentRecord,
    ReconciliationPlan,
    SaleBalance,
    SaleGroup,
)
from .services import (
    OfflineReplayAdapter,
    PaymentRequest,
    PaymentService,
    apply_distribution,
    calculate_sale_balance,
    compute_distribution,
)
