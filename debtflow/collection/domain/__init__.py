"""Domain layer for collection: value objects, enums, offline actions and rows."""

__all__ = [
    "InstallmentStatus",
    "SaleStatus",
    "DistributionMode",
    "OfflineActionType",
    "ReplayOutcome",
    "EPSILON",
    "Installment",
    "SaleGroup",
    "SaleBalance",
    "SaleDistributionItem",
    "DistributionResult",
    "InstallmentUpdate",
    "DistributionDetail",
    "PaymentRecord",
    "ReconciliationPlan",
    "PaymentOutcome",
]

from .enums import (
    DistributionMode,
    InstallmentStatus,
    OfflineActionType,
    ReplayOutcome,
    SaleStatus,
)
from .value_objects import (
    EPSILON,
    DistributionDetail,
    DistributionResult,
    Installment,
    InstallmentUpdate,
    PaymentOutcome,
    PaymentRecord,
    ReconciliationPlan,
    SaleBalance,
    SaleDistributionItem,
    SaleGroup,
)
