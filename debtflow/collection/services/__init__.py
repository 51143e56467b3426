"""Application services: balance, distribution, reconciliation and replay."""

__all__ = [
    "calculate_sale_balance",
    "group_sales",
    "summarize_client",
    "compute_distribution",
    "distribution_from_targets",
    "apply_distribution",
    "OfflineReplayAdapter",
    "ReplayResult",
    "SyncReport",
    "PaymentRequest",
    "PaymentService",
]

from .balance import calculate_sale_balance, group_sales, summarize_client
from .distribution import compute_distribution, distribution_from_targets
from .offline_replay import OfflineReplayAdapter, ReplayResult, SyncReport
from .payment_service import PaymentRequest, PaymentService
from .reconciliation import apply_distribution
