"""Typed offline actions.

Actions waiting in the offline queue are pydantic models so they can be
stored as JSON and validated on the way back. Each action type has its own
model carrying a literal ``type`` tag; ``parse_offline_action`` dispatches on
that tag so replay code always receives a fully typed payload.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import uuid4

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ...exceptions import ValidationError
from .enums import DistributionMode, InstallmentStatus, OfflineActionType
from .value_objects import ZERO, DistributionDetail


class DistributionDetailData(BaseModel):
    """Serializable form of a DistributionDetail."""

    installment_id: int
    sale_number: int
    original_amount: Decimal
    applied_amount: Decimal
    installment_status: InstallmentStatus

    @classmethod
    def from_detail(cls, detail: DistributionDetail) -> "DistributionDetailData":
        return cls(
            installment_id=detail.installment_id,
            sale_number=detail.sale_number,
            original_amount=detail.original_amount,
            applied_amount=detail.applied_amount,
            installment_status=detail.installment_status,
        )

    def to_detail(self) -> DistributionDetail:
        return DistributionDetail(
            installment_id=self.installment_id,
            sale_number=self.sale_number,
            original_amount=self.original_amount,
            applied_amount=self.applied_amount,
            installment_status=self.installment_status,
        )


class ReplayProgress(BaseModel):
    """What earlier replay attempts already wrote.

    Kept on the action so a retry after a partial failure never re-applies
    an installment update that already reached the backend.
    """

    applied: list[DistributionDetailData] = Field(default_factory=list)
    record_persisted: bool = False

    @property
    def applied_total(self) -> Decimal:
        return sum((d.applied_amount for d in self.applied), ZERO)

    @property
    def applied_installment_ids(self) -> set[int]:
        return {d.installment_id for d in self.applied}


class DistributePaymentData(BaseModel):
    """Everything needed to recompute a payment distribution at replay time."""

    client_document: str = Field(min_length=1)
    sale_number: int | None = None
    amount: Decimal = Field(gt=0)
    mode: DistributionMode = DistributionMode.AUTO
    manual_overrides: dict[int, Decimal] = Field(default_factory=dict)
    payment_method: str
    notes: str = ""
    collector_id: str = Field(min_length=1)
    confirm_mismatch: bool = False
    allow_overpayment: bool = False
    # Distribution computed at entry time; informational only
    distribution_details: list[DistributionDetailData] = Field(default_factory=list)


class OfflineActionBase(BaseModel):
    """Queue bookkeeping shared by every action type."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    last_error: str | None = None

    @property
    def exhausted(self) -> bool:
        """Whether the action has used up every retry."""
        return self.retry_count > self.max_retries


class DistributePaymentAction(OfflineActionBase):
    """A payment distribution confirmed while disconnected."""

    type: Literal["DISTRIBUTE_PAYMENT"] = "DISTRIBUTE_PAYMENT"
    data: DistributePaymentData
    progress: ReplayProgress = Field(default_factory=ReplayProgress)


# Union of every action model; extend together with _ACTION_MODELS
OfflineAction = DistributePaymentAction

_ACTION_MODELS: dict[OfflineActionType, type[OfflineActionBase]] = {
    OfflineActionType.DISTRIBUTE_PAYMENT: DistributePaymentAction,
}


def parse_offline_action(payload: dict[str, Any]) -> OfflineAction:
    """Rebuild a typed action from its stored JSON form.

    Raises:
        ValidationError: Unknown action type or malformed payload
    """
    raw_type = payload.get("type")
    try:
        action_type = OfflineActionType(raw_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown offline action type: {raw_type}",
            field="type",
            value=raw_type,
            original_error=e,
        )

    model = _ACTION_MODELS[action_type]
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Malformed offline action",
            field="data",
            context={"action_id": payload.get("id"), "errors": e.error_count()},
            original_error=e,
        )


def dump_offline_action(action: OfflineAction) -> dict[str, Any]:
    """JSON-safe dict for durable storage."""
    return action.model_dump(mode="json")
