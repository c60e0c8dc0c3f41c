from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

THRESHOLD_RANGE = (Decimal("2"), Decimal("100"))
RECHARGE_AMOUNT_RANGE = (Decimal("10"), Decimal("500"))
MAX_MONTHLY_RANGE = (1, 20)


def clamp(value, bounds):
    low, high = bounds
    return max(low, min(high, value))


class AutoRechargeConfigUpsert(BaseModel):
    """Settings payload. Out-of-range numbers are clamped rather than rejected."""

    enabled: Optional[bool] = None
    threshold: Optional[Decimal] = None
    recharge_amount: Optional[Decimal] = None
    max_monthly_recharges: Optional[int] = None
    payment_method_ref: Optional[str] = Field(default=None, max_length=255)

    @field_validator("threshold")
    @classmethod
    def _clamp_threshold(cls, value):
        return None if value is None else clamp(value, THRESHOLD_RANGE)

    @field_validator("recharge_amount")
    @classmethod
    def _clamp_recharge_amount(cls, value):
        return None if value is None else clamp(value, RECHARGE_AMOUNT_RANGE)

    @field_validator("max_monthly_recharges")
    @classmethod
    def _clamp_max_monthly(cls, value):
        return None if value is None else clamp(value, MAX_MONTHLY_RANGE)

    @field_validator("payment_method_ref")
    @classmethod
    def _blank_payment_method_is_none(cls, value):
        if value is None:
            return None
        value = value.strip()
        return value or None


class AutoRechargeConfigResponse(BaseModel):
    enabled: bool = False
    threshold: float
    recharge_amount: float
    max_monthly_recharges: int
    recharges_this_month: int = 0
    payment_method_ref: Optional[str] = None
    last_recharge_at: Optional[datetime] = None
    month_reset_at: Optional[datetime] = None


class AutoRechargeRunResponse(BaseModel):
    processed: int
    errors: List[str] = Field(default_factory=list)


class CreditLedgerEntryResponse(BaseModel):
    id: int
    amount: float
    kind: str
    entry_type: str
    description: Optional[str] = None
    reference_id: Optional[str] = None
    balance_after: float
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CreditsResponse(BaseModel):
    organization_id: int
    credit_balance: float
    entries: List[CreditLedgerEntryResponse] = Field(default_factory=list)
