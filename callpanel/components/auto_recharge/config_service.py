from typing import Optional

from sqlalchemy.orm import Session

from ...models.auto_recharge_config import AutoRechargeConfig
from ...platform.config import settings
from ...schemas.auto_recharge import (
    MAX_MONTHLY_RANGE,
    RECHARGE_AMOUNT_RANGE,
    THRESHOLD_RANGE,
    AutoRechargeConfigResponse,
    AutoRechargeConfigUpsert,
    clamp,
)
from ...services.credit_ledger_service import to_money
from ...shared.utils import utcnow
from .counters import start_of_next_month


def default_config_response() -> AutoRechargeConfigResponse:
    return AutoRechargeConfigResponse(
        enabled=False,
        threshold=settings.AUTO_RECHARGE_DEFAULT_THRESHOLD,
        recharge_amount=settings.AUTO_RECHARGE_DEFAULT_AMOUNT,
        max_monthly_recharges=settings.AUTO_RECHARGE_DEFAULT_MAX_MONTHLY,
        recharges_this_month=0,
        payment_method_ref=None,
        last_recharge_at=None,
    )


def config_to_response(config: AutoRechargeConfig) -> AutoRechargeConfigResponse:
    return AutoRechargeConfigResponse(
        enabled=bool(config.enabled),
        threshold=float(config.threshold),
        recharge_amount=float(config.recharge_amount),
        max_monthly_recharges=int(config.max_monthly_recharges),
        recharges_this_month=int(config.recharges_this_month or 0),
        payment_method_ref=config.stripe_payment_method_id,
        last_recharge_at=config.last_recharge_at,
        month_reset_at=config.month_reset_at,
    )


def get_config(db: Session, organization_id: int) -> Optional[AutoRechargeConfig]:
    return db.query(AutoRechargeConfig).filter(AutoRechargeConfig.organization_id == organization_id).first()


def upsert_config(db: Session, organization_id: int, data: AutoRechargeConfigUpsert) -> AutoRechargeConfig:
    """Create or update the organization's config. Counters are never writable here."""
    config = get_config(db, organization_id)
    if config is None:
        config = AutoRechargeConfig(
            organization_id=organization_id,
            enabled=False,
            threshold=to_money(clamp(to_money(settings.AUTO_RECHARGE_DEFAULT_THRESHOLD), THRESHOLD_RANGE)),
            recharge_amount=to_money(clamp(to_money(settings.AUTO_RECHARGE_DEFAULT_AMOUNT), RECHARGE_AMOUNT_RANGE)),
            max_monthly_recharges=clamp(int(settings.AUTO_RECHARGE_DEFAULT_MAX_MONTHLY), MAX_MONTHLY_RANGE),
            recharges_this_month=0,
            month_reset_at=start_of_next_month(utcnow()),
        )
        db.add(config)

    updates = data.model_dump(exclude_unset=True)
    if "enabled" in updates and updates["enabled"] is not None:
        config.enabled = bool(updates["enabled"])
    if updates.get("threshold") is not None:
        config.threshold = to_money(updates["threshold"])
    if updates.get("recharge_amount") is not None:
        config.recharge_amount = to_money(updates["recharge_amount"])
    if updates.get("max_monthly_recharges") is not None:
        config.max_monthly_recharges = int(updates["max_monthly_recharges"])
    if "payment_method_ref" in updates:
        config.stripe_payment_method_id = updates["payment_method_ref"]

    db.commit()
    db.refresh(config)
    return config
