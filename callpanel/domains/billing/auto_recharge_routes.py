"""Auto-recharge: tenant settings and the scheduled reconciliation trigger."""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ...components.auto_recharge.config_service import (
    config_to_response,
    default_config_response,
    get_config,
    upsert_config,
)
from ...components.auto_recharge.service import process_auto_recharges
from ...deps import get_current_user
from ...models.user import User
from ...platform.config import settings
from ...platform.database import get_db
from ...schemas.auto_recharge import (
    AutoRechargeConfigResponse,
    AutoRechargeConfigUpsert,
    AutoRechargeRunResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def _require_organization(user: User) -> int:
    if not user.organization_id:
        raise HTTPException(status_code=403, detail="User is not a member of an organization")
    return user.organization_id


@router.get("/auto-recharge/process", response_model=AutoRechargeRunResponse)
def run_auto_recharge_pass(
    x_cron_secret: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    """Run one auto-recharge pass. Called by the external scheduler."""
    expected = (settings.AUTO_RECHARGE_CRON_SECRET or "").strip()
    if expected and not hmac.compare_digest(expected, (x_cron_secret or "").strip()):
        raise HTTPException(status_code=403, detail="Invalid cron secret")
    if settings.MVP_DISABLE_STRIPE:
        logger.info("Auto-recharge trigger ignored: Stripe disabled")
        return AutoRechargeRunResponse(processed=0, errors=[])
    return AutoRechargeRunResponse(**process_auto_recharges(db))


@router.get("/auto-recharge", response_model=AutoRechargeConfigResponse)
def get_auto_recharge_config(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    config = get_config(db, _require_organization(current_user))
    if config is None:
        return default_config_response()
    return config_to_response(config)


@router.post("/auto-recharge", response_model=AutoRechargeConfigResponse)
@router.put("/auto-recharge", response_model=AutoRechargeConfigResponse)
def save_auto_recharge_config(
    data: AutoRechargeConfigUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    organization_id = _require_organization(current_user)
    config = upsert_config(db, organization_id, data)
    logger.info(
        "Auto-recharge settings saved enabled=%s",
        config.enabled,
        extra={"organization_id": organization_id},
    )
    return config_to_response(config)
