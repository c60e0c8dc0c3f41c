import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...domains.integrations_notifications.adapters import build_payment_gateway_adapter
from ...shared.utils import ensure_utc, utcnow
from .counters import reset_monthly_counters
from .eligibility import select_eligible_configs, select_unposted_configs
from .errors import AutoRechargeError, ConfigFetchError
from .executor import execute_recharge, settle_unposted_charge

logger = logging.getLogger(__name__)


def process_auto_recharges(db: Session, gateway=None, now: Optional[datetime] = None) -> dict[str, Any]:
    """Run one auto-recharge pass over every organization.

    Returns ``{"processed": <successful recharges>, "errors": [...]}``. Charges
    captured on an earlier pass but never credited are settled first and count
    as processed. Failures are isolated per organization; only loading or
    resetting configurations aborts the pass.
    """
    now = ensure_utc(now) or utcnow()
    try:
        reset_monthly_counters(db, now)
        unposted = [(config.id, config.organization_id) for config in select_unposted_configs(db)]
    except ConfigFetchError as exc:
        logger.error("Auto-recharge pass aborted: %s", exc)
        return {"processed": 0, "errors": [str(exc)]}

    processed = 0
    errors: list[str] = []
    for config_id, organization_id in unposted:
        attempt = _run_isolated(db, organization_id, errors, lambda: settle_unposted_charge(db, config_id, now))
        if attempt is not None and attempt.succeeded:
            processed += 1

    try:
        eligible = select_eligible_configs(db)
    except ConfigFetchError as exc:
        logger.error("Auto-recharge pass aborted: %s", exc)
        return {"processed": processed, "errors": errors + [str(exc)]}

    config_ids = [(config.id, config.organization_id) for config in eligible]
    if config_ids and gateway is None:
        gateway = build_payment_gateway_adapter()

    for config_id, organization_id in config_ids:
        attempt = _run_isolated(db, organization_id, errors, lambda: execute_recharge(db, gateway, config_id, now))
        if attempt is not None and attempt.succeeded:
            processed += 1

    if unposted or config_ids:
        logger.info("Auto-recharge pass finished processed=%d errors=%d", processed, len(errors))
    return {"processed": processed, "errors": errors}


def _run_isolated(db: Session, organization_id: int, errors: list[str], step):
    try:
        return step()
    except AutoRechargeError as exc:
        logger.warning("Auto-recharge failed: %s", exc, extra={"organization_id": organization_id})
        errors.append(str(exc))
    except Exception as exc:
        db.rollback()
        logger.exception("Auto-recharge failed unexpectedly", extra={"organization_id": organization_id})
        errors.append(f"Org {organization_id}: {exc}")
    return None
