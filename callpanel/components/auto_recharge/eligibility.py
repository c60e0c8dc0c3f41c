import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.auto_recharge_config import AutoRechargeConfig
from ...models.organization import Organization
from .errors import ConfigFetchError, OrgNotFound

logger = logging.getLogger(__name__)


def below_threshold(organization: Organization, config: AutoRechargeConfig) -> bool:
    return (organization.credit_balance or 0) < (config.threshold or 0)


def under_monthly_cap(config: AutoRechargeConfig) -> bool:
    return int(config.recharges_this_month or 0) < int(config.max_monthly_recharges or 0)


def select_eligible_configs(db: Session) -> list[AutoRechargeConfig]:
    """Enabled configs with a payment method, under cap and below threshold, by organization id.

    Configs holding an unposted charge are left out until that charge is settled.
    """
    try:
        configs = (
            db.query(AutoRechargeConfig)
            .filter(
                AutoRechargeConfig.enabled.is_(True),
                AutoRechargeConfig.stripe_payment_method_id.isnot(None),
                AutoRechargeConfig.recharges_this_month < AutoRechargeConfig.max_monthly_recharges,
                AutoRechargeConfig.unposted_transaction_id.is_(None),
            )
            .order_by(AutoRechargeConfig.organization_id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise ConfigFetchError(f"Failed to load auto-recharge configs: {exc}") from exc

    eligible: list[AutoRechargeConfig] = []
    for config in configs:
        organization = db.get(Organization, config.organization_id, populate_existing=True)
        if organization is None:
            logger.warning(str(OrgNotFound(config.organization_id)), extra={"organization_id": config.organization_id})
            continue
        if not below_threshold(organization, config):
            continue
        eligible.append(config)
    return eligible


def select_unposted_configs(db: Session) -> list[AutoRechargeConfig]:
    try:
        return (
            db.query(AutoRechargeConfig)
            .filter(AutoRechargeConfig.unposted_transaction_id.isnot(None))
            .order_by(AutoRechargeConfig.organization_id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise ConfigFetchError(f"Failed to load unposted auto-recharge charges: {exc}") from exc
