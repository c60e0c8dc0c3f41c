import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.auto_recharge_config import AutoRechargeConfig
from .errors import ConfigFetchError

logger = logging.getLogger(__name__)


def start_of_next_month(now: datetime) -> datetime:
    """First instant of the calendar month after ``now``, in UTC."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def reset_monthly_counters(db: Session, now: datetime) -> int:
    """Zero the counter of every enabled config whose cycle has elapsed.

    The next reset is computed from ``now`` so skipped passes do not leave the
    cycle lagging behind the calendar. Returns the number of rows reset.
    """
    try:
        reset_count = (
            db.query(AutoRechargeConfig)
            .filter(
                AutoRechargeConfig.enabled.is_(True),
                or_(
                    AutoRechargeConfig.month_reset_at.is_(None),
                    AutoRechargeConfig.month_reset_at <= now,
                ),
            )
            .update(
                {
                    AutoRechargeConfig.recharges_this_month: 0,
                    AutoRechargeConfig.month_reset_at: start_of_next_month(now),
                },
                synchronize_session=False,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise ConfigFetchError(f"Failed to reset monthly counters: {exc}") from exc
    if reset_count:
        logger.info("Reset monthly auto-recharge counters for %d configs", reset_count)
    return reset_count
