import logging

from .celery_app import celery_app
from ..components.auto_recharge.service import process_auto_recharges
from ..platform.config import settings
from ..platform.database import session_scope
from ..platform.request_context import ensure_request_id

logger = logging.getLogger(__name__)


@celery_app.task(name="callpanel.tasks.billing_tasks.process_auto_recharges_task")
def process_auto_recharges_task():
    """Periodic task: run one auto-recharge pass over all organizations."""
    if settings.MVP_DISABLE_STRIPE:
        return {"status": "skipped", "reason": "stripe_disabled"}

    ensure_request_id("auto-recharge")
    with session_scope() as db:
        result = process_auto_recharges(db)
    logger.info(
        "Auto-recharge task complete processed=%s errors=%s",
        result["processed"],
        len(result["errors"]),
    )
    return {"status": "ok", **result}
