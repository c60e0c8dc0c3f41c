"""Tenant notifications written by background jobs (best-effort)."""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models.server_notification import ServerNotification

logger = logging.getLogger(__name__)


def create_server_notification(
    db: Session,
    *,
    organization_id: int,
    type: str,
    title: str,
    message: str,
    severity: str = "medium",
    category: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> bool:
    """Insert and commit one notification. Never raises; returns False on failure.

    Callers must have committed their own work first, since a failure here
    rolls the session back.
    """
    try:
        db.add(
            ServerNotification(
                organization_id=organization_id,
                type=type,
                title=title,
                message=message,
                severity=severity,
                category=category,
                notification_metadata=metadata or {},
            )
        )
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.warning(
            "Failed to write notification title=%s",
            title,
            exc_info=True,
            extra={"organization_id": organization_id},
        )
        return False
