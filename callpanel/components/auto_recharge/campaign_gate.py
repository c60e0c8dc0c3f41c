"""Credit gate for campaigns.

The recharge pass calls ``resume_credit_gated_campaigns`` once a credit is
committed. ``pause_campaigns_for_insufficient_credits`` is the library helper for
the other side of the gate: code that debits balance (call billing, usage
metering) calls it when an organization runs out of credit. This package never
pauses campaigns itself.
"""

import logging

from sqlalchemy.orm import Session

from ...models.campaign import Campaign, CampaignStatus, PausedReason
from ...shared.utils import utcnow
from ..notifications.service import create_server_notification

logger = logging.getLogger(__name__)


def resume_credit_gated_campaigns(db: Session, organization_id: int) -> list[Campaign]:
    """Resume campaigns paused for insufficient credits. Call only after the credit is committed."""
    campaigns = (
        db.query(Campaign)
        .filter(
            Campaign.organization_id == organization_id,
            Campaign.status == CampaignStatus.PAUSED.value,
            Campaign.paused_reason == PausedReason.INSUFFICIENT_CREDITS.value,
        )
        .order_by(Campaign.id.asc())
        .all()
    )
    if not campaigns:
        return []

    for campaign in campaigns:
        campaign.status = CampaignStatus.RUNNING.value
        campaign.paused_reason = None
        campaign.paused_at = None
    db.commit()

    for campaign in campaigns:
        logger.info(
            "Resumed campaign after credits were restored",
            extra={"organization_id": organization_id, "campaign_id": campaign.id},
        )
        create_server_notification(
            db,
            organization_id=organization_id,
            type="campaign_alert",
            title="Campaign Resumed",
            message=f'"{campaign.name}" has been automatically resumed after credits were restored.',
            severity="low",
            category="campaigns",
            metadata={"campaign_id": campaign.id, "reason": "auto_recharge_restored_credits"},
        )
    return campaigns


def pause_campaigns_for_insufficient_credits(db: Session, organization_id: int) -> list[Campaign]:
    """Pause running campaigns of an organization that ran out of credit.

    Campaigns already paused for another reason keep that reason.
    """
    campaigns = (
        db.query(Campaign)
        .filter(
            Campaign.organization_id == organization_id,
            Campaign.status == CampaignStatus.RUNNING.value,
        )
        .order_by(Campaign.id.asc())
        .all()
    )
    if not campaigns:
        return []

    now = utcnow()
    for campaign in campaigns:
        campaign.status = CampaignStatus.PAUSED.value
        campaign.paused_reason = PausedReason.INSUFFICIENT_CREDITS.value
        campaign.paused_at = now
    db.commit()
    logger.info(
        "Paused %d campaigns for insufficient credits",
        len(campaigns),
        extra={"organization_id": organization_id},
    )
    return campaigns
