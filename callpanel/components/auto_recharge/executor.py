"""One organization's recharge: lease, re-check, charge, post, resume.

A charge that was captured but never credited is stored on the config and
settled by ``settle_unposted_charge`` on a later pass, without a new charge.

Outcomes other than a clean success or a skip are raised as
``AutoRechargeError`` subclasses so the pass can collect them per organization.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models.auto_recharge_config import AutoRechargeConfig
from ...models.credit_ledger_entry import LedgerEntryType, LedgerKind
from ...models.organization import Organization
from ...platform.brand import format_usd
from ...platform.config import settings
from ...services.credit_ledger_service import apply_ledger_entry, to_money
from ..integrations.stripe.service import (
    CHARGE_DECLINED,
    CHARGE_REQUIRES_ACTION,
    CHARGE_SUCCEEDED,
    ChargeResult,
)
from ..notifications.service import create_server_notification
from .campaign_gate import resume_credit_gated_campaigns
from .eligibility import below_threshold, under_monthly_cap
from .errors import (
    LedgerPostFailure,
    MissingPaymentProfile,
    NotificationFailure,
    OrgNotFound,
    PaymentDeclined,
    PaymentError,
    PaymentRequiresAuth,
)

logger = logging.getLogger(__name__)

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_ALREADY_APPLIED = "already_applied"
OUTCOME_SKIPPED = "skipped"


@dataclass
class RechargeAttempt:
    config_id: int
    organization_id: Optional[int] = None
    threshold: Optional[Decimal] = None
    recharge_amount: Optional[Decimal] = None
    previous_balance: Optional[Decimal] = None
    idempotency_key: Optional[str] = None
    charge: Optional[ChargeResult] = None
    ledger_entry_id: Optional[int] = None
    resumed_campaign_ids: tuple = ()
    outcome: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == OUTCOME_SUCCEEDED


def amount_to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def charge_window(now: datetime) -> int:
    """Index of the scheduling interval that contains ``now``."""
    interval = max(float(settings.AUTO_RECHARGE_INTERVAL_SECONDS), 1.0)
    return int(now.timestamp() // interval)


def build_idempotency_key(config: AutoRechargeConfig, request: dict, now: datetime) -> str:
    """Key for one charge request within one scheduling window.

    Passes that overlap inside a window share the key, so the gateway collapses
    them into one transaction. The next window gets a fresh key, so a declined
    or failed charge is really attempted again. The digest covers every request
    parameter; a key is never reused with different parameters.
    """
    digest = hashlib.sha256(json.dumps(request, sort_keys=True, default=str).encode("utf-8")).hexdigest()[:16]
    sequence = int(config.recharges_this_month or 0) + 1
    return (
        f"auto_recharge:{config.organization_id}:{config.stripe_payment_method_id}:"
        f"{charge_window(now)}:{sequence}:{digest}"
    )


def acquire_charge_lease(db: Session, config_id: int, now: datetime) -> bool:
    acquired = (
        db.query(AutoRechargeConfig)
        .filter(
            AutoRechargeConfig.id == config_id,
            or_(
                AutoRechargeConfig.charge_lease_expires_at.is_(None),
                AutoRechargeConfig.charge_lease_expires_at < now,
            ),
        )
        .update(
            {AutoRechargeConfig.charge_lease_expires_at: now + timedelta(seconds=settings.AUTO_RECHARGE_LEASE_SECONDS)},
            synchronize_session=False,
        )
    )
    db.commit()
    return bool(acquired)


def release_charge_lease(db: Session, config_id: int) -> None:
    db.query(AutoRechargeConfig).filter(AutoRechargeConfig.id == config_id).update(
        {AutoRechargeConfig.charge_lease_expires_at: None},
        synchronize_session=False,
    )
    db.commit()


def execute_recharge(db: Session, gateway, config_id: int, now: datetime) -> RechargeAttempt:
    return _run_leased(db, config_id, now, lambda attempt: _charge_and_post(db, gateway, config_id, now, attempt))


def settle_unposted_charge(db: Session, config_id: int, now: datetime) -> RechargeAttempt:
    """Post the credit for a stored, already captured charge. Never calls the gateway."""
    return _run_leased(db, config_id, now, lambda attempt: _post_unposted_charge(db, config_id, now, attempt))


def _run_leased(db: Session, config_id: int, now: datetime, step) -> RechargeAttempt:
    attempt = RechargeAttempt(config_id=config_id)
    config = db.get(AutoRechargeConfig, config_id)
    if config is None:
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "config_missing"
        return attempt
    attempt.organization_id = config.organization_id

    if not acquire_charge_lease(db, config_id, now):
        logger.info("Auto-recharge lease held by another pass", extra={"organization_id": config.organization_id})
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "lease_held"
        return attempt

    try:
        step(attempt)
    finally:
        try:
            db.rollback()
            release_charge_lease(db, config_id)
        except Exception:
            # Lease expires on its own after AUTO_RECHARGE_LEASE_SECONDS.
            logger.exception("Failed to release auto-recharge lease", extra={"organization_id": attempt.organization_id})
    return attempt


def _charge_and_post(db: Session, gateway, config_id: int, now: datetime, attempt: RechargeAttempt) -> None:
    config = db.get(AutoRechargeConfig, config_id, populate_existing=True)
    organization = db.get(Organization, attempt.organization_id, populate_existing=True)
    if organization is None:
        raise OrgNotFound(attempt.organization_id)

    if config is None or not config.enabled or not config.stripe_payment_method_id:
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "disabled"
        return
    if config.unposted_transaction_id:
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "unposted_charge_pending"
        return
    if not under_monthly_cap(config):
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "monthly_cap_reached"
        return
    if not below_threshold(organization, config):
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "balance_at_or_above_threshold"
        return
    if not organization.stripe_customer_id:
        raise MissingPaymentProfile(organization.id)

    attempt.threshold = to_money(config.threshold)
    attempt.recharge_amount = to_money(config.recharge_amount)
    attempt.previous_balance = to_money(organization.credit_balance)

    # Only config values go into the request, so a replayed key always carries the same parameters.
    request = {
        "amount_minor_units": amount_to_minor_units(attempt.recharge_amount),
        "currency": settings.AUTO_RECHARGE_CURRENCY,
        "customer_profile_ref": organization.stripe_customer_id,
        "payment_method_ref": config.stripe_payment_method_id,
        "description": f"Auto-recharge: {format_usd(attempt.recharge_amount)}",
        "metadata": {
            "organization_id": organization.id,
            "type": "auto_recharge",
            "trigger": "balance_below_threshold",
            "threshold": str(attempt.threshold),
        },
    }
    attempt.idempotency_key = build_idempotency_key(config, request, now)

    try:
        charge = gateway.capture_off_session_charge(**request, idempotency_key=attempt.idempotency_key)
    except Exception as exc:
        raise PaymentError(f"Payment gateway failure: {exc}", organization.id) from exc
    attempt.charge = charge

    if charge.status == CHARGE_REQUIRES_ACTION:
        _disable_for_authentication(db, config, organization.id)
        raise PaymentRequiresAuth(organization.id)
    if charge.status == CHARGE_DECLINED:
        raise PaymentDeclined(
            f"Payment declined ({charge.error_code or 'card_declined'}): {charge.message or 'no detail'}",
            organization.id,
        )
    if charge.status != CHARGE_SUCCEEDED or not charge.transaction_id:
        raise PaymentError(charge.message or f"Payment status {charge.status}", organization.id)

    _post_recharge_credit(db, config, organization.id, now, attempt)


def _post_unposted_charge(db: Session, config_id: int, now: datetime, attempt: RechargeAttempt) -> None:
    config = db.get(AutoRechargeConfig, config_id, populate_existing=True)
    if config is None or not config.unposted_transaction_id:
        attempt.outcome = OUTCOME_SKIPPED
        attempt.skip_reason = "nothing_unposted"
        return
    organization = db.get(Organization, attempt.organization_id, populate_existing=True)
    if organization is None:
        raise OrgNotFound(attempt.organization_id)

    attempt.threshold = to_money(config.threshold)
    attempt.recharge_amount = to_money(
        config.unposted_amount if config.unposted_amount is not None else config.recharge_amount
    )
    attempt.previous_balance = to_money(organization.credit_balance)
    attempt.charge = ChargeResult(status=CHARGE_SUCCEEDED, transaction_id=config.unposted_transaction_id)
    logger.info(
        "Settling captured auto-recharge charge",
        extra={"organization_id": organization.id, "transaction_id": config.unposted_transaction_id},
    )
    _post_recharge_credit(db, config, organization.id, now, attempt)



def _notify(db: Session, *, organization_id: int, title: str, **fields) -> None:
    if not create_server_notification(db, organization_id=organization_id, title=title, **fields):
        logger.warning(
            str(NotificationFailure(f"{title} notification not written", organization_id)),
            extra={"organization_id": organization_id},
        )


def _disable_for_authentication(db: Session, config: AutoRechargeConfig, organization_id: int) -> None:
    config.enabled = False
    db.commit()
    logger.warning(
        "Auto-recharge disabled: card requires authentication",
        extra={"organization_id": organization_id, "outcome": "requires_action"},
    )
    _notify(
        db,
        organization_id=organization_id,
        type="billing_alert",
        title="Auto-Recharge Disabled",
        message=(
            "Your card requires authentication, so auto-recharge has been turned off. "
            "Update your payment method and re-enable auto-recharge to keep campaigns running."
        ),
        severity="high",
        category="billing",
        metadata={"type": "auto_recharge", "reason": "authentication_required"},
    )


def _post_recharge_credit(
    db: Session,
    config: AutoRechargeConfig,
    organization_id: int,
    now: datetime,
    attempt: RechargeAttempt,
) -> None:
    transaction_id = attempt.charge.transaction_id
    config_id = config.id
    try:
        entry, created = apply_ledger_entry(
            db,
            organization_id=organization_id,
            amount=attempt.recharge_amount,
            kind=LedgerKind.CREDIT.value,
            description=(
                f"Auto-recharge: {format_usd(attempt.recharge_amount)} "
                f"(triggered at {format_usd(attempt.previous_balance)})"
            ),
            reference_id=transaction_id,
            metadata={
                "type": "auto_recharge",
                "payment_intent": transaction_id,
                "previous_balance": str(attempt.previous_balance),
                "threshold": str(attempt.threshold),
            },
            entry_type=LedgerEntryType.AUTO_RECHARGE.value,
        )
        values = {
            AutoRechargeConfig.unposted_transaction_id: None,
            AutoRechargeConfig.unposted_amount: None,
        }
        if created:
            values[AutoRechargeConfig.recharges_this_month] = AutoRechargeConfig.recharges_this_month + 1
            values[AutoRechargeConfig.last_recharge_at] = now
        db.query(AutoRechargeConfig).filter(AutoRechargeConfig.id == config_id).update(
            values, synchronize_session=False
        )
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error(
            "Auto-recharge charge captured but ledger credit failed: %s",
            exc,
            exc_info=True,
            extra={
                "organization_id": organization_id,
                "transaction_id": transaction_id,
                "idempotency_key": attempt.idempotency_key,
                "outcome": "ledger_failure",
            },
        )
        recorded = _record_unposted_charge(db, config_id, organization_id, transaction_id, attempt.recharge_amount)
        raise LedgerPostFailure(organization_id, transaction_id, str(exc), recorded=recorded) from exc

    attempt.ledger_entry_id = entry.id
    if not created:
        attempt.outcome = OUTCOME_ALREADY_APPLIED
        logger.info(
            "Auto-recharge credit already recorded by an overlapping pass",
            extra={"organization_id": organization_id, "transaction_id": transaction_id},
        )
        return

    attempt.outcome = OUTCOME_SUCCEEDED
    logger.info(
        "Auto-recharge applied amount=%s previous_balance=%s",
        attempt.recharge_amount,
        attempt.previous_balance,
        extra={"organization_id": organization_id, "transaction_id": transaction_id, "outcome": OUTCOME_SUCCEEDED},
    )
    _notify(
        db,
        organization_id=organization_id,
        type="billing_alert",
        title="Auto-Recharge Successful",
        message=(
            f"{format_usd(attempt.recharge_amount)} has been added to your balance. "
            f"Previous balance: {format_usd(attempt.previous_balance)}"
        ),
        severity="medium",
        category="billing",
        metadata={"type": "auto_recharge", "payment_intent": transaction_id, "amount": str(attempt.recharge_amount)},
    )
    resumed = resume_credit_gated_campaigns(db, organization_id)
    attempt.resumed_campaign_ids = tuple(campaign.id for campaign in resumed)


def _record_unposted_charge(
    db: Session,
    config_id: int,
    organization_id: int,
    transaction_id: str,
    amount,
) -> bool:
    try:
        db.query(AutoRechargeConfig).filter(AutoRechargeConfig.id == config_id).update(
            {
                AutoRechargeConfig.unposted_transaction_id: transaction_id,
                AutoRechargeConfig.unposted_amount: amount,
            },
            synchronize_session=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Failed to record unposted auto-recharge charge",
            extra={"organization_id": organization_id, "transaction_id": transaction_id},
        )
        return False
    return True
