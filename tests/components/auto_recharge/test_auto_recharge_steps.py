from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from callpanel.components.auto_recharge import executor as executor_module
from callpanel.components.auto_recharge.campaign_gate import (
    pause_campaigns_for_insufficient_credits,
    resume_credit_gated_campaigns,
)
from callpanel.components.auto_recharge.counters import reset_monthly_counters, start_of_next_month
from callpanel.components.auto_recharge.eligibility import select_eligible_configs
from callpanel.components.auto_recharge.errors import (
    LedgerPostFailure,
    MissingPaymentProfile,
    PaymentRequiresAuth,
)
from callpanel.components.auto_recharge.executor import (
    OUTCOME_SKIPPED,
    OUTCOME_SUCCEEDED,
    acquire_charge_lease,
    amount_to_minor_units,
    build_idempotency_key,
    charge_window,
    execute_recharge,
)
from callpanel.models.auto_recharge_config import AutoRechargeConfig
from callpanel.models.campaign import Campaign
from callpanel.models.organization import Organization
from callpanel.shared.utils import ensure_utc
from tests.components.auto_recharge.factories import (
    NEXT_RESET,
    NOW,
    FakeGateway,
    make_campaign,
    make_config,
    make_organization,
    requires_action,
)


class TestStartOfNextMonth:

    def test_mid_month(self):
        assert start_of_next_month(NOW) == NEXT_RESET

    def test_december_rolls_into_next_year(self):
        assert start_of_next_month(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)) == datetime(
            2027, 1, 1, tzinfo=timezone.utc
        )

    def test_converts_offset_timestamps_to_utc(self):
        # 2026-10-31 23:30 UTC expressed in UTC+2 is already November locally
        local = datetime(2026, 11, 1, 1, 30, tzinfo=timezone(timedelta(hours=2)))
        assert start_of_next_month(local) == NEXT_RESET


class TestResetMonthlyCounters:

    def test_resets_only_elapsed_enabled_configs(self, db):
        due = make_config(db, make_organization(db, name="Due"), recharges_this_month=4,
                          month_reset_at=datetime(2026, 10, 1, tzinfo=timezone.utc))
        fresh = make_config(db, make_organization(db, name="Fresh"), recharges_this_month=4)
        disabled = make_config(db, make_organization(db, name="Disabled"), enabled=False, recharges_this_month=4,
                               month_reset_at=datetime(2026, 10, 1, tzinfo=timezone.utc))

        assert reset_monthly_counters(db, NOW) == 1

        db.expire_all()
        assert db.get(AutoRechargeConfig, due.id).recharges_this_month == 0
        assert ensure_utc(db.get(AutoRechargeConfig, due.id).month_reset_at) == NEXT_RESET
        assert db.get(AutoRechargeConfig, fresh.id).recharges_this_month == 4
        assert db.get(AutoRechargeConfig, disabled.id).recharges_this_month == 4

    def test_reset_exactly_at_boundary(self, db):
        config = make_config(db, make_organization(db), recharges_this_month=3, month_reset_at=NOW)

        assert reset_monthly_counters(db, NOW) == 1
        db.expire_all()
        assert db.get(AutoRechargeConfig, config.id).recharges_this_month == 0

    def test_unset_reset_time_is_treated_as_due(self, db):
        config = make_config(db, make_organization(db), recharges_this_month=1, month_reset_at=None)

        reset_monthly_counters(db, NOW)

        db.expire_all()
        assert ensure_utc(db.get(AutoRechargeConfig, config.id).month_reset_at) == NEXT_RESET

    def test_skipped_months_do_not_compound(self, db):
        config = make_config(db, make_organization(db), month_reset_at=datetime(2026, 3, 1, tzinfo=timezone.utc))

        reset_monthly_counters(db, NOW)

        db.expire_all()
        assert ensure_utc(db.get(AutoRechargeConfig, config.id).month_reset_at) == NEXT_RESET


def test_eligible_configs_are_ordered_by_organization(db):
    first = make_organization(db, name="First")
    second = make_organization(db, name="Second")
    make_config(db, second)
    make_config(db, first)
    make_config(db, make_organization(db, name="Rich", balance="500.00"))

    eligible = select_eligible_configs(db)

    assert [config.organization_id for config in eligible] == [first.id, second.id]


class TestExecutorHelpers:

    def test_minor_units_round_half_up(self):
        assert amount_to_minor_units(Decimal("50")) == 5000
        assert amount_to_minor_units(Decimal("10.005")) == 1001
        assert amount_to_minor_units("19.994") == 1999

    def test_idempotency_key_is_shared_within_a_window_and_fresh_in_the_next(self, db):
        config = make_config(db, make_organization(db), recharges_this_month=0)
        request = {"amount_minor_units": 5000, "currency": "usd", "description": "Auto-recharge: $50.00"}

        first = build_idempotency_key(config, request, NOW)
        assert first == build_idempotency_key(config, request, NOW + timedelta(minutes=14, seconds=59))
        assert first != build_idempotency_key(config, request, NOW + timedelta(minutes=15))
        assert first.startswith(f"auto_recharge:{config.organization_id}:pm_card_visa:{charge_window(NOW)}:1:")

    def test_idempotency_key_changes_with_sequence_or_parameters(self, db):
        config = make_config(db, make_organization(db), recharges_this_month=0)
        request = {"amount_minor_units": 5000, "currency": "usd"}
        first = build_idempotency_key(config, request, NOW)

        assert build_idempotency_key(config, dict(request, amount_minor_units=7500), NOW) != first
        config.recharges_this_month = 1
        assert build_idempotency_key(config, request, NOW).split(":")[4] == "2"

    def test_lease_is_exclusive_until_expiry(self, db):
        config = make_config(db, make_organization(db))

        assert acquire_charge_lease(db, config.id, NOW) is True
        assert acquire_charge_lease(db, config.id, NOW + timedelta(seconds=30)) is False
        assert acquire_charge_lease(db, config.id, NOW + timedelta(hours=1)) is True


class TestExecuteRecharge:

    def test_balance_is_rechecked_at_charge_time(self, db, gateway):
        org = make_organization(db)
        config = make_config(db, org)
        assert [c.id for c in select_eligible_configs(db)] == [config.id]

        db.query(Organization).filter(Organization.id == org.id).update({Organization.credit_balance: Decimal("20.00")})
        db.commit()

        attempt = execute_recharge(db, gateway, config.id, NOW)

        assert attempt.outcome == OUTCOME_SKIPPED
        assert attempt.skip_reason == "balance_at_or_above_threshold"
        assert gateway.calls == []

    def test_success_populates_attempt(self, db, gateway):
        org = make_organization(db)
        config = make_config(db, org)
        campaign = make_campaign(db, org)

        attempt = execute_recharge(db, gateway, config.id, NOW)

        assert attempt.outcome == OUTCOME_SUCCEEDED
        assert attempt.organization_id == org.id
        assert attempt.previous_balance == Decimal("5.00")
        assert attempt.recharge_amount == Decimal("50.00")
        assert attempt.charge.transaction_id == "pi_fake_1"
        assert attempt.ledger_entry_id is not None
        assert attempt.resumed_campaign_ids == (campaign.id,)

    def test_missing_customer_raises(self, db, gateway):
        config = make_config(db, make_organization(db, customer_id=None))

        with pytest.raises(MissingPaymentProfile):
            execute_recharge(db, gateway, config.id, NOW)
        assert gateway.calls == []

    def test_requires_auth_raises_and_releases_lease(self, db):
        org = make_organization(db, customer_id="cus_3ds")
        config = make_config(db, org)

        with pytest.raises(PaymentRequiresAuth) as exc_info:
            execute_recharge(db, FakeGateway({"cus_3ds": requires_action()}), config.id, NOW)

        assert exc_info.value.organization_id == org.id
        db.expire_all()
        assert db.get(AutoRechargeConfig, config.id).charge_lease_expires_at is None

    def test_ledger_failure_carries_transaction_id(self, db, gateway, monkeypatch):

        def broken(session, **kwargs):
            raise ValueError("organization_not_found")

        monkeypatch.setattr(executor_module, "apply_ledger_entry", broken)
        config = make_config(db, make_organization(db))

        with pytest.raises(LedgerPostFailure) as exc_info:
            execute_recharge(db, gateway, config.id, NOW)

        assert exc_info.value.transaction_id == "pi_fake_1"
        assert exc_info.value.recorded is True
        db.expire_all()
        assert db.get(AutoRechargeConfig, config.id).unposted_transaction_id == "pi_fake_1"

    def test_config_with_unposted_charge_is_never_charged_again(self, db, gateway):
        config = make_config(db, make_organization(db))
        config.unposted_transaction_id = "pi_earlier"
        config.unposted_amount = Decimal("50.00")
        db.commit()

        assert select_eligible_configs(db) == []
        attempt = execute_recharge(db, gateway, config.id, NOW)

        assert attempt.outcome == OUTCOME_SKIPPED
        assert attempt.skip_reason == "unposted_charge_pending"
        assert gateway.calls == []


class TestCampaignGate:

    def test_resume_only_touches_credit_paused_campaigns_of_the_organization(self, db):
        org = make_organization(db, name="Mine")
        other = make_organization(db, name="Other")
        gated = make_campaign(db, org, name="Gated")
        outage = make_campaign(db, org, name="Outage", paused_reason="provider_outage")
        running = make_campaign(db, org, name="Live", status="running", paused_reason=None)
        foreign = make_campaign(db, other, name="Foreign")

        resumed = resume_credit_gated_campaigns(db, org.id)

        assert [c.id for c in resumed] == [gated.id]
        db.expire_all()
        assert db.get(Campaign, gated.id).status == "running"
        assert db.get(Campaign, gated.id).paused_at is None
        assert db.get(Campaign, outage.id).status == "paused"
        assert db.get(Campaign, outage.id).paused_reason == "provider_outage"
        assert db.get(Campaign, running.id).status == "running"
        assert db.get(Campaign, foreign.id).status == "paused"

    def test_resume_with_nothing_paused_is_a_no_op(self, db):
        org = make_organization(db)
        assert resume_credit_gated_campaigns(db, org.id) == []

    def test_pause_keeps_other_pause_reasons(self, db):
        org = make_organization(db)
        running = make_campaign(db, org, name="Live", status="running", paused_reason=None)
        manual = make_campaign(db, org, name="Manual", paused_reason="manual")

        paused = pause_campaigns_for_insufficient_credits(db, org.id)

        assert [c.id for c in paused] == [running.id]
        db.expire_all()
        assert db.get(Campaign, running.id).paused_reason == "insufficient_credits"
        assert db.get(Campaign, running.id).paused_at is not None
        assert db.get(Campaign, manual.id).paused_reason == "manual"

    def test_campaigns_paused_by_a_debit_are_resumed_by_the_next_recharge(self, db, gateway):
        org = make_organization(db, balance="0.00")
        config = make_config(db, org)
        live = make_campaign(db, org, name="Live", status="running", paused_reason=None)
        pause_campaigns_for_insufficient_credits(db, org.id)

        attempt = execute_recharge(db, gateway, config.id, NOW)

        assert attempt.resumed_campaign_ids == (live.id,)
        db.expire_all()
        assert db.get(Campaign, live.id).status == "running"


def test_notification_failure_does_not_fail_the_recharge(db, gateway, monkeypatch):
    monkeypatch.setattr(executor_module, "create_server_notification", lambda session, **kwargs: False)
    org = make_organization(db)
    config = make_config(db, org)

    attempt = execute_recharge(db, gateway, config.id, NOW)

    assert attempt.outcome == OUTCOME_SUCCEEDED
    db.expire_all()
    assert db.get(AutoRechargeConfig, config.id).recharges_this_month == 3
