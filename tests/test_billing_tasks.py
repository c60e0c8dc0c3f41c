from callpanel.components.auto_recharge import service as auto_recharge_service
from callpanel.models.credit_ledger_entry import CreditLedgerEntry
from callpanel.platform.config import settings
from callpanel.tasks.billing_tasks import process_auto_recharges_task
from callpanel.tasks.celery_app import celery_app
from tests.components.auto_recharge.factories import FakeGateway, make_config, make_organization


def test_beat_schedule_runs_auto_recharge():
    entry = celery_app.conf.beat_schedule["auto-recharge-every-15-minutes"]
    assert entry["task"] == "callpanel.tasks.billing_tasks.process_auto_recharges_task"
    assert entry["schedule"] == settings.AUTO_RECHARGE_INTERVAL_SECONDS


def test_task_skips_when_stripe_disabled(monkeypatch):
    monkeypatch.setattr(settings, "MVP_DISABLE_STRIPE", True)
    assert process_auto_recharges_task() == {"status": "skipped", "reason": "stripe_disabled"}


def test_task_runs_a_pass(db, monkeypatch):
    monkeypatch.setattr(settings, "MVP_DISABLE_STRIPE", False)
    gateway = FakeGateway()
    monkeypatch.setattr(auto_recharge_service, "build_payment_gateway_adapter", lambda: gateway)
    org = make_organization(db)
    make_config(db, org)

    result = process_auto_recharges_task()

    assert result == {"status": "ok", "processed": 1, "errors": []}
    db.expire_all()
    assert db.query(CreditLedgerEntry).filter(CreditLedgerEntry.organization_id == org.id).count() == 1
