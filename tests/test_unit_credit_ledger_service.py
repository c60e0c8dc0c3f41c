"""Unit tests for the credit ledger: balance materialization and idempotent posting."""

from decimal import Decimal

import pytest

from callpanel.models.credit_ledger_entry import CreditLedgerEntry
from callpanel.models.organization import Organization
from callpanel.services.credit_ledger_service import apply_ledger_entry, recent_ledger_entries, to_money


def _org(db, balance="5.00"):
    org = Organization(name="Ledger Org", slug="ledger-org", credit_balance=Decimal(balance))
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


def _balance(db, org_id):
    db.expire_all()
    return db.get(Organization, org_id).credit_balance


def test_credit_moves_balance_and_records_balance_after(db):
    org = _org(db)

    entry, created = apply_ledger_entry(
        db,
        organization_id=org.id,
        amount=Decimal("50"),
        kind="credit",
        description="Top-up",
        reference_id="pi_1",
        metadata={"source": "test"},
        entry_type="auto_recharge",
    )
    db.commit()

    assert created is True
    assert entry.amount == Decimal("50.00")
    assert entry.balance_after == Decimal("55.00")
    assert entry.entry_metadata == {"source": "test"}
    assert _balance(db, org.id) == Decimal("55.00")


def test_same_reference_twice_changes_balance_once(db):
    org = _org(db)
    kwargs = dict(organization_id=org.id, amount="50", kind="credit", reference_id="pi_dup", entry_type="auto_recharge")

    first, first_created = apply_ledger_entry(db, **kwargs)
    db.commit()
    second, second_created = apply_ledger_entry(db, **kwargs)
    db.commit()

    assert first_created is True
    assert second_created is False
    assert second.id == first.id
    assert _balance(db, org.id) == Decimal("55.00")
    assert db.query(CreditLedgerEntry).count() == 1


def test_same_reference_with_other_entry_type_is_a_separate_entry(db):
    org = _org(db)

    apply_ledger_entry(db, organization_id=org.id, amount="50", reference_id="ref_1", entry_type="auto_recharge")
    _, created = apply_ledger_entry(db, organization_id=org.id, amount="5", reference_id="ref_1", entry_type="adjustment")
    db.commit()

    assert created is True
    assert _balance(db, org.id) == Decimal("60.00")


def test_debit_is_stored_negative_and_may_overdraw(db):
    org = _org(db, balance="3.00")

    entry, _ = apply_ledger_entry(db, organization_id=org.id, amount="4.50", kind="debit", entry_type="usage")
    db.commit()

    assert entry.amount == Decimal("-4.50")
    assert _balance(db, org.id) == Decimal("-1.50")


def test_unknown_organization_raises(db):
    with pytest.raises(ValueError, match="organization_not_found"):
        apply_ledger_entry(db, organization_id=9999, amount="10")


def test_unknown_kind_raises(db):
    org = _org(db)
    with pytest.raises(ValueError, match="unknown_ledger_kind"):
        apply_ledger_entry(db, organization_id=org.id, amount="10", kind="refund")


def test_recent_entries_newest_first(db):
    org = _org(db)
    for index in range(3):
        apply_ledger_entry(db, organization_id=org.id, amount="1", reference_id=f"ref_{index}")
    db.commit()

    entries = recent_ledger_entries(db, org.id, limit=2)

    assert [e.reference_id for e in entries] == ["ref_2", "ref_1"]


def test_to_money_quantizes_to_cents():
    assert to_money(None) == Decimal("0.00")
    assert to_money(12.5) == Decimal("12.50")
    assert to_money("7.125") == Decimal("7.12")
