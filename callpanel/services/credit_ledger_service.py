from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.credit_ledger_entry import CreditLedgerEntry, LedgerEntryType, LedgerKind
from ..models.organization import Organization


def to_money(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(Decimal("0.01"))


def find_ledger_entry(
    db: Session,
    *,
    reference_id: str,
    kind: str,
    entry_type: str,
) -> CreditLedgerEntry | None:
    return (
        db.query(CreditLedgerEntry)
        .filter(
            CreditLedgerEntry.reference_id == reference_id,
            CreditLedgerEntry.kind == kind,
            CreditLedgerEntry.entry_type == entry_type,
        )
        .first()
    )


def apply_ledger_entry(
    db: Session,
    *,
    organization_id: int,
    amount: Any,
    kind: str = LedgerKind.CREDIT.value,
    description: str | None = None,
    reference_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    entry_type: str = LedgerEntryType.ADJUSTMENT.value,
) -> tuple[CreditLedgerEntry, bool]:
    """Append a ledger row and move the organization's materialized balance with it.

    Both writes go into the caller's transaction; the caller commits. A second
    entry for the same ``(reference_id, kind, entry_type)`` is a no-op that
    returns the existing row with ``created=False``. When the duplicate is only
    detected by the unique constraint (an overlapping writer committed first),
    the session is rolled back before the existing row is returned.
    """
    if kind not in (LedgerKind.CREDIT.value, LedgerKind.DEBIT.value):
        raise ValueError(f"unknown_ledger_kind:{kind}")

    if reference_id:
        existing = find_ledger_entry(db, reference_id=reference_id, kind=kind, entry_type=entry_type)
        if existing:
            return existing, False

    magnitude = abs(to_money(amount))
    signed = magnitude if kind == LedgerKind.CREDIT.value else -magnitude

    updated = (
        db.query(Organization)
        .filter(Organization.id == organization_id)
        .update(
            {Organization.credit_balance: Organization.credit_balance + signed},
            synchronize_session=False,
        )
    )
    if not updated:
        raise ValueError("organization_not_found")
    balance_after = db.query(Organization.credit_balance).filter(Organization.id == organization_id).scalar()

    entry = CreditLedgerEntry(
        organization_id=organization_id,
        amount=signed,
        kind=kind,
        entry_type=entry_type,
        description=description,
        reference_id=reference_id,
        balance_after=to_money(balance_after),
        entry_metadata=metadata or {},
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        if reference_id:
            existing = find_ledger_entry(db, reference_id=reference_id, kind=kind, entry_type=entry_type)
            if existing:
                return existing, False
        raise
    return entry, True


def recent_ledger_entries(db: Session, organization_id: int, limit: int = 20) -> list[CreditLedgerEntry]:
    return (
        db.query(CreditLedgerEntry)
        .filter(CreditLedgerEntry.organization_id == organization_id)
        .order_by(CreditLedgerEntry.created_at.desc(), CreditLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )
