import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class LedgerKind(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerEntryType(str, enum.Enum):
    AUTO_RECHARGE = "auto_recharge"
    MANUAL_TOPUP = "manual_topup"
    USAGE = "usage"
    ADJUSTMENT = "adjustment"


class CreditLedgerEntry(Base):
    """Append-only balance event. Rows are never updated or deleted."""

    __tablename__ = "credit_ledger_entries"
    __table_args__ = (
        UniqueConstraint("reference_id", "kind", "entry_type", name="uq_credit_ledger_reference_kind_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # signed: credits > 0, debits < 0
    kind = Column(String, nullable=False)
    entry_type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    reference_id = Column(String, nullable=True, index=True)
    balance_after = Column(Numeric(12, 2), nullable=False)
    entry_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="credit_ledger_entries")
