from sqlalchemy import Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True)
    # Materialized from credit_ledger_entries; only the ledger service writes it.
    credit_balance = Column(Numeric(12, 2), nullable=False, default=0)
    stripe_customer_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    users = relationship("User", back_populates="organization")
    campaigns = relationship("Campaign", back_populates="organization", cascade="all, delete-orphan")
    credit_ledger_entries = relationship("CreditLedgerEntry", back_populates="organization", cascade="all, delete-orphan")
    auto_recharge_config = relationship(
        "AutoRechargeConfig",
        back_populates="organization",
        uselist=False,
        cascade="all, delete-orphan",
    )
