from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class AutoRechargeConfig(Base):
    __tablename__ = "auto_recharge_configs"
    __table_args__ = (
        CheckConstraint("recharges_this_month >= 0", name="ck_auto_recharge_counter_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), unique=True, index=True, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    threshold = Column(Numeric(12, 2), nullable=False, default=10)
    recharge_amount = Column(Numeric(12, 2), nullable=False, default=50)
    max_monthly_recharges = Column(Integer, nullable=False, default=5)
    recharges_this_month = Column(Integer, nullable=False, default=0)
    month_reset_at = Column(DateTime(timezone=True), nullable=True)
    stripe_payment_method_id = Column(String, nullable=True)
    last_recharge_at = Column(DateTime(timezone=True), nullable=True)
    # Held by one pass while it charges this organization; NULL or past means free.
    charge_lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    # Captured charge whose ledger credit has not been posted yet; settled before any new charge.
    unposted_transaction_id = Column(String, nullable=True)
    unposted_amount = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    organization = relationship("Organization", back_populates="auto_recharge_config")
