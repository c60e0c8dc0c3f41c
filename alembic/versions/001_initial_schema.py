"""Initial schema: organizations, users, auto-recharge configs, credit ledger, campaigns, notifications.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=True),
        sa.Column("credit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_organizations_id", "organizations", ["id"], unique=False)
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("hashed_password", sa.String(length=1024), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_superuser", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_organization_id", "users", ["organization_id"], unique=False)

    op.create_table(
        "auto_recharge_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("threshold", sa.Numeric(12, 2), nullable=False, server_default="10"),
        sa.Column("recharge_amount", sa.Numeric(12, 2), nullable=False, server_default="50"),
        sa.Column("max_monthly_recharges", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("recharges_this_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("month_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stripe_payment_method_id", sa.String(), nullable=True),
        sa.Column("last_recharge_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("charge_lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unposted_transaction_id", sa.String(), nullable=True),
        sa.Column("unposted_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("recharges_this_month >= 0", name="ck_auto_recharge_counter_non_negative"),
    )
    op.create_index("ix_auto_recharge_configs_id", "auto_recharge_configs", ["id"], unique=False)
    op.create_index(
        "ix_auto_recharge_configs_organization_id", "auto_recharge_configs", ["organization_id"], unique=True
    )

    op.create_table(
        "credit_ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("entry_type", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("reference_id", "kind", "entry_type", name="uq_credit_ledger_reference_kind_type"),
    )
    op.create_index("ix_credit_ledger_entries_id", "credit_ledger_entries", ["id"], unique=False)
    op.create_index(
        "ix_credit_ledger_entries_organization_id", "credit_ledger_entries", ["organization_id"], unique=False
    )
    op.create_index("ix_credit_ledger_entries_reference_id", "credit_ledger_entries", ["reference_id"], unique=False)

    op.create_table(
        "campaigns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("paused_reason", sa.String(), nullable=True),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_campaigns_id", "campaigns", ["id"], unique=False)
    op.create_index("ix_campaigns_organization_id", "campaigns", ["organization_id"], unique=False)
    op.create_index("ix_campaigns_org_status_reason", "campaigns", ["organization_id", "status", "paused_reason"])

    op.create_table(
        "server_notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False, server_default="medium"),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_server_notifications_id", "server_notifications", ["id"], unique=False)
    op.create_index(
        "ix_server_notifications_organization_id", "server_notifications", ["organization_id"], unique=False
    )


def downgrade() -> None:
    op.drop_table("server_notifications")
    op.drop_table("campaigns")
    op.drop_table("credit_ledger_entries")
    op.drop_table("auto_recharge_configs")
    op.drop_table("users")
    op.drop_table("organizations")
