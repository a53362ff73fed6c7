"""billing init

Revision ID: 0001_billing_init
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_billing_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("display_name", sa.String(), nullable=True),
            sa.Column("credits_available", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("credits_used", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_spent", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("users")
    if "ix_users_id" not in idxs:
        op.create_index("ix_users_id", "users", ["id"])
    if "ix_users_email" not in idxs:
        op.create_index("ix_users_email", "users", ["email"])

    if "credit_transactions" not in existing_tables:
        op.create_table(
            "credit_transactions",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("credits_change", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("type", sa.Enum("purchase", "usage", "refund", "bonus", name="transactiontype"), nullable=False),
            sa.Column(
                "status",
                sa.Enum("pending", "completed", "failed", "refunded", name="transactionstatus"),
                nullable=False,
            ),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("external_transaction_id", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        )
    idxs = existing_indexes("credit_transactions")
    if "ix_credit_transactions_user_id" not in idxs:
        op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
    if "ix_credit_transactions_external_transaction_id" not in idxs:
        op.create_index(
            "ix_credit_transactions_external_transaction_id",
            "credit_transactions",
            ["external_transaction_id"],
            unique=True,
        )
    if "ix_credit_transactions_created_at" not in idxs:
        op.create_index("ix_credit_transactions_created_at", "credit_transactions", ["created_at"])

    if "reconciliation_alerts" not in existing_tables:
        op.create_table(
            "reconciliation_alerts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("kind", sa.String(), nullable=True),
            sa.Column("external_transaction_id", sa.String(), nullable=True),
            sa.Column("event_type", sa.String(), nullable=True),
            sa.Column("detail", sa.Text(), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        )
    idxs = existing_indexes("reconciliation_alerts")
    if "ix_reconciliation_alerts_id" not in idxs:
        op.create_index("ix_reconciliation_alerts_id", "reconciliation_alerts", ["id"])
    if "ix_reconciliation_alerts_kind" not in idxs:
        op.create_index("ix_reconciliation_alerts_kind", "reconciliation_alerts", ["kind"])
    if "ix_reconciliation_alerts_external_transaction_id" not in idxs:
        op.create_index(
            "ix_reconciliation_alerts_external_transaction_id",
            "reconciliation_alerts",
            ["external_transaction_id"],
        )


def downgrade() -> None:
    op.drop_index("ix_reconciliation_alerts_external_transaction_id", table_name="reconciliation_alerts")
    op.drop_index("ix_reconciliation_alerts_kind", table_name="reconciliation_alerts")
    op.drop_index("ix_reconciliation_alerts_id", table_name="reconciliation_alerts")
    op.drop_table("reconciliation_alerts")

    op.drop_index("ix_credit_transactions_created_at", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_external_transaction_id", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_user_id", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    # named enum types outlive their table on PostgreSQL; no-op elsewhere
    sa.Enum(name="transactionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transactiontype").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
