"""Initial playtime schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("first_hour_rate_cents", sa.Integer(), nullable=False),
        sa.Column("additional_hour_rate_cents", sa.Integer(), nullable=False),
        sa.Column("full_afternoon_rate_cents", sa.Integer(), nullable=False),
        sa.Column("logo_url", sa.String(512), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_name", "products", ["name"], unique=False)

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("uses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_coupons_status", "coupons", ["status"], unique=False)

    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("opened_by", sa.String(128), nullable=False),
        sa.Column("opening_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.String(128), nullable=True),
        sa.Column("counted_balance_cents", sa.Integer(), nullable=True),
        sa.Column("expected_cash_cents", sa.Integer(), nullable=True),
        sa.Column("difference_cents", sa.Integer(), nullable=True),
        sa.Column("final_cash_sales_cents", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_sessions_status", "cash_sessions", ["status"], unique=False)
    op.create_index("ix_cash_sessions_opened_at", "cash_sessions", ["opened_at"], unique=False)
    op.create_index(
        "uq_cash_sessions_single_open",
        "cash_sessions",
        ["status"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "cash_withdrawals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cash_session_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("operator", sa.String(128), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_cash_withdrawals_amount_positive"),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_withdrawals_cash_session_id", "cash_withdrawals", ["cash_session_id"], unique=False)

    op.create_table(
        "active_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("responsible", sa.String(255), nullable=False),
        sa.Column("responsible_cpf", sa.String(32), nullable=False),
        sa.Column("responsible_phone", sa.String(32), nullable=True),
        sa.Column("children", sa.JSON(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_time", sa.Integer(), nullable=False),
        sa.Column("is_full_afternoon", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("coupon_code", sa.String(64), nullable=True),
        sa.Column("coupon_id", sa.Integer(), nullable=True),
        sa.Column("discount_applied_cents", sa.Integer(), nullable=True),
        sa.Column("is_initial_payment_made", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("invoiced_consumption_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_coupon_usage_counted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("checked_in_by", sa.String(128), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("max_time > 0", name="ck_active_sessions_max_time_positive"),
        sa.CheckConstraint("total_paid_cents >= 0", name="ck_active_sessions_paid_nonnegative"),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_active_sessions_responsible_cpf", "active_sessions", ["responsible_cpf"], unique=False)
    op.create_index("ix_active_sessions_start_time", "active_sessions", ["start_time"], unique=False)
    op.create_index("ix_active_sessions_coupon_id", "active_sessions", ["coupon_id"], unique=False)

    op.create_table(
        "session_consumption_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_consumption_quantity_positive"),
        sa.ForeignKeyConstraint(["session_id"], ["active_sessions.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "product_id", name="uq_consumption_session_product"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_session_consumption_items_session_id", "session_consumption_items", ["session_id"], unique=False)

    op.create_table(
        "sale_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finalized_by", sa.String(128), nullable=True),
        sa.Column("session_ref", sa.Integer(), nullable=False),
        sa.Column("responsible", sa.String(255), nullable=False),
        sa.Column("responsible_cpf", sa.String(32), nullable=False),
        sa.Column("children", sa.JSON(), nullable=False),
        sa.Column("closed_session", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("time_cost_cents", sa.Integer(), nullable=False),
        sa.Column("consumption", sa.JSON(), nullable=False),
        sa.Column("consumption_cost_cents", sa.Integer(), nullable=False),
        sa.Column("coupon_code", sa.String(64), nullable=True),
        sa.Column("coupon_id", sa.Integer(), nullable=True),
        sa.Column("discount_applied_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("change_given_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cash_session_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_records_finalized_at", "sale_records", ["finalized_at"], unique=False)
    op.create_index("ix_sale_records_session_ref", "sale_records", ["session_ref"], unique=False)
    op.create_index("ix_sale_records_cash_session_id", "sale_records", ["cash_session_id"], unique=False)
    op.create_index("ix_sale_records_cpf_finalized", "sale_records", ["responsible_cpf", "finalized_at"], unique=False)

    op.create_table(
        "sale_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("tender_type", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_sale_payments_amount_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sale_records.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_payments_sale_id", "sale_payments", ["sale_id"], unique=False)
    op.create_index("ix_sale_payments_tender_type", "sale_payments", ["tender_type"], unique=False)

    op.create_table(
        "stock_notices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="stock"),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.String(255), nullable=False),
        sa.Column("link", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(128), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_notices_product_id", "stock_notices", ["product_id"], unique=False)
    op.create_index("ix_stock_notices_created_at", "stock_notices", ["created_at"], unique=False)
    op.create_index("ix_stock_notices_product_resolved", "stock_notices", ["product_id", "resolved_at"], unique=False)


def downgrade():
    op.drop_table("stock_notices")
    op.drop_table("sale_payments")
    op.drop_table("sale_records")
    op.drop_table("session_consumption_items")
    op.drop_table("active_sessions")
    op.drop_table("cash_withdrawals")
    op.drop_index("uq_cash_sessions_single_open", table_name="cash_sessions")
    op.drop_table("cash_sessions")
    op.drop_table("coupons")
    op.drop_table("products")
    op.drop_table("settings")
