"""Initial schema for the paper-trading simulator.

Revision ID: 0001_initial
Revises:
Create Date: 2024-03-01 00:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


transaction_type = sa.Enum("BUY", "SELL", name="transaction_type")
transaction_status = sa.Enum("PENDING", "COMPLETED", "FAILED", name="transaction_status")


def upgrade() -> None:
    op.create_table(
        "stock",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("symbol", sa.String(length=10), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("sector", sa.String(length=64), nullable=True),
        sa.Column("current_price", sa.Numeric(18, 4), nullable=False),
        sa.Column("previous_close", sa.Numeric(18, 4), nullable=True),
        sa.Column("volume", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("market_cap", sa.Numeric(24, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_frozen", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("volatility", sa.Numeric(8, 6), nullable=True),
        sa.Column("jump_probability", sa.Numeric(8, 6), nullable=False, server_default="0"),
        sa.Column("max_jump_multiplier", sa.Numeric(8, 4), nullable=False, server_default="1.10"),
        sa.Column("price_cap", sa.Numeric(18, 4), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_stock_symbol", "stock", ["symbol"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("stock_id", sa.Integer(), sa.ForeignKey("stock.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("price", sa.Numeric(18, 4), nullable=False),
        sa.Column("volume", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("stock_id", "day", name="uq_price_history_stock_day"),
    )
    op.create_index("ix_price_history_stock_day", "price_history", ["stock_id", "day"])

    op.create_table(
        "portfolio",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_portfolio_user_id", "portfolio", ["user_id"])

    op.create_table(
        "position",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("portfolio_id", sa.Integer(), sa.ForeignKey("portfolio.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stock_id", sa.Integer(), sa.ForeignKey("stock.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_buy_price", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("current_value", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("profit_loss", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.UniqueConstraint("portfolio_id", "stock_id", name="uq_position_portfolio_stock"),
    )

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("stock_id", sa.Integer(), sa.ForeignKey("stock.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(18, 4), nullable=False),
        sa.Column("total_amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("status", transaction_status, nullable=False, server_default="COMPLETED"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_transaction_quantity_positive"),
    )
    op.create_index("ix_transaction_user_timestamp", "transaction", ["user_id", "timestamp"])
    op.create_index("ix_transaction_timestamp", "transaction", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_transaction_timestamp", table_name="transaction")
    op.drop_index("ix_transaction_user_timestamp", table_name="transaction")
    op.drop_table("transaction")
    op.drop_table("position")
    op.drop_index("ix_portfolio_user_id", table_name="portfolio")
    op.drop_table("portfolio")
    op.drop_index("ix_price_history_stock_day", table_name="price_history")
    op.drop_table("price_history")
    op.drop_index("ix_stock_symbol", table_name="stock")
    op.drop_table("stock")
    transaction_status.drop(op.get_bind(), checkfirst=True)
    transaction_type.drop(op.get_bind(), checkfirst=True)
