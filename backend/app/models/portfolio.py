"""Portfolio, cached position, and transaction models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.market import Stock

TRANSACTION_TYPES = ("BUY", "SELL")
TRANSACTION_STATUSES = ("PENDING", "COMPLETED", "FAILED")


class Portfolio(Base):
    __tablename__ = "portfolio"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    positions: Mapped[list["Position"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan"
    )


class Position(Base):
    """Read-through cache of replayed holdings; rebuilt by reconciliation."""

    __tablename__ = "position"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "stock_id", name="uq_position_portfolio_stock"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolio.id", ondelete="CASCADE"))
    stock_id: Mapped[int] = mapped_column(ForeignKey("stock.id", ondelete="CASCADE"))
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    average_buy_price: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    current_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    profit_loss: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    portfolio: Mapped[Portfolio] = relationship(back_populates="positions")
    stock: Mapped[Stock] = relationship()


class Transaction(Base):
    __tablename__ = "transaction"
    __table_args__ = (
        Index("ix_transaction_user_timestamp", "user_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    stock_id: Mapped[int] = mapped_column(ForeignKey("stock.id", ondelete="RESTRICT"))
    type: Mapped[str] = mapped_column(Enum(*TRANSACTION_TYPES, name="transaction_type"))
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    status: Mapped[str] = mapped_column(
        Enum(*TRANSACTION_STATUSES, name="transaction_status"), default="COMPLETED"
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    stock: Mapped[Stock] = relationship()


__all__ = [
    "Portfolio",
    "Position",
    "Transaction",
    "TRANSACTION_TYPES",
    "TRANSACTION_STATUSES",
]
