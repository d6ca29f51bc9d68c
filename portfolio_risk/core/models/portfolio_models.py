"""Portfolio, position, transaction and threshold tables.

  - PortfolioRecord: portfolio header with externally maintained total value
  - PositionRecord: one holding per symbol, owned by a portfolio
  - TransactionRecord: trades and cash movements, with the attached
    pre-trade risk analysis
  - RiskThresholdRecord: one row of limits per portfolio, created lazily
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType


class PortfolioRecord(Base):
    __tablename__ = "portfolios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    total_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    positions: Mapped[list["PositionRecord"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan", lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<PortfolioRecord(id={self.id!r}, name={self.name!r}, "
            f"total_value={self.total_value})>"
        )


class PositionRecord(Base):
    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False
    )
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    average_price: Mapped[float] = mapped_column(Float, nullable=False)
    current_price: Mapped[float] = mapped_column(Float, nullable=False)
    asset_type: Mapped[str] = mapped_column(String(30), nullable=False)
    liquidity: Mapped[str] = mapped_column(String(10), nullable=False, default="HIGH")

    portfolio: Mapped[PortfolioRecord] = relationship(back_populates="positions")

    __table_args__ = (
        Index("ix_positions_portfolio_id", "portfolio_id"),
        Index("ix_positions_portfolio_symbol", "portfolio_id", "symbol"),
    )

    def __repr__(self) -> str:
        return (
            f"<PositionRecord(symbol={self.symbol!r}, quantity={self.quantity}, "
            f"portfolio_id={self.portfolio_id!r})>"
        )


class TransactionRecord(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    asset_type: Mapped[str] = mapped_column(String(30), nullable=False, default="STOCK")
    stop_loss: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    take_profit: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    kyc_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    aml_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Pre-trade risk analysis
    risk_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    risk_approved: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    requires_review: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    risk_violations: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    risk_analysis: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_transactions_portfolio_created", "portfolio_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionRecord(id={self.id!r}, type={self.transaction_type!r}, "
            f"amount={self.amount})>"
        )


class RiskThresholdRecord(Base):
    __tablename__ = "risk_thresholds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    max_var_95: Mapped[float] = mapped_column(Float, nullable=False)
    max_var_99: Mapped[float] = mapped_column(Float, nullable=False)
    max_position_size: Mapped[float] = mapped_column(Float, nullable=False)
    max_single_asset_exposure: Mapped[float] = mapped_column(Float, nullable=False)
    max_sector_exposure: Mapped[float] = mapped_column(Float, nullable=False)
    min_liquidity_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    max_leverage: Mapped[float] = mapped_column(Float, nullable=False)
    max_concentration: Mapped[float] = mapped_column(Float, nullable=False)
    max_daily_loss: Mapped[float] = mapped_column(Float, nullable=False)
    max_weekly_loss: Mapped[float] = mapped_column(Float, nullable=False)
    max_drawdown: Mapped[float] = mapped_column(Float, nullable=False)
    require_stop_loss: Mapped[bool] = mapped_column(Boolean, nullable=False)
    max_stop_loss_distance: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<RiskThresholdRecord(portfolio_id={self.portfolio_id!r})>"
