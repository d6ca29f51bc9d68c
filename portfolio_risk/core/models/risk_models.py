"""Risk metric, metric history and alert tables.

  - RiskMetricRecord: append-only metric evaluations with typed details
  - RiskHistoryRecord: compact time series for history queries
  - AlertRecord: alerts with their lifecycle timestamps
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType


class RiskMetricRecord(Base):
    __tablename__ = "risk_metrics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(String(36), nullable=False)
    metric_type: Mapped[str] = mapped_column(String(30), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    time_horizon_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_risk_metrics_portfolio_calculated", "portfolio_id", "calculated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RiskMetricRecord(portfolio_id={self.portfolio_id!r}, "
            f"metric_type={self.metric_type!r}, value={self.value}, "
            f"status={self.status!r})>"
        )


class RiskHistoryRecord(Base):
    __tablename__ = "risk_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(String(36), nullable=False)
    metric_type: Mapped[str] = mapped_column(String(30), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "ix_risk_history_portfolio_type_recorded",
            "portfolio_id",
            "metric_type",
            "recorded_at",
        ),
    )


class AlertRecord(Base):
    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    portfolio_id: Mapped[str] = mapped_column(String(36), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    triggered_by: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dismissed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    dismissed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "ix_alerts_dedup",
            "portfolio_id",
            "alert_type",
            "status",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AlertRecord(id={self.id!r}, alert_type={self.alert_type!r}, "
            f"severity={self.severity!r}, status={self.status!r})>"
        )
