"""SQLAlchemy 2.0 ORM models for the risk engine.

Re-exports Base and all 7 model classes:
  - 4 portfolio tables: PortfolioRecord, PositionRecord, TransactionRecord,
    RiskThresholdRecord
  - 3 risk tables: RiskMetricRecord, RiskHistoryRecord, AlertRecord
"""

from .base import Base
from .portfolio_models import (
    PortfolioRecord,
    PositionRecord,
    RiskThresholdRecord,
    TransactionRecord,
)
from .risk_models import AlertRecord, RiskHistoryRecord, RiskMetricRecord

__all__ = [
    "AlertRecord",
    "Base",
    "PortfolioRecord",
    "PositionRecord",
    "RiskHistoryRecord",
    "RiskMetricRecord",
    "RiskThresholdRecord",
    "TransactionRecord",
]
