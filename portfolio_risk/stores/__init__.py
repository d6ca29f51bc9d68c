"""Store implementations: in-memory and SQLAlchemy."""

from portfolio_risk.stores.memory import (
    InMemoryAlertStore,
    InMemoryMetricStore,
    InMemoryPortfolioStore,
    InMemoryThresholdStore,
    InMemoryTransactionStore,
)
from portfolio_risk.stores.sql import (
    SqlAlertStore,
    SqlMetricStore,
    SqlPortfolioStore,
    SqlThresholdStore,
    SqlTransactionStore,
)

__all__ = [
    "InMemoryAlertStore",
    "InMemoryMetricStore",
    "InMemoryPortfolioStore",
    "InMemoryThresholdStore",
    "InMemoryTransactionStore",
    "SqlAlertStore",
    "SqlMetricStore",
    "SqlPortfolioStore",
    "SqlThresholdStore",
    "SqlTransactionStore",
]
