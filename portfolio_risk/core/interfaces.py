"""Collaborator interfaces injected into the engine's components.

The engine never reaches for a global database or cache handle: every store,
market-data source and publish sink is passed in through a constructor and
only needs to satisfy one of the protocols below.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from portfolio_risk.core.domain import (
    Alert,
    MarketDepth,
    Portfolio,
    RiskHistory,
    RiskMetric,
    RiskThresholds,
    TradeRiskAnalysis,
    Transaction,
)
from portfolio_risk.core.enums import AlertType, EventType, MetricType


@runtime_checkable
class PortfolioStore(Protocol):
    """Source of portfolio snapshots."""

    def get_portfolio(self, portfolio_id: str) -> Portfolio | None: ...

    def list_portfolio_ids(self) -> list[str]: ...


@runtime_checkable
class ThresholdStore(Protocol):
    def get_thresholds(self, portfolio_id: str) -> RiskThresholds | None: ...

    def save_thresholds(self, thresholds: RiskThresholds) -> None: ...


@runtime_checkable
class MetricStore(Protocol):
    """Append-only sink for metrics and their history points."""

    def add_metric(self, metric: RiskMetric) -> None: ...

    def add_history(self, point: RiskHistory) -> None: ...

    def list_metrics(self, portfolio_id: str, limit: int = 100) -> list[RiskMetric]: ...

    def list_history(
        self,
        portfolio_id: str,
        metric_type: MetricType | None = None,
        limit: int = 100,
    ) -> list[RiskHistory]: ...


@runtime_checkable
class AlertStore(Protocol):
    def add_alert(self, alert: Alert) -> None: ...

    def get_alert(self, alert_id: str) -> Alert | None: ...

    def update_alert(self, alert: Alert) -> None: ...

    def exists_active(
        self, portfolio_id: str, alert_type: AlertType, since: datetime
    ) -> bool:
        """True if an ACTIVE alert of *alert_type* was created after *since*."""
        ...

    def list_active(self, portfolio_id: str | None = None) -> list[Alert]: ...

    def delete_closed_before(self, cutoff: datetime) -> int:
        """Delete RESOLVED/DISMISSED alerts created before *cutoff*; return count."""
        ...

    def count_by_status(self) -> dict[str, int]: ...


@runtime_checkable
class TransactionStore(Protocol):
    def get_transaction(self, transaction_id: str) -> Transaction | None: ...

    def list_recent(self, portfolio_id: str, since: datetime) -> list[Transaction]: ...

    def mark_aml_checked(self, transaction_id: str) -> None: ...

    def attach_risk_analysis(
        self, transaction_id: str, analysis: TradeRiskAnalysis
    ) -> None: ...


@runtime_checkable
class MarketDataProvider(Protocol):
    """Per-symbol market microstructure data."""

    def average_daily_volume(self, symbol: str) -> float: ...

    def bid_ask_spread(self, symbol: str) -> float: ...

    def market_depth(self, symbol: str) -> MarketDepth | None: ...

    def market_cap(self, symbol: str) -> float: ...


@runtime_checkable
class PriceHistoryProvider(Protocol):
    def get_price_history(self, symbols: list[str]) -> dict[str, list[float]]:
        """Return symbol -> prices ordered oldest first; missing symbols omitted."""
        ...


@runtime_checkable
class EventPublisher(Protocol):
    def publish(self, event_type: EventType, data: dict[str, Any]) -> None: ...


@runtime_checkable
class AlertCache(Protocol):
    """Hot cache of alerts and the set of active alert ids."""

    def cache_alert(self, alert: Alert) -> None: ...

    def remove_active(self, alert_id: str) -> None: ...

    def evict(self, alert_id: str) -> None: ...
