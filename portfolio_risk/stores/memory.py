"""Thread-safe in-memory stores.

Used by the tests and for dry runs of the monitor. Each store guards its
state with a lock because monitor evaluations run in worker threads.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import replace
from datetime import datetime

from portfolio_risk.core.domain import (
    Alert,
    Portfolio,
    RiskHistory,
    RiskMetric,
    RiskThresholds,
    TradeRiskAnalysis,
    Transaction,
)
from portfolio_risk.core.enums import AlertStatus, AlertType, MetricType
from portfolio_risk.core.exceptions import TransactionNotFoundError


class InMemoryPortfolioStore:
    def __init__(self, portfolios: list[Portfolio] | None = None) -> None:
        self._lock = threading.Lock()
        self._portfolios: dict[str, Portfolio] = {p.id: p for p in portfolios or []}

    def add_portfolio(self, portfolio: Portfolio) -> None:
        with self._lock:
            self._portfolios[portfolio.id] = portfolio

    def get_portfolio(self, portfolio_id: str) -> Portfolio | None:
        with self._lock:
            return self._portfolios.get(portfolio_id)

    def list_portfolio_ids(self) -> list[str]:
        with self._lock:
            return list(self._portfolios)


class InMemoryThresholdStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._thresholds: dict[str, RiskThresholds] = {}

    def get_thresholds(self, portfolio_id: str) -> RiskThresholds | None:
        with self._lock:
            return self._thresholds.get(portfolio_id)

    def save_thresholds(self, thresholds: RiskThresholds) -> None:
        with self._lock:
            self._thresholds[thresholds.portfolio_id] = thresholds


class InMemoryMetricStore:
    """Metrics and history points, newest first on read."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.metrics: list[RiskMetric] = []
        self.history: list[RiskHistory] = []

    def add_metric(self, metric: RiskMetric) -> None:
        with self._lock:
            self.metrics.append(metric)

    def add_history(self, point: RiskHistory) -> None:
        with self._lock:
            self.history.append(point)

    def list_metrics(self, portfolio_id: str, limit: int = 100) -> list[RiskMetric]:
        with self._lock:
            rows = [m for m in self.metrics if m.portfolio_id == portfolio_id]
        rows.sort(key=lambda m: m.calculated_at, reverse=True)
        return rows[:limit]

    def list_history(
        self,
        portfolio_id: str,
        metric_type: MetricType | None = None,
        limit: int = 100,
    ) -> list[RiskHistory]:
        with self._lock:
            rows = [
                h for h in self.history
                if h.portfolio_id == portfolio_id
                and (metric_type is None or h.metric_type == metric_type)
            ]
        rows.sort(key=lambda h: h.recorded_at, reverse=True)
        return rows[:limit]


class InMemoryAlertStore:
    """Alerts keyed by id. Stored objects are copies of what callers pass."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._alerts: dict[str, Alert] = {}

    def add_alert(self, alert: Alert) -> None:
        with self._lock:
            self._alerts[alert.id] = replace(alert)

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return replace(alert) if alert else None

    def update_alert(self, alert: Alert) -> None:
        with self._lock:
            self._alerts[alert.id] = replace(alert)

    def exists_active(
        self, portfolio_id: str, alert_type: AlertType, since: datetime
    ) -> bool:
        with self._lock:
            return any(
                a.portfolio_id == portfolio_id
                and a.alert_type == alert_type
                and a.status == AlertStatus.ACTIVE
                and a.created_at > since
                for a in self._alerts.values()
            )

    def list_active(self, portfolio_id: str | None = None) -> list[Alert]:
        with self._lock:
            rows = [
                replace(a) for a in self._alerts.values()
                if a.status == AlertStatus.ACTIVE
                and (portfolio_id is None or a.portfolio_id == portfolio_id)
            ]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows

    def delete_closed_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [
                a.id for a in self._alerts.values()
                if a.status.is_terminal and a.created_at < cutoff
            ]
            for alert_id in doomed:
                del self._alerts[alert_id]
        return len(doomed)

    def count_by_status(self) -> dict[str, int]:
        with self._lock:
            return dict(Counter(a.status.value for a in self._alerts.values()))


class InMemoryTransactionStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._transactions: dict[str, Transaction] = {}
        self.analyses: dict[str, TradeRiskAnalysis] = {}

    def add_transaction(self, tx: Transaction) -> None:
        with self._lock:
            self._transactions[tx.id] = tx

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        with self._lock:
            return self._transactions.get(transaction_id)

    def list_recent(self, portfolio_id: str, since: datetime) -> list[Transaction]:
        with self._lock:
            rows = [
                t for t in self._transactions.values()
                if t.portfolio_id == portfolio_id and t.created_at > since
            ]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return rows

    def mark_aml_checked(self, transaction_id: str) -> None:
        with self._lock:
            tx = self._transactions.get(transaction_id)
            if tx is None:
                raise TransactionNotFoundError(transaction_id)
            tx.aml_checked = True

    def attach_risk_analysis(
        self, transaction_id: str, analysis: TradeRiskAnalysis
    ) -> None:
        with self._lock:
            if transaction_id not in self._transactions:
                raise TransactionNotFoundError(transaction_id)
            self.analyses[transaction_id] = analysis
