"""Tests for RiskMonitorLoop: per-portfolio checks, AML screening of recent
transactions, failure isolation across portfolios and loop start/stop."""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta

import pytest

from conftest import T0, make_portfolio, make_position
from portfolio_risk.compliance.aml import AmlConfig, KycAmlChecker
from portfolio_risk.compliance.position_limit import PositionLimitResult, PositionLimitViolation
from portfolio_risk.core.context import LiquidityDetails, VarDetails
from portfolio_risk.core.domain import RiskMetric, Transaction
from portfolio_risk.core.enums import (
    AlertSeverity,
    AlertSource,
    AlertType,
    EventType,
    MetricStatus,
    MetricType,
    TransactionType,
)
from portfolio_risk.core.exceptions import InsufficientDataError
from portfolio_risk.monitoring.monitor import RiskMonitorLoop
from portfolio_risk.stores.memory import InMemoryPortfolioStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class StubRiskService:
    """Returns canned metrics; can fail, stall or skip VaR per portfolio."""

    def __init__(
        self,
        var_status: MetricStatus = MetricStatus.SAFE,
        liquidity_ratio: float = 0.8,
        breach: bool = False,
        fail: tuple[str, ...] = (),
        slow: tuple[str, ...] = (),
        no_history: tuple[str, ...] = (),
    ) -> None:
        self.var_status = var_status
        self.liquidity_ratio = liquidity_ratio
        self.breach = breach
        self.fail = fail
        self.slow = slow
        self.no_history = no_history

    def calculate_portfolio_var(self, portfolio_id: str, cancel=None) -> RiskMetric:
        if portfolio_id in self.fail:
            raise RuntimeError("boom")
        if portfolio_id in self.slow:
            time.sleep(0.3)
        if portfolio_id in self.no_history:
            raise InsufficientDataError("need at least two prices")
        return RiskMetric(
            portfolio_id=portfolio_id,
            metric_type=MetricType.VAR,
            value=4_500.0,
            threshold=5_000.0,
            status=self.var_status,
            details=VarDetails(portfolio_value=100_000.0),
        )

    def calculate_portfolio_liquidity(self, portfolio_id: str, cancel=None) -> RiskMetric:
        status = MetricStatus.SAFE if self.liquidity_ratio >= 0.7 else MetricStatus.WARNING
        return RiskMetric(
            portfolio_id=portfolio_id,
            metric_type=MetricType.LIQUIDITY_RATIO,
            value=self.liquidity_ratio,
            threshold=0.3,
            status=status,
            details=LiquidityDetails(normal_market_days=3.0),
        )

    def check_position_limits(
        self, portfolio_id: str, max_limit_percent: float = 25.0
    ) -> PositionLimitResult:
        violations = []
        if self.breach:
            violations.append(PositionLimitViolation("AAPL", 40.0, 25.0, 15.0, 40_000.0))
        return PositionLimitResult(portfolio_id, max_limit_percent, violations)


def _portfolios(*ids: str) -> InMemoryPortfolioStore:
    return InMemoryPortfolioStore([
        make_portfolio([make_position(portfolio_id=pid)], portfolio_id=pid) for pid in ids
    ])


def _tx(amount: float, minutes_ago: float = 30.0, **kwargs) -> Transaction:
    return Transaction(
        portfolio_id="pf-1",
        transaction_type=TransactionType.BUY,
        symbol="AAPL",
        quantity=amount / 100.0,
        price=100.0,
        created_at=T0 - timedelta(minutes=minutes_ago),
        **kwargs,
    )


@pytest.fixture
def make_loop(alert_engine, publisher, transaction_store):
    def _make(risk_service, *portfolio_ids: str, **kwargs) -> RiskMonitorLoop:
        return RiskMonitorLoop(
            portfolios=_portfolios(*(portfolio_ids or ("pf-1",))),
            risk_service=risk_service,
            alert_engine=alert_engine,
            publisher=publisher,
            aml_checker=KycAmlChecker(AmlConfig()),
            transactions=transaction_store,
            **kwargs,
        )

    return _make


# ---------------------------------------------------------------------------
# Per-portfolio evaluation
# ---------------------------------------------------------------------------


class TestEvaluatePortfolio:
    def test_safe_portfolio_only_publishes_update(self, make_loop, publisher, alert_store) -> None:
        loop = make_loop(StubRiskService())
        update = loop.evaluate_portfolio("pf-1")

        assert set(update) == {"portfolio_id", "var", "liquidity", "timestamp"}
        assert update["portfolio_id"] == "pf-1"
        assert update["var"] == 4_500.0
        assert update["liquidity"] == 0.8
        assert isinstance(update["timestamp"], int)
        assert abs(update["timestamp"] - time.time()) < 60
        assert alert_store.list_active() == []
        events = publisher.of_type(EventType.RISK_UPDATE)
        assert len(events) == 1
        assert events[0]["data"] == update

    def test_var_warning_raises_alert(self, make_loop, alert_store) -> None:
        loop = make_loop(StubRiskService(var_status=MetricStatus.WARNING))
        loop.evaluate_portfolio("pf-1")

        [alert] = alert_store.list_active("pf-1")
        assert alert.alert_type == AlertType.RISK_BREACH
        assert alert.severity == AlertSeverity.MEDIUM
        assert alert.title == "VaR Limit WARNING"

    def test_low_liquidity_raises_alert(self, make_loop, alert_store) -> None:
        loop = make_loop(StubRiskService(liquidity_ratio=0.2))
        loop.evaluate_portfolio("pf-1")

        [alert] = alert_store.list_active("pf-1")
        assert alert.alert_type == AlertType.LIQUIDITY_RISK
        assert alert.severity == AlertSeverity.HIGH

    def test_position_breach_raises_alert(self, make_loop, alert_store) -> None:
        loop = make_loop(StubRiskService(breach=True))
        loop.evaluate_portfolio("pf-1")

        [alert] = alert_store.list_active("pf-1")
        assert alert.alert_type == AlertType.COMPLIANCE_VIOLATION
        assert alert.title == "Position Limit Breach"

    def test_missing_history_skips_var(self, make_loop, publisher) -> None:
        loop = make_loop(StubRiskService(no_history=("pf-1",)))
        update = loop.evaluate_portfolio("pf-1")

        assert update["var"] is None
        assert update["liquidity"] is not None
        assert len(publisher.of_type(EventType.RISK_UPDATE)) == 1

    def test_repeated_evaluation_deduplicates(self, make_loop, alert_store) -> None:
        loop = make_loop(StubRiskService(var_status=MetricStatus.CRITICAL))
        loop.evaluate_portfolio("pf-1")
        loop.evaluate_portfolio("pf-1")
        assert len(alert_store.list_active("pf-1")) == 1

    def test_real_risk_service_flags_concentration(
        self, make_loop, risk_service, portfolio_store, alert_store, metric_store
    ) -> None:
        portfolio_store.add_portfolio(make_portfolio([make_position("AAPL", 100, 150.0)]))
        loop = make_loop(risk_service)
        loop.portfolios = portfolio_store

        update = loop.evaluate_portfolio("pf-1")

        assert isinstance(update["var"], float)
        assert 0.0 <= update["liquidity"] <= 1.0
        assert len(metric_store.metrics) == 2
        breaches = [
            a for a in alert_store.list_active("pf-1")
            if a.alert_type == AlertType.COMPLIANCE_VIOLATION
        ]
        assert len(breaches) == 1
        assert breaches[0].severity == AlertSeverity.HIGH


# ---------------------------------------------------------------------------
# AML screening
# ---------------------------------------------------------------------------


class TestTransactionScreening:
    def test_large_transaction_alerted_and_marked(
        self, make_loop, transaction_store, publisher
    ) -> None:
        large = _tx(25_000.0)
        small = _tx(500.0)
        transaction_store.add_transaction(large)
        transaction_store.add_transaction(small)

        make_loop(StubRiskService()).evaluate_portfolio("pf-1")

        assert large.aml_checked is True
        assert small.aml_checked is False
        aml_events = publisher.of_type(EventType.AML_ALERT)
        assert len(aml_events) == 1
        assert aml_events[0]["data"]["triggered_by"]["transaction_id"] == large.id

    def test_checked_transactions_not_rescreened(
        self, make_loop, transaction_store, publisher
    ) -> None:
        transaction_store.add_transaction(_tx(25_000.0, aml_checked=True))
        make_loop(StubRiskService()).evaluate_portfolio("pf-1")
        assert publisher.of_type(EventType.AML_ALERT) == []

    def test_deduplicated_large_transaction_stays_unchecked(
        self, make_loop, transaction_store, alert_store
    ) -> None:
        first = _tx(25_000.0, minutes_ago=10)
        second = _tx(40_000.0, minutes_ago=5)
        transaction_store.add_transaction(first)
        transaction_store.add_transaction(second)

        make_loop(StubRiskService()).evaluate_portfolio("pf-1")

        assert [first.aml_checked, second.aml_checked].count(True) == 1
        assert len(alert_store.list_active("pf-1")) == 1

    def test_old_transactions_ignored(self, make_loop, transaction_store, publisher) -> None:
        transaction_store.add_transaction(_tx(25_000.0, minutes_ago=25 * 60))
        make_loop(StubRiskService()).evaluate_portfolio("pf-1")
        assert publisher.of_type(EventType.AML_ALERT) == []

    def test_high_velocity_alerted(self, make_loop, transaction_store, alert_store) -> None:
        for i in range(12):
            transaction_store.add_transaction(_tx(100.0, minutes_ago=i + 1))

        make_loop(StubRiskService()).evaluate_portfolio("pf-1")

        [alert] = alert_store.list_active("pf-1")
        assert alert.source == AlertSource.VELOCITY_CHECKER.value
        assert alert.triggered_by.transaction_count == 12
        assert alert.triggered_by.window_hours == 24.0

    def test_velocity_at_threshold_not_alerted(
        self, make_loop, transaction_store, alert_store
    ) -> None:
        for i in range(10):
            transaction_store.add_transaction(_tx(100.0, minutes_ago=i + 1))
        make_loop(StubRiskService()).evaluate_portfolio("pf-1")
        assert alert_store.list_active("pf-1") == []


# ---------------------------------------------------------------------------
# Passes and loop control
# ---------------------------------------------------------------------------


class TestRunPass:
    @pytest.mark.asyncio
    async def test_every_portfolio_evaluated(self, make_loop, publisher) -> None:
        loop = make_loop(StubRiskService(), "pf-1", "pf-2", "pf-3", max_concurrency=2)
        report = await loop.run_pass()

        assert sorted(report.evaluated) == ["pf-1", "pf-2", "pf-3"]
        assert report.failed == {}
        assert report.finished_at is not None
        assert len(publisher.of_type(EventType.RISK_UPDATE)) == 3

    @pytest.mark.asyncio
    async def test_failure_isolated(self, make_loop, publisher) -> None:
        loop = make_loop(StubRiskService(fail=("pf-bad",)), "pf-good", "pf-bad")
        report = await loop.run_pass()

        assert report.evaluated == ["pf-good"]
        assert report.failed == {"pf-bad": "boom"}
        updates = publisher.of_type(EventType.RISK_UPDATE)
        assert [e["data"]["portfolio_id"] for e in updates] == ["pf-good"]

    @pytest.mark.asyncio
    async def test_slow_portfolio_times_out(self, make_loop) -> None:
        loop = make_loop(
            StubRiskService(slow=("pf-slow",)),
            "pf-fast",
            "pf-slow",
            portfolio_timeout_seconds=0.05,
        )
        report = await loop.run_pass()

        assert report.evaluated == ["pf-fast"]
        assert report.failed == {"pf-slow": "timeout"}

    @pytest.mark.asyncio
    async def test_timed_out_evaluation_emits_nothing(
        self, make_loop, publisher, alert_store
    ) -> None:
        loop = make_loop(
            StubRiskService(var_status=MetricStatus.WARNING, slow=("pf-slow",)),
            "pf-fast",
            "pf-slow",
            portfolio_timeout_seconds=0.05,
        )
        report = await loop.run_pass()
        # let the abandoned worker thread finish its sleep
        await asyncio.sleep(0.6)

        assert report.failed == {"pf-slow": "timeout"}
        updates = publisher.of_type(EventType.RISK_UPDATE)
        assert [e["data"]["portfolio_id"] for e in updates] == ["pf-fast"]
        assert alert_store.list_active("pf-slow") == []
        assert len(alert_store.list_active("pf-fast")) == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, make_loop, publisher) -> None:
        loop = make_loop(StubRiskService(), interval_seconds=60.0)
        task = loop.start()
        assert loop.start() is task

        for _ in range(100):
            if publisher.of_type(EventType.RISK_UPDATE):
                break
            await asyncio.sleep(0.01)
        await asyncio.wait_for(loop.stop(), timeout=2.0)

        assert task.done()
        assert len(publisher.of_type(EventType.RISK_UPDATE)) >= 1
