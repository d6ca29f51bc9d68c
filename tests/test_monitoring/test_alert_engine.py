"""Tests for AlertEngine: deduplication windows, severity rules, the
persist/cache/publish pipeline and the alert lifecycle."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0, make_alert
from portfolio_risk.compliance.position_limit import (
    SEVERITY_CRITICAL,
    SEVERITY_MAJOR,
    PositionLimitResult,
    PositionLimitViolation,
)
from portfolio_risk.core.config import Settings
from portfolio_risk.core.context import (
    LiquidityDetails,
    RiskBreachContext,
    VarDetails,
    VarStatusContext,
)
from portfolio_risk.core.domain import Alert, RiskMetric, RiskViolation, Transaction
from portfolio_risk.core.enums import (
    AlertSeverity,
    AlertSource,
    AlertStatus,
    AlertType,
    EventType,
    MetricStatus,
    MetricType,
    TransactionType,
    ViolationSeverity,
    ViolationType,
)
from portfolio_risk.core.exceptions import (
    AlertNotFoundError,
    InvalidAlertTransitionError,
    InvalidInputError,
)
from portfolio_risk.monitoring.alert_engine import AlertEngine, Deduplicated, breach_severity
from portfolio_risk.monitoring.alert_windows import AlertDedupWindows
from portfolio_risk.stores.memory import InMemoryAlertStore

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingCache:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail = fail

    def cache_alert(self, alert: Alert) -> None:
        if self.fail:
            raise ConnectionError("redis down")
        self.calls.append(("cache", alert.id))

    def remove_active(self, alert_id: str) -> None:
        self.calls.append(("remove_active", alert_id))

    def evict(self, alert_id: str) -> None:
        self.calls.append(("evict", alert_id))


class FailingPublisher:
    def publish(self, event_type: EventType, data: dict) -> None:
        raise ConnectionError("redis down")


class FailingStore(InMemoryAlertStore):
    def add_alert(self, alert: Alert) -> None:
        raise RuntimeError("database unavailable")


def _var_metric(status: MetricStatus, value: float = 6_000.0) -> RiskMetric:
    return RiskMetric(
        portfolio_id="pf-1",
        metric_type=MetricType.VAR,
        value=value,
        threshold=5_000.0,
        status=status,
        details=VarDetails(portfolio_value=100_000.0),
    )


def _liquidity_metric(ratio: float) -> RiskMetric:
    return RiskMetric(
        portfolio_id="pf-1",
        metric_type=MetricType.LIQUIDITY_RATIO,
        value=ratio,
        threshold=0.3,
        status=MetricStatus.WARNING,
        details=LiquidityDetails(normal_market_days=12.5),
    )


def _tx(amount: float = 25_000.0) -> Transaction:
    return Transaction(
        portfolio_id="pf-1",
        transaction_type=TransactionType.BUY,
        symbol="AAPL",
        quantity=amount / 100.0,
        price=100.0,
    )


# ---------------------------------------------------------------------------
# Severity and windows
# ---------------------------------------------------------------------------


class TestBreachSeverity:
    @pytest.mark.parametrize(
        ("current", "expected"),
        [
            (200.0, AlertSeverity.CRITICAL),
            (150.0, AlertSeverity.HIGH),
            (120.0, AlertSeverity.HIGH),
            (110.0, AlertSeverity.MEDIUM),
        ],
    )
    def test_ratio_bands(self, current: float, expected: AlertSeverity) -> None:
        assert breach_severity(current, 100.0) == expected


class TestDedupWindows:
    def test_defaults(self) -> None:
        w = AlertDedupWindows()
        assert w.window_for(AlertType.RISK_BREACH) == timedelta(minutes=10)
        assert w.window_for(AlertType.LIQUIDITY_RISK) == timedelta(minutes=15)
        assert w.window_for(AlertType.COMPLIANCE_VIOLATION) == timedelta(minutes=5)
        assert w.window_for(AlertType.SUSPICIOUS_ACTIVITY) == timedelta(minutes=60)
        assert w.window_for(
            AlertType.SUSPICIOUS_ACTIVITY, AlertSource.VELOCITY_CHECKER.value
        ) == timedelta(minutes=30)
        assert w.window_for(AlertType.RISK_VIOLATION) is None

    def test_from_settings(self) -> None:
        w = AlertDedupWindows.from_settings(
            Settings(alert_window_risk_breach_minutes=2, alert_window_velocity_minutes=45)
        )
        assert w.risk_breach_minutes == 2.0
        assert w.velocity_minutes == 45.0
        assert w.liquidity_risk_minutes == 15.0

    def test_settings_read_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("ALERT_WINDOW_RISK_BREACH_MINUTES", "2")
        w = AlertDedupWindows.from_settings(Settings())
        assert w.window_for(AlertType.RISK_BREACH) == timedelta(minutes=2)


# ---------------------------------------------------------------------------
# raise_alert pipeline
# ---------------------------------------------------------------------------


class TestRaiseAlert:
    def test_created_alert_is_stored_and_published(
        self, alert_engine, alert_store, publisher
    ) -> None:
        alert = alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)

        assert isinstance(alert, Alert)
        assert alert.severity == AlertSeverity.HIGH
        assert alert.title == "VAR Threshold Breached"
        assert alert.description == "VAR of 150.00 exceeds threshold of 100.00 (50.0% breach)"
        assert alert.source == "VAR_CALCULATOR"
        assert alert.created_at == T0
        assert isinstance(alert.triggered_by, RiskBreachContext)
        assert alert.triggered_by.breach_ratio == pytest.approx(1.5)
        assert alert_store.get_alert(alert.id) is not None

        events = publisher.of_type(EventType.NEW_ALERT)
        assert len(events) == 1
        assert events[0]["data"]["id"] == alert.id

    def test_duplicate_inside_window_suppressed(
        self, alert_engine, alert_store, publisher, clock
    ) -> None:
        first = alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        clock.advance(minutes=9)
        second = alert_engine.raise_risk_breach("pf-1", "VAR", 180.0, 100.0)

        assert isinstance(first, Alert)
        assert isinstance(second, Deduplicated)
        assert second.window == timedelta(minutes=10)
        assert len(alert_store.list_active("pf-1")) == 1
        assert len(publisher.events) == 1

    def test_new_alert_after_window(self, alert_engine, alert_store, clock) -> None:
        alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        clock.advance(minutes=11)
        again = alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)

        assert isinstance(again, Alert)
        assert len(alert_store.list_active("pf-1")) == 2

    def test_other_portfolio_not_suppressed(self, alert_engine) -> None:
        alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        other = alert_engine.raise_risk_breach("pf-2", "VAR", 150.0, 100.0)
        assert isinstance(other, Alert)

    def test_acknowledged_alert_does_not_suppress(self, alert_engine) -> None:
        first = alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        alert_engine.acknowledge(first.id, "analyst")
        again = alert_engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        assert isinstance(again, Alert)

    def test_risk_violations_never_deduplicated(self, alert_engine, alert_store) -> None:
        tx = _tx()
        violation = RiskViolation(
            ViolationType.POSITION_SIZE, ViolationSeverity.VIOLATION, "too big", 0.3, 0.25, 0.2
        )
        results = [alert_engine.raise_risk_violation(tx, violation) for _ in range(3)]

        assert all(isinstance(r, Alert) for r in results)
        assert len(alert_store.list_active("pf-1")) == 3
        assert results[0].severity == AlertSeverity.HIGH
        assert results[0].source == AlertSource.RISK_ENGINE.value

    def test_store_failure_propagates(self, publisher, clock) -> None:
        engine = AlertEngine(FailingStore(), publisher=publisher, clock=clock)
        with pytest.raises(RuntimeError):
            engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        assert publisher.events == []

    def test_cache_and_publish_failures_tolerated(self, alert_store, clock) -> None:
        engine = AlertEngine(
            alert_store, publisher=FailingPublisher(), cache=RecordingCache(fail=True), clock=clock
        )
        alert = engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        assert isinstance(alert, Alert)
        assert alert_store.get_alert(alert.id) is not None

    def test_non_positive_threshold_rejected(self, alert_engine) -> None:
        with pytest.raises(InvalidInputError):
            alert_engine.raise_risk_breach("pf-1", "VAR", 1.0, 0.0)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


class TestBuilders:
    def test_var_warning_alert(self, alert_engine) -> None:
        alert = alert_engine.raise_var_status_alert(_var_metric(MetricStatus.WARNING, 4_000.0))

        assert alert.severity == AlertSeverity.MEDIUM
        assert alert.alert_type == AlertType.RISK_BREACH
        assert alert.title == "VaR Limit WARNING"
        assert alert.description == (
            "Portfolio VaR of $4,000.00 (4.00%) approaching threshold of $5,000.00"
        )
        assert isinstance(alert.triggered_by, VarStatusContext)

    def test_var_critical_alert(self, alert_engine) -> None:
        alert = alert_engine.raise_var_status_alert(_var_metric(MetricStatus.CRITICAL))
        assert alert.severity == AlertSeverity.HIGH
        assert "exceeds" in alert.description

    def test_safe_var_metric_rejected(self, alert_engine) -> None:
        with pytest.raises(InvalidInputError):
            alert_engine.raise_var_status_alert(_var_metric(MetricStatus.SAFE))

    def test_liquidity_alert_levels(self, alert_engine, clock) -> None:
        high = alert_engine.raise_liquidity_alert(_liquidity_metric(0.2))
        assert high.severity == AlertSeverity.HIGH
        assert high.title == "Liquidity Risk Detected"
        assert high.description == (
            "Portfolio liquidity ratio of 20.00% indicates high liquidity risk. "
            "Estimated 12.5 days to liquidate."
        )

        clock.advance(minutes=16)
        medium = alert_engine.raise_liquidity_alert(_liquidity_metric(0.5))
        assert medium.severity == AlertSeverity.MEDIUM
        assert "moderate liquidity risk" in medium.description

    def test_position_limit_alert(self, alert_engine) -> None:
        result = PositionLimitResult(
            portfolio_id="pf-1",
            max_limit_percent=25.0,
            violations=[
                PositionLimitViolation("MID", 30.0, 25.0, 5.0, 3_000.0, SEVERITY_MAJOR),
                PositionLimitViolation("BIG", 60.0, 25.0, 35.0, 6_000.0, SEVERITY_CRITICAL),
            ],
        )
        alert = alert_engine.raise_position_limit_alert(result)

        assert alert.alert_type == AlertType.COMPLIANCE_VIOLATION
        assert alert.severity == AlertSeverity.HIGH
        assert alert.description == (
            "2 position(s) exceed the 25.0% concentration limit. BIG: 60.00% (excess: 35.00%)"
        )
        assert alert.triggered_by.compliance_score == 80.0

    def test_position_limit_alert_without_critical(self, alert_engine) -> None:
        result = PositionLimitResult(
            portfolio_id="pf-1",
            max_limit_percent=25.0,
            violations=[PositionLimitViolation("MID", 30.0, 25.0, 5.0, 3_000.0)],
        )
        alert = alert_engine.raise_position_limit_alert(result)
        assert alert.severity == AlertSeverity.MEDIUM

    def test_large_transaction_alert_published_as_aml(self, alert_engine, publisher) -> None:
        alert = alert_engine.raise_large_transaction_alert(_tx(25_000.0), 10_000.0)

        assert alert.alert_type == AlertType.SUSPICIOUS_ACTIVITY
        assert alert.severity == AlertSeverity.HIGH
        assert alert.title == "Large Transaction Detected"
        assert "Symbol: AAPL, Type: BUY" in alert.description
        assert len(publisher.of_type(EventType.AML_ALERT)) == 1
        assert publisher.of_type(EventType.NEW_ALERT) == []

    def test_velocity_alert(self, alert_engine) -> None:
        alert = alert_engine.raise_velocity_alert("pf-1", 14, 10)
        assert alert.severity == AlertSeverity.MEDIUM
        assert alert.source == AlertSource.VELOCITY_CHECKER.value
        assert alert.triggered_by.transaction_count == 14

    def test_critical_violation_alert(self, alert_engine) -> None:
        violation = RiskViolation(
            ViolationType.VAR_LIMIT, ViolationSeverity.CRITICAL, "var", 6_000.0, 5_000.0, 0.2
        )
        alert = alert_engine.raise_risk_violation(_tx(), violation)
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.title == "Risk Violation: VAR_LIMIT"

    @pytest.mark.parametrize(
        ("violation_type", "severity", "title"),
        [
            ("POSITION_LIMIT", AlertSeverity.HIGH, "Position Limit Violation"),
            ("KYC_AML", AlertSeverity.CRITICAL, "KYC/AML Violation"),
            ("LIQUIDITY_RISK", AlertSeverity.MEDIUM, "Liquidity Risk Alert"),
            ("SECTOR_CAP", AlertSeverity.MEDIUM, "Compliance Alert"),
        ],
    )
    def test_compliance_alert(
        self, alert_engine, violation_type: str, severity: AlertSeverity, title: str
    ) -> None:
        alert = alert_engine.raise_compliance_alert("pf-1", violation_type, {"rule": "x"})
        assert alert.severity == severity
        assert alert.title == title
        assert alert.source == f"{violation_type}_CHECKER"
        assert alert.triggered_by.details == {"rule": "x"}


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.fixture
    def cache(self) -> RecordingCache:
        return RecordingCache()

    @pytest.fixture
    def engine(self, alert_store, publisher, cache, clock) -> AlertEngine:
        return AlertEngine(alert_store, publisher=publisher, cache=cache, clock=clock)

    def test_acknowledge_removes_from_active_set(self, engine, cache, alert_store) -> None:
        alert = engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        updated = engine.acknowledge(alert.id, "analyst")

        assert updated.status == AlertStatus.ACKNOWLEDGED
        assert alert_store.get_alert(alert.id).status == AlertStatus.ACKNOWLEDGED
        assert cache.calls == [("cache", alert.id), ("remove_active", alert.id)]
        assert engine.get_active_alerts("pf-1") == []

    def test_resolve_evicts(self, engine, cache) -> None:
        alert = engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        resolved = engine.resolve(alert.id, "analyst", "reduced exposure")

        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolution == "reduced exposure"
        assert cache.calls[-1] == ("evict", alert.id)

    def test_dismiss_then_resolve_rejected(self, engine) -> None:
        alert = engine.raise_risk_breach("pf-1", "VAR", 150.0, 100.0)
        engine.dismiss(alert.id, "analyst")
        with pytest.raises(InvalidAlertTransitionError):
            engine.resolve(alert.id, "analyst", "late")

    def test_unknown_alert(self, engine) -> None:
        with pytest.raises(AlertNotFoundError):
            engine.acknowledge("missing", "analyst")

    def test_cleanup_removes_only_old_closed_alerts(self, engine, alert_store) -> None:
        old = T0 - timedelta(days=40)
        alert_store.add_alert(make_alert(status=AlertStatus.RESOLVED, created_at=old))
        alert_store.add_alert(make_alert(status=AlertStatus.DISMISSED, created_at=old))
        alert_store.add_alert(make_alert(status=AlertStatus.ACTIVE, created_at=old))
        alert_store.add_alert(make_alert(status=AlertStatus.RESOLVED, created_at=T0))

        assert engine.cleanup_old_alerts(30) == 2
        stats = engine.get_alert_stats()
        assert stats["ACTIVE"] == 1
        assert stats["RESOLVED"] == 1
        assert stats["DISMISSED"] == 0
        assert stats["ACKNOWLEDGED"] == 0
