"""AlertEngine -- deduplicates, classifies and emits risk alerts.

Provides:
- Time-windowed deduplication per (portfolio, alert type), checked against
  the alert store before every insert
- Severity rules for risk breaches, periodic VaR/liquidity status, position
  limits, AML and velocity checks, and pre-trade violations
- Persist -> cache -> publish pipeline; only the persist step may fail the call
- Lifecycle operations (acknowledge, resolve, dismiss) and retention cleanup

The existence check and the insert are separate steps, so two evaluators
racing on the same (portfolio, type) can both insert.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from portfolio_risk.compliance.position_limit import PositionLimitResult
from portfolio_risk.core.context import (
    ComplianceContext,
    LargeTransactionContext,
    LiquidityContext,
    LiquidityDetails,
    PositionLimitContext,
    RiskBreachContext,
    RiskViolationContext,
    VarDetails,
    VarStatusContext,
    VelocityContext,
)
from portfolio_risk.core.domain import Alert, RiskMetric, RiskViolation, Transaction
from portfolio_risk.core.enums import (
    AlertSeverity,
    AlertSource,
    AlertStatus,
    AlertType,
    EventType,
    MetricStatus,
    RiskAssessment,
    ViolationSeverity,
)
from portfolio_risk.core.exceptions import AlertNotFoundError, InvalidInputError
from portfolio_risk.core.interfaces import AlertCache, AlertStore, EventPublisher
from portfolio_risk.monitoring.alert_windows import AlertDedupWindows
from portfolio_risk.risk.liquidity_calculator import assess_liquidity_risk

logger = structlog.get_logger(__name__)

_AML_SOURCES = (AlertSource.AML_CHECKER.value, AlertSource.VELOCITY_CHECKER.value)

_COMPLIANCE_RULES: dict[str, tuple[AlertSeverity, str, str]] = {
    "POSITION_LIMIT": (
        AlertSeverity.HIGH,
        "Position Limit Violation",
        "Single position exceeds maximum allowed percentage",
    ),
    "KYC_AML": (
        AlertSeverity.CRITICAL,
        "KYC/AML Violation",
        "Suspicious transaction activity detected",
    ),
    "LIQUIDITY_RISK": (
        AlertSeverity.MEDIUM,
        "Liquidity Risk Alert",
        "Portfolio liquidity below acceptable threshold",
    ),
}
_DEFAULT_COMPLIANCE_RULE = (
    AlertSeverity.MEDIUM,
    "Compliance Alert",
    "Compliance rule violation detected",
)


@dataclass(frozen=True)
class Deduplicated:
    """Outcome of a suppressed alert: nothing was stored or published."""

    portfolio_id: str
    alert_type: AlertType
    window: timedelta


def breach_severity(current: float, threshold: float) -> AlertSeverity:
    """Severity from the breach ratio ``current / threshold``."""
    if threshold <= 0:
        return AlertSeverity.CRITICAL
    ratio = current / threshold
    if ratio >= 2.0:
        return AlertSeverity.CRITICAL
    if ratio >= 1.2:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


class AlertEngine:
    """Create, deduplicate and publish alerts.

    Args:
        store: Alert persistence.
        publisher: Event sink for ``new_alert`` / ``aml_alert`` events.
        cache: Optional hot cache of active alerts.
        windows: Deduplication windows (defaults to ``AlertDedupWindows()``).
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: AlertStore,
        publisher: EventPublisher | None = None,
        cache: AlertCache | None = None,
        windows: AlertDedupWindows | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self.cache = cache
        self.windows = windows or AlertDedupWindows()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Core pipeline
    # ------------------------------------------------------------------

    def raise_alert(self, candidate: Alert) -> Alert | Deduplicated:
        """Persist and publish *candidate* unless a recent ACTIVE twin exists.

        Raises:
            Exception: Whatever the alert store raises on insert.
        """
        now = self.now()
        window = self.windows.window_for(candidate.alert_type, candidate.source)
        if window is not None and self.store.exists_active(
            candidate.portfolio_id, candidate.alert_type, now - window
        ):
            logger.info(
                "alert_deduplicated",
                portfolio_id=candidate.portfolio_id,
                alert_type=candidate.alert_type.value,
                source=candidate.source,
                window_minutes=window.total_seconds() / 60,
            )
            return Deduplicated(candidate.portfolio_id, candidate.alert_type, window)

        candidate.created_at = now
        candidate.updated_at = now
        self.store.add_alert(candidate)

        if self.cache is not None:
            try:
                self.cache.cache_alert(candidate)
            except Exception as exc:
                logger.warning("alert_cache_failed", alert_id=candidate.id, error=str(exc))

        event = EventType.AML_ALERT if candidate.source in _AML_SOURCES else EventType.NEW_ALERT
        self._publish(event, candidate.to_dict())

        logger.info(
            "alert_raised",
            alert_id=candidate.id,
            portfolio_id=candidate.portfolio_id,
            alert_type=candidate.alert_type.value,
            severity=candidate.severity.value,
            title=candidate.title,
        )
        return candidate

    def _publish(self, event: EventType, data: dict[str, Any]) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.publish(event, data)
        except Exception as exc:
            logger.warning("alert_publish_failed", event_type=event.value, error=str(exc))

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def raise_risk_breach(
        self, portfolio_id: str, metric_type: str, current: float, threshold: float
    ) -> Alert | Deduplicated:
        """Manual threshold-breach alert graded by breach ratio."""
        if threshold <= 0:
            raise InvalidInputError("breach threshold must be positive")
        ratio = current / threshold
        return self.raise_alert(Alert(
            portfolio_id=portfolio_id,
            alert_type=AlertType.RISK_BREACH,
            severity=breach_severity(current, threshold),
            title=f"{metric_type} Threshold Breached",
            description=(
                f"{metric_type} of {current:.2f} exceeds threshold of {threshold:.2f} "
                f"({(ratio - 1) * 100:.1f}% breach)"
            ),
            source=f"{metric_type}_CALCULATOR",
            triggered_by=RiskBreachContext(
                metric_type=metric_type,
                current_value=current,
                threshold=threshold,
                breach_ratio=ratio,
            ),
        ))

    def raise_var_status_alert(self, metric: RiskMetric) -> Alert | Deduplicated:
        """Periodic VaR alert: WARNING -> MEDIUM, CRITICAL -> HIGH."""
        if metric.status == MetricStatus.SAFE:
            raise InvalidInputError("VaR metric is SAFE; nothing to alert")
        severity = AlertSeverity.HIGH if metric.status == MetricStatus.CRITICAL else AlertSeverity.MEDIUM
        verb = "exceeds" if metric.status == MetricStatus.CRITICAL else "approaching"
        value = 0.0
        if isinstance(metric.details, VarDetails) and metric.details.portfolio_value > 0:
            value = metric.details.portfolio_value
        pct = metric.value / value * 100 if value else 0.0
        return self.raise_alert(Alert(
            portfolio_id=metric.portfolio_id,
            alert_type=AlertType.RISK_BREACH,
            severity=severity,
            title=f"VaR Limit {metric.status.value}",
            description=(
                f"Portfolio VaR of ${metric.value:,.2f} ({pct:.2f}%) {verb} "
                f"threshold of ${metric.threshold:,.2f}"
            ),
            source=AlertSource.VAR_CALCULATOR.value,
            triggered_by=VarStatusContext(
                metric_id=metric.id,
                var_value=metric.value,
                threshold=metric.threshold,
                status=metric.status.value,
            ),
        ))

    def raise_liquidity_alert(self, metric: RiskMetric) -> Alert | Deduplicated:
        """Periodic liquidity alert: MEDIUM_RISK -> MEDIUM, HIGH_RISK -> HIGH."""
        assessment = assess_liquidity_risk(metric.value)
        if assessment == RiskAssessment.LOW_RISK:
            raise InvalidInputError("liquidity is LOW_RISK; nothing to alert")
        high = assessment == RiskAssessment.HIGH_RISK
        days = (
            metric.details.normal_market_days
            if isinstance(metric.details, LiquidityDetails)
            else 0.0
        )
        return self.raise_alert(Alert(
            portfolio_id=metric.portfolio_id,
            alert_type=AlertType.LIQUIDITY_RISK,
            severity=AlertSeverity.HIGH if high else AlertSeverity.MEDIUM,
            title="Liquidity Risk Detected",
            description=(
                f"Portfolio liquidity ratio of {metric.value * 100:.2f}% indicates "
                f"{'high' if high else 'moderate'} liquidity risk. "
                f"Estimated {days:.1f} days to liquidate."
            ),
            source=AlertSource.LIQUIDITY_CALCULATOR.value,
            triggered_by=LiquidityContext(
                metric_id=metric.id,
                liquidity_ratio=metric.value,
                threshold=metric.threshold,
                risk_assessment=assessment.value,
            ),
        ))

    def raise_position_limit_alert(self, result: PositionLimitResult) -> Alert | Deduplicated:
        """Position-limit breach; HIGH if any single breach is CRITICAL."""
        if not result.violations:
            raise InvalidInputError("no position-limit violations to alert")
        description = (
            f"{len(result.violations)} position(s) exceed the "
            f"{result.max_limit_percent:.1f}% concentration limit"
        )
        critical = [v for v in result.violations if v.severity == "CRITICAL"]
        if critical:
            first = critical[0]
            description += (
                f". {first.symbol}: {first.current_percent:.2f}% "
                f"(excess: {first.excess_percent:.2f}%)"
            )
        return self.raise_alert(Alert(
            portfolio_id=result.portfolio_id,
            alert_type=AlertType.COMPLIANCE_VIOLATION,
            severity=AlertSeverity.HIGH if critical else AlertSeverity.MEDIUM,
            title="Position Limit Breach",
            description=description,
            source=AlertSource.POSITION_LIMIT_CHECKER.value,
            triggered_by=PositionLimitContext(
                violation_count=len(result.violations),
                compliance_score=result.compliance_score,
                violations=[v.to_dict() for v in result.violations],
            ),
        ))

    def raise_large_transaction_alert(
        self, tx: Transaction, threshold: float, flags: list[str] | None = None
    ) -> Alert | Deduplicated:
        return self.raise_alert(Alert(
            portfolio_id=tx.portfolio_id,
            alert_type=AlertType.SUSPICIOUS_ACTIVITY,
            severity=AlertSeverity.HIGH,
            title="Large Transaction Detected",
            description=(
                f"Transaction of ${tx.amount:,.2f} exceeds AML monitoring threshold "
                f"(${threshold:,.0f}). Symbol: {tx.symbol}, Type: {tx.side}"
            ),
            source=AlertSource.AML_CHECKER.value,
            triggered_by=LargeTransactionContext(
                transaction_id=tx.id,
                amount=tx.amount or 0.0,
                threshold=threshold,
                flags=list(flags or []),
            ),
        ))

    def raise_velocity_alert(
        self, portfolio_id: str, count: int, threshold: int, window_hours: float = 24.0
    ) -> Alert | Deduplicated:
        return self.raise_alert(Alert(
            portfolio_id=portfolio_id,
            alert_type=AlertType.SUSPICIOUS_ACTIVITY,
            severity=AlertSeverity.MEDIUM,
            title="High Transaction Velocity",
            description=(
                f"{count} transactions in the last {window_hours:g} hours exceed the "
                f"limit of {threshold}. This may indicate suspicious trading patterns."
            ),
            source=AlertSource.VELOCITY_CHECKER.value,
            triggered_by=VelocityContext(
                transaction_count=count,
                threshold=threshold,
                window_hours=window_hours,
            ),
        ))

    def raise_risk_violation(self, tx: Transaction, violation: RiskViolation) -> Alert | Deduplicated:
        """Pre-trade violation alert; CRITICAL stays CRITICAL, VIOLATION maps to HIGH."""
        severity = (
            AlertSeverity.CRITICAL
            if violation.severity == ViolationSeverity.CRITICAL
            else AlertSeverity.HIGH
        )
        return self.raise_alert(Alert(
            portfolio_id=tx.portfolio_id,
            alert_type=AlertType.RISK_VIOLATION,
            severity=severity,
            title=f"Risk Violation: {violation.type.value}",
            description=violation.description,
            source=AlertSource.RISK_ENGINE.value,
            triggered_by=RiskViolationContext(
                transaction_id=tx.id,
                violation_type=violation.type.value,
                severity=violation.severity.value,
                current_value=violation.current_value,
                limit=violation.limit,
                impact=violation.impact,
            ),
        ))

    def raise_compliance_alert(
        self, portfolio_id: str, violation_type: str, details: dict[str, Any] | None = None
    ) -> Alert | Deduplicated:
        severity, title, description = _COMPLIANCE_RULES.get(
            violation_type, _DEFAULT_COMPLIANCE_RULE
        )
        return self.raise_alert(Alert(
            portfolio_id=portfolio_id,
            alert_type=AlertType.COMPLIANCE_VIOLATION,
            severity=severity,
            title=title,
            description=description,
            source=f"{violation_type}_CHECKER",
            triggered_by=ComplianceContext(
                violation_type=violation_type, details=dict(details or {})
            ),
        ))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_alert(self, alert_id: str) -> Alert:
        alert = self.store.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    def get_active_alerts(self, portfolio_id: str | None = None) -> list[Alert]:
        return self.store.list_active(portfolio_id)

    def acknowledge(self, alert_id: str, user_id: str) -> Alert:
        alert = self.get_alert(alert_id)
        alert.acknowledge(user_id, at=self.now())
        self.store.update_alert(alert)
        self._uncache(alert_id, evict=False)
        logger.info("alert_acknowledged", alert_id=alert_id, user_id=user_id)
        return alert

    def resolve(self, alert_id: str, user_id: str, resolution: str) -> Alert:
        alert = self.get_alert(alert_id)
        alert.resolve(user_id, resolution, at=self.now())
        self.store.update_alert(alert)
        self._uncache(alert_id, evict=True)
        logger.info("alert_resolved", alert_id=alert_id, user_id=user_id)
        return alert

    def dismiss(self, alert_id: str, user_id: str) -> Alert:
        alert = self.get_alert(alert_id)
        alert.dismiss(user_id, at=self.now())
        self.store.update_alert(alert)
        self._uncache(alert_id, evict=True)
        logger.info("alert_dismissed", alert_id=alert_id, user_id=user_id)
        return alert

    def cleanup_old_alerts(self, days: int) -> int:
        """Delete RESOLVED/DISMISSED alerts created more than *days* ago."""
        cutoff = self.now() - timedelta(days=days)
        deleted = self.store.delete_closed_before(cutoff)
        logger.info("alerts_cleaned_up", deleted=deleted, days=days)
        return deleted

    def get_alert_stats(self) -> dict[str, int]:
        """Alert counts keyed by status value."""
        stats = {s.value: 0 for s in AlertStatus}
        stats.update(self.store.count_by_status())
        return stats

    def _uncache(self, alert_id: str, evict: bool) -> None:
        if self.cache is None:
            return
        try:
            if evict:
                self.cache.evict(alert_id)
            else:
                self.cache.remove_active(alert_id)
        except Exception as exc:
            logger.warning("alert_cache_failed", alert_id=alert_id, error=str(exc))
