"""Alert deduplication windows.

Frozen dataclass AlertDedupWindows holds, per alert type, how long an
ACTIVE alert suppresses another of the same (portfolio, type). Velocity
alerts carry their own shorter window. RISK_VIOLATION alerts are never
deduplicated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from portfolio_risk.core.config import Settings
from portfolio_risk.core.enums import AlertSource, AlertType


@dataclass(frozen=True)
class AlertDedupWindows:
    """Deduplication windows in minutes.

    Attributes:
        risk_breach_minutes: RISK_BREACH window.
        liquidity_risk_minutes: LIQUIDITY_RISK window.
        compliance_violation_minutes: COMPLIANCE_VIOLATION window.
        suspicious_activity_minutes: SUSPICIOUS_ACTIVITY window (AML).
        velocity_minutes: SUSPICIOUS_ACTIVITY window for velocity alerts.
    """

    risk_breach_minutes: float = 10.0
    liquidity_risk_minutes: float = 15.0
    compliance_violation_minutes: float = 5.0
    suspicious_activity_minutes: float = 60.0
    velocity_minutes: float = 30.0

    def window_for(self, alert_type: AlertType, source: str = "") -> timedelta | None:
        """Return the window for *alert_type*, or None when never deduplicated."""
        if alert_type == AlertType.SUSPICIOUS_ACTIVITY and source == AlertSource.VELOCITY_CHECKER.value:
            return timedelta(minutes=self.velocity_minutes)
        minutes = {
            AlertType.RISK_BREACH: self.risk_breach_minutes,
            AlertType.LIQUIDITY_RISK: self.liquidity_risk_minutes,
            AlertType.COMPLIANCE_VIOLATION: self.compliance_violation_minutes,
            AlertType.SUSPICIOUS_ACTIVITY: self.suspicious_activity_minutes,
        }.get(alert_type)
        if minutes is None:
            return None
        return timedelta(minutes=minutes)

    @classmethod
    def from_settings(cls, settings: Settings) -> AlertDedupWindows:
        """Create windows from the ``alert_window_*`` settings fields."""
        return cls(
            risk_breach_minutes=settings.alert_window_risk_breach_minutes,
            liquidity_risk_minutes=settings.alert_window_liquidity_risk_minutes,
            compliance_violation_minutes=settings.alert_window_compliance_violation_minutes,
            suspicious_activity_minutes=settings.alert_window_suspicious_activity_minutes,
            velocity_minutes=settings.alert_window_velocity_minutes,
        )
