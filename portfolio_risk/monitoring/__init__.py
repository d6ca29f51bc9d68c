"""Alerting and continuous monitoring."""

from portfolio_risk.monitoring.alert_engine import AlertEngine, Deduplicated
from portfolio_risk.monitoring.alert_windows import AlertDedupWindows
from portfolio_risk.monitoring.monitor import MonitorPassReport, RiskMonitorLoop
from portfolio_risk.monitoring.publisher import (
    InMemoryEventPublisher,
    RedisAlertCache,
    RedisEventPublisher,
)

__all__ = [
    "AlertDedupWindows",
    "AlertEngine",
    "Deduplicated",
    "InMemoryEventPublisher",
    "MonitorPassReport",
    "RedisAlertCache",
    "RedisEventPublisher",
    "RiskMonitorLoop",
]
