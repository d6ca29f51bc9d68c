"""Single-position concentration limits.

A position breaches when its share of portfolio value exceeds the limit.
Breaches more than twice the limit are CRITICAL, the rest MAJOR. The
compliance score drops 10 points per breach.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from portfolio_risk.core.domain import Position

SEVERITY_MAJOR = "MAJOR"
SEVERITY_CRITICAL = "CRITICAL"

STATUS_COMPLIANT = "COMPLIANT"
STATUS_VIOLATION = "VIOLATION"


@dataclass(frozen=True)
class PositionLimitViolation:
    symbol: str
    current_percent: float
    max_percent: float
    excess_percent: float
    market_value: float
    severity: str = SEVERITY_MAJOR

    def describe(self) -> str:
        return (
            f"Position {self.symbol} exceeds limit: {self.current_percent:.2f}% "
            f"(max: {self.max_percent:.2f}%, excess: {self.excess_percent:.2f}%)"
        )

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "current_percent": self.current_percent,
            "max_percent": self.max_percent,
            "excess_percent": self.excess_percent,
            "market_value": self.market_value,
            "severity": self.severity,
        }


@dataclass
class PositionLimitResult:
    """Outcome of a portfolio-wide position-limit check."""

    portfolio_id: str
    max_limit_percent: float
    violations: list[PositionLimitViolation] = field(default_factory=list)
    total_positions: int = 0
    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def compliance_score(self) -> float:
        return max(0.0, 100.0 - 10.0 * len(self.violations))

    @property
    def status(self) -> str:
        return STATUS_VIOLATION if self.violations else STATUS_COMPLIANT

    @property
    def has_critical(self) -> bool:
        return any(v.severity == SEVERITY_CRITICAL for v in self.violations)


class PositionLimitChecker:
    """Flags positions whose weight exceeds ``max_position_percent``."""

    def __init__(self, max_position_percent: float = 25.0) -> None:
        self.max_position_percent = max_position_percent

    def check(
        self, positions: Sequence[Position], total_value: float | None = None
    ) -> list[PositionLimitViolation]:
        """Check every position against the limit.

        Args:
            positions: Positions to check.
            total_value: Denominator; defaults to the sum of market values.
                A zero denominator yields no violations.
        """
        if total_value is None:
            total_value = sum(p.market_value for p in positions)
        if total_value <= 0:
            return []

        limit = self.max_position_percent
        violations: list[PositionLimitViolation] = []
        for p in positions:
            pct = p.market_value / total_value * 100.0
            if pct > limit:
                violations.append(PositionLimitViolation(
                    symbol=p.symbol,
                    current_percent=pct,
                    max_percent=limit,
                    excess_percent=pct - limit,
                    market_value=p.market_value,
                    severity=SEVERITY_CRITICAL if pct > 2 * limit else SEVERITY_MAJOR,
                ))
        return violations
