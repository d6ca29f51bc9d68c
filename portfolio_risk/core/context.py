"""Typed detail and context records attached to metrics and alerts.

``RiskMetric.details`` and ``Alert.triggered_by`` carry one of the records
below. Each record has a ``kind`` tag so the stored JSON form can be turned
back into the right class with :func:`context_from_dict`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar

_REGISTRY: dict[str, type["TaggedContext"]] = {}


@dataclass(frozen=True)
class TaggedContext:
    """Base class for all tagged detail/context records."""

    kind: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.kind:
            _REGISTRY[cls.kind] = cls

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **asdict(self)}


def context_from_dict(data: dict[str, Any] | None) -> TaggedContext | None:
    """Rebuild a tagged record from its ``to_dict`` form.

    Returns ``None`` for empty input or an unknown ``kind``.
    """
    if not data:
        return None
    payload = dict(data)
    cls = _REGISTRY.get(payload.pop("kind", ""))
    if cls is None:
        return None
    return cls(**payload)


# ---------------------------------------------------------------------------
# Metric details
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VarDetails(TaggedContext):
    """Diagnostics for a blended VaR metric."""

    kind: ClassVar[str] = "var"

    method: str = "blended"
    position_count: int = 0
    portfolio_value: float = 0.0
    var_99: float = 0.0
    expected_shortfall_95: float = 0.0
    expected_shortfall_99: float = 0.0
    max_drawdown: float = 0.0
    n_observations: int = 0
    method_var_95: dict[str, float] = field(default_factory=dict)
    method_var_99: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LiquidityDetails(TaggedContext):
    """Diagnostics for a portfolio liquidity-ratio metric."""

    kind: ClassVar[str] = "liquidity"

    health: str = ""
    risk_assessment: str = ""
    weighted_score: float = 0.0
    normal_market_days: float = 0.0
    stressed_market_days: float = 0.0
    crisis_market_days: float = 0.0
    liquidity_adjusted_var: float = 0.0
    position_count: int = 0
    portfolio_value: float = 0.0
    class_breakdown: dict[str, int] = field(default_factory=dict)
    alerts: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Alert contexts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskBreachContext(TaggedContext):
    kind: ClassVar[str] = "risk_breach"

    metric_type: str
    current_value: float
    threshold: float
    breach_ratio: float


@dataclass(frozen=True)
class VarStatusContext(TaggedContext):
    kind: ClassVar[str] = "var_status"

    metric_id: str
    var_value: float
    threshold: float
    status: str


@dataclass(frozen=True)
class LiquidityContext(TaggedContext):
    kind: ClassVar[str] = "liquidity_risk"

    metric_id: str
    liquidity_ratio: float
    threshold: float
    risk_assessment: str


@dataclass(frozen=True)
class PositionLimitContext(TaggedContext):
    kind: ClassVar[str] = "position_limit"

    violation_count: int
    compliance_score: float
    violations: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class LargeTransactionContext(TaggedContext):
    kind: ClassVar[str] = "large_transaction"

    transaction_id: str
    amount: float
    threshold: float
    flags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class VelocityContext(TaggedContext):
    kind: ClassVar[str] = "velocity"

    transaction_count: int
    threshold: int
    window_hours: float


@dataclass(frozen=True)
class RiskViolationContext(TaggedContext):
    kind: ClassVar[str] = "risk_violation"

    transaction_id: str
    violation_type: str
    severity: str
    current_value: float
    limit: float
    impact: float


@dataclass(frozen=True)
class ComplianceContext(TaggedContext):
    kind: ClassVar[str] = "compliance"

    violation_type: str
    details: dict[str, Any] = field(default_factory=dict)
