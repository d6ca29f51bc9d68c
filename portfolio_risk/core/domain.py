"""Domain records shared by the calculators, the alert engine and the stores.

Positions and portfolios are immutable snapshots: the engine fetches a fresh
copy per evaluation and never mutates one in place. Metrics are append-only.
Alerts carry their own lifecycle transitions.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from portfolio_risk.core.context import TaggedContext
from portfolio_risk.core.enums import (
    AlertSeverity,
    AlertStatus,
    AlertType,
    AssetType,
    LiquidityTag,
    MetricStatus,
    MetricType,
    TransactionStatus,
    TransactionType,
    ViolationSeverity,
    ViolationType,
)
from portfolio_risk.core.exceptions import InvalidAlertTransitionError, InvalidInputError


def new_id() -> str:
    """Return a fresh UUID4 string identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Portfolio snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """A holding in a single symbol.

    Attributes:
        symbol: Instrument ticker.
        quantity: Units held.
        average_price: Average acquisition price per unit.
        current_price: Latest price per unit.
        asset_type: Instrument classification.
        liquidity: Coarse liquidity tag, set externally or derived.
    """

    symbol: str
    quantity: float
    average_price: float
    current_price: float
    asset_type: AssetType = AssetType.STOCK
    liquidity: LiquidityTag = LiquidityTag.HIGH
    id: str = field(default_factory=new_id)
    portfolio_id: str = ""

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.average_price

    @property
    def pnl(self) -> float:
        return self.market_value - self.cost_basis

    @property
    def pnl_percent(self) -> float:
        """Unrealized PnL as a percentage of cost basis (0 when basis is 0)."""
        if self.cost_basis == 0:
            return 0.0
        return self.pnl / self.cost_basis * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "symbol": self.symbol,
            "quantity": self.quantity,
            "average_price": self.average_price,
            "current_price": self.current_price,
            "market_value": self.market_value,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "asset_type": self.asset_type.value,
            "liquidity": self.liquidity.value,
        }


@dataclass(frozen=True)
class Portfolio:
    """Snapshot of a portfolio and its positions.

    ``total_value`` is maintained externally and may lag the positions; it
    must never be negative.
    """

    id: str
    total_value: float
    positions: tuple[Position, ...] = ()
    currency: str = "USD"
    name: str = ""

    def __post_init__(self) -> None:
        if self.total_value < 0:
            raise InvalidInputError(
                f"portfolio {self.id} has negative total value {self.total_value}"
            )
        if not isinstance(self.positions, tuple):
            object.__setattr__(self, "positions", tuple(self.positions))

    @classmethod
    def from_positions(
        cls,
        portfolio_id: str,
        positions: list[Position] | tuple[Position, ...],
        currency: str = "USD",
        name: str = "",
    ) -> Portfolio:
        """Build a snapshot whose total value is the sum of market values."""
        total = sum(p.market_value for p in positions)
        return cls(
            id=portfolio_id,
            total_value=total,
            positions=tuple(positions),
            currency=currency,
            name=name,
        )

    def weight_of(self, position: Position) -> float:
        if self.total_value <= 0:
            return 0.0
        return position.market_value / self.total_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "total_value": self.total_value,
            "currency": self.currency,
            "positions": [p.to_dict() for p in self.positions],
        }


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


@dataclass
class RiskThresholds:
    """Per-portfolio risk limits.

    VaR limits at or below 1.0 are fractions of portfolio value; larger
    values are absolute currency amounts. All other ratios are fractions.
    """

    portfolio_id: str
    max_var_95: float = 0.05
    max_var_99: float = 0.10
    max_position_size: float = 0.25
    max_single_asset_exposure: float = 0.30
    max_sector_exposure: float = 0.40
    min_liquidity_ratio: float = 0.30
    max_leverage: float = 2.0
    max_concentration: float = 0.35
    max_daily_loss: float = 0.03
    max_weekly_loss: float = 0.07
    max_drawdown: float = 0.15
    require_stop_loss: bool = True
    max_stop_loss_distance: float = 0.05
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def default_for(cls, portfolio_id: str) -> RiskThresholds:
        return cls(portfolio_id=portfolio_id)

    def var_limit(self, total_value: float, confidence: float = 0.95) -> float:
        """Resolve the VaR limit at *confidence* to a currency amount."""
        raw = self.max_var_99 if confidence >= 0.99 else self.max_var_95
        if raw <= 1.0:
            return raw * max(total_value, 0.0)
        return raw

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "max_var_95": self.max_var_95,
            "max_var_99": self.max_var_99,
            "max_position_size": self.max_position_size,
            "max_single_asset_exposure": self.max_single_asset_exposure,
            "max_sector_exposure": self.max_sector_exposure,
            "min_liquidity_ratio": self.min_liquidity_ratio,
            "max_leverage": self.max_leverage,
            "max_concentration": self.max_concentration,
            "max_daily_loss": self.max_daily_loss,
            "max_weekly_loss": self.max_weekly_loss,
            "max_drawdown": self.max_drawdown,
            "require_stop_loss": self.require_stop_loss,
            "max_stop_loss_distance": self.max_stop_loss_distance,
        }


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskMetric:
    """Append-only output record of one metric evaluation."""

    portfolio_id: str
    metric_type: MetricType
    value: float
    threshold: float
    status: MetricStatus
    confidence_level: float | None = None
    time_horizon_days: int | None = None
    details: TaggedContext | None = None
    id: str = field(default_factory=new_id)
    calculated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "metric_type": self.metric_type.value,
            "value": self.value,
            "threshold": self.threshold,
            "status": self.status.value,
            "confidence_level": self.confidence_level,
            "time_horizon_days": self.time_horizon_days,
            "calculated_at": self.calculated_at.isoformat(),
            "details": self.details.to_dict() if self.details else None,
        }


@dataclass(frozen=True)
class RiskHistory:
    """Companion time-series point for history queries."""

    portfolio_id: str
    metric_type: MetricType
    value: float
    id: str = field(default_factory=new_id)
    recorded_at: datetime = field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Transactions and pre-trade analysis
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A proposed or executed transaction against a portfolio."""

    portfolio_id: str
    transaction_type: TransactionType
    symbol: str = ""
    quantity: float = 0.0
    price: float = 0.0
    amount: float | None = None
    asset_type: AssetType = AssetType.STOCK
    stop_loss: float | None = None
    take_profit: float | None = None
    currency: str = "USD"
    status: TransactionStatus = TransactionStatus.PENDING
    aml_checked: bool = False
    kyc_verified: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.amount is None:
            self.amount = abs(self.quantity * self.price)

    @property
    def side(self) -> str:
        return self.transaction_type.value

    @property
    def trade_value(self) -> float:
        """Notional of the trade; falls back to ``amount`` for cash movements."""
        if self.quantity and self.price:
            return abs(self.quantity * self.price)
        return abs(self.amount or 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "transaction_type": self.transaction_type.value,
            "symbol": self.symbol,
            "quantity": self.quantity,
            "price": self.price,
            "amount": self.amount,
            "currency": self.currency,
            "asset_type": self.asset_type.value,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "status": self.status.value,
            "aml_checked": self.aml_checked,
            "kyc_verified": self.kyc_verified,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RiskViolation:
    """One failed pre-trade check."""

    type: ViolationType
    severity: ViolationSeverity
    description: str
    current_value: float
    limit: float
    impact: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "current_value": self.current_value,
            "limit": self.limit,
            "impact": self.impact,
        }


@dataclass
class TradeRiskAnalysis:
    """Ephemeral result of a pre-trade evaluation.

    Attached to the transaction record and then discarded.
    """

    trade_id: str
    symbol: str
    side: str
    quantity: float
    price: float
    position_risk: float = 0.0
    portfolio_impact: float = 0.0
    concentration_impact: float = 0.0
    liquidity_impact: float = 0.0
    violations: list[RiskViolation] = field(default_factory=list)
    risk_score: float = 0.0
    approved: bool = False
    requires_review: bool = False
    suggested_stop_loss: float | None = None
    suggested_size: float | None = None
    hedge_recommendation: str | None = None

    @property
    def has_critical(self) -> bool:
        return any(v.severity == ViolationSeverity.CRITICAL for v in self.violations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "symbol": self.symbol,
            "side": self.side,
            "quantity": self.quantity,
            "price": self.price,
            "position_risk": self.position_risk,
            "portfolio_impact": self.portfolio_impact,
            "concentration_impact": self.concentration_impact,
            "liquidity_impact": self.liquidity_impact,
            "violations": [v.to_dict() for v in self.violations],
            "risk_score": self.risk_score,
            "approved": self.approved,
            "requires_review": self.requires_review,
            "suggested_stop_loss": self.suggested_stop_loss,
            "suggested_size": self.suggested_size,
            "hedge_recommendation": self.hedge_recommendation,
        }


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


@dataclass
class Alert:
    """A persisted alert and its lifecycle.

    Status moves ACTIVE -> ACKNOWLEDGED -> RESOLVED | DISMISSED. RESOLVED and
    DISMISSED are terminal; an ACTIVE alert may also be resolved or dismissed
    directly.
    """

    portfolio_id: str
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    source: str
    status: AlertStatus = AlertStatus.ACTIVE
    triggered_by: TaggedContext | None = None
    resolution: str | None = None
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    dismissed_by: str | None = None
    dismissed_at: datetime | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def acknowledge(self, user_id: str, at: datetime | None = None) -> None:
        if self.status != AlertStatus.ACTIVE:
            raise InvalidAlertTransitionError(
                f"cannot acknowledge alert {self.id} in status {self.status.value}"
            )
        now = at or utc_now()
        self.status = AlertStatus.ACKNOWLEDGED
        self.acknowledged_by = user_id
        self.acknowledged_at = now
        self.updated_at = now

    def resolve(self, user_id: str, resolution: str, at: datetime | None = None) -> None:
        self._ensure_open("resolve")
        now = at or utc_now()
        self.status = AlertStatus.RESOLVED
        self.resolution = resolution
        self.resolved_by = user_id
        self.resolved_at = now
        self.updated_at = now

    def dismiss(self, user_id: str, at: datetime | None = None) -> None:
        self._ensure_open("dismiss")
        now = at or utc_now()
        self.status = AlertStatus.DISMISSED
        self.dismissed_by = user_id
        self.dismissed_at = now
        self.updated_at = now

    def _ensure_open(self, action: str) -> None:
        if self.status.is_terminal:
            raise InvalidAlertTransitionError(
                f"cannot {action} alert {self.id} in terminal status {self.status.value}"
            )

    def to_dict(self) -> dict[str, Any]:
        def _ts(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "portfolio_id": self.portfolio_id,
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "source": self.source,
            "status": self.status.value,
            "triggered_by": self.triggered_by.to_dict() if self.triggered_by else None,
            "resolution": self.resolution,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _ts(self.acknowledged_at),
            "resolved_by": self.resolved_by,
            "resolved_at": _ts(self.resolved_at),
            "dismissed_by": self.dismissed_by,
            "dismissed_at": _ts(self.dismissed_at),
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
        }


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PriceLevel:
    price: float
    quantity: float
    orders: int = 1

    @property
    def notional(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class MarketDepth:
    """Order book snapshot; levels are best-first."""

    symbol: str
    bids: tuple[PriceLevel, ...] = ()
    asks: tuple[PriceLevel, ...] = ()

    def top_notional(self, levels: int = 5) -> float:
        """Average of the bid-side and ask-side notional over the top levels."""
        bid_depth = sum(level.notional for level in self.bids[:levels])
        ask_depth = sum(level.notional for level in self.asks[:levels])
        return (bid_depth + ask_depth) / 2.0
