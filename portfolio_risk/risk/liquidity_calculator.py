"""Liquidity risk analysis for positions and portfolios.

Per position: a 0-100 liquidity score built from four 25-point factors
(volume ratio, spread, market cap, order-book depth), a liquidity class,
days to liquidate, square-root market impact and liquidation values.

Per portfolio: liquid/illiquid value ratios, a value-weighted score,
liquidation time under NORMAL/STRESSED/CRISIS participation rates,
liquidity-adjusted VaR, a health grade and surfaced liquidity alerts.

All computation is pure given the injected market-data provider.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from portfolio_risk.core.domain import MarketDepth, Position
from portfolio_risk.core.enums import (
    AssetType,
    LiquidityClass,
    LiquidityHealth,
    LiquidityTag,
    MarketCondition,
    RiskAssessment,
)
from portfolio_risk.core.interfaces import MarketDataProvider

logger = structlog.get_logger(__name__)

# Days reported for a symbol with no trading volume
ILLIQUID_DAYS = 999.0
MAX_MARKET_IMPACT = 0.5
FACTOR_PENALTY = 25.0
DEPTH_LEVELS = 5
NO_DEPTH_HAIRCUT = 0.95
UNFILLED_DISCOUNT = 0.9
BASELINE_VAR_PCT = 0.05
ILLIQUID_CONCENTRATION_LIMIT = 0.10
EXTENDED_LIQUIDATION_DAYS = 10.0

_ALWAYS_LIQUID = (AssetType.GOVERNMENT_BOND, AssetType.CASH, AssetType.MONEY_MARKET)

# Share of market value counted as (liquid, illiquid) per class
_CLASS_WEIGHTS: dict[LiquidityClass, tuple[float, float]] = {
    LiquidityClass.HIGHLY_LIQUID: (1.0, 0.0),
    LiquidityClass.LIQUID: (0.75, 0.0),
    LiquidityClass.SEMI_LIQUID: (0.25, 0.75),
    LiquidityClass.ILLIQUID: (0.0, 1.0),
}

_CLASS_TAGS = {
    LiquidityClass.HIGHLY_LIQUID: LiquidityTag.HIGH,
    LiquidityClass.LIQUID: LiquidityTag.HIGH,
    LiquidityClass.SEMI_LIQUID: LiquidityTag.MEDIUM,
    LiquidityClass.ILLIQUID: LiquidityTag.LOW,
}


@dataclass(frozen=True)
class LiquidityAlert:
    """A liquidity issue surfaced by portfolio analysis."""

    type: str
    severity: str
    message: str
    value: float
    threshold: float
    symbol: str | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold,
            "symbol": self.symbol,
        }


@dataclass(frozen=True)
class PositionLiquidity:
    """Liquidity metrics for a single position."""

    symbol: str
    asset_type: AssetType
    quantity: float
    market_value: float
    liquidity_score: float
    liquidity_class: LiquidityClass
    days_to_liquidate: float
    market_impact: float
    bid_ask_spread: float
    spread_cost: float
    immediate_liquidation_value: float
    orderly_liquidation_value: float

    @property
    def liquidity_tag(self) -> LiquidityTag:
        return _CLASS_TAGS[self.liquidity_class]


@dataclass
class LiquidityResult:
    """Portfolio-level liquidity analysis.

    Attributes:
        portfolio_value: Value the ratios are measured against.
        liquidity_ratio: Liquid value / portfolio value, in [0, 1].
        illiquidity_ratio: Illiquid value / portfolio value, in [0, 1].
        weighted_liquidity_score: Value-weighted position score, in [0, 100].
        normal_market_days: Slowest position's liquidation days at 10% participation.
        stressed_market_days: Same at 5% participation.
        crisis_market_days: Same at 2% participation.
        liquidity_adjusted_var: 5% of portfolio value times a liquidity factor.
        liquidity_health: Overall health grade.
        positions: Per-position breakdown.
        alerts: Surfaced liquidity alerts.
    """

    portfolio_value: float
    liquidity_ratio: float = 0.0
    illiquidity_ratio: float = 0.0
    weighted_liquidity_score: float = 0.0
    normal_market_days: float = 0.0
    stressed_market_days: float = 0.0
    crisis_market_days: float = 0.0
    liquidity_adjusted_var: float = 0.0
    liquidity_health: LiquidityHealth = LiquidityHealth.CRITICAL
    positions: list[PositionLiquidity] = field(default_factory=list)
    alerts: list[LiquidityAlert] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def class_breakdown(self) -> dict[str, int]:
        counts = {c.value: 0 for c in LiquidityClass}
        for p in self.positions:
            counts[p.liquidity_class.value] += 1
        return counts


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def days_to_liquidate(quantity: float, avg_daily_volume: float, participation_rate: float) -> float:
    """Days needed to sell *quantity* at *participation_rate* of daily volume."""
    if avg_daily_volume <= 0:
        return ILLIQUID_DAYS
    return quantity / (avg_daily_volume * participation_rate)


def market_impact(quantity: float, avg_daily_volume: float, spread: float) -> float:
    """Square-root impact ``0.1 * sqrt(q / adv) + spread / 2``, capped at 50%."""
    if avg_daily_volume <= 0:
        return MAX_MARKET_IMPACT
    impact = 0.1 * math.sqrt(max(quantity, 0.0) / avg_daily_volume) + spread / 2.0
    return min(impact, MAX_MARKET_IMPACT)


def depth_score(depth: MarketDepth, position_value: float) -> float:
    """Fraction in [0, 1] of how well the top of book absorbs the position."""
    avg_depth = depth.top_notional(DEPTH_LEVELS)
    if avg_depth > position_value * 2:
        return 1.0
    if avg_depth > position_value:
        return 0.75
    if avg_depth > position_value * 0.5:
        return 0.5
    if avg_depth > position_value * 0.25:
        return 0.25
    return 0.0


def liquidity_score(
    avg_daily_volume: float,
    spread: float,
    market_cap: float,
    position_value: float,
    depth: MarketDepth | None,
) -> float:
    score = 100.0

    # Volume
    if avg_daily_volume <= 0:
        score -= FACTOR_PENALTY
    else:
        volume_ratio = position_value / avg_daily_volume
        if volume_ratio < 0.01:
            pass
        elif volume_ratio < 0.1:
            score -= 5
        elif volume_ratio < 0.5:
            score -= 15
        else:
            score -= FACTOR_PENALTY

    # Spread
    if spread < 0.001:
        pass
    elif spread < 0.005:
        score -= 10
    elif spread < 0.01:
        score -= 20
    else:
        score -= FACTOR_PENALTY

    # Market cap
    if market_cap > 10e9:
        pass
    elif market_cap > 2e9:
        score -= 10
    elif market_cap > 200e6:
        score -= 20
    else:
        score -= FACTOR_PENALTY

    # Depth
    if depth is None:
        score -= FACTOR_PENALTY
    else:
        score -= FACTOR_PENALTY - depth_score(depth, position_value) * FACTOR_PENALTY

    return max(0.0, score)


def classify_liquidity(score: float, days: float, asset_type: AssetType) -> LiquidityClass:
    """Bucket a position by asset-type override, then by score and days."""
    if asset_type in _ALWAYS_LIQUID:
        return LiquidityClass.HIGHLY_LIQUID
    if days >= ILLIQUID_DAYS:
        return LiquidityClass.ILLIQUID
    if asset_type == AssetType.CORPORATE_BOND:
        return LiquidityClass.LIQUID if score > 70 else LiquidityClass.SEMI_LIQUID
    if asset_type == AssetType.CRYPTO:
        if score > 80:
            return LiquidityClass.LIQUID
        if score > 50:
            return LiquidityClass.SEMI_LIQUID
        return LiquidityClass.ILLIQUID

    if score >= 85 and days <= 1:
        return LiquidityClass.HIGHLY_LIQUID
    if score >= 70 and days <= 3:
        return LiquidityClass.LIQUID
    if score >= 50 and days <= 7:
        return LiquidityClass.SEMI_LIQUID
    return LiquidityClass.ILLIQUID


def immediate_liquidation_value(position: Position, depth: MarketDepth | None) -> float:
    """Proceeds of selling the whole position into the bid side now."""
    if depth is None or not depth.bids:
        return position.market_value * NO_DEPTH_HAIRCUT

    remaining = position.quantity
    proceeds = 0.0
    for level in depth.bids:
        if remaining <= 0:
            break
        fill = min(remaining, level.quantity)
        proceeds += fill * level.price
        remaining -= fill

    if remaining > 0:
        proceeds += remaining * depth.bids[-1].price * UNFILLED_DISCOUNT
    return proceeds


def liquidity_adjusted_var(portfolio_value: float, liquidity_ratio: float) -> float:
    if liquidity_ratio < 0.3:
        factor = 1.5
    elif liquidity_ratio < 0.5:
        factor = 1.3
    elif liquidity_ratio < 0.7:
        factor = 1.15
    else:
        factor = 1.0
    return portfolio_value * BASELINE_VAR_PCT * factor


def assess_health(liquidity_ratio: float, normal_days: float) -> LiquidityHealth:
    if liquidity_ratio >= 0.7 and normal_days <= 3:
        return LiquidityHealth.HEALTHY
    if liquidity_ratio >= 0.5 and normal_days <= 7:
        return LiquidityHealth.ADEQUATE
    if liquidity_ratio >= 0.3 and normal_days <= 14:
        return LiquidityHealth.CONCERNING
    return LiquidityHealth.CRITICAL


def assess_liquidity_risk(liquidity_ratio: float) -> RiskAssessment:
    """Three-level risk grade of a portfolio liquidity ratio."""
    if liquidity_ratio < 0.3:
        return RiskAssessment.HIGH_RISK
    if liquidity_ratio < 0.7:
        return RiskAssessment.MEDIUM_RISK
    return RiskAssessment.LOW_RISK


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


# ---------------------------------------------------------------------------
# LiquidityCalculator class
# ---------------------------------------------------------------------------


class LiquidityCalculator:
    """Liquidity analysis backed by an injected market-data provider."""

    def __init__(self, market_data: MarketDataProvider) -> None:
        self.market_data = market_data

    def analyze_position(self, position: Position) -> PositionLiquidity:
        symbol = position.symbol
        adv = self.market_data.average_daily_volume(symbol)
        spread = self.market_data.bid_ask_spread(symbol)
        cap = self.market_data.market_cap(symbol)
        depth = self.market_data.market_depth(symbol)

        value = position.market_value
        days = days_to_liquidate(
            position.quantity, adv, MarketCondition.NORMAL.participation_rate
        )
        impact = market_impact(position.quantity, adv, spread)
        score = liquidity_score(adv, spread, cap, value, depth)

        return PositionLiquidity(
            symbol=symbol,
            asset_type=position.asset_type,
            quantity=position.quantity,
            market_value=value,
            liquidity_score=score,
            liquidity_class=classify_liquidity(score, days, position.asset_type),
            days_to_liquidate=days,
            market_impact=impact,
            bid_ask_spread=spread,
            spread_cost=value * spread,
            immediate_liquidation_value=immediate_liquidation_value(position, depth),
            orderly_liquidation_value=value * (1.0 - impact),
        )

    def liquidation_days(
        self, positions: Sequence[Position], condition: MarketCondition
    ) -> float:
        """Days for the slowest position to liquidate under *condition*."""
        worst = 0.0
        for p in positions:
            adv = self.market_data.average_daily_volume(p.symbol)
            worst = max(worst, days_to_liquidate(p.quantity, adv, condition.participation_rate))
        return worst

    def analyze(self, positions: Sequence[Position], portfolio_value: float) -> LiquidityResult:
        """Full portfolio liquidity analysis.

        Args:
            positions: Positions to analyze.
            portfolio_value: Denominator for ratios; when <= 0 the ratios
                and weighted score are reported as 0.

        Returns:
            LiquidityResult with per-position breakdown and alerts.
        """
        result = LiquidityResult(portfolio_value=portfolio_value)
        liquid_value = 0.0
        illiquid_value = 0.0
        weighted_score = 0.0

        for position in positions:
            pl = self.analyze_position(position)
            result.positions.append(pl)
            liquid_share, illiquid_share = _CLASS_WEIGHTS[pl.liquidity_class]
            liquid_value += pl.market_value * liquid_share
            illiquid_value += pl.market_value * illiquid_share
            if portfolio_value > 0:
                weighted_score += pl.liquidity_score * (pl.market_value / portfolio_value)

        if portfolio_value > 0:
            result.liquidity_ratio = _clamp(liquid_value / portfolio_value, 0.0, 1.0)
            result.illiquidity_ratio = _clamp(illiquid_value / portfolio_value, 0.0, 1.0)
            result.weighted_liquidity_score = _clamp(weighted_score, 0.0, 100.0)

        result.normal_market_days = self.liquidation_days(positions, MarketCondition.NORMAL)
        result.stressed_market_days = self.liquidation_days(positions, MarketCondition.STRESSED)
        result.crisis_market_days = self.liquidation_days(positions, MarketCondition.CRISIS)
        result.liquidity_adjusted_var = liquidity_adjusted_var(
            max(portfolio_value, 0.0), result.liquidity_ratio
        )
        result.liquidity_health = assess_health(result.liquidity_ratio, result.normal_market_days)
        result.alerts = self._check_alerts(result)

        logger.info(
            "liquidity_analyzed",
            positions=len(result.positions),
            liquidity_ratio=round(result.liquidity_ratio, 4),
            health=result.liquidity_health.value,
            alerts=len(result.alerts),
        )
        return result

    def _check_alerts(self, result: LiquidityResult) -> list[LiquidityAlert]:
        alerts: list[LiquidityAlert] = []

        if result.liquidity_ratio < 0.3:
            alerts.append(LiquidityAlert(
                type="LOW_LIQUIDITY_RATIO",
                severity="CRITICAL",
                message="Portfolio liquidity ratio below 30%",
                value=result.liquidity_ratio,
                threshold=0.3,
            ))
        elif result.liquidity_ratio < 0.5:
            alerts.append(LiquidityAlert(
                type="LOW_LIQUIDITY_RATIO",
                severity="WARNING",
                message="Portfolio liquidity ratio below 50%",
                value=result.liquidity_ratio,
                threshold=0.5,
            ))

        if result.normal_market_days > EXTENDED_LIQUIDATION_DAYS:
            alerts.append(LiquidityAlert(
                type="EXTENDED_LIQUIDATION_TIME",
                severity="WARNING",
                message="Portfolio liquidation would take more than 10 days",
                value=result.normal_market_days,
                threshold=EXTENDED_LIQUIDATION_DAYS,
            ))

        if result.portfolio_value > 0:
            for pl in result.positions:
                share = pl.market_value / result.portfolio_value
                if (
                    pl.liquidity_class == LiquidityClass.ILLIQUID
                    and share > ILLIQUID_CONCENTRATION_LIMIT
                ):
                    alerts.append(LiquidityAlert(
                        type="CONCENTRATED_ILLIQUID_POSITION",
                        severity="WARNING",
                        message=f"Large illiquid position: {pl.symbol}",
                        value=share,
                        threshold=ILLIQUID_CONCENTRATION_LIMIT,
                        symbol=pl.symbol,
                    ))

        return alerts
