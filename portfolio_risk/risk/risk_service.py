"""Portfolio risk metrics service.

Loads a portfolio snapshot, runs the VaR and liquidity calculators against
it, grades the result against the portfolio's thresholds and appends a
``RiskMetric`` plus a ``RiskHistory`` point. Also runs the single-position
limit check and serves metric history.

The metric write must succeed; the history write is best effort.
"""

from __future__ import annotations

import threading

import structlog

from portfolio_risk.compliance.position_limit import PositionLimitChecker, PositionLimitResult
from portfolio_risk.core.context import LiquidityDetails, VarDetails
from portfolio_risk.core.domain import Portfolio, RiskHistory, RiskMetric
from portfolio_risk.core.enums import MetricStatus, MetricType, RiskAssessment
from portfolio_risk.core.exceptions import (
    EvaluationCancelledError,
    InvalidInputError,
    PortfolioNotFoundError,
)
from portfolio_risk.core.interfaces import MetricStore, PortfolioStore, PriceHistoryProvider
from portfolio_risk.risk.liquidity_calculator import (
    LiquidityCalculator,
    LiquidityResult,
    assess_liquidity_risk,
)
from portfolio_risk.risk.thresholds import ThresholdProvider
from portfolio_risk.risk.var_calculator import VaRCalculator, VaRResult

logger = structlog.get_logger(__name__)

VAR_CONFIDENCE = 0.95
# Share of the VaR limit at which the status turns WARNING
VAR_WARNING_FRACTION = 0.75

_ASSESSMENT_STATUS = {
    RiskAssessment.HIGH_RISK: MetricStatus.CRITICAL,
    RiskAssessment.MEDIUM_RISK: MetricStatus.WARNING,
    RiskAssessment.LOW_RISK: MetricStatus.SAFE,
}


def raise_if_cancelled(cancel: threading.Event | None, portfolio_id: str) -> None:
    """Abort the current evaluation once *cancel* has been set."""
    if cancel is not None and cancel.is_set():
        raise EvaluationCancelledError(portfolio_id)


def var_status(value: float, threshold: float) -> MetricStatus:
    if value > threshold:
        return MetricStatus.CRITICAL
    if value > threshold * VAR_WARNING_FRACTION:
        return MetricStatus.WARNING
    return MetricStatus.SAFE


class RiskService:
    """Produces persisted VaR and liquidity metrics for a portfolio.

    Args:
        portfolios: Source of portfolio snapshots.
        thresholds: Lazy threshold resolver.
        metrics: Append-only metric sink.
        prices: Historical price source.
        var_calculator: Three-method VaR calculator.
        liquidity_calculator: Liquidity analyzer.
        time_horizon_days: Default VaR horizon.
    """

    def __init__(
        self,
        portfolios: PortfolioStore,
        thresholds: ThresholdProvider,
        metrics: MetricStore,
        prices: PriceHistoryProvider,
        var_calculator: VaRCalculator,
        liquidity_calculator: LiquidityCalculator,
        time_horizon_days: int = 1,
    ) -> None:
        self.portfolios = portfolios
        self.thresholds = thresholds
        self.metrics = metrics
        self.prices = prices
        self.var_calculator = var_calculator
        self.liquidity_calculator = liquidity_calculator
        self.time_horizon_days = time_horizon_days

    # ------------------------------------------------------------------
    # Snapshot and raw calculations
    # ------------------------------------------------------------------

    def load_portfolio(self, portfolio_id: str) -> Portfolio:
        portfolio = self.portfolios.get_portfolio(portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    def compute_var(
        self, portfolio: Portfolio, time_horizon_days: int | None = None
    ) -> VaRResult:
        """Blended VaR of a snapshot. Raises InsufficientDataError."""
        symbols = sorted({p.symbol for p in portfolio.positions})
        history = self.prices.get_price_history(symbols)
        return self.var_calculator.calculate(
            portfolio.positions,
            history,
            time_horizon_days or self.time_horizon_days,
        )

    def compute_liquidity(self, portfolio: Portfolio) -> LiquidityResult:
        return self.liquidity_calculator.analyze(portfolio.positions, portfolio.total_value)

    # ------------------------------------------------------------------
    # Persisted metrics
    # ------------------------------------------------------------------

    def calculate_portfolio_var(
        self,
        portfolio_id: str,
        time_horizon_days: int | None = None,
        cancel: threading.Event | None = None,
    ) -> RiskMetric:
        """Compute, grade and persist the 95% VaR metric.

        Raises:
            PortfolioNotFoundError: Unknown portfolio.
            InvalidInputError: Portfolio has no positions.
            InsufficientDataError: Not enough price history.
            EvaluationCancelledError: *cancel* was set before the write.
        """
        portfolio = self._load_with_positions(portfolio_id)
        thresholds = self.thresholds.get_or_create(portfolio_id)
        result = self.compute_var(portfolio, time_horizon_days)

        limit = thresholds.var_limit(portfolio.total_value, VAR_CONFIDENCE)
        metric = RiskMetric(
            portfolio_id=portfolio_id,
            metric_type=MetricType.VAR,
            value=result.var_95,
            threshold=limit,
            status=var_status(result.var_95, limit),
            confidence_level=VAR_CONFIDENCE,
            time_horizon_days=result.time_horizon_days,
            details=VarDetails(
                method="blended",
                position_count=len(portfolio.positions),
                portfolio_value=result.portfolio_value,
                var_99=result.var_99,
                expected_shortfall_95=result.expected_shortfall_95,
                expected_shortfall_99=result.expected_shortfall_99,
                max_drawdown=result.max_drawdown,
                n_observations=result.n_observations,
                method_var_95={k: m.var_95 for k, m in result.methods.items()},
                method_var_99={k: m.var_99 for k, m in result.methods.items()},
            ),
        )
        raise_if_cancelled(cancel, portfolio_id)
        self._persist(metric)
        return metric

    def calculate_portfolio_liquidity(
        self, portfolio_id: str, cancel: threading.Event | None = None
    ) -> RiskMetric:
        """Compute, grade and persist the liquidity-ratio metric."""
        portfolio = self._load_with_positions(portfolio_id)
        thresholds = self.thresholds.get_or_create(portfolio_id)
        result = self.compute_liquidity(portfolio)
        assessment = assess_liquidity_risk(result.liquidity_ratio)

        metric = RiskMetric(
            portfolio_id=portfolio_id,
            metric_type=MetricType.LIQUIDITY_RATIO,
            value=result.liquidity_ratio,
            threshold=thresholds.min_liquidity_ratio,
            status=_ASSESSMENT_STATUS[assessment],
            details=LiquidityDetails(
                health=result.liquidity_health.value,
                risk_assessment=assessment.value,
                weighted_score=result.weighted_liquidity_score,
                normal_market_days=result.normal_market_days,
                stressed_market_days=result.stressed_market_days,
                crisis_market_days=result.crisis_market_days,
                liquidity_adjusted_var=result.liquidity_adjusted_var,
                position_count=len(portfolio.positions),
                portfolio_value=portfolio.total_value,
                class_breakdown=result.class_breakdown(),
                alerts=[a.message for a in result.alerts],
            ),
        )
        raise_if_cancelled(cancel, portfolio_id)
        self._persist(metric)
        return metric

    def check_position_limits(
        self, portfolio_id: str, max_limit_percent: float = 25.0
    ) -> PositionLimitResult:
        portfolio = self.load_portfolio(portfolio_id)
        checker = PositionLimitChecker(max_limit_percent)
        violations = checker.check(portfolio.positions, portfolio.total_value)
        result = PositionLimitResult(
            portfolio_id=portfolio_id,
            max_limit_percent=max_limit_percent,
            violations=violations,
            total_positions=len(portfolio.positions),
        )
        if violations:
            logger.info(
                "position_limit_violations",
                portfolio_id=portfolio_id,
                count=len(violations),
            )
        return result

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_risk_metrics(self, portfolio_id: str, limit: int = 100) -> list[RiskMetric]:
        return self.metrics.list_metrics(portfolio_id, limit)

    def get_risk_history(
        self,
        portfolio_id: str,
        metric_type: MetricType | None = None,
        limit: int = 100,
    ) -> list[RiskHistory]:
        return self.metrics.list_history(portfolio_id, metric_type, limit)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load_with_positions(self, portfolio_id: str) -> Portfolio:
        portfolio = self.load_portfolio(portfolio_id)
        if not portfolio.positions:
            raise InvalidInputError(f"portfolio {portfolio_id} has no positions")
        return portfolio

    def _persist(self, metric: RiskMetric) -> None:
        self.metrics.add_metric(metric)
        try:
            self.metrics.add_history(RiskHistory(
                portfolio_id=metric.portfolio_id,
                metric_type=metric.metric_type,
                value=metric.value,
                recorded_at=metric.calculated_at,
            ))
        except Exception as exc:
            logger.warning(
                "risk_history_write_failed",
                portfolio_id=metric.portfolio_id,
                metric_type=metric.metric_type.value,
                error=str(exc),
            )
        logger.info(
            "risk_metric_recorded",
            portfolio_id=metric.portfolio_id,
            metric_type=metric.metric_type.value,
            value=round(metric.value, 4),
            status=metric.status.value,
        )
