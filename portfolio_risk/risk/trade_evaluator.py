"""Pre-trade risk evaluation.

Runs five ordered checks against a proposed transaction and the current
portfolio snapshot:

1. Position size   -- trade value / portfolio value vs max_position_size
2. VaR impact      -- current blended VaR95 grown by a fixed 2% vs the VaR limit
3. Concentration   -- post-trade Herfindahl index vs max_concentration
4. Liquidity       -- current liquidity ratio less a fixed 5% vs min_liquidity_ratio
5. Stop loss       -- required stop missing

The violations feed a 0-100 risk score and an approve / review / reject
decision. Rejected trades with violations raise RISK_VIOLATION alerts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from portfolio_risk.core.domain import (
    Portfolio,
    RiskThresholds,
    RiskViolation,
    TradeRiskAnalysis,
    Transaction,
)
from portfolio_risk.core.enums import TransactionType, ViolationSeverity, ViolationType
from portfolio_risk.core.exceptions import InsufficientDataError, InvalidInputError
from portfolio_risk.core.interfaces import TransactionStore
from portfolio_risk.risk.risk_service import RiskService
from portfolio_risk.risk.thresholds import ThresholdProvider

if TYPE_CHECKING:
    from portfolio_risk.monitoring.alert_engine import AlertEngine

logger = structlog.get_logger(__name__)

# Fixed trade-impact estimates used instead of a full re-simulation
VAR_IMPACT_ESTIMATE = 0.02
LIQUIDITY_IMPACT_ESTIMATE = 0.05
STOP_LOSS_PCT = 0.02

MAX_SCORE = 100.0
REVIEW_SCORE = 70.0
APPROVE_SCORE = 30.0
MAX_VIOLATIONS_BEFORE_REVIEW = 2
TARGET_PORTFOLIO_IMPACT = 0.10
HEDGE_CONCENTRATION_IMPACT = 0.3
HEDGE_TEXT = "Consider hedging with inverse ETF or options to reduce concentration risk"


# ---------------------------------------------------------------------------
# Pure scoring and decision helpers
# ---------------------------------------------------------------------------


def herfindahl_index(portfolio: Portfolio) -> float:
    """Sum of squared position weights; 0.0 for a zero-value portfolio."""
    if portfolio.total_value <= 0:
        return 0.0
    return sum(portfolio.weight_of(p) ** 2 for p in portfolio.positions)


def suggested_stop_loss(tx: Transaction) -> float:
    """2% below entry for a BUY, 2% above for anything else."""
    if tx.transaction_type == TransactionType.BUY:
        return tx.price * (1.0 - STOP_LOSS_PCT)
    return tx.price * (1.0 + STOP_LOSS_PCT)


def risk_score(analysis: TradeRiskAnalysis) -> float:
    score = float(sum(v.severity.score_points for v in analysis.violations))
    score += analysis.portfolio_impact * 20
    score += analysis.concentration_impact * 100 * 15
    score += analysis.liquidity_impact * 15
    return min(max(score, 0.0), MAX_SCORE)


def approval_decision(analysis: TradeRiskAnalysis) -> tuple[bool, bool]:
    """Return ``(approved, requires_review)``."""
    if analysis.has_critical:
        return False, False
    n = len(analysis.violations)
    if analysis.risk_score > REVIEW_SCORE or n > MAX_VIOLATIONS_BEFORE_REVIEW:
        return False, True
    if analysis.risk_score < APPROVE_SCORE and n == 0:
        return True, False
    return False, True


def _relative_excess(value: float, limit: float) -> float:
    if limit == 0:
        return 0.0
    return (value - limit) / limit


# ---------------------------------------------------------------------------
# RiskThresholdEvaluator
# ---------------------------------------------------------------------------


class RiskThresholdEvaluator:
    """Synchronous pre-trade checker.

    Args:
        risk_service: Portfolio loader and VaR/liquidity calculations.
        thresholds: Lazy per-portfolio threshold resolver.
        transactions: Optional store the analysis is attached to.
        alert_engine: Optional engine for RISK_VIOLATION alerts.
    """

    def __init__(
        self,
        risk_service: RiskService,
        thresholds: ThresholdProvider,
        transactions: TransactionStore | None = None,
        alert_engine: AlertEngine | None = None,
    ) -> None:
        self.risk_service = risk_service
        self.thresholds = thresholds
        self.transactions = transactions
        self.alert_engine = alert_engine

    def evaluate_transaction(
        self, tx: Transaction, portfolio: Portfolio | None = None
    ) -> TradeRiskAnalysis:
        """Evaluate *tx* against *portfolio* (loaded by id when omitted).

        Raises:
            PortfolioNotFoundError: The transaction's portfolio does not exist.
        """
        if portfolio is None:
            portfolio = self.risk_service.load_portfolio(tx.portfolio_id)
        thresholds = self.thresholds.get_or_create(portfolio.id)

        analysis = TradeRiskAnalysis(
            trade_id=tx.id,
            symbol=tx.symbol,
            side=tx.side,
            quantity=tx.quantity,
            price=tx.price,
            position_risk=tx.trade_value * STOP_LOSS_PCT,
        )

        # 1. Position size
        violation = self._check_position_size(tx, portfolio, thresholds)
        if violation:
            analysis.violations.append(violation)

        # 2. VaR impact
        self._check_var_impact(portfolio, thresholds, analysis)

        # 3. Concentration
        self._check_concentration(tx, portfolio, thresholds, analysis)

        # 4. Liquidity impact
        self._check_liquidity(portfolio, thresholds, analysis)

        # 5. Stop loss
        if thresholds.require_stop_loss and not tx.stop_loss:
            analysis.violations.append(RiskViolation(
                type=ViolationType.STOP_LOSS_REQUIRED,
                severity=ViolationSeverity.WARNING,
                description="Stop loss is required but not set",
                current_value=0.0,
                limit=thresholds.max_stop_loss_distance,
                impact=0.0,
            ))
            analysis.suggested_stop_loss = suggested_stop_loss(tx)

        analysis.risk_score = risk_score(analysis)
        analysis.approved, analysis.requires_review = approval_decision(analysis)

        if analysis.risk_score > REVIEW_SCORE or analysis.violations:
            self._recommend(tx, analysis)

        logger.info(
            "trade_evaluated",
            trade_id=tx.id,
            portfolio_id=portfolio.id,
            risk_score=round(analysis.risk_score, 2),
            approved=analysis.approved,
            requires_review=analysis.requires_review,
            violations=[v.type.value for v in analysis.violations],
        )

        self._attach(tx, analysis)
        if not analysis.approved and analysis.violations:
            self._raise_alerts(tx, analysis)
        return analysis

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @staticmethod
    def _check_position_size(
        tx: Transaction, portfolio: Portfolio, thresholds: RiskThresholds
    ) -> RiskViolation | None:
        if portfolio.total_value <= 0:
            return None
        pct = tx.trade_value / portfolio.total_value
        if pct <= thresholds.max_position_size:
            return None
        return RiskViolation(
            type=ViolationType.POSITION_SIZE,
            severity=ViolationSeverity.VIOLATION,
            description=f"Position size {pct * 100:.2f}% exceeds maximum",
            current_value=pct,
            limit=thresholds.max_position_size,
            impact=_relative_excess(pct, thresholds.max_position_size),
        )

    def _check_var_impact(
        self,
        portfolio: Portfolio,
        thresholds: RiskThresholds,
        analysis: TradeRiskAnalysis,
    ) -> None:
        if not portfolio.positions:
            return
        try:
            current = self.risk_service.compute_var(portfolio, time_horizon_days=1)
        except (InsufficientDataError, InvalidInputError) as exc:
            logger.info("trade_var_check_skipped", portfolio_id=portfolio.id, reason=str(exc))
            return

        analysis.portfolio_impact = VAR_IMPACT_ESTIMATE
        new_var = current.var_95 * (1.0 + VAR_IMPACT_ESTIMATE)
        limit = thresholds.var_limit(portfolio.total_value, 0.95)
        if new_var > limit:
            analysis.violations.append(RiskViolation(
                type=ViolationType.VAR_LIMIT,
                severity=ViolationSeverity.CRITICAL,
                description="Trade would increase VaR beyond limit",
                current_value=new_var,
                limit=limit,
                impact=_relative_excess(new_var, limit),
            ))

    @staticmethod
    def _check_concentration(
        tx: Transaction,
        portfolio: Portfolio,
        thresholds: RiskThresholds,
        analysis: TradeRiskAnalysis,
    ) -> None:
        total = portfolio.total_value
        if total <= 0:
            return
        hhi = herfindahl_index(portfolio)
        trade_value = tx.trade_value
        new_weight = trade_value / (total + trade_value)
        new_hhi = hhi + new_weight ** 2
        analysis.concentration_impact = new_hhi - hhi

        if new_hhi > thresholds.max_concentration:
            analysis.violations.append(RiskViolation(
                type=ViolationType.CONCENTRATION_LIMIT,
                severity=ViolationSeverity.WARNING,
                description="Portfolio concentration exceeds limit",
                current_value=new_hhi,
                limit=thresholds.max_concentration,
                impact=_relative_excess(new_hhi, thresholds.max_concentration),
            ))

    def _check_liquidity(
        self,
        portfolio: Portfolio,
        thresholds: RiskThresholds,
        analysis: TradeRiskAnalysis,
    ) -> None:
        analysis.liquidity_impact = LIQUIDITY_IMPACT_ESTIMATE
        try:
            current = self.risk_service.compute_liquidity(portfolio)
        except Exception as exc:
            logger.warning(
                "trade_liquidity_check_failed", portfolio_id=portfolio.id, error=str(exc)
            )
            return

        new_ratio = current.liquidity_ratio - LIQUIDITY_IMPACT_ESTIMATE
        minimum = thresholds.min_liquidity_ratio
        if new_ratio < minimum:
            analysis.violations.append(RiskViolation(
                type=ViolationType.LIQUIDITY_RATIO,
                severity=ViolationSeverity.WARNING,
                description="Trade reduces liquidity below minimum",
                current_value=new_ratio,
                limit=minimum,
                impact=(minimum - new_ratio) / minimum if minimum else 0.0,
            ))

    # ------------------------------------------------------------------
    # Recommendations and side effects
    # ------------------------------------------------------------------

    @staticmethod
    def _recommend(tx: Transaction, analysis: TradeRiskAnalysis) -> None:
        if analysis.portfolio_impact > TARGET_PORTFOLIO_IMPACT:
            analysis.suggested_size = (
                tx.quantity * TARGET_PORTFOLIO_IMPACT / analysis.portfolio_impact
            )
        if analysis.concentration_impact > HEDGE_CONCENTRATION_IMPACT:
            analysis.hedge_recommendation = HEDGE_TEXT

    def _attach(self, tx: Transaction, analysis: TradeRiskAnalysis) -> None:
        if self.transactions is None:
            return
        try:
            self.transactions.attach_risk_analysis(tx.id, analysis)
        except Exception as exc:
            logger.warning("trade_analysis_attach_failed", trade_id=tx.id, error=str(exc))

    def _raise_alerts(self, tx: Transaction, analysis: TradeRiskAnalysis) -> None:
        if self.alert_engine is None:
            return
        for violation in analysis.violations:
            if violation.severity in (ViolationSeverity.CRITICAL, ViolationSeverity.VIOLATION):
                self.alert_engine.raise_risk_violation(tx, violation)
