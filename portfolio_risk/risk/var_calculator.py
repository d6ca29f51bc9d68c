"""Value-at-Risk (VaR), Expected Shortfall and Max Drawdown engine.

Provides three VaR methodologies, blended into the figure every consumer
reads:
- Historical: empirical percentile of the portfolio return series
- Parametric: Gaussian closed form, VaR = -(mu - z * sigma)
- Monte Carlo: independent per-asset normal draws weighted by market value

Expected Shortfall averages the historical tail at or below the VaR index.
Max Drawdown is taken from the compounded historical return path.

All functions are pure computation -- no I/O or database access.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np
import structlog

from portfolio_risk.core.domain import Position
from portfolio_risk.core.exceptions import InsufficientDataError, InvalidInputError
from portfolio_risk.risk import statistics as st

logger = structlog.get_logger(__name__)

CONFIDENCE_LEVELS = (0.95, 0.99)
Z_SCORES = {0.95: 1.645, 0.99: 2.326}

METHOD_HISTORICAL = "historical"
METHOD_PARAMETRIC = "parametric"
METHOD_MONTE_CARLO = "monte_carlo"


@dataclass(frozen=True)
class MethodVaR:
    """VaR of a single method, in currency, at both confidence levels."""

    var_95: float
    var_99: float


@dataclass
class VaRResult:
    """Blended VaR plus tail and drawdown diagnostics.

    Attributes:
        var_95: Mean of the three methods' 95% VaR (currency, >= 0).
        var_99: Mean of the three methods' 99% VaR (currency, >= 0).
        expected_shortfall_95: Historical tail average at 95% (currency, >= 0).
        expected_shortfall_99: Historical tail average at 99% (currency, >= 0).
        max_drawdown: Largest peak-to-trough loss of the historical path (currency).
        methods: Per-method figures keyed by method name.
        portfolio_value: Sum of position market values used for scaling.
        time_horizon_days: Horizon the VaR figures are scaled to.
        n_observations: Number of portfolio returns used.
    """

    var_95: float
    var_99: float
    expected_shortfall_95: float
    expected_shortfall_99: float
    max_drawdown: float
    methods: dict[str, MethodVaR]
    portfolio_value: float
    time_horizon_days: int
    n_observations: int
    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "var_95": self.var_95,
            "var_99": self.var_99,
            "expected_shortfall_95": self.expected_shortfall_95,
            "expected_shortfall_99": self.expected_shortfall_99,
            "max_drawdown": self.max_drawdown,
            "methods": {
                name: {"var_95": m.var_95, "var_99": m.var_99}
                for name, m in self.methods.items()
            },
            "portfolio_value": self.portfolio_value,
            "time_horizon_days": self.time_horizon_days,
            "n_observations": self.n_observations,
            "calculated_at": self.calculated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Pure computation functions
# ---------------------------------------------------------------------------


def align_price_history(
    symbols: Sequence[str], price_history: Mapping[str, Sequence[float]]
) -> dict[str, np.ndarray]:
    """Truncate each symbol's prices to the shortest common length.

    The most recent points are kept. Symbols absent from *price_history*
    are skipped.
    """
    series = {
        s: np.asarray(price_history[s], dtype=float)
        for s in symbols
        if s in price_history
    }
    if not series:
        return {}
    common = min(len(p) for p in series.values())
    if common == 0:
        return {s: np.empty(0, dtype=float) for s in series}
    return {s: p[-common:] for s, p in series.items()}


def historical_var(returns: np.ndarray, confidence: float) -> float:
    """Loss fraction at the empirical percentile; 0.0 for an empty series."""
    if len(returns) == 0:
        return 0.0
    tail_return = st.percentile_loss(np.sort(returns), confidence)
    return max(0.0, -tail_return)


def parametric_var(returns: np.ndarray, confidence: float) -> float:
    """Gaussian loss fraction ``-(mu - z * sigma)``, floored at 0."""
    if len(returns) == 0:
        return 0.0
    mu = st.mean(returns)
    sigma = st.std_dev(returns, mu)
    return max(0.0, -(mu - Z_SCORES[confidence] * sigma))


def simulate_portfolio_returns(
    asset_returns: Mapping[str, np.ndarray],
    weights: Mapping[str, float],
    n_simulations: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw *n_simulations* portfolio returns from per-asset normal marginals.

    Each asset's mean and sample standard deviation come from its own return
    series; draws are independent across assets.
    """
    simulated = np.zeros(n_simulations, dtype=float)
    for symbol, series in asset_returns.items():
        weight = weights.get(symbol, 0.0)
        if weight == 0.0 or len(series) == 0:
            continue
        mu = st.mean(series)
        sigma = st.std_dev(series, mu)
        simulated += weight * st.normal_samples(mu, sigma, n_simulations, rng)
    return simulated


def expected_shortfall(returns: np.ndarray, confidence: float) -> float:
    """Mean loss fraction of the tail at or below the VaR index, floored at 0."""
    n = len(returns)
    if n == 0:
        return 0.0
    ordered = np.sort(returns)
    idx = st.percentile_index(n, confidence)
    return max(0.0, -float(ordered[: idx + 1].mean()))


# ---------------------------------------------------------------------------
# VaRCalculator class
# ---------------------------------------------------------------------------


class VaRCalculator:
    """Three-method VaR calculator for a set of positions.

    Args:
        mc_simulations: Number of Monte Carlo draws per evaluation.
        seed: Optional seed; each call builds a fresh generator from it so
            one calculator can be shared across worker threads.
    """

    def __init__(self, mc_simulations: int = 10_000, seed: int | None = None) -> None:
        if mc_simulations <= 0:
            raise InvalidInputError("mc_simulations must be positive")
        self.mc_simulations = mc_simulations
        self.seed = seed

    def calculate(
        self,
        positions: Sequence[Position],
        price_history: Mapping[str, Sequence[float]],
        time_horizon_days: int = 1,
    ) -> VaRResult:
        """Compute blended VaR, Expected Shortfall and Max Drawdown.

        Args:
            positions: Current positions; weights are market-value shares.
            price_history: symbol -> prices, oldest first.
            time_horizon_days: Horizon in days; figures scale by its square root.

        Returns:
            VaRResult with blended and per-method figures.

        Raises:
            InsufficientDataError: No positions, or fewer than 2 aligned
                price points across the held symbols.
        """
        if not positions:
            raise InsufficientDataError("no positions to evaluate")
        if time_horizon_days < 1:
            raise InvalidInputError("time_horizon_days must be at least 1")

        values: dict[str, float] = {}
        for p in positions:
            values[p.symbol] = values.get(p.symbol, 0.0) + p.market_value
        portfolio_value = sum(values.values())

        aligned = align_price_history(list(values), price_history)
        n_points = min((len(s) for s in aligned.values()), default=0)
        if n_points < 2:
            raise InsufficientDataError(
                f"need at least 2 aligned price points, have {n_points}"
            )

        missing = sorted(set(values) - set(aligned))
        if missing:
            logger.warning("var_missing_price_history", symbols=missing)

        weights = {
            s: (v / portfolio_value if portfolio_value > 0 else 0.0)
            for s, v in values.items()
        }
        asset_returns = {s: st.returns_from_prices(p) for s, p in aligned.items()}
        portfolio_returns = np.zeros(n_points - 1, dtype=float)
        for symbol, series in asset_returns.items():
            portfolio_returns += weights[symbol] * series

        rng = np.random.default_rng(self.seed)
        simulated = simulate_portfolio_returns(
            asset_returns, weights, self.mc_simulations, rng
        )

        scale = portfolio_value * math.sqrt(time_horizon_days)
        methods = {
            METHOD_HISTORICAL: MethodVaR(
                var_95=historical_var(portfolio_returns, 0.95) * scale,
                var_99=historical_var(portfolio_returns, 0.99) * scale,
            ),
            METHOD_PARAMETRIC: MethodVaR(
                var_95=parametric_var(portfolio_returns, 0.95) * scale,
                var_99=parametric_var(portfolio_returns, 0.99) * scale,
            ),
            METHOD_MONTE_CARLO: MethodVaR(
                var_95=historical_var(simulated, 0.95) * scale,
                var_99=historical_var(simulated, 0.99) * scale,
            ),
        }

        result = VaRResult(
            var_95=float(np.mean([m.var_95 for m in methods.values()])),
            var_99=float(np.mean([m.var_99 for m in methods.values()])),
            expected_shortfall_95=expected_shortfall(portfolio_returns, 0.95) * scale,
            expected_shortfall_99=expected_shortfall(portfolio_returns, 0.99) * scale,
            max_drawdown=st.max_drawdown(portfolio_returns) * portfolio_value,
            methods=methods,
            portfolio_value=portfolio_value,
            time_horizon_days=time_horizon_days,
            n_observations=len(portfolio_returns),
        )

        logger.info(
            "var_calculated",
            var_95=round(result.var_95, 2),
            var_99=round(result.var_99, 2),
            n_observations=result.n_observations,
            positions=len(values),
        )
        return result
