"""Risk computation package -- VaR, liquidity, thresholds and pre-trade checks."""

from portfolio_risk.risk.liquidity_calculator import (
    LiquidityAlert,
    LiquidityCalculator,
    LiquidityResult,
    PositionLiquidity,
    assess_liquidity_risk,
)
from portfolio_risk.risk.market_data import (
    StaticMarketDataProvider,
    StaticPriceHistoryProvider,
    SymbolMarketData,
    depth_from_snapshot,
    providers_from_snapshot,
)
from portfolio_risk.risk.risk_service import RiskService
from portfolio_risk.risk.thresholds import ThresholdProvider
from portfolio_risk.risk.trade_evaluator import RiskThresholdEvaluator
from portfolio_risk.risk.var_calculator import MethodVaR, VaRCalculator, VaRResult

__all__ = [
    "LiquidityAlert",
    "LiquidityCalculator",
    "LiquidityResult",
    "MethodVaR",
    "PositionLiquidity",
    "RiskService",
    "RiskThresholdEvaluator",
    "StaticMarketDataProvider",
    "StaticPriceHistoryProvider",
    "SymbolMarketData",
    "ThresholdProvider",
    "VaRCalculator",
    "VaRResult",
    "assess_liquidity_risk",
    "depth_from_snapshot",
    "providers_from_snapshot",
]
