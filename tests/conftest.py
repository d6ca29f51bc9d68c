"""Root pytest configuration and shared fixtures.

Provides builders and wired-up collaborators used across the test modules:
- make_position / make_portfolio: domain snapshot builders
- price_path: deterministic geometric price series
- FakeClock: settable UTC clock for deduplication windows
- stores, market data and a RiskService wired to in-memory stores
- alert_engine: AlertEngine with an in-memory store, publisher and clock
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import numpy as np
import pytest

from portfolio_risk.core.domain import Alert, Portfolio, Position
from portfolio_risk.core.enums import AlertSeverity, AlertType, AssetType
from portfolio_risk.monitoring.alert_engine import AlertEngine
from portfolio_risk.monitoring.publisher import InMemoryEventPublisher
from portfolio_risk.risk.liquidity_calculator import LiquidityCalculator
from portfolio_risk.risk.market_data import (
    StaticMarketDataProvider,
    StaticPriceHistoryProvider,
    SymbolMarketData,
)
from portfolio_risk.risk.risk_service import RiskService
from portfolio_risk.risk.thresholds import ThresholdProvider
from portfolio_risk.risk.var_calculator import VaRCalculator
from portfolio_risk.stores.memory import (
    InMemoryAlertStore,
    InMemoryMetricStore,
    InMemoryPortfolioStore,
    InMemoryThresholdStore,
    InMemoryTransactionStore,
)

T0 = datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)

# Deep, tight market without depth data: positions classify LIQUID (ratio 0.75)
LIQUID_MARKET = SymbolMarketData(
    average_daily_volume=50_000_000.0,
    bid_ask_spread=0.0005,
    market_cap=2.5e12,
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_position(
    symbol: str = "AAPL",
    quantity: float = 100.0,
    price: float = 100.0,
    average_price: float | None = None,
    asset_type: AssetType = AssetType.STOCK,
    portfolio_id: str = "pf-1",
) -> Position:
    return Position(
        symbol=symbol,
        quantity=quantity,
        average_price=average_price if average_price is not None else price,
        current_price=price,
        asset_type=asset_type,
        portfolio_id=portfolio_id,
    )


def make_portfolio(
    positions: list[Position],
    portfolio_id: str = "pf-1",
    total_value: float | None = None,
) -> Portfolio:
    if total_value is None:
        return Portfolio.from_positions(portfolio_id, positions)
    return Portfolio(id=portfolio_id, total_value=total_value, positions=tuple(positions))


def price_path(start: float = 100.0, n: int = 60, vol: float = 0.01, seed: int = 7) -> list[float]:
    """Deterministic geometric random walk, oldest first."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(0.0, vol, size=n - 1)
    prices = [start]
    for r in returns:
        prices.append(prices[-1] * (1.0 + r))
    return prices


def make_alert(**overrides: Any) -> Alert:
    fields: dict[str, Any] = {
        "portfolio_id": "pf-1",
        "alert_type": AlertType.RISK_BREACH,
        "severity": AlertSeverity.MEDIUM,
        "title": "Test alert",
        "description": "test",
        "source": "TEST",
        "created_at": T0,
        "updated_at": T0,
    }
    fields.update(overrides)
    return Alert(**fields)


@dataclass
class FakeClock:
    """Callable clock that only moves when told to."""

    now: datetime = field(default=T0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def portfolio_store() -> InMemoryPortfolioStore:
    return InMemoryPortfolioStore()


@pytest.fixture
def threshold_store() -> InMemoryThresholdStore:
    return InMemoryThresholdStore()


@pytest.fixture
def metric_store() -> InMemoryMetricStore:
    return InMemoryMetricStore()


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def market_data() -> StaticMarketDataProvider:
    return StaticMarketDataProvider(default=LIQUID_MARKET)


@pytest.fixture
def price_history() -> StaticPriceHistoryProvider:
    return StaticPriceHistoryProvider({
        "AAPL": price_path(150.0, seed=1),
        "MSFT": price_path(300.0, seed=2),
        "BOND": price_path(100.0, vol=0.002, seed=3),
    })


@pytest.fixture
def threshold_provider(threshold_store: InMemoryThresholdStore) -> ThresholdProvider:
    return ThresholdProvider(threshold_store)


@pytest.fixture
def risk_service(
    portfolio_store: InMemoryPortfolioStore,
    threshold_provider: ThresholdProvider,
    metric_store: InMemoryMetricStore,
    price_history: StaticPriceHistoryProvider,
    market_data: StaticMarketDataProvider,
) -> RiskService:
    return RiskService(
        portfolios=portfolio_store,
        thresholds=threshold_provider,
        metrics=metric_store,
        prices=price_history,
        var_calculator=VaRCalculator(mc_simulations=2_000, seed=42),
        liquidity_calculator=LiquidityCalculator(market_data),
    )


@pytest.fixture
def alert_engine(
    alert_store: InMemoryAlertStore,
    publisher: InMemoryEventPublisher,
    clock: FakeClock,
) -> AlertEngine:
    return AlertEngine(alert_store, publisher=publisher, clock=clock)
