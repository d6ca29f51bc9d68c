"""In-process market-data and price-history providers.

``StaticMarketDataProvider`` serves per-symbol liquidity inputs from a
mapping of ``SymbolMarketData`` snapshots; unknown symbols fall back to a
configurable default. ``StaticPriceHistoryProvider`` serves price series
from a mapping. Both satisfy the collaborator protocols in
``portfolio_risk.core.interfaces`` and are used by tests and the runner.
``providers_from_snapshot`` builds both from a decoded JSON snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from portfolio_risk.core.domain import MarketDepth, PriceLevel
from portfolio_risk.core.exceptions import InvalidInputError


@dataclass(frozen=True)
class SymbolMarketData:
    """Liquidity inputs for one symbol.

    Attributes:
        average_daily_volume: Average units traded per day.
        bid_ask_spread: Relative spread (0.001 = 10 bps).
        market_cap: Market capitalization in currency.
        depth: Order book snapshot, or None when unavailable.
    """

    average_daily_volume: float = 0.0
    bid_ask_spread: float = 0.0
    market_cap: float = 0.0
    depth: MarketDepth | None = None


class StaticMarketDataProvider:
    """Market data served from an in-memory mapping."""

    def __init__(
        self,
        data: Mapping[str, SymbolMarketData] | None = None,
        default: SymbolMarketData | None = None,
    ) -> None:
        self._data = dict(data or {})
        self._default = default or SymbolMarketData()

    def set(self, symbol: str, snapshot: SymbolMarketData) -> None:
        self._data[symbol] = snapshot

    def _get(self, symbol: str) -> SymbolMarketData:
        return self._data.get(symbol, self._default)

    def average_daily_volume(self, symbol: str) -> float:
        return self._get(symbol).average_daily_volume

    def bid_ask_spread(self, symbol: str) -> float:
        return self._get(symbol).bid_ask_spread

    def market_depth(self, symbol: str) -> MarketDepth | None:
        return self._get(symbol).depth

    def market_cap(self, symbol: str) -> float:
        return self._get(symbol).market_cap


class StaticPriceHistoryProvider:
    """Price history served from an in-memory mapping (oldest first)."""

    def __init__(self, history: Mapping[str, Sequence[float]] | None = None) -> None:
        self._history = {s: list(p) for s, p in (history or {}).items()}

    def set(self, symbol: str, prices: Sequence[float]) -> None:
        self._history[symbol] = list(prices)

    def get_price_history(self, symbols: list[str]) -> dict[str, list[float]]:
        return {s: list(self._history[s]) for s in symbols if s in self._history}


def _levels(symbol: str, side: str, rows: Sequence[Sequence[float]]) -> tuple[PriceLevel, ...]:
    levels = []
    for row in rows:
        if len(row) not in (2, 3):
            raise InvalidInputError(
                f"{symbol} depth {side}: expected [price, quantity(, orders)], got {row!r}"
            )
        orders = int(row[2]) if len(row) == 3 else 1
        levels.append(PriceLevel(price=float(row[0]), quantity=float(row[1]), orders=orders))
    return tuple(levels)


def depth_from_snapshot(symbol: str, raw: Mapping[str, Any] | None) -> MarketDepth | None:
    """Parse ``{"bids": [[price, qty], ...], "asks": [...]}`` (best level first)."""
    if not raw:
        return None
    return MarketDepth(
        symbol=symbol,
        bids=_levels(symbol, "bids", raw.get("bids", [])),
        asks=_levels(symbol, "asks", raw.get("asks", [])),
    )


def providers_from_snapshot(
    raw: Mapping[str, Any],
) -> tuple[StaticPriceHistoryProvider, StaticMarketDataProvider]:
    """Build price-history and market-data providers from a decoded snapshot.

    Args:
        raw: ``{"prices": {symbol: [price, ...]}, "market_data": {symbol:
            {"average_daily_volume", "bid_ask_spread", "market_cap", "depth"}}}``.
            Every market-data key is optional; ``depth`` holds ``bids`` and
            ``asks`` as ``[price, quantity]`` rows, optionally with an order
            count as a third element.

    Raises:
        InvalidInputError: A depth row is malformed.
    """
    prices = StaticPriceHistoryProvider(raw.get("prices", {}))
    market = StaticMarketDataProvider({
        symbol: SymbolMarketData(
            average_daily_volume=float(data.get("average_daily_volume", 0.0)),
            bid_ask_spread=float(data.get("bid_ask_spread", 0.0)),
            market_cap=float(data.get("market_cap", 0.0)),
            depth=depth_from_snapshot(symbol, data.get("depth")),
        )
        for symbol, data in raw.get("market_data", {}).items()
    })
    return prices, market
