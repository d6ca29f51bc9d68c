#!/usr/bin/env python3
"""Risk monitor CLI entry point.

Wires the PostgreSQL stores, the Redis publisher and alert cache, and the
periodic monitor loop from ``Settings``. Market data and price history are
read from a JSON snapshot file::

    {
      "prices": {"AAPL": [150.0, 151.2, ...]},
      "market_data": {"AAPL": {"average_daily_volume": 5e7,
                               "bid_ask_spread": 0.0005,
                               "market_cap": 2.5e12,
                               "depth": {"bids": [[149.9, 1200], [149.8, 800]],
                                         "asks": [[150.1, 900], [150.2, 1500]]}}}
    }

Every ``market_data`` key is optional. ``depth`` rows are ``[price, quantity]``
(an optional third element is the order count), best level first; symbols
without depth take the full order-book penalty in liquidity scoring.

Usage::

    python scripts/run_monitor.py --snapshot market.json            # run forever
    python scripts/run_monitor.py --snapshot market.json --once     # single pass
    python scripts/run_monitor.py --snapshot market.json --interval 60
    python scripts/run_monitor.py --cleanup                         # purge old alerts
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import timedelta
from pathlib import Path

# Ensure project root is on sys.path so ``portfolio_risk.*`` imports work when
# this script is invoked directly (e.g. ``python scripts/run_monitor.py``).
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from portfolio_risk.compliance.aml import AmlConfig, KycAmlChecker
from portfolio_risk.core.config import settings
from portfolio_risk.core.database import create_session_factory, create_sync_engine
from portfolio_risk.core.redis import close_redis, create_redis
from portfolio_risk.core.utils.logging_config import configure_logging, get_logger
from portfolio_risk.monitoring import (
    AlertDedupWindows,
    AlertEngine,
    RedisAlertCache,
    RedisEventPublisher,
    RiskMonitorLoop,
)
from portfolio_risk.risk import (
    LiquidityCalculator,
    RiskService,
    StaticMarketDataProvider,
    StaticPriceHistoryProvider,
    ThresholdProvider,
    VaRCalculator,
    providers_from_snapshot,
)
from portfolio_risk.stores import (
    SqlAlertStore,
    SqlMetricStore,
    SqlPortfolioStore,
    SqlThresholdStore,
    SqlTransactionStore,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).
    """
    parser = argparse.ArgumentParser(
        description="Run the portfolio risk monitor.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python scripts/run_monitor.py --snapshot market.json\n"
            "  python scripts/run_monitor.py --snapshot market.json --once\n"
            "  python scripts/run_monitor.py --cleanup\n"
        ),
    )
    parser.add_argument(
        "--snapshot",
        type=Path,
        default=None,
        help="JSON file with price history and market data",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single monitoring pass and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.monitor_interval_seconds,
        help="Seconds between passes (default: %(default)s)",
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        default=False,
        help=f"Delete closed alerts older than {settings.alert_cleanup_days} days and exit",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit JSON log lines",
    )
    return parser.parse_args(argv)


def load_snapshot(
    path: Path | None,
) -> tuple[StaticPriceHistoryProvider, StaticMarketDataProvider]:
    """Build the price-history and market-data providers from *path*."""
    if path is None:
        return StaticPriceHistoryProvider(), StaticMarketDataProvider()
    return providers_from_snapshot(json.loads(path.read_text()))


async def _run(loop: RiskMonitorLoop, once: bool) -> int:
    if once:
        report = await loop.run_pass()
        return 0 if not report.failed else 1

    task = loop.start()
    running = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            running.add_signal_handler(sig, lambda: asyncio.ensure_future(loop.stop()))
        except NotImplementedError:
            pass
    await task
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the risk monitor CLI.

    Returns:
        Exit code: 0 on success, 1 when any portfolio failed or on error.
    """
    args = parse_args(argv)
    configure_logging(json_output=args.json_logs)
    logger = get_logger("run_monitor")

    engine = create_sync_engine(settings)
    sessions = create_session_factory(engine)
    redis_client = create_redis(settings)

    try:
        publisher = RedisEventPublisher(redis_client)
        alert_engine = AlertEngine(
            SqlAlertStore(sessions),
            publisher=publisher,
            cache=RedisAlertCache(redis_client, ttl=settings.alert_cache_ttl_seconds),
            windows=AlertDedupWindows.from_settings(settings),
        )

        if args.cleanup:
            alert_engine.cleanup_old_alerts(settings.alert_cleanup_days)
            return 0

        prices, market = load_snapshot(args.snapshot)
        portfolios = SqlPortfolioStore(sessions)
        risk_service = RiskService(
            portfolios=portfolios,
            thresholds=ThresholdProvider(SqlThresholdStore(sessions)),
            metrics=SqlMetricStore(sessions),
            prices=prices,
            var_calculator=VaRCalculator(mc_simulations=settings.mc_simulations),
            liquidity_calculator=LiquidityCalculator(market),
            time_horizon_days=settings.var_time_horizon_days,
        )
        aml = KycAmlChecker(AmlConfig(
            suspicious_amount_threshold=settings.aml_large_transaction_threshold,
            velocity_window=timedelta(hours=24),
            velocity_count_threshold=settings.aml_velocity_threshold,
        ))
        loop = RiskMonitorLoop(
            portfolios=portfolios,
            risk_service=risk_service,
            alert_engine=alert_engine,
            publisher=publisher,
            aml_checker=aml,
            transactions=SqlTransactionStore(sessions),
            interval_seconds=args.interval,
            max_concurrency=settings.monitor_max_concurrency,
            portfolio_timeout_seconds=settings.portfolio_eval_timeout_seconds,
            position_limit_percent=settings.position_limit_percent,
        )
        return asyncio.run(_run(loop, args.once))
    except Exception as exc:
        logger.error("risk_monitor_failed", error=str(exc))
        return 1
    finally:
        close_redis(redis_client)
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
