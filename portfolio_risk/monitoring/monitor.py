"""Periodic risk monitor.

Every pass evaluates all portfolios concurrently (bounded by a semaphore).
Each evaluation runs in a worker thread with its own timeout, so one slow or
failing portfolio never blocks or aborts the others. A pass:

1. VaR metric, alert when WARNING/CRITICAL
2. Liquidity metric, alert when MEDIUM/HIGH risk
3. Position limits, alert on any breach
4. AML screen of recent large transactions, velocity check
5. ``risk_update`` event with the latest metrics

A timed-out or cancelled evaluation keeps its worker thread until the current
step returns, so every write, alert and publish checks a per-portfolio
``threading.Event`` first and the abandoned evaluation stops emitting.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from portfolio_risk.compliance.aml import FLAG_LARGE_TRANSACTION, KycAmlChecker
from portfolio_risk.core.domain import Alert, RiskMetric
from portfolio_risk.core.enums import EventType, MetricStatus
from portfolio_risk.core.exceptions import InsufficientDataError, InvalidInputError
from portfolio_risk.core.interfaces import EventPublisher, PortfolioStore, TransactionStore
from portfolio_risk.monitoring.alert_engine import AlertEngine
from portfolio_risk.risk.risk_service import RiskService, raise_if_cancelled

logger = structlog.get_logger(__name__)


@dataclass
class MonitorPassReport:
    """Summary of one monitoring pass.

    Attributes:
        evaluated: Portfolio ids evaluated without error.
        failed: Portfolio id -> error message for failed or timed-out evaluations.
        started_at: Pass start (UTC).
        finished_at: Pass end (UTC).
    """

    evaluated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None


class RiskMonitorLoop:
    """Runs monitoring passes on a fixed interval until stopped."""

    def __init__(
        self,
        portfolios: PortfolioStore,
        risk_service: RiskService,
        alert_engine: AlertEngine,
        publisher: EventPublisher,
        aml_checker: KycAmlChecker,
        transactions: TransactionStore,
        interval_seconds: float = 30.0,
        max_concurrency: int = 4,
        portfolio_timeout_seconds: float = 20.0,
        position_limit_percent: float = 25.0,
    ) -> None:
        self.portfolios = portfolios
        self.risk_service = risk_service
        self.alert_engine = alert_engine
        self.publisher = publisher
        self.aml_checker = aml_checker
        self.transactions = transactions
        self.interval_seconds = interval_seconds
        self.max_concurrency = max_concurrency
        self.portfolio_timeout_seconds = portfolio_timeout_seconds
        self.position_limit_percent = position_limit_percent
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal the loop to exit and wait for the current pass to finish.

        The task is cancelled when it has not exited within *timeout* seconds.
        """
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("risk_monitor_stop_timeout", timeout_seconds=timeout)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def run_forever(self) -> None:
        logger.info("risk_monitor_started", interval_seconds=self.interval_seconds)
        while not self._stop.is_set():
            try:
                await self.run_pass()
            except Exception as exc:
                logger.error("monitor_pass_failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("risk_monitor_stopped")

    async def run_pass(self) -> MonitorPassReport:
        """Evaluate every portfolio once."""
        report = MonitorPassReport()
        portfolio_ids = await asyncio.to_thread(self.portfolios.list_portfolio_ids)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _guarded(portfolio_id: str) -> None:
            async with semaphore:
                cancel = threading.Event()
                try:
                    await asyncio.wait_for(
                        asyncio.to_thread(self.evaluate_portfolio, portfolio_id, cancel),
                        timeout=self.portfolio_timeout_seconds,
                    )
                    report.evaluated.append(portfolio_id)
                except asyncio.TimeoutError:
                    cancel.set()
                    report.failed[portfolio_id] = "timeout"
                    logger.error(
                        "monitor_portfolio_failed",
                        portfolio_id=portfolio_id,
                        error="timeout",
                        timeout_seconds=self.portfolio_timeout_seconds,
                    )
                except asyncio.CancelledError:
                    cancel.set()
                    raise
                except Exception as exc:
                    report.failed[portfolio_id] = str(exc)
                    logger.error(
                        "monitor_portfolio_failed", portfolio_id=portfolio_id, error=str(exc)
                    )

        await asyncio.gather(*(_guarded(pid) for pid in portfolio_ids))
        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "monitor_pass_complete",
            evaluated=len(report.evaluated),
            failed=len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Per-portfolio evaluation (runs in a worker thread)
    # ------------------------------------------------------------------

    def evaluate_portfolio(
        self, portfolio_id: str, cancel: threading.Event | None = None
    ) -> dict[str, Any]:
        """Run every periodic check for one portfolio and publish the update.

        Raises:
            EvaluationCancelledError: *cancel* was set; nothing further is
                written, alerted or published for this pass.
        """
        var_metric = self._var_metric(portfolio_id, cancel)
        if var_metric is not None and var_metric.status != MetricStatus.SAFE:
            raise_if_cancelled(cancel, portfolio_id)
            self.alert_engine.raise_var_status_alert(var_metric)

        liquidity_metric = self._liquidity_metric(portfolio_id, cancel)
        if liquidity_metric is not None and liquidity_metric.status != MetricStatus.SAFE:
            raise_if_cancelled(cancel, portfolio_id)
            self.alert_engine.raise_liquidity_alert(liquidity_metric)

        limits = self.risk_service.check_position_limits(
            portfolio_id, self.position_limit_percent
        )
        if limits.violations:
            raise_if_cancelled(cancel, portfolio_id)
            self.alert_engine.raise_position_limit_alert(limits)

        self._screen_transactions(portfolio_id, cancel)

        update = {
            "portfolio_id": portfolio_id,
            "var": float(var_metric.value) if var_metric else None,
            "liquidity": float(liquidity_metric.value) if liquidity_metric else None,
            "timestamp": int(datetime.now(timezone.utc).timestamp()),
        }
        raise_if_cancelled(cancel, portfolio_id)
        try:
            self.publisher.publish(EventType.RISK_UPDATE, update)
        except Exception as exc:
            logger.warning("risk_update_publish_failed", portfolio_id=portfolio_id, error=str(exc))
        return update

    def _var_metric(
        self, portfolio_id: str, cancel: threading.Event | None
    ) -> RiskMetric | None:
        try:
            return self.risk_service.calculate_portfolio_var(portfolio_id, cancel=cancel)
        except (InsufficientDataError, InvalidInputError) as exc:
            logger.info("monitor_var_skipped", portfolio_id=portfolio_id, reason=str(exc))
            return None

    def _liquidity_metric(
        self, portfolio_id: str, cancel: threading.Event | None
    ) -> RiskMetric | None:
        try:
            return self.risk_service.calculate_portfolio_liquidity(portfolio_id, cancel=cancel)
        except InvalidInputError as exc:
            logger.info("monitor_liquidity_skipped", portfolio_id=portfolio_id, reason=str(exc))
            return None

    def _screen_transactions(self, portfolio_id: str, cancel: threading.Event | None) -> None:
        config = self.aml_checker.config
        now = self.alert_engine.now()
        recent = self.transactions.list_recent(portfolio_id, now - timedelta(hours=24))

        for tx in recent:
            if tx.aml_checked or not self.aml_checker.is_large_transaction(tx):
                continue
            raise_if_cancelled(cancel, portfolio_id)
            outcome = self.alert_engine.raise_large_transaction_alert(
                tx, config.suspicious_amount_threshold, [FLAG_LARGE_TRANSACTION]
            )
            if isinstance(outcome, Alert):
                self.transactions.mark_aml_checked(tx.id)

        count = self.aml_checker.count_recent(recent, now)
        if count > config.velocity_count_threshold:
            raise_if_cancelled(cancel, portfolio_id)
            self.alert_engine.raise_velocity_alert(
                portfolio_id,
                count,
                config.velocity_count_threshold,
                config.velocity_window.total_seconds() / 3600,
            )
