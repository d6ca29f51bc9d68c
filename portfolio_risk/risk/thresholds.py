"""Lazy per-portfolio threshold resolution."""

from __future__ import annotations

import structlog

from portfolio_risk.core.domain import RiskThresholds
from portfolio_risk.core.interfaces import ThresholdStore

logger = structlog.get_logger(__name__)


class ThresholdProvider:
    """Returns stored thresholds, persisting defaults on first use."""

    def __init__(self, store: ThresholdStore) -> None:
        self.store = store

    def get_or_create(self, portfolio_id: str) -> RiskThresholds:
        thresholds = self.store.get_thresholds(portfolio_id)
        if thresholds is not None:
            return thresholds

        thresholds = RiskThresholds.default_for(portfolio_id)
        self.store.save_thresholds(thresholds)
        logger.info("risk_thresholds_created", portfolio_id=portfolio_id)
        return thresholds
