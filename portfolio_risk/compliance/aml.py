"""KYC/AML transaction screening.

Scores a transaction against four flags:
- LARGE_TRANSACTION (+30): amount above the suspicious-amount threshold
- HIGH_VELOCITY (+40): more than N transactions inside the velocity window
- POSSIBLE_STRUCTURING (+50): 3+ transactions in 24h between 90% and 100%
  of the threshold
- ROUND_AMOUNT (+10): a whole multiple of 1,000

A score of 50 or more fails the check and flags the transaction for review.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from portfolio_risk.core.domain import Transaction

logger = structlog.get_logger(__name__)

FLAG_LARGE_TRANSACTION = "LARGE_TRANSACTION"
FLAG_HIGH_VELOCITY = "HIGH_VELOCITY"
FLAG_POSSIBLE_STRUCTURING = "POSSIBLE_STRUCTURING"
FLAG_ROUND_AMOUNT = "ROUND_AMOUNT"

REVIEW_SCORE = 50
STRUCTURING_MIN_COUNT = 3
STRUCTURING_FLOOR = 0.9


@dataclass(frozen=True)
class AmlConfig:
    """Screening thresholds.

    Attributes:
        suspicious_amount_threshold: Amount above which a transaction is large.
        velocity_window: Look-back window for the velocity count.
        velocity_count_threshold: Transactions allowed inside the window.
    """

    suspicious_amount_threshold: float = 10_000.0
    velocity_window: timedelta = timedelta(hours=24)
    velocity_count_threshold: int = 10


@dataclass
class AmlCheckResult:
    transaction_id: str
    passed: bool = True
    requires_review: bool = False
    risk_score: int = 0
    flags: list[str] = field(default_factory=list)


class KycAmlChecker:
    """Stateless AML screening of a transaction against its recent history."""

    def __init__(self, config: AmlConfig | None = None) -> None:
        self.config = config or AmlConfig()

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def is_large_transaction(self, tx: Transaction) -> bool:
        return (tx.amount or 0.0) > self.config.suspicious_amount_threshold

    def count_recent(
        self, recent: Sequence[Transaction], now: datetime | None = None
    ) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - self.config.velocity_window
        return sum(1 for tx in recent if tx.created_at > cutoff)

    def detect_high_velocity(
        self, recent: Sequence[Transaction], now: datetime | None = None
    ) -> bool:
        return self.count_recent(recent, now) > self.config.velocity_count_threshold

    def detect_structuring(
        self, recent: Sequence[Transaction], now: datetime | None = None
    ) -> bool:
        threshold = self.config.suspicious_amount_threshold
        floor = threshold * STRUCTURING_FLOOR
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=24)
        near_threshold = [
            tx for tx in recent
            if tx.created_at > cutoff and floor < (tx.amount or 0.0) < threshold
        ]
        return len(near_threshold) >= STRUCTURING_MIN_COUNT

    @staticmethod
    def is_round_amount(amount: float) -> bool:
        return amount > 0 and amount == int(amount) and int(amount) % 1000 == 0

    # ------------------------------------------------------------------
    # Combined screening
    # ------------------------------------------------------------------

    def check_transaction(
        self,
        tx: Transaction,
        recent: Sequence[Transaction],
        now: datetime | None = None,
    ) -> AmlCheckResult:
        """Run every check and aggregate the flags into a risk score."""
        result = AmlCheckResult(transaction_id=tx.id)

        if self.is_large_transaction(tx):
            result.flags.append(FLAG_LARGE_TRANSACTION)
            result.risk_score += 30
        if self.detect_high_velocity(recent, now):
            result.flags.append(FLAG_HIGH_VELOCITY)
            result.risk_score += 40
        if self.detect_structuring(recent, now):
            result.flags.append(FLAG_POSSIBLE_STRUCTURING)
            result.risk_score += 50
        if self.is_round_amount(tx.amount or 0.0):
            result.flags.append(FLAG_ROUND_AMOUNT)
            result.risk_score += 10

        if result.risk_score >= REVIEW_SCORE:
            result.passed = False
            result.requires_review = True
            logger.info(
                "aml_review_required",
                transaction_id=tx.id,
                risk_score=result.risk_score,
                flags=result.flags,
            )
        return result
