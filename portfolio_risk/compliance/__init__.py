"""Compliance rules -- KYC/AML screening and single-position limits."""

from portfolio_risk.compliance.aml import AmlCheckResult, AmlConfig, KycAmlChecker
from portfolio_risk.compliance.position_limit import (
    PositionLimitChecker,
    PositionLimitResult,
    PositionLimitViolation,
)

__all__ = [
    "AmlCheckResult",
    "AmlConfig",
    "KycAmlChecker",
    "PositionLimitChecker",
    "PositionLimitResult",
    "PositionLimitViolation",
]
