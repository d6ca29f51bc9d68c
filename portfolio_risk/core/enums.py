"""Shared enumerations used across the risk engine.

All enums use the (str, Enum) mixin pattern so their values are
serializable strings, compatible with database storage and JSON output.
"""

from enum import Enum


class AssetType(str, Enum):
    """Classification of held instruments."""

    STOCK = "STOCK"
    BOND = "BOND"
    REIT = "REIT"
    CRYPTO = "CRYPTO"
    PRIVATE = "PRIVATE"
    GOVERNMENT_BOND = "GOVERNMENT_BOND"
    CASH = "CASH"
    CORPORATE_BOND = "CORPORATE_BOND"
    MONEY_MARKET = "MONEY_MARKET"
    COMMODITY = "COMMODITY"
    ETF = "ETF"


class LiquidityTag(str, Enum):
    """Coarse liquidity tag carried on a position."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class LiquidityClass(str, Enum):
    """Liquidity bucket assigned by the liquidity calculator."""

    HIGHLY_LIQUID = "HIGHLY_LIQUID"
    LIQUID = "LIQUID"
    SEMI_LIQUID = "SEMI_LIQUID"
    ILLIQUID = "ILLIQUID"


class MarketCondition(str, Enum):
    """Market regime used for liquidation-time estimates."""

    NORMAL = "NORMAL"
    STRESSED = "STRESSED"
    CRISIS = "CRISIS"

    @property
    def participation_rate(self) -> float:
        """Fraction of average daily volume absorbable per day."""
        return _PARTICIPATION_RATES[self]


_PARTICIPATION_RATES = {
    MarketCondition.NORMAL: 0.10,
    MarketCondition.STRESSED: 0.05,
    MarketCondition.CRISIS: 0.02,
}


class LiquidityHealth(str, Enum):
    """Portfolio-level liquidity health assessment."""

    HEALTHY = "HEALTHY"
    ADEQUATE = "ADEQUATE"
    CONCERNING = "CONCERNING"
    CRITICAL = "CRITICAL"


class RiskAssessment(str, Enum):
    """Three-level liquidity risk assessment."""

    LOW_RISK = "LOW_RISK"
    MEDIUM_RISK = "MEDIUM_RISK"
    HIGH_RISK = "HIGH_RISK"


class MetricType(str, Enum):
    """Kind of persisted risk metric."""

    VAR = "VAR"
    LIQUIDITY_RATIO = "LIQUIDITY_RATIO"


class MetricStatus(str, Enum):
    """Status of a risk metric against its threshold."""

    SAFE = "SAFE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class ViolationSeverity(str, Enum):
    """Severity of a pre-trade violation, ordered WARNING < VIOLATION < CRITICAL."""

    WARNING = "WARNING"
    VIOLATION = "VIOLATION"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _VIOLATION_RANKS[self]

    @property
    def score_points(self) -> int:
        """Risk-score points contributed by one violation of this severity."""
        return _VIOLATION_POINTS[self]


_VIOLATION_RANKS = {
    ViolationSeverity.WARNING: 1,
    ViolationSeverity.VIOLATION: 2,
    ViolationSeverity.CRITICAL: 3,
}

_VIOLATION_POINTS = {
    ViolationSeverity.WARNING: 10,
    ViolationSeverity.VIOLATION: 20,
    ViolationSeverity.CRITICAL: 30,
}


class ViolationType(str, Enum):
    """Pre-trade check that produced a violation."""

    POSITION_SIZE = "POSITION_SIZE"
    VAR_LIMIT = "VAR_LIMIT"
    CONCENTRATION_LIMIT = "CONCENTRATION_LIMIT"
    LIQUIDITY_RATIO = "LIQUIDITY_RATIO"
    STOP_LOSS_REQUIRED = "STOP_LOSS_REQUIRED"


class AlertType(str, Enum):
    """Category of a persisted alert."""

    RISK_BREACH = "RISK_BREACH"
    LIQUIDITY_RISK = "LIQUIDITY_RISK"
    COMPLIANCE_VIOLATION = "COMPLIANCE_VIOLATION"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    RISK_VIOLATION = "RISK_VIOLATION"


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertStatus(str, Enum):
    """Alert lifecycle states. RESOLVED and DISMISSED are terminal."""

    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertStatus.RESOLVED, AlertStatus.DISMISSED)


class AlertSource(str, Enum):
    """Checker that raised an alert."""

    VAR_CALCULATOR = "VAR_CALCULATOR"
    LIQUIDITY_CALCULATOR = "LIQUIDITY_CALCULATOR"
    POSITION_LIMIT_CHECKER = "POSITION_LIMIT_CHECKER"
    AML_CHECKER = "AML_CHECKER"
    VELOCITY_CHECKER = "VELOCITY_CHECKER"
    RISK_ENGINE = "RISK_ENGINE"
    COMPLIANCE_ENGINE = "COMPLIANCE_ENGINE"


class TransactionType(str, Enum):
    """Transaction side or cash movement."""

    BUY = "BUY"
    SELL = "SELL"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(str, Enum):
    """Transaction processing state."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class EventType(str, Enum):
    """Event types recognized by the publish sink."""

    RISK_UPDATE = "risk_update"
    NEW_ALERT = "new_alert"
    AML_ALERT = "aml_alert"
