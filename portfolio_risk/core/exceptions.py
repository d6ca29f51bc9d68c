"""Exception hierarchy for the risk engine.

- RiskEngineError: base for all engine errors
- NotFoundError: a referenced record does not exist (never retried)
    - PortfolioNotFoundError
    - TransactionNotFoundError
    - AlertNotFoundError
- InvalidInputError: the caller supplied unusable input
    - InvalidAlertTransitionError: lifecycle transition not allowed
- InsufficientDataError: not enough price history to compute VaR
- EvaluationCancelledError: a monitor evaluation was cancelled mid-flight
"""


class RiskEngineError(Exception):
    """Base exception for all risk engine errors."""


class NotFoundError(RiskEngineError):
    """Raised when a referenced record cannot be found."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class PortfolioNotFoundError(NotFoundError):
    def __init__(self, portfolio_id: str) -> None:
        super().__init__("portfolio", portfolio_id)


class TransactionNotFoundError(NotFoundError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__("transaction", transaction_id)


class AlertNotFoundError(NotFoundError):
    def __init__(self, alert_id: str) -> None:
        super().__init__("alert", alert_id)


class InvalidInputError(RiskEngineError):
    """Raised for empty positions, negative values and similar bad input."""


class InvalidAlertTransitionError(InvalidInputError):
    """Raised when an alert lifecycle transition is not permitted."""


class InsufficientDataError(RiskEngineError):
    """Raised when fewer than two aligned price points are available."""


class EvaluationCancelledError(RiskEngineError):
    """Raised inside a worker when its evaluation was cancelled or timed out."""

    def __init__(self, portfolio_id: str) -> None:
        self.portfolio_id = portfolio_id
        super().__init__(f"evaluation cancelled: {portfolio_id}")
