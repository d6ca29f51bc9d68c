"""SQLAlchemy-backed stores.

Each store takes a sync session factory (see ``core.database``) and opens a
short-lived session per call. Records are mapped to and from the frozen
domain types here; nothing outside this module sees an ORM object.

Datetimes are normalized to aware UTC on the way out because SQLite drops
the offset.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from portfolio_risk.core.context import context_from_dict
from portfolio_risk.core.domain import (
    Alert,
    Portfolio,
    Position,
    RiskHistory,
    RiskMetric,
    RiskThresholds,
    TradeRiskAnalysis,
    Transaction,
)
from portfolio_risk.core.enums import (
    AlertSeverity,
    AlertStatus,
    AlertType,
    AssetType,
    LiquidityTag,
    MetricStatus,
    MetricType,
    TransactionStatus,
    TransactionType,
)
from portfolio_risk.core.exceptions import TransactionNotFoundError
from portfolio_risk.core.models import (
    AlertRecord,
    PortfolioRecord,
    PositionRecord,
    RiskHistoryRecord,
    RiskMetricRecord,
    RiskThresholdRecord,
    TransactionRecord,
)

_CLOSED_STATUSES = (AlertStatus.RESOLVED.value, AlertStatus.DISMISSED.value)

_THRESHOLD_FIELDS = (
    "max_var_95",
    "max_var_99",
    "max_position_size",
    "max_single_asset_exposure",
    "max_sector_exposure",
    "min_liquidity_ratio",
    "max_leverage",
    "max_concentration",
    "max_daily_loss",
    "max_weekly_loss",
    "max_drawdown",
    "require_stop_loss",
    "max_stop_loss_distance",
)


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Portfolios
# ---------------------------------------------------------------------------


def _position_from_record(row: PositionRecord) -> Position:
    return Position(
        id=row.id,
        portfolio_id=row.portfolio_id,
        symbol=row.symbol,
        quantity=row.quantity,
        average_price=row.average_price,
        current_price=row.current_price,
        asset_type=AssetType(row.asset_type),
        liquidity=LiquidityTag(row.liquidity),
    )


class SqlPortfolioStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def add_portfolio(self, portfolio: Portfolio) -> None:
        """Insert or replace a portfolio together with its positions."""
        with self._sessions() as session, session.begin():
            existing = session.get(PortfolioRecord, portfolio.id)
            if existing is not None:
                session.delete(existing)
                session.flush()
            record = PortfolioRecord(
                id=portfolio.id,
                name=portfolio.name,
                total_value=portfolio.total_value,
                currency=portfolio.currency,
            )
            record.positions = [
                PositionRecord(
                    id=p.id,
                    symbol=p.symbol,
                    quantity=p.quantity,
                    average_price=p.average_price,
                    current_price=p.current_price,
                    asset_type=p.asset_type.value,
                    liquidity=p.liquidity.value,
                )
                for p in portfolio.positions
            ]
            session.add(record)

    def get_portfolio(self, portfolio_id: str) -> Portfolio | None:
        with self._sessions() as session:
            row = session.get(PortfolioRecord, portfolio_id)
            if row is None:
                return None
            return Portfolio(
                id=row.id,
                total_value=row.total_value,
                positions=tuple(_position_from_record(p) for p in row.positions),
                currency=row.currency,
                name=row.name,
            )

    def list_portfolio_ids(self) -> list[str]:
        with self._sessions() as session:
            return list(session.scalars(select(PortfolioRecord.id).order_by(PortfolioRecord.id)))


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


class SqlThresholdStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def get_thresholds(self, portfolio_id: str) -> RiskThresholds | None:
        with self._sessions() as session:
            row = session.scalars(
                select(RiskThresholdRecord).where(
                    RiskThresholdRecord.portfolio_id == portfolio_id
                )
            ).first()
            if row is None:
                return None
            return RiskThresholds(
                portfolio_id=row.portfolio_id,
                id=row.id,
                created_at=_aware(row.created_at),
                updated_at=_aware(row.updated_at),
                **{name: getattr(row, name) for name in _THRESHOLD_FIELDS},
            )

    def save_thresholds(self, thresholds: RiskThresholds) -> None:
        values = {name: getattr(thresholds, name) for name in _THRESHOLD_FIELDS}
        with self._sessions() as session, session.begin():
            row = session.scalars(
                select(RiskThresholdRecord).where(
                    RiskThresholdRecord.portfolio_id == thresholds.portfolio_id
                )
            ).first()
            if row is None:
                session.add(RiskThresholdRecord(
                    id=thresholds.id,
                    portfolio_id=thresholds.portfolio_id,
                    created_at=thresholds.created_at,
                    updated_at=thresholds.updated_at,
                    **values,
                ))
                return
            for name, value in values.items():
                setattr(row, name, value)
            row.updated_at = datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class SqlMetricStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def add_metric(self, metric: RiskMetric) -> None:
        with self._sessions() as session, session.begin():
            session.add(RiskMetricRecord(
                id=metric.id,
                portfolio_id=metric.portfolio_id,
                metric_type=metric.metric_type.value,
                value=metric.value,
                threshold=metric.threshold,
                status=metric.status.value,
                confidence_level=metric.confidence_level,
                time_horizon_days=metric.time_horizon_days,
                details=metric.details.to_dict() if metric.details else None,
                calculated_at=metric.calculated_at,
            ))

    def add_history(self, point: RiskHistory) -> None:
        with self._sessions() as session, session.begin():
            session.add(RiskHistoryRecord(
                id=point.id,
                portfolio_id=point.portfolio_id,
                metric_type=point.metric_type.value,
                value=point.value,
                recorded_at=point.recorded_at,
            ))

    def list_metrics(self, portfolio_id: str, limit: int = 100) -> list[RiskMetric]:
        stmt = (
            select(RiskMetricRecord)
            .where(RiskMetricRecord.portfolio_id == portfolio_id)
            .order_by(RiskMetricRecord.calculated_at.desc())
            .limit(limit)
        )
        with self._sessions() as session:
            return [
                RiskMetric(
                    id=row.id,
                    portfolio_id=row.portfolio_id,
                    metric_type=MetricType(row.metric_type),
                    value=row.value,
                    threshold=row.threshold,
                    status=MetricStatus(row.status),
                    confidence_level=row.confidence_level,
                    time_horizon_days=row.time_horizon_days,
                    details=context_from_dict(row.details),
                    calculated_at=_aware(row.calculated_at),
                )
                for row in session.scalars(stmt)
            ]

    def list_history(
        self,
        portfolio_id: str,
        metric_type: MetricType | None = None,
        limit: int = 100,
    ) -> list[RiskHistory]:
        stmt = select(RiskHistoryRecord).where(RiskHistoryRecord.portfolio_id == portfolio_id)
        if metric_type is not None:
            stmt = stmt.where(RiskHistoryRecord.metric_type == metric_type.value)
        stmt = stmt.order_by(RiskHistoryRecord.recorded_at.desc()).limit(limit)
        with self._sessions() as session:
            return [
                RiskHistory(
                    id=row.id,
                    portfolio_id=row.portfolio_id,
                    metric_type=MetricType(row.metric_type),
                    value=row.value,
                    recorded_at=_aware(row.recorded_at),
                )
                for row in session.scalars(stmt)
            ]


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


def _alert_from_record(row: AlertRecord) -> Alert:
    return Alert(
        id=row.id,
        portfolio_id=row.portfolio_id,
        alert_type=AlertType(row.alert_type),
        severity=AlertSeverity(row.severity),
        title=row.title,
        description=row.description,
        source=row.source,
        status=AlertStatus(row.status),
        triggered_by=context_from_dict(row.triggered_by),
        resolution=row.resolution,
        acknowledged_by=row.acknowledged_by,
        acknowledged_at=_aware(row.acknowledged_at),
        resolved_by=row.resolved_by,
        resolved_at=_aware(row.resolved_at),
        dismissed_by=row.dismissed_by,
        dismissed_at=_aware(row.dismissed_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _apply_alert(row: AlertRecord, alert: Alert) -> None:
    row.portfolio_id = alert.portfolio_id
    row.alert_type = alert.alert_type.value
    row.severity = alert.severity.value
    row.title = alert.title
    row.description = alert.description
    row.source = alert.source
    row.status = alert.status.value
    row.triggered_by = alert.triggered_by.to_dict() if alert.triggered_by else None
    row.resolution = alert.resolution
    row.acknowledged_by = alert.acknowledged_by
    row.acknowledged_at = alert.acknowledged_at
    row.resolved_by = alert.resolved_by
    row.resolved_at = alert.resolved_at
    row.dismissed_by = alert.dismissed_by
    row.dismissed_at = alert.dismissed_at
    row.created_at = alert.created_at
    row.updated_at = alert.updated_at


class SqlAlertStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def add_alert(self, alert: Alert) -> None:
        row = AlertRecord(id=alert.id)
        _apply_alert(row, alert)
        with self._sessions() as session, session.begin():
            session.add(row)

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._sessions() as session:
            row = session.get(AlertRecord, alert_id)
            return _alert_from_record(row) if row is not None else None

    def update_alert(self, alert: Alert) -> None:
        with self._sessions() as session, session.begin():
            row = session.get(AlertRecord, alert.id)
            if row is None:
                row = AlertRecord(id=alert.id)
                session.add(row)
            _apply_alert(row, alert)

    def exists_active(
        self, portfolio_id: str, alert_type: AlertType, since: datetime
    ) -> bool:
        stmt = (
            select(AlertRecord.id)
            .where(
                AlertRecord.portfolio_id == portfolio_id,
                AlertRecord.alert_type == alert_type.value,
                AlertRecord.status == AlertStatus.ACTIVE.value,
                AlertRecord.created_at > since,
            )
            .limit(1)
        )
        with self._sessions() as session:
            return session.execute(stmt).first() is not None

    def list_active(self, portfolio_id: str | None = None) -> list[Alert]:
        stmt = select(AlertRecord).where(AlertRecord.status == AlertStatus.ACTIVE.value)
        if portfolio_id is not None:
            stmt = stmt.where(AlertRecord.portfolio_id == portfolio_id)
        stmt = stmt.order_by(AlertRecord.created_at.desc())
        with self._sessions() as session:
            return [_alert_from_record(row) for row in session.scalars(stmt)]

    def delete_closed_before(self, cutoff: datetime) -> int:
        stmt = delete(AlertRecord).where(
            AlertRecord.status.in_(_CLOSED_STATUSES),
            AlertRecord.created_at < cutoff,
        )
        with self._sessions() as session, session.begin():
            return session.execute(stmt).rowcount

    def count_by_status(self) -> dict[str, int]:
        stmt = select(AlertRecord.status, func.count()).group_by(AlertRecord.status)
        with self._sessions() as session:
            return {status: count for status, count in session.execute(stmt)}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def _transaction_from_record(row: TransactionRecord) -> Transaction:
    return Transaction(
        id=row.id,
        portfolio_id=row.portfolio_id,
        transaction_type=TransactionType(row.transaction_type),
        symbol=row.symbol,
        quantity=row.quantity,
        price=row.price,
        amount=row.amount,
        asset_type=AssetType(row.asset_type),
        stop_loss=row.stop_loss,
        take_profit=row.take_profit,
        currency=row.currency,
        status=TransactionStatus(row.status),
        aml_checked=row.aml_checked,
        kyc_verified=row.kyc_verified,
        created_at=_aware(row.created_at),
    )


class SqlTransactionStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory

    def add_transaction(self, tx: Transaction) -> None:
        with self._sessions() as session, session.begin():
            session.add(TransactionRecord(
                id=tx.id,
                portfolio_id=tx.portfolio_id,
                transaction_type=tx.transaction_type.value,
                symbol=tx.symbol,
                quantity=tx.quantity,
                price=tx.price,
                amount=tx.amount,
                currency=tx.currency,
                asset_type=tx.asset_type.value,
                stop_loss=tx.stop_loss,
                take_profit=tx.take_profit,
                status=tx.status.value,
                kyc_verified=tx.kyc_verified,
                aml_checked=tx.aml_checked,
                created_at=tx.created_at,
            ))

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        with self._sessions() as session:
            row = session.get(TransactionRecord, transaction_id)
            return _transaction_from_record(row) if row is not None else None

    def list_recent(self, portfolio_id: str, since: datetime) -> list[Transaction]:
        stmt = (
            select(TransactionRecord)
            .where(
                TransactionRecord.portfolio_id == portfolio_id,
                TransactionRecord.created_at > since,
            )
            .order_by(TransactionRecord.created_at.desc())
        )
        with self._sessions() as session:
            return [_transaction_from_record(row) for row in session.scalars(stmt)]

    def mark_aml_checked(self, transaction_id: str) -> None:
        with self._sessions() as session, session.begin():
            row = session.get(TransactionRecord, transaction_id)
            if row is None:
                raise TransactionNotFoundError(transaction_id)
            row.aml_checked = True

    def attach_risk_analysis(
        self, transaction_id: str, analysis: TradeRiskAnalysis
    ) -> None:
        with self._sessions() as session, session.begin():
            row = session.get(TransactionRecord, transaction_id)
            if row is None:
                raise TransactionNotFoundError(transaction_id)
            row.risk_score = analysis.risk_score
            row.risk_approved = analysis.approved
            row.requires_review = analysis.requires_review
            row.risk_violations = [v.to_dict() for v in analysis.violations]
            row.risk_analysis = analysis.to_dict()
