"""Risk engine schema: portfolios, positions, transactions, thresholds,
risk metrics, risk history and alerts.

Revision ID: 3f9a1c2b7d10
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2b7d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # Portfolio tables
    # -----------------------------------------------------------------------
    op.create_table(
        "portfolios",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("total_value", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_portfolios"),
    )

    op.create_table(
        "positions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("portfolio_id", sa.String(36), nullable=False),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("average_price", sa.Float(), nullable=False),
        sa.Column("current_price", sa.Float(), nullable=False),
        sa.Column("asset_type", sa.String(30), nullable=False),
        sa.Column("liquidity", sa.String(10), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_positions"),
        sa.ForeignKeyConstraint(
            ["portfolio_id"],
            ["portfolios.id"],
            name="fk_positions_portfolio_id_portfolios",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_positions_portfolio_id", "positions", ["portfolio_id"])
    op.create_index(
        "ix_positions_portfolio_symbol", "positions", ["portfolio_id", "symbol"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("portfolio_id", sa.String(36), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("asset_type", sa.String(30), nullable=False),
        sa.Column("stop_loss", sa.Float(), nullable=True),
        sa.Column("take_profit", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("kyc_verified", sa.Boolean(), nullable=False),
        sa.Column("aml_checked", sa.Boolean(), nullable=False),
        # Pre-trade risk analysis
        sa.Column("risk_score", sa.Float(), nullable=True),
        sa.Column("risk_approved", sa.Boolean(), nullable=True),
        sa.Column("requires_review", sa.Boolean(), nullable=True),
        sa.Column("risk_violations", JSONB(), nullable=True),
        sa.Column("risk_analysis", JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sa.ForeignKeyConstraint(
            ["portfolio_id"],
            ["portfolios.id"],
            name="fk_transactions_portfolio_id_portfolios",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_transactions_portfolio_created",
        "transactions",
        ["portfolio_id", "created_at"],
    )

    op.create_table(
        "risk_thresholds",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("portfolio_id", sa.String(36), nullable=False),
        sa.Column("max_var_95", sa.Float(), nullable=False),
        sa.Column("max_var_99", sa.Float(), nullable=False),
        sa.Column("max_position_size", sa.Float(), nullable=False),
        sa.Column("max_single_asset_exposure", sa.Float(), nullable=False),
        sa.Column("max_sector_exposure", sa.Float(), nullable=False),
        sa.Column("min_liquidity_ratio", sa.Float(), nullable=False),
        sa.Column("max_leverage", sa.Float(), nullable=False),
        sa.Column("max_concentration", sa.Float(), nullable=False),
        sa.Column("max_daily_loss", sa.Float(), nullable=False),
        sa.Column("max_weekly_loss", sa.Float(), nullable=False),
        sa.Column("max_drawdown", sa.Float(), nullable=False),
        sa.Column("require_stop_loss", sa.Boolean(), nullable=False),
        sa.Column("max_stop_loss_distance", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_risk_thresholds"),
        sa.UniqueConstraint("portfolio_id", name="uq_risk_thresholds_portfolio_id"),
        sa.ForeignKeyConstraint(
            ["portfolio_id"],
            ["portfolios.id"],
            name="fk_risk_thresholds_portfolio_id_portfolios",
            ondelete="CASCADE",
        ),
    )

    # -----------------------------------------------------------------------
    # Risk tables
    # -----------------------------------------------------------------------
    op.create_table(
        "risk_metrics",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("portfolio_id", sa.String(36), nullable=False),
        sa.Column("metric_type", sa.String(30), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("threshold", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("confidence_level", sa.Float(), nullable=True),
        sa.Column("time_horizon_days", sa.Integer(), nullable=True),
        sa.Column("details", JSONB(), nullable=True),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_risk_metrics"),
    )
    op.create_index(
        "ix_risk_metrics_portfolio_calculated",
        "risk_metrics",
        ["portfolio_id", "calculated_at"],
    )

    op.create_table(
        "risk_history",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("portfolio_id", sa.String(36), nullable=False),
        sa.Column("metric_type", sa.String(30), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_risk_history"),
    )
    op.create_index(
        "ix_risk_history_portfolio_type_recorded",
        "risk_history",
        ["portfolio_id", "metric_type", "recorded_at"],
    )

    op.create_table(
        "alerts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("portfolio_id", sa.String(36), nullable=False),
        sa.Column("alert_type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("triggered_by", JSONB(), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("acknowledged_by", sa.String(36), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(36), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dismissed_by", sa.String(36), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_alerts"),
    )
    op.create_index(
        "ix_alerts_dedup",
        "alerts",
        ["portfolio_id", "alert_type", "status", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_alerts_dedup", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_risk_history_portfolio_type_recorded", table_name="risk_history")
    op.drop_table("risk_history")
    op.drop_index("ix_risk_metrics_portfolio_calculated", table_name="risk_metrics")
    op.drop_table("risk_metrics")
    op.drop_table("risk_thresholds")
    op.drop_index("ix_transactions_portfolio_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_positions_portfolio_symbol", table_name="positions")
    op.drop_index("ix_positions_portfolio_id", table_name="positions")
    op.drop_table("positions")
    op.drop_table("portfolios")
