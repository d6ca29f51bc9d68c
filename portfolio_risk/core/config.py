"""Pydantic-settings configuration for the risk engine.

Loads connection parameters and engine tunables from the environment or a
.env file with sensible defaults for local development. Computed fields
produce fully-formed connection URLs.
"""

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = "Portfolio Risk Engine"
    debug: bool = False

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "portfolio_risk"
    postgres_user: str = "risk_user"
    postgres_password: str = ""
    db_pool_size: int = 10
    db_pool_pre_ping: bool = True
    db_sslmode: str = "prefer"

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str = ""
    redis_max_connections: int = 20

    # Monitor loop
    monitor_interval_seconds: float = 30.0
    monitor_max_concurrency: int = 4
    portfolio_eval_timeout_seconds: float = 20.0

    # Calculators
    var_time_horizon_days: int = 1
    mc_simulations: int = 10_000
    position_limit_percent: float = 25.0

    # AML
    aml_large_transaction_threshold: float = 10_000.0
    aml_velocity_threshold: int = 10

    # Alerts
    alert_cleanup_days: int = 30
    alert_cache_ttl_seconds: int = 86_400

    # Alert dedup windows (minutes)
    alert_window_risk_breach_minutes: float = 10.0
    alert_window_liquidity_risk_minutes: float = 15.0
    alert_window_compliance_violation_minutes: float = 5.0
    alert_window_suspicious_activity_minutes: float = 60.0
    alert_window_velocity_minutes: float = 30.0

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync connection string for psycopg2 (engine stores and Alembic)."""
        base = (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
        if self.db_sslmode and self.db_sslmode != "disable":
            return f"{base}?sslmode={self.db_sslmode}"
        return base

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


# Singleton instance
settings = Settings()
