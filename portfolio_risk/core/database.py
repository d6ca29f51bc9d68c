"""Database engine layer for the risk engine.

Engines and session factories are built on demand from a ``Settings``
instance (or an explicit URL) and handed to the SQL stores; nothing is
created at import time. Session factories are configured with
autoflush=False and expire_on_commit=False for explicit transaction control.
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings


def create_sync_engine(settings: Settings | None = None, url: str | None = None) -> Engine:
    """Create a sync engine from *url* or from the settings' database URL."""
    if url is None:
        if settings is None:
            from .config import settings as default_settings

            settings = default_settings
        return create_engine(
            settings.sync_database_url,
            pool_size=settings.db_pool_size,
            pool_pre_ping=settings.db_pool_pre_ping,
            echo=settings.debug,
        )
    return create_engine(url)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        engine,
        autoflush=False,
        expire_on_commit=False,
    )
