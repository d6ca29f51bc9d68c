"""Redis client factory for the risk engine.

Portfolio evaluations run on worker threads, so the publisher and alert
cache use the synchronous redis-py client backed by a shared
ConnectionPool. The pool lifecycle is managed independently from the client.

Usage::

    from portfolio_risk.core.redis import create_redis

    client = create_redis(settings)
    client.publish("risk_updates", payload)

    # During shutdown:
    close_redis(client)
"""

import redis

from .config import Settings


def create_redis(settings: Settings) -> redis.Redis:
    """Create a Redis client with its own connection pool.

    The pool uses ``decode_responses=True`` so values come back as strings.
    """
    pool = redis.ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


def close_redis(client: redis.Redis) -> None:
    """Close the client and disconnect its pool. Safe to call twice."""
    client.close()
    client.connection_pool.disconnect()
