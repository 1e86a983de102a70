"""Redis client helpers."""
from __future__ import annotations

from redis import Redis

from import_orchestrator.core.config import get_settings


def create_redis_client(url: str, *, decode_responses: bool = True) -> Redis:
    """Return a configured synchronous Redis client instance."""

    kwargs = {
        "decode_responses": decode_responses,
        "health_check_interval": 30,
        "socket_keepalive": True,
    }

    # Only include encoding parameter when decode_responses is True
    if decode_responses:
        kwargs["encoding"] = "utf-8"

    return Redis.from_url(url, **kwargs)


def get_redis_client(*, decode_responses: bool = True) -> Redis:
    """Return a Redis client configured from application settings.

    Used by the worker for metrics and by the API for health checks and the
    metrics snapshot.
    """
    settings = get_settings()
    return create_redis_client(settings.redis_url, decode_responses=decode_responses)
