"""Shared FastAPI dependencies."""
from __future__ import annotations

from typing import Generator

from fastapi import Depends
from redis import Redis

from import_orchestrator.core.config import get_settings
from import_orchestrator.core.metrics import MetricsRegistry
from import_orchestrator.core.redis_manager import get_redis_client


def get_redis() -> Generator[Redis, None, None]:
    """FastAPI dependency that provides a Redis client for one request."""
    redis = get_redis_client()
    try:
        yield redis
    finally:
        redis.close()


def get_metrics_registry(redis: Redis = Depends(get_redis)) -> MetricsRegistry:
    return MetricsRegistry(redis, namespace=get_settings().metrics_namespace)
