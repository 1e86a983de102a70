"""Core application utilities and infrastructure."""
from .config import Settings, get_settings
from .metrics import DEFAULT_METRICS_NAMESPACE, BatchMetricsService, MetricsRegistry
from .redis_manager import create_redis_client, get_redis_client

__all__ = [
    "Settings",
    "get_settings",
    "MetricsRegistry",
    "BatchMetricsService",
    "DEFAULT_METRICS_NAMESPACE",
    "create_redis_client",
    "get_redis_client",
]
