"""Batch counters, timers and gauges stored in Redis hashes.

The worker process records the numbers and the API process reads them back,
so the registry lives in Redis rather than in process memory. Redis failures
are logged and never fail the job that was being measured.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from redis import Redis

logger = logging.getLogger(__name__)

DEFAULT_METRICS_NAMESPACE = "batch_metrics"


def metric_key(name: str, tags: Mapping[str, Any] | None = None) -> str:
    """Render ``name{k=v,...}`` with tags sorted so keys are stable."""
    if not tags:
        return name
    rendered = ",".join(f"{key}={tags[key]}" for key in sorted(tags))
    return f"{name}{{{rendered}}}"


@dataclass
class TimerSample:
    """A started timer; stopped through :meth:`MetricsRegistry.stop_timer`."""

    started: float


class MetricsRegistry:
    """Redis-backed meter registry."""

    def __init__(self, redis: Redis, *, namespace: str = DEFAULT_METRICS_NAMESPACE) -> None:
        self._redis = redis
        self._namespace = namespace

    def _hash(self, kind: str) -> str:
        return f"{self._namespace}:{kind}"

    def _safe(self, description: str, operation: Callable[[], Any]) -> Any:
        try:
            return operation()
        except Exception as exc:
            logger.warning(f"Failed to {description} in Redis: {exc}")
            return None

    def increment(self, name: str, amount: float = 1.0, *, tags: Mapping[str, Any] | None = None) -> None:
        key = metric_key(name, tags)
        self._safe(
            f"increment counter {key}",
            lambda: self._redis.hincrbyfloat(self._hash("counters"), key, amount),
        )

    def set_gauge(self, name: str, value: float, *, tags: Mapping[str, Any] | None = None) -> None:
        key = metric_key(name, tags)
        self._safe(f"set gauge {key}", lambda: self._redis.hset(self._hash("gauges"), key, value))

    def adjust_gauge(self, name: str, delta: float, *, tags: Mapping[str, Any] | None = None) -> None:
        key = metric_key(name, tags)
        self._safe(
            f"adjust gauge {key}",
            lambda: self._redis.hincrbyfloat(self._hash("gauges"), key, delta),
        )

    def start_timer(self) -> TimerSample:
        return TimerSample(started=time.perf_counter())

    def stop_timer(self, sample: TimerSample, name: str, *, tags: Mapping[str, Any] | None = None) -> float:
        elapsed = time.perf_counter() - sample.started
        self.record_duration(name, elapsed, tags=tags)
        return elapsed

    def record_duration(self, name: str, seconds: float, *, tags: Mapping[str, Any] | None = None) -> None:
        key = metric_key(name, tags)

        def _record() -> None:
            timers = self._hash("timers")
            self._redis.hincrbyfloat(timers, f"{key}:count", 1)
            self._redis.hincrbyfloat(timers, f"{key}:total_seconds", seconds)

        self._safe(f"record timer {key}", _record)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Return every counter, gauge and timer currently stored."""
        counters = self._safe("read counters", lambda: self._redis.hgetall(self._hash("counters"))) or {}
        gauges = self._safe("read gauges", lambda: self._redis.hgetall(self._hash("gauges"))) or {}
        raw_timers = self._safe("read timers", lambda: self._redis.hgetall(self._hash("timers"))) or {}

        timers: dict[str, dict[str, float]] = {}
        for field, value in raw_timers.items():
            key, _, stat = _decode(field).rpartition(":")
            timers.setdefault(key, {})[stat] = float(_decode(value))
        for stats in timers.values():
            count = stats.get("count", 0.0)
            stats["mean_seconds"] = stats.get("total_seconds", 0.0) / count if count else 0.0

        return {
            "counters": {_decode(k): float(_decode(v)) for k, v in counters.items()},
            "gauges": {_decode(k): float(_decode(v)) for k, v in gauges.items()},
            "timers": timers,
        }


def _decode(value: str | bytes) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return value


class BatchMetricsService:
    """Named batch meters on top of a :class:`MetricsRegistry`."""

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry

    # Job metrics
    def increment_job_count(self, job_name: str) -> None:
        self.registry.increment("batch.jobs.total")
        self.registry.increment("batch.jobs.by.name", tags={"jobName": job_name})

    def start_job_timer(self) -> TimerSample:
        self.registry.adjust_gauge("batch.jobs.active", 1)
        return self.registry.start_timer()

    def stop_job_timer(self, sample: TimerSample, job_name: str, status: str) -> None:
        self.registry.adjust_gauge("batch.jobs.active", -1)
        self.registry.stop_timer(
            sample, "batch.job.execution.duration", tags={"jobName": job_name, "status": status}
        )

    # Step metrics
    def increment_step_count(self, step_name: str) -> None:
        self.registry.increment("batch.steps.total")
        self.registry.increment("batch.steps.by.name", tags={"stepName": step_name})

    def start_step_timer(self) -> TimerSample:
        self.registry.adjust_gauge("batch.steps.active", 1)
        return self.registry.start_timer()

    def stop_step_timer(self, sample: TimerSample, step_name: str, status: str) -> None:
        self.registry.adjust_gauge("batch.steps.active", -1)
        self.registry.stop_timer(
            sample, "batch.step.execution.duration", tags={"stepName": step_name, "status": status}
        )

    # Item metrics
    def increment_items_read(self, count: int, step_name: str) -> None:
        if count:
            self.registry.increment("batch.items.read", count)

    def increment_items_written(self, count: int, step_name: str) -> None:
        if count:
            self.registry.increment("batch.items.written", count)

    def increment_items_processed(self, count: int, step_name: str) -> None:
        if count:
            self.registry.increment("batch.items.processed", count)
            self.registry.increment("batch.items.processed.by.step", count, tags={"stepName": step_name})

    # Skips and errors
    def increment_skip_count(self, step_name: str, skip_type: str, count: int = 1) -> None:
        self.registry.increment("batch.items.skipped", count)
        self.registry.increment(
            "batch.items.skipped.by.type", count, tags={"stepName": step_name, "skipType": skip_type}
        )

    def increment_error_count(self, step_name: str, error_type: str) -> None:
        self.registry.increment("batch.errors.total")
        self.registry.increment("batch.errors.by.type", tags={"stepName": step_name, "errorType": error_type})

    # Chunk metrics
    def start_chunk_timer(self) -> TimerSample:
        return self.registry.start_timer()

    def stop_chunk_timer(self, sample: TimerSample, step_name: str, chunk_size: int) -> None:
        self.registry.stop_timer(
            sample,
            "batch.chunk.processing.duration",
            tags={"stepName": step_name, "chunkSize": chunk_size},
        )

    # Work status counts
    def record_work_status_counts(self, counts: Mapping[str, int]) -> None:
        for status, count in counts.items():
            self.registry.set_gauge(f"batch.work_status.{status}", count)
