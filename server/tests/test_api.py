"""Tests for the health and metrics endpoints."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from import_orchestrator.api.deps import get_redis
from import_orchestrator.batch import BatchStatus, JobExecution
from import_orchestrator.core.db import get_session, session_scope
from import_orchestrator.main import app
from import_orchestrator.schemas.job_parameters import JobParameters
from import_orchestrator.services.execution_repository import ExecutionRepository
from import_orchestrator.services.work_repository import WorkRepository


@pytest.fixture
def client(session_factory, redis_mock):
    """Create a FastAPI test client with overridden database session and Redis."""

    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_get_redis():
        yield redis_mock

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_redis] = override_get_redis

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def add_executions(session_factory, statuses):
    start = datetime(2024, 1, 1, 8, 0)
    with session_scope(session_factory) as session:
        repository = ExecutionRepository(session)
        for index, status_name in enumerate(statuses):
            record = repository.create_job_execution("dbImport", f"key-{index}", {"wstIden": index}, start)
            repository.add_step_execution(record.id, _step(record.id, start))
            repository.finish_job_execution(
                record.id, status=status_name, exit_message=None, end_time=start + timedelta(seconds=4)
            )


def _step(execution_id, start):
    job_execution = JobExecution(
        job_name="dbImport", parameters=JobParameters.from_mapping({"wstIden": execution_id, "startDate": 0})
    )
    step_execution = job_execution.create_step_execution("processDbStep")
    step_execution.status = BatchStatus.COMPLETED
    step_execution.start_time = start
    step_execution.end_time = start + timedelta(seconds=2)
    return step_execution


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok"}

    def test_detailed_health_all_healthy(self, client, redis_mock):
        response = client.get("/health/detailed")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "healthy"
        assert set(body["components"]) == {"database", "redis", "batch"}
        assert body["components"]["batch"]["details"] == {"failedJobs": 0, "totalJobs": 0, "maxFailedJobs": 10}
        redis_mock.ping.assert_called_once()

    def test_detailed_health_reports_redis_outage(self, client, redis_mock):
        redis_mock.ping.side_effect = ConnectionError("connection refused")

        response = client.get("/health/detailed")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["components"]["redis"]["status"] == "unhealthy"
        assert "connection refused" in body["components"]["redis"]["message"]
        assert body["components"]["database"]["status"] == "healthy"

    def test_detailed_health_flags_too_many_failed_jobs(self, client, session_factory):
        add_executions(session_factory, ["FAILED"] * 11)

        response = client.get("/health/detailed")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        batch = response.json()["components"]["batch"]
        assert batch["status"] == "unhealthy"
        assert batch["details"]["failedJobs"] == 11


class TestMetrics:
    def test_batch_summary(self, client, session_factory, create_pending):
        add_executions(session_factory, ["COMPLETED", "COMPLETED", "FAILED"])
        create_pending("FID.A")
        errored = create_pending("FID.B")
        with session_scope(session_factory) as session:
            WorkRepository(session).mark_error(errored, "boom")

        response = client.get("/metrics/batch/summary")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["job_status_counts"] == {"COMPLETED": 2, "FAILED": 1}
        assert body["step_durations"] == [
            {"step_name": "processDbStep", "executions": 3, "avg_duration_seconds": 2.0}
        ]
        assert [execution["status"] for execution in body["recent_executions"]] == ["FAILED", "COMPLETED", "COMPLETED"]
        assert body["work_status_counts"]["PENDING"] == 1
        assert body["work_status_counts"]["ERROR"] == 1

    def test_custom_metrics_snapshot(self, client, redis_mock):
        redis_mock.hgetall.side_effect = lambda name: {
            "batch_metrics:counters": {"batch.jobs.total": "3"},
            "batch_metrics:gauges": {},
            "batch_metrics:timers": {},
        }[name]

        response = client.get("/metrics/custom")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"counters": {"batch.jobs.total": 3.0}, "gauges": {}, "timers": {}}
