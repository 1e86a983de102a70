"""Tests for the Celery tasks and worker signal handlers."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

from import_orchestrator.tasks import celery_app, poll_pending_work
from import_orchestrator.tasks.scheduler_tasks import reap_on_worker_ready, stop_on_worker_shutdown


def test_beat_polls_on_the_scheduler_queue():
    entry = celery_app.conf.beat_schedule["poll-pending-work"]

    assert entry["task"] == poll_pending_work.name
    assert entry["options"]["queue"] == "scheduler_queue"


@patch("import_orchestrator.tasks.scheduler_tasks.get_scheduler")
def test_poll_pending_work_returns_claimed_id(mock_get_scheduler):
    mock_get_scheduler.return_value.tick.return_value = MagicMock(id=42)

    assert poll_pending_work.run() == 42


@patch("import_orchestrator.tasks.scheduler_tasks.get_scheduler")
def test_poll_pending_work_when_idle(mock_get_scheduler):
    mock_get_scheduler.return_value.tick.return_value = None

    assert poll_pending_work.run() is None


@patch("import_orchestrator.tasks.scheduler_tasks.get_scheduler")
def test_worker_ready_reaps_orphans(mock_get_scheduler):
    reap_on_worker_ready()

    mock_get_scheduler.return_value.reap_orphans.assert_called_once_with()


@patch("import_orchestrator.tasks.scheduler_tasks.get_scheduler")
def test_worker_ready_survives_reaper_failure(mock_get_scheduler):
    mock_get_scheduler.return_value.reap_orphans.side_effect = RuntimeError("db down")

    reap_on_worker_ready()


@patch("import_orchestrator.tasks.scheduler_tasks.get_scheduler")
def test_worker_shutdown_stops_scheduler(mock_get_scheduler):
    stop_on_worker_shutdown()

    mock_get_scheduler.return_value.stop.assert_called_once_with()


def test_worker_runs_ticks_in_the_signalled_process():
    assert celery_app.conf.worker_pool == "solo"
    assert celery_app.conf.worker_concurrency == 1
