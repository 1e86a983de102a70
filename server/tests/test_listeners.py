"""Tests for skip bookkeeping, work status and metrics listeners."""
from __future__ import annotations

from datetime import datetime
from unittest.mock import call

import pytest

from import_orchestrator.batch import BatchStatus, JobExecution
from import_orchestrator.core.db import session_scope
from import_orchestrator.core.exceptions import MandatoryBlankError, ParseError
from import_orchestrator.models import ImportLine, WorkStatusCode
from import_orchestrator.schemas.job_parameters import JobParameters
from import_orchestrator.services.listeners import (
    COMPLETED_WITH_SKIPS_MESSAGE,
    SKIPPED_ITEMS_KEY,
    ChunkErrorListener,
    JobCompletionListener,
    MetricsChunkListener,
    MetricsJobListener,
    MetricsStepListener,
    SkipPhase,
)
from import_orchestrator.services.work_repository import WorkRepository


def job_for(wst_iden, *, final_work=True, skips=0, status=BatchStatus.COMPLETED, failure=None):
    parameters = JobParameters.from_mapping({"wstIden": wst_iden, "startDate": 0, "finalWork": final_work})
    job_execution = JobExecution(job_name="dbImport", parameters=parameters)
    job_execution.start_time = datetime(2024, 1, 1, 8, 0)
    step_execution = job_execution.create_step_execution("processDbStep")
    step_execution.process_skip_count = skips
    if failure is not None:
        step_execution.failure_exceptions.append(failure)
    job_execution.status = status
    job_execution.end_time = datetime(2024, 1, 1, 8, 5)
    return job_execution


def load(session_factory, wst_iden):
    with session_scope(session_factory) as session:
        return WorkRepository(session).get_by_id(wst_iden)


class TestChunkErrorListener:
    def test_stamps_error_text_and_stores_items_after_step(self):
        listener = ChunkErrorListener()
        line = ImportLine(id=1, wst_iden=1, text="x")
        error = MandatoryBlankError("name", "STRING")

        listener.on_skip_in_process(line, error)
        listener.on_skip_in_read(ParseError("line", "??", "unreadable"))

        job_execution = job_for(1)
        step_execution = job_execution.step_executions[0]
        listener.after_step(step_execution)

        assert line.error_text == str(error)
        skipped = step_execution.execution_context.get(SKIPPED_ITEMS_KEY)
        assert [(entry.item, entry.phase) for entry in skipped] == [(line, SkipPhase.PROCESS), (None, SkipPhase.READ)]

    def test_truncates_long_messages(self):
        listener = ChunkErrorListener()
        line = ImportLine(id=1, wst_iden=1, text="x")

        listener.on_skip_in_write(line, ParseError("name", "x" * 2000, "too long"))

        assert len(line.error_text) == 1000
        assert listener.skipped_items[0].phase is SkipPhase.WRITE


class TestJobCompletionListener:
    def test_before_job_marks_processing(self, session_factory, create_pending):
        wst_iden = create_pending()

        JobCompletionListener(session_factory).before_job(job_for(wst_iden))

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.PROCESSING
        assert work_status.begin_date == datetime(2024, 1, 1, 8, 0)

    @pytest.mark.parametrize(
        "skips, expected_status, expected_text",
        [
            (0, WorkStatusCode.SUCCESS, ""),
            (3, WorkStatusCode.SUCCESS_WITH_ERRORS, COMPLETED_WITH_SKIPS_MESSAGE),
        ],
    )
    def test_final_completed_job_finishes_row(
        self, session_factory, create_pending, skips, expected_status, expected_text
    ):
        wst_iden = create_pending()
        listener = JobCompletionListener(session_factory)
        job_execution = job_for(wst_iden, skips=skips)

        listener.before_job(job_execution)
        listener.after_job(job_execution)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is expected_status
        assert work_status.error_text == expected_text
        assert work_status.count_lines_errors == skips
        assert work_status.end_date == datetime(2024, 1, 1, 8, 5)

    def test_non_final_work_accumulates_and_stays_processing(self, session_factory, create_pending):
        wst_iden = create_pending()
        listener = JobCompletionListener(session_factory)

        first = job_for(wst_iden, final_work=False, skips=2)
        listener.before_job(first)
        listener.after_job(first)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.PROCESSING
        assert work_status.count_lines_errors == 2

        last = job_for(wst_iden, final_work=True, skips=1)
        listener.before_job(last)
        listener.after_job(last)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.SUCCESS_WITH_ERRORS
        assert work_status.count_lines_errors == 3

    def test_failed_job_records_first_error(self, session_factory, create_pending):
        wst_iden = create_pending()
        listener = JobCompletionListener(session_factory)
        job_execution = job_for(wst_iden, status=BatchStatus.FAILED, failure=RuntimeError("disk full"))

        listener.before_job(job_execution)
        listener.after_job(job_execution)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.ERROR
        assert work_status.error_text == "disk full"

    def test_stopped_job_leaves_row_processing(self, session_factory, create_pending):
        wst_iden = create_pending()
        listener = JobCompletionListener(session_factory)
        job_execution = job_for(wst_iden, status=BatchStatus.STOPPED, skips=1)

        listener.before_job(job_execution)
        listener.after_job(job_execution)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.PROCESSING
        assert work_status.count_lines_errors == 1

    def test_terminal_row_is_left_alone(self, session_factory, create_pending):
        wst_iden = create_pending()
        with session_scope(session_factory) as session:
            WorkRepository(session).mark_error(wst_iden, "reaped")
        listener = JobCompletionListener(session_factory)
        job_execution = job_for(wst_iden)

        listener.before_job(job_execution)
        listener.after_job(job_execution)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.ERROR
        assert work_status.error_text == "reaped"


class TestMetricsListeners:
    def test_job_listener_counts_and_times_jobs(self, metrics, redis_mock):
        listener = MetricsJobListener(metrics)
        job_execution = job_for(1)

        listener.before_job(job_execution)
        listener.after_job(job_execution)

        redis_mock.hincrbyfloat.assert_has_calls(
            [
                call("test_metrics:counters", "batch.jobs.total", 1.0),
                call("test_metrics:counters", "batch.jobs.by.name{jobName=dbImport}", 1.0),
                call("test_metrics:gauges", "batch.jobs.active", 1),
                call("test_metrics:gauges", "batch.jobs.active", -1),
                call(
                    "test_metrics:timers",
                    "batch.job.execution.duration{jobName=dbImport,status=COMPLETED}:count",
                    1,
                ),
            ]
        )

    def test_step_listener_records_items_and_skips(self, metrics, redis_mock):
        listener = MetricsStepListener(metrics)
        step_execution = job_for(1, skips=2).step_executions[0]
        step_execution.read_count = 10
        step_execution.write_count = 8
        step_execution.status = BatchStatus.COMPLETED

        listener.before_step(step_execution)
        listener.after_step(step_execution)

        calls = redis_mock.hincrbyfloat.call_args_list
        assert call("test_metrics:counters", "batch.items.read", 10) in calls
        assert call("test_metrics:counters", "batch.items.written", 8) in calls
        assert (
            call(
                "test_metrics:counters",
                "batch.items.skipped.by.type{skipType=process,stepName=processDbStep}",
                2,
            )
            in calls
        )
        assert not [c for c in calls if "batch.errors.total" in c.args]

    def test_step_listener_counts_failure_type(self, metrics, redis_mock):
        listener = MetricsStepListener(metrics)
        step_execution = job_for(1, failure=RuntimeError("x")).step_executions[0]
        step_execution.status = BatchStatus.FAILED

        listener.before_step(step_execution)
        listener.after_step(step_execution)

        assert (
            call(
                "test_metrics:counters",
                "batch.errors.by.type{errorType=RuntimeError,stepName=processDbStep}",
                1.0,
            )
            in redis_mock.hincrbyfloat.call_args_list
        )

    def test_chunk_listener_times_chunks(self, metrics, redis_mock):
        listener = MetricsChunkListener(metrics, chunk_size=100)
        step_execution = job_for(1).step_executions[0]

        listener.before_chunk(step_execution)
        listener.after_chunk(step_execution)

        assert (
            call(
                "test_metrics:timers",
                "batch.chunk.processing.duration{chunkSize=100,stepName=processDbStep}:count",
                1,
            )
            in redis_mock.hincrbyfloat.call_args_list
        )

    def test_redis_failures_do_not_escape(self, metrics, redis_mock):
        redis_mock.hincrbyfloat.side_effect = ConnectionError("redis down")
        listener = MetricsJobListener(metrics)
        job_execution = job_for(1)

        listener.before_job(job_execution)
        listener.after_job(job_execution)
