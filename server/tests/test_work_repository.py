"""Tests for WorkRepository status transitions and claiming."""
from __future__ import annotations

import threading
from datetime import datetime, timedelta

from import_orchestrator.core.db import session_scope
from import_orchestrator.models import WorkStatusCode
from import_orchestrator.services.work_repository import ORPHANED_MESSAGE, WorkRepository


def load(session_factory, wst_iden):
    with session_scope(session_factory) as session:
        return WorkRepository(session).get_by_id(wst_iden)


def claim(session_factory):
    with session_scope(session_factory) as session:
        work_status = WorkRepository(session).claim_next_pending()
        return None if work_status is None else work_status.id


class TestClaim:
    def test_claims_oldest_pending_first(self, session_factory, create_pending):
        first = create_pending("FID.A")
        second = create_pending("FID.B")

        assert claim(session_factory) == first
        assert claim(session_factory) == second
        assert claim(session_factory) is None

    def test_claim_moves_row_to_processing(self, session_factory, create_pending):
        wst_iden = create_pending()

        claim(session_factory)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.PROCESSING
        assert work_status.begin_date is not None

    def test_claim_skips_rows_that_are_not_pending(self, session_factory, create_pending):
        done = create_pending("FID.A")
        with session_scope(session_factory) as session:
            WorkRepository(session).mark_error(done, "gone")
        pending = create_pending("FID.B")

        assert claim(session_factory) == pending

    def test_concurrent_claimers_never_share_a_row(self, session_factory, create_pending):
        expected = {create_pending(f"FID.{index}") for index in range(100)}
        claimed = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                while (wst_iden := claim(session_factory)) is not None:
                    with lock:
                        claimed.append(wst_iden)
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(claimed) == len(set(claimed))
        assert set(claimed) == expected


class TestTransitions:
    def test_mark_processing_keeps_first_begin_date(self, session_factory, create_pending):
        wst_iden = create_pending()
        first = datetime(2024, 1, 1, 8, 0)
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            assert repository.mark_processing(wst_iden, first)
            assert repository.mark_processing(wst_iden, first + timedelta(hours=1))

        assert load(session_factory, wst_iden).begin_date == first

    def test_finish_only_applies_to_processing_rows(self, session_factory, create_pending):
        wst_iden = create_pending()
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            assert not repository.finish(wst_iden, WorkStatusCode.SUCCESS, error_text="", count_lines_errors=0)
            repository.mark_processing(wst_iden, datetime(2024, 1, 1))
            assert repository.finish(
                wst_iden, WorkStatusCode.SUCCESS_WITH_ERRORS, error_text="x" * 2000, count_lines_errors=3
            )

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.SUCCESS_WITH_ERRORS
        assert work_status.count_lines_errors == 3
        assert len(work_status.error_text) == 1000
        assert work_status.end_date is not None

    def test_terminal_rows_never_move(self, session_factory, create_pending):
        wst_iden = create_pending()
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            repository.mark_processing(wst_iden, datetime(2024, 1, 1))
            repository.finish(wst_iden, WorkStatusCode.SUCCESS, error_text="", count_lines_errors=0)

            assert not repository.mark_processing(wst_iden, datetime(2024, 1, 2))
            assert not repository.mark_error(wst_iden, "late failure")
            assert not repository.accumulate_skips(wst_iden, 5)
            assert not repository.finish(wst_iden, WorkStatusCode.ERROR, error_text="again", count_lines_errors=0)

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.SUCCESS
        assert work_status.error_text == ""

    def test_mark_error_accepts_pending_rows(self, session_factory, create_pending):
        wst_iden = create_pending()
        with session_scope(session_factory) as session:
            assert WorkRepository(session).mark_error(wst_iden, "InvalidWorkIdentifier: FID")

        work_status = load(session_factory, wst_iden)
        assert work_status.status is WorkStatusCode.ERROR
        assert work_status.error_text == "InvalidWorkIdentifier: FID"

    def test_accumulate_skips_adds_to_running_total(self, session_factory, create_pending):
        wst_iden = create_pending()
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            repository.mark_processing(wst_iden, datetime(2024, 1, 1))
            repository.accumulate_skips(wst_iden, 2)
            repository.accumulate_skips(wst_iden, 3)

        assert load(session_factory, wst_iden).count_lines_errors == 5


class TestReaper:
    def test_reaps_only_old_processing_rows(self, session_factory, create_pending):
        old = create_pending("FID.OLD")
        recent = create_pending("FID.NEW")
        pending = create_pending("FID.WAIT")
        now = datetime(2024, 1, 1, 12, 0)
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            repository.mark_processing(old, now - timedelta(hours=2))
            repository.mark_processing(recent, now - timedelta(minutes=5))

        with session_scope(session_factory) as session:
            reaped = WorkRepository(session).reap_orphans(now - timedelta(hours=1), now=now)

        assert reaped == 1
        orphan = load(session_factory, old)
        assert orphan.status is WorkStatusCode.ERROR
        assert orphan.error_text == ORPHANED_MESSAGE
        assert orphan.end_date == now
        assert load(session_factory, recent).status is WorkStatusCode.PROCESSING
        assert load(session_factory, pending).status is WorkStatusCode.PENDING


class TestQueries:
    def test_count_by_status_includes_every_status(self, session_factory, create_pending):
        create_pending("FID.A")
        create_pending("FID.B")
        errored = create_pending("FID.C")
        with session_scope(session_factory) as session:
            WorkRepository(session).mark_error(errored, "boom")

        with session_scope(session_factory) as session:
            counts = WorkRepository(session).count_by_status()

        assert counts == {"PENDING": 2, "PROCESSING": 0, "SUCCESS_WITH_ERRORS": 0, "SUCCESS": 0, "ERROR": 1}

    def test_find_works_orders_active_rows(self, session_factory, seed_work):
        seed_work("FID", "second", sort_order=2)
        seed_work("FID", "first", sort_order=1)
        seed_work("OTHER", "other")

        with session_scope(session_factory) as session:
            keys = [work.pipeline_key for work in WorkRepository(session).find_works("FID")]

        assert keys == ["first", "second"]

    def test_lines_are_paged_by_id(self, session_factory, create_pending):
        wst_iden = create_pending(lines=[f"line {index}" for index in range(5)])
        create_pending("FID.OTHER", lines=["noise"])

        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            first_page = repository.get_lines_page(wst_iden, after_id=None, limit=2)
            second_page = repository.get_lines_page(wst_iden, after_id=first_page[-1].id, limit=10)
            texts = [line.text for line in first_page], [line.text for line in second_page]

        assert texts == (["line 0", "line 1"], ["line 2", "line 3", "line 4"])

    def test_line_error_is_stored_truncated(self, session_factory, create_pending):
        wst_iden = create_pending(lines=["a", "b", "c"])
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            lines = repository.get_lines_page(wst_iden, after_id=None, limit=10)
            assert repository.update_import_line_with_error(lines[1].id, "ParseError: " + "x" * 2000)

        with session_scope(session_factory) as session:
            lines = WorkRepository(session).get_lines_page(wst_iden, after_id=None, limit=10)
            errors = [(line.text, line.error_text) for line in lines]

        assert [text for text, _ in errors] == ["a", "b", "c"]
        assert errors[0][1] is None and errors[2][1] is None
        assert errors[1][1].startswith("ParseError: x")
        assert len(errors[1][1]) == 1000
