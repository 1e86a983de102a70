"""Data access for work status rows, import lines, works and mappings."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from import_orchestrator.core.db import utcnow
from import_orchestrator.core.exceptions import truncate
from import_orchestrator.models.import_line import ImportLine
from import_orchestrator.models.mapping import Mapping
from import_orchestrator.models.work import Work
from import_orchestrator.models.work_status import WorkStatus, WorkStatusCode

ORPHANED_MESSAGE = "orphaned by restart"

_OPEN_STATUSES = (int(WorkStatusCode.PENDING), int(WorkStatusCode.PROCESSING))


class WorkRepository:
    """Handles queries and conditional updates for WorkStatus and related rows.

    Methods never commit; the caller owns the transaction (usually through
    ``session_scope``). Every status update is conditional on the current
    status so a row never moves back out of a terminal state.
    """

    def __init__(self, session: Session) -> None:
        """Initialize repository with a SQLAlchemy session.

        Args:
            session: Active database session for executing queries
        """
        self._session = session

    # WorkStatus lifecycle ---------------------------------------------------------

    def create_work_status(self, work_iden: str, *, file_iden: str | None = None) -> WorkStatus:
        """Insert a PENDING work status request.

        Args:
            work_iden: Dotted work identifier, e.g. ``"ORDERS.2024-01-01"``
            file_iden: Optional file identifier kept for reference

        Returns:
            The flushed WorkStatus with its generated id
        """
        work_status = WorkStatus(
            work_iden=work_iden,
            file_iden=file_iden,
            status_code=int(WorkStatusCode.PENDING),
            creation_date=utcnow(),
            count_lines_errors=0,
        )
        self._session.add(work_status)
        self._session.flush()
        return work_status

    def get_by_id(self, wst_iden: int) -> WorkStatus | None:
        return self._session.get(WorkStatus, wst_iden)

    def claim_next_pending(self, now: datetime | None = None) -> WorkStatus | None:
        """Atomically move the oldest PENDING row to PROCESSING.

        The candidate is selected with ``FOR UPDATE SKIP LOCKED`` and the update
        re-checks the status, so concurrent claimers never get the same row.

        Args:
            now: Begin date to stamp; defaults to the current UTC time

        Returns:
            The claimed WorkStatus, or None when nothing is pending
        """
        candidate = (
            select(WorkStatus.id)
            .where(WorkStatus.status_code == int(WorkStatusCode.PENDING))
            .order_by(WorkStatus.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(WorkStatus)
            .where(WorkStatus.id == candidate, WorkStatus.status_code == int(WorkStatusCode.PENDING))
            .values(status_code=int(WorkStatusCode.PROCESSING), begin_date=now or utcnow())
            .returning(WorkStatus)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).scalars().first()

    def mark_processing(self, wst_iden: int, begin_date: datetime) -> bool:
        """Set PROCESSING and keep the first begin date; no-op once terminal."""
        stmt = (
            update(WorkStatus)
            .where(WorkStatus.id == wst_iden, WorkStatus.status_code.in_(_OPEN_STATUSES))
            .values(
                status_code=int(WorkStatusCode.PROCESSING),
                begin_date=func.coalesce(WorkStatus.begin_date, begin_date),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount > 0

    def accumulate_skips(self, wst_iden: int, count: int) -> bool:
        """Add ``count`` skipped lines to a row that is still PROCESSING."""
        stmt = (
            update(WorkStatus)
            .where(WorkStatus.id == wst_iden, WorkStatus.status_code == int(WorkStatusCode.PROCESSING))
            .values(count_lines_errors=WorkStatus.count_lines_errors + count)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount > 0

    def finish(
        self,
        wst_iden: int,
        status: WorkStatusCode,
        *,
        error_text: str | None,
        count_lines_errors: int,
        end_date: datetime | None = None,
    ) -> bool:
        """Move a PROCESSING row to a terminal status.

        Args:
            wst_iden: WorkStatus identifier
            status: Terminal status to set
            error_text: Message stored on the row (truncated to 1000 characters)
            count_lines_errors: Total number of skipped lines
            end_date: Defaults to the current UTC time

        Returns:
            True if the row was updated, False if it was no longer PROCESSING
        """
        stmt = (
            update(WorkStatus)
            .where(WorkStatus.id == wst_iden, WorkStatus.status_code == int(WorkStatusCode.PROCESSING))
            .values(
                status_code=int(status),
                error_text=truncate(error_text),
                count_lines_errors=count_lines_errors,
                end_date=end_date or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount > 0

    def mark_error(self, wst_iden: int, error_text: str, *, end_date: datetime | None = None) -> bool:
        """Set ERROR on a row that has not reached a terminal status yet."""
        stmt = (
            update(WorkStatus)
            .where(WorkStatus.id == wst_iden, WorkStatus.status_code.in_(_OPEN_STATUSES))
            .values(
                status_code=int(WorkStatusCode.ERROR),
                error_text=truncate(error_text),
                end_date=end_date or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount > 0

    def reap_orphans(self, cutoff: datetime, *, now: datetime | None = None) -> int:
        """Fail PROCESSING rows whose begin date is older than ``cutoff``.

        Returns:
            Number of rows moved to ERROR
        """
        stmt = (
            update(WorkStatus)
            .where(
                WorkStatus.status_code == int(WorkStatusCode.PROCESSING),
                WorkStatus.begin_date < cutoff,
            )
            .values(
                status_code=int(WorkStatusCode.ERROR),
                error_text=ORPHANED_MESSAGE,
                end_date=now or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount

    def count_by_status(self) -> dict[str, int]:
        """Return row counts keyed by status name, including zero counts."""
        counts = {code.name: 0 for code in WorkStatusCode}
        rows = self._session.execute(
            select(WorkStatus.status_code, func.count()).group_by(WorkStatus.status_code)
        ).all()
        for status_code, count in rows:
            try:
                counts[WorkStatusCode(status_code).name] = count
            except ValueError:
                counts[str(status_code)] = count
        return counts

    # Works and mappings --------------------------------------------------------------

    def find_works(self, file_iden: str) -> list[Work]:
        """Active works registered for a file identifier, in run order."""
        stmt = (
            select(Work)
            .where(Work.file_iden == file_iden, Work.is_active.is_(True))
            .order_by(Work.sort_order, Work.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_mapping(self, mapping_id: str) -> Mapping | None:
        return self._session.get(Mapping, mapping_id)

    # Import lines --------------------------------------------------------------------

    def add_import_lines(self, wst_iden: int, texts: Iterable[str | None]) -> list[ImportLine]:
        lines = [ImportLine(wst_iden=wst_iden, text=text) for text in texts]
        self._session.add_all(lines)
        self._session.flush()
        return lines

    def get_lines_page(self, wst_iden: int, *, after_id: int | None, limit: int) -> Sequence[ImportLine]:
        """Fetch the next page of lines of one work status using keyset paging.

        Args:
            wst_iden: WorkStatus identifier
            after_id: Last line id already returned, or None for the first page
            limit: Page size

        Returns:
            Up to ``limit`` lines ordered by id
        """
        stmt = select(ImportLine).where(ImportLine.wst_iden == wst_iden)
        if after_id is not None:
            stmt = stmt.where(ImportLine.id > after_id)
        stmt = stmt.order_by(ImportLine.id).limit(limit)
        return self._session.execute(stmt).scalars().all()

    def update_import_line_with_error(self, line_id: int, error_text: str | None) -> bool:
        """Store the skip reason on an import line."""
        stmt = (
            update(ImportLine)
            .where(ImportLine.id == line_id)
            .values(error_text=truncate(error_text))
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount > 0
