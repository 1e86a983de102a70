"""Reader, processor and writer for the import lines of one work status."""
from __future__ import annotations

import logging
from collections import deque
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.core.db import session_scope, translate_db_errors
from import_orchestrator.models.import_line import ImportLine

from .mapping_engine import CompiledMapping, FieldSpec
from .work_repository import WorkRepository

logger = logging.getLogger(__name__)


class ImportLineReader:
    """Reads the lines of one work status in id order, a page at a time.

    Each page is fetched in its own short transaction using keyset paging, so
    the reader never holds a connection across chunk boundaries.
    """

    def __init__(self, session_factory: sessionmaker[Session], wst_iden: int, *, page_size: int = 100) -> None:
        self._session_factory = session_factory
        self.wst_iden = wst_iden
        self.page_size = page_size
        self._buffer: deque[ImportLine] = deque()
        self._last_id: int | None = None
        self._exhausted = False

    def open(self, step_execution: Any = None) -> None:
        self._buffer.clear()
        self._last_id = None
        self._exhausted = False

    def read(self) -> ImportLine | None:
        if not self._buffer and not self._exhausted:
            self._fetch_page()
        if not self._buffer:
            return None
        return self._buffer.popleft()

    def _fetch_page(self) -> None:
        with translate_db_errors("read import lines"), session_scope(self._session_factory) as session:
            lines = WorkRepository(session).get_lines_page(
                self.wst_iden, after_id=self._last_id, limit=self.page_size
            )
        if len(lines) < self.page_size:
            self._exhausted = True
        if lines:
            self._last_id = lines[-1].id
            self._buffer.extend(lines)
        logger.debug(f"Fetched {len(lines)} import lines of work status {self.wst_iden}")


class ImportLineProcessor:
    """Turns an import line into a target record through a compiled mapping."""

    def __init__(self, mapping: CompiledMapping) -> None:
        self.mapping = mapping
        self._stamp_work_status = hasattr(mapping.target_type, "wst_iden")

    def process(self, line: ImportLine) -> Any | None:
        if line is None or not line.text:
            return None
        record = self.mapping.apply(line.text)
        if record is not None and self._stamp_work_status:
            record.wst_iden = line.wst_iden
        return record


class ImportLineErrorWriter:
    """Persists the skip reason stored on each line's ``error_text``."""

    def write(self, items: list[ImportLine], session: Session) -> None:
        with translate_db_errors("update import line errors"):
            repository = WorkRepository(session)
            for line in items:
                repository.update_import_line_with_error(line.id, line.error_text)


def mapping_loader(session_factory: sessionmaker[Session]) -> Callable[[str], list[FieldSpec] | None]:
    """Build a loader that reads a mapping definition in its own transaction."""

    def load(mapping_id: str) -> list[FieldSpec] | None:
        with translate_db_errors(f"load mapping {mapping_id}"), session_scope(session_factory) as session:
            mapping = WorkRepository(session).get_mapping(mapping_id)
            if mapping is None:
                return None
            return [FieldSpec.from_model(field) for field in mapping.fields]

    return load
