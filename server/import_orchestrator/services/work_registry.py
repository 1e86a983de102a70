"""Resolution of work identifiers to the works registered for them."""
from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.core.db import session_scope, translate_db_errors
from import_orchestrator.core.exceptions import InvalidWorkIdentifierError, WorkNotFoundError
from import_orchestrator.models.work import Work

from .work_repository import WorkRepository


def parse_work_identifier(work_iden: str | None) -> str:
    """Return the file identifier: the first non-empty dot-separated token of ``work_iden``.

    ``"FID"`` and ``"FID.V1.X"`` both yield ``"FID"``.

    Raises:
        InvalidWorkIdentifierError: if ``work_iden`` has no non-empty token
    """
    for token in (work_iden or "").split("."):
        if token:
            return token
    raise InvalidWorkIdentifierError(f"'{work_iden}' has no file identifier")


class WorkRegistry:
    """Looks up the active works of a file identifier in run order."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def find_works(self, file_iden: str) -> list[Work]:
        with translate_db_errors("find works"), session_scope(self._session_factory) as session:
            return WorkRepository(session).find_works(file_iden)

    def resolve(self, work_iden: str) -> list[Work]:
        """Parse ``work_iden`` and return its works.

        Raises:
            InvalidWorkIdentifierError: if the identifier is malformed
            WorkNotFoundError: if no active work is registered
        """
        file_iden = parse_work_identifier(work_iden)
        works = self.find_works(file_iden)
        if not works:
            raise WorkNotFoundError(f"no work registered for file identifier '{file_iden}'")
        return works
