"""Generic readers and writers for chunk-oriented steps."""
from __future__ import annotations

from collections import deque
from typing import Any, Iterable

from sqlalchemy.orm import Session

from import_orchestrator.core.db import translate_db_errors

from .context import StepExecution


class ListItemReader:
    """Reads items from an in-memory iterable, one at a time."""

    def __init__(self, items: Iterable[Any]) -> None:
        self._items = deque(items)

    def read(self) -> Any | None:
        if not self._items:
            return None
        return self._items.popleft()


class SkippedItemsReader:
    """Reads the items stored by an earlier step under a job context key.

    The list is taken from the job execution context when the step opens. An
    entry may be a raw item or an object carrying it in an ``item`` attribute;
    ``item_type`` keeps only items of that type.
    """

    def __init__(self, context_key: str, *, item_type: type | None = None) -> None:
        self.context_key = context_key
        self.item_type = item_type
        self._items: deque[Any] = deque()

    def open(self, step_execution: StepExecution) -> None:
        entries = step_execution.job_execution.execution_context.get(self.context_key) or []
        items = [getattr(entry, "item", entry) for entry in entries]
        if self.item_type is not None:
            items = [item for item in items if isinstance(item, self.item_type)]
        self._items = deque(items)

    def read(self) -> Any | None:
        if not self._items:
            return None
        return self._items.popleft()

    def close(self) -> None:
        self._items.clear()


class OrmItemWriter:
    """Adds ORM objects to the chunk session and flushes them."""

    def write(self, items: list[Any], session: Session) -> None:
        with translate_db_errors("write items"):
            session.add_all(items)
            session.flush()
