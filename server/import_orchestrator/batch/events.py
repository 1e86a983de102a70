"""Listener hooks and their dispatcher."""
from __future__ import annotations

import logging
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class BatchListener:
    """No-op base for job, step, chunk and skip hooks.

    Subclasses override only the hooks they care about. Listeners do not have
    to inherit from this class; the bus looks hooks up by name.
    """

    def before_job(self, job_execution) -> None:
        pass

    def after_job(self, job_execution) -> None:
        pass

    def before_step(self, step_execution) -> None:
        pass

    def after_step(self, step_execution) -> None:
        pass

    def before_chunk(self, step_execution) -> None:
        pass

    def after_chunk(self, step_execution) -> None:
        pass

    def on_chunk_error(self, step_execution, error: BaseException) -> None:
        pass

    def on_skip_in_read(self, error: BaseException) -> None:
        pass

    def on_skip_in_process(self, item: Any, error: BaseException) -> None:
        pass

    def on_skip_in_write(self, item: Any, error: BaseException) -> None:
        pass


class EventBus:
    """Calls a hook on every listener in registration order.

    A listener that raises is logged and the remaining listeners still run.
    """

    def __init__(self, listeners: Iterable[Any] = ()) -> None:
        self._listeners = list(listeners)

    @property
    def listeners(self) -> list[Any]:
        return list(self._listeners)

    def register(self, listener: Any) -> None:
        self._listeners.append(listener)

    def dispatch(self, hook: str, *args: Any) -> None:
        for listener in self._listeners:
            callback = getattr(listener, hook, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Listener {type(listener).__name__}.{hook} raised; continuing")
