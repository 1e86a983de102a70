"""Skip decisions for fault-tolerant steps."""
from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from import_orchestrator.core.exceptions import NON_SKIPPABLE_ERRORS, SkipLimitExceededError

ExceptionTypes = tuple[type[BaseException], ...]


class SkipPolicy:
    """Decides whether an item error may be skipped within the step's budget."""

    def __init__(
        self,
        skip_limit: int = 0,
        skippable: ExceptionTypes = (),
        non_skippable: ExceptionTypes = NON_SKIPPABLE_ERRORS + (SQLAlchemyError, SkipLimitExceededError),
    ) -> None:
        if skip_limit < 0:
            raise ValueError("skip_limit must be >= 0")
        self.skip_limit = skip_limit
        self.skippable = tuple(skippable)
        self.non_skippable = tuple(non_skippable)

    def is_skippable(self, error: BaseException) -> bool:
        if isinstance(error, self.non_skippable):
            return False
        return isinstance(error, self.skippable)

    def should_skip(self, error: BaseException, skip_count: int) -> bool:
        """Return True when ``error`` may be skipped given ``skip_count`` skips so far.

        Raises ``SkipLimitExceededError`` when the error is skippable but the
        budget is used up.
        """
        if not self.is_skippable(error):
            return False
        if skip_count < self.skip_limit:
            return True
        raise SkipLimitExceededError(self.skip_limit, error) from error


NEVER_SKIP = SkipPolicy()
