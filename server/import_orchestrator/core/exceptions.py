"""Error kinds raised by the orchestrator.

Every error renders as ``"<Kind>: <detail>"`` so the first line of the message
can be stored on a WorkStatus row as-is. ``SkipLimitExceededError`` is the one
exception: its message starts with ``skip limit exceeded``.
"""
from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""

    kind = "OrchestratorError"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{self.kind}: {detail}")
        self.detail = detail


# Work resolution ----------------------------------------------------------------


class InvalidWorkIdentifierError(OrchestratorError):
    kind = "InvalidWorkIdentifier"


class WorkNotFoundError(OrchestratorError):
    kind = "WorkNotFound"


class JobNotFoundError(OrchestratorError):
    kind = "JobNotFound"


class DuplicatePipelineKeyError(OrchestratorError):
    kind = "DuplicatePipelineKey"


class JobParametersInvalidError(OrchestratorError):
    kind = "JobParametersInvalid"


class JobInstanceAlreadyCompleteError(OrchestratorError):
    kind = "JobInstanceAlreadyComplete"


class MappingError(OrchestratorError):
    """A mapping definition cannot be compiled."""

    kind = "MappingError"


class MappingNotFoundError(OrchestratorError):
    kind = "MappingNotFound"


# Per-item errors -----------------------------------------------------------------


class ItemError(OrchestratorError):
    """An error confined to a single item; eligible for the skip path."""

    kind = "ItemError"


class MandatoryBlankError(ItemError):
    kind = "MandatoryBlank"

    def __init__(self, property_name: str, field_type: str) -> None:
        super().__init__(f"Mandatory field '{property_name}' ({field_type}) is blank.")
        self.property_name = property_name


class LineTooShortError(ItemError):
    kind = "LineTooShort"

    def __init__(self, property_name: str, end: int, line_length: int) -> None:
        super().__init__(
            f"Field '{property_name}' ends at column {end} but the line is {line_length} characters long."
        )
        self.property_name = property_name


class ParseError(ItemError):
    kind = "ParseError"

    def __init__(self, property_name: str, raw: str, reason: str) -> None:
        super().__init__(f"Cannot parse field '{property_name}' from {raw!r}: {reason}")
        self.property_name = property_name
        self.raw = raw


class TransformerError(ItemError):
    kind = "TransformerError"


# Transport and lifecycle ------------------------------------------------------


class TransientDBError(OrchestratorError):
    kind = "TransientDB"


class WriteConflictError(OrchestratorError):
    kind = "WriteConflict"


class JobCancelledError(OrchestratorError):
    kind = "Cancelled"


class SkipLimitExceededError(Exception):
    """Raised when a step has used up its skip budget."""

    def __init__(self, skip_limit: int, cause: BaseException) -> None:
        super().__init__(f"skip limit exceeded: limit of {skip_limit} reached, last error: {cause}")
        self.skip_limit = skip_limit
        self.cause = cause


NON_SKIPPABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransientDBError,
    WriteConflictError,
    JobCancelledError,
)


def first_line(message: str | None, limit: int = 1000) -> str:
    """Return the first line of ``message`` truncated to ``limit`` characters."""
    text = (message or "").strip()
    return text.splitlines()[0][:limit] if text else ""


def truncate(message: str | None, limit: int = 1000) -> str | None:
    if message is None:
        return None
    return message[:limit]
