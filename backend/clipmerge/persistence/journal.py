"""
Failed-operation journal.

A capacity-capped, deduplicated list of merge jobs that failed, kept so
they can be inspected or retried without regrouping.

All functions here are PURE: they take a journal (list of
FailedOperation) and return a new list. Inputs are never mutated.
Durable storage is PreferencesStore's job.

Rules:
- Identity is (session_id, output_path). The same session id can target
  different outputs when it came from different directories.
- Re-adding an existing identity replaces files/error/timestamp and
  increments retry_count. Its position (insertion order) is unchanged.
- Beyond capacity, the OLDEST-INSERTED entry is evicted (FIFO), never
  the one just added.
- Display ordering is the caller's concern (see most_recent_first).
"""

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..settings import DEFAULT_JOURNAL_CAPACITY
from .errors import JournalValidationError

logger = logging.getLogger(__name__)


# Key of the journal inside the preferences document
DOCUMENT_FIELD = "failedOperations"


class FailedOperation(BaseModel):
    """
    One failed merge.

    Serialized with camelCase keys (sessionId, outputPath, retryCount)
    to match the preferences document.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    session_id: str = Field(alias="sessionId")
    output_path: str = Field(alias="outputPath")
    files: List[str] = Field(default_factory=list)
    error: str = ""
    timestamp: float = Field(default_factory=lambda: time.time() * 1000)
    retry_count: int = Field(default=0, ge=0, alias="retryCount")

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.session_id, self.output_path)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


Journal = List[FailedOperation]
OperationInput = Union[FailedOperation, Mapping[str, Any]]


def _coerce(op: OperationInput) -> FailedOperation:
    """
    Validate an incoming operation.

    Raises:
        JournalValidationError: If session_id or output_path is missing,
            empty, or not a string, or the record is malformed
    """
    if isinstance(op, FailedOperation):
        data: Mapping[str, Any] = op.model_dump()
    elif isinstance(op, Mapping):
        data = op
    else:
        raise JournalValidationError(f"Unsupported operation type: {type(op).__name__}")

    for snake, camel in (("session_id", "sessionId"), ("output_path", "outputPath")):
        value = data.get(snake, data.get(camel))
        if not isinstance(value, str) or not value:
            raise JournalValidationError(f"{camel} must be a non-empty string, got {value!r}")

    try:
        return FailedOperation.model_validate(dict(data))
    except ValidationError as e:
        raise JournalValidationError(f"Invalid failed operation: {e}") from e


def add(
    journal: Sequence[FailedOperation],
    op: OperationInput,
    capacity: int = DEFAULT_JOURNAL_CAPACITY,
) -> Journal:
    """
    Record a failure.

    Args:
        journal: Current journal (not modified)
        op: FailedOperation or mapping with camelCase or snake_case keys
        capacity: Maximum number of entries kept

    Returns:
        New journal

    Raises:
        JournalValidationError: If the operation identity is incomplete
    """
    incoming = _coerce(op)
    key = incoming.identity

    updated: Journal = list(journal)
    for index, existing in enumerate(updated):
        if existing.identity == key:
            updated[index] = existing.model_copy(update={
                "files": list(incoming.files),
                "error": incoming.error,
                "timestamp": incoming.timestamp,
                "retry_count": existing.retry_count + 1,
            })
            logger.info(
                f"[Journal] Session {key[0]} failed again "
                f"(retry {existing.retry_count + 1}): {key[1]}"
            )
            return updated

    updated.append(incoming.model_copy(update={"retry_count": 0}))

    # FIFO eviction; the newest entry sits at the end and is never chosen
    while len(updated) > capacity:
        evicted = updated.pop(0)
        logger.info(f"[Journal] Evicted oldest entry: session {evicted.session_id}")

    return updated


def remove(journal: Sequence[FailedOperation], session_id: str, output_path: str) -> Journal:
    """Remove the matching entry; return the journal unchanged if absent."""
    key = (session_id, output_path)
    return [op for op in journal if op.identity != key]


def find(
    journal: Sequence[FailedOperation],
    session_id: str,
    output_path: str,
) -> Optional[FailedOperation]:
    key = (session_id, output_path)
    for op in journal:
        if op.identity == key:
            return op
    return None


def get_all(journal: Sequence[FailedOperation]) -> Journal:
    return list(journal)


def clear(journal: Sequence[FailedOperation]) -> Journal:
    return []


def most_recent_first(journal: Sequence[FailedOperation]) -> Journal:
    """Presentation order: newest failure first."""
    return sorted(journal, key=lambda op: op.timestamp, reverse=True)


# -----------------------------------------------------------------------------
# Document conversion
# -----------------------------------------------------------------------------

def from_document(document: Mapping[str, Any]) -> Journal:
    """
    Read the journal out of a preferences document.

    Malformed records are skipped with a warning so one bad entry never
    hides the rest.
    """
    raw = document.get(DOCUMENT_FIELD) or []
    if not isinstance(raw, list):
        logger.warning(f"[Journal] Ignoring non-list {DOCUMENT_FIELD}: {type(raw).__name__}")
        return []

    journal: Journal = []
    for record in raw:
        try:
            journal.append(_coerce(record))
        except JournalValidationError as e:
            logger.warning(f"[Journal] Skipping malformed record: {e}")
    return journal


def to_document(journal: Sequence[FailedOperation]) -> List[Dict[str, Any]]:
    """Serialize the journal for the preferences document."""
    return [op.to_document() for op in journal]
