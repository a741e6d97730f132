"""
JSON preferences document storage.

The preferences document is shared with other parts of the application
(recent directories, filename patterns, ...). This store only OWNS the
`failedOperations` field; every other key is round-tripped unchanged.

Guarantees:
- Read-modify-write cycles are serialized by a lock shared by every
  store instance pointing at the same file
- The document is re-read inside the lock, so concurrent writes to
  unrelated fields are never clobbered
- Writes go to a temp file and are moved into place with os.replace
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..settings import DEFAULT_JOURNAL_CAPACITY
from . import journal as journal_ops
from .errors import LoadError, SaveError
from .journal import Journal

logger = logging.getLogger(__name__)


DEFAULT_PREFERENCES: Dict[str, Any] = {
    journal_ops.DOCUMENT_FIELD: [],
}

_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.RLock()
        return _locks[key]


class PreferencesStore:
    """
    File-backed preferences document.

    Usage:
        store = PreferencesStore(settings.preferences_path)
        store.update_failed_operations(
            lambda journal: journal_ops.add(journal, op)
        )
    """

    def __init__(self, path: str, journal_capacity: int = DEFAULT_JOURNAL_CAPACITY):
        """
        Initialize store.

        Args:
            path: Location of the JSON document (created on first write)
            journal_capacity: Capacity passed to journal.add
        """
        self.path = Path(path).expanduser()
        self.journal_capacity = journal_capacity
        self._lock = _lock_for(self.path)

    # -------------------------------------------------------------------------
    # Whole-document access
    # -------------------------------------------------------------------------

    def load(self) -> Dict[str, Any]:
        """
        Load the document, merged over defaults.

        A missing file yields defaults.

        Raises:
            LoadError: If the file exists but is unreadable or not a JSON object
        """
        with self._lock:
            return self._read()

    def _read(self) -> Dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return dict(DEFAULT_PREFERENCES)
        except OSError as e:
            raise LoadError(f"Cannot read preferences {self.path}: {e}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise LoadError(f"Preferences {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise LoadError(f"Preferences {self.path} must contain a JSON object")

        merged = dict(DEFAULT_PREFERENCES)
        merged.update(data)
        return merged

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".preferences-", suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise SaveError(f"Cannot write preferences {self.path}: {e}") from e

    # -------------------------------------------------------------------------
    # Journal field
    # -------------------------------------------------------------------------

    def get_failed_operations(self) -> Journal:
        return journal_ops.from_document(self.load())

    def update_failed_operations(self, mutate: Callable[[Journal], Journal]) -> Journal:
        """
        Atomically apply a journal transformation.

        The document is re-read under the lock, only `failedOperations`
        is replaced, and the result is written back.

        Args:
            mutate: Pure function from current journal to new journal

        Returns:
            The new journal
        """
        with self._lock:
            document = self._read()
            updated = mutate(journal_ops.from_document(document))
            document[journal_ops.DOCUMENT_FIELD] = journal_ops.to_document(updated)
            self._write(document)
            return updated

    def record_failure(self, op: journal_ops.OperationInput) -> Journal:
        return self.update_failed_operations(
            lambda current: journal_ops.add(current, op, capacity=self.journal_capacity)
        )

    def remove_failure(self, session_id: str, output_path: str) -> Journal:
        return self.update_failed_operations(
            lambda current: journal_ops.remove(current, session_id, output_path)
        )

    def clear_failures(self) -> Journal:
        logger.info("[Journal] Clearing all failed operations")
        return self.update_failed_operations(journal_ops.clear)

    def find_failure(self, session_id: str, output_path: str) -> Optional[journal_ops.FailedOperation]:
        return journal_ops.find(self.get_failed_operations(), session_id, output_path)
