"""
Persistence for the failed-operation journal.

The journal is stored in the JSON preferences document under
`failedOperations`. Journal logic is pure (journal.py); file access is
PreferencesStore's job.
"""

from .errors import PersistenceError, LoadError, SaveError, JournalValidationError
from .journal import FailedOperation
from .preferences import PreferencesStore

__all__ = [
    "PersistenceError",
    "LoadError",
    "SaveError",
    "JournalValidationError",
    "FailedOperation",
    "PreferencesStore",
]
