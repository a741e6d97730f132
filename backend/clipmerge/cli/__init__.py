"""
CLI control surface for operators.

Provides explicit commands:
- analyze: Show how files would be grouped
- merge: Group and merge
- failed: List, clear or retry journaled failures
- classify: Explain a raw failure message
"""

from .commands import (
    analyze_paths,
    merge_paths,
    list_failed_operations,
    clear_failed_operations,
    retry_failed_operation,
    classify_text,
)
from .errors import CLIError, ValidationError

__all__ = [
    "analyze_paths",
    "merge_paths",
    "list_failed_operations",
    "clear_failed_operations",
    "retry_failed_operation",
    "classify_text",
    "CLIError",
    "ValidationError",
]
