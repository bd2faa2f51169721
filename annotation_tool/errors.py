"""Domain errors raised by the data-access layer.

There is no "not found" error: lookups, updates and deletes signal a
missing row by returning ``None`` / ``False``.
"""

from __future__ import annotations

from typing import Iterable, Optional, Union


class AnnotationToolError(Exception):
    """Base class for every error the core raises on purpose."""


class ValidationError(AnnotationToolError):
    """Input failed schema, type or range checks before any write."""

    def __init__(self, errors: Union[str, Iterable[str]]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: list[str] = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class ConstraintViolation(AnnotationToolError):
    """The engine rejected a write (uniqueness, foreign key, check)."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        constraint: Optional[str] = None,
    ):
        self.table = table
        self.constraint = constraint
        super().__init__(message)


class AlreadyExistsError(AnnotationToolError):
    """A create targeted a combination that must stay unique (no reuse)."""


class DatabaseBusyError(AnnotationToolError):
    """Another writer holds the database lock; the call may be retried."""

    retryable = True
