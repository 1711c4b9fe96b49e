"""
Error taxonomy for cellpad.
"""

from pathlib import Path
from typing import Optional


class CellpadError(Exception):
    """Base class for all cellpad errors."""


class MalformedDocument(CellpadError):
    """The notebook JSON does not have the expected shape."""


class _PathError(CellpadError):
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class UnreadableSource(_PathError):
    """The notebook file could not be read."""


class UnwritableTarget(_PathError):
    """The notebook could not be written."""


class InvariantViolation(CellpadError):
    """A mutation was rejected because it would break a document invariant."""


class SessionNotFound(CellpadError, KeyError):
    """No session is bound to the given tab identity."""

    def __str__(self):
        return f"no session bound to tab {self.args[0]!r}"


class ExecutionTimeout(CellpadError):
    """The interpreter process ran past the configured timeout."""
