"""
cellpad: view, edit and run .ipynb notebooks cell by cell.

This package provides:
- A notebook document model that round-trips the nbformat 4 JSON format
- A session registry holding several independently edited notebooks
- An execution engine that runs each code cell in a fresh interpreter
"""

from cellpad.errors import (
    CellpadError,
    InvariantViolation,
    MalformedDocument,
    SessionNotFound,
    UnreadableSource,
    UnwritableTarget,
)
from cellpad.kernel import ExecutionEngine, ExecutionResult
from cellpad.notebook import (
    Cell,
    CellType,
    DisplayData,
    ErrorOutput,
    ExecuteResult,
    Notebook,
    StreamOutput,
)
from cellpad.session import Session, SessionRegistry

__version__ = "0.1.0"
__all__ = [
    "CellpadError",
    "InvariantViolation",
    "MalformedDocument",
    "SessionNotFound",
    "UnreadableSource",
    "UnwritableTarget",
    "ExecutionEngine",
    "ExecutionResult",
    "Cell",
    "CellType",
    "DisplayData",
    "ErrorOutput",
    "ExecuteResult",
    "Notebook",
    "StreamOutput",
    "Session",
    "SessionRegistry",
]
