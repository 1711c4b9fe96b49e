"""
Notebook: in-memory model of an .ipynb document.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from cellpad.errors import InvariantViolation

NBFORMAT = 4
NBFORMAT_MINOR = 5

# Rendering preference among MIME payloads, most preferred first.
IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/gif", "image/svg+xml")


class CellType(str, Enum):
    """Type of notebook cell."""
    CODE = "code"
    MARKDOWN = "markdown"
    RAW = "raw"


class StreamOutput(BaseModel):
    """Text written to stdout/stderr while a cell ran."""
    model_config = ConfigDict(extra="allow")

    output_type: Literal["stream"] = "stream"
    name: str = "stdout"
    text: str = ""


class ExecuteResult(BaseModel):
    """The value a cell evaluated to."""
    model_config = ConfigDict(extra="allow")

    output_type: Literal["execute_result"] = "execute_result"
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    execution_count: Optional[int] = None


class DisplayData(BaseModel):
    """A rich display artifact (HTML, image, ...)."""
    model_config = ConfigDict(extra="allow")

    output_type: Literal["display_data"] = "display_data"
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ErrorOutput(BaseModel):
    """A failed run."""
    model_config = ConfigDict(extra="allow")

    output_type: Literal["error"] = "error"
    ename: str = "Error"
    evalue: str = ""
    traceback: list[str] = Field(default_factory=list)


OutputRecord = Annotated[
    Union[StreamOutput, ExecuteResult, DisplayData, ErrorOutput],
    Field(discriminator="output_type"),
]


def preferred_mime(data: dict[str, Any]) -> Optional[str]:
    """
    Pick the MIME type to render from a data bundle.

    HTML wins over images, images over plain text.
    """
    if "text/html" in data:
        return "text/html"
    for mime in IMAGE_MIME_TYPES:
        if mime in data:
            return mime
    if "text/plain" in data:
        return "text/plain"
    return None


class Cell(BaseModel):
    """
    A single notebook cell.

    Code cells always carry ``outputs`` (a list) and ``execution_count``;
    markdown and raw cells carry neither.
    """
    cell_type: CellType = CellType.CODE
    source: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    execution_count: Optional[int] = None
    outputs: Optional[list[OutputRecord]] = None
    # Keys we do not model (id, attachments, ...), written back verbatim.
    extras: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _normalize_code_fields(self) -> "Cell":
        self._apply_kind_fields()
        return self

    def _apply_kind_fields(self):
        if self.cell_type == CellType.CODE:
            if self.outputs is None:
                self.outputs = []
        else:
            self.outputs = None
            self.execution_count = None

    @property
    def is_code(self) -> bool:
        return self.cell_type == CellType.CODE

    @classmethod
    def new(cls, kind: CellType = CellType.CODE) -> "Cell":
        """Create an empty cell of the given kind."""
        return cls(cell_type=CellType(kind))


class Notebook(BaseModel):
    """
    An .ipynb document.

    ``metadata`` and unknown top-level keys are preserved verbatim.
    ``modified`` is runtime state and never written to disk.
    """

    cells: list[Cell] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    nbformat: int = NBFORMAT
    nbformat_minor: int = NBFORMAT_MINOR
    extras: dict[str, Any] = Field(default_factory=dict)
    modified: bool = Field(default=False, exclude=True)

    _execution_counter: int = PrivateAttr(default=0)

    @classmethod
    def new(cls) -> "Notebook":
        """Create a new empty notebook with a Python kernelspec."""
        return cls(
            metadata={
                "kernelspec": {
                    "display_name": "Python 3",
                    "language": "python",
                    "name": "python3",
                },
                "language_info": {
                    "name": "python",
                    "file_extension": ".py",
                },
            },
        )

    @property
    def language(self) -> Optional[str]:
        """Language declared by the notebook metadata, if any."""
        kernelspec = self.metadata.get("kernelspec") or {}
        language_info = self.metadata.get("language_info") or {}
        return kernelspec.get("language") or language_info.get("name")

    @property
    def file_extension(self) -> str:
        language_info = self.metadata.get("language_info") or {}
        return language_info.get("file_extension") or ".py"

    # ------------------------------------------------------------------ #
    # Structural mutations
    # ------------------------------------------------------------------ #

    def _check_index(self, index: int):
        if not 0 <= index < len(self.cells):
            raise IndexError(f"cell index {index} out of range (0..{len(self.cells) - 1})")

    def get_cell(self, index: int) -> Cell:
        """Get a cell by index."""
        self._check_index(index)
        return self.cells[index]

    def insert_cell(self, after_index: int, kind: CellType = CellType.CODE) -> int:
        """
        Insert an empty cell right after ``after_index``.

        Args:
            after_index: Index of the cell to insert after, or -1 to append
            kind: Type of the new cell

        Returns:
            Index of the new cell
        """
        if after_index == -1:
            new_index = len(self.cells)
        else:
            self._check_index(after_index)
            new_index = after_index + 1
        self.cells.insert(new_index, Cell.new(kind))
        self.modified = True
        return new_index

    def delete_cell(self, index: int) -> int:
        """
        Delete a cell.

        Returns:
            Index to select afterwards

        Raises:
            InvariantViolation: If it is the last remaining cell
        """
        self._check_index(index)
        if len(self.cells) <= 1:
            raise InvariantViolation("Notebook must have at least one cell.")
        self.cells.pop(index)
        self.modified = True
        return min(index, len(self.cells) - 1)

    def move_cell(self, index: int, direction: int) -> int:
        """Swap a cell with its neighbour; out-of-range neighbours are a no-op."""
        self._check_index(index)
        new_index = index + direction
        if not 0 <= new_index < len(self.cells):
            return index
        cells = self.cells
        cells[index], cells[new_index] = cells[new_index], cells[index]
        self.modified = True
        return new_index

    def set_cell_kind(self, index: int, kind: CellType):
        """Re-tag a cell, adding or dropping its execution fields."""
        cell = self.get_cell(index)
        kind = CellType(kind)
        if cell.cell_type == kind:
            return
        cell.cell_type = kind
        if kind == CellType.CODE:
            cell.outputs = []
            cell.execution_count = None
        cell._apply_kind_fields()
        self.modified = True

    def toggle_cell_kind(self, index: int) -> CellType:
        """Flip code <-> markdown. Raw cells are left alone."""
        cell = self.get_cell(index)
        if cell.cell_type == CellType.CODE:
            self.set_cell_kind(index, CellType.MARKDOWN)
        elif cell.cell_type == CellType.MARKDOWN:
            self.set_cell_kind(index, CellType.CODE)
        return cell.cell_type

    def set_cell_source(self, index: int, text: str):
        """Replace a cell's source text."""
        if not isinstance(text, str):
            raise ValueError(f"cell source must be a string, not {type(text).__name__}")
        self.get_cell(index).source = text
        self.modified = True

    def clear_outputs(self, index: Optional[int] = None):
        """Clear outputs of one code cell, or of every code cell."""
        cells = [self.get_cell(index)] if index is not None else self.cells
        for cell in cells:
            if cell.is_code:
                cell.outputs = []
                cell.execution_count = None
        self.modified = True

    # ------------------------------------------------------------------ #
    # Execution bookkeeping
    # ------------------------------------------------------------------ #

    def attach_result(self, index: int, outputs: list, execution_count: Optional[int]):
        """Replace a code cell's outputs and execution count wholesale."""
        cell = self.get_cell(index)
        if not cell.is_code:
            return
        cell.outputs = list(outputs)
        cell.execution_count = execution_count
        self.modified = True

    def next_execution_count(self) -> int:
        """Return a fresh execution count, larger than any seen in this document."""
        seen = [c.execution_count for c in self.cells if c.execution_count is not None]
        self._execution_counter = max([self._execution_counter, *seen]) + 1
        return self._execution_counter

    def code_cells(self) -> list[tuple[int, Cell]]:
        """Get (index, cell) pairs for all code cells."""
        return [(i, c) for i, c in enumerate(self.cells) if c.is_code]
