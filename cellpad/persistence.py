"""
Notebook serialization to/from the .ipynb (nbformat 4) JSON format.

Source and multi-line text payloads may be stored as a string or as a list
of line fragments; both are normalized to one string on load and written
back as line lists.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import TypeAdapter, ValidationError

from cellpad import source as source_codec
from cellpad.errors import MalformedDocument, UnreadableSource, UnwritableTarget
from cellpad.notebook import (
    NBFORMAT,
    NBFORMAT_MINOR,
    Cell,
    CellType,
    Notebook,
    OutputRecord,
)

logger = logging.getLogger(__name__)

_output_adapter = TypeAdapter(OutputRecord)

_CELL_KEYS = {"cell_type", "source", "metadata", "execution_count", "outputs"}
_NOTEBOOK_KEYS = {"cells", "metadata", "nbformat", "nbformat_minor"}


def _is_json_mime(mime: str) -> bool:
    return mime == "application/json" or mime.endswith("+json")


def _is_multiline_mime(mime: str) -> bool:
    return mime.startswith("text/") or mime == "image/svg+xml"


# ---------------------------------------------------------------------- #
# JSON -> model
# ---------------------------------------------------------------------- #

def _output_from_json(raw: Any) -> OutputRecord:
    if not isinstance(raw, dict):
        raise MalformedDocument("output must be an object")
    data = dict(raw)
    if data.get("output_type") == "stream":
        data["text"] = source_codec.decode(data.get("text"))
    if isinstance(data.get("data"), dict):
        data["data"] = {
            mime: source_codec.decode(value) if isinstance(value, list) and not _is_json_mime(mime) else value
            for mime, value in data["data"].items()
        }
    return _output_adapter.validate_python(data)


def _cell_from_json(raw: Any, index: int) -> Cell:
    if not isinstance(raw, dict):
        raise MalformedDocument(f"cell {index} must be an object")
    try:
        cell_type = CellType(raw.get("cell_type"))
    except ValueError:
        raise MalformedDocument(f"cell {index} has unknown cell_type {raw.get('cell_type')!r}")

    try:
        text = source_codec.decode(raw.get("source"))
    except TypeError as e:
        raise MalformedDocument(f"cell {index}: {e}")

    metadata = raw.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise MalformedDocument(f"cell {index} metadata must be an object")

    outputs = None
    if cell_type == CellType.CODE:
        raw_outputs = raw.get("outputs")
        if raw_outputs is None:
            raw_outputs = []
        if not isinstance(raw_outputs, list):
            raise MalformedDocument(f"cell {index} outputs must be a list")
        try:
            outputs = [_output_from_json(o) for o in raw_outputs]
        except (ValidationError, TypeError) as e:
            raise MalformedDocument(f"cell {index} has an invalid output: {e}")

    try:
        return Cell(
            cell_type=cell_type,
            source=text,
            metadata=metadata,
            execution_count=raw.get("execution_count"),
            outputs=outputs,
            extras={k: v for k, v in raw.items() if k not in _CELL_KEYS},
        )
    except ValidationError as e:
        raise MalformedDocument(f"cell {index} is invalid: {e}")


def from_dict(data: Any) -> Notebook:
    """Build a Notebook from parsed JSON, validating its shape."""
    if not isinstance(data, dict):
        raise MalformedDocument("notebook must be a JSON object")
    cells = data.get("cells")
    if not isinstance(cells, list):
        raise MalformedDocument("notebook has no 'cells' list")

    metadata = data.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise MalformedDocument("notebook metadata must be an object")

    nbformat = data.get("nbformat", NBFORMAT)
    nbformat_minor = data.get("nbformat_minor", NBFORMAT_MINOR)
    if not isinstance(nbformat, int) or not isinstance(nbformat_minor, int):
        raise MalformedDocument("nbformat and nbformat_minor must be integers")

    return Notebook(
        cells=[_cell_from_json(c, i) for i, c in enumerate(cells)],
        metadata=metadata,
        nbformat=nbformat,
        nbformat_minor=nbformat_minor,
        extras={k: v for k, v in data.items() if k not in _NOTEBOOK_KEYS},
    )


def loads(text: str) -> Notebook:
    """
    Parse notebook JSON text.

    Raises:
        MalformedDocument: If the text is not a valid notebook
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocument(f"invalid JSON: {e}")
    return from_dict(data)


def load(path: Union[str, Path]) -> Notebook:
    """
    Load a notebook from an .ipynb file.

    Raises:
        UnreadableSource: If the file cannot be read
        MalformedDocument: If the content is not a valid notebook
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise UnreadableSource(f"cannot read {path}: {e}", path=path)
    notebook = loads(text)
    logger.debug("Loaded %s (%d cells, nbformat %d.%d)", path, len(notebook.cells),
                 notebook.nbformat, notebook.nbformat_minor)
    return notebook


# ---------------------------------------------------------------------- #
# model -> JSON
# ---------------------------------------------------------------------- #

def _output_to_json(output) -> dict:
    data = output.model_dump()
    if data["output_type"] == "stream":
        data["text"] = source_codec.encode(data["text"])
    if "data" in data:
        data["data"] = {
            mime: source_codec.encode(value) if isinstance(value, str) and _is_multiline_mime(mime) else value
            for mime, value in data["data"].items()
        }
    return data


def _cell_to_json(cell: Cell) -> dict:
    data = dict(cell.extras)
    data.update({
        "cell_type": cell.cell_type.value,
        "source": source_codec.encode(cell.source),
        "metadata": cell.metadata,
    })
    if cell.is_code:
        data["execution_count"] = cell.execution_count
        data["outputs"] = [_output_to_json(o) for o in cell.outputs or []]
    return data


def to_dict(notebook: Notebook) -> dict:
    """Convert a Notebook to its JSON-ready dictionary."""
    data = dict(notebook.extras)
    data.update({
        "cells": [_cell_to_json(c) for c in notebook.cells],
        "metadata": notebook.metadata,
        "nbformat": notebook.nbformat,
        "nbformat_minor": notebook.nbformat_minor,
    })
    return data


def dumps(notebook: Notebook) -> str:
    """Serialize with sorted keys and fixed indentation."""
    return json.dumps(to_dict(notebook), indent=1, sort_keys=True, ensure_ascii=False) + "\n"


def save(path: Optional[Union[str, Path]], notebook: Notebook):
    """
    Save a notebook to an .ipynb file.

    Raises:
        UnwritableTarget: If no path is given or the write fails
    """
    if path is None:
        raise UnwritableTarget("notebook has no file path; choose one before saving")
    path = Path(path)
    text = dumps(notebook)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise UnwritableTarget(f"cannot write {path}: {e}", path=path)
    notebook.modified = False
    logger.debug("Saved %s (%d cells)", path, len(notebook.cells))
