"""
Tests for .ipynb load/save.

Focuses on round-trip fidelity, source normalization, malformed input
and I/O failures.
"""

import json

import pytest

from cellpad import persistence
from cellpad.errors import MalformedDocument, UnreadableSource, UnwritableTarget
from cellpad.notebook import (
    CellType,
    DisplayData,
    ErrorOutput,
    ExecuteResult,
    Notebook,
    StreamOutput,
)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoad:

    def test_cells_and_kinds(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert [c.cell_type for c in nb.cells] == [CellType.MARKDOWN, CellType.CODE, CellType.RAW]

    def test_source_arrays_are_joined(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert nb.cells[0].source == "# Title\n\nSome text."

    def test_string_source_accepted(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert nb.cells[1].source == "print('hello')\nprint('world')\n"

    def test_empty_source_list(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert nb.cells[2].source == ""

    def test_outputs_are_typed(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        stream, result = nb.cells[1].outputs
        assert isinstance(stream, StreamOutput)
        assert stream.text == "hello\nworld\n"
        assert isinstance(result, ExecuteResult)
        assert result.data == {"text/plain": "42"}
        assert result.execution_count == 3

    def test_execution_count_preserved(self, sample_nb_path):
        assert persistence.load(sample_nb_path).cells[1].execution_count == 3

    def test_format_version_preserved(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert (nb.nbformat, nb.nbformat_minor) == (4, 4)

    def test_unknown_cell_keys_kept(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert nb.cells[0].extras == {"id": "intro"}

    def test_markdown_cell_has_no_outputs(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        assert nb.cells[0].outputs is None

    def test_loaded_document_is_not_modified(self, sample_nb_path):
        assert persistence.load(sample_nb_path).modified is False

    def test_empty_cells_accepted(self):
        nb = persistence.loads('{"cells": [], "metadata": {}, "nbformat": 4, "nbformat_minor": 5}')
        assert nb.cells == []

    def test_missing_version_defaults(self):
        nb = persistence.loads('{"cells": []}')
        assert (nb.nbformat, nb.nbformat_minor) == (4, 5)

    def test_error_and_display_outputs(self):
        text = json.dumps({"cells": [{
            "cell_type": "code", "source": "", "metadata": {}, "execution_count": None,
            "outputs": [
                {"output_type": "error", "ename": "ValueError", "evalue": "bad",
                 "traceback": ["line 1", "line 2"]},
                {"output_type": "display_data", "metadata": {},
                 "data": {"image/png": "iVBORw0KGgo=", "text/plain": ["<Figure>"]}},
            ],
        }]})
        error, display = persistence.loads(text).cells[0].outputs
        assert isinstance(error, ErrorOutput)
        assert error.traceback == ["line 1", "line 2"]
        assert isinstance(display, DisplayData)
        assert display.data["text/plain"] == "<Figure>"


class TestMalformed:

    @pytest.mark.parametrize("text", [
        "not json",
        "[]",
        "{}",
        '{"cells": {}}',
        '{"cells": [1]}',
        '{"cells": [{"cell_type": "sql", "source": ""}]}',
        '{"cells": [{"cell_type": "code", "source": 5}]}',
        '{"cells": [{"cell_type": "code", "source": "", "outputs": [{"output_type": "weird"}]}]}',
        '{"cells": [{"cell_type": "code", "source": "", "outputs": {}}]}',
        '{"cells": [], "nbformat": "four"}',
        '{"cells": [], "metadata": []}',
    ])
    def test_rejected(self, text):
        with pytest.raises(MalformedDocument):
            persistence.loads(text)

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.ipynb"
        path.write_text('{"metadata": {}}', encoding="utf-8")
        with pytest.raises(MalformedDocument):
            persistence.load(path)


class TestUnreadable:

    def test_missing_file(self, tmp_path):
        with pytest.raises(UnreadableSource) as exc_info:
            persistence.load(tmp_path / "nope.ipynb")
        assert exc_info.value.path == tmp_path / "nope.ipynb"

    def test_directory(self, tmp_path):
        with pytest.raises(UnreadableSource):
            persistence.load(tmp_path)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin.ipynb"
        path.write_bytes(b'{"cells": [], "metadata": {"x": "\xff"}}')
        with pytest.raises(UnreadableSource):
            persistence.load(path)


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------

class TestSave:

    def test_round_trip_is_json_equivalent(self, sample_nb_path, sample_nb_dict, tmp_path):
        nb = persistence.load(sample_nb_path)
        out = tmp_path / "out.ipynb"
        persistence.save(out, nb)
        saved = json.loads(out.read_text(encoding="utf-8"))

        assert saved["metadata"] == sample_nb_dict["metadata"]
        assert saved["nbformat_minor"] == 4
        assert saved["cells"][0]["source"] == ["# Title\n", "\n", "Some text."]
        assert saved["cells"][0]["id"] == "intro"
        assert saved["cells"][1]["source"] == ["print('hello')\n", "print('world')\n"]
        assert saved["cells"][1]["outputs"] == sample_nb_dict["cells"][1]["outputs"]
        assert saved["cells"][2] == {"cell_type": "raw", "metadata": {}, "source": []}

    def test_markdown_cells_have_no_execution_keys(self, tmp_path):
        nb = Notebook.new()
        nb.insert_cell(-1, CellType.MARKDOWN)
        out = tmp_path / "md.ipynb"
        persistence.save(out, nb)
        cell = json.loads(out.read_text())["cells"][0]
        assert "outputs" not in cell
        assert "execution_count" not in cell

    def test_code_cells_always_have_execution_keys(self, tmp_path):
        nb = Notebook.new()
        nb.insert_cell(-1, CellType.CODE)
        text = persistence.dumps(nb)
        cell = json.loads(text)["cells"][0]
        assert cell["outputs"] == []
        assert cell["execution_count"] is None

    def test_stable_formatting(self, sample_nb_path):
        nb = persistence.load(sample_nb_path)
        first = persistence.dumps(nb)
        assert first == persistence.dumps(persistence.loads(first))
        assert first.endswith("\n")
        assert first.startswith('{\n "cells": [')

    def test_keys_sorted(self, sample_nb_path):
        text = persistence.dumps(persistence.load(sample_nb_path))
        assert text.index('"a": 1') < text.index('"b": 2')

    def test_non_ascii_written_verbatim(self, tmp_path):
        nb = Notebook.new()
        nb.insert_cell(-1, CellType.MARKDOWN)
        nb.set_cell_source(0, "héllo ✓")
        out = tmp_path / "u.ipynb"
        persistence.save(out, nb)
        assert "héllo ✓" in out.read_text(encoding="utf-8")

    def test_save_clears_modified(self, tmp_path):
        nb = Notebook.new()
        nb.insert_cell(-1, CellType.CODE)
        assert nb.modified
        persistence.save(tmp_path / "a.ipynb", nb)
        assert nb.modified is False

    def test_creates_parent_directories(self, tmp_path):
        out = tmp_path / "deep" / "dir" / "nb.ipynb"
        persistence.save(out, Notebook.new())
        assert out.exists()

    def test_no_path_is_unwritable(self):
        nb = Notebook.new()
        nb.insert_cell(-1, CellType.CODE)
        with pytest.raises(UnwritableTarget):
            persistence.save(None, nb)
        assert nb.modified is True

    def test_write_failure_is_unwritable(self, tmp_path):
        target = tmp_path / "dir.ipynb"
        target.mkdir()
        with pytest.raises(UnwritableTarget) as exc_info:
            persistence.save(target, Notebook.new())
        assert exc_info.value.path == target

    def test_unknown_top_level_keys_kept(self):
        nb = persistence.loads('{"cells": [], "metadata": {}, "x-extra": {"k": 1}}')
        assert json.loads(persistence.dumps(nb))["x-extra"] == {"k": 1}

    def test_image_payload_stays_a_string(self):
        nb = persistence.loads(json.dumps({"cells": [{
            "cell_type": "code", "source": "", "metadata": {}, "execution_count": 1,
            "outputs": [{"output_type": "display_data", "metadata": {},
                         "data": {"image/png": "iVBOR\nw0KGgo=\n"}}],
        }]}))
        saved = json.loads(persistence.dumps(nb))
        assert saved["cells"][0]["outputs"][0]["data"]["image/png"] == "iVBOR\nw0KGgo=\n"
