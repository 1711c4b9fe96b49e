"""
Web interface for cellpad using Flask.

The browser (or any host) owns the tabs; every route is keyed by an
opaque tab identity and goes through one SessionRegistry.
"""

import asyncio
import logging
from typing import Optional

from flask import Flask, jsonify, request

from cellpad.errors import (
    InvariantViolation,
    MalformedDocument,
    SessionNotFound,
    UnreadableSource,
    UnwritableTarget,
)
from cellpad.notebook import Cell, CellType
from cellpad.session import Session, SessionRegistry
from cellpad.utils import format_output, render_output_html

logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (MalformedDocument, 422),
    (UnreadableSource, 404),
    (SessionNotFound, 404),
    (UnwritableTarget, 409),
    (InvariantViolation, 409),
    (IndexError, 400),
    (ValueError, 400),
)


def _cell_dict(cell: Cell, index: int) -> dict:
    data = {
        "index": index,
        "type": cell.cell_type.value,
        "source": cell.source,
        "metadata": cell.metadata,
    }
    if cell.is_code:
        data["execution_count"] = cell.execution_count
        data["outputs"] = [o.model_dump() for o in cell.outputs]
        data["outputs_html"] = [render_output_html(o) for o in cell.outputs]
    return data


def _session_dict(session: Session) -> dict:
    nb = session.notebook
    return {
        "tab": session.tab_id,
        "name": session.name,
        "path": str(session.path) if session.path else None,
        "selected_index": session.selected_index,
        "modified": session.is_modified,
        "nbformat": nb.nbformat,
        "nbformat_minor": nb.nbformat_minor,
        "metadata": nb.metadata,
        "cells": [_cell_dict(c, i) for i, c in enumerate(nb.cells)],
    }


def _outputs_response(outputs: list) -> dict:
    return {
        "outputs": [o.model_dump() for o in outputs],
        "output_text": "\n".join(format_output(o) for o in outputs).strip(),
        "success": not any(o.output_type == "error" for o in outputs),
    }


def create_app(registry: Optional[SessionRegistry] = None) -> Flask:
    """
    Build the Flask app.

    Args:
        registry: Registry to serve; a new one is created if omitted
    """
    if registry is None:
        registry = SessionRegistry()
    app = Flask(__name__)
    app.config["REGISTRY"] = registry

    # ------------------------------------------------------------------ #
    # Error mapping
    # ------------------------------------------------------------------ #

    for exc_type, status in _ERROR_STATUS:
        def handler(e, status=status):
            logger.info("Request failed: %s: %s", type(e).__name__, e)
            return jsonify({"error": str(e), "type": type(e).__name__}), status
        app.register_error_handler(exc_type, handler)

    def _body() -> dict:
        return request.get_json(force=True, silent=True) or {}

    def _kind(value) -> CellType:
        return CellType(value or "code")

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    @app.route("/api/tabs", methods=["GET"])
    def api_tabs():
        return jsonify({"tabs": registry.tabs()})

    @app.route("/api/tabs/<tab>/open", methods=["POST"])
    def api_open(tab):
        data = _body()
        session = registry.open_or_focus(tab, data.get("path"), text=data.get("text"))
        return jsonify(_session_dict(session))

    @app.route("/api/tabs/<tab>", methods=["GET"])
    def api_session(tab):
        session = registry.get(tab)
        if session is None:
            raise SessionNotFound(tab)
        return jsonify(_session_dict(session))

    @app.route("/api/tabs/<tab>", methods=["DELETE"])
    def api_close(tab):
        session = registry.close(tab)
        return jsonify({"ok": session is not None})

    @app.route("/api/tabs/<tab>/select", methods=["POST"])
    def api_select(tab):
        index = int(_body().get("index", -1))
        registry.set_selected(tab, index)
        return jsonify({"ok": True, "selected_index": index})

    @app.route("/api/tabs/<tab>/save", methods=["POST"])
    def api_save(tab):
        path = registry.save(tab, _body().get("path"))
        return jsonify({"ok": True, "path": str(path)})

    # ------------------------------------------------------------------ #
    # Cells
    # ------------------------------------------------------------------ #

    @app.route("/api/tabs/<tab>/cells", methods=["POST"])
    def api_cell_add(tab):
        data = _body()
        after_index = data.get("after_index")
        index = registry.insert_cell(
            tab,
            _kind(data.get("type")),
            int(after_index) if after_index is not None else None,
        )
        cell = registry.get(tab).notebook.cells[index]
        return jsonify({"index": index, "cell": _cell_dict(cell, index)})

    @app.route("/api/tabs/<tab>/cells/<int:index>", methods=["DELETE"])
    def api_cell_delete(tab, index):
        selected = registry.delete_cell(tab, index)
        return jsonify({"ok": True, "selected_index": selected})

    @app.route("/api/tabs/<tab>/cells/<int:index>/move", methods=["POST"])
    def api_cell_move(tab, index):
        direction = _body().get("direction", "up")
        step = {"up": -1, "down": 1}.get(direction)
        if step is None:
            raise ValueError(f"direction must be 'up' or 'down', not {direction!r}")
        new_index = registry.move_cell(tab, step, index)
        return jsonify({"ok": new_index != index, "new_index": new_index})

    @app.route("/api/tabs/<tab>/cells/<int:index>/kind", methods=["POST"])
    def api_cell_kind(tab, index):
        data = _body()
        if data.get("type"):
            registry.set_cell_kind(tab, index, _kind(data["type"]))
            kind = _kind(data["type"])
        else:
            kind = registry.toggle_cell_kind(tab, index)
        return jsonify({"ok": True, "type": kind.value})

    @app.route("/api/tabs/<tab>/cells/<int:index>/source", methods=["POST"])
    def api_cell_source(tab, index):
        registry.set_cell_source(tab, index, _body().get("source", ""))
        return jsonify({"ok": True})

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    @app.route("/api/tabs/<tab>/cells/<int:index>/run", methods=["POST"])
    def api_cell_run(tab, index):
        session = registry.get(tab)
        if session is None:
            raise SessionNotFound(tab)
        cell = session.notebook.get_cell(index)
        outputs = asyncio.run(registry.run_cell(tab, index))
        # The cell may have moved, or been deleted, while it ran.
        attached = registry.get(tab) is session and any(c is cell for c in session.notebook.cells)
        response = _outputs_response(outputs)
        response["execution_count"] = cell.execution_count if attached else None
        return jsonify(response)

    @app.route("/api/tabs/<tab>/run-all", methods=["POST"])
    def api_run_all(tab):
        results = asyncio.run(registry.run_all(tab))
        return jsonify({
            "results": [dict(index=i, **_outputs_response(outputs)) for i, outputs in results],
        })

    return app


def launch_web(host: str = "127.0.0.1", port: int = 5000, registry: Optional[SessionRegistry] = None):
    """Launch the Flask web API."""
    app = create_app(registry)
    logger.info("Serving cellpad on http://%s:%d", host, port)
    app.run(host=host, port=port, threaded=True)
