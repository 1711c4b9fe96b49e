"""
SessionRegistry: open notebooks, keyed by an opaque host tab identity.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Hashable, Optional, Union

from cellpad import persistence
from cellpad.errors import SessionNotFound
from cellpad.kernel import ExecutionEngine
from cellpad.notebook import CellType, Notebook

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """
    One open notebook bound to one host tab.

    Two tabs never share a Session, even when they show the same file.
    """
    tab_id: Hashable
    notebook: Notebook
    path: Optional[Path] = None
    selected_index: int = -1
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def is_modified(self) -> bool:
        return self.notebook.modified

    @is_modified.setter
    def is_modified(self, value: bool):
        self.notebook.modified = value

    @property
    def name(self) -> str:
        return self.path.name if self.path else "Untitled.ipynb"


class SessionRegistry:
    """
    Owns every open Session.

    All document mutations go through here so that each document is
    only touched under its session's lock.
    """

    def __init__(self, engine: Optional[ExecutionEngine] = None):
        self.engine = engine if engine is not None else ExecutionEngine()
        self._sessions: dict[Hashable, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, tab_id) -> bool:
        return tab_id in self._sessions

    def tabs(self) -> list:
        """Get the tab identities with a bound session."""
        return list(self._sessions)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def open_or_focus(
        self,
        tab_id: Hashable,
        path: Optional[Union[str, Path]] = None,
        *,
        text: Optional[str] = None,
    ) -> Session:
        """
        Return the tab's session, loading the notebook on first open.

        Args:
            tab_id: Opaque host tab identity
            path: Notebook file to load
            text: Notebook JSON to parse instead of reading a file

        Returns:
            The bound Session; the same object on every call for a tab

        Raises:
            MalformedDocument, UnreadableSource: If loading fails; no
                session is bound in that case
        """
        existing = self._sessions.get(tab_id)
        if existing is not None:
            return existing

        if path is not None:
            notebook = persistence.load(path)
            path = Path(path)
        elif text is not None:
            notebook = persistence.loads(text)
        else:
            notebook = Notebook.new()

        with self._lock:
            # Another caller may have bound the tab while we were loading.
            session = self._sessions.get(tab_id)
            if session is None:
                session = Session(tab_id=tab_id, notebook=notebook, path=path)
                self._sessions[tab_id] = session
                logger.info("Opened session for tab %r (%s)", tab_id, session.name)
        return session

    def new(self, tab_id: Hashable) -> Session:
        """Bind a new, empty, never-saved notebook to a tab."""
        return self.open_or_focus(tab_id)

    def get(self, tab_id: Hashable) -> Optional[Session]:
        """Get the tab's session, or None."""
        return self._sessions.get(tab_id)

    def close(self, tab_id: Hashable) -> Optional[Session]:
        """Unbind and discard a tab's session. Nothing is saved."""
        with self._lock:
            session = self._sessions.pop(tab_id, None)
        if session is not None:
            logger.info("Closed session for tab %r", tab_id)
        return session

    def _require(self, tab_id: Hashable) -> Session:
        session = self._sessions.get(tab_id)
        if session is None:
            raise SessionNotFound(tab_id)
        return session

    # ------------------------------------------------------------------ #
    # View state
    # ------------------------------------------------------------------ #

    def mark_modified(self, tab_id: Hashable, value: bool = True):
        session = self._require(tab_id)
        with session.lock:
            session.is_modified = value

    def set_selected(self, tab_id: Hashable, index: int):
        """Select a cell (-1 clears the selection)."""
        session = self._require(tab_id)
        with session.lock:
            if index != -1 and not 0 <= index < len(session.notebook.cells):
                raise IndexError(f"cell index {index} out of range")
            session.selected_index = index

    # ------------------------------------------------------------------ #
    # Editing
    # ------------------------------------------------------------------ #

    def insert_cell(self, tab_id: Hashable, kind: CellType = CellType.CODE,
                    after_index: Optional[int] = None) -> int:
        """Insert after ``after_index`` (default: the selected cell) and select it."""
        session = self._require(tab_id)
        with session.lock:
            if after_index is None:
                after_index = session.selected_index
            index = session.notebook.insert_cell(after_index, kind)
            session.selected_index = index
            return index

    def delete_cell(self, tab_id: Hashable, index: Optional[int] = None) -> int:
        """Delete a cell (default: the selected one) and select its successor."""
        session = self._require(tab_id)
        with session.lock:
            if index is None:
                index = session.selected_index
            session.selected_index = session.notebook.delete_cell(index)
            return session.selected_index

    def move_cell(self, tab_id: Hashable, direction: int, index: Optional[int] = None) -> int:
        """Move a cell up (-1) or down (+1); the selection follows it."""
        session = self._require(tab_id)
        with session.lock:
            if index is None:
                index = session.selected_index
            session.selected_index = session.notebook.move_cell(index, direction)
            return session.selected_index

    def set_cell_kind(self, tab_id: Hashable, index: int, kind: CellType):
        session = self._require(tab_id)
        with session.lock:
            session.notebook.set_cell_kind(index, kind)

    def toggle_cell_kind(self, tab_id: Hashable, index: Optional[int] = None) -> CellType:
        session = self._require(tab_id)
        with session.lock:
            if index is None:
                index = session.selected_index
            return session.notebook.toggle_cell_kind(index)

    def set_cell_source(self, tab_id: Hashable, index: int, text: str):
        session = self._require(tab_id)
        with session.lock:
            session.notebook.set_cell_source(index, text)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def save(self, tab_id: Hashable, path: Optional[Union[str, Path]] = None) -> Path:
        """
        Save the tab's notebook to its path, or to ``path`` (which becomes bound).

        Raises:
            UnwritableTarget: If there is no path or the write fails
        """
        session = self._require(tab_id)
        with session.lock:
            target = Path(path) if path is not None else session.path
            persistence.save(target, session.notebook)
            session.path = target
            logger.info("Saved tab %r to %s", tab_id, target)
            return target

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _binding_check(self, session: Session):
        return lambda: self._sessions.get(session.tab_id) is session

    async def run_cell(self, tab_id: Hashable, index: Optional[int] = None) -> list:
        """Run one cell (default: the selected one) of the tab's notebook."""
        session = self._require(tab_id)
        if index is None:
            index = session.selected_index
        return await self.engine.run_cell(
            session.notebook, index, self._binding_check(session), lock=session.lock
        )

    async def run_all(self, tab_id: Hashable) -> list[tuple[int, list]]:
        """Run every code cell of the tab's notebook in order."""
        session = self._require(tab_id)
        return await self.engine.run_all(
            session.notebook, self._binding_check(session), lock=session.lock
        )
