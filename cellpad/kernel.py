"""
ExecutionEngine: runs code cells in a fresh interpreter process.

Nothing is shared between runs: every cell run stages its source in a
temporary file, spawns the configured interpreter on it and captures
stdout and stderr merged into one stream.
"""

import asyncio
import logging
import os
import re
import tempfile
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from cellpad.config import Settings, get_settings
from cellpad.errors import ExecutionTimeout
from cellpad.notebook import Cell, ErrorOutput, Notebook, StreamOutput

logger = logging.getLogger(__name__)

# Last line of a Python traceback, e.g. "ZeroDivisionError: division by zero".
_EXCEPTION_LINE = re.compile(r"^([A-Za-z_][\w.]*): ?(.*)$")

_NOT_FOUND_TEMPLATES = (
    r"\b{name}: (?:command )?not found",
    r"\b{name}: No such file or directory",
    r"'{name}' is not recognized as an internal or external command",
)


@dataclass
class CommandResult:
    """Merged stdout+stderr of a finished process."""
    output: str
    returncode: int


@dataclass
class ExecutionResult:
    """Result of executing one code cell."""
    success: bool
    outputs: list = field(default_factory=list)


class CommandRunner:
    """
    Run a program and capture stdout and stderr as one text stream.

    Ordering between the two streams is whatever the OS pipe gives.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def run(self, argv: list[str]) -> CommandResult:
        """
        Run ``argv`` to completion.

        Raises:
            OSError: If the process cannot be spawned
            ExecutionTimeout: If the process outlives the timeout
        """
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ExecutionTimeout(f"process did not finish within {self.timeout:g}s")
        return CommandResult(
            output=stdout.decode("utf-8", errors="replace"),
            returncode=process.returncode,
        )


@contextmanager
def staged_program(code: str, suffix: str = ".py", directory: Optional[str] = None) -> Iterator[str]:
    """Write code to a uniquely named temp file and remove it afterwards."""
    fd, path = tempfile.mkstemp(prefix="cellpad_cell_", suffix=suffix, dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(code)
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def interpreter_missing(output: str, command: str) -> bool:
    """Check whether captured output is a shell's "command not found" report."""
    name = re.escape(os.path.basename(command))
    return any(re.search(t.format(name=name), output) for t in _NOT_FOUND_TEMPLATES)


def remediation_message(command: str, language: str) -> str:
    example = os.path.basename(command)
    return (
        f"The {language} interpreter '{command}' could not be found. "
        f"Install it and make sure it is on PATH, or configure the command with "
        f"CELLPAD_INTERPRETERS, e.g. CELLPAD_INTERPRETERS='{{\"{language}\": [\"/path/to/{example}\"]}}'."
    )


def error_from_output(output: str, returncode: int) -> ErrorOutput:
    """Build an error record from the captured output of a failed process."""
    lines = output.splitlines()
    last = next((line for line in reversed(lines) if line.strip()), "")
    match = _EXCEPTION_LINE.match(last)
    if match:
        ename, evalue = match.group(1), match.group(2)
    else:
        ename, evalue = "ExecutionError", f"process exited with code {returncode}"
    return ErrorOutput(ename=ename, evalue=evalue, traceback=lines)


def _failure(ename: str, message: str) -> ExecutionResult:
    return ExecutionResult(success=False, outputs=[ErrorOutput(ename=ename, evalue=message, traceback=[message])])


class ExecutionEngine:
    """
    Executes code cells of a Notebook.

    Each run spawns a new interpreter; there is no namespace shared
    between cells or between runs of the same cell.
    """

    def __init__(self, runner: Optional[CommandRunner] = None, settings: Optional[Settings] = None):
        self.settings = settings if settings is not None else get_settings()
        self.runner = runner if runner is not None else CommandRunner(timeout=self.settings.execution_timeout)

    async def execute(self, code: str, language: Optional[str] = None, suffix: str = ".py") -> ExecutionResult:
        """
        Execute a program and classify its output.

        Never raises for execution failures; they come back as an
        error record with ``success=False``.
        """
        language = language or self.settings.default_language
        command = self.settings.interpreter_for(language)
        if not command:
            return _failure("UnsupportedLanguage", f"No interpreter configured for language '{language}'")

        try:
            with staged_program(code, suffix, self.settings.temp_dir) as path:
                logger.debug("Running %s on %s", command, path)
                try:
                    result = await self.runner.run(command + [path])
                except FileNotFoundError:
                    return self._interpreter_missing(command[0], language)
                except ExecutionTimeout as e:
                    logger.warning("Cell run timed out: %s", e)
                    return _failure("ExecutionTimeout", str(e))
                except OSError as e:
                    logger.warning("Could not launch %s: %s", command[0], e)
                    return _failure("LaunchError", f"Failed to launch '{command[0]}': {e}")
        except OSError as e:
            directory = self.settings.temp_dir or tempfile.gettempdir()
            logger.warning("Could not stage cell program in %s: %s", directory, e)
            return _failure("LaunchError", f"Failed to stage the cell program in '{directory}': {e}")

        if result.returncode == 0:
            return ExecutionResult(
                success=True,
                outputs=[StreamOutput(name="stdout", text=result.output)],
            )
        if interpreter_missing(result.output, command[0]):
            return self._interpreter_missing(command[0], language)

        return ExecutionResult(success=False, outputs=[error_from_output(result.output, result.returncode)])

    def _interpreter_missing(self, command: str, language: str) -> ExecutionResult:
        logger.warning("Interpreter not found: %s", command)
        return _failure("InterpreterNotFound", remediation_message(command, language))

    async def _run(self, notebook: Notebook, cell: Cell, is_current: Optional[Callable[[], bool]], lock) -> list:
        code = cell.source.strip()
        if not code:
            result = ExecutionResult(success=True)
        else:
            result = await self.execute(code, notebook.language, notebook.file_extension)

        with lock or nullcontext():
            if is_current is not None and not is_current():
                logger.info("Session closed while a cell was running; discarding its outputs")
                return result.outputs

            # The cell may have moved, or been deleted, while the process ran.
            index = next((i for i, c in enumerate(notebook.cells) if c is cell), None)
            if index is None:
                logger.info("Cell was removed while running; discarding its outputs")
                return result.outputs

            execution_count = notebook.next_execution_count() if result.success and code else None
            notebook.attach_result(index, result.outputs, execution_count)
        return result.outputs

    async def run_cell(
        self,
        notebook: Notebook,
        index: int,
        is_current: Optional[Callable[[], bool]] = None,
        lock=None,
    ) -> list:
        """
        Run one cell and attach its outputs.

        Non-code cells are left alone. Empty code cells get no outputs
        and no execution count.

        Args:
            notebook: Notebook holding the cell
            index: Index of the cell
            is_current: Checked before attaching; when it returns False
                the outputs are discarded
            lock: Held while the outputs are attached

        Returns:
            The output records of this run
        """
        cell = notebook.get_cell(index)
        if not cell.is_code:
            return []
        return await self._run(notebook, cell, is_current, lock)

    async def run_all(
        self,
        notebook: Notebook,
        is_current: Optional[Callable[[], bool]] = None,
        lock=None,
    ) -> list[tuple[int, list]]:
        """
        Run every code cell in document order, one at a time.

        A failing cell does not stop the batch.

        Returns:
            (index, outputs) for every cell that ran
        """
        results = []
        for cell in [c for _, c in notebook.code_cells()]:
            if is_current is not None and not is_current():
                break
            if not any(c is cell for c in notebook.cells) or not cell.is_code:
                continue
            outputs = await self._run(notebook, cell, is_current, lock)
            index = next((i for i, c in enumerate(notebook.cells) if c is cell), -1)
            results.append((index, outputs))
        return results
