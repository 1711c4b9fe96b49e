"""
CLI interface for cellpad with Rich output.
"""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.status import Status
from rich.syntax import Syntax
from rich.text import Text

from cellpad import persistence
from cellpad.config import get_settings
from cellpad.errors import CellpadError, MalformedDocument, UnreadableSource
from cellpad.logging_config import configure_logging
from cellpad.notebook import Cell, CellType, Notebook
from cellpad.session import SessionRegistry
from cellpad.utils import cell_label, format_rich_output, get_cell_status, truncate_text


console = Console()


def _cell_panel(cell: Cell, index: int) -> Panel:
    status_char, status_style = get_cell_status(cell)

    if not cell.source.strip():
        content = Text("(empty)", style="dim italic")
    elif cell.cell_type == CellType.CODE:
        content = Syntax(cell.source, "python", theme="monokai", line_numbers=True, word_wrap=True)
    elif cell.cell_type == CellType.MARKDOWN:
        content = Markdown(cell.source)
    else:
        content = Text(cell.source)

    if status_char == "ok":
        subtitle = "[green]ok[/green]"
    elif status_char == "err":
        subtitle = "[red]err[/red]"
    else:
        subtitle = None

    return Panel(
        content,
        title=f"[{status_style}]{index}  {cell_label(cell)}[/{status_style}]",
        title_align="left",
        subtitle=subtitle,
        subtitle_align="right",
        border_style=status_style if status_char != "--" else "dim",
        padding=(0, 1),
    )


def _print_outputs(cell: Cell):
    for output in cell.outputs or []:
        rich_output = format_rich_output(output)
        if output.output_type == "error":
            console.print(Panel(
                rich_output,
                title="[red]Error[/red]",
                title_align="left",
                border_style="red",
                padding=(0, 1),
            ))
        else:
            console.print(Panel(
                rich_output,
                title=f"[blue]Out [{cell.execution_count or ''}][/blue]",
                title_align="left",
                border_style="blue",
                padding=(0, 1),
            ))


def _load_or_exit(path: str) -> Notebook:
    try:
        return persistence.load(Path(path))
    except (MalformedDocument, UnreadableSource) as e:
        console.print(f"[red]Failed to open notebook:[/red] {e}")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v info, -vv debug)")
def main(verbose: int):
    """cellpad: view, edit and run .ipynb notebooks one cell at a time."""
    level = get_settings().log_level
    if verbose == 1:
        level = "INFO"
    elif verbose >= 2:
        level = "DEBUG"
    configure_logging(level)


@main.command()
@click.argument("path", type=click.Path(), default="notebook.ipynb")
def new(path: str):
    """Create a new notebook with one empty code cell."""
    nb = Notebook.new()
    nb.insert_cell(-1, CellType.CODE)
    try:
        persistence.save(Path(path), nb)
    except CellpadError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(Panel(
        f"[green]Created:[/green] {path}\n"
        f"[dim]Format:[/dim] nbformat {nb.nbformat}.{nb.nbformat_minor}",
        title="[bold blue]cellpad[/bold blue]",
        border_style="green",
    ))
    console.print(f"\n[dim]Run with:[/dim] cellpad run {path}")


@main.command()
@click.argument("path", type=click.Path(exists=True))
def show(path: str):
    """Display a notebook's cells and outputs."""
    nb = _load_or_exit(path)

    console.print(Panel(
        f"[bold]{Path(path).name}[/bold]  [dim]{len(nb.cells)} cells, "
        f"nbformat {nb.nbformat}.{nb.nbformat_minor}[/dim]",
        title="[bold blue]cellpad[/bold blue]",
        border_style="blue",
    ))

    if not nb.cells:
        console.print("[yellow]No cells in this notebook[/yellow]")
        return

    for i, cell in enumerate(nb.cells):
        console.print(_cell_panel(cell, i))
        _print_outputs(cell)


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--no-save", is_flag=True, help="Do not write outputs back to the file")
def run(path: str, no_save: bool):
    """Run every code cell of a notebook, in order."""
    registry = SessionRegistry()
    tab = f"cli:{path}"
    try:
        session = registry.open_or_focus(tab, Path(path))
    except (MalformedDocument, UnreadableSource) as e:
        console.print(f"[red]Failed to open notebook:[/red] {e}")
        sys.exit(1)

    nb = session.notebook
    console.print(Panel(
        f"[bold]{session.name}[/bold]  [dim]{path}[/dim]",
        title="[bold blue]cellpad[/bold blue]",
        border_style="blue",
    ))
    console.print()

    if not nb.code_cells():
        console.print("[yellow]No code cells to execute[/yellow]")
        return

    with Status("Executing cells...", console=console, spinner="dots"):
        results = asyncio.run(registry.run_all(tab))

    failed = 0
    for index, outputs in results:
        cell = nb.cells[index]
        console.print(f"[dim]--- Cell {index} ---[/dim]")
        if cell.source.strip():
            console.print(Syntax(cell.source, "python", theme="monokai", line_numbers=True))
        _print_outputs(cell)
        if any(o.output_type == "error" for o in outputs):
            failed += 1
            console.print(f"[red]Error: {truncate_text(outputs[-1].evalue)}[/red]")
        console.print()

    if not no_save:
        try:
            registry.save(tab)
        except CellpadError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)

    total = len(results)
    if failed == 0:
        console.print(f"[green]All {total} cells executed successfully[/green]")
    else:
        console.print(f"[yellow]Executed {total - failed}/{total} cells without errors[/yellow]")


@main.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", default=5000, type=int, help="Port to listen on")
def web(host: str, port: int):
    """Launch the JSON web API for notebook tabs."""
    from cellpad.web import launch_web
    launch_web(host=host, port=port)


if __name__ == "__main__":
    main()
