"""
Utility functions for cellpad.
"""

import html
import json
from typing import Any

from rich.syntax import Syntax
from rich.text import Text

from cellpad.notebook import Cell, CellType, preferred_mime


def _bundle_text(data: dict[str, Any]) -> str:
    mime = preferred_mime(data)
    if mime is None:
        if "application/json" in data:
            val = data["application/json"]
            return json.dumps(val, indent=2) if not isinstance(val, str) else val
        return str(data)
    if mime.startswith("image/") and mime != "image/svg+xml":
        return data.get("text/plain") or f"<{mime} image>"
    return data[mime]


def format_output(output) -> str:
    """
    Format an output record for display (plain text).

    Args:
        output: Output record of a code cell

    Returns:
        Formatted string for display
    """
    output_type = output.output_type

    if output_type == "stream":
        return output.text

    elif output_type in ("execute_result", "display_data"):
        return _bundle_text(output.data)

    elif output_type == "error":
        return f"{output.ename}: {output.evalue}"

    return str(output)


def render_output_html(output) -> str:
    """
    Render an output record as an HTML fragment.

    Result and display payloads prefer HTML, then an image, then plain
    text. HTML payloads are passed through untouched.
    """
    output_type = output.output_type

    if output_type == "stream":
        return f'<pre class="output-stream">{html.escape(output.text)}</pre>'

    if output_type in ("execute_result", "display_data"):
        data = output.data
        mime = preferred_mime(data)
        if mime == "text/html":
            return data["text/html"]
        if mime is not None and mime.startswith("image/"):
            return f'<img src="data:{mime};base64,{data[mime]}" />'
        if mime == "text/plain":
            return f'<pre class="output-result">{html.escape(data["text/plain"])}</pre>'
        return ""

    if output_type == "error":
        text = "\n".join(output.traceback) if output.traceback else output.evalue
        return f'<pre class="output-error">{html.escape(text)}</pre>'

    return ""


def format_rich_output(output):
    """
    Format an output record as a Rich renderable.

    Args:
        output: Output record of a code cell

    Returns:
        Rich renderable object for console display
    """
    output_type = output.output_type

    if output_type == "stream":
        if output.name == "stderr":
            return Text(output.text.rstrip("\n"), style="yellow")
        return Text(output.text.rstrip("\n"))

    elif output_type == "execute_result":
        text = _bundle_text(output.data)
        if preferred_mime(output.data) == "text/plain":
            try:
                return Syntax(text, "python", theme="monokai", line_numbers=False)
            except Exception:
                return Text(text, style="cyan")
        return Text(text, style="cyan")

    elif output_type == "display_data":
        return Text(_bundle_text(output.data), style="cyan")

    elif output_type == "error":
        error_text = Text()
        error_text.append(f"{output.ename}", style="bold red")
        error_text.append(f": {output.evalue}", style="red")
        for tb_line in output.traceback:
            error_text.append(f"\n{tb_line}", style="dim red")
        return error_text

    return Text(str(output), style="dim")


def cell_label(cell: Cell) -> str:
    """Get the title shown above a cell."""
    if cell.cell_type == CellType.CODE:
        return f"In [{cell.execution_count or ' '}]"
    if cell.cell_type == CellType.MARKDOWN:
        return "Markdown"
    return "Raw"


def get_cell_status(cell: Cell) -> tuple[str, str]:
    """
    Get status indicator and style for a cell.

    Returns:
        Tuple of (indicator_string, rich_style)
    """
    if cell.outputs:
        if any(o.output_type == "error" for o in cell.outputs):
            return ("err", "red")
        return ("ok", "green")
    elif cell.execution_count is not None:
        return ("ok", "green")
    return ("--", "dim")


def truncate_text(text: str, max_length: int = 100) -> str:
    """Truncate text to max_length, adding ellipsis if needed."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
