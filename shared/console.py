"""
Carve Console Interface
========================

Thin wrapper over :class:`rich.console.Console` with the Carve palette:
section rules, tagged status lines and a plain two-style table helper.
With ``stderr=True`` everything goes to stderr, which is how ``--json``
keeps stdout machine-readable.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

_CARVE_THEME = Theme(
    {
        "carve.section": "bold bright_magenta",
        "carve.success": "bold green",
        "carve.warning": "bold yellow",
        "carve.error": "bold red",
        "carve.address": "bright_cyan",
    }
)


class CarveConsole:
    """Console used by the CLI and :class:`~carve.output.console.CarveConsoleOutput`.

    Usage::

        con = CarveConsole(stderr=True)
        con.section("Functions")
        con.success("Report written")
    """

    def __init__(self, *, stderr: bool = False) -> None:
        self._console = Console(theme=_CARVE_THEME, stderr=stderr, highlight=False)

    @property
    def rich(self) -> Console:
        """The underlying Rich console, for panels and prebuilt tables."""
        return self._console

    def section(self, title: str) -> None:
        self._console.rule(f"  {title}  ", style="carve.section", characters="─")
        self._console.print()

    # Messages may carry paths or exception text; escape so "[" stays literal.

    def success(self, message: str) -> None:
        self._console.print(f"[carve.success]\\[✔] SUCCESS:[/carve.success] {escape(message)}")

    def warning(self, message: str) -> None:
        self._console.print(f"[carve.warning]\\[⚠] WARNING:[/carve.warning] {escape(message)}")

    def error(self, message: str) -> None:
        self._console.print(f"[carve.error]\\[✘] ERROR:[/carve.error] {escape(message)}")

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        styles: Sequence[str] | None = None,
    ) -> None:
        """Render *rows* under *columns*; cells are stringified."""
        tbl = Table(
            title=title,
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        for idx, name in enumerate(columns):
            style = styles[idx] if styles and idx < len(styles) else ""
            tbl.add_column(name, style=style)
        for row in rows:
            tbl.add_row(*(str(cell) for cell in row))
        self._console.print(tbl)

    def print(self, *args: Any, **kwargs: Any) -> None:
        self._console.print(*args, **kwargs)

    def blank(self, count: int = 1) -> None:
        for _ in range(count):
            self._console.print()

    def divider(self, style: str = "dim") -> None:
        self._console.rule(style=style)
