"""
Carve Console Output
=====================

Rich-powered terminal display for Carve results: a binary information
panel, the recovered function table, the region table, scanner warnings,
and hex / string dumps of individual regions.

Uses the CarveConsole abstraction for consistent styling.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table

from shared.console import CarveConsole

from carve.core.models import (
    AnalysisResult,
    BinaryInfo,
    FunctionCandidate,
    Region,
    RegionInfo,
    RegionKind,
)
from carve.parsers.regions import section_flags_str, segment_flags_str


def _flags_str(region: RegionInfo) -> str:
    if region.kind == RegionKind.SEGMENT:
        return segment_flags_str(region.flags)
    return section_flags_str(region.flags)


def hexdump_lines(data: bytes, base_address: int = 0, width: int = 16) -> list[str]:
    """Format *data* as ``address  hex bytes  |ascii|`` lines."""
    lines: list[str] = []
    for offset in range(0, len(data), width):
        chunk = data[offset:offset + width]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        ascii_part = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in chunk)
        lines.append(
            f"{base_address + offset:016x}  {hex_part:<{width * 3}} |{ascii_part}|"
        )
    return lines


def split_strings(data: bytes) -> list[tuple[int, str]]:
    """Split a string table into ``(offset, text)`` pairs, skipping empties."""
    strings: list[tuple[int, str]] = []
    offset = 0
    for part in data.split(b"\x00"):
        if part:
            strings.append((offset, part.decode("utf-8", errors="replace")))
        offset += len(part) + 1
    return strings


# ---------------------------------------------------------------------------
# CarveConsoleOutput
# ---------------------------------------------------------------------------

class CarveConsoleOutput:
    """Rich terminal display for Carve analysis results.

    Usage::

        output = CarveConsoleOutput()
        output.display(result)
    """

    def __init__(self, console: CarveConsole | None = None) -> None:
        self._console: CarveConsole = console or CarveConsole()

    def display(self, result: AnalysisResult) -> None:
        """Display the complete analysis result."""
        self._console.section("CARVE -- Function Boundary Recovery")

        self.display_header(result.info)
        self.display_functions(result.functions, result.source_counts)
        if result.warnings:
            self.display_warnings(result.warnings)

        self._console.divider()

    def display_header(self, info: BinaryInfo) -> None:
        """Display the binary metadata panel."""
        lines: list[str] = [
            f"[bold]File:[/bold]        {info.path}",
            f"[bold]Size:[/bold]        {info.size:,} bytes ({info.size / 1024:.1f} KiB)",
            f"[bold]Format:[/bold]      {info.format.value.upper()}",
            f"[bold]Arch:[/bold]        {info.arch} ({info.bits}-bit)",
            f"[bold]Entry Point:[/bold] 0x{info.entry_point:x}",
            f"[bold]Executable:[/bold]  {'yes' if info.is_executable else 'no'}",
            f"[bold]Stripped:[/bold]    {'yes' if info.is_stripped else 'no'}",
        ]
        if info.sha256:
            lines.append(f"[bold]SHA-256:[/bold]     {info.sha256}")

        panel = Panel(
            "\n".join(lines),
            title="[bold bright_cyan]Binary Information[/bold bright_cyan]",
            border_style="bright_cyan",
            padding=(1, 2),
        )
        self._console.rich.print(panel)
        self._console.blank()

    def display_entry(self, entry: FunctionCandidate | None, entry_point: int) -> None:
        if entry is None or entry.size == 0:
            self._console.print(f"Entry point: [carve.address]0x{entry_point:x}[/carve.address]")
            return
        self._console.print(
            f"Entry point: [carve.address]0x{entry.start:x}[/carve.address] "
            f"(size 0x{entry.size:x})"
        )

    def display_functions(
        self,
        functions: list[FunctionCandidate],
        source_counts: dict[str, int] | None = None,
    ) -> None:
        """Display the recovered function table."""
        self._console.section("Functions")

        if not functions:
            self._console.warning(
                "No functions found (unwind tables missing or stripped binary)."
            )
            return

        tbl = Table(
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            show_lines=False,
            padding=(0, 1),
        )
        tbl.add_column("Function", style="bold", min_width=20)
        tbl.add_column("Start", style="bright_cyan", justify="right")
        tbl.add_column("End", style="bright_cyan", justify="right")
        tbl.add_column("Size", justify="right")

        for func in functions:
            tbl.add_row(
                func.identifier,
                f"0x{func.start:x}",
                f"0x{func.end:x}",
                f"{func.size:,}",
            )

        self._console.rich.print(tbl)

        summary = f"[bold]Total:[/bold] {len(functions)}"
        if source_counts:
            parts = [f"{name}: {count}" for name, count in source_counts.items()]
            summary += "  [dim](" + ", ".join(parts) + ")[/dim]"
        self._console.print(summary)
        self._console.blank()

    def display_regions(self, regions: list[RegionInfo], stripped: bool = False) -> None:
        """Display the region table."""
        self._console.section("Segments" if stripped else "Sections")

        if not regions:
            self._console.warning("No regions found.")
            return

        tbl = Table(
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            show_lines=False,
            padding=(0, 1),
        )
        tbl.add_column("#", style="dim", width=4, justify="right")
        tbl.add_column("Name", style="bold", min_width=16)
        tbl.add_column("VAddr", style="bright_cyan", justify="right")
        tbl.add_column("Size", justify="right")
        tbl.add_column("Offset", justify="right")
        tbl.add_column("Flags")

        for index, region in enumerate(regions):
            tbl.add_row(
                str(index),
                region.name or "<unnamed>",
                f"0x{region.virtual_address:x}",
                f"0x{region.size:x}",
                f"0x{region.file_offset:x}",
                _flags_str(region),
            )

        self._console.rich.print(tbl)
        self._console.blank()

    def display_warnings(self, warnings: list[str]) -> None:
        for message in warnings:
            self._console.warning(message)

    def display_dump(self, region: Region, *, width: int = 16, strings: bool = False) -> None:
        """Hex dump a region, or list its NUL-separated strings."""
        self._console.section(f"{region.name} ({len(region.raw_bytes):,} bytes)")

        if strings:
            rows = [(f"0x{off:x}", text) for off, text in split_strings(region.raw_bytes)]
            self._console.table(
                region.name,
                ["Offset", "String"],
                rows,
                styles=["bright_cyan", ""],
            )
            return

        for line in hexdump_lines(region.raw_bytes, region.virtual_address, width):
            self._console.print(line, markup=False)
