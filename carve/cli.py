"""
Carve CLI
==========

Click-based command-line interface for Carve.  The binary path comes
first and each subcommand inspects one aspect of it.

Usage::

    # Entry point address
    carve /bin/ls entry

    # All recovered functions (default sources from config)
    carve /bin/ls functions

    # Only symbol tables, as JSON
    carve --json /bin/ls functions --source symtab --source dynsym

    # Section (or segment) table
    carve /bin/ls sections

    # Hex dump of a region, or its strings
    carve /bin/ls dump .eh_frame_hdr
    carve /bin/ls dump .strtab --strings

    # Write a JSON report alongside the console output
    carve --output report.json /bin/ls functions

Open failures print an error and exit with status 1.  Scanner failures
are shown as warnings and the remaining scanners still run.

References:
    - Click Documentation. https://click.palletsprojects.com/
"""

from __future__ import annotations

import json
import sys
from typing import Optional

import click

from shared.config import CarveConfig
from shared.console import CarveConsole
from shared.logger import CarveLogger

from carve import __version__
from carve.core.binary import Binary
from carve.core.engine import CarveEngine
from carve.core.errors import CarveError, MissingRegion
from carve.core.models import FrameKind
from carve.output.console import CarveConsoleOutput, hexdump_lines, split_strings
from carve.output.report import CarveReportGenerator


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _parse_sources(
    ctx: click.Context,
    param: click.Parameter,
    value: tuple[str, ...],
) -> Optional[list[FrameKind]]:
    if not value:
        return None
    try:
        return [FrameKind.parse(v) for v in value]
    except ValueError as exc:
        raise click.BadParameter(str(exc), ctx=ctx, param=param) from exc


# ===================================================================== #
#  CLI Group
# ===================================================================== #

@click.group()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config", "-c",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to a Carve configuration file (TOML).",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Print results as JSON to stdout.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a JSON report to this file (functions command).",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(__version__, prog_name="carve")
@click.pass_context
def cli(
    ctx: click.Context,
    path: str,
    config: Optional[str],
    json_output: bool,
    output_path: Optional[str],
    verbose: bool,
) -> None:
    """Carve -- recover function boundaries from ELF binaries.

    PATH is the binary to inspect.
    """
    ctx.ensure_object(dict)

    carve_config = CarveConfig.load(config)
    settings = carve_config.global_settings
    log_level = "DEBUG" if verbose or settings.debug else settings.log_level
    logger = CarveLogger(
        "cli",
        log_level=log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )

    # Keep stdout clean for machine-readable output
    console = CarveConsole(stderr=json_output)

    ctx.obj["path"] = path
    ctx.obj["config"] = carve_config
    ctx.obj["json"] = json_output
    ctx.obj["output_path"] = output_path
    ctx.obj["verbose"] = verbose
    ctx.obj["logger"] = logger
    ctx.obj["console"] = console
    ctx.obj["display"] = CarveConsoleOutput(console)


def _open_binary(ctx: click.Context) -> Binary:
    """Open the group's PATH or exit with status 1."""
    console: CarveConsole = ctx.obj["console"]
    try:
        return Binary.open(ctx.obj["path"], logger=ctx.obj["logger"])
    except (CarveError, OSError) as exc:
        console.error(f"Failed to open {ctx.obj['path']}: {exc}")
        sys.exit(1)


# ===================================================================== #
#  Subcommands
# ===================================================================== #

@cli.command()
@click.pass_context
def entry(ctx: click.Context) -> None:
    """Show the entry point of the binary."""
    binary = _open_binary(ctx)
    entry_point = binary.entry_point

    if ctx.obj["json"]:
        _echo_json({
            "path": binary.path,
            "entry_point": entry_point,
            "entry_point_hex": f"0x{entry_point:x}",
        })
        return

    click.echo(f"Entry point: 0x{entry_point:x}")


@cli.command()
@click.option(
    "--source", "-s",
    "sources",
    multiple=True,
    callback=_parse_sources,
    metavar="KIND",
    help=(
        "Region to mine (eh_frame, eh_frame_hdr, debug_frame, symtab, "
        "dynsym).  Repeatable; order is merge order."
    ),
)
@click.pass_context
def functions(ctx: click.Context, sources: Optional[list[FrameKind]]) -> None:
    """Show all discovered functions.

    Runs each scanner, merges the candidates by source priority and
    names the function at the entry point ``entry``.
    """
    console: CarveConsole = ctx.obj["console"]
    display: CarveConsoleOutput = ctx.obj["display"]
    engine = CarveEngine(config=ctx.obj["config"], logger=ctx.obj["logger"])

    try:
        result = engine.analyze(ctx.obj["path"], sources=sources)
    except (CarveError, OSError, ValueError) as exc:
        console.error(f"Analysis failed: {exc}")
        sys.exit(1)

    reporter = CarveReportGenerator()
    if ctx.obj["json"]:
        _echo_json(reporter.to_dict(result))
    else:
        display.display(result)

    if ctx.obj["output_path"]:
        report_path = reporter.generate_json(result, ctx.obj["output_path"])
        console.success(f"JSON report saved: {report_path}")


@cli.command()
@click.pass_context
def sections(ctx: click.Context) -> None:
    """List all sections (or synthesised segments when stripped)."""
    binary = _open_binary(ctx)
    infos = [region.to_info() for region in binary.regions]

    if ctx.obj["json"]:
        _echo_json({
            "path": binary.path,
            "is_stripped": binary.is_stripped,
            "regions": [info.model_dump(mode="json") for info in infos],
        })
        return

    ctx.obj["display"].display_regions(infos, stripped=binary.is_stripped)


@cli.command()
@click.argument("region_name", metavar="REGION")
@click.option(
    "--strings",
    is_flag=True,
    default=False,
    help="List NUL-separated strings instead of a hex dump.",
)
@click.pass_context
def dump(ctx: click.Context, region_name: str, strings: bool) -> None:
    """Dump the raw bytes of REGION (e.g. .strtab)."""
    console: CarveConsole = ctx.obj["console"]
    binary = _open_binary(ctx)

    try:
        region = binary.require_region(region_name)
    except MissingRegion as exc:
        console.error(str(exc))
        sys.exit(1)

    width = ctx.obj["config"].analysis.hexdump_width
    if ctx.obj["json"]:
        data: dict[str, object] = {
            "name": region.name,
            "virtual_address": region.virtual_address,
            "size": len(region.raw_bytes),
        }
        if strings:
            data["strings"] = [
                {"offset": off, "value": text}
                for off, text in split_strings(region.raw_bytes)
            ]
        else:
            data["hexdump"] = hexdump_lines(
                region.raw_bytes, region.virtual_address, width
            )
        _echo_json(data)
        return

    ctx.obj["display"].display_dump(region, width=width, strings=strings)


# ===================================================================== #
#  Entry Point
# ===================================================================== #

def main() -> None:
    """Main entry point for the Carve CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
