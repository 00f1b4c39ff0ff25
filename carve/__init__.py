"""
Carve -- Function Boundary Recovery
====================================

Recovers a canonical list of function boundaries from compiled ELF64
binaries by merging evidence from call-frame unwind tables, symbol
tables and the header's entry point.  Works on stripped and partially
malformed binaries, falling back to program segments when section
headers are missing.

Modules:
    - carve.core.binary: Analysis session (open, scan, merge, finalize)
    - carve.core.engine: Whole-file analysis orchestrator
    - carve.core.registry: Priority-ranked function merge registry
    - carve.core.models: Pydantic data models
    - carve.parsers: Header decoding and region extraction
    - carve.analyzers: Unwind-table and symbol-table scanners
    - carve.output: Console and report output
    - carve.cli: Click-based command-line interface

References:
    - TIS Committee. (1995). ELF Specification, Version 1.2.
    - DWARF Debugging Information Format, Version 5.
    - Linux Standard Base Core Specification 5.0 (Exception Frames).
"""

__version__ = "0.1.0"
__tool_name__ = "carve"
