"""
Carve Analyzers
================

Function-boundary scanners.  Each one turns the bytes of a single region
into a list of function candidates; merging is left to the registry.
"""

from carve.analyzers.eh_frame import (
    FrameAnalyzer,
    scan_frame_entries,
    scan_frame_header_table,
)
from carve.analyzers.symtab import scan_symbol_table

__all__ = [
    "FrameAnalyzer",
    "scan_frame_entries",
    "scan_frame_header_table",
    "scan_symbol_table",
]
