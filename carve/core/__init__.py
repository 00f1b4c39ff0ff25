"""
Carve Core Module
==================

The error hierarchy, the data models and the merge registry.  The
analysis session and engine import the parsers, so they are imported
from their own modules (``carve.core.binary``, ``carve.core.engine``).
"""

from carve.core.errors import (
    CarveError,
    ContainerError,
    InvalidSymbolTableSize,
    MalformedContainer,
    MissingRegion,
    MissingUnwindTable,
    RecordDecodeError,
    ScannerError,
    TruncatedRegion,
    UnsupportedContainer,
)
from carve.core.models import (
    AnalysisResult,
    BinaryFormat,
    BinaryInfo,
    ElfHeader,
    FrameKind,
    FunctionCandidate,
    FunctionSource,
    PeHeader,
    Region,
    RegionInfo,
    RegionKind,
)
from carve.core.registry import FunctionRegistry

__all__ = [
    "AnalysisResult",
    "BinaryFormat",
    "BinaryInfo",
    "CarveError",
    "ContainerError",
    "ElfHeader",
    "FrameKind",
    "FunctionCandidate",
    "FunctionRegistry",
    "FunctionSource",
    "InvalidSymbolTableSize",
    "MalformedContainer",
    "MissingRegion",
    "MissingUnwindTable",
    "PeHeader",
    "RecordDecodeError",
    "Region",
    "RegionInfo",
    "RegionKind",
    "ScannerError",
    "TruncatedRegion",
    "UnsupportedContainer",
]
