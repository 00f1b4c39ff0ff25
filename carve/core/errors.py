"""
Carve Error Hierarchy
======================

Exceptions raised by the Carve function-recovery core.

Errors fall into two families with different propagation rules:

* :class:`ContainerError` -- raised while opening a binary.  There is no
  partial container state to work with afterwards, so these abort the
  whole analysis session.
* :class:`ScannerError` -- raised by a single scanner call.  Callers running
  several scanners catch these per source, report them as warnings and
  continue merging evidence from the remaining sources.

:class:`MissingRegion` sits beside both: it signals a lookup of a region
the binary does not have, which the scan helpers turn into a logged skip.
"""

from __future__ import annotations


class CarveError(Exception):
    """Base class for every error raised by Carve."""


# ---------------------------------------------------------------------------
# Container (open-time) errors
# ---------------------------------------------------------------------------

class ContainerError(CarveError):
    """The binary container could not be opened."""


class MalformedContainer(ContainerError):
    """Unrecognised or internally inconsistent container metadata."""


class TruncatedRegion(ContainerError):
    """A declared region's byte span runs past the end of the buffer.

    Attributes:
        name: Name of the region being read (may be empty).
        offset: Declared file offset.
        size: Declared size in bytes.
        buffer_size: Length of the buffer the read was attempted against.
    """

    def __init__(
        self,
        name: str,
        offset: int,
        size: int,
        buffer_size: int,
    ) -> None:
        self.name = name
        self.offset = offset
        self.size = size
        self.buffer_size = buffer_size
        super().__init__(
            f"Region {name or '<unnamed>'!s} at offset 0x{offset:x} "
            f"(0x{size:x} bytes) exceeds buffer of 0x{buffer_size:x} bytes"
        )


class UnsupportedContainer(ContainerError):
    """The container format is recognised but not handled by this core."""


# ---------------------------------------------------------------------------
# Scanner-local errors
# ---------------------------------------------------------------------------

class ScannerError(CarveError):
    """A single scanner failed; other sources remain usable."""


class InvalidSymbolTableSize(ScannerError):
    """Symbol table length is not a multiple of the record size."""

    def __init__(self, length: int, entry_size: int) -> None:
        self.length = length
        self.entry_size = entry_size
        super().__init__(
            f"Invalid symbol table size {length} "
            f"(not a multiple of {entry_size})"
        )


class MissingUnwindTable(ScannerError):
    """An unwind header was found but carries no usable search table."""


class RecordDecodeError(ScannerError):
    """A single variable-length record could not be decoded.

    Raised by the DWARF decoding helpers; the frame scanners catch it per
    record and skip the offending entry.
    """


# ---------------------------------------------------------------------------
# Region lookup
# ---------------------------------------------------------------------------

class MissingRegion(CarveError):
    """The requested region does not exist in the binary."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Region not found: {name}")
