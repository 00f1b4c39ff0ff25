"""
PE/COFF Header Decoder
=======================

Decodes just enough of a Portable Executable to fill the container
capability view (entry point, machine, bitness, executable flag).  PE
region extraction is not implemented; :meth:`carve.core.binary.Binary.open`
raises :class:`~carve.core.errors.UnsupportedContainer` once the header
has been read.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

from __future__ import annotations

import struct

from carve.core.errors import MalformedContainer
from carve.core.models import PeHeader
from carve.parsers.magic import MZ_MAGIC

PE_MAGIC: bytes = b"PE\x00\x00"

PE32_MAGIC: int = 0x10B
PE32PLUS_MAGIC: int = 0x20B

_DOS_HEADER_SIZE: int = 64
_COFF_HEADER = struct.Struct("<HHIIIHH")


def decode_pe_header(data: bytes) -> PeHeader:
    """Decode the DOS stub, COFF header and optional-header prefix.

    Raises:
        MalformedContainer: Missing ``MZ`` / ``PE\\0\\0`` signatures or a
            header that runs past the end of *data*.
    """
    if len(data) < _DOS_HEADER_SIZE or data[:2] != MZ_MAGIC:
        raise MalformedContainer("Missing MZ DOS header")

    (pe_offset,) = struct.unpack_from("<I", data, 0x3C)
    if data[pe_offset:pe_offset + 4] != PE_MAGIC:
        raise MalformedContainer(f"Missing PE signature at 0x{pe_offset:x}")

    coff_offset = pe_offset + 4
    if coff_offset + _COFF_HEADER.size > len(data):
        raise MalformedContainer("Truncated COFF header")
    (
        machine, number_of_sections, _timestamp, _symtab_ptr,
        _symbol_count, optional_size, characteristics,
    ) = _COFF_HEADER.unpack_from(data, coff_offset)

    optional_magic = 0
    entry_rva = 0
    image_base = 0
    opt_offset = coff_offset + _COFF_HEADER.size
    if optional_size:
        # Standard fields, then ImageBase (u32 at +28 for PE32, u64 at +24 for PE32+)
        if opt_offset + 32 > len(data):
            raise MalformedContainer("Truncated optional header")
        optional_magic, = struct.unpack_from("<H", data, opt_offset)
        entry_rva, = struct.unpack_from("<I", data, opt_offset + 16)
        if optional_magic == PE32PLUS_MAGIC:
            image_base, = struct.unpack_from("<Q", data, opt_offset + 24)
        elif optional_magic == PE32_MAGIC:
            image_base, = struct.unpack_from("<I", data, opt_offset + 28)
        else:
            raise MalformedContainer(
                f"Unknown optional header magic 0x{optional_magic:x}"
            )

    return PeHeader(
        pe_offset=pe_offset,
        coff_machine=machine,
        number_of_sections=number_of_sections,
        characteristics=characteristics,
        optional_magic=optional_magic,
        address_of_entry_point=entry_rva,
        image_base=image_base,
    )
