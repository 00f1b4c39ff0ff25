"""
DWARF Call-Frame Encoding Helpers
==================================

Variable-length integer and ``DW_EH_PE_*`` pointer decoding shared by the
``.eh_frame``, ``.debug_frame`` and ``.eh_frame_hdr`` scanners.

Every reader takes ``(data, offset)`` and returns ``(value, next_offset)``.
Reads that would run past the buffer raise
:class:`~carve.core.errors.RecordDecodeError` so a scanner can skip the
record it was working on.

A pointer encoding byte splits into two nibbles::

    bits 0-3  value format       absptr, uleb128, udata2/4/8, sleb128, sdata2/4/8
    bits 4-6  application        absolute, pcrel, textrel, datarel, funcrel, aligned
    bit  7    indirect           value is the address of the real pointer

References:
    - DWARF Debugging Information Format, Version 5, sections 6.4 and 7.24.
    - Linux Standard Base Core Specification 5.0, section 10.5
      (Exception Frames / DWARF Exception Header Encoding).
"""

from __future__ import annotations

import struct

from carve.core.errors import RecordDecodeError

# Value formats (low nibble)
DW_EH_PE_absptr: int = 0x00
DW_EH_PE_uleb128: int = 0x01
DW_EH_PE_udata2: int = 0x02
DW_EH_PE_udata4: int = 0x03
DW_EH_PE_udata8: int = 0x04
DW_EH_PE_sleb128: int = 0x09
DW_EH_PE_sdata2: int = 0x0A
DW_EH_PE_sdata4: int = 0x0B
DW_EH_PE_sdata8: int = 0x0C

# Application (bits 4-6)
DW_EH_PE_pcrel: int = 0x10
DW_EH_PE_textrel: int = 0x20
DW_EH_PE_datarel: int = 0x30
DW_EH_PE_funcrel: int = 0x40
DW_EH_PE_aligned: int = 0x50

DW_EH_PE_indirect: int = 0x80
DW_EH_PE_omit: int = 0xFF

_ADDRESS_MASK: int = 0xFFFF_FFFF_FFFF_FFFF

_FIXED_FORMATS: dict[int, str] = {
    DW_EH_PE_udata2: "<H",
    DW_EH_PE_udata4: "<I",
    DW_EH_PE_udata8: "<Q",
    DW_EH_PE_sdata2: "<h",
    DW_EH_PE_sdata4: "<i",
    DW_EH_PE_sdata8: "<q",
}


def read_u8(data: bytes, offset: int) -> tuple[int, int]:
    if offset >= len(data):
        raise RecordDecodeError(f"u8 read past end at 0x{offset:x}")
    return data[offset], offset + 1


def read_fixed(data: bytes, offset: int, fmt: str) -> tuple[int, int]:
    """Read a single little-endian fixed-size integer with :mod:`struct`."""
    size = struct.calcsize(fmt)
    if offset < 0 or offset + size > len(data):
        raise RecordDecodeError(
            f"{size}-byte read past end at 0x{offset:x} (buffer 0x{len(data):x})"
        )
    (value,) = struct.unpack_from(fmt, data, offset)
    return value, offset + size


def read_uleb128(data: bytes, offset: int) -> tuple[int, int]:
    """Decode an unsigned LEB128 value."""
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise RecordDecodeError("Unterminated ULEB128")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return result, offset


def read_sleb128(data: bytes, offset: int) -> tuple[int, int]:
    """Decode a signed LEB128 value."""
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise RecordDecodeError("Unterminated SLEB128")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            if byte & 0x40:
                result -= 1 << shift
            return result, offset


def read_cstring(data: bytes, offset: int) -> tuple[bytes, int]:
    """Read a NUL-terminated byte string; returns it without the NUL."""
    end = data.find(b"\x00", offset)
    if end == -1:
        raise RecordDecodeError(f"Unterminated string at 0x{offset:x}")
    return data[offset:end], end + 1


def read_encoded_value(
    data: bytes,
    offset: int,
    encoding: int,
    address_size: int = 8,
) -> tuple[int, int]:
    """Read the raw value part of a ``DW_EH_PE`` encoded field.

    Only the low nibble is honoured; no base address is applied.  Used
    directly for FDE address ranges, which are lengths rather than
    addresses.
    """
    fmt = encoding & 0x0F
    if fmt == DW_EH_PE_absptr:
        return read_fixed(data, offset, "<Q" if address_size == 8 else "<I")
    if fmt == DW_EH_PE_uleb128:
        return read_uleb128(data, offset)
    if fmt == DW_EH_PE_sleb128:
        return read_sleb128(data, offset)
    if fmt in _FIXED_FORMATS:
        return read_fixed(data, offset, _FIXED_FORMATS[fmt])
    raise RecordDecodeError(f"Unsupported pointer value format 0x{encoding:02x}")


def read_encoded_pointer(
    data: bytes,
    offset: int,
    encoding: int,
    *,
    section_address: int,
    data_address: int | None = None,
    address_size: int = 8,
) -> tuple[int, int]:
    """Read a ``DW_EH_PE`` encoded pointer and resolve it to an address.

    Args:
        data: Section bytes.
        offset: Offset of the field within *data*.
        encoding: The encoding byte.
        section_address: Virtual address of ``data[0]``; ``pcrel`` values
            are relative to ``section_address + offset``.
        data_address: Base for ``datarel`` values.  Defaults to
            *section_address* (correct for ``.eh_frame_hdr``).
        address_size: Pointer width for ``absptr``.

    Returns:
        ``(address, next_offset)``

    Raises:
        RecordDecodeError: ``omit``, ``textrel``, ``funcrel`` and
            ``indirect`` encodings need runtime context and are rejected,
            as are reads past the end of *data*.
    """
    if encoding == DW_EH_PE_omit:
        raise RecordDecodeError("Pointer encoding is DW_EH_PE_omit")
    if encoding & DW_EH_PE_indirect:
        raise RecordDecodeError(
            f"Indirect pointer encoding 0x{encoding:02x} is not supported"
        )

    application = encoding & 0x70
    if application == DW_EH_PE_aligned:
        offset = (offset + address_size - 1) & ~(address_size - 1)
        return read_fixed(data, offset, "<Q" if address_size == 8 else "<I")

    field_offset = offset
    value, offset = read_encoded_value(data, offset, encoding, address_size)

    if application == 0:
        base = 0
    elif application == DW_EH_PE_pcrel:
        base = section_address + field_offset
    elif application == DW_EH_PE_datarel:
        base = section_address if data_address is None else data_address
    else:
        raise RecordDecodeError(
            f"Pointer application 0x{application:02x} is not supported"
        )

    return (base + value) & _ADDRESS_MASK, offset
