"""
ELF64 Header Decoder
=====================

Manual struct-based decoder for the fixed 64-byte ``Elf64_Ehdr`` at the
start of an ELF file.  Decoding is a single fallible step: the result is
either a fully populated :class:`~carve.core.models.ElfHeader` or an
exception, never a partially initialised header.

Layout (little-endian, offsets in bytes)::

    0x00  e_ident[16]
    0x10  e_type       u16     0x12  e_machine    u16
    0x14  e_version    u32     0x18  e_entry      u64
    0x20  e_phoff      u64     0x28  e_shoff      u64
    0x30  e_flags      u32     0x34  e_ehsize     u16
    0x36  e_phentsize  u16     0x38  e_phnum      u16
    0x3A  e_shentsize  u16     0x3C  e_shnum      u16
    0x3E  e_shstrndx   u16

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1, chapter 4.
"""

from __future__ import annotations

import struct

from carve.core.errors import MalformedContainer, UnsupportedContainer
from carve.core.models import ElfHeader
from carve.parsers.magic import ELF_MAGIC


# ---------------------------------------------------------------------------
# ELF Constants
# ---------------------------------------------------------------------------

EI_NIDENT: int = 16
ELF64_EHDR_SIZE: int = 64

# ELF Class (32-bit vs 64-bit)
ELFCLASS32: int = 1
ELFCLASS64: int = 2

# Data encoding (endianness)
ELFDATA2LSB: int = 1  # Little-endian
ELFDATA2MSB: int = 2  # Big-endian

# ELF type
ET_NONE: int = 0
ET_REL: int = 1   # Relocatable
ET_EXEC: int = 2  # Executable
ET_DYN: int = 3   # Shared object / PIE
ET_CORE: int = 4  # Core dump

_EHDR_FIELDS = struct.Struct("<HHIQQQIHHHHHH")


def decode_elf_header(data: bytes) -> ElfHeader:
    """Decode the ELF64 header at the start of *data*.

    The identification magic is validated before any other field is
    trusted.

    Args:
        data: Complete file contents (or at least the first 64 bytes).

    Returns:
        The decoded header.

    Raises:
        MalformedContainer: Buffer too short or ``\\x7fELF`` magic absent.
        UnsupportedContainer: Valid ELF, but not ELF64 little-endian.
    """
    if len(data) < ELF64_EHDR_SIZE:
        raise MalformedContainer(
            f"Buffer of {len(data)} bytes is too small for an ELF64 header"
        )
    if data[:4] != ELF_MAGIC:
        raise MalformedContainer("Missing ELF identification magic")

    ei_class = data[4]
    ei_data = data[5]
    if ei_class != ELFCLASS64:
        raise UnsupportedContainer(
            f"Only ELF64 is supported (EI_CLASS={ei_class})"
        )
    if ei_data != ELFDATA2LSB:
        raise UnsupportedContainer(
            f"Only little-endian ELF is supported (EI_DATA={ei_data})"
        )

    (
        e_type, e_machine, e_version, e_entry,
        e_phoff, e_shoff, e_flags, e_ehsize,
        e_phentsize, e_phnum, e_shentsize, e_shnum,
        e_shstrndx,
    ) = _EHDR_FIELDS.unpack_from(data, EI_NIDENT)

    return ElfHeader(
        ident=bytes(data[:EI_NIDENT]),
        e_type=e_type,
        e_machine=e_machine,
        e_version=e_version,
        e_entry=e_entry,
        e_phoff=e_phoff,
        e_shoff=e_shoff,
        e_flags=e_flags,
        e_ehsize=e_ehsize,
        e_phentsize=e_phentsize,
        e_phnum=e_phnum,
        e_shentsize=e_shentsize,
        e_shnum=e_shnum,
        e_shstrndx=e_shstrndx,
    )
