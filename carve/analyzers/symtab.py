"""
Symbol-Table Function Scanner
==============================

Recovers named function candidates from an ELF64 symbol table
(``.symtab`` or ``.dynsym``) and its companion string table.

Each ``Elf64_Sym`` record is 24 bytes::

    u32  st_name    offset into the string table
    u8   st_info    binding << 4 | type
    u8   st_other   visibility
    u16  st_shndx   section index (0 = SHN_UNDEF)
    u64  st_value   address
    u64  st_size    size in bytes

Records that are undefined, sit at address zero or have no size are not
emitted.  Symbol type is not checked, so sized data objects in text
sections are reported as well.

References:
    - System V Application Binary Interface, Edition 4.1, chapter 4
      ("Symbol Table").
"""

from __future__ import annotations

import struct
from typing import Optional

from shared.logger import CarveLogger

from carve.core.errors import InvalidSymbolTableSize
from carve.core.models import FunctionCandidate

SHN_UNDEF: int = 0

_SYM = struct.Struct("<IBBHQQ")
SYMBOL_RECORD_SIZE: int = _SYM.size  # 24


class SymbolRecord:
    """A decoded ``Elf64_Sym`` entry."""
    __slots__ = ("st_name", "st_info", "st_other", "st_shndx", "st_value", "st_size")

    def __init__(self, fields: tuple[int, ...]) -> None:
        (
            self.st_name, self.st_info, self.st_other,
            self.st_shndx, self.st_value, self.st_size,
        ) = fields

    @property
    def is_function_like(self) -> bool:
        return (
            self.st_shndx != SHN_UNDEF
            and self.st_value != 0
            and self.st_size != 0
        )


def iter_symbol_records(symtab_bytes: bytes):
    """Yield every :class:`SymbolRecord` in *symtab_bytes*.

    Raises:
        InvalidSymbolTableSize: Length is not a multiple of 24.
    """
    if len(symtab_bytes) % SYMBOL_RECORD_SIZE:
        raise InvalidSymbolTableSize(len(symtab_bytes), SYMBOL_RECORD_SIZE)
    for fields in _SYM.iter_unpack(symtab_bytes):
        yield SymbolRecord(fields)


def resolve_name(strtab_bytes: bytes, offset: int) -> str:
    """Read the NUL-terminated name at *offset*; ``""`` when out of bounds."""
    if offset >= len(strtab_bytes):
        return ""
    end = strtab_bytes.find(b"\x00", offset)
    if end == -1:
        end = len(strtab_bytes)
    return strtab_bytes[offset:end].decode("utf-8", errors="replace")


def scan_symbol_table(
    symtab_bytes: bytes,
    strtab_bytes: bytes,
    logger: Optional[CarveLogger] = None,
) -> list[FunctionCandidate]:
    """Decode a symbol table into function candidates.

    Args:
        symtab_bytes: Raw ``.symtab`` / ``.dynsym`` contents.
        strtab_bytes: Raw contents of the linked string table.
        logger: Logger; a quiet one is created if not provided.

    Returns:
        Candidates in symbol-table order.  Unnamed symbols are called
        ``FUNC_0x<value>``.

    Raises:
        InvalidSymbolTableSize: The table is not a whole number of records.
    """
    log = logger or CarveLogger.quiet("symtab")

    candidates: list[FunctionCandidate] = []
    filtered = 0
    for record in iter_symbol_records(symtab_bytes):
        if not record.is_function_like:
            filtered += 1
            continue
        name = resolve_name(strtab_bytes, record.st_name)
        if not name:
            name = f"FUNC_0x{record.st_value:x}"
        candidates.append(
            FunctionCandidate.from_range(name, record.st_value, record.st_size)
        )

    log.debug(
        f"Symbol table: {len(candidates)} candidate(s), {filtered} filtered"
    )
    return candidates
