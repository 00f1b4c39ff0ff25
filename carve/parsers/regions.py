"""
ELF Region Extractor
=====================

Derives the normalized list of addressable regions for an ELF64 file.

Regions come from the section header table when the file has one.  When
section headers are absent (stripped or deliberately mangled binaries)
the loadable program segments are used instead, each synthesised as a
region named ``.segment_<index>``.

The two paths treat bad data differently.  Section header tables are
trusted metadata, so a section that runs past the end of the file aborts
extraction with :class:`~carve.core.errors.TruncatedRegion`.  Segment
tables are the fallback for already-suspect binaries, so a segment that
cannot be read is dropped and extraction carries on.

References:
    - TIS Committee. (1995). ELF Specification, Version 1.2, chapters 1-2.
"""

from __future__ import annotations

import struct
from typing import Optional

from shared.logger import CarveLogger

from carve.core.errors import MalformedContainer, TruncatedRegion
from carve.core.models import ElfHeader, Region, RegionKind


# ---------------------------------------------------------------------------
# ELF Constants
# ---------------------------------------------------------------------------

# Section header types
SHT_NOBITS: int = 8

# Section header flags
SHF_WRITE: int = 0x1
SHF_ALLOC: int = 0x2
SHF_EXECINSTR: int = 0x4

# Program header types
PT_LOAD: int = 1

# Program header flags
PF_X: int = 0x1  # Execute
PF_W: int = 0x2  # Write
PF_R: int = 0x4  # Read

# Elf64_Shdr: 64 bytes, Elf64_Phdr: 56 bytes
_SHDR = struct.Struct("<IIQQQQIIQQ")
_PHDR = struct.Struct("<IIQQQQQQ")


# ---------------------------------------------------------------------------
# Internal parsed structures
# ---------------------------------------------------------------------------

class _SectionHeader:
    """Parsed section header entry."""
    __slots__ = (
        "sh_name", "sh_type", "sh_flags", "sh_addr",
        "sh_offset", "sh_size", "sh_link", "sh_info",
        "sh_addralign", "sh_entsize",
    )

    def __init__(self, fields: tuple[int, ...]) -> None:
        (
            self.sh_name, self.sh_type, self.sh_flags, self.sh_addr,
            self.sh_offset, self.sh_size, self.sh_link, self.sh_info,
            self.sh_addralign, self.sh_entsize,
        ) = fields


class _ProgramHeader:
    """Parsed program header (segment) entry."""
    __slots__ = (
        "p_type", "p_flags", "p_offset", "p_vaddr",
        "p_paddr", "p_filesz", "p_memsz", "p_align",
    )

    def __init__(self, fields: tuple[int, ...]) -> None:
        (
            self.p_type, self.p_flags, self.p_offset, self.p_vaddr,
            self.p_paddr, self.p_filesz, self.p_memsz, self.p_align,
        ) = fields


# ---------------------------------------------------------------------------
# Region extractor
# ---------------------------------------------------------------------------

class RegionExtractor:
    """Build :class:`~carve.core.models.Region` objects from an ELF64 file.

    Usage::

        header = decode_elf_header(data)
        regions, stripped = RegionExtractor(header, data).extract()
    """

    def __init__(
        self,
        header: ElfHeader,
        data: bytes,
        logger: Optional[CarveLogger] = None,
    ) -> None:
        """Initialise the extractor.

        Args:
            header: Decoded ELF header of *data*.
            data: Complete file contents.
            logger: Logger; a quiet one is created if not provided.
        """
        self._header = header
        self._data = data
        self._logger = logger or CarveLogger.quiet("regions")

    @property
    def has_section_headers(self) -> bool:
        return self._header.e_shnum > 0 and self._header.e_shoff != 0

    @property
    def has_program_headers(self) -> bool:
        return self._header.e_phnum > 0 and self._header.e_phoff != 0

    def extract(self) -> tuple[list[Region], bool]:
        """Extract regions, choosing the section or segment path.

        Returns:
            ``(regions, is_stripped)``.  ``is_stripped`` is ``True`` when the
            regions were synthesised from program segments.

        Raises:
            TruncatedRegion: A section header or section body runs past
                the end of the buffer.
            MalformedContainer: Neither section nor program headers exist,
                or a header table declares an undersized entry.
        """
        if self.has_section_headers:
            self._logger.info("Has section headers (not stripped)")
            return self._sections_from_headers(), False

        if self.has_program_headers:
            self._logger.warning(
                "No section headers, stripped binary. "
                "Falling back to program headers (segments)."
            )
            return self._regions_from_segments(), True

        raise MalformedContainer(
            "neither section headers nor program headers present"
        )

    # ------------------------------------------------------------------ #
    #  Section header path
    # ------------------------------------------------------------------ #

    def _read_section_headers(self) -> list[_SectionHeader]:
        h = self._header
        entsize = h.e_shentsize or _SHDR.size
        if entsize < _SHDR.size:
            raise MalformedContainer(
                f"Section header entry size {entsize} is below {_SHDR.size}"
            )

        headers: list[_SectionHeader] = []
        for i in range(h.e_shnum):
            offset = h.e_shoff + i * entsize
            if offset + _SHDR.size > len(self._data):
                raise TruncatedRegion(
                    f"section header {i}", offset, _SHDR.size, len(self._data)
                )
            headers.append(_SectionHeader(_SHDR.unpack_from(self._data, offset)))
        return headers

    def _sections_from_headers(self) -> list[Region]:
        headers = self._read_section_headers()
        names = self._section_name_table(headers)

        regions: list[Region] = []
        for sh in headers:
            name = self._read_cstring(names, sh.sh_name)
            if sh.sh_type == SHT_NOBITS:
                # .bss and friends occupy no file bytes
                raw = b""
            else:
                raw = self._read_span(name, sh.sh_offset, sh.sh_size)
            regions.append(Region(
                name=name,
                virtual_address=sh.sh_addr,
                size=sh.sh_size,
                file_offset=sh.sh_offset,
                flags=sh.sh_flags,
                raw_bytes=raw,
                kind=RegionKind.SECTION,
            ))

        self._logger.debug(f"Extracted {len(regions)} sections")
        return regions

    def _section_name_table(self, headers: list[_SectionHeader]) -> bytes:
        """Return the section-name string table, or ``b""`` if unusable."""
        index = self._header.e_shstrndx
        if index == 0 or index >= len(headers):
            self._logger.debug(f"No usable section name table (index {index})")
            return b""
        sh = headers[index]
        return self._read_span(".shstrtab", sh.sh_offset, sh.sh_size)

    def _read_span(self, name: str, offset: int, size: int) -> bytes:
        if offset + size > len(self._data):
            raise TruncatedRegion(name, offset, size, len(self._data))
        return bytes(self._data[offset:offset + size])

    # ------------------------------------------------------------------ #
    #  Program header (segment) fallback path
    # ------------------------------------------------------------------ #

    def _read_program_headers(self) -> list[_ProgramHeader]:
        h = self._header
        entsize = h.e_phentsize or _PHDR.size
        if entsize < _PHDR.size:
            raise MalformedContainer(
                f"Program header entry size {entsize} is below {_PHDR.size}"
            )

        headers: list[_ProgramHeader] = []
        for i in range(h.e_phnum):
            offset = h.e_phoff + i * entsize
            if offset + _PHDR.size > len(self._data):
                self._logger.warning(
                    f"Program header table truncated after {i} entries"
                )
                break
            headers.append(_ProgramHeader(_PHDR.unpack_from(self._data, offset)))
        return headers

    def _regions_from_segments(self) -> list[Region]:
        regions: list[Region] = []
        buf_len = len(self._data)

        for index, ph in enumerate(self._read_program_headers()):
            if ph.p_type != PT_LOAD:
                continue
            if ph.p_filesz == 0 or ph.p_offset + ph.p_filesz > buf_len:
                self._logger.debug(
                    f"Dropping segment {index}: offset 0x{ph.p_offset:x} "
                    f"filesz 0x{ph.p_filesz:x} (buffer 0x{buf_len:x})"
                )
                continue

            regions.append(Region(
                name=f".segment_{index}",
                virtual_address=ph.p_vaddr,
                size=ph.p_memsz,
                file_offset=ph.p_offset,
                flags=ph.p_flags,
                raw_bytes=bytes(self._data[ph.p_offset:ph.p_offset + ph.p_filesz]),
                kind=RegionKind.SEGMENT,
            ))

        self._logger.debug(f"Synthesised {len(regions)} segment regions")
        return regions

    # ------------------------------------------------------------------ #
    #  Utility methods
    # ------------------------------------------------------------------ #

    @staticmethod
    def _read_cstring(data: bytes, offset: int) -> str:
        """Read a NUL-terminated string, ``""`` when out of bounds."""
        if offset < 0 or offset >= len(data):
            return ""
        end = data.find(b"\x00", offset)
        if end == -1:
            end = len(data)
        return data[offset:end].decode("utf-8", errors="replace")


def extract_regions(
    header: ElfHeader,
    data: bytes,
    logger: Optional[CarveLogger] = None,
) -> tuple[list[Region], bool]:
    """Module-level convenience wrapper around :meth:`RegionExtractor.extract`."""
    return RegionExtractor(header, data, logger=logger).extract()


def segment_flags_str(flags: int) -> str:
    """Convert program header flags to a string like ``"R-X"``."""
    return "".join((
        "R" if flags & PF_R else "-",
        "W" if flags & PF_W else "-",
        "X" if flags & PF_X else "-",
    ))


def section_flags_str(flags: int) -> str:
    """Convert section flags to a string like ``"AX"``."""
    parts: list[str] = []
    if flags & SHF_WRITE:
        parts.append("W")
    if flags & SHF_ALLOC:
        parts.append("A")
    if flags & SHF_EXECINSTR:
        parts.append("X")
    return "".join(parts) if parts else "-"
