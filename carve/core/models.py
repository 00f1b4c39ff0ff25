"""
Carve Data Models
==================

Pydantic-based data models for the Carve function-recovery core: the
container header capability view, addressable regions, function
candidates, source priority tiers, and the aggregate analysis result.

Headers, regions and candidates are frozen value objects.  Superseding a
candidate happens by replacement in the registry, never in place.

References:
    - TIS Committee. (1995). Executable and Linkable Format (ELF) Specification.
    - Microsoft. (2024). PE Format. Microsoft Learn.
    - DWARF Debugging Information Format, Version 5, section 6.4.
"""

from __future__ import annotations

import enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class BinaryFormat(str, enum.Enum):
    """Container formats recognised by the loader."""
    ELF = "elf"
    PE = "pe"
    UNKNOWN = "unknown"


class RegionKind(str, enum.Enum):
    """Provenance of a region.

    Section regions carry ``sh_flags`` in :attr:`Region.flags`; segment
    regions carry the ``p_flags`` permission bits instead.
    """
    SECTION = "section"
    SEGMENT = "segment"


class FunctionSource(enum.IntEnum):
    """Trust ranking of function evidence, lowest to highest.

    A higher tier always supersedes a lower one at the same start address.
    ``CALL_GRAPH`` is reserved and no scanner produces it yet; ``MANUAL`` is
    used by entry-point identification and caller-synthesised candidates.
    """
    UNWIND_TABLE = 0
    CALL_GRAPH = 1
    DYNAMIC_SYMBOL_TABLE = 2
    STATIC_SYMBOL_TABLE = 3
    MANUAL = 4


class FrameKind(str, enum.Enum):
    """Regions Carve knows how to mine for function boundaries."""
    EH_FRAME = ".eh_frame"
    EH_FRAME_HDR = ".eh_frame_hdr"
    DEBUG_FRAME = ".debug_frame"
    SYMTAB = ".symtab"
    DYNSYM = ".dynsym"

    @classmethod
    def parse(cls, text: str) -> FrameKind:
        """Parse a frame kind from its region name or a short alias.

        Accepts ``".eh_frame"`` as well as ``"ehframe"`` / ``"eh_frame"``,
        case-insensitively.

        Raises:
            ValueError: If *text* names no known frame kind.
        """
        key = text.strip().lower()
        for kind in cls:
            bare = kind.value.lstrip(".")
            if key in (kind.value, bare, bare.replace("_", "")):
                return kind
        raise ValueError(f"Unknown frame type: {text}")

    @property
    def source(self) -> FunctionSource:
        """Priority tier assigned to candidates found in this region."""
        return _FRAME_SOURCES[self]

    def __str__(self) -> str:
        return self.value


_FRAME_SOURCES: dict[FrameKind, FunctionSource] = {
    FrameKind.EH_FRAME: FunctionSource.UNWIND_TABLE,
    FrameKind.EH_FRAME_HDR: FunctionSource.UNWIND_TABLE,
    FrameKind.DEBUG_FRAME: FunctionSource.UNWIND_TABLE,
    FrameKind.SYMTAB: FunctionSource.STATIC_SYMBOL_TABLE,
    FrameKind.DYNSYM: FunctionSource.DYNAMIC_SYMBOL_TABLE,
}


# ---------------------------------------------------------------------------
# Container headers
# ---------------------------------------------------------------------------

_ELF_MACHINES: dict[int, str] = {
    0: "None",
    3: "x86",
    8: "MIPS",
    20: "PowerPC",
    21: "PowerPC64",
    40: "ARM",
    62: "x86_64",
    183: "AArch64",
    243: "RISC-V",
}

_PE_MACHINES: dict[int, str] = {
    0x14C: "x86",
    0x1C0: "ARM",
    0x1C4: "ARM Thumb-2",
    0x8664: "x86_64",
    0xAA64: "AArch64",
}


class ElfHeader(BaseModel):
    """Decoded ELF64 file header.

    Every raw ``Elf64_Ehdr`` field is kept so the region extractor can
    locate the section and program header tables.
    """

    model_config = ConfigDict(frozen=True)

    ident: bytes = Field(default=b"", repr=False)
    e_type: int = 0
    e_machine: int = 0
    e_version: int = 0
    e_entry: int = 0
    e_phoff: int = 0
    e_shoff: int = 0
    e_flags: int = 0
    e_ehsize: int = 0
    e_phentsize: int = 0
    e_phnum: int = 0
    e_shentsize: int = 0
    e_shnum: int = 0
    e_shstrndx: int = 0

    @property
    def entry_point(self) -> int:
        return self.e_entry

    @property
    def machine(self) -> int:
        return self.e_machine

    @property
    def is_64bit(self) -> bool:
        return True

    @property
    def format_name(self) -> str:
        return "ELF"

    @property
    def is_executable(self) -> bool:
        # ET_EXEC only; shared objects and PIE (ET_DYN) report False
        return self.e_type == 2

    @property
    def arch(self) -> str:
        return _ELF_MACHINES.get(self.e_machine, f"unknown({self.e_machine})")


class PeHeader(BaseModel):
    """Decoded PE/COFF header fields needed for the capability view."""

    model_config = ConfigDict(frozen=True)

    pe_offset: int = 0
    coff_machine: int = 0
    number_of_sections: int = 0
    characteristics: int = 0
    optional_magic: int = 0
    address_of_entry_point: int = 0
    image_base: int = 0

    @property
    def entry_point(self) -> int:
        """Virtual address of the entry point (image base + RVA)."""
        return self.image_base + self.address_of_entry_point

    @property
    def machine(self) -> int:
        return self.coff_machine

    @property
    def is_64bit(self) -> bool:
        return self.optional_magic == 0x20B

    @property
    def format_name(self) -> str:
        return "PE"

    @property
    def is_executable(self) -> bool:
        # IMAGE_FILE_EXECUTABLE_IMAGE set and IMAGE_FILE_DLL clear
        return bool(self.characteristics & 0x0002) and not (
            self.characteristics & 0x2000
        )

    @property
    def arch(self) -> str:
        return _PE_MACHINES.get(self.coff_machine, f"unknown(0x{self.coff_machine:x})")


ContainerHeader = Union[ElfHeader, PeHeader]


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------

class RegionInfo(BaseModel):
    """Region metadata without its byte contents (for reports)."""
    name: str = ""
    virtual_address: int = 0
    size: int = 0
    file_offset: int = 0
    flags: int = 0
    kind: RegionKind = RegionKind.SECTION


class Region(BaseModel):
    """A named, addressed, sized span of binary content.

    Attributes:
        name: Section name, or ``.segment_<index>`` for segment regions.
        virtual_address: Load address of the first byte.
        size: Size in memory.  For segments this is ``p_memsz`` and may
            exceed ``len(raw_bytes)``.
        file_offset: Offset of the span within the file.
        flags: ``sh_flags`` for sections, ``p_flags`` for segments.
        raw_bytes: Independent copy of the on-disk bytes.
        kind: Whether the region came from a section or a segment.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    virtual_address: int = 0
    size: int = 0
    file_offset: int = 0
    flags: int = 0
    raw_bytes: bytes = Field(default=b"", repr=False)
    kind: RegionKind = RegionKind.SECTION

    @property
    def end_address(self) -> int:
        return self.virtual_address + self.size

    def contains(self, address: int) -> bool:
        """Return ``True`` if *address* falls inside this region."""
        return self.virtual_address <= address < self.end_address

    def to_info(self) -> RegionInfo:
        return RegionInfo(
            name=self.name,
            virtual_address=self.virtual_address,
            size=self.size,
            file_offset=self.file_offset,
            flags=self.flags,
            kind=self.kind,
        )


# ---------------------------------------------------------------------------
# Function candidates
# ---------------------------------------------------------------------------

class FunctionCandidate(BaseModel):
    """A recovered function boundary.

    Invariant: ``end == start + size``.  The synthetic entry stub is the
    degenerate case ``size == 0`` and ``end == start``.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    size: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> FunctionCandidate:
        if self.end != self.start + self.size:
            raise ValueError(
                f"{self.identifier}: end 0x{self.end:x} != "
                f"start 0x{self.start:x} + size 0x{self.size:x}"
            )
        return self

    @classmethod
    def from_range(cls, identifier: str, start: int, size: int) -> FunctionCandidate:
        return cls(identifier=identifier, start=start, end=start + size, size=size)

    def renamed(self, identifier: str) -> FunctionCandidate:
        """Return a copy of this candidate under a new identifier."""
        return self.model_copy(update={"identifier": identifier})


# ---------------------------------------------------------------------------
# Aggregate analysis result
# ---------------------------------------------------------------------------

class BinaryInfo(BaseModel):
    """Top-level metadata about an analysed binary.

    Attributes:
        path: Filesystem path (or ``<memory>``).
        size: File size in bytes.
        format: Detected container format.
        arch: Architecture name derived from the machine id.
        machine: Raw machine id.
        bits: Address width (32 or 64).
        entry_point: Entry point virtual address.
        is_executable: Executable (vs. object / shared library).
        is_stripped: ``True`` when regions came from program segments.
        sha256: SHA-256 of the file contents.
    """
    path: str = ""
    size: int = 0
    format: BinaryFormat = BinaryFormat.UNKNOWN
    arch: str = "unknown"
    machine: int = 0
    bits: int = 0
    entry_point: int = 0
    is_executable: bool = False
    is_stripped: bool = False
    sha256: str = ""


class AnalysisResult(BaseModel):
    """Complete function-recovery result for a single binary.

    Attributes:
        info: Binary metadata.
        regions: Region metadata (no raw bytes).
        functions: Finalised, address-sorted function list.
        source_counts: Candidates produced per scanned region name.
        warnings: Scanner-local failures.  Sources whose region is absent
            are not warnings; they show up as a zero in ``source_counts``.
    """
    info: BinaryInfo = Field(default_factory=BinaryInfo)
    regions: list[RegionInfo] = Field(default_factory=list)
    functions: list[FunctionCandidate] = Field(default_factory=list)
    source_counts: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)

    @property
    def function_count(self) -> int:
        return len(self.functions)

    def entry(self) -> FunctionCandidate | None:
        """Return the canonical ``entry`` function, if finalised."""
        for func in self.functions:
            if func.identifier == "entry":
                return func
        return None
