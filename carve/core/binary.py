"""
Binary Analysis Session
========================

:class:`Binary` is one function-recovery session over one file.  Opening
it decodes the header and extracts regions once; the caller then runs any
combination of scanners, in any order and as often as it likes, and
finally asks for the merged function list::

    binary = Binary.open("/bin/ls")
    binary.scan_eh_frame()
    binary.scan_symtab()
    for func in binary.finalize():
        print(f"0x{func.start:x} {func.identifier}")

Session states are ``Opened -> {Scanned}* -> Finalized``.  Finalization
(entry identification plus sort) is idempotent; scanning again afterwards
invalidates the cached list and the next :meth:`Binary.finalize` redoes
it.

The file buffer is not retained: every region holds its own copy of its
bytes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Optional

from shared.logger import CarveLogger

from carve.analyzers.eh_frame import scan_frame_entries, scan_frame_header_table
from carve.analyzers.symtab import scan_symbol_table
from carve.core.errors import MalformedContainer, MissingRegion, UnsupportedContainer
from carve.core.models import (
    BinaryFormat,
    ContainerHeader,
    FrameKind,
    FunctionCandidate,
    FunctionSource,
    Region,
)
from carve.core.registry import FunctionRegistry
from carve.parsers.elf_header import decode_elf_header
from carve.parsers.magic import MagicIdentifier
from carve.parsers.pe_header import decode_pe_header
from carve.parsers.regions import extract_regions


class Binary:
    """An opened binary plus its function registry.

    Use :meth:`open` or :meth:`from_bytes` rather than the constructor.
    """

    def __init__(
        self,
        path: str,
        format: BinaryFormat,
        header: ContainerHeader,
        regions: list[Region],
        is_stripped: bool,
        logger: Optional[CarveLogger] = None,
    ) -> None:
        self._path = path
        self._format = format
        self._header = header
        self._regions = regions
        self._by_name: dict[str, Region] = {}
        for region in regions:
            self._by_name.setdefault(region.name, region)
        self._is_stripped = is_stripped
        self._logger = logger or CarveLogger.quiet("binary")
        self._registry = FunctionRegistry(logger=self._logger)
        self._functions: Optional[list[FunctionCandidate]] = None

    # ------------------------------------------------------------------ #
    #  Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def open(cls, path: str | Path, logger: Optional[CarveLogger] = None) -> Binary:
        """Read *path* and open it.

        Raises:
            OSError: The file cannot be read.
            ContainerError: See :meth:`from_bytes`.
        """
        file_path = Path(path)
        data = file_path.read_bytes()
        return cls.from_bytes(data, path=str(file_path), logger=logger)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        path: str = "<memory>",
        logger: Optional[CarveLogger] = None,
    ) -> Binary:
        """Open an in-memory image.

        Raises:
            MalformedContainer: Unknown magic or inconsistent headers.
            TruncatedRegion: A section runs past the end of *data*.
            UnsupportedContainer: PE files, and ELF files that are not
                ELF64 little-endian.
        """
        log = logger or CarveLogger.quiet("binary")
        fmt = MagicIdentifier().identify_format(data)

        if fmt == BinaryFormat.ELF:
            header = decode_elf_header(data)
            log.debug(
                f"ELF64 {header.arch}, entry 0x{header.entry_point:x}, "
                f"{header.e_shnum} section(s), {header.e_phnum} segment(s)"
            )
            regions, stripped = extract_regions(header, data, logger=log)
            return cls(path, fmt, header, regions, stripped, logger=log)

        if fmt == BinaryFormat.PE:
            pe_header = decode_pe_header(data)
            raise UnsupportedContainer(
                f"PE ({pe_header.arch}) region extraction is not supported"
            )

        raise MalformedContainer("Unrecognised container magic")

    # ------------------------------------------------------------------ #
    #  Container view
    # ------------------------------------------------------------------ #

    @property
    def path(self) -> str:
        return self._path

    @property
    def format(self) -> BinaryFormat:
        return self._format

    @property
    def header(self) -> ContainerHeader:
        return self._header

    @property
    def regions(self) -> list[Region]:
        return list(self._regions)

    @property
    def is_stripped(self) -> bool:
        return self._is_stripped

    @property
    def entry_point(self) -> int:
        return self._header.entry_point

    def region(self, name: str) -> Optional[Region]:
        """Return the first region called *name*, or ``None``."""
        return self._by_name.get(name)

    def require_region(self, name: str) -> Region:
        region = self.region(name)
        if region is None:
            raise MissingRegion(name)
        return region

    def region_bytes(self, name: str) -> bytes:
        """Return the raw bytes of region *name*.

        Raises:
            MissingRegion: No region has that name.
        """
        return self.require_region(name).raw_bytes

    # ------------------------------------------------------------------ #
    #  Scanners
    # ------------------------------------------------------------------ #

    def _eh_frame(self) -> list[FunctionCandidate]:
        region = self.require_region(FrameKind.EH_FRAME.value)
        return scan_frame_entries(
            region.raw_bytes, region.virtual_address, logger=self._logger
        )

    def _eh_frame_hdr(self) -> list[FunctionCandidate]:
        region = self.require_region(FrameKind.EH_FRAME_HDR.value)
        return scan_frame_header_table(
            region.raw_bytes, region.virtual_address, logger=self._logger
        )

    def _debug_frame(self) -> list[FunctionCandidate]:
        region = self.require_region(FrameKind.DEBUG_FRAME.value)
        return scan_frame_entries(
            region.raw_bytes,
            region.virtual_address,
            debug_frame=True,
            logger=self._logger,
        )

    def _symtab(self) -> list[FunctionCandidate]:
        return scan_symbol_table(
            self.region_bytes(".symtab"),
            self.region_bytes(".strtab"),
            logger=self._logger,
        )

    def _dynsym(self) -> list[FunctionCandidate]:
        return scan_symbol_table(
            self.region_bytes(".dynsym"),
            self.region_bytes(".dynstr"),
            logger=self._logger,
        )

    _SCANNERS: dict[FrameKind, Callable[[Binary], list[FunctionCandidate]]] = {
        FrameKind.EH_FRAME: _eh_frame,
        FrameKind.EH_FRAME_HDR: _eh_frame_hdr,
        FrameKind.DEBUG_FRAME: _debug_frame,
        FrameKind.SYMTAB: _symtab,
        FrameKind.DYNSYM: _dynsym,
    }

    def scan(self, kind: FrameKind | str) -> int:
        """Run the scanner for *kind* and merge its output.

        A missing region is logged and contributes nothing.  Scanner
        errors (:class:`~carve.core.errors.ScannerError`) propagate.

        Returns:
            Number of candidates the scanner produced.
        """
        if not isinstance(kind, FrameKind):
            kind = FrameKind.parse(kind)

        with self._logger.operation(kind.value):
            try:
                candidates = self._SCANNERS[kind](self)
            except MissingRegion as exc:
                self._logger.warning(f"{exc}; skipping {kind.value} scan")
                return 0

            self._logger.info(f"{kind.value}: {len(candidates)} candidate(s)")
            self.merge(candidates, kind.source)
        return len(candidates)

    def scan_eh_frame(self) -> int:
        return self.scan(FrameKind.EH_FRAME)

    def scan_eh_frame_hdr(self) -> int:
        return self.scan(FrameKind.EH_FRAME_HDR)

    def scan_debug_frame(self) -> int:
        return self.scan(FrameKind.DEBUG_FRAME)

    def scan_symtab(self) -> int:
        return self.scan(FrameKind.SYMTAB)

    def scan_dynsym(self) -> int:
        return self.scan(FrameKind.DYNSYM)

    # ------------------------------------------------------------------ #
    #  Merge and finalize
    # ------------------------------------------------------------------ #

    def merge(
        self,
        candidates: Iterable[FunctionCandidate],
        source: FunctionSource,
    ) -> Binary:
        """Merge externally produced candidates at tier *source*."""
        self._registry.merge(candidates, source)
        self._functions = None
        return self

    def finalize(self) -> list[FunctionCandidate]:
        """Identify the entry point and return the sorted function list."""
        if self._functions is None:
            self._registry.identify_entry_point(self.entry_point)
            self._functions = self._registry.functions()
        return list(self._functions)

    @property
    def functions(self) -> list[FunctionCandidate]:
        return self.finalize()

    def source_of(self, address: int) -> Optional[FunctionSource]:
        """Winning tier at *address*, or ``None``."""
        return self._registry.source_of(address)

    def counts_by_source(self) -> dict[str, int]:
        return self._registry.counts_by_source()

    def __repr__(self) -> str:
        return (
            f"Binary(path={self._path!r}, format={self._format.value}, "
            f"regions={len(self._regions)}, stripped={self._is_stripped})"
        )
