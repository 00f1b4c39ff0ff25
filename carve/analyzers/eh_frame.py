"""
Unwind-Table Function Scanner
==============================

Recovers function start addresses and sizes from DWARF call-frame
information.  Compilers emit this data for exception unwinding, so it
survives stripping and is usually the only boundary evidence left in a
stripped binary.  It is also the least trusted source and merges at the
lowest priority tier.

Two entry points share the CIE/FDE record model:

* :func:`scan_frame_entries` walks every record of ``.eh_frame`` (or
  ``.debug_frame``) and emits one candidate per Frame Description Entry.
* :func:`scan_frame_header_table` reads the presorted binary-search table
  in ``.eh_frame_hdr``.

Record layout (``.eh_frame``)::

    u32        length            0xffffffff -> u64 extended length follows
    u32        CIE id / pointer  0 for a CIE, else distance back to the CIE
    -- CIE --
    u8         version
    cstring    augmentation      e.g. "zR", "zPLR"
    uleb128    code alignment
    sleb128    data alignment
    u8/uleb    return address register
    uleb128    augmentation data length   (only if augmentation starts 'z')
    ...        'L' lsda enc, 'P' personality enc + ptr, 'R' FDE pointer enc
    -- FDE --
    encoded    initial location  (CIE's 'R' encoding)
    encoded    address range     (value format of the same encoding)

In ``.debug_frame`` a CIE is marked by id ``0xffffffff`` and an FDE's CIE
pointer is an offset from the start of the section.

References:
    - DWARF Debugging Information Format, Version 5, section 6.4.
    - Linux Standard Base Core Specification 5.0, section 10.6.
"""

from __future__ import annotations

from typing import Optional

from shared.logger import CarveLogger

from carve.analyzers.dwarf import (
    DW_EH_PE_absptr,
    DW_EH_PE_omit,
    read_cstring,
    read_encoded_pointer,
    read_encoded_value,
    read_fixed,
    read_sleb128,
    read_u8,
    read_uleb128,
)
from carve.core.errors import MissingUnwindTable, RecordDecodeError
from carve.core.models import FunctionCandidate

_DWARF64_ESCAPE: int = 0xFFFF_FFFF
_DEBUG_FRAME_CIE_ID_32: int = 0xFFFF_FFFF
_DEBUG_FRAME_CIE_ID_64: int = 0xFFFF_FFFF_FFFF_FFFF

EH_FRAME_HDR_VERSION: int = 1


class _CIE:
    """The parts of a Common Information Entry FDE decoding depends on."""
    __slots__ = ("offset", "version", "augmentation", "address_size", "fde_encoding")

    def __init__(
        self,
        offset: int,
        version: int,
        augmentation: bytes,
        address_size: int,
        fde_encoding: int,
    ) -> None:
        self.offset = offset
        self.version = version
        self.augmentation = augmentation
        self.address_size = address_size
        self.fde_encoding = fde_encoding


class _Record:
    """Bounds of one length-prefixed CFI record."""
    __slots__ = ("offset", "id_offset", "id_size", "end")

    def __init__(self, offset: int, id_offset: int, id_size: int, end: int) -> None:
        self.offset = offset
        self.id_offset = id_offset
        self.id_size = id_size
        self.end = end


class FrameAnalyzer:
    """Decode call-frame information held in one region.

    Usage::

        analyzer = FrameAnalyzer(region.raw_bytes, region.virtual_address)
        functions = analyzer.scan_frame_entries()

    Args:
        data: Raw bytes of the region.
        base_address: Virtual address of ``data[0]``; ``pcrel`` and
            ``datarel`` pointers resolve against it.
        logger: Logger; a quiet one is created if not provided.
    """

    def __init__(
        self,
        data: bytes,
        base_address: int,
        logger: Optional[CarveLogger] = None,
    ) -> None:
        self._data = data
        self._base = base_address
        self._logger = logger or CarveLogger.quiet("eh_frame")
        self._cies: dict[int, _CIE] = {}

    # ------------------------------------------------------------------ #
    #  .eh_frame / .debug_frame
    # ------------------------------------------------------------------ #

    def scan_frame_entries(self, *, debug_frame: bool = False) -> list[FunctionCandidate]:
        """Walk all CIE/FDE records and emit one candidate per FDE.

        Malformed FDEs are skipped.  A record whose declared length runs
        past the end of the region ends the walk, as does a zero-length
        terminator.

        Args:
            debug_frame: Interpret the data with ``.debug_frame`` CIE id
                and CIE pointer conventions.

        Returns:
            Candidates named ``FUNC_0x<start>``, sorted by start address.
        """
        candidates: list[FunctionCandidate] = []
        skipped = 0
        offset = 0

        while offset + 4 <= len(self._data):
            length, _ = read_fixed(self._data, offset, "<I")
            if length == 0:
                break
            try:
                record = self._record_at(offset, debug_frame)
            except RecordDecodeError as exc:
                self._logger.debug(f"Stopping CFI walk at 0x{offset:x}: {exc}")
                break

            id_value, _ = read_fixed(
                self._data, record.id_offset, "<I" if record.id_size == 4 else "<Q"
            )
            if not self._is_cie_id(id_value, record.id_size, debug_frame):
                try:
                    candidates.append(self._parse_fde(record, id_value, debug_frame))
                except RecordDecodeError as exc:
                    skipped += 1
                    self._logger.debug(f"Skipping FDE at 0x{offset:x}: {exc}")

            offset = record.end

        if skipped:
            self._logger.warning(f"Skipped {skipped} malformed FDE(s)")

        candidates.sort(key=lambda c: c.start)
        return candidates

    def _record_at(self, offset: int, debug_frame: bool) -> _Record:
        length, pos = read_fixed(self._data, offset, "<I")
        id_size = 4
        if length == _DWARF64_ESCAPE:
            length, pos = read_fixed(self._data, pos, "<Q")
            # .eh_frame keeps a 4-byte CIE id/pointer in 64-bit records
            if debug_frame:
                id_size = 8
        end = pos + length
        if end > len(self._data):
            raise RecordDecodeError(
                f"Record at 0x{offset:x} declares 0x{length:x} bytes, "
                f"past end of region (0x{len(self._data):x})"
            )
        if length < id_size:
            raise RecordDecodeError(f"Record at 0x{offset:x} is too short")
        return _Record(offset, pos, id_size, end)

    @staticmethod
    def _is_cie_id(value: int, id_size: int, debug_frame: bool) -> bool:
        if not debug_frame:
            return value == 0
        if id_size == 4:
            return value == _DEBUG_FRAME_CIE_ID_32
        return value == _DEBUG_FRAME_CIE_ID_64

    def _cie_at(self, offset: int, debug_frame: bool) -> _CIE:
        """Parse (and cache) the CIE starting at *offset*."""
        cached = self._cies.get(offset)
        if cached is not None:
            return cached

        data = self._data
        record = self._record_at(offset, debug_frame)
        cie_id, pos = read_fixed(
            data, record.id_offset, "<I" if record.id_size == 4 else "<Q"
        )
        if not self._is_cie_id(cie_id, record.id_size, debug_frame):
            raise RecordDecodeError(f"No CIE at 0x{offset:x}")

        version, pos = read_u8(data, pos)
        if version not in (1, 3, 4):
            raise RecordDecodeError(f"Unsupported CIE version {version}")
        augmentation, pos = read_cstring(data, pos)

        address_size = 8
        if version >= 4:
            address_size, pos = read_u8(data, pos)
            _segment_size, pos = read_u8(data, pos)
            if address_size not in (4, 8):
                raise RecordDecodeError(f"Unsupported address size {address_size}")
        if augmentation.startswith(b"eh"):
            # Legacy GCC: "eh" carries a pointer-sized EH data field
            pos += address_size

        _code_align, pos = read_uleb128(data, pos)
        _data_align, pos = read_sleb128(data, pos)
        if version == 1:
            _return_register, pos = read_u8(data, pos)
        else:
            _return_register, pos = read_uleb128(data, pos)

        fde_encoding = DW_EH_PE_absptr
        if augmentation.startswith(b"z"):
            _aug_length, pos = read_uleb128(data, pos)
            for letter in augmentation[1:].decode("ascii", errors="replace"):
                if letter == "R":
                    fde_encoding, pos = read_u8(data, pos)
                elif letter == "L":
                    _lsda_encoding, pos = read_u8(data, pos)
                elif letter == "P":
                    personality_encoding, pos = read_u8(data, pos)
                    _personality, pos = read_encoded_value(
                        data, pos, personality_encoding, address_size
                    )
                elif letter in ("S", "B"):
                    continue
                else:
                    # Unknown letter: the rest of the augmentation data is opaque
                    break

        if pos > record.end:
            raise RecordDecodeError(f"CIE at 0x{offset:x} overruns its record")
        if fde_encoding == DW_EH_PE_omit:
            raise RecordDecodeError(f"CIE at 0x{offset:x} omits FDE addresses")

        cie = _CIE(offset, version, augmentation, address_size, fde_encoding)
        self._cies[offset] = cie
        return cie

    def _parse_fde(self, record: _Record, cie_pointer: int, debug_frame: bool) -> FunctionCandidate:
        if debug_frame:
            cie_offset = cie_pointer
        else:
            cie_offset = record.id_offset - cie_pointer
        if cie_offset < 0 or cie_offset >= len(self._data):
            raise RecordDecodeError(f"CIE pointer 0x{cie_pointer:x} out of range")

        cie = self._cie_at(cie_offset, debug_frame)
        pos = record.id_offset + record.id_size
        start, pos = read_encoded_pointer(
            self._data,
            pos,
            cie.fde_encoding,
            section_address=self._base,
            address_size=cie.address_size,
        )
        size, pos = read_encoded_value(
            self._data, pos, cie.fde_encoding, cie.address_size
        )
        if pos > record.end:
            raise RecordDecodeError("FDE overruns its record")
        if size < 0:
            raise RecordDecodeError(f"Negative address range {size}")

        return FunctionCandidate.from_range(f"FUNC_0x{start:x}", start, size)

    # ------------------------------------------------------------------ #
    #  .eh_frame_hdr
    # ------------------------------------------------------------------ #

    def scan_frame_header_table(self) -> list[FunctionCandidate]:
        """Read the ``.eh_frame_hdr`` binary-search table.

        Each table row is an ``(initial_location, fde_address)`` pair.  One
        candidate is produced per row with ``start = initial_location``,
        ``end = fde_address`` and ``size = end - start``.  When the FDE
        address precedes the function the row still yields its start, with
        size zero.

        Raises:
            MissingUnwindTable: The header is too short, has an unknown
                version, omits the FDE count or table, or the table runs
                past the end of the region.
        """
        data = self._data
        if len(data) < 4:
            raise MissingUnwindTable(".eh_frame_hdr is too short for a header")

        version, eh_frame_ptr_enc, fde_count_enc, table_enc = data[0], data[1], data[2], data[3]
        if version != EH_FRAME_HDR_VERSION:
            raise MissingUnwindTable(f"Unsupported .eh_frame_hdr version {version}")
        if fde_count_enc == DW_EH_PE_omit or table_enc == DW_EH_PE_omit:
            raise MissingUnwindTable("No table data in .eh_frame_hdr to parse")

        pos = 4
        try:
            if eh_frame_ptr_enc != DW_EH_PE_omit:
                eh_frame_ptr, pos = read_encoded_pointer(
                    data, pos, eh_frame_ptr_enc, section_address=self._base
                )
                self._logger.debug(f".eh_frame located at 0x{eh_frame_ptr:x}")
            fde_count, pos = read_encoded_pointer(
                data, pos, fde_count_enc, section_address=self._base
            )
        except RecordDecodeError as exc:
            raise MissingUnwindTable(f"Unreadable .eh_frame_hdr header: {exc}") from exc

        candidates: list[FunctionCandidate] = []
        for index in range(fde_count):
            try:
                start, pos = read_encoded_pointer(
                    data, pos, table_enc, section_address=self._base
                )
                fde_address, pos = read_encoded_pointer(
                    data, pos, table_enc, section_address=self._base
                )
            except RecordDecodeError as exc:
                raise MissingUnwindTable(
                    f".eh_frame_hdr table truncated at row {index} of {fde_count}: {exc}"
                ) from exc

            # FDEs laid out below .text give no usable extent
            size = max(fde_address - start, 0)
            candidates.append(
                FunctionCandidate.from_range(f"FUN_0x{start:X}", start, size)
            )

        return candidates


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------

def scan_frame_entries(
    region_bytes: bytes,
    region_base_address: int,
    *,
    debug_frame: bool = False,
    logger: Optional[CarveLogger] = None,
) -> list[FunctionCandidate]:
    """Scan an ``.eh_frame`` (or ``.debug_frame``) region for FDEs."""
    analyzer = FrameAnalyzer(region_bytes, region_base_address, logger=logger)
    return analyzer.scan_frame_entries(debug_frame=debug_frame)


def scan_frame_header_table(
    region_bytes: bytes,
    region_base_address: int,
    *,
    logger: Optional[CarveLogger] = None,
) -> list[FunctionCandidate]:
    """Scan an ``.eh_frame_hdr`` region's binary-search table."""
    analyzer = FrameAnalyzer(region_bytes, region_base_address, logger=logger)
    return analyzer.scan_frame_header_table()
