"""
Unwind-table scanner tests.

Covers:
1. FDE walking in .eh_frame with pcrel pointers
2. Skipping malformed FDEs and stopping at overrunning records
3. .debug_frame CIE id / pointer conventions
4. The .eh_frame_hdr search table and its failure modes
"""

import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from carve.analyzers.eh_frame import (
    FrameAnalyzer,
    scan_frame_entries,
    scan_frame_header_table,
)
from carve.core.errors import MissingUnwindTable

from elf_builder import build_eh_frame, build_eh_frame_hdr, cie, fde

BASE = 0x402000


class TestEhFrame:
    def test_one_candidate_per_fde(self):
        data = build_eh_frame(BASE, [(0x401000, 0x40), (0x401040, 0x20)])
        functions = scan_frame_entries(data, BASE)

        assert [(f.identifier, f.start, f.end, f.size) for f in functions] == [
            ("FUNC_0x401000", 0x401000, 0x401040, 0x40),
            ("FUNC_0x401040", 0x401040, 0x401060, 0x20),
        ]

    def test_sorted_by_start(self):
        data = build_eh_frame(BASE, [(0x401080, 0x10), (0x401000, 0x40), (0x401040, 0x20)])
        starts = [f.start for f in scan_frame_entries(data, BASE)]
        assert starts == [0x401000, 0x401040, 0x401080]

    def test_function_above_the_section(self):
        data = build_eh_frame(BASE, [(0x500000, 0x8)])
        assert scan_frame_entries(data, BASE)[0].start == 0x500000

    def test_without_terminator(self):
        data = build_eh_frame(BASE, [(0x401000, 0x40)], terminator=False)
        assert len(scan_frame_entries(data, BASE)) == 1

    def test_only_cie(self):
        assert scan_frame_entries(cie() + b"\x00" * 4, BASE) == []

    def test_empty_section(self):
        assert scan_frame_entries(b"", BASE) == []

    def test_overrunning_record_ends_walk(self):
        data = build_eh_frame(BASE, [(0x401000, 0x40)], terminator=False)
        data += struct.pack("<I", 0x1000) + b"\x00" * 8
        functions = scan_frame_entries(data, BASE)
        assert [f.start for f in functions] == [0x401000]

    def test_bad_cie_pointer_is_skipped(self):
        data = cie()
        # Points "back" past the start of the section
        data += fde(offset=len(data), cie_offset=-0x100, base=BASE, pc_begin=0x401000, pc_range=0x10)
        data += fde(offset=len(data), cie_offset=0, base=BASE, pc_begin=0x401040, pc_range=0x20)
        functions = scan_frame_entries(data, BASE)
        assert [f.start for f in functions] == [0x401040]

    def test_fde_pointing_at_another_fde_is_skipped(self):
        data = cie()
        first = len(data)
        data += fde(offset=first, cie_offset=0, base=BASE, pc_begin=0x401000, pc_range=0x10)
        data += fde(offset=len(data), cie_offset=first, base=BASE, pc_begin=0x401040, pc_range=0x20)
        functions = scan_frame_entries(data, BASE)
        assert [f.start for f in functions] == [0x401000]

    def test_extended_length_keeps_four_byte_cie_pointer(self):
        cie_body = cie()[4:]
        data = struct.pack("<IQ", 0xFFFFFFFF, len(cie_body)) + cie_body
        for start, size in [(0x401000, 0x40), (0x401040, 0x20)]:
            offset = len(data)
            body = struct.pack("<Iii", offset + 12, start - (BASE + offset + 16), size)
            body += b"\x00"
            data += struct.pack("<IQ", 0xFFFFFFFF, len(body)) + body

        functions = scan_frame_entries(data, BASE)
        assert [(f.start, f.size) for f in functions] == [(0x401000, 0x40), (0x401040, 0x20)]

    def test_cie_is_parsed_once(self):
        data = build_eh_frame(BASE, [(0x401000, 0x40), (0x401040, 0x20)])
        analyzer = FrameAnalyzer(data, BASE)
        analyzer.scan_frame_entries()
        assert list(analyzer._cies) == [0]


def _debug_frame_cie() -> bytes:
    body = struct.pack("<I", 0xFFFFFFFF)
    body += bytes([1]) + b"\x00"            # version 1, empty augmentation
    body += bytes([1, 0x78, 16])
    body += b"\x0c\x07\x08\x90\x01"
    while len(body) % 4:
        body += b"\x00"
    return struct.pack("<I", len(body)) + body


def _debug_frame_fde(cie_offset: int, start: int, size: int) -> bytes:
    body = struct.pack("<IQQ", cie_offset, start, size)
    return struct.pack("<I", len(body)) + body


class TestDebugFrame:
    def test_absolute_addresses(self):
        data = _debug_frame_cie()
        data += _debug_frame_fde(0, 0x401000, 0x30)
        data += _debug_frame_fde(0, 0x401030, 0x18)

        functions = scan_frame_entries(data, 0, debug_frame=True)
        assert [(f.start, f.size) for f in functions] == [(0x401000, 0x30), (0x401030, 0x18)]

    def test_eh_frame_rules_do_not_apply(self):
        data = _debug_frame_cie() + _debug_frame_fde(0, 0x401000, 0x30)
        # Read as .eh_frame, id 0xffffffff is an FDE whose CIE pointer is bogus
        assert scan_frame_entries(data, 0) == []


class TestEhFrameHdr:
    HDR = 0x402800

    def test_table_rows(self):
        data = build_eh_frame_hdr(
            self.HDR,
            BASE,
            [(0x401000, BASE + 0x18), (0x4010A0, BASE + 0x2C)],
        )
        functions = scan_frame_header_table(data, self.HDR)

        assert [(f.identifier, f.start, f.end) for f in functions] == [
            ("FUN_0x401000", 0x401000, BASE + 0x18),
            ("FUN_0x4010A0", 0x4010A0, BASE + 0x2C),
        ]
        assert functions[0].size == BASE + 0x18 - 0x401000

    def test_row_with_fde_before_function_has_zero_size(self):
        data = build_eh_frame_hdr(self.HDR, BASE, [(0x401000, 0x400F00), (0x401040, BASE)])
        functions = scan_frame_header_table(data, self.HDR)

        assert [(f.start, f.end, f.size) for f in functions] == [
            (0x401000, 0x401000, 0),
            (0x401040, BASE, BASE - 0x401040),
        ]

    def test_unwind_tables_below_text(self):
        # lld places .eh_frame_hdr and .eh_frame ahead of .text
        hdr, eh_frame = 0x200100, 0x200200
        data = build_eh_frame_hdr(
            hdr,
            eh_frame,
            [(0x201000, eh_frame + 0x18), (0x201040, eh_frame + 0x30), (0x201080, eh_frame + 0x48)],
        )
        functions = scan_frame_header_table(data, hdr)

        assert [f.start for f in functions] == [0x201000, 0x201040, 0x201080]
        assert all(f.size == 0 and f.end == f.start for f in functions)
        assert functions[2].identifier == "FUN_0x201080"

    def test_empty_table(self):
        assert scan_frame_header_table(build_eh_frame_hdr(self.HDR, BASE, []), self.HDR) == []

    def test_too_short(self):
        with pytest.raises(MissingUnwindTable):
            scan_frame_header_table(b"\x01\x1b", self.HDR)

    def test_bad_version(self):
        data = bytearray(build_eh_frame_hdr(self.HDR, BASE, [(0x401000, BASE)]))
        data[0] = 2
        with pytest.raises(MissingUnwindTable):
            scan_frame_header_table(bytes(data), self.HDR)

    def test_omitted_table(self):
        data = bytes([1, 0x1B, 0xFF, 0xFF]) + struct.pack("<i", 0)
        with pytest.raises(MissingUnwindTable):
            scan_frame_header_table(data, self.HDR)

    def test_truncated_table(self):
        data = build_eh_frame_hdr(self.HDR, BASE, [(0x401000, BASE), (0x401040, BASE + 0x18)])
        with pytest.raises(MissingUnwindTable):
            scan_frame_header_table(data[:-4], self.HDR)
