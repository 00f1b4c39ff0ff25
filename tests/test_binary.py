"""
Analysis session tests: open, region access, scanning and finalisation.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from carve.core.binary import Binary
from carve.core.errors import (
    InvalidSymbolTableSize,
    MalformedContainer,
    MissingRegion,
    UnsupportedContainer,
)
from carve.core.models import (
    BinaryFormat,
    FrameKind,
    FunctionCandidate,
    FunctionSource,
)

from elf_builder import (
    SHT_SYMTAB,
    SHT_STRTAB,
    Section,
    build_full_elf,
    build_minimal_pe,
    build_section_elf,
    build_segment_elf,
    program_header,
)


@pytest.fixture
def full_binary() -> Binary:
    return Binary.from_bytes(build_full_elf())


class TestOpen:
    def test_open_from_disk(self, tmp_path):
        path = tmp_path / "sample.elf"
        path.write_bytes(build_full_elf())

        binary = Binary.open(path)

        assert binary.path == str(path)
        assert binary.format == BinaryFormat.ELF
        assert binary.entry_point == 0x401000
        assert not binary.is_stripped

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            Binary.open(tmp_path / "absent")

    def test_pe_is_unsupported(self):
        with pytest.raises(UnsupportedContainer):
            Binary.from_bytes(build_minimal_pe())

    def test_unknown_format(self):
        with pytest.raises(MalformedContainer):
            Binary.from_bytes(b"\x00" * 128)

    def test_stripped(self):
        data = build_segment_elf([program_header(offset=0x80, vaddr=0x1000, filesz=0x200)], size=0x280)
        binary = Binary.from_bytes(data)
        assert binary.is_stripped
        assert [r.name for r in binary.regions] == [".segment_0"]


class TestRegions:
    def test_lookup(self, full_binary):
        text = full_binary.region(".text")
        assert text is not None
        assert text.virtual_address == 0x401000
        assert full_binary.region(".nope") is None

    def test_region_bytes(self, full_binary):
        assert b"main\x00" in full_binary.region_bytes(".strtab")

    def test_region_bytes_missing(self, full_binary):
        with pytest.raises(MissingRegion) as exc_info:
            full_binary.region_bytes(".dynstr")
        assert exc_info.value.name == ".dynstr"

    def test_first_match_wins(self):
        data = build_section_elf([
            Section(".dup", b"first", addr=0x1000),
            Section(".dup", b"second", addr=0x2000),
        ])
        binary = Binary.from_bytes(data)
        assert binary.region(".dup").raw_bytes == b"first"
        assert binary.region_bytes(".dup") == b"first"
        assert [r.raw_bytes for r in binary.regions if r.name == ".dup"] == [b"first", b"second"]


class TestScanning:
    def test_scan_counts(self, full_binary):
        assert full_binary.scan_eh_frame() == 3
        assert full_binary.scan_eh_frame_hdr() == 2
        assert full_binary.scan_symtab() == 2

    def test_missing_region_contributes_nothing(self, full_binary):
        assert full_binary.scan_dynsym() == 0
        assert full_binary.scan_debug_frame() == 0

    def test_scan_by_alias(self, full_binary):
        assert full_binary.scan("ehframe") == 3
        assert full_binary.scan(FrameKind.SYMTAB) == 2

    def test_unknown_alias(self, full_binary):
        with pytest.raises(ValueError):
            full_binary.scan("bogus")

    def test_symbols_take_priority(self, full_binary):
        full_binary.scan_eh_frame()
        full_binary.scan_symtab()
        functions = full_binary.finalize()

        assert [(f.identifier, f.start, f.size) for f in functions] == [
            ("entry", 0x401000, 0x40),
            ("main", 0x401040, 0x20),
            ("FUNC_0x401080", 0x401080, 0x10),
        ]
        assert full_binary.source_of(0x401000) == FunctionSource.MANUAL
        assert full_binary.source_of(0x401040) == FunctionSource.STATIC_SYMBOL_TABLE
        assert full_binary.source_of(0x401080) == FunctionSource.UNWIND_TABLE

    def test_scanner_error_propagates(self):
        data = build_section_elf([
            Section(".symtab", b"\x00" * 25, sh_type=SHT_SYMTAB),
            Section(".strtab", b"\x00", sh_type=SHT_STRTAB),
        ])
        with pytest.raises(InvalidSymbolTableSize):
            Binary.from_bytes(data).scan_symtab()

    def test_stripped_binary_symtab_skip(self):
        data = build_segment_elf([program_header(offset=0x80, vaddr=0x1000, filesz=0x200)], size=0x280)
        binary = Binary.from_bytes(data)
        assert binary.scan_symtab() == 0
        assert binary.scan_eh_frame() == 0


class TestFinalize:
    def test_entry_only(self):
        data = build_segment_elf(
            [program_header(offset=0x80, vaddr=0x1000, filesz=0x200)],
            entry=0x1010,
            size=0x280,
        )
        functions = Binary.from_bytes(data).finalize()
        assert functions == [FunctionCandidate(identifier="entry", start=0x1010, end=0x1010, size=0)]

    def test_idempotent(self, full_binary):
        full_binary.scan_eh_frame()
        assert full_binary.finalize() == full_binary.finalize()
        assert full_binary.functions == full_binary.finalize()

    def test_scan_after_finalize(self, full_binary):
        full_binary.scan_eh_frame()
        before = full_binary.finalize()
        full_binary.scan_symtab()
        after = full_binary.finalize()

        assert len(after) == len(before)
        assert after[1].identifier == "main"
        assert after[0].identifier == "entry"

    def test_caller_supplied_candidates(self, full_binary):
        full_binary.merge(
            [FunctionCandidate.from_range("handler", 0x401090, 0x8)],
            FunctionSource.MANUAL,
        )
        names = [f.identifier for f in full_binary.finalize()]
        assert names == ["entry", "handler"]
