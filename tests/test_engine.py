"""
Engine tests: whole-file analysis and scanner failure tolerance.
"""

import hashlib
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.config import AnalysisConfig, CarveConfig

from carve.core.engine import CarveEngine
from carve.core.errors import ContainerError
from carve.core.models import BinaryFormat, FrameKind

from elf_builder import (
    SHT_STRTAB,
    SHT_SYMTAB,
    Section,
    build_eh_frame,
    build_full_elf,
    build_section_elf,
)


@pytest.fixture
def sample(tmp_path):
    path = tmp_path / "sample.elf"
    path.write_bytes(build_full_elf())
    return path


def test_analyze_file(sample):
    result = CarveEngine().analyze(sample)

    assert result.info.format == BinaryFormat.ELF
    assert result.info.arch == "x86_64"
    assert result.info.bits == 64
    assert result.info.entry_point == 0x401000
    assert result.info.is_executable
    assert not result.info.is_stripped
    assert result.info.sha256 == hashlib.sha256(sample.read_bytes()).hexdigest()

    assert [f.identifier for f in result.functions] == ["entry", "main", "FUNC_0x401080"]
    assert result.entry().start == 0x401000
    assert result.source_counts == {
        ".eh_frame": 3,
        ".eh_frame_hdr": 2,
        ".dynsym": 0,
        ".symtab": 2,
    }
    assert result.warnings == []
    assert ".text" in [r.name for r in result.regions]


def test_explicit_sources(sample):
    result = CarveEngine().analyze(sample, sources=["eh_frame_hdr"])

    assert [f.identifier for f in result.functions] == ["entry", "FUN_0x401040"]
    assert list(result.source_counts) == [".eh_frame_hdr"]


def test_sources_from_config(sample):
    config = CarveConfig(analysis=AnalysisConfig(sources=[".symtab"]))
    result = CarveEngine(config=config).analyze(sample)
    assert [f.identifier for f in result.functions] == ["entry", "main"]


def test_scanner_failure_is_a_warning():
    base = 0x402000
    data = build_section_elf([
        Section(".eh_frame", build_eh_frame(base, [(0x401000, 0x10), (0x401010, 0x10)]), addr=base),
        Section(".symtab", b"\x00" * 30, sh_type=SHT_SYMTAB),
        Section(".strtab", b"\x00", sh_type=SHT_STRTAB),
    ])

    result = CarveEngine().analyze_data(data, sources=[FrameKind.SYMTAB, FrameKind.EH_FRAME])

    assert len(result.warnings) == 1
    assert result.warnings[0].startswith(".symtab:")
    assert [f.start for f in result.functions] == [0x401000, 0x401010]
    assert ".symtab" not in result.source_counts


def test_absent_region_is_not_a_warning():
    data = build_section_elf([Section(".text", b"\x90" * 16, addr=0x401000)])
    result = CarveEngine().analyze_data(data, sources=[".eh_frame", ".symtab"])

    assert result.warnings == []
    assert result.source_counts == {".eh_frame": 0, ".symtab": 0}


def test_missing_unwind_table_is_a_warning():
    data = build_section_elf([Section(".eh_frame_hdr", b"\x02\x00\x00\x00", addr=0x402800)])
    result = CarveEngine().analyze_data(data, sources=[".eh_frame_hdr"])
    assert len(result.warnings) == 1
    assert [f.identifier for f in result.functions] == ["entry"]


def test_open_failure_propagates():
    with pytest.raises(ContainerError):
        CarveEngine().analyze_data(b"\x00" * 100)


def test_file_too_large(sample):
    config = CarveConfig(analysis=AnalysisConfig(max_file_size=16))
    with pytest.raises(ValueError):
        CarveEngine(config=config).analyze(sample)


def test_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        CarveEngine().analyze(tmp_path / "missing.elf")


def test_unknown_source(sample):
    with pytest.raises(ValueError):
        CarveEngine().analyze(sample, sources=["nope"])
