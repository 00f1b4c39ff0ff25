"""
Header decoding and format identification tests.

Covers:
1. ELF64 little-endian header decoding and the capability view
2. Rejection of short, non-ELF, 32-bit and big-endian inputs
3. Magic-byte format identification
4. PE header decoding
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from carve.core.errors import MalformedContainer, UnsupportedContainer
from carve.core.models import BinaryFormat
from carve.parsers.elf_header import decode_elf_header
from carve.parsers.magic import MagicIdentifier
from carve.parsers.pe_header import decode_pe_header

from elf_builder import build_minimal_pe, elf_header


class TestElfHeader:
    def test_decodes_fields(self):
        header = decode_elf_header(
            elf_header(entry=0x4010, phoff=64, phnum=2, shoff=0x200, shnum=5, shstrndx=4)
        )
        assert header.entry_point == 0x4010
        assert header.e_phoff == 64
        assert header.e_phnum == 2
        assert header.e_shoff == 0x200
        assert header.e_shnum == 5
        assert header.e_shstrndx == 4
        assert header.e_phentsize == 56
        assert header.e_shentsize == 64

    def test_capability_view(self):
        header = decode_elf_header(elf_header())
        assert header.format_name == "ELF"
        assert header.is_64bit
        assert header.machine == 62
        assert header.arch == "x86_64"
        assert header.is_executable

    def test_shared_object_is_not_executable(self):
        header = decode_elf_header(elf_header(e_type=3))
        assert not header.is_executable

    def test_unknown_machine_name(self):
        header = decode_elf_header(elf_header(machine=0x1234))
        assert header.arch == "unknown(4660)"

    def test_too_short(self):
        with pytest.raises(MalformedContainer):
            decode_elf_header(elf_header()[:63])

    def test_bad_magic(self):
        data = b"\x7fELG" + elf_header()[4:]
        with pytest.raises(MalformedContainer):
            decode_elf_header(data)

    def test_elf32_unsupported(self):
        with pytest.raises(UnsupportedContainer):
            decode_elf_header(elf_header(ei_class=1))

    def test_big_endian_unsupported(self):
        with pytest.raises(UnsupportedContainer):
            decode_elf_header(elf_header(ei_data=2))

    def test_header_is_frozen(self):
        header = decode_elf_header(elf_header())
        with pytest.raises(Exception):
            header.e_entry = 0


class TestMagic:
    def test_identify_format(self):
        magic = MagicIdentifier()
        assert magic.identify_format(elf_header()) == BinaryFormat.ELF
        assert magic.identify_format(build_minimal_pe()) == BinaryFormat.PE
        assert magic.identify_format(b"\x00\x01\x02\x03") == BinaryFormat.UNKNOWN
        assert magic.identify_format(b"") == BinaryFormat.UNKNOWN

    def test_identify_description(self):
        magic = MagicIdentifier()
        assert magic.identify(b"") == "Empty file"
        assert magic.identify(elf_header()) == "ELF executable"


class TestPeHeader:
    def test_decodes_pe32_plus(self):
        header = decode_pe_header(build_minimal_pe())
        assert header.format_name == "PE"
        assert header.is_64bit
        assert header.arch == "x86_64"
        assert header.entry_point == 0x140001000
        assert header.is_executable

    def test_dll_is_not_executable(self):
        header = decode_pe_header(build_minimal_pe(dll=True))
        assert not header.is_executable

    def test_missing_pe_signature(self):
        data = bytearray(build_minimal_pe())
        data[128:132] = b"XX\x00\x00"
        with pytest.raises(MalformedContainer):
            decode_pe_header(bytes(data))
