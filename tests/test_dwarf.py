"""
DWARF encoding helper tests: LEB128 and DW_EH_PE pointer decoding.
"""

import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from carve.analyzers.dwarf import (
    DW_EH_PE_absptr,
    DW_EH_PE_aligned,
    DW_EH_PE_datarel,
    DW_EH_PE_indirect,
    DW_EH_PE_omit,
    DW_EH_PE_pcrel,
    DW_EH_PE_sdata4,
    DW_EH_PE_textrel,
    DW_EH_PE_udata2,
    DW_EH_PE_uleb128,
    read_cstring,
    read_encoded_pointer,
    read_encoded_value,
    read_sleb128,
    read_uleb128,
)
from carve.core.errors import RecordDecodeError


class TestLEB128:
    def test_uleb128(self):
        assert read_uleb128(b"\x02", 0) == (2, 1)
        assert read_uleb128(b"\x7f", 0) == (127, 1)
        assert read_uleb128(b"\x80\x01", 0) == (128, 2)
        assert read_uleb128(b"\xe5\x8e\x26", 0) == (624485, 3)

    def test_sleb128(self):
        assert read_sleb128(b"\x02", 0) == (2, 1)
        assert read_sleb128(b"\x7e", 0) == (-2, 1)
        assert read_sleb128(b"\x78", 0) == (-8, 1)
        assert read_sleb128(b"\xc0\xbb\x78", 0) == (-123456, 3)

    def test_unterminated(self):
        with pytest.raises(RecordDecodeError):
            read_uleb128(b"\x80\x80", 0)
        with pytest.raises(RecordDecodeError):
            read_sleb128(b"\xff", 0)


class TestCString:
    def test_reads_until_nul(self):
        assert read_cstring(b"zR\x00rest", 0) == (b"zR", 3)

    def test_unterminated(self):
        with pytest.raises(RecordDecodeError):
            read_cstring(b"zPLR", 0)


class TestEncodedValues:
    def test_absptr_is_address_sized(self):
        data = struct.pack("<Q", 0x401000)
        assert read_encoded_value(data, 0, DW_EH_PE_absptr) == (0x401000, 8)
        assert read_encoded_value(data, 0, DW_EH_PE_absptr, address_size=4) == (0x401000, 4)

    def test_fixed_and_variable_formats(self):
        assert read_encoded_value(b"\x34\x12", 0, DW_EH_PE_udata2) == (0x1234, 2)
        assert read_encoded_value(struct.pack("<i", -16), 0, DW_EH_PE_sdata4) == (-16, 4)
        assert read_encoded_value(b"\x80\x01", 0, DW_EH_PE_uleb128) == (128, 2)

    def test_application_bits_ignored(self):
        data = struct.pack("<i", 0x40)
        assert read_encoded_value(data, 0, DW_EH_PE_pcrel | DW_EH_PE_sdata4) == (0x40, 4)

    def test_read_past_end(self):
        with pytest.raises(RecordDecodeError):
            read_encoded_value(b"\x00\x00", 0, DW_EH_PE_sdata4)


class TestEncodedPointers:
    def test_absolute(self):
        data = struct.pack("<Q", 0x401000)
        value, offset = read_encoded_pointer(data, 0, DW_EH_PE_absptr, section_address=0x9000)
        assert (value, offset) == (0x401000, 8)

    def test_pcrel_is_relative_to_the_field(self):
        # Field at offset 4 of a section loaded at 0x2000 pointing back 0x1004 bytes
        data = b"\x00" * 4 + struct.pack("<i", -0x1004)
        value, offset = read_encoded_pointer(
            data, 4, DW_EH_PE_pcrel | DW_EH_PE_sdata4, section_address=0x2000
        )
        assert value == 0x1000
        assert offset == 8

    def test_datarel_defaults_to_section_address(self):
        data = struct.pack("<i", -0x800)
        value, _ = read_encoded_pointer(
            data, 0, DW_EH_PE_datarel | DW_EH_PE_sdata4, section_address=0x2800
        )
        assert value == 0x2000

    def test_datarel_explicit_base(self):
        data = struct.pack("<i", 0x10)
        value, _ = read_encoded_pointer(
            data,
            0,
            DW_EH_PE_datarel | DW_EH_PE_sdata4,
            section_address=0x2800,
            data_address=0x5000,
        )
        assert value == 0x5010

    def test_aligned(self):
        data = b"\x00" * 8 + struct.pack("<Q", 0xDEADBEEF)
        value, offset = read_encoded_pointer(data, 3, DW_EH_PE_aligned, section_address=0)
        assert (value, offset) == (0xDEADBEEF, 16)

    def test_wraps_to_64_bits(self):
        data = struct.pack("<i", -0x10)
        value, _ = read_encoded_pointer(
            data, 0, DW_EH_PE_pcrel | DW_EH_PE_sdata4, section_address=0
        )
        assert value == 0xFFFF_FFFF_FFFF_FFF0

    @pytest.mark.parametrize("encoding", [
        DW_EH_PE_omit,
        DW_EH_PE_indirect | DW_EH_PE_pcrel | DW_EH_PE_sdata4,
        DW_EH_PE_textrel | DW_EH_PE_sdata4,
    ])
    def test_unsupported_encodings(self, encoding):
        with pytest.raises(RecordDecodeError):
            read_encoded_pointer(b"\x00" * 8, 0, encoding, section_address=0)
