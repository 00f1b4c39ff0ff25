"""
Carve Parsers
==============

Container format identification, ELF64 / PE header decoding and ELF
region extraction.
"""

from carve.parsers.elf_header import decode_elf_header
from carve.parsers.magic import MagicIdentifier
from carve.parsers.pe_header import decode_pe_header
from carve.parsers.regions import RegionExtractor, extract_regions

__all__ = [
    "MagicIdentifier",
    "RegionExtractor",
    "decode_elf_header",
    "decode_pe_header",
    "extract_regions",
]
