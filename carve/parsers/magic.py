"""
Container Format Identification
================================

Classifies a byte buffer as ELF, PE or unknown by its leading magic
bytes.  This is the loader's format discriminator: everything downstream
dispatches on the :class:`~carve.core.models.BinaryFormat` it returns.

References:
    - TIS Committee. (1995). ELF Specification, section 1-3 (e_ident).
    - Microsoft. (2024). PE Format -- MS-DOS Stub.
"""

from __future__ import annotations

from carve.core.models import BinaryFormat

ELF_MAGIC: bytes = b"\x7fELF"
MZ_MAGIC: bytes = b"MZ"

_DESCRIPTIONS: dict[BinaryFormat, str] = {
    BinaryFormat.ELF: "ELF executable",
    BinaryFormat.PE: "PE32 executable (Windows)",
    BinaryFormat.UNKNOWN: "Unknown binary",
}


class MagicIdentifier:
    """Identify container formats by magic byte signatures.

    Usage::

        identifier = MagicIdentifier()
        identifier.identify_format(raw_bytes)
        # => BinaryFormat.ELF
    """

    def identify_format(self, data: bytes) -> BinaryFormat:
        """Return the container format of *data*.

        Args:
            data: Raw file bytes (only the first few are examined).

        Returns:
            :attr:`BinaryFormat.ELF`, :attr:`BinaryFormat.PE`, or
            :attr:`BinaryFormat.UNKNOWN`.
        """
        if data[:4] == ELF_MAGIC:
            return BinaryFormat.ELF
        if data[:2] == MZ_MAGIC:
            return BinaryFormat.PE
        return BinaryFormat.UNKNOWN

    def identify(self, data: bytes) -> str:
        """Return a human-readable description of the container format."""
        if not data:
            return "Empty file"
        return _DESCRIPTIONS[self.identify_format(data)]
