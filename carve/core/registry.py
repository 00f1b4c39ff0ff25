"""
Function Merge Registry
========================

Priority-ranked, address-keyed store of function candidates.

Every scanner's output is merged under a :class:`FunctionSource` tier.  The
registry keeps one candidate per start address: a strictly higher tier
replaces what is stored, an equal or lower tier is discarded.  Within one
tier the first candidate merged wins, so merge order matters only between
sources of equal trust.

Entry-point identification runs last and pins the ``entry`` function at
``MANUAL`` priority so no later merge can displace it.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

from shared.logger import CarveLogger

from carve.core.models import FunctionCandidate, FunctionSource

ENTRY_NAME: str = "entry"


class FunctionRegistry:
    """Address-keyed candidate map with tiered conflict resolution.

    Usage::

        registry = FunctionRegistry()
        registry.merge(unwind, FunctionSource.UNWIND_TABLE) \\
                .merge(symbols, FunctionSource.STATIC_SYMBOL_TABLE)
        registry.identify_entry_point(header.entry_point)
        functions = registry.functions()
    """

    def __init__(self, logger: Optional[CarveLogger] = None) -> None:
        self._entries: dict[int, tuple[FunctionCandidate, FunctionSource]] = {}
        self._logger = logger or CarveLogger.quiet("registry")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return address in self._entries

    def merge(
        self,
        candidates: Iterable[FunctionCandidate],
        source: FunctionSource,
    ) -> FunctionRegistry:
        """Merge *candidates* at tier *source*.

        Returns:
            ``self``, so merges can be chained.
        """
        inserted = replaced = discarded = 0
        for candidate in candidates:
            existing = self._entries.get(candidate.start)
            if existing is None:
                self._entries[candidate.start] = (candidate, source)
                inserted += 1
            elif existing[1] < source:
                self._entries[candidate.start] = (candidate, source)
                replaced += 1
            else:
                discarded += 1

        self._logger.debug(
            f"Merged {source.name}: {inserted} new, {replaced} replaced, "
            f"{discarded} discarded"
        )
        return self

    def get(self, address: int) -> Optional[FunctionCandidate]:
        entry = self._entries.get(address)
        return entry[0] if entry else None

    def source_of(self, address: int) -> Optional[FunctionSource]:
        entry = self._entries.get(address)
        return entry[1] if entry else None

    def identify_entry_point(self, entry_address: int) -> FunctionCandidate:
        """Name the function at *entry_address* ``entry`` at ``MANUAL`` tier.

        An existing candidate at the address is renamed in place (no new
        key is added).  Otherwise a zero-size stub is synthesised.  Any
        other candidate already called ``entry`` is renamed
        ``entry@0x<start>`` so the name stays unique.

        Returns:
            The canonical entry candidate.
        """
        for address, (candidate, source) in list(self._entries.items()):
            if address != entry_address and candidate.identifier == ENTRY_NAME:
                alias = f"{ENTRY_NAME}@0x{address:x}"
                self._logger.debug(f"Renaming competing '{ENTRY_NAME}' to {alias}")
                self._entries[address] = (candidate.renamed(alias), source)

        existing = self._entries.get(entry_address)
        if existing is not None:
            candidate = existing[0]
            if candidate.identifier != ENTRY_NAME:
                self._logger.debug(
                    f"Promoting {candidate.identifier} to {ENTRY_NAME}"
                )
                candidate = candidate.renamed(ENTRY_NAME)
        else:
            self._logger.debug(
                f"No candidate at entry 0x{entry_address:x}, synthesising stub"
            )
            candidate = FunctionCandidate.from_range(ENTRY_NAME, entry_address, 0)

        self._entries[entry_address] = (candidate, FunctionSource.MANUAL)
        return candidate

    def functions(self) -> list[FunctionCandidate]:
        """Flatten to a list sorted ascending by start address."""
        return [self._entries[address][0] for address in sorted(self._entries)]

    def counts_by_source(self) -> dict[str, int]:
        """Number of stored candidates per winning tier name."""
        counts = Counter(source.name for _, source in self._entries.values())
        return dict(counts)
