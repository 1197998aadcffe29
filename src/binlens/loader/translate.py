"""Virtual address to file offset translation over the segment table."""

from enum import Enum
from collections.abc import Iterable

from binlens.errors import UnmappedAddressError
from binlens.loader.segments import PT_LOAD, Segment


class TranslationMode(Enum):
    """How a segment is chosen for an address."""

    STRICT = "strict"  # segment must contain the address by its own file size
    BRACKET = "bracket"  # next segment's start is the exclusive upper bound


class AddressTranslator:
    """Maps virtual addresses to file offsets.

    Only PT_LOAD segments take part when the table has any, since the other
    program headers (PHDR, INTERP, NOTE...) describe ranges already covered
    by a loadable segment. The working copy is sorted once by virtual
    address; the segment list itself is never modified.
    """

    def __init__(
        self,
        segments: Iterable[Segment],
        mode: TranslationMode = TranslationMode.STRICT,
    ) -> None:
        segments = list(segments)
        loadable = [s for s in segments if s.kind == PT_LOAD]
        candidates = loadable or segments
        self.mode = mode
        self._segments = sorted(candidates, key=lambda s: s.vaddr)

    def __len__(self) -> int:
        return len(self._segments)

    def translate(self, address: int) -> int | None:
        """Return the file offset of address, or None when unmapped."""
        if self.mode is TranslationMode.BRACKET:
            return self._translate_bracket(address)
        return self._translate_strict(address)

    def translate_or_raise(self, address: int, symbol: str | None = None) -> int:
        offset = self.translate(address)
        if offset is None:
            raise UnmappedAddressError(address, symbol)
        return offset

    def segment_for(self, address: int) -> Segment | None:
        """Find the segment the strict test attributes address to."""
        for seg in self._segments:
            if seg.vaddr <= address < seg.vaddr + seg.filesz:
                return seg
        return None

    def _translate_strict(self, address: int) -> int | None:
        seg = self.segment_for(address)
        if seg is None:
            return None
        return seg.offset + (address - seg.vaddr)

    def _translate_bracket(self, address: int) -> int | None:
        pairs = [(s.offset, s.vaddr) for s in self._segments]
        for (a_off, a_addr), (_z_off, z_addr) in zip(pairs, pairs[1:]):
            if a_addr <= address < z_addr:
                return a_off + (address - a_addr)
        return None
