"""Byte frequency histogram and entropy."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ByteHistogram:
    """Occurrence count for each of the 256 byte values."""

    counts: tuple[int, ...]

    @classmethod
    def from_data(cls, data: bytes) -> "ByteHistogram":
        counts = [0] * 256
        for b in data:
            counts[b] += 1
        return cls(tuple(counts))

    @property
    def total(self) -> int:
        return sum(self.counts)

    @property
    def max_count(self) -> int:
        return max(self.counts)

    @property
    def distinct(self) -> int:
        """Number of byte values that occur at least once."""
        return sum(1 for c in self.counts if c)

    @property
    def entropy(self) -> float:
        """Shannon entropy in bits per byte, between 0.0 and 8.0."""
        total = self.total
        if total == 0:
            return 0.0
        entropy = 0.0
        for count in self.counts:
            if count:
                p = count / total
                entropy -= p * math.log2(p)
        return entropy

    def ranked(self) -> list[tuple[int, int]]:
        """(byte, count) pairs, count descending then byte ascending."""
        return sorted(enumerate(self.counts), key=lambda item: (-item[1], item[0]))

    def __getitem__(self, byte: int) -> int:
        return self.counts[byte]
