"""Hex dump and byte-level diff rows."""

from dataclasses import dataclass
from collections.abc import Iterator


def _printable(b: int) -> str:
    return chr(b) if 0x20 <= b < 0x7F else "."


@dataclass(frozen=True)
class HexRow:
    offset: int
    data: bytes

    def hex(self, width: int = 16) -> str:
        """Hex column, padded to a full row."""
        return " ".join(f"{b:02x}" for b in self.data).ljust(width * 3 - 1)

    def ascii(self) -> str:
        return "".join(_printable(b) for b in self.data)

    def __str__(self) -> str:
        return f"{self.offset:08x}  {self.hex()}  |{self.ascii()}|"


def hex_rows(data: bytes, width: int = 16, base: int = 0) -> Iterator[HexRow]:
    """Split data into rows of width bytes, offsets starting at base."""
    if width <= 0:
        raise ValueError("Row width must be positive")
    for start in range(0, len(data), width):
        yield HexRow(base + start, data[start : start + width])


@dataclass(frozen=True)
class DiffRow:
    """One row of a side-by-side diff.

    ``changed[i]`` is set when position i differs between the two inputs or
    is present in only one of them.
    """

    offset: int
    left: bytes
    right: bytes
    changed: tuple[bool, ...]

    @property
    def has_changes(self) -> bool:
        return any(self.changed)


def diff_rows(left: bytes, right: bytes, width: int = 16) -> Iterator[DiffRow]:
    """Compare two byte strings row by row over the longer length."""
    if width <= 0:
        raise ValueError("Row width must be positive")
    length = max(len(left), len(right))
    for start in range(0, length, width):
        lrow = left[start : start + width]
        rrow = right[start : start + width]
        span = max(len(lrow), len(rrow))
        changed = tuple(
            i >= len(lrow) or i >= len(rrow) or lrow[i] != rrow[i] for i in range(span)
        )
        yield DiffRow(start, lrow, rrow, changed)


def count_differences(left: bytes, right: bytes) -> int:
    """Number of differing byte positions, including the length difference."""
    common = min(len(left), len(right))
    differing = sum(1 for i in range(common) if left[i] != right[i])
    return differing + abs(len(left) - len(right))
