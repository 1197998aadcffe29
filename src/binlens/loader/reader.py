"""Endian-aware fixed-width field access on raw image bytes."""

import struct
from typing import Literal

from binlens.errors import OutOfBoundsError, NameResolutionError, TruncatedError

ByteOrder = Literal["little", "big"]

_PREFIX = {"little": "<", "big": ">"}


def _unpack(code: str, buf: bytes, offset: int, byteorder: ByteOrder) -> int:
    width = struct.calcsize(code)
    if offset < 0 or offset + width > len(buf):
        raise OutOfBoundsError(offset, width, len(buf))
    return struct.unpack_from(_PREFIX[byteorder] + code, buf, offset)[0]


def read_u8(buf: bytes, offset: int) -> int:
    return _unpack("B", buf, offset, "little")


def read_u16(buf: bytes, offset: int, byteorder: ByteOrder = "little") -> int:
    """Read an unsigned 16-bit field at offset."""
    return _unpack("H", buf, offset, byteorder)


def read_u32(buf: bytes, offset: int, byteorder: ByteOrder = "little") -> int:
    """Read an unsigned 32-bit field at offset."""
    return _unpack("I", buf, offset, byteorder)


def read_u64(buf: bytes, offset: int, byteorder: ByteOrder = "little") -> int:
    """Read an unsigned 64-bit field at offset."""
    return _unpack("Q", buf, offset, byteorder)


def unpack_record(
    fmt: str, buf: bytes, offset: int, table: str, byteorder: ByteOrder = "little"
) -> tuple:
    """Unpack a whole fixed-size record, failing with the owning table's name."""
    size = struct.calcsize(_PREFIX[byteorder] + fmt)
    if offset < 0 or offset + size > len(buf):
        raise TruncatedError(table, offset, size, len(buf))
    return struct.unpack_from(_PREFIX[byteorder] + fmt, buf, offset)


def check_range(buf: bytes, offset: int, size: int, table: str) -> None:
    """Ensure [offset, offset + size) lies inside buf."""
    if offset < 0 or size < 0 or offset + size > len(buf):
        raise TruncatedError(table, offset, size, len(buf))


def read_cstring(buf: bytes, start: int, end: int, table: str = "string table") -> str:
    """Read a NUL-terminated string from buf[start:end].

    The terminator must appear before ``end`` (clamped to the buffer);
    running off the end is a decode error rather than a silent truncation.
    """
    end = min(end, len(buf))
    if start < 0 or start >= end:
        raise NameResolutionError(table, start)
    nul = buf.find(b"\x00", start, end)
    if nul == -1:
        raise NameResolutionError(table, start)
    return buf[start:nul].decode("utf-8", errors="replace")
