"""Symbol table walking and the function table built from it."""

import logging
from enum import IntEnum
from dataclasses import dataclass
from collections.abc import Iterator, Sequence

from binlens.errors import LoaderError, MissingTableError, UnmappedAddressError
from binlens.loader.reader import ByteOrder, check_range, read_cstring, unpack_record
from binlens.loader.segments import Section
from binlens.loader.translate import AddressTranslator

logger = logging.getLogger(__name__)

SYMTAB_NAME = ".symtab"
STRTAB_NAME = ".strtab"

# Symbol entry size by ELF width
SYMBOL_ENTRY_SIZE = {32: 16, 64: 24}

# Elf32_Sym: name, value, size, info, other, shndx
_SYM32_FMT = "IIIBBH"
# Elf64_Sym: name, info, other, shndx, value, size
_SYM64_FMT = "IBBHQQ"

SHN_UNDEF = 0


class SymbolType(IntEnum):
    """Low nibble of st_info."""

    NOTYPE = 0
    OBJECT = 1
    FUNC = 2
    SECTION = 3
    FILE = 4
    COMMON = 5
    TLS = 6

    @classmethod
    def from_info(cls, info: int) -> "SymbolType | None":
        try:
            return cls(info & 0xF)
        except ValueError:
            return None


@dataclass(frozen=True)
class Symbol:
    """A raw symbol table entry, used only while building functions."""

    name_offset: int
    info: int
    value: int
    size: int
    shndx: int = SHN_UNDEF

    @property
    def symbol_type(self) -> SymbolType | None:
        return SymbolType.from_info(self.info)

    @property
    def binding(self) -> int:
        return self.info >> 4

    @property
    def is_function(self) -> bool:
        return self.info & 0xF == SymbolType.FUNC


@dataclass(frozen=True)
class Function:
    """A named function located in the file.

    ``file_offset`` is always a translated file offset, never a virtual
    address. When translation or name lookup failed, the failure is kept
    in ``error`` and the record is not valid for disassembly.
    """

    name: str
    file_offset: int | None
    size: int
    address: int = 0
    error: LoaderError | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None and self.file_offset is not None and self.size > 0

    @property
    def end_offset(self) -> int | None:
        if self.file_offset is None:
            return None
        return self.file_offset + self.size

    @property
    def end_address(self) -> int:
        return self.address + self.size

    def __repr__(self) -> str:
        if self.file_offset is None:
            return f"Function({self.name!r}, unmapped {self.address:#x}, size={self.size})"
        return f"Function({self.name!r}, {self.file_offset:#x}, size={self.size})"


def iter_symbols(
    data: bytes, symtab: Section, bits: int, byteorder: ByteOrder = "little"
) -> Iterator[Symbol]:
    """Yield every entry of a symbol table section in table order."""
    stride = SYMBOL_ENTRY_SIZE[bits]
    check_range(data, symtab.offset, symtab.size, SYMTAB_NAME)

    for entry in range(symtab.offset, symtab.offset + symtab.size - stride + 1, stride):
        if bits == 64:
            name, info, _other, shndx, value, size = unpack_record(
                _SYM64_FMT, data, entry, SYMTAB_NAME, byteorder
            )
        else:
            name, value, size, info, _other, shndx = unpack_record(
                _SYM32_FMT, data, entry, SYMTAB_NAME, byteorder
            )
        yield Symbol(name_offset=name, info=info, value=value, size=size, shndx=shndx)


def find_section(sections: Sequence[Section], name: str) -> Section | None:
    for section in sections:
        if section.name == name:
            return section
    return None


def build_function_table(
    data: bytes,
    sections: Sequence[Section],
    translator: AddressTranslator,
    bits: int,
    byteorder: ByteOrder = "little",
) -> list[Function]:
    """Build the function list from .symtab/.strtab.

    Missing tables give an empty list. Per-symbol failures (unmapped
    address, unterminated name) are attached to that symbol's Function.
    A symbol table that runs past the image raises TruncatedError.
    """
    symtab = find_section(sections, SYMTAB_NAME)
    strtab = find_section(sections, STRTAB_NAME)
    if symtab is None or strtab is None:
        missing = SYMTAB_NAME if symtab is None else STRTAB_NAME
        logger.debug("%s", MissingTableError(missing))
        return []

    check_range(data, strtab.offset, strtab.size, STRTAB_NAME)

    functions: list[Function] = []
    for sym in iter_symbols(data, symtab, bits, byteorder):
        if not sym.is_function:
            continue

        error: LoaderError | None = None
        try:
            name = read_cstring(
                data, strtab.offset + sym.name_offset, strtab.end_offset, STRTAB_NAME
            )
        except LoaderError as e:
            name = ""
            error = e

        try:
            file_offset = translator.translate_or_raise(sym.value, name or None)
        except UnmappedAddressError as e:
            file_offset = None
            error = error or e

        if error is not None:
            logger.warning("Function symbol at %#x: %s", sym.value, error)

        functions.append(
            Function(
                name=name,
                file_offset=file_offset,
                size=sym.size,
                address=sym.value,
                error=error,
            )
        )

    logger.debug("Built %d function entries from %s", len(functions), SYMTAB_NAME)
    return functions


class FunctionIndex:
    """Lookup by address or name over a function list in table order."""

    def __init__(self, functions: Sequence[Function]) -> None:
        self._all = list(functions)
        self._by_address: dict[int, Function] = {}
        self._by_offset: dict[int, Function] = {}
        self._by_name: dict[str, Function] = {}
        for func in self._all:
            self._by_address.setdefault(func.address, func)
            self._by_name.setdefault(func.name, func)
            if func.file_offset is not None:
                self._by_offset.setdefault(func.file_offset, func)

    def by_address(self, address: int) -> Function | None:
        return self._by_address.get(address)

    def by_offset(self, offset: int) -> Function | None:
        return self._by_offset.get(offset)

    def by_name(self, name: str) -> Function | None:
        return self._by_name.get(name)

    def closest(self, address: int) -> tuple[Function, int] | None:
        """Find the function at or before address, returns (function, delta)."""
        best: Function | None = None
        for func in self._all:
            if func.address <= address and (best is None or func.address > best.address):
                best = func
        if best is None:
            return None
        return best, address - best.address

    def __iter__(self) -> Iterator[Function]:
        return iter(self._all)

    def __len__(self) -> int:
        return len(self._all)
