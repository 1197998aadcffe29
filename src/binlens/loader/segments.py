"""Segment and section models shared by the ELF and PE loaders."""

from enum import IntEnum
from dataclasses import dataclass

# Program header types
PT_NULL = 0
PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_NOTE = 4
PT_SHLIB = 5
PT_PHDR = 6
PT_TLS = 7
PT_GNU_EH_FRAME = 0x6474E550
PT_GNU_STACK = 0x6474E551
PT_GNU_RELRO = 0x6474E552

_PT_NAMES = {
    PT_NULL: "PT_NULL",
    PT_LOAD: "PT_LOAD",
    PT_DYNAMIC: "PT_DYNAMIC",
    PT_INTERP: "PT_INTERP",
    PT_NOTE: "PT_NOTE",
    PT_SHLIB: "PT_SHLIB",
    PT_PHDR: "PT_PHDR",
    PT_TLS: "PT_TLS",
    PT_GNU_EH_FRAME: "PT_GNU_EH_FRAME",
    PT_GNU_STACK: "PT_GNU_STACK",
    PT_GNU_RELRO: "PT_GNU_RELRO",
}

# Program header flags
PF_X = 0x1
PF_W = 0x2
PF_R = 0x4


def segment_type_name(p_type: int) -> str:
    return _PT_NAMES.get(p_type, f"unknown type ({p_type:#x})")


class SectionKind(IntEnum):
    """Closed classification of section contents."""

    NULL = 0
    PROGBITS = 1
    SYMTAB = 2
    STRTAB = 3
    RELA = 4
    HASH = 5
    DYNAMIC = 6
    NOTE = 7
    NOBITS = 8
    REL = 9
    SHLIB = 10
    DYNSYM = 11
    OTHER = 0xFF

    @classmethod
    def from_sh_type(cls, sh_type: int) -> "SectionKind":
        """Map an ELF sh_type to a kind; anything unlisted is OTHER."""
        try:
            return cls(sh_type)
        except ValueError:
            return cls.OTHER

    @property
    def label(self) -> str:
        if self is SectionKind.OTHER:
            return "unknown type"
        return f"SHT_{self.name}"


@dataclass(frozen=True)
class Segment:
    """One program header entry: a file range mapped into memory."""

    kind: int
    offset: int
    filesz: int
    vaddr: int
    memsz: int
    flags: int
    align: int
    paddr: int = 0

    @property
    def kind_name(self) -> str:
        return segment_type_name(self.kind)

    @property
    def end_address(self) -> int:
        return self.vaddr + self.memsz

    @property
    def end_offset(self) -> int:
        return self.offset + self.filesz

    def contains_address(self, addr: int) -> bool:
        return self.vaddr <= addr < self.end_address

    @property
    def flags_str(self) -> str:
        return "".join(
            ch if self.flags & bit else "-" for ch, bit in (("R", PF_R), ("W", PF_W), ("X", PF_X))
        )


@dataclass(frozen=True)
class Section:
    """A section header entry with its name already resolved."""

    name: str
    kind: SectionKind
    flags: int
    address: int
    offset: int
    size: int
    link: int = 0
    info: int = 0
    addralign: int = 0
    entsize: int = 0
    executable: bool = False
    type_value: int = 0
    virtual_size: int = 0

    @property
    def end_address(self) -> int:
        return self.address + self.size

    @property
    def end_offset(self) -> int:
        return self.offset + self.size

    def contains_address(self, addr: int) -> bool:
        return self.address <= addr < self.end_address

    @property
    def has_file_data(self) -> bool:
        return self.kind not in (SectionKind.NULL, SectionKind.NOBITS) and self.size > 0
