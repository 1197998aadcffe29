"""ELF32/ELF64 parser."""

import struct
import logging
from pathlib import Path
from dataclasses import field, dataclass

from binlens.errors import HeaderError, LoaderError, TruncatedError
from binlens.loader.ident import BinaryFormat, ElfIdentification
from binlens.loader.image import ExecutableImage
from binlens.loader.reader import ByteOrder, check_range, read_cstring, unpack_record
from binlens.loader.symbols import build_function_table
from binlens.loader.segments import Section, Segment, SectionKind
from binlens.loader.translate import TranslationMode, AddressTranslator

logger = logging.getLogger(__name__)

ELF_HEADER_START = 16

# ELF file types
ET_NONE = 0
ET_REL = 1
ET_EXEC = 2
ET_DYN = 3
ET_CORE = 4

_ET_NAMES = {
    ET_NONE: "ET_NONE",
    ET_REL: "ET_REL",
    ET_EXEC: "ET_EXEC",
    ET_DYN: "ET_DYN",
    ET_CORE: "ET_CORE",
}

# Machine architectures
EM_386 = 3
EM_X86_64 = 62

_EM_NAMES = {
    0: "None",
    2: "SPARC",
    EM_386: "x86",
    8: "MIPS",
    20: "PowerPC",
    21: "PowerPC64",
    40: "ARM",
    EM_X86_64: "x86_64",
    183: "AArch64",
    243: "RISC-V",
}

# Section header flags
SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4

SHN_UNDEF = 0

_HEADER_FIELDS = (
    "e_type",
    "e_machine",
    "e_version",
    "e_entry",
    "e_phoff",
    "e_shoff",
    "e_flags",
    "e_ehsize",
    "e_phentsize",
    "e_phnum",
    "e_shentsize",
    "e_shnum",
    "e_shstrndx",
)


@dataclass(frozen=True)
class ElfLayout:
    """Struct layouts that differ between ELF32 and ELF64."""

    bits: int
    header_fmt: str
    phdr_fmt: str
    phdr_fields: tuple[str, ...]
    shdr_fmt: str


ELF32_LAYOUT = ElfLayout(
    bits=32,
    header_fmt="HHIIIIIHHHHHH",
    phdr_fmt="IIIIIIII",
    phdr_fields=("type", "offset", "vaddr", "paddr", "filesz", "memsz", "flags", "align"),
    shdr_fmt="IIIIIIIIII",
)

ELF64_LAYOUT = ElfLayout(
    bits=64,
    header_fmt="HHIQQQIHHHHHH",
    phdr_fmt="IIQQQQQQ",
    phdr_fields=("type", "flags", "offset", "vaddr", "paddr", "filesz", "memsz", "align"),
    shdr_fmt="IIQQQQIIQQ",
)

LAYOUTS = {32: ELF32_LAYOUT, 64: ELF64_LAYOUT}


def elf_type_name(e_type: int) -> str:
    return _ET_NAMES.get(e_type, "unknown type")


def machine_name(e_machine: int) -> str:
    return _EM_NAMES.get(e_machine, f"unknown({e_machine})")


def section_flags_str(flags: int) -> str:
    parts = []
    if flags & SHF_WRITE:
        parts.append("W")
    if flags & SHF_ALLOC:
        parts.append("A")
    if flags & SHF_EXECINSTR:
        parts.append("X")
    return "".join(parts) if parts else "-"


@dataclass(frozen=True)
class ElfHeader:
    """ELF file header; address/offset fields are widened to int for both widths."""

    bits: int
    e_type: int
    e_machine: int
    e_version: int
    e_entry: int
    e_phoff: int
    e_shoff: int
    e_flags: int
    e_ehsize: int
    e_phentsize: int
    e_phnum: int
    e_shentsize: int
    e_shnum: int
    e_shstrndx: int

    @classmethod
    def parse(cls, data: bytes, ident: ElfIdentification) -> "ElfHeader":
        layout = LAYOUTS[ident.bits]
        values = unpack_record(
            layout.header_fmt, data, ELF_HEADER_START, "ELF header", ident.byteorder
        )
        return cls(ident.bits, *values)

    def values(self) -> tuple[int, ...]:
        """The 13 header fields in file order."""
        return tuple(getattr(self, name) for name in _HEADER_FIELDS)

    def fields(self) -> list[tuple[str, str]]:
        return [
            ("e_type", elf_type_name(self.e_type)),
            ("e_machine", machine_name(self.e_machine)),
            ("e_version", f"{self.e_version:#x}"),
            ("e_entry", f"{self.e_entry:#x}"),
            ("e_phoff", f"{self.e_phoff} (bytes into file)"),
            ("e_shoff", f"{self.e_shoff} (bytes into file)"),
            ("e_flags", f"{self.e_flags:#x}"),
            ("e_ehsize", f"{self.e_ehsize} (bytes)"),
            ("e_phentsize", f"{self.e_phentsize} (bytes)"),
            ("e_phnum", str(self.e_phnum)),
            ("e_shentsize", f"{self.e_shentsize} (bytes)"),
            ("e_shnum", str(self.e_shnum)),
            ("e_shstrndx", str(self.e_shstrndx)),
        ]


def _table_stride(declared: int, fmt: str, table: str) -> int:
    record = struct.calcsize("<" + fmt)
    if declared < record:
        raise HeaderError(f"{table}: entry size {declared} smaller than {record}-byte record")
    return declared


def parse_program_headers(
    data: bytes, header: ElfHeader, byteorder: ByteOrder
) -> list[Segment]:
    """Decode the program header table into segments."""
    if header.e_phnum == 0:
        return []

    layout = LAYOUTS[header.bits]
    table = "program header table"
    stride = _table_stride(header.e_phentsize, layout.phdr_fmt, table)
    check_range(data, header.e_phoff, stride * header.e_phnum, table)

    segments = []
    for i in range(header.e_phnum):
        values = unpack_record(layout.phdr_fmt, data, header.e_phoff + i * stride, table, byteorder)
        ph = dict(zip(layout.phdr_fields, values))
        segments.append(
            Segment(
                kind=ph["type"],
                offset=ph["offset"],
                filesz=ph["filesz"],
                vaddr=ph["vaddr"],
                memsz=ph["memsz"],
                flags=ph["flags"],
                align=ph["align"],
                paddr=ph["paddr"],
            )
        )
    return segments


def parse_section_headers(
    data: bytes, header: ElfHeader, byteorder: ByteOrder
) -> tuple[list[Section], list[LoaderError]]:
    """Decode the section header table and resolve section names.

    Returns the sections plus any per-name failures; a name that cannot be
    resolved is left empty without aborting the table.
    """
    if header.e_shnum == 0 or header.e_shoff == 0:
        return [], []

    layout = LAYOUTS[header.bits]
    table = "section header table"
    stride = _table_stride(header.e_shentsize, layout.shdr_fmt, table)
    check_range(data, header.e_shoff, stride * header.e_shnum, table)

    raw = [
        unpack_record(layout.shdr_fmt, data, header.e_shoff + i * stride, table, byteorder)
        for i in range(header.e_shnum)
    ]

    errors: list[LoaderError] = []
    names_start = names_end = None
    if header.e_shstrndx != SHN_UNDEF:
        if header.e_shstrndx >= len(raw):
            errors.append(
                HeaderError(f"e_shstrndx {header.e_shstrndx} out of range ({len(raw)} sections)")
            )
        else:
            strtab = raw[header.e_shstrndx]
            try:
                check_range(data, strtab[4], strtab[5], "section name table")
                names_start, names_end = strtab[4], strtab[4] + strtab[5]
            except TruncatedError as e:
                errors.append(e)

    sections = []
    for sh_name, sh_type, flags, addr, offset, size, link, info, align, entsize in raw:
        name = ""
        if names_start is not None:
            try:
                name = read_cstring(data, names_start + sh_name, names_end, "section name table")
            except LoaderError as e:
                errors.append(e)

        sections.append(
            Section(
                name=name,
                kind=SectionKind.from_sh_type(sh_type),
                flags=flags,
                address=addr,
                offset=offset,
                size=size,
                link=link,
                info=info,
                addralign=align,
                entsize=entsize,
                executable=bool(flags & SHF_EXECINSTR),
                type_value=sh_type,
            )
        )
    return sections, errors


@dataclass(kw_only=True)
class ElfBinary(ExecutableImage):
    """Parsed ELF image of either width."""

    ident: ElfIdentification
    header: ElfHeader
    translation: TranslationMode = TranslationMode.STRICT
    _translator: AddressTranslator | None = field(default=None, repr=False)

    format = BinaryFormat.ELF

    @classmethod
    def load(cls, path: str | Path, **kwargs) -> "ElfBinary":
        path = Path(path)
        with open(path, "rb") as f:
            data = f.read()
        return cls.parse(data, path, **kwargs)

    @classmethod
    def parse(
        cls,
        data: bytes,
        path: Path | None = None,
        translation: TranslationMode = TranslationMode.STRICT,
    ) -> "ElfBinary":
        """Parse an ELF image from bytes.

        Header and header-table decode failures are raised; a function table
        that cannot be built is recorded in ``errors`` instead.
        """
        data = bytes(data)
        ident = ElfIdentification.parse(data)
        header = ElfHeader.parse(data, ident)
        logger.debug(
            "ELF%d %s, %d segments, %d sections",
            ident.bits,
            elf_type_name(header.e_type),
            header.e_phnum,
            header.e_shnum,
        )

        segments = parse_program_headers(data, header, ident.byteorder)
        sections, errors = parse_section_headers(data, header, ident.byteorder)
        for err in errors:
            logger.warning("%s", err)

        translator = AddressTranslator(segments, translation)
        try:
            functions = build_function_table(
                data, sections, translator, ident.bits, ident.byteorder
            )
        except TruncatedError as e:
            logger.warning("Function table skipped: %s", e)
            errors.append(e)
            functions = []

        return cls(
            path=path or Path("<memory>"),
            segments=tuple(segments),
            sections=tuple(sections),
            functions=tuple(functions),
            errors=tuple(errors),
            ident=ident,
            header=header,
            translation=translation,
            _translator=translator,
            _raw_data=data,
        )

    @property
    def bits(self) -> int:
        return self.ident.bits

    @property
    def byteorder(self) -> ByteOrder:
        return self.ident.byteorder

    @property
    def entry_point(self) -> int:
        return self.header.e_entry

    @property
    def machine(self) -> str:
        return machine_name(self.header.e_machine)

    @property
    def translator(self) -> AddressTranslator:
        if self._translator is None:
            return AddressTranslator(self.segments, self.translation)
        return self._translator

    def translate(self, address: int) -> int | None:
        """Map a virtual address to a file offset."""
        return self.translator.translate(address)

    def header_fields(self) -> list[tuple[str, str]]:
        return self.ident.fields() + self.header.fields()
