"""PE/COFF parser: MS-DOS stub, NT headers and the section table.

All multi-byte fields are little-endian. Only headers and sections are
decoded; there is no function table or address translation for PE images.
"""

import struct
import logging
from pathlib import Path
from dataclasses import dataclass

from binlens.errors import HeaderError
from binlens.loader.ident import MZ_MAGIC, BinaryFormat
from binlens.loader.image import ExecutableImage
from binlens.loader.reader import read_u32, check_range, unpack_record
from binlens.loader.segments import Section, SectionKind

logger = logging.getLogger(__name__)

MSDOS_HEADER_SIZE = 64
E_LFANEW_OFFSET = 0x3C
PE_SIGNATURE = b"PE\x00\x00"
SIGNATURE_SIZE = 4
FILE_HEADER_SIZE = 20
SECTION_HEADER_SIZE = 40

# Optional header magic
PE32_MAGIC = 0x10B
PE32_PLUS_MAGIC = 0x20B

# Section characteristics
IMAGE_SCN_CNT_CODE = 0x00000020
IMAGE_SCN_CNT_INITIALIZED_DATA = 0x00000040
IMAGE_SCN_CNT_UNINITIALIZED_DATA = 0x00000080
IMAGE_SCN_MEM_EXECUTE = 0x20000000
IMAGE_SCN_MEM_READ = 0x40000000
IMAGE_SCN_MEM_WRITE = 0x80000000

# Machine types
IMAGE_FILE_MACHINE_I386 = 0x14C
IMAGE_FILE_MACHINE_AMD64 = 0x8664

_MACHINE_NAMES = {
    0x0: "unknown",
    IMAGE_FILE_MACHINE_I386: "i386",
    0x1C0: "ARM",
    0x1C4: "ARMv7 Thumb-2",
    0x200: "IA-64",
    IMAGE_FILE_MACHINE_AMD64: "x86_64",
    0xAA64: "ARM64",
}

_SUBSYSTEM_NAMES = {
    0: "unknown",
    1: "native",
    2: "Windows GUI",
    3: "Windows CUI",
    5: "OS/2 CUI",
    7: "POSIX CUI",
    9: "Windows CE GUI",
    10: "EFI application",
    11: "EFI boot service driver",
    12: "EFI runtime driver",
    13: "EFI ROM",
    14: "Xbox",
    16: "Windows boot application",
}

DATA_DIRECTORY_NAMES = (
    "export",
    "import",
    "resource",
    "exception",
    "security",
    "basereloc",
    "debug",
    "architecture",
    "globalptr",
    "tls",
    "load_config",
    "bound_import",
    "iat",
    "delay_import",
    "com_descriptor",
    "reserved",
)

# e_magic .. e_lfanew; e_res and e_res2 are reserved word arrays
_MSDOS_FMT = "HHHHHHHHHHHHHH4HHH10HI"

_FILE_HEADER_FMT = "HHIIIHH"

_OPTIONAL32_FMT = "HBBIIIIIIIIIHHHHHHIIIIHHIIIIII"
_OPTIONAL32_FIELDS = (
    "magic",
    "major_linker_version",
    "minor_linker_version",
    "size_of_code",
    "size_of_initialized_data",
    "size_of_uninitialized_data",
    "address_of_entry_point",
    "base_of_code",
    "base_of_data",
    "image_base",
    "section_alignment",
    "file_alignment",
    "major_operating_system_version",
    "minor_operating_system_version",
    "major_image_version",
    "minor_image_version",
    "major_subsystem_version",
    "minor_subsystem_version",
    "win32_version_value",
    "size_of_image",
    "size_of_headers",
    "check_sum",
    "subsystem",
    "dll_characteristics",
    "size_of_stack_reserve",
    "size_of_stack_commit",
    "size_of_heap_reserve",
    "size_of_heap_commit",
    "loader_flags",
    "number_of_rva_and_sizes",
)

_OPTIONAL64_FMT = "HBBIIIIIQIIHHHHHHIIIIHHQQQQII"
_OPTIONAL64_FIELDS = tuple(f for f in _OPTIONAL32_FIELDS if f != "base_of_data")

_SECTION_FMT = "8sIIIIIIHHI"


def machine_name(machine: int) -> str:
    return _MACHINE_NAMES.get(machine, f"unknown({machine:#x})")


def subsystem_name(subsystem: int) -> str:
    return _SUBSYSTEM_NAMES.get(subsystem, f"unknown({subsystem})")


@dataclass(frozen=True)
class MsDosHeader:
    """The IMAGE_DOS_HEADER stub; only e_lfanew matters for loading."""

    e_magic: int
    e_cblp: int
    e_cp: int
    e_crlc: int
    e_cparhdr: int
    e_minalloc: int
    e_maxalloc: int
    e_ss: int
    e_sp: int
    e_csum: int
    e_ip: int
    e_cs: int
    e_lfarlc: int
    e_ovno: int
    e_res: tuple[int, ...]
    e_oemid: int
    e_oeminfo: int
    e_res2: tuple[int, ...]
    e_lfanew: int

    @classmethod
    def parse(cls, data: bytes) -> "MsDosHeader":
        if data[:2] != MZ_MAGIC:
            raise HeaderError("Missing MZ signature")
        v = unpack_record(_MSDOS_FMT, data, 0, "MS-DOS header")
        return cls(*v[:14], tuple(v[14:18]), v[18], v[19], tuple(v[20:30]), v[30])

    def fields(self) -> list[tuple[str, str]]:
        return [
            ("e_magic", f"{self.e_magic:#x}"),
            ("e_cblp", f"{self.e_cblp:#x}"),
            ("e_cp", f"{self.e_cp:#x}"),
            ("e_crlc", f"{self.e_crlc:#x}"),
            ("e_cparhdr", str(self.e_cparhdr)),
            ("e_minalloc", f"{self.e_minalloc:#x}"),
            ("e_maxalloc", f"{self.e_maxalloc:#x}"),
            ("e_ss", str(self.e_ss)),
            ("e_sp", str(self.e_sp)),
            ("e_csum", str(self.e_csum)),
            ("e_ip", str(self.e_ip)),
            ("e_cs", str(self.e_cs)),
            ("e_lfarlc", str(self.e_lfarlc)),
            ("e_ovno", str(self.e_ovno)),
            ("e_res", str(list(self.e_res))),
            ("e_oemid", str(self.e_oemid)),
            ("e_oeminfo", str(self.e_oeminfo)),
            ("e_res2", str(list(self.e_res2))),
            ("e_lfanew", f"{self.e_lfanew:#x}"),
        ]


@dataclass(frozen=True)
class CoffFileHeader:
    """IMAGE_FILE_HEADER following the PE signature."""

    machine: int
    number_of_sections: int
    time_date_stamp: int
    pointer_to_symbol_table: int
    number_of_symbols: int
    size_of_optional_header: int
    characteristics: int

    @classmethod
    def parse(cls, data: bytes, offset: int) -> "CoffFileHeader":
        return cls(*unpack_record(_FILE_HEADER_FMT, data, offset, "COFF file header"))

    def fields(self) -> list[tuple[str, str]]:
        return [
            ("machine", machine_name(self.machine)),
            ("number_of_sections", str(self.number_of_sections)),
            ("time_date_stamp", f"{self.time_date_stamp:#x}"),
            ("pointer_to_symbol_table", f"{self.pointer_to_symbol_table:#x}"),
            ("number_of_symbols", str(self.number_of_symbols)),
            ("size_of_optional_header", str(self.size_of_optional_header)),
            ("characteristics", f"{self.characteristics:#x}"),
        ]


@dataclass(frozen=True)
class DataDirectory:
    name: str
    virtual_address: int
    size: int


@dataclass(frozen=True)
class OptionalHeader:
    """IMAGE_OPTIONAL_HEADER32 or IMAGE_OPTIONAL_HEADER64."""

    magic: int
    major_linker_version: int
    minor_linker_version: int
    size_of_code: int
    size_of_initialized_data: int
    size_of_uninitialized_data: int
    address_of_entry_point: int
    base_of_code: int
    image_base: int
    section_alignment: int
    file_alignment: int
    major_operating_system_version: int
    minor_operating_system_version: int
    major_image_version: int
    minor_image_version: int
    major_subsystem_version: int
    minor_subsystem_version: int
    win32_version_value: int
    size_of_image: int
    size_of_headers: int
    check_sum: int
    subsystem: int
    dll_characteristics: int
    size_of_stack_reserve: int
    size_of_stack_commit: int
    size_of_heap_reserve: int
    size_of_heap_commit: int
    loader_flags: int
    number_of_rva_and_sizes: int
    base_of_data: int = 0
    data_directories: tuple[DataDirectory, ...] = ()

    @classmethod
    def parse(cls, data: bytes, offset: int, size: int) -> "OptionalHeader":
        """Decode the optional header occupying data[offset:offset + size]."""
        check_range(data, offset, size, "optional header")
        if size < 2:
            raise HeaderError(f"Optional header too small ({size} bytes)")

        magic = int.from_bytes(data[offset : offset + 2], "little")
        if magic == PE32_MAGIC:
            fmt, names = _OPTIONAL32_FMT, _OPTIONAL32_FIELDS
        elif magic == PE32_PLUS_MAGIC:
            fmt, names = _OPTIONAL64_FMT, _OPTIONAL64_FIELDS
        else:
            raise HeaderError(f"Unknown optional header magic {magic:#x}")

        fixed = struct_size(fmt)
        if fixed > size:
            raise HeaderError(
                f"Optional header declares {size} bytes, fixed part needs {fixed}"
            )
        values = dict(zip(names, unpack_record(fmt, data, offset, "optional header")))

        # Directories beyond the declared optional header size are ignored
        count = min(values["number_of_rva_and_sizes"], (size - fixed) // 8)
        directories = []
        for i in range(count):
            rva, dir_size = unpack_record("II", data, offset + fixed + i * 8, "data directories")
            name = DATA_DIRECTORY_NAMES[i] if i < len(DATA_DIRECTORY_NAMES) else f"dir{i}"
            directories.append(DataDirectory(name, rva, dir_size))

        return cls(**values, data_directories=tuple(directories))

    @property
    def is_pe32_plus(self) -> bool:
        return self.magic == PE32_PLUS_MAGIC

    def fields(self) -> list[tuple[str, str]]:
        kind = "PE32+" if self.is_pe32_plus else "PE32"
        rows = [
            ("magic", f"{self.magic:#x} ({kind})"),
            ("linker_version", f"{self.major_linker_version}.{self.minor_linker_version}"),
            ("size_of_code", f"{self.size_of_code:#x}"),
            ("size_of_initialized_data", f"{self.size_of_initialized_data:#x}"),
            ("size_of_uninitialized_data", f"{self.size_of_uninitialized_data:#x}"),
            ("address_of_entry_point", f"{self.address_of_entry_point:#x}"),
            ("base_of_code", f"{self.base_of_code:#x}"),
        ]
        if not self.is_pe32_plus:
            rows.append(("base_of_data", f"{self.base_of_data:#x}"))
        rows += [
            ("image_base", f"{self.image_base:#x}"),
            ("section_alignment", f"{self.section_alignment:#x}"),
            ("file_alignment", f"{self.file_alignment:#x}"),
            (
                "operating_system_version",
                f"{self.major_operating_system_version}.{self.minor_operating_system_version}",
            ),
            ("image_version", f"{self.major_image_version}.{self.minor_image_version}"),
            (
                "subsystem_version",
                f"{self.major_subsystem_version}.{self.minor_subsystem_version}",
            ),
            ("size_of_image", f"{self.size_of_image:#x}"),
            ("size_of_headers", f"{self.size_of_headers:#x}"),
            ("check_sum", f"{self.check_sum:#x}"),
            ("subsystem", subsystem_name(self.subsystem)),
            ("dll_characteristics", f"{self.dll_characteristics:#x}"),
            ("size_of_stack_reserve", f"{self.size_of_stack_reserve:#x}"),
            ("size_of_stack_commit", f"{self.size_of_stack_commit:#x}"),
            ("size_of_heap_reserve", f"{self.size_of_heap_reserve:#x}"),
            ("size_of_heap_commit", f"{self.size_of_heap_commit:#x}"),
            ("loader_flags", f"{self.loader_flags:#x}"),
            ("number_of_rva_and_sizes", str(self.number_of_rva_and_sizes)),
        ]
        return rows


def struct_size(fmt: str) -> int:
    return struct.calcsize("<" + fmt)


def classify_section(characteristics: int) -> SectionKind:
    if characteristics & IMAGE_SCN_CNT_UNINITIALIZED_DATA:
        return SectionKind.NOBITS
    if characteristics & (IMAGE_SCN_CNT_CODE | IMAGE_SCN_CNT_INITIALIZED_DATA):
        return SectionKind.PROGBITS
    return SectionKind.OTHER


def section_flags_str(characteristics: int) -> str:
    return "".join(
        ch if characteristics & bit else "-"
        for ch, bit in (
            ("R", IMAGE_SCN_MEM_READ),
            ("W", IMAGE_SCN_MEM_WRITE),
            ("X", IMAGE_SCN_MEM_EXECUTE),
        )
    )


def parse_section_table(data: bytes, offset: int, count: int) -> list[Section]:
    """Decode count 40-byte section headers starting at offset."""
    table = "PE section table"
    check_range(data, offset, count * SECTION_HEADER_SIZE, table)

    sections = []
    for i in range(count):
        # Relocation and line-number fields only apply to object files
        (
            raw_name,
            virtual_size,
            virtual_address,
            size_of_raw_data,
            pointer_to_raw_data,
            *_coff_debug,
            characteristics,
        ) = unpack_record(_SECTION_FMT, data, offset + i * SECTION_HEADER_SIZE, table)

        # The 8-byte name is NUL padded, not necessarily NUL terminated
        name = raw_name.rstrip(b"\x00").decode("latin-1")

        sections.append(
            Section(
                name=name,
                kind=classify_section(characteristics),
                flags=characteristics,
                address=virtual_address,
                offset=pointer_to_raw_data,
                size=size_of_raw_data,
                executable=bool(characteristics & (IMAGE_SCN_CNT_CODE | IMAGE_SCN_MEM_EXECUTE)),
                type_value=characteristics,
                virtual_size=virtual_size,
            )
        )
    return sections


@dataclass(kw_only=True)
class PeBinary(ExecutableImage):
    """Parsed PE/COFF image."""

    dos_header: MsDosHeader
    signature: bytes
    file_header: CoffFileHeader
    optional_header: OptionalHeader | None

    format = BinaryFormat.PE

    @classmethod
    def load(cls, path: str | Path, **kwargs) -> "PeBinary":
        path = Path(path)
        with open(path, "rb") as f:
            data = f.read()
        return cls.parse(data, path, **kwargs)

    @classmethod
    def parse(cls, data: bytes, path: Path | None = None, **_options) -> "PeBinary":
        """Parse a PE image from bytes; any header failure is raised."""
        data = bytes(data)
        dos = MsDosHeader.parse(data)

        nt_offset = dos.e_lfanew
        check_range(data, nt_offset, SIGNATURE_SIZE + FILE_HEADER_SIZE, "NT headers")
        signature = data[nt_offset : nt_offset + SIGNATURE_SIZE]
        if signature != PE_SIGNATURE:
            raise HeaderError(f"Missing PE signature at {nt_offset:#x} (found {signature!r})")

        file_header = CoffFileHeader.parse(data, nt_offset + SIGNATURE_SIZE)
        optional_offset = nt_offset + SIGNATURE_SIZE + FILE_HEADER_SIZE
        optional = None
        if file_header.size_of_optional_header:
            optional = OptionalHeader.parse(
                data, optional_offset, file_header.size_of_optional_header
            )

        sections_offset = optional_offset + file_header.size_of_optional_header
        sections = parse_section_table(data, sections_offset, file_header.number_of_sections)
        logger.debug(
            "PE %s, %d sections at %#x",
            machine_name(file_header.machine),
            len(sections),
            sections_offset,
        )

        return cls(
            path=path or Path("<memory>"),
            sections=tuple(sections),
            dos_header=dos,
            signature=signature,
            file_header=file_header,
            optional_header=optional,
            _raw_data=data,
        )

    @property
    def nt_offset(self) -> int:
        return self.dos_header.e_lfanew

    @property
    def section_table_offset(self) -> int:
        return (
            self.nt_offset
            + SIGNATURE_SIZE
            + FILE_HEADER_SIZE
            + self.file_header.size_of_optional_header
        )

    @property
    def bits(self) -> int:
        if self.optional_header is not None:
            return 64 if self.optional_header.is_pe32_plus else 32
        return 64 if self.file_header.machine == IMAGE_FILE_MACHINE_AMD64 else 32

    @property
    def entry_point(self) -> int:
        if self.optional_header is None:
            return 0
        return self.optional_header.address_of_entry_point

    @property
    def base_address(self) -> int:
        if self.optional_header is None:
            return 0
        return self.optional_header.image_base

    @property
    def machine(self) -> str:
        return machine_name(self.file_header.machine)

    def header_fields(self) -> list[tuple[str, str]]:
        fields = self.dos_header.fields()
        fields.append(("signature", f"{read_u32(self.signature, 0):#x}"))
        fields += self.file_header.fields()
        if self.optional_header is not None:
            fields += self.optional_header.fields()
        return fields
