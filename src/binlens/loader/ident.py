"""Magic-byte sniffing and the ELF identification block."""

from enum import Enum
from dataclasses import dataclass

from binlens.errors import HeaderError, TruncatedError, FormatUnrecognizedError
from binlens.loader.reader import ByteOrder

ELF_MAGIC = b"\x7fELF"
MZ_MAGIC = b"MZ"

EI_NIDENT = 16

# e_ident[EI_CLASS]
ELFCLASS32 = 1
ELFCLASS64 = 2

# e_ident[EI_DATA]
ELFDATA2LSB = 1
ELFDATA2MSB = 2

_OSABI_NAMES = {
    0: "UNIX - System V",
    1: "HP-UX",
    2: "NetBSD",
    3: "Linux",
    6: "Solaris",
    7: "AIX",
    8: "IRIX",
    9: "FreeBSD",
    12: "OpenBSD",
    97: "ARM",
    255: "Standalone",
}


class BinaryFormat(Enum):
    """Object-file family of an image."""

    ELF = "ELF"
    PE = "PE"


def detect_format(data: bytes) -> BinaryFormat:
    """Pick the object-file family from the leading magic bytes."""
    if data[:4] == ELF_MAGIC:
        return BinaryFormat.ELF
    if data[:2] == MZ_MAGIC:
        return BinaryFormat.PE
    raise FormatUnrecognizedError(bytes(data[:4]))


@dataclass(frozen=True)
class ElfIdentification:
    """The 16-byte e_ident block at the start of every ELF file."""

    magic: bytes
    elf_class: int
    endianness: int
    version: int
    os_abi: int
    os_abi_version: int

    @classmethod
    def parse(cls, data: bytes) -> "ElfIdentification":
        if len(data) < EI_NIDENT:
            raise TruncatedError("ELF identification", 0, EI_NIDENT, len(data))
        if data[:4] != ELF_MAGIC:
            raise FormatUnrecognizedError(bytes(data[:4]))

        ident = cls(
            magic=bytes(data[:EI_NIDENT]),
            elf_class=data[4],
            endianness=data[5],
            version=data[6],
            os_abi=data[7],
            os_abi_version=data[8],
        )
        if ident.elf_class not in (ELFCLASS32, ELFCLASS64):
            raise HeaderError(f"Invalid ELF class {ident.elf_class} (expected 1 or 2)")
        if ident.endianness not in (ELFDATA2LSB, ELFDATA2MSB):
            raise HeaderError(f"Invalid ELF data encoding {ident.endianness}")
        return ident

    @property
    def bits(self) -> int:
        return 64 if self.elf_class == ELFCLASS64 else 32

    @property
    def byteorder(self) -> ByteOrder:
        return "big" if self.endianness == ELFDATA2MSB else "little"

    @property
    def os_abi_name(self) -> str:
        return _OSABI_NAMES.get(self.os_abi, f"unknown({self.os_abi})")

    def fields(self) -> list[tuple[str, str]]:
        return [
            ("magic", self.magic.hex(" ")),
            ("class", f"ELF{self.bits}"),
            ("endian", f"{self.byteorder} endian"),
            ("version", str(self.version)),
            ("os_abi", self.os_abi_name),
            ("os_abi_ver", str(self.os_abi_version)),
        ]
