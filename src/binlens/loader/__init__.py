"""Binary loader module for parsing executable formats."""

from pathlib import Path

from binlens.loader.pe import PeBinary
from binlens.loader.elf import ElfBinary, ElfHeader
from binlens.loader.ident import BinaryFormat, ElfIdentification, detect_format
from binlens.loader.image import ExecutableImage
from binlens.loader.symbols import Symbol, Function, SymbolType, FunctionIndex
from binlens.loader.segments import Section, Segment, SectionKind
from binlens.loader.translate import TranslationMode, AddressTranslator

__all__ = [
    "AddressTranslator",
    "BinaryFormat",
    "ElfBinary",
    "ElfHeader",
    "ElfIdentification",
    "ExecutableImage",
    "Function",
    "FunctionIndex",
    "PeBinary",
    "Section",
    "SectionKind",
    "Segment",
    "Symbol",
    "SymbolType",
    "TranslationMode",
    "detect_format",
    "load",
    "parse",
]

_LOADERS: dict[BinaryFormat, type[ExecutableImage]] = {
    BinaryFormat.ELF: ElfBinary,
    BinaryFormat.PE: PeBinary,
}


def parse(
    data: bytes,
    path: Path | None = None,
    translation: TranslationMode = TranslationMode.STRICT,
) -> ExecutableImage:
    """Parse an executable image, dispatching on its magic bytes."""
    loader = _LOADERS[detect_format(data)]
    return loader.parse(data, path, translation=translation)


def load(
    path: str | Path, translation: TranslationMode = TranslationMode.STRICT
) -> ExecutableImage:
    """Load and parse an executable from disk."""
    path = Path(path)
    with open(path, "rb") as f:
        data = f.read()
    return parse(data, path, translation)
