"""binlens - ELF and PE executable inspection."""

from pathlib import Path
from collections.abc import Iterator

from binlens.arch import X86Instruction, X86Disassembler
from binlens.errors import LoaderError
from binlens.loader import (
    Section,
    Segment,
    Function,
    PeBinary,
    ElfBinary,
    ExecutableImage,
    TranslationMode,
    load,
    parse,
)
from binlens.analysis import ByteHistogram, FunctionReport, AnalysisSummary, FunctionAnalyzer

__version__ = "0.1.0"
__all__ = [
    "AnalysisSummary",
    "ByteHistogram",
    "ElfBinary",
    "ExecutableImage",
    "Function",
    "FunctionReport",
    "LoaderError",
    "PeBinary",
    "Project",
    "Section",
    "Segment",
    "TranslationMode",
    "X86Disassembler",
    "X86Instruction",
]


class Project:
    """Main entry point: a loaded binary plus its decoder and analysis passes."""

    def __init__(self, binary: ExecutableImage, syntax: str = "intel") -> None:
        self.binary = binary
        self.disasm = X86Disassembler(bits=binary.bits, syntax=syntax)
        self._summary: AnalysisSummary | None = None

    @classmethod
    def load(
        cls,
        path: str | Path,
        translation: TranslationMode = TranslationMode.STRICT,
        syntax: str = "intel",
    ) -> "Project":
        """Load a binary and create a project."""
        return cls(load(path, translation), syntax)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        translation: TranslationMode = TranslationMode.STRICT,
        syntax: str = "intel",
    ) -> "Project":
        return cls(parse(data, translation=translation), syntax)

    def analyze(self) -> AnalysisSummary:
        """Run function analysis once and cache the result."""
        if self._summary is None:
            self._summary = FunctionAnalyzer(self.binary, self.disasm).analyze()
        return self._summary

    @property
    def functions(self) -> "FunctionCollection":
        """Get all functions from the symbol table."""
        return FunctionCollection(self.binary.functions)

    def get_function(self, address: int) -> Function | None:
        """Get function by address."""
        return self.binary.function_index().by_address(address)

    def get_function_by_name(self, name: str) -> Function | None:
        """Get function by name."""
        return self.binary.function_index().by_name(name)

    def closest_function(self, address: int) -> tuple[Function, int] | None:
        return self.binary.function_index().closest(address)

    def disassemble(self, address: int, count: int = 10) -> list[X86Instruction]:
        """Disassemble instructions at a load address."""
        rva = address - self.binary.base_address
        section = self.binary.section_at_address(rva)
        if section is None or not section.has_file_data:
            raise ValueError(f"No section with file data at address {address:#x}")

        data = self.binary.section_data(section)[rva - section.address :]
        return list(self.disasm.disassemble(data, address, count))

    def disassemble_section(self, section: Section) -> list[X86Instruction]:
        """Disassemble a whole section at its load address."""
        data = self.binary.section_data(section)
        return list(self.disasm.disassemble(data, self.binary.base_address + section.address))

    def disassemble_function(self, func: Function | str) -> list[X86Instruction]:
        if isinstance(func, str):
            found = self.get_function_by_name(func)
            if found is None:
                raise ValueError(f"Function not found: {func}")
            func = found
        return list(self.disasm.disassemble(self.binary.function_data(func), func.address))

    def histogram(self) -> ByteHistogram:
        """Byte histogram of the whole image."""
        return ByteHistogram.from_data(self.binary.data)

    @property
    def entry_point(self) -> int:
        return self.binary.entry_point

    @property
    def segments(self) -> tuple[Segment, ...]:
        return self.binary.segments

    @property
    def sections(self) -> tuple[Section, ...]:
        return self.binary.sections


class FunctionCollection:
    """Collection of functions with convenient access methods."""

    def __init__(self, functions: tuple[Function, ...]) -> None:
        self._functions = functions

    def __iter__(self) -> Iterator[Function]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def __getitem__(self, key: str | int) -> Function:
        """Get function by name or address."""
        if isinstance(key, int):
            for func in self._functions:
                if func.address == key:
                    return func
            raise KeyError(f"No function at address {key:#x}")
        for func in self._functions:
            if func.name == key:
                return func
        raise KeyError(f"No function named {key!r}")

    def __contains__(self, key: str | int) -> bool:
        """Check if function exists."""
        try:
            self[key]
            return True
        except KeyError:
            return False

    @property
    def valid(self) -> list[Function]:
        return [f for f in self._functions if f.is_valid]


def main() -> None:
    """Entry point for CLI."""
    from binlens.cli import main as cli_main

    cli_main()
