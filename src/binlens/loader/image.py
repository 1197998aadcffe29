"""Query surface shared by every loaded executable image."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar
from dataclasses import field, dataclass

from binlens.errors import LoaderError
from binlens.loader.ident import BinaryFormat
from binlens.loader.reader import check_range
from binlens.loader.symbols import Function, FunctionIndex
from binlens.loader.segments import Section, Segment


@dataclass
class ExecutableImage(ABC):
    """A parsed executable, read-only once parse() returns.

    ELF and PE loaders subclass this and must provide bits, entry_point and
    header_fields(); callers only rely on the attributes and methods defined
    here.
    """

    path: Path
    segments: tuple[Segment, ...] = ()
    sections: tuple[Section, ...] = ()
    functions: tuple[Function, ...] = ()
    errors: tuple[LoaderError, ...] = ()
    _raw_data: bytes = field(default=b"", repr=False)

    format: ClassVar[BinaryFormat]

    @property
    def data(self) -> bytes:
        return self._raw_data

    @property
    @abstractmethod
    def bits(self) -> int: ...

    @property
    @abstractmethod
    def entry_point(self) -> int: ...

    @property
    def base_address(self) -> int:
        """Value added to section addresses to get load addresses."""
        return 0

    @abstractmethod
    def header_fields(self) -> list[tuple[str, str]]:
        """Ordered (name, value) pairs describing the file header(s)."""

    # Public API methods

    def get_section(self, name: str) -> Section | None:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def executable_sections(self) -> list[Section]:
        """Sections whose flags mark them executable."""
        return [s for s in self.sections if s.executable and s.has_file_data]

    def section_at_address(self, addr: int) -> Section | None:
        """Find the section mapped at addr; sections at address 0 are not mapped."""
        for section in self.sections:
            if section.address and section.size and section.contains_address(addr):
                return section
        return None

    def read(self, offset: int, size: int, table: str = "image") -> bytes:
        """Read bytes at a file offset."""
        check_range(self._raw_data, offset, size, table)
        return self._raw_data[offset : offset + size]

    def segment_data(self, segment: Segment) -> bytes:
        return self.read(segment.offset, segment.filesz, f"segment {segment.kind_name}")

    def section_data(self, section: Section) -> bytes:
        if not section.has_file_data:
            return b""
        return self.read(section.offset, section.size, f"section {section.name or '<unnamed>'}")

    def function_data(self, function: Function) -> bytes:
        if not function.is_valid:
            raise ValueError(f"Function {function.name!r} has no valid file range")
        return self.read(function.file_offset, function.size, f"function {function.name}")

    def function_index(self) -> FunctionIndex:
        return FunctionIndex(self.functions)

    @property
    def valid_functions(self) -> list[Function]:
        return [f for f in self.functions if f.is_valid]
