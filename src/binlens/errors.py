"""Error taxonomy for executable loading."""


class LoaderError(ValueError):
    """Base class for every decode failure raised by the loader."""


class FormatUnrecognizedError(LoaderError):
    """Neither the ELF nor the MS-DOS magic matched."""

    def __init__(self, magic: bytes) -> None:
        self.magic = magic
        super().__init__(f"Unrecognized file format (magic {magic.hex(' ') or 'empty'})")


class HeaderError(LoaderError):
    """A header field holds a value the loader cannot interpret."""


class TruncatedError(LoaderError):
    """A declared offset, count or size reaches past the end of the image."""

    def __init__(self, table: str, offset: int, size: int, available: int) -> None:
        self.table = table
        self.offset = offset
        self.size = size
        self.available = available
        super().__init__(
            f"{table}: {size:#x} bytes at offset {offset:#x} "
            f"exceed image size {available:#x}"
        )


class OutOfBoundsError(TruncatedError):
    """A fixed-width field read falls outside the buffer."""

    def __init__(self, offset: int, width: int, available: int) -> None:
        super().__init__(f"u{width * 8} field", offset, width, available)


class MissingTableError(LoaderError):
    """A table the loader looks up by name is absent."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Section {name} not present")


class UnmappedAddressError(LoaderError):
    """No segment covers a virtual address."""

    def __init__(self, address: int, symbol: str | None = None) -> None:
        self.address = address
        self.symbol = symbol
        where = f" (symbol {symbol!r})" if symbol else ""
        super().__init__(f"Address {address:#x}{where} is not mapped by any segment")


class NameResolutionError(LoaderError):
    """A string-table scan hit the end of its table without a NUL."""

    def __init__(self, table: str, offset: int) -> None:
        self.table = table
        self.offset = offset
        super().__init__(f"{table}: unterminated string at offset {offset:#x}")
