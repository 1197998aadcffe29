"""Synthetic ELF and PE images for the test suite."""

import struct

import pytest

# Default layout shared by the ELF images:
#   LOAD  offset 0x1000  vaddr 0x400000  filesz 0x2000
#   LOAD  offset 0x3000  vaddr 0x402000  filesz 0x1000
LOAD_SEGMENTS = (
    # (type, flags, offset, vaddr, filesz, memsz, align)
    (1, 0x5, 0x1000, 0x400000, 0x2000, 0x2000, 0x1000),
    (1, 0x6, 0x3000, 0x402000, 0x1000, 0x1200, 0x1000),
)

TEXT_ADDR = 0x401000
TEXT_OFFSET = 0x2000
TEXT_SIZE = 0x60
DATA_ADDR = 0x402000
DATA_OFFSET = 0x3000

# push ebp/rbp; mov ebp, esp; call 0x401040; pop ebp/rbp; ret
MAIN_CODE = bytes([0x55, 0x89, 0xE5, 0xE8, 0x38, 0x00, 0x00, 0x00, 0x5D, 0xC3])
MAIN_SIZE = 0x40
# xor eax, eax; ret
HELPER_CODE = bytes([0x31, 0xC0, 0xC3])
HELPER_ADDR = 0x401040

STT_OBJECT = 1
STT_FUNC = 2
STB_GLOBAL = 1

DEFAULT_SYMBOLS = (
    # (name, info, value, size)
    ("main", (STB_GLOBAL << 4) | STT_FUNC, TEXT_ADDR, MAIN_SIZE),
    ("counter", (STB_GLOBAL << 4) | STT_OBJECT, DATA_ADDR + 0x10, 8),
    ("helper", STT_FUNC, HELPER_ADDR, len(HELPER_CODE)),
    ("orphan", (STB_GLOBAL << 4) | STT_FUNC, 0x500000, 0x10),
    ("empty", (STB_GLOBAL << 4) | STT_FUNC, 0x401050, 0),
)

ELF_FILE_SIZE = 0x4000
SYMTAB_OFFSET = 0x200
STRTAB_OFFSET = 0x300
SHSTRTAB_OFFSET = 0x380
SHDR_OFFSET = 0x400

SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHT_NOBITS = 8
SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4


def _string_table(names):
    """Build a string table; returns (bytes, {name: offset})."""
    blob = bytearray(b"\x00")
    offsets = {"": 0}
    for name in names:
        if name not in offsets:
            offsets[name] = len(blob)
            blob += name.encode() + b"\x00"
    return bytes(blob), offsets


def build_elf(
    bits=64,
    endian="<",
    segments=LOAD_SEGMENTS,
    symbols=DEFAULT_SYMBOLS,
    omit=(),
    shstrndx=None,
    e_type=2,
    machine=None,
):
    """Build a small but complete ELF executable image.

    ``omit`` drops sections by name; ``shstrndx`` overrides e_shstrndx.
    """
    is64 = bits == 64
    ehsize = 64 if is64 else 52
    phentsize = 56 if is64 else 32
    shentsize = 64 if is64 else 40
    symentsize = 24 if is64 else 16
    if machine is None:
        machine = 62 if is64 else 3

    data = bytearray(ELF_FILE_SIZE)

    # Code
    data[TEXT_OFFSET : TEXT_OFFSET + MAIN_SIZE] = MAIN_CODE + b"\xcc" * (MAIN_SIZE - len(MAIN_CODE))
    helper_off = TEXT_OFFSET + (HELPER_ADDR - TEXT_ADDR)
    data[helper_off : helper_off + len(HELPER_CODE)] = HELPER_CODE
    data[DATA_OFFSET : DATA_OFFSET + 16] = b"binlens-data\x00\x00\x00\x00"

    # Symbol and string tables
    strtab, name_offsets = _string_table(name for name, *_ in symbols)
    symtab = bytearray(symentsize)  # index 0 is the null symbol
    for name, info, value, size in symbols:
        if is64:
            symtab += struct.pack(endian + "IBBHQQ", name_offsets[name], info, 0, 1, value, size)
        else:
            symtab += struct.pack(endian + "IIIBBH", name_offsets[name], value, size, info, 0, 1)
    data[SYMTAB_OFFSET : SYMTAB_OFFSET + len(symtab)] = symtab
    data[STRTAB_OFFSET : STRTAB_OFFSET + len(strtab)] = strtab

    # (name, type, flags, addr, offset, size, link, info, align, entsize)
    sections = [
        ("", 0, 0, 0, 0, 0, 0, 0, 0, 0),
        (".text", SHT_PROGBITS, SHF_ALLOC | SHF_EXECINSTR, TEXT_ADDR, TEXT_OFFSET, TEXT_SIZE, 0, 0, 16, 0),
        (".data", SHT_PROGBITS, SHF_ALLOC | SHF_WRITE, DATA_ADDR, DATA_OFFSET, 0x100, 0, 0, 8, 0),
        (".bss", SHT_NOBITS, SHF_ALLOC | SHF_WRITE, DATA_ADDR + 0x100, DATA_OFFSET + 0x100, 0x80, 0, 0, 8, 0),
        (".symtab", SHT_SYMTAB, 0, 0, SYMTAB_OFFSET, len(symtab), 0, 1, 8, symentsize),
        (".strtab", SHT_STRTAB, 0, 0, STRTAB_OFFSET, len(strtab), 0, 0, 1, 0),
        (".shstrtab", SHT_STRTAB, 0, 0, SHSTRTAB_OFFSET, 0, 0, 0, 1, 0),
    ]
    sections = [s for s in sections if s[0] not in omit]

    shstrtab, sh_names = _string_table(s[0] for s in sections)
    data[SHSTRTAB_OFFSET : SHSTRTAB_OFFSET + len(shstrtab)] = shstrtab

    shdrs = bytearray()
    for name, sh_type, flags, addr, offset, size, link, info, align, entsize in sections:
        if name == ".shstrtab":
            size = len(shstrtab)
        if name == ".symtab" and ".strtab" not in omit:
            link = [s[0] for s in sections].index(".strtab")
        fmt = "IIQQQQIIQQ" if is64 else "IIIIIIIIII"
        shdrs += struct.pack(
            endian + fmt, sh_names[name], sh_type, flags, addr, offset, size, link, info, align, entsize
        )
    data[SHDR_OFFSET : SHDR_OFFSET + len(shdrs)] = shdrs

    phdrs = bytearray()
    for p_type, flags, offset, vaddr, filesz, memsz, align in segments:
        if is64:
            phdrs += struct.pack(endian + "IIQQQQQQ", p_type, flags, offset, vaddr, vaddr, filesz, memsz, align)
        else:
            phdrs += struct.pack(endian + "IIIIIIII", p_type, offset, vaddr, vaddr, filesz, memsz, flags, align)
    data[ehsize : ehsize + len(phdrs)] = phdrs

    if shstrndx is None:
        names = [s[0] for s in sections]
        shstrndx = names.index(".shstrtab") if ".shstrtab" in names else 0

    ident = b"\x7fELF" + bytes([2 if is64 else 1, 1 if endian == "<" else 2, 1, 0, 0]) + bytes(7)
    header_fmt = "HHIQQQIHHHHHH" if is64 else "HHIIIIIHHHHHH"
    header = struct.pack(
        endian + header_fmt,
        e_type,
        machine,
        1,
        TEXT_ADDR,
        ehsize,
        SHDR_OFFSET,
        0,
        ehsize,
        phentsize,
        len(segments),
        shentsize,
        len(sections),
        shstrndx,
    )
    data[0:16] = ident
    data[16 : 16 + len(header)] = header
    return bytes(data)


PE_LFANEW = 0x80
PE_IMAGE_BASE = 0x140000000
PE_TEXT_RVA = 0x1000
PE_TEXT_OFFSET = 0x400
PE_DATA_RVA = 0x2000
PE_DATA_OFFSET = 0x600
PE_FILE_SIZE = 0x800
# sub rsp, 0x28; xor ecx, ecx; call 0x140001010; add rsp, 0x28; ret; ret
PE_CODE = bytes(
    [0x48, 0x83, 0xEC, 0x28, 0x31, 0xC9, 0xE8, 0x05, 0x00, 0x00, 0x00, 0x48, 0x83, 0xC4, 0x28, 0xC3, 0xC3]
)


def build_pe(bits=64, lfanew=PE_LFANEW, size_of_optional_header=None, signature=b"PE\x00\x00"):
    """Build a minimal PE32 or PE32+ image with .text and .data sections."""
    data = bytearray(PE_FILE_SIZE)

    dos = bytearray(64)
    dos[0:2] = b"MZ"
    struct.pack_into("<H", dos, 2, 0x90)
    struct.pack_into("<I", dos, 0x3C, lfanew)
    data[0:64] = dos

    if bits == 64:
        optional = struct.pack(
            "<HBBIIIIIQIIHHHHHHIIIIHHQQQQII",
            0x20B, 14, 0, 0x200, 0x200, 0, PE_TEXT_RVA, PE_TEXT_RVA,
            PE_IMAGE_BASE, 0x1000, 0x200, 6, 0, 0, 0, 6, 0, 0, 0x3000, 0x400, 0,
            3, 0x8160, 0x100000, 0x1000, 0x100000, 0x1000, 0, 16,
        )
        machine = 0x8664
    else:
        optional = struct.pack(
            "<HBBIIIIIIIIIHHHHHHIIIIHHIIIIII",
            0x10B, 14, 0, 0x200, 0x200, 0, PE_TEXT_RVA, PE_TEXT_RVA, PE_DATA_RVA,
            0x400000, 0x1000, 0x200, 6, 0, 0, 0, 6, 0, 0, 0x3000, 0x400, 0,
            2, 0x8140, 0x100000, 0x1000, 0x100000, 0x1000, 0, 16,
        )
        machine = 0x14C
    # Data directories: import table at the start of .data
    directories = bytearray(16 * 8)
    struct.pack_into("<II", directories, 8, PE_DATA_RVA, 0x28)
    optional += bytes(directories)
    if size_of_optional_header is None:
        size_of_optional_header = len(optional)

    sections = [
        (b".text", len(PE_CODE), PE_TEXT_RVA, 0x200, PE_TEXT_OFFSET, 0x60000020),
        (b".data", 0x40, PE_DATA_RVA, 0x200, PE_DATA_OFFSET, 0xC0000040),
    ]
    file_header = struct.pack("<HHIIIHH", machine, len(sections), 0x5F000000, 0, 0, size_of_optional_header, 0x22)

    nt = bytearray(signature + file_header + optional)
    for name, vsize, rva, raw_size, raw_ptr, characteristics in sections:
        nt += struct.pack("<8sIIIIIIHHI", name, vsize, rva, raw_size, raw_ptr, 0, 0, 0, 0, characteristics)

    if lfanew + len(nt) <= PE_FILE_SIZE:
        data[lfanew : lfanew + len(nt)] = nt
    data[PE_TEXT_OFFSET : PE_TEXT_OFFSET + len(PE_CODE)] = PE_CODE
    data[PE_DATA_OFFSET : PE_DATA_OFFSET + 12] = b"hello, world"
    return bytes(data)


@pytest.fixture
def elf_builder():
    """Factory for ELF images with overridable layout."""
    return build_elf


@pytest.fixture
def pe_builder():
    """Factory for PE images with overridable headers."""
    return build_pe


@pytest.fixture
def elf64_image():
    return build_elf(bits=64)


@pytest.fixture
def elf32_image():
    return build_elf(bits=32)


@pytest.fixture
def pe_image():
    return build_pe(bits=64)


@pytest.fixture
def elf64_file(tmp_path, elf64_image):
    path = tmp_path / "sample.elf"
    path.write_bytes(elf64_image)
    return path


@pytest.fixture
def pe_file(tmp_path, pe_image):
    path = tmp_path / "sample.exe"
    path.write_bytes(pe_image)
    return path
