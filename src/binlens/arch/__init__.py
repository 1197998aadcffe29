"""Architecture-specific modules."""

from binlens.arch.x86 import X86Instruction, X86Disassembler

__all__ = [
    "X86Disassembler",
    "X86Instruction",
]
