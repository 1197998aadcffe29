"""x86 architecture support."""

from binlens.arch.x86.decoder import X86Disassembler
from binlens.arch.x86.instructions import X86Instruction, InstructionGroup

__all__ = [
    "InstructionGroup",
    "X86Disassembler",
    "X86Instruction",
]
