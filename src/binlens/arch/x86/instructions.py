"""x86 instruction model."""

from enum import IntEnum, auto
from dataclasses import field, dataclass


class InstructionGroup(IntEnum):
    """Instruction classification groups."""

    UNKNOWN = auto()
    CALL = auto()
    JUMP = auto()
    RETURN = auto()
    INTERRUPT = auto()
    BRANCH_RELATIVE = auto()


@dataclass
class X86Instruction:
    """Represents a decoded x86 instruction."""

    address: int
    size: int
    mnemonic: str
    op_str: str
    bytes: bytes
    groups: list[InstructionGroup] = field(default_factory=list)
    branch_target: int | None = None

    def __str__(self) -> str:
        if self.op_str:
            return f"{self.mnemonic} {self.op_str}"
        return self.mnemonic

    def __repr__(self) -> str:
        return f"X86Instruction({self.address:#x}: {self})"

    @property
    def next_address(self) -> int:
        """Address of the following instruction."""
        return self.address + self.size

    @property
    def is_call(self) -> bool:
        return InstructionGroup.CALL in self.groups

    @property
    def is_jump(self) -> bool:
        return InstructionGroup.JUMP in self.groups

    @property
    def is_return(self) -> bool:
        return InstructionGroup.RETURN in self.groups

    @property
    def is_unconditional_jump(self) -> bool:
        return self.mnemonic == "jmp"

    @property
    def is_terminator(self) -> bool:
        """Does this instruction end straight-line execution?"""
        return self.is_return or self.is_unconditional_jump

    def format_with_bytes(self) -> str:
        """Format instruction with hex bytes."""
        hex_bytes = " ".join(f"{b:02x}" for b in self.bytes)
        return f"{self.address:016x}  {hex_bytes:<30}  {self}"
