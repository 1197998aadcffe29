"""x86 instruction decoder using capstone."""

from collections.abc import Iterator

import capstone
from capstone import x86_const

from binlens.arch.x86.instructions import X86Instruction, InstructionGroup

_MODES = {16: capstone.CS_MODE_16, 32: capstone.CS_MODE_32, 64: capstone.CS_MODE_64}

_SYNTAX = {
    "intel": capstone.CS_OPT_SYNTAX_INTEL,
    "att": capstone.CS_OPT_SYNTAX_ATT,
}
SYNTAXES = tuple(_SYNTAX)

_GROUPS = (
    (capstone.CS_GRP_CALL, InstructionGroup.CALL),
    (capstone.CS_GRP_JUMP, InstructionGroup.JUMP),
    (capstone.CS_GRP_RET, InstructionGroup.RETURN),
    (capstone.CS_GRP_INT, InstructionGroup.INTERRUPT),
    (capstone.CS_GRP_BRANCH_RELATIVE, InstructionGroup.BRANCH_RELATIVE),
)

# Longest legal x86 encoding
MAX_INSTRUCTION_SIZE = 15


class X86Disassembler:
    """x86 / x86-64 disassembler wrapper around capstone."""

    def __init__(self, bits: int = 64, syntax: str = "intel") -> None:
        if bits not in _MODES:
            raise ValueError(f"Unsupported x86 mode: {bits}-bit")
        if syntax not in _SYNTAX:
            raise ValueError(f"Unknown syntax {syntax!r}, expected one of {sorted(_SYNTAX)}")
        self.bits = bits
        self.syntax = syntax
        self._cs = capstone.Cs(capstone.CS_ARCH_X86, _MODES[bits])
        self._cs.detail = True
        self._cs.syntax = _SYNTAX[syntax]

    def disassemble_one(self, data: bytes, address: int) -> X86Instruction | None:
        """Disassemble a single instruction."""
        for insn in self._cs.disasm(data[:MAX_INSTRUCTION_SIZE], address, count=1):
            return self._convert_instruction(insn)
        return None

    def disassemble(self, data: bytes, address: int, count: int = 0) -> Iterator[X86Instruction]:
        """Disassemble a sequence of instructions.

        Stops at the first byte sequence capstone cannot decode.
        """
        for insn in self._cs.disasm(data, address, count=count):
            yield self._convert_instruction(insn)

    def disassemble_range(self, data: bytes, address: int) -> Iterator[X86Instruction]:
        """Disassemble all of data, stepping over undecodable bytes one at a time."""
        offset = 0
        while offset < len(data):
            insn = self.disassemble_one(data[offset:], address + offset)
            if insn is None:
                offset += 1
                continue
            yield insn
            offset += insn.size

    def _convert_instruction(self, cs_insn: capstone.CsInsn) -> X86Instruction:
        """Convert capstone instruction to our model."""
        groups = [group for cs_group, group in _GROUPS if cs_insn.group(cs_group)]
        if not groups:
            groups.append(InstructionGroup.UNKNOWN)

        branch_target = None
        if InstructionGroup.CALL in groups or InstructionGroup.JUMP in groups:
            branch_target = self._extract_branch_target(cs_insn)

        return X86Instruction(
            address=cs_insn.address,
            size=cs_insn.size,
            mnemonic=cs_insn.mnemonic,
            op_str=cs_insn.op_str,
            bytes=bytes(cs_insn.bytes),
            groups=groups,
            branch_target=branch_target,
        )

    def _extract_branch_target(self, insn: capstone.CsInsn) -> int | None:
        """Extract a direct branch target if the operand is an immediate."""
        for op in insn.operands:
            if op.type == x86_const.X86_OP_IMM:
                return op.imm
        return None
