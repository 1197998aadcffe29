"""Per-function instruction analysis."""

import logging
from typing import TYPE_CHECKING
from collections import Counter
from dataclasses import field, dataclass

from binlens.errors import LoaderError
from binlens.loader.symbols import Function
from binlens.arch.x86.instructions import X86Instruction

if TYPE_CHECKING:
    from binlens.loader.image import ExecutableImage
    from binlens.arch.x86.decoder import X86Disassembler

logger = logging.getLogger(__name__)


def rank_counts(counts: Counter[str]) -> list[tuple[str, int]]:
    """Order counts by count descending, ties by name ascending."""
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


@dataclass
class CallSite:
    """A direct call found inside a function."""

    address: int
    target: int
    target_name: str | None = None

    def __str__(self) -> str:
        if self.target_name:
            return f"{self.address:#x} -> {self.target_name}"
        return f"{self.address:#x} -> {self.target:#x}"


@dataclass
class FunctionReport:
    """Decoded instructions and derived counts for one function."""

    function: Function
    instructions: list[X86Instruction] = field(default_factory=list)
    mnemonic_counts: Counter[str] = field(default_factory=Counter)
    calls: list[CallSite] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def instruction_count(self) -> int:
        return len(self.instructions)

    @property
    def is_leaf(self) -> bool:
        """No calls to other functions."""
        return not self.calls

    @property
    def decoded_bytes(self) -> int:
        return sum(insn.size for insn in self.instructions)

    def ranked_mnemonics(self) -> list[tuple[str, int]]:
        return rank_counts(self.mnemonic_counts)

    def __repr__(self) -> str:
        return f"FunctionReport({self.name!r}, {self.instruction_count} instructions)"


@dataclass
class AnalysisSummary:
    """Aggregate of all function reports."""

    reports: list[FunctionReport] = field(default_factory=list)
    skipped: list[Function] = field(default_factory=list)

    @property
    def mnemonic_counts(self) -> Counter[str]:
        total: Counter[str] = Counter()
        for report in self.reports:
            total.update(report.mnemonic_counts)
        return total

    @property
    def instruction_count(self) -> int:
        return sum(r.instruction_count for r in self.reports)

    def ranked_mnemonics(self) -> list[tuple[str, int]]:
        """Aggregate mnemonic counts, count descending then mnemonic ascending."""
        return rank_counts(self.mnemonic_counts)

    def call_counts(self) -> list[tuple[str, int]]:
        """How often each resolved callee is called, same ordering."""
        counts: Counter[str] = Counter()
        for report in self.reports:
            for call in report.calls:
                counts[call.target_name or f"{call.target:#x}"] += 1
        return rank_counts(counts)

    def report_for(self, name: str) -> FunctionReport | None:
        for report in self.reports:
            if report.name == name:
                return report
        return None


class FunctionAnalyzer:
    """Decodes every valid function of a binary and summarizes it."""

    def __init__(self, binary: "ExecutableImage", disassembler: "X86Disassembler") -> None:
        self.binary = binary
        self.disasm = disassembler
        self.index = binary.function_index()

    def analyze(self) -> AnalysisSummary:
        """Run the analysis over the binary's function table in table order."""
        summary = AnalysisSummary()
        for func in self.binary.functions:
            if not func.is_valid:
                reason = func.error or "zero size"
                logger.info("Skipping function %r: %s", func.name, reason)
                summary.skipped.append(func)
                continue

            try:
                summary.reports.append(self.analyze_function(func))
            except LoaderError as e:
                logger.warning("Skipping function %r: %s", func.name, e)
                summary.skipped.append(func)

        logger.debug(
            "Analyzed %d functions, skipped %d", len(summary.reports), len(summary.skipped)
        )
        return summary

    def analyze_function(self, func: Function) -> FunctionReport:
        """Analyze a single function."""
        data = self.binary.function_data(func)
        report = FunctionReport(function=func)

        for insn in self.disasm.disassemble(data, func.address):
            report.instructions.append(insn)
            report.mnemonic_counts[insn.mnemonic] += 1
            if insn.is_call and insn.branch_target is not None:
                callee = self.index.by_address(insn.branch_target)
                report.calls.append(
                    CallSite(
                        address=insn.address,
                        target=insn.branch_target,
                        target_name=callee.name if callee else None,
                    )
                )

        if report.decoded_bytes < func.size:
            logger.debug(
                "%s: decoded %d of %d bytes", func.name, report.decoded_bytes, func.size
            )
        return report
