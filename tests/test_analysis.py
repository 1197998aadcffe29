"""Tests for function analysis, histograms and hex rows."""

import math
from collections import Counter

import pytest

from binlens.loader import ElfBinary, PeBinary, Function
from binlens.analysis import (
    ByteHistogram,
    FunctionReport,
    AnalysisSummary,
    FunctionAnalyzer,
    hex_rows,
    diff_rows,
    rank_counts,
    count_differences,
)
from binlens.arch.x86.decoder import X86Disassembler


class TestFunctionAnalyzer:
    """Tests for FunctionAnalyzer."""

    @pytest.fixture
    def summary(self, elf64_image):
        binary = ElfBinary.parse(elf64_image)
        return FunctionAnalyzer(binary, X86Disassembler(bits=64)).analyze()

    def test_valid_functions_analyzed(self, summary):
        """Test that only functions with a file range are decoded."""
        assert [r.name for r in summary.reports] == ["main", "helper"]
        assert sorted(f.name for f in summary.skipped) == ["empty", "orphan"]

    def test_mnemonic_counts(self, summary):
        """Test per-function mnemonic counts."""
        main = summary.report_for("main")
        assert main.mnemonic_counts["push"] == 1
        assert main.mnemonic_counts["call"] == 1
        assert main.mnemonic_counts["ret"] == 1
        assert main.mnemonic_counts["int3"] == 0x40 - 10
        assert main.decoded_bytes == 0x40

    def test_call_resolved_to_name(self, summary):
        """Test that direct call targets resolve through the function index."""
        main = summary.report_for("main")
        assert len(main.calls) == 1
        assert main.calls[0].target == 0x401040
        assert main.calls[0].target_name == "helper"
        assert not main.is_leaf
        assert summary.report_for("helper").is_leaf

    def test_aggregate_ordering(self, summary):
        """Test count descending then mnemonic ascending."""
        assert summary.ranked_mnemonics() == [
            ("int3", 54),
            ("ret", 2),
            ("call", 1),
            ("mov", 1),
            ("pop", 1),
            ("push", 1),
            ("xor", 1),
        ]
        assert summary.instruction_count == 61

    def test_call_counts(self, summary):
        """Test aggregated callee counts."""
        assert summary.call_counts() == [("helper", 1)]

    def test_pe_has_nothing_to_analyze(self, pe_image):
        """Test that PE images produce an empty summary."""
        summary = FunctionAnalyzer(PeBinary.parse(pe_image), X86Disassembler()).analyze()
        assert summary.reports == []
        assert summary.ranked_mnemonics() == []

    def test_function_data_rejects_invalid(self, elf64_image):
        """Test that invalid functions have no byte range."""
        binary = ElfBinary.parse(elf64_image)
        with pytest.raises(ValueError):
            binary.function_data(binary.function_index().by_name("orphan"))


class TestRankCounts:
    """Tests for deterministic count ordering."""

    def test_ties_broken_by_name(self):
        """Test that equal counts sort by name."""
        counts = Counter({"mov": 3, "add": 3, "ret": 1, "jmp": 5})
        assert rank_counts(counts) == [("jmp", 5), ("add", 3), ("mov", 3), ("ret", 1)]

    def test_summary_merges_reports(self):
        """Test that summaries add counts across reports."""
        func = Function("f", 0, 1)
        summary = AnalysisSummary(
            reports=[
                FunctionReport(func, mnemonic_counts=Counter({"nop": 2})),
                FunctionReport(func, mnemonic_counts=Counter({"nop": 1, "ret": 1})),
            ]
        )
        assert summary.ranked_mnemonics() == [("nop", 3), ("ret", 1)]


class TestByteHistogram:
    """Tests for ByteHistogram."""

    def test_counts(self):
        """Test byte counting."""
        hist = ByteHistogram.from_data(b"\x00\x00\x01\xff")
        assert len(hist.counts) == 256
        assert hist[0] == 2
        assert hist[0xFF] == 1
        assert hist.total == 4
        assert hist.max_count == 2
        assert hist.distinct == 3

    def test_empty_entropy(self):
        """Test that empty input has zero entropy."""
        hist = ByteHistogram.from_data(b"")
        assert hist.entropy == 0.0
        assert hist.max_count == 0

    def test_uniform_entropy(self):
        """Test that every byte value once gives 8 bits per byte."""
        hist = ByteHistogram.from_data(bytes(range(256)))
        assert math.isclose(hist.entropy, 8.0)

    def test_constant_entropy(self):
        """Test that a single repeated value gives zero entropy."""
        assert ByteHistogram.from_data(b"A" * 100).entropy == 0.0

    def test_two_values(self):
        """Test an even split between two values."""
        assert math.isclose(ByteHistogram.from_data(b"ab" * 10).entropy, 1.0)

    def test_ranked(self):
        """Test ordering by count then byte value."""
        ranked = ByteHistogram.from_data(b"\x05\x03\x03\x05\x01").ranked()
        assert ranked[:3] == [(3, 2), (5, 2), (1, 1)]
        assert ranked[3] == (0, 0)


class TestHexRows:
    """Tests for hex_rows and diff_rows."""

    def test_rows(self):
        """Test splitting into rows with a base offset."""
        rows = list(hex_rows(bytes(range(20)), width=8, base=0x100))
        assert [r.offset for r in rows] == [0x100, 0x108, 0x110]
        assert rows[-1].data == bytes([16, 17, 18, 19])

    def test_row_rendering(self):
        """Test hex and printable columns."""
        row = next(hex_rows(b"AB\x00", width=4))
        assert row.hex(4) == "41 42 00   "
        assert row.ascii() == "AB."
        assert str(row).startswith("00000000  41 42 00")

    def test_invalid_width(self):
        """Test that a non-positive width is rejected."""
        with pytest.raises(ValueError):
            list(hex_rows(b"abc", width=0))

    def test_diff_marks_changes(self):
        """Test per-position change flags."""
        rows = list(diff_rows(b"abcd", b"abXd", width=4))
        assert len(rows) == 1
        assert rows[0].changed == (False, False, True, False)
        assert rows[0].has_changes

    def test_diff_marks_missing_bytes(self):
        """Test that bytes present on one side only count as changed."""
        rows = list(diff_rows(b"abcdef", b"abc", width=4))
        assert rows[0].changed == (False, False, False, True)
        assert rows[1].left == b"ef"
        assert rows[1].right == b""
        assert rows[1].changed == (True, True)

    def test_identical(self):
        """Test that identical input has no changes."""
        assert not any(r.has_changes for r in diff_rows(b"same", b"same"))
        assert count_differences(b"same", b"same") == 0

    def test_count_differences(self):
        """Test counting differing and extra bytes."""
        assert count_differences(b"abcdef", b"abXd") == 3
