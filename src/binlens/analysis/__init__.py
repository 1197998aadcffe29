"""Static analysis module."""

from binlens.analysis.hexdump import HexRow, DiffRow, hex_rows, diff_rows, count_differences
from binlens.analysis.functions import (
    CallSite,
    FunctionReport,
    AnalysisSummary,
    FunctionAnalyzer,
    rank_counts,
)
from binlens.analysis.histogram import ByteHistogram

__all__ = [
    "AnalysisSummary",
    "ByteHistogram",
    "CallSite",
    "DiffRow",
    "FunctionAnalyzer",
    "FunctionReport",
    "HexRow",
    "count_differences",
    "diff_rows",
    "hex_rows",
    "rank_counts",
]
