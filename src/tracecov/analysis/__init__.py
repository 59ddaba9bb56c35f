"""Static analysis: line classification, blocks and functions.

Usage:
    from tracecov.analysis import analyze

    result = analyze(source_text, "/abs/path/mod.py")
    result.executable_lines     # frozenset of 1-based line numbers
    result.blocks["root"].children
"""

from tracecov.analysis.analyzer import analyze, hash_content
from tracecov.analysis.blocks import link_blocks
from tracecov.analysis.cache import AnalysisCache
from tracecov.analysis.lexical import (
    classify_line,
    classify_line_simple,
    classify_lines,
    split_lines,
)
from tracecov.analysis.models import (
    ROOT_BLOCK_ID,
    AnalysisResult,
    BlockInfo,
    BlockKind,
    FunctionInfo,
    FunctionKind,
    LineClassification,
    LineType,
    MultilineContext,
)

__all__ = [
    # Models
    "ROOT_BLOCK_ID",
    "AnalysisResult",
    "BlockInfo",
    "BlockKind",
    "FunctionInfo",
    "FunctionKind",
    "LineClassification",
    "LineType",
    "MultilineContext",
    # Operations
    "AnalysisCache",
    "analyze",
    "classify_line",
    "classify_line_simple",
    "classify_lines",
    "hash_content",
    "link_blocks",
    "split_lines",
]
