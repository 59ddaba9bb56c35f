"""Static analysis data model.

An ``AnalysisResult`` is the static half of coverage: which lines can run,
how control-flow blocks nest, and where functions begin. It is produced once
per (file, content) and never mutated afterwards; the coverage store copies
what it needs into its own records.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import Enum

from tracecov.core.errors import AnalysisError

ROOT_BLOCK_ID = "root"


class LineType(Enum):
    """What a source line is, independent of whether it ran."""

    CODE = "code"
    COMMENT = "comment"  # '#' comments, docstrings and standalone strings
    BLANK = "blank"
    STRUCTURAL = "structural"  # else:/try:/finally:, closing brackets, declarations
    STRING = "string"  # interior/closing line of a multi-line string in code
    CONTINUATION = "continuation"  # later line of a multi-line statement


class BlockKind(Enum):
    """Kinds of control-flow region."""

    ROOT = "root"
    FUNCTION = "function"
    CLASS = "class"
    IF = "if"
    FOR = "for"
    WHILE = "while"
    WITH = "with"
    TRY = "try"
    MATCH = "match"


class FunctionKind(Enum):
    GLOBAL = "global"
    LOCAL = "local"
    METHOD = "method"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True, slots=True)
class MultilineContext:
    """Lexical state carried from one line to the next.

    A new instance is returned for every classified line; instances are
    never shared between lines, so reclassifying a line cannot corrupt the
    context of another.
    """

    in_multiline_comment: bool = False  # inside a standalone triple-quoted string
    in_multiline_string: bool = False  # inside a triple-quoted string that is part of code
    delimiter: str | None = None  # ''' or """
    bracket_depth: int = 0
    continued: bool = False  # previous line ended with a backslash

    @property
    def inside_triple_quote(self) -> bool:
        return self.in_multiline_comment or self.in_multiline_string


@dataclass(frozen=True, slots=True)
class LineClassification:
    """Classification of a single line, with the reason it was chosen."""

    line: int
    line_type: LineType
    executable: bool
    reason: str


@dataclass(slots=True)
class BlockInfo:
    """A control-flow region as discovered by the analyzer.

    ``entry_line`` is the line whose execution means the block was entered:
    the header for compound statements, the first body statement for
    branches and bodies. It is None when no line identifies entry on its
    own (e.g. the body of ``if x: y`` shares the header's line).
    """

    block_id: str
    kind: BlockKind
    start_line: int
    end_line: int
    parent_id: str | None = ROOT_BLOCK_ID
    label: str | None = None
    entry_line: int | None = None
    children: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FunctionInfo:
    """A function, method or lambda.

    ``start_line`` is the first decorator line if any, which is also what
    the interpreter reports as the code object's first line.
    """

    function_id: str
    name: str | None
    kind: FunctionKind
    start_line: int
    def_line: int
    end_line: int
    body_line: int | None
    block_id: str | None = None


@dataclass(slots=True)
class AnalysisResult:
    """Everything the analyzer knows about one file's content."""

    path: str
    content_hash: str
    line_count: int
    lines: dict[int, LineClassification] = field(default_factory=dict)
    blocks: dict[str, BlockInfo] = field(default_factory=dict)
    functions: dict[str, FunctionInfo] = field(default_factory=dict)
    tree: ast.Module | None = None
    degraded: bool = False
    error: AnalysisError | None = None
    inconsistencies: int = 0

    @property
    def executable_lines(self) -> frozenset[int]:
        return frozenset(n for n, c in self.lines.items() if c.executable)

    def is_line_executable(self, line: int) -> bool:
        classification = self.lines.get(line)
        return classification is not None and classification.executable

    def line_type(self, line: int) -> LineType | None:
        classification = self.lines.get(line)
        return classification.line_type if classification else None

    def blocks_for_line(self, line: int) -> list[BlockInfo]:
        """Blocks whose span contains *line*, outermost first."""
        found = [
            b
            for b in self.blocks.values()
            if b.kind is not BlockKind.ROOT and b.start_line <= line <= b.end_line
        ]
        found.sort(key=lambda b: (b.start_line, -b.end_line))
        return found

    def function_for_line(self, line: int) -> FunctionInfo | None:
        """Innermost function whose span contains *line*."""
        best: FunctionInfo | None = None
        for fn in self.functions.values():
            if fn.start_line <= line <= fn.end_line and (
                best is None or fn.start_line >= best.start_line
            ):
                best = fn
        return best
