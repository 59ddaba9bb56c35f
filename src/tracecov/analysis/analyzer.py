"""Static analyzer: executable lines, blocks and functions from source text.

``analyze`` never raises. It parses with ``ast`` and walks the statements
in source order, building three things in one structural pass:

- a code map assigning each line a ``LineType`` and executability;
- a block table of control-flow regions with parent links;
- a function table keyed by ``"name:def_line"``.

If the file does not parse, the lexical classifier takes over for the whole
file. If the walk runs past ``timeout_sec``, lines already walked keep
their AST classification and the remainder is classified lexically. Either
way the result is marked ``degraded``.

Executability, highest priority first:
1. the AST code map (statement starts, docstrings, except/case clauses);
2. blank lines;
3. comments, including lines inside docstrings and standalone strings;
4. the first line of a multi-line string statement is executable, its
   interior and closing lines are not;
5. structural keywords (else/try/finally, closing brackets) follow the
   ``structural_keywords_executable`` policy;
6. any other line holding a statement is executable.
"""

from __future__ import annotations

import ast
import hashlib
import time
from collections.abc import Sequence

from tracecov.analysis.blocks import link_blocks, make_root
from tracecov.analysis.lexical import classify_lines, is_executable_type, split_lines
from tracecov.analysis.models import (
    ROOT_BLOCK_ID,
    AnalysisResult,
    BlockInfo,
    BlockKind,
    FunctionInfo,
    FunctionKind,
    LineClassification,
    LineType,
)
from tracecov.config.models import AnalysisConfig
from tracecov.core.errors import AnalysisError
from tracecov.core.logging import get_logger

log = get_logger("analysis")

_TRY_TYPES: tuple[type[ast.stmt], ...] = (ast.Try,) + (
    (ast.TryStar,) if hasattr(ast, "TryStar") else ()
)
_FUNCTION_TYPES = (ast.FunctionDef, ast.AsyncFunctionDef)
_FOR_TYPES = (ast.For, ast.AsyncFor)
_WITH_TYPES = (ast.With, ast.AsyncWith)

# Code map priorities: a higher value wins when two rules claim a line.
_P_SPAN = 1
_P_STRING = 2
_P_STRUCTURAL = 3
_P_START = 4


def hash_content(source_text: str) -> str:
    return hashlib.sha256(source_text.encode("utf-8", "surrogatepass")).hexdigest()


def _is_bare_string(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


class _AnalysisTimeout(Exception):
    def __init__(self, line: int) -> None:
        super().__init__(line)
        self.line = line


class _CodeMapBuilder:
    """Single structural pass over a module's statements."""

    def __init__(
        self,
        path: str,
        lines: Sequence[str],
        lexical: Sequence[LineClassification],
        deadline: float,
    ) -> None:
        self.path = path
        self.lines = lines
        self.lexical = lexical
        self.deadline = deadline
        self.codes: dict[int, tuple[int, LineType, str]] = {}
        self.blocks: dict[str, BlockInfo] = {ROOT_BLOCK_ID: make_root(len(lines))}
        self.functions: dict[str, FunctionInfo] = {}
        self._scopes: list[str] = ["module"]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _tick(self, node: ast.AST) -> None:
        if time.monotonic() > self.deadline:
            raise _AnalysisTimeout(getattr(node, "lineno", 1))

    def _set(self, line: int, priority: int, line_type: LineType, reason: str) -> None:
        current = self.codes.get(line)
        if current is None or priority > current[0]:
            self.codes[line] = (priority, line_type, reason)

    def _mark_span(self, first: int, last: int) -> None:
        """Non-start lines of a statement: keep strings/comments, demote code."""
        for line in range(first, last + 1):
            lex = self.lexical[line - 1].line_type if line <= len(self.lexical) else None
            if lex in (LineType.BLANK, LineType.COMMENT, LineType.STRING, LineType.STRUCTURAL):
                self._set(line, _P_SPAN, lex, f"ast: {lex.value} within statement")
            else:
                self._set(line, _P_SPAN, LineType.CONTINUATION, "ast: continuation of statement")

    def _line_text(self, line: int) -> str:
        return self.lines[line - 1] if 0 < line <= len(self.lines) else ""

    def _find_keyword_line(self, first: int, last: int, keyword: str) -> int | None:
        for line in range(first, last + 1):
            stripped = self._line_text(line).lstrip()
            if stripped.startswith(keyword) and stripped[len(keyword) : len(keyword) + 1] in (
                ":",
                " ",
                "\t",
            ):
                return line
        return None

    def _unique_id(self, base: str) -> str:
        if base not in self.blocks:
            return base
        n = 2
        while f"{base}#{n}" in self.blocks:
            n += 1
        return f"{base}#{n}"

    def _add_block(
        self,
        kind: BlockKind,
        start: int,
        end: int,
        parent: str,
        *,
        label: str | None = None,
        entry: int | None = None,
    ) -> str:
        base = f"{kind.value}:{start}" if label is None else f"{kind.value}:{start}:{label}"
        block_id = self._unique_id(base)
        self.blocks[block_id] = BlockInfo(
            block_id=block_id,
            kind=kind,
            start_line=start,
            end_line=end,
            parent_id=parent,
            label=label,
            entry_line=entry,
        )
        return block_id

    def _stmt_line(self, node: ast.stmt) -> int:
        decorators = getattr(node, "decorator_list", None)
        if decorators:
            return min(node.lineno, *(d.lineno for d in decorators))
        return node.lineno

    def _entry(self, body: Sequence[ast.stmt], header_line: int | None) -> int | None:
        """First line that fires when *body* is entered, if distinct from the header."""
        for stmt in body:
            if _is_bare_string(stmt) or isinstance(stmt, (ast.Global, ast.Nonlocal)):
                continue
            if isinstance(stmt, _TRY_TYPES):
                line = self._entry(stmt.body, header_line)
            else:
                line = self._stmt_line(stmt)
            if line is None or line == header_line:
                return None
            return line
        return None

    def _function_kind(self) -> FunctionKind:
        scope = self._scopes[-1]
        if scope == "class":
            return FunctionKind.METHOD
        if scope == "function":
            return FunctionKind.LOCAL
        return FunctionKind.GLOBAL

    def _add_function(self, info: FunctionInfo) -> None:
        function_id = info.function_id
        n = 2
        while function_id in self.functions:
            function_id = f"{info.function_id}#{n}"
            n += 1
        if function_id != info.function_id:
            info = FunctionInfo(
                function_id=function_id,
                name=info.name,
                kind=info.kind,
                start_line=info.start_line,
                def_line=info.def_line,
                end_line=info.end_line,
                body_line=info.body_line,
                block_id=info.block_id,
            )
        self.functions[function_id] = info

    def _collect_lambdas(self, node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, (ast.stmt, ast.excepthandler, ast.match_case)):
                continue
            for sub in ast.walk(child):
                if isinstance(sub, ast.Lambda):
                    self._add_function(
                        FunctionInfo(
                            function_id=f"<lambda>:{sub.lineno}",
                            name=None,
                            kind=FunctionKind.ANONYMOUS,
                            start_line=sub.lineno,
                            def_line=sub.lineno,
                            end_line=sub.end_lineno or sub.lineno,
                            body_line=sub.body.lineno,
                        )
                    )

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def visit_module(self, tree: ast.Module) -> None:
        self._visit_body(tree.body, ROOT_BLOCK_ID)

    def _visit_body(self, body: Sequence[ast.stmt], parent: str) -> None:
        for stmt in body:
            self._visit_stmt(stmt, parent)

    def _visit_stmt(self, node: ast.stmt, parent: str) -> None:
        self._tick(node)
        end = node.end_lineno or node.lineno

        if _is_bare_string(node):
            for line in range(node.lineno, end + 1):
                self._set(line, _P_STRING, LineType.COMMENT, "ast: docstring or standalone string")
            return

        if isinstance(node, _TRY_TYPES):
            self._set(node.lineno, _P_STRUCTURAL, LineType.STRUCTURAL, "ast: try keyword")
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            self._set(node.lineno, _P_STRUCTURAL, LineType.STRUCTURAL, "ast: declaration")
        else:
            self._set(node.lineno, _P_START, LineType.CODE, f"ast: {type(node).__name__} statement")

        for decorator in getattr(node, "decorator_list", ()):
            self._set(decorator.lineno, _P_START, LineType.CODE, "ast: decorator")
            self._mark_span(decorator.lineno + 1, (decorator.end_lineno or decorator.lineno))

        body = getattr(node, "body", None)
        if isinstance(body, list) and body and isinstance(body[0], ast.stmt):
            header_end = max(node.lineno, self._stmt_line(body[0]) - 1)
        elif isinstance(node, ast.Match) and node.cases:
            header_end = max(node.lineno, node.cases[0].pattern.lineno - 1)
        else:
            header_end = end
        self._mark_span(node.lineno + 1, header_end)

        self._collect_lambdas(node)

        if isinstance(node, ast.If):
            self._visit_if(node, parent)
        elif isinstance(node, _FOR_TYPES):
            self._visit_loop(node, BlockKind.FOR, parent)
        elif isinstance(node, ast.While):
            self._visit_loop(node, BlockKind.WHILE, parent)
        elif isinstance(node, _WITH_TYPES):
            block_id = self._add_block(BlockKind.WITH, node.lineno, end, parent, entry=node.lineno)
            self._visit_body(node.body, block_id)
        elif isinstance(node, _TRY_TYPES):
            self._visit_try(node, parent)
        elif isinstance(node, ast.Match):
            self._visit_match(node, parent)
        elif isinstance(node, _FUNCTION_TYPES):
            self._visit_function(node, parent)
        elif isinstance(node, ast.ClassDef):
            self._visit_class(node, parent)

    def _visit_if(self, node: ast.If, parent: str) -> None:
        end = node.end_lineno or node.lineno
        block_id = self._add_block(BlockKind.IF, node.lineno, end, parent, entry=node.lineno)

        then_end = node.body[-1].end_lineno or node.body[-1].lineno
        then_id = self._add_block(
            BlockKind.IF,
            node.lineno,
            then_end,
            block_id,
            label="then",
            entry=self._entry(node.body, node.lineno),
        )
        self._visit_body(node.body, then_id)

        if not node.orelse:
            return

        first = node.orelse[0]
        is_elif = (
            len(node.orelse) == 1
            and isinstance(first, ast.If)
            and self._line_text(first.lineno).lstrip().startswith("elif")
        )
        if is_elif:
            else_start = first.lineno
            entry: int | None = first.lineno
        else:
            else_start = (
                self._find_keyword_line(then_end + 1, self._stmt_line(first), "else")
                or self._stmt_line(first)
            )
            entry = self._entry(node.orelse, else_start)
        else_id = self._add_block(
            BlockKind.IF,
            else_start,
            end,
            block_id,
            label="else",
            entry=entry,
        )
        # An elif chain nests: the elif's own if block lives inside this else branch.
        self._visit_body(node.orelse, else_id)

    def _visit_loop(self, node: ast.For | ast.AsyncFor | ast.While, kind: BlockKind, parent: str) -> None:
        end = node.end_lineno or node.lineno
        block_id = self._add_block(kind, node.lineno, end, parent, entry=node.lineno)
        body_end = node.body[-1].end_lineno or node.body[-1].lineno
        body_id = self._add_block(
            kind,
            self._stmt_line(node.body[0]),
            body_end,
            block_id,
            label="body",
            entry=self._entry(node.body, node.lineno),
        )
        self._visit_body(node.body, body_id)
        if node.orelse:
            else_start = (
                self._find_keyword_line(body_end + 1, self._stmt_line(node.orelse[0]), "else")
                or self._stmt_line(node.orelse[0])
            )
            else_id = self._add_block(
                kind,
                else_start,
                end,
                block_id,
                label="else",
                entry=self._entry(node.orelse, else_start),
            )
            self._visit_body(node.orelse, else_id)

    def _visit_try(self, node: ast.Try, parent: str) -> None:
        end = node.end_lineno or node.lineno
        block_id = self._add_block(
            BlockKind.TRY, node.lineno, end, parent, entry=self._entry(node.body, node.lineno)
        )
        self._visit_body(node.body, block_id)

        for handler in node.handlers:
            self._tick(handler)
            h_end = handler.end_lineno or handler.lineno
            self._set(handler.lineno, _P_START, LineType.CODE, "ast: except clause")
            if handler.body:
                self._mark_span(handler.lineno + 1, max(handler.lineno, self._stmt_line(handler.body[0]) - 1))
            self._collect_lambdas(handler)
            handler_id = self._add_block(
                BlockKind.TRY,
                handler.lineno,
                h_end,
                block_id,
                label="except",
                entry=self._entry(handler.body, handler.lineno),
            )
            self._visit_body(handler.body, handler_id)

        last = (node.handlers[-1].end_lineno if node.handlers else None) or (
            node.body[-1].end_lineno or node.body[-1].lineno
        )
        for label, stmts in (("else", node.orelse), ("finally", node.finalbody)):
            if not stmts:
                continue
            start = self._find_keyword_line(last + 1, self._stmt_line(stmts[0]), label) or (
                self._stmt_line(stmts[0])
            )
            s_end = stmts[-1].end_lineno or stmts[-1].lineno
            sub_id = self._add_block(
                BlockKind.TRY,
                start,
                s_end,
                block_id,
                label=label,
                entry=self._entry(stmts, start),
            )
            self._visit_body(stmts, sub_id)
            last = s_end

    def _visit_match(self, node: ast.Match, parent: str) -> None:
        end = node.end_lineno or node.lineno
        block_id = self._add_block(BlockKind.MATCH, node.lineno, end, parent, entry=node.lineno)
        for case in node.cases:
            self._tick(case.pattern)
            case_line = case.pattern.lineno
            self._set(case_line, _P_START, LineType.CODE, "ast: case pattern")
            case_end = case.body[-1].end_lineno or case.body[-1].lineno
            case_id = self._add_block(
                BlockKind.MATCH,
                case_line,
                case_end,
                block_id,
                label="case",
                entry=self._entry(case.body, case_line),
            )
            self._visit_body(case.body, case_id)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef, parent: str) -> None:
        start = self._stmt_line(node)
        end = node.end_lineno or node.lineno
        body_line = self._entry(node.body, None)
        block_id = self._add_block(
            BlockKind.FUNCTION,
            start,
            end,
            parent,
            entry=body_line if body_line != node.lineno else None,
        )
        self._add_function(
            FunctionInfo(
                function_id=f"{node.name}:{node.lineno}",
                name=node.name,
                kind=self._function_kind(),
                start_line=start,
                def_line=node.lineno,
                end_line=end,
                body_line=body_line,
                block_id=block_id,
            )
        )
        self._scopes.append("function")
        try:
            self._visit_body(node.body, block_id)
        finally:
            self._scopes.pop()

    def _visit_class(self, node: ast.ClassDef, parent: str) -> None:
        start = self._stmt_line(node)
        end = node.end_lineno or node.lineno
        entry = self._entry(node.body, node.lineno)
        block_id = self._add_block(BlockKind.CLASS, start, end, parent, entry=entry)
        self._scopes.append("class")
        try:
            self._visit_body(node.body, block_id)
        finally:
            self._scopes.pop()


def _merge_classifications(
    lexical: Sequence[LineClassification],
    codes: dict[int, tuple[int, LineType, str]],
    frontier: int,
    *,
    structural_executable: bool,
) -> dict[int, LineClassification]:
    merged: dict[int, LineClassification] = {}
    for lex in lexical:
        line = lex.line
        if line >= frontier:
            merged[line] = lex
            continue
        code = codes.get(line)
        if code is not None:
            _, line_type, reason = code
        elif lex.line_type is LineType.CODE:
            # The parser saw no statement start here.
            line_type, reason = LineType.CONTINUATION, "ast: not a statement start"
        else:
            line_type, reason = lex.line_type, lex.reason
        merged[line] = LineClassification(
            line=line,
            line_type=line_type,
            executable=is_executable_type(line_type, structural_executable=structural_executable),
            reason=reason,
        )
    return merged


def _lexical_result(
    result: AnalysisResult,
    lexical: Sequence[LineClassification],
    error: AnalysisError,
) -> AnalysisResult:
    result.lines = {c.line: c for c in lexical}
    result.blocks = {ROOT_BLOCK_ID: make_root(result.line_count)}
    result.degraded = True
    result.error = error
    return result


def analyze(
    source_text: str,
    file_id: str,
    config: AnalysisConfig | None = None,
) -> AnalysisResult:
    """Classify lines and build block/function tables for *source_text*.

    Never raises on malformed input; see the module docstring for the
    fallback behaviour.
    """
    config = config or AnalysisConfig()
    deadline = time.monotonic() + config.timeout_sec
    policy = config.structural_keywords_executable

    lines = split_lines(source_text)
    lexical = classify_lines(lines, structural_executable=policy)
    result = AnalysisResult(
        path=file_id,
        content_hash=hash_content(source_text),
        line_count=len(lines),
    )

    if len(lines) > config.max_ast_lines:
        err = AnalysisError.too_large(file_id, len(lines), config.max_ast_lines)
        log.warning("analysis_fallback", error=err.error_name, **err.details)
        return _lexical_result(result, lexical, err)

    try:
        tree = ast.parse(source_text, filename=file_id)
    except (SyntaxError, ValueError, RecursionError, MemoryError) as e:
        err = AnalysisError.parse_failed(file_id, str(e), line=getattr(e, "lineno", None))
        log.warning("analysis_fallback", error=err.error_name, **err.details)
        return _lexical_result(result, lexical, err)

    builder = _CodeMapBuilder(file_id, lines, lexical, deadline)
    frontier = len(lines) + 1
    try:
        builder.visit_module(tree)
    except _AnalysisTimeout as t:
        frontier = t.line
        err = AnalysisError.timeout(file_id, config.timeout_sec, line=t.line)
        log.warning("analysis_timeout", error=err.error_name, **err.details)
        result.degraded = True
        result.error = err
    except RecursionError as e:
        err = AnalysisError.parse_failed(file_id, f"AST too deep: {e}")
        log.warning("analysis_fallback", error=err.error_name, **err.details)
        return _lexical_result(result, lexical, err)

    result.tree = tree
    result.lines = _merge_classifications(
        lexical, builder.codes, frontier, structural_executable=policy
    )
    result.blocks = builder.blocks
    result.functions = builder.functions
    result.inconsistencies = link_blocks(result.blocks, file_id)
    return result
