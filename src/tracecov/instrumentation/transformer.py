"""Source-to-source instrumentation.

Inserts a call to the tracking primitive before every statement that starts
its own line::

    def f(x):                       def f(x):
        y = x + 1          ->           __tracecov_track__('/abs/m.py', 2)
        return y                        y = x + 1
                                        __tracecov_track__('/abs/m.py', 3)
                                        return y

The inserted call reuses the statement's own indentation, so it lands in the
same block as the statement it precedes. Both arguments are literals fixed
here; nothing is looked up by path at run time. A ``SourceMap`` records
where every original line ended up.

Header lines a statement cannot be placed before report from inside the
header instead, at the moment the interpreter evaluates them:

- ``elif c:`` becomes ``elif __tracecov_track__(f, 3) or (c):``;
- ``except E:`` becomes ``except (__tracecov_track__(f, 5) or (E)):``, and a
  bare ``except:`` catches ``(__tracecov_track__(f, 5) or BaseException)``;
- ``case P:`` gains a guard that is always true once ``P`` matched. Case *k*
  reports the pattern lines of cases 1..k, since every earlier pattern was
  tried first. A ``case _ if ... and False`` appended after the last case
  reports all of them when nothing matched;
- a decorated ``def``/``class`` reports its decorator lines and its ``def``
  line from one call above the first decorator, as the definition runs;
- a statement that does not open its line (after ``;`` or a ``:``) reports
  from ``f(...); `` spliced in front of it, unless its line is reported
  already.

Splices never add lines. Appended ``case`` lines, like inserted calls, map
to no original line.

Not tracked:
- docstrings and other bare string statements;
- ``from __future__`` imports (they must stay first);
- ``try``/``global``/``nonlocal`` lines;
- lines the caller's analysis reports as not executable.
"""

from __future__ import annotations

import ast
from collections.abc import Iterable
from dataclasses import dataclass, field

from tracecov.analysis.lexical import split_lines
from tracecov.core.errors import InstrumentationError
from tracecov.instrumentation.sourcemap import SourceMap

TRACKER_NAME = "__tracecov_track__"

_UNTRACKED = (ast.Global, ast.Nonlocal, ast.Try) + (
    (ast.TryStar,) if hasattr(ast, "TryStar") else ()
)

# Splice kinds; at equal columns a closing splice must end up left of an opening one.
_OPEN = 0
_CLOSE = 1


@dataclass(frozen=True, slots=True)
class InstrumentOptions:
    executable_lines: frozenset[int] | None = None  # restrict tracking to these lines
    tracker_name: str = TRACKER_NAME


@dataclass(slots=True)
class InstrumentedSource:
    text: str
    sourcemap: SourceMap
    tracked_lines: frozenset[int] = field(default_factory=frozenset)
    file_id: str = ""


def _indent(text: str) -> str:
    return text[: len(text) - len(text.lstrip(" \t\f"))]


def _char_col(text: str, byte_col: int) -> int:
    """AST columns count UTF-8 bytes; convert to a str index."""
    return len(text.encode("utf-8")[:byte_col].decode("utf-8", errors="ignore"))


def _opens_line(lines: list[str], line: int, byte_col: int) -> bool:
    text = lines[line - 1]
    return not text[: _char_col(text, byte_col)].strip()


def _is_elif(node: ast.stmt, lines: list[str]) -> bool:
    return isinstance(node, ast.If) and lines[node.lineno - 1].lstrip().startswith("elif")


def _starts_line(node: ast.stmt, lines: list[str]) -> int | None:
    """Line to insert *node*'s call above, or None if it does not open its line."""
    decorators = getattr(node, "decorator_list", None)
    if decorators:
        first = min(decorators, key=lambda d: (d.lineno, d.col_offset))
        text = lines[first.lineno - 1]
        # col_offset points past the '@'
        if text[: _char_col(text, first.col_offset)].strip() == "@":
            return first.lineno
        return None
    if not _opens_line(lines, node.lineno, node.col_offset):
        return None
    if _is_elif(node, lines):
        return None
    return node.lineno


def _is_future_import(node: ast.stmt) -> bool:
    return isinstance(node, ast.ImportFrom) and node.module == "__future__"


def _is_bare_string(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def _skipped(node: ast.stmt) -> bool:
    return _is_bare_string(node) or _is_future_import(node) or isinstance(node, _UNTRACKED)


def _is_irrefutable(pattern: ast.pattern) -> bool:
    if isinstance(pattern, ast.MatchAs):
        return pattern.pattern is None or _is_irrefutable(pattern.pattern)
    if isinstance(pattern, ast.MatchOr):
        return any(_is_irrefutable(p) for p in pattern.patterns)
    return False


class _Plan:
    """Where tracking calls go, and which lines each one reports."""

    def __init__(self, lines: list[str], executable: frozenset[int] | None) -> None:
        self.lines = lines
        self._executable = executable
        # line -> lines reported by a call inserted above it
        self.before: dict[int, list[int]] = {}
        # line -> (char column, kind, text, reported lines) spliced into it
        self.splices: dict[int, list[tuple[int, int, str, tuple[int, ...]]]] = {}
        # line -> (indent, template, reported lines) appended after it
        self.after: dict[int, list[tuple[str, str, tuple[int, ...]]]] = {}

    def _keep(self, reported: Iterable[int]) -> tuple[int, ...]:
        kept = sorted(set(reported))
        if self._executable is not None:
            kept = [n for n in kept if n in self._executable]
        return tuple(kept)

    def add_before(self, line: int, reported: Iterable[int]) -> None:
        kept = self._keep(reported)
        if kept:
            self.before.setdefault(line, []).extend(kept)

    def add_wrap(
        self, node: ast.AST, head: str, tail: str, reported: Iterable[int]
    ) -> None:
        """Splice *head* before and *tail* after an expression or pattern node."""
        kept = self._keep(reported)
        if not kept:
            return
        start = self.lines[node.lineno - 1]
        end = self.lines[node.end_lineno - 1]  # type: ignore[attr-defined,index,operator]
        self._splice(node.lineno, _char_col(start, node.col_offset), _OPEN, head, kept)
        self._splice(
            node.end_lineno,  # type: ignore[attr-defined,arg-type]
            _char_col(end, node.end_col_offset),  # type: ignore[attr-defined,arg-type]
            _CLOSE,
            tail,
            (),
        )

    def add_insert(
        self, line: int, col: int, template: str, reported: Iterable[int], kind: int = _OPEN
    ) -> None:
        kept = self._keep(reported)
        if kept:
            self._splice(line, col, kind, template, kept)

    def add_after(self, line: int, indent: str, template: str, reported: Iterable[int]) -> None:
        kept = self._keep(reported)
        if kept:
            self.after.setdefault(line, []).append((indent, template, kept))

    def _splice(
        self, line: int, col: int, kind: int, template: str, reported: tuple[int, ...]
    ) -> None:
        self.splices.setdefault(line, []).append((col, kind, template, reported))

    def reported_lines(self) -> set[int]:
        tracked = {n for reported in self.before.values() for n in reported}
        for entries in self.splices.values():
            tracked.update(n for *_, reported in entries for n in reported)
        for entries in self.after.values():
            tracked.update(n for *_, reported in entries for n in reported)
        return tracked


def _colon_after(lines: list[str], line: int, col: int) -> tuple[int, int] | None:
    """Position of the ':' closing a header whose last operand ends at (line, col)."""
    while line <= len(lines):
        text = lines[line - 1]
        while col < len(text):
            char = text[col]
            if char == ":":
                return line, col
            if char == "#":
                break
            if char not in " \t\f)]}\\":
                return None
            col += 1
        line += 1
        col = 0
    return None


def _case_indent(lines: list[str], pattern: ast.pattern) -> str:
    line = pattern.lineno
    while line > 1 and not lines[line - 1].lstrip().startswith("case"):
        line -= 1
    return _indent(lines[line - 1])


def _plan_match(plan: _Plan, node: ast.Match) -> None:
    lines = plan.lines
    seen: list[int] = []
    for case in node.cases:
        seen.append(case.pattern.lineno)
        if case.guard is not None:
            plan.add_wrap(case.guard, "({call} or True) and (", ")", seen)
            continue
        end = lines[case.pattern.end_lineno - 1]  # type: ignore[index,operator]
        colon = _colon_after(
            lines,
            case.pattern.end_lineno,  # type: ignore[arg-type]
            _char_col(end, case.pattern.end_col_offset),  # type: ignore[arg-type]
        )
        if colon is not None:
            plan.add_insert(colon[0], colon[1], " if {call} or True", seen, kind=_CLOSE)

    last = node.cases[-1]
    if last.guard is None and _is_irrefutable(last.pattern):
        return
    plan.add_after(
        node.end_lineno,  # type: ignore[arg-type]
        _case_indent(lines, node.cases[0].pattern),
        "case _ if {call} and False: pass",
        seen,
    )


def _plan_handler(plan: _Plan, handler: ast.ExceptHandler) -> None:
    if handler.type is not None:
        plan.add_wrap(handler.type, "({call} or (", "))", [handler.lineno])
        return
    text = plan.lines[handler.lineno - 1]
    col = _char_col(text, handler.col_offset) + len("except")
    plan.add_insert(handler.lineno, col, " ({call} or BaseException)", [handler.lineno])


def _plan(tree: ast.Module, lines: list[str], executable: frozenset[int] | None) -> _Plan:
    plan = _Plan(lines, executable)
    inline: dict[int, ast.stmt] = {}

    for node in ast.walk(tree):
        if isinstance(node, ast.ExceptHandler):
            _plan_handler(plan, node)
            continue
        if not isinstance(node, ast.stmt):
            continue
        if isinstance(node, ast.Match):
            _plan_match(plan, node)
        if _is_elif(node, lines):
            plan.add_wrap(node.test, "{call} or (", ")", [node.lineno])  # type: ignore[attr-defined]
            continue
        if _skipped(node):
            continue
        line = _starts_line(node, lines)
        if line is None:
            if not getattr(node, "decorator_list", None):
                first = inline.get(node.lineno)
                if first is None or node.col_offset < first.col_offset:
                    inline[node.lineno] = node
            continue
        decorators = getattr(node, "decorator_list", None)
        if decorators:
            plan.add_before(line, [d.lineno for d in decorators] + [node.lineno])
        else:
            plan.add_before(line, [line])

    reported = plan.reported_lines()
    for number, node in inline.items():
        if number in reported:
            continue
        text = lines[number - 1]
        plan.add_insert(number, _char_col(text, node.col_offset), "{call}; ", [number])
    return plan


def collect_tracked_lines(
    tree: ast.Module, lines: list[str], executable_lines: frozenset[int] | None = None
) -> set[int]:
    """Lines that report themselves once instrumented."""
    return _plan(tree, lines, executable_lines).reported_lines()


def _call(tracker_name: str, file_id: str, reported: Iterable[int]) -> str:
    return f"{tracker_name}({file_id!r}, {', '.join(str(n) for n in reported)})"


def instrument(
    source_text: str,
    file_id: str,
    options: InstrumentOptions | None = None,
) -> InstrumentedSource:
    """Rewrite *source_text* so each tracked line reports itself when run.

    Raises:
        InstrumentationError: If the source does not parse.
    """
    options = options or InstrumentOptions()
    try:
        tree = ast.parse(source_text, filename=file_id)
    except (SyntaxError, ValueError) as e:
        raise InstrumentationError.failed(file_id, str(e), line=getattr(e, "lineno", None)) from e

    lines = split_lines(source_text)
    plan = _plan(tree, lines, options.executable_lines)

    out: list[str] = []
    sourcemap = SourceMap()
    for number, text in enumerate(lines, start=1):
        if number in plan.before:
            out.append(f"{_indent(text)}{_call(options.tracker_name, file_id, plan.before[number])}")
        for col, _, template, reported in sorted(
            plan.splices.get(number, ()), key=lambda s: (-s[0], s[1])
        ):
            piece = template.format(call=_call(options.tracker_name, file_id, reported))
            text = text[:col] + piece + text[col:]
        out.append(text)
        sourcemap.add_mapping(len(out), number)
        # Deeper (inner) matches close first
        for indent, template, reported in sorted(
            plan.after.get(number, ()), key=lambda a: -len(a[0])
        ):
            out.append(indent + template.format(call=_call(options.tracker_name, file_id, reported)))

    text = "\n".join(out)
    if source_text.endswith(("\n", "\r")):
        text += "\n"
    return InstrumentedSource(
        text=text,
        sourcemap=sourcemap,
        tracked_lines=frozenset(plan.reported_lines()),
        file_id=file_id,
    )
