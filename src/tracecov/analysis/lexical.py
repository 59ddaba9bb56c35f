"""Lexical line classifier.

Used when the AST is unavailable: the file failed to parse, the AST walk ran
out of time, or the file is too large to parse at all. Classification is a
plain fold over the lines, carrying a ``MultilineContext`` from each line to
the next:

- a triple-quoted string opened and not closed on a line puts the context
  "inside" until a line containing the same delimiter (a ``'''`` string is
  only closed by ``'''``);
- the closing line of a standalone string is still a comment line;
- a line with code followed by a ``#`` comment is code.

The classifier errs toward CODE. Over-counting is corrected later by the
patch-up pass; under-counting would silently hide lines from reports.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from tracecov.analysis.models import LineClassification, LineType, MultilineContext

_TRIPLES = ('"""', "'''")
_PREFIX_RE = re.compile(r"[rRbBuUfF]{1,2}(?=['\"])")
_LEADING_STRING_RE = re.compile(r"""^(?:[rRbBuUfF]{1,2})?(?:'''|\"\"\"|'|")""")
_STRUCTURAL_RE = re.compile(r"^(?:else|try|finally)\s*:\s*(?:#.*)?$")
_CLOSING_RE = re.compile(r"^[)\]}][)\]}\s,:]*(?:#.*)?$")
_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True, slots=True)
class _Scan:
    code: bool  # saw a token outside strings and comments
    depth: int  # net bracket depth change outside strings
    open_triple: str | None  # triple quote still open at end of line
    closed_initial: bool  # the quote open at line start was closed
    backslash: bool  # line ends with an explicit continuation


def split_lines(source_text: str) -> list[str]:
    """Split on the line endings the tokenizer counts.

    ``str.splitlines`` also breaks on form feeds and other separators, which
    would shift every later line number against the interpreter's.
    """
    lines = _NEWLINE_RE.split(source_text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def _scan(text: str, delimiter: str | None) -> _Scan:
    quote = delimiter
    closed_initial = delimiter is None
    code = False
    depth = 0
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if text.startswith(quote, i):
                i += len(quote)
                quote = None
                closed_initial = True
                continue
            i += 1
            continue

        if ch == "#":
            break
        if ch in "'\"":
            triple = text[i : i + 3]
            quote = triple if triple in _TRIPLES else ch
            i += len(quote)
            continue
        prefix = _PREFIX_RE.match(text, i)
        if prefix and (i == 0 or not _is_ident_char(text[i - 1])):
            i = prefix.end()
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        if not ch.isspace():
            code = True
        i += 1

    # Single-quoted strings end at the newline unless escaped; only triples carry over.
    open_triple = quote if quote in _TRIPLES else None
    backslash = open_triple is None and text.rstrip("\r\n").endswith("\\")
    return _Scan(
        code=code,
        depth=depth,
        open_triple=open_triple,
        closed_initial=closed_initial,
        backslash=backslash,
    )


def _next_context(
    scan: _Scan,
    depth: int,
    *,
    comment: bool,
) -> MultilineContext:
    """Build a fresh context for the following line."""
    depth = max(depth + scan.depth, 0)
    if scan.open_triple is None:
        return MultilineContext(bracket_depth=depth, continued=scan.backslash)
    return MultilineContext(
        in_multiline_comment=comment,
        in_multiline_string=not comment,
        delimiter=scan.open_triple,
        bracket_depth=depth,
    )


def classify_line(
    text: str, context: MultilineContext | None = None
) -> tuple[LineType, MultilineContext]:
    """Classify one line given the context left by the previous line.

    Returns the line's type and a new context for the next line.
    """
    context = context or MultilineContext()
    stripped = text.strip()

    if context.inside_triple_quote:
        scan = _scan(text, context.delimiter)
        line_type = LineType.COMMENT if context.in_multiline_comment else LineType.STRING
        if not scan.closed_initial:
            return line_type, MultilineContext(
                in_multiline_comment=context.in_multiline_comment,
                in_multiline_string=context.in_multiline_string,
                delimiter=context.delimiter,
                bracket_depth=context.bracket_depth,
            )
        comment = context.in_multiline_comment and not scan.code
        return line_type, _next_context(scan, context.bracket_depth, comment=comment)

    if not stripped:
        return LineType.BLANK, MultilineContext(
            bracket_depth=context.bracket_depth, continued=False
        )
    if stripped.startswith("#"):
        return LineType.COMMENT, MultilineContext(
            bracket_depth=context.bracket_depth, continued=context.continued
        )

    scan = _scan(text, None)

    if context.bracket_depth > 0 or context.continued:
        line_type = LineType.STRUCTURAL if _CLOSING_RE.match(stripped) else LineType.CONTINUATION
        return line_type, _next_context(scan, context.bracket_depth, comment=False)

    if _LEADING_STRING_RE.match(stripped) and not scan.code:
        return LineType.COMMENT, _next_context(scan, 0, comment=True)

    if _STRUCTURAL_RE.match(stripped) or _CLOSING_RE.match(stripped):
        return LineType.STRUCTURAL, _next_context(scan, 0, comment=False)

    return LineType.CODE, _next_context(scan, 0, comment=False)


def classify_line_simple(text: str) -> LineType:
    """Classify a line in isolation (no carried context)."""
    line_type, _ = classify_line(text)
    return line_type


_REASONS = {
    LineType.CODE: "statement",
    LineType.COMMENT: "comment",
    LineType.BLANK: "blank line",
    LineType.STRUCTURAL: "structural keyword",
    LineType.STRING: "multi-line string content",
    LineType.CONTINUATION: "continuation of multi-line statement",
}


def is_executable_type(line_type: LineType, *, structural_executable: bool = False) -> bool:
    if line_type is LineType.CODE:
        return True
    if line_type is LineType.STRUCTURAL:
        return structural_executable
    return False


def classify_lines(
    lines: Iterable[str],
    *,
    structural_executable: bool = False,
) -> list[LineClassification]:
    """Classify every line, folding the multi-line context through them."""
    result: list[LineClassification] = []
    context = MultilineContext()
    for number, text in enumerate(lines, start=1):
        inside = context.inside_triple_quote
        line_type, context = classify_line(text, context)
        reason = _REASONS[line_type]
        if inside and line_type is LineType.COMMENT:
            reason = "inside multi-line comment"
        result.append(
            LineClassification(
                line=number,
                line_type=line_type,
                executable=is_executable_type(
                    line_type, structural_executable=structural_executable
                ),
                reason=f"lexical: {reason}",
            )
        )
    return result
