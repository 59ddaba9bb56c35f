"""Tests for the lexical line classifier."""

import pytest

from tracecov.analysis.lexical import (
    classify_line,
    classify_line_simple,
    classify_lines,
    split_lines,
)
from tracecov.analysis.models import LineType, MultilineContext


def _types(lines: list[str]) -> list[LineType]:
    return [c.line_type for c in classify_lines(lines)]


class TestClassifyLineSimple:
    """Single lines with no carried context."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("x = 1", LineType.CODE),
            ("x = 1  # trailing note", LineType.CODE),
            ("", LineType.BLANK),
            ("    \t", LineType.BLANK),
            ("# a comment", LineType.COMMENT),
            ('    """One-line docstring."""', LineType.COMMENT),
            ("else:", LineType.STRUCTURAL),
            ("try:", LineType.STRUCTURAL),
            ("finally:  # cleanup", LineType.STRUCTURAL),
            (")", LineType.STRUCTURAL),
            ("    ]),", LineType.STRUCTURAL),
            ("elif x:", LineType.CODE),
            ("except ValueError:", LineType.CODE),
        ],
    )
    def test_given_line_when_classified_then_expected_type(
        self, text: str, expected: LineType
    ) -> None:
        # When
        result = classify_line_simple(text)

        # Then
        assert result is expected


class TestClassifyLines:
    """Context folding across lines."""

    def test_given_standalone_triple_string_when_classified_then_only_code_executable(
        self,
    ) -> None:
        # Given
        lines = ["x = 1", '"""', "inside", '"""', "y = 2"]

        # When
        result = classify_lines(lines)

        # Then
        assert [c.executable for c in result] == [True, False, False, False, True]
        assert result[2].reason == "lexical: inside multi-line comment"

    def test_given_single_quote_triple_when_double_triple_inside_then_not_closed(self) -> None:
        # Given
        lines = ["'''", 'he said """hi', "'''", "x = 1"]

        # When / Then
        assert _types(lines) == [
            LineType.COMMENT,
            LineType.COMMENT,
            LineType.COMMENT,
            LineType.CODE,
        ]

    def test_given_string_in_code_when_classified_then_interior_is_string(self) -> None:
        # Given
        lines = ['x = """', "abc", '"""', "y = 2"]

        # When / Then
        assert _types(lines) == [LineType.CODE, LineType.STRING, LineType.STRING, LineType.CODE]

    def test_given_open_bracket_when_classified_then_continuation_until_closed(self) -> None:
        # Given
        lines = ["foo(", "    1,", ")", "z = 3"]

        # When / Then
        assert _types(lines) == [
            LineType.CODE,
            LineType.CONTINUATION,
            LineType.STRUCTURAL,
            LineType.CODE,
        ]

    def test_given_backslash_when_classified_then_next_line_continuation(self) -> None:
        # Given
        lines = ["x = 1 + \\", "    2", "y = x"]

        # When / Then
        assert _types(lines) == [LineType.CODE, LineType.CONTINUATION, LineType.CODE]

    def test_given_brackets_inside_strings_when_classified_then_ignored(self) -> None:
        # Given
        lines = ["s = '(['", "t = 2"]

        # When / Then
        assert _types(lines) == [LineType.CODE, LineType.CODE]

    @pytest.mark.parametrize(("policy", "expected"), [(False, False), (True, True)])
    def test_given_structural_policy_when_classified_then_controls_executability(
        self, policy: bool, expected: bool
    ) -> None:
        # Given
        lines = ["try:", "    x = 1", "finally:", "    y = 2"]

        # When
        result = classify_lines(lines, structural_executable=policy)

        # Then
        assert result[0].executable is expected
        assert result[2].executable is expected
        assert result[1].executable is True


class TestMultilineContext:
    def test_given_context_when_line_classified_then_input_context_unchanged(self) -> None:
        # Given
        context = MultilineContext()

        # When
        line_type, after = classify_line('"""', context)

        # Then
        assert line_type is LineType.COMMENT
        assert after.in_multiline_comment is True
        assert after.delimiter == '"""'
        assert context == MultilineContext()

    def test_given_inside_comment_when_closing_line_then_context_resets(self) -> None:
        # Given
        context = MultilineContext(in_multiline_comment=True, delimiter="'''")

        # When
        line_type, after = classify_line("end of text'''", context)

        # Then
        assert line_type is LineType.COMMENT
        assert after.inside_triple_quote is False


class TestSplitLines:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("a\nb\n", ["a", "b"]),
            ("a\r\nb\rc", ["a", "b", "c"]),
            ("a\fb\nc\n", ["a\fb", "c"]),
            ("", []),
            ("\n", [""]),
        ],
    )
    def test_given_text_when_split_then_only_newlines_break(
        self, text: str, expected: list[str]
    ) -> None:
        assert split_lines(text) == expected
