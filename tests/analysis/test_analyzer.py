"""Tests for the static analyzer."""

import textwrap
from types import SimpleNamespace

import pytest

import tracecov.analysis.analyzer as analyzer_module
from tracecov.analysis.analyzer import analyze, hash_content
from tracecov.analysis.models import ROOT_BLOCK_ID, BlockKind, FunctionKind, LineType
from tracecov.config.models import AnalysisConfig
from tracecov.core.errors import ErrorCode


def _src(text: str) -> str:
    return textwrap.dedent(text).lstrip("\n")


IF_CHAIN = _src(
    """
    def f(x):
        if x == 1:
            a = 1
        elif x == 2:
            a = 2
        else:
            a = 3
        return a
    """
)


class TestExecutableLines:
    """Line classification with the AST available."""

    def test_given_standalone_string_when_analyzed_then_only_code_executable(self) -> None:
        # Given
        source = 'x = 1\n"""\ninside\n"""\ny = 2\n'

        # When
        result = analyze(source, "/m.py")

        # Then
        assert [result.is_line_executable(n) for n in range(1, 6)] == [
            True,
            False,
            False,
            False,
            True,
        ]
        assert result.degraded is False

    def test_given_if_chain_when_analyzed_then_else_is_structural(self) -> None:
        # When
        result = analyze(IF_CHAIN, "/m.py")

        # Then
        assert result.executable_lines == frozenset({1, 2, 3, 4, 5, 7, 8})
        assert result.line_type(6) is LineType.STRUCTURAL

    def test_given_structural_policy_when_analyzed_then_else_executable(self) -> None:
        # When
        result = analyze(IF_CHAIN, "/m.py", AnalysisConfig(structural_keywords_executable=True))

        # Then
        assert result.is_line_executable(6)

    def test_given_multiline_call_when_analyzed_then_only_first_line_executable(self) -> None:
        # Given
        source = _src(
            """
            x = call(
                1,
                2,
            )
            y = 2
            """
        )

        # When
        result = analyze(source, "/m.py")

        # Then
        assert result.executable_lines == frozenset({1, 5})
        assert result.line_type(2) is LineType.CONTINUATION

    def test_given_multiline_string_in_code_when_analyzed_then_interior_not_executable(
        self,
    ) -> None:
        # Given
        source = 's = """\ntext\n"""\nt = 1\n'

        # When
        result = analyze(source, "/m.py")

        # Then
        assert result.executable_lines == frozenset({1, 4})
        assert result.line_type(2) is LineType.STRING

    def test_given_docstring_when_analyzed_then_comment_and_body_after_it(self) -> None:
        # Given
        source = _src(
            '''
            def h():
                """Doc.

                More."""
                return 2
            '''
        )

        # When
        result = analyze(source, "/m.py")

        # Then
        assert result.executable_lines == frozenset({1, 5})
        assert all(result.line_type(n) is LineType.COMMENT for n in (2, 3, 4))
        assert result.functions["h:1"].body_line == 5

    def test_given_try_statement_when_analyzed_then_keywords_follow_policy(self) -> None:
        # Given
        source = _src(
            """
            try:
                a = 1
            except ValueError:
                a = 2
            finally:
                b = 3
            """
        )

        # When
        default = analyze(source, "/m.py")
        structural = analyze(source, "/m.py", AnalysisConfig(structural_keywords_executable=True))

        # Then
        assert default.executable_lines == frozenset({2, 3, 4, 6})
        assert structural.executable_lines == frozenset({1, 2, 3, 4, 5, 6})

    def test_given_comments_and_blanks_when_analyzed_then_not_executable(self) -> None:
        # Given
        source = "# header\n\nx = 1  # note\n"

        # When
        result = analyze(source, "/m.py")

        # Then
        assert result.executable_lines == frozenset({3})
        assert result.line_type(1) is LineType.COMMENT
        assert result.line_type(2) is LineType.BLANK


class TestBlocks:
    """Block table produced by the structural pass."""

    def test_given_if_chain_when_analyzed_then_elif_nests_in_else(self) -> None:
        # When
        blocks = analyze(IF_CHAIN, "/m.py").blocks

        # Then
        assert blocks["function:1"].parent_id == ROOT_BLOCK_ID
        assert blocks["if:2"].parent_id == "function:1"
        assert blocks["if:2:then"].parent_id == "if:2"
        assert blocks["if:4:else"].parent_id == "if:2"
        assert blocks["if:4"].parent_id == "if:4:else"
        assert blocks["if:6:else"].parent_id == "if:4"
        assert "function:1" in blocks[ROOT_BLOCK_ID].children
        assert set(blocks["if:2"].children) == {"if:2:then", "if:4:else"}

    def test_given_if_chain_when_analyzed_then_entry_lines_identify_branches(self) -> None:
        # When
        blocks = analyze(IF_CHAIN, "/m.py").blocks

        # Then
        assert blocks["function:1"].entry_line == 2
        assert blocks["if:2:then"].entry_line == 3
        assert blocks["if:4:else"].entry_line == 4
        assert blocks["if:6:else"].entry_line == 7

    def test_given_single_line_body_when_analyzed_then_branch_has_no_entry(self) -> None:
        # When
        blocks = analyze("if x: y = 1\n", "/m.py").blocks

        # Then
        assert blocks["if:1:then"].entry_line is None

    def test_given_loops_and_with_when_analyzed_then_kinds_recorded(self) -> None:
        # Given
        source = _src(
            """
            for i in range(3):
                while i:
                    i -= 1
            else:
                pass
            with open(p) as f:
                f.read()
            """
        )

        # When
        blocks = analyze(source, "/m.py").blocks

        # Then
        assert blocks["for:1"].kind is BlockKind.FOR
        assert blocks["for:2:body"].parent_id == "for:1"
        assert blocks["while:2"].parent_id == "for:2:body"
        assert blocks["for:4:else"].entry_line == 5
        assert blocks["with:6"].kind is BlockKind.WITH

    def test_given_line_when_blocks_for_line_then_outermost_first(self) -> None:
        # When
        result = analyze(IF_CHAIN, "/m.py")

        # Then
        ids = [b.block_id for b in result.blocks_for_line(5)]
        assert ids[:2] == ["function:1", "if:2"]
        assert "if:4:then" in ids


class TestFunctions:
    """Function table and kinds."""

    def test_given_nested_definitions_when_analyzed_then_kinds_assigned(self) -> None:
        # Given
        source = _src(
            """
            class A:
                def m(self):
                    def inner():
                        return 1
                    return inner
            key = lambda v: v
            """
        )

        # When
        functions = analyze(source, "/m.py").functions

        # Then
        assert functions["m:2"].kind is FunctionKind.METHOD
        assert functions["inner:3"].kind is FunctionKind.LOCAL
        assert functions["<lambda>:6"].kind is FunctionKind.ANONYMOUS
        assert functions["<lambda>:6"].name is None

    def test_given_decorator_when_analyzed_then_start_line_is_decorator(self) -> None:
        # Given
        source = "import functools\n\n@functools.cache\ndef g():\n    return 1\n"

        # When
        result = analyze(source, "/m.py")

        # Then
        fn = result.functions["g:4"]
        assert (fn.start_line, fn.def_line, fn.body_line) == (3, 4, 5)
        assert result.is_line_executable(3)
        assert result.function_for_line(5) == fn


class TestDegradedAnalysis:
    """Fallbacks when the AST is unavailable or too slow."""

    def test_given_syntax_error_when_analyzed_then_lexical_and_degraded(self) -> None:
        # Given
        source = "def broken()\n    x = 1\n# note\n"

        # When
        result = analyze(source, "/m.py")

        # Then
        assert result.degraded is True
        assert result.error is not None
        assert result.error.code == ErrorCode.ANALYSIS_PARSE_FAILED
        assert result.executable_lines == frozenset({1, 2})
        assert list(result.blocks) == [ROOT_BLOCK_ID]

    def test_given_file_over_limit_when_analyzed_then_ast_skipped(self) -> None:
        # Given
        config = AnalysisConfig(max_ast_lines=2)

        # When
        result = analyze("a = 1\nb = 2\nc = 3\n", "/m.py", config)

        # Then
        assert result.degraded is True
        assert result.tree is None
        assert result.error is not None
        assert result.error.details["limit"] == 2

    def test_given_walk_timeout_when_analyzed_then_rest_classified_lexically(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # Given
        clock = iter([0.0, 0.0, 0.0])
        monkeypatch.setattr(
            analyzer_module, "time", SimpleNamespace(monotonic=lambda: next(clock, 100.0))
        )
        source = 'x = 1\ny = 2\ns = """\ntext\n"""\n'

        # When
        result = analyze(source, "/m.py")

        # Then
        assert result.degraded is True
        assert result.error is not None
        assert result.error.code == ErrorCode.ANALYSIS_TIMEOUT
        assert result.line_type(4) is LineType.STRING
        assert result.executable_lines == frozenset({1, 2, 3})


class TestHashContent:
    def test_given_same_text_when_hashed_then_stable(self) -> None:
        assert hash_content("x = 1\n") == hash_content("x = 1\n")
        assert hash_content("x = 1\n") != hash_content("x = 2\n")

    def test_given_result_when_analyzed_then_carries_hash_and_count(self) -> None:
        result = analyze("x = 1\ny = 2\n", "/m.py")
        assert result.content_hash == hash_content("x = 1\ny = 2\n")
        assert result.line_count == 2
