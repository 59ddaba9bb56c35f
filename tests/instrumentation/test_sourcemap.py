"""Tests for instrumented/original line mapping."""

import pytest

from tracecov.instrumentation.sourcemap import SourceMap


@pytest.fixture
def shifted() -> SourceMap:
    # Original lines 1..3, each preceded by one inserted line.
    sm = SourceMap()
    for original in (1, 2, 3):
        sm.add_mapping(original * 2, original)
    return sm


class TestSourceMap:
    def test_given_mapping_when_looked_up_then_both_directions(self, shifted: SourceMap) -> None:
        # When / Then
        assert shifted.get_original_line(4) == 2
        assert shifted.get_instrumented_line(2) == 4
        assert len(shifted) == 3

    def test_given_inserted_line_when_looked_up_then_none(self, shifted: SourceMap) -> None:
        assert shifted.get_original_line(3) is None
        assert shifted.get_instrumented_line(99) is None

    def test_given_identity_when_built_then_lines_unchanged(self) -> None:
        sm = SourceMap.identity(range(1, 4))
        assert [sm.get_original_line(n) for n in (1, 2, 3)] == [1, 2, 3]

    def test_given_frames_when_translated_then_inserted_frames_dropped(
        self, shifted: SourceMap
    ) -> None:
        # When
        result = shifted.translate_frames([("/m.py", 6), ("/m.py", 5), ("/m.py", 2)])

        # Then
        assert result == [("/m.py", 3), ("/m.py", 1)]


class TestTranslateError:
    """Rewriting line numbers inside messages."""

    def test_given_traceback_for_file_when_translated_then_original_line(
        self, shifted: SourceMap
    ) -> None:
        # Given
        message = 'Traceback:\n  File "/proj/m.py", line 6, in f\nValueError: boom'

        # When
        result = shifted.translate_error(message, "/proj/m.py")

        # Then
        assert 'File "/proj/m.py", line 3, in f' in result

    def test_given_traceback_for_other_file_when_translated_then_unchanged(
        self, shifted: SourceMap
    ) -> None:
        # Given
        message = 'File "/proj/other.py", line 6, in g'

        # When / Then
        assert shifted.translate_error(message, "/proj/m.py") == message

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("/proj/m.py:4: error: bad", "/proj/m.py:2: error: bad"),
            ("/proj/m.py:6:8: warning", "/proj/m.py:3:8: warning"),
        ],
    )
    def test_given_compact_form_when_translated_then_line_rewritten(
        self, shifted: SourceMap, message: str, expected: str
    ) -> None:
        assert shifted.translate_error(message, "/proj/m.py") == expected

    def test_given_unmapped_line_when_translated_then_left_alone(
        self, shifted: SourceMap
    ) -> None:
        message = 'File "/proj/m.py", line 5, in f'
        assert shifted.translate_error(message, "/proj/m.py") == message
