"""
Unit Tests for Text Layout Engine
=================================

Widths use a fixed 10px-per-character measure so line breaks are exact.
"""

import pytest

from dynamic_canvas.core.rendering.text_layout import (
    LayoutLine,
    layout_text,
    make_measure,
    spaced_width,
    split_hard_breaks,
    wrap_text,
)
from dynamic_canvas.models.schemas import TextData


def measure(text: str) -> float:
    return len(text) * 10.0


def text_data(**kwargs) -> TextData:
    return TextData(**kwargs)


class TestWrapping:

    def test_segment_that_fits_is_one_line(self):
        assert wrap_text("hello world", 200, measure) == ["hello world"]

    def test_segment_exactly_at_max_width_is_kept(self):
        assert wrap_text("aaaa bbbbb", 100, measure) == ["aaaa bbbbb"]

    def test_greedy_wrap_requires_strictly_less_than_max(self):
        # "aaaa bbbb" is 90 wide, adding " cc" reaches 120
        assert wrap_text("aaaa bbbb cc", 100, measure) == ["aaaa bbbb", "cc"]
        # "aaaa bbbbb" measures exactly 100 inside a longer segment
        assert wrap_text("aaaa bbbbb c", 100, measure) == ["aaaa", "bbbbb c"]

    def test_long_single_word_is_never_split(self):
        lines = wrap_text("a" * 20, 50, measure)
        assert lines == ["a" * 20]
        assert measure(lines[0]) == 200

    def test_long_word_emitted_alone_between_others(self):
        assert wrap_text("hi " + "x" * 12 + " yo", 60, measure) == ["hi", "x" * 12, "yo"]

    def test_hard_breaks_always_split(self):
        assert wrap_text("a\nb\r\nc", 1000, measure) == ["a", "b", "c"]
        assert split_hard_breaks("one\r\ntwo") == ["one", "two"]

    def test_empty_segments_are_kept(self):
        assert wrap_text("top\n\nbottom", 1000, measure) == ["top", "", "bottom"]

    @pytest.mark.parametrize(
        "text,max_width",
        [
            ("the quick brown fox jumps over the lazy dog", 100),
            ("short\nlines with some more words here", 80),
            ("supercalifragilistic is long", 50),
        ],
    )
    def test_wrap_is_idempotent(self, text, max_width):
        lines = wrap_text(text, max_width, measure)
        assert wrap_text("\n".join(lines), max_width, measure) == lines

    def test_no_line_exceeds_max_width_unless_single_word(self):
        text = "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod"
        for line in wrap_text(text, 120, measure):
            assert measure(line) <= 120 or " " not in line


class TestLayout:

    def test_first_baseline_is_one_font_size_down(self):
        lines = layout_text("Hello", text_data(content="Hello", fontSize=20), 10, 10, measure)
        assert lines == [LayoutLine("Hello", 10, 30, "ls")]

    def test_subsequent_baselines_use_fixed_multiplier(self):
        lines = layout_text("a\nb\nc", text_data(fontSize=20), 0, 0, measure)
        assert [line.baseline_y for line in lines] == pytest.approx([20, 44, 68])

    @pytest.mark.parametrize("align,anchor", [("left", "ls"), ("center", "ms"), ("right", "rs")])
    def test_anchor_modes(self, align, anchor):
        lines = layout_text("x", text_data(textAlign=align), 50, 0, measure)
        assert lines[0].anchor == anchor
        assert lines[0].x == 50

    def test_uses_max_width_from_data(self):
        lines = layout_text("aaa bbb ccc", text_data(maxWidth=75), 0, 0, measure)
        assert [line.text for line in lines] == ["aaa bbb", "ccc"]


class TestLetterSpacing:

    def test_spaced_width_adds_gaps_between_glyphs(self):
        assert spaced_width(50, "abcde", 2) == 58
        assert spaced_width(10, "a", 5) == 10
        assert spaced_width(50, "abcde", None) == 50

    def test_make_measure_applies_spacing(self):
        class FixedFont:
            def getlength(self, text):
                return len(text) * 10

        spaced = make_measure(FixedFont(), 3)
        assert spaced("abc") == 36
        assert make_measure(FixedFont())("abc") == 30
