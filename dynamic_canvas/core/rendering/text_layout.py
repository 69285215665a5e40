"""
Text Layout Engine
==================

Turns a resolved string into positioned lines: hard breaks, greedy
word wrap against ``maxWidth``, horizontal anchoring and baselines.
"""

from typing import Callable, List, NamedTuple, Optional
import re

from dynamic_canvas.models.schemas import TextAlign, TextData

LINE_HEIGHT_FACTOR = 1.2

_ANCHORS = {
    TextAlign.LEFT: "ls",
    TextAlign.CENTER: "ms",
    TextAlign.RIGHT: "rs",
}

_HARD_BREAK_RE = re.compile(r"\r\n|\n")

Measure = Callable[[str], float]


class LayoutLine(NamedTuple):
    """A single line ready for anchor-relative drawing."""
    text: str
    x: float
    baseline_y: float
    anchor: str


def spaced_width(width: float, text: str, letter_spacing: Optional[float]) -> float:
    """Width of text once letter spacing is applied between glyphs."""
    if letter_spacing and len(text) > 1:
        return width + letter_spacing * (len(text) - 1)
    return width


def make_measure(font, letter_spacing: Optional[float] = None) -> Measure:
    """Measure function for a Pillow font."""
    def measure(text: str) -> float:
        return spaced_width(font.getlength(text), text, letter_spacing)
    return measure


def split_hard_breaks(text: str) -> List[str]:
    return _HARD_BREAK_RE.split(text)


def wrap_segment(segment: str, max_width: float, measure: Measure) -> List[str]:
    """
    Greedy wrap of one hard-break segment.

    A word that alone exceeds max_width is emitted on its own line, unsplit.
    """
    if measure(segment) <= max_width:
        return [segment]

    words = segment.split()
    if not words:
        return [segment]

    lines: List[str] = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if measure(candidate) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def wrap_text(text: str, max_width: float, measure: Measure) -> List[str]:
    """All output lines for text, hard breaks first."""
    lines: List[str] = []
    for segment in split_hard_breaks(text):
        lines.extend(wrap_segment(segment, max_width, measure))
    return lines


def anchor_for(text_align: TextAlign) -> str:
    return _ANCHORS.get(TextAlign(text_align), "ls")


def layout_text(text: str, data: TextData, x: float, y: float, measure: Measure) -> List[LayoutLine]:
    """Lay out text for a text element whose layout box starts at (x, y)."""
    anchor = anchor_for(data.text_align)
    line_height = data.font_size * LINE_HEIGHT_FACTOR

    baseline = y + data.font_size
    result: List[LayoutLine] = []
    for line in wrap_text(text, data.max_width, measure):
        result.append(LayoutLine(line, x, baseline, anchor))
        baseline += line_height
    return result
