"""
SmartGCode - single line classification

Extracts the fields the optimizer cares about from one line of G-code:
- motion mode (leading G word)
- Z coordinate
- feed rate
- comment / spindle start flags

Every parser is permissive: anything that doesn't look like a number is
reported as missing (None), never as an error.
"""

import re
from dataclasses import dataclass
from typing import Optional


# Field patterns - only the first match on a line is used
MOTION_PATTERN = re.compile(r'^\s*G(\d+)')
LEADING_G_WORD = re.compile(r'^(\s*)G\d+')
Z_PATTERN = re.compile(r'Z([-+]?(?:\d+(?:\.\d*)?|\.\d+))')
FEED_PATTERN = re.compile(r'F(\d+(?:\.\d*)?|\.\d+)')
SPINDLE_START_PATTERN = re.compile(r'(?<![\d.])M3(?![\d.])')
AXIS_PATTERN = re.compile(r'[XYZABC][-+]?[\d.]')

COMMENT_START = '('
RAPID_MOTION = 0
CUTTING_MOTION = 1


@dataclass
class LineInfo:
    """Fields extracted from a single line of G-code"""
    motion_mode: Optional[int] = None
    z: Optional[float] = None
    feed: Optional[float] = None
    is_comment: bool = False
    has_spindle_start: bool = False
    has_axis_words: bool = False

    @property
    def is_move(self) -> bool:
        """True if the line carries a G word or any axis word"""
        return self.motion_mode is not None or self.has_axis_words


def _to_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def parse_motion_mode(line: str) -> Optional[int]:
    """Leading G word as an int (G01 -> 1), or None"""
    match = MOTION_PATTERN.match(line)
    return int(match.group(1)) if match else None


def parse_z(line: str) -> Optional[float]:
    match = Z_PATTERN.search(line)
    return _to_float(match.group(1)) if match else None


def parse_feed(line: str) -> Optional[float]:
    match = FEED_PATTERN.search(line)
    return _to_float(match.group(1)) if match else None


def is_comment(line: str) -> bool:
    return line.lstrip().startswith(COMMENT_START)


def has_spindle_start(line: str) -> bool:
    """M3 anywhere on the line (M30 and friends don't count)"""
    return SPINDLE_START_PATTERN.search(line) is not None


def classify_line(line: str) -> LineInfo:
    """
    Classify one line of G-code.

    Args:
        line: Raw line text (no trailing newline required)

    Returns:
        LineInfo with every field found on this line. Comment lines only
        carry the comment flag.
    """
    if is_comment(line):
        return LineInfo(is_comment=True)

    return LineInfo(
        motion_mode=parse_motion_mode(line),
        z=parse_z(line),
        feed=parse_feed(line),
        has_spindle_start=has_spindle_start(line),
        has_axis_words=AXIS_PATTERN.search(line) is not None,
    )


def replace_motion_mode(line: str, mode: int) -> str:
    """
    Rewrite the leading G word of a line, or prefix one if the line has none.

    Leading whitespace is preserved.
    """
    if MOTION_PATTERN.match(line):
        return LEADING_G_WORD.sub(rf'\g<1>G{mode}', line, count=1)
    return f"G{mode} {line}"


def format_number(value: float) -> str:
    """Shortest text for a word value: 100.0 -> '100', 12.5 -> '12.5'"""
    if value == int(value):
        return str(int(value))
    return f"{value:.4f}".rstrip('0').rstrip('.')
