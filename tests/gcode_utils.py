"""
Shared pygcode helpers for testing.
"""

from pygcode import Line, GCodeRapidMove, GCodeLinearMove


def parse_program(line_texts):
    """Parse lines with pygcode, skipping the ones it can't read ('%' etc.)"""
    lines = []
    for line_text in line_texts:
        try:
            lines.append(Line(line_text))
        except Exception:
            continue
    return lines


def get_feedrates(gcode_lines):
    """Extract all unique feedrates from G-code"""
    feedrates = set()

    for line in gcode_lines:
        if line.block and line.block.words:
            for word in line.block.words:
                if word.letter == "F":
                    feedrates.add(float(word.value))

    return feedrates


def count_moves(gcode_lines):
    """Count explicit G0 and G1 words"""
    counts = {'rapid': 0, 'linear': 0}

    for line in gcode_lines:
        if line.block and line.block.gcodes:
            for gcode in line.block.gcodes:
                if isinstance(gcode, GCodeRapidMove):
                    counts['rapid'] += 1
                elif isinstance(gcode, GCodeLinearMove):
                    counts['linear'] += 1

    return counts
