#!/usr/bin/env python3
"""
Compare an optimized program against the original and check that only
rapids, dwells and feed restores changed.
"""

from pygcode import Line
from termcolor import colored
import argparse
import sys

from gcode_line import classify_line, replace_motion_mode, RAPID_MOTION
from pendant_config import PendantConfig, load_pendant_config


def load_gcode_file(gcode_file_path):
    """Load G-code file and return (raw lines, list of pygcode Line objects)"""
    texts = []
    lines = []
    with open(gcode_file_path, "r") as f:
        for line_num, line_text in enumerate(f.read().splitlines(), 1):
            texts.append(line_text)
            try:
                lines.append(Line(line_text))
            except Exception as e:
                if line_text.strip() and not line_text.strip().startswith(';') and not line_text.strip().startswith('('):
                    print(f"Warning: Could not parse line {line_num}: {line_text.strip()}")
                    print(f"  Error: {e}")
                continue
    return texts, lines


PASS = colored("PASS", "green")
FAIL = colored("FAIL", "red")


def get_words(gcode_lines, letters):
    """All words with one of the given letters, in program order"""
    words = []

    for line in gcode_lines:
        if line.block and line.block.words:
            for word in line.block.words:
                if word.letter in letters:
                    words.append((word.letter, word.value))

    return words


def get_feedrates(gcode_lines):
    """Extract all unique feedrates from G-code"""
    return sorted({value for _, value in get_words(gcode_lines, ['F'])})


def get_gcode_boundary(gcode_lines):
    """Bounding box (min/max X, Y, Z) over every coordinate word"""
    bounds = {
        'X': {'min': None, 'max': None},
        'Y': {'min': None, 'max': None},
        'Z': {'min': None, 'max': None}
    }

    for letter, value in get_words(gcode_lines, ['X', 'Y', 'Z']):
        if bounds[letter]['min'] is None or value < bounds[letter]['min']:
            bounds[letter]['min'] = value
        if bounds[letter]['max'] is None or value > bounds[letter]['max']:
            bounds[letter]['max'] = value

    return bounds


def verify_feedrates(original_lines, optimized_lines):
    print("\nTest: Verify Feedrates")

    original = get_feedrates(original_lines)
    optimized = get_feedrates(optimized_lines)
    passed = original == optimized

    print(f"\tFeedrates Match ---- {PASS if passed else FAIL}")
    if not passed:
        print(f"\t\tOriginal:  {original}")
        print(f"\t\tOptimized: {optimized}")
    return passed


def verify_boundary(original_lines, optimized_lines, tolerance=1e-6):
    print("\nTest: Verify Toolpath Boundary")

    original = get_gcode_boundary(original_lines)
    optimized = get_gcode_boundary(optimized_lines)
    all_passed = True

    for axis in ['X', 'Y', 'Z']:
        o_min, o_max = original[axis]['min'], original[axis]['max']
        n_min, n_max = optimized[axis]['min'], optimized[axis]['max']

        if o_min is None or n_min is None:
            axis_match = o_min is None and n_min is None
        else:
            axis_match = abs(o_min - n_min) <= tolerance and abs(o_max - n_max) <= tolerance

        print(f"\t{axis}-axis Boundary ---- {PASS if axis_match else FAIL}")
        if not axis_match:
            print(f"\t\tOriginal:  [{o_min}, {o_max}]")
            print(f"\t\tOptimized: [{n_min}, {n_max}]")
            all_passed = False

    return all_passed


def verify_tool_and_spindle(original_lines, optimized_lines):
    print("\nTest: Verify Tool and Spindle Words")

    original = get_words(original_lines, ['T', 'S', 'M'])
    optimized = get_words(optimized_lines, ['T', 'S', 'M'])
    passed = original == optimized

    print(f"\tT/S/M Words Match ---- {PASS if passed else FAIL}")
    if not passed:
        print(f"\t\tOriginal:  {len(original)} words")
        print(f"\t\tOptimized: {len(optimized)} words")
    return passed


def _is_inserted_line(text, dwell_command):
    info = classify_line(text)
    words = text.split()
    if len(words) == 2 and words[0] == dwell_command and words[1].startswith('P'):
        return True
    return info.motion_mode == 1 and info.z is None and not info.has_axis_words and len(words) <= 2


def find_unexpected_edits(original_texts, optimized_texts, config=None):
    """
    Walk both programs side by side.

    Args:
        config: PendantConfig the program was optimized with (defaults if None),
            for the dwell command and the done tag

    Returns:
        List of (optimized row, text) for lines that are neither unchanged,
        a G1 -> G0 rewrite, nor an inserted dwell / feed restore
    """
    config = config or PendantConfig()
    unexpected = []
    i = 0
    for row, text in enumerate(optimized_texts):
        original = original_texts[i] if i < len(original_texts) else None
        if original is not None and (text == original
                                     or text == replace_motion_mode(original, RAPID_MOTION)
                                     or text == original[:1] + config.done_tag + original[1:]):
            i += 1
        elif not _is_inserted_line(text, config.dwell_command):
            unexpected.append((row, text))
            i += 1

    if i < len(original_texts):
        unexpected.extend((None, text) for text in original_texts[i:])
    return unexpected


def verify_edits(original_texts, optimized_texts, config=None):
    print("\nTest: Verify Edits")

    unexpected = find_unexpected_edits(original_texts, optimized_texts, config)
    passed = not unexpected

    print(f"\tOnly Rapids/Dwells/Feed Restores ---- {PASS if passed else FAIL}")
    for row, text in unexpected[:10]:
        where = f"line {row + 1}" if row is not None else "missing"
        print(f"\t\t{where}: {text}")
    return passed


def main():
    parser = argparse.ArgumentParser(description='Verify an optimized G-code program against its original')
    parser.add_argument('original_gcode', help='Original G-code file')
    parser.add_argument('optimized_gcode', help='Optimized G-code file')
    parser.add_argument('--config', type=str, default=None,
                        help='Pendant config YAML the program was optimized with')
    args = parser.parse_args()
    config = load_pendant_config(args.config)

    original_texts, original_lines = load_gcode_file(args.original_gcode)
    optimized_texts, optimized_lines = load_gcode_file(args.optimized_gcode)

    results = [
        verify_feedrates(original_lines, optimized_lines),
        verify_boundary(original_lines, optimized_lines),
        verify_tool_and_spindle(original_lines, optimized_lines),
        verify_edits(original_texts, optimized_texts, config),
    ]

    all_passed = all(results)
    print(f"\nOverall: {PASS if all_passed else FAIL}")

    # Exit with appropriate code for CI/CD
    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
