#!/usr/bin/env python3
"""
SmartGCode - G-code optimizer for Fusion 360 personal-use programs
Rewrites a program in a single pass before it is run on the machine:
- Restores rapid moves (G1 travel above the feed height becomes G0)
- Adds a dwell after every spindle start (M3)
- Reads the first tool comment (tool name + ZMIN) for the Z limit check
"""

# Standard library
import argparse
import re
from dataclasses import dataclass
from typing import List, Optional

# Third-party
from termcolor import colored

# Local modules
from gcode_buffer import LineBuffer
from gcode_line import (CUTTING_MOTION, RAPID_MOTION, LineInfo, classify_line,
                        format_number, replace_motion_mode)
from pendant_config import PendantConfig, load_pendant_config


# Tool comment, e.g. "(T1 D=6 CR=0 - ZMIN=-10.5 - flat end mill)"
TOOL_COMMENT_PATTERN = re.compile(r'^\(T\d+')
TOOL_NUMBER_PATTERN = re.compile(r'^T\d+\s*')
ZMIN_PATTERN = re.compile(r'ZMIN=([-+]?(?:\d+(?:\.\d*)?|\.\d+))')
ZMIN_SEGMENT_PATTERN = re.compile(r'\s*(?:-\s*)?ZMIN=\S*')

LOG_TAG = colored('[ pendant ]', 'red')


@dataclass(frozen=True)
class ToolInfo:
    """First tool referenced by a program"""
    tool_name: str
    min_z: Optional[float] = None


@dataclass
class RewriteState:
    """Modal state tracked while walking the program"""
    current_motion_mode: Optional[int] = None
    current_z: Optional[float] = None
    current_feed: Optional[float] = None
    feed_z: Optional[float] = None
    pending_feed_restore: bool = False

    def update(self, info: LineInfo) -> Optional[float]:
        """
        Apply the words found on one line (absent words keep their value).

        Returns:
            Z before this line
        """
        last_z = self.current_z
        if info.motion_mode is not None:
            self.current_motion_mode = info.motion_mode
        if info.z is not None:
            self.current_z = info.z
        if info.feed is not None:
            self.current_feed = info.feed
        return last_z


@dataclass
class OptimizeResult:
    """Outcome of one optimizer pass"""
    changed: bool = False
    already_optimized: bool = False
    rapid_moves: int = 0
    dwells_inserted: int = 0
    feed_restores: int = 0
    operations: int = 0
    message: Optional[str] = None

    @property
    def optimized(self) -> bool:
        """True if any G1 move was promoted to a rapid"""
        return self.rapid_moves > 0


class SmartGCodeOptimizer:
    def __init__(self, config: Optional[PendantConfig] = None):
        """
        Initialize the optimizer

        Args:
            config: Pendant configuration (defaults if None)
        """
        self.config = config or PendantConfig()
        self.spindle_start_delay = self.config.spindle_start_delay  # Seconds, 0 disables
        self.dwell_command = self.config.dwell_command
        self.block_start_marker = self.config.block_start_marker
        self.done_tag = self.config.done_tag

    @property
    def done_marker(self) -> str:
        return self.block_start_marker[:1] + self.done_tag + self.block_start_marker[1:]

    def _is_block_start(self, line: str) -> bool:
        return line.startswith(self.block_start_marker) or line.startswith(self.done_marker)

    def _mark_processed(self, doc: LineBuffer) -> Optional[bool]:
        """
        Tag the first operation marker so the program is only optimized once.

        Returns:
            True if the marker was tagged, False if the program was already
            optimized, None if the program has no operation marker
        """
        for row in range(doc.get_length()):
            line = doc.get_line(row)
            if line.startswith(self.block_start_marker):
                doc.replace(row, 1, 1, self.done_tag)
                return True
            if line.startswith(self.done_marker):
                return False
        return None

    def _dwell_line(self) -> str:
        return f"{self.dwell_command} P{self.spindle_start_delay:.0f}"

    def _feed_restore_line(self, feed: Optional[float]) -> str:
        # Without a known feed only the G1 mode is restored
        if feed is None:
            return f"G{CUTTING_MOTION}"
        return f"G{CUTTING_MOTION} F{format_number(feed)}"

    def optimize(self, doc: LineBuffer) -> OptimizeResult:
        """
        Optimize the program in place.

        Args:
            doc: Program to rewrite

        Returns:
            OptimizeResult describing the edits (no edits if the program was
            already optimized or has no operation marker)
        """
        result = OptimizeResult()

        marked = self._mark_processed(doc)
        if marked is None:
            return result
        if not marked:
            result.already_optimized = True
            return result
        result.changed = True

        state = RewriteState()
        row = 0
        # The document grows as lines are inserted, so its length is re-read every step
        while row < doc.get_length():
            line = doc.get_line(row)

            if self._is_block_start(line):
                # New operation - reacquire the feed height
                state.feed_z = None
                result.operations += 1

            info = classify_line(line)
            if info.is_comment:
                row += 1
                continue

            if self.spindle_start_delay > 0 and info.has_spindle_start:
                doc.insert_full_lines(row + 1, [self._dwell_line()])
                result.dwells_inserted += 1
                row += 2  # skip the spindle line and the dwell
                continue

            last_z = state.update(info)
            if not info.is_move:
                row += 1
                continue

            mode = state.current_motion_mode
            z = state.current_z

            if (mode == CUTTING_MOTION and state.feed_z is None
                    and z is not None and last_z is not None and z < last_z):
                # First G1 that moves Z down - use as feed height
                state.feed_z = z
            elif (mode == CUTTING_MOTION and state.feed_z is not None
                    and z is not None and last_z is not None
                    and z >= state.feed_z and z >= last_z):
                # G1 at or above the feed height - convert to G0
                doc.replace(row, 0, len(line), replace_motion_mode(line, RAPID_MOTION))
                state.pending_feed_restore = True
                result.rapid_moves += 1
            elif state.pending_feed_restore:
                # Back to cutting - restore G1 and the feed rate
                doc.insert_full_lines(row, [self._feed_restore_line(state.current_feed)])
                state.pending_feed_restore = False
                result.feed_restores += 1
                row += 1  # current line moved down by one

            row += 1

        if result.optimized:
            result.message = "The G-code was optimized"
            print(f"{LOG_TAG} {colored(result.message, 'blue')}")

        return result


def get_tool_info(doc: LineBuffer) -> Optional[ToolInfo]:
    """
    Find the first tool comment and parse the tool name and ZMIN value.

    Args:
        doc: Program to scan

    Returns:
        ToolInfo, or None if the program has no tool comment
    """
    for row in range(doc.get_length()):
        line = doc.get_line(row).strip()
        if not TOOL_COMMENT_PATTERN.match(line):
            continue

        body = line[1:]
        if body.endswith(')'):
            body = body[:-1]

        tool_name = TOOL_NUMBER_PATTERN.sub('', body, count=1)
        tool_name = ZMIN_SEGMENT_PATTERN.sub('', tool_name).strip()

        match = ZMIN_PATTERN.search(body)
        min_z = float(match.group(1)) if match else None
        return ToolInfo(tool_name=tool_name, min_z=min_z)

    return None


def exceeds_min_z(tool_info: ToolInfo, z_offset: float, machine_min_z: Optional[float]) -> bool:
    """
    Check whether the deepest cut goes below the machine's Z limit.

    Args:
        tool_info: Tool info from get_tool_info
        z_offset: Current work offset of the Z axis (machine coords)
        machine_min_z: Lowest reachable Z, or None if the check is disabled

    Returns:
        True if the program would go below the limit
    """
    if machine_min_z is None or tool_info.min_z is None:
        return False
    return tool_info.min_z + z_offset < machine_min_z


def optimize_gcode_text(text: str, config: Optional[PendantConfig] = None):
    """Optimize program text, returning (new_text, OptimizeResult)"""
    doc = LineBuffer.from_text(text)
    result = SmartGCodeOptimizer(config).optimize(doc)
    return doc.text, result


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description='SmartGCode - optimize Fusion 360 G-code before running it')
    parser.add_argument('input_gcode', help='Input G-code file')
    parser.add_argument('output_gcode', nargs='?', default=None,
                        help='Output G-code file (default: rewrite the input file)')
    parser.add_argument('--config', type=str, default=None,
                        help='Pendant config YAML file')
    parser.add_argument('--spindle-delay', type=int, default=None,
                        help='Seconds to dwell after M3, 0 disables (default: from config, 3)')
    parser.add_argument('--min-z', type=float, default=None,
                        help='Machine minimum Z for the ZMIN check (default: from config, -102)')
    parser.add_argument('--no-min-z', action='store_true',
                        help='Disable the ZMIN check')
    parser.add_argument('--z-offset', type=float, default=0.0,
                        help='Current Z work offset in machine coordinates (default: 0)')

    args = parser.parse_args(argv)

    config = load_pendant_config(args.config)
    optimizer = SmartGCodeOptimizer(config)
    if args.spindle_delay is not None:
        optimizer.spindle_start_delay = max(args.spindle_delay, 0)

    machine_min_z = config.machine_min_z
    if args.min_z is not None:
        machine_min_z = args.min_z
    if args.no_min_z:
        machine_min_z = None

    print(f"Loading {args.input_gcode}...")
    doc = LineBuffer.from_file(args.input_gcode)
    original_length = doc.get_length()
    result = optimizer.optimize(doc)

    output_path = args.output_gcode or args.input_gcode
    if result.changed or output_path != args.input_gcode:
        doc.save(output_path)

    if result.already_optimized:
        print("Program was already optimized - no changes made")
    elif not result.changed:
        print("No Fusion 360 operation marker found - no changes made")
    else:
        print(f"\nOptimized {result.operations} operation(s):")
        print(f"  Rapid moves restored: {result.rapid_moves}")
        print(f"  Feed restores added: {result.feed_restores}")
        print(f"  Spindle dwells added: {result.dwells_inserted}")
        print(f"  Lines: {original_length} -> {doc.get_length()}")

    tool_info = get_tool_info(doc)
    if tool_info is None:
        print("\nNo tool comment found - skipping ZMIN check")
    else:
        print(f"\nTool: {tool_info.tool_name}")
        if tool_info.min_z is not None:
            print(f"  ZMIN: {tool_info.min_z}")
        if exceeds_min_z(tool_info, args.z_offset, machine_min_z):
            print(colored(f"  ⚠️  Program exceeds the Z axis limit ({machine_min_z})", 'red'))

    print(f"\nG-code written to: {output_path}")


if __name__ == '__main__':
    main()
