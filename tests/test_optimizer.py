"""Unit tests for the single-pass G-code optimizer."""
import contextlib
import io
import shutil
import tempfile
import unittest
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gcode_buffer import LineBuffer
from gcode_line import classify_line
from pendant_config import PendantConfig
from smart_gcode import RewriteState, SmartGCodeOptimizer, main, optimize_gcode_text
from programs import DONE_MARKER, FUSION_PROGRAM, FUSION_PROGRAM_OPTIMIZED, MARKER


def optimize_lines(lines, spindle_start_delay=3):
    """Run the optimizer on a list of lines, returning (new lines, result)"""
    doc = LineBuffer(lines)
    optimizer = SmartGCodeOptimizer()
    optimizer.spindle_start_delay = spindle_start_delay
    result = optimizer.optimize(doc)
    return doc.lines, result


class TestOperationMarker(unittest.TestCase):
    """Test marking and the idempotence guard"""

    def test_first_marker_is_tagged(self):
        lines, result = optimize_lines([MARKER, "G1 Z5 F100"])
        self.assertEqual(lines[0], DONE_MARKER)
        self.assertTrue(result.changed)

    def test_program_without_marker_is_untouched(self):
        program = ["G21", "S1000 M3", "G1 Z5 F100", "G1 Z1", "G1 Z5"]
        lines, result = optimize_lines(program)
        self.assertEqual(lines, program)
        self.assertFalse(result.changed)
        self.assertFalse(result.already_optimized)

    def test_already_optimized_program_is_untouched(self):
        lines, result = optimize_lines(FUSION_PROGRAM_OPTIMIZED)
        self.assertEqual(lines, FUSION_PROGRAM_OPTIMIZED)
        self.assertTrue(result.already_optimized)
        self.assertFalse(result.changed)

    def test_second_run_is_a_no_op(self):
        once, _ = optimize_lines(FUSION_PROGRAM)
        twice, result = optimize_lines(once)
        self.assertEqual(once, twice)
        self.assertTrue(result.already_optimized)

    def test_only_first_marker_is_tagged(self):
        lines, _ = optimize_lines([MARKER, "G1 Z5 F100", MARKER, "G1 Z6"])
        self.assertEqual(lines[0], DONE_MARKER)
        self.assertEqual(lines[2], MARKER)

    def test_scenario_without_known_start_height(self):
        # No Z before the first G1, so no feed height is ever established
        program = ["(When using Fusion 360 for Personal Use...)", "G1 Z-5 F100", "G1 Z-5 X10", "G1 Z0 X20"]
        lines, result = optimize_lines(program)
        self.assertEqual(lines[0], "(OPTIMIZED: When using Fusion 360 for Personal Use...)")
        self.assertEqual(lines[1:], program[1:])
        self.assertFalse(result.optimized)


class TestFusionProgram(unittest.TestCase):
    """Test a full Fusion 360 operation"""

    def setUp(self):
        self.lines, self.result = optimize_lines(FUSION_PROGRAM)

    def test_matches_expected_output(self):
        self.assertEqual(self.lines, FUSION_PROGRAM_OPTIMIZED)

    def test_statistics(self):
        self.assertEqual(self.result.rapid_moves, 3)
        self.assertEqual(self.result.feed_restores, 1)
        self.assertEqual(self.result.dwells_inserted, 1)
        self.assertEqual(self.result.operations, 1)
        self.assertTrue(self.result.optimized)
        self.assertEqual(self.result.message, "The G-code was optimized")

    def test_line_count_grows_by_inserted_lines(self):
        inserted = self.result.dwells_inserted + self.result.feed_restores
        self.assertEqual(len(self.lines), len(FUSION_PROGRAM) + inserted)

    def test_tool_change_and_program_end_untouched(self):
        self.assertIn("T1 M6", self.lines)
        self.assertIn("M30", self.lines)
        self.assertEqual(self.lines[self.lines.index("M30") + 1], "%")

    def test_text_helper(self):
        text, result = optimize_gcode_text("\n".join(FUSION_PROGRAM) + "\n")
        self.assertEqual(text, "\n".join(FUSION_PROGRAM_OPTIMIZED) + "\n")
        self.assertEqual(result.rapid_moves, 3)


class TestRapidPromotion(unittest.TestCase):
    """Test the G1 -> G0 rules"""

    def test_move_up_after_plunge_becomes_rapid(self):
        lines, _ = optimize_lines([MARKER, "G1 Z5 F100", "G1 Z-5", "G1 Z0 X20", "G1 Z-5 X30"])
        self.assertEqual(lines[1:], ["G1 Z5 F100", "G1 Z-5", "G0 Z0 X20", "G1 F100", "G1 Z-5 X30"])

    def test_move_at_feed_height_but_below_previous_z_is_not_promoted(self):
        lines, _ = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "G1 Z10", "G1 Z2"])
        self.assertEqual(lines[4:], ["G1 F500", "G1 Z2"])

    def test_line_without_g_word_is_prefixed(self):
        lines, _ = optimize_lines([MARKER, "G1 Z5 F100", "G1 Z1", "X10 Z3", "Z1"])
        self.assertEqual(lines[3:], ["G0 X10 Z3", "G1 F100", "Z1"])

    def test_feed_restore_without_known_feed(self):
        lines, _ = optimize_lines([MARKER, "G1 Z5", "G1 Z1", "G1 Z3", "G1 Z2"])
        self.assertEqual(lines[3:], ["G0 Z3", "G1", "G1 Z2"])

    def test_line_after_feed_restore_is_not_reprocessed(self):
        lines, result = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "G1 Z10", "G1 X5 Z5", "G1 Z2 F200"])
        self.assertEqual(lines[3:], ["G0 Z10", "G1 F500", "G1 X5 Z5", "G1 Z2 F200"])
        self.assertEqual(result.rapid_moves, 1)
        self.assertEqual(result.feed_restores, 1)

    def test_restore_uses_latest_feed(self):
        lines, _ = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "G1 Z10 F2000", "G1 Z2"])
        self.assertEqual(lines[3:], ["G0 Z10 F2000", "G1 F2000", "G1 Z2"])

    def test_fractional_feed_is_kept(self):
        lines, _ = optimize_lines([MARKER, "G1 Z10 F250.5", "G1 Z2", "G1 Z10", "G1 Z2"])
        self.assertIn("G1 F250.5", lines)

    def test_lines_without_motion_do_not_trigger_rules(self):
        lines, _ = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "G1 Z10", "M5", "", "G1 Z2"])
        self.assertEqual(lines[3:], ["G0 Z10", "M5", "", "G1 F500", "G1 Z2"])

    def test_arcs_are_left_alone(self):
        lines, result = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "G2 X5 Y5 I1 J0 Z10"])
        self.assertEqual(lines[3], "G2 X5 Y5 I1 J0 Z10")
        self.assertEqual(result.rapid_moves, 0)

    def test_comment_lines_are_skipped(self):
        lines, _ = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "(G1 Z10)", "G1 Z10"])
        self.assertEqual(lines[3:], ["(G1 Z10)", "G0 Z10"])

    def test_new_operation_reacquires_feed_height(self):
        program = [
            MARKER, "G1 Z10 F500", "G1 Z2", "G1 Z10", "G1 Z2",
            MARKER, "G1 Z20", "G1 Z10", "G1 Z12",
        ]
        lines, result = optimize_lines(program)
        self.assertEqual(lines, [
            DONE_MARKER, "G1 Z10 F500", "G1 Z2", "G0 Z10", "G1 F500", "G1 Z2",
            MARKER, "G1 Z20", "G1 Z10", "G0 Z12",
        ])
        self.assertEqual(result.operations, 2)

    def test_no_log_message_without_promotion(self):
        _, result = optimize_lines([MARKER, "G1 Z5 F100", "G1 Z1"])
        self.assertIsNone(result.message)
        self.assertFalse(result.optimized)


class TestSpindleDelay(unittest.TestCase):
    """Test dwell insertion after M3"""

    def test_dwell_after_spindle_start(self):
        lines, result = optimize_lines([MARKER, "S12000 M3", "G1 Z5 F100"])
        self.assertEqual(lines[1:], ["S12000 M3", "G4 P3", "G1 Z5 F100"])
        self.assertEqual(result.dwells_inserted, 1)

    def test_zero_delay_disables_dwell(self):
        lines, result = optimize_lines([MARKER, "S12000 M3", "G1 Z5 F100"], spindle_start_delay=0)
        self.assertEqual(lines[1:], ["S12000 M3", "G1 Z5 F100"])
        self.assertEqual(result.dwells_inserted, 0)

    def test_delay_from_config(self):
        config = PendantConfig({'optimizer': {'spindle_start_delay': 5}})
        doc = LineBuffer([MARKER, "M3 S8000"])
        SmartGCodeOptimizer(config).optimize(doc)
        self.assertEqual(doc.lines[2], "G4 P5")

    def test_every_spindle_start_gets_a_dwell(self):
        lines, result = optimize_lines([MARKER, "M3 S8000", "M5", "M3 S9000", "M30"])
        self.assertEqual(lines[1:], ["M3 S8000", "G4 P3", "M5", "M3 S9000", "G4 P3", "M30"])
        self.assertEqual(result.dwells_inserted, 2)

    def test_commented_spindle_start_is_ignored(self):
        lines, _ = optimize_lines([MARKER, "(M3 here)", "M30"])
        self.assertEqual(lines[1:], ["(M3 here)", "M30"])

    def test_dwell_does_not_disturb_rapid_tracking(self):
        lines, _ = optimize_lines([MARKER, "G1 Z10 F500", "G1 Z2", "G1 Z10", "S1000 M3", "G1 Z12", "G1 Z2"])
        self.assertEqual(lines[3:], ["G0 Z10", "S1000 M3", "G4 P3", "G0 Z12", "G1 F500", "G1 Z2"])


class TestRewriteState(unittest.TestCase):
    """Test sticky modal state"""

    def test_absent_words_keep_last_value(self):
        state = RewriteState()
        for line in ["G1 X1 Z5 F100", "X2", "Z3", "G0 X4"]:
            state.update(classify_line(line))
        self.assertEqual(state.current_motion_mode, 0)
        self.assertEqual(state.current_z, 3.0)
        self.assertEqual(state.current_feed, 100.0)

    def test_update_returns_previous_z(self):
        state = RewriteState()
        self.assertIsNone(state.update(classify_line("G1 Z5")))
        self.assertEqual(state.update(classify_line("G1 Z2")), 5.0)
        self.assertEqual(state.update(classify_line("X3")), 2.0)

    def test_never_specified_stays_none(self):
        state = RewriteState()
        state.update(classify_line("X1 Y2"))
        self.assertIsNone(state.current_z)
        self.assertIsNone(state.current_feed)
        self.assertIsNone(state.current_motion_mode)


class TestCommandLine(unittest.TestCase):
    """Test the smart-gcode command line entry point"""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.input_path = os.path.join(self.tmpdir, 'part.nc')
        with open(self.input_path, 'w') as f:
            f.write("\n".join(FUSION_PROGRAM) + "\n")

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _read(self, path):
        with open(path) as f:
            return f.read().splitlines()

    def test_writes_optimized_output(self):
        output_path = os.path.join(self.tmpdir, 'part_opt.nc')
        with contextlib.redirect_stdout(io.StringIO()):
            main([self.input_path, output_path])
        self.assertEqual(self._read(output_path), FUSION_PROGRAM_OPTIMIZED)
        self.assertEqual(self._read(self.input_path), FUSION_PROGRAM)

    def test_rewrites_input_in_place(self):
        with contextlib.redirect_stdout(io.StringIO()):
            main([self.input_path])
        self.assertEqual(self._read(self.input_path), FUSION_PROGRAM_OPTIMIZED)

    def test_crlf_program_keeps_line_endings(self):
        with open(self.input_path, 'wb') as f:
            f.write(("\r\n".join(FUSION_PROGRAM) + "\r\n").encode('utf-8'))
        with contextlib.redirect_stdout(io.StringIO()):
            main([self.input_path])
        with open(self.input_path, 'rb') as f:
            data = f.read().decode('utf-8')
        self.assertEqual(data, "\r\n".join(FUSION_PROGRAM_OPTIMIZED) + "\r\n")

    def test_second_run_reports_already_optimized(self):
        with contextlib.redirect_stdout(io.StringIO()):
            main([self.input_path])
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            main([self.input_path])
        self.assertIn("already optimized", out.getvalue())
        self.assertEqual(self._read(self.input_path), FUSION_PROGRAM_OPTIMIZED)


if __name__ == '__main__':
    unittest.main()
