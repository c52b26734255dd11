import unittest

from gazecursor.config import EngineConfig
from gazecursor.engine import GazeEngine
from gazecursor.eye_metrics import RIGHT_IRIS_INDEX
from gazecursor.overlay import COLOR_WARN, status_lines
from tests.helpers import EYE_WIDTH, make_face


def texts(lines):
    return [text for text, _ in lines]


class TestStatusLines(unittest.TestCase):
    def setUp(self):
        self.engine = GazeEngine(
            800, 600, config=EngineConfig(reference_face_size=EYE_WIDTH), emit_interval_ms=0
        )

    def test_recent_skip_reasons_are_listed(self):
        self.engine.process_frame(None)
        self.engine.process_frame(None)
        face = make_face()
        del face[RIGHT_IRIS_INDEX]
        result = self.engine.process_frame(face)

        lines = status_lines(self.engine, result)
        self.assertEqual(lines[0], ("Skipped: incomplete_landmarks", COLOR_WARN))
        self.assertIn(("recent skips: no_face, no_face, incomplete_landmarks", COLOR_WARN), lines)
        self.assertIn("mapping: fallback", texts(lines))

    def test_skip_history_keeps_last_five(self):
        for _ in range(7):
            self.engine.process_frame(None)
        result = self.engine.process_frame(make_face())
        rows = texts(status_lines(self.engine, result))
        self.assertTrue(rows[0].startswith("Screen: "))
        self.assertIn("recent skips: " + ", ".join(["no_face"] * 5), rows)

    def test_no_skip_row_before_any_skip(self):
        result = self.engine.process_frame(make_face())
        rows = texts(status_lines(self.engine, result, status="Baseline recentered."))
        self.assertFalse(any(row.startswith("recent skips") for row in rows))
        self.assertEqual(rows[-1], "Baseline recentered.")

    def test_calibration_progress_replaces_status(self):
        self.engine.process_frame(make_face(), now=0.0)
        self.engine.start_calibration(now=0.0)
        result = self.engine.process_frame(make_face(), now=0.1)
        rows = texts(status_lines(self.engine, result, status="stale"))
        self.assertEqual(rows[-1], "[1/4] Look to the far LEFT edge (warmup, 0 samples)")


if __name__ == "__main__":
    unittest.main()
