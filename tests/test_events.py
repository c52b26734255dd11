import unittest

from gazecursor.event_bus import EventEmitter
from tests.helpers import RecordingSink


class TestEventEmitter(unittest.TestCase):
    def test_pointer_envelope(self):
        sink = RecordingSink()
        EventEmitter(sink, emit_interval_ms=0).pointer(750.4, 400.0, 1000, 800, calibrated=True)
        message = sink.messages[0]
        self.assertEqual(message["source"], "gaze")
        self.assertEqual(message["intent"], "gaze_target")
        self.assertEqual(message["confidence"], 0.98)
        self.assertEqual(message["payload"]["target_x"], 750)
        self.assertAlmostEqual(message["payload"]["x_norm"], 0.7504)
        self.assertAlmostEqual(message["payload"]["y_norm"], 0.5)
        self.assertTrue(message["payload"]["calibrated"])

    def test_fallback_pointer_is_marked_uncalibrated(self):
        sink = RecordingSink()
        EventEmitter(sink, emit_interval_ms=0).pointer(10.0, 10.0, 100, 100, calibrated=False)
        self.assertEqual(sink.messages[0]["confidence"], 0.6)
        self.assertFalse(sink.messages[0]["payload"]["calibrated"])

    def test_per_frame_events_are_throttled(self):
        sink = RecordingSink()
        emitter = EventEmitter(sink, emit_interval_ms=60_000)
        emitter.pointer(1.0, 1.0, 10, 10, calibrated=False)
        emitter.pointer(2.0, 2.0, 10, 10, calibrated=False)
        emitter.noop("no_face")
        emitter.calibration_progress("warmup", 0, 4, "left", "Look left", 0)
        emitter.calibration_complete(True, "done", {"kind": "bounds"})
        self.assertEqual(
            [m["intent"] for m in sink.messages],
            ["gaze_target", "calibration_progress", "calibration_complete"],
        )

    def test_without_sink_is_silent(self):
        emitter = EventEmitter(None, emit_interval_ms=0)
        emitter.pointer(1.0, 1.0, 10, 10, calibrated=True)
        emitter.calibration_complete(False, "failed", None)


if __name__ == "__main__":
    unittest.main()
