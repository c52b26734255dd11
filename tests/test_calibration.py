import unittest

from gazecursor.calibration import (
    DEFAULT_BOUNDS,
    CalibrationController,
    CalibrationPhase,
    CalibrationPlan,
    CalibrationTarget,
    bounds_from_averages,
    directional_plan,
    fit_axis,
    grid_plan,
)
from gazecursor.errors import DegenerateCalibration
from gazecursor.mapping import AffineMapping, BoundsMapping


def two_point_plan(samples=3):
    return CalibrationPlan(
        kind="grid",
        targets=(
            CalibrationTarget("top_left", "Look at the top-left dot", 0.0, 0.0),
            CalibrationTarget("bottom_right", "Look at the bottom-right dot", 1.0, 1.0),
        ),
        warmup_s=0.5,
        collect_samples=samples,
    )


class DirectionalRun:
    """Drives a directional session with explicit timestamps (warmup 0.45 s, collect 1.6 s)."""

    def __init__(self, controller):
        self.controller = controller
        self.t = 0.0

    def target(self, sample):
        self.t += 0.5  # warmup expires, first sample recorded
        self.controller.update(sample, self.t)
        self.t += 0.5
        self.controller.update(sample, self.t)
        self.t += 0.5
        self.controller.update(sample, self.t)
        self.t += 1.0  # collect window over
        return self.controller.update(sample, self.t)


class TestFitAxis(unittest.TestCase):
    def test_two_point_fit(self):
        a, b = fit_axis([-0.3, 0.3], [0.0, 1.0])
        self.assertAlmostEqual(a, 1.667, places=3)
        self.assertAlmostEqual(b, 0.5)
        self.assertAlmostEqual(a * 0.0 + b, 0.5)

    def test_least_squares_recovers_noiseless_line(self):
        raw = [-0.2, -0.1, 0.0, 0.1, 0.2]
        screen = [2.0 * r + 0.4 for r in raw]
        a, b = fit_axis(raw, screen)
        self.assertAlmostEqual(a, 2.0)
        self.assertAlmostEqual(b, 0.4)

    def test_identical_offsets_are_degenerate(self):
        with self.assertRaises(DegenerateCalibration):
            fit_axis([0.1, 0.1], [0.0, 1.0])
        with self.assertRaises(DegenerateCalibration):
            fit_axis([0.1], [0.5])


class TestPlans(unittest.TestCase):
    def test_directional_plan_order(self):
        plan = directional_plan()
        self.assertEqual([t.key for t in plan.targets], ["left", "right", "up", "down"])
        self.assertEqual(plan.collect_s, 1.6)
        self.assertIsNone(plan.collect_samples)

    def test_grid_includes_center_and_corners(self):
        plan = grid_plan(rows=3, cols=3, margin=0.1)
        positions = {(round(t.screen_x, 6), round(t.screen_y, 6)) for t in plan.targets}
        self.assertEqual(len(plan.targets), 9)
        self.assertIn((0.5, 0.5), positions)
        for corner in ((0.1, 0.1), (0.9, 0.1), (0.1, 0.9), (0.9, 0.9)):
            self.assertIn(corner, positions)

    def test_invalid_plans(self):
        with self.assertRaises(ValueError):
            grid_plan(rows=1, cols=1)
        with self.assertRaises(ValueError):
            CalibrationPlan(kind="grid", targets=(), warmup_s=0.1, collect_samples=3)
        with self.assertRaises(ValueError):
            CalibrationPlan(
                kind="grid",
                targets=two_point_plan().targets,
                warmup_s=0.1,
                collect_s=1.0,
                collect_samples=3,
            )


class TestBoundsFromAverages(unittest.TestCase):
    def test_floor_guarantees_non_degenerate_bounds(self):
        averages = {"left": (0.02, 0.0), "right": (-0.01, 0.0), "up": (0.0, 0.0), "down": (0.0, 0.01)}
        bounds = bounds_from_averages(averages)
        self.assertEqual(bounds, BoundsMapping(min_x=-0.1, max_x=0.1, min_y=-0.08, max_y=0.08))

    def test_missing_target_uses_previous_bound(self):
        bounds = bounds_from_averages({"left": (-0.35, 0.0)})
        self.assertEqual(bounds.min_x, -0.35)
        self.assertEqual(bounds.max_x, DEFAULT_BOUNDS.max_x)
        self.assertEqual(bounds.min_y, DEFAULT_BOUNDS.min_y)


class TestCalibrationController(unittest.TestCase):
    def test_directional_session(self):
        controller = CalibrationController()
        self.assertEqual(controller.phase, CalibrationPhase.IDLE)
        self.assertTrue(controller.start(directional_plan(), now=0.0))
        self.assertEqual(controller.phase, CalibrationPhase.WARMUP)

        controller.update((9.0, 9.0), 0.2)
        self.assertEqual(controller.progress().samples, 0)

        run = DirectionalRun(controller)
        self.assertIsNone(run.target((-0.3, 0.01)))
        self.assertEqual(controller.phase, CalibrationPhase.WARMUP)
        self.assertEqual(controller.progress().target.key, "right")
        left_x, left_y = controller.session.averages["left"]
        self.assertAlmostEqual(left_x, -0.3)
        self.assertAlmostEqual(left_y, 0.01)
        self.assertEqual(len(controller.session.samples_by_target["left"]), 3)

        self.assertIsNone(run.target((0.32, 0.0)))
        self.assertIsNone(run.target((0.0, -0.2)))
        result = run.target((0.0, 0.26))

        self.assertIsNotNone(result)
        self.assertTrue(result.success)
        self.assertIsInstance(result.mapping, BoundsMapping)
        self.assertAlmostEqual(result.mapping.min_x, -0.3)
        self.assertAlmostEqual(result.mapping.max_x, 0.32)
        self.assertAlmostEqual(result.mapping.min_y, -0.2)
        self.assertAlmostEqual(result.mapping.max_y, 0.26)
        self.assertEqual(controller.phase, CalibrationPhase.IDLE)
        self.assertFalse(controller.active)
        self.assertIs(controller.last_result, result)

    def test_start_while_active_is_ignored(self):
        controller = CalibrationController()
        plan = directional_plan()
        self.assertTrue(controller.start(plan, now=0.0))
        session = controller.session
        self.assertFalse(controller.start(grid_plan(), now=1.0))
        self.assertIs(controller.session, session)

    def test_skipped_frames_still_advance_timing(self):
        controller = CalibrationController()
        controller.start(directional_plan(), now=0.0)
        controller.update(None, 0.5)
        self.assertEqual(controller.phase, CalibrationPhase.COLLECTING)
        controller.update(None, 2.5)
        self.assertEqual(controller.progress().target.key, "right")
        self.assertNotIn("left", controller.session.averages)

    def test_uses_injected_clock(self):
        now = [10.0]
        controller = CalibrationController(clock=lambda: now[0])
        controller.start(directional_plan())
        now[0] = 10.5
        controller.update((0.1, 0.1))
        self.assertEqual(controller.phase, CalibrationPhase.COLLECTING)

    def test_grid_session_fits_affine(self):
        controller = CalibrationController()
        controller.start(two_point_plan(samples=3), now=0.0)
        controller.update((-0.3, -0.2), 0.6)
        controller.update(None, 0.7)
        controller.update((-0.3, -0.2), 0.8)
        self.assertIsNone(controller.update((-0.3, -0.2), 0.9))
        self.assertEqual(controller.progress().target.key, "bottom_right")
        controller.update((0.3, 0.2), 1.5)
        controller.update((0.3, 0.2), 1.6)
        result = controller.update((0.3, 0.2), 1.7)

        self.assertTrue(result.success)
        self.assertIsInstance(result.mapping, AffineMapping)
        self.assertAlmostEqual(result.mapping.a_x, 1.0 / 0.6)
        self.assertAlmostEqual(result.mapping.b_x, 0.5)
        self.assertAlmostEqual(result.mapping.a_y, 2.5)
        self.assertAlmostEqual(result.mapping.b_y, 0.5)
        self.assertAlmostEqual(result.mapping.apply(0.0, 0.0)[0], 0.5)

    def test_degenerate_grid_reports_failure(self):
        controller = CalibrationController()
        controller.start(two_point_plan(samples=1), now=0.0)
        controller.update((0.05, 0.05), 0.6)
        result = controller.update((0.05, 0.05), 1.2)
        self.assertIsNotNone(result)
        self.assertFalse(result.success)
        self.assertIsNone(result.mapping)
        self.assertIn("failed", result.message)
        self.assertEqual(controller.phase, CalibrationPhase.IDLE)

    def test_cancel(self):
        controller = CalibrationController()
        self.assertFalse(controller.cancel())
        controller.start(directional_plan(), now=0.0)
        self.assertTrue(controller.cancel())
        self.assertIsNone(controller.progress())
        self.assertIsNone(controller.update((0.1, 0.1), 5.0))


if __name__ == "__main__":
    unittest.main()
