#!/usr/bin/env python3

from __future__ import annotations

import argparse
import sys
import time
from typing import Optional

import cv2

try:
    import keyboard
except Exception:
    keyboard = None

from gazecursor.calibration import directional_plan, grid_plan
from gazecursor.config import DEFAULT_REFERENCE_FACE_SIZE, DEFAULT_SMOOTHING, EngineConfig
from gazecursor.cursor_output import CursorOutput, read_screen_size
from gazecursor.engine import GazeEngine
from gazecursor.errors import MappingFormatError
from gazecursor.event_bus import SocketEventBus
from gazecursor.eye_metrics import EYE_MODES
from gazecursor.face_mesh_backend import FaceLandmarkSource
from gazecursor.mapping import FallbackMapping, Mapping, parse_affine_mapping, parse_bounds_mapping


SCREEN_POLL_S = 1.0
HOTKEY_DEBOUNCE_S = 0.35
SMOOTHING_STEP = 0.01


def build_initial_mapping(args: argparse.Namespace) -> Optional[Mapping]:
    try:
        mapping = parse_bounds_mapping(args.bounds) or parse_affine_mapping(args.affine)
    except MappingFormatError as exc:
        print(f"[Tracker] invalid mapping override: {exc}. using fallback mapping.")
        return None
    if mapping is not None:
        print(f"[Mapping] using static {mapping.kind} mapping from the command line")
    return mapping


class GazeCursorService:
    def __init__(self, args: argparse.Namespace) -> None:
        self.args = args
        self.config = EngineConfig.from_args(args)
        self.event_bus = SocketEventBus(host=args.host, port=args.port)
        self.landmarks = FaceLandmarkSource(args.face_landmarker_task)
        self.screen_width, self.screen_height = read_screen_size()
        self.engine = GazeEngine(
            self.screen_width,
            self.screen_height,
            config=self.config,
            sink=self.event_bus,
            emit_interval_ms=args.emit_interval_ms,
            auto_baseline=args.auto_baseline,
            fallback=FallbackMapping(args.fallback_half_range_x, args.fallback_half_range_y),
        )
        mapping = build_initial_mapping(args)
        if mapping is not None:
            self.engine.set_mapping(mapping)
        self.cursor = CursorOutput(enabled=args.cursor_move, debug=args.debug)
        self.overlay = None
        if args.debug:
            from gazecursor.overlay import DebugOverlay

            self.overlay = DebugOverlay()

        self._keyboard_enabled = bool(keyboard is not None and sys.platform != "darwin")
        self._last_hotkey = 0.0
        self._last_screen_poll = time.monotonic()

        self.cap = cv2.VideoCapture(args.camera)
        if not self.cap.isOpened():
            raise RuntimeError(f"Unable to open camera {args.camera}")
        try:
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            self.cap.set(cv2.CAP_PROP_FPS, 30)
        except cv2.error:
            pass

    def _poll_screen_size(self) -> None:
        now = time.monotonic()
        if now - self._last_screen_poll < SCREEN_POLL_S:
            return
        self._last_screen_poll = now
        width, height = read_screen_size()
        if (width, height) != (self.screen_width, self.screen_height):
            self.screen_width, self.screen_height = width, height
            self.engine.resize(width, height)
            print(f"[Tracker] viewport resized to {width}x{height}")

    def _read_key(self) -> int:
        if self.overlay is None:
            return 255
        return cv2.waitKey(1) & 0xFF

    def _global_hotkey(self) -> Optional[str]:
        if not self._keyboard_enabled or keyboard is None:
            return None
        if time.monotonic() - self._last_hotkey < HOTKEY_DEBOUNCE_S:
            return None
        for name in ("f7", "f8", "f9", "f10"):
            try:
                pressed = keyboard.is_pressed(name)
            except Exception:
                return None
            if pressed:
                self._last_hotkey = time.monotonic()
                return name
        return None

    def _start_calibration(self, kind: str) -> None:
        if kind == "grid":
            plan = grid_plan(
                rows=self.args.grid_rows,
                cols=self.args.grid_cols,
                samples_per_target=self.args.grid_samples,
            )
        else:
            plan = directional_plan(collect_s=self.args.collect_seconds)
        if not self.engine.start_calibration(plan):
            print("[Calibration] already running; start request ignored")

    def _set_status(self, text: str) -> None:
        if self.overlay is not None:
            self.overlay.status = text

    def handle_key(self, key: int, hotkey: Optional[str]) -> bool:
        """Apply one command; returns False when the loop should stop."""
        cfg = self.config
        if key in (ord("q"), ord("Q"), 27):
            return False
        if key == ord("c") or hotkey == "f8":
            self._start_calibration("directional")
        elif key == ord("g") or hotkey == "f9":
            self._start_calibration("grid")
        elif key == ord("r") or hotkey == "f10":
            if self.engine.recenter():
                self._set_status("Baseline recentered to the screen midpoint.")
        elif key == ord("x"):
            self.engine.cancel_calibration()
        elif key == ord("m"):
            cfg.mirror = not cfg.mirror
        elif key == ord("i"):
            cfg.invert_y = not cfg.invert_y
        elif key in (ord("1"), ord("2"), ord("3")):
            cfg.set_eye_mode(EYE_MODES[key - ord("1")])
        elif key == ord("["):
            cfg.nudge_smoothing(-SMOOTHING_STEP)
        elif key == ord("]"):
            cfg.nudge_smoothing(SMOOTHING_STEP)
        elif hotkey == "f7":
            self.cursor.toggle()
        return True

    def run(self) -> None:
        self.event_bus.start()
        print(
            "[Tracker] Gaze cursor running. c=calibrate g=grid r=recenter x=cancel q=quit | "
            f"mirror={'on' if self.config.mirror else 'off'}, "
            f"invert_y={'on' if self.config.invert_y else 'off'}, "
            f"eye_mode={self.config.eye_mode}, landmarks={self.landmarks.backend}, "
            f"cursor={self.cursor.backend_type}"
        )
        try:
            running = True
            while running:
                ret, frame = self.cap.read()
                if not ret:
                    print("[Tracker] camera frame missing; stopping")
                    break

                self._poll_screen_size()
                frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                face_landmarks = self.landmarks.detect(frame_rgb)
                result = self.engine.process_frame(face_landmarks)

                if result.calibration is not None:
                    self._set_status(result.calibration.message)
                if result.processed:
                    x, y = result.pointer
                    self.cursor.move(x, y, self.screen_width, self.screen_height)
                if self.overlay is not None:
                    self.overlay.show(frame, self.engine, result)

                running = self.handle_key(self._read_key(), self._global_hotkey())
        except KeyboardInterrupt:
            pass
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        try:
            self.cap.release()
        except cv2.error:
            pass
        if self.overlay is not None:
            self.overlay.close()
        self.event_bus.stop()
        self.landmarks.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drive an on-screen pointer from iris landmarks")
    parser.add_argument("--camera", type=int, default=0, help="camera index")
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--emit-interval-ms", type=int, default=16)
    parser.add_argument("--debug", action="store_true", help="Show camera and viewport debug windows.")
    parser.add_argument("--eye-mode", choices=list(EYE_MODES), default="both")
    parser.add_argument(
        "--mirror",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Flip horizontal motion so the pointer follows a mirrored self-view.",
    )
    parser.add_argument("--invert-y", action=argparse.BooleanOptionalAction, default=False)
    parser.add_argument("--smoothing", type=float, default=DEFAULT_SMOOTHING, help="EMA weight in (0, 1].")
    parser.add_argument(
        "--reference-face-size",
        type=float,
        default=DEFAULT_REFERENCE_FACE_SIZE,
        help="Eye span (normalized image units) at which the depth scale is 1.",
    )
    parser.add_argument(
        "--auto-baseline",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Seed the neutral offset from the first valid frame.",
    )
    parser.add_argument("--bounds", type=str, default="", help="Static bounds mapping minX,maxX,minY,maxY.")
    parser.add_argument("--affine", type=str, default="", help="Static affine mapping aX,bX,aY,bY.")
    parser.add_argument("--fallback-half-range-x", type=float, default=0.28)
    parser.add_argument("--fallback-half-range-y", type=float, default=0.22)
    parser.add_argument("--collect-seconds", type=float, default=1.6, help="Directional sampling time per target.")
    parser.add_argument("--grid-rows", type=int, default=3)
    parser.add_argument("--grid-cols", type=int, default=3)
    parser.add_argument("--grid-samples", type=int, default=30, help="Grid samples collected per target.")
    parser.add_argument("--cursor-move", action="store_true", help="Drive OS cursor from gaze coordinates.")
    parser.add_argument(
        "--face-landmarker-task",
        type=str,
        default="",
        help="Path to mediapipe face_landmarker.task when using task-based mediapipe builds.",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main() -> None:
    args = parse_args()
    GazeCursorService(args).run()


if __name__ == "__main__":
    main()
