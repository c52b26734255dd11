#!/usr/bin/env python3

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from gazecursor.calibration import CalibrationProgress
from gazecursor.engine import FrameResult, GazeEngine


CANVAS_WIDTH = 480

COLOR_OK = (0, 255, 0)
COLOR_WARN = (0, 0, 255)
COLOR_TEXT = (230, 230, 230)
COLOR_TARGET = (0, 200, 255)
COLOR_POINTER = (255, 140, 60)


def _put_text(frame: np.ndarray, text: str, row: int, color: tuple[int, int, int] = COLOR_TEXT) -> None:
    cv2.putText(frame, text, (20, 28 + row * 22), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)


def status_lines(
    engine: GazeEngine, result: FrameResult, status: Optional[str] = None
) -> list[tuple[str, tuple[int, int, int]]]:
    """Text rows for the camera window, top to bottom, with their colors."""
    cfg = engine.config
    lines: list[tuple[str, tuple[int, int, int]]] = []
    if result.processed and result.offset is not None:
        x, y = result.pointer
        lines.append((f"Screen: ({int(x)}, {int(y)})", COLOR_OK))
        lines.append((f"offset: {result.offset[0]:+.3f}, {result.offset[1]:+.3f}", COLOR_TEXT))
        if result.metrics is not None:
            lines.append((f"faceSize: {result.metrics.face_scale:.4f}", COLOR_TEXT))
    else:
        lines.append((f"Skipped: {result.reason}", COLOR_WARN))
    recent = engine.state.skip_reasons
    if recent:
        lines.append((f"recent skips: {', '.join(recent)}", COLOR_WARN))
    lines.append((f"depthScale: {result.depth_scale:.3f}", COLOR_TEXT))
    lines.append(
        (
            f"eye={cfg.eye_mode} mirror={'on' if cfg.mirror else 'off'} "
            f"invertY={'on' if cfg.invert_y else 'off'} smooth={cfg.effective_smoothing():.3f}",
            COLOR_TEXT,
        )
    )
    lines.append((f"mapping: {engine.mapping.kind}", COLOR_OK if engine.calibrated else COLOR_WARN))

    progress = engine.state.calibration.progress()
    if progress is not None:
        lines.append((progress_text(progress), COLOR_TARGET))
    elif status:
        lines.append((status, COLOR_TARGET))
    return lines


def progress_text(progress: CalibrationProgress) -> str:
    return (
        f"[{progress.step + 1}/{progress.total}] {progress.target.message} "
        f"({progress.phase.value}, {progress.samples} samples)"
    )


class DebugOverlay:
    """Camera frame with status text plus a scaled-down viewport canvas."""

    camera_window = "Gaze Cursor"
    canvas_window = "Gaze Cursor Viewport"

    def __init__(self) -> None:
        self.status: Optional[str] = None
        for name in (self.camera_window, self.canvas_window):
            try:
                cv2.namedWindow(name, cv2.WINDOW_AUTOSIZE)
            except cv2.error:
                pass

    def draw_status(self, frame: np.ndarray, engine: GazeEngine, result: FrameResult) -> None:
        for row, (text, color) in enumerate(status_lines(engine, result, self.status)):
            _put_text(frame, text, row, color)

    def draw_canvas(self, engine: GazeEngine) -> np.ndarray:
        state = engine.state
        scale = CANVAS_WIDTH / float(state.viewport_width)
        height = max(1, int(round(state.viewport_height * scale)))
        canvas = np.zeros((height, CANVAS_WIDTH, 3), dtype=np.uint8)

        progress = state.calibration.progress()
        if progress is not None:
            tx = int(round(progress.target.screen_x * (CANVAS_WIDTH - 1)))
            ty = int(round(progress.target.screen_y * (height - 1)))
            radius = 10 if progress.phase.value == "collecting" else 6
            cv2.circle(canvas, (tx, ty), radius, COLOR_TARGET, -1)

        px, py = state.pointer
        cv2.circle(canvas, (int(px * scale), int(py * scale)), 8, COLOR_POINTER, 2)
        return canvas

    def show(self, frame: np.ndarray, engine: GazeEngine, result: FrameResult) -> None:
        self.draw_status(frame, engine, result)
        cv2.imshow(self.camera_window, frame)
        cv2.imshow(self.canvas_window, self.draw_canvas(engine))

    def close(self) -> None:
        try:
            cv2.destroyAllWindows()
        except cv2.error:
            pass
