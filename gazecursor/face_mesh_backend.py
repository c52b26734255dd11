#!/usr/bin/env python3

from __future__ import annotations

import os
import typing as _t

import mediapipe as mp

from gazecursor.filters import now_ms


MIN_CONFIDENCE = 0.5


def _build_solutions_mesh() -> _t.Any:
    return mp.solutions.face_mesh.FaceMesh(
        static_image_mode=False,
        max_num_faces=1,
        refine_landmarks=True,
        min_detection_confidence=MIN_CONFIDENCE,
        min_tracking_confidence=MIN_CONFIDENCE,
    )


def _build_task_landmarker(model_path: str) -> tuple[_t.Any, _t.Any]:
    """Returns ``(landmarker, image_factory)`` for the tasks runtime in VIDEO mode."""
    try:
        from mediapipe.tasks.python.core.base_options import BaseOptions
        from mediapipe.tasks.python.vision import face_landmarker
        from mediapipe.tasks.python.vision.core.image import Image, ImageFormat
        from mediapipe.tasks.python.vision.core.vision_task_running_mode import (
            VisionTaskRunningMode,
        )
    except ImportError as exc:
        raise RuntimeError(f"mediapipe tasks runtime is incomplete: {exc}") from exc

    if not model_path:
        raise RuntimeError(
            "This mediapipe build only ships the tasks runtime. "
            "Pass --face-landmarker-task /path/to/face_landmarker.task"
        )
    if not os.path.exists(model_path):
        raise FileNotFoundError(f"Face landmarker task model not found: {model_path}")

    options = face_landmarker.FaceLandmarkerOptions(
        base_options=BaseOptions(model_asset_path=model_path),
        running_mode=VisionTaskRunningMode.VIDEO,
        min_face_detection_confidence=MIN_CONFIDENCE,
        min_face_presence_confidence=MIN_CONFIDENCE,
        min_tracking_confidence=MIN_CONFIDENCE,
        num_faces=1,
    )

    def to_image(frame_rgb: _t.Any) -> _t.Any:
        return Image(image_format=ImageFormat.SRGB, data=frame_rgb)

    return face_landmarker.FaceLandmarker.create_from_options(options), to_image


class FaceLandmarkSource:
    """Single-face landmark detector over the two mediapipe runtimes.

    ``detect`` returns the landmark list of one face (indexable, items with
    ``.x``/``.y`` in normalized image coordinates) or None when no face is found.
    """

    def __init__(self, face_landmarker_task: str = "") -> None:
        self._mesh: _t.Any = None
        self._landmarker: _t.Any = None
        self._to_image: _t.Optional[_t.Callable[[_t.Any], _t.Any]] = None
        self._last_timestamp_ms = 0

        if hasattr(mp, "solutions"):
            self._backend = "solutions"
            self._mesh = _build_solutions_mesh()
        elif hasattr(mp, "tasks"):
            self._backend = "tasks"
            self._landmarker, self._to_image = _build_task_landmarker(face_landmarker_task)
        else:
            raise AttributeError("Mediapipe SDK has neither 'solutions' nor 'tasks'.")

    @property
    def backend(self) -> str:
        return self._backend

    def _next_timestamp_ms(self) -> int:
        # VIDEO mode rejects timestamps that do not strictly increase.
        ts = max(now_ms(), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = ts
        return ts

    def detect(self, frame_rgb: _t.Any) -> _t.Optional[_t.Any]:
        if self._mesh is not None:
            faces = getattr(self._mesh.process(frame_rgb), "multi_face_landmarks", None)
            return faces[0].landmark if faces else None

        assert self._landmarker is not None and self._to_image is not None
        results = self._landmarker.detect_for_video(self._to_image(frame_rgb), self._next_timestamp_ms())
        faces = getattr(results, "face_landmarks", None)
        return faces[0] if faces else None

    def close(self) -> None:
        if self._mesh is not None:
            self._mesh.close()
            self._mesh = None
        if self._landmarker is not None:
            close = getattr(self._landmarker, "close", None)
            if close is not None:
                close()
            self._landmarker = None
