#!/usr/bin/env python3

from __future__ import annotations

from typing import Any


DEFAULT_SCREEN_SIZE = (1920, 1080)


def read_screen_size() -> tuple[int, int]:
    try:
        import pyautogui

        size = pyautogui.size()
        return int(size.width), int(size.height)
    except Exception:
        return DEFAULT_SCREEN_SIZE


class CursorOutput:
    """Moves the OS cursor to the smoothed pointer, pyautogui first then pynput."""

    def __init__(self, enabled: bool = False, debug: bool = False) -> None:
        self.enabled = bool(enabled)
        self.debug = debug
        self._warned = False
        self._backend = self._init_backend()

    @property
    def backend_type(self) -> str:
        return self._backend.get("type", "none")

    def _init_backend(self) -> dict[str, Any]:
        try:
            import pyautogui

            pyautogui.FAILSAFE = False
            pyautogui.PAUSE = 0
            return {"type": "pyautogui", "api": pyautogui}
        except Exception as exc:
            if self.debug:
                print(f"[Tracker] pyautogui unavailable for cursor control: {exc}")

        try:
            from pynput.mouse import Controller

            controller = Controller()
            _ = controller.position
            return {"type": "pynput", "api": controller}
        except Exception as exc:
            if self.debug:
                print(f"[Tracker] pynput unavailable for cursor control: {exc}")

        return {"type": "none"}

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        print(f"[Mouse Control] {'Enabled' if self.enabled else 'Disabled'}")
        return self.enabled

    def move(self, x: float, y: float, width: int, height: int) -> bool:
        if not self.enabled:
            return False
        kind = self.backend_type
        if kind == "none":
            if not self._warned:
                print("[Tracker] Cursor control unavailable: neither pyautogui nor pynput loaded.")
                self._warned = True
            return False

        new_x = max(0, min(max(0, width - 1), int(round(x))))
        new_y = max(0, min(max(0, height - 1), int(round(y))))
        try:
            if kind == "pyautogui":
                self._backend["api"].moveTo(new_x, new_y, _pause=False)
            else:
                self._backend["api"].position = (new_x, new_y)
        except Exception:
            if not self._warned:
                print("[Tracker] cursor-move failed. Check OS accessibility/input permissions.")
                self._warned = True
            return False

        return True
