#!/usr/bin/env python3

from __future__ import annotations

import json
import socket
import threading
from typing import Any, Dict, Optional, Protocol

from gazecursor.filters import now_ms


class EventSink(Protocol):
    def broadcast(self, message: Dict[str, Any]) -> None:
        ...


def _encode(message: Dict[str, Any]) -> bytes:
    return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")


class SocketEventBus:
    """Local TCP broadcaster of newline-delimited JSON events.

    Clients that connect late are first sent the latest calibration events so an
    overlay attached mid-session can draw the current target.
    """

    _REPLAY_INTENTS = ("calibration_progress", "calibration_complete")

    def __init__(self, host: str = "127.0.0.1", port: int = 8765) -> None:
        self.host = host
        self.port = port
        self._sock: Optional[socket.socket] = None
        self._clients: Dict[int, socket.socket] = {}
        self._latest: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._running:
            return
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((self.host, self.port))
        self._sock.listen(4)
        self._sock.settimeout(0.5)
        self._running = True
        self._thread = threading.Thread(target=self._accept_loop, name="gaze-event-bus", daemon=True)
        self._thread.start()
        print(f"[Tracker] event bus listening on tcp://{self.host}:{self.port}")

    def _accept_loop(self) -> None:
        assert self._sock is not None
        while self._running:
            try:
                conn, addr = self._sock.accept()
            except OSError:
                continue
            conn.setblocking(True)
            with self._lock:
                replay = [self._latest[k] for k in self._REPLAY_INTENTS if k in self._latest]
                try:
                    for payload in replay:
                        conn.sendall(payload)
                except OSError:
                    conn.close()
                    continue
                self._clients[conn.fileno()] = conn
            print(f"[Tracker] renderer connected: {addr}")

    def broadcast(self, message: Dict[str, Any]) -> None:
        if not self._running:
            return
        payload = _encode(message)
        dead = []
        with self._lock:
            intent = message.get("intent")
            if intent in self._REPLAY_INTENTS:
                self._latest[intent] = payload
            for key, sock in list(self._clients.items()):
                try:
                    sock.sendall(payload)
                except OSError:
                    dead.append(key)
            for key in dead:
                self._disconnect(key)

    def _disconnect(self, key: int) -> None:
        sock = self._clients.pop(key, None)
        if sock:
            try:
                sock.close()
            except OSError:
                pass

    def stop(self) -> None:
        self._running = False
        with self._lock:
            for key in list(self._clients.keys()):
                self._disconnect(key)
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None


class EventEmitter:
    """Builds gaze events and throttles the per-frame ones."""

    def __init__(self, sink: Optional[EventSink] = None, emit_interval_ms: int = 16) -> None:
        self.sink = sink
        self.emit_interval_ms = max(0, int(emit_interval_ms))
        self.last_emit_ms = -(10**12)

    def _envelope(self, intent: str, confidence: float, payload: Dict[str, Any], now: int) -> Dict[str, Any]:
        return {
            "source": "gaze",
            "timestamp": now,
            "confidence": float(max(0.0, min(1.0, confidence))),
            "intent": intent,
            "payload": payload,
        }

    def _send(self, message: Dict[str, Any]) -> None:
        if self.sink is not None:
            self.sink.broadcast(message)

    def _throttled(self, now: int) -> bool:
        if now - self.last_emit_ms < self.emit_interval_ms:
            return True
        self.last_emit_ms = now
        return False

    def pointer(self, x: float, y: float, width: int, height: int, calibrated: bool) -> None:
        now = now_ms()
        if self._throttled(now):
            return
        denom_x = float(max(1, width))
        denom_y = float(max(1, height))
        self._send(
            self._envelope(
                "gaze_target",
                0.98 if calibrated else 0.6,
                {
                    "target_x": int(round(x)),
                    "target_y": int(round(y)),
                    "x_norm": max(0.0, min(1.0, x / denom_x)),
                    "y_norm": max(0.0, min(1.0, y / denom_y)),
                    "calibrated": bool(calibrated),
                },
                now,
            )
        )

    def noop(self, reason: str) -> None:
        now = now_ms()
        if self._throttled(now):
            return
        self._send(self._envelope("noop", 0.0, {"reason": reason}, now))

    def calibration_progress(
        self, phase: str, step: int, total: int, target: str, message: str, samples: int
    ) -> None:
        self._send(
            self._envelope(
                "calibration_progress",
                1.0,
                {
                    "phase": phase,
                    "step": step,
                    "total": total,
                    "target": target,
                    "message": message,
                    "samples": samples,
                },
                now_ms(),
            )
        )

    def calibration_complete(self, success: bool, message: str, mapping: Optional[Dict[str, Any]]) -> None:
        self._send(
            self._envelope(
                "calibration_complete",
                1.0 if success else 0.0,
                {"success": bool(success), "message": message, "mapping": mapping},
                now_ms(),
            )
        )
