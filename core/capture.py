"""
Global input capture via pynput.

Listener callbacks run on pynput's own threads. They only timestamp the
raw event, wrap it in an input schema and hand it to ``on_event`` (the
orchestrator's queue), keeping the hook path O(1).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional, Union

from core.schemas.inputs import (
    KeyboardEvent,
    KeyEventType,
    MouseEvent,
    MouseEventType,
    WheelEvent,
)


logger = logging.getLogger(__name__)


InputEvent = Union[KeyboardEvent, MouseEvent, WheelEvent]
EventCallback = Callable[[InputEvent], None]


class CaptureUnavailableError(RuntimeError):
    """The OS input hook could not be installed (missing backend or permission)."""


def _now_ms() -> float:
    return time.time() * 1000.0


def key_to_code(key: Any) -> Optional[int]:
    """Stable integer code for a pynput Key / KeyCode."""
    vk = getattr(key, "vk", None)
    if vk is None:
        value = getattr(key, "value", None)
        vk = getattr(value, "vk", None)
    if vk is None:
        char = getattr(key, "char", None)
        if char:
            vk = ord(char[0])
    return vk


class InputCapture:
    """
    Keyboard + mouse listener pair.

    ``start`` and ``stop`` are idempotent. ``start`` raises
    CaptureUnavailableError if either listener cannot be created.
    """

    def __init__(self, on_event: EventCallback) -> None:
        self.on_event = on_event
        self._lifecycle_lock = threading.Lock()
        self._keyboard_listener = None
        self._mouse_listener = None

    @property
    def running(self) -> bool:
        return self._keyboard_listener is not None

    def start(self) -> None:
        with self._lifecycle_lock:
            if self._keyboard_listener is not None:
                return
            try:
                from pynput import keyboard, mouse
            except ImportError as e:
                raise CaptureUnavailableError(f"pynput backend unavailable: {e}") from e

            try:
                kb = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
                ms = mouse.Listener(
                    on_move=self._on_move,
                    on_click=self._on_click,
                    on_scroll=self._on_scroll,
                )
                kb.daemon = True
                ms.daemon = True
                kb.start()
                ms.start()
            except Exception as e:
                # Xlib / Quartz / win32 hook failures surface as assorted exception types
                raise CaptureUnavailableError(f"Input hook could not be installed: {e}") from e

            self._keyboard_listener = kb
            self._mouse_listener = ms
            logger.info("Input capture started (pynput backend)")

    def stop(self) -> None:
        with self._lifecycle_lock:
            for listener in (self._keyboard_listener, self._mouse_listener):
                if listener is not None:
                    listener.stop()
                    listener.join(timeout=2.0)
            was_running = self._keyboard_listener is not None
            self._keyboard_listener = None
            self._mouse_listener = None
            if was_running:
                logger.info("Input capture stopped")

    # -- pynput callbacks --

    def _on_press(self, key) -> None:
        code = key_to_code(key)
        if code is not None:
            self.on_event(KeyboardEvent(keycode=code, event_type=KeyEventType.DOWN, timestamp=_now_ms()))

    def _on_release(self, key) -> None:
        code = key_to_code(key)
        if code is not None:
            self.on_event(KeyboardEvent(keycode=code, event_type=KeyEventType.UP, timestamp=_now_ms()))

    def _on_move(self, x, y) -> None:
        self.on_event(MouseEvent(x=x, y=y, event_type=MouseEventType.MOVE, timestamp=_now_ms()))

    def _on_click(self, x, y, button, pressed) -> None:
        if not pressed:
            return
        self.on_event(
            MouseEvent(
                x=x,
                y=y,
                event_type=MouseEventType.CLICK,
                button=getattr(button, "name", str(button)),
                timestamp=_now_ms(),
            )
        )

    def _on_scroll(self, x, y, dx, dy) -> None:
        self.on_event(WheelEvent(rotation=dy, timestamp=_now_ms()))
