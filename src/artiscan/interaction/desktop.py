from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import pywinctl as pwc

from . import input_driver
from .control import Controller
from .keybinds import DEFAULT_STOP_KEY, normalize_stop_key
from ..errors import CaptureError, ControlError
from ..geometry import Point, Rect

# Target window
TARGET_WINDOW_TITLES = ("Genshin Impact", "原神")
WINDOW_TIMEOUT = 30.0
WINDOW_POLL_INTERVAL = 0.05

# Input pacing
ACTION_DELAY = 0.04
MOVE_DURATION = 0.0
SCROLL_INTERVAL = 0.02
ACTIVATE_SETTLE_DELAY = 0.3


def _title_matches(window: pwc.Window, titles) -> bool:
    title = (window.title or "").strip()
    return any(title == candidate for candidate in titles)


def wait_for_target_window(
    titles=TARGET_WINDOW_TITLES,
    timeout: float = WINDOW_TIMEOUT,
    poll_interval: float = WINDOW_POLL_INTERVAL,
    stop_requested: Optional[Callable[[], bool]] = None,
) -> pwc.Window:
    """
    Wait until the active window is the game client.
    """
    if isinstance(titles, str):
        titles = (titles,)
    start = time.monotonic()
    while time.monotonic() - start < timeout:
        if stop_requested is not None and stop_requested():
            raise KeyboardInterrupt("Stop key pressed")
        win = pwc.getActiveWindow()
        if win is not None and _title_matches(win, titles):
            return win
        time.sleep(poll_interval)

    raise TimeoutError(f"Timed out waiting for active window {' / '.join(titles)!r}")


class DesktopController(Controller):
    """
    Drives the real game window through pywinctl and the platform input driver.
    """

    def __init__(
        self,
        window: pwc.Window,
        *,
        stop_key: str = DEFAULT_STOP_KEY,
        action_delay: float = ACTION_DELAY,
    ) -> None:
        self.window = window
        self.stop_key = normalize_stop_key(stop_key)
        self.action_delay = action_delay
        self._input_lock = threading.Lock()

    def _ensure_alive(self) -> None:
        try:
            alive = bool(self.window.isAlive)
        except Exception as exc:
            raise ControlError(f"lost the game window handle: {exc}") from exc
        if not alive:
            raise ControlError("the game window was closed or recreated")

    def _pause(self) -> None:
        if self.action_delay > 0:
            time.sleep(self.action_delay)

    def get_window_rect(self) -> Rect:
        """
        Client area of the game. A minimized window raises CaptureError;
        a dead or recreated handle raises ControlError.
        """
        self._ensure_alive()
        try:
            minimized = bool(self.window.isMinimized)
            frame = None if minimized else self.window.getClientFrame()
        except Exception as exc:
            raise ControlError(f"could not read the game window geometry: {exc}") from exc
        if frame is None:
            raise CaptureError("the game window is minimized")
        return Rect(
            int(frame.left),
            int(frame.top),
            max(0, int(frame.right) - int(frame.left)),
            max(0, int(frame.bottom) - int(frame.top)),
        )

    def activate_window(self) -> None:
        self._ensure_alive()
        with self._input_lock:
            try:
                self.window.activate(wait=True)
            except Exception as exc:
                raise ControlError(f"could not activate the game window: {exc}") from exc
            time.sleep(ACTIVATE_SETTLE_DELAY)

    def move_and_click(self, point: Point) -> None:
        self._ensure_alive()
        with self._input_lock:
            input_driver.moveTo(point.x, point.y, duration=MOVE_DURATION, _pause=False)
            input_driver.leftClick(point.x, point.y, _pause=False)
            self._pause()

    def scroll(self, delta: int) -> None:
        self._ensure_alive()
        with self._input_lock:
            input_driver.vscroll(delta, interval=SCROLL_INTERVAL, _pause=False)
            self._pause()

    def press_key(self, key: str) -> None:
        self._ensure_alive()
        with self._input_lock:
            input_driver.pressKey(key, _pause=False)
            self._pause()

    def stop_requested(self) -> bool:
        return input_driver.key_pressed(self.stop_key)
