from __future__ import annotations

import sys
import time
from typing import Optional

from .keybinds import normalize_stop_key, virtual_key_code

PAUSE = 0.0


def _maybe_pause(pause: bool) -> None:
    if pause and PAUSE > 0:
        time.sleep(PAUSE)


if sys.platform == "win32":
    import ctypes
    from ctypes import wintypes

    import pydirectinput as _pydirectinput

    _pydirectinput.FAILSAFE = False
    _pydirectinput.PAUSE = 0

    _USER32 = ctypes.WinDLL("user32", use_last_error=True)
    _GetAsyncKeyState = _USER32.GetAsyncKeyState
    _GetAsyncKeyState.argtypes = [wintypes.INT]
    _GetAsyncKeyState.restype = wintypes.SHORT

    def _virtual_key(key: str) -> Optional[int]:
        code = virtual_key_code(key)
        if code is not None:
            return code
        if len(key) == 1:
            scan = _USER32.VkKeyScanW(ord(key))
            if scan == -1:
                return None
            return scan & 0xFF
        return None

    def key_pressed(key: str) -> bool:
        vk = _virtual_key(normalize_stop_key(key))
        if vk is None:
            return False
        state = _GetAsyncKeyState(vk)
        return bool(state & 0x8000) or bool(state & 0x0001)

    def pressKey(key: str, _pause: bool = True) -> None:
        _pydirectinput.press(normalize_stop_key(key))
        _maybe_pause(_pause)

    def leftClick(x: int, y: int, _pause: bool = True) -> None:
        _pydirectinput.click(x=int(x), y=int(y), button="left")
        _maybe_pause(_pause)

    def moveTo(x: int, y: int, duration: float = 0.0, _pause: bool = True) -> None:
        _pydirectinput.moveTo(int(x), int(y), duration=duration)
        _maybe_pause(_pause)

    def vscroll(clicks: int, interval: float = 0.0, _pause: bool = True) -> None:
        if clicks == 0:
            return
        step = 1 if clicks > 0 else -1
        for _ in range(abs(clicks)):
            _pydirectinput.scroll(step)
            if interval > 0:
                time.sleep(interval)
        _maybe_pause(_pause)

elif sys.platform.startswith("linux"):
    import threading

    from pynput import keyboard, mouse

    _MOUSE = mouse.Controller()
    _KEYBOARD = keyboard.Controller()
    _KEY_STATE: set[str] = set()
    _PRESSED_SINCE_POLL: set[str] = set()
    _STATE_LOCK = threading.Lock()
    _LISTENER: Optional[keyboard.Listener] = None
    _LISTENER_LOCK = threading.Lock()

    _SPECIAL_KEYS = {
        "escape": keyboard.Key.esc,
        "enter": keyboard.Key.enter,
        "space": keyboard.Key.space,
        "tab": keyboard.Key.tab,
        "backspace": keyboard.Key.backspace,
        "delete": keyboard.Key.delete,
        "insert": keyboard.Key.insert,
        "home": keyboard.Key.home,
        "end": keyboard.Key.end,
        "pageup": keyboard.Key.page_up,
        "pagedown": keyboard.Key.page_down,
        "up": keyboard.Key.up,
        "down": keyboard.Key.down,
        "left": keyboard.Key.left,
        "right": keyboard.Key.right,
    }

    def _key_name(key) -> Optional[str]:
        for name, special in _SPECIAL_KEYS.items():
            if key == special:
                return name
        name = getattr(key, "name", None)
        if name and name.startswith("f") and name[1:].isdigit():
            return name
        char = getattr(key, "char", None)
        if char:
            return normalize_stop_key(char)
        return None

    def _ensure_key_listener() -> None:
        global _LISTENER
        if _LISTENER is not None:
            return
        with _LISTENER_LOCK:
            if _LISTENER is not None:
                return

            def on_press(key) -> None:
                name = _key_name(key)
                if name is None:
                    return
                with _STATE_LOCK:
                    _KEY_STATE.add(name)
                    _PRESSED_SINCE_POLL.add(name)

            def on_release(key) -> None:
                name = _key_name(key)
                if name is None:
                    return
                with _STATE_LOCK:
                    _KEY_STATE.discard(name)

            listener = keyboard.Listener(on_press=on_press, on_release=on_release)
            listener.daemon = True
            listener.start()
            _LISTENER = listener

    def key_pressed(key: str) -> bool:
        _ensure_key_listener()
        name = normalize_stop_key(key)
        with _STATE_LOCK:
            if name in _KEY_STATE:
                return True
            if name in _PRESSED_SINCE_POLL:
                _PRESSED_SINCE_POLL.discard(name)
                return True
        return False

    def pressKey(key: str, _pause: bool = True) -> None:
        name = normalize_stop_key(key)
        target = _SPECIAL_KEYS.get(name)
        if target is None and name.startswith("f") and name[1:].isdigit():
            target = getattr(keyboard.Key, name)
        if target is None:
            target = name
        _KEYBOARD.press(target)
        _KEYBOARD.release(target)
        _maybe_pause(_pause)

    def leftClick(x: int, y: int, _pause: bool = True) -> None:
        _MOUSE.position = (int(x), int(y))
        _MOUSE.click(mouse.Button.left, 1)
        _maybe_pause(_pause)

    def moveTo(x: int, y: int, duration: float = 0.0, _pause: bool = True) -> None:
        x = int(x)
        y = int(y)
        if duration <= 0:
            _MOUSE.position = (x, y)
            _maybe_pause(_pause)
            return

        start_x, start_y = _MOUSE.position
        steps = max(1, int(duration / 0.01))
        sleep_time = duration / steps
        for i in range(1, steps + 1):
            nx = start_x + (x - start_x) * (i / steps)
            ny = start_y + (y - start_y) * (i / steps)
            _MOUSE.position = (int(nx), int(ny))
            time.sleep(sleep_time)
        _maybe_pause(_pause)

    def vscroll(clicks: int, interval: float = 0.0, _pause: bool = True) -> None:
        if clicks == 0:
            return
        step = 1 if clicks > 0 else -1
        for _ in range(abs(clicks)):
            _MOUSE.scroll(0, step)
            if interval > 0:
                time.sleep(interval)
        _maybe_pause(_pause)

else:
    raise RuntimeError(f"Unsupported platform for input driver: {sys.platform}")
