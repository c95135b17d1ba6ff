"""Tests for the pywinctl-backed controller against a stand-in window object."""

from types import SimpleNamespace

import pytest

from artiscan.errors import CaptureError, ControlError
from artiscan.geometry import Rect


def _desktop():
    try:
        from artiscan.interaction import desktop
    except Exception as exc:  # pywinctl and pynput need a desktop session
        pytest.skip(f"desktop backends unavailable: {exc}")
    return desktop


class _Window:
    def __init__(self, *, minimized=False, alive=True):
        self.isMinimized = minimized
        self.isAlive = alive

    def getClientFrame(self):
        return SimpleNamespace(left=10, top=20, right=1930, bottom=1100)


class TestWindowRect:
    def test_client_frame(self):
        controller = _desktop().DesktopController(_Window())
        assert controller.get_window_rect() == Rect(10, 20, 1920, 1080)

    def test_minimized_window_is_transient(self):
        controller = _desktop().DesktopController(_Window(minimized=True))
        with pytest.raises(CaptureError):
            controller.get_window_rect()

    def test_closed_window_is_fatal(self):
        controller = _desktop().DesktopController(_Window(alive=False))
        with pytest.raises(ControlError):
            controller.get_window_rect()
