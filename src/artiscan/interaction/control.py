from __future__ import annotations

from ..geometry import Point, Rect


class Controller:
    """
    Pointer, keyboard and window access for the target game.

    Input actions reach the game as real OS events, so implementations must
    never let two of them overlap. A stale window handle raises ControlError.
    """

    def move_and_click(self, point: Point) -> None:
        raise NotImplementedError

    def scroll(self, delta: int) -> None:
        raise NotImplementedError

    def press_key(self, key: str) -> None:
        raise NotImplementedError

    def get_window_rect(self) -> Rect:
        raise NotImplementedError

    def activate_window(self) -> None:
        raise NotImplementedError

    def stop_requested(self) -> bool:
        return False
