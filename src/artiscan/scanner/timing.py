from __future__ import annotations

from dataclasses import dataclass

# Bounds relative to the configured base delay
FLOOR_RATIO = 0.5
CEILING_RATIO = 4.0
GROWTH = 1.5
DECAY = 0.9
DECAY_AFTER = 3
FAST_MODE_SCALE = 0.7


@dataclass(frozen=True)
class DelayBounds:
    initial: float
    floor: float
    ceiling: float
    growth: float = GROWTH
    decay: float = DECAY
    decay_after: int = DECAY_AFTER

    def __post_init__(self) -> None:
        if self.floor < 0 or self.ceiling < self.floor:
            raise ValueError("delay bounds need 0 <= floor <= ceiling")
        if self.growth < 1.0:
            raise ValueError("growth must be >= 1")
        if not 0.0 < self.decay <= 1.0:
            raise ValueError("decay must be in (0, 1]")
        if self.decay_after < 1:
            raise ValueError("decay_after must be >= 1")

    @classmethod
    def from_base(cls, base_delay: float, *, fast_mode: bool = False) -> "DelayBounds":
        scale = FAST_MODE_SCALE if fast_mode else 1.0
        base = max(0.0, base_delay) * scale
        return cls(initial=base, floor=base * FLOOR_RATIO, ceiling=base * CEILING_RATIO)


class AdaptiveDelay:
    """
    Wait before capturing, tuned by recognition confidence.

    Low-confidence outcomes compound: the n-th low read of a streak
    multiplies the delay by `growth ** n`, up to `ceiling`. After
    `decay_after` high-confidence outcomes in a row, each further one
    multiplies it by `decay` down to `floor`. A low outcome
    restarts the high-confidence run. `reset_smoothing` ends the low streak,
    so the next low read grows the delay by a single `growth` step.
    """

    def __init__(self, bounds: DelayBounds) -> None:
        self.bounds = bounds
        self.current = min(bounds.ceiling, max(bounds.floor, bounds.initial))
        self.high_run = 0
        self.low_streak = 0

    def on_low_confidence(self) -> float:
        self.high_run = 0
        self.low_streak += 1
        step = self.bounds.growth ** self.low_streak
        self.current = min(self.bounds.ceiling, self.current * step)
        if self.current == 0.0 and self.bounds.ceiling > 0.0:
            self.current = min(self.bounds.ceiling, self.bounds.floor or self.bounds.ceiling)
        return self.current

    def on_high_confidence(self) -> float:
        self.high_run += 1
        if self.high_run >= self.bounds.decay_after:
            self.current = max(self.bounds.floor, self.current * self.bounds.decay)
        return self.current

    def reset_smoothing(self) -> None:
        """End the low-confidence streak; the tuned delay itself stays."""
        self.low_streak = 0

    @property
    def seconds(self) -> float:
        return self.current
