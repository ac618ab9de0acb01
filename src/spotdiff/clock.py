from __future__ import annotations

import math


class SessionClock:
    """Countdown for one session, advanced by the game loop once per frame."""

    budget: float
    remaining: float

    def __init__(self, budget: float = 0.0) -> None:
        self.budget = budget
        self.remaining = budget

    def reset(self, budget: float) -> None:
        self.budget = budget
        self.remaining = budget

    def advance(self, dt: float) -> bool:
        """Count down by `dt` seconds. Returns True once time has run out."""
        if not math.isfinite(dt) or dt < 0:
            msg = f"dt must be finite and non-negative, got {dt}"
            raise ValueError(msg)

        self.remaining = max(0.0, self.remaining - dt)
        return self.expired

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    @property
    def fraction(self) -> float:
        """Remaining share of the budget in [0, 1] (timer fill)."""
        if self.budget <= 0:
            return 0.0
        return min(1.0, max(0.0, self.remaining / self.budget))

    @property
    def display_seconds(self) -> int:
        """Whole seconds shown to the player, rounded up."""
        return max(0, math.ceil(self.remaining))
