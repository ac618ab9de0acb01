"""
Game session state machine.

One play-through of the spot-the-differences image:

    idle --start()--> running --(all found | too many wrong clicks | time up)--> ended
      ^                                                                            |
      +----------------------------------reset()-----------------------------------+

Exactly one end cause is recorded. Input signals (error found, wrong click)
must be delivered before the frame's tick so that finding the last error in
the same frame the timer expires counts as a completion; the kiosk loop
drains its input queue before calling `tick()`.

On entering `ended` the immutable `Result` is built and handed to every
registered listener (normally `ResultSyncService.submit`). Nothing mutates
the counters or the clock afterwards until `reset()`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from spotdiff.clock import SessionClock
from spotdiff.errors import SessionError
from spotdiff.models import Result
from spotdiff.progress import ProgressTracker
from spotdiff.scoring import calculate_score

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from spotdiff.config import GameConfig
    from spotdiff.types import EndCause, Phase

    type ResultListener = Callable[[Result], None]


_END_CAUSE_DESC: Final[dict[str, str]] = {
    "completed": "all errors found",
    "timed_out": "time is up",
    "too_many_wrong_attempts": "too many wrong clicks",
}


@dataclass(frozen=True)
class SessionState:
    """Read-only view of the session for display."""

    phase: Phase
    remaining_time: float
    errors_found: int
    wrong_attempts: int
    total_errors: int
    max_wrong_attempts: int
    end_cause: EndCause | None = None
    paused: bool = False


class GameSession:
    """Owns the clock, the progress counters, and the single session result."""

    config: GameConfig

    _log: Logger
    _clock: SessionClock
    _progress: ProgressTracker

    def __init__(self, config: GameConfig, *, on_start: Callable[[], None] | None = None) -> None:
        """
        Args:
            config: Game rules
            on_start: Hook run on every `start()` (the kiosk clears the card registration latch here)
        """
        self.config = config

        self._log = logging.getLogger("GameSession")
        self._on_start = on_start
        self._clock = SessionClock(config.game_time_s)
        self._progress = ProgressTracker(config.total_errors, config.max_wrong_attempts)
        self._listeners: list[ResultListener] = []

        self._phase: Phase = "idle"
        self._end_cause: EndCause | None = None
        self._result: Result | None = None
        self._paused = False
        self._session_id = 0

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Begin a new session from idle.

        Raises:
            SessionError: Session is running or has ended without a `reset()`
        """
        if self._phase != "idle":
            msg = f"cannot start a session while {self._phase}"
            raise SessionError(msg)

        self._clock.reset(self.config.game_time_s)
        self._progress.reset(self.config.total_errors, self.config.max_wrong_attempts)
        self._end_cause = None
        self._result = None
        self._paused = False
        self._session_id += 1

        if self._on_start is not None:
            self._on_start()

        self._phase = "running"
        self._log.info(
            "Session [bright_green]#%d[/] started (%.0fs, %d errors, %d wrong clicks allowed)",
            self._session_id,
            self.config.game_time_s,
            self.config.total_errors,
            self.config.max_wrong_attempts,
        )

    def reset(self) -> None:
        """Return to idle. The last result stays readable until the next `start()`."""
        if self._phase == "running":
            self._log.info("Session #%d abandoned", self._session_id)

        self._phase = "idle"
        self._end_cause = None
        self._paused = False
        self._clock.reset(self.config.game_time_s)
        self._progress.reset(self.config.total_errors, self.config.max_wrong_attempts)

    def pause(self) -> None:
        if self._phase == "running" and not self._paused:
            self._paused = True
            self._log.debug("Session #%d paused", self._session_id)

    def resume(self) -> None:
        if self._phase == "running" and self._paused:
            self._paused = False
            self._log.debug("Session #%d resumed", self._session_id)

    # ==================== Input Signals ====================

    def error_found(self, index: int) -> bool:
        """Count a discovered error. Returns True if the signal was counted.

        Ignored outside a running session, and for an index that was already
        counted when `dedupe_error_indices` is on.
        """
        if self._phase != "running":
            return False

        if self.config.dedupe_error_indices and self._progress.already_found(index):
            self._log.debug("Error %d already found, ignoring", index)
            return False

        all_found = self._progress.record_error(index)
        self._log.info("Error %d found (%d/%d)", index, self._progress.errors_found, self._progress.total)

        if all_found:
            self._end("completed")
        return True

    def wrong_attempt(self) -> bool:
        """Count a wrong click. Returns True if the signal was counted."""
        if self._phase != "running":
            return False

        out = self._progress.record_wrong_attempt()
        self._log.info("Wrong click (%d/%d)", self._progress.wrong_attempts, self._progress.max_wrong)

        if out:
            self._end("too_many_wrong_attempts")
        return True

    def tick(self, dt: float) -> None:
        """Advance the countdown by `dt` seconds."""
        if not math.isfinite(dt) or dt < 0:
            msg = f"dt must be finite and non-negative, got {dt}"
            raise ValueError(msg)

        if self._phase != "running" or self._paused:
            return

        if self._clock.advance(dt):
            self._end("timed_out")

    # ==================== Observers ====================

    def add_listener(self, listener: ResultListener) -> None:
        """Register an end-of-session callback. Registering the same callback twice is a no-op."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ResultListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ==================== Views ====================

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def end_cause(self) -> EndCause | None:
        return self._end_cause

    @property
    def result(self) -> Result | None:
        return self._result

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def clock(self) -> SessionClock:
        return self._clock

    def snapshot(self) -> SessionState:
        return SessionState(
            phase=self._phase,
            remaining_time=self._clock.remaining,
            errors_found=self._progress.errors_found,
            wrong_attempts=self._progress.wrong_attempts,
            total_errors=self._progress.total,
            max_wrong_attempts=self._progress.max_wrong,
            end_cause=self._end_cause,
            paused=self._paused,
        )

    # ==================== Internals ====================

    def _end(self, cause: EndCause) -> None:
        self._phase = "ended"
        self._end_cause = cause
        self._paused = False

        errors_found = self._progress.errors_found
        self._result = Result(
            session_id=self._session_id,
            errors_found=errors_found,
            wrong_attempts=self._progress.wrong_attempts,
            time_remaining=0.0 if cause == "timed_out" else self._clock.remaining,
            end_cause=cause,
            score=calculate_score(errors_found, self.config),
        )

        score = self._result.score
        self._log.info(
            "Session #%d ended: [bright_yellow]%s[/] | found %d | skills %d/%d/%d",
            self._session_id,
            _END_CAUSE_DESC[cause],
            errors_found,
            score.empathy,
            score.creativity,
            score.problem_solving,
        )

        for listener in list(self._listeners):
            try:
                listener(self._result)
            except Exception:
                self._log.exception("Result listener %r failed", listener)
