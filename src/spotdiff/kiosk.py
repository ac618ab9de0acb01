"""
Kiosk wiring and the cooperative game loop.

Architecture:
    stdin thread  --post(command)--+
    ReaderBridge  --post(registry)-+--> Dispatcher --drain--> GameSession / CardRegistry / ResultSyncService
    ThreadRunner  --post(done)-----+                          (all on the loop thread)

Each frame drains the dispatcher first, then ticks the session, so clicks
made in the frame where the timer expires are counted before the timeout.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from typing import TYPE_CHECKING, ClassVar, Final

from rich.markup import escape
from rich.status import Status

from spotdiff.cards import CardRegistry
from spotdiff.errors import SessionError
from spotdiff.loop import Dispatcher, ThreadRunner
from spotdiff.server import ServerClient
from spotdiff.session import GameSession
from spotdiff.sync import ResultSyncService

if TYPE_CHECKING:
    from logging import Logger

    from spotdiff.config import GameConfig, ServerConfig
    from spotdiff.loop import Runner


MAX_FRAME_DT: Final = 0.25  # Clamp long stalls so one hiccup cannot eat the timer

_OUTCOME_2_COLOR: Final = {
    "idle": "dim",
    "pending": "yellow",
    "in_flight": "cyan",
    "delivered": "bright_green",
    "rejected": "red",
    "incomplete": "bright_red",
}


class Kiosk:
    """Owns every service for one reader station and drives them from a single loop."""

    HELP: ClassVar = (
        "[cyan]s[/] start | [cyan]f N[/] found error N | [cyan]w[/] wrong click | [cyan]p[/] pause | "
        "[cyan]r[/] retry sync | [cyan]x[/] reset | [cyan]c ID[/] card on | [cyan]d[/] card off | [cyan]q[/] quit"
    )

    dispatcher: Dispatcher
    registry: CardRegistry
    client: ServerClient
    sync: ResultSyncService
    session: GameSession

    _log: Logger

    def __init__(
        self,
        *,
        game_config: GameConfig,
        server_config: ServerConfig,
        dispatcher: Dispatcher | None = None,
        runner: Runner | None = None,
        client: ServerClient | None = None,
    ) -> None:
        self._log = logging.getLogger("Kiosk")

        self.dispatcher = dispatcher or Dispatcher()
        self.registry = CardRegistry()
        self.client = client or ServerClient.from_config(server_config)
        self._runner = runner or ThreadRunner(self.dispatcher)
        self.sync = ResultSyncService(self.registry, self.client, game_config, self._runner)
        self.session = GameSession(game_config, on_start=self.registry.reset_registration)
        self.session.add_listener(self.sync.submit)

        self._quit = threading.Event()

    # ==================== Loop ====================

    def frame(self, dt: float) -> None:
        """One loop iteration: apply queued events, then advance the timer."""
        self.dispatcher.drain()
        self.session.tick(min(dt, MAX_FRAME_DT))

    def run(self, *, fps: int = 30) -> None:
        """Play until `q` is entered (or `stop()` is called)."""
        period = 1.0 / fps
        threading.Thread(target=self._read_stdin, name="console-input", daemon=True).start()
        self._log.info(Kiosk.HELP)

        with Status("") as status:
            last = time.monotonic()
            while not self._quit.is_set():
                now = time.monotonic()
                self.frame(now - last)
                last = now
                status.update(self.status_line())
                self._quit.wait(max(0.0, period - (time.monotonic() - now)))

        self.dispatcher.drain()

    def stop(self) -> None:
        self._quit.set()

    def close(self) -> None:
        """Let queued network jobs finish and apply their completions."""
        if isinstance(self._runner, ThreadRunner):
            self._runner.shutdown(timeout=5.0)
        self.dispatcher.drain()

    # ==================== Commands ====================

    def command(self, line: str) -> bool:
        """Apply one console command. Returns False if it was not understood."""
        cmd, _, arg = line.strip().partition(" ")
        arg = arg.strip()

        match cmd.lower():
            case "s":
                self._start()
            case "f" if arg.isdigit():
                self.session.error_found(int(arg))
            case "w":
                self.session.wrong_attempt()
            case "p":
                if self.session.paused:
                    self.session.resume()
                else:
                    self.session.pause()
            case "r":
                self.sync.retry_last()
            case "x":
                self.session.reset()
            case "c" if arg:
                self.registry.connect(arg, "console")
            case "d":
                self.registry.disconnect()
            case "q":
                self.stop()
            case _:
                self._log.warning("Unknown command %r (%s)", line.strip(), Kiosk.HELP)
                return False

        return True

    def _start(self) -> None:
        if self.session.phase == "ended":
            self.session.reset()

        try:
            self.session.start()
        except SessionError as e:
            self._log.warning("Cannot start: %s", e)

    def _read_stdin(self) -> None:
        for line in sys.stdin:
            if line.strip():
                self.dispatcher.post(self.command, line)
        self.dispatcher.post(self.stop)

    # ==================== Display ====================

    def status_line(self) -> str:
        state = self.session.snapshot()
        card = self.registry.snapshot()
        sync = self.sync.status()

        match state.phase:
            case "running":
                clock = self.session.clock
                game = (
                    f"[bold]{clock.display_seconds:>3}s[/] "
                    f"found [bright_green]{state.errors_found}/{state.total_errors}[/] "
                    f"wrong [red]{state.wrong_attempts}/{state.max_wrong_attempts}[/]"
                )
                if state.paused:
                    game += " [yellow](paused)[/]"
            case "ended":
                res = self.session.result
                game = f"ended: [bright_yellow]{state.end_cause}[/]"
                if res is not None:
                    game += f" skills {res.score.empathy}/{res.score.creativity}/{res.score.problem_solving}"
            case _:
                game = "[dim]idle, press s to start[/]"

        if card.connected:
            card_txt = f"card [bright_green]{escape(card.id or '')}[/]"
        elif card.last_known_id:
            card_txt = f"card [dim]{escape(card.last_known_id)} (removed)[/]"
        else:
            card_txt = "[dim]no card[/]"

        color = _OUTCOME_2_COLOR[sync.outcome]
        sync_txt = f"sync [{color}]{sync.outcome}[/]"
        if sync.has_pending:
            sync_txt += " [yellow](pending)[/]"

        return f"{game} | {card_txt} | {sync_txt}"
