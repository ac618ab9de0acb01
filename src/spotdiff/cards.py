"""
NFC card presence and per-connection registration latch.

Thread Safety:
    All fields are guarded by one lock. The reader bridge, the sync service
    and the game loop may call in from different threads; listeners are
    always invoked outside the lock.

Only one physical card is modeled. A second connect while a card is present
replaces it (last writer wins). Disconnecting keeps the id as
`last_known_id` so that a result produced just after the card was pulled can
still be attributed to it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.markup import escape

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    type ConnectedListener = Callable[[str], None]
    type DisconnectedListener = Callable[[], None]


@dataclass(frozen=True)
class CardToken:
    """Snapshot of reader and card state."""

    id: str | None = None                   # Card currently on the reader
    reader_name: str | None = None
    connected: bool = False
    last_known_id: str | None = None        # Lookup only, never implies the card is present
    reader_connected: bool = False


class CardRegistry:
    """Tracks the card on the reader and whether it has been registered this connection."""

    _log: Logger

    def __init__(self) -> None:
        self._log = logging.getLogger("CardRegistry")
        self._lock = threading.Lock()

        self._card_id: str | None = None
        self._reader_name: str | None = None
        self._last_known_id: str | None = None
        self._reader_connected = False
        self._registration_attempted = False

        self._on_connected: list[ConnectedListener] = []
        self._on_disconnected: list[DisconnectedListener] = []

    # ==================== Reader Events ====================

    def connect(self, card_id: str, reader_name: str | None = None) -> None:
        """Card placed on the reader."""
        if not card_id:
            self._log.warning("Ignoring connect event with empty card id")
            return

        with self._lock:
            previous = self._card_id
            self._card_id = card_id
            self._last_known_id = card_id
            if reader_name:
                self._reader_name = reader_name
            self._registration_attempted = False
            listeners = list(self._on_connected)

        if previous is not None and previous != card_id:
            self._log.info("Card [bright_green]%s[/] replaced [dim]%s[/]", escape(card_id), escape(previous))
        else:
            self._log.info("Card [bright_green]%s[/] connected (reader: %s)", escape(card_id), escape(reader_name or "?"))

        for listener in listeners:
            self._notify(listener, card_id)

    def disconnect(self) -> None:
        """Card removed from the reader. `last_known_id` is kept."""
        with self._lock:
            if self._card_id is None:
                return
            card_id = self._card_id
            self._card_id = None
            listeners = list(self._on_disconnected)

        self._log.info("Card [dim]%s[/] disconnected", escape(card_id))
        for listener in listeners:
            self._notify(listener)

    def reader_connected(self, reader_name: str) -> None:
        with self._lock:
            self._reader_connected = True
            self._reader_name = reader_name
        self._log.info("Reader connected: [bright_magenta]%s[/]", escape(reader_name))

    def reader_disconnected(self) -> None:
        with self._lock:
            self._reader_connected = False
            self._reader_name = None
        self._log.warning("Reader disconnected")

    # ==================== Registration Latch ====================

    def claim_registration(self) -> bool:
        """Atomically claim the one registration call allowed per connection.

        Returns:
            True for the first claim since the last connect (or reset), False afterwards
        """
        with self._lock:
            if self._registration_attempted:
                return False
            self._registration_attempted = True
            return True

    def reset_registration(self) -> None:
        with self._lock:
            self._registration_attempted = False

    # ==================== Observers ====================

    def on_connected(self, listener: ConnectedListener) -> Callable[[], None]:
        """Subscribe to card connects. Subscribing twice is a no-op.

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            if listener not in self._on_connected:
                self._on_connected.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._on_connected:
                    self._on_connected.remove(listener)

        return unsubscribe

    def on_disconnected(self, listener: DisconnectedListener) -> Callable[[], None]:
        with self._lock:
            if listener not in self._on_disconnected:
                self._on_disconnected.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._on_disconnected:
                    self._on_disconnected.remove(listener)

        return unsubscribe

    # ==================== Views ====================

    @property
    def current_id(self) -> str | None:
        with self._lock:
            return self._card_id

    @property
    def last_known_id(self) -> str | None:
        with self._lock:
            return self._last_known_id

    @property
    def usable_id(self) -> str | None:
        """Id to submit against: the card on the reader, else the last one seen."""
        with self._lock:
            return self._card_id or self._last_known_id

    @property
    def has_card(self) -> bool:
        with self._lock:
            return self._card_id is not None

    @property
    def registration_attempted(self) -> bool:
        with self._lock:
            return self._registration_attempted

    def snapshot(self) -> CardToken:
        with self._lock:
            return CardToken(
                id=self._card_id,
                reader_name=self._reader_name,
                connected=self._card_id is not None,
                last_known_id=self._last_known_id,
                reader_connected=self._reader_connected,
            )

    def _notify(self, listener: Callable[..., None], *args: str) -> None:
        try:
            listener(*args)
        except Exception:
            self._log.exception("Card listener %r failed", listener)
