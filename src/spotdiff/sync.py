"""
Score submission synchronization.

Reconciles a locally authoritative session result with an intermittently
present NFC card:

    submit(result) --card id known--> deliver(id, result)
                   --no card-------> pending slot (one result, most recent wins)
    card connected --pending?-------> deliver(id, pending)
                   --otherwise------> register card (+ fetch attributes)
                   --in flight------> replayed when the delivery completes

Delivery (one job on the runner):
    1. register the card, if this connection's registration latch was claimed
    2. POST the skills
    3. on success, GET the card's latest attributes

Outcome (classified on the loop thread when the job reports back):
    200/201/202/204 -> "delivered"
    403             -> "rejected"   (card not provisioned, never retried)
    anything else   -> "incomplete" (transport error or unexpected status)

An incomplete result is not re-buffered unless `retry_unexpected_on_connect`
is set; `retry_last()` re-sends it on demand with the last known card id.

Thread Safety:
    State is meant to be driven from the loop thread (runner completions come
    back through the dispatcher). A re-entrant lock still guards every field
    so direct cross-thread calls cannot tear it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from functools import partial
from http import HTTPStatus
from typing import TYPE_CHECKING, Final

from rich.markup import escape

from spotdiff.errors import TransportError
from spotdiff.loop import InlineRunner
from spotdiff.models import ScorePayload
from spotdiff.server import is_success

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from spotdiff.cards import CardRegistry
    from spotdiff.config import GameConfig
    from spotdiff.loop import Runner
    from spotdiff.models import CardAttributes, Result, SkillScore
    from spotdiff.server import ServerClient
    from spotdiff.types import DeliveryOutcome

    type StatusListener = Callable[[SyncStatus], None]


FORBIDDEN: Final = int(HTTPStatus.FORBIDDEN)


@dataclass(frozen=True)
class SyncStatus:
    """What the results screen shows about synchronization."""

    outcome: DeliveryOutcome
    has_pending: bool
    last_card_id: str | None = None
    last_status_code: int | None = None
    last_score_sent: SkillScore | None = None
    attributes: CardAttributes | None = None


@dataclass(frozen=True)
class _DeliveryReport:
    card_id: str
    result: Result
    status: int | None                  # None on transport failure
    error: str | None = None
    attributes: CardAttributes | None = None


class ResultSyncService:
    """Delivers session results to the identity server, buffering until a card is available."""

    config: GameConfig

    _log: Logger
    _registry: CardRegistry
    _client: ServerClient
    _runner: Runner

    def __init__(
        self,
        registry: CardRegistry,
        client: ServerClient,
        config: GameConfig,
        runner: Runner | None = None,
    ) -> None:
        self.config = config

        self._log = logging.getLogger("ResultSync")
        self._registry = registry
        self._client = client
        self._runner = runner or InlineRunner()
        self._lock = threading.RLock()
        self._listeners: list[StatusListener] = []

        self._pending: Result | None = None
        self._in_flight: Result | None = None
        self._last_attempt: Result | None = None
        self._last_card_id: str | None = None
        self._last_status: int | None = None
        self._last_score_sent: SkillScore | None = None
        self._attributes: CardAttributes | None = None
        self._outcome: DeliveryOutcome = "idle"
        self._missed_connect: str | None = None  # Card that connected while a delivery was in flight

        registry.on_connected(self.handle_card_connected)
        registry.on_disconnected(self.handle_card_disconnected)

    # ==================== Public API ====================

    def submit(self, result: Result) -> None:
        """Hand over a finished session's result. Never raises; delivery is asynchronous."""
        with self._lock:
            if self._in_flight is not None:
                self._pending = result
                self._log.info("Delivery in flight, result of session #%d queued behind it", result.session_id)
                self._notify()
                return

            card_id = self._registry.usable_id
            if card_id is None:
                if self._pending is not None:
                    self._log.debug("Replacing pending result of session #%d", self._pending.session_id)
                self._pending = result
                self._outcome = "pending"
                self._log.info(
                    "No card available, result of session #%d buffered until a card is read",
                    result.session_id,
                )
                self._notify()
                return

        self._deliver(card_id, result)

    def retry_last(self) -> bool:
        """Re-send the last attempted result with the last known card id.

        Returns:
            True if a delivery was started
        """
        with self._lock:
            result = self._last_attempt
            if self._in_flight is not None:
                self._log.warning("Retry ignored, a delivery is already in flight")
                return False
            if result is None:
                self._log.warning("Retry ignored, nothing has been submitted yet")
                return False

            card_id = self._registry.usable_id
            if card_id is None:
                self._log.warning("Retry ignored, no card has been read yet")
                return False

        self._log.info("Retrying result of session #%d for card %s", result.session_id, card_id)
        self._deliver(card_id, result)
        return True

    def refresh_attributes(self) -> bool:
        """Fetch the latest attributes for the card on the reader.

        Returns:
            True if a fetch was started
        """
        card_id = self._registry.current_id
        if card_id is None:
            self._log.warning("No card on the reader to refresh")
            return False

        self._runner.run(lambda: self._fetch(card_id), partial(self._on_attributes, card_id))
        return True

    def status(self) -> SyncStatus:
        with self._lock:
            return SyncStatus(
                outcome=self._outcome,
                has_pending=self._pending is not None,
                last_card_id=self._last_card_id,
                last_status_code=self._last_status,
                last_score_sent=self._last_score_sent,
                attributes=self._attributes,
            )

    @property
    def pending(self) -> Result | None:
        with self._lock:
            return self._pending

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    def add_listener(self, listener: StatusListener) -> None:
        """Subscribe to status updates. Subscribing twice is a no-op."""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ==================== Card Events ====================

    def handle_card_connected(self, card_id: str) -> None:
        """Flush the pending result, or just register the new card."""
        with self._lock:
            if self._in_flight is not None:
                # Handled once the in-flight delivery completes.
                self._missed_connect = card_id
                self._log.debug("Card %s connected during a delivery, deferring", card_id)
                return
            pending = self._pending

        if pending is not None:
            self._log.info("Card %s connected with a pending result, sending it", card_id)
            self._deliver(card_id, pending)
            return

        register = self._registry.claim_registration()
        fetch = self.config.fetch_on_connect
        if not (register or fetch):
            return

        def job() -> CardAttributes | None:
            if register:
                self._register(card_id)
            return self._fetch(card_id) if fetch else None

        self._runner.run(job, partial(self._on_attributes, card_id))

    def handle_card_disconnected(self) -> None:
        with self._lock:
            self._attributes = None
            self._notify()

    # ==================== Delivery ====================

    def _deliver(self, card_id: str, result: Result) -> None:
        register = self._registry.claim_registration()

        with self._lock:
            if self._pending is result:
                self._pending = None
            self._in_flight = result
            self._last_attempt = result
            self._last_card_id = card_id
            self._outcome = "in_flight"
            self._notify()

        payload = ScorePayload.from_result(card_id, self.config.game_id, result)

        def job() -> _DeliveryReport:
            if register:
                self._register(card_id)

            self._log.info(
                "Sending skills for card [bright_green]%s[/] (game %d): %d/%d/%d",
                escape(card_id),
                payload.gameId,
                payload.skill1,
                payload.skill2,
                payload.skill3,
            )
            try:
                status = self._client.submit_score(payload)
            except TransportError as e:
                return _DeliveryReport(card_id=card_id, result=result, status=None, error=str(e))

            attributes = self._fetch(card_id) if is_success(status) else None
            return _DeliveryReport(card_id=card_id, result=result, status=status, attributes=attributes)

        self._runner.run(job, self._on_delivered)

    def _on_delivered(self, report: _DeliveryReport | BaseException) -> None:
        if isinstance(report, BaseException):
            self._log.error("Delivery job failed: %s", report)
            with self._lock:
                crashed = self._in_flight
                self._in_flight = None
                self._outcome = "incomplete"
                self._last_status = None
            self._after_delivery(crashed)
            return

        rebuffer: Result | None = None
        with self._lock:
            self._in_flight = None
            self._last_status = report.status

            if report.status is None:
                self._log.error("Could not reach server for card %s: %s", report.card_id, report.error)
                self._outcome = "incomplete"
                rebuffer = report.result
            elif is_success(report.status):
                self._log.info(
                    "Result of session #%d delivered for card [bright_green]%s[/] (%d)",
                    report.result.session_id,
                    escape(report.card_id),
                    report.status,
                )
                self._outcome = "delivered"
                self._last_score_sent = report.result.score
                # The card may have been swapped while the job ran.
                if report.attributes is not None and report.card_id == self._registry.current_id:
                    self._attributes = report.attributes
            elif report.status == FORBIDDEN:
                self._log.warning("Card %s is not authorized (403), was it provisioned?", report.card_id)
                self._outcome = "rejected"
            else:
                self._log.warning("Unexpected status %d sending result for card %s", report.status, report.card_id)
                self._outcome = "incomplete"
                rebuffer = report.result

        self._after_delivery(rebuffer)

    def _after_delivery(self, failed: Result | None) -> None:
        """Replay a connect missed during the delivery, else send what queued up behind it.

        A failed result is re-buffered first when the policy allows it.
        """
        with self._lock:
            newer = self._pending
            if newer is None and failed is not None and self.config.retry_unexpected_on_connect:
                self._pending = failed
                self._log.info("Result of session #%d re-buffered for the next card connect", failed.session_id)
            self._notify()

            missed = self._missed_connect
            self._missed_connect = None
            card_id = self._registry.usable_id if newer is not None else None

        if missed is not None and missed == self._registry.current_id:
            self.handle_card_connected(missed)
        elif newer is not None and card_id is not None:
            self._deliver(card_id, newer)

    # ==================== Runner Jobs ====================

    def _register(self, card_id: str) -> None:
        """Best effort: failures are logged and never block the submission."""
        try:
            status = self._client.register(card_id)
        except TransportError as e:
            self._log.warning("Failed to register card %s: %s", card_id, e)
            return

        if is_success(status):
            self._log.debug("Card %s registered (%d)", card_id, status)
        else:
            self._log.warning("Registering card %s returned %d", card_id, status)

    def _fetch(self, card_id: str) -> CardAttributes | None:
        try:
            attributes = self._client.fetch_attributes(card_id)
        except TransportError as e:
            self._log.error("Failed to fetch attributes for card %s: %s", card_id, e)
            return None

        if attributes is None:
            self._log.warning("Server returned no data for card %s", card_id)
        return attributes

    def _on_attributes(self, card_id: str, attributes: CardAttributes | BaseException | None) -> None:
        if isinstance(attributes, BaseException):
            self._log.error("Attribute fetch job failed: %s", attributes)
            return
        if attributes is None:
            return

        if card_id != self._registry.current_id:
            self._log.debug("Dropping attributes for %s, card is no longer on the reader", card_id)
            return

        with self._lock:
            self._attributes = attributes
            self._log.info(
                "Card %s totals: empathy %d | creativity %d | problem solving %d",
                attributes.nfcId,
                attributes.attributes.empathy,
                attributes.attributes.creativity,
                attributes.attributes.problem_solving,
            )
            self._notify()

    def _notify(self) -> None:
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                self._log.exception("Sync status listener %r failed", listener)
