"""
Serial bridge for the NFC card reader.

The reader firmware writes one JSON object per line:

    {"event": "reader_connected", "reader": "ACR122U"}
    {"event": "card_connected", "id": "04A1B2C3", "reader": "ACR122U"}
    {"event": "card_disconnected"}
    {"event": "reader_disconnected"}

Each valid line becomes one `CardRegistry` call, posted through the
`Dispatcher` so that card state changes land on the game loop thread.

Connection Handling:
    - Auto-reconnect on serial disconnect (10 minute timeout), progress is logged
    - While the link is down the reader and card are reported disconnected
    - Malformed lines are logged and skipped
"""

from __future__ import annotations

import json
import logging
import threading
import time
from json import JSONDecodeError
from typing import TYPE_CHECKING, Any, ClassVar, Final

from serial import Serial, SerialException

if TYPE_CHECKING:
    from logging import Logger

    from spotdiff.cards import CardRegistry
    from spotdiff.loop import Dispatcher


RECONNECT_TIMEOUT: Final = 600  # 10 min to reconnect before giving up
RECONNECT_RETRY_INTERVAL: Final = 2  # Secs between reconnect attempts
RECONNECT_LOG_INTERVAL: Final = 30  # Secs between "still reconnecting" log lines


class ReaderBridge:
    """
    Forwards card reader events from a serial port to the card registry.

    Lifecycle:
        1. Connect to serial port
        2. Read JSONL events, post registry updates to the dispatcher
        3. On serial error, report the reader gone and try to reconnect
        4. `stop()` ends the read loop and closes the port
    """

    BYTES_ENCODING: ClassVar = "ascii"

    serial_port: str
    baud_rate: int

    _log: Logger
    _serial: Serial | None

    def __init__(self, *, serial_port: str, baud_rate: int, dispatcher: Dispatcher, registry: CardRegistry) -> None:
        self.serial_port = serial_port
        self.baud_rate = baud_rate

        self._log = logging.getLogger("ReaderBridge")
        self._dispatcher = dispatcher
        self._registry = registry
        self._serial = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ==================== Public API ====================

    def start(self) -> None:
        """Run the bridge on a daemon thread."""
        self._thread = threading.Thread(target=self.run, name="reader-bridge", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    def run(self) -> None:
        try:
            if not self._connect_to_serial():
                return
            self._read_events()
        finally:
            if self._serial is not None:
                self._serial.close()
            self._log.info("Reader bridge stopped")

    def handle_line(self, line: str) -> bool:
        """Parse one reader line and post the matching registry call.

        Returns:
            True if the line was a recognised event
        """
        line = line.strip()
        if not line:
            return False

        try:
            event = json.loads(line)
            if not isinstance(event, dict):
                msg = f"expected dict, got {type(event)}"
                raise JSONDecodeError(msg, doc=line, pos=0)  # noqa: TRY301
        except JSONDecodeError as e:
            self._log.warning("[bright_yellow on grey30][IGNORING][/] Invalid JSON from reader: %s (error: %s)", line, e)
            return False

        return self._dispatch(event)

    # ==================== Event Processing ====================

    def _dispatch(self, event: dict[str, Any]) -> bool:
        kind = event.get("event")
        reader = event.get("reader")
        reader = reader if isinstance(reader, str) else None

        match kind:
            case "card_connected":
                card_id = event.get("id")
                if not isinstance(card_id, str) or not card_id.strip():
                    self._log.warning("[IGNORING] card_connected without an id: %s", event)
                    return False
                self._dispatcher.post(self._registry.connect, card_id.strip(), reader)
            case "card_disconnected":
                self._dispatcher.post(self._registry.disconnect)
            case "reader_connected":
                self._dispatcher.post(self._registry.reader_connected, reader or "unknown")
            case "reader_disconnected":
                self._dispatcher.post(self._registry.reader_disconnected)
            case _:
                self._log.warning("[IGNORING] Unknown reader event: %s", event)
                return False

        self._log.debug("[bright_white on grey30][Reader -> Game][/] %s", event)
        return True

    def _read_events(self) -> None:
        self._log.debug("Listening for reader events")

        while not self._stop.is_set():
            try:
                line = self._serial_read_line()
            except SerialException:
                self._report_link_down()
                if self._stop.is_set() or not self._wait_for_reconnect():
                    return
                continue
            except UnicodeDecodeError:
                continue

            if line is not None:
                self._handle_line_safely(line)

    def _handle_line_safely(self, line: str) -> None:
        try:
            self.handle_line(line)
        except Exception:
            self._log.exception("Failed to handle reader line: %s", line)

    def _report_link_down(self) -> None:
        self._dispatcher.post(self._registry.disconnect)
        self._dispatcher.post(self._registry.reader_disconnected)

    def _wait_for_reconnect(self) -> bool:
        """Wait for the serial device to come back. Returns True if reconnected.

        Progress is logged rather than shown as a live status: the kiosk loop
        owns the console's live display while the game runs.
        """

        self._log.debug("Waiting for reader to reconnect")

        start = time.monotonic()
        next_report = 0.0
        while (elapsed := time.monotonic() - start) < RECONNECT_TIMEOUT:
            if self._stop.is_set():
                return False

            if elapsed >= next_report:
                left = int(RECONNECT_TIMEOUT - elapsed)
                self._log.warning("Reader link down, reconnecting to %s (%ds remaining)", self.serial_port, left)
                next_report = elapsed + RECONNECT_LOG_INTERVAL

            try:
                self._serial = Serial(self.serial_port, self.baud_rate, timeout=0.1)
                self._serial.reset_input_buffer()
            except (OSError, SerialException):
                self._stop.wait(RECONNECT_RETRY_INTERVAL)
            else:
                self._log.info("Reconnected to %s", self.serial_port)
                return True

        self._log.critical("Failed to reconnect reader (timeout after %ds)", RECONNECT_TIMEOUT)
        return False

    def _connect_to_serial(self) -> bool:
        """Connect to serial port. Returns True on success."""

        self._log.debug("Connecting to serial port %s (%d baud)", self.serial_port, self.baud_rate)
        try:
            self._serial = Serial(self.serial_port, self.baud_rate, timeout=0.1)
            self._serial.reset_input_buffer()
        except (OSError, SerialException) as e:
            self._log.critical("Failed to connect to serial port: %s", e)
            return False

        self._log.info("Connected to reader on %s", self.serial_port)
        return True

    def _serial_read_line(self) -> str | None:
        """Read one line from the reader.

        Returns:
            Decoded line, or None if nothing arrived before the read timeout

        Raises:
            SerialException: Serial read error
            UnicodeDecodeError: Decode error
        """
        if self._serial is None:
            msg = "serial port not open"
            raise SerialException(msg)

        try:
            line_bytes = self._serial.readline()
        except SerialException as e:
            self._log.error("Serial error while reading: %s", e)
            raise

        if not line_bytes:
            return None

        try:
            return line_bytes.decode(ReaderBridge.BYTES_ENCODING)
        except UnicodeDecodeError as e:
            self._log.error("Decode error (%s): %s", ReaderBridge.BYTES_ENCODING, e)
            raise
