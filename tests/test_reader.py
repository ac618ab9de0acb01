import pytest
from rich.status import Status
from serial import SerialException

from spotdiff import reader
from spotdiff.cards import CardRegistry
from spotdiff.loop import Dispatcher
from spotdiff.reader import ReaderBridge


def make_bridge():
    dispatcher = Dispatcher()
    registry = CardRegistry()
    bridge = ReaderBridge(serial_port="/dev/null", baud_rate=115200, dispatcher=dispatcher, registry=registry)
    return bridge, dispatcher, registry


def test_card_events_reach_registry_via_dispatcher():
    bridge, dispatcher, registry = make_bridge()

    assert bridge.handle_line('{"event": "reader_connected", "reader": "ACR122U"}\n')
    assert bridge.handle_line('{"event": "card_connected", "id": " 04A1B2 ", "reader": "ACR122U"}')
    # Nothing changes until the loop drains.
    assert registry.current_id is None

    dispatcher.drain()
    token = registry.snapshot()
    assert token.reader_connected
    assert token.id == "04A1B2"
    assert token.reader_name == "ACR122U"

    assert bridge.handle_line('{"event": "card_disconnected"}')
    assert bridge.handle_line('{"event": "reader_disconnected"}')
    dispatcher.drain()
    token = registry.snapshot()
    assert not token.connected
    assert not token.reader_connected
    assert token.last_known_id == "04A1B2"


def test_malformed_lines_are_skipped():
    bridge, dispatcher, registry = make_bridge()

    assert not bridge.handle_line("")
    assert not bridge.handle_line("{not json")
    assert not bridge.handle_line("[1, 2, 3]")
    assert not bridge.handle_line('{"event": "firmware_banner"}')
    assert not bridge.handle_line('{"event": "card_connected"}')
    assert not bridge.handle_line('{"event": "card_connected", "id": 42}')

    assert dispatcher.drain() == 0
    assert registry.usable_id is None


def test_connect_without_reader_name():
    bridge, dispatcher, registry = make_bridge()
    bridge.handle_line('{"event": "card_connected", "id": "A1"}')
    dispatcher.drain()
    assert registry.current_id == "A1"


class FlakySerial:
    """Stands in for `serial.Serial`: refuses the first `failures` opens."""

    failures = 0
    opened = 0

    def __init__(self, port, baud_rate, timeout=None):
        if FlakySerial.failures > 0:
            FlakySerial.failures -= 1
            raise SerialException(f"could not open port {port}")
        FlakySerial.opened += 1

    def reset_input_buffer(self):
        pass

    def close(self):
        pass


@pytest.fixture
def flaky_serial(monkeypatch):
    FlakySerial.failures = 2
    FlakySerial.opened = 0
    monkeypatch.setattr(reader, "Serial", FlakySerial)
    monkeypatch.setattr(reader, "RECONNECT_RETRY_INTERVAL", 0)
    return FlakySerial


def test_reconnect_while_kiosk_status_is_live(flaky_serial):
    bridge, _, _ = make_bridge()

    with Status("kiosk"):
        assert bridge._wait_for_reconnect()

    assert flaky_serial.opened == 1
    assert isinstance(bridge._serial, FlakySerial)


def test_reconnect_gives_up_after_timeout(flaky_serial, monkeypatch):
    monkeypatch.setattr(reader, "RECONNECT_TIMEOUT", 0)
    bridge, _, _ = make_bridge()

    assert not bridge._wait_for_reconnect()
    assert flaky_serial.opened == 0


def test_link_down_marks_card_and_reader_gone():
    bridge, dispatcher, registry = make_bridge()
    registry.reader_connected("ACR122U")
    registry.connect("A1", "ACR122U")

    bridge._report_link_down()
    dispatcher.drain()

    token = registry.snapshot()
    assert not token.connected
    assert not token.reader_connected
