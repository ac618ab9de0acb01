import io

import pytest
from conftest import FakeServerClient, make_attributes
from rich.text import Text

from spotdiff.config import GameConfig, ServerConfig
from spotdiff.kiosk import Kiosk
from spotdiff.loop import InlineRunner


@pytest.fixture
def kiosk(client):
    k = Kiosk(game_config=GameConfig(), server_config=ServerConfig(), runner=InlineRunner(), client=client)
    yield k
    k.close()


def test_full_game_delivers_result(kiosk, client):
    assert kiosk.command("c 04A1")
    assert kiosk.command("s")
    for idx in range(7):
        assert kiosk.command(f"f {idx}")

    assert kiosk.session.end_cause == "completed"
    payload = next(p for name, p in client.calls if name == "submit")
    assert (payload.nfcId, payload.skill1, payload.skill2, payload.skill3) == ("04A1", 8, 7, 6)
    assert kiosk.sync.status().outcome == "delivered"


def test_game_without_card_is_buffered_until_tap(kiosk, client):
    kiosk.command("s")
    for _ in range(3):
        kiosk.command("w")

    assert kiosk.session.end_cause == "too_many_wrong_attempts"
    assert kiosk.sync.status().outcome == "pending"
    assert client.count("submit") == 0

    kiosk.command("c CARD-9")
    assert client.count("submit") == 1
    assert client.count("register") == 1


def test_start_after_end_begins_new_session(kiosk):
    kiosk.command("s")
    for _ in range(3):
        kiosk.command("w")

    kiosk.command("s")
    assert kiosk.session.phase == "running"
    assert kiosk.session.session_id == 2

    # Starting twice is reported, not raised.
    assert kiosk.command("s")
    assert kiosk.session.session_id == 2


def test_pause_toggle_and_reset(kiosk):
    kiosk.command("s")
    kiosk.command("p")
    assert kiosk.session.paused
    kiosk.command("p")
    assert not kiosk.session.paused

    kiosk.command("x")
    assert kiosk.session.phase == "idle"


def test_unknown_or_malformed_commands(kiosk):
    assert not kiosk.command("zz")
    assert not kiosk.command("f")
    assert not kiosk.command("f seven")
    assert not kiosk.command("c")


def test_quit_command_stops_loop(kiosk, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    kiosk.command("q")
    kiosk.run(fps=60)  # Returns immediately once quit is set


def test_frame_applies_queued_input_before_tick(kiosk):
    kiosk.command("s")
    for idx in range(6):
        kiosk.command(f"f {idx}")
    kiosk.session.tick(119.9)

    kiosk.dispatcher.post(kiosk.command, "f 6")
    kiosk.frame(0.2)

    assert kiosk.session.end_cause == "completed"


def test_frame_clamps_long_stalls(kiosk):
    kiosk.command("s")
    kiosk.frame(30.0)
    assert kiosk.session.snapshot().remaining_time == pytest.approx(119.75)


def test_status_line(kiosk, client):
    assert "idle" in kiosk.status_line()
    assert "no card" in kiosk.status_line()

    client.attributes["X1"] = make_attributes("X1")
    kiosk.command("c X1")
    kiosk.command("s")
    line = kiosk.status_line()
    assert "120s" in line
    assert "X1" in line

    kiosk.command("d")
    assert "(removed)" in kiosk.status_line()

    for _ in range(3):
        kiosk.command("w")
    line = kiosk.status_line()
    assert "too_many_wrong_attempts" in line
    assert "delivered" in line


def test_retry_command():
    client = FakeServerClient(submit_status=500)
    k = Kiosk(game_config=GameConfig(), server_config=ServerConfig(), runner=InlineRunner(), client=client)
    k.command("c X")
    k.command("s")
    for _ in range(3):
        k.command("w")
    assert k.sync.status().outcome == "incomplete"

    client.submit_status = 200
    assert k.command("r")
    assert k.sync.status().outcome == "delivered"
    k.close()


def test_close_applies_late_completions(client):
    k = Kiosk(game_config=GameConfig(), server_config=ServerConfig(), client=client)
    k.command("c X")
    k.command("s")
    for _ in range(3):
        k.command("w")
    assert k.sync.in_flight

    k.close()

    assert not k.sync.in_flight
    assert k.sync.status().outcome == "delivered"


def test_status_line_escapes_card_id(kiosk):
    kiosk.command("c AB[/]CD")
    line = kiosk.status_line()
    assert "AB\\[/]CD" in line
    Text.from_markup(line)
