from spotdiff.cards import CardRegistry


def test_connect_sets_identity_and_notifies(registry):
    seen = []
    registry.on_connected(seen.append)

    registry.connect("A1", "ACR122U")

    token = registry.snapshot()
    assert token.connected
    assert token.id == "A1"
    assert token.reader_name == "ACR122U"
    assert registry.usable_id == "A1"
    assert seen == ["A1"]


def test_disconnect_keeps_last_known_id(registry):
    registry.connect("A1", "reader")
    registry.disconnect()

    token = registry.snapshot()
    assert not token.connected
    assert token.id is None
    assert token.last_known_id == "A1"
    assert registry.usable_id == "A1"
    assert not registry.has_card


def test_second_connect_overwrites_first(registry):
    registry.connect("A1", "reader")
    registry.connect("B2", "reader")
    assert registry.current_id == "B2"
    assert registry.last_known_id == "B2"


def test_registration_latch_once_per_connection(registry):
    registry.connect("A1", "reader")
    assert registry.claim_registration()
    assert not registry.claim_registration()

    # Disconnect alone does not re-arm it; a new connection does.
    registry.disconnect()
    assert not registry.claim_registration()
    registry.connect("A1", "reader")
    assert registry.claim_registration()

    registry.reset_registration()
    assert not registry.registration_attempted


def test_subscription_is_idempotent_and_removable(registry):
    seen = []
    unsubscribe = registry.on_connected(seen.append)
    registry.on_connected(seen.append)

    registry.connect("A1")
    assert seen == ["A1"]

    unsubscribe()
    registry.connect("B2")
    assert seen == ["A1"]


def test_disconnect_listener_only_fires_when_card_present(registry):
    gone = []
    registry.on_disconnected(lambda: gone.append(True))

    registry.disconnect()
    assert gone == []

    registry.connect("A1")
    registry.disconnect()
    assert gone == [True]


def test_empty_id_ignored(registry):
    seen = []
    registry.on_connected(seen.append)
    registry.connect("")
    assert seen == []
    assert registry.usable_id is None


def test_reader_presence_tracked_separately():
    registry = CardRegistry()
    registry.reader_connected("ACR122U")
    assert registry.snapshot().reader_connected
    assert not registry.snapshot().connected

    registry.reader_disconnected()
    assert not registry.snapshot().reader_connected


def test_failing_listener_does_not_block_others(registry):
    seen = []

    def broken(_card_id):
        raise RuntimeError("boom")

    registry.on_connected(broken)
    registry.on_connected(seen.append)
    registry.connect("A1")
    assert seen == ["A1"]
