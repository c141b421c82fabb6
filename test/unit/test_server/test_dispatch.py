"""
Tests for the protocol dispatcher, driven with fake connections (no sockets).
"""

import json

import pytest

from cardtable.server.network import ClientSession, NetworkServer


def frame(**fields):
    return json.dumps(fields)


@pytest.fixture
def server(registry):
    return NetworkServer(registry=registry, room_ttl=60)


@pytest.fixture
def connect(server, make_conn):
    def _connect(name):
        return ClientSession(make_conn(name))

    return _connect


def send(server, sess, **fields):
    server.handle_raw_message(sess, frame(**fields))


def create(server, sess, name):
    send(server, sess, type="create-room", playerName=name)
    return sess.connection.last("room-created")["roomCode"]


def test_create_room(server, connect):
    alice = connect("alice")
    code = create(server, alice, "Alice")

    assert alice.room is server.registry.find(code)
    assert alice.player_name == "Alice"
    assert [m["type"] for m in alice.connection.sent] == ["player-joined", "room-created"]
    assert alice.connection.last("player-joined")["players"] == ["Alice"]


def test_join_room_scenario(server, connect):
    alice, bob = connect("alice"), connect("bob")
    code = create(server, alice, "Alice")

    send(server, bob, type="join-room", roomCode=code.lower(), playerName="Bob")

    assert bob.connection.last("room-joined") == {"type": "room-joined", "roomCode": code}
    for sess in (alice, bob):
        joined = sess.connection.last("player-joined")
        assert joined["playerCount"] == 2
        assert joined["players"] == ["Alice", "Bob"]


def test_join_missing_room(server, connect):
    bob = connect("bob")
    send(server, bob, type="join-room", roomCode="ZZZZZZ", playerName="Bob")
    assert bob.connection.sent == [{"type": "error", "message": "Room not found"}]
    assert bob.room is None


def test_join_full_room(server, connect):
    host = connect("host")
    code = create(server, host, "P0")
    for i in range(1, 4):
        send(server, connect(f"p{i}"), type="join-room", roomCode=code, playerName=f"P{i}")
    host.connection.clear()

    late = connect("late")
    send(server, late, type="join-room", roomCode=code, playerName="Late")

    assert late.connection.sent == [{"type": "error", "message": "Room is full"}]
    assert host.connection.sent == []
    assert len(server.registry.find(code).players) == 4


def test_join_with_taken_name(server, connect):
    alice = connect("alice")
    code = create(server, alice, "Alice")
    imposter = connect("imposter")
    send(server, imposter, type="join-room", roomCode=code, playerName="Alice")
    assert imposter.connection.last() == {"type": "error", "message": "Name already taken"}


def test_start_game_deals_to_all(server, connect):
    alice, bob = connect("alice"), connect("bob")
    code = create(server, alice, "Alice")
    send(server, bob, type="join-room", roomCode=code, playerName="Bob")

    send(server, bob, type="start-game")

    for sess in (alice, bob):
        cards = sess.connection.last("init-deck")["cards"]
        assert len(cards) == 54
        assert all(c["suit"] == c["i"] // 13 and c["rank"] == c["i"] % 13 + 1 for c in cards)


def test_start_game_twice(server, connect):
    alice = connect("alice")
    create(server, alice, "Alice")
    send(server, alice, type="start-game")
    send(server, alice, type="start-game")
    assert alice.connection.last() == {"type": "error", "message": "Game already started"}
    assert len(alice.connection.of_type("init-deck")) == 1


def test_commands_require_a_room(server, connect):
    loner = connect("loner")
    send(server, loner, type="start-game")
    send(server, loner, type="move-card", cardIndex=0, x=0, y=0, rot=0, side="front")
    assert loner.connection.sent == [
        {"type": "error", "message": "Not in a room"},
        {"type": "error", "message": "Not in a room"},
    ]


def test_move_card_relays_to_others_only(server, connect):
    a, b, c = connect("a"), connect("b"), connect("c")
    code = create(server, a, "A")
    send(server, b, type="join-room", roomCode=code, playerName="B")
    send(server, c, type="join-room", roomCode=code, playerName="C")
    send(server, a, type="start-game")
    for sess in (a, b, c):
        sess.connection.clear()

    send(server, a, type="move-card", cardIndex=3, x=120, y=80, rot=15, side="front")

    assert a.connection.sent == []
    moved = {"type": "card-moved", "cardIndex": 3, "x": 120, "y": 80, "rot": 15, "side": "front"}
    assert b.connection.sent == [moved]
    assert c.connection.sent == [moved]


def test_move_card_bad_index_is_reported_to_sender(server, connect):
    a, b = connect("a"), connect("b")
    code = create(server, a, "A")
    send(server, b, type="join-room", roomCode=code, playerName="B")
    b.connection.clear()
    a.connection.clear()

    send(server, a, type="move-card", cardIndex=54, x=0, y=0, rot=0, side="front")

    assert a.connection.sent == [{"type": "error", "message": "Invalid card index"}]
    assert b.connection.sent == []


def test_malformed_messages_only_affect_the_sender(server, connect):
    alice, bob = connect("alice"), connect("bob")
    code = create(server, alice, "Alice")
    send(server, bob, type="join-room", roomCode=code, playerName="Bob")
    alice.connection.clear()
    bob.connection.clear()

    server.handle_raw_message(bob, "{not json")
    send(server, bob, type="shuffle-again")

    assert [m["type"] for m in bob.connection.sent] == ["error", "error"]
    assert bob.connection.sent[1]["message"] == "Unknown message type: shuffle-again"
    assert alice.connection.sent == []
    assert bob.room is server.registry.find(code)


def test_disconnect_and_rejoin_scenario(server, connect, make_conn):
    alice, bob = connect("alice"), connect("bob")
    code = create(server, alice, "Alice")
    send(server, bob, type="join-room", roomCode=code, playerName="Bob")
    send(server, alice, type="start-game")
    room = server.registry.find(code)
    send(server, bob, type="move-card", cardIndex=0, x=42, y=24, rot=0, side="front")
    bob.connection.clear()

    server.on_disconnect(alice)

    state = bob.connection.last("game-state")
    assert state["playerCount"] == 2
    assert state["players"] == ["Alice", "Bob"]
    assert state["connected"] == [False, True]
    assert alice.room is None

    again = ClientSession(make_conn("alice-again"))
    send(server, again, type="rejoin-room", roomCode=code, playerName="Alice")

    assert [p.name for p in room.players] == ["Alice", "Bob"]
    assert room.players[0].connection is again.connection
    assert again.connection.last("room-joined") == {"type": "room-joined", "roomCode": code}
    assert bob.connection.last("game-state")["connected"] == [True, True]
    # the rejoining player gets the current table, including moves made meanwhile
    cards = again.connection.last("init-deck")["cards"]
    assert (cards[0]["x"], cards[0]["y"], cards[0]["side"]) == (42, 24, "front")


def test_rejoin_errors(server, connect):
    alice = connect("alice")
    code = create(server, alice, "Alice")
    stranger = connect("stranger")

    send(server, stranger, type="rejoin-room", roomCode="NOPE00", playerName="Alice")
    send(server, stranger, type="rejoin-room", roomCode=code, playerName="Mallory")

    assert stranger.connection.sent == [
        {"type": "error", "message": "Room not found"},
        {"type": "error", "message": "Not a member of this room"},
    ]
    assert stranger.room is None


def test_joining_another_room_releases_the_first(server, connect):
    alice, bob = connect("alice"), connect("bob")
    first = create(server, alice, "Alice")
    send(server, bob, type="join-room", roomCode=first, playerName="Bob")
    second = create(server, alice, "Alice")

    first_room = server.registry.find(first)
    assert first_room.players[0].connection is None
    assert bob.connection.last("game-state")["connected"] == [False, True]
    assert alice.room is server.registry.find(second)


def test_join_started_room_receives_table(server, connect):
    alice, carol = connect("alice"), connect("carol")
    code = create(server, alice, "Alice")
    send(server, alice, type="start-game")
    send(server, carol, type="join-room", roomCode=code, playerName="Carol")
    assert len(carol.connection.last("init-deck")["cards"]) == 54


def test_unexpected_errors_become_server_error(server, connect, monkeypatch):
    alice = connect("alice")
    create(server, alice, "Alice")

    def boom():
        raise RuntimeError("boom")

    monkeypatch.setattr(alice.room, "start", boom)
    send(server, alice, type="start-game")
    assert alice.connection.last() == {"type": "error", "message": "Server error"}


class ScriptedConnection:
    """Yields prepared frames, then ends as if the client hung up."""

    def __init__(self, fake, frames):
        self.fake = fake
        self.frames = frames
        self.remote_address = fake.remote_address

    def __iter__(self):
        return iter(self.frames)

    def send(self, text):
        self.fake.send(text)


def test_handle_connection_runs_until_close(server, make_conn):
    fake = make_conn("alice")
    conn = ScriptedConnection(fake, [frame(type="create-room", playerName="Alice"), "garbage"])

    server.handle_connection(conn)

    assert [m["type"] for m in fake.sent] == ["player-joined", "room-created", "error"]
    code = fake.last("room-created")["roomCode"]
    room = server.registry.find(code)
    assert room.players[0].connection is None
    assert server.sessions == {}


def test_reap_rooms_drops_abandoned_rooms(server, connect):
    alice = connect("alice")
    code = create(server, alice, "Alice")
    room = server.registry.find(code)
    server.on_disconnect(alice)

    assert server.reap_rooms(now=room.last_active + 30) == []
    assert server.reap_rooms(now=room.last_active + 60) == [code]
    assert server.registry.find(code) is None


def test_join_same_room_under_another_name_is_rejected(server, connect):
    alice, bob = connect("alice"), connect("bob")
    code = create(server, alice, "Alice")
    send(server, bob, type="join-room", roomCode=code, playerName="Bob")
    alice.connection.clear()
    bob.connection.clear()

    send(server, alice, type="join-room", roomCode=code, playerName="Alice2")

    room = server.registry.find(code)
    assert alice.connection.sent == [{"type": "error", "message": "Already seated in this room"}]
    assert bob.connection.sent == []
    assert [p.name for p in room.players] == ["Alice", "Bob"]
    assert alice.player_name == "Alice"

    server.on_disconnect(alice)
    server.on_disconnect(bob)
    assert room.connected_count() == 0
    assert server.reap_rooms(now=room.last_active + 60) == [code]


def test_rejoin_as_another_member_is_rejected(server, connect):
    alice, bob = connect("alice"), connect("bob")
    code = create(server, alice, "Alice")
    send(server, bob, type="join-room", roomCode=code, playerName="Bob")
    server.on_disconnect(bob)
    alice.connection.clear()

    send(server, alice, type="rejoin-room", roomCode=code, playerName="Bob")

    room = server.registry.find(code)
    assert alice.connection.sent == [{"type": "error", "message": "Already seated in this room"}]
    assert room.get_player("Bob").connection is None

    server.on_disconnect(alice)
    assert room.roster()["connected"] == [False, False]
    assert room.connected_count() == 0


def test_rejoin_own_seat_on_same_connection(server, connect):
    alice = connect("alice")
    code = create(server, alice, "Alice")
    send(server, alice, type="rejoin-room", roomCode=code, playerName="Alice")

    room = server.registry.find(code)
    assert [p.name for p in room.players] == ["Alice"]
    assert alice.connection.last("room-joined") == {"type": "room-joined", "roomCode": code}

    server.on_disconnect(alice)
    assert room.connected_count() == 0


def test_rejoin_into_a_room_reaped_after_lookup(server, connect, monkeypatch):
    alice = connect("alice")
    code = create(server, alice, "Alice")
    room = server.registry.find(code)
    server.on_disconnect(alice)

    # the lookup succeeds, then the reaper closes the room before the seat is taken
    def find_then_reap(lookup):
        found = room
        server.reap_rooms(now=room.last_active + 60)
        return found

    monkeypatch.setattr(server.registry, "find", find_then_reap)
    again = connect("alice-again")
    send(server, again, type="rejoin-room", roomCode=code, playerName="Alice")

    assert again.connection.sent == [{"type": "error", "message": "Room not found"}]
    assert again.room is None
    assert room.get_player("Alice").connection is None
    assert server.registry.rooms() == []
