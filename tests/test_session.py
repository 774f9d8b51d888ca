import random

import pytest

from common import protocol as proto
from common.rooms import RoomRegistry, RoomRelay
from common.transport import LoopbackHub, LoopbackTransport
from game.errors import NotConnectedError, SessionError, ValidationError
from game.session import ConnectionState, SessionManager

LUCY = {"characterName": "lucy", "arena": "standard", "gameMode": "free-play"}
HERALD = {"characterName": "herald", "arena": "standard", "gameMode": "free-play"}


@pytest.fixture
def hub():
    return LoopbackHub(RoomRelay(RoomRegistry(random.Random(2))))


@pytest.fixture
def pair(hub, clock):
    """Two connected sessions sharing a room; returns (a, b, code)."""
    a = SessionManager(LoopbackTransport(hub), now_fn=clock)
    b = SessionManager(LoopbackTransport(hub), now_fn=clock)
    a.connect()
    b.connect()
    code = a.create_room(LUCY).result(timeout=1)
    b.join_room(code.lower(), HERALD).result(timeout=1)
    return a, b, code


def kinds(events):
    return [ev.kind for ev in events]


def test_connect_reports_states(hub):
    seen = []
    s = SessionManager(LoopbackTransport(hub), on_state_change=seen.append)
    assert s.state is ConnectionState.DISCONNECTED
    s.connect()
    assert seen == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert s.local_id == "peer1"


def test_create_and_join(pair):
    a, b, code = pair
    assert proto.normalize_room_code(code) == code
    assert a.room_code == b.room_code == code

    a_events = a.drain()
    assert kinds(a_events) == [proto.PLAYER_JOINED]
    assert a_events[0].player_id == b.local_id
    assert a_events[0].data.character == "herald"

    b_events = b.drain()
    assert kinds(b_events) == [proto.PLAYER_JOINED]
    assert b.peers[a.local_id].character == "lucy"


def test_player_joined_fires_once(pair):
    a, b, _ = pair
    joined = []
    b.on_player_joined = joined.append
    b.drain()
    b.request_existing_players()
    assert b.drain() == []
    assert [p.player_id for p in joined] == [a.local_id]


def test_invalid_inputs(hub):
    s = SessionManager(LoopbackTransport(hub))
    s.connect()
    with pytest.raises(ValidationError):
        s.join_room("nope", LUCY)
    with pytest.raises(ValidationError):
        s.create_room({"characterName": "gandalf"})
    assert s.room_code is None


def test_requests_need_a_connection(hub):
    s = SessionManager(LoopbackTransport(hub))
    with pytest.raises(NotConnectedError):
        s.create_room(LUCY)
    with pytest.raises(NotConnectedError):
        s.send_player_damage(10, 90, 100)


def test_second_room_is_refused(pair):
    a, _, _ = pair
    with pytest.raises(SessionError):
        a.create_room(LUCY)
    with pytest.raises(SessionError):
        a.join_room("ABCDEF", LUCY)


def test_player_state_is_throttled(pair, clock):
    a, b, _ = pair
    b.drain()
    body = {"x": 1.0, "y": 0.6, "z": 0.0}
    sent = 0
    for i in range(60):
        now = i / 60.0
        sent += a.flush_outbound(now, player_state=body)
    # One second at 60 Hz carries ten states.
    assert sent == 10
    states = [ev for ev in b.drain() if ev.kind == proto.PLAYER_STATE]
    assert len(states) == 10
    assert states[0].data.x == 1.0
    assert b.peers[a.local_id].last_state_time == clock()


def test_projectile_updates_are_throttled(pair):
    a, b, _ = pair
    b.drain()
    updates = [{"projectileId": f"{a.local_id}-{n}", "x": 0.0, "y": 1.0, "z": 0.0,
                "velocityX": 6.0, "velocityZ": 0.0} for n in (1, 2)]
    batches = []
    for i in range(60):
        now = i / 60.0
        if a.flush_outbound(now, projectile_updates=updates):
            batches.append(now)
    assert a.update_interval == pytest.approx(0.1)
    assert len(batches) == 10
    assert all(t1 - t0 >= a.update_interval - 1e-9 for t0, t1 in zip(batches, batches[1:]))
    received = [ev for ev in b.drain() if ev.kind == proto.PROJECTILE_UPDATE]
    assert len(received) == 2 * len(batches)
    # Nothing to report sends nothing and does not consume the slot.
    assert a.flush_outbound(1.0) == 0
    assert a.flush_outbound(1.0, projectile_updates=updates) == 2


def test_events_flow_to_the_other_peer(pair):
    a, b, _ = pair
    a.drain()
    b.drain()
    assert a.send_player_damage(25, 75, 100)
    assert a.send_character_change("herald")
    a.flush_outbound(0.0)
    events = b.drain()
    assert kinds(events) == [proto.PLAYER_DAMAGE, proto.CHARACTER_CHANGE]
    assert events[0].data == {"damage": 25, "health": 75, "maxHealth": 100}
    assert b.peers[a.local_id].character == "herald"


def test_leave_room_drops_queued_messages(pair):
    a, b, _ = pair
    a.drain()
    b.drain()
    assert a.send_player_damage(5, 95, 100)
    a.leave_room()
    assert a.room_code is None
    assert a.flush_outbound(1.0) == 0
    assert kinds(b.drain()) == [proto.PLAYER_LEFT]
    assert kinds(a.drain()) == [proto.PLAYER_LEFT]
    assert a.peers == {}
    # Outbound helpers quietly refuse outside a room.
    assert not a.send_player_damage(1, 1, 100)


def test_reconnect_rejoins_room(pair):
    a, b, code = pair
    a.drain()
    b.drain()
    old_id = a.local_id

    a.transport.drop_link()
    assert a.state is ConnectionState.RECONNECTING
    assert not a.send_player_damage(1, 99, 100)
    assert kinds(b.drain()) == [proto.PLAYER_LEFT]

    a.transport.restore_link()
    assert a.state is ConnectionState.CONNECTED
    assert a.local_id != old_id
    assert a.room_code == code
    # b is still known, so no duplicate join.
    assert a.drain() == []
    events = b.drain()
    assert kinds(events) == [proto.PLAYER_JOINED]
    assert events[0].player_id == a.local_id


def test_messages_from_self_or_strangers_are_ignored(pair):
    a, b, _ = pair
    a.drain()
    state = {"x": 0, "y": 0.6, "z": 0}
    a.transport._emit_message({"type": proto.PLAYER_STATE, "playerId": a.local_id, "state": state})
    a.transport._emit_message({"type": proto.PLAYER_STATE, "playerId": "ghost", "state": state})
    a.transport._emit_message({"type": proto.PLAYER_STATE, "playerId": b.local_id, "state": {"x": 1}})
    assert a.drain() == []


def test_disconnect_is_final(pair):
    a, b, _ = pair
    a.drain()
    b.drain()
    a.disconnect()
    assert a.state is ConnectionState.DISCONNECTED
    assert a.room_code is None
    assert kinds(b.drain()) == [proto.PLAYER_LEFT]
    with pytest.raises(NotConnectedError):
        a.send_player_damage(1, 1, 100)
