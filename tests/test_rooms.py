import random

import pytest

from common import protocol as proto
from common.rooms import RoomRegistry, RoomRelay
from game.errors import SessionError, ValidationError


def by_recipient(outbound):
    out = {}
    for pid, msg in outbound:
        out.setdefault(pid, []).append(msg)
    return out


@pytest.fixture
def relay():
    return RoomRelay(RoomRegistry(random.Random(5)))


def test_registry_create_join_leave():
    reg = RoomRegistry(random.Random(1))
    code = reg.create("a", {"characterName": "lucy"})
    assert len(code) == 6
    assert reg.join("b", code.lower(), {"characterName": "herald"}) == code
    assert sorted(reg.members(code)) == ["a", "b"]
    assert reg.existing_players("b") == [{"playerId": "a", "gameState": {"characterName": "lucy"}}]
    with pytest.raises(SessionError):
        reg.join("b", "ZZZZZZ")
    with pytest.raises(SessionError):
        reg.create("a")
    reg.leave("a")
    reg.leave("b")
    assert code not in reg.rooms


def test_join_creates_missing_room():
    reg = RoomRegistry()
    assert reg.join("a", "qwe123") == "QWE123"
    assert reg.members("QWE123") == ["a"]
    with pytest.raises(ValidationError):
        reg.join("b", "bad")


def test_create_and_join_acks(relay):
    out = relay.handle("a", {"type": proto.CREATE_ROOM, "ack": 1, "gameState": {"characterName": "lucy"}})
    assert len(out) == 1
    pid, reply = out[0]
    assert pid == "a" and reply["type"] == proto.ACK and reply["ack"] == 1 and reply["success"]
    code = reply["roomCode"]

    out = by_recipient(relay.handle("b", {"type": proto.JOIN_ROOM, "ack": 7, "roomCode": code,
                                          "gameState": {"characterName": "herald"}}))
    ack = out["b"][0]
    assert ack["success"] and ack["ack"] == 7
    assert ack["existingPlayers"] == [{"playerId": "a", "gameState": {"characterName": "lucy"}}]
    joined = out["a"][0]
    assert joined == {"type": proto.PLAYER_JOINED, "playerId": "b",
                      "gameState": {"characterName": "herald"}}


def test_second_room_rejected(relay):
    relay.handle("a", {"type": proto.CREATE_ROOM, "ack": 1})
    (_, reply), = relay.handle("a", {"type": proto.JOIN_ROOM, "ack": 2, "roomCode": "ABCDEF"})
    assert reply["success"] is False
    assert reply["error"] == "Already in room"
    (_, reply), = relay.handle("b", {"type": proto.JOIN_ROOM, "ack": 3, "roomCode": "??"})
    assert reply["success"] is False


def test_relay_stamps_sender_and_skips_it(relay):
    relay.handle("a", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01"})
    relay.handle("b", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01"})
    relay.handle("c", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01"})
    out = relay.handle("a", {"type": proto.PROJECTILE_CREATE, "projectileId": "a-1", "kind": "direct"})
    assert sorted(pid for pid, _ in out) == ["b", "c"]
    assert all(msg["playerId"] == "a" for _, msg in out)

    out = relay.handle("b", {"type": proto.PLAYER_STATE, "x": 1, "y": 0.6, "z": 2})
    assert sorted(pid for pid, _ in out) == ["a", "c"]
    assert out[0][1] == {"type": proto.PLAYER_STATE, "playerId": "b",
                         "state": {"x": 1, "y": 0.6, "z": 2}}
    # Late joiners see the last state.
    existing = relay.registry.existing_players("a")
    assert {"x": 1, "y": 0.6, "z": 2} in [p["gameState"].get("state") for p in existing]


def test_character_change_updates_stored_state(relay):
    relay.handle("a", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01",
                       "gameState": {"characterName": "lucy"}})
    relay.handle("a", {"type": proto.CHARACTER_CHANGE, "characterName": "herald"})
    assert relay.registry.game_state("a")["characterName"] == "herald"


def test_messages_outside_a_room(relay):
    assert relay.handle("z", {"type": proto.PLAYER_STATE, "x": 0, "y": 0, "z": 0}) == []
    (_, reply), = relay.handle("z", {"type": proto.PLAYER_DAMAGE, "ack": 9, "health": 1})
    assert reply == {"type": proto.ACK, "ack": 9, "success": False, "error": "Not in room"}


def test_unknown_request(relay):
    relay.handle("a", {"type": proto.CREATE_ROOM, "ack": 1})
    (_, reply), = relay.handle("a", {"type": "teleport", "ack": 4})
    assert reply["error"] == "Unknown request"


def test_leave_and_disconnect_notify_room(relay):
    relay.handle("a", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01"})
    relay.handle("b", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01"})
    out = by_recipient(relay.handle("a", {"type": proto.LEAVE_ROOM, "ack": 2}))
    assert out["b"] == [{"type": proto.PLAYER_LEFT, "playerId": "a"}]
    assert out["a"][0]["success"]
    out = relay.disconnect("b")
    assert out == []
    assert relay.registry.rooms == {}


def test_request_existing_players(relay):
    relay.handle("a", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01", "gameState": {"arena": "large"}})
    relay.handle("b", {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": "ROOM01"})
    (pid, msg), = relay.handle("b", {"type": proto.REQUEST_EXISTING_PLAYERS})
    assert pid == "b"
    assert msg == {"type": proto.EXISTING_PLAYERS, "players": [{"playerId": "a", "gameState": {"arena": "large"}}]}
