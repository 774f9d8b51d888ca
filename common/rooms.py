# common/rooms.py
"""Room bookkeeping and message routing for the relay.

RoomRelay is transport-agnostic: it takes (sender, message) and returns the
(recipient, message) pairs to deliver. server.py drives it from TCP streams,
common.transport.LoopbackHub drives it in-process.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from game.errors import SessionError, ValidationError

from . import protocol as proto

log = logging.getLogger(__name__)

Outbound = List[Tuple[str, Dict[str, Any]]]


class RoomRegistry:
    """Room code -> members (player id -> gameState). A player is in at most one room."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()
        self.rooms: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._player_room: Dict[str, str] = {}

    def room_of(self, player_id: str) -> Optional[str]:
        return self._player_room.get(player_id)

    def members(self, code: str) -> List[str]:
        return list(self.rooms.get(code, {}))

    def game_state(self, player_id: str) -> Dict[str, Any]:
        code = self._player_room.get(player_id)
        if code is None:
            return {}
        return self.rooms[code].get(player_id, {})

    def create(self, player_id: str, game_state: Optional[Dict[str, Any]] = None) -> str:
        if player_id in self._player_room:
            raise SessionError("Already in room")
        code = proto.generate_room_code(self.rng)
        while code in self.rooms:
            code = proto.generate_room_code(self.rng)
        self._add(player_id, code, game_state)
        log.info("room %s created by %s", code, player_id)
        return code

    def join(self, player_id: str, code: str, game_state: Optional[Dict[str, Any]] = None) -> str:
        """Join (creating on demand) the room; returns the normalized code."""
        code = proto.normalize_room_code(code)
        if player_id in self._player_room:
            raise SessionError("Already in room")
        self._add(player_id, code, game_state)
        log.info("%s joined room %s", player_id, code)
        return code

    def _add(self, player_id: str, code: str, game_state: Optional[Dict[str, Any]]) -> None:
        self.rooms.setdefault(code, {})[player_id] = dict(game_state or {})
        self._player_room[player_id] = code

    def leave(self, player_id: str) -> Optional[str]:
        code = self._player_room.pop(player_id, None)
        if code is None:
            return None
        members = self.rooms.get(code, {})
        members.pop(player_id, None)
        if not members:
            self.rooms.pop(code, None)
            log.info("room %s closed (empty)", code)
        log.info("%s left room %s", player_id, code)
        return code

    def existing_players(self, player_id: str) -> List[Dict[str, Any]]:
        code = self._player_room.get(player_id)
        if code is None:
            return []
        return [{"playerId": pid, "gameState": gs}
                for pid, gs in self.rooms[code].items() if pid != player_id]


class RoomRelay:
    def __init__(self, registry: Optional[RoomRegistry] = None) -> None:
        self.registry = registry or RoomRegistry()

    def _others(self, player_id: str, msg: Dict[str, Any]) -> Outbound:
        code = self.registry.room_of(player_id)
        if code is None:
            return []
        return [(pid, msg) for pid in self.registry.members(code) if pid != player_id]

    @staticmethod
    def _ack(player_id: str, msg: Dict[str, Any], **fields: Any) -> Outbound:
        if "ack" not in msg:
            return []
        reply = {"type": proto.ACK, "ack": msg["ack"]}
        reply.update(fields)
        return [(player_id, reply)]

    def handle(self, player_id: str, msg: Dict[str, Any]) -> Outbound:
        kind = msg.get("type")
        reg = self.registry

        if kind == proto.CREATE_ROOM:
            gs = msg.get("gameState") or {}
            try:
                code = reg.create(player_id, gs)
            except SessionError as e:
                return self._ack(player_id, msg, success=False, error=str(e))
            return self._ack(player_id, msg, success=True, roomCode=code)

        if kind == proto.JOIN_ROOM:
            gs = msg.get("gameState") or {}
            try:
                code = reg.join(player_id, msg.get("roomCode"), gs)
            except (ValidationError, SessionError) as e:
                return self._ack(player_id, msg, success=False, error=str(e))
            out = self._ack(player_id, msg, success=True, roomCode=code,
                            existingPlayers=reg.existing_players(player_id))
            out += self._others(player_id, {"type": proto.PLAYER_JOINED,
                                            "playerId": player_id, "gameState": gs})
            return out

        if kind == proto.LEAVE_ROOM:
            return self._remove(player_id) + self._ack(player_id, msg, success=True)

        if reg.room_of(player_id) is None:
            log.debug("dropping %s from %s (not in a room)", kind, player_id)
            return self._ack(player_id, msg, success=False, error="Not in room")

        if kind == proto.PLAYER_STATE:
            state = {k: v for k, v in msg.items() if k not in ("type", "ack")}
            reg.game_state(player_id)["state"] = state
            return self._others(player_id, {"type": proto.PLAYER_STATE,
                                            "playerId": player_id, "state": state})

        if kind in proto.RELAYED:
            relayed = dict(msg)
            relayed["playerId"] = player_id
            return self._others(player_id, relayed)

        if kind == proto.CHARACTER_CHANGE:
            name = msg.get("characterName")
            reg.game_state(player_id)["characterName"] = name
            return self._others(player_id, {"type": proto.CHARACTER_CHANGE,
                                            "playerId": player_id, "characterName": name})

        if kind == proto.REQUEST_EXISTING_PLAYERS:
            return [(player_id, {"type": proto.EXISTING_PLAYERS,
                                 "players": reg.existing_players(player_id)})]

        log.debug("unknown message type %r from %s", kind, player_id)
        return self._ack(player_id, msg, success=False, error="Unknown request")

    def disconnect(self, player_id: str) -> Outbound:
        return self._remove(player_id)

    def _remove(self, player_id: str) -> Outbound:
        out = self._others(player_id, {"type": proto.PLAYER_LEFT, "playerId": player_id})
        self.registry.leave(player_id)
        return out
