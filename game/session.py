"""Room session: connection state, peer table, inbox/outbox around a Transport.

Threading: transport callbacks may run on a network thread. They only
resolve request futures and push raw messages into a thread-safe inbox;
everything that touches game state happens in `drain()`, which the
simulation loop calls at the top of each tick.
"""
from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from common import protocol as proto
from common.transport import LinkStatus, Transport

from .characters import validate_character
from .constants import PLAYER_STATE_HZ, PROJECTILE_UPDATE_HZ
from .errors import NotConnectedError, SessionError

log = logging.getLogger(__name__)

# Synthetic inbox message: local bookkeeping, never sent on the wire.
_LOCAL_LEFT = "local-peer-left"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class PeerInfo:
    player_id: str
    character: str = "lucy"
    arena: str = "standard"
    game_mode: str = "free-play"
    last_state_time: Optional[float] = None
    game_state: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionEvent:
    """Typed inbound event for the simulation loop."""
    kind: str
    player_id: str
    data: Any = None


class SessionManager:
    def __init__(self, transport: Transport, *, cfg: Optional[Dict] = None,
                 now_fn: Callable[[], float] = time.monotonic,
                 on_player_joined: Optional[Callable[[PeerInfo], None]] = None,
                 on_player_left: Optional[Callable[[str], None]] = None,
                 on_state_change: Optional[Callable[[ConnectionState], None]] = None) -> None:
        cfg = cfg or {}
        self.transport = transport
        self.now_fn = now_fn
        self.on_player_joined = on_player_joined
        self.on_player_left = on_player_left
        self.on_state_change = on_state_change
        self.state_interval = 1.0 / float(cfg.get("player_state_hz", PLAYER_STATE_HZ))
        self.update_interval = 1.0 / float(cfg.get("projectile_update_hz", PROJECTILE_UPDATE_HZ))

        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._inbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._outbox: List[Dict[str, Any]] = []
        self._pending: Dict[int, Tuple[str, Future]] = {}
        self._ack_ids = itertools.count(1)
        self._last_state_sent = float("-inf")
        self._last_updates_sent = float("-inf")

        self.local_id: Optional[str] = None
        self.room_code: Optional[str] = None
        self.game_state: Dict[str, Any] = {}
        self.peers: Dict[str, PeerInfo] = {}
        self._left_by_caller = False

        transport.on_message = self._on_transport_message
        transport.on_status = self._on_transport_status

    # ---- state ---------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def in_room(self) -> bool:
        return self.room_code is not None

    def _set_state(self, new: ConnectionState) -> None:
        with self._lock:
            old, self._state = self._state, new
        if old is not new:
            log.info("connection %s -> %s", old.value, new.value)
            if self.on_state_change is not None:
                self.on_state_change(new)

    def _require_connected(self) -> None:
        if self._state is not ConnectionState.CONNECTED:
            raise NotConnectedError(f"session is {self._state.value}")

    # ---- connection ------------------------------------------------------------
    def connect(self) -> None:
        if self._state is not ConnectionState.DISCONNECTED:
            return
        self._set_state(ConnectionState.CONNECTING)
        self.transport.connect()

    def disconnect(self) -> None:
        """Caller-initiated: stops reconnect attempts and forgets the room."""
        self._left_by_caller = True
        self._forget_room()
        self._set_state(ConnectionState.DISCONNECTED)
        self.transport.close()
        self._fail_pending(NotConnectedError("disconnected"))

    def _on_transport_status(self, status: LinkStatus) -> None:
        if status is LinkStatus.CONNECTED:
            was = self._state
            self.local_id = self.transport.peer_id
            self._set_state(ConnectionState.CONNECTED)
            if was is ConnectionState.RECONNECTING:
                self._rejoin()
        elif status is LinkStatus.LOST:
            if self._state is ConnectionState.DISCONNECTED:
                return
            self._fail_pending(NotConnectedError("link lost"))
            self._set_state(ConnectionState.RECONNECTING)
        elif status is LinkStatus.FAILED:
            log.debug("connect attempt failed while %s", self._state.value)
        elif status is LinkStatus.CLOSED:
            self._set_state(ConnectionState.DISCONNECTED)

    def _rejoin(self) -> None:
        code = self.room_code
        if code is None or self._left_by_caller:
            return
        # The relay dropped us from the room with the old link.
        self.room_code = None
        log.info("rejoining room %s after reconnect", code)
        self._request(proto.JOIN_ROOM, {"roomCode": code, "gameState": self.game_state},
                      on_ok=self._room_entered)

    # ---- requests --------------------------------------------------------------
    def _request(self, kind: str, body: Dict[str, Any],
                 on_ok: Optional[Callable[[Dict[str, Any]], None]] = None) -> Future:
        fut: Future = Future()
        ack = next(self._ack_ids)
        with self._lock:
            self._pending[ack] = (kind, fut)
        if on_ok is not None:
            def _done(f: Future) -> None:
                if not f.cancelled() and f.exception() is None:
                    on_ok(f.result())
            fut.add_done_callback(_done)
        msg = {"type": kind, "ack": ack}
        msg.update(body)
        self.transport.send(msg)
        return fut

    def _fail_pending(self, exc: Exception) -> None:
        with self._lock:
            pending, self._pending = self._pending, {}
        for _, fut in pending.values():
            if not fut.done():
                fut.set_exception(exc)

    def _resolve_ack(self, msg: Dict[str, Any]) -> None:
        with self._lock:
            entry = self._pending.pop(msg.get("ack"), None)
        if entry is None:
            return
        kind, fut = entry
        if msg.get("success", True):
            fut.set_result(msg)
        else:
            log.warning("%s rejected: %s", kind, msg.get("error"))
            fut.set_exception(SessionError(str(msg.get("error", "request rejected"))))

    def create_room(self, game_state: Dict[str, Any]) -> Future:
        """Ask the relay for a new room. The future resolves to the 6-character code."""
        validate_character(game_state.get("characterName", "lucy"))
        self._require_connected()
        if self.room_code is not None:
            raise SessionError("Already in room")
        self._left_by_caller = False
        self.game_state = dict(game_state)
        result: Future = Future()

        def done(f: Future) -> None:
            if f.exception() is not None:
                result.set_exception(f.exception())
                return
            reply = f.result()
            self._room_entered(reply)
            result.set_result(reply["roomCode"])

        self._request(proto.CREATE_ROOM, {"gameState": self.game_state}).add_done_callback(done)
        return result

    def join_room(self, code: str, game_state: Dict[str, Any]) -> Future:
        """Join a room by code. The future resolves to the relay's reply (with existingPlayers)."""
        code = proto.normalize_room_code(code)
        validate_character(game_state.get("characterName", "lucy"))
        self._require_connected()
        if self.room_code is not None:
            raise SessionError("Already in room")
        self._left_by_caller = False
        self.game_state = dict(game_state)
        return self._request(proto.JOIN_ROOM, {"roomCode": code, "gameState": self.game_state},
                             on_ok=self._room_entered)

    def _room_entered(self, reply: Dict[str, Any]) -> None:
        # Runs on the transport thread; only touches the inbox and plain fields.
        self.room_code = reply.get("roomCode")
        existing = reply.get("existingPlayers", []) or []
        present = {str(p.get("playerId")) for p in existing}
        for pid in list(self.peers):
            if pid not in present:
                self._inbox.put({"type": _LOCAL_LEFT, "playerId": pid})
        self._inbox.put({"type": proto.EXISTING_PLAYERS, "players": existing})
        log.info("in room %s with %d peer(s)", self.room_code, len(existing))

    def leave_room(self) -> None:
        """Leave immediately; queued outbound messages are dropped."""
        if self.room_code is None:
            return
        self._left_by_caller = True
        if self._state is ConnectionState.CONNECTED:
            self.transport.send({"type": proto.LEAVE_ROOM})
        log.info("left room %s", self.room_code)
        self._forget_room()

    def _forget_room(self) -> None:
        self._outbox.clear()
        self.room_code = None
        for pid in list(self.peers):
            self._inbox.put({"type": _LOCAL_LEFT, "playerId": pid})

    def request_existing_players(self) -> None:
        self._require_connected()
        if self.room_code is None:
            raise SessionError("Not in room")
        self.transport.send({"type": proto.REQUEST_EXISTING_PLAYERS})

    # ---- outbound ----------------------------------------------------------------
    def _queue(self, msg: Dict[str, Any]) -> bool:
        if self._state is ConnectionState.DISCONNECTED:
            raise NotConnectedError("session is disconnected")
        if self._state is not ConnectionState.CONNECTED or self.room_code is None:
            return False
        self._outbox.append(msg)
        return True

    def send_projectile_create(self, body: Dict[str, Any]) -> bool:
        return self._queue({"type": proto.PROJECTILE_CREATE, **body})

    def send_player_damage(self, damage: int, health: int, max_health: int) -> bool:
        return self._queue({"type": proto.PLAYER_DAMAGE,
                            **proto.player_damage_body(damage, health, max_health)})

    def send_character_change(self, name: str) -> bool:
        validate_character(name)
        self.game_state["characterName"] = name
        return self._queue({"type": proto.CHARACTER_CHANGE, "characterName": name})

    def flush_outbound(self, now: float, player_state: Optional[Dict[str, Any]] = None,
                       projectile_updates: Iterable[Dict[str, Any]] = ()) -> int:
        """Send queued messages plus throttled player-state / projectile-update. Returns count sent."""
        if self._state is not ConnectionState.CONNECTED or self.room_code is None:
            self._outbox.clear()
            return 0
        if player_state is not None and now - self._last_state_sent >= self.state_interval - 1e-9:
            self._outbox.append({"type": proto.PLAYER_STATE, **player_state})
            self._last_state_sent = now
        updates = list(projectile_updates)
        if updates and now - self._last_updates_sent >= self.update_interval - 1e-9:
            self._outbox.extend({"type": proto.PROJECTILE_UPDATE, **u} for u in updates)
            self._last_updates_sent = now
        sent, self._outbox = self._outbox, []
        for msg in sent:
            self.transport.send(msg)
        return len(sent)

    # ---- inbound -----------------------------------------------------------------
    def _on_transport_message(self, msg: Dict[str, Any]) -> None:
        if msg.get("type") == proto.ACK:
            self._resolve_ack(msg)
            return
        if self._state is not ConnectionState.CONNECTED:
            return
        self._inbox.put(msg)

    def drain(self) -> List[SessionEvent]:
        """Process every queued inbound message; returns events in arrival order."""
        events: List[SessionEvent] = []
        while True:
            try:
                msg = self._inbox.get_nowait()
            except queue.Empty:
                break
            try:
                events.extend(self._process(msg))
            except (KeyError, ValueError, TypeError) as e:
                log.debug("dropping malformed %s: %s", msg.get("type"), e)
        return events

    def _add_peer(self, pid: str, gs: Dict[str, Any]) -> Optional[SessionEvent]:
        if not pid or pid == self.local_id or pid in self.peers:
            return None
        peer = PeerInfo(player_id=pid,
                        character=str(gs.get("characterName", "lucy")),
                        arena=str(gs.get("arena", "standard")),
                        game_mode=str(gs.get("gameMode", "free-play")),
                        game_state=dict(gs))
        self.peers[pid] = peer
        log.info("peer %s joined (%s)", pid, peer.character)
        if self.on_player_joined is not None:
            self.on_player_joined(peer)
        return SessionEvent(proto.PLAYER_JOINED, pid, peer)

    def _process(self, msg: Dict[str, Any]) -> List[SessionEvent]:
        kind = msg.get("type")
        pid = str(msg.get("playerId", ""))

        if kind == proto.PLAYER_JOINED:
            ev = self._add_peer(pid, msg.get("gameState") or {})
            return [ev] if ev else []

        if kind == proto.EXISTING_PLAYERS:
            out = []
            for entry in msg.get("players", []) or []:
                ev = self._add_peer(str(entry.get("playerId", "")), entry.get("gameState") or {})
                if ev:
                    out.append(ev)
            return out

        if kind in (proto.PLAYER_LEFT, _LOCAL_LEFT):
            if self.peers.pop(pid, None) is None:
                return []
            log.info("peer %s left", pid)
            if self.on_player_left is not None:
                self.on_player_left(pid)
            return [SessionEvent(proto.PLAYER_LEFT, pid)]

        if pid == self.local_id or pid not in self.peers:
            return []
        peer = self.peers[pid]

        if kind == proto.PLAYER_STATE:
            state = proto.parse_player_state(msg["state"])
            peer.last_state_time = self.now_fn()
            return [SessionEvent(kind, pid, state)]
        if kind == proto.PROJECTILE_CREATE:
            return [SessionEvent(kind, pid, proto.parse_projectile_create(msg))]
        if kind == proto.PROJECTILE_UPDATE:
            return [SessionEvent(kind, pid, proto.parse_projectile_update(msg))]
        if kind == proto.PLAYER_DAMAGE:
            data = {"damage": int(msg.get("damage", 0)), "health": int(msg["health"]),
                    "maxHealth": int(msg.get("maxHealth", msg["health"]))}
            return [SessionEvent(kind, pid, data)]
        if kind == proto.CHARACTER_CHANGE:
            name = str(msg["characterName"])
            peer.character = name
            return [SessionEvent(kind, pid, name)]
        log.debug("ignoring %s from %s", kind, pid)
        return []
