"""Receiver-side mirrors of remote peers: snapshot interpolation with short extrapolation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .actors import AnimKey, Facing
from .constants import (
    DEFAULT_CHARACTER,
    REPLICA_EXTRAP_LAG,
    REPLICA_EXTRAP_MAX,
    REPLICA_FRESH_WINDOW,
    REPLICA_RESET_DIST,
    REPLICA_SNAP_EPS,
    REPLICA_VEL_KEEP,
    STALE_REPLICA_SECONDS,
)
from .transform import Vec2, Vec3, clamp, distance, lerp3

log = logging.getLogger(__name__)

# Per-frame blend factors are tuned for a 60 Hz display.
_REFERENCE_HZ = 60.0


@dataclass(frozen=True)
class PeerState:
    """One received player-state body."""
    x: float
    y: float
    z: float
    rotation: float = 0.0
    anim_key: AnimKey = AnimKey.IDLE_FRONT
    facing: Facing = Facing.FRONT
    grounded: bool = True
    running: bool = False
    health: Optional[int] = None
    max_health: Optional[int] = None

    @property
    def position(self) -> Vec3:
        return Vec3(self.x, self.y, self.z)


class RemoteReplica:
    def __init__(self, peer_id: str, position: Vec3, now: float,
                 character: str = DEFAULT_CHARACTER) -> None:
        self.peer_id = peer_id
        self.character = character
        self.position = position
        self.target = position
        self.previous = position
        self.vel_smoothed = Vec2()
        self.interpolation_time = 0.0
        self.last_update = now
        self.anim_key = AnimKey.IDLE_FRONT
        self.facing = Facing.FRONT
        self.grounded = True
        self.running = False
        self.rotation = 0.0
        self.seeded = False

    def apply_state(self, state: PeerState, now: float) -> None:
        """Take a new target. Re-applying the same state at the same time changes nothing."""
        new_target = state.position
        if not self.seeded:
            # First state: appear there directly instead of gliding in from the default spot.
            self.position = self.previous = self.target = new_target
            self.seeded = True
            self.last_update = now
            self._copy_pose(state)
            return
        elapsed = now - self.last_update
        if 0.0 < elapsed < 1.0:
            inst = Vec2((new_target.x - self.target.x) / elapsed,
                        (new_target.z - self.target.z) / elapsed)
            keep = REPLICA_VEL_KEEP
            self.vel_smoothed = Vec2(keep * self.vel_smoothed.x + (1.0 - keep) * inst.x,
                                     keep * self.vel_smoothed.z + (1.0 - keep) * inst.z)
        self.previous = self.position
        self.target = new_target
        if distance(self.position, self.target) > REPLICA_RESET_DIST:
            self.interpolation_time = 0.0
        self.last_update = now
        self._copy_pose(state)

    def _copy_pose(self, state: PeerState) -> None:
        self.anim_key = state.anim_key
        self.facing = state.facing
        self.grounded = state.grounded
        self.running = state.running
        self.rotation = state.rotation

    def advance(self, dt: float, now: float) -> Vec3:
        self.interpolation_time += dt
        since = now - self.last_update
        pos, target = self.position, self.target
        dxz = Vec2(target.x - pos.x, target.z - pos.z).length()
        dy = abs(target.y - pos.y)

        if dxz < REPLICA_SNAP_EPS and dy < REPLICA_SNAP_EPS:
            self.position = target
        elif since < REPLICA_FRESH_WINDOW:
            d = distance(pos, target)
            alpha = 0.25 + 0.15 * clamp(d / 5.0, 0.0, 1.0)
            # Same convergence per second whatever the frame rate.
            alpha = 1.0 - (1.0 - alpha) ** (max(dt, 0.0) * _REFERENCE_HZ)
            self.position = lerp3(pos, target, alpha)
        else:
            # Y is never extrapolated: the receiver cannot observe gravity.
            lead = min(since - REPLICA_EXTRAP_LAG, REPLICA_EXTRAP_MAX)
            self.position = Vec3(target.x + self.vel_smoothed.x * lead, target.y,
                                 target.z + self.vel_smoothed.z * lead)
        return self.position

    def is_stale(self, now: float, timeout: float = STALE_REPLICA_SECONDS) -> bool:
        return now - self.last_update > timeout


class ReplicaManager:
    """Owns every RemoteReplica, keyed by peer id."""

    def __init__(self, cfg: Optional[Dict] = None) -> None:
        cfg = cfg or {}
        self.stale_after = float(cfg.get("stale_replica_seconds", STALE_REPLICA_SECONDS))
        self.replicas: Dict[str, RemoteReplica] = {}

    def add(self, peer_id: str, now: float, state: Optional[PeerState] = None,
            character: str = DEFAULT_CHARACTER) -> RemoteReplica:
        position = state.position if state is not None else Vec3(0.0, 0.6, 0.0)
        replica = RemoteReplica(peer_id, position, now, character)
        if state is not None:
            replica.apply_state(state, now)
        self.replicas[peer_id] = replica
        return replica

    def remove(self, peer_id: str) -> Optional[RemoteReplica]:
        return self.replicas.pop(peer_id, None)

    def get(self, peer_id: str) -> Optional[RemoteReplica]:
        return self.replicas.get(peer_id)

    def apply(self, peer_id: str, state: PeerState, now: float) -> bool:
        """Route a player-state to its replica; unknown or reaped peers are dropped."""
        replica = self.replicas.get(peer_id)
        if replica is None:
            return False
        replica.apply_state(state, now)
        return True

    def advance_all(self, dt: float, now: float) -> None:
        for replica in self.replicas.values():
            replica.advance(dt, now)

    def reap(self, now: float) -> List[str]:
        stale = [pid for pid, r in self.replicas.items() if r.is_stale(now, self.stale_after)]
        for pid in stale:
            del self.replicas[pid]
            log.info("reaped stale replica %s", pid)
        return stale
