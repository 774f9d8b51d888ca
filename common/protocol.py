# common/protocol.py
"""Wire schema shared by the relay and the client session.

Every message is a JSON object with a "type" field, sent one per line (see
common/net.py). Requests that expect a reply carry an integer "ack"; the
relay answers with {"type": "ack", "ack": n, ...}.
"""
from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from game.actors import Actor, AnimKey, Facing
from game.constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from game.errors import ValidationError
from game.projectiles import Projectile, ProjectileKind
from game.replica import PeerState
from game.transform import Vec2, Vec3

# Handshake / control
HELLO = "hello"
WELCOME = "welcome"
ACK = "ack"

# Room lifecycle
CREATE_ROOM = "create-room"
JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
PLAYER_JOINED = "player-joined"
PLAYER_LEFT = "player-left"
EXISTING_PLAYERS = "existing-players"
REQUEST_EXISTING_PLAYERS = "request-existing-players"

# Gameplay
PLAYER_STATE = "player-state"
PROJECTILE_CREATE = "projectile-create"
PROJECTILE_UPDATE = "projectile-update"
PLAYER_DAMAGE = "player-damage"
CHARACTER_CHANGE = "character-change"

# Relayed to the rest of the room with the sender's playerId stamped on.
RELAYED = (PROJECTILE_CREATE, PROJECTILE_UPDATE, PLAYER_DAMAGE)

_ROOM_CODE_RE = re.compile(r"^[A-Z0-9]{%d}$" % ROOM_CODE_LENGTH)


def normalize_room_code(code: Any) -> str:
    """Upper-case and validate a room code; raises ValidationError."""
    if not isinstance(code, str):
        raise ValidationError("room code must be a string")
    norm = code.strip().upper()
    if not _ROOM_CODE_RE.match(norm):
        raise ValidationError(f"malformed room code {code!r}")
    return norm


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    r = rng or random
    return "".join(r.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def game_state(character: str, arena: str = "standard", mode: str = "free-play") -> Dict[str, Any]:
    return {"characterName": character, "arena": arena, "gameMode": mode}


# ---- player-state ------------------------------------------------------------

def player_state_body(actor: Actor) -> Dict[str, Any]:
    return {
        "x": round(actor.pos.x, 4),
        "y": round(actor.pos.y, 4),
        "z": round(actor.pos.z, 4),
        "rotation": round(actor.rotation, 4),
        "currentAnimKey": actor.anim_key.value,
        "lastFacing": actor.facing.value,
        "isGrounded": bool(actor.grounded),
        "isRunning": bool(actor.running),
        "health": int(actor.hp),
        "maxHealth": int(actor.hp_max),
    }


def parse_player_state(body: Dict[str, Any]) -> PeerState:
    try:
        anim = AnimKey(body.get("currentAnimKey", AnimKey.IDLE_FRONT.value))
    except ValueError:
        anim = AnimKey.IDLE_FRONT
    try:
        facing = Facing(body.get("lastFacing", Facing.FRONT.value))
    except ValueError:
        facing = Facing.FRONT
    return PeerState(x=float(body["x"]), y=float(body["y"]), z=float(body["z"]),
                     rotation=float(body.get("rotation", 0.0)),
                     anim_key=anim, facing=facing,
                     grounded=bool(body.get("isGrounded", True)),
                     running=bool(body.get("isRunning", False)),
                     health=_opt_int(body.get("health")),
                     max_health=_opt_int(body.get("maxHealth")))


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


# ---- projectiles -----------------------------------------------------------------

@dataclass(frozen=True)
class ProjectileAnnouncement:
    projectile_id: str
    owner_id: str
    kind: ProjectileKind
    origin: Vec3
    direction: Optional[Vec2]
    target: Optional[Vec2]
    character: str


def projectile_create_body(proj: Projectile) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "projectileId": proj.id,
        "kind": proj.kind.value,
        "startX": proj.origin.x,
        "startY": proj.origin.y,
        "startZ": proj.origin.z,
        "characterName": proj.character,
    }
    if proj.kind is ProjectileKind.LOBBED and proj.target is not None:
        body["targetX"] = proj.target.x
        body["targetZ"] = proj.target.z
    else:
        body["dirX"] = proj.dir.x
        body["dirZ"] = proj.dir.z
    return body


def parse_projectile_create(msg: Dict[str, Any]) -> ProjectileAnnouncement:
    kind = ProjectileKind(msg.get("kind", ProjectileKind.DIRECT.value))
    direction = target = None
    if kind is ProjectileKind.LOBBED:
        target = Vec2(float(msg["targetX"]), float(msg["targetZ"]))
    else:
        direction = Vec2(float(msg["dirX"]), float(msg["dirZ"]))
    return ProjectileAnnouncement(
        projectile_id=str(msg["projectileId"]),
        owner_id=str(msg["playerId"]),
        kind=kind,
        origin=Vec3(float(msg["startX"]), float(msg["startY"]), float(msg["startZ"])),
        direction=direction,
        target=target,
        character=str(msg.get("characterName", "")),
    )


def projectile_update_body(proj: Projectile) -> Dict[str, Any]:
    vel = proj.velocity_xz()
    return {"projectileId": proj.id, "x": proj.pos.x, "y": proj.pos.y, "z": proj.pos.z,
            "velocityX": vel.x, "velocityZ": vel.z}


def parse_projectile_update(msg: Dict[str, Any]) -> Tuple[str, Vec3, Vec2]:
    return (str(msg["projectileId"]),
            Vec3(float(msg["x"]), float(msg["y"]), float(msg["z"])),
            Vec2(float(msg.get("velocityX", 0.0)), float(msg.get("velocityZ", 0.0))))


# ---- damage ------------------------------------------------------------------------

def player_damage_body(damage: int, health: int, max_health: int) -> Dict[str, Any]:
    return {"damage": int(damage), "health": int(health), "maxHealth": int(max_health)}
