"""Actor records shared by the local character, bots and remote replicas."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .arena import Box
from .constants import DEFAULT_CHARACTER, HP_MAX, PLAYER_HALF_HEIGHT, PLAYER_HALF_SIZE
from .transform import Vec2, Vec3


class ActorKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    BOT = "bot"


class Facing(str, Enum):
    FRONT = "front"
    BACK = "back"

    def vector(self) -> Vec2:
        """Ground-plane direction the sprite faces: FRONT looks toward +z."""
        return Vec2(0.0, 1.0) if self is Facing.FRONT else Vec2(0.0, -1.0)


class AnimKey(str, Enum):
    IDLE_FRONT = "idle_front"
    IDLE_BACK = "idle_back"
    WALK_FRONT = "walk_front"
    WALK_BACK = "walk_back"

    @classmethod
    def for_state(cls, moving: bool, facing: Facing) -> "AnimKey":
        if moving:
            return cls.WALK_FRONT if facing is Facing.FRONT else cls.WALK_BACK
        return cls.IDLE_FRONT if facing is Facing.FRONT else cls.IDLE_BACK


@dataclass
class Actor:
    """Any simulated body with a position, velocity and health."""
    id: str
    kind: ActorKind
    pos: Vec3 = Vec3(0.0, PLAYER_HALF_HEIGHT, 0.0)
    vel: Vec3 = Vec3()
    facing: Facing = Facing.FRONT
    grounded: bool = False
    jump_cooldown: float = 0.0
    hp: int = HP_MAX
    hp_max: int = HP_MAX
    anim_key: AnimKey = AnimKey.IDLE_FRONT
    character: str = DEFAULT_CHARACTER
    rotation: float = 0.0  # radians, display yaw
    running: bool = False
    half_size: float = PLAYER_HALF_SIZE
    half_height: float = PLAYER_HALF_HEIGHT
    extra: dict = field(default_factory=dict)

    @property
    def alive(self) -> bool:
        return self.hp > 0

    def box(self, pos: Optional[Vec3] = None) -> Box:
        return Box.around(pos if pos is not None else self.pos,
                          self.half_size, self.half_height, self.half_size)

    def take_damage(self, amount: int) -> bool:
        """Apply damage, clamped at zero. Returns True if this hit killed the actor."""
        was_alive = self.hp > 0
        self.hp = max(0, self.hp - int(amount))
        return was_alive and self.hp == 0

    def restore(self, pos: Vec3) -> None:
        self.pos = pos
        self.vel = Vec3()
        self.hp = self.hp_max
        self.grounded = False
        self.jump_cooldown = 0.0


@dataclass(frozen=True)
class DamageEvent:
    target_id: str
    amount: int
    owner_id: str
    projectile_id: str = ""


@dataclass(frozen=True)
class DeathEvent:
    actor_id: str
    killer_id: Optional[str] = None
