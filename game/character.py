"""Local player: turns an InputFrame into movement, facing/animation and projectile spawns."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .actors import Actor, AnimKey, DeathEvent, Facing
from .characters import BUILTIN_CHARACTERS, CharacterStats, get_character
from .constants import (
    DEATH_DELAY,
    FACING_THRESHOLD,
    FALL_COUNTDOWN,
    MOVE_EPS,
    MOVE_SPEED,
    PROJECTILE_SPAWN_HEIGHT,
    RUN_MULTIPLIER,
)
from .event_bus import EventBus
from .kinematics import Kinematics, RespawnCountdown
from .projectiles import ProjectileEngine
from .transform import Vec2, Vec3, heading_of

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputFrame:
    """Normalized per-tick input.

    `move` has length <= 1 (analog sticks may be shorter). `aim` is a world-space
    point on the ground (cursor projected onto the floor), or None to use facing.
    """
    move: Vec2 = Vec2()
    running: bool = False
    jump: bool = False
    fire: bool = False
    lob: bool = False
    melee: bool = False
    aim: Optional[Vec2] = None


class LocalCharacter:
    def __init__(self, actor: Actor, kinematics: Kinematics, projectiles: ProjectileEngine,
                 characters: Optional[Dict[str, CharacterStats]] = None,
                 cfg: Optional[Dict] = None, events: Optional[EventBus] = None) -> None:
        cfg = cfg or {}
        self.actor = actor
        self.kinematics = kinematics
        self.projectiles = projectiles
        self.characters = characters or BUILTIN_CHARACTERS
        self.events = events or EventBus()
        self.move_speed = float(cfg.get("move_speed", MOVE_SPEED))
        self.run_multiplier = float(cfg.get("run_multiplier", RUN_MULTIPLIER))
        self.death_delay = float(cfg.get("death_delay", DEATH_DELAY))
        self.spawn_point = Vec3(0.0, actor.half_height, 0.0)
        self.countdown = RespawnCountdown(float(cfg.get("fall_countdown", FALL_COUNTDOWN)))
        self.dying_remaining = 0.0
        self.stats = get_character(actor.character, self.characters)

    @property
    def dead(self) -> bool:
        return not self.actor.alive

    def set_character(self, name: str) -> None:
        """Switch character. HP carries over unchanged."""
        self.stats = get_character(name, self.characters)
        self.actor.character = name

    def update(self, frame: InputFrame, dt: float) -> List[str]:
        """Advance one tick. Returns ids of projectiles spawned this tick."""
        actor = self.actor
        if self.dead:
            self.dying_remaining -= dt
            if self.dying_remaining <= 0.0:
                self.respawn()
            return []

        move = frame.move.clamped(1.0)
        if move.z > FACING_THRESHOLD:
            actor.facing = Facing.FRONT
        elif move.z < -FACING_THRESHOLD:
            actor.facing = Facing.BACK
        moving = move.length() >= MOVE_EPS
        actor.anim_key = AnimKey.for_state(moving, actor.facing)
        actor.running = frame.running and moving
        if moving:
            actor.rotation = heading_of(move)

        speed = self.move_speed * (self.run_multiplier if frame.running else 1.0)
        self.kinematics.step(actor, move, speed, dt, jump=frame.jump)

        if self.countdown.update(actor.pos, self.kinematics.arena, dt):
            log.info("%s fell out of the arena; respawning", actor.id)
            self.respawn()
            return []

        return self._fire(frame)

    def _fire(self, frame: InputFrame) -> List[str]:
        actor = self.actor
        spawned: List[str] = []
        origin = actor.pos.with_y(actor.pos.y + PROJECTILE_SPAWN_HEIGHT)
        if frame.fire:
            if frame.aim is not None:
                direction = Vec2(frame.aim.x - actor.pos.x, frame.aim.z - actor.pos.z)
            else:
                direction = actor.facing.vector()
            pid = self.projectiles.try_spawn_direct(actor.id, origin, direction,
                                                    self.stats.direct, actor.character)
            if pid is not None:
                spawned.append(pid)
        if frame.lob:
            if frame.aim is not None:
                target = frame.aim
            else:
                reach = self.stats.lobbed.max_range * 0.5
                f = actor.facing.vector()
                target = Vec2(actor.pos.x + f.x * reach, actor.pos.z + f.z * reach)
            pid = self.projectiles.try_spawn_lobbed(actor.id, origin, target,
                                                    self.stats.lobbed, actor.character)
            if pid is not None:
                spawned.append(pid)
        if frame.melee and self.stats.melee is not None:
            spawned.extend(self.projectiles.try_spawn_burst(actor.id, actor.pos, self.stats.melee,
                                                            actor.character))
        return spawned

    def on_death(self, death: DeathEvent) -> None:
        self.dying_remaining = self.death_delay
        self.actor.vel = Vec3()

    def respawn(self) -> None:
        self.actor.restore(self.spawn_point)
        self.actor.anim_key = AnimKey.for_state(False, self.actor.facing)
        self.countdown.reset()
        self.dying_remaining = 0.0
        self.events.emit("respawn", self.actor.id)
