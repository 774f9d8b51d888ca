# game/kinematics.py
"""Gravity, jumping, ground snap and axis-separated move-and-collide for actors."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .arena import Arena
from .constants import (
    FALL_COUNTDOWN,
    GRAVITY,
    GROUND_EPS,
    JUMP_COOLDOWN,
    JUMP_FORCE,
    MAX_DT,
)
from .transform import Vec2, Vec3

log = logging.getLogger(__name__)


@dataclass
class StepResult:
    blocked_x: bool = False
    blocked_z: bool = False
    jumped: bool = False
    landed: bool = False

    @property
    def blocked(self) -> bool:
        return self.blocked_x or self.blocked_z


class Kinematics:
    """Moves actors through one arena. Stateless apart from tunables."""

    def __init__(self, arena: Arena, cfg: Optional[Dict[str, float]] = None) -> None:
        cfg = cfg or {}
        self.arena = arena
        self.gravity = float(cfg.get("gravity", GRAVITY))
        self.jump_force = float(cfg.get("jump_force", JUMP_FORCE))
        self.jump_cooldown = float(cfg.get("jump_cooldown", JUMP_COOLDOWN))
        self.max_dt = float(cfg.get("max_dt", MAX_DT))

    def clamp_dt(self, dt: float) -> float:
        return max(0.0, min(dt, self.max_dt))

    def try_jump(self, actor) -> bool:
        if not actor.grounded or actor.jump_cooldown > 0.0:
            return False
        actor.vel = actor.vel.with_y(self.jump_force)
        actor.grounded = False
        actor.jump_cooldown = self.jump_cooldown
        return True

    def step(self, actor, desired: Vec2, speed: float, dt: float, jump: bool = False) -> StepResult:
        dt = self.clamp_dt(dt)
        result = StepResult()
        actor.jump_cooldown = max(0.0, actor.jump_cooldown - dt)
        if jump:
            result.jumped = self.try_jump(actor)

        vy = actor.vel.y + self.gravity * dt

        move = desired.clamped(1.0)
        dx = move.x * speed * dt
        dz = move.z * speed * dt

        # Axis-separated sweep: a blocked axis keeps its coordinate, the other slides.
        pos = actor.pos
        if dx:
            cand = Vec3(pos.x + dx, pos.y, pos.z)
            if self.arena.will_collide(actor.box(cand)):
                result.blocked_x = True
            else:
                pos = cand
        if dz:
            cand = Vec3(pos.x, pos.y, pos.z + dz)
            if self.arena.will_collide(actor.box(cand)):
                result.blocked_z = True
            else:
                pos = cand

        feet_before = pos.y - actor.half_height
        pos = pos.with_y(pos.y + vy * dt)

        # Only surfaces at or below the feet count as ground.
        ceiling = max(feet_before, pos.y - actor.half_height) + GROUND_EPS
        ground = self.arena.ground_height(pos.x, pos.z, actor.half_size * 2.0, max_height=ceiling)
        if pos.y - actor.half_height <= ground:
            pos = pos.with_y(ground + actor.half_height)
            vy = 0.0
            result.landed = not actor.grounded
            actor.grounded = True
        else:
            actor.grounded = False

        if not self.arena.is_out_of_arena(pos.x, pos.z):
            pos = self.arena.clamp_to_arena(pos)

        actor.pos = pos
        actor.vel = Vec3(dx / dt if dt > 0 else 0.0, vy, dz / dt if dt > 0 else 0.0)
        return result


class RespawnState(str, Enum):
    INSIDE = "inside"
    FALLING = "falling"
    RESPAWN = "respawn"


class RespawnCountdown:
    """Commits a respawn only after an actor has been below ground outside the arena long enough."""

    def __init__(self, duration: float = FALL_COUNTDOWN) -> None:
        self.duration = float(duration)
        self.state = RespawnState.INSIDE
        self.remaining = 0.0

    def update(self, pos: Vec3, arena: Arena, dt: float) -> bool:
        """Advance the countdown; True on the tick the respawn should happen."""
        outside = arena.is_out_of_arena(pos.x, pos.z)
        if not outside:
            if self.state is RespawnState.FALLING:
                log.debug("fall countdown cancelled (re-entered arena)")
            self.reset()
            return False

        if self.state is RespawnState.INSIDE:
            if pos.y < 0.0:
                self.state = RespawnState.FALLING
                self.remaining = self.duration
            return False

        if self.state is RespawnState.FALLING:
            self.remaining -= dt
            if self.remaining <= 0.0:
                self.state = RespawnState.RESPAWN
                return True
        return False

    def reset(self) -> None:
        self.state = RespawnState.INSIDE
        self.remaining = 0.0
