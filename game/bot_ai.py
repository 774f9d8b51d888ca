# game/bot_ai.py
import logging, math, random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .actors import Actor, ActorKind, AnimKey, DeathEvent, Facing
from .characters import BUILTIN_CHARACTERS, CharacterStats, get_character
from .constants import (
    BOT_CHANGE_DIR_MAX, BOT_CHANGE_DIR_MIN, BOT_DEATH_FADE, BOT_DETECTION_RADIUS,
    BOT_KEEP_DISTANCE, BOT_REACQUIRE_RADIUS, BOT_SHOOT_INTERVAL_MAX, BOT_SHOOT_INTERVAL_MIN,
    BOT_SHOOT_RANGE, BOT_SPAWN_HALF_EXTENT, MOVE_EPS, MOVE_SPEED, PROJECTILE_SPAWN_HEIGHT,
)
from .errors import ValidationError
from .kinematics import Kinematics
from .projectiles import ProjectileEngine
from .transform import Vec2, Vec3, direction_xz, distance_xz, heading_of, heading_vector, wrap_pi

log = logging.getLogger(__name__)


def _turn_toward(curr: float, target: float, rate_rad_per_s: float, dt: float) -> float:
    diff = wrap_pi(target - curr)
    maxstep = rate_rad_per_s * dt
    if diff > maxstep:  diff = maxstep
    if diff < -maxstep: diff = -maxstep
    return wrap_pi(curr + diff)


class BotState(str, Enum):
    WANDER = "wander"
    PURSUE = "pursue"
    DEAD = "dead"


@dataclass(frozen=True)
class BotDifficulty:
    name: str
    shoot_interval_multiplier: float
    follow_distance_multiplier: float


DIFFICULTIES: Dict[str, BotDifficulty] = {
    "easy":     BotDifficulty("easy", 1.5, 0.8),
    "beginner": BotDifficulty("beginner", 1.2, 0.9),
    "midway":   BotDifficulty("midway", 1.0, 1.0),
    "veteran":  BotDifficulty("veteran", 0.8, 1.2),
}


def get_difficulty(name: str) -> BotDifficulty:
    try:
        return DIFFICULTIES[name]
    except KeyError:
        raise ValidationError(f"unknown bot difficulty {name!r}") from None


class BotController:
    """
    Wander / pursue state machine for one bot. Produces the same kind of
    control output a player would (a move vector plus fire requests) and
    drives it through the shared kinematics and projectile engine.
    """
    def __init__(self, actor: Actor, kinematics: Kinematics, projectiles: ProjectileEngine,
                 characters: Optional[Dict[str, CharacterStats]] = None,
                 cfg: Optional[Dict] = None, difficulty: Optional[str] = None,
                 rng: Optional[random.Random] = None):
        cfg = cfg or {}
        self.actor = actor
        self.kinematics = kinematics
        self.projectiles = projectiles
        self.rng = rng or random.Random()
        self.difficulty = get_difficulty(difficulty or str(cfg.get("difficulty", "midway")))
        self.stats = get_character(actor.character, characters or BUILTIN_CHARACTERS)

        follow = self.difficulty.follow_distance_multiplier
        self.detection_radius = float(cfg.get("detection_radius", BOT_DETECTION_RADIUS)) * follow
        self.reacquire_radius = float(cfg.get("reacquire_radius", BOT_REACQUIRE_RADIUS)) * follow
        self.keep_distance = float(cfg.get("keep_distance", BOT_KEEP_DISTANCE))
        self.shoot_range = float(cfg.get("shoot_range", BOT_SHOOT_RANGE))
        self.speed = float(cfg.get("speed", MOVE_SPEED))
        self.change_dir_range = (float(cfg.get("change_dir_min", BOT_CHANGE_DIR_MIN)),
                                 float(cfg.get("change_dir_max", BOT_CHANGE_DIR_MAX)))
        self.shoot_interval_range = (float(cfg.get("shoot_interval_min", BOT_SHOOT_INTERVAL_MIN)),
                                     float(cfg.get("shoot_interval_max", BOT_SHOOT_INTERVAL_MAX)))
        self.spawn_half_extent = float(cfg.get("spawn_half_extent", BOT_SPAWN_HALF_EXTENT))
        self.death_fade = float(cfg.get("death_fade", BOT_DEATH_FADE))

        self.state = BotState.WANDER
        self.target_id: Optional[str] = None
        self.heading = self.rng.uniform(0.0, 2 * math.pi)
        self.change_dir_in = self.rng.uniform(*self.change_dir_range)
        self.shoot_cooldown = self._next_shoot_interval()
        self.fade_remaining = 0.0

    def _next_shoot_interval(self) -> float:
        return self.rng.uniform(*self.shoot_interval_range) * self.difficulty.shoot_interval_multiplier

    # --- Targeting ---------------------------------------------------------
    def _distance_to(self, other: Actor) -> float:
        return distance_xz(self.actor.pos, other.pos)

    def _acquire(self, world) -> Optional[Actor]:
        best, best_d = None, self.detection_radius
        for other in world.sorted_actors(alive_only=True):
            if other.kind is ActorKind.BOT:
                continue
            d = self._distance_to(other)
            if d <= best_d:
                best, best_d = other, d
        return best

    def _set_state(self, state: BotState) -> None:
        if state is not self.state:
            log.debug("bot %s: %s -> %s", self.actor.id, self.state.value, state.value)
            self.state = state

    # --- Main update ---------------------------------------------------------
    def update(self, world, dt: float) -> Optional[str]:
        """Think and move one tick. Returns a spawned projectile id, if any."""
        if self.state is BotState.DEAD:
            self.fade_remaining -= dt
            if self.fade_remaining <= 0.0:
                self.respawn(world)
            return None

        self.shoot_cooldown = max(0.0, self.shoot_cooldown - dt)
        target = world.get_actor(self.target_id) if self.target_id else None

        if self.state is BotState.WANDER:
            found = self._acquire(world)
            if found is not None:
                self.target_id = found.id
                target = found
                self._set_state(BotState.PURSUE)
        elif target is None or not target.alive or self._distance_to(target) > self.reacquire_radius:
            self.target_id = None
            target = None
            self._set_state(BotState.WANDER)

        if self.state is BotState.PURSUE and target is not None:
            return self._pursue(target, dt)
        self._wander(dt)
        return None

    def _wander(self, dt: float) -> None:
        self.change_dir_in -= dt
        if self.change_dir_in <= 0.0:
            self.heading = self.rng.uniform(0.0, 2 * math.pi)
            self.change_dir_in = self.rng.uniform(*self.change_dir_range)
        result = self._move(heading_vector(self.heading), dt)
        if result.blocked:
            self.heading = wrap_pi(self.heading + math.pi + self.rng.uniform(-0.5, 0.5))

    def _pursue(self, target: Actor, dt: float) -> Optional[str]:
        me = self.actor
        to_target = Vec2(target.pos.x - me.pos.x, target.pos.z - me.pos.z)
        dist = to_target.length()
        desired = heading_of(to_target)
        self.heading = _turn_toward(self.heading, desired, rate_rad_per_s=math.radians(360), dt=dt)
        if dist > self.keep_distance:
            move = heading_vector(self.heading)
        elif dist < self.keep_distance:
            move = heading_vector(self.heading).scaled(-1.0)
        else:
            move = Vec2()
        self._move(move, dt)

        if dist >= self.shoot_range or self.shoot_cooldown > 0.0:
            return None
        origin = me.pos.with_y(me.pos.y + PROJECTILE_SPAWN_HEIGHT)
        aim = direction_xz(me.pos, target.pos)
        pid = self.projectiles.try_spawn_direct(me.id, origin, aim, self.stats.direct, me.character)
        if pid is not None:
            self.shoot_cooldown = self._next_shoot_interval()
        return pid

    def _move(self, move: Vec2, dt: float):
        me = self.actor
        if move.z > 0.1:
            me.facing = Facing.FRONT
        elif move.z < -0.1:
            me.facing = Facing.BACK
        moving = move.length() >= MOVE_EPS
        me.anim_key = AnimKey.for_state(moving, me.facing)
        if moving:
            me.rotation = heading_of(move)
        return self.kinematics.step(me, move, self.speed, dt)

    # --- Death / respawn -------------------------------------------------------
    def on_death(self, death: DeathEvent) -> None:
        self._set_state(BotState.DEAD)
        self.target_id = None
        self.fade_remaining = self.death_fade

    def respawn(self, world) -> None:
        arena = world.arena
        extent = min(self.spawn_half_extent, arena.half_size - arena.margin - 1.0)
        x = z = 0.0
        for _ in range(30):
            x = self.rng.uniform(-extent, extent)
            z = self.rng.uniform(-extent, extent)
            if not arena.point_blocked(x, z):
                break
        self.actor.restore(Vec3(x, self.actor.half_height, z))
        self.projectiles.reset_cooldowns(self.actor.id)
        self.heading = self.rng.uniform(0.0, 2 * math.pi)
        self.change_dir_in = self.rng.uniform(*self.change_dir_range)
        self.shoot_cooldown = self._next_shoot_interval()
        self._set_state(BotState.WANDER)
        world.events.emit("respawn", self.actor.id)
        log.info("bot %s respawned at (%.1f, %.1f)", self.actor.id, x, z)
