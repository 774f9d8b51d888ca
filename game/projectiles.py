# game/projectiles.py
"""Projectile lifecycle: spawn with per-owner cooldowns, integrate, resolve impacts, retire.

The engine never changes health itself. `tick` returns DamageEvents and the
caller decides how to apply them, which keeps hits replayable and replicable.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .actors import DamageEvent
from .arena import Box
from .characters import ProjectileStats
from .constants import BURST_SPAWN_OFFSET, MORTAR_GRAVITY, PROJECTILE_SOFT_CAP
from .transform import Vec2, Vec3, clamp, heading_vector, lerp

log = logging.getLogger(__name__)


class ProjectileKind(str, Enum):
    DIRECT = "direct"
    LOBBED = "lobbed"
    BURST = "burst"    # one fragment of a radial melee burst; flies like DIRECT


@dataclass
class Projectile:
    id: str
    owner_id: str
    kind: ProjectileKind
    origin: Vec3
    pos: Vec3
    dir: Vec2
    speed: float
    damage: int
    ttl: float
    radius: float
    character: str = ""
    # lobbed only
    target: Optional[Vec2] = None
    landing_y: float = 0.0
    arc_height: float = 0.0
    flight_time: float = 0.0
    splash_radius: float = 0.0
    elapsed: float = 0.0
    # bookkeeping
    born_tick: int = 0
    remote: bool = False

    @property
    def straight(self) -> bool:
        return self.kind is not ProjectileKind.LOBBED

    @property
    def landed(self) -> bool:
        return self.kind is ProjectileKind.LOBBED and self.elapsed >= self.flight_time

    def velocity_xz(self) -> Vec2:
        if self.straight:
            return self.dir.scaled(self.speed)
        if self.target is None or self.flight_time <= 0:
            return Vec2()
        return Vec2((self.target.x - self.origin.x) / self.flight_time,
                    (self.target.z - self.origin.z) / self.flight_time)


def lob_flight_time(arc_height: float, gravity: float = MORTAR_GRAVITY) -> float:
    """Time to rise to arc_height and fall back under `gravity`."""
    return 2.0 * math.sqrt(2.0 * max(arc_height, 0.01) / gravity)


class ProjectileEngine:
    def __init__(self, world, cfg: Optional[Dict[str, float]] = None, id_prefix: str = "local") -> None:
        cfg = cfg or {}
        self.world = world
        self.soft_cap = int(cfg.get("soft_cap", PROJECTILE_SOFT_CAP))
        self.mortar_gravity = float(cfg.get("mortar_gravity", MORTAR_GRAVITY))
        self.id_prefix = id_prefix
        self._counter = 0
        self._ticks = 0
        self._cooldowns: Dict[ProjectileKind, Dict[str, float]] = {
            ProjectileKind.DIRECT: {},
            ProjectileKind.LOBBED: {},
            ProjectileKind.BURST: {},
        }

    # ---- ids / cooldowns ---------------------------------------------------
    def _next_id(self) -> str:
        self._counter += 1
        return f"{self.id_prefix}-{self._counter}"

    def cooldown_remaining(self, owner_id: str, kind: ProjectileKind) -> float:
        return max(0.0, self._cooldowns[kind].get(owner_id, 0.0))

    def reset_cooldowns(self, owner_id: str) -> None:
        for table in self._cooldowns.values():
            table.pop(owner_id, None)

    def _tick_cooldowns(self, dt: float) -> None:
        for table in self._cooldowns.values():
            for owner in list(table):
                table[owner] -= dt
                if table[owner] <= 0.0:
                    del table[owner]

    # ---- spawning ------------------------------------------------------------
    def try_spawn_direct(self, owner_id: str, origin: Vec3, direction: Vec2,
                         stats: ProjectileStats, character: str = "") -> Optional[str]:
        """Spawn a straight-line projectile; None when the owner is still on cooldown."""
        if self.cooldown_remaining(owner_id, ProjectileKind.DIRECT) > 0.0:
            return None
        unit = direction.normalized()
        if unit.length() == 0.0:
            return None
        proj = Projectile(id=self._next_id(), owner_id=owner_id, kind=ProjectileKind.DIRECT,
                          origin=origin, pos=origin, dir=unit, speed=stats.speed,
                          damage=stats.damage, ttl=stats.lifetime, radius=stats.radius,
                          character=character)
        self._cooldowns[ProjectileKind.DIRECT][owner_id] = stats.cooldown
        self._add(proj)
        return proj.id

    def try_spawn_lobbed(self, owner_id: str, origin: Vec3, target_xz: Vec2,
                         stats: ProjectileStats, character: str = "") -> Optional[str]:
        """Spawn a ballistic projectile toward target_xz; None when on cooldown."""
        if self.cooldown_remaining(owner_id, ProjectileKind.LOBBED) > 0.0:
            return None
        target = self._clamp_target(origin, target_xz, stats.max_range)
        proj = self._make_lobbed(self._next_id(), owner_id, origin, target, stats, character)
        self._cooldowns[ProjectileKind.LOBBED][owner_id] = stats.cooldown
        self._add(proj)
        return proj.id

    def try_spawn_burst(self, owner_id: str, center: Vec3, stats: ProjectileStats,
                        character: str = "") -> List[str]:
        """Spawn `stats.count` fragments evenly around `center`; [] when on cooldown."""
        if stats.count <= 0 or self.cooldown_remaining(owner_id, ProjectileKind.BURST) > 0.0:
            return []
        spawned: List[str] = []
        for i in range(stats.count):
            unit = heading_vector(2.0 * math.pi * i / stats.count)
            origin = Vec3(center.x + unit.x * BURST_SPAWN_OFFSET, center.y,
                          center.z + unit.z * BURST_SPAWN_OFFSET)
            proj = Projectile(id=self._next_id(), owner_id=owner_id, kind=ProjectileKind.BURST,
                              origin=origin, pos=origin, dir=unit, speed=stats.speed,
                              damage=stats.damage, ttl=stats.lifetime, radius=stats.radius,
                              character=character)
            self._add(proj)
            spawned.append(proj.id)
        self._cooldowns[ProjectileKind.BURST][owner_id] = stats.cooldown
        return spawned

    def spawn_remote(self, projectile_id: str, owner_id: str, kind: ProjectileKind, origin: Vec3,
                     stats: ProjectileStats, direction: Optional[Vec2] = None,
                     target_xz: Optional[Vec2] = None, character: str = "") -> Optional[Projectile]:
        """Mirror a projectile announced by a peer. No cooldown applies; duplicates are ignored."""
        if projectile_id in self.world.projectiles:
            return None
        if kind is ProjectileKind.LOBBED:
            if target_xz is None:
                return None
            target = self._clamp_target(origin, target_xz, stats.max_range)
            proj = self._make_lobbed(projectile_id, owner_id, origin, target, stats, character)
        else:
            unit = (direction or Vec2()).normalized()
            if unit.length() == 0.0:
                return None
            proj = Projectile(id=projectile_id, owner_id=owner_id, kind=kind,
                              origin=origin, pos=origin, dir=unit, speed=stats.speed,
                              damage=stats.damage, ttl=stats.lifetime, radius=stats.radius,
                              character=character)
        proj.remote = True
        self._add(proj)
        return proj

    def apply_remote_update(self, projectile_id: str, pos: Vec3, velocity: Vec2) -> bool:
        proj = self.world.projectiles.get(projectile_id)
        if proj is None or not proj.remote:
            return False
        proj.pos = pos
        if proj.straight and velocity.length() > 1e-6:
            proj.dir = velocity.normalized()
            proj.speed = velocity.length()
        return True

    def _clamp_target(self, origin: Vec3, target_xz: Vec2, max_range: float) -> Vec2:
        dx, dz = target_xz.x - origin.x, target_xz.z - origin.z
        dist = math.hypot(dx, dz)
        if max_range > 0.0 and dist > max_range:
            s = max_range / dist
            target_xz = Vec2(origin.x + dx * s, origin.z + dz * s)
        arena = self.world.arena
        clamped = arena.clamp_to_arena(Vec3(target_xz.x, 0.0, target_xz.z))
        return Vec2(clamped.x, clamped.z)

    def _make_lobbed(self, pid: str, owner_id: str, origin: Vec3, target: Vec2,
                     stats: ProjectileStats, character: str) -> Projectile:
        flight = lob_flight_time(stats.arc_height, self.mortar_gravity)
        landing_y = max(0.0, self.world.arena.ground_height(target.x, target.z, 0.0))
        heading = Vec2(target.x - origin.x, target.z - origin.z).normalized()
        return Projectile(id=pid, owner_id=owner_id, kind=ProjectileKind.LOBBED,
                          origin=origin, pos=origin, dir=heading,
                          speed=Vec2(target.x - origin.x, target.z - origin.z).length() / flight,
                          damage=stats.damage, ttl=max(stats.lifetime, flight), radius=stats.radius,
                          character=character, target=target, landing_y=landing_y,
                          arc_height=stats.arc_height, flight_time=flight,
                          splash_radius=stats.splash_radius)

    def _add(self, proj: Projectile) -> None:
        proj.born_tick = self._ticks
        projectiles = self.world.projectiles
        projectiles[proj.id] = proj
        while len(projectiles) > self.soft_cap:
            oldest = next(iter(projectiles))
            del projectiles[oldest]
            log.debug("projectile cap reached; retired %s", oldest)

    # ---- simulation ------------------------------------------------------------
    def tick(self, dt: float) -> List[DamageEvent]:
        """Integrate live projectiles and resolve impacts.

        Projectiles spawned since the previous tick are skipped once, so a
        projectile never moves or hits in the tick it was created.
        """
        self._tick_cooldowns(dt)
        events: List[DamageEvent] = []
        targets = self.world.sorted_actors(alive_only=True)
        for proj in list(self.world.projectiles.values()):
            if proj.born_tick == self._ticks:
                continue
            self._integrate(proj, dt)
            event = self._resolve(proj, targets)
            if event is not None:
                events.append(event)
        self._ticks += 1
        return events

    def _integrate(self, proj: Projectile, dt: float) -> None:
        proj.ttl -= dt
        if proj.straight:
            step = proj.speed * dt
            proj.pos = Vec3(proj.pos.x + proj.dir.x * step, proj.pos.y, proj.pos.z + proj.dir.z * step)
            return
        proj.elapsed += dt
        s = clamp(proj.elapsed / proj.flight_time, 0.0, 1.0)
        target = proj.target or proj.origin.xz()
        y = lerp(proj.origin.y, proj.landing_y, s) + 4.0 * proj.arc_height * s * (1.0 - s)
        proj.pos = Vec3(lerp(proj.origin.x, target.x, s), y, lerp(proj.origin.z, target.z, s))

    def _resolve(self, proj: Projectile, targets) -> Optional[DamageEvent]:
        r = proj.radius
        if proj.landed:
            r = max(r, proj.splash_radius)
        box = Box.around(proj.pos, r, r, r)
        for actor in targets:
            if actor.id == proj.owner_id or not actor.alive:
                continue
            if actor.box().overlaps(box):
                self._retire(proj.id)
                return DamageEvent(target_id=actor.id, amount=proj.damage,
                                   owner_id=proj.owner_id, projectile_id=proj.id)
        arena = self.world.arena
        if proj.landed or arena.will_collide(box):
            self._retire(proj.id)
        elif proj.ttl <= 0.0 or arena.is_out_of_arena(proj.pos.x, proj.pos.z):
            self._retire(proj.id)
        return None

    def _retire(self, projectile_id: str) -> None:
        self.world.projectiles.pop(projectile_id, None)
