"""Immutable per-tick views of the world handed to the display."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .actors import ActorKind, AnimKey, Facing
from .projectiles import ProjectileKind
from .transform import Vec3
from .world import World


@dataclass(frozen=True)
class ActorView:
    id: str
    kind: ActorKind
    pos: Vec3
    rotation: float
    facing: Facing
    anim_key: AnimKey
    character: str
    hp: int
    hp_max: int
    grounded: bool
    running: bool

    @property
    def alive(self) -> bool:
        return self.hp > 0


@dataclass(frozen=True)
class ProjectileView:
    id: str
    owner_id: str
    kind: ProjectileKind
    pos: Vec3
    radius: float
    character: str


@dataclass(frozen=True)
class Snapshot:
    tick: int
    time: float
    actors: Tuple[ActorView, ...]
    projectiles: Tuple[ProjectileView, ...]
    kills: Tuple[Tuple[str, int], ...] = ()
    local_id: Optional[str] = None
    room_code: Optional[str] = None
    connection: Optional[str] = None
    fall_countdown: Optional[float] = None

    def actor(self, actor_id: str) -> Optional[ActorView]:
        for view in self.actors:
            if view.id == actor_id:
                return view
        return None


class SnapshotBuilder:
    """Copies world state into a Snapshot; nothing in it aliases live objects."""

    def __init__(self, world: World) -> None:
        self.world = world

    def build(self, *, local_id: Optional[str] = None, room_code: Optional[str] = None,
              connection: Optional[str] = None, fall_countdown: Optional[float] = None) -> Snapshot:
        world = self.world
        actors = tuple(
            ActorView(id=a.id, kind=a.kind, pos=a.pos, rotation=a.rotation, facing=a.facing,
                      anim_key=a.anim_key, character=a.character, hp=a.hp, hp_max=a.hp_max,
                      grounded=a.grounded, running=a.running)
            for a in world.sorted_actors()
        )
        projectiles = tuple(
            ProjectileView(id=p.id, owner_id=p.owner_id, kind=p.kind, pos=p.pos,
                           radius=p.radius, character=p.character)
            for p in world.projectiles.values()
        )
        kills = tuple(sorted(world.kills.items()))
        return Snapshot(tick=world.tick, time=world.time, actors=actors, projectiles=projectiles,
                        kills=kills, local_id=local_id, room_code=room_code,
                        connection=connection, fall_countdown=fall_countdown)
