"""World aggregate: the arena plus every actor and projectile, keyed by id."""
from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Dict, List, Optional

from .actors import Actor, DamageEvent, DeathEvent
from .arena import Arena
from .event_bus import EventBus

if TYPE_CHECKING:
    from .projectiles import Projectile

log = logging.getLogger(__name__)


class World:
    """Single owner of simulation state. Other components hold ids, not references."""

    def __init__(self, arena: Arena, events: Optional[EventBus] = None) -> None:
        self.arena = arena
        self.events = events or EventBus()
        self.actors: Dict[str, Actor] = {}
        self.projectiles: Dict[str, "Projectile"] = {}
        self.kills: Counter = Counter()
        self.time = 0.0
        self.tick = 0

    # ---- actors ---------------------------------------------------------
    def add_actor(self, actor: Actor) -> Actor:
        self.actors[actor.id] = actor
        return actor

    def remove_actor(self, actor_id: str) -> Optional[Actor]:
        return self.actors.pop(actor_id, None)

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        return self.actors.get(actor_id)

    def sorted_actors(self, alive_only: bool = False) -> List[Actor]:
        """Actors in stable id order; used wherever iteration order decides an outcome."""
        out = [self.actors[k] for k in sorted(self.actors)]
        if alive_only:
            out = [a for a in out if a.alive]
        return out

    # ---- combat ---------------------------------------------------------
    def apply_damage(self, event: DamageEvent) -> Optional[DeathEvent]:
        """Apply one DamageEvent. Unknown targets are ignored (replication races)."""
        target = self.actors.get(event.target_id)
        if target is None:
            return None
        died = target.take_damage(event.amount)
        self.events.emit("damage", event)
        if not died:
            return None
        death = DeathEvent(actor_id=target.id, killer_id=event.owner_id)
        if event.owner_id and event.owner_id != target.id:
            self.kills[event.owner_id] += 1
        log.info("%s was defeated by %s", target.id, event.owner_id)
        self.events.emit("death", death)
        return death
