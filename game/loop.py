"""Tick driver: fixes the order in which every subsystem runs and emits a display snapshot."""
from __future__ import annotations

import logging
import random
import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from common import protocol as proto

from .actors import Actor, ActorKind, DamageEvent
from .arena import Arena
from .bot_ai import BotController
from .character import InputFrame, LocalCharacter
from .characters import BUILTIN_CHARACTERS, CharacterStats, get_character
from .constants import BOT_COUNT, DEFAULT_CHARACTER, PLAYER_HALF_HEIGHT, PLAYER_HALF_SIZE
from .errors import ValidationError
from .event_bus import EventBus
from .kinematics import Kinematics, RespawnState
from .projectiles import ProjectileEngine, ProjectileKind
from .replica import ReplicaManager
from .session import ConnectionState, SessionEvent, SessionManager
from .snapshot import Snapshot, SnapshotBuilder
from .world import World

log = logging.getLogger(__name__)

LOCAL_ACTOR_ID = "player"


class NullInput:
    """InputProvider that never asks for anything (headless runs, tests)."""
    def poll(self) -> InputFrame:
        return InputFrame()


class SimulationLoop:
    """
    One call to tick(dt) runs, in order:
      0. drain the session inbox (peer joins/leaves, states, remote projectiles)
      1. poll input
      2. local character
      3. bots
      4. projectiles -> DamageEvents
      5. apply damage, dispatch deaths
      6. flush outbound session traffic
      7. advance and reap remote replicas
      8. build a snapshot and hand it to the display
    Nothing inside a tick blocks or waits on the network.
    """

    def __init__(self, world: World, kinematics: Kinematics, projectiles: ProjectileEngine,
                 character: LocalCharacter, bots: Iterable[BotController] = (),
                 session: Optional[SessionManager] = None,
                 replicas: Optional[ReplicaManager] = None,
                 input_provider=None, display=None,
                 characters: Optional[Dict[str, CharacterStats]] = None,
                 now_fn: Callable[[], float] = time.monotonic) -> None:
        self.world = world
        self.kinematics = kinematics
        self.projectiles = projectiles
        self.character = character
        self.bots: Dict[str, BotController] = {b.actor.id: b for b in bots}
        self.session = session
        self.replicas = replicas or ReplicaManager()
        self.input = input_provider or NullInput()
        self.display = display
        self.characters = characters or BUILTIN_CHARACTERS
        self.now_fn = now_fn
        self.builder = SnapshotBuilder(world)
        self._reaped: Set[str] = set()
        self._connection: Optional[ConnectionState] = None
        self.last_snapshot: Optional[Snapshot] = None
        world.events.subscribe("respawn", self._on_respawn)

    @property
    def online(self) -> bool:
        s = self.session
        return s is not None and s.state is ConnectionState.CONNECTED and s.in_room

    # ---- tick ---------------------------------------------------------------------
    def tick(self, dt: float) -> Snapshot:
        dt = self.kinematics.clamp_dt(dt)
        now = self.now_fn()
        world = self.world

        if self.session is not None:
            self._drain_session(now)
            if self.session.state is not self._connection:
                self._connection = self.session.state
                world.events.emit("connection", self._connection.value)

        frame = self.input.poll()
        spawned = self.character.update(frame, dt)
        if spawned and self.online:
            for pid in spawned:
                proj = world.projectiles.get(pid)
                if proj is not None:
                    self.session.send_projectile_create(proto.projectile_create_body(proj))

        for bot in list(self.bots.values()):
            bot.update(world, dt)

        events = self.projectiles.tick(dt)
        self._apply_damage(events)

        if self.online:
            local_id = self.character.actor.id
            updates = [proto.projectile_update_body(p) for p in world.projectiles.values()
                       if p.owner_id == local_id and not p.remote]
            self.session.flush_outbound(now, proto.player_state_body(self.character.actor), updates)
        elif self.session is not None:
            self.session.flush_outbound(now)

        self.replicas.advance_all(dt, now)
        self._sync_remote_actors()
        for pid in self.replicas.reap(now):
            world.remove_actor(pid)
            self._reaped.add(pid)

        world.tick += 1
        world.time += dt
        snap = self._build_snapshot()
        self.last_snapshot = snap
        if self.display is not None:
            self.display.present(snap)
        return snap

    def run(self, ticks: int, dt: float) -> Optional[Snapshot]:
        for _ in range(ticks):
            self.tick(dt)
        return self.last_snapshot

    def _build_snapshot(self) -> Snapshot:
        s = self.session
        countdown = self.character.countdown
        falling = countdown.remaining if countdown.state is RespawnState.FALLING else None
        return self.builder.build(
            local_id=self.character.actor.id,
            room_code=s.room_code if s is not None else None,
            connection=s.state.value if s is not None else None,
            fall_countdown=falling,
        )

    # ---- damage ---------------------------------------------------------------------
    def _apply_damage(self, events: List[DamageEvent]) -> None:
        for ev in events:
            target = self.world.get_actor(ev.target_id)
            death = self.world.apply_damage(ev)
            if target is None:
                continue
            if target.kind is ActorKind.LOCAL and self.online:
                self.session.send_player_damage(ev.amount, target.hp, target.hp_max)
            if death is None:
                continue
            if target.kind is ActorKind.LOCAL:
                self.character.on_death(death)
            elif target.kind is ActorKind.BOT and target.id in self.bots:
                self.bots[target.id].on_death(death)

    def _on_respawn(self, actor_id: str) -> None:
        actor = self.character.actor
        if actor_id == actor.id and self.online:
            # Lets peers reset the health bar they predicted down.
            self.session.send_player_damage(0, actor.hp, actor.hp_max)

    # ---- character ----------------------------------------------------------------------
    def switch_character(self, name: str) -> None:
        self.character.set_character(name)
        if self.online:
            self.session.send_character_change(name)

    # ---- replication -----------------------------------------------------------------------
    def _drain_session(self, now: float) -> None:
        session = self.session
        if session.local_id and self.projectiles.id_prefix != session.local_id:
            self.projectiles.id_prefix = session.local_id
        for ev in session.drain():
            self._handle_session_event(ev, now)

    def _handle_session_event(self, ev: SessionEvent, now: float) -> None:
        world = self.world
        pid = ev.player_id
        kind = ev.kind

        if kind == proto.PLAYER_JOINED:
            peer = ev.data
            self._reaped.discard(pid)
            state = None
            raw = peer.game_state.get("state")
            if isinstance(raw, dict):
                try:
                    state = proto.parse_player_state(raw)
                except (KeyError, ValueError, TypeError):
                    state = None
            replica = self.replicas.add(pid, now, state, peer.character)
            world.add_actor(Actor(id=pid, kind=ActorKind.REMOTE, pos=replica.position,
                                  character=peer.character))
            world.events.emit("player_joined", pid)
            return

        if kind == proto.PLAYER_LEFT:
            self.replicas.remove(pid)
            world.remove_actor(pid)
            self._reaped.discard(pid)
            world.events.emit("player_left", pid)
            return

        if pid in self._reaped:
            return
        actor = world.get_actor(pid)

        if kind == proto.PLAYER_STATE:
            state = ev.data
            if self.replicas.apply(pid, state, now) and actor is not None:
                if state.health is not None:
                    actor.hp = max(0, state.health)
                if state.max_health is not None:
                    actor.hp_max = state.max_health
        elif kind == proto.PROJECTILE_CREATE:
            ann = ev.data
            try:
                stats = get_character(ann.character or DEFAULT_CHARACTER, self.characters)
            except ValidationError:
                return
            kind_stats = {ProjectileKind.LOBBED: stats.lobbed,
                          ProjectileKind.BURST: stats.melee}.get(ann.kind, stats.direct)
            if kind_stats is None:
                return
            self.projectiles.spawn_remote(ann.projectile_id, pid, ann.kind, ann.origin, kind_stats,
                                          direction=ann.direction, target_xz=ann.target,
                                          character=ann.character)
        elif kind == proto.PROJECTILE_UPDATE:
            projectile_id, pos, vel = ev.data
            self.projectiles.apply_remote_update(projectile_id, pos, vel)
        elif kind == proto.PLAYER_DAMAGE:
            if actor is not None:
                actor.hp_max = ev.data["maxHealth"]
                actor.hp = max(0, min(ev.data["health"], actor.hp_max))
        elif kind == proto.CHARACTER_CHANGE:
            replica = self.replicas.get(pid)
            if replica is not None:
                replica.character = ev.data
            if actor is not None:
                actor.character = ev.data

    def _sync_remote_actors(self) -> None:
        for pid, replica in self.replicas.replicas.items():
            actor = self.world.get_actor(pid)
            if actor is None:
                continue
            actor.pos = replica.position
            actor.anim_key = replica.anim_key
            actor.facing = replica.facing
            actor.grounded = replica.grounded
            actor.running = replica.running
            actor.rotation = replica.rotation
            actor.character = replica.character


def build_loop(arena: Arena, *, character: str = DEFAULT_CHARACTER, bot_count: int = BOT_COUNT,
               difficulty: Optional[str] = None, cfg: Optional[Dict] = None,
               characters: Optional[Dict[str, CharacterStats]] = None,
               session: Optional[SessionManager] = None, input_provider=None, display=None,
               rng: Optional[random.Random] = None,
               now_fn: Callable[[], float] = time.monotonic) -> SimulationLoop:
    """Wire a complete game in dependency order: arena, world, physics, combat, actors, loop."""
    cfg = cfg or {}
    rng = rng or random.Random()
    characters = characters or BUILTIN_CHARACTERS
    world = World(arena, EventBus())
    kinematics = Kinematics(arena, cfg.get("physics"))
    projectiles = ProjectileEngine(world, cfg.get("projectiles"))

    player_cfg = dict(cfg.get("movement", {}))
    player_cfg.update(cfg.get("respawn", {}))
    body = {"half_size": float(player_cfg.get("player_half_size", PLAYER_HALF_SIZE)),
            "half_height": float(player_cfg.get("player_half_height", PLAYER_HALF_HEIGHT))}
    stats = get_character(character, characters)
    player = world.add_actor(Actor(id=LOCAL_ACTOR_ID, kind=ActorKind.LOCAL, character=character,
                                   hp=stats.hp_max, hp_max=stats.hp_max, **body))
    local = LocalCharacter(player, kinematics, projectiles, characters, player_cfg, world.events)
    player.pos = local.spawn_point

    bots: List[BotController] = []
    bot_cfg = cfg.get("bots", {})
    for i in range(int(bot_count)):
        actor = world.add_actor(Actor(id=f"bot-{i + 1}", kind=ActorKind.BOT, **body))
        bot = BotController(actor, kinematics, projectiles, characters, bot_cfg,
                            difficulty=difficulty, rng=random.Random(rng.random()))
        bot.respawn(world)
        bots.append(bot)

    return SimulationLoop(world, kinematics, projectiles, local, bots, session=session,
                          replicas=ReplicaManager(cfg.get("network")),
                          input_provider=input_provider, display=display,
                          characters=characters, now_fn=now_fn)
