import random

import pytest

from common.rooms import RoomRegistry, RoomRelay
from common.transport import LoopbackHub, LoopbackTransport
from game.bot_ai import BotState
from game.character import InputFrame
from game.loop import LOCAL_ACTOR_ID, build_loop
from game.projectiles import ProjectileKind
from game.session import SessionManager
from game.transform import Vec2, Vec3

DT = 1.0 / 60.0


class ScriptedInput:
    """Hands out queued frames, then idles."""

    def __init__(self, *frames):
        self.frames = list(frames)

    def poll(self):
        return self.frames.pop(0) if self.frames else InputFrame()


@pytest.fixture
def online(make_arena, clock):
    """Two loops in one room over a loopback hub: player A at x=-3, player B at x=3."""
    hub = LoopbackHub(RoomRelay(RoomRegistry(random.Random(4))))
    sa = SessionManager(LoopbackTransport(hub), now_fn=clock)
    sb = SessionManager(LoopbackTransport(hub), now_fn=clock)
    sa.connect()
    sb.connect()
    code = sa.create_room({"characterName": "lucy"}).result(timeout=1)
    sb.join_room(code, {"characterName": "lucy"}).result(timeout=1)

    loop_a = build_loop(make_arena(), bot_count=0, session=sa, now_fn=clock, rng=random.Random(1))
    loop_b = build_loop(make_arena(), bot_count=0, session=sb, now_fn=clock, rng=random.Random(2))
    loop_a.character.actor.pos = Vec3(-3.0, 0.6, 0.0)
    loop_b.character.actor.pos = Vec3(3.0, 0.6, 0.0)
    return loop_a, loop_b


def step(clock, *loops, ticks=1):
    for _ in range(ticks):
        clock.advance(DT)
        for loop in loops:
            loop.tick(DT)


def test_damage_and_kill_tally(make_arena, rng):
    loop = build_loop(make_arena(), bot_count=1, rng=rng)
    bot = loop.bots["bot-1"]
    bot.actor.pos = Vec3(3.0, 0.6, 0.0)
    bot.actor.hp = 10
    deaths = []
    loop.world.events.subscribe("death", deaths.append)
    loop.input = ScriptedInput(InputFrame(fire=True, aim=Vec2(3.0, 0.0)))

    for _ in range(30):
        snap = loop.tick(DT)
    assert [d.actor_id for d in deaths] == ["bot-1"]
    assert deaths[0].killer_id == LOCAL_ACTOR_ID
    assert bot.state is BotState.DEAD
    assert snap.kills == ((LOCAL_ACTOR_ID, 1),)
    assert snap.actor("bot-1").hp == 0


def test_build_loop_places_bots(standard_arena):
    loop = build_loop(standard_arena, bot_count=3, difficulty="veteran", rng=random.Random(5))
    assert sorted(loop.bots) == ["bot-1", "bot-2", "bot-3"]
    for bot in loop.bots.values():
        assert bot.difficulty.name == "veteran"
        assert not standard_arena.point_blocked(bot.actor.pos.x, bot.actor.pos.z)
    player = loop.world.get_actor(LOCAL_ACTOR_ID)
    assert player.pos == loop.character.spawn_point
    snap = loop.tick(DT)
    assert snap.local_id == LOCAL_ACTOR_ID
    assert snap.connection is None
    assert len(snap.actors) == 4


def test_connection_changes_are_announced(make_arena, clock):
    session = SessionManager(LoopbackTransport(LoopbackHub()), now_fn=clock)
    loop = build_loop(make_arena(), bot_count=0, session=session, now_fn=clock)
    seen = []
    loop.world.events.subscribe("connection", seen.append)
    loop.tick(DT)
    session.connect()
    snap = loop.tick(DT)
    loop.tick(DT)
    assert seen == ["disconnected", "connected"]
    assert snap.connection == "connected"
    assert snap.room_code is None


def test_peers_appear_as_remote_actors(online, clock):
    loop_a, loop_b = online
    step(clock, loop_a, loop_b, ticks=30)
    a_id = loop_a.session.local_id
    b_id = loop_b.session.local_id
    mirror = loop_b.world.get_actor(a_id)
    assert mirror is not None
    assert mirror.pos.x == pytest.approx(-3.0, abs=0.05)
    assert loop_a.world.get_actor(b_id).pos.x == pytest.approx(3.0, abs=0.05)

    loop_a.switch_character("herald")
    step(clock, loop_a, loop_b)
    assert loop_b.world.get_actor(a_id).character == "herald"


def test_shot_is_mirrored_and_damage_reconciled(online, clock):
    loop_a, loop_b = online
    step(clock, loop_a, loop_b, ticks=30)
    a_id = loop_a.session.local_id
    b_id = loop_b.session.local_id

    loop_a.input = ScriptedInput(InputFrame(fire=True, aim=Vec2(3.0, 0.0)))
    step(clock, loop_a, loop_b)
    shot = f"{a_id}-1"
    assert shot in loop_a.world.projectiles
    assert shot in loop_b.world.projectiles
    assert loop_b.world.projectiles[shot].remote

    step(clock, loop_a, loop_b, ticks=60)
    assert loop_b.character.actor.hp == 90
    assert loop_a.world.get_actor(b_id).hp == 90
    assert not loop_a.world.projectiles
    assert not loop_b.world.projectiles


def test_melee_burst_is_mirrored_with_melee_stats(online, clock):
    loop_a, loop_b = online
    step(clock, loop_a, loop_b, ticks=30)
    a_id = loop_a.session.local_id

    loop_a.input = ScriptedInput(InputFrame(melee=True))
    step(clock, loop_a, loop_b)
    mirrored = [p for p in loop_b.world.projectiles.values() if p.owner_id == a_id]
    assert len(mirrored) == 16
    assert all(p.remote and p.kind is ProjectileKind.BURST for p in mirrored)
    assert {p.damage for p in mirrored} == {8}
    assert all(p.speed == pytest.approx(6.0) for p in mirrored)


def test_silent_peer_is_reaped_until_it_rejoins(online, clock):
    loop_a, loop_b = online
    step(clock, loop_a, loop_b, ticks=10)
    b_id = loop_b.session.local_id
    assert loop_a.world.get_actor(b_id) is not None

    step(clock, loop_a, ticks=int(5.5 / DT))
    assert loop_a.world.get_actor(b_id) is None
    # Late states from the reaped peer do not resurrect it.
    step(clock, loop_b, loop_a, ticks=12)
    assert loop_a.world.get_actor(b_id) is None
