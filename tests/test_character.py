import pytest

from game.actors import Actor, ActorKind, AnimKey, DeathEvent, Facing
from game.character import InputFrame, LocalCharacter
from game.characters import BUILTIN_CHARACTERS
from game.errors import ValidationError
from game.kinematics import Kinematics
from game.projectiles import ProjectileEngine, ProjectileKind
from game.transform import Vec2, Vec3

DT = 1.0 / 60.0


@pytest.fixture
def local(make_arena, make_world):
    world = make_world(make_arena())
    actor = world.add_actor(Actor(id="player", kind=ActorKind.LOCAL, pos=Vec3(0, 0.6, 0), grounded=True))
    character = LocalCharacter(actor, Kinematics(world.arena), ProjectileEngine(world), events=world.events)
    return world, character


def test_facing_follows_vertical_input(local):
    _, ch = local
    ch.update(InputFrame(move=Vec2(0, -1)), DT)
    assert ch.actor.facing is Facing.BACK
    assert ch.actor.anim_key is AnimKey.WALK_BACK
    # Mostly sideways input keeps the previous facing.
    ch.update(InputFrame(move=Vec2(1, 0.05)), DT)
    assert ch.actor.facing is Facing.BACK
    ch.update(InputFrame(move=Vec2(0, 1)), DT)
    assert ch.actor.facing is Facing.FRONT
    ch.update(InputFrame(), DT)
    assert ch.actor.anim_key is AnimKey.IDLE_FRONT


def test_running_is_faster(local):
    _, ch = local
    ch.update(InputFrame(move=Vec2(1, 0), running=True), DT)
    assert ch.actor.running
    assert ch.actor.pos.x == pytest.approx(4.0 * 1.7 * DT)
    ch.update(InputFrame(), DT)
    assert not ch.actor.running


def test_fire_toward_aim_point(local):
    world, ch = local
    spawned = ch.update(InputFrame(fire=True, aim=Vec2(3, 3)), DT)
    assert len(spawned) == 1
    proj = world.projectiles[spawned[0]]
    assert proj.kind is ProjectileKind.DIRECT
    assert proj.dir.x == pytest.approx(proj.dir.z)
    assert proj.origin.y == pytest.approx(ch.actor.pos.y + 0.5)
    assert proj.damage == BUILTIN_CHARACTERS["lucy"].direct.damage
    # Still on cooldown next tick.
    assert ch.update(InputFrame(fire=True, aim=Vec2(3, 3)), DT) == []


def test_fire_without_aim_uses_facing(local):
    world, ch = local
    ch.actor.facing = Facing.BACK
    pid = ch.update(InputFrame(fire=True), DT)[0]
    assert world.projectiles[pid].dir == Vec2(0, -1)


def test_lob_without_aim_lands_ahead(local):
    world, ch = local
    pid = ch.update(InputFrame(lob=True), DT)[0]
    proj = world.projectiles[pid]
    assert proj.kind is ProjectileKind.LOBBED
    reach = BUILTIN_CHARACTERS["lucy"].lobbed.max_range * 0.5
    assert proj.target.x == pytest.approx(ch.actor.pos.x)
    assert proj.target.z == pytest.approx(ch.actor.pos.z + reach)


def test_fire_and_lob_same_tick(local):
    _, ch = local
    assert len(ch.update(InputFrame(fire=True, lob=True, aim=Vec2(2, 0)), DT)) == 2


def test_melee_burst_only_for_lucy(local):
    world, ch = local
    spawned = ch.update(InputFrame(melee=True), DT)
    assert len(spawned) == BUILTIN_CHARACTERS["lucy"].melee.count
    assert {world.projectiles[pid].kind for pid in spawned} == {ProjectileKind.BURST}
    assert ch.update(InputFrame(melee=True), DT) == []
    ch.set_character("herald")
    assert BUILTIN_CHARACTERS["herald"].melee is None
    assert ch.update(InputFrame(melee=True), DT) == []


def test_character_switch_keeps_health(local):
    world, ch = local
    ch.actor.hp = 55
    ch.set_character("herald")
    assert ch.actor.character == "herald"
    assert ch.actor.hp == 55
    pid = ch.update(InputFrame(fire=True, aim=Vec2(0, 5)), DT)[0]
    assert world.projectiles[pid].damage == BUILTIN_CHARACTERS["herald"].direct.damage
    with pytest.raises(ValidationError):
        ch.set_character("gandalf")
    assert ch.actor.character == "herald"


def test_death_freezes_then_respawns(local):
    world, ch = local
    respawns = []
    world.events.subscribe("respawn", respawns.append)
    ch.actor.pos = Vec3(3, 0.6, 3)
    ch.actor.hp = 0
    ch.on_death(DeathEvent("player", "bot-1"))

    # Dead: input is ignored.
    assert ch.update(InputFrame(move=Vec2(1, 0), fire=True), DT) == []
    assert ch.actor.pos == Vec3(3, 0.6, 3)
    for _ in range(70):
        ch.update(InputFrame(), DT)
    assert respawns == ["player"]
    assert ch.actor.hp == ch.actor.hp_max
    assert ch.actor.pos.x == pytest.approx(0.0)
    assert ch.actor.pos.z == pytest.approx(0.0)
