import math
from pathlib import Path

import pytest

from game.arena import Arena, Box, WallBox, build_arena, load_arenas, perimeter_walls
from game.errors import ValidationError
from game.transform import Vec3

CONFIGS = Path(__file__).resolve().parent.parent / "configs"


def test_box_overlap_is_strict():
    a = Box(0, 0, 0, 1, 1, 1)
    assert a.overlaps(Box(0.5, 0.5, 0.5, 2, 2, 2))
    # Touching faces do not count as a collision.
    assert not a.overlaps(Box(1, 0, 0, 2, 1, 1))
    assert not a.overlaps(Box(0, 1, 0, 1, 2, 1))


def test_will_collide_with_wall(make_arena):
    arena = make_arena(WallBox(0, 0, 2, 2))
    assert arena.will_collide(Box.around(Vec3(0.5, 0.6, 0.5), 0.25, 0.6, 0.25))
    assert not arena.will_collide(Box.around(Vec3(3, 0.6, 3), 0.25, 0.6, 0.25))
    # Entirely above the wall top.
    assert not arena.will_collide(Box.around(Vec3(0, 2.0, 0), 0.25, 0.6, 0.25))


def test_ground_height_uses_highest_wall_below(make_arena):
    arena = make_arena(WallBox(2, 2, 1, 1, top=0.75), WallBox(2.1, 2, 0.2, 0.2, top=0.5))
    assert arena.ground_height(2, 2) == pytest.approx(0.75)
    assert arena.ground_height(-5, -5) == 0.0
    # A wall taller than the feet is not a floor.
    assert arena.ground_height(2, 2, max_height=0.6) == pytest.approx(0.5)
    assert arena.ground_height(2, 2, max_height=0.1) == 0.0


def test_ground_height_outside_is_minus_inf(make_arena):
    arena = make_arena()
    assert arena.ground_height(11, 0) == -math.inf
    assert arena.is_out_of_arena(10, 0)
    assert arena.is_out_of_arena(0, -10.5)
    assert not arena.is_out_of_arena(9.9, 9.9)


def test_clamp_to_arena_keeps_y(make_arena):
    arena = make_arena()
    clamped = arena.clamp_to_arena(Vec3(12, 1.5, -30))
    assert clamped == Vec3(9.75, 1.5, -9.75)
    assert arena.clamp_to_arena(Vec3(1, 2, 3)) == Vec3(1, 2, 3)


def test_perimeter_walls_enclose_the_floor():
    walls = perimeter_walls(20)
    assert len(walls) == 4
    assert {round(abs(w.cx) + abs(w.cz), 3) for w in walls} == {9.8}


def test_survival_walls_cannot_be_cleared(make_arena):
    wall = WallBox(3, 0, 1, 1)
    above = Box.around(Vec3(3, 2.0, 0), 0.25, 0.5, 0.25)
    assert not make_arena(wall).will_collide(above)
    survival = make_arena(wall, mode="survival")
    assert survival.will_collide(above)
    # Standing height still follows the built wall.
    assert survival.ground_height(3, 0) == pytest.approx(wall.top)


def test_unknown_mode_and_arena_rejected():
    with pytest.raises(ValidationError):
        Arena(20, [], mode="deathmatch")
    with pytest.raises(ValidationError):
        build_arena("moon")


def test_builtin_standard_arena():
    arena = build_arena("standard")
    assert arena.size == 20
    assert len(arena.walls) == 7
    assert arena.point_blocked(-4, -2)
    assert not arena.point_blocked(0, 0)


def test_arena_definitions_from_json():
    defs = load_arenas(str(CONFIGS / "arenas.json"))
    assert set(defs) == {"standard", "large"}
    large = build_arena("large", "survival", defs)
    assert large.size == 40
    assert large.mode == "survival"
    assert len(large.walls) == 4 + len(defs["large"]["walls"])
    # Raised platforms are standable.
    assert large.ground_height(-12, -12, size=0.2) == pytest.approx(2.4)
