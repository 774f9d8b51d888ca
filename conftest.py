import random

import pytest

from game.arena import Arena, WallBox, build_arena, perimeter_walls
from game.event_bus import EventBus
from game.world import World


class FakeClock:
    """Manually advanced time source for anything that takes now_fn."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> float:
        self.now += dt
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_arena():
    """Arena of the given size with perimeter walls plus any extra WallBoxes."""
    def _make(*walls: WallBox, size: float = 20.0, mode: str = "free-play", perimeter: bool = True):
        all_walls = perimeter_walls(size) if perimeter else []
        all_walls.extend(walls)
        return Arena(size, all_walls, mode=mode)
    return _make


@pytest.fixture
def standard_arena():
    return build_arena("standard")


@pytest.fixture
def make_world():
    def _make(arena):
        return World(arena, EventBus())
    return _make
