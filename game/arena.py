# game/arena.py
"""Static arena geometry: axis-aligned wall boxes plus ground/out-of-bounds queries.

Platforms are not a separate concept. Any wall whose footprint overlaps an
actor's column and whose top is under the actor's feet acts as ground, so
standing on a wall is purely a matter of vertical position.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import ARENA_MARGIN, PLAYER_SIZE, WALL_HEIGHT, WALL_MARGIN, WALL_THICKNESS
from .errors import ValidationError
from .transform import Vec3, clamp

log = logging.getLogger(__name__)

MODES = ("free-play", "survival")
SURVIVAL_WALL_HEIGHT = 5.0


@dataclass(frozen=True)
class Box:
    """Axis-aligned box given by its min/max corners."""
    min_x: float
    min_y: float
    min_z: float
    max_x: float
    max_y: float
    max_z: float

    @classmethod
    def around(cls, center: Vec3, half_x: float, half_y: float, half_z: float) -> "Box":
        return cls(center.x - half_x, center.y - half_y, center.z - half_z,
                   center.x + half_x, center.y + half_y, center.z + half_z)

    def overlaps(self, other: "Box") -> bool:
        # Strict: boxes that merely touch do not collide.
        return (self.min_x < other.max_x and self.max_x > other.min_x and
                self.min_y < other.max_y and self.max_y > other.min_y and
                self.min_z < other.max_z and self.max_z > other.min_z)


@dataclass(frozen=True)
class WallBox:
    """Wall centred at (cx, cz) with XZ footprint w x h, spanning bottom..top in y."""
    cx: float
    cz: float
    w: float
    h: float
    top: float = WALL_HEIGHT
    bottom: float = 0.0

    def box(self, top: Optional[float] = None) -> Box:
        hw, hh = self.w * 0.5, self.h * 0.5
        return Box(self.cx - hw, self.bottom, self.cz - hh,
                   self.cx + hw, self.top if top is None else top, self.cz + hh)

    def footprint_overlaps(self, x: float, z: float, half: float) -> bool:
        hw, hh = self.w * 0.5, self.h * 0.5
        return (x - half < self.cx + hw and x + half > self.cx - hw and
                z - half < self.cz + hh and z + half > self.cz - hh)


def perimeter_walls(size: float, margin: float = WALL_MARGIN,
                    thickness: float = WALL_THICKNESS, height: float = WALL_HEIGHT) -> List[WallBox]:
    edge = size * 0.5 - margin
    length = size - 2 * margin
    return [
        WallBox(0.0, -edge, length, thickness, height),
        WallBox(0.0, edge, length, thickness, height),
        WallBox(-edge, 0.0, thickness, length, height),
        WallBox(edge, 0.0, thickness, length, height),
    ]


class Arena:
    """Immutable wall set for one arena/mode pair."""

    def __init__(self, size: float, walls: Iterable[WallBox], *, mode: str = "free-play",
                 margin: float = ARENA_MARGIN, name: str = "custom"):
        if mode not in MODES:
            raise ValidationError(f"unknown game mode {mode!r}")
        self.size = float(size)
        self.walls: Tuple[WallBox, ...] = tuple(walls)
        self.mode = mode
        self.margin = float(margin)
        self.name = name
        # Survival raises every wall's collision box so it cannot be jumped.
        collide_top = SURVIVAL_WALL_HEIGHT if mode == "survival" else None
        self._collision_boxes: Tuple[Box, ...] = tuple(
            w.box(None if collide_top is None else max(w.top, collide_top)) for w in self.walls
        )

    @property
    def half_size(self) -> float:
        return self.size * 0.5

    def will_collide(self, box: Box) -> bool:
        for wall_box in self._collision_boxes:
            if wall_box.overlaps(box):
                return True
        return False

    def ground_height(self, x: float, z: float, size: float = PLAYER_SIZE,
                      max_height: float = math.inf) -> float:
        """Highest wall top under the column of footprint `size`, 0 inside the arena, -inf outside.

        Walls whose top lies above `max_height` are ignored; callers pass the
        feet height so a wall beside the actor is never mistaken for a floor.
        """
        if self.is_out_of_arena(x, z):
            return -math.inf
        half = size * 0.5
        ground = 0.0
        for wall in self.walls:
            if wall.top > max_height or wall.top <= ground:
                continue
            if wall.footprint_overlaps(x, z, half):
                ground = wall.top
        return ground

    def is_out_of_arena(self, x: float, z: float) -> bool:
        half = self.half_size
        return abs(x) >= half or abs(z) >= half

    def clamp_to_arena(self, pos: Vec3) -> Vec3:
        limit = self.half_size - self.margin
        return Vec3(clamp(pos.x, -limit, limit), pos.y, clamp(pos.z, -limit, limit))

    def point_blocked(self, x: float, z: float, clearance: float = 1.5) -> bool:
        """True when a clearance-sized column at (x, z) touches a wall (spawn checks)."""
        half = clearance * 0.5
        return self.will_collide(Box(x - half, 0.0, z - half, x + half, WALL_HEIGHT, z + half))


# ---- Definitions -------------------------------------------------------------

BUILTIN_ARENAS: Dict[str, Dict[str, Any]] = {
    "standard": {
        "size": 20,
        "walls": [
            {"x": -4, "z": -2, "w": 6, "h": 0.4},
            {"x": 3, "z": 3, "w": 0.4, "h": 6},
            {"x": -2, "z": 5, "w": 4, "h": 0.4},
        ],
    },
}


def load_arenas(path: str) -> Dict[str, Dict[str, Any]]:
    with open(path, "r") as f:
        data = json.load(f)
    return data


def _wall_from_cfg(cfg: Dict[str, Any]) -> WallBox:
    return WallBox(cx=float(cfg["x"]), cz=float(cfg["z"]),
                   w=float(cfg["w"]), h=float(cfg["h"]),
                   top=float(cfg.get("height", WALL_HEIGHT)),
                   bottom=float(cfg.get("bottom", 0.0)))


def build_arena(key: str = "standard", mode: str = "free-play",
                definitions: Optional[Dict[str, Dict[str, Any]]] = None) -> Arena:
    defs = definitions if definitions is not None else BUILTIN_ARENAS
    arena_def = defs.get(key)
    if arena_def is None:
        raise ValidationError(f"unknown arena {key!r}")
    size = float(arena_def.get("size", 20))
    walls = perimeter_walls(size)
    walls.extend(_wall_from_cfg(w) for w in arena_def.get("walls", []))
    log.info("arena %s (%s): size=%.0f walls=%d", key, mode, size, len(walls))
    return Arena(size, walls, mode=mode, margin=float(arena_def.get("margin", ARENA_MARGIN)), name=key)
