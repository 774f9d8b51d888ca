# game/transform.py
# Value-typed vectors for the XZ-ground / Y-up simulation frame.
from __future__ import annotations

import math
from typing import NamedTuple


class Vec2(NamedTuple):
    """XZ ground-plane vector."""
    x: float = 0.0
    z: float = 0.0

    def length(self) -> float:
        return math.hypot(self.x, self.z)

    def normalized(self) -> "Vec2":
        mag = self.length()
        if mag <= 1e-8:
            return Vec2(0.0, 0.0)
        return Vec2(self.x / mag, self.z / mag)

    def clamped(self, max_len: float = 1.0) -> "Vec2":
        """Scale down to max_len so analog input never exceeds top speed."""
        mag = self.length()
        if mag > max_len and mag > 1e-8:
            s = max_len / mag
            return Vec2(self.x * s, self.z * s)
        return self

    def scaled(self, s: float) -> "Vec2":
        return Vec2(self.x * s, self.z * s)


class Vec3(NamedTuple):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def xz(self) -> Vec2:
        return Vec2(self.x, self.z)

    def with_y(self, y: float) -> "Vec3":
        return Vec3(self.x, y, self.z)


# ---- Angles ---------------------------------------------------------------

def wrap_pi(a: float) -> float:
    """Wrap radians into [-pi, pi]."""
    return ((a + math.pi) % (2 * math.pi)) - math.pi


def heading_vector(heading: float) -> Vec2:
    """Unit XZ vector for a heading measured from +x toward +z."""
    return Vec2(math.cos(heading), math.sin(heading))


def heading_of(v: Vec2) -> float:
    return math.atan2(v.z, v.x)


# ---- Distances / blending ---------------------------------------------------

def distance_xz(a: Vec3, b: Vec3) -> float:
    return math.hypot(a.x - b.x, a.z - b.z)


def distance(a: Vec3, b: Vec3) -> float:
    return math.sqrt((a.x - b.x) ** 2 + (a.y - b.y) ** 2 + (a.z - b.z) ** 2)


def direction_xz(src: Vec3, dst: Vec3) -> Vec2:
    return Vec2(dst.x - src.x, dst.z - src.z).normalized()


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def lerp3(a: Vec3, b: Vec3, t: float) -> Vec3:
    return Vec3(lerp(a.x, b.x, t), lerp(a.y, b.y, t), lerp(a.z, b.z, t))


def clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v
