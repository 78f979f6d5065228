"""
Geometry helpers for toolpath calculations.

A coordinate equal to ``math.inf`` means "unknown". This is used instead of an
optional coordinate because it survives ordinary arithmetic: any position
computed from an unknown coordinate is itself infinite (or NaN), so the taint
is never lost. The flip side is that nothing raises when an unknown value flows
through a calculation. Always check ``Point.is_finite()`` (or the machine
state's ``*_known`` properties) before trusting a computed position.
"""
import math
from dataclasses import dataclass
from typing import List, Tuple

UNKNOWN = math.inf

AXES = ('x', 'y', 'z')


@dataclass(frozen=True)
class Point:
    """Represents a 3D point."""
    x: float
    y: float
    z: float

    @staticmethod
    def unknown() -> 'Point':
        """A point whose coordinates are all unknown."""
        return Point(UNKNOWN, UNKNOWN, UNKNOWN)

    @staticmethod
    def zero() -> 'Point':
        return Point(0.0, 0.0, 0.0)

    def get_axis(self, axis: str) -> float:
        """Get value for a specific axis."""
        return getattr(self, axis.lower())

    def with_axis(self, axis: str, value: float) -> 'Point':
        """Return a copy with one axis replaced."""
        return Point(**{**self.to_dict(), axis.lower(): value})

    def to_dict(self):
        return {'x': self.x, 'y': self.y, 'z': self.z}

    def to_list(self) -> List[float]:
        """Convert to list format."""
        return [self.x, self.y, self.z]

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))

    def __add__(self, other: 'Point') -> 'Point':
        return Point(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: 'Point') -> 'Point':
        return Point(self.x - other.x, self.y - other.y, self.z - other.z)

    def distance_to(self, other: 'Point') -> float:
        """Calculate distance to another point."""
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return math.sqrt(dx*dx + dy*dy + dz*dz)

    def __str__(self):
        return f"({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def lerp_points(a: Point, b: Point, t: float) -> Point:
    """Linear interpolation between two points; t=0 gives a, t=1 gives b."""
    return Point(lerp(a.x, b.x, t), lerp(a.y, b.y, t), lerp(a.z, b.z, t))


def subdivide(a: Point, b: Point, steps: int) -> List[Tuple[Point, Point]]:
    """Split the segment a->b into ``steps`` equal consecutive segments."""
    points = [a] + [lerp_points(a, b, i / steps) for i in range(1, steps)] + [b]
    return list(zip(points[:-1], points[1:]))
