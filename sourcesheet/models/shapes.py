"""Region shape types: axis-aligned boxes and closed polygons.

All coordinates are percentages of the page dimensions (0-100) with the
origin at the top-left corner, X increasing rightward and Y downward.

A shape is exactly one of Box or Polygon. Functions that behave differently
per variant are single-dispatch functions registered for both types.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import singledispatch
from typing import Any, Dict, Iterable, Sequence, Tuple, Union


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


def normalize_rotation(degrees: float) -> float:
    """Normalize an angle in degrees to the half-open range (-180, 180]."""
    angle = float(degrees) % 360.0
    if angle > 180.0:
        angle -= 360.0
    return angle


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle in percentage coordinates.

    Attributes:
        x: Left edge (0-100)
        y: Top edge (0-100)
        width: Width (> 0)
        height: Height (> 0)
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Box dimensions must be positive: width={self.width}, height={self.height}"
            )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float) -> Box:
        return cls(x=left, y=top, width=right - left, height=bottom - top)


@dataclass(frozen=True)
class Point:
    """A polygon vertex in percentage coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class Polygon:
    """Closed polygon with at least three vertices."""

    points: Tuple[Point, ...]

    def __post_init__(self):
        if len(self.points) < 3:
            raise ValueError(f"Polygon needs at least 3 points, got {len(self.points)}")

    @classmethod
    def from_points(cls, points: Iterable[Any]) -> Polygon:
        """Build from Point objects, (x, y) pairs or {"x", "y"} dicts."""
        return cls(points=tuple(to_point(p) for p in points))


Shape = Union[Box, Polygon]


def to_point(value: Any) -> Point:
    if isinstance(value, Point):
        return value
    if isinstance(value, dict):
        return Point(x=float(value['x']), y=float(value['y']))
    x, y = value
    return Point(x=float(x), y=float(y))


def clamp_point(point: Point) -> Point:
    return Point(x=clamp(point.x, 0.0, 100.0), y=clamp(point.y, 0.0, 100.0))


def clamp_box(box: Box, min_size: float = 0.0) -> Box:
    """Clamp a box into the page, keeping at least min_size on each axis where possible."""
    left = clamp(box.x, 0.0, 100.0 - min_size)
    top = clamp(box.y, 0.0, 100.0 - min_size)
    right = clamp(box.right, left + min_size, 100.0)
    bottom = clamp(box.bottom, top + min_size, 100.0)
    if right <= left or bottom <= top:
        raise ValueError(f"Box collapses after clamping: {box}")
    return Box.from_edges(left, top, right, bottom)


@singledispatch
def clamp_shape(shape: Any) -> Shape:
    """Clamp a shape into the page area."""
    raise TypeError(f"Unsupported shape type: {type(shape).__name__}")


@clamp_shape.register
def _(shape: Box) -> Shape:
    return clamp_box(shape)


@clamp_shape.register
def _(shape: Polygon) -> Shape:
    return Polygon(points=tuple(clamp_point(p) for p in shape.points))


@singledispatch
def shape_bounds(shape: Any) -> Box:
    """Axis-aligned bounding box of a shape in percentage coordinates."""
    raise TypeError(f"Unsupported shape type: {type(shape).__name__}")


@shape_bounds.register
def _(shape: Box) -> Box:
    return shape


@shape_bounds.register
def _(shape: Polygon) -> Box:
    xs = [p.x for p in shape.points]
    ys = [p.y for p in shape.points]
    return Box.from_edges(min(xs), min(ys), max(xs), max(ys))


@singledispatch
def shape_to_dict(shape: Any) -> Dict[str, Any]:
    """Serialize a shape as {"box": {...}} or {"polygon": [...]}."""
    raise TypeError(f"Unsupported shape type: {type(shape).__name__}")


@shape_to_dict.register
def _(shape: Box) -> Dict[str, Any]:
    return {"box": {"x": shape.x, "y": shape.y, "width": shape.width, "height": shape.height}}


@shape_to_dict.register
def _(shape: Polygon) -> Dict[str, Any]:
    return {"polygon": [{"x": p.x, "y": p.y} for p in shape.points]}


def shape_from_dict(data: Dict[str, Any]) -> Shape:
    """Deserialize a shape written by shape_to_dict.

    Raises:
        ValueError: If neither or both variants are present
    """
    has_box = data.get("box") is not None
    has_polygon = data.get("polygon") is not None
    if has_box == has_polygon:
        raise ValueError("Shape must have exactly one of 'box' or 'polygon'")
    if has_box:
        box = data["box"]
        return Box(
            x=float(box["x"]),
            y=float(box["y"]),
            width=float(box["width"]),
            height=float(box["height"]),
        )
    return Polygon.from_points(data["polygon"])


def distinct_points(points: Sequence[Point]) -> int:
    return len({(p.x, p.y) for p in points})
