"""Affine transform values for rotation-aware clipping.

Transforms are plain immutable values composed with ``@`` (right-hand side
applied first), so the rotation of a clip is described as
``translate(canvas centre) @ rotate(angle) @ translate(-source centre)``
and can be tested without any image.

Coordinates are pixel space with Y pointing down, so a positive angle turns
content clockwise on screen.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Tuple


@dataclass(frozen=True)
class Affine:
    """2-D affine transform: x' = a*x + b*y + c, y' = d*x + e*y + f."""

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 0.0
    e: float = 1.0
    f: float = 0.0

    @classmethod
    def identity(cls) -> Affine:
        return cls()

    @classmethod
    def translate(cls, tx: float, ty: float) -> Affine:
        return cls(c=tx, f=ty)

    @classmethod
    def scale(cls, sx: float, sy: float) -> Affine:
        return cls(a=sx, e=sy)

    @classmethod
    def rotate(cls, degrees: float) -> Affine:
        theta = math.radians(degrees)
        cos_t = _snap(math.cos(theta))
        sin_t = _snap(math.sin(theta))
        return cls(a=cos_t, b=-sin_t, d=sin_t, e=cos_t)

    def __matmul__(self, other: Affine) -> Affine:
        """Compose: (self @ other)(p) == self(other(p))."""
        if not isinstance(other, Affine):
            return NotImplemented
        return Affine(
            a=self.a * other.a + self.b * other.d,
            b=self.a * other.b + self.b * other.e,
            c=self.a * other.c + self.b * other.f + self.c,
            d=self.d * other.a + self.e * other.d,
            e=self.d * other.b + self.e * other.e,
            f=self.d * other.c + self.e * other.f + self.f,
        )

    @property
    def determinant(self) -> float:
        return self.a * self.e - self.b * self.d

    def inverse(self) -> Affine:
        det = self.determinant
        if abs(det) < 1e-12:
            raise ValueError("Affine transform is not invertible")
        a = self.e / det
        b = -self.b / det
        d = -self.d / det
        e = self.a / det
        return Affine(a=a, b=b, c=-(a * self.c + b * self.f), d=d, e=e, f=-(d * self.c + e * self.f))

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        return (self.a * x + self.b * y + self.c, self.d * x + self.e * y + self.f)

    def apply_all(self, points: Iterable[Tuple[float, float]]) -> List[Tuple[float, float]]:
        return [self.apply(x, y) for x, y in points]

    @property
    def coefficients(self) -> Tuple[float, float, float, float, float, float]:
        """Coefficients in the order Pillow's AFFINE transform expects."""
        return (self.a, self.b, self.c, self.d, self.e, self.f)


def _snap(value: float) -> float:
    # Keeps exact right angles exact (cos 90 is 6e-17 otherwise)
    for target in (-1.0, 0.0, 1.0):
        if abs(value - target) < 1e-12:
            return target
    return value


def rotated_bounds(width: float, height: float, degrees: float) -> Tuple[int, int]:
    """Pixel size of the axis-aligned box containing a rotated width x height rectangle.

    new_width = w*|cos t| + h*|sin t|, new_height = w*|sin t| + h*|cos t|
    """
    theta = math.radians(degrees)
    cos_t = abs(_snap(math.cos(theta)))
    sin_t = abs(_snap(math.sin(theta)))
    new_width = width * cos_t + height * sin_t
    new_height = width * sin_t + height * cos_t
    return max(1, int(round(new_width))), max(1, int(round(new_height)))


def centre_rotation(width: float, height: float, degrees: float) -> Tuple[Affine, Tuple[int, int]]:
    """Transform rotating a width x height raster about its centre onto an expanded canvas.

    Returns:
        (forward transform source -> canvas, canvas size)
    """
    canvas = rotated_bounds(width, height, degrees)
    transform = (
        Affine.translate(canvas[0] / 2.0, canvas[1] / 2.0)
        @ Affine.rotate(degrees)
        @ Affine.translate(-width / 2.0, -height / 2.0)
    )
    return transform, canvas


def polygon_area(points: List[Tuple[float, float]]) -> float:
    """Absolute polygon area using the shoelace formula."""
    if len(points) < 3:
        return 0.0
    area = 0.0
    n = len(points)
    for i in range(n):
        x1, y1 = points[i]
        x2, y2 = points[(i + 1) % n]
        area += x1 * y2 - x2 * y1
    return abs(area) / 2.0
