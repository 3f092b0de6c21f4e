"""View frustum extracted from OpenGL-style matrices, with containment tests.

Matrices are given as 16 values in OpenGL (column-major) order, as returned
by ``glGetFloatv``. The six planes are stored with their normals pointing
into the frustum, so a positive plane distance means "inside".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from itertools import product
from typing import Sequence

import numpy as np

Plane = tuple[float, float, float, float]


class FrustumSide(enum.IntEnum):
    """Index of each plane in Frustum.planes."""

    RIGHT = 0
    LEFT = 1
    BOTTOM = 2
    TOP = 3
    BACK = 4
    FRONT = 5


def normalize_plane(plane: Sequence[float]) -> Plane:
    """Scale plane (a, b, c, d) so that its normal (a, b, c) has unit length."""
    values = np.asarray(plane, dtype=np.float64)
    if values.shape != (4,):
        raise ValueError("A plane has exactly four coefficients")
    with np.errstate(divide="ignore", invalid="ignore"):
        normalized = values / np.sqrt(np.dot(values[:3], values[:3]))
    a, b, c, d = (float(v) for v in normalized)
    return a, b, c, d


def _as_matrix(values: Sequence[float], name: str) -> np.ndarray:
    array = np.asarray(values, dtype=np.float64)
    if array.size != 16:
        raise ValueError(f"The {name} matrix must hold 16 values")
    return array.reshape(4, 4)


def _distance(plane: Plane, x: float, y: float, z: float) -> float:
    a, b, c, d = plane
    return a * x + b * y + c * z + d


@dataclass(frozen=True)
class Frustum:
    """Six inward-facing planes, ordered as in FrustumSide."""

    planes: tuple[Plane, Plane, Plane, Plane, Plane, Plane]

    @classmethod
    def from_matrices(
        cls, projection: Sequence[float], modelview: Sequence[float]
    ) -> Frustum:
        """Extract the frustum from column-major projection and modelview matrices."""
        proj = _as_matrix(projection, "projection")
        modl = _as_matrix(modelview, "modelview")
        clip = modl @ proj
        w = clip[:, 3]
        planes = (
            w - clip[:, 0],  # right
            w + clip[:, 0],  # left
            w + clip[:, 1],  # bottom
            w - clip[:, 1],  # top
            w - clip[:, 2],  # back
            w + clip[:, 2],  # front
        )
        return cls(tuple(normalize_plane(p) for p in planes))  # type: ignore[arg-type]

    def point_in(self, x: float, y: float, z: float) -> bool:
        """True if the point lies strictly in front of every plane."""
        return all(_distance(p, x, y, z) > 0 for p in self.planes)

    def sphere_in(self, x: float, y: float, z: float, radius: float) -> bool:
        """True if the sphere is at least partly inside the frustum."""
        return all(_distance(p, x, y, z) > -radius for p in self.planes)

    def cube_in(self, x: float, y: float, z: float, size: float) -> bool:
        """True unless every corner of the cube lies behind one same plane.

        The cube is given by its center and half its side length. The test
        is conservative: a few cubes outside the frustum may be reported in.
        """
        corners = [
            (x + sx * size, y + sy * size, z + sz * size)
            for sz, sy, sx in product((-1, 1), repeat=3)
        ]
        return all(
            any(_distance(p, cx, cy, cz) > 0 for cx, cy, cz in corners)
            for p in self.planes
        )