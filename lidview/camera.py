"""Orbit camera around the scene origin, with its view frustum.

Matrices are exchanged as 16 values in OpenGL (column-major) order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from lidview.frustum import Frustum

GLMatrix = tuple[float, ...]


def _to_gl(matrix: np.ndarray) -> GLMatrix:
    return tuple(float(v) for v in matrix.T.ravel())


def _translation(dx: float, dy: float, dz: float) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = (dx, dy, dz)
    return m


def _rotation(angle_deg: float, x: float, y: float, z: float) -> np.ndarray:
    axis = np.array([x, y, z], dtype=np.float64)
    axis /= np.linalg.norm(axis)
    ax, ay, az = axis
    theta = math.radians(angle_deg)
    c, s = math.cos(theta), math.sin(theta)
    t = 1.0 - c
    m = np.eye(4)
    m[:3, :3] = (
        (t * ax * ax + c, t * ax * ay - s * az, t * ax * az + s * ay),
        (t * ax * ay + s * az, t * ay * ay + c, t * ay * az - s * ax),
        (t * ax * az - s * ay, t * ay * az + s * ax, t * az * az + c),
    )
    return m


def _look_at(eye: Sequence[float], center: Sequence[float], up: Sequence[float]) -> np.ndarray:
    eye_v = np.asarray(eye, dtype=np.float64)
    forward = np.asarray(center, dtype=np.float64) - eye_v
    forward /= np.linalg.norm(forward)
    side = np.cross(forward, np.asarray(up, dtype=np.float64))
    side /= np.linalg.norm(side)
    upward = np.cross(side, forward)
    m = np.eye(4)
    m[0, :3] = side
    m[1, :3] = upward
    m[2, :3] = -forward
    return m @ _translation(*(-eye_v))


def invert_matrix(m: Sequence[float]) -> GLMatrix:
    """Inverse of a 4x4 matrix given as 16 values; raises ValueError if singular."""
    values = np.asarray(m, dtype=np.float64)
    if values.size != 16:
        raise ValueError("A 4x4 matrix holds 16 values")
    matrix = values.reshape(4, 4)
    if np.linalg.det(matrix) == 0:
        raise ValueError("The matrix is singular")
    try:
        inverse = np.linalg.inv(matrix)
    except np.linalg.LinAlgError as exc:
        raise ValueError("The matrix is singular") from exc
    return tuple(float(v) for v in inverse.ravel())


def perspective(fov: float, aspect: float, znear: float, zfar: float) -> GLMatrix:
    """Perspective projection matrix (vertical field of view in degrees)."""
    if aspect == 0 or znear == zfar:
        raise ValueError("Degenerate perspective parameters")
    f = 1.0 / math.tan(math.radians(fov) / 2.0)
    m = np.zeros((4, 4))
    m[0, 0] = f / aspect
    m[1, 1] = f
    m[2, 2] = (zfar + znear) / (znear - zfar)
    m[2, 3] = 2.0 * zfar * znear / (znear - zfar)
    m[3, 2] = -1.0
    return _to_gl(m)


@dataclass
class Camera:
    """Camera orbiting the origin at a given distance, panned in screen space."""

    zoom_sensitivity: float = 30.0
    rotate_sensitivity: float = 0.3
    pan_sensitivity: float = 10.0
    distance: float = 300.0
    angle_y: float = 20.0
    angle_z: float = -30.0
    delta_x: float = 0.0
    delta_y: float = 0.0
    delta_z: float = 0.0
    changed: bool = True
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    frustum: Frustum | None = field(default=None, repr=False, compare=False)

    def rotate(self, xrel: float, yrel: float) -> None:
        """Turn around the vertical axis and tilt, the tilt kept within ±90°."""
        self.angle_z += xrel * self.rotate_sensitivity
        self.angle_y += yrel * self.rotate_sensitivity
        self.angle_y = min(90.0, max(-90.0, self.angle_y))
        self.changed = True

    def pan(self, xrel: float, yrel: float) -> None:
        """Shift the view in screen space, scaled by the distance."""
        self.pan_sensitivity = self.distance * 0.01
        self.delta_x += xrel * self.pan_sensitivity
        self.delta_y -= yrel * self.pan_sensitivity
        self.changed = True

    def zoom(self, zrel: float) -> None:
        """Move away for a positive step, closer for a negative one."""
        if zrel > 0:
            self.distance += self.zoom_sensitivity
        elif zrel < 0:
            self.distance -= self.zoom_sensitivity
        if zrel != 0:
            self.pan_sensitivity = self.distance * 0.001
            self.zoom_sensitivity = self.distance * 0.05
        self.changed = True

    def set_delta(self, dx: float, dy: float, dz: float) -> None:
        self.delta_x = dx
        self.delta_y = dy
        self.delta_z = dz

    def set_distance(self, dist: float) -> None:
        """Set the orbit distance; non-positive values are ignored."""
        if dist > 0:
            self.distance = dist

    def modelview(self) -> GLMatrix:
        """The modelview matrix for the current camera state."""
        m = _translation(self.delta_x, self.delta_y, 0.0)
        m = m @ _look_at((self.distance, 0.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 1.0))
        m = m @ _rotation(self.angle_y, 0, 1, 0)
        m = m @ _rotation(self.angle_z, 0, 0, 1)
        m = m @ _rotation(90.0, 0, 0, 1)
        return _to_gl(m)

    def look(self, projection: Sequence[float]) -> tuple[float, float, float]:
        """Update the frustum and the camera position; return the position."""
        view = self.modelview()
        self.frustum = Frustum.from_matrices(projection, view)
        inverse = invert_matrix(view)
        self.x, self.y, self.z = inverse[12], inverse[13], inverse[14]
        return self.x, self.y, self.z

    def see(self, x: float, y: float, z: float, hsize: float) -> bool:
        """True if the cube of center (x, y, z) and half side hsize may be visible."""
        if self.frustum is None:
            raise RuntimeError("look() must be called before see()")
        return self.frustum.cube_in(x, y, z, hsize)