"""Point cloud scene: colouring, level-of-detail selection and shading.

The drawer owns the camera and the octree index of a point cloud. Each
call to ``draw`` selects the octants that are visible and large enough on
screen, gathers their points within a point budget, colours them by the
chosen attribute and stores the result as a ``Frame`` for display.
"""

from __future__ import annotations

import enum
import math
import os
import random
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np

from lidview.camera import Camera, perspective
from lidview.octree import Key, Node, Octree
from lidview.psquare import PSquare

ZGRADIENT = np.array(
    [
        (0, 0, 255), (0, 29, 252), (0, 59, 250), (0, 89, 248), (0, 119, 246),
        (0, 148, 244), (0, 178, 242), (0, 208, 240), (0, 238, 238), (31, 240, 208),
        (63, 242, 178), (95, 244, 148), (127, 246, 118), (159, 248, 89), (191, 250, 59),
        (223, 252, 29), (255, 255, 0), (255, 223, 0), (255, 191, 0), (255, 159, 0),
        (255, 127, 0), (255, 95, 0), (255, 63, 0), (255, 31, 0), (255, 0, 0),
    ],
    dtype=np.uint8,
)

CLASS_COLORS = np.array(
    [
        (211, 211, 211), (211, 211, 211), (0, 0, 255), (50, 205, 50), (34, 139, 34),
        (0, 100, 0), (255, 0, 0), (255, 255, 0), (255, 255, 0), (100, 149, 237),
        (255, 255, 0), (51, 51, 51), (255, 255, 0), (255, 192, 203), (255, 192, 203),
        (160, 32, 240), (255, 192, 203), (255, 165, 0), (255, 255, 0),
    ],
    dtype=np.uint8,
)

IGRADIENT = np.array(
    [
        (255, 0, 0), (255, 14, 0), (255, 28, 0), (255, 42, 0), (255, 57, 0),
        (255, 71, 0), (255, 85, 0), (255, 99, 0), (255, 113, 0), (255, 128, 0),
        (255, 142, 0), (255, 156, 0), (255, 170, 0), (255, 184, 0), (255, 198, 0),
        (255, 213, 0), (255, 227, 0), (255, 241, 0), (255, 255, 0), (255, 255, 21),
        (255, 255, 64), (255, 255, 106), (255, 255, 149), (255, 255, 191), (255, 255, 234),
    ],
    dtype=np.uint8,
)

BUDGET_STEP = 500000
INITIAL_BUDGET = 300000
MIN_SCREEN_SIZE = 200.0
INDEXING_REFRESH = 1000000

_EDL_NEAR = np.float32(1.0)
_EDL_FAR = np.float32(10000.0)
_EDL_STRENGTH = 10.0


class Attribute(enum.IntEnum):
    """Attribute used to colour the points."""

    Z = 0
    I = 1  # noqa: E741
    RGB = 2
    CLASS = 3


@dataclass
class Frame:
    """Everything needed to display one rendered view."""

    points: np.ndarray
    colors: np.ndarray
    projection: tuple[float, ...]
    modelview: tuple[float, ...]
    point_size: float
    lightning: bool
    boxes: list[tuple[float, float, float, float]] = field(default_factory=list)
    axes: list[tuple[tuple[float, float, float], tuple[float, float, float], tuple[float, float, float]]] = field(
        default_factory=list
    )


def eye_dome_lighting(depth: Any, colors: Any) -> np.ndarray:
    """Shade an RGB image by the log-depth differences with its 4 neighbours.

    ``depth`` holds depth-buffer values in [0, 1] with shape (h, w);
    ``colors`` holds uint8 RGB with shape (h, w, 3). Pixels at the far
    plane are left untouched. A new array is returned.
    """
    d = np.asarray(depth, dtype=np.float32)
    c = np.asarray(colors, dtype=np.uint8)
    if d.ndim != 2 or c.shape != d.shape + (3,):
        raise ValueError("depth must be (h, w) and colors (h, w, 3)")

    log_far = np.log2(_EDL_FAR)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        z_ndc = np.float32(2.0) * d - np.float32(1.0)
        z_cam = (np.float32(2.0) * _EDL_NEAR * _EDL_FAR) / (
            _EDL_FAR + _EDL_NEAR - z_ndc * (_EDL_FAR - _EDL_NEAR)
        )
        wld = np.log2(z_cam).astype(np.float32)
        max_log = np.maximum(np.float32(0.0), wld)

        total = np.zeros_like(wld)
        total[:, 1:] += max_log[:, 1:] - wld[:, :-1]
        total[:, :-1] += max_log[:, :-1] - wld[:, 1:]
        total[1:, :] += max_log[1:, :] - wld[:-1, :]
        total[:-1, :] += max_log[:-1, :] - wld[1:, :]

        response = total / np.float32(4.0)
        shade = np.exp(-response.astype(np.float64) * 300.0 * _EDL_STRENGTH).astype(np.float32)
        shade = np.float32(1.0) - np.clip(shade, 0.0, 255.0).astype(np.float32) / np.float32(255.0)
        shaded = c.astype(np.float32) * shade[..., None]

    out = c.copy()
    mask = wld != log_far
    out[mask] = np.nan_to_num(shaded[mask], nan=0.0).astype(np.uint8)
    return out


class Drawer:
    """Scene of one point cloud seen through an orbit camera.

    ``data`` maps column names to arrays; ``X``, ``Y`` and ``Z`` are
    required, ``R``/``G``/``B``, ``Classification`` and ``Intensity`` are
    used when present. ``hnof`` is an optional path: a ``.las``/``.laz``
    name makes the index be built and saved next to it as ``.hno``, any
    other name is read as a saved index.
    """

    def __init__(
        self,
        data: Mapping[str, Sequence[float]],
        hnof: str | os.PathLike = "",
        width: int = 600,
        height: int = 600,
    ) -> None:
        self.z_near = 1.0
        self.z_far = 100000.0
        self.fov = 70.0
        self.camera = Camera()
        self.width = 0
        self.height = 0
        self.projection: tuple[float, ...] = ()
        self.resize(width, height)

        self._data = data
        self._x = np.asarray(data["X"], dtype=np.float64)
        self._y = np.asarray(data["Y"], dtype=np.float64)
        self._z = np.asarray(data["Z"], dtype=np.float64)
        self.npoints = len(self._x)
        if self.npoints == 0:
            raise ValueError("The point cloud holds no point")
        if len(self._y) != self.npoints or len(self._z) != self.npoints:
            raise ValueError("Coordinate arrays must have the same length")

        zp99 = PSquare(0.99)
        for value in self._z[1:]:
            zp99.add(value)

        self.minx, self.maxx = float(self._x.min()), float(self._x.max())
        self.miny, self.maxy = float(self._y.min()), float(self._y.max())
        self.minz, self.maxz = float(self._z.min()), float(self._z.max())
        self.xcenter = (self.maxx + self.minx) / 2
        self.ycenter = (self.maxy + self.miny) / 2
        self.zcenter = (self.maxz + self.minz) / 2
        self.xrange = self.maxx - self.minx
        self.yrange = self.maxy - self.miny
        self.zrange = self.maxz - self.minz
        self.range = max(self.xrange, self.yrange)
        self.zqmin = self.minz
        self.zqmax = zp99.quantile()

        self.draw_index = False
        self.point_budget = INITIAL_BUDGET
        self.point_size = 5.0
        self.lightning = True

        self.attribute = Attribute.Z
        self.minattr = self.maxattr = self.attrrange = 0.0
        self.rgb_norm = 1
        self._r = self._g = self._b = None
        self._attri: np.ndarray | None = None

        self._visible: list[Node] = []
        self._points: list[int] = []
        self.frame: Frame | None = None

        distance = math.sqrt(self.xrange * self.xrange + self.yrange * self.yrange)
        self.camera.set_distance(distance)
        self.camera.pan_sensitivity = distance * 0.001
        self.camera.zoom_sensitivity = distance * 0.05

        self.set_attribute(Attribute.Z)
        self.set_attribute(Attribute.RGB)

        path = os.fspath(hnof)
        use_hnof = bool(path)
        is_las = path.endswith(".las") or path.endswith(".laz")

        if not use_hnof or is_las:
            self.index = Octree(self._x, self._y, self._z)
            for i in range(self.npoints):
                self.index.insert(i)
                if i % INDEXING_REFRESH == 0:
                    self.camera.changed = True
                    self.draw()
            if is_las:
                self.index.write(path[:-3] + "hno")
        else:
            self.index = Octree.read(path)
            if self.index.npoints != self.npoints:
                raise ValueError(
                    "Incompatible number of points between the data provided "
                    "and the octree read from file."
                )

        self.point_budget *= 10
        self.camera.changed = True
        self.draw()

    def set_attribute(self, attr: Attribute) -> None:
        """Colour by attr when the data holds it, otherwise by Z."""
        data = self._data
        if attr == Attribute.RGB and "R" in data:
            self.attribute = Attribute.RGB
            self._r = np.asarray(data["R"], dtype=np.int64)
            self._g = np.asarray(data["G"], dtype=np.int64)
            self._b = np.asarray(data["B"], dtype=np.int64)
            self.rgb_norm = 1
            size = len(self._r)
            for _ in range(min(size, 100)):
                if self._r[random.randrange(size)] > 255:
                    self.rgb_norm = 255
        elif attr == Attribute.CLASS and "Classification" in data:
            self.attribute = Attribute.CLASS
            self._attri = np.asarray(data["Classification"], dtype=np.int64)
        elif attr == Attribute.I and "Intensity" in data:
            self.attribute = Attribute.I
            self._attri = np.asarray(data["Intensity"], dtype=np.int64)
            p99 = PSquare(0.99)
            for value in self._attri:
                p99.add(value)
            self.minattr = self.minz
            self.maxattr = p99.quantile()
            self.attrrange = self.maxattr - self.minattr
        else:
            self.attribute = Attribute.Z
            self.minattr = self.zqmin
            self.maxattr = self.zqmax
            self.attrrange = self.maxattr - self.minattr
        self.camera.changed = True

    def point_colors(self, indices: Sequence[int]) -> np.ndarray:
        """RGB colours (uint8, shape (n, 3)) of the given points."""
        idx = np.asarray(indices, dtype=np.intp)
        if self.attribute == Attribute.RGB:
            norm = self.rgb_norm
            channels = [(c[idx] // norm) & 0xFF for c in (self._r, self._g, self._b)]
            return np.stack(channels, axis=-1).astype(np.uint8).reshape(-1, 3)
        if self.attribute == Attribute.CLASS:
            classes = np.clip(self._attri[idx], 0, len(CLASS_COLORS) - 1)
            return CLASS_COLORS[classes].reshape(-1, 3)
        if self.attribute == Attribute.I:
            lo, hi = int(self.minattr), int(self.maxattr)
            clamped = np.minimum(np.maximum(self._attri[idx], lo), hi)
            with np.errstate(divide="ignore", invalid="ignore"):
                normalized = ((clamped - lo) / self.attrrange).astype(np.float32)
            return IGRADIENT[_bins(normalized, len(IGRADIENT))].reshape(-1, 3)
        clamped = np.minimum(np.maximum(self._z[idx], self.minattr), self.maxattr)
        with np.errstate(divide="ignore", invalid="ignore"):
            normalized = ((clamped - self.minattr) / self.attrrange).astype(np.float32)
        return ZGRADIENT[_bins(normalized, len(ZGRADIENT))].reshape(-1, 3)

    def draw(self) -> bool:
        """Recompute the frame if the camera changed; return whether it did."""
        if not self.camera.changed:
            return False

        self.camera.look(self.projection)
        self.visible_octants()
        points = self.rendered_points()
        idx = np.asarray(points, dtype=np.intp)

        positions = np.column_stack(
            (self._x[idx] - self.xcenter, self._y[idx] - self.ycenter, self._z[idx] - self.zcenter)
        ).astype(np.float32)

        boxes = []
        if self.draw_index:
            boxes = [
                (n.bbox[0] - self.xcenter, n.bbox[1] - self.ycenter, n.bbox[2] - self.zcenter, n.bbox[3])
                for n in self._visible
            ]

        origin = (self.minx - self.xcenter, self.miny - self.ycenter, self.minz + 10)
        ox, oy, oz = origin
        axes = [
            (origin, (ox + 20, oy, oz), (1.0, 0.0, 0.0)),
            (origin, (ox, oy + 20, oz), (0.0, 1.0, 0.0)),
            (origin, (ox, oy, oz + 20), (0.0, 0.0, 1.0)),
        ]

        self.frame = Frame(
            points=positions,
            colors=self.point_colors(idx),
            projection=self.projection,
            modelview=self.camera.modelview(),
            point_size=self.point_size,
            lightning=self.lightning,
            boxes=boxes,
            axes=axes,
        )
        self.camera.changed = False
        return True

    def resize(self, width: int, height: int) -> None:
        """Adapt the projection to a new viewport size."""
        if width <= 0 or height <= 0:
            raise ValueError("The viewport size must be positive")
        self.width, self.height = int(width), int(height)
        self.projection = perspective(self.fov, self.width / self.height, self.z_near, self.z_far)
        self.camera.changed = True

    def set_point_size(self, size: float) -> None:
        """Set the point size; non-positive sizes are ignored."""
        if size > 0:
            self.point_size = size

    def toggle_spatial_index(self) -> None:
        self.draw_index = not self.draw_index
        self.camera.changed = True

    def toggle_edl(self) -> None:
        self.lightning = not self.lightning
        self.camera.changed = True

    def point_size_plus(self) -> None:
        self.point_size += 1
        self.camera.changed = True

    def point_size_minus(self) -> None:
        self.point_size -= 1
        self.camera.changed = True

    def budget_plus(self) -> None:
        self.point_budget += BUDGET_STEP
        self.camera.changed = True

    def budget_minus(self) -> None:
        if self.point_budget > BUDGET_STEP:
            self.point_budget -= BUDGET_STEP
        self.camera.changed = True

    def visible_octants(self) -> list[Node]:
        """Octants in view and large enough on screen, largest first.

        The camera must have been positioned by ``camera.look`` before.
        """
        visible: list[Node] = []
        self._collect(Key.root(), visible)
        visible.sort(key=lambda node: node.screen_size, reverse=True)
        self._visible = visible
        return visible

    def _collect(self, key: Key, visible: list[Node]) -> None:
        octant = self.index.registry.get(key)
        if octant is None:
            return

        cx, cy, cz, half = octant.bbox
        x, y, z = cx - self.xcenter, cy - self.ycenter, cz - self.zcenter
        if not self.camera.see(x, y, z, half):
            return

        slope = math.tan(70 * math.pi / 180 / 2.0)
        radius = half * 2 * 1.414
        cam = self.camera
        distance = math.sqrt((cam.x - x) ** 2 + (cam.y - y) ** 2 + (cam.z - z) ** 2)
        denominator = slope * distance
        ratio = radius / denominator if denominator else math.inf
        octant.screen_size = (self.height / 2.0) * ratio

        if octant.screen_size > MIN_SCREEN_SIZE:
            visible.append(octant)
            for child in key.children():
                self._collect(child, visible)

    def rendered_points(self) -> list[int]:
        """Indices of the points of the visible octants, within the budget."""
        points: list[int] = []
        for octant in self._visible:
            points.extend(octant.point_idx)
            if len(points) > self.point_budget:
                break
        self._points = points
        return points


def _bins(normalized: np.ndarray, count: int) -> np.ndarray:
    scaled = np.nan_to_num(normalized * (count - 1), nan=0.0, posinf=count - 1, neginf=0.0)
    return np.clip(np.trunc(scaled), 0, count - 1).astype(np.intp)