"""Sparse octree spatial index for point clouds.

Each octant keeps the indices of the points it holds and an occupancy grid
(grid_size cells per side) so that one octant accepts at most one point per
cell; further points in an occupied cell descend to deeper octants. The
deepest level accepts every point.

The index can be saved to and loaded from a little-endian binary file:
the signature ``HNOF``, the version as two int32 (1, 0), the bounding box
as six float64 (xmin, ymin, zmin, xmax, ymax, zmax), the grid size as
int64, the number of octants as uint64, then for each octant its key as
four int32 (d, x, y, z), its point count as uint64 and the point indices
as uint32.
"""

from __future__ import annotations

import functools
import math
import os
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Sequence

import numpy as np

UINT32_MAX = 0xFFFFFFFF
MAX_POINTS_PER_OCTANT = 10000
DEFAULT_GRID_SIZE = 128

FILE_SIGNATURE = b"HNOF"
FILE_VERSION = (1, 0)

_VERSION = struct.Struct("<ii")
_BOUNDS = struct.Struct("<6dqQ")
_ENTRY = struct.Struct("<iiiiQ")


@functools.total_ordering
@dataclass(frozen=True)
class Key:
    """Address of an octant: depth d and integer position x, y, z at that depth."""

    d: int = -1
    x: int = -1
    y: int = -1
    z: int = -1

    @classmethod
    def root(cls) -> Key:
        return cls(0, 0, 0, 0)

    def is_valid(self) -> bool:
        return self.d >= 0 and self.x >= 0 and self.y >= 0 and self.z >= 0

    def children(self) -> tuple[Key, ...]:
        """The eight keys one level deeper, ordered by direction bits (x, y, z)."""
        return tuple(
            Key(
                self.d + 1,
                self.x * 2 + (direction & 1),
                self.y * 2 + ((direction >> 1) & 1),
                self.z * 2 + ((direction >> 2) & 1),
            )
            for direction in range(8)
        )

    def parent(self) -> Key:
        """The enclosing key; an invalid key for the root or an invalid key."""
        if not self.is_valid() or self.d == 0:
            return Key()
        return Key(self.d - 1, self.x >> 1, self.y >> 1, self.z >> 1)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return (self.x, self.y, self.z, self.d) < (other.x, other.y, other.z, other.d)


@dataclass
class Node:
    """Content of one octant."""

    bbox: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    screen_size: float = 0.0
    point_idx: list[int] = field(default_factory=list)
    occupancy: set[int] = field(default_factory=set)

    def insert(self, idx: int, cell: int) -> None:
        """Record a point; a negative cell means no occupancy is tracked."""
        self.point_idx.append(idx)
        if cell >= 0:
            self.occupancy.add(cell)

    def npoints(self) -> int:
        return len(self.point_idx)


def _divide(num: float, den: float) -> float:
    if den != 0:
        return num / den
    if num == 0 or math.isnan(num):
        return math.nan
    return math.copysign(math.inf, num) * math.copysign(1.0, den)


def _grid_index(value: float, n: int) -> int:
    if math.isnan(value) or value < 0:
        return 0
    if value >= n:
        return n - 1
    return int(value)


class Octree:
    """Spatial index over the points given by three coordinate arrays."""

    def __init__(self, x: Sequence[float], y: Sequence[float], z: Sequence[float]) -> None:
        xs = np.asarray(x, dtype=np.float64)
        ys = np.asarray(y, dtype=np.float64)
        zs = np.asarray(z, dtype=np.float64)
        n = len(xs)
        if len(ys) != n or len(zs) != n:
            raise ValueError("Coordinate arrays must have the same length")
        if n > UINT32_MAX:
            raise ValueError("Spatial indexation is bound to 4,294 billion points")

        self._init_state()
        self._x, self._y, self._z = xs, ys, zs
        self._npoints = n

        if n:
            lo = [float(a.min()) for a in (xs, ys, zs)]
            hi = [float(a.max()) for a in (xs, ys, zs)]
        else:
            lo = [math.inf] * 3
            hi = [-math.inf] * 3

        centers = [(a + b) / 2 for a, b in zip(lo, hi)]
        halfsize = max(b - a for a, b in zip(lo, hi)) / 2
        self._xmin, self._ymin, self._zmin = (c - halfsize for c in centers)
        self._xmax, self._ymax, self._zmax = (c + halfsize for c in centers)

        self._compute_max_depth(n, MAX_POINTS_PER_OCTANT)

    def _init_state(self) -> None:
        self.registry: dict[Key, Node] = {}
        self._x = self._y = self._z = None
        self._npoints = 0
        self._max_depth = 0
        self._grid_size = DEFAULT_GRID_SIZE
        self._xmin = self._ymin = self._zmin = 0.0
        self._xmax = self._ymax = self._zmax = 0.0

    def _compute_max_depth(self, npts: int, max_points_per_octant: int) -> None:
        xsize = self._xmax - self._xmin
        ysize = self._ymax - self._ymin
        zsize = self._zmax - self._zmin
        size = max(xsize, ysize, zsize)

        depth = 0
        while npts > max_points_per_octant:
            if xsize >= size:
                npts //= 2
            if ysize >= size:
                npts //= 2
            if zsize >= size:
                npts //= 2
            size /= 2
            depth += 1
        self._max_depth = depth

    @property
    def max_depth(self) -> int:
        return self._max_depth

    @property
    def npoints(self) -> int:
        return self._npoints

    @property
    def grid_size(self) -> int:
        return self._grid_size

    @grid_size.setter
    def grid_size(self, size: int) -> None:
        # Sizes of 2 or less are ignored.
        if size > 2:
            self._grid_size = int(size)

    @property
    def xmin(self) -> float:
        return self._xmin

    @property
    def ymin(self) -> float:
        return self._ymin

    @property
    def zmin(self) -> float:
        return self._zmin

    @property
    def xmax(self) -> float:
        return self._xmax

    @property
    def ymax(self) -> float:
        return self._ymax

    @property
    def zmax(self) -> float:
        return self._zmax

    @property
    def center_x(self) -> float:
        return (self._xmin + self._xmax) / 2

    @property
    def center_y(self) -> float:
        return (self._ymin + self._ymax) / 2

    @property
    def center_z(self) -> float:
        return (self._zmin + self._zmax) / 2

    @property
    def halfsize(self) -> float:
        return (self._xmax - self._xmin) / 2

    @property
    def size(self) -> float:
        return self._xmax - self._xmin

    def get_key(self, x: float, y: float, z: float, depth: int) -> Key:
        """Key of the octant at the given depth that contains the point."""
        cells = 1 << depth
        resolution = (self._xmax - self._xmin) / cells
        return Key(
            depth,
            _grid_index(_divide(float(x) - self._xmin, resolution), cells),
            _grid_index(_divide(float(y) - self._ymin, resolution), cells),
            _grid_index(_divide(float(z) - self._zmin, resolution), cells),
        )

    def _octant_min(self, key: Key) -> tuple[float, float, float, float]:
        res = self.halfsize * 2 / (1 << key.d)
        minx = res * key.x + (self.center_x - self.halfsize)
        miny = res * key.y + (self.center_y - self.halfsize)
        minz = res * key.z + (self.center_z - self.halfsize)
        return minx, miny, minz, res

    def get_cell(self, x: float, y: float, z: float, key: Key) -> int:
        """Index of the occupancy cell of the octant that contains the point."""
        minx, miny, minz, res = self._octant_min(key)
        maxx = minx + res
        g = self._grid_size
        resolution = (maxx - minx) / g
        xi = _grid_index(_divide(float(x) - minx, resolution), g)
        yi = _grid_index(_divide(float(y) - miny, resolution), g)
        zi = _grid_index(_divide(float(z) - minz, resolution), g)
        return zi * g * g + yi * g + xi

    def bbox(self, key: Key) -> tuple[float, float, float, float]:
        """Center (x, y, z) and half side length of the octant."""
        minx, miny, minz, res = self._octant_min(key)
        return (
            (minx + minx + res) / 2,
            (miny + miny + res) / 2,
            (minz + minz + res) / 2,
            res / 2,
        )

    def insert(self, i: int) -> Key:
        """Insert point i into the index and return the key of its octant."""
        if self._x is None:
            raise ValueError("This octree holds no point coordinates")
        px, py, pz = float(self._x[i]), float(self._y[i]), float(self._z[i])

        level = 0
        while True:
            key = self.get_key(px, py, pz, level)
            cell = -1 if level == self._max_depth else self.get_cell(px, py, pz, key)

            node = self.registry.get(key)
            if node is None:
                node = Node(bbox=self.bbox(key))
                self.registry[key] = node

            if cell not in node.occupancy or level == self._max_depth:
                break
            level += 1

        node.insert(int(i), cell)
        return key

    def write(self, filename: str | os.PathLike) -> None:
        """Save the index to a binary file."""
        with open(filename, "wb") as out:
            out.write(FILE_SIGNATURE)
            out.write(_VERSION.pack(*FILE_VERSION))
            out.write(
                _BOUNDS.pack(
                    self._xmin, self._ymin, self._zmin,
                    self._xmax, self._ymax, self._zmax,
                    self._grid_size, len(self.registry),
                )
            )
            for key, node in self.registry.items():
                out.write(_ENTRY.pack(key.d, key.x, key.y, key.z, len(node.point_idx)))
                out.write(np.asarray(node.point_idx, dtype="<u4").tobytes())

    @classmethod
    def read(cls, filename: str | os.PathLike) -> Octree:
        """Load an index saved by write; it holds no point coordinates."""
        tree = cls.__new__(cls)
        tree._init_state()

        with open(filename, "rb") as src:
            if _read_exact(src, len(FILE_SIGNATURE)) != FILE_SIGNATURE:
                raise ValueError("Invalid file signature.")
            major, minor = _VERSION.unpack(_read_exact(src, _VERSION.size))
            if (major, minor) != FILE_VERSION:
                raise ValueError(f"Unsupported file version: {major}.{minor}")

            (
                tree._xmin, tree._ymin, tree._zmin,
                tree._xmax, tree._ymax, tree._zmax,
                grid_size, count,
            ) = _BOUNDS.unpack(_read_exact(src, _BOUNDS.size))
            tree._grid_size = int(grid_size)

            for _ in range(count):
                d, x, y, z, n = _ENTRY.unpack(_read_exact(src, _ENTRY.size))
                key = Key(d, x, y, z)
                tree._max_depth = max(tree._max_depth, d)
                tree._npoints += n
                indices = np.frombuffer(_read_exact(src, 4 * n), dtype="<u4")
                tree.registry[key] = Node(bbox=tree.bbox(key), point_idx=indices.tolist())

        return tree


def _read_exact(src: BinaryIO, n: int) -> bytes:
    data = src.read(n)
    if len(data) != n:
        raise ValueError("Truncated octree file.")
    return data