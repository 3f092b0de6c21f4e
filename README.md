# lidview

An interactive viewer for point clouds such as lidar scans. Points are
organised in an octree; on each frame only the octants that fall inside the
camera frustum and appear large enough on screen are drawn, up to a point
budget. Eye-dome lighting shades the rendering to bring out depth.

The window is a `pygame` window. Points are rasterised with `numpy` as small
squares with a depth test, then the image is shaded and shown; the axes and,
on request, the octant boxes are drawn over it as lines.

## Installation

```
pip install .
```

## The `lidview` command

```
lidview points.csv
lidview points.csv --index cloud.hno
lidview --help
```

`points` is a comma-separated file whose first line names the columns. It must
hold `X`, `Y` and `Z`; `R`, `G`, `B`, `Intensity` and `Classification` are used
for colouring when present. `--index` is passed on as the `hnof` argument
described below.

## From Python

Hand `lidview.viewer.viewer` a mapping of column names to arrays:

```python
import numpy as np
from lidview.viewer import viewer

n = 100_000
data = {
    "X": np.random.uniform(0, 100, n),
    "Y": np.random.uniform(0, 100, n),
    "Z": np.random.uniform(0, 20, n),
}
viewer(data, False, "")
```

`viewer(data, detach=False, hnof="")` blocks until the window is closed. With
`detach=True` the window runs in a background daemon thread, which is
returned; only one detached window may be open at a time, and asking for a
second raises `RuntimeError`.

The `hnof` argument names an index file. When it ends in `.las` or `.laz`,
the octree is built from the data and saved under the same name with the
extension `.hno`; any other non-empty name is read as a previously saved
index, which must hold the same number of points as the data (otherwise
`ValueError`). An empty string builds the index in memory only.

## Controls

| Input                        | Action                                    |
|------------------------------|-------------------------------------------|
| left mouse drag              | rotate                                    |
| right mouse drag             | pan                                       |
| mouse wheel                  | zoom                                      |
| Ctrl + mouse wheel           | raise or lower the point budget by 500000 |
| `z`                          | colour by elevation                       |
| `i`                          | colour by intensity                       |
| `c`                          | colour by classification                  |
| `r`, `g`, `b`                | colour by RGB                             |
| `+`, `p` / `-`, `m`          | larger / smaller points                   |
| `q`                          | show or hide the octree boxes             |
| `l`                          | switch eye-dome lighting on or off        |
| `Esc`                        | close the window                          |

An attribute that the data does not hold falls back to colouring by
elevation.

## Library use

The building blocks can be used without a window:

- `lidview.octree.Octree(x, y, z)` builds the spatial index from coordinate
  arrays; `Octree.insert(i)` adds point `i` and returns its `Key`.
  `Octree.write(filename)` saves the index and the class method
  `Octree.read(filename)` loads it again (the loaded index holds the point
  indices but not the coordinates). The file starts with the signature
  `HNOF` and version 1.0, all values little-endian.
- `lidview.octree.Key` addresses an octant (`root`, `children`, `parent`,
  `is_valid`); `lidview.octree.Node` holds an octant's bounding box and
  point indices.
- `lidview.frustum.Frustum.from_matrices(projection, modelview)` builds the
  view volume from two column-major 4x4 matrices and tests points
  (`point_in`), spheres (`sphere_in`) and cubes (`cube_in`) against it.
- `lidview.camera.Camera` holds the orbit camera state (`rotate`, `pan`,
  `zoom`, `set_distance`, `set_delta`); `modelview()` gives its matrix and
  `look(projection)` updates its frustum and position so that `see` can test
  cubes. `perspective` and `invert_matrix` build and invert matrices.
- `lidview.drawer.Drawer(data, hnof, width, height)` is the scene behind the
  window: `draw()` recomputes a `Frame` (point positions, colours, matrices,
  boxes, axes) when the camera has changed; `visible_octants()`,
  `rendered_points()` and `point_colors(indices)` expose the steps.
- `lidview.drawer.eye_dome_lighting(depth, colors)` shades an RGB image from
  its depth buffer.
- `lidview.psquare.PSquare(quantile)` estimates a quantile of a stream of
  values in constant memory with the P² algorithm (`add`, `quantile`).
- `lidview.cursors.cursor_from_xpm(xpm)` turns a small XPM image into a
  monochrome `Cursor`.

## What it does not do

- It does not read LAS or LAZ files. Points come from a CSV file on the
  command line or from arrays in Python; a `.las`/`.laz` name only decides
  where the index is saved.
- It uses no GPU: rendering is done on the CPU, which bounds the frame rate
  on large windows and large point budgets.

## Running the tests

```
pip install .[test]
pytest
```