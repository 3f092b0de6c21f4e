"""Interactive window showing a point cloud.

Mouse: left button rotates, right button pans, the wheel zooms (with Ctrl
held it changes the point budget). Keys: z, i, c, r/g/b choose the
colouring attribute, q shows the spatial index, l toggles eye-dome
lighting, +/p and -/m change the point size, Escape closes the window.
"""

from __future__ import annotations

import argparse
import os
import threading
import warnings
from itertools import combinations, product
from typing import Any, Callable, Mapping, NamedTuple, Sequence

import numpy as np

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
import pygame  # noqa: E402

from lidview.cursors import cursor_from_xpm  # noqa: E402
from lidview.drawer import Attribute, Drawer, Frame, eye_dome_lighting  # noqa: E402

TITLE = "lidview"
WINDOW_SIZE = (600, 600)
TIME_PER_FRAME = 1000 // 30

_HAND1 = (
    " 16 16 3 1 ",
    "X c #000000",
    ". c #ffffff",
    "  c None",
    "       XX       ",
    "   XX X..XXX    ",
    "  X..XX..X..X   ",
    "  X..XX..X..X X ",
    "   X..X..X..XX.X",
    "   X..X..X..X..X",
    " XX X.......X..X",
    "X..XX..........X",
    "X...X.........X ",
    " X............X ",
    "  X...........X ",
    "  X..........X  ",
    "   X.........X  ",
    "    X.......X   ",
    "     X......X   ",
    "     X......X   ",
    "0,0",
)

_HAND2 = (
    " 16 16 3 1 ",
    "X c #000000",
    ". c #ffffff",
    "  c None",
    "                ",
    "                ",
    "                ",
    "                ",
    "    XX XX XX    ",
    "   X..X..X..XX  ",
    "   X........X.X ",
    "    X.........X ",
    "   XX.........X ",
    "  X...........X ",
    "  X...........X ",
    "  X..........X  ",
    "   X.........X  ",
    "    X.......X   ",
    "     X......X   ",
    "     X......X   ",
    "0,0",
)

_MOVE = (
    " 16 16 1 ",
    "X c #000000",
    ". c #ffffff",
    "  c None",
    "       XX       ",
    "      X..X      ",
    "     X....X     ",
    "    X......X    ",
    "   X XX..XX X   ",
    "  X.X X..X X.X  ",
    " X..XXX..XXX..X ",
    "X..............X",
    "X..............X",
    " X..XXX..XXX..X ",
    "  X.X X..X X.X  ",
    "   X XX..XX X   ",
    "    X......X    ",
    "     X....X     ",
    "      X..X      ",
    "       XX       ",
    "0,0",
)

_CURSOR_XPM = {"hand1": _HAND1, "hand2": _HAND2, "move": _MOVE}

_LEFT_BUTTON = 1
_RIGHT_BUTTON = 3
_CTRL_KEYS = {pygame.K_LCTRL, pygame.K_RCTRL}

_KEY_ACTIONS: dict[int, Callable[[Drawer], None]] = {
    pygame.K_z: lambda d: d.set_attribute(Attribute.Z),
    pygame.K_i: lambda d: d.set_attribute(Attribute.I),
    pygame.K_c: lambda d: d.set_attribute(Attribute.CLASS),
    pygame.K_r: lambda d: d.set_attribute(Attribute.RGB),
    pygame.K_g: lambda d: d.set_attribute(Attribute.RGB),
    pygame.K_b: lambda d: d.set_attribute(Attribute.RGB),
    pygame.K_q: Drawer.toggle_spatial_index,
    pygame.K_l: Drawer.toggle_edl,
    pygame.K_PLUS: Drawer.point_size_plus,
    pygame.K_KP_PLUS: Drawer.point_size_plus,
    pygame.K_p: Drawer.point_size_plus,
    pygame.K_MINUS: Drawer.point_size_minus,
    pygame.K_KP_MINUS: Drawer.point_size_minus,
    pygame.K_m: Drawer.point_size_minus,
}

_WINDOW_EVENTS = {
    getattr(pygame, name)
    for name in (
        "WINDOWSHOWN", "WINDOWEXPOSED", "WINDOWMOVED", "WINDOWRESIZED",
        "WINDOWSIZECHANGED", "WINDOWMAXIMIZED", "WINDOWRESTORED",
        "WINDOWENTER", "WINDOWLEAVE", "WINDOWFOCUSGAINED", "WINDOWFOCUSLOST",
    )
    if hasattr(pygame, name)
}

_running = threading.Event()
_guard = threading.Lock()


class _Controller:
    """Turns window events into drawer and camera actions."""

    def __init__(self, drawer: Drawer) -> None:
        self.drawer = drawer
        self.ctrl_pressed = False
        self.rotating = False
        self.panning = False
        self.running = True

    def handle(self, event: Any) -> str | None:
        """Apply one event; return the name of the cursor to show, if it changes."""
        kind = event.type
        drawer = self.drawer
        if kind == pygame.QUIT:
            self.running = False
        elif kind == pygame.KEYDOWN:
            if event.key in _CTRL_KEYS:
                self.ctrl_pressed = True
            elif event.key == pygame.K_ESCAPE:
                self.running = False
            elif event.key in _KEY_ACTIONS:
                _KEY_ACTIONS[event.key](drawer)
        elif kind == pygame.KEYUP:
            if event.key in _CTRL_KEYS:
                self.ctrl_pressed = False
        elif kind == pygame.MOUSEBUTTONUP:
            if event.button == _LEFT_BUTTON:
                self.rotating = False
                return "hand1"
            if event.button == _RIGHT_BUTTON:
                self.panning = False
                return "hand1"
        elif kind == pygame.MOUSEBUTTONDOWN:
            if event.button == _LEFT_BUTTON:
                self.rotating = True
                return "hand2"
            if event.button == _RIGHT_BUTTON:
                self.panning = True
                return "move"
        elif kind == pygame.MOUSEMOTION:
            xrel, yrel = event.rel
            if self.panning:
                drawer.camera.pan(xrel, yrel)
            if self.rotating:
                drawer.camera.rotate(xrel, yrel)
        elif kind == pygame.MOUSEWHEEL:
            if self.ctrl_pressed and event.y > 0:
                drawer.budget_plus()
            elif self.ctrl_pressed and event.y < 0:
                drawer.budget_minus()
            else:
                drawer.camera.zoom(event.y)
        elif kind == pygame.VIDEORESIZE:
            drawer.resize(event.w, event.h)
        elif kind in _WINDOW_EVENTS:
            drawer.camera.changed = True
        return None


class _Projection(NamedTuple):
    col: np.ndarray
    row: np.ndarray
    depth: np.ndarray
    inside: np.ndarray
    front: np.ndarray


def _project(frame: Frame, points: Any, width: int, height: int) -> _Projection:
    """Window coordinates (column, row from the top) and depth of 3D points."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    proj = np.asarray(frame.projection, dtype=np.float64).reshape(4, 4).T
    view = np.asarray(frame.modelview, dtype=np.float64).reshape(4, 4).T
    homogeneous = np.column_stack((pts, np.ones(len(pts))))
    clip = homogeneous @ (proj @ view).T
    w = clip[:, 3]
    with np.errstate(divide="ignore", invalid="ignore"):
        ndc = clip[:, :3] / w[:, None]
    front = w > 0
    inside = front & np.all(np.abs(ndc) <= 1.0, axis=1)
    col = (ndc[:, 0] + 1.0) / 2.0 * width
    row = (1.0 - (ndc[:, 1] + 1.0) / 2.0) * height
    depth = (ndc[:, 2] + 1.0) / 2.0
    return _Projection(col, row, depth, inside, front)


def _rasterize(frame: Frame, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Render the frame's points as squares with a depth test.

    Returns the RGB image (height, width, 3) and the depth buffer
    (height, width) with 1.0 where nothing was drawn.
    """
    image = np.zeros((height, width, 3), dtype=np.uint8)
    depth = np.ones((height, width), dtype=np.float32)

    proj = _project(frame, frame.points, width, height)
    inside = proj.inside
    colors = np.asarray(frame.colors, dtype=np.uint8).reshape(-1, 3)[inside]
    cols = np.floor(proj.col[inside]).astype(np.int64)
    rows = np.floor(proj.row[inside]).astype(np.int64)
    depths = proj.depth[inside].astype(np.float32)

    size = max(1, int(round(frame.point_size)))
    offsets = np.arange(size) - (size - 1) // 2
    off_x, off_y = (a.ravel() for a in np.meshgrid(offsets, offsets))
    per_point = len(off_x)

    px = (cols[:, None] + off_x[None, :]).ravel()
    py = (rows[:, None] + off_y[None, :]).ravel()
    pd = np.repeat(depths, per_point)
    pc = np.repeat(colors, per_point, axis=0)

    keep = (px >= 0) & (px < width) & (py >= 0) & (py < height)
    px, py, pd, pc = px[keep], py[keep], pd[keep], pc[keep]

    if len(px):
        flat = py * width + px
        order = np.lexsort((pd, flat))
        pixels, first = np.unique(flat[order], return_index=True)
        chosen = order[first]
        depth.reshape(-1)[pixels] = pd[chosen]
        image.reshape(-1, 3)[pixels] = pc[chosen]

    if frame.lightning:
        image = eye_dome_lighting(depth, image)
    return image, depth


def _box_edges(cx: float, cy: float, cz: float, half: float) -> list[tuple[tuple[float, ...], tuple[float, ...]]]:
    corners = list(product((-1, 1), repeat=3))
    return [
        (
            (cx + a[0] * half, cy + a[1] * half, cz + a[2] * half),
            (cx + b[0] * half, cy + b[1] * half, cz + b[2] * half),
        )
        for a, b in combinations(corners, 2)
        if sum(u != v for u, v in zip(a, b)) == 1
    ]


def _segments(frame: Frame, width: int, height: int) -> list[tuple[tuple[float, float], tuple[float, float], tuple[int, int, int]]]:
    """Screen segments for the axes and octant boxes lying in front of the camera."""
    lines = [
        (start, end, tuple(int(round(c * 255)) for c in color))
        for start, end, color in frame.axes
    ]
    for box in frame.boxes:
        lines.extend((a, b, (255, 255, 255)) for a, b in _box_edges(*box))
    if not lines:
        return []

    starts = _project(frame, [s for s, _, _ in lines], width, height)
    ends = _project(frame, [e for _, e, _ in lines], width, height)
    result = []
    for i, (_, _, color) in enumerate(lines):
        coords = (starts.col[i], starts.row[i], ends.col[i], ends.row[i])
        if starts.front[i] and ends.front[i] and all(np.isfinite(coords)):
            x0, y0, x1, y1 = (float(c) for c in coords)
            result.append(((x0, y0), (x1, y1), color))
    return result


def _present(screen: Any, frame: Frame | None) -> None:
    if frame is None:
        return
    width, height = screen.get_size()
    image, _ = _rasterize(frame, width, height)
    screen.blit(pygame.surfarray.make_surface(image.swapaxes(0, 1)), (0, 0))
    for start, end, color in _segments(frame, width, height):
        pygame.draw.line(screen, color, start, end, 2)
    pygame.display.flip()


def _tick(drawer: Drawer, last: int) -> int:
    now = pygame.time.get_ticks()
    elapsed = now - last
    if elapsed > TIME_PER_FRAME:
        if drawer.draw():
            _present(pygame.display.get_surface(), drawer.frame)
        return now
    pygame.time.delay(TIME_PER_FRAME - elapsed)
    return last


def _run(data: Mapping[str, Sequence[float]], hnof: str) -> None:
    """Open the window and run the event loop until it is closed."""
    try:
        pygame.display.init()
        screen = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)
    except pygame.error as exc:
        pygame.display.quit()
        raise RuntimeError(f"Unable to create the window: {exc}") from exc

    try:
        pygame.display.set_caption(TITLE)
        cursors = {name: cursor_from_xpm(xpm).to_pygame() for name, xpm in _CURSOR_XPM.items()}
        pygame.mouse.set_cursor(cursors["hand1"])

        drawer = Drawer(data, hnof, *screen.get_size())
        drawer.camera.rotate_sensitivity = 0.1
        drawer.camera.zoom_sensitivity = 10
        drawer.camera.pan_sensitivity = 1
        drawer.set_point_size(4)
        _present(screen, drawer.frame)

        controller = _Controller(drawer)
        last = pygame.time.get_ticks()
        while controller.running:
            for event in pygame.event.get():
                cursor = controller.handle(event)
                if cursor is not None:
                    pygame.mouse.set_cursor(cursors[cursor])
            last = _tick(drawer, last)
        _tick(drawer, last)
    finally:
        pygame.display.quit()


def _run_detached(data: Mapping[str, Sequence[float]], hnof: str) -> None:
    try:
        _run(data, hnof)
    finally:
        _running.clear()


def viewer(
    data: Mapping[str, Sequence[float]], detach: bool = False, hnof: str = ""
) -> threading.Thread | None:
    """Show the point cloud; with detach, in a background thread that is returned.

    Only one detached window may be open at a time.
    """
    if not detach:
        _run(data, hnof)
        return None
    with _guard:
        if _running.is_set():
            raise RuntimeError("Only one point cloud can be rendered at a time")
        _running.set()
    thread = threading.Thread(target=_run_detached, args=(data, hnof), daemon=True)
    thread.start()
    return thread


def _load_points(path: str | os.PathLike) -> dict[str, np.ndarray]:
    """Read a comma-separated table with a header line into named columns."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        table = np.genfromtxt(path, delimiter=",", names=True, dtype=np.float64, encoding="utf-8")
    names = table.dtype.names
    if names is None:
        raise ValueError(f"{path}: no header line")
    table = np.atleast_1d(table)
    if table.size == 0:
        raise ValueError(f"{path}: no point")
    missing = [c for c in ("X", "Y", "Z") if c not in names]
    if missing:
        raise ValueError(f"{path}: missing column(s) {', '.join(missing)}")
    return {name: np.asarray(table[name]) for name in names}


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="lidview", description="Display a point cloud.")
    parser.add_argument("points", help="CSV file with a header holding at least X, Y and Z columns")
    parser.add_argument(
        "--index",
        default="",
        help="saved spatial index to read, or a .las/.laz name next to which the index is saved",
    )
    args = parser.parse_args(argv)
    try:
        data = _load_points(args.points)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
    viewer(data, False, args.index)
    return 0