import math

import numpy as np
import pytest

from lidview.camera import Camera, invert_matrix, perspective


def _gl(values):
    return np.asarray(values, dtype=np.float64).reshape(4, 4).T


def test_defaults_from_source():
    cam = Camera()
    assert (cam.angle_y, cam.angle_z, cam.distance) == (20.0, -30.0, 300.0)
    assert cam.changed is True


def test_rotate_clamps_tilt():
    cam = Camera()
    cam.rotate(0, 100000)
    assert cam.angle_y == 90.0
    cam.rotate(0, -1000000)
    assert cam.angle_y == -90.0


def test_rotate_changes_heading_and_flag():
    cam = Camera(changed=False)
    before = cam.angle_z
    cam.rotate(10, 0)
    assert cam.angle_z > before
    assert cam.changed is True


def test_pan_is_reversible_and_y_inverted():
    cam = Camera()
    cam.pan(5, 3)
    assert cam.delta_x > 0
    assert cam.delta_y < 0
    cam.pan(-5, -3)
    assert cam.delta_x == pytest.approx(0.0)
    assert cam.delta_y == pytest.approx(0.0)


def test_zoom_directions():
    cam = Camera()
    start = cam.distance
    cam.zoom(1)
    assert cam.distance > start
    farther = cam.distance
    cam.zoom(-1)
    assert cam.distance < farther
    current = cam.distance
    cam.changed = False
    cam.zoom(0)
    assert cam.distance == current
    assert cam.changed is True


def test_set_distance_ignores_non_positive():
    cam = Camera()
    cam.set_distance(-5)
    cam.set_distance(0)
    assert cam.distance == 300.0
    cam.set_distance(42.5)
    assert cam.distance == 42.5


def test_set_delta():
    cam = Camera()
    cam.set_delta(1.5, -2.5, 3.5)
    assert (cam.delta_x, cam.delta_y, cam.delta_z) == (1.5, -2.5, 3.5)


def test_invert_matrix_gives_identity():
    m = (2, 0, 0, 0, 1, 3, 0, 0, 0, 1, 4, 0, 5, 6, 7, 1)
    inv = invert_matrix(m)
    product = np.asarray(m, dtype=float).reshape(4, 4) @ np.asarray(inv).reshape(4, 4)
    assert np.allclose(product, np.eye(4))


def test_invert_singular_raises():
    with pytest.raises(ValueError):
        invert_matrix([0.0] * 16)


def test_invert_wrong_size_raises():
    with pytest.raises(ValueError):
        invert_matrix([1.0] * 9)


def test_perspective_maps_near_and_far_planes():
    proj = _gl(perspective(70, 1.5, 1.0, 1000.0))
    near = proj @ np.array([0.0, 0.0, -1.0, 1.0])
    far = proj @ np.array([0.0, 0.0, -1000.0, 1.0])
    assert near[2] / near[3] == pytest.approx(-1.0)
    assert far[2] / far[3] == pytest.approx(1.0)


def test_modelview_is_affine():
    view = Camera().modelview()
    assert (view[3], view[7], view[11], view[15]) == (0.0, 0.0, 0.0, 1.0)


def test_look_places_camera_at_orbit_distance():
    cam = Camera(angle_y=35.0, angle_z=70.0)
    pos = cam.look(perspective(70, 1.0, 1.0, 100000.0))
    assert math.dist(pos, (0, 0, 0)) == pytest.approx(cam.distance)
    eye = _gl(cam.modelview()) @ np.array([*pos, 1.0])
    assert np.allclose(eye[:3], 0.0, atol=1e-6)


def test_see_origin_but_not_behind_camera():
    cam = Camera()
    pos = cam.look(perspective(70, 1.0, 1.0, 100000.0))
    assert cam.see(0.0, 0.0, 0.0, 1.0) is True
    behind = tuple(3 * c for c in pos)
    assert cam.see(*behind, 1.0) is False


def test_see_before_look_raises():
    with pytest.raises(RuntimeError):
        Camera().see(0, 0, 0, 1)