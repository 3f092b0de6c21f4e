import numpy as np
import pygame
import pytest
from unittest import mock

import lidview.viewer as viewer_module
from lidview.camera import perspective
from lidview.cursors import cursor_from_xpm
from lidview.drawer import BUDGET_STEP, Attribute, Drawer, Frame


def _data():
    rng = np.random.default_rng(7)
    n = 60
    return {
        "X": rng.uniform(0, 100, n),
        "Y": rng.uniform(0, 100, n),
        "Z": rng.uniform(0, 20, n),
        "Intensity": rng.integers(0, 500, n),
        "Classification": rng.integers(0, 10, n),
    }


@pytest.fixture
def controller():
    return viewer_module._Controller(Drawer(_data()))


@pytest.fixture
def clean_session():
    viewer_module._running.clear()
    yield
    viewer_module._running.clear()


def _key(kind, key):
    return pygame.event.Event(kind, key=key)


def _frame(points, colors, point_size=1.0, lightning=False, axes=None, boxes=None):
    modelview = [1.0, 0, 0, 0, 0, 1.0, 0, 0, 0, 0, 1.0, 0, 0, 0, -10.0, 1.0]
    return Frame(
        points=np.asarray(points, dtype=np.float32).reshape(-1, 3),
        colors=np.asarray(colors, dtype=np.uint8).reshape(-1, 3),
        projection=perspective(70, 1.0, 1.0, 100.0),
        modelview=tuple(modelview),
        point_size=point_size,
        lightning=lightning,
        boxes=boxes or [],
        axes=axes or [],
    )


def test_keys_select_attribute(controller):
    controller.handle(_key(pygame.KEYDOWN, pygame.K_c))
    assert controller.drawer.attribute == Attribute.CLASS
    controller.handle(_key(pygame.KEYDOWN, pygame.K_i))
    assert controller.drawer.attribute == Attribute.I
    controller.handle(_key(pygame.KEYDOWN, pygame.K_z))
    assert controller.drawer.attribute == Attribute.Z


def test_rgb_key_without_colours_falls_back_to_z(controller):
    controller.handle(_key(pygame.KEYDOWN, pygame.K_r))
    assert controller.drawer.attribute == Attribute.Z


def test_toggles_and_point_size(controller):
    drawer = controller.drawer
    index_before, edl_before, size_before = drawer.draw_index, drawer.lightning, drawer.point_size
    controller.handle(_key(pygame.KEYDOWN, pygame.K_q))
    controller.handle(_key(pygame.KEYDOWN, pygame.K_l))
    controller.handle(_key(pygame.KEYDOWN, pygame.K_p))
    controller.handle(_key(pygame.KEYDOWN, pygame.K_KP_PLUS))
    assert drawer.draw_index is (not index_before)
    assert drawer.lightning is (not edl_before)
    assert drawer.point_size == size_before + 2
    controller.handle(_key(pygame.KEYDOWN, pygame.K_m))
    assert drawer.point_size == size_before + 1


@pytest.mark.parametrize("event", [
    pygame.event.Event(pygame.QUIT),
    pygame.event.Event(pygame.KEYDOWN, key=pygame.K_ESCAPE),
])
def test_quit_events_stop_the_loop(controller, event):
    assert controller.running is True
    controller.handle(event)
    assert controller.running is False


def test_ctrl_wheel_changes_budget(controller):
    drawer = controller.drawer
    budget = drawer.point_budget
    controller.handle(_key(pygame.KEYDOWN, pygame.K_LCTRL))
    controller.handle(pygame.event.Event(pygame.MOUSEWHEEL, x=0, y=1))
    assert drawer.point_budget == budget + BUDGET_STEP
    controller.handle(pygame.event.Event(pygame.MOUSEWHEEL, x=0, y=-1))
    assert drawer.point_budget == budget
    controller.handle(_key(pygame.KEYUP, pygame.K_LCTRL))
    assert controller.ctrl_pressed is False


def test_wheel_without_ctrl_zooms(controller):
    camera = controller.drawer.camera
    distance, step = camera.distance, camera.zoom_sensitivity
    budget = controller.drawer.point_budget
    controller.handle(pygame.event.Event(pygame.MOUSEWHEEL, x=0, y=1))
    assert camera.distance == pytest.approx(distance + step)
    assert controller.drawer.point_budget == budget


def test_mouse_buttons_set_mode_and_cursor(controller):
    down_left = pygame.event.Event(pygame.MOUSEBUTTONDOWN, button=1, pos=(0, 0))
    down_right = pygame.event.Event(pygame.MOUSEBUTTONDOWN, button=3, pos=(0, 0))
    up_left = pygame.event.Event(pygame.MOUSEBUTTONUP, button=1, pos=(0, 0))
    assert controller.handle(down_left) == "hand2"
    assert controller.rotating is True
    assert controller.handle(down_right) == "move"
    assert controller.panning is True
    assert controller.handle(up_left) == "hand1"
    assert controller.rotating is False


def test_motion_rotates_only_while_button_held(controller):
    camera = controller.drawer.camera
    motion = pygame.event.Event(pygame.MOUSEMOTION, rel=(10, 0), pos=(0, 0), buttons=(1, 0, 0))
    angle = camera.angle_z
    controller.handle(motion)
    assert camera.angle_z == angle
    controller.handle(pygame.event.Event(pygame.MOUSEBUTTONDOWN, button=1, pos=(0, 0)))
    controller.handle(motion)
    assert camera.angle_z == pytest.approx(angle + 10 * camera.rotate_sensitivity)


def test_resize_event_resizes_drawer(controller):
    controller.handle(pygame.event.Event(pygame.VIDEORESIZE, w=800, h=400, size=(800, 400)))
    assert (controller.drawer.width, controller.drawer.height) == (800, 400)


def test_single_point_lands_in_centre():
    image, depth = viewer_module._rasterize(_frame([(0, 0, 0)], [(10, 20, 30)]), 10, 10)
    assert tuple(image[5, 5]) == (10, 20, 30)
    assert np.count_nonzero(image.any(axis=2)) == 1
    assert depth[5, 5] < 1.0
    assert np.count_nonzero(depth < 1.0) == 1


def test_point_size_grows_splat():
    image, _ = viewer_module._rasterize(_frame([(0, 0, 0)], [(10, 20, 30)], point_size=3), 10, 10)
    assert np.count_nonzero(image.any(axis=2)) == 9


def test_nearest_point_wins():
    frame = _frame([(0, 0, -5), (0, 0, 2)], [(200, 0, 0), (0, 200, 0)])
    image, _ = viewer_module._rasterize(frame, 10, 10)
    assert tuple(image[5, 5]) == (0, 200, 0)


def test_points_behind_camera_are_not_drawn():
    image, depth = viewer_module._rasterize(_frame([(0, 0, 20)], [(10, 20, 30)]), 10, 10)
    assert not image.any()
    assert np.all(depth == 1.0)


def test_segments_for_axes_and_boxes():
    axes = [((0, 0, 0), (1, 0, 0), (1.0, 0.0, 0.0))]
    frame = _frame([], [], axes=axes, boxes=[(0.0, 0.0, 0.0, 1.0)])
    segments = viewer_module._segments(frame, 10, 10)
    assert len(segments) == 13
    assert segments[0][2] == (255, 0, 0)
    assert segments[0][0] == pytest.approx((5.0, 5.0))
    assert all(color == (255, 255, 255) for _, _, color in segments[1:])


def test_cursor_images_parse():
    for xpm in viewer_module._CURSOR_XPM.values():
        cursor = cursor_from_xpm(xpm)
        assert cursor.size == (16, 16)
        assert cursor.hotspot == (0, 0)
        assert len(cursor.data) == len(cursor.mask) == 32


def test_detached_viewer_allows_one_window(clean_session):
    with mock.patch("threading.Thread") as thread_cls:
        viewer_module.viewer(_data(), True, "")
        assert thread_cls.return_value.start.call_count == 1
        with pytest.raises(RuntimeError):
            viewer_module.viewer(_data(), True, "")
        assert thread_cls.return_value.start.call_count == 1


def test_load_points_round_trip(tmp_path):
    path = tmp_path / "cloud.csv"
    path.write_text("X,Y,Z,Intensity\n1.5,2,3,40\n4,5.25,6,50\n")
    data = viewer_module._load_points(path)
    assert set(data) == {"X", "Y", "Z", "Intensity"}
    np.testing.assert_allclose(data["X"], [1.5, 4])
    np.testing.assert_allclose(data["Y"], [2, 5.25])
    np.testing.assert_allclose(data["Intensity"], [40, 50])


def test_load_points_single_row(tmp_path):
    path = tmp_path / "one.csv"
    path.write_text("X,Y,Z\n1,2,3\n")
    data = viewer_module._load_points(path)
    np.testing.assert_allclose(data["Z"], [3])


def test_load_points_missing_column(tmp_path):
    path = tmp_path / "flat.csv"
    path.write_text("X,Y\n1,2\n")
    with pytest.raises(ValueError):
        viewer_module._load_points(path)


def test_main_rejects_missing_columns(tmp_path):
    path = tmp_path / "flat.csv"
    path.write_text("X,Y\n1,2\n")
    with pytest.raises(SystemExit) as info:
        viewer_module.main([str(path)])
    assert info.value.code == 2


def test_main_rejects_missing_file(tmp_path):
    with pytest.raises(SystemExit) as info:
        viewer_module.main([str(tmp_path / "absent.csv")])
    assert info.value.code == 2