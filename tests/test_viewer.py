import math

import numpy as np
import pytest

from brunchrat.viewer import MeshInfo, MeshSelector, OrbitCamera


def _meshes():
    return {
        "b": MeshInfo(start=3, count=6, min=(0, 0, 0), max=(1, 1, 1)),
        "a": MeshInfo(start=0, count=3, min=(-1, -1, -1), max=(0, 0, 0)),
        "c": MeshInfo(start=9, count=12, min=(2, 2, 2), max=(3, 3, 3)),
    }


def test_begin_drag_sets_flip_when_upside_down():
    camera = OrbitCamera(elevation=2.0)
    camera.begin_drag()
    assert camera.flip_x is True
    camera.elevation = 0.2
    camera.begin_drag()
    assert camera.flip_x is False


def test_zoom_round_trip_restores_radius():
    camera = OrbitCamera()
    camera.zoom(3)
    assert camera.radius < 2.0
    camera.zoom(-3)
    assert camera.radius == pytest.approx(2.0)


def test_zoom_ten_steps_halves_radius():
    camera = OrbitCamera(radius=4.0)
    camera.zoom(10)
    assert camera.radius == pytest.approx(2.0)


def test_zoom_clamps():
    camera = OrbitCamera()
    camera.zoom(1000)
    assert camera.radius == pytest.approx(1e-1)
    camera.zoom(-100000)
    assert camera.radius == pytest.approx(1e6)


def test_tumble_flip_reverses_azimuth_change():
    plain = OrbitCamera()
    flipped = OrbitCamera(flip_x=True)
    plain.drag(10, 0, (800, 600))
    flipped.drag(10, 0, (800, 600))
    assert plain.azimuth - 0.3 == pytest.approx(-(flipped.azimuth - 0.3))
    assert plain.azimuth != pytest.approx(0.3)


def test_tumble_keeps_angles_wrapped():
    camera = OrbitCamera()
    for _ in range(50):
        camera.drag(173, -91, (640, 480))
        assert -math.pi - 1e-6 <= camera.azimuth <= math.pi + 1e-6
        assert -math.pi - 1e-6 <= camera.elevation <= math.pi + 1e-6


def test_shift_pan_moves_target_perpendicular_to_view():
    camera = OrbitCamera()
    forward = camera.camera_position() - camera.target
    camera.drag(40, 25, (800, 600), shift=True)
    moved = camera.target
    assert np.linalg.norm(moved) > 0.0
    assert float(np.dot(moved, forward)) == pytest.approx(0.0, abs=1e-9)
    assert camera.azimuth == pytest.approx(0.3)
    assert camera.elevation == pytest.approx(0.2)


def test_camera_distance_equals_radius():
    camera = OrbitCamera(radius=5.0, azimuth=1.1, elevation=-0.4, target=(1.0, 2.0, 3.0))
    distance = np.linalg.norm(camera.camera_position() - camera.target)
    assert distance == pytest.approx(5.0)
    assert np.linalg.norm(camera.camera_rotation()) == pytest.approx(1.0)


def test_camera_at_zero_angles_sits_on_negative_y():
    camera = OrbitCamera(azimuth=0.0, elevation=0.0)
    assert camera.camera_position() == pytest.approx([0.0, -2.0, 0.0], abs=1e-6)


def test_selector_starts_on_first_and_steps_forward():
    selector = MeshSelector(_meshes())
    assert selector.current_name == "a"
    assert selector.select_next() == "b"
    assert selector.current_start == 3
    assert selector.current_count == 6
    assert selector.select_next() == "c"
    assert selector.select_next() == "c"
    assert selector.current_max == pytest.approx([3, 3, 3])


def test_selector_steps_back_and_stays_on_first():
    selector = MeshSelector(_meshes())
    selector.select_next()
    selector.select_next()
    assert selector.select_prev() == "b"
    assert selector.select_prev() == "a"
    assert selector.select_prev() == "a"
    assert selector.current_min == pytest.approx([-1, -1, -1])


def test_selector_unknown_name_next_goes_to_last():
    selector = MeshSelector(_meshes())
    selector.current_name = "missing"
    assert selector.select_next() == "c"
    assert selector.current is selector.meshes["c"]


def test_selector_empty():
    selector = MeshSelector({})
    assert selector.current_name == ""
    assert selector.current_count == 0
    assert selector.select_next() == ""
    assert selector.current is None