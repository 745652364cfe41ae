import logging
import math

import numpy as np
import pytest

from brunchrat.chunks import ChunkError, write_chunk
from brunchrat.scene import (
    Camera,
    Drawable,
    Light,
    LightType,
    Scene,
    SceneFormatError,
    Transform,
    angle_axis,
    infinite_perspective,
    load_scene,
    quat_inverse,
    quat_multiply,
    quat_rotate,
    quat_to_mat3,
)

NO_PARENT = 0xFFFFFFFF


def pad(m):
    return np.vstack([m, [0.0, 0.0, 0.0, 1.0]])


def entry(parent, begin, end, position=(0, 0, 0), rotation_xyzw=(0, 0, 0, 1), scale=(1, 1, 1)):
    return (parent, begin, end, *position, *rotation_xyzw, *scale)


def write_scene(path, names, hierarchy, meshes=(), cameras=(), lights=(), trailing=b""):
    with open(path, "wb") as f:
        write_chunk(f, "str0", "c", [(bytes([b]),) for b in names])
        write_chunk(f, "xfh0", "III3f4f3f", hierarchy)
        write_chunk(f, "msh0", "III", meshes)
        write_chunk(f, "cam0", "I4sfff", cameras)
        write_chunk(f, "lmp0", "Ic3Bfff", lights)
        f.write(trailing)
    return path


@pytest.fixture
def scene_file(tmp_path):
    names = b"RootChildCam"
    hierarchy = [
        entry(NO_PARENT, 0, 4, position=(1.5, 0, 0)),
        entry(0, 4, 9, position=(0, 2, 0), rotation_xyzw=(0.0, 0.0, 0.6, 0.8), scale=(2, 2, 2)),
        entry(NO_PARENT, 9, 12),
    ]
    meshes = [(1, 4, 9), (0, 0, 4)]
    cameras = [(2, b"pers", 60.0, 0.5, 100.0)]
    lights = [(0, b"s", 255, 255, 255, 2.0, 10.0, 90.0)]
    return write_scene(tmp_path / "a.scene", names, hierarchy, meshes, cameras, lights)


def test_load_hierarchy(scene_file):
    scene = load_scene(scene_file)
    names = [t.name for t in scene.transforms]
    assert names == ["Root", "Child", "Cam"]
    root, child, cam = scene.transforms
    assert root.parent is None
    assert child.parent is root
    assert cam.parent is None
    assert np.allclose(root.position, [1.5, 0, 0])
    assert np.allclose(child.rotation, [0.8, 0.0, 0.0, 0.6])
    assert np.allclose(child.scale, [2, 2, 2])


def test_load_calls_on_drawable_in_order(scene_file):
    seen = []

    def on_drawable(scene, transform, name):
        seen.append((transform.name, name))
        scene.drawables.append(Drawable(transform, {"mesh": name}))

    scene = load_scene(scene_file, on_drawable)
    assert seen == [("Child", "Child"), ("Root", "Root")]
    assert [d.pipeline["mesh"] for d in scene.drawables] == ["Child", "Root"]


def test_load_camera_and_light(scene_file):
    scene = load_scene(scene_file)
    assert len(scene.cameras) == 1
    camera = scene.cameras[0]
    assert camera.transform is scene.transforms[2]
    assert camera.fovy == pytest.approx(math.radians(60.0), rel=1e-6)
    assert camera.near == pytest.approx(0.5)
    light = scene.lights[0]
    assert light.type is LightType.SPOT
    assert np.allclose(light.energy, [2.0, 2.0, 2.0])
    assert light.spot_fov == pytest.approx(math.radians(90.0), rel=1e-6)


def test_load_appends(scene_file):
    scene = Scene()
    scene.load(scene_file)
    scene.load(scene_file)
    assert len(scene.transforms) == 6
    assert scene.transforms[4].parent is scene.transforms[3]


def test_ignores_orthographic_camera_and_unknown_lamp(tmp_path):
    path = write_scene(
        tmp_path / "b.scene",
        b"A",
        [entry(NO_PARENT, 0, 1)],
        cameras=[(0, b"orth", 1.0, 0.1, 10.0)],
        lights=[(0, b"x", 1, 2, 3, 1.0, 1.0, 1.0), (0, b"d", 0, 0, 0, 1.0, 1.0, 1.0)],
    )
    scene = load_scene(path)
    assert scene.cameras == []
    assert [l.type for l in scene.lights] == [LightType.DIRECTIONAL]


def test_trailing_data_warns(tmp_path, caplog):
    path = write_scene(tmp_path / "c.scene", b"A", [entry(NO_PARENT, 0, 1)], trailing=b"junk")
    with caplog.at_level(logging.WARNING):
        scene = load_scene(path)
    assert len(scene.transforms) == 1
    assert "trailing data" in caplog.text


def test_parent_out_of_order(tmp_path):
    path = write_scene(tmp_path / "d.scene", b"AB", [entry(1, 0, 1), entry(NO_PARENT, 1, 2)])
    with pytest.raises(SceneFormatError, match="topological"):
        load_scene(path)


def test_invalid_name_indices(tmp_path):
    path = write_scene(tmp_path / "e.scene", b"AB", [entry(NO_PARENT, 1, 5)])
    with pytest.raises(SceneFormatError, match="name indices"):
        load_scene(path)


@pytest.mark.parametrize(
    "kwargs, pattern",
    [
        ({"meshes": [(3, 0, 1)]}, "mesh entry"),
        ({"meshes": [(0, 2, 1)]}, "mesh entry with invalid name"),
        ({"cameras": [(5, b"pers", 60.0, 0.1, 1.0)]}, "camera entry"),
        ({"lights": [(5, b"p", 0, 0, 0, 1.0, 1.0, 1.0)]}, "lamp entry"),
    ],
)
def test_invalid_indices(tmp_path, kwargs, pattern):
    path = write_scene(tmp_path / "f.scene", b"A", [entry(NO_PARENT, 0, 1)], **kwargs)
    with pytest.raises(SceneFormatError, match=pattern):
        load_scene(path)


def test_truncated_file(tmp_path):
    path = tmp_path / "g.scene"
    with open(path, "wb") as f:
        write_chunk(f, "str0", "c", [(b"A",)])
    with pytest.raises(ChunkError):
        load_scene(path)


def test_default_transform_is_identity():
    t = Transform()
    assert np.allclose(t.make_local_to_parent(), np.eye(3, 4))
    assert np.allclose(t.make_world_to_local(), np.eye(3, 4))


def test_parent_to_local_inverts_local_to_parent():
    t = Transform(
        position=[1.0, -2.0, 3.0],
        rotation=angle_axis(0.7, [0.0, 0.6, 0.8]),
        scale=[2.0, 0.5, 3.0],
    )
    assert np.allclose(pad(t.make_parent_to_local()) @ pad(t.make_local_to_parent()), np.eye(4))


def test_world_chain_inverts():
    root = Transform(position=[1.0, 0.0, 0.0], rotation=angle_axis(0.3, [0, 0, 1]))
    child = Transform(position=[0.0, 2.0, 0.0], scale=[2, 2, 2], parent=root)
    grandchild = Transform(rotation=angle_axis(1.1, [1, 0, 0]), parent=child)
    product = pad(grandchild.make_world_to_local()) @ pad(grandchild.make_local_to_world())
    assert np.allclose(product, np.eye(4))


def test_world_translation_without_rotation():
    root = Transform(position=[1.0, 0.0, 0.0])
    child = Transform(position=[0.0, 2.0, 0.0], parent=root)
    assert np.allclose(child.make_local_to_world()[:, 3], root.position + child.position)


def test_zero_scale_gives_finite_matrix():
    t = Transform(scale=[0.0, 1.0, 1.0], position=[1.0, 1.0, 1.0])
    m = t.make_parent_to_local()
    assert np.all(np.isfinite(m))
    assert np.allclose(m[0, :3], 0.0)


def test_quaternion_inverse_product_is_identity():
    q = angle_axis(1.3, [0.0, 0.6, 0.8])
    assert np.allclose(quat_multiply(q, quat_inverse(q)), [1.0, 0.0, 0.0, 0.0])


def test_quat_rotate_matches_matrix():
    q = angle_axis(0.9, [0.8, 0.0, 0.6])
    v = np.array([0.3, -1.2, 2.0])
    assert np.allclose(quat_rotate(q, v), quat_to_mat3(q) @ v)


def test_rotation_matrix_is_orthonormal():
    r = quat_to_mat3(angle_axis(2.1, [0.0, 0.6, 0.8]))
    assert np.allclose(r @ r.T, np.eye(3))
    assert np.linalg.det(r) == pytest.approx(1.0)


def test_angle_axis_composes():
    z = [0.0, 0.0, 1.0]
    combined = quat_multiply(angle_axis(0.4, z), angle_axis(0.5, z))
    assert np.allclose(combined, angle_axis(0.9, z))


def test_quarter_turn_about_z():
    assert np.allclose(quat_rotate(angle_axis(math.pi / 2, [0, 0, 1]), [1, 0, 0]), [0, 1, 0])


def test_projection_near_plane_and_fov_edge():
    fovy, aspect, near = math.radians(50.0), 1.5, 0.2
    p = infinite_perspective(fovy, aspect, near)
    clip = p @ np.array([0.0, 0.0, -near, 1.0])
    assert clip[2] / clip[3] == pytest.approx(-1.0)
    depth = 7.0
    edge = p @ np.array([0.0, math.tan(fovy / 2) * depth, -depth, 1.0])
    assert edge[1] / edge[3] == pytest.approx(1.0)
    side = p @ np.array([math.tan(fovy / 2) * depth * aspect, 0.0, -depth, 1.0])
    assert side[0] / side[3] == pytest.approx(1.0)


def test_camera_projection_uses_fields():
    cam = Camera(Transform(), fovy=0.8, aspect=2.0, near=0.3)
    assert np.allclose(cam.make_projection(), infinite_perspective(0.8, 2.0, 0.3))


def test_copy_remaps_references(scene_file):
    scene = load_scene(
        scene_file, lambda s, t, n: s.drawables.append(Drawable(t, {"mesh": n}))
    )
    duplicate = scene.copy()
    assert [t.name for t in duplicate.transforms] == [t.name for t in scene.transforms]
    assert duplicate.transforms[1].parent is duplicate.transforms[0]
    assert all(d.transform in duplicate.transforms for d in duplicate.drawables)
    assert duplicate.cameras[0].transform is duplicate.transforms[2]
    assert duplicate.lights[0].transform is duplicate.transforms[0]
    assert duplicate.drawables[0].pipeline == {"mesh": "Child"}


def test_copy_is_independent(scene_file):
    scene = load_scene(scene_file)
    duplicate = scene.copy()
    duplicate.transforms[0].position[0] = 99.0
    duplicate.lights[0].energy[0] = 0.0
    assert scene.transforms[0].position[0] == pytest.approx(1.5)
    assert scene.lights[0].energy[0] == pytest.approx(2.0)


def test_set_returns_mapping():
    source = Scene()
    root = Transform(name="r")
    source.transforms.append(root)
    source.lights.append(Light(root))
    target = Scene()
    target.transforms.append(Transform(name="old"))
    mapping = target.set(source)
    assert mapping[None] is None
    assert mapping[root] is target.transforms[0]
    assert [t.name for t in target.transforms] == ["r"]
    assert target.lights[0].transform is target.transforms[0]