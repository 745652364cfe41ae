"""Hierarchical scene of transforms with attached drawables, cameras and lights."""

from __future__ import annotations

import dataclasses
import logging
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, BinaryIO, Callable, Optional

import numpy as np

from .chunks import read_chunk

logger = logging.getLogger(__name__)

_NO_PARENT = 0xFFFFFFFF
_PI = 3.1415926

_HIERARCHY_FORMAT = "III3f4f3f"
_MESH_FORMAT = "III"
_CAMERA_FORMAT = "I4sfff"
_LIGHT_FORMAT = "Ic3Bfff"


class SceneFormatError(ValueError):
    """Raised when a scene file is malformed."""


# ---------------------------------------------------------------- math helpers
# Quaternions are stored as (w, x, y, z).


def quat_to_mat3(q) -> np.ndarray:
    """Rotation matrix for quaternion ``q``."""
    w, x, y, z = (float(c) for c in q)
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def quat_multiply(a, b) -> np.ndarray:
    """Hamilton product ``a * b``."""
    aw, ax, ay, az = (float(c) for c in a)
    bw, bx, by, bz = (float(c) for c in b)
    return np.array(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ]
    )


def quat_inverse(q) -> np.ndarray:
    """Multiplicative inverse of ``q``."""
    q = np.asarray(q, dtype=float)
    return np.array([q[0], -q[1], -q[2], -q[3]]) / float(np.dot(q, q))


def quat_rotate(q, v) -> np.ndarray:
    """Rotate vector ``v`` by unit quaternion ``q``."""
    q = np.asarray(q, dtype=float)
    v = np.asarray(v, dtype=float)
    axis = q[1:]
    uv = np.cross(axis, v)
    uuv = np.cross(axis, uv)
    return v + (uv * q[0] + uuv) * 2.0


def angle_axis(angle: float, axis) -> np.ndarray:
    """Quaternion rotating by ``angle`` radians around ``axis``."""
    half = 0.5 * angle
    return np.concatenate(([math.cos(half)], np.asarray(axis, dtype=float) * math.sin(half)))


def infinite_perspective(fovy: float, aspect: float, near: float) -> np.ndarray:
    """Right-handed perspective projection with an infinitely distant far plane."""
    extent = math.tan(fovy / 2.0) * near
    projection = np.zeros((4, 4))
    projection[0, 0] = near / (extent * aspect)
    projection[1, 1] = near / extent
    projection[2, 2] = -1.0
    projection[3, 2] = -1.0
    projection[2, 3] = -2.0 * near
    return projection


def _pad(matrix: np.ndarray) -> np.ndarray:
    return np.vstack([matrix, [0.0, 0.0, 0.0, 1.0]])


# ---------------------------------------------------------------- scene parts


@dataclass(eq=False)
class Transform:
    """Position, rotation and scale, optionally relative to a parent."""

    name: str = ""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    parent: Optional["Transform"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float)
        self.rotation = np.asarray(self.rotation, dtype=float)
        self.scale = np.asarray(self.scale, dtype=float)

    def make_local_to_parent(self) -> np.ndarray:
        """3x4 matrix: translate * rotate * scale."""
        rot = quat_to_mat3(self.rotation) * self.scale
        return np.column_stack([rot, self.position])

    def make_parent_to_local(self) -> np.ndarray:
        """3x4 matrix: inverse scale * inverse rotate * inverse translate."""
        inv_scale = np.array([0.0 if s == 0.0 else 1.0 / s for s in self.scale])
        inv_rot = quat_to_mat3(quat_inverse(self.rotation)) * inv_scale[:, None]
        return np.column_stack([inv_rot, inv_rot @ -self.position])

    def make_local_to_world(self) -> np.ndarray:
        if self.parent is None:
            return self.make_local_to_parent()
        return self.parent.make_local_to_world() @ _pad(self.make_local_to_parent())

    def make_world_to_local(self) -> np.ndarray:
        if self.parent is None:
            return self.make_parent_to_local()
        return self.make_parent_to_local() @ _pad(self.parent.make_world_to_local())


@dataclass(eq=False)
class Drawable:
    """Rendering data attached to a transform."""

    transform: Transform
    pipeline: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class Camera:
    """Perspective camera looking along the -z axis of its transform."""

    transform: Transform
    fovy: float = math.radians(60.0)
    aspect: float = 1.0
    near: float = 0.01

    def make_projection(self) -> np.ndarray:
        return infinite_perspective(self.fovy, self.aspect, self.near)


class LightType(Enum):
    POINT = "p"
    HEMISPHERE = "h"
    SPOT = "s"
    DIRECTIONAL = "d"


@dataclass(eq=False)
class Light:
    """Light attached to a transform; directed lights point along -z."""

    transform: Transform
    type: LightType = LightType.POINT
    energy: np.ndarray = field(default_factory=lambda: np.ones(3))
    spot_fov: float = math.radians(45.0)


OnDrawable = Callable[["Scene", Transform, str], None]


class Scene:
    """Collections of transforms, drawables, cameras and lights."""

    def __init__(self) -> None:
        self.transforms: list[Transform] = []
        self.drawables: list[Drawable] = []
        self.cameras: list[Camera] = []
        self.lights: list[Light] = []
        self.name_table: bytes = b""
        self.loaded_transforms: list[Transform] = []

    def load(self, path, on_drawable: Optional[OnDrawable] = None) -> None:
        """Add the contents of a scene file to this scene."""
        filename = os.fspath(path)
        with open(filename, "rb") as stream:
            names = b"".join(record[0] for record in read_chunk(stream, "str0", "c"))
            hierarchy = read_chunk(stream, "xfh0", _HIERARCHY_FORMAT)
            meshes = read_chunk(stream, "msh0", _MESH_FORMAT)
            cameras = read_chunk(stream, "cam0", _CAMERA_FORMAT)
            lights = read_chunk(stream, "lmp0", _LIGHT_FORMAT)

            def name_at(begin: int, end: int) -> Optional[str]:
                if begin <= end <= len(names):
                    return names[begin:end].decode("utf-8", errors="replace")
                return None

            loaded: list[Transform] = []
            for entry in hierarchy:
                parent_index, begin, end = entry[:3]
                transform = Transform()
                self.transforms.append(transform)
                if parent_index != _NO_PARENT:
                    if parent_index >= len(loaded):
                        raise SceneFormatError(
                            f"scene file '{filename}' did not contain transforms "
                            "in topological-sort order."
                        )
                    transform.parent = loaded[parent_index]
                name = name_at(begin, end)
                if name is None:
                    raise SceneFormatError(
                        f"scene file '{filename}' contains hierarchy entry with invalid name indices"
                    )
                transform.name = name
                transform.position = np.array(entry[3:6], dtype=float)
                x, y, z, w = entry[6:10]
                transform.rotation = np.array([w, x, y, z], dtype=float)
                transform.scale = np.array(entry[10:13], dtype=float)
                loaded.append(transform)

            for index, begin, end in meshes:
                if index >= len(loaded):
                    raise SceneFormatError(
                        f"scene file '{filename}' contains mesh entry with invalid "
                        f"transform index ({index})"
                    )
                name = name_at(begin, end)
                if name is None:
                    raise SceneFormatError(
                        f"scene file '{filename}' contains mesh entry with invalid name indices"
                    )
                if on_drawable is not None:
                    on_drawable(self, loaded[index], name)

            for index, kind, data, clip_near, _clip_far in cameras:
                if index >= len(loaded):
                    raise SceneFormatError(
                        f"scene file '{filename}' contains camera entry with invalid "
                        f"transform index ({index})"
                    )
                if kind != b"pers":
                    logger.info(
                        "Ignoring non-perspective camera (%s) stored in file.",
                        kind.decode("latin-1"),
                    )
                    continue
                # Far plane is unused: projections are infinite.
                self.cameras.append(
                    Camera(loaded[index], fovy=data / 180.0 * _PI, near=clip_near)
                )

            known_types = {t.value for t in LightType}
            for index, kind, red, green, blue, energy, _distance, fov in lights:
                if index >= len(loaded):
                    raise SceneFormatError(
                        f"scene file '{filename}' contains lamp entry with invalid "
                        f"transform index ({index})"
                    )
                code = kind.decode("latin-1")
                if code not in known_types:
                    logger.info("Ignoring unrecognized lamp type (%s) stored in file.", code)
                    continue
                self.lights.append(
                    Light(
                        loaded[index],
                        type=LightType(code),
                        energy=np.array([red, green, blue], dtype=float) / 255.0 * energy,
                        spot_fov=fov / 180.0 * _PI,
                    )
                )

            self.load_extra(stream, names, loaded)

            if stream.read(1):
                logger.warning("trailing data in scene file '%s'", filename)

    def load_extra(self, stream: BinaryIO, names: bytes, transforms: list[Transform]) -> None:
        """Hook for reading further chunks; by default keeps the string table and hierarchy.

        Subclasses may override this to read extra chunks from ``stream``.
        """
        self.name_table = bytes(names)
        self.loaded_transforms = list(transforms)

    def set(self, other: "Scene") -> dict[Optional[Transform], Optional[Transform]]:
        """Replace contents with a copy of ``other``; return the old-to-new transform map."""
        mapping: dict[Optional[Transform], Optional[Transform]] = {None: None}
        transforms = []
        for old in other.transforms:
            new = Transform(
                name=old.name,
                position=old.position.copy(),
                rotation=old.rotation.copy(),
                scale=old.scale.copy(),
                parent=old.parent,
            )
            transforms.append(new)
            mapping[old] = new
        for new in transforms:
            new.parent = mapping[new.parent]

        self.transforms = transforms
        self.drawables = [
            Drawable(mapping[d.transform], dict(d.pipeline)) for d in other.drawables
        ]
        self.cameras = [
            dataclasses.replace(c, transform=mapping[c.transform]) for c in other.cameras
        ]
        self.lights = [
            dataclasses.replace(l, transform=mapping[l.transform], energy=l.energy.copy())
            for l in other.lights
        ]
        return mapping

    def copy(self) -> "Scene":
        """Independent copy with all references pointing into the copy."""
        duplicate = type(self)()
        duplicate.set(self)
        return duplicate


def load_scene(path, on_drawable: Optional[OnDrawable] = None) -> Scene:
    """Create a scene from a scene file."""
    scene = Scene()
    scene.load(path, on_drawable)
    return scene