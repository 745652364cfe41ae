"""Orbit camera controls and mesh selection used by the scene and mesh viewers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import numpy as np

from .scene import angle_axis, quat_multiply, quat_rotate, quat_to_mat3

GL_TRIANGLES = 0x0004
_PI = 3.1415926
_MIN_RADIUS = 1e-1
_MAX_RADIUS = 1e6


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def _wrap_angle(angle: float) -> float:
    """Wrap ``angle`` into [-pi, pi]."""
    turns = angle / (2.0 * _PI)
    turns -= _round_half_away(turns)
    return turns * 2.0 * _PI


@dataclass
class OrbitCamera:
    """Z-up trackball-style camera orbiting a target point.

    ``azimuth`` is the angle counter-clockwise of the -y axis and
    ``elevation`` the angle above the ground, both in radians.
    """

    radius: float = 2.0
    azimuth: float = 0.3
    elevation: float = 0.2
    target: np.ndarray = field(default_factory=lambda: np.zeros(3))
    flip_x: bool = False

    def __post_init__(self) -> None:
        self.target = np.asarray(self.target, dtype=float)

    def begin_drag(self) -> None:
        """Start a drag; horizontal motion is reversed when the camera is upside-down."""
        self.flip_x = abs(self.elevation) > 0.5 * _PI

    def drag(
        self,
        dx: float,
        dy: float,
        window_size: Sequence[float],
        shift: bool = False,
        camera_rotation: Optional[Sequence[float]] = None,
    ) -> None:
        """Apply a mouse drag of (dx, dy) pixels: pan with shift, otherwise tumble."""
        width, height = (float(v) for v in window_size)
        delta_x = dx / width * 2.0 * (height / width)
        delta_y = dy / height * -2.0

        if shift:
            rotation = self.camera_rotation() if camera_rotation is None else camera_rotation
            frame = quat_to_mat3(rotation)
            self.target = self.target - (
                frame[:, 0] * (delta_x * self.radius) + frame[:, 1] * (delta_y * self.radius)
            )
        else:
            self.azimuth -= 3.0 * delta_x * (-1.0 if self.flip_x else 1.0)
            self.elevation -= 3.0 * delta_y
            self.azimuth = _wrap_angle(self.azimuth)
            self.elevation = _wrap_angle(self.elevation)

    def zoom(self, wheel_y: float) -> None:
        """Dolly toward or away from the target by mouse-wheel steps."""
        self.radius *= math.pow(0.5, 0.1 * wheel_y)
        self.radius = min(max(self.radius, _MIN_RADIUS), _MAX_RADIUS)

    def camera_rotation(self) -> np.ndarray:
        """Rotation quaternion (w, x, y, z) of the camera transform."""
        return quat_multiply(
            angle_axis(self.azimuth, (0.0, 0.0, 1.0)),
            angle_axis(0.5 * _PI - self.elevation, (1.0, 0.0, 0.0)),
        )

    def camera_position(self) -> np.ndarray:
        """World position of the camera."""
        return self.target + self.radius * quat_rotate(self.camera_rotation(), (0.0, 0.0, 1.0))


@dataclass
class MeshInfo:
    """Range of vertices making up one mesh, with its bounding box."""

    start: int = 0
    count: int = 0
    type: int = GL_TRIANGLES
    min: np.ndarray = field(default_factory=lambda: np.zeros(3))
    max: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.min = np.asarray(self.min, dtype=float)
        self.max = np.asarray(self.max, dtype=float)


class MeshSelector:
    """Steps through named meshes in name order; starts on the first one."""

    def __init__(self, meshes: Mapping[str, MeshInfo]) -> None:
        self.meshes = dict(meshes)
        self.current_name = ""
        self.current_type = GL_TRIANGLES
        self.current_start = 0
        self.current_count = 0
        self.current_min = np.zeros(3)
        self.current_max = np.zeros(3)
        self.select_prev()

    @property
    def current(self) -> Optional[MeshInfo]:
        return self.meshes.get(self.current_name)

    def _apply(self, name: Optional[str]) -> str:
        if name is None:
            self.current_name = ""
            self.current_type = GL_TRIANGLES
            self.current_start = 0
            self.current_count = 0
            self.current_min = np.zeros(3)
            self.current_max = np.zeros(3)
        else:
            mesh = self.meshes[name]
            self.current_name = name
            self.current_type = mesh.type
            self.current_start = mesh.start
            self.current_count = mesh.count
            self.current_min = mesh.min.copy()
            self.current_max = mesh.max.copy()
        return self.current_name

    def select_prev(self) -> str:
        """Select the mesh before the current one, staying on the first."""
        names = sorted(self.meshes)
        if not names:
            return self._apply(None)
        if self.current_name in self.meshes:
            index = max(names.index(self.current_name) - 1, 0)
        else:
            index = 0
        return self._apply(names[index])

    def select_next(self) -> str:
        """Select the mesh after the current one, staying on the last."""
        names = sorted(self.meshes)
        if not names:
            return self._apply(None)
        if self.current_name in self.meshes:
            index = min(names.index(self.current_name) + 1, len(names) - 1)
        else:
            index = len(names) - 1
        return self._apply(names[index])