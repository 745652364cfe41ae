"""Software audio mixer with 2D panning and 3D listener-relative positioning."""

from __future__ import annotations

import math
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np

from .audio_files import AUDIO_RATE, load_wav

MIX_SAMPLES = 1024
RAMP_STEP = MIX_SAMPLES / AUDIO_RATE
DEFAULT_RAMP = 1.0 / 60.0
_PI = 3.1415926


def _copy(value: Any) -> Any:
    if isinstance(value, (np.ndarray, list, tuple)):
        return np.array(value, dtype=float)
    return float(value)


class Sample:
    """Mono 48kHz floating-point audio."""

    def __init__(self, data: Sequence[float]) -> None:
        self.data = np.asarray(data, dtype=np.float32)

    def __len__(self) -> int:
        return len(self.data)


def load_sample(path) -> Sample:
    """Load a sample from a '.wav' file."""
    filename = os.fspath(path)
    if filename.endswith(".wav"):
        return Sample(load_wav(filename))
    raise ValueError(f"Sample '{filename}' doesn't end in \".wav\" -- unsure how to load.")


class Ramp:
    """A value that moves smoothly toward a target over a given time."""

    def __init__(self, value: Any) -> None:
        self.value = _copy(value)
        self.target = _copy(value)
        self.ramp = 0.0

    def set(self, value: Any, ramp: float) -> None:
        """Set a new target reached after ``ramp`` seconds (immediately if <= 0)."""
        if ramp <= 0.0:
            self.value = _copy(value)
            self.target = _copy(value)
            self.ramp = 0.0
        else:
            self.target = _copy(value)
            self.ramp = float(ramp)

    def __repr__(self) -> str:
        return f"Ramp(value={self.value!r}, target={self.target!r}, ramp={self.ramp!r})"


class PlayingSample:
    """Bookkeeping for a sample that is currently playing.

    A sample is in 2D mode (panned) when ``pan`` is given and in 3D mode
    (positioned relative to the listener) when ``position`` is given.
    """

    def __init__(
        self,
        sample: Sample,
        volume: float = 1.0,
        pan: Optional[float] = None,
        position: Optional[Sequence[float]] = None,
        half_volume_radius: float = math.inf,
        loop: bool = False,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        if (pan is None) == (position is None):
            raise ValueError("exactly one of pan or position must be given")
        self.data = sample.data
        self.i = 0
        self.loop = loop
        self.stopping = False
        self.stopped = False
        self.volume = Ramp(volume)
        if position is None:
            self.pan = Ramp(pan)
            self.position = Ramp(np.full(3, math.nan))
            self.half_volume_radius = Ramp(math.nan)
        else:
            self.pan = Ramp(math.nan)
            self.position = Ramp(position)
            self.half_volume_radius = Ramp(half_volume_radius)
        self._lock = lock if lock is not None else threading.RLock()

    @property
    def is_3d(self) -> bool:
        return math.isnan(self.pan.value)

    def set_volume(self, new_volume: float, ramp: float = DEFAULT_RAMP) -> None:
        with self._lock:
            if not self.stopping:
                self.volume.set(new_volume, ramp)

    def set_pan(self, new_pan: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change panning; ignored for samples in 3D mode."""
        if self.is_3d:
            return
        with self._lock:
            self.pan.set(new_pan, ramp)

    def set_position(self, new_position: Sequence[float], ramp: float = DEFAULT_RAMP) -> None:
        """Change position; ignored for samples in 2D mode."""
        if not self.is_3d:
            return
        with self._lock:
            self.position.set(new_position, ramp)

    def set_half_volume_radius(self, new_radius: float, ramp: float = DEFAULT_RAMP) -> None:
        """Change the distance at which volume halves; ignored in 2D mode."""
        if not self.is_3d:
            return
        with self._lock:
            self.half_volume_radius.set(new_radius, ramp)

    def stop(self, ramp: float = DEFAULT_RAMP) -> None:
        """Fade out over ``ramp`` seconds, then finish."""
        with self._lock:
            if not (self.stopping or self.stopped):
                self.stopping = True
                self.volume.target = 0.0
                self.volume.ramp = ramp
            else:
                self.volume.ramp = min(self.volume.ramp, ramp)


@dataclass
class Listener:
    """Position and right-pointing direction used to pan 3D samples."""

    position: Ramp = field(default_factory=lambda: Ramp(np.zeros(3)))
    right: Ramp = field(default_factory=lambda: Ramp(np.array([1.0, 0.0, 0.0])))
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def set_position_right(
        self,
        new_position: Sequence[float],
        new_right: Sequence[float],
        ramp: float = DEFAULT_RAMP,
    ) -> None:
        with self.lock:
            self.position.set(new_position, ramp)
            right = np.asarray(new_right, dtype=float)
            if not right.any():
                self.right.set(np.array([1.0, 0.0, 0.0]), ramp)
            else:
                self.right.set(right / np.linalg.norm(right), ramp)


# ---------------------------------------------------------------- helpers


def compute_pan_weights(pan: float) -> tuple[float, float]:
    """Equal-power (left, right) weights for pan in [-1, 1]."""
    pan = max(-1.0, min(1.0, pan))
    angle = 0.5 * _PI * (0.5 * (pan + 1.0))
    return math.cos(angle), math.sin(angle)


def compute_pan_from_listener_and_position(
    listener_position: Sequence[float],
    listener_right: Sequence[float],
    source_position: Sequence[float],
    source_half_radius: float,
) -> tuple[float, float]:
    """(left, right) weights for a source relative to the listener."""
    to = np.asarray(source_position, dtype=float) - np.asarray(listener_position, dtype=float)
    distance = float(np.linalg.norm(to))
    if distance == 0.0:
        return math.sqrt(2.0), math.sqrt(2.0)
    amount = float(np.dot(np.asarray(listener_right, dtype=float), to)) / distance
    angle = 0.5 * _PI * (0.5 * (amount + 1.0))
    attenuation = 1.0 / (1.0 + distance / source_half_radius)
    return math.cos(angle) * attenuation, math.sin(angle) * attenuation


def step_value_ramp(ramp: Ramp) -> None:
    """Advance a scalar ramp by one mix period."""
    if ramp.ramp < RAMP_STEP:
        ramp.value = ramp.target
        ramp.ramp = 0.0
    else:
        ramp.value += (RAMP_STEP / ramp.ramp) * (ramp.target - ramp.value)
        ramp.ramp -= RAMP_STEP


def step_position_ramp(ramp: Ramp) -> None:
    """Advance a position ramp by one mix period (linear interpolation)."""
    if ramp.ramp < RAMP_STEP:
        ramp.value = np.array(ramp.target, dtype=float)
        ramp.ramp = 0.0
    else:
        t = RAMP_STEP / ramp.ramp
        ramp.value = ramp.value + (ramp.target - ramp.value) * t
        ramp.ramp -= RAMP_STEP


def step_direction_ramp(ramp: Ramp) -> None:
    """Advance a unit-direction ramp by one mix period (rotating toward the target)."""
    if ramp.ramp < RAMP_STEP:
        ramp.value = np.array(ramp.target, dtype=float)
        ramp.ramp = 0.0
        return
    target = np.asarray(ramp.target, dtype=float)
    value = np.asarray(ramp.value, dtype=float)
    norm = np.cross(value, target)
    if not norm.any():
        if target[0] <= target[1] and target[0] <= target[2]:
            norm = np.array([1.0, 0.0, 0.0])
        elif target[1] <= target[2]:
            norm = np.array([0.0, 1.0, 0.0])
        else:
            norm = np.array([0.0, 0.0, 1.0])
        norm = norm - target * float(np.dot(target, norm))
    norm = norm / np.linalg.norm(norm)
    perp = np.cross(norm, target)

    angle = math.acos(max(-1.0, min(1.0, float(np.dot(value, target)))))
    angle *= (ramp.ramp - RAMP_STEP) / ramp.ramp

    ramp.value = target * math.cos(angle) + perp * math.sin(angle)
    ramp.ramp -= RAMP_STEP


# ---------------------------------------------------------------- mixer


class Mixer:
    """Holds playing samples and mixes them into stereo blocks."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.volume = Ramp(1.0)
        self.listener = Listener(lock=self._lock)
        self.playing_samples: list[PlayingSample] = []

    @property
    def lock(self) -> threading.RLock:
        """Lock that keeps mixing from running while held."""
        return self._lock

    def _start(self, playing: PlayingSample) -> PlayingSample:
        with self._lock:
            self.playing_samples.append(playing)
        return playing

    def play(self, sample: Sample, volume: float = 1.0, pan: float = 0.0) -> PlayingSample:
        """Play ``sample`` once; pan -1 is hard left, 1 hard right."""
        return self._start(PlayingSample(sample, volume, pan=pan, lock=self._lock))

    def play_3d(
        self,
        sample: Sample,
        volume: float,
        position: Sequence[float],
        half_volume_radius: float = math.inf,
    ) -> PlayingSample:
        """Play ``sample`` once, panned by the listener's position."""
        return self._start(
            PlayingSample(
                sample,
                volume,
                position=position,
                half_volume_radius=half_volume_radius,
                lock=self._lock,
            )
        )

    def loop(self, sample: Sample, volume: float = 1.0, pan: float = 0.0) -> PlayingSample:
        """Play ``sample`` repeatedly until stopped."""
        return self._start(PlayingSample(sample, volume, pan=pan, loop=True, lock=self._lock))

    def loop_3d(
        self,
        sample: Sample,
        volume: float,
        position: Sequence[float],
        half_volume_radius: float = math.inf,
    ) -> PlayingSample:
        """Loop ``sample``, panned by the listener's position."""
        return self._start(
            PlayingSample(
                sample,
                volume,
                position=position,
                half_volume_radius=half_volume_radius,
                loop=True,
                lock=self._lock,
            )
        )

    def stop_all_samples(self) -> None:
        """Fade out every playing sample."""
        with self._lock:
            for playing in self.playing_samples:
                playing.stop()

    def set_volume(self, new_volume: float, ramp: float = DEFAULT_RAMP) -> None:
        """Set the global volume."""
        with self._lock:
            self.volume.set(new_volume, ramp)

    def _pan_for(
        self, playing: PlayingSample, position: np.ndarray, right: np.ndarray
    ) -> tuple[float, float]:
        if playing.is_3d:
            return compute_pan_from_listener_and_position(
                position, right, playing.position.value, playing.half_volume_radius.value
            )
        return compute_pan_weights(playing.pan.value)

    def mix(self) -> np.ndarray:
        """Mix one block of ``MIX_SAMPLES`` stereo frames, shape (MIX_SAMPLES, 2)."""
        with self._lock:
            buffer = np.zeros((MIX_SAMPLES, 2))

            start_volume = self.volume.value
            start_position = np.array(self.listener.position.value, dtype=float)
            start_right = np.array(self.listener.right.value, dtype=float)

            step_value_ramp(self.volume)
            step_position_ramp(self.listener.position)
            step_direction_ramp(self.listener.right)

            end_volume = self.volume.value
            end_position = np.array(self.listener.position.value, dtype=float)
            end_right = np.array(self.listener.right.value, dtype=float)

            survivors: list[PlayingSample] = []
            for playing in self.playing_samples:
                length = len(playing.data)
                if length == 0 or playing.i >= length:
                    playing.stopped = True
                    continue

                start_l, start_r = self._pan_for(playing, start_position, start_right)
                if playing.is_3d:
                    step_position_ramp(playing.position)
                    step_value_ramp(playing.half_volume_radius)
                else:
                    step_value_ramp(playing.pan)
                start_gain = start_volume * playing.volume.value
                start_pan = np.array([start_l, start_r]) * start_gain

                step_value_ramp(playing.volume)

                end_l, end_r = self._pan_for(playing, end_position, end_right)
                end_pan = np.array([end_l, end_r]) * (end_volume * playing.volume.value)
                pan_step = (end_pan - start_pan) / MIX_SAMPLES

                if playing.loop:
                    count = MIX_SAMPLES
                    indices = (playing.i + np.arange(count)) % length
                    playing.i = (playing.i + count) % length
                else:
                    count = min(MIX_SAMPLES, length - playing.i)
                    indices = playing.i + np.arange(count)
                    playing.i += count

                steps = np.arange(count)[:, None]
                pans = start_pan[None, :] + steps * pan_step[None, :]
                buffer[:count] += pans * playing.data[indices].astype(np.float64)[:, None]

                if playing.i >= length or (playing.stopping and playing.volume.value == 0.0):
                    playing.stopped = True
                else:
                    survivors.append(playing)
            self.playing_samples = survivors
            return buffer.astype(np.float32)