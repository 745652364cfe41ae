"""Loading WAV files as 48kHz floating-point mono audio."""

from __future__ import annotations

import logging
import os
import struct

import numpy as np

logger = logging.getLogger(__name__)

AUDIO_RATE = 48000

_FORMAT_PCM = 1
_FORMAT_FLOAT = 3
_FORMAT_EXTENSIBLE = 0xFFFE


def _iter_chunks(raw: bytes):
    offset = 12
    while offset + 8 <= len(raw):
        tag, size = struct.unpack_from("<4sI", raw, offset)
        body = raw[offset + 8 : offset + 8 + size]
        if len(body) != size:
            raise ValueError(f"chunk {tag!r} is truncated")
        yield tag, body
        offset += 8 + size + (size & 1)


def _parse(raw: bytes) -> tuple[int, int, int, int, bytes]:
    if len(raw) < 12 or raw[:4] != b"RIFF" or raw[8:12] != b"WAVE":
        raise ValueError("not a RIFF/WAVE file")
    fmt = None
    data = None
    for tag, body in _iter_chunks(raw):
        if tag == b"fmt " and fmt is None:
            if len(body) < 16:
                raise ValueError("format chunk is too short")
            fmt_tag, channels, rate, _byte_rate, _align, bits = struct.unpack_from(
                "<HHIIHH", body
            )
            if fmt_tag == _FORMAT_EXTENSIBLE:
                if len(body) < 26:
                    raise ValueError("extensible format chunk is too short")
                (fmt_tag,) = struct.unpack_from("<H", body, 24)
            fmt = (fmt_tag, channels, rate, bits)
        elif tag == b"data" and data is None:
            data = body
    if fmt is None:
        raise ValueError("missing format chunk")
    if data is None:
        raise ValueError("missing data chunk")
    return (*fmt, data)


def _decode(fmt_tag: int, bits: int, channels: int, data: bytes) -> np.ndarray:
    if channels <= 0:
        raise ValueError("file has no channels")
    if bits <= 0 or bits % 8 != 0:
        raise ValueError(f"unsupported bit depth {bits}")
    frame_size = bits // 8 * channels
    data = data[: len(data) - len(data) % frame_size]

    if fmt_tag == _FORMAT_PCM:
        if bits == 8:
            values = (np.frombuffer(data, dtype=np.uint8).astype(np.float64) - 128.0) / 128.0
        elif bits == 16:
            values = np.frombuffer(data, dtype="<i2").astype(np.float64) / 32768.0
        elif bits == 24:
            triples = np.frombuffer(data, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
            ints = triples[:, 0] | (triples[:, 1] << 8) | (triples[:, 2] << 16)
            ints = np.where(ints >= 1 << 23, ints - (1 << 24), ints)
            values = ints.astype(np.float64) / float(1 << 23)
        elif bits == 32:
            values = np.frombuffer(data, dtype="<i4").astype(np.float64) / float(1 << 31)
        else:
            raise ValueError(f"unsupported PCM bit depth {bits}")
    elif fmt_tag == _FORMAT_FLOAT:
        if bits == 32:
            values = np.frombuffer(data, dtype="<f4").astype(np.float64)
        elif bits == 64:
            values = np.frombuffer(data, dtype="<f8").astype(np.float64)
        else:
            raise ValueError(f"unsupported float bit depth {bits}")
    else:
        raise ValueError(f"unsupported sample format {fmt_tag}")
    return values.reshape(-1, channels).mean(axis=1)


def _resample(mono: np.ndarray, rate: int) -> np.ndarray:
    if rate <= 0:
        raise ValueError(f"invalid sampling rate {rate}")
    if rate == AUDIO_RATE or len(mono) == 0:
        return mono
    count = int(len(mono) * AUDIO_RATE // rate)
    times = np.arange(count) * (rate / AUDIO_RATE)
    return np.interp(times, np.arange(len(mono)), mono)


def load_wav(path) -> np.ndarray:
    """Load a WAV file as 48kHz float32 mono samples, converting if needed."""
    filename = os.fspath(path)
    with open(filename, "rb") as stream:
        raw = stream.read()
    try:
        fmt_tag, channels, rate, bits, data = _parse(raw)
        mono = _decode(fmt_tag, bits, channels, data)
        needs_conversion = not (
            fmt_tag == _FORMAT_FLOAT and bits == 32 and channels == 1 and rate == AUDIO_RATE
        )
        if needs_conversion:
            logger.info(
                "WAV file '%s' didn't load as %d Hz, float32, mono; converting.",
                filename,
                AUDIO_RATE,
            )
        samples = _resample(mono, rate).astype(np.float32)
    except (struct.error, ValueError) as error:
        raise ValueError(f"Failed to load WAV file '{filename}'; {error}") from error

    low = min(0.0, float(samples.min())) if len(samples) else 0.0
    high = max(0.0, float(samples.max())) if len(samples) else 0.0
    logger.info("Range: %g, %g", low, high)
    return samples