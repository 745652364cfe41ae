"""Loading and saving PNG images as RGBA pixel arrays."""

from __future__ import annotations

import os
import struct
import zlib
from enum import Enum
from typing import Iterator, Sequence

import numpy as np

_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_CHANNELS = {0: 1, 2: 3, 3: 1, 4: 2, 6: 4}
_DEPTHS = {
    0: (1, 2, 4, 8, 16),
    2: (8, 16),
    3: (1, 2, 4, 8),
    4: (8, 16),
    6: (8, 16),
}
# (x start, y start, x step, y step) for each interlace pass
_ADAM7 = (
    (0, 0, 8, 8),
    (4, 0, 8, 8),
    (0, 4, 4, 8),
    (2, 0, 4, 4),
    (0, 2, 2, 4),
    (1, 0, 2, 2),
    (0, 1, 1, 2),
)


class Origin(Enum):
    """Which row of a pixel array comes first."""

    LOWER_LEFT = "lower_left"
    UPPER_LEFT = "upper_left"


class PngError(Exception):
    """Raised when a PNG image cannot be read."""


def _chunks(data: bytes) -> Iterator[tuple[bytes, bytes]]:
    if not data.startswith(_SIGNATURE):
        raise PngError("not a PNG file")
    offset = len(_SIGNATURE)
    while True:
        if offset + 8 > len(data):
            raise PngError("truncated chunk header")
        length, tag = struct.unpack_from(">I4s", data, offset)
        body = data[offset + 8 : offset + 8 + length]
        crc = data[offset + 8 + length : offset + 12 + length]
        if len(body) != length or len(crc) != 4:
            raise PngError(f"truncated chunk {tag!r}")
        if zlib.crc32(tag + body) != struct.unpack(">I", crc)[0]:
            raise PngError(f"CRC error in chunk {tag!r}")
        yield tag, body
        offset += 12 + length
        if tag == b"IEND":
            return


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    return b if pb <= pc else c


def _unfilter_row(kind: int, line: bytearray, prev: bytes, bpp: int) -> None:
    if kind == 0:
        return
    if kind == 2:
        line[:] = bytes((x + up) & 0xFF for x, up in zip(line, prev))
        return
    if kind not in (1, 3, 4):
        raise PngError(f"unknown filter type {kind}")
    for i in range(len(line)):
        left = line[i - bpp] if i >= bpp else 0
        if kind == 1:
            line[i] = (line[i] + left) & 0xFF
        elif kind == 3:
            line[i] = (line[i] + ((left + prev[i]) >> 1)) & 0xFF
        else:
            upper_left = prev[i - bpp] if i >= bpp else 0
            line[i] = (line[i] + _paeth(left, prev[i], upper_left)) & 0xFF


def _unpack(row: bytes, count: int, depth: int) -> np.ndarray:
    if depth == 8:
        return np.frombuffer(row, dtype=np.uint8)[:count].astype(np.int64)
    if depth == 16:
        return np.frombuffer(row, dtype=">u2")[:count].astype(np.int64)
    bits = np.unpackbits(np.frombuffer(row, dtype=np.uint8)).reshape(-1, depth)
    weights = 1 << np.arange(depth - 1, -1, -1, dtype=np.int64)
    return (bits.astype(np.int64) @ weights)[:count]


def _read_pass(
    raw: bytes, offset: int, width: int, height: int, channels: int, depth: int
) -> tuple[np.ndarray, int]:
    bits_per_pixel = channels * depth
    bpp = max(1, bits_per_pixel // 8)
    stride = (width * bits_per_pixel + 7) // 8
    prev = bytes(stride)
    rows = []
    for _ in range(height):
        if offset + 1 + stride > len(raw):
            raise PngError("image data is truncated")
        kind = raw[offset]
        line = bytearray(raw[offset + 1 : offset + 1 + stride])
        offset += 1 + stride
        _unfilter_row(kind, line, prev, bpp)
        prev = bytes(line)
        rows.append(_unpack(prev, width * channels, depth))
    return np.stack(rows).reshape(height, width, channels), offset


def _to_rgba(
    samples: np.ndarray, color_type: int, depth: int, palette, transparency
) -> np.ndarray:
    height, width, _ = samples.shape
    if color_type == 3:
        if palette is None:
            raise PngError("palette image without PLTE chunk")
        indices = samples[..., 0]
        if (indices >= len(palette)).any():
            raise PngError("palette index out of range")
        alpha_table = np.full(len(palette), 255, dtype=np.int64)
        if transparency is not None:
            alphas = np.frombuffer(transparency, dtype=np.uint8)[: len(palette)]
            alpha_table[: len(alphas)] = alphas
        rgba = np.concatenate([palette[indices], alpha_table[indices][..., None]], axis=-1)
        return rgba.astype(np.uint8)

    if depth == 16:
        samples = samples >> 8
    elif depth < 8:
        samples = samples * 255 // ((1 << depth) - 1)
    opaque = np.full((height, width, 1), 255, dtype=np.int64)
    if color_type == 0:
        rgba = np.concatenate([np.repeat(samples, 3, axis=-1), opaque], axis=-1)
    elif color_type == 2:
        rgba = np.concatenate([samples, opaque], axis=-1)
    elif color_type == 4:
        rgba = np.concatenate([np.repeat(samples[..., :1], 3, axis=-1), samples[..., 1:]], axis=-1)
    else:
        rgba = samples
    return rgba.astype(np.uint8)


def _decode(data: bytes) -> np.ndarray:
    header = None
    palette = None
    transparency = None
    compressed = []
    for tag, body in _chunks(data):
        if header is None and tag != b"IHDR":
            raise PngError("first chunk is not IHDR")
        if tag == b"IHDR":
            if len(body) != 13:
                raise PngError("bad IHDR length")
            header = struct.unpack(">IIBBBBB", body)
        elif tag == b"PLTE":
            if not body or len(body) % 3:
                raise PngError("bad PLTE length")
            palette = np.frombuffer(body, dtype=np.uint8).reshape(-1, 3).astype(np.int64)
        elif tag == b"tRNS":
            transparency = body
        elif tag == b"IDAT":
            compressed.append(body)
    if header is None:
        raise PngError("missing IHDR")

    width, height, depth, color_type, compression, filtering, interlace = header
    if width == 0 or height == 0:
        raise PngError("image has zero size")
    if color_type not in _DEPTHS or depth not in _DEPTHS[color_type]:
        raise PngError(f"invalid bit depth {depth} for color type {color_type}")
    if compression != 0 or filtering != 0 or interlace not in (0, 1):
        raise PngError("unsupported compression, filter or interlace method")

    try:
        raw = zlib.decompress(b"".join(compressed))
    except zlib.error as error:
        raise PngError(f"corrupt image data: {error}") from error

    channels = _CHANNELS[color_type]
    if interlace == 0:
        samples, _ = _read_pass(raw, 0, width, height, channels, depth)
    else:
        samples = np.zeros((height, width, channels), dtype=np.int64)
        offset = 0
        for x0, y0, dx, dy in _ADAM7:
            pass_width = (width - x0 + dx - 1) // dx if width > x0 else 0
            pass_height = (height - y0 + dy - 1) // dy if height > y0 else 0
            if pass_width == 0 or pass_height == 0:
                continue
            part, offset = _read_pass(raw, offset, pass_width, pass_height, channels, depth)
            samples[y0::dy, x0::dx] = part
    return _to_rgba(samples, color_type, depth, palette, transparency)


def load_png(path, origin: Origin) -> tuple[tuple[int, int], np.ndarray]:
    """Load a PNG as ((width, height), RGBA uint8 array of shape (height, width, 4)).

    With ``Origin.LOWER_LEFT`` the first row of the array is the bottom row.
    """
    filename = os.fspath(path)
    try:
        with open(filename, "rb") as stream:
            data = stream.read()
    except OSError as error:
        raise PngError(f"Failed to open PNG image file '{filename}'.") from error
    try:
        pixels = _decode(data)
    except PngError as error:
        raise PngError(f"Failed to read PNG image from '{filename}': {error}") from error
    if origin is Origin.LOWER_LEFT:
        pixels = pixels[::-1]
    height, width = pixels.shape[:2]
    return (width, height), np.ascontiguousarray(pixels)


def _chunk(tag: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + tag + body + struct.pack(">I", zlib.crc32(tag + body))


def save_png(path, size: Sequence[int], pixels, origin: Origin) -> None:
    """Save RGBA pixels (height rows of width pixels) as an 8-bit RGBA PNG."""
    width, height = (int(v) for v in size)
    array = np.asarray(pixels, dtype=np.uint8)
    if array.size != width * height * 4:
        raise ValueError(
            f"expected {width * height} RGBA pixels for a {width}x{height} image, "
            f"got {array.size} values"
        )
    rows = array.reshape(height, width, 4)
    if origin is Origin.LOWER_LEFT:
        rows = rows[::-1]
    raw = b"".join(b"\x00" + row.tobytes() for row in rows)
    header = struct.pack(">IIBBBBB", width, height, 8, 6, 0, 0, 0)
    data = (
        _SIGNATURE
        + _chunk(b"IHDR", header)
        + _chunk(b"IDAT", zlib.compress(raw))
        + _chunk(b"IEND", b"")
    )
    with open(os.fspath(path), "wb") as stream:
        stream.write(data)