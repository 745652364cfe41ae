"""Reading and writing length-prefixed arrays of fixed-size records.

A chunk is laid out as::

    | four byte magic | uint32 byte size | records ... |

Sizes and record fields are little-endian unless the record format names
another byte order.
"""

from __future__ import annotations

import struct
from typing import BinaryIO, Iterable

_HEADER = struct.Struct("<4sI")
_BYTE_ORDER_PREFIXES = ("@", "=", "<", ">", "!")


class ChunkError(ValueError):
    """Raised when a chunk cannot be read."""


def _magic_bytes(magic: str | bytes) -> bytes:
    return magic.encode("latin-1") if isinstance(magic, str) else bytes(magic)


def _record_struct(record_format: str) -> struct.Struct:
    if not record_format.startswith(_BYTE_ORDER_PREFIXES):
        record_format = "<" + record_format
    record = struct.Struct(record_format)
    if record.size == 0:
        raise ValueError(f"record format {record_format!r} has zero size")
    return record


def read_chunk(source: BinaryIO, magic: str | bytes, record_format: str) -> list[tuple]:
    """Read one chunk from ``source`` and return its records as tuples."""
    header = source.read(_HEADER.size)
    if len(header) != _HEADER.size:
        raise ChunkError("Failed to read chunk header")
    found, size = _HEADER.unpack(header)
    if found != _magic_bytes(magic):
        raise ChunkError("Unexpected magic number in chunk")

    record = _record_struct(record_format)
    if size % record.size != 0:
        raise ChunkError("Size of chunk not divisible by element size")

    payload = source.read(size)
    if len(payload) != size:
        raise ChunkError("Failed to read chunk data.")
    return list(record.iter_unpack(payload))


def write_chunk(
    target: BinaryIO,
    magic: str | bytes,
    record_format: str,
    records: Iterable[tuple],
) -> int:
    """Write ``records`` as one chunk to ``target``; return the bytes written."""
    tag = _magic_bytes(magic)
    if len(tag) != 4:
        raise ValueError(f"chunk magic must be four bytes, got {tag!r}")
    record = _record_struct(record_format)
    payload = b"".join(record.pack(*values) for values in records)
    data = _HEADER.pack(tag, len(payload)) + payload
    target.write(data)
    return len(data)