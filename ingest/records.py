from __future__ import annotations

"""
Raw claim-flag record layout (little endian), as written by the game servers:

    +-----------+----------+----------+---------+-------------------+
    | owner u64 | x u16    | y u16    | type u8 | reserved (3 bytes)|
    +-----------+----------+----------+---------+-------------------+

The reserved tail is ignored. Positions are fractions of the cell scaled to
the full u16 range.
"""

import struct

from common.types import Marker, MarkerType

_HEADER = struct.Struct("<QHHB")
RECORD_MIN_LEN = _HEADER.size  # 13
RECORD_LEN = 16
RAW_POSITION_MAX = 0xFFFF


class MalformedRecordError(ValueError):
    """A raw record that cannot be decoded into a Marker."""


def decode_record(raw: bytes, cell_x: int, cell_y: int) -> Marker:
    if len(raw) < RECORD_MIN_LEN:
        raise MalformedRecordError(f"record too short: {len(raw)} bytes")
    owner_id, raw_x, raw_y, type_code = _HEADER.unpack_from(raw)
    try:
        marker_type = MarkerType(type_code)
    except ValueError:
        raise MalformedRecordError(f"unknown marker type {type_code}") from None
    try:
        return Marker(
            cell_x=cell_x,
            cell_y=cell_y,
            owner_id=owner_id,
            rel_x=raw_x / RAW_POSITION_MAX,
            rel_y=raw_y / RAW_POSITION_MAX,
            marker_type=marker_type,
        )
    except ValueError as e:
        raise MalformedRecordError(str(e)) from e


def encode_record(owner_id: int, rel_x: float, rel_y: float, marker_type: MarkerType,
                  reserved: bytes = b"\x00\x00\x00") -> bytes:
    """Build a raw record the way a game server stores it (used by seeding tools and tests)."""
    if not (0.0 <= rel_x <= 1.0) or not (0.0 <= rel_y <= 1.0):
        raise ValueError("relative position out of [0, 1]")
    raw_x = int(round(rel_x * RAW_POSITION_MAX))
    raw_y = int(round(rel_y * RAW_POSITION_MAX))
    return _HEADER.pack(owner_id, raw_x, raw_y, int(marker_type)) + reserved
