from __future__ import annotations

import zlib
from typing import Iterable

import numpy as np


def record_checksum(raw: bytes) -> int:
    """CRC-32 (IEEE) over a raw record exactly as delivered by the store."""
    return zlib.crc32(raw) & 0xFFFFFFFF


def snapshot_fingerprint(checksums: Iterable[int]) -> int:
    """
    Fold per-record checksums into one value independent of ingestion order:
    sort ascending, pack as little-endian u32, CRC-32 the packed bytes.
    """
    packed = np.sort(np.fromiter(checksums, dtype=np.uint32)).astype("<u4").tobytes()
    return zlib.crc32(packed) & 0xFFFFFFFF


def fingerprint_records(records: Iterable[bytes]) -> int:
    return snapshot_fingerprint(record_checksum(r) for r in records)
