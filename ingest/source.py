from __future__ import annotations

"""
Marker sources.

Each source returns a complete, immutable MarkerSnapshot per fetch; nothing is
patched incrementally. Cells that fail (store error, malformed record) are
skipped as a whole and reported in `MarkerSnapshot.skipped_cells`.

Redis layout (one set per server cell):
    territorymapdata:{x << 16 | y}  ->  { raw record bytes, ... }
"""

from typing import Dict, Iterable, List, Mapping, Protocol, Sequence, Tuple

import redis

from common.logging_setup import get_logger
from common.types import Cell, Marker, MarkerSnapshot
from ingest.fingerprint import record_checksum, snapshot_fingerprint
from ingest.records import MalformedRecordError, decode_record


log = get_logger("ingest.source")

CELL_KEY_PREFIX = "territorymapdata:"


def cell_key(x: int, y: int) -> str:
    return f"{CELL_KEY_PREFIX}{(x << 16) | y}"


class MarkerSource(Protocol):
    def fetch(self) -> MarkerSnapshot:
        ...


def build_snapshot(
    cells: Iterable[Tuple[Cell, Iterable[bytes]]],
    skipped: Sequence[Cell] = (),
) -> MarkerSnapshot:
    """
    Decode every cell's records and fingerprint the ones that were kept.

    Records are decoded in byte order so that the marker order (and therefore
    claim order in the world snapshot) does not depend on the store's set order.
    """
    markers: List[Marker] = []
    checksums: List[int] = []
    skipped_cells: List[Cell] = list(skipped)

    for (x, y), records in cells:
        ordered = sorted(bytes(r) for r in records)
        try:
            decoded = [decode_record(r, x, y) for r in ordered]
        except MalformedRecordError as e:
            log.warning("Skipping cell with malformed record",
                        extra={"extra": {"cell": [x, y], "error": str(e)}})
            skipped_cells.append((x, y))
            continue
        markers.extend(decoded)
        checksums.extend(record_checksum(r) for r in ordered)

    return MarkerSnapshot(
        markers=tuple(markers),
        fingerprint=snapshot_fingerprint(checksums),
        skipped_cells=tuple(skipped_cells),
    )


class RedisMarkerSource:
    """
    Reads the per-cell claim sets from the territory Redis database.

    Params:
        client: redis.Redis returning raw bytes (decode_responses=False)
        servers_x, servers_y: grid dimensions; fixed for the source's lifetime
    """

    def __init__(self, client: redis.Redis, servers_x: int, servers_y: int):
        if servers_x <= 0 or servers_y <= 0:
            raise ValueError("servers_x/servers_y must be > 0")
        self.client = client
        self.servers_x = servers_x
        self.servers_y = servers_y

    def fetch(self) -> MarkerSnapshot:
        cells: List[Tuple[Cell, Iterable[bytes]]] = []
        skipped: List[Cell] = []
        for x in range(self.servers_x):
            for y in range(self.servers_y):
                try:
                    members = self.client.smembers(cell_key(x, y))
                except redis.RedisError as e:
                    log.warning("Marker store unavailable for cell",
                                extra={"extra": {"cell": [x, y], "error": str(e)}})
                    skipped.append((x, y))
                    continue
                cells.append(((x, y), members or ()))
        return build_snapshot(cells, skipped)


class StaticMarkerSource:
    """In-memory source over {(x, y): [raw record, ...]}; for tools and tests."""

    def __init__(self, records_by_cell: Mapping[Cell, Iterable[bytes]]):
        self._cells: Dict[Cell, Tuple[bytes, ...]] = {
            (int(x), int(y)): tuple(records) for (x, y), records in records_by_cell.items()
        }

    def fetch(self) -> MarkerSnapshot:
        return build_snapshot(sorted(self._cells.items()))
