from __future__ import annotations

"""
world.map: the territory snapshot read by the game client.

Layout (little endian, format version 2):

    u16 version            = 2
    u16 encoding_flag      = 0x0001  (legacy "zlib" marker; payload is NOT compressed)
    u16 source_resolution  = game_size * floor(sqrt(32))
    u16 dest_resolution    = game_size
    u32 owner_count
    owner_count x, ascending owner id:
        u64 owner_id
        u32 land_count
        u32 water_count
        land_count  x (u16 x, u16 y)
        water_count x (u16 x, u16 y)
"""

import struct
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from common.geo import VirtualGrid, to_pixel_xy, virtual_to_pixel_scale
from common.logging_setup import get_logger
from common.types import Marker, OwnerAggregate
from common.utils import publish_bytes
from render.spatial_index import BoundingBox, SpatialIndex, gutter_filter
from service.config import TerritoryConfig


log = get_logger("render.world_snapshot")

FORMAT_VERSION = 2
ENCODING_FLAG = 0x0001
WORLD_FILE_NAME = "world.map"

_HEADER = struct.Struct("<HHHHI")
_OWNER = struct.Struct("<QII")
_CLAIM = struct.Struct("<HH")
_U16_MAX = 0xFFFF


def _to_u16(v: float) -> int:
    # truncation toward zero, as the client's fixed-point reader expects
    return min(_U16_MAX, max(0, int(v)))


def aggregate_claims(
    index: SpatialIndex,
    clip: BoundingBox,
    output_pixels: int,
    gutter: float,
) -> List[OwnerAggregate]:
    """
    Bucket every indexed marker inside `clip` (plus gutter) into per-owner
    land/water claim lists of pixel coordinates. Sorted by owner id.
    """
    scale = virtual_to_pixel_scale(output_pixels, clip.min_x, clip.max_x)
    owners: Dict[int, OwnerAggregate] = {}
    for e in gutter_filter(index.query(clip.expanded(gutter)), clip, gutter):
        px, py = to_pixel_xy(e.virtual_x, e.virtual_y, (clip.min_x, clip.min_y), scale)
        owner_id = e.marker.owner_id
        agg = owners.get(owner_id)
        if agg is None:
            agg = owners[owner_id] = OwnerAggregate(owner_id=owner_id)
        agg.add(e.marker.marker_type, (_to_u16(px), _to_u16(py)))
    return [owners[k] for k in sorted(owners)]


def encode_world_snapshot(
    aggregates: Iterable[OwnerAggregate],
    source_resolution: int,
    dest_resolution: int,
) -> bytes:
    ordered = sorted(aggregates, key=lambda a: a.owner_id)
    parts = [_HEADER.pack(FORMAT_VERSION, ENCODING_FLAG, source_resolution, dest_resolution, len(ordered))]
    for agg in ordered:
        parts.append(_OWNER.pack(agg.owner_id, len(agg.land_claims), len(agg.water_claims)))
        parts.extend(_CLAIM.pack(x, y) for x, y in agg.land_claims)
        parts.extend(_CLAIM.pack(x, y) for x, y in agg.water_claims)
    return b"".join(parts)


class WorldSnapshotCodec:
    """
    Single non-tiled pass over the whole virtual extent at
    config.game_resolution, written to <game_dir>/world.map.
    """

    def __init__(self, config: TerritoryConfig):
        self.config = config
        self.resolution = config.game_resolution
        self.grid = VirtualGrid(
            virtual_pixels=self.resolution * config.servers,
            servers_x=config.servers_x,
            servers_y=config.servers_y,
            grid_size=config.grid_size,
        )
        self.water_radius = self.grid.radius(config.water_radius_ue)

    @property
    def clip(self) -> BoundingBox:
        last = self.grid.virtual_pixels - 1
        return BoundingBox(0, 0, last, last)

    def aggregate(self, markers: Iterable[Marker]) -> List[OwnerAggregate]:
        index = SpatialIndex.build(markers, self.grid, index_radius=self.water_radius)
        return aggregate_claims(index, self.clip, self.resolution, self.water_radius)

    def encode(self, markers: Iterable[Marker]) -> bytes:
        return encode_world_snapshot(self.aggregate(markers), self.resolution, self.config.game_size)

    def generate(self, markers: Sequence[Marker], game_dir: Path) -> Path:
        """Encode and publish world.map; returns the published path."""
        aggregates = self.aggregate(markers)
        payload = encode_world_snapshot(aggregates, self.resolution, self.config.game_size)
        path = publish_bytes(Path(game_dir) / WORLD_FILE_NAME, payload)
        log.info("World snapshot written", extra={"extra": {
            "path": str(path), "owners": len(aggregates), "bytes": len(payload)}})
        return path
