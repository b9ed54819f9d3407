from __future__ import annotations

"""
Tile pyramid for the web viewer.

The pyramid covers one constant virtual extent, tile_size * 2^(max_zoom-1)
per axis. Zoom z splits it into 2^z x 2^z tiles, every tile rendered at
tile_size x tile_size pixels:

    tile_root/
      └─ {z}/
          └─ {x}/
              └─ {y}.png   (RGBA, alpha <= circle_alpha)

Each zoom level is an independent task with its own index, so levels can run
on separate threads; generate_all() fans them out and joins.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

import cv2
import numpy as np

from common.geo import VirtualGrid, to_pixel_xy, virtual_to_pixel_scale
from common.logging_setup import get_logger
from common.types import Marker, MarkerType, VirtualEntity
from common.utils import publish_png
from render.palette import owner_color
from render.spatial_index import BoundingBox, SpatialIndex, gutter_filter
from service.config import TerritoryConfig


log = get_logger("render.tiles")

# cv2 sub-pixel precision: coordinates carry 4 fractional bits
_SHIFT = 4
_ONE = 1 << _SHIFT

OnPublish = Callable[[Path], None]


@dataclass(frozen=True, slots=True)
class ZoomResult:
    zoom: int
    tiles_written: int
    elapsed_ms: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def compose_rgba(premultiplied: np.ndarray, mask: np.ndarray, max_alpha: int) -> np.ndarray:
    """
    Turn an anti-aliased colour canvas (drawn over black) plus its coverage
    mask into straight RGBA, using the mask as alpha scaled by `max_alpha`.
    """
    m = mask.astype(np.float32)
    rgb = np.zeros(premultiplied.shape, dtype=np.float32)
    covered = m > 0
    rgb[covered] = premultiplied[covered].astype(np.float32) * 255.0 / m[covered][:, None]
    alpha = m * (float(max_alpha) / 255.0)
    out = np.empty(mask.shape + (4,), dtype=np.uint8)
    out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    out[..., 3] = np.clip(np.rint(alpha), 0, 255).astype(np.uint8)
    return out


class TilePyramidGenerator:
    def __init__(self, config: TerritoryConfig):
        self.config = config
        self.grid = VirtualGrid(
            virtual_pixels=config.tile_virtual_pixels,
            servers_x=config.servers_x,
            servers_y=config.servers_y,
            grid_size=config.grid_size,
        )
        self.land_radius = self.grid.radius(config.land_radius_ue)
        self.water_radius = self.grid.radius(config.water_radius_ue)

    # -------- geometry --------

    def build_index(self, markers: Iterable[Marker]) -> SpatialIndex:
        return SpatialIndex.build(markers, self.grid, index_radius=self.water_radius)

    def tiles_per_axis(self, zoom: int) -> int:
        return 1 << zoom

    def virtual_pixels_per_tile(self, zoom: int) -> int:
        return self.grid.virtual_pixels // self.tiles_per_axis(zoom)

    def tile_clip(self, zoom: int, tile_x: int, tile_y: int) -> BoundingBox:
        """Inclusive virtual window covered by tile (zoom, tile_x, tile_y)."""
        span = self.virtual_pixels_per_tile(zoom)
        min_x = tile_x * span
        min_y = tile_y * span
        return BoundingBox(min_x, min_y, min_x + span - 1, min_y + span - 1)

    def tile_entities(self, index: SpatialIndex, clip: BoundingBox) -> List[VirtualEntity]:
        candidates = index.query(clip.expanded(self.water_radius))
        return gutter_filter(candidates, clip, self.water_radius)

    def _virtual_radius(self, marker_type: MarkerType) -> float:
        return self.land_radius if marker_type == MarkerType.LAND else self.water_radius

    # -------- rendering --------

    def render_tile(self, entities: Sequence[VirtualEntity], clip: BoundingBox) -> np.ndarray:
        size = self.config.tile_size
        scale = virtual_to_pixel_scale(size, clip.min_x, clip.max_x)
        canvas = np.zeros((size, size, 3), dtype=np.uint8)
        mask = np.zeros((size, size), dtype=np.uint8)

        for e in entities:
            px, py = to_pixel_xy(e.virtual_x, e.virtual_y, (clip.min_x, clip.min_y), scale)
            radius = max(1.0, self._virtual_radius(e.marker.marker_type) * scale)
            center = (int(round(px * _ONE)), int(round(py * _ONE)))
            r = int(round(radius * _ONE))
            cv2.circle(canvas, center, r, owner_color(e.marker.owner_id), -1, cv2.LINE_AA, _SHIFT)
            cv2.circle(mask, center, r, 255, -1, cv2.LINE_AA, _SHIFT)

        return compose_rgba(canvas, mask, self.config.circle_alpha)

    # -------- generation --------

    def tile_path(self, tile_root: Path, zoom: int, tile_x: int, tile_y: int) -> Path:
        return Path(tile_root) / str(zoom) / str(tile_x) / f"{tile_y}.png"

    def generate_zoom(
        self,
        zoom: int,
        markers: Sequence[Marker],
        tile_root: Path,
        on_publish: Optional[OnPublish] = None,
    ) -> int:
        """
        Render and publish every tile of one zoom level. Returns tiles written.
        Raises OSError if a tile cannot be staged; tiles already published stay.
        """
        if not (0 <= zoom < self.config.max_zoom):
            raise ValueError(f"zoom must be in [0, {self.config.max_zoom})")
        index = self.build_index(markers)
        tiles = self.tiles_per_axis(zoom)
        written = 0
        for tile_x in range(tiles):
            for tile_y in range(tiles):
                clip = self.tile_clip(zoom, tile_x, tile_y)
                rgba = self.render_tile(self.tile_entities(index, clip), clip)
                path = publish_png(self.tile_path(tile_root, zoom, tile_x, tile_y), rgba)
                written += 1
                if on_publish is not None:
                    on_publish(path)
        return written

    def generate_all(
        self,
        markers: Sequence[Marker],
        tile_root: Path,
        on_publish: Optional[OnPublish] = None,
    ) -> List[ZoomResult]:
        """One task per zoom level; returns once every level has finished."""
        markers = tuple(markers)
        workers = self.config.tile_workers or self.config.max_zoom

        def _run(zoom: int) -> ZoomResult:
            t0 = time.perf_counter()
            n = self.generate_zoom(zoom, markers, tile_root, on_publish)
            dt_ms = (time.perf_counter() - t0) * 1e3
            log.info("Zoom level generated", extra={"extra": {"zoom": zoom, "tiles": n, "ms": round(dt_ms, 1)}})
            return ZoomResult(zoom=zoom, tiles_written=n, elapsed_ms=dt_ms)

        results: List[ZoomResult] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tile-zoom") as pool:
            futures = {z: pool.submit(_run, z) for z in range(self.config.max_zoom)}
            for zoom, fut in futures.items():
                try:
                    results.append(fut.result())
                except Exception as e:
                    log.exception("Zoom level failed", extra={"extra": {"zoom": zoom}})
                    results.append(ZoomResult(zoom=zoom, tiles_written=0, elapsed_ms=0.0, error=str(e)))
        return results
