"""
Unit tests for the web tile pyramid
"""

import pytest
import numpy as np
import os
import sys
from PIL import Image

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import Marker, MarkerType
from render.palette import owner_color
from render.tile_pyramid import TilePyramidGenerator, compose_rgba
from service.config import TerritoryConfig

TRIBE = 1_000_050_001  # blue


def _config(**overrides) -> TerritoryConfig:
    params = dict(
        servers_x=1,
        servers_y=1,
        tile_size=32,
        max_zoom=2,
        grid_size=1000.0,
        land_radius_ue=200.0,
        water_radius_ue=300.0,
        game_size=64,
        circle_alpha=128,
    )
    params.update(overrides)
    return TerritoryConfig(**params)


class TestGeometry:
    """Test cases for tile geometry"""

    def test_constant_virtual_extent(self):
        """Extent is tile_size * 2^(max_zoom-1) at every zoom"""
        gen = TilePyramidGenerator(_config())
        assert gen.grid.virtual_pixels == 64
        assert gen.virtual_pixels_per_tile(0) == 64
        assert gen.virtual_pixels_per_tile(1) == 32
        assert gen.land_radius == pytest.approx(12.8)
        assert gen.water_radius == pytest.approx(19.2)

    def test_tile_clip(self):
        """Clip windows are inclusive"""
        gen = TilePyramidGenerator(_config())
        clip = gen.tile_clip(1, 1, 0)
        assert (clip.min_x, clip.min_y, clip.max_x, clip.max_y) == (32, 0, 63, 31)

    def test_tile_path(self, tmp_path):
        """Tiles live at {z}/{x}/{y}.png"""
        gen = TilePyramidGenerator(_config())
        assert gen.tile_path(tmp_path, 3, 4, 5) == tmp_path / "3" / "4" / "5.png"

    def test_seam_marker_in_both_tiles(self):
        """A circle crossing a tile edge is drawn in both neighbours"""
        gen = TilePyramidGenerator(_config())
        r = gen.water_radius
        rel_x = (32 - r / 2) / 64
        m = Marker(0, 0, TRIBE, rel_x, 0.25, MarkerType.WATER)
        index = gen.build_index([m])

        left_clip, right_clip = gen.tile_clip(1, 0, 0), gen.tile_clip(1, 1, 0)
        left = gen.tile_entities(index, left_clip)
        right = gen.tile_entities(index, right_clip)
        assert [e.marker for e in left] == [m]
        assert [e.marker for e in right] == [m]

        # circle reaches into column 0 of the right-hand tile
        rgba = gen.render_tile(right, right_clip)
        assert rgba[16, 0, 3] > 0

    def test_far_marker_not_in_tile(self):
        """Markers further than the gutter are excluded"""
        gen = TilePyramidGenerator(_config())
        m = Marker(0, 0, TRIBE, 0.05, 0.05, MarkerType.WATER)
        index = gen.build_index([m])
        assert gen.tile_entities(index, gen.tile_clip(1, 1, 1)) == []


class TestRendering:
    """Test cases for tile rasterization"""

    def test_compose_rgba(self):
        """Colour is un-premultiplied and alpha scaled by circle_alpha"""
        canvas = np.array([[[100, 0, 0], [0, 0, 0]]], dtype=np.uint8)
        mask = np.array([[128, 0]], dtype=np.uint8)
        out = compose_rgba(canvas, mask, 128)
        assert tuple(out[0, 0]) == (199, 0, 0, 64)
        assert tuple(out[0, 1]) == (0, 0, 0, 0)

    def test_render_tile_colour_and_alpha(self):
        """Circle centre takes the owner colour at circle_alpha; corners stay clear"""
        gen = TilePyramidGenerator(_config())
        m = Marker(0, 0, TRIBE, 0.25, 0.25, MarkerType.LAND)
        clip = gen.tile_clip(1, 0, 0)
        rgba = gen.render_tile(gen.tile_entities(gen.build_index([m]), clip), clip)

        assert rgba.shape == (32, 32, 4)
        assert tuple(rgba[16, 16, :3]) == owner_color(TRIBE)
        assert rgba[16, 16, 3] == 128
        assert rgba[..., 3].max() <= 128
        assert rgba[0, 0, 3] == 0

    def test_empty_tile_transparent(self):
        """No markers gives a fully transparent tile"""
        gen = TilePyramidGenerator(_config())
        clip = gen.tile_clip(0, 0, 0)
        assert gen.render_tile([], clip).max() == 0

    def test_generate_all_writes_pyramid(self, tmp_path):
        """Every zoom level writes 4^z PNG tiles"""
        gen = TilePyramidGenerator(_config())
        markers = [Marker(0, 0, TRIBE, 0.3, 0.6, MarkerType.WATER)]
        results = gen.generate_all(markers, tmp_path)

        assert [r.zoom for r in results] == [0, 1]
        assert all(r.ok for r in results)
        assert [r.tiles_written for r in results] == [1, 4]
        pngs = sorted(p.relative_to(tmp_path).as_posix() for p in tmp_path.rglob("*.png"))
        assert pngs == ["0/0/0.png", "1/0/0.png", "1/0/1.png", "1/1/0.png", "1/1/1.png"]

        with Image.open(tmp_path / "0" / "0" / "0.png") as img:
            assert img.mode == "RGBA"
            assert img.size == (32, 32)
            alpha = np.asarray(img)[..., 3]
        assert 0 < alpha.max() <= 128

    def test_generate_all_reports_failed_zoom(self, tmp_path, monkeypatch):
        """A failing zoom is reported, the others still complete"""
        gen = TilePyramidGenerator(_config())
        real = gen.generate_zoom

        def flaky(zoom, *args, **kwargs):
            if zoom == 1:
                raise OSError("disk full")
            return real(zoom, *args, **kwargs)

        monkeypatch.setattr(gen, "generate_zoom", flaky)
        results = gen.generate_all([], tmp_path)
        assert results[0].ok and results[0].tiles_written == 1
        assert not results[1].ok
        assert "disk full" in results[1].error

    def test_invalid_zoom(self, tmp_path):
        """Zoom outside [0, max_zoom) is rejected"""
        gen = TilePyramidGenerator(_config())
        with pytest.raises(ValueError):
            gen.generate_zoom(2, [], tmp_path)
