from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


# -------------------------
# Cell -> virtual space
# -------------------------
def virtual_pixels_per_cell(virtual_pixels: int, servers_x: int, servers_y: int) -> int:
    """
    Virtual pixels spanned by one server cell along either axis.

    The grid is treated as square-pitch: the longer grid axis sets the pitch and
    the shorter axis leaves unused virtual space. Integer division matches the
    coordinate scale the game client was built against.
    """
    servers = max(servers_x, servers_y)
    if servers <= 0:
        raise ValueError("servers_x/servers_y must be > 0")
    return int(virtual_pixels) // servers


def to_virtual(cell_x: int, cell_y: int, rel_x: float, rel_y: float, pixels_per_cell: float) -> Tuple[float, float]:
    """(cell, relative position) -> continuous virtual coordinates."""
    vx = float(cell_x) * pixels_per_cell + rel_x * pixels_per_cell
    vy = float(cell_y) * pixels_per_cell + rel_y * pixels_per_cell
    return vx, vy


def ue_to_virtual(radius_ue: float, pixels_per_cell: float, grid_size: float) -> float:
    """Convert a game-unit length (one cell spans `grid_size` units) into virtual pixels."""
    return pixels_per_cell * radius_ue / grid_size


@dataclass(frozen=True)
class VirtualGrid:
    """
    The server grid laid out in one continuous virtual square of
    `virtual_pixels` per axis.

    Attributes:
        virtual_pixels: virtual extent per axis.
        servers_x, servers_y: grid dimensions (cells).
        grid_size: game units spanned by one cell.
    """
    virtual_pixels: int
    servers_x: int
    servers_y: int
    grid_size: float

    def __post_init__(self) -> None:
        if self.virtual_pixels <= 0:
            raise ValueError("virtual_pixels must be > 0")
        if self.grid_size <= 0:
            raise ValueError("grid_size must be > 0")

    @property
    def pixels_per_cell(self) -> int:
        return virtual_pixels_per_cell(self.virtual_pixels, self.servers_x, self.servers_y)

    def place(self, cell_x: int, cell_y: int, rel_x: float, rel_y: float) -> Tuple[float, float]:
        return to_virtual(cell_x, cell_y, rel_x, rel_y, self.pixels_per_cell)

    def radius(self, radius_ue: float) -> float:
        return ue_to_virtual(radius_ue, self.pixels_per_cell, self.grid_size)


# -------------------------
# Virtual -> pixel space
# -------------------------
def virtual_to_pixel_scale(output_pixels: int, clip_min: float, clip_max: float) -> float:
    """
    Scale factor from virtual units to output pixels for an inclusive clip
    window [clip_min, clip_max]. Positions and radii share this factor.
    """
    return float(output_pixels) / float(clip_max - clip_min + 1)


def to_pixel(virtual: float, clip_min: float, scale: float) -> float:
    """
    NOTE: No bounds checking here; callers apply the gutter filter separately.
    """
    return (virtual - clip_min) * scale


def to_pixel_xy(vx: float, vy: float, clip_min: Tuple[float, float], scale: float) -> Tuple[float, float]:
    return to_pixel(vx, clip_min[0], scale), to_pixel(vy, clip_min[1], scale)
