"""
Render — Territory Artifacts

- palette.py: owner classification + deterministic owner colours
- spatial_index.py: quad-tree over markers placed in virtual space
- tile_pyramid.py: alpha-blended PNG tiles for the web viewer ({z}/{x}/{y}.png)
- world_snapshot.py: binary world.map consumed by the game client
"""
from .palette import OwnerClass, classify_owner, owner_color
from .spatial_index import BoundingBox, SpatialIndex

__all__ = ["BoundingBox", "OwnerClass", "SpatialIndex", "classify_owner", "owner_color"]
