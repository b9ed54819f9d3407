from __future__ import annotations

"""
Quad-tree spatial index over markers placed in virtual space.

Entities live in an arena (a tuple addressed by position); tree nodes only
hold arena indices. Every entity is indexed with a box of half-size equal to
the WATER radius, whatever its type, so a window query padded by that gutter
never misses a circle that can reach into the window. Callers then narrow the
over-selection with `gutter_filter`.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from common.geo import VirtualGrid
from common.types import Marker, VirtualEntity


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned box, bounds inclusive."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def around(cls, x: float, y: float, radius: float) -> "BoundingBox":
        return cls(x - radius, y - radius, x + radius, y + radius)

    def intersects(self, other: "BoundingBox") -> bool:
        return not (
            other.min_x > self.max_x
            or other.max_x < self.min_x
            or other.min_y > self.max_y
            or other.max_y < self.min_y
        )

    def contains_box(self, other: "BoundingBox") -> bool:
        return (
            self.min_x <= other.min_x
            and other.max_x <= self.max_x
            and self.min_y <= other.min_y
            and other.max_y <= self.max_y
        )

    def expanded(self, margin: float) -> "BoundingBox":
        return BoundingBox(self.min_x - margin, self.min_y - margin, self.max_x + margin, self.max_y + margin)


class _Node:
    __slots__ = ("bounds", "depth", "items", "children")

    def __init__(self, bounds: BoundingBox, depth: int):
        self.bounds = bounds
        self.depth = depth
        self.items: List[int] = []
        self.children: Optional[List["_Node"]] = None


class SpatialIndex:
    """
    Build once per generation cycle, query many times, never mutate.

    Below `LINEAR_SCAN_BELOW` entities no tree is built and queries scan the
    arena directly.
    """

    LINEAR_SCAN_BELOW = 64
    NODE_CAPACITY = 16
    MAX_DEPTH = 12

    def __init__(self, extent: BoundingBox, entities: Sequence[VirtualEntity]):
        self.extent = extent
        self._entities = tuple(entities)
        self._boxes = tuple(
            BoundingBox.around(e.virtual_x, e.virtual_y, e.index_radius) for e in self._entities
        )
        self._root: Optional[_Node] = None
        if len(self._entities) >= self.LINEAR_SCAN_BELOW:
            self._root = _Node(extent, 0)
            for idx in range(len(self._entities)):
                self._insert(idx)

    @classmethod
    def build(cls, markers: Iterable[Marker], grid: VirtualGrid, index_radius: float) -> "SpatialIndex":
        """
        Place every marker into virtual space and index it.

        index_radius: water radius in virtual units (used for every marker type).
        """
        entities = []
        for m in markers:
            vx, vy = grid.place(m.cell_x, m.cell_y, m.rel_x, m.rel_y)
            entities.append(VirtualEntity(virtual_x=vx, virtual_y=vy, index_radius=index_radius, marker=m))
        extent = BoundingBox(0.0, 0.0, float(grid.virtual_pixels), float(grid.virtual_pixels))
        return cls(extent, entities)

    def __len__(self) -> int:
        return len(self._entities)

    @property
    def entities(self) -> Sequence[VirtualEntity]:
        return self._entities

    # -------- public API --------

    def query(self, box: BoundingBox) -> List[VirtualEntity]:
        """All entities whose index box intersects `box`, in arena order."""
        if self._root is None:
            hits = [i for i, b in enumerate(self._boxes) if b.intersects(box)]
        else:
            hits = []
            stack = [self._root]
            while stack:
                node = stack.pop()
                hits.extend(i for i in node.items if self._boxes[i].intersects(box))
                if node.children:
                    stack.extend(c for c in node.children if c.bounds.intersects(box))
            hits.sort()
        return [self._entities[i] for i in hits]

    # -------- internals --------

    def _insert(self, idx: int) -> None:
        box = self._boxes[idx]
        node = self._root
        while True:
            if node.children is None:
                node.items.append(idx)
                if len(node.items) > self.NODE_CAPACITY and node.depth < self.MAX_DEPTH:
                    self._split(node)
                return
            child = self._child_for(node, box)
            if child is None:
                # Straddles a split line (or sticks out of the extent): stays here
                node.items.append(idx)
                return
            node = child

    def _split(self, node: _Node) -> None:
        b = node.bounds
        mx = 0.5 * (b.min_x + b.max_x)
        my = 0.5 * (b.min_y + b.max_y)
        d = node.depth + 1
        node.children = [
            _Node(BoundingBox(b.min_x, b.min_y, mx, my), d),
            _Node(BoundingBox(mx, b.min_y, b.max_x, my), d),
            _Node(BoundingBox(b.min_x, my, mx, b.max_y), d),
            _Node(BoundingBox(mx, my, b.max_x, b.max_y), d),
        ]
        items, node.items = node.items, []
        for idx in items:
            child = self._child_for(node, self._boxes[idx])
            if child is None:
                node.items.append(idx)
            else:
                child.items.append(idx)

    @staticmethod
    def _child_for(node: _Node, box: BoundingBox) -> Optional[_Node]:
        for c in node.children or ():
            if c.bounds.contains_box(box):
                return c
        return None


def gutter_filter(entities: Iterable[VirtualEntity], clip: BoundingBox, gutter: float) -> List[VirtualEntity]:
    """
    Keep entities whose centre lies within the clip window grown by `gutter`.

    `clip` is an inclusive pixel window [min, max], so its far edge sits at
    max + 1.
    """
    lo_x = clip.min_x - gutter
    lo_y = clip.min_y - gutter
    hi_x = clip.max_x + 1 + gutter
    hi_y = clip.max_y + 1 + gutter
    return [e for e in entities if lo_x <= e.virtual_x < hi_x and lo_y <= e.virtual_y < hi_y]
