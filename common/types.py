from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Tuple


U64_MAX = 0xFFFF_FFFF_FFFF_FFFF
U32_MAX = 0xFFFF_FFFF

Cell = Tuple[int, int]
Claim = Tuple[int, int]


class MarkerType(IntEnum):
    """Marker type code as stored in the raw record (byte 12)."""
    LAND = 0
    WATER = 1


@dataclass(frozen=True, slots=True)
class Marker:
    """
    A single territory claim flag.

    Attributes:
        cell_x, cell_y: server cell the relative position is measured in.
        owner_id: tribe or player id (u64).
        rel_x, rel_y: fractions of the cell's coordinate span, [0, 1].
        marker_type: LAND or WATER.
    """
    cell_x: int
    cell_y: int
    owner_id: int
    rel_x: float
    rel_y: float
    marker_type: MarkerType

    def __post_init__(self) -> None:
        if self.cell_x < 0 or self.cell_y < 0:
            raise ValueError("cell coordinates must be >= 0")
        if not (0 <= self.owner_id <= U64_MAX):
            raise ValueError("owner_id out of u64 range")
        if not (0.0 <= self.rel_x <= 1.0) or not (0.0 <= self.rel_y <= 1.0):
            raise ValueError("relative position out of [0, 1]")
        if not isinstance(self.marker_type, MarkerType):
            object.__setattr__(self, "marker_type", MarkerType(self.marker_type))

    @property
    def cell(self) -> Cell:
        return (self.cell_x, self.cell_y)


@dataclass(frozen=True, slots=True)
class MarkerSnapshot:
    """
    Everything one fetch from the marker store produced.

    `skipped_cells` lists cells whose records were dropped (store error or a
    malformed record); an empty tuple means the snapshot is complete.
    """
    markers: Tuple[Marker, ...]
    fingerprint: int
    skipped_cells: Tuple[Cell, ...] = ()

    @property
    def complete(self) -> bool:
        return not self.skipped_cells

    def __len__(self) -> int:
        return len(self.markers)


@dataclass(frozen=True, slots=True)
class VirtualEntity:
    """Marker placed in virtual space; `index_radius` is always the water radius."""
    virtual_x: float
    virtual_y: float
    index_radius: float
    marker: Marker


@dataclass(slots=True)
class OwnerAggregate:
    """Per-owner claim pixels for the world snapshot."""
    owner_id: int
    land_claims: List[Claim] = field(default_factory=list)
    water_claims: List[Claim] = field(default_factory=list)

    def add(self, marker_type: MarkerType, claim: Claim) -> None:
        if marker_type == MarkerType.LAND:
            self.land_claims.append(claim)
        else:
            self.water_claims.append(claim)


@dataclass(slots=True)
class TribeCount:
    owner_id: int
    count: int = 0

    def __post_init__(self) -> None:
        if self.count < 0 or self.count > U32_MAX:
            raise ValueError("count out of u32 range")
