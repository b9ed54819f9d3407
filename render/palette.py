from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

RGB = Tuple[int, int, int]

# Ids above this are tribes; at or below it they are individual players.
TRIBE_ID_THRESHOLD = 1_000_000_000 + 50_000

UNCLAIMED_COLOR: RGB = (0x00, 0x00, 0x00)  # black
PLAYER_COLOR: RGB = (0xA9, 0xA9, 0xA9)     # gray

PALETTE: Tuple[RGB, ...] = (
    (0xFF, 0xFF, 0x00),  # yellow
    (0x00, 0x00, 0xFF),  # blue
    (0x80, 0x00, 0x80),  # purple
    (0xFF, 0x7F, 0x50),  # coral
)


class OwnerClass(Enum):
    UNCLAIMED = "unclaimed"
    PLAYER = "player"
    TRIBE = "tribe"


def classify_owner(owner_id: int) -> OwnerClass:
    if owner_id == 0:
        return OwnerClass.UNCLAIMED
    if owner_id <= TRIBE_ID_THRESHOLD:
        return OwnerClass.PLAYER
    return OwnerClass.TRIBE


def is_tribe(owner_id: int) -> bool:
    return classify_owner(owner_id) is OwnerClass.TRIBE


_CLASS_COLORS: Dict[OwnerClass, RGB] = {
    OwnerClass.UNCLAIMED: UNCLAIMED_COLOR,
    OwnerClass.PLAYER: PLAYER_COLOR,
}


def owner_color(owner_id: int) -> RGB:
    """
    Same tribe, same colour: across runs, tiles and zoom levels, with no
    stored assignment table.
    """
    cls = classify_owner(owner_id)
    if cls is OwnerClass.TRIBE:
        return PALETTE[owner_id % len(PALETTE)]
    return _CLASS_COLORS[cls]
