from __future__ import annotations

import heapq
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from common.types import Marker, TribeCount
from render.palette import is_tribe


def count_owners(markers: Iterable[Marker], tribes_only: bool = False) -> Dict[int, TribeCount]:
    """
    One pass over the markers, giving {owner_id: TribeCount}.

    Owner id 0 marks an unclaimed flag and is never counted, whether or not
    `tribes_only` is set; with `tribes_only` players are dropped as well.
    """
    counts: Dict[int, TribeCount] = {}
    for m in markers:
        if m.owner_id == 0 or (tribes_only and not is_tribe(m.owner_id)):
            continue
        tc = counts.get(m.owner_id)
        if tc is None:
            tc = counts[m.owner_id] = TribeCount(owner_id=m.owner_id)
        tc.count += 1
    return counts


def _rank_key(tc: TribeCount) -> Tuple[int, int]:
    # Heap order: the weakest entry (lowest count, then highest id) sits on top
    return (tc.count, -tc.owner_id)


def top_n_owners(counts: Mapping[int, TribeCount], n: int) -> List[int]:
    """
    Owner ids of the N highest counts, ordered by (count desc, owner id asc).

    Keeps a min-heap of at most n entries, so memory is O(n) whatever the
    number of owners. Output matches a full sort on the same key.

    `counts` is ranked as given: no owner id (0 included) is filtered here,
    that happens in count_owners.
    """
    if n <= 0:
        return []
    heap: List[Tuple[Tuple[int, int], int]] = []
    for tc in counts.values():
        item = (_rank_key(tc), tc.owner_id)
        if len(heap) < n:
            heapq.heappush(heap, item)
        elif item > heap[0]:
            heapq.heapreplace(heap, item)
    heap.sort(reverse=True)
    return [owner_id for _, owner_id in heap]


def build_leaderboard(owner_ids: Iterable[int], names: Optional[Mapping[int, str]] = None) -> List[Dict]:
    """
    toptribes JSON rows:
        [{"tribeID": 1000050123, "tribeName": "...", "index": 0}, ...]
    """
    names = names or {}
    return [
        {"tribeID": owner_id, "tribeName": names.get(owner_id, ""), "index": i}
        for i, owner_id in enumerate(owner_ids)
    ]
