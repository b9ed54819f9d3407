"""
Unit tests for owner counting and top-N ranking
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import Marker, MarkerType, TribeCount
from ranking.top_tribes import build_leaderboard, count_owners, top_n_owners


def _counts(d):
    return {k: TribeCount(owner_id=k, count=v) for k, v in d.items()}


class TestTopN:
    """Test cases for top_n_owners"""

    def test_tie_break_by_lower_id(self):
        """Equal counts rank the lower id first"""
        assert top_n_owners(_counts({10: 5, 20: 5, 5: 3}), 2) == [10, 20]

    def test_n_larger_than_owners(self):
        """Result length is min(n, distinct owners)"""
        assert top_n_owners(_counts({10: 5, 20: 5, 5: 3}), 10) == [10, 20, 5]

    def test_non_positive_n(self):
        """n <= 0 gives an empty list"""
        assert top_n_owners(_counts({1: 1}), 0) == []
        assert top_n_owners(_counts({1: 1}), -3) == []
        assert top_n_owners({}, 5) == []

    def test_matches_full_sort(self):
        """Bounded heap agrees with sorting everything"""
        rng = np.random.default_rng(5)
        ids = rng.choice(10_000, size=300, replace=False)
        counts = _counts({int(i): int(c) for i, c in zip(ids, rng.integers(1, 20, 300))})
        expected = [k for k, _ in sorted(((k, tc.count) for k, tc in counts.items()),
                                         key=lambda kv: (-kv[1], kv[0]))]
        for n in (1, 7, 50, 300, 400):
            assert top_n_owners(counts, n) == expected[:n]


class TestCounting:
    """Test cases for count_owners / build_leaderboard"""

    def test_count_owners(self):
        """Ownerless markers are ignored; tribes_only drops players"""
        tribe = 1_000_050_010
        markers = [
            Marker(0, 0, tribe, 0.1, 0.1, MarkerType.LAND),
            Marker(0, 0, tribe, 0.2, 0.1, MarkerType.WATER),
            Marker(0, 0, 77, 0.3, 0.1, MarkerType.LAND),
            Marker(0, 0, 0, 0.4, 0.1, MarkerType.LAND),
        ]
        all_counts = count_owners(markers)
        assert {k: v.count for k, v in all_counts.items()} == {tribe: 2, 77: 1}
        assert list(count_owners(markers, tribes_only=True)) == [tribe]

    def test_unclaimed_owner(self):
        """Owner 0 is never counted, but top_n_owners ranks raw counts as given"""
        markers = [Marker(0, 0, 0, 0.1, 0.1, MarkerType.LAND)] * 3 + [Marker(0, 0, 9, 0.2, 0.2, MarkerType.LAND)]
        assert list(count_owners(markers, tribes_only=False)) == [9]
        assert top_n_owners(_counts({0: 3, 9: 1}), 2) == [0, 9]

    def test_tribe_count_range(self):
        """Counts are u32"""
        with pytest.raises(ValueError):
            TribeCount(owner_id=1, count=-1)

    def test_leaderboard_rows(self):
        """Rows carry id, name and rank index"""
        rows = build_leaderboard([30, 10], names={10: "Ten"})
        assert rows == [
            {"tribeID": 30, "tribeName": "", "index": 0},
            {"tribeID": 10, "tribeName": "Ten", "index": 1},
        ]
