"""
Unit tests for marker ingestion (records, fingerprint, sources)
"""

import pytest
import numpy as np
import zlib
import os
import sys
from unittest.mock import Mock

import redis

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.types import MarkerType
from ingest.fingerprint import fingerprint_records, record_checksum, snapshot_fingerprint
from ingest.records import RECORD_LEN, MalformedRecordError, decode_record, encode_record
from ingest.source import RedisMarkerSource, StaticMarkerSource, build_snapshot, cell_key

TRIBE = 1_000_050_001


class TestRecords:
    """Test cases for raw record decoding"""

    def test_decode_valid_record(self):
        """A stored 16-byte record decodes to a marker in its cell"""
        raw = encode_record(TRIBE, 0.5, 0.25, MarkerType.WATER)
        assert len(raw) == RECORD_LEN

        m = decode_record(raw, 2, 1)
        assert m.owner_id == TRIBE
        assert m.cell == (2, 1)
        assert m.rel_x == pytest.approx(0.5, abs=1e-4)
        assert m.rel_y == pytest.approx(0.25, abs=1e-4)
        assert m.marker_type is MarkerType.WATER

    def test_reserved_tail_is_optional(self):
        """13 bytes is enough; the trailing bytes are ignored"""
        short = encode_record(7, 1.0, 0.0, MarkerType.LAND, reserved=b"")
        padded = encode_record(7, 1.0, 0.0, MarkerType.LAND, reserved=b"\xff\xff\xff")
        assert decode_record(short, 0, 0) == decode_record(padded, 0, 0)

    def test_full_scale_position(self):
        """Raw 0xFFFF maps to exactly 1.0"""
        m = decode_record(encode_record(7, 1.0, 1.0, MarkerType.LAND), 0, 0)
        assert m.rel_x == 1.0 and m.rel_y == 1.0

    def test_too_short_record(self):
        """Records under 13 bytes are malformed"""
        with pytest.raises(MalformedRecordError, match="too short"):
            decode_record(b"\x00" * 12, 0, 0)

    def test_unknown_marker_type(self):
        """Type codes other than 0/1 are malformed"""
        raw = bytearray(encode_record(7, 0.1, 0.1, MarkerType.LAND))
        raw[12] = 2
        with pytest.raises(MalformedRecordError, match="unknown marker type"):
            decode_record(bytes(raw), 0, 0)


class TestFingerprint:
    """Test cases for the snapshot fingerprint"""

    def test_order_independent(self):
        """Any permutation of the same records gives the same fingerprint"""
        rng = np.random.default_rng(17)
        records = [
            encode_record(int(o), float(x), float(y), MarkerType(int(t)))
            for o, x, y, t in zip(
                rng.integers(1, 2**40, 200), rng.uniform(0, 1, 200),
                rng.uniform(0, 1, 200), rng.integers(0, 2, 200))
        ]
        expected = fingerprint_records(records)
        for _ in range(5):
            shuffled = [records[i] for i in rng.permutation(len(records))]
            assert fingerprint_records(shuffled) == expected
        assert fingerprint_records(list(reversed(records))) == expected
        assert snapshot_fingerprint([3, 1, 2]) == snapshot_fingerprint([1, 2, 3])

    @pytest.mark.parametrize("changed", [
        encode_record(TRIBE + 1, 0.2, 0.2, MarkerType.LAND),   # owner
        encode_record(TRIBE, 0.3, 0.2, MarkerType.LAND),       # x
        encode_record(TRIBE, 0.2, 0.3, MarkerType.LAND),       # y
        encode_record(TRIBE, 0.2, 0.2, MarkerType.WATER),      # type
    ], ids=["owner", "x", "y", "type"])
    def test_sensitive_to_content(self, changed):
        """Changing one field of one record changes the fingerprint"""
        base = [encode_record(1, 0.1, 0.1, MarkerType.LAND), encode_record(TRIBE, 0.2, 0.2, MarkerType.LAND)]
        assert fingerprint_records(base) != fingerprint_records([base[0], changed])

    def test_record_checksum_is_crc32(self):
        """Per-record checksum is plain CRC-32"""
        raw = encode_record(1, 0.0, 0.0, MarkerType.LAND)
        assert record_checksum(raw) == zlib.crc32(raw)

    def test_known_value(self):
        """Checksums are packed little-endian u32 after sorting"""
        expected = zlib.crc32((1).to_bytes(4, "little") + (2).to_bytes(4, "little"))
        assert snapshot_fingerprint([2, 1]) == expected

    def test_empty_snapshot(self):
        """No records fingerprints the empty byte string"""
        assert snapshot_fingerprint([]) == zlib.crc32(b"")


class TestSources:
    """Test cases for marker sources"""

    def test_cell_key_layout(self):
        """Cell keys pack x into the high 16 bits"""
        assert cell_key(0, 0) == "territorymapdata:0"
        assert cell_key(1, 0) == "territorymapdata:65536"
        assert cell_key(2, 3) == "territorymapdata:131075"

    def test_malformed_record_skips_cell(self):
        """A bad record drops its whole cell; other cells are kept"""
        good = encode_record(TRIBE, 0.5, 0.5, MarkerType.LAND)
        bad = b"\x01\x02"
        snap = build_snapshot([((0, 0), [good, bad]), ((1, 0), [good])])

        assert snap.skipped_cells == ((0, 0),)
        assert not snap.complete
        assert len(snap) == 1
        assert snap.markers[0].cell == (1, 0)
        assert snap.fingerprint == fingerprint_records([good])

    def test_static_source_is_deterministic(self):
        """Marker order does not depend on the order records were supplied in"""
        recs = [encode_record(i, 0.1, 0.1 * (i % 10), MarkerType.LAND) for i in range(1, 20)]
        a = StaticMarkerSource({(0, 0): recs}).fetch()
        b = StaticMarkerSource({(0, 0): list(reversed(recs))}).fetch()
        assert a.markers == b.markers
        assert a.fingerprint == b.fingerprint
        assert a.complete

    def test_redis_source_reads_every_cell(self):
        """smembers is issued once per cell of the grid"""
        rec = encode_record(TRIBE, 0.5, 0.5, MarkerType.WATER)
        client = Mock()
        client.smembers.side_effect = lambda key: {rec} if key == cell_key(1, 1) else set()

        snap = RedisMarkerSource(client, 2, 2).fetch()

        assert client.smembers.call_count == 4
        assert len(snap) == 1
        assert snap.markers[0].cell == (1, 1)
        assert snap.complete

    def test_redis_error_skips_cell(self):
        """A store error for one cell is logged and that cell is skipped"""
        rec = encode_record(TRIBE, 0.5, 0.5, MarkerType.LAND)

        def smembers(key):
            if key == cell_key(0, 0):
                raise redis.ConnectionError("down")
            return {rec}

        client = Mock()
        client.smembers.side_effect = smembers

        snap = RedisMarkerSource(client, 2, 1).fetch()
        assert snap.skipped_cells == ((0, 0),)
        assert [m.cell for m in snap.markers] == [(1, 0)]

    def test_invalid_grid(self):
        """Grid dimensions must be positive"""
        with pytest.raises(ValueError):
            RedisMarkerSource(Mock(), 0, 3)
