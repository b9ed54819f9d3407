"""
Ingest — Marker Snapshots

Turns the raw claim-flag records held in the territory store into immutable
`MarkerSnapshot`s:
- records.py: fixed-layout record decoding + validation
- fingerprint.py: order-independent CRC-32 fingerprint over a snapshot
- source.py: marker sources (Redis-backed, in-memory)

Usage:
    from ingest.source import RedisMarkerSource
    snap = RedisMarkerSource(client, servers_x=3, servers_y=3).fetch()
"""
from .fingerprint import record_checksum, snapshot_fingerprint
from .records import decode_record, encode_record

__all__ = ["decode_record", "encode_record", "record_checksum", "snapshot_fingerprint"]
