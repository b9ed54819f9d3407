from __future__ import annotations

"""
Background generation workers.

Each worker owns one loop on its own thread:

    fetch snapshot -> same fingerprint as last publish? -> sleep
                   -> generate + publish artifacts     -> remember fingerprint

The fingerprint only advances when every artifact of the cycle was published,
so a failed cycle is retried on the next interval even if nothing changed.
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from common.logging_setup import get_logger
from common.types import Cell, MarkerSnapshot
from common.utils import iso_now_ms, publish_bytes, timer_ms
from ingest.source import MarkerSource
from publish.notify import UrlRegistry
from ranking.top_tribes import build_leaderboard, count_owners, top_n_owners
from render.tile_pyramid import TilePyramidGenerator
from render.world_snapshot import WorldSnapshotCodec
from service.config import TerritoryConfig


log = get_logger("service.workers")

TILES_DIR = "territoryTiles"
GAME_DIR = "gameTiles"
LEADERBOARD_FILE = "toptribes.json"

Uploader = Callable[[Path], Any]


@dataclass
class CycleResult:
    fingerprint: int
    changed: bool
    written: int = 0
    errors: int = 0
    skipped_cells: Tuple[Cell, ...] = ()
    store_unavailable: bool = False
    elapsed_ms: float = 0.0
    finished_at: str = field(default_factory=iso_now_ms)

    @property
    def ok(self) -> bool:
        return self.errors == 0


class PollingWorker:
    """
    Base loop; subclasses implement `generate(snapshot) -> (written, errors)`.

    Params:
        source: anything with fetch() -> MarkerSnapshot
        config: immutable TerritoryConfig
        out_dir: directory this worker publishes into
        uploader: optional callable invoked with each published path
    """

    name = "worker"

    def __init__(
        self,
        source: MarkerSource,
        config: TerritoryConfig,
        out_dir: Path,
        uploader: Optional[Uploader] = None,
    ):
        self.source = source
        self.config = config
        self.out_dir = Path(out_dir)
        self.uploader = uploader
        self.last_fingerprint: Optional[int] = None
        self.last_result: Optional[CycleResult] = None
        self.cycles = 0

    def generate(self, snapshot: MarkerSnapshot) -> Tuple[int, int]:
        raise NotImplementedError

    def on_start(self) -> None:
        pass

    def run_cycle(self) -> CycleResult:
        snapshot = self.source.fetch()
        self.cycles += 1
        if self._store_unavailable(snapshot):
            # Keep serving the last published artifacts
            log.warning("No cell could be read, skipping generation",
                        extra={"extra": {"worker": self.name, "skipped_cells": len(snapshot.skipped_cells)}})
            result = CycleResult(fingerprint=snapshot.fingerprint, changed=False,
                                 skipped_cells=snapshot.skipped_cells, store_unavailable=True)
            self.last_result = result
            return result

        if snapshot.fingerprint == self.last_fingerprint:
            log.debug("Fingerprint unchanged, skipping generation",
                      extra={"extra": {"worker": self.name, "fingerprint": snapshot.fingerprint}})
            result = CycleResult(fingerprint=snapshot.fingerprint, changed=False,
                                 skipped_cells=snapshot.skipped_cells)
            self.last_result = result
            return result

        (written, errors), dt_ms = timer_ms(self.generate)(snapshot)
        result = CycleResult(
            fingerprint=snapshot.fingerprint,
            changed=True,
            written=written,
            errors=errors,
            skipped_cells=snapshot.skipped_cells,
            elapsed_ms=round(dt_ms, 1),
        )
        if result.ok:
            self.last_fingerprint = snapshot.fingerprint
        log.info("Generation cycle finished", extra={"extra": {
            "worker": self.name,
            "markers": len(snapshot),
            "fingerprint": snapshot.fingerprint,
            "written": written,
            "errors": errors,
            "skipped_cells": [list(c) for c in snapshot.skipped_cells],
            "ms": result.elapsed_ms,
        }})
        self.last_result = result
        return result

    def _store_unavailable(self, snapshot: MarkerSnapshot) -> bool:
        cells = self.config.servers_x * self.config.servers_y
        return len(set(snapshot.skipped_cells)) >= cells

    def run_forever(self, stop: threading.Event) -> None:
        log.info("Worker started", extra={"extra": {
            "worker": self.name, "interval_s": self.config.fetch_rate_seconds}})
        self.on_start()
        while not stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                log.exception("Generation cycle failed", extra={"extra": {"worker": self.name}})
            if stop.wait(self.config.fetch_rate_seconds):
                break
        log.info("Worker stopped", extra={"extra": {"worker": self.name}})

    def status(self) -> Dict[str, Any]:
        r = self.last_result
        return {
            "worker": self.name,
            "cycles": self.cycles,
            "fingerprint": self.last_fingerprint,
            "last_cycle": None if r is None else {
                "changed": r.changed,
                "store_unavailable": r.store_unavailable,
                "written": r.written,
                "errors": r.errors,
                "skipped_cells": [list(c) for c in r.skipped_cells],
                "ms": r.elapsed_ms,
                "at": r.finished_at,
            },
        }

    def _upload(self, path: Path) -> None:
        if self.uploader is not None:
            self.uploader(path)


class TileWorker(PollingWorker):
    """Regenerates the web tile pyramid under <www_dir>/territoryTiles."""

    name = "tiles"

    def __init__(self, source, config, www_dir, uploader=None):
        super().__init__(source, config, Path(www_dir) / TILES_DIR, uploader)
        self.generator = TilePyramidGenerator(config)

    def generate(self, snapshot: MarkerSnapshot) -> Tuple[int, int]:
        results = self.generator.generate_all(snapshot.markers, self.out_dir, on_publish=self.uploader)
        written = sum(r.tiles_written for r in results)
        errors = sum(1 for r in results if not r.ok)
        return written, errors


class GameWorker(PollingWorker):
    """
    Regenerates world.map (and optionally toptribes.json) under
    <www_dir>/gameTiles, then announces the new URL to game servers.
    """

    name = "game"

    def __init__(self, source, config, www_dir, uploader=None, registry: Optional[UrlRegistry] = None):
        super().__init__(source, config, Path(www_dir) / GAME_DIR, uploader)
        self.codec = WorldSnapshotCodec(config)
        self.registry = registry

    def on_start(self) -> None:
        # Servers that started before us still need the URL
        if self.registry is not None:
            self.registry.announce()

    def generate(self, snapshot: MarkerSnapshot) -> Tuple[int, int]:
        written = errors = 0
        try:
            path = self.codec.generate(snapshot.markers, self.out_dir)
        except OSError as e:
            log.error("World snapshot publish failed", extra={"extra": {"error": str(e)}})
            return written, errors + 1
        written += 1
        self._upload(path)
        if self.registry is not None:
            self.registry.announce()

        if self.config.leaderboard_size > 0:
            try:
                self.write_leaderboard(snapshot)
                written += 1
            except OSError as e:
                log.error("Leaderboard publish failed", extra={"extra": {"error": str(e)}})
                errors += 1
        return written, errors

    def write_leaderboard(self, snapshot: MarkerSnapshot) -> Path:
        counts = count_owners(snapshot.markers, tribes_only=True)
        rows = build_leaderboard(top_n_owners(counts, self.config.leaderboard_size))
        path = publish_bytes(self.out_dir / LEADERBOARD_FILE, json.dumps(rows).encode("utf-8"))
        self._upload(path)
        return path
