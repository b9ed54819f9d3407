#!/usr/bin/env python3
"""
Seed synthetic claim flags for local development.

Writes random raw records into the territory Redis layout
(territorymapdata:{x<<16|y}), or with --render renders one tile/world cycle
straight from the synthetic records into a www dir without Redis.

Examples:
  python scripts/seed_markers.py --owners 40 --per-cell 200
  python scripts/seed_markers.py --render www --seed 7 --max-zoom 4
"""
from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List

import numpy as np
import redis

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from common.logging_setup import get_logger, setup_logging  # noqa: E402
from common.types import Cell, MarkerType  # noqa: E402
from ingest.records import encode_record  # noqa: E402
from ingest.source import StaticMarkerSource, cell_key  # noqa: E402
from render.palette import TRIBE_ID_THRESHOLD  # noqa: E402
from service.config import TerritoryConfig  # noqa: E402
from service.workers import GameWorker, TileWorker  # noqa: E402


log = get_logger("scripts.seed_markers")


def synthesize(cfg: TerritoryConfig, owners: int, per_cell: int, water_frac: float, seed: int) -> Dict[Cell, List[bytes]]:
    """
    Clustered claims: each owner gets a home point and scatters flags around
    it, which gives contiguous territories instead of noise.
    """
    rng = np.random.default_rng(seed)
    owner_ids = TRIBE_ID_THRESHOLD + 1 + rng.choice(10_000_000, size=owners, replace=False)
    homes = rng.uniform(0.0, 1.0, size=(owners, 2))
    spread = 0.08

    cells: Dict[Cell, List[bytes]] = {}
    for x in range(cfg.servers_x):
        for y in range(cfg.servers_y):
            picks = rng.integers(0, owners, size=per_cell)
            jitter = rng.normal(0.0, spread, size=(per_cell, 2))
            pos = np.clip(homes[picks] + jitter, 0.0, 1.0)
            water = rng.random(per_cell) < water_frac
            cells[(x, y)] = [
                encode_record(
                    int(owner_ids[i]),
                    float(px), float(py),
                    MarkerType.WATER if w else MarkerType.LAND,
                )
                for i, (px, py), w in zip(picks, pos, water)
            ]
    return cells


def write_redis(client: redis.Redis, cells: Dict[Cell, List[bytes]], clear: bool) -> int:
    pipe = client.pipeline()
    n = 0
    for (x, y), records in cells.items():
        key = cell_key(x, y)
        if clear:
            pipe.delete(key)
        if records:
            pipe.sadd(key, *records)
        n += len(records)
    pipe.execute()
    return n


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default="config/params.yaml")
    ap.add_argument("--owners", type=int, default=24)
    ap.add_argument("--per-cell", type=int, default=150)
    ap.add_argument("--water-frac", type=float, default=0.2)
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--clear", action="store_true", help="Delete existing cell sets first")
    ap.add_argument("--render", default=None, help="Render into this www dir instead of writing Redis")
    ap.add_argument("--max-zoom", type=int, default=None, help="Override max_zoom for --render")
    args = ap.parse_args()

    setup_logging()
    cfg = TerritoryConfig.from_yaml(args.config)
    cells = synthesize(cfg, args.owners, args.per_cell, args.water_frac, args.seed)

    if args.render:
        if args.max_zoom is not None:
            cfg = replace(cfg, max_zoom=args.max_zoom)
        source = StaticMarkerSource(cells)
        for worker in (TileWorker(source, cfg, args.render), GameWorker(source, cfg, args.render)):
            result = worker.run_cycle()
            log.info("Rendered", extra={"extra": {"worker": worker.name, "written": result.written,
                                                  "errors": result.errors}})
        return

    db = cfg.database("TerritoryDB")
    client = redis.Redis(host=db.host, port=db.port, password=db.password or None, db=db.db)
    n = write_redis(client, cells, args.clear)
    log.info("Seeded markers", extra={"extra": {"records": n, "cells": len(cells)}})


if __name__ == "__main__":
    main()
