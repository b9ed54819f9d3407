from __future__ import annotations

"""
Territory map server.

Serves the www dir (tiles + game artifacts) over HTTP and runs the enabled
generation workers on daemon threads.

Examples:
  python -m service.server --config config/params.yaml
  LOG_LEVEL=DEBUG python -m service.server --port 9000
"""

import argparse
import threading
from pathlib import Path
from typing import List, Sequence

import redis
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from common.logging_setup import get_logger, setup_logging
from ingest.source import RedisMarkerSource
from publish.notify import UrlRegistry
from publish.storage import S3Uploader
from service.config import RedisConfig, TerritoryConfig
from service.workers import GameWorker, PollingWorker, TileWorker


log = get_logger("service.server")

CACHE_CONTROL = "max-age=60"


def create_app(config: TerritoryConfig, workers: Sequence[PollingWorker] = ()) -> FastAPI:
    www = Path(config.www_dir)
    www.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="Territory Map Server", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "HEAD"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def cache_control(request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = CACHE_CONTROL
        return response

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "www_dir": str(www),
            "workers": [w.status() for w in workers],
        }

    # Mounted last so the routes above take precedence over files
    app.mount("/", StaticFiles(directory=str(www)), name="www")
    return app


def redis_client(cfg: RedisConfig) -> redis.Redis:
    return redis.Redis(host=cfg.host, port=cfg.port, password=cfg.password or None, db=cfg.db)


def build_workers(config: TerritoryConfig) -> List[PollingWorker]:
    default_client = redis_client(config.database("Default"))
    territory_client = redis_client(config.database("TerritoryDB"))
    source = RedisMarkerSource(territory_client, config.servers_x, config.servers_y)
    uploader = S3Uploader.from_config(config.s3, config.www_dir)

    workers: List[PollingWorker] = []
    if config.enable_tile_generation:
        workers.append(TileWorker(source, config, config.www_dir, uploader))
    if config.enable_game_generation:
        registry = UrlRegistry(territory_client, default_client, config.public_endpoint)
        workers.append(GameWorker(source, config, config.www_dir, uploader, registry))
    return workers


def start_workers(workers: Sequence[PollingWorker], stop: threading.Event) -> List[threading.Thread]:
    threads = []
    for w in workers:
        t = threading.Thread(target=w.run_forever, args=(stop,), name=f"{w.name}-worker", daemon=True)
        t.start()
        threads.append(t)
    return threads


def main() -> None:
    ap = argparse.ArgumentParser(description="Territory map tile/world server")
    ap.add_argument("--config", default="config/params.yaml", help="Path to YAML config")
    ap.add_argument("--host", default=None, help="Override bind host")
    ap.add_argument("--port", type=int, default=None, help="Override bind port")
    ap.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR")
    args = ap.parse_args()

    config = TerritoryConfig.from_yaml(args.config)
    setup_logging(args.log_level or config.log_level)

    workers = build_workers(config)
    app = create_app(config, workers)

    stop = threading.Event()
    threads = start_workers(workers, stop)

    host = args.host or config.host or "0.0.0.0"
    port = args.port or config.port
    log.info("Listening", extra={"extra": {"host": host, "port": port, "workers": [w.name for w in workers]}})
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    finally:
        stop.set()
        for t in threads:
            t.join(timeout=1.0)


if __name__ == "__main__":
    main()
