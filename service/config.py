from __future__ import annotations

"""
Service configuration.

Loaded once from YAML (config/params.yaml) into an immutable value that is
handed to every worker at construction. A missing file gives the defaults.

Example:
    cfg = TerritoryConfig.from_yaml("config/params.yaml")
    cfg.game_resolution  # 10240 for game_size 2048
"""

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from common.logging_setup import get_logger


log = get_logger("service.config")

# Fixed by world.map format version 2; not configurable.
BITS_PER_PIXEL = 32


@dataclass(frozen=True)
class RedisConfig:
    name: str = "Default"
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    db: int = 0


@dataclass(frozen=True)
class S3Config:
    url: str = ""            # alternative endpoint (e.g. Minio); empty = AWS default
    region: str = "us-east-1"
    access_id: str = ""      # empty disables upload
    secret_key: str = ""
    bucket: str = ""
    key_prefix: str = ""

    def __post_init__(self) -> None:
        if self.key_prefix and not self.key_prefix.endswith("/"):
            object.__setattr__(self, "key_prefix", self.key_prefix + "/")

    @property
    def enabled(self) -> bool:
        return bool(self.access_id)


def _default_databases() -> Tuple[RedisConfig, ...]:
    return (RedisConfig(name="Default"), RedisConfig(name="TerritoryDB"))


@dataclass(frozen=True)
class TerritoryConfig:
    enable_tile_generation: bool = False
    enable_game_generation: bool = True
    host: str = ""
    port: int = 8881
    alternative_url: str = ""       # public URL (e.g. S3/CDN) announced to game clients
    www_dir: str = "./www"
    fetch_rate_seconds: float = 15.0
    databases: Tuple[RedisConfig, ...] = field(default_factory=_default_databases)
    servers_x: int = 3
    servers_y: int = 3
    game_size: int = 2048           # in-game map pixels
    tile_size: int = 256            # pixels per tile
    max_zoom: int = 7               # zoom levels 0 .. max_zoom-1
    grid_size: float = 1_400_000.0  # game units per server cell
    land_radius_ue: float = 10_000.0
    water_radius_ue: float = 21_000.0
    circle_alpha: int = 128         # maximum tile opacity, 0..255
    leaderboard_size: int = 0       # 0 disables toptribes.json
    tile_workers: Optional[int] = None
    log_level: str = "INFO"
    s3: S3Config = field(default_factory=S3Config)

    def __post_init__(self) -> None:
        if self.servers_x <= 0 or self.servers_y <= 0:
            raise ValueError("servers_x/servers_y must be > 0")
        if self.tile_size <= 0 or self.game_size <= 0:
            raise ValueError("tile_size/game_size must be > 0")
        if not (1 <= self.max_zoom <= 16):
            raise ValueError("max_zoom must be in [1, 16]")
        if self.grid_size <= 0:
            raise ValueError("grid_size must be > 0")
        if self.land_radius_ue < 0 or self.water_radius_ue < 0:
            raise ValueError("marker radii must be >= 0")
        if not (0 <= self.circle_alpha <= 255):
            raise ValueError("circle_alpha must be in [0, 255]")
        if self.fetch_rate_seconds <= 0:
            raise ValueError("fetch_rate_seconds must be > 0")
        if self.game_resolution > 0xFFFF:
            raise ValueError("game_size too large for u16 snapshot coordinates")

    # -------- derived --------

    @property
    def tile_virtual_pixels(self) -> int:
        """Virtual extent of the tile pyramid, the same at every zoom."""
        return self.tile_size * (1 << (self.max_zoom - 1))

    @property
    def game_resolution(self) -> int:
        """world.map source resolution: game_size * floor(sqrt(32))."""
        return self.game_size * int(math.floor(math.sqrt(BITS_PER_PIXEL)))

    @property
    def servers(self) -> int:
        return max(self.servers_x, self.servers_y)

    @property
    def public_endpoint(self) -> str:
        if self.alternative_url:
            return self.alternative_url
        if self.host:
            return f"{self.host}:{self.port}"
        return f"localhost:{self.port}"

    def database(self, name: str) -> RedisConfig:
        for db in self.databases:
            if db.name == name:
                return db
        log.warning("Database not configured, using localhost",
                    extra={"extra": {"name": name}})
        return RedisConfig(name=name)

    # -------- loading --------

    @classmethod
    def from_dict(cls, D: Mapping[str, Any]) -> "TerritoryConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(D) - known)
        if unknown:
            log.warning("Ignoring unknown config keys", extra={"extra": {"keys": unknown}})
        kwargs: Dict[str, Any] = {k: v for k, v in D.items() if k in known}
        if "databases" in kwargs:
            kwargs["databases"] = tuple(RedisConfig(**dict(d)) for d in (kwargs["databases"] or ()))
        if "s3" in kwargs:
            kwargs["s3"] = S3Config(**dict(kwargs["s3"] or {}))
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str = "config/params.yaml") -> "TerritoryConfig":
        p = Path(path)
        if not p.exists():
            log.warning("Config file not found, using defaults", extra={"extra": {"path": str(p)}})
            return cls()
        with p.open("r") as f:
            D = yaml.safe_load(f) or {}
        return cls.from_dict(D)
