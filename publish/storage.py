from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from common.logging_setup import get_logger
from service.config import S3Config


log = get_logger("publish.storage")

UPLOAD_CHUNK_BYTES = 8 * 1024 * 1024


class S3Uploader:
    """
    Mirrors files under `www_dir` into a bucket, keyed by
    `key_prefix + <path relative to www_dir>`.

    Params:
        cfg: S3 settings; upload is disabled when cfg.access_id is empty
        www_dir: local root that keys are made relative to
        client: optional pre-built boto3 S3 client (tests, connection reuse)
    """

    def __init__(self, cfg: S3Config, www_dir: str, client: Optional[Any] = None):
        self.cfg = cfg
        self.www_dir = Path(www_dir)
        self.client = client or boto3.client(
            "s3",
            endpoint_url=cfg.url or None,
            aws_access_key_id=cfg.access_id,
            aws_secret_access_key=cfg.secret_key,
            region_name=cfg.region,
        )
        self.transfer = TransferConfig(multipart_threshold=UPLOAD_CHUNK_BYTES, multipart_chunksize=UPLOAD_CHUNK_BYTES)

    @classmethod
    def from_config(cls, cfg: S3Config, www_dir: str) -> Optional["S3Uploader"]:
        """None when no credentials are configured."""
        if not cfg.enabled:
            return None
        return cls(cfg, www_dir)

    def key_for(self, path: Path) -> str:
        rel = os.path.relpath(Path(path), self.www_dir).replace(os.sep, "/")
        return f"{self.cfg.key_prefix}{rel}"

    def upload(self, path: Path) -> bool:
        """Best effort: returns False (and logs) instead of raising."""
        key = self.key_for(path)
        try:
            self.client.upload_file(str(path), self.cfg.bucket, key, Config=self.transfer)
        except (BotoCoreError, ClientError, OSError) as e:
            log.warning("S3 upload failed", extra={"extra": {"key": key, "error": str(e)}})
            return False
        log.debug("S3 upload ok", extra={"extra": {"key": key}})
        return True

    def __call__(self, path: Path) -> None:
        self.upload(path)
