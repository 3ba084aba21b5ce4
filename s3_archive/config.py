"""
s3_archive/config.py — environment settings + the archive base URL.

Environment variables (load them with python-dotenv at the entry point):
  DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME   PostgreSQL connection
  S3_BUCKET, AWS_REGION                             archive bucket
  FEDORA_BASE_URL      HTTP root behind fedora:// locators
  PUBLIC_FILES_ROOT    local directory behind public:// locators
  STAGING_DIR          where origin bytes are staged before upload
  ARCHIVE_CONCURRENCY  worker pool size for a batch (default 4)
  PURGE_ORIGIN         delete origin bytes after a successful archive (default on)

The archive base URL lives in the `settings` table under key `s3_url`
(env S3_URL is the fallback). It is trimmed of its trailing slash on write.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import asyncpg

from s3_archive import db as db_mod
from s3_archive.errors import ConfigurationError

ARCHIVE_URL_KEY = "s3_url"


def _get_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    bucket: str = ""
    region: str = "us-east-1"
    fedora_base_url: str = ""
    public_root: Path = field(default_factory=lambda: Path("./files"))
    staging_dir: Path = field(default_factory=lambda: Path("./staging"))
    concurrency: int = 4
    purge_origin: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bucket=os.environ.get("S3_BUCKET", ""),
            region=os.environ.get("AWS_REGION", "us-east-1"),
            fedora_base_url=os.environ.get("FEDORA_BASE_URL", "").rstrip("/"),
            public_root=Path(os.environ.get("PUBLIC_FILES_ROOT", "./files")),
            staging_dir=Path(os.environ.get("STAGING_DIR", "./staging")),
            concurrency=max(1, int(os.environ.get("ARCHIVE_CONCURRENCY", "4"))),
            purge_origin=_get_bool("PURGE_ORIGIN", True),
        )

    def require_bucket(self) -> str:
        if not self.bucket:
            raise ConfigurationError("S3_BUCKET is not set.")
        return self.bucket


def normalize_base_url(url: str) -> str:
    return url.strip().rstrip("/")


async def get_archive_base_url(pool: asyncpg.Pool) -> str:
    """
    Return the public base URL of the archive bucket.

    Raises ConfigurationError when neither the settings table nor S3_URL
    provide one — a run must not start without it.
    """
    value: Optional[str] = await db_mod.get_setting(pool, ARCHIVE_URL_KEY)
    if not value:
        value = normalize_base_url(os.environ.get("S3_URL", ""))
    if not value:
        raise ConfigurationError(
            "Archive base URL is not configured (set it with `s3-archive set-url`)."
        )
    return value


async def set_archive_base_url(pool: asyncpg.Pool, url: str) -> str:
    """Store the archive base URL without its trailing slash; return what was stored."""
    value = normalize_base_url(url)
    if not value:
        raise ConfigurationError("Archive base URL must not be empty.")
    await db_mod.set_setting(pool, ARCHIVE_URL_KEY, value)
    return value
