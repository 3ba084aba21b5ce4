"""
s3_archive/storage.py — AWS S3 operations for the archive.

Archive locators use the s3:// scheme with the bucket implied by S3_BUCKET:
    s3://2023-05/n_42-scan.tif  →  s3://{S3_BUCKET}/2023-05/n_42-scan.tif

Operations used by the copier and the transport:
  - ensure_directory : write a "prefix/" marker object (idempotent)
  - move             : upload a staged local file, then unlink it
  - file_exists      : HEAD check
  - read_object      : fetch a whole object

All functions are synchronous (boto3 is sync). Callers run them inside
asyncio.to_thread() so they don't block the event loop.

Credentials are read from the environment:
  AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION
"""
import logging
import os
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from s3_archive.utils import split_uri

log = logging.getLogger("s3_archive.storage")

SCHEME = "s3"

# ── Lazy singleton client ──────────────────────────────────────────────────────

_s3_client = None


def _client():
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client(
            "s3",
            region_name=os.environ.get("AWS_REGION", "us-east-1"),
            aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
        )
    return _s3_client


def key_for(uri: str) -> str:
    """
    Object key addressed by an s3:// locator.

    Raises ValueError for any other scheme.
    """
    scheme, target = split_uri(uri)
    if scheme != SCHEME:
        raise ValueError(f"not an archive locator: {uri!r}")
    return target.lstrip("/")


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound")


# ── Public API ─────────────────────────────────────────────────────────────────

def file_exists(bucket: str, uri: str) -> bool:
    """Return True if the object already exists in S3 (cheap HEAD request)."""
    try:
        _client().head_object(Bucket=bucket, Key=key_for(uri))
        return True
    except ClientError as e:
        if _is_missing(e):
            return False
        raise


def ensure_directory(bucket: str, uri: str) -> None:
    """
    Make sure the directory marker for `uri` exists.

    Several workers may create the same directory at once; an existing
    marker, or one written concurrently, is not an error.
    """
    prefix = key_for(uri).rstrip("/")
    if not prefix:
        return
    marker = f"{prefix}/"
    try:
        _client().head_object(Bucket=bucket, Key=marker)
        return
    except ClientError as e:
        if not _is_missing(e):
            raise
    _client().put_object(Bucket=bucket, Key=marker, Body=b"")
    log.debug("[S3] created directory s3://%s/%s", bucket, marker)


def move(bucket: str, local_path: Path, uri: str) -> str:
    """
    Upload `local_path` to the key addressed by `uri` and remove the local file.

    An existing object at that key is overwritten. Returns the final locator.
    Raises on any AWS error; the local file is left in place in that case.
    """
    key = key_for(uri)
    _client().upload_file(str(local_path), bucket, key)
    size = local_path.stat().st_size
    local_path.unlink()
    log.info("[S3] moved %s → s3://%s/%s (%d KB)", local_path.name, bucket, key, size // 1024)
    return f"{SCHEME}://{key}"


def open_object(bucket: str, uri: str):
    """Return the streaming body of an object (read it in chunks)."""
    resp = _client().get_object(Bucket=bucket, Key=key_for(uri))
    return resp["Body"]


def read_object(bucket: str, uri: str) -> bytes:
    """Blocking S3 download of a whole object."""
    return open_object(bucket, uri).read()


def delete_object(bucket: str, uri: str) -> None:
    _client().delete_object(Bucket=bucket, Key=key_for(uri))
