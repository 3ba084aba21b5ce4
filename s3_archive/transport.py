"""
s3_archive/transport.py — Scheme-dispatched byte transport.

Locators
--------
  fedora://path   → GET {FEDORA_BASE_URL}/path over HTTP
  http(s)://…     → GET as-is (archive links are plain https URLs)
  s3://key        → object in the archive bucket (boto3, run in a thread)
  public://path   → {PUBLIC_FILES_ROOT}/path on local disk
  file:///abs     → local disk
  /abs/or/rel     → local disk

HTTP opens are retried on connection errors and 429 with exponential
back-off (up to MAX_RETRIES) before the error surfaces to the caller.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple, Union

import httpx

from s3_archive import storage
from s3_archive.utils import split_uri

log = logging.getLogger("s3_archive.transport")

MAX_RETRIES = 5
CHUNK_SIZE = 1024 * 1024

_HTTP_SCHEMES = {"http", "https"}
_LOCAL_SCHEMES = {"", "file", "public"}


class ByteTransport:
    """Read / write / delete bytes behind any locator the repository uses."""

    def __init__(
        self,
        *,
        fedora_base_url: str = "",
        public_root: Union[str, Path] = "./files",
        bucket: str = "",
        client: Optional[httpx.AsyncClient] = None,
        retry_delay: float = 2.0,
    ) -> None:
        self._fedora_base_url = fedora_base_url.rstrip("/")
        self._public_root = Path(public_root)
        self._bucket = bucket
        self._client = client
        self._owns_client = client is None
        self._retry_delay = retry_delay

    # ─── Context manager ──────────────────────────────────────────────────────

    async def __aenter__(self) -> "ByteTransport":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=120.0, follow_redirects=True)
        return self

    async def __aexit__(self, *_) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ─── Locator resolution ───────────────────────────────────────────────────

    def _resolve(self, uri: str) -> Tuple[str, Union[str, Path]]:
        """Return ("http", url) | ("s3", uri) | ("local", path)."""
        scheme, target = split_uri(uri)
        if scheme == "fedora":
            if not self._fedora_base_url:
                raise ValueError("FEDORA_BASE_URL is not set; cannot read fedora:// locators.")
            return "http", f"{self._fedora_base_url}/{target.lstrip('/')}"
        if scheme in _HTTP_SCHEMES:
            return "http", uri
        if scheme == storage.SCHEME:
            return "s3", uri
        if scheme in _LOCAL_SCHEMES:
            return "local", self.local_path(uri)
        raise ValueError(f"unsupported locator scheme {scheme!r} in {uri!r}")

    def local_path(self, uri: str) -> Path:
        """Filesystem path behind a public://, file:// or bare locator."""
        scheme, target = split_uri(uri)
        if scheme == "public":
            return self._public_root / target.lstrip("/")
        if scheme in ("", "file"):
            return Path(target)
        raise ValueError(f"{uri!r} is not a local locator")

    # ─── HTTP helper ──────────────────────────────────────────────────────────

    async def _send(self, method: str, url: str, *, stream: bool) -> httpx.Response:
        """
        Send `method url` with retry on 429 and connection errors.

        Raises:
            httpx.HTTPStatusError — on any other 4xx / 5xx
            RuntimeError          — after MAX_RETRIES exhausted
        """
        assert self._client, "ByteTransport must be used as an async context manager."
        delay = self._retry_delay

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                request = self._client.build_request(method, url)
                resp = await self._client.send(request, stream=stream)
            except (httpx.ConnectError, httpx.ReadTimeout) as exc:
                log.warning("Network error on %s (attempt %d/%d): %s", url, attempt, MAX_RETRIES, exc)
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if resp.status_code == 429:
                retry_after = float(resp.headers.get("Retry-After", delay))
                await resp.aclose()
                log.warning("Rate-limited on %s — waiting %.0fs (attempt %d/%d)", url, retry_after, attempt, MAX_RETRIES)
                await asyncio.sleep(retry_after)
                delay = max(delay * 2, retry_after)
                continue

            if resp.is_error:
                await resp.aclose()
                resp.raise_for_status()
            return resp

        raise RuntimeError(f"{method} {url!r} failed after {MAX_RETRIES} retries.")

    # ─── Public API ───────────────────────────────────────────────────────────

    @asynccontextmanager
    async def open_stream(self, uri: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Open `uri` for reading and yield an async iterator of byte chunks.

        Errors raised while *opening* (missing resource, unreachable host)
        surface from the `async with` itself; errors while iterating surface
        from the loop body.
        """
        kind, target = self._resolve(uri)

        if kind == "http":
            resp = await self._send("GET", target, stream=True)
            try:
                yield resp.aiter_bytes(CHUNK_SIZE)
            finally:
                await resp.aclose()

        elif kind == "s3":
            body = await asyncio.to_thread(storage.open_object, self._bucket, target)
            try:
                yield _iter_body(body)
            finally:
                body.close()

        else:
            fh = open(target, "rb")
            try:
                yield _iter_file(fh)
            finally:
                fh.close()

    async def fetch_bytes(self, uri: str) -> bytes:
        """Read the whole content behind `uri`."""
        kind, target = self._resolve(uri)
        if kind == "http":
            resp = await self._send("GET", target, stream=False)
            return resp.content
        if kind == "s3":
            return await asyncio.to_thread(storage.read_object, self._bucket, target)
        return Path(target).read_bytes()

    async def write_bytes(self, uri: str, data: bytes) -> Path:
        """Write `data` to a local locator, replacing any existing file."""
        path = self.local_path(uri)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    async def delete(self, uri: str) -> None:
        """Remove the bytes behind `uri`. Already-missing content is not an error."""
        kind, target = self._resolve(uri)
        if kind == "http":
            try:
                resp = await self._send("DELETE", target, stream=False)
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code in (404, 410):
                    return
                raise
            await resp.aclose()
        elif kind == "s3":
            await asyncio.to_thread(storage.delete_object, self._bucket, target)
        else:
            Path(target).unlink(missing_ok=True)


async def _iter_body(body) -> AsyncIterator[bytes]:
    while True:
        chunk = await asyncio.to_thread(body.read, CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


async def _iter_file(fh) -> AsyncIterator[bytes]:
    while True:
        chunk = fh.read(CHUNK_SIZE)
        if not chunk:
            break
        yield chunk
