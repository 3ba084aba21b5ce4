"""
s3_archive/copier.py — Stream origin bytes to staging, then move them into S3.

Destination key scheme
----------------------
The origin directory is kept and the file name is prefixed with the owning
node id, so two nodes with the same file name never collide:

  fedora://2023-05/scan.tif  (node 42)  →  s3://2023-05/n_42-scan.tif

The key only depends on (node id, origin locator); archiving the same
candidate twice overwrites the same object.
"""
import asyncio
import logging
from pathlib import Path

from s3_archive import storage
from s3_archive.errors import OriginUnreadable, RelocationFailed, StagingFailed
from s3_archive.models import Candidate
from s3_archive.transport import ByteTransport
from s3_archive.utils import join_uri, swap_scheme, uri_basename, uri_dirname

log = logging.getLogger("s3_archive.copier")


def archived_name(node_id: int, filename: str) -> str:
    return f"n_{node_id}-{filename}"


def destination_uri(origin_uri: str, node_id: int) -> str:
    """Deterministic s3:// locator for the original file of `node_id`."""
    directory = uri_dirname(swap_scheme(origin_uri, storage.SCHEME))
    return join_uri(directory, archived_name(node_id, uri_basename(origin_uri)))


class StreamingCopier:
    """Fetch → stage → relocate for a single candidate."""

    def __init__(self, transport: ByteTransport, *, bucket: str, staging_dir: Path) -> None:
        self._transport = transport
        self._bucket = bucket
        self._staging_dir = Path(staging_dir)

    def staging_path(self, candidate: Candidate) -> Path:
        return self._staging_dir / archived_name(candidate.node_id, uri_basename(candidate.uri))

    async def stage(self, candidate: Candidate) -> Path:
        """
        Copy the origin stream to a local staging file.

        Raises OriginUnreadable when the origin cannot be opened and
        StagingFailed when the staging directory cannot be created or the
        copy breaks part-way. A partial staging file is removed.
        """
        path = self.staging_path(candidate)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StagingFailed(candidate, f"staging directory {path.parent} unusable: {exc}") from exc

        opened = False
        try:
            async with self._transport.open_stream(candidate.uri) as chunks:
                opened = True
                size = 0
                with open(path, "wb") as fh:
                    async for chunk in chunks:
                        fh.write(chunk)
                        size += len(chunk)
        except Exception as exc:
            path.unlink(missing_ok=True)
            if not opened:
                raise OriginUnreadable(candidate, f"cannot open {candidate.uri}: {exc}") from exc
            raise StagingFailed(candidate, f"copy of {candidate.uri} failed: {exc}") from exc

        log.info("[STAGE] %s → %s (%d KB)", candidate.uri, path.name, size // 1024)
        return path

    async def relocate(self, staged: Path, destination: str, candidate: Candidate) -> str:
        """
        Ensure the destination directory exists, then move the staged file there.

        Returns the final s3:// locator. On failure the staged file stays
        behind for manual cleanup; no record has been touched yet.
        """
        try:
            await asyncio.to_thread(
                storage.ensure_directory, self._bucket, uri_dirname(destination)
            )
            final = await asyncio.to_thread(storage.move, self._bucket, staged, destination)
        except Exception as exc:
            raise RelocationFailed(candidate, f"move to {destination} failed: {exc}") from exc
        log.info("[MOVE] %s → %s", staged.name, final)
        return final

    async def copy(self, candidate: Candidate) -> str:
        """Stage then relocate; returns the final archive locator."""
        staged = await self.stage(candidate)
        return await self.relocate(staged, destination_uri(candidate.uri, candidate.node_id), candidate)
