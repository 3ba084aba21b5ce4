"""
s3_archive/recovery.py — Rebuild a local original file from its archive link.

The file name is taken from the node's stored archive_filename. Nodes
archived before that column existed only have the link, so the name falls
back to the text after the last "-" of the link (the key scheme is
n_{node}-{filename}). That fallback is wrong for names that contain "-".

Order: fetch bytes → write local file → one transaction clearing the link
(only while it is still set), then creating the file row and the media row.
Nothing is returned before the media row is committed.
"""
import logging
import mimetypes
import posixpath

import asyncpg

from s3_archive import db as db_mod
from s3_archive.errors import ArchiveUnreachable, AssetCreateFailed, NotArchived, QueryFailed
from s3_archive.models import ORIGINAL_FILE_USE
from s3_archive.transport import ByteTransport

log = logging.getLogger("s3_archive.recovery")

RECOVERY_DIR = "public://recovered"


def filename_from_link(link: str) -> str:
    """
    Text after the last "-" of an archive link.

    Example:
        ".../2023-05/n_42-scan.tif" → "scan.tif"
    """
    return posixpath.basename(link.split("-")[-1])


def recovery_uri(node_id: int, filename: str) -> str:
    """
    Fixed local locator for a node's recovered original.

    The file name is kept as is, so archiving the recovered asset again
    records the same name and key suffix as the first time.
    """
    return f"{RECOVERY_DIR}/{node_id}/{filename}"


class RecoveryReconstructor:

    def __init__(
        self,
        pool: asyncpg.Pool,
        transport: ByteTransport,
        *,
        media_use: str = ORIGINAL_FILE_USE,
    ) -> None:
        self._pool = pool
        self._transport = transport
        self._media_use = media_use

    async def recover(self, node_id: int) -> int:
        """Recreate the original-file media for `node_id`; return the new media id."""
        try:
            node = await db_mod.load_node(self._pool, node_id)
        except Exception as exc:
            raise QueryFailed(f"could not load node {node_id}: {exc}") from exc
        if node is None:
            raise NotArchived(node_id, f"node {node_id} does not exist")
        if not node.archive_link:
            raise NotArchived(node_id, f"node {node_id} has no archive link")

        link = node.archive_link
        filename = node.archive_filename or filename_from_link(link)

        log.info("[RECOVER] node %d ← %s", node_id, link)
        try:
            data = await self._transport.fetch_bytes(link)
        except Exception as exc:
            raise ArchiveUnreachable(node_id, f"cannot fetch {link}: {exc}") from exc

        local_uri = recovery_uri(node_id, filename)
        filemime = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        try:
            await self._transport.write_bytes(local_uri, data)
            media_id = await db_mod.create_recovered_asset(
                self._pool,
                node_id=node_id,
                uri=local_uri,
                filename=filename,
                filemime=filemime,
                filesize=len(data),
                media_name=node.title,
                media_use=self._media_use,
            )
        except NotArchived:
            log.warning("[RECOVER] node %d was recovered concurrently", node_id)
            raise
        except Exception as exc:
            raise AssetCreateFailed(node_id, f"could not store {filename}: {exc}") from exc

        log.info("[RECOVER] node %d → media %d (%s, %d KB)", node_id, media_id, filename, len(data) // 1024)
        return media_id
