"""
s3_archive/migrator.py — Archive one candidate, or a whole batch of them.

Per-candidate flow
------------------
1. Fetch     open the origin stream                 → OriginUnreadable
2. Stage     copy it to STAGING_DIR                 → StagingFailed
3. Relocate  ensure the S3 directory, move the file → RelocationFailed
4. Rewrite   set node.archive_link, save the node   → OwnerRewriteFailed
5. Cleanup   delete file row, media row, origin     → CLEANUP_INCOMPLETE

Nothing is deleted before the node points at the archived copy, and the node
is never pointed at bytes that were not moved yet. A failure anywhere before
step 5 leaves the media + file intact, so the next run picks the candidate up
again and overwrites the same deterministic key.

Batch
-----
Candidates run on a bounded pool (asyncio.Semaphore). One failure never
stops the others. request_stop() lets running candidates finish and marks
the ones not yet started as not attempted.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import AsyncIterator, Dict, Iterable, List, Optional

import asyncpg

from s3_archive import db as db_mod
from s3_archive import storage
from s3_archive.copier import StreamingCopier
from s3_archive.errors import MigrationError, OwnerRewriteFailed
from s3_archive.models import Candidate
from s3_archive.transport import ByteTransport
from s3_archive.utils import uri_basename

log = logging.getLogger("s3_archive.migrator")


class Status(str, Enum):
    SUCCESS            = "success"
    CLEANUP_INCOMPLETE = "CleanupIncomplete"
    FAILED             = "failed"
    NOT_ATTEMPTED      = "not_attempted"


@dataclass
class ArchiveOutcome:
    candidate:    Candidate
    status:       Status
    archive_link: Optional[str] = None
    error_kind:   Optional[str] = None
    detail:       str = ""


# ─── Report ────────────────────────────────────────────────────────────────────

@dataclass
class BatchReport:
    outcomes: List[ArchiveOutcome] = field(default_factory=list)

    def _count(self, status: Status) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def found(self) -> int:
        return len(self.outcomes)

    @property
    def migrated(self) -> int:
        return self._count(Status.SUCCESS)

    @property
    def partial(self) -> int:
        return self._count(Status.CLEANUP_INCOMPLETE)

    @property
    def failed(self) -> int:
        return self._count(Status.FAILED)

    @property
    def not_attempted(self) -> int:
        return self._count(Status.NOT_ATTEMPTED)

    @property
    def problems(self) -> List[ArchiveOutcome]:
        return [o for o in self.outcomes if o.status in (Status.FAILED, Status.CLEANUP_INCOMPLETE)]

    def report(self) -> str:
        lines = [
            "",
            "=" * 58,
            "  Archive Complete — Summary",
            "=" * 58,
            f"  Candidates found   :  {self.found}",
            f"  Migrated           :  {self.migrated}",
            f"  Cleanup incomplete :  {self.partial}   (archived, stale media left)",
            f"  Failed             :  {self.failed}",
            f"  Not attempted      :  {self.not_attempted}   (run stopped)",
            "=" * 58,
        ]
        for o in self.problems:
            kind = o.error_kind or o.status.value
            lines.append(f"  [{kind}] {o.candidate.describe()}")
            if o.detail:
                lines.append(f"      {o.detail}")
        lines.append("")
        return "\n".join(lines)


# ─── Migrator ──────────────────────────────────────────────────────────────────

class ArchiveMigrator:

    def __init__(
        self,
        pool: asyncpg.Pool,
        copier: StreamingCopier,
        transport: ByteTransport,
        *,
        archive_base_url: str,
        concurrency: int = 4,
        purge_origin: bool = True,
    ) -> None:
        self._pool = pool
        self._copier = copier
        self._transport = transport
        self._base_url = archive_base_url.rstrip("/")
        self._concurrency = max(1, concurrency)
        self._purge_origin = purge_origin
        self._stop = asyncio.Event()
        # Two candidates for the same node (duplicate originals) share a
        # staging path and a destination key: run them one after the other.
        # Entries are [lock, users] and are dropped when the last user leaves.
        self._node_locks: Dict[int, list] = {}

    # ─── Stop control ─────────────────────────────────────────────────────────

    def request_stop(self) -> None:
        if not self._stop.is_set():
            log.warning("Stop requested — finishing running candidates only.")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # ─── Link translation ─────────────────────────────────────────────────────

    def archive_link(self, archive_uri: str) -> str:
        """
        Public URL for an archived object.

            s3://2023-05/n_42-scan.tif → {base}/2023-05/n_42-scan.tif
        """
        prefix = f"{storage.SCHEME}://"
        if not archive_uri.startswith(prefix):
            raise ValueError(f"not an archive locator: {archive_uri!r}")
        return f"{self._base_url}/{archive_uri[len(prefix):]}"

    # ─── Single candidate ─────────────────────────────────────────────────────

    @asynccontextmanager
    async def _node_lock(self, node_id: int) -> AsyncIterator[None]:
        entry = self._node_locks.get(node_id)
        if entry is None:
            entry = self._node_locks[node_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if not entry[1]:
                del self._node_locks[node_id]

    async def migrate_one(self, candidate: Candidate) -> ArchiveOutcome:
        """
        Run the five steps for one candidate.

        Returns SUCCESS or CLEANUP_INCOMPLETE; raises a MigrationError
        subclass for failures in steps 1-4.
        """
        async with self._node_lock(candidate.node_id):
            final_uri = await self._copier.copy(candidate)
            link = self.archive_link(final_uri)
            await self._rewrite_owner(candidate, link)
            return await self._cleanup(candidate, link)

    async def _rewrite_owner(self, candidate: Candidate, link: str) -> None:
        try:
            node = await db_mod.load_node(self._pool, candidate.node_id)
            if node is None:
                raise LookupError(f"node {candidate.node_id} does not exist")
            await db_mod.save_node(
                self._pool,
                replace(node, archive_link=link, archive_filename=uri_basename(candidate.uri)),
            )
        except Exception as exc:
            raise OwnerRewriteFailed(
                candidate, f"could not link node {candidate.node_id}: {exc}"
            ) from exc
        log.info("[LINK] node %d → %s", candidate.node_id, link)

    async def _cleanup(self, candidate: Candidate, link: str) -> ArchiveOutcome:
        """Delete file row, then media row, then the origin bytes. Stops at the first failure."""
        step = "file record"
        try:
            await db_mod.delete_file(self._pool, candidate.file_id)
            step = "media record"
            await db_mod.delete_media(self._pool, candidate.media_id)
            if self._purge_origin:
                step = "origin bytes"
                await self._transport.delete(candidate.uri)
        except Exception as exc:
            log.warning(
                "[CLEAN] node %d archived but %s not removed: %s",
                candidate.node_id, step, exc,
            )
            return ArchiveOutcome(
                candidate,
                Status.CLEANUP_INCOMPLETE,
                archive_link=link,
                error_kind=Status.CLEANUP_INCOMPLETE.value,
                detail=f"{step}: {exc}",
            )

        log.info("[CLEAN] node %d — media %d / file %d removed", candidate.node_id, candidate.media_id, candidate.file_id)
        return ArchiveOutcome(candidate, Status.SUCCESS, archive_link=link)

    # ─── Batch ────────────────────────────────────────────────────────────────

    async def migrate_batch(self, candidates: Iterable[Candidate]) -> BatchReport:
        candidates = list(candidates)
        outcomes: List[Optional[ArchiveOutcome]] = [None] * len(candidates)
        semaphore = asyncio.Semaphore(self._concurrency)

        log.info("Migrating %d candidate(s) with %d worker(s).", len(candidates), self._concurrency)

        async def _worker(index: int, candidate: Candidate) -> None:
            async with semaphore:
                if self._stop.is_set():
                    outcomes[index] = ArchiveOutcome(candidate, Status.NOT_ATTEMPTED)
                    return
                try:
                    outcomes[index] = await self.migrate_one(candidate)
                except MigrationError as exc:
                    log.error("[%s] %s — %s", exc.kind, candidate.describe(), exc)
                    outcomes[index] = ArchiveOutcome(
                        candidate, Status.FAILED, error_kind=exc.kind, detail=str(exc)
                    )
                except Exception as exc:
                    log.exception("Unexpected error for %s", candidate.describe())
                    outcomes[index] = ArchiveOutcome(
                        candidate, Status.FAILED, error_kind=type(exc).__name__, detail=str(exc)
                    )

        await asyncio.gather(*[_worker(i, c) for i, c in enumerate(candidates)])
        return BatchReport(outcomes=list(outcomes))
