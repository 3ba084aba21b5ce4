"""
s3_archive/pipeline.py — Top-level orchestration of an archive run.

  scope (ALL | root ids)
    → expand containers          (skipped for ALL)
    → add direct members         (optional, default on)
    → resolve candidates
    → migrate batch
    → BatchReport

Traversal and resolution errors (QueryFailed) abort the run before any
candidate is touched.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Set, Union

import asyncpg

from s3_archive import expander, resolver
from s3_archive.config import Settings, get_archive_base_url
from s3_archive.copier import StreamingCopier
from s3_archive.migrator import ArchiveMigrator, BatchReport
from s3_archive.models import ALL, CONTAINER_MODELS
from s3_archive.transport import ByteTransport

log = logging.getLogger("s3_archive.pipeline")


async def build_scope(
    pool: asyncpg.Pool,
    roots: Iterable[int],
    models: Iterable[str] = CONTAINER_MODELS,
    *,
    include_members: bool = True,
) -> Set[int]:
    """
    Node ids whose original files are archived for `roots`.

    Containers are expanded transitively. With include_members, the direct
    members of every container (pages, books, images …) are added too;
    without it, leaf nodes have to be listed in `roots` by the caller.
    """
    scope = await expander.expand(pool, roots, models)
    if include_members:
        scope |= await expander.members_of(pool, scope)
    return scope


def make_transport(settings: Settings) -> ByteTransport:
    return ByteTransport(
        fedora_base_url=settings.fedora_base_url,
        public_root=settings.public_root,
        bucket=settings.bucket,
    )


def make_migrator(
    pool: asyncpg.Pool,
    transport: ByteTransport,
    settings: Settings,
    archive_base_url: str,
) -> ArchiveMigrator:
    copier = StreamingCopier(
        transport,
        bucket=settings.require_bucket(),
        staging_dir=settings.staging_dir,
    )
    return ArchiveMigrator(
        pool,
        copier,
        transport,
        archive_base_url=archive_base_url,
        concurrency=settings.concurrency,
        purge_origin=settings.purge_origin,
    )


@asynccontextmanager
async def archive_session(pool: asyncpg.Pool, settings: Settings) -> AsyncIterator[ArchiveMigrator]:
    """
    Yield a ready migrator (open transport, configured base URL).

    Raises ConfigurationError before anything is opened when the base URL
    or the bucket is missing.
    """
    base_url = await get_archive_base_url(pool)
    settings.require_bucket()
    async with make_transport(settings) as transport:
        yield make_migrator(pool, transport, settings, base_url)


async def run_archive(
    pool: asyncpg.Pool,
    scope: Union[str, Iterable[int]],
    migrator: ArchiveMigrator,
    *,
    include_members: bool = True,
) -> BatchReport:
    """Archive every original file in `scope` (ALL or root node ids)."""
    if scope == ALL:
        node_scope = ALL
    else:
        node_scope = await build_scope(pool, scope, include_members=include_members)

    candidates = await resolver.resolve(pool, node_scope)
    if not candidates:
        log.info("Nothing to archive.")
        return BatchReport()
    return await migrator.migrate_batch(candidates)
