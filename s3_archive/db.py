"""
s3_archive/db.py — asyncpg connection pool + all SQL queries.

Design:
  - One pool is created at startup and reused for the entire run.
  - All public functions accept the pool as first argument (dependency
    injection → easy to test / mock).
  - Schema is owned by Alembic (alembic/versions); run `alembic upgrade head`
    before the first archive run.
  - Loads return frozen value objects (models.Node); saves take one back.
"""
import os
import logging
from typing import Iterable, List, Optional

import asyncpg

from s3_archive.errors import NotArchived
from s3_archive.models import Node

log = logging.getLogger("s3_archive.db")

_NODE_COLUMNS = "id, title, model, member_of, archive_link, archive_filename"


# ─── Pool lifecycle ────────────────────────────────────────────────────────────

def build_dsn() -> str:
    """Build the PostgreSQL DSN from DB_* variables in the environment."""
    return (
        f"postgresql://{os.environ['DB_USER']}"
        f"{(':' + os.environ['DB_PASSWORD']) if os.environ.get('DB_PASSWORD') else ''}"
        f"@{os.environ.get('DB_HOST', 'localhost')}:{os.environ.get('DB_PORT', '5432')}"
        f"/{os.environ['DB_NAME']}"
    )


async def init_pool(max_size: int = 10) -> asyncpg.Pool:
    """Create a connection pool sized for the archive worker pool."""
    pool = await asyncpg.create_pool(build_dsn(), min_size=2, max_size=max_size)
    log.info("Database pool initialised.")
    return pool


# ─── Traversal ─────────────────────────────────────────────────────────────────

async def fetch_child_containers(
    pool: asyncpg.Pool,
    parents: Iterable[int],
    models: Iterable[str],
) -> List[int]:
    """Ids of nodes that are members of `parents` and whose model is container-like."""
    rows = await pool.fetch(
        """
        SELECT n.id
        FROM node n
        WHERE n.member_of = ANY($1::bigint[])
          AND n.model     = ANY($2::text[])
        ORDER BY n.id
        """,
        list(parents), list(models),
    )
    return [r["id"] for r in rows]


async def fetch_members(pool: asyncpg.Pool, parents: Iterable[int]) -> List[int]:
    """Ids of every direct member of `parents`, whatever its model."""
    rows = await pool.fetch(
        "SELECT id FROM node WHERE member_of = ANY($1::bigint[]) ORDER BY id",
        list(parents),
    )
    return [r["id"] for r in rows]


# ─── Candidates ────────────────────────────────────────────────────────────────

async def fetch_candidates(
    pool: asyncpg.Pool,
    node_ids: Optional[Iterable[int]],
    media_use: str,
) -> List[asyncpg.Record]:
    """
    One row per media tagged `media_use` whose owning node is in `node_ids`
    (or any node when `node_ids` is None), joined to its file.

    Ordered by node then media so a fixed dataset always yields the same list.
    """
    ids = None if node_ids is None else list(node_ids)
    return await pool.fetch(
        """
        SELECT
            m.media_of AS node_id,
            m.id       AS media_id,
            f.id       AS file_id,
            f.uri      AS uri
        FROM media m
        JOIN file_managed f ON f.id = m.file_id
        WHERE m.media_use = $1
          AND ($2::bigint[] IS NULL OR m.media_of = ANY($2::bigint[]))
        ORDER BY m.media_of, m.id
        """,
        media_use, ids,
    )


# ─── Node ──────────────────────────────────────────────────────────────────────

async def load_node(pool: asyncpg.Pool, node_id: int) -> Optional[Node]:
    row = await pool.fetchrow(
        f"SELECT {_NODE_COLUMNS} FROM node WHERE id = $1",
        node_id,
    )
    return Node(**dict(row)) if row else None


async def save_node(pool: asyncpg.Pool, node: Node) -> None:
    """Persist every mutable field of `node`. Raises LookupError if it vanished."""
    status = await pool.execute(
        """
        UPDATE node
            SET title            = $2,
                model            = $3,
                member_of        = $4,
                archive_link     = $5,
                archive_filename = $6,
                updated_at       = NOW()
        WHERE id = $1
        """,
        node.id, node.title, node.model, node.member_of,
        node.archive_link, node.archive_filename,
    )
    if status.endswith(" 0"):
        raise LookupError(f"node {node.id} does not exist")


# ─── Media / file ──────────────────────────────────────────────────────────────

async def delete_file(pool: asyncpg.Pool, file_id: int) -> bool:
    status = await pool.execute("DELETE FROM file_managed WHERE id = $1", file_id)
    return not status.endswith(" 0")


async def delete_media(pool: asyncpg.Pool, media_id: int) -> bool:
    status = await pool.execute("DELETE FROM media WHERE id = $1", media_id)
    return not status.endswith(" 0")


async def create_recovered_asset(
    pool: asyncpg.Pool,
    *,
    node_id: int,
    uri: str,
    filename: str,
    filemime: str,
    filesize: int,
    media_name: str,
    media_use: str,
) -> int:
    """
    Clear the node's archive link, then insert a file row and a media row
    pointing at it, all in one transaction. Returns the new media id.

    The link is cleared first and only while it is still set, so of two
    overlapping recoveries of one node exactly one creates the media; the
    other raises NotArchived and rolls back.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            claimed = await conn.fetchval(
                """
                UPDATE node
                    SET archive_link = NULL, archive_filename = NULL, updated_at = NOW()
                WHERE id = $1 AND archive_link IS NOT NULL AND archive_link <> ''
                RETURNING id
                """,
                node_id,
            )
            if claimed is None:
                raise NotArchived(node_id, f"node {node_id} is no longer archived")
            file_id = await conn.fetchval(
                """
                INSERT INTO file_managed (filename, uri, filemime, filesize)
                VALUES ($1, $2, $3, $4)
                RETURNING id
                """,
                filename, uri, filemime, filesize,
            )
            media_id = await conn.fetchval(
                """
                INSERT INTO media
                    (name, bundle, media_of, media_use, file_id, file_title, mime_type)
                VALUES ($1, 'file', $2, $3, $4, $5, $6)
                RETURNING id
                """,
                media_name, node_id, media_use, file_id, filename, filemime,
            )
    return media_id


# ─── Settings ──────────────────────────────────────────────────────────────────

async def get_setting(pool: asyncpg.Pool, name: str) -> Optional[str]:
    return await pool.fetchval("SELECT value FROM settings WHERE name = $1", name)


async def set_setting(pool: asyncpg.Pool, name: str, value: str) -> None:
    await pool.execute(
        """
        INSERT INTO settings (name, value) VALUES ($1, $2)
        ON CONFLICT (name) DO UPDATE SET value = EXCLUDED.value
        """,
        name, value,
    )


# ─── Stats ─────────────────────────────────────────────────────────────────────

async def archive_counts(pool: asyncpg.Pool, media_use: str) -> dict:
    row = await pool.fetchrow(
        """
        SELECT
            (SELECT COUNT(*) FROM node)                                   AS total_nodes,
            (SELECT COUNT(*) FROM node WHERE archive_link IS NOT NULL
                                         AND archive_link <> '')          AS archived_nodes,
            (SELECT COUNT(*) FROM media WHERE media_use = $1)             AS pending_originals
        """,
        media_use,
    )
    return dict(row)
