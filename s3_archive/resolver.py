"""
s3_archive/resolver.py — Build the working set of migration candidates.

One candidate per media tagged as the original file whose owning node is in
scope. Scope is either ALL or an already-expanded set of node ids; only the
direct owner is matched, never its ancestors.
"""
import logging
from typing import Iterable, List, Union

import asyncpg

from s3_archive import db as db_mod
from s3_archive.errors import QueryFailed
from s3_archive.models import ALL, ORIGINAL_FILE_USE, Candidate

log = logging.getLogger("s3_archive.resolver")


async def resolve(
    pool: asyncpg.Pool,
    scope: Union[str, Iterable[int]],
    media_use: str = ORIGINAL_FILE_USE,
) -> List[Candidate]:
    if scope == ALL:
        node_ids = None
    else:
        node_ids = sorted(set(scope))
        if not node_ids:
            return []

    try:
        rows = await db_mod.fetch_candidates(pool, node_ids, media_use)
    except Exception as exc:
        raise QueryFailed(f"candidate query failed: {exc}") from exc

    candidates = [
        Candidate(
            node_id=r["node_id"],
            media_id=r["media_id"],
            file_id=r["file_id"],
            uri=r["uri"],
        )
        for r in rows
    ]
    log.info("%d candidate(s) to be processed.", len(candidates))
    return candidates
