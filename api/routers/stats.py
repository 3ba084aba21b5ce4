"""
api/routers/stats.py — GET /stats
Returns archive progress counts across the whole repository.
"""
from fastapi import APIRouter, Depends
import asyncpg

from api.dependencies.db import get_pool
from s3_archive import db as db_mod
from s3_archive.models import ORIGINAL_FILE_USE

router = APIRouter()


@router.get("/")
async def get_stats(pool: asyncpg.Pool = Depends(get_pool)) -> dict:
    """
    High-level archive statistics.

    Returns:
    - total_nodes: all nodes
    - archived_nodes: nodes with an archive link
    - pending_originals: original-file media still stored locally
    """
    return await db_mod.archive_counts(pool, ORIGINAL_FILE_USE)
