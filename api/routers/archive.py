"""
api/routers/archive.py — POST /archive

Resolves the candidates while the request is open (so scope errors are
reported to the caller), then migrates them in a background task. The
summary is written to the log when the batch ends.
"""
import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
import asyncpg

from api.dependencies.db import get_pool, get_settings
from s3_archive import resolver
from s3_archive.config import Settings, get_archive_base_url
from s3_archive.errors import ConfigurationError, QueryFailed
from s3_archive.models import ALL, Candidate
from s3_archive.pipeline import build_scope, make_migrator, make_transport

log = logging.getLogger("s3_archive.api")

router = APIRouter()


class ArchiveRequest(BaseModel):
    all: bool = False
    collections: List[int] = []
    include_members: bool = True


async def _run_batch(
    pool: asyncpg.Pool,
    settings: Settings,
    base_url: str,
    candidates: List[Candidate],
) -> None:
    async with make_transport(settings) as transport:
        report = await make_migrator(pool, transport, settings, base_url).migrate_batch(candidates)
    log.info(report.report())


@router.post("/", status_code=202)
async def start_archive(
    body: ArchiveRequest,
    background_tasks: BackgroundTasks,
    pool: asyncpg.Pool = Depends(get_pool),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Archive the original files of a set of collections, or of everything.

    Body: `{"collections": [12, 57]}` or `{"all": true}`.
    Returns the number of candidates queued.
    """
    if body.all == bool(body.collections):
        raise HTTPException(status_code=400, detail="Give either all=true or a list of collections.")

    try:
        base_url = await get_archive_base_url(pool)
        settings.require_bucket()
    except ConfigurationError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    try:
        if body.all:
            scope = ALL
        else:
            scope = await build_scope(pool, body.collections, include_members=body.include_members)
        candidates = await resolver.resolve(pool, scope)
    except QueryFailed as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    if candidates:
        background_tasks.add_task(_run_batch, pool, settings, base_url, candidates)
    return {"status": "accepted", "candidates": len(candidates)}
