"""
api/routers/nodes.py — node lookup and archived file recovery.
"""
import dataclasses

from fastapi import APIRouter, Depends, HTTPException
import asyncpg

from api.dependencies.db import get_pool, get_settings
from s3_archive import db as db_mod
from s3_archive.config import Settings
from s3_archive.errors import ArchiveUnreachable, NotArchived, RecoveryError
from s3_archive.pipeline import make_transport
from s3_archive.recovery import RecoveryReconstructor

router = APIRouter()


@router.get("/{node_id}")
async def get_node(node_id: int, pool: asyncpg.Pool = Depends(get_pool)) -> dict:
    node = await db_mod.load_node(pool, node_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found.")
    return dataclasses.asdict(node)


@router.post("/{node_id}/recover")
async def recover_node(
    node_id: int,
    pool: asyncpg.Pool = Depends(get_pool),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Download the archived original file of a node back to local storage and
    attach it to the node as a new original-file media.
    """
    async with make_transport(settings) as transport:
        try:
            media_id = await RecoveryReconstructor(pool, transport).recover(node_id)
        except NotArchived as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except ArchiveUnreachable as exc:
            raise HTTPException(status_code=502, detail=str(exc))
        except RecoveryError as exc:
            raise HTTPException(status_code=500, detail=f"{exc.kind}: {exc}")
    return {"node_id": node_id, "media_id": media_id}
