"""
api/routers/settings.py — read / write the archive base URL.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
import asyncpg

from api.dependencies.db import get_pool
from s3_archive.config import get_archive_base_url, set_archive_base_url
from s3_archive.errors import ConfigurationError

router = APIRouter()


class ArchiveUrl(BaseModel):
    s3_url: str


@router.get("/s3-url")
async def read_archive_url(pool: asyncpg.Pool = Depends(get_pool)) -> dict:
    try:
        return {"s3_url": await get_archive_base_url(pool)}
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.put("/s3-url")
async def write_archive_url(body: ArchiveUrl, pool: asyncpg.Pool = Depends(get_pool)) -> dict:
    """Store the base URL of the S3 bucket (trailing slash removed)."""
    try:
        return {"s3_url": await set_archive_base_url(pool, body.s3_url)}
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
