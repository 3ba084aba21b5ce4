"""
api/dependencies/db.py

FastAPI lifespan: opens asyncpg pool on startup, closes on shutdown.
All routers receive the pool via Depends(get_pool) and the environment
settings via Depends(get_settings).

Usage in a router:
    from api.dependencies.db import get_pool

    @router.get("/")
    async def stats(pool=Depends(get_pool)):
        return await db_mod.archive_counts(pool, ORIGINAL_FILE_USE)
"""
from contextlib import asynccontextmanager

import asyncpg
from dotenv import load_dotenv
from fastapi import FastAPI, Request

from s3_archive import db as db_mod
from s3_archive.config import Settings

load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open pool on startup, close on shutdown. Pool stored on app.state."""
    app.state.settings = Settings.from_env()
    app.state.pool = await asyncpg.create_pool(db_mod.build_dsn(), min_size=2, max_size=10)
    yield
    await app.state.pool.close()


async def get_pool(request: Request) -> asyncpg.Pool:
    """FastAPI dependency — injects the shared connection pool into any route."""
    return request.app.state.pool


async def get_settings(request: Request) -> Settings:
    """FastAPI dependency — environment settings read at startup."""
    return request.app.state.settings
