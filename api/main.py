"""
api/main.py — FastAPI application entry point.

Run locally:
    uvicorn api.main:app --reload

Architecture:
  - lifespan: opens asyncpg pool on startup, closes on shutdown
  - All routes receive pool via Depends(get_pool)
  - Business logic stays in the s3_archive package (not here)
"""
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI

from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from api.dependencies.db import lifespan
from api.routers import archive, nodes, settings, stats
from s3_archive.utils import setup_logging

setup_logging()

app = FastAPI(
    title="S3 Archive API",
    description=(
        "Trigger archive runs that move original files of repository nodes "
        "into S3, recover archived files, and manage the archive base URL."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# Trust headers like X-Forwarded-Proto and X-Forwarded-For injected by Nginx
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(stats.router,    prefix="/stats",    tags=["Stats"])
app.include_router(archive.router,  prefix="/archive",  tags=["Archive"])
app.include_router(nodes.router,    prefix="/nodes",    tags=["Nodes"])
app.include_router(settings.router, prefix="/settings", tags=["Settings"])


# ── Health check ─────────────────────────────────────────────────────────────
@app.get("/health", tags=["Meta"])
async def health() -> dict:
    """Liveness probe — returns 200 if the API process is alive."""
    return {"status": "ok"}
