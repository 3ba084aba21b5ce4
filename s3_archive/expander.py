"""
s3_archive/expander.py — Transitive closure of container nodes.

Walk order is breadth-first over `member_of` edges: each round asks the
database for the container-like children of the current frontier. Only ids
never seen before form the next frontier, so a cycle in the hierarchy
cannot keep the loop alive.
"""
import logging
from typing import Iterable, Set

import asyncpg

from s3_archive import db as db_mod
from s3_archive.errors import QueryFailed
from s3_archive.models import CONTAINER_MODELS

log = logging.getLogger("s3_archive.expander")


async def expand(
    pool: asyncpg.Pool,
    roots: Iterable[int],
    models: Iterable[str] = CONTAINER_MODELS,
) -> Set[int]:
    """
    Return `roots` plus every container reachable from them.

    Raises QueryFailed if a traversal query fails (no retry).
    """
    models = list(models)
    found: Set[int] = set(roots)
    frontier: Set[int] = set(found)
    rounds = 0

    while frontier:
        rounds += 1
        try:
            children = await db_mod.fetch_child_containers(pool, sorted(frontier), models)
        except Exception as exc:
            raise QueryFailed(f"container traversal failed: {exc}") from exc
        frontier = set(children) - found
        found |= frontier

    log.info("Expanded %d root(s) to %d container(s) in %d round(s).", len(set(roots)), len(found), rounds)
    return found


async def members_of(pool: asyncpg.Pool, containers: Iterable[int]) -> Set[int]:
    """Direct members of `containers`, any model."""
    containers = sorted(set(containers))
    if not containers:
        return set()
    try:
        return set(await db_mod.fetch_members(pool, containers))
    except Exception as exc:
        raise QueryFailed(f"member lookup failed: {exc}") from exc
