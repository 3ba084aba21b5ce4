"""
tests/test_resolver.py — candidate resolution and scope building.

  1. one candidate per node holding an original file, none for the rest
  2. ALL ignores the hierarchy
  3. ownership is matched directly, not through ancestors
  4. results are ordered by node then media
  5. build_scope with and without members
"""
import pytest

from s3_archive import resolver
from s3_archive.errors import QueryFailed
from s3_archive.models import ALL, Candidate
from s3_archive.pipeline import build_scope
from tests.conftest import BOOK, COLLECTION, DERIVATIVE, IMAGE


def _scenario(store):
    store.add_node(1, COLLECTION)
    store.add_node(2, COLLECTION, member_of=1)
    store.add_node(3, BOOK, member_of=2)
    store.add_media(101, 3, "fedora://bucket/x.tif", file_id=201)
    store.add_media(102, 3, "fedora://bucket/x_service.jpg", use=DERIVATIVE, file_id=202)


@pytest.mark.asyncio
async def test_scenario_leaf_needs_explicit_scope(store):
    _scenario(store)

    assert await resolver.resolve(None, {1, 2}) == []

    found = await resolver.resolve(None, {1, 2, 3})
    assert found == [Candidate(node_id=3, media_id=101, file_id=201, uri="fedora://bucket/x.tif")]


@pytest.mark.asyncio
async def test_all_scope(store):
    _scenario(store)
    store.add_node(9, IMAGE)
    store.add_media(109, 9, "fedora://elsewhere/y.tif", file_id=209)

    found = await resolver.resolve(None, ALL)
    assert [c.node_id for c in found] == [3, 9]


@pytest.mark.asyncio
async def test_exactly_one_per_node_with_original(store):
    for nid in range(1, 6):
        store.add_node(nid, IMAGE)
    store.add_media(11, 1, "fedora://a/1.tif")
    store.add_media(13, 3, "fedora://a/3.tif")
    store.add_media(14, 4, "fedora://a/4.jpg", use=DERIVATIVE)

    found = await resolver.resolve(None, {1, 2, 3, 4, 5})
    assert [(c.node_id, c.media_id) for c in found] == [(1, 11), (3, 13)]


@pytest.mark.asyncio
async def test_ordering_is_stable(store):
    store.add_node(7, IMAGE)
    store.add_node(5, IMAGE)
    store.add_media(30, 7, "fedora://a/7.tif")
    store.add_media(20, 5, "fedora://a/5.tif")

    first = await resolver.resolve(None, ALL)
    second = await resolver.resolve(None, ALL)
    assert first == second
    assert [c.node_id for c in first] == [5, 7]


@pytest.mark.asyncio
async def test_empty_scope_skips_the_query(store):
    assert await resolver.resolve(None, set()) == []
    assert "fetch_candidates" not in store.calls


@pytest.mark.asyncio
async def test_query_failure_is_reported(store):
    store.fail["fetch_candidates"] = RuntimeError("relation media does not exist")
    with pytest.raises(QueryFailed):
        await resolver.resolve(None, ALL)


@pytest.mark.asyncio
async def test_build_scope_adds_members(store):
    _scenario(store)

    assert await build_scope(None, {1}, {COLLECTION}) == {1, 2, 3}
    assert await build_scope(None, {1}, {COLLECTION}, include_members=False) == {1, 2}

    scope = await build_scope(None, {1}, {COLLECTION})
    assert [c.media_id for c in await resolver.resolve(None, scope)] == [101]
