"""Tests for cached reference-data reads."""

import itertools

import pytest

from compliance.core.cache import VIOLATION_TYPES_KEY, EphemeralCache
from compliance.services import reference_service

from conftest import seed_violation_type


@pytest.mark.anyio
async def test_entry_expiring_mid_lookup_reloads_from_store(fake_db):
    await seed_violation_type(fake_db, "Noise", ("Night",))
    # Every clock read advances one second; entries live for two.
    cache = EphemeralCache(default_ttl=2, clock=itertools.count().__next__)

    for _ in range(4):
        result = await reference_service.list_violation_types(fake_db, cache)
        assert result is not None
        assert [v.name for v in result] == ["Noise"]

    known = await reference_service.find_violation_type(fake_db, cache, "Noise")
    assert known is not None and [s.name for s in known.subviolations] == ["Night"]


@pytest.mark.anyio
async def test_cached_empty_list_is_a_hit(fake_db, cache):
    assert await reference_service.list_violation_types(fake_db, cache) == []
    await seed_violation_type(fake_db, "Noise")

    assert await reference_service.list_violation_types(fake_db, cache) == []

    cache.clear(VIOLATION_TYPES_KEY)
    assert [v.name for v in await reference_service.list_violation_types(fake_db, cache)] == ["Noise"]


class BrokenCache(EphemeralCache):
    def get(self, key, default=None):
        raise RuntimeError("cache down")


@pytest.mark.anyio
async def test_cache_failure_falls_back_to_store(fake_db):
    await seed_violation_type(fake_db, "Noise")

    result = await reference_service.list_violation_types(fake_db, BrokenCache())

    assert [v.name for v in result] == ["Noise"]
