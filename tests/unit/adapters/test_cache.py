"""Unit tests for the run cache."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from rolewarden.adapters.cache import RunCache
from rolewarden.core.exceptions import RemoteCallError


class TestRunCache:
    """Tests for RunCache."""

    async def test_loads_once(self) -> None:
        """A key is loaded on first use and served from memory after."""
        cache = RunCache()
        loader = AsyncMock(return_value="Platform Team")

        first = await cache.get_or_load("group_by_id", "group-1", loader)
        second = await cache.get_or_load("group_by_id", "group-1", loader)

        assert first == second == "Platform Team"
        loader.assert_awaited_once()
        assert (cache.hits, cache.misses) == (1, 1)

    async def test_kinds_are_separate_namespaces(self) -> None:
        """The same key under two resource kinds is two entries."""
        cache = RunCache()

        await cache.get_or_load("group_by_id", "x", AsyncMock(return_value="a"))
        value = await cache.get_or_load("user_by_id", "x", AsyncMock(return_value="b"))

        assert value == "b"
        assert len(cache) == 2

    async def test_failures_are_not_cached(self) -> None:
        """A failed load propagates and is retried on next use."""
        cache = RunCache()
        loader = AsyncMock(side_effect=[RemoteCallError("boom", status_code=500), "ok"])

        with pytest.raises(RemoteCallError):
            await cache.get_or_load("role", "r", loader)

        assert await cache.get_or_load("role", "r", loader) == "ok"
        assert loader.await_count == 2

    async def test_put_seeds_entry(self) -> None:
        """Seeded entries are served without loading."""
        cache = RunCache()
        cache.put("group_by_name", "Platform Team", "group-1")
        loader = AsyncMock()

        assert await cache.get_or_load("group_by_name", "Platform Team", loader) == "group-1"
        loader.assert_not_awaited()
