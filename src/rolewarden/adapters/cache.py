"""Per-run memoisation of remote lookups.

One RunCache is created per reconciliation run and handed to the remote
adapters. It is never shared between runs and never persisted, so it has
no staleness window.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class RunCache:
    """Run-scoped cache keyed by (resource kind, key).

    Failed loads are not cached; the exception propagates to the caller.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, Hashable], Any] = {}
        self.hits = 0
        self.misses = 0

    async def get_or_load(
        self,
        resource_kind: str,
        key: Hashable,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached value, loading and storing it on first use.

        Args:
            resource_kind: Namespace, e.g. "group_by_id" or "role_definitions".
            key: Lookup key within the namespace.
            loader: Coroutine factory producing the value.
        """
        entry_key = (resource_kind, key)
        if entry_key in self._entries:
            self.hits += 1
            return self._entries[entry_key]  # type: ignore[no-any-return]

        self.misses += 1
        value = await loader()
        self._entries[entry_key] = value
        logger.debug("cache_loaded", resource_kind=resource_kind, key=str(key))
        return value

    def put(self, resource_kind: str, key: Hashable, value: Any) -> None:
        """Seed an entry, e.g. the reverse of a lookup just made."""
        self._entries[(resource_kind, key)] = value

    def __len__(self) -> int:
        return len(self._entries)
