"""Principal lookups against Microsoft Graph.

Groups are identified by display name, users by user principal name.
All lookups are memoised in the run cache, in both directions.
"""

from __future__ import annotations

from typing import Any

import structlog

from rolewarden.core.domain_types import PrincipalKind
from rolewarden.core.exceptions import PrincipalNotFoundError, RemoteCallError

from ..cache import RunCache
from .http import AzureHttpClient

logger = structlog.get_logger()


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"


class GraphDirectory:
    """Resolves principals between stable ids and human-readable names."""

    def __init__(self, graph: AzureHttpClient, cache: RunCache) -> None:
        self.graph = graph
        self.cache = cache

    async def _get_or_none(
        self, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any] | None:
        try:
            return await self.graph.get_json(url, params=params)
        except RemoteCallError as e:
            if e.status_code == 404:
                return None
            raise

    async def resolve_name(self, principal_id: str, principal_kind: PrincipalKind) -> str:
        """Display name of a group, or user principal name of a user.

        Raises:
            PrincipalNotFoundError: If the id does not resolve.
        """

        async def load() -> str:
            if principal_kind is PrincipalKind.GROUP:
                body = await self._get_or_none(
                    f"/groups/{principal_id}", {"$select": "id,displayName"}
                )
                name = body.get("displayName") if body else None
            else:
                body = await self._get_or_none(
                    f"/users/{principal_id}", {"$select": "id,userPrincipalName"}
                )
                name = body.get("userPrincipalName") if body else None
            if not name:
                raise PrincipalNotFoundError(principal_id, principal_kind.value)
            self.cache.put(f"{principal_kind.value}_id", name, principal_id)
            return str(name)

        return await self.cache.get_or_load(f"{principal_kind.value}_name", principal_id, load)

    async def resolve_id(self, name: str, principal_kind: PrincipalKind) -> str:
        """Stable id of a group by display name, or of a user by UPN.

        Raises:
            PrincipalNotFoundError: If no single principal has the name.
        """

        async def load() -> str:
            if principal_kind is PrincipalKind.GROUP:
                matches = await self.graph.get_paged(
                    "/groups",
                    {"$filter": f"displayName eq {odata_quote(name)}", "$select": "id,displayName"},
                )
                if len(matches) != 1:
                    logger.warning("group_lookup_ambiguous", name=name, matches=len(matches))
                    raise PrincipalNotFoundError(name, principal_kind.value)
                principal_id = matches[0]["id"]
            else:
                body = await self._get_or_none(
                    f"/users/{name}", {"$select": "id,userPrincipalName"}
                )
                if body is None:
                    raise PrincipalNotFoundError(name, principal_kind.value)
                principal_id = body["id"]
            self.cache.put(f"{principal_kind.value}_name", principal_id, name)
            return str(principal_id)

        return await self.cache.get_or_load(f"{principal_kind.value}_id", name, load)

    async def principal_kind_of(self, principal_id: str) -> PrincipalKind | None:
        """Kind of a directory object, or None for anything but users and groups."""

        async def load() -> PrincipalKind | None:
            body = await self.graph.get_json(f"/directoryObjects/{principal_id}")
            odata_type = body.get("@odata.type")
            if odata_type == "#microsoft.graph.user":
                return PrincipalKind.USER
            if odata_type == "#microsoft.graph.group":
                return PrincipalKind.GROUP
            return None

        return await self.cache.get_or_load("directory_object_kind", principal_id, load)

    async def caller_object_id(self) -> str:
        """Object id of the signed-in principal."""

        async def load() -> str:
            body = await self.graph.get_json("/me", {"$select": "id"})
            return str(body["id"])

        return await self.cache.get_or_load("caller", "me", load)
