"""Bearer tokens from the ambient Azure credential chain."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog
from azure.identity.aio import DefaultAzureCredential

from .http import TokenProvider

if TYPE_CHECKING:
    from azure.core.credentials import AccessToken
    from azure.core.credentials_async import AsyncTokenCredential

logger = structlog.get_logger()

ARM_SCOPE = "https://management.azure.com/.default"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Tokens this close to expiry are refreshed before use.
_EXPIRY_MARGIN_SECONDS = 300


class CredentialTokenProvider:
    """Hands out bearer tokens per scope from one async credential.

    Uses DefaultAzureCredential (environment, managed identity, Azure
    CLI, ...) unless a credential is given.
    """

    def __init__(self, credential: AsyncTokenCredential | None = None) -> None:
        self._credential = credential
        self._tokens: dict[str, AccessToken] = {}

    def _get_credential(self) -> AsyncTokenCredential:
        if self._credential is None:
            self._credential = DefaultAzureCredential()
        return self._credential

    async def token(self, scope: str) -> str:
        """Return a valid token for a scope, refreshing when near expiry."""
        cached = self._tokens.get(scope)
        if cached is None or cached.expires_on - _EXPIRY_MARGIN_SECONDS <= time.time():
            logger.debug("token_requested", scope=scope)
            cached = await self._get_credential().get_token(scope)
            self._tokens[scope] = cached
        return cached.token

    def for_scope(self, scope: str) -> TokenProvider:
        """Bind a scope, yielding a provider for AzureHttpClient."""

        async def provide() -> str:
            return await self.token(scope)

        return provide

    async def close(self) -> None:
        if self._credential is not None:
            await self._credential.close()
            self._credential = None
