"""Thin async JSON client shared by the Azure adapters.

Adds a bearer token to every request, retries throttling and timeouts,
follows `nextLink` / `@odata.nextLink` paging and turns every non-success
response into a RemoteCallError.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, stop_after_attempt
from tenacity.wait import wait_base

from rolewarden.core.exceptions import RemoteCallError

from .retry import log_retry_attempt, retry_if_rate_limit_or_timeout, wait_rate_limit_with_backoff

logger = structlog.get_logger()

TokenProvider = Callable[[], Awaitable[str]]

_NEXT_LINK_KEYS = ("nextLink", "@odata.nextLink")


class AzureHttpClient:
    """JSON over HTTP against one Azure API surface.

    Attributes:
        service_name: Name used in logs and error messages ("arm", "graph").
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        service_name: str,
        timeout_seconds: float = 30.0,
        max_attempts: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
        wait: wait_base | Callable[..., float] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API root, e.g. https://management.azure.com.
            token_provider: Coroutine factory returning a bearer token.
            service_name: Name used in logs and error messages.
            timeout_seconds: Per-request timeout.
            max_attempts: Attempts per request, retries included.
            transport: Optional transport (tests inject httpx.MockTransport).
            wait: Optional tenacity wait strategy between retries.
        """
        self.service_name = service_name
        self.max_attempts = max_attempts
        self._token_provider = token_provider
        self._wait = wait or wait_rate_limit_with_backoff
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AzureHttpClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request, retrying throttling and timeouts.

        Raises:
            RemoteCallError: If the request ultimately fails.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_rate_limit_or_timeout,
            wait=self._wait,
            before_sleep=log_retry_attempt(self.service_name, self.max_attempts),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    token = await self._token_provider()
                    response = await self._client.request(
                        method,
                        url,
                        params=params,
                        json=json,
                        headers={"Authorization": f"Bearer {token}"},
                    )
                    if response.status_code == 429:
                        response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._error(method, url, e.response) from e
        except httpx.HTTPError as e:
            raise RemoteCallError(f"{self.service_name} {method} {url} failed: {e}") from e

        if response.is_error:
            raise self._error(method, url, response)
        return response

    def _error(self, method: str, url: str, response: httpx.Response) -> RemoteCallError:
        error_code = None
        message = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            error_code = body["error"].get("code")
            message = body["error"].get("message", message)

        logger.error(
            "remote_call_failed",
            service=self.service_name,
            method=method,
            url=url,
            status_code=response.status_code,
            error_code=error_code,
        )
        return RemoteCallError(
            f"{self.service_name} {method} {url} returned {response.status_code}: {message}",
            status_code=response.status_code,
            error_code=error_code,
        )

    async def get_json(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        response = await self.request("GET", url, params=params)
        return response.json()  # type: ignore[no-any-return]

    async def get_paged(
        self, url: str, params: dict[str, str] | None = None
    ) -> list[dict[str, Any]]:
        """GET a collection, following next links until exhausted.

        Next links are absolute and already carry the query string.
        """
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        next_params = params
        while next_url:
            page = await self.get_json(next_url, params=next_params)
            items.extend(page.get("value", []))
            next_url = next((page[key] for key in _NEXT_LINK_KEYS if page.get(key)), None)
            next_params = None
        return items

    async def put_json(self, url: str, body: Any, params: dict[str, str] | None = None) -> None:
        await self.request("PUT", url, params=params, json=body)

    async def post(self, url: str, body: Any = None, params: dict[str, str] | None = None) -> None:
        await self.request("POST", url, params=params, json=body)

    async def patch_json(self, url: str, body: Any, params: dict[str, str] | None = None) -> None:
        await self.request("PATCH", url, params=params, json=body)
