"""Microsoft Graph To Do client.

Implements RemoteClient over the Graph REST API with bearer-token auth,
error categorization, pagination, and retry for transient failures.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from ..errors import AuthError, RemoteError, RemoteNotFound
from ..models import Task, TodoList
from .base import RemoteClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"

# Called with force_refresh=True after the remote rejects the current token
TokenProvider = Callable[[bool], Awaitable[str | None]]


def static_token_provider(token: str | None) -> TokenProvider:
    """Token provider that always returns the same token."""

    async def provider(force_refresh: bool = False) -> str | None:
        return token or None

    return provider


class GraphClient(RemoteClient):
    """Client for the Graph To Do lists and tasks endpoints.

    Token acquisition is delegated to token_provider. A 401 triggers one
    forced token refresh and a retry. 5xx responses and transport errors
    are retried with exponential backoff up to max_retries attempts, except
    that a POST is only retried when the connection was never established.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        page_size: int = 100,
        retry_backoff: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the Graph client.

        Args:
            token_provider: Async callable returning a bearer token.
            base_url: Graph API root.
            timeout: Request timeout in seconds.
            max_retries: Maximum attempts for transient failures.
            page_size: Tasks requested per page.
            retry_backoff: Initial backoff between retries in seconds.
            http_client: Pre-built client, mostly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.page_size = page_size
        self.retry_backoff = retry_backoff
        self._token_provider = token_provider
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _get_token(self, force_refresh: bool = False) -> str:
        token = await self._token_provider(force_refresh)
        if not token:
            raise AuthError("Could not acquire access token.")
        return token

    async def _request(
        self,
        method: str,
        url: str,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated request with retry.

        Args:
            method: HTTP method.
            url: Path relative to base_url, or an absolute nextLink.
            json_data: Optional JSON body.
            params: Optional query parameters.

        Returns:
            Decoded JSON body, or None for empty responses.
        """
        client = await self._get_client()
        token = await self._get_token()
        # A POST that may have reached the server is not repeated
        idempotent = method.upper() != "POST"
        refreshed = False
        attempt = 0
        backoff = self.retry_backoff

        while True:
            try:
                response = await client.request(
                    method,
                    url,
                    json=json_data,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.TransportError as e:
                error = RemoteError(
                    f"{method} {url} failed: {e.__class__.__name__}: {e}",
                    category="network",
                )
                retryable = idempotent or isinstance(e, httpx.ConnectError)
            else:
                if response.status_code == 401 and not refreshed:
                    logger.info("Access token rejected, refreshing")
                    refreshed = True
                    token = await self._get_token(force_refresh=True)
                    continue

                if response.status_code < 500:
                    return self._handle_response(response)

                error = RemoteError(
                    f"Graph API error: {response.status_code} - {self._error_message(response)}",
                    status_code=response.status_code,
                )
                retryable = idempotent

            attempt += 1
            if not retryable or attempt >= self.max_retries:
                raise error

            logger.warning(f"{error}, attempt {attempt}/{self.max_retries}")
            await asyncio.sleep(backoff)
            backoff *= 2

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.reason_phrase

        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        return response.reason_phrase

    def _handle_response(self, response: httpx.Response) -> Any:
        status = response.status_code

        if 200 <= status < 300:
            if status == 204 or not response.content:
                return None
            return response.json()

        message = f"Graph API error: {status} - {self._error_message(response)}"
        if status in (401, 403):
            raise AuthError(message, status_code=status)
        if status == 404:
            raise RemoteNotFound(message, status_code=status)
        raise RemoteError(message, status_code=status)

    async def _get_paged(
        self, path: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Collect every item of a collection, following @odata.nextLink."""
        items: list[dict[str, Any]] = []
        url: str | None = path

        while url:
            data = await self._request("GET", url, params=params) or {}
            items.extend(data.get("value", []))
            url = data.get("@odata.nextLink")
            # nextLink already encodes the query
            params = None

        return items

    async def list_all_lists(self) -> list[TodoList]:
        items = await self._get_paged("/me/todo/lists")
        return [TodoList.from_dict(item) for item in items]

    async def list_tasks(self, list_id: str) -> list[Task]:
        items = await self._get_paged(
            f"/me/todo/lists/{list_id}/tasks",
            params={"$top": self.page_size},
        )
        return [Task.from_dict(item, list_id=list_id) for item in items]

    async def create_task(self, list_id: str, draft: dict[str, Any]) -> Task:
        data = await self._request(
            "POST", f"/me/todo/lists/{list_id}/tasks", json_data=draft
        )
        if data is None:
            raise RemoteError(f"Empty response creating task in list {list_id}")
        logger.debug(f"Created task {data.get('id')} in list {list_id}")
        return Task.from_dict(data, list_id=list_id)

    async def delete_task(self, list_id: str, task_id: str) -> None:
        await self._request("DELETE", f"/me/todo/lists/{list_id}/tasks/{task_id}")

    async def create_list(self, name: str) -> TodoList:
        data = await self._request(
            "POST", "/me/todo/lists", json_data={"displayName": name}
        )
        if data is None:
            raise RemoteError(f"Empty response creating list {name!r}")
        return TodoList.from_dict(data)

    async def delete_list(self, list_id: str) -> None:
        await self._request("DELETE", f"/me/todo/lists/{list_id}")
