"""
HTTP access to the storefront API.

Thin wrapper over httpx.AsyncClient that attaches the session's bearer
token and maps transport and status errors to NetworkFailure.
"""

from typing import Any

import httpx

from cartsync import config
from cartsync.errors import NetworkFailure
from cartsync.logging import get_logger

logger = get_logger(__name__)


class ApiClient:
    """
    Storefront API client.

    Usage:
        async with ApiClient(token=session.token) as api:
            items = await api.request("GET", f"/cart/user/{user_id}")
    """

    def __init__(
        self,
        base_url: str = config.CART_API_BASE_URL,
        token: str | None = None,
        timeout: float = config.CART_API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (None when empty).

        Raises:
            NetworkFailure: collaborator unreachable or non-2xx answer
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, type(e).__name__)
            raise NetworkFailure(f"{method} {path} failed: {e}") from e

        if allow_not_found and response.status_code == 404:
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = response.status_code
            if status == 401:
                logger.error("API Error: Unauthorized (401). Token might be invalid or expired.")
            else:
                logger.error("%s %s returned %s", method, path, status)
            raise NetworkFailure(_error_message(response), status_code=status) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NetworkFailure(f"{method} {path} returned invalid JSON", status_code=response.status_code) from e


def _error_message(response: httpx.Response) -> str:
    """Prefer the server's own message when it sends one."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Request failed with status {response.status_code}"
