"""Backend marketplace API client bound to one client-credentials pair."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from marketplace.core.exceptions import MarketplaceAPIError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/auth/token"
INTEGRATION_PREFIX = "/v1/integration_api"
# Refresh this many seconds before the advertised expiry
TOKEN_EXPIRY_MARGIN = 30


class MarketplaceClient:
    """Authenticated client for the marketplace Integration API.

    The access token is fetched lazily with the OAuth2 client-credentials
    grant and reused until shortly before it expires. The underlying
    ``httpx.AsyncClient`` is also created lazily, so constructing a client
    performs no I/O.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        base_url: str,
        timeout: float = 10.0,
        scope: str = "integ",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._scope = scope
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._closed = False
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"MarketplaceClient(client_id={self.client_id!r}, base_url={self._base_url!r})"

    # ── Public API ────────────────────────────────────────────

    async def query_users(self, **params: Any) -> dict:
        return await self._get(f"{INTEGRATION_PREFIX}/users/query", params)

    async def show_user(self, user_id: str) -> dict | None:
        """Return the user document, or None when the backend does not know the id."""
        try:
            return await self._get(f"{INTEGRATION_PREFIX}/users/show", {"id": user_id})
        except MarketplaceAPIError as exc:
            if exc.status_code == 404:
                return None
            raise

    async def query_transactions(self, **params: Any) -> dict:
        return await self._get(f"{INTEGRATION_PREFIX}/transactions/query", params)

    async def aclose(self) -> None:
        self._closed = True
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ── Internals ─────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    def _client(self) -> httpx.AsyncClient:
        if self._closed:
            raise RuntimeError(f"{self!r} has been closed")
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http

    async def _get(self, path: str, params: dict[str, Any]) -> dict:
        query = _encode_params(params)
        response = await self._client().get(
            path, params=query, headers={"Authorization": f"Bearer {await self._access_token()}"}
        )
        if response.status_code == 401:
            # Token revoked or expired early: fetch a new one and retry once
            self._token = None
            response = await self._client().get(
                path, params=query, headers={"Authorization": f"Bearer {await self._access_token()}"}
            )
        if response.status_code >= 400:
            raise MarketplaceAPIError(response.status_code, _error_message(response))
        return response.json()

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            response = await self._client().post(
                TOKEN_PATH,
                data={
                    "client_id": self.client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "client_credentials",
                    "scope": self._scope,
                },
            )
            if response.status_code >= 400:
                logger.warning(
                    "Token request rejected for client %s (%s)", self.client_id, response.status_code
                )
                raise MarketplaceAPIError(response.status_code, _error_message(response))
            payload = response.json()
            self._token = payload["access_token"]
            expires_in = float(payload.get("expires_in", 3600))
            self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
            return self._token


def _encode_params(params: dict[str, Any]) -> dict[str, str]:
    """Drop unset values and join list values with commas."""
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            encoded[key] = ",".join(str(v) for v in value)
        elif isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        return errors[0].get("title") or errors[0].get("code") or str(errors[0])
    return str(body)[:200]
