"""
SnapTrade API Client

Every request is authenticated with the partner ``clientId`` and a
``timestamp`` query parameter, plus a ``Signature`` header: base64
HMAC-SHA256 (keyed with the consumer key) of the compact, key-sorted JSON
``{"content": <body or null>, "path": <path>, "query": <query string>}``.

Calls are never retried here; the admin UI decides what to do with a
failure.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from snapadmin.config import Settings, get_settings
from snapadmin.providers.base import BaseBrokerageProvider, UpstreamServiceError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def sign_request(consumer_key: str, path: str, query: str, content: Any = None) -> str:
    """Compute the SnapTrade request signature."""
    sig_object = {"content": content, "path": path, "query": query}
    sig_content = json.dumps(sig_object, separators=(",", ":"), sort_keys=True)
    digest = hmac.new(
        consumer_key.encode("utf-8"),
        sig_content.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class SnapTradeClient(BaseBrokerageProvider):
    """
    Thin async client for the SnapTrade REST API.

    Responses are returned as decoded JSON; shapes differ between API
    versions and connectors, so nothing is validated here.
    """

    PROVIDER_NAME = "snaptrade"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.snaptrade_base_url.rstrip("/")
        self.client_id = self.settings.snaptrade_client_id
        self.consumer_key = self.settings.snaptrade_consumer_key
        self.timeout = self.settings.snaptrade_timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """
        Send a signed request and return the decoded body.

        Raises:
            UpstreamServiceError: On HTTP error status, timeout or transport failure
        """
        path = f"{API_PREFIX}{endpoint}"
        query_params = {
            **(params or {}),
            "clientId": self.client_id,
            "timestamp": str(int(time.time())),
        }
        query = urlencode(query_params)
        headers = {
            "Signature": sign_request(self.consumer_key, path, query, body),
            "Accept": "application/json",
        }
        url = f"{self.base_url}{path}?{query}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, json=body)
                response.raise_for_status()
                return _decode_body(response) if response.content else None

        except httpx.HTTPStatusError as e:
            data = _decode_body(e.response)
            raise UpstreamServiceError(
                message=f"HTTP error: {e.response.status_code}",
                provider=self.PROVIDER_NAME,
                status_code=e.response.status_code,
                error_type=f"HTTP_{e.response.status_code}",
                details={
                    "body": data,
                    "status_text": e.response.reason_phrase,
                    "request_id": e.response.headers.get("x-request-id"),
                    "url": f"{self.base_url}{path}",
                    "method": method,
                }
            ) from e

        except httpx.TimeoutException as e:
            raise UpstreamServiceError(
                message="Request timeout",
                provider=self.PROVIDER_NAME,
                error_type="TIMEOUT",
                details={
                    "timeout_seconds": self.timeout,
                    "url": f"{self.base_url}{path}",
                    "method": method,
                }
            ) from e

        except httpx.HTTPError as e:
            raise UpstreamServiceError(
                message=str(e) or e.__class__.__name__,
                provider=self.PROVIDER_NAME,
                error_type="NETWORK",
                details={"url": f"{self.base_url}{path}", "method": method}
            ) from e

    # ----- API status & reference data -----

    async def check_status(self) -> Any:
        return await self._request("GET", "")

    async def list_brokerages(self) -> Any:
        return await self._request("GET", "/brokerages")

    # ----- Authentication -----

    async def list_users(self) -> list[str]:
        users = await self._request("GET", "/snapTrade/listUsers")
        return users if isinstance(users, list) else []

    async def register_user(self, user_id: str) -> dict[str, Any]:
        logger.info(f"Registering SnapTrade user {user_id}")
        return await self._request("POST", "/snapTrade/registerUser", body={"userId": user_id})

    async def delete_user(self, user_id: str) -> Any:
        logger.info(f"Deleting SnapTrade user {user_id}")
        return await self._request("DELETE", "/snapTrade/deleteUser", params={"userId": user_id})

    async def login_user(
        self,
        user_id: str,
        user_secret: str,
        custom_redirect: str | None = None
    ) -> dict[str, Any]:
        body = {"customRedirect": custom_redirect} if custom_redirect else None
        return await self._request(
            "POST",
            "/snapTrade/login",
            params={"userId": user_id, "userSecret": user_secret},
            body=body,
        )

    # ----- Account information -----

    async def list_accounts(self, user_id: str, user_secret: str) -> Any:
        return await self._request(
            "GET",
            "/accounts",
            params={"userId": user_id, "userSecret": user_secret},
        )

    async def get_account_positions(self, user_id: str, user_secret: str, account_id: str) -> Any:
        return await self._request(
            "GET",
            f"/accounts/{account_id}/positions",
            params={"userId": user_id, "userSecret": user_secret},
        )
