"""
Admin Console Client

Everything the admin UI does apart from rendering: looks up locally
stored user secrets, calls the backend proxy, captures failures with
enough detail to copy-paste, and normalizes holdings for display.
"""

import logging
import time
from typing import Any

import httpx

from snapadmin.models import NormalizedHoldingsResult, UserRecord
from snapadmin.normalizer import normalize
from snapadmin.secret_store import BaseSecretStore

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class ConsoleError(Exception):
    """A console action failed; ``details()`` is meant for display."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        status_text: str | None = None,
        data: Any = None,
        url: str | None = None,
        method: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.status_text = status_text
        self.data = data
        self.url = url
        self.method = method

    def details(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "status": self.status,
            "statusText": self.status_text,
            "data": self.data,
            "url": self.url,
            "method": self.method,
        }


def _error_message(data: Any, fallback: str) -> str:
    """Pull a readable message out of a backend error body."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if message:
                return str(message)
        elif error:
            return str(error)
        if data.get("message"):
            return str(data["message"])
    return fallback


class AdminConsole:
    """
    Client for the SnapAdmin backend as used by the admin UI.

    Secrets are always looked up under the row's user id; outbound calls
    use ``override_user_id`` when one is set (a debugging aid).
    """

    def __init__(
        self,
        api_base: str,
        secret_store: BaseSecretStore,
        override_user_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.api_base = api_base.rstrip("/")
        self.secret_store = secret_store
        self.override_user_id = override_user_id
        self._transport = transport
        self.timeout = timeout

    def effective_user_id(self, user_id: str) -> str:
        override = (self.override_user_id or "").strip()
        return override or user_id

    async def _call(self, method: str, endpoint: str, fallback: str, **kwargs) -> Any:
        url = f"{self.api_base}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                data = e.response.json()
            except ValueError:
                data = e.response.text
            raise ConsoleError(
                _error_message(data, e.response.reason_phrase or fallback),
                code=f"HTTP_{e.response.status_code}",
                status=e.response.status_code,
                status_text=e.response.reason_phrase,
                data=data,
                url=url,
                method=method,
            ) from e
        except httpx.HTTPError as e:
            raise ConsoleError(
                f"Connection Error: make sure the backend server is running on {self.api_base} ({e})",
                code="ERR_NETWORK",
                url=url,
                method=method,
            ) from e

        return response.json() if response.content else None

    async def _require_secret(self, user_id: str) -> str:
        user_secret = await self.secret_store.get(user_id)
        if not user_secret:
            raise ConsoleError(
                f"User secret not found locally for {user_id}. Please re-register this user.",
                code="NO_LOCAL_SECRET",
            )
        return user_secret

    # ----- users -----

    async def fetch_users(self) -> list[UserRecord]:
        """Server user list, enriched with locally stored secrets."""
        data = await self._call(
            "GET", "/users", "Failed to fetch users",
            params={"_ts": str(int(time.time() * 1000))},
            headers=NO_CACHE_HEADERS,
        )
        local = await self.secret_store.all()
        users: list[UserRecord] = []
        for row in data or []:
            user = UserRecord.model_validate(row)
            users.append(UserRecord(userId=user.userId, userSecret=user.userSecret or local.get(user.userId)))
        return users

    async def register_user(self, user_id: str) -> dict[str, Any]:
        """Register a user and keep its secret locally."""
        user_id = (user_id or "").strip()
        if not user_id:
            raise ConsoleError("User ID is required", code="INVALID_INPUT")

        try:
            data = await self._call("POST", "/users", "Failed to register user", json={"userId": user_id})
        except ConsoleError as e:
            if e.status == 409:
                e.message = "User already exists"
                e.code = "USER_EXISTS"
                e.args = (e.message,)
            raise

        if isinstance(data, dict) and data.get("userId") and data.get("userSecret"):
            await self.secret_store.set(data["userId"], data["userSecret"])
        logger.info(f"User registered successfully! User ID: {user_id}")
        return data

    async def delete_user(self, user_id: str) -> Any:
        return await self._call("DELETE", f"/users/{user_id}", f"Failed to delete {user_id}")

    # ----- connection portal -----

    async def generate_connection(self, user_id: str) -> str | None:
        """Connection portal URL for the user (secret sent in the body)."""
        user_secret = await self._require_secret(user_id)
        data = await self._call(
            "POST", "/users/login", "Failed to generate connection",
            json={"userId": self.effective_user_id(user_id), "userSecret": user_secret},
        )
        return data.get("redirectURI") if isinstance(data, dict) else None

    # ----- accounts & holdings -----

    async def fetch_accounts(self, user_id: str) -> list[Any]:
        user_secret = await self._require_secret(user_id)
        data = await self._call(
            "POST", "/users/accounts", "Failed to load user accounts",
            json={"userId": self.effective_user_id(user_id), "userSecret": user_secret},
        )
        return data if isinstance(data, list) else []

    async def view_holdings(self, user_id: str, account_id: str | None) -> NormalizedHoldingsResult:
        """Holdings of one account, normalized for display."""
        user_secret = await self._require_secret(user_id)
        if not account_id:
            raise ConsoleError(
                "Missing accountId for holdings request. Refresh accounts and try again.",
                code="NO_ACCOUNT_ID",
            )

        data = await self._call(
            "POST", "/users/holdings", "Failed to fetch holdings",
            json={
                "accountId": account_id,
                "userId": self.effective_user_id(user_id),
                "userSecret": user_secret,
            },
        )
        return normalize(data)

    async def list_brokerages(self) -> list[Any]:
        data = await self._call(
            "GET", "/brokerages", "Failed to load brokerages",
            params={"_ts": str(int(time.time() * 1000))},
            headers=NO_CACHE_HEADERS,
        )
        return data if isinstance(data, list) else []
