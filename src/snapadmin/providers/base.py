"""
Upstream Provider Interface

Errors from the aggregation service keep the upstream status code, body
and request details so they can be shown and copy-pasted as-is.
"""

from abc import ABC, abstractmethod
from typing import Any


class UpstreamServiceError(Exception):
    """Any failed call to the aggregation service."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        error_type: str = "UNKNOWN",
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.error_type = error_type
        self.details = details or {}

    @property
    def body(self) -> Any:
        """Upstream response body, if any."""
        return self.details.get("body")

    @property
    def request_id(self) -> str | None:
        return self.details.get("request_id")


class BaseBrokerageProvider(ABC):
    """
    Abstract base class for brokerage aggregation providers.

    Implementations return decoded JSON bodies unchanged; shaping them
    for display is the normalizer's job.
    """

    PROVIDER_NAME: str = "base"

    @abstractmethod
    async def check_status(self) -> Any:
        """Verify credentials and service availability."""
        pass

    @abstractmethod
    async def list_users(self) -> list[str]:
        """List registered user ids."""
        pass

    @abstractmethod
    async def register_user(self, user_id: str) -> dict[str, Any]:
        """Register a user; the response carries its userSecret."""
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> Any:
        pass

    @abstractmethod
    async def login_user(
        self,
        user_id: str,
        user_secret: str,
        custom_redirect: str | None = None
    ) -> dict[str, Any]:
        """Create a connection portal URL for the user."""
        pass

    @abstractmethod
    async def list_accounts(self, user_id: str, user_secret: str) -> Any:
        pass

    @abstractmethod
    async def get_account_positions(self, user_id: str, user_secret: str, account_id: str) -> Any:
        pass

    @abstractmethod
    async def list_brokerages(self) -> Any:
        pass
