"""
SnapAdmin API Request/Response Schemas

Field names follow the camelCase used by the admin UI and SnapTrade.
Request fields are optional so that missing values produce the API's own
400 error instead of a validation error.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# === Requests ===

class RegisterUserRequest(BaseModel):
    userId: str | None = Field(default=None, description="New SnapTrade user id")


class UserCredentialsRequest(BaseModel):
    """Body for login and accounts calls; the secret never goes in the URL."""
    userId: str | None = None
    userSecret: str | None = None


class HoldingsRequest(UserCredentialsRequest):
    accountId: str | None = Field(default=None, description="Brokerage account id")


# === Responses ===

class StatusResponse(BaseModel):
    """Response of /api/status (used as the dev supervisor health check)."""
    status: str = Field(description="success | error")
    message: str
    data: Any = None
    error: Any = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "success",
                "message": "SnapTrade API credentials are valid",
                "data": {"version": 151, "timestamp": "2026-01-15T15:30:00Z", "online": True}
            }
        }
    }


class ConfigCheckResponse(BaseModel):
    """Credential presence without exposing the credentials."""
    snaptradeClientIdPresent: bool
    snaptradeConsumerKeyPresent: bool
    snaptradeClientIdFingerprint: str | None = None
    snaptradeConsumerKeyFingerprint: str | None = None
    snaptradeClientIdMasked: str | None = None
    snaptradeConsumerKeyMasked: str | None = None
    frontEndUrl: str | None = None


class HealthResponse(BaseModel):
    """Response of /api/health."""
    status: str = Field(description="Service health status")
    version: str = Field(description="API version")
    secret_store: str = Field(description="Configured secret store")
    database: str | None = Field(
        default=None,
        description="Database connection status (postgres store only)"
    )


class ErrorDetail(BaseModel):
    """Error detail information."""
    code: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details"
    )
    timestamp: datetime = Field(description="Error timestamp")


class ErrorResponse(BaseModel):
    """Body of every non-2xx response raised by the proxy routes."""
    error: ErrorDetail

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": {
                    "code": "SNAPADMIN_UPSTREAM_ERROR",
                    "message": "HTTP error: 401",
                    "details": {
                        "upstream_status": 401,
                        "upstream_request_id": "b1f0c0de",
                        "upstream_body": {"detail": "Unable to verify signature sent", "code": "1076"}
                    },
                    "timestamp": "2026-01-15T15:30:00Z"
                }
            }
        }
    }
