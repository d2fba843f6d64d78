"""
SnapAdmin API Routes

Thin pass-through routes from the admin UI to SnapTrade. Upstream errors
keep their status code and body; nothing is retried.
"""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from snapadmin import __version__
from snapadmin.api.schemas import (
    ConfigCheckResponse,
    ErrorResponse,
    HealthResponse,
    HoldingsRequest,
    RegisterUserRequest,
    StatusResponse,
    UserCredentialsRequest,
)
from snapadmin.config import Settings, get_settings
from snapadmin.database import check_connection
from snapadmin.diagnostics import (
    fingerprint,
    mask_last,
    safe_preview_json,
    safe_string,
    summarize_accounts_response,
)
from snapadmin.models import SecretStoreKind, UserRecord
from snapadmin.providers import BaseBrokerageProvider, SnapTradeClient, UpstreamServiceError
from snapadmin.secret_store import BaseSecretStore, create_secret_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["SnapTrade"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing required fields"},
    500: {"model": ErrorResponse, "description": "Upstream or internal error"},
}


# === Dependencies ===

def get_provider() -> BaseBrokerageProvider:
    return SnapTradeClient()


@lru_cache
def get_secret_store() -> BaseSecretStore:
    """One store per process, so in-memory secrets survive between requests."""
    return create_secret_store()


# === Error helpers ===

def _error(status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": details,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


def _missing(*fields: str) -> HTTPException:
    names = " and ".join(fields) if len(fields) <= 2 else f"{', '.join(fields[:-1])} and {fields[-1]}"
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "SNAPADMIN_MISSING_FIELD",
        f"{names} {'is' if len(fields) == 1 else 'are'} required",
        {"fields": list(fields)}
    )


def _upstream_error(e: UpstreamServiceError, operation: str) -> HTTPException:
    logger.error(
        f"❌ SnapTrade {operation} failed: {e} "
        f"(status={e.status_code}, request_id={e.request_id}, body={safe_preview_json(e.body, 2000)})"
    )
    return _error(
        e.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
        "SNAPADMIN_UPSTREAM_ERROR",
        str(e),
        {
            "upstream_status": e.status_code,
            "upstream_request_id": e.request_id,
            "upstream_body": e.body,
            "error_type": e.error_type,
        }
    )


def _redirect_url(settings: Settings) -> str | None:
    if not settings.front_end_url:
        return None
    return f"{settings.front_end_url.rstrip('/')}/snapTradeRedirect"


# === Status & diagnostics ===

@router.get(
    "/status",
    response_model=StatusResponse,
    response_model_exclude_none=True,
    summary="Check SnapTrade credentials",
    responses={500: {"model": StatusResponse, "description": "Credentials invalid or API down"}},
)
async def get_status(provider: BaseBrokerageProvider = Depends(get_provider)):
    """
    Test the SnapTrade credentials.

    Also used by the dev supervisor as the backend health check, so it
    answers 500 while the upstream check fails.
    """
    try:
        data = await provider.check_status()
    except UpstreamServiceError as e:
        logger.error(f"❌ API status check failed: status={e.status_code}, body={safe_string(e.body)}")
        failure = StatusResponse(
            status="error",
            message="SnapTrade API credentials are invalid or API is down",
            error=e.body or str(e),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure.model_dump(mode="json", exclude_none=True),
        )

    logger.info(f"✅ API status check OK: {data}")
    return StatusResponse(
        status="success",
        message="SnapTrade API credentials are valid",
        data=data,
    )


@router.get("/config-check", response_model=ConfigCheckResponse, summary="Verify credentials are configured")
async def config_check(settings: Settings = Depends(get_settings)) -> ConfigCheckResponse:
    """Reports whether credentials are present, without returning them."""
    return ConfigCheckResponse(
        snaptradeClientIdPresent=bool(settings.snaptrade_client_id),
        snaptradeConsumerKeyPresent=bool(settings.snaptrade_consumer_key),
        snaptradeClientIdFingerprint=fingerprint(settings.snaptrade_client_id),
        snaptradeConsumerKeyFingerprint=fingerprint(settings.snaptrade_consumer_key),
        snaptradeClientIdMasked=mask_last(settings.snaptrade_client_id, 6),
        snaptradeConsumerKeyMasked=mask_last(settings.snaptrade_consumer_key, 6),
        frontEndUrl=settings.front_end_url or None,
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Liveness of the proxy itself; does not call SnapTrade."""
    store = settings.secret_store.lower()
    database = None
    if store == SecretStoreKind.POSTGRES.value:
        connected = await check_connection()
        database = "connected" if connected else "disconnected"
        if not connected:
            raise _error(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "SNAPADMIN_UNHEALTHY",
                "Secret store database is not reachable",
                {"database": database}
            )

    return HealthResponse(
        status="healthy",
        version=__version__,
        secret_store=store,
        database=database,
    )


@router.get("/brokerages", summary="List available brokerages", responses=ERROR_RESPONSES)
async def list_brokerages(provider: BaseBrokerageProvider = Depends(get_provider)) -> Any:
    try:
        return await provider.list_brokerages()
    except UpstreamServiceError as e:
        raise _upstream_error(e, "GET /api/brokerages")


# === Users ===

@router.get("/users", response_model=list[UserRecord], summary="List all users", responses=ERROR_RESPONSES)
async def list_users(
    provider: BaseBrokerageProvider = Depends(get_provider),
    store: BaseSecretStore = Depends(get_secret_store),
) -> list[UserRecord]:
    """All SnapTrade users, with any secret this backend has stored."""
    try:
        user_ids = await provider.list_users()
    except UpstreamServiceError as e:
        raise _upstream_error(e, "GET /api/users")

    secrets = await store.all()
    return [UserRecord(userId=user_id, userSecret=secrets.get(user_id)) for user_id in user_ids]


@router.post("/users", summary="Register a new user", responses={
    **ERROR_RESPONSES,
    409: {"model": ErrorResponse, "description": "User already exists"},
})
async def register_user(
    body: RegisterUserRequest,
    provider: BaseBrokerageProvider = Depends(get_provider),
    store: BaseSecretStore = Depends(get_secret_store),
) -> Any:
    """
    Register a SnapTrade user and store its secret.

    The existence check is best-effort: if listing users fails the
    registration is attempted anyway.
    """
    if not body.userId:
        raise _missing("userId")

    try:
        existing = await provider.list_users()
        if body.userId in existing:
            raise _error(
                status.HTTP_409_CONFLICT,
                "SNAPADMIN_USER_EXISTS",
                "User already exists",
                {"userId": body.userId}
            )
    except UpstreamServiceError as e:
        logger.warning(f"⚠️ Could not check existing users: {e}")

    try:
        data = await provider.register_user(body.userId)
    except UpstreamServiceError as e:
        raise _upstream_error(e, "POST /api/users")

    user_secret = data.get("userSecret") if isinstance(data, dict) else None
    if user_secret:
        await store.set(body.userId, user_secret)
    logger.info(f"✅ Registered user {body.userId} (secret {fingerprint(user_secret)})")
    return data


@router.delete("/users/{userId}", summary="Delete a user", responses=ERROR_RESPONSES)
async def delete_user(
    userId: str,
    provider: BaseBrokerageProvider = Depends(get_provider),
    store: BaseSecretStore = Depends(get_secret_store),
) -> Any:
    try:
        data = await provider.delete_user(userId)
    except UpstreamServiceError as e:
        raise _upstream_error(e, "DELETE /api/users/{userId}")

    await store.delete(userId)
    return data


# === Connection portal ===

@router.get(
    "/users/{userId}/{userSecret}/login",
    summary="Generate connection (secret in URL, testing only)",
    responses=ERROR_RESPONSES,
)
async def login_user_from_url(
    userId: str,
    userSecret: str,
    provider: BaseBrokerageProvider = Depends(get_provider),
    settings: Settings = Depends(get_settings),
) -> Any:
    logger.debug(f"Login via URL for {userId} (secret {fingerprint(userSecret)})")
    try:
        return await provider.login_user(userId, userSecret, _redirect_url(settings))
    except UpstreamServiceError as e:
        raise _upstream_error(e, "GET /api/users/{userId}/{userSecret}/login")


@router.post("/users/login", summary="Generate connection", responses=ERROR_RESPONSES)
async def login_user(
    body: UserCredentialsRequest,
    provider: BaseBrokerageProvider = Depends(get_provider),
    settings: Settings = Depends(get_settings),
) -> Any:
    """Create a connection portal URL; the secret travels in the body, not the URL."""
    logger.info(
        f"[LOGIN] userId={body.userId}, "
        f"userSecretPresent={bool(body.userSecret)}, "
        f"userSecretFingerprint={fingerprint(body.userSecret)}, "
        f"consumerKeyFingerprint={fingerprint(settings.snaptrade_consumer_key)}"
    )
    if not body.userId or not body.userSecret:
        raise _missing("userId", "userSecret")

    try:
        return await provider.login_user(body.userId, body.userSecret, _redirect_url(settings))
    except UpstreamServiceError as e:
        raise _upstream_error(e, "POST /api/users/login")


# === Account information ===

@router.post("/users/accounts", summary="List connected accounts", responses=ERROR_RESPONSES)
async def list_accounts(
    body: UserCredentialsRequest,
    provider: BaseBrokerageProvider = Depends(get_provider),
) -> Any:
    if not body.userId or not body.userSecret:
        raise _missing("userId", "userSecret")

    logger.info(f"[ACCOUNTS] Listing accounts for {body.userId} (secret {fingerprint(body.userSecret)})")
    try:
        data = await provider.list_accounts(body.userId, body.userSecret)
    except UpstreamServiceError as e:
        raise _upstream_error(e, "POST /api/users/accounts")

    logger.info(f"[ACCOUNTS] Response summary: {summarize_accounts_response(data)}")
    logger.debug(f"[ACCOUNTS] Response preview:\n{safe_preview_json(data)}")
    return data


@router.post("/users/holdings", summary="Get holdings for an account", responses=ERROR_RESPONSES)
async def get_holdings(
    body: HoldingsRequest,
    provider: BaseBrokerageProvider = Depends(get_provider),
) -> Any:
    if not body.accountId or not body.userId or not body.userSecret:
        raise _missing("accountId", "userId", "userSecret")

    logger.info(f"[HOLDINGS] Positions for {body.userId}, account {body.accountId}")
    try:
        return await provider.get_account_positions(body.userId, body.userSecret, body.accountId)
    except UpstreamServiceError as e:
        raise _upstream_error(e, "POST /api/users/holdings")
