"""
SnapAdmin Backend Entry Point

Proxy between the admin UI and SnapTrade. The port comes from
BACKEND_PORT, which the dev supervisor sets; without it the OS picks one.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from snapadmin import __version__
from snapadmin.api import get_secret_store, router
from snapadmin.config import get_settings
from snapadmin.database import close_pool
from snapadmin.models import SecretStoreKind
from snapadmin.providers import SnapTradeClient, UpstreamServiceError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


async def check_credentials() -> bool:
    """Startup credential check; logs the outcome and never raises."""
    settings = get_settings()
    logger.info(f"🔑 Using SnapTrade Client ID: {settings.snaptrade_client_id or '<missing>'}")
    logger.info("🔧 Testing SnapTrade API credentials on startup...")
    try:
        data = await SnapTradeClient(settings).check_status()
    except UpstreamServiceError as e:
        logger.warning("❌ SnapTrade API credentials are INVALID")
        logger.warning(f"🚫 Error: {e.body or e}")
        logger.warning("💡 Please check SNAPTRADE_CLIENT_ID and SNAPTRADE_CONSUMER_KEY")
        return False

    logger.info("✅ SnapTrade API credentials are VALID")
    logger.info(f"📊 API Status: {data}")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    settings = get_settings()

    # Startup
    logger.info(f"🚀 Starting SnapAdmin backend v.{__version__}")
    logger.info(f"🔐 Secret store: {settings.secret_store}")
    await check_credentials()

    yield

    # Shutdown
    logger.info("🛑 Shutting down SnapAdmin backend")
    if settings.secret_store.lower() == SecretStoreKind.POSTGRES.value:
        await close_pool()
    get_secret_store.cache_clear()
    logger.info("✅ Shutdown complete")


def create_app() -> FastAPI:
    """Create FastAPI application."""
    app = FastAPI(
        title="SnapAdmin",
        description="Admin proxy for the SnapTrade brokerage aggregation API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/openapi.json"
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Correlate UI calls with backend errors."""
        start = time.monotonic()
        logger.info(f"[REQ] {request.method} {request.url.path}")
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"[RES] {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Route errors already carry an {"error": {...}} body; send it unwrapped
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            content = exc.detail
        else:
            content = {"error": {"code": f"HTTP_{exc.status_code}", "message": str(exc.detail)}}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"❌ Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "SNAPADMIN_INTERNAL_ERROR", "message": str(exc) or "Internal Server Error"}},
        )

    # Include API routes
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "SnapAdmin",
            "version": __version__,
            "docs": "/docs",
            "api": {
                "status": "GET /api/status",
                "config_check": "GET /api/config-check",
                "health": "GET /api/health",
                "brokerages": "GET /api/brokerages",
                "list_users": "GET /api/users",
                "register_user": "POST /api/users",
                "delete_user": "DELETE /api/users/{userId}",
                "login_url": "GET /api/users/{userId}/{userSecret}/login",
                "login": "POST /api/users/login",
                "accounts": "POST /api/users/accounts",
                "holdings": "POST /api/users/holdings"
            }
        }

    return app


# Create application instance
app = create_app()


def main():
    """Main entry point for running the backend."""
    settings = get_settings()

    logger.info(f"Starting SnapAdmin backend on {settings.api_host}:{settings.backend_port}")

    uvicorn.run(
        "snapadmin.main:app",
        host=settings.api_host,
        port=settings.backend_port,
        reload=False,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
