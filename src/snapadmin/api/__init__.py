"""
SnapAdmin API Module

REST proxy consumed by the admin UI.
"""

from snapadmin.api.routes import get_provider, get_secret_store, router
from snapadmin.api.schemas import (
    ErrorResponse,
    HealthResponse,
    StatusResponse,
)

__all__ = [
    "router",
    "get_provider",
    "get_secret_store",
    "ErrorResponse",
    "HealthResponse",
    "StatusResponse",
]
