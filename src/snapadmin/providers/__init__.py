"""
SnapAdmin Upstream Providers Module

Clients for the brokerage aggregation service proxied by the backend.
"""

from snapadmin.providers.base import BaseBrokerageProvider, UpstreamServiceError
from snapadmin.providers.snaptrade import SnapTradeClient, sign_request

__all__ = [
    "BaseBrokerageProvider",
    "UpstreamServiceError",
    "SnapTradeClient",
    "sign_request",
]
