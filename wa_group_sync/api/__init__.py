"""
wa_group_sync.api - Gateway API module

HTTP client for the WhatsApp gateway.
"""

from wa_group_sync.api.gateway_api import (
    GatewayAPI,
    GatewayAPIError,
    GatewayNetworkError,
    RateLimitError,
)

__all__ = ["GatewayAPI", "GatewayAPIError", "GatewayNetworkError", "RateLimitError"]
