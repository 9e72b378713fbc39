# Commerce Platform Integrations Package
from .base import (
    BaseCommerceClient,
    ClientResponse,
    MalformedPayloadError,
    NormalizedCustomer,
    NormalizedLineItem,
    NormalizedOrder,
    ShopifyAPIError,
)
from .shopify import ShopifyClient, parse_next_page_info, verify_webhook_hmac

__all__ = [
    "BaseCommerceClient",
    "ClientResponse",
    "MalformedPayloadError",
    "NormalizedCustomer",
    "NormalizedLineItem",
    "NormalizedOrder",
    "ShopifyAPIError",
    "ShopifyClient",
    "parse_next_page_info",
    "verify_webhook_hmac",
]
