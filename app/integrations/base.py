"""
Base Commerce Client - Abstract adapter and normalized record shapes
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Mapping
import logging

logger = logging.getLogger(__name__)


class MalformedPayloadError(ValueError):
    """External payload is missing a field required to identify the record"""


class ShopifyAPIError(Exception):
    """External call failed where the contract has no status channel"""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


@dataclass
class ClientResponse:
    """
    Result of a REST call. Non-2xx responses and transport errors are
    reported here, never raised.
    """
    ok: bool
    status: int
    headers: Mapping[str, str]
    json_body: Dict[str, Any] = field(default_factory=dict)
    text: str = ""
    error: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup"""
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, val in self.headers.items():
            if key.lower() == lowered:
                return val
        return None


@dataclass
class NormalizedCustomer:
    """
    Canonical customer shape that webhook and backfill payloads map to
    """
    shopify_customer_id: str
    salon_name: str
    customer_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    town: Optional[str] = None
    county: Optional[str] = None
    post_code: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None


@dataclass
class NormalizedLineItem:
    line_no: int
    shopify_line_item_id: Optional[str] = None
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    product_title: Optional[str] = None
    variant_title: Optional[str] = None
    product_vendor: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    total: Optional[Decimal] = None


@dataclass
class NormalizedOrder:
    """
    Canonical order shape; amounts are None when absent or unparsable
    """
    shopify_order_id: str
    shopify_order_number: Optional[str] = None
    shopify_name: Optional[str] = None
    shopify_customer_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    currency: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    subtotal: Optional[Decimal] = None
    taxes: Optional[Decimal] = None
    discounts: Optional[Decimal] = None
    shipping: Optional[Decimal] = None
    total: Optional[Decimal] = None
    items: List[NormalizedLineItem] = field(default_factory=list)


class BaseCommerceClient(ABC):
    """
    Abstract base class for commerce platform adapters
    """
    PLATFORM_NAME: str = "base"

    def __init__(self, shop_domain: str, access_token: str, api_version: str, timeout: float = 30.0):
        self.shop_domain = shop_domain
        self.access_token = access_token
        self.api_version = api_version
        self.timeout = timeout

    # ========== Calls ==========

    @abstractmethod
    async def rest_call(
        self,
        path: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> ClientResponse:
        """
        Authenticated REST call. Must not raise on non-2xx.
        """
        pass

    @abstractmethod
    async def graphql_call(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Authenticated GraphQL call returning the parsed body
        """
        pass

    # ========== Utilities ==========

    def _build_headers(self) -> Dict[str, str]:
        """Build common request headers"""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _log_api_call(self, method: str, endpoint: str, status_code: int):
        """Log API call for debugging"""
        logger.info(f"[{self.PLATFORM_NAME}] {method} {endpoint} -> {status_code}")
