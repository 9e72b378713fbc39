"""
Shopify Admin API Client
API Documentation: https://shopify.dev/docs/api/admin-rest
"""
import base64
import hashlib
import hmac
import re
from typing import Optional, Dict, Any, List
from urllib.parse import urlparse, parse_qs
import httpx
import logging

from .base import (
    BaseCommerceClient,
    ClientResponse,
    MalformedPayloadError,
    NormalizedCustomer,
    NormalizedLineItem,
    NormalizedOrder,
    ShopifyAPIError,
)
from .payload import (
    clean_id,
    clean_str,
    coerce_decimal,
    coerce_int,
    parse_timestamp,
    path,
    pick,
    split_tags,
)

logger = logging.getLogger(__name__)

_LINK_TARGET = re.compile(r"<([^>]+)>")
_REL_NEXT = re.compile(r'rel="?next"?', re.IGNORECASE)


class ShopifyClient(BaseCommerceClient):
    """
    Shopify Admin API Client (REST + GraphQL)
    """
    PLATFORM_NAME = "shopify"

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-07",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(shop_domain, access_token, api_version, timeout)
        self._transport = transport

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}"

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["X-Shopify-Access-Token"] = self.access_token
        return headers

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    # ========== REST ==========

    async def rest_call(
        self,
        path: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> ClientResponse:
        """
        Call the REST Admin API. Non-2xx and transport failures come back as ok=False.
        """
        if not self.shop_domain or not self.access_token:
            return ClientResponse(
                ok=False, status=0, headers={},
                error="Missing SHOPIFY_SHOP_DOMAIN or SHOPIFY_ADMIN_ACCESS_TOKEN",
            )

        url = f"{self.base_url}{path}"
        try:
            async with self._http() as client:
                response = await client.request(
                    method, url, params=params, json=json, headers=self._build_headers()
                )
        except httpx.HTTPError as e:
            logger.error(f"[{self.PLATFORM_NAME}] {method} {path} failed: {e}")
            return ClientResponse(ok=False, status=0, headers={}, error=str(e))

        self._log_api_call(method, path, response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        return ClientResponse(
            ok=response.is_success,
            status=response.status_code,
            headers=response.headers,
            json_body=body,
            text=response.text,
        )

    # ========== GraphQL ==========

    async def graphql_call(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST /graphql.json and return the parsed body (errors included)
        """
        response = await self.rest_call(
            "/graphql.json",
            method="POST",
            json={"query": query, "variables": variables or {}},
        )
        if not response.ok:
            raise ShopifyAPIError(
                f"GraphQL HTTP {response.status}: {response.error or response.text[:200]}",
                status=response.status,
            )
        if response.json_body.get("errors"):
            logger.warning(f"[{self.PLATFORM_NAME}] GraphQL errors: {response.json_body['errors']}")
        return response.json_body

    # ========== Convenience ==========

    async def get_product(self, product_id: str) -> ClientResponse:
        return await self.rest_call(f"/products/{product_id}.json")

    async def get_order(self, order_id: str) -> ClientResponse:
        return await self.rest_call(f"/orders/{order_id}.json", params={"status": "any"})

    async def get_customer(self, customer_id: str) -> ClientResponse:
        return await self.rest_call(f"/customers/{customer_id}.json")


# ========== Pagination ==========

def parse_next_page_info(link_header: Optional[str]) -> Optional[str]:
    """
    Extract page_info from the rel="next" entry of a Link header.
    <https://shop/admin/api/2024-07/orders.json?limit=250&page_info=abc>; rel="next"
    """
    if not link_header:
        return None
    for part in link_header.split(","):
        if not _REL_NEXT.search(part):
            continue
        match = _LINK_TARGET.search(part)
        if not match:
            continue
        values = parse_qs(urlparse(match.group(1)).query).get("page_info")
        if values and values[0]:
            return values[0]
    return None


# ========== Webhooks ==========

def verify_webhook_hmac(raw_body: bytes, hmac_header: Optional[str], secret: str) -> bool:
    """
    Shopify signs the exact request bytes: base64(HMAC-SHA256(secret, body))
    """
    if not secret or not hmac_header:
        return False
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    try:
        provided = base64.b64decode(hmac_header.strip(), validate=True)
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(digest, provided)


def sign_webhook_body(raw_body: bytes, secret: str) -> str:
    """Header value Shopify would send for raw_body"""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


# ========== Normalization ==========

CUSTOMER_ID = [path("id"), path("admin_graphql_api_id"), path("customer_id"), path("customerId")]
CUSTOMER_EMAIL = [path("email"), path("default_address", "email")]
CUSTOMER_PHONE = [path("phone"), path("default_address", "phone")]
CUSTOMER_COMPANY = [path("default_address", "company"), path("company")]
CUSTOMER_FIRST_NAME = [path("first_name"), path("default_address", "first_name")]
CUSTOMER_LAST_NAME = [path("last_name"), path("default_address", "last_name")]
CUSTOMER_UPDATED_AT = [path("updated_at"), path("updatedAt")]

ORDER_ID = [path("id"), path("admin_graphql_api_id")]
ORDER_CUSTOMER_ID = [path("customer", "id"), path("customer_id")]
ORDER_SHIPPING = [
    path("total_shipping_price_set", "shop_money", "amount"),
    path("total_shipping_price_set", "presentment_money", "amount"),
    path("shipping_lines", 0, "price"),
]
ORDER_PROCESSED_AT = [path("processed_at"), path("created_at")]
ORDER_CURRENCY = [path("currency"), path("presentment_currency")]

LINE_PRICE = [path("price"), path("price_set", "shop_money", "amount")]


def normalize_customer(payload: Dict[str, Any]) -> NormalizedCustomer:
    """Convert a Shopify customer payload to the canonical shape"""
    customer_id = pick(payload, CUSTOMER_ID, coerce=clean_id)
    if not customer_id:
        raise MalformedPayloadError("Customer payload has no id")

    email = pick(payload, CUSTOMER_EMAIL)
    first = pick(payload, CUSTOMER_FIRST_NAME)
    last = pick(payload, CUSTOMER_LAST_NAME)
    full_name = " ".join(p for p in (first, last) if p).strip() or None
    company = pick(payload, CUSTOMER_COMPANY)
    address = payload.get("default_address") or {}

    return NormalizedCustomer(
        shopify_customer_id=customer_id,
        salon_name=company or full_name or "Shopify Customer",
        customer_name=full_name or company or "Unknown",
        email=email.lower() if email else None,
        phone=pick(payload, CUSTOMER_PHONE),
        address_line1=clean_str(address.get("address1")),
        address_line2=clean_str(address.get("address2")),
        town=clean_str(address.get("city")),
        county=clean_str(address.get("province")),
        post_code=clean_str(address.get("zip")),
        tags=split_tags(payload.get("tags")),
        updated_at=pick(payload, CUSTOMER_UPDATED_AT, coerce=parse_timestamp),
    )


def normalize_line_item(raw: Dict[str, Any], line_no: int) -> NormalizedLineItem:
    quantity = coerce_int(raw.get("quantity"))
    price = pick(raw, LINE_PRICE, coerce=coerce_decimal)
    total = price * quantity if price is not None and quantity is not None else None
    return NormalizedLineItem(
        line_no=line_no,
        shopify_line_item_id=clean_id(raw.get("id")),
        product_id=clean_id(raw.get("product_id")),
        variant_id=clean_id(raw.get("variant_id")),
        sku=clean_str(raw.get("sku")),
        product_title=clean_str(raw.get("title")) or clean_str(raw.get("name")),
        variant_title=clean_str(raw.get("variant_title")),
        product_vendor=clean_str(raw.get("vendor")),
        quantity=quantity,
        price=price,
        total=total,
    )


def normalize_order(payload: Dict[str, Any]) -> NormalizedOrder:
    """Convert a Shopify order payload to the canonical shape"""
    order_id = pick(payload, ORDER_ID, coerce=clean_id)
    if not order_id:
        raise MalformedPayloadError("Order payload has no id")

    items: List[NormalizedLineItem] = [
        normalize_line_item(raw, idx + 1)
        for idx, raw in enumerate(payload.get("line_items") or [])
        if isinstance(raw, dict)
    ]

    return NormalizedOrder(
        shopify_order_id=order_id,
        shopify_order_number=clean_str(payload.get("order_number")),
        shopify_name=clean_str(payload.get("name")),
        shopify_customer_id=pick(payload, ORDER_CUSTOMER_ID, coerce=clean_id),
        processed_at=pick(payload, ORDER_PROCESSED_AT, coerce=parse_timestamp),
        currency=pick(payload, ORDER_CURRENCY),
        financial_status=clean_str(payload.get("financial_status")),
        fulfillment_status=clean_str(payload.get("fulfillment_status")),
        subtotal=coerce_decimal(payload.get("subtotal_price")),
        taxes=coerce_decimal(payload.get("total_tax")),
        discounts=coerce_decimal(payload.get("total_discounts")),
        shipping=pick(payload, ORDER_SHIPPING, coerce=coerce_decimal),
        total=coerce_decimal(payload.get("total_price")),
        items=items,
    )
