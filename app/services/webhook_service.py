"""
Webhook Service - verify, dedupe and route Shopify push notifications

Per request: RECEIVED -> VERIFIED -> ROUTED -> ACKED, or RECEIVED -> REJECTED.
401 (signature/origin) is final; 500 asks Shopify to redeliver.
"""
import enum
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional
from sqlalchemy.orm import Session
import logging

from app.integrations.base import MalformedPayloadError
from app.integrations.payload import clean_id, clean_str, path, pick
from app.integrations.shopify import verify_webhook_hmac
from app.models.integration import WebhookResult
from app.services import integration_service
from app.services.upsert_service import CommerceUpsertService

logger = logging.getLogger(__name__)

HEADER_TOPIC = "X-Shopify-Topic"
HEADER_SHOP_DOMAIN = "X-Shopify-Shop-Domain"
HEADER_HMAC = "X-Shopify-Hmac-Sha256"
HEADER_WEBHOOK_ID = "X-Shopify-Webhook-Id"


class WebhookState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    VERIFIED = "VERIFIED"
    ROUTED = "ROUTED"
    ACKED = "ACKED"
    REJECTED = "REJECTED"


class WebhookTopic(str, enum.Enum):
    CUSTOMER_UPSERT = "customer_upsert"
    CUSTOMER_TAGS_ADDED = "customer_tags_added"
    CUSTOMER_TAGS_REMOVED = "customer_tags_removed"
    ORDER_UPSERT = "order_upsert"
    IGNORED = "ignored"


TOPIC_MAP = {
    "customers/create": WebhookTopic.CUSTOMER_UPSERT,
    "customers/update": WebhookTopic.CUSTOMER_UPSERT,
    "customers/enable": WebhookTopic.CUSTOMER_UPSERT,
    "customers/disable": WebhookTopic.CUSTOMER_UPSERT,
    "customer_tags/added": WebhookTopic.CUSTOMER_TAGS_ADDED,
    "customer_tags/removed": WebhookTopic.CUSTOMER_TAGS_REMOVED,
    "orders/create": WebhookTopic.ORDER_UPSERT,
    "orders/updated": WebhookTopic.ORDER_UPSERT,
    "orders/paid": WebhookTopic.ORDER_UPSERT,
    "orders/fulfilled": WebhookTopic.ORDER_UPSERT,
    "orders/partially_fulfilled": WebhookTopic.ORDER_UPSERT,
    "orders/cancelled": WebhookTopic.ORDER_UPSERT,
}

ENTITY_ID = [path("id"), path("customer_id"), path("customerId"), path("admin_graphql_api_id")]


def classify_topic(topic: Optional[str]) -> WebhookTopic:
    """Unknown topics map to IGNORED (ack, no action)"""
    return TOPIC_MAP.get((topic or "").strip().lower(), WebhookTopic.IGNORED)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return clean_str(value)


@dataclass
class WebhookOutcome:
    state: WebhookState
    status_code: int
    detail: str
    topic: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": self.status_code == 200, "state": self.state.value, "detail": self.detail}


class WebhookPipeline:
    """
    Processes one raw webhook delivery end to end
    """

    def __init__(self, db: Session, secret: str, allowed_shop_domains: Optional[Iterable[str]] = None):
        self.db = db
        self.secret = (secret or "").strip()
        self.allowed_shop_domains = {d.strip().lower() for d in (allowed_shop_domains or []) if d.strip()}

    def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        topic = _header(headers, HEADER_TOPIC) or ""
        shop_domain = _header(headers, HEADER_SHOP_DOMAIN)

        # signature runs over the exact wire bytes, before any parsing
        if not verify_webhook_hmac(raw_body, _header(headers, HEADER_HMAC), self.secret):
            logger.warning(f"Webhook rejected: bad HMAC (topic={topic!r}, shop={shop_domain!r})")
            return WebhookOutcome(WebhookState.REJECTED, 401, "Bad HMAC", topic)

        if self.allowed_shop_domains and (shop_domain or "").lower() not in self.allowed_shop_domains:
            logger.warning(f"Webhook rejected: unexpected origin (topic={topic!r}, shop={shop_domain!r})")
            return WebhookOutcome(WebhookState.REJECTED, 401, "Unknown shop", topic)

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning(f"Webhook rejected: bad JSON (topic={topic!r}, shop={shop_domain!r})")
            return WebhookOutcome(WebhookState.REJECTED, 400, "Bad JSON", topic)
        if not isinstance(payload, dict):
            return WebhookOutcome(WebhookState.REJECTED, 400, "Bad JSON", topic)

        kind = classify_topic(topic)
        if kind is WebhookTopic.IGNORED:
            logger.info(f"Webhook topic {topic!r} ignored")
            return WebhookOutcome(WebhookState.ACKED, 200, "Ignored", topic)

        webhook_id = _header(headers, HEADER_WEBHOOK_ID)
        dedupe_key = self._dedupe_key(topic, webhook_id, payload, raw_body)
        if integration_service.find_processed_webhook(self.db, dedupe_key):
            logger.info(f"Duplicate webhook {dedupe_key} acknowledged")
            return WebhookOutcome(WebhookState.ACKED, 200, "Duplicate", topic)

        webhook_log = integration_service.log_webhook(
            self.db,
            topic=topic,
            dedupe_key=dedupe_key,
            payload=payload,
            shop_domain=shop_domain,
            webhook_id=webhook_id,
        )
        log_id = webhook_log.id

        try:
            result = self._route(kind, payload, shop_domain)
        except MalformedPayloadError as e:
            self.db.rollback()
            logger.warning(f"Webhook rejected: {e} (topic={topic!r}, shop={shop_domain!r})")
            integration_service.mark_webhook_processed(self.db, log_id, WebhookResult.FAILED.value, str(e))
            return WebhookOutcome(WebhookState.REJECTED, 400, "Malformed payload", topic)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Webhook processing failed: {topic} ({dedupe_key})")
            integration_service.mark_webhook_processed(self.db, log_id, WebhookResult.FAILED.value, str(e)[:1000])
            return WebhookOutcome(WebhookState.ROUTED, 500, "Error", topic)

        integration_service.mark_webhook_processed(self.db, log_id, result)
        return WebhookOutcome(WebhookState.ACKED, 200, result, topic)

    def _route(self, kind: WebhookTopic, payload: Dict[str, Any], shop_domain: Optional[str]) -> str:
        service = CommerceUpsertService(self.db)
        if kind is WebhookTopic.CUSTOMER_UPSERT:
            service.upsert_customer(payload, shop_domain)
        elif kind is WebhookTopic.ORDER_UPSERT:
            service.upsert_order(payload)
        elif kind in (WebhookTopic.CUSTOMER_TAGS_ADDED, WebhookTopic.CUSTOMER_TAGS_REMOVED):
            customer = service.apply_tag_delta(payload, added=kind is WebhookTopic.CUSTOMER_TAGS_ADDED)
            if customer is None:
                return WebhookResult.SKIPPED.value
        return WebhookResult.SUCCESS.value

    @staticmethod
    def _dedupe_key(topic: str, webhook_id: Optional[str], payload: Dict[str, Any], raw_body: bytes) -> str:
        if webhook_id:
            return f"{topic}:{webhook_id}"
        # no delivery id: identical bodies for the same entity are duplicates
        entity_id = pick(payload, ENTITY_ID, coerce=clean_id) or "?"
        digest = hashlib.sha256(raw_body).hexdigest()[:32]
        return f"{topic}:{entity_id}:{digest}"
