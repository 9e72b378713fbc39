"""
Payload helpers - coercion and ordered candidate extraction for Shopify JSON

Shopify sends the same fact under several shapes (REST vs GraphQL, money sets
vs plain strings, nested default_address vs top level). Each canonical field is
resolved from an explicit, ordered list of candidate extractors; the first one
that yields a usable value wins.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from dateutil.parser import parse as parse_date

Extractor = Callable[[Dict[str, Any]], Any]


def path(*keys: Union[str, int]) -> Extractor:
    """Extractor for a nested key path, e.g. path("default_address", "phone")"""
    def _extract(payload: Dict[str, Any]) -> Any:
        node: Any = payload
        for key in keys:
            if isinstance(key, int):
                if not isinstance(node, list) or len(node) <= key:
                    return None
                node = node[key]
            else:
                if not isinstance(node, dict):
                    return None
                node = node.get(key)
            if node is None:
                return None
        return node
    _extract.__name__ = "path_" + "_".join(str(k) for k in keys)
    return _extract


def pick(
    payload: Dict[str, Any],
    candidates: Sequence[Extractor],
    coerce: Callable[[Any], Any] = None,
) -> Any:
    """Return the first candidate value that survives coercion (None if none do)"""
    for extractor in candidates:
        value = extractor(payload)
        if coerce is not None:
            value = coerce(value)
        elif isinstance(value, str):
            value = clean_str(value)
        if value is not None:
            return value
    return None


def clean_str(value: Any) -> Optional[str]:
    """Trim strings; empty becomes None. Numbers are stringified."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def clean_id(value: Any) -> Optional[str]:
    """External ids arrive as ints, strings or GraphQL gids"""
    text = clean_str(value)
    if text is None:
        return None
    return parse_gid(text)


def parse_gid(value: str) -> str:
    """gid://shopify/Customer/55 -> 55"""
    if value.startswith("gid://"):
        return value.rstrip("/").rsplit("/", 1)[-1]
    return value


def split_tags(value: Any) -> List[str]:
    """Comma separated string (REST) or list (GraphQL) -> ordered, trimmed, non-empty tags"""
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.split(",")
    elif isinstance(value, (list, tuple)):
        raw = [str(v) for v in value if v is not None]
    else:
        return []
    return [t.strip() for t in raw if t and t.strip()]


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """
    Best-effort money coercion.
    Absent or present-but-invalid input becomes None, never zero.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def coerce_int(value: Any) -> Optional[int]:
    number = coerce_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 (with or without offset) -> naive UTC"""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = clean_str(value)
        if text is None:
            return None
        try:
            parsed = parse_date(text)
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
