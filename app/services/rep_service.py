"""
Rep Service - map Shopify tags and free-text names to canonical sales reps
"""
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from app.models.sales_rep import SalesRep, SalesRepAlias, SalesRepTagRule

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class RepRef:
    id: int
    name: str


def normalize_rep_name(value: Optional[str]) -> str:
    """Display form: trimmed, inner whitespace collapsed"""
    return _WHITESPACE.sub(" ", (value or "").strip())


def normalize_rep_key(value: Optional[str]) -> str:
    """Match form: lower-cased, punctuation stripped, whitespace collapsed"""
    text = _PUNCTUATION.sub("", (value or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def rep_ref_for_tags(db: Session, tags: Iterable[str]) -> Optional[RepRef]:
    """
    Rep of the oldest tag rule matching any of the tags.
    Tags compare trimmed and case-insensitively; rules for inactive reps are ignored.
    Name and id both come from the rule's rep, never from a second name lookup.
    """
    wanted = sorted({t.strip().lower() for t in (tags or []) if t and t.strip()})
    if not wanted:
        return None

    rule = (
        db.query(SalesRepTagRule)
        .join(SalesRep, SalesRep.id == SalesRepTagRule.sales_rep_id)
        .filter(
            func.lower(func.trim(SalesRepTagRule.tag)).in_(wanted),
            SalesRep.is_active.is_(True),
        )
        .order_by(SalesRepTagRule.created_at.asc(), SalesRepTagRule.id.asc())
        .first()
    )
    if not rule:
        return None
    return RepRef(rule.sales_rep.id, rule.sales_rep.name)


def rep_for_tags(db: Session, tags: Iterable[str]) -> Optional[str]:
    """Rep name for the tags (see rep_ref_for_tags)"""
    ref = rep_ref_for_tags(db, tags)
    return ref.name if ref else None


def resolve_rep(
    db: Session,
    rep_id: Optional[Union[int, str]] = None,
    name: Optional[str] = None,
) -> Optional[RepRef]:
    """
    Resolve a rep by id, then alias, then case-insensitive name, then
    normalized-name scan. Exact matches only; None when nothing matches.
    """
    if rep_id is not None and str(rep_id).strip().isdigit():
        rep = db.get(SalesRep, int(str(rep_id).strip()))
        if rep:
            return RepRef(rep.id, rep.name)

    display = normalize_rep_name(name)
    key = normalize_rep_key(name)
    if not key:
        return None

    alias = db.query(SalesRepAlias).filter(SalesRepAlias.alias == key).first()
    if alias and alias.sales_rep:
        return RepRef(alias.sales_rep.id, alias.sales_rep.name)

    rep = (
        db.query(SalesRep)
        .filter(func.lower(SalesRep.name) == display.lower())
        .order_by(SalesRep.id.asc())
        .first()
    )
    if rep:
        return RepRef(rep.id, rep.name)

    for rep in db.query(SalesRep).order_by(SalesRep.id.asc()).all():
        if normalize_rep_key(rep.name) == key:
            return RepRef(rep.id, rep.name)

    logger.debug(f"No sales rep matches {name!r}")
    return None


def add_alias(db: Session, rep: SalesRep, alias: str) -> SalesRepAlias:
    """Register a spelling variant for a rep (stored normalized)"""
    key = normalize_rep_key(alias)
    if not key:
        raise ValueError("Alias is empty after normalization")
    existing = db.query(SalesRepAlias).filter(SalesRepAlias.alias == key).first()
    if existing:
        existing.sales_rep_id = rep.id
        db.commit()
        return existing
    row = SalesRepAlias(alias=key, sales_rep_id=rep.id)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(f"Added alias {key!r} -> {rep.name}")
    return row
