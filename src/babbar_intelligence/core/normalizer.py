"""Tolerant extraction of record lists from Babbar envelopes.

The provider returns the same kind of record under different field names
depending on the endpoint. Each semantic type has an ordered list of candidate
fields; the first one holding a list wins.
"""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from typing import Any, Iterable, Optional

from .models import KeywordRow

logger = logging.getLogger(__name__)

CANDIDATE_FIELDS: dict[str, tuple[str, ...]] = {
    "keywords": ("entries", "keywords", "results"),
    "hosts": ("hosts", "similar", "results"),
    "urls": ("pages", "urls", "results"),
    "pages": ("pages", "urls", "results"),
    "backlinks": ("backlinks", "links", "results"),
    "buckets": ("buckets", "results"),
    "fetches": ("fetches", "results"),
}

GENERIC_FIELDS = (
    "entries", "keywords", "hosts", "similar",
    "pages", "urls", "backlinks", "links", "results",
)

KEYWORD_FIELDS = ("keywords", "keyword", "query", "q", "term", "text")
HOST_FIELDS = ("host", "similar", "hostname", "domain", "name")
URL_FIELDS = ("url", "page", "href", "link", "uri")
RANK_FIELDS = ("rank", "position", "pos")
VOLUME_FIELDS = ("volume", "searchVolume", "search_volume")

_WHITESPACE = re.compile(r"\s+")


def payload_of(envelope: Any) -> Any:
    """Return the ``data`` payload of an envelope, or the object itself."""
    if isinstance(envelope, dict) and "data" in envelope and envelope["data"] is not None:
        return envelope["data"]
    return envelope


def extract(envelope: Any, semantic_type: Optional[str] = None) -> list:
    """Return the first list found among the candidate fields for ``semantic_type``.

    The payload itself is tried last when it is already a list. An empty list
    is returned when nothing qualifies; callers must tolerate empty results.
    """
    if envelope is None:
        logger.warning("extract: envelope is empty")
        return []

    data = payload_of(envelope)
    fields = CANDIDATE_FIELDS.get(semantic_type or "", GENERIC_FIELDS)

    candidates: list[Any] = []
    if isinstance(data, dict):
        candidates.extend(data.get(name) for name in fields)
    if isinstance(data, list):
        candidates.append(data)

    for candidate in candidates:
        if isinstance(candidate, list):
            logger.debug("extract: %d records found for type %r", len(candidate), semantic_type)
            return candidate

    logger.warning("extract: no record list found for type %r", semantic_type)
    return []


def first_field(row: Any, names: Iterable[str], default: Any = None) -> Any:
    """Value of the first present, non-empty field of ``row``."""
    if not isinstance(row, dict):
        return default
    for name in names:
        value = row.get(name)
        if value is not None and value != "":
            return value
    return default


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce a provider value to a finite float."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def keyword_key(value: Any) -> str:
    """Lower-cased, trimmed keyword; accents are kept."""
    return str(value).lower().strip()


def normalize_keyword(value: Any) -> str:
    """Lower-case, strip diacritics and collapse whitespace."""
    text = unicodedata.normalize("NFD", str(value).lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", text).strip()


def normalize_host(value: Any) -> str:
    return str(value).lower().strip()


def keyword_of(row: Any) -> Any:
    """Raw keyword of a record; list-valued fields yield their first element."""
    value = first_field(row, KEYWORD_FIELDS)
    if isinstance(value, list):
        return value[0] if value else None
    return value


def extract_keywords(rows: Iterable[Any]) -> list[str]:
    """Lower-cased, trimmed keyword strings, empties dropped."""
    keywords = []
    for row in rows:
        value = keyword_of(row)
        if value is None:
            continue
        keyword = keyword_key(value)
        if keyword:
            keywords.append(keyword)
    return keywords


def extract_hosts(rows: Iterable[Any]) -> list[str]:
    """Host names from host records or plain strings."""
    hosts = []
    for row in rows:
        value = row if isinstance(row, str) else first_field(row, HOST_FIELDS)
        if value is None:
            continue
        host = normalize_host(value)
        if host:
            hosts.append(host)
    return hosts


def extract_urls(rows: Iterable[Any]) -> list[str]:
    urls = []
    for row in rows:
        value = row if isinstance(row, str) else first_field(row, URL_FIELDS)
        if value is None:
            continue
        url = str(value).strip()
        if url:
            urls.append(url)
    return urls


def keyword_rows(rows: Iterable[Any]) -> list[KeywordRow]:
    """Canonical keyword rows; a missing rank becomes ``inf`` (unranked)."""
    result = []
    for row in rows:
        value = keyword_of(row)
        if value is None:
            continue
        keyword = str(value).strip()
        if not keyword:
            continue
        result.append(KeywordRow(
            keyword=keyword,
            rank=to_number(first_field(row, RANK_FIELDS), math.inf),
            url=first_field(row, ("url", "page")),
            feature=first_field(row, ("feature", "type")),
            volume=to_number(first_field(row, VOLUME_FIELDS), 0.0),
        ))
    return result
