"""On-site and off-site audits built from one or a few provider calls.

Each audit returns a plain dict ready for JSON serialization. Only the quick
wins audit has stages that may degrade; the others let client errors surface.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..clients.babbar import DEFAULT_COUNTRY, DEFAULT_LANG, BabbarClient, today
from ..models import PriorityTier
from ..normalizer import extract, extract_urls, first_field, payload_of, to_number
from ..scoring import (
    DEFAULT_DUPLICATION_THRESHOLD,
    bin_positions,
    classify_duplication,
    count_fetch_statuses,
    score_anchor_profile,
)
from .stages import require, run_stage

logger = logging.getLogger(__name__)

HEALTH_THRESHOLD = 90
LINKING_PAGES = 3
FETCH_SAMPLE_SIZE = 50
AUDIT_KEYWORD_LIMIT = 2000

DUPLICATION_NOTES = {
    "duplication_definition": (
        "Duplication percentage is computed with RollingHash (Rabin–Karp); "
        "it is not semantic similarity."
    ),
    "rule": "Below 87% = no duplication. From 87% and above = problematic duplication.",
}


def _audit_keywords_params(host: str, lang: str, country: str, serp_date: str) -> dict:
    return {
        "host": host, "lang": lang, "country": country, "date": serp_date,
        "n": AUDIT_KEYWORD_LIMIT, "offset": 0, "min": 1, "max": 100,
    }


# ─── Duplication ─────────────────────────────────────────────────────────────


async def host_duplication_report(
    client: BabbarClient,
    host: str,
    threshold: float = DEFAULT_DUPLICATION_THRESHOLD,
    include_below: bool = False,
    max_examples: int = 5,
) -> dict:
    """Triage of the host's internal duplication buckets."""
    envelope = await client.call("/host/duplicate", {"host": host})
    report = classify_duplication(extract(envelope, "buckets"), threshold, include_below, max_examples)
    return {
        "host": host,
        "params": {"threshold": threshold, "include_below": include_below, "max_examples": max_examples},
        "notes": DUPLICATION_NOTES,
        **report.model_dump(mode="json"),
    }


async def duplicate_map(
    client: BabbarClient,
    host: str,
    include_keywords: bool = False,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    serp_date: Optional[str] = None,
) -> dict:
    """Raw duplicate pairs of the host, optionally alongside its keywords."""
    duplicate = await client.call("/host/duplicate", {"host": host})
    result = {"host": host, "notes": DUPLICATION_NOTES, "duplicate": payload_of(duplicate)}
    if include_keywords:
        keywords = await client.call(
            "/host/keywords",
            _audit_keywords_params(host, lang, country, serp_date or today()),
        )
        result["keywords"] = payload_of(keywords)
    return result


# ─── Quick wins ──────────────────────────────────────────────────────────────


async def _linking_suggestions(client: BabbarClient, page_urls: list[str]) -> list[dict]:
    suggestions = []
    for url in page_urls:
        result = await run_stage(
            f"similar links of {url}",
            lambda url=url: client.call("/url/similar-links", {"url": url}),
        )
        if not result.is_ok:
            continue
        similar = extract(result.value, "urls")
        if similar:
            suggestions.append({
                "source_url": url,
                "suggestions": [
                    {"target_url": first_field(s, ("url", "page")), "score": first_field(s, ("score",))}
                    for s in similar
                ],
            })
    return suggestions


async def onsite_quickwins(client: BabbarClient, host: str, top_k: int = 10) -> dict:
    """Prioritized on-site fixes: technical health, duplication, internal linking."""
    pipeline = "onsite_quickwins"
    logger.info("Analyzing on-site quick wins for %s", host)

    base_result = await run_stage(
        "host health, duplication and top pages",
        lambda: asyncio.gather(
            client.call("/host/health", {"host": host}),
            client.call("/host/duplicate", {"host": host}),
            client.call("/host/pages/top/sv", {"host": host, "limit": top_k}),
        ),
        critical=True,
    )
    health_response, duplicate_response, top_pages_response = require(
        base_result, pipeline, "host health, duplication and top pages"
    )

    recommendations = []

    health = payload_of(health_response)
    health = health if isinstance(health, dict) else {}
    score = to_number(health.get("health"), 100.0)
    if score < HEALTH_THRESHOLD:
        recommendations.append({
            "type": "Technical health",
            "priority": PriorityTier.HIGH,
            "issue": f"Health score is low ({score:g}/100).",
            "action": (
                f"Review the HTTP status breakdown ({health.get('h4xx', 0)} 4xx errors, "
                f"{health.get('h5xx', 0)} 5xx errors) and fix the failing pages."
            ),
        })

    duplication = classify_duplication(extract(duplicate_response, "buckets"))
    if duplication.buckets:
        recommendations.append({
            "type": "Duplicate content",
            "priority": PriorityTier.MEDIUM,
            "issue": (
                f"{duplication.summary.problematic_pairs} page pairs are duplicated at "
                f"{DEFAULT_DUPLICATION_THRESHOLD:g}% or more."
            ),
            "action": "Use canonical tags, rewrite or merge the content of the affected pages.",
            "details": [b.model_dump(mode="json") for b in duplication.buckets[:5]],
        })

    top_pages = extract_urls(extract(top_pages_response, "urls"))
    linking = await _linking_suggestions(client, top_pages[:LINKING_PAGES])
    if linking:
        recommendations.append({
            "type": "Internal linking",
            "priority": PriorityTier.LOW,
            "issue": "Internal link opportunities were found for strategic pages.",
            "action": "Add contextual links from the source pages to the suggested target pages.",
            "details": linking,
        })

    recommendations.sort(key=lambda r: -r["priority"].weight)
    for recommendation in recommendations:
        recommendation["priority"] = recommendation["priority"].value

    return {
        "host": host,
        "quick_wins": recommendations,
        "summary": {
            "health": health,
            "duplicate_pairs": duplication.summary.total_pairs,
            "critical_duplicate_pairs": duplication.summary.problematic_pairs,
            "top_pages_analyzed": len(top_pages),
        },
    }


# ─── Keywords and links ──────────────────────────────────────────────────────


async def serp_bin_trend(
    client: BabbarClient,
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    serp_date: Optional[str] = None,
    bin_size: int = 5,
    max_pos: int = 100,
    n: int = 500,
) -> dict:
    """Histogram of the host's keyword positions."""
    serp_date = serp_date or today()
    envelope = await client.call("/host/keywords", {
        "host": host, "lang": lang, "country": country, "date": serp_date,
        "offset": 0, "n": n, "min": 1, "max": max_pos,
    })
    rows = extract(envelope, "keywords")
    return {"host": host, "date": serp_date, "bins": bin_positions(rows, bin_size, max_pos), "total": len(rows)}


async def anchor_profile_risk(
    client: BabbarClient,
    host: str,
    brand_terms: Optional[list[str]] = None,
    money_terms: Optional[list[str]] = None,
) -> dict:
    """Anchor text distribution and over-optimization signals."""
    envelope = await client.call("/host/anchors", {"host": host})
    profile = score_anchor_profile(extract(envelope, "backlinks"), brand_terms, money_terms)
    return {"host": host, **profile}


async def fetch_status_audit(client: BabbarClient, host: str, limit: int = 5000, offset: int = 0) -> dict:
    envelope = await client.call("/host/fetches/list", {"host": host, "limit": limit, "offset": offset})
    rows = extract(envelope, "fetches")
    return {
        "host": host,
        "counts": count_fetch_statuses(rows),
        "total": len(rows),
        "sample": rows[:FETCH_SAMPLE_SIZE],
    }


# ─── Site profile ────────────────────────────────────────────────────────────


async def language_localization_audit(
    client: BabbarClient,
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    serp_date: Optional[str] = None,
) -> dict:
    """Detected languages next to the keywords ranked for one market."""
    languages, keywords = await asyncio.gather(
        client.call("/host/lang", {"host": host}),
        client.call("/host/keywords", _audit_keywords_params(host, lang, country, serp_date or today())),
    )
    return {
        "host": host,
        "detected_languages": payload_of(languages),
        "keywords_sample": payload_of(keywords),
    }


async def ip_neighbourhood_audit(client: BabbarClient, host: str) -> dict:
    """Hosts sharing the host's IP and its neighbours."""
    ip, neighbours = await asyncio.gather(
        client.call("/host/ip", {"host": host}),
        client.call("/host/neighbours", {"host": host}),
    )
    return {"host": host, "ip": payload_of(ip), "neighbours": payload_of(neighbours)}
