"""Backlink opportunity mining via spotsfinder and induced strength.

Stages:
0. Fetch the host's ranked keywords (target filtering and brief synthesis).
1. Select target pages: internal pages that are not already strong (no
   keyword ranked better than 5), by semantic value then page value.
2. Build the exclusion set: hosts that already link to the analyzed host.
3. Discover semantically compatible hosts with /host/spotsfinder.
4. Collect their best pages (top semantic value) as candidate sources.
5. Compute the induced strength (fi) of every preselected (source, target)
   pair through a bounded executor; keep pairs at or above the threshold.
6. Rank by induced strength, then spotsfinder score, then semantic value.

Induced strength already accounts for source popularity and link relevance,
so it is the only metric the ranking optimizes.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..clients.babbar import DEFAULT_COUNTRY, DEFAULT_LANG, BabbarClient, today
from ..executor import BoundedExecutor
from ..models import BacklinkOpportunity, KeywordRow, SourceMetrics, SourcePage
from ..normalizer import (
    extract,
    extract_hosts,
    first_field,
    keyword_rows,
    normalize_host,
    payload_of,
    to_number,
)
from .stages import require, run_stage

logger = logging.getLogger(__name__)

PIPELINE = "backlink_opportunities"

STRONG_RANK = 5
BRIEF_MAX_RANK = 20
BRIEF_MAX_KEYWORDS = 100
BASE_KEYWORD_LIMIT = 5000
REFERRING_HOST_LIMIT = 5000
USED_CONTENT_PREVIEW = 120


class BacklinkSearchParams(BaseModel):
    """Tuning knobs of the backlink opportunity search."""

    lang: str = DEFAULT_LANG
    country: str = DEFAULT_COUNTRY
    date: Optional[str] = Field(None, description="SERP date (YYYY-MM-DD), today when empty")
    max_targets: int = Field(18, ge=1)
    internal_page_limit: int = Field(2000, ge=1)
    top_pages_per_host: int = Field(50, ge=1)
    sources_pool_cap: int = Field(3000, ge=1)
    max_candidates_per_target: int = Field(80, ge=1)
    fi_threshold: float = 10.0
    concurrency_fi: int = Field(8, ge=1)
    top_limit: int = Field(25, ge=1)


def best_rank_by_url(rows: list[KeywordRow]) -> dict[str, float]:
    """Best (lowest) keyword rank of every URL of the analyzed host."""
    best: dict[str, float] = {}
    for row in rows:
        if not row.url:
            continue
        if row.rank < best.get(row.url, math.inf):
            best[row.url] = row.rank
    return best


def select_targets(internal_pages: list[Any], best_ranks: dict[str, float], max_targets: int) -> list[str]:
    """Pick internal pages worth strengthening.

    Pages with a keyword ranked better than 5 are already strong and skipped.
    When that leaves nothing, the best pages by semantic value are used.
    """
    candidates = []
    for page in internal_pages:
        url = first_field(page, ("url", "link", "target")) if isinstance(page, dict) else page
        if not url:
            continue
        candidates.append({
            "url": str(url),
            "sv": to_number(first_field(page, ("semanticValue", "sv"))),
            "pv": to_number(first_field(page, ("pageValue", "pv"))),
        })

    filtered = [c for c in candidates if best_ranks.get(c["url"], math.inf) >= STRONG_RANK]
    filtered.sort(key=lambda c: (-c["sv"], -c["pv"]))
    if not filtered and candidates:
        filtered = sorted(candidates, key=lambda c: -c["sv"])

    return list(dict.fromkeys(c["url"] for c in filtered))[:max_targets]


def synthesize_brief(rows: list[KeywordRow]) -> str:
    """Spotsfinder brief made of the host's best-ranked keywords."""
    keywords = [r.keyword for r in rows if math.isfinite(r.rank) and r.rank <= BRIEF_MAX_RANK]
    return " ".join(keywords[:BRIEF_MAX_KEYWORDS])


def spotsfinder_hosts(envelope: dict) -> list[dict]:
    """Hosts returned by /host/spotsfinder with their compatibility score."""
    hosts = []
    for row in extract(envelope, "hosts"):
        name = row if isinstance(row, str) else first_field(row, ("host", "similar", "domain", "name"))
        if not name:
            continue
        hosts.append({
            "host": normalize_host(name),
            "score": to_number(first_field(row, ("score", "similarity", "match"))),
        })
    return hosts


def source_pages(envelope: dict, host: str, spotfinder_score: float, limit: int) -> list[SourcePage]:
    pages = []
    for row in extract(envelope, "urls")[:limit]:
        url = first_field(row, ("url", "page", "href"))
        if not url:
            continue
        pages.append(SourcePage(
            url=str(url),
            host=host,
            metrics=SourceMetrics(
                semantic_value=to_number(first_field(row, ("semanticValue", "sv", "ContribSemanticValue"))),
                page_value=to_number(first_field(row, ("pageValue", "pv", "ContribPageValue"))),
                babbar_authority_score=to_number(first_field(row, ("babbarAuthorityScore", "bas"))),
            ),
            spotfinder_score=spotfinder_score,
        ))
    return pages


def dedupe_and_exclude(sources: list[SourcePage], excluded_hosts: set[str]) -> list[SourcePage]:
    """Drop duplicate URLs (first seen wins) and sources already linking to us."""
    unique: dict[str, SourcePage] = {}
    for source in sources:
        if source.url in unique or normalize_host(source.host) in excluded_hosts:
            continue
        unique[source.url] = source
    return list(unique.values())


def preselect_sources(sources: list[SourcePage], limit: int) -> list[SourcePage]:
    """Best sources by semantic value, page value, then spotsfinder score."""
    ordered = sorted(
        sources,
        key=lambda s: (-s.metrics.semantic_value, -s.metrics.page_value, -s.spotfinder_score),
    )
    return ordered[:limit]


def rank_opportunities(opportunities: list[BacklinkOpportunity]) -> list[BacklinkOpportunity]:
    return sorted(
        opportunities,
        key=lambda o: (-o.induced_strength, -o.spotfinder_score, -o.source_metrics.semantic_value),
    )


async def induced_strength(client: BabbarClient, source_url: str, target_url: str) -> tuple[float, Optional[str]]:
    """Induced strength of a (source, target) pair and its confidence label."""
    envelope = await client.call("/url/fi", {"source": source_url, "target": target_url})
    data = payload_of(envelope)
    if not isinstance(data, dict):
        return 0.0, None
    confidence = data.get("confidence")
    return to_number(data.get("fi")), str(confidence) if confidence is not None else None


async def _collect_sources(
    client: BabbarClient,
    hosts: list[dict],
    params: BacklinkSearchParams,
) -> tuple[list[SourcePage], list[str]]:
    sources: list[SourcePage] = []
    failed: list[str] = []
    for spot in hosts:
        result = await run_stage(
            f"top pages of {spot['host']}",
            lambda spot=spot: client.call(
                "/host/pages/top/sv",
                {"host": spot["host"], "limit": params.top_pages_per_host},
            ),
            fallback=None,
        )
        if result.is_ok:
            sources.extend(source_pages(result.value, spot["host"], spot["score"], params.top_pages_per_host))
        else:
            failed.append(spot["host"])
        if len(sources) >= params.sources_pool_cap:
            break
    return sources[:params.sources_pool_cap], failed


async def _score_pairs(
    client: BabbarClient,
    targets: list[str],
    sources: list[SourcePage],
    params: BacklinkSearchParams,
) -> tuple[list[BacklinkOpportunity], int, int]:
    preselected = preselect_sources(sources, params.max_candidates_per_target)
    pairs = [(source, target) for target in targets for source in preselected if source.url != target]

    async def score(pair: tuple[SourcePage, str]) -> tuple[float, Optional[str]]:
        source, target = pair
        return await induced_strength(client, source.url, target)

    executor = BoundedExecutor(params.concurrency_fi)
    results = await executor.map(score, pairs)

    opportunities = []
    failures = 0
    for (source, target), result in zip(pairs, results):
        if isinstance(result, BaseException):
            logger.debug("Induced strength failed for %s -> %s: %s", source.url, target, result)
            failures += 1
            continue
        fi, confidence = result
        if fi < params.fi_threshold:
            continue
        opportunities.append(BacklinkOpportunity(
            source_url=source.url,
            source_host=source.host,
            target_url=target,
            induced_strength=fi,
            confidence=confidence,
            source_metrics=source.metrics,
            spotfinder_score=source.spotfinder_score,
        ))
    return opportunities, len(pairs), failures


async def find_backlink_opportunities(
    client: BabbarClient,
    host: str,
    targets: Optional[list[str]] = None,
    content: Optional[str] = None,
    params: Optional[BacklinkSearchParams] = None,
) -> dict:
    """Rank link sources (not yet linking to ``host``) by induced strength towards its pages.

    Args:
        client: Babbar client.
        host: Analyzed host (e.g., 'www.example.com').
        targets: Target URLs; selected automatically when empty.
        content: Spotsfinder brief; synthesized from the host's keywords when empty.
        params: Search parameters.

    Raises:
        PipelineError: A critical stage (keywords, internal pages, referring
            hosts, spotsfinder) failed.
        ValueError: No brief was given and none could be synthesized.
    """
    params = params or BacklinkSearchParams()
    serp_date = params.date or today()
    logger.info("Backlink opportunities for %s via spotsfinder (induced strength only)", host)

    # Stage 0
    keywords_result = await run_stage(
        "host keywords",
        lambda: client.call("/host/keywords", {
            "host": host, "lang": params.lang, "country": params.country,
            "date": serp_date, "n": BASE_KEYWORD_LIMIT, "offset": 0,
        }),
        critical=True,
    )
    base_keywords = keyword_rows(extract(require(keywords_result, PIPELINE, "host keywords"), "keywords"))

    # Stage 1
    selected = list(dict.fromkeys(t.strip() for t in (targets or []) if t and t.strip()))
    if not selected:
        logger.info("No targets supplied, selecting internal pages without keywords ranked < %d", STRONG_RANK)
        internal_result = await run_stage(
            "internal pages",
            lambda: client.call("/host/pages/internal", {
                "host": host, "limit": params.internal_page_limit, "offset": 0,
            }),
            critical=True,
        )
        internal_pages = extract(require(internal_result, PIPELINE, "internal pages"), "pages")
        selected = select_targets(internal_pages, best_rank_by_url(base_keywords), params.max_targets)
    logger.info("Targets selected: %d", len(selected))

    # Stage 2
    referring_result = await run_stage(
        "referring hosts",
        lambda: client.call("/host/backlinks/host", {"host": host, "limit": REFERRING_HOST_LIMIT}),
        critical=True,
    )
    excluded = set(extract_hosts(extract(require(referring_result, PIPELINE, "referring hosts"), "hosts")))
    logger.info("%d existing referring hosts excluded", len(excluded))

    # Stage 3
    brief = (content or "").strip() or synthesize_brief(base_keywords)
    if not brief:
        raise ValueError("Spotsfinder needs a non-empty 'content' brief (or a host with ranked keywords).")

    spots_result = await run_stage(
        "spotsfinder",
        lambda: client.call("/host/spotsfinder", {"content": brief, "lang": params.lang}),
        critical=True,
    )
    spot_hosts = spotsfinder_hosts(require(spots_result, PIPELINE, "spotsfinder"))

    report_params = params.model_dump()
    report_params["date"] = serp_date
    report_params["used_content"] = (
        brief[:USED_CONTENT_PREVIEW] + ("…" if len(brief) > USED_CONTENT_PREVIEW else "")
    )

    if not spot_hosts:
        return {
            "host": host,
            "params": report_params,
            "targets": selected,
            "opportunities": [],
            "summary": {"spotfinder_hosts": 0, "message": "No compatible host returned by /host/spotsfinder."},
        }

    # Stage 4
    collected, failed_hosts = await _collect_sources(client, spot_hosts, params)
    sources = dedupe_and_exclude(collected, excluded)
    logger.info("Candidate sources after dedup and exclusion: %d", len(sources))

    if not sources:
        return {
            "host": host,
            "params": report_params,
            "targets": selected,
            "opportunities": [],
            "summary": {
                "spotfinder_hosts": len(spot_hosts),
                "sources_collected": 0,
                "failed_source_hosts": failed_hosts,
                "message": "No usable source left after filtering.",
            },
        }

    # Stage 5
    found, evaluated, failed_pairs = await _score_pairs(client, selected, sources, params)

    # Stage 6
    ranked = rank_opportunities(found)[:params.top_limit]

    return {
        "host": host,
        "params": report_params,
        "targets": selected,
        "opportunities": [o.model_dump(mode="json") for o in ranked],
        "summary": {
            "spotfinder_hosts": len(spot_hosts),
            "sources_collected": len(sources),
            "failed_source_hosts": failed_hosts,
            "pairs_evaluated": evaluated,
            "failed_pairs": failed_pairs,
            "opportunities_found": len(found),
            "opportunities_returned": len(ranked),
            "note": (
                "Sorted by induced strength (desc), then spotsfinder score, then semantic value."
                if ranked else
                f"No induced strength >= {params.fi_threshold} found with the current parameters."
            ),
        },
    }
