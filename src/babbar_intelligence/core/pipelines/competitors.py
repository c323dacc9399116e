"""Competitor discovery and keyword content gap.

Both analyses start from the semantic neighbours of the analyzed host
(/host/similar) and compare keyword rankings. Competitor keyword fetches fan
out through a bounded executor; a competitor that fails is reported, not fatal.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Optional

from ..clients.babbar import DEFAULT_COUNTRY, DEFAULT_LANG, BabbarClient, today
from ..executor import BoundedExecutor
from ..models import CompetitorCandidate, KeywordRow
from ..normalizer import (
    extract,
    extract_keywords,
    first_field,
    keyword_rows,
    normalize_host,
    normalize_keyword,
    payload_of,
    to_number,
)
from ..scoring import (
    brand_tokens_from_host,
    find_keyword_opportunities,
    is_branded_for,
    score_competitor_relevance,
)
from .stages import require, run_stage

logger = logging.getLogger(__name__)

COMPETITOR_CONCURRENCY = 5
OPPORTUNITIES_PER_COMPETITOR = 5
TOP_OPPORTUNITIES = 20
GAP_HITS_PER_KEYWORD = 10


def competitor_candidates(envelope: dict) -> list[CompetitorCandidate]:
    """Hosts from /host/similar; the 0-1 score becomes a 0-100 similarity."""
    candidates = []
    for row in extract(envelope, "hosts"):
        name = row if isinstance(row, str) else first_field(row, ("host", "similar", "domain"))
        if not name:
            continue
        similarity = to_number(first_field(row, ("score",))) * 100
        candidates.append(CompetitorCandidate(
            host=normalize_host(name),
            similarity_score=min(100.0, max(0.0, similarity)),
        ))
    return candidates


def _keywords_params(host: str, lang: str, country: str, serp_date: str, n: int) -> dict:
    return {"host": host, "lang": lang, "country": country, "date": serp_date, "n": n, "offset": 0}


# ─── Competitive analysis ────────────────────────────────────────────────────


async def competitive_analysis(
    client: BabbarClient,
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    serp_date: Optional[str] = None,
    n_competitors: int = 10,
    n_keywords_per_site: int = 1000,
) -> dict:
    """Find relevant competitors and the keywords they win that we do not.

    Twice ``n_competitors`` similar hosts are scored; the relevant ones are
    kept, best relevance first.
    """
    pipeline = "competitive_analysis"
    serp_date = serp_date or today()
    logger.info("Running competitive analysis for %s", host)

    base_result = await run_stage(
        "base host data",
        lambda: asyncio.gather(
            client.call("/host/keywords", _keywords_params(host, lang, country, serp_date, n_keywords_per_site)),
            client.call("/host/overview/main", {"host": host}),
        ),
        critical=True,
    )
    base_kw_response, base_overview = require(base_result, pipeline, "base host data")
    base_rows = extract(base_kw_response, "keywords")
    base_keywords = set(extract_keywords(base_rows))
    logger.info("Base host: %d keywords", len(base_keywords))

    similar_result = await run_stage(
        "similar hosts",
        lambda: client.call("/host/similar", {"host": host, "n": n_competitors * 2}),
        critical=True,
    )
    candidates = competitor_candidates(require(similar_result, pipeline, "similar hosts"))
    logger.info("%d potential competitors found", len(candidates))

    async def analyze(candidate: CompetitorCandidate) -> dict:
        kw_response, overview = await asyncio.gather(
            client.call(
                "/host/keywords",
                _keywords_params(candidate.host, lang, country, serp_date, n_keywords_per_site),
            ),
            client.call("/host/overview/main", {"host": candidate.host}),
        )
        rows = extract(kw_response, "keywords")
        relevance = score_competitor_relevance(base_keywords, extract_keywords(rows), candidate.similarity_score)
        opportunities = find_keyword_opportunities(base_rows, rows, candidate.host)
        return {
            "host": candidate.host,
            "overview": payload_of(overview),
            "similarity_score": round(candidate.similarity_score),
            **relevance.model_dump(),
            "keyword_opportunities": [
                o.model_dump(mode="json") for o in opportunities[:OPPORTUNITIES_PER_COMPETITOR]
            ],
            "success": True,
        }

    executor = BoundedExecutor(COMPETITOR_CONCURRENCY)
    results = await executor.map(analyze, candidates)

    analyses = []
    for candidate, result in zip(candidates, results):
        if isinstance(result, BaseException):
            logger.error("Competitor analysis failed for %s: %s", candidate.host, result)
            analyses.append({"host": candidate.host, "success": False, "error": str(result)})
        else:
            analyses.append(result)

    relevant = sorted(
        (a for a in analyses if a["success"] and a["is_relevant"]),
        key=lambda a: -a["relevance_score"],
    )[:n_competitors]

    all_opportunities = [o for a in relevant for o in a["keyword_opportunities"]]
    top_opportunities = sorted(
        all_opportunities,
        key=lambda o: (o["competitor_position"], -o["volume"]),
    )[:TOP_OPPORTUNITIES]

    return {
        "base_host": {
            "host": host,
            "overview": payload_of(base_overview),
            "keywords_count": len(base_keywords),
        },
        "competitors": relevant,
        "failed_competitors": [a for a in analyses if not a["success"]],
        "keyword_opportunities": top_opportunities,
        "summary": {
            "analyzed_count": len(candidates),
            "relevant_count": len(relevant),
            "opportunities_found": len(all_opportunities),
        },
    }


# ─── Content gap ─────────────────────────────────────────────────────────────


def base_best_ranks(rows: list[KeywordRow]) -> dict[str, float]:
    """Best rank per normalized keyword for the analyzed host."""
    best: dict[str, float] = {}
    for row in rows:
        keyword = normalize_keyword(row.keyword)
        if row.rank and row.rank < best.get(keyword, math.inf):
            best[keyword] = row.rank
    return best


def aggregate_gaps(
    competitors: list[dict],
    base_ranks: dict[str, float],
    position_threshold: int,
    seeds: list[str],
    exclude_competitor_brand: bool,
) -> list[dict]:
    """Keywords won by at least one competitor and not by the analyzed host.

    Sorted by best competitor position, then number of winning competitors
    (desc), then keyword.
    """
    needles = [normalize_keyword(s) for s in seeds if normalize_keyword(s)]
    gaps: dict[str, dict[str, Any]] = {}

    for competitor in competitors:
        for row in competitor["keywords"]:
            keyword = normalize_keyword(row.keyword)
            if not keyword:
                continue
            if needles and not any(needle in keyword for needle in needles):
                continue
            if base_ranks.get(keyword, math.inf) <= position_threshold:
                continue
            if exclude_competitor_brand and is_branded_for(keyword, competitor["brand_tokens"]):
                continue

            hit = {"competitor": competitor["host"], "position": row.rank, "url": row.url}
            gap = gaps.get(keyword)
            if gap is None:
                gaps[keyword] = {"keyword": row.keyword, "hits": [hit], "best_competitor_position": row.rank}
            else:
                gap["hits"].append(hit)
                gap["best_competitor_position"] = min(gap["best_competitor_position"], row.rank)

    result = []
    for gap in gaps.values():
        hits = sorted(gap["hits"], key=lambda h: h["position"])
        result.append({
            "keyword": gap["keyword"],
            "best_competitor_position": gap["best_competitor_position"],
            "num_competitors_winning": len(hits),
            "competitors": hits[:GAP_HITS_PER_KEYWORD],
        })
    result.sort(key=lambda g: (g["best_competitor_position"], -g["num_competitors_winning"], g["keyword"]))
    return result


async def content_gap(
    client: BabbarClient,
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    serp_date: Optional[str] = None,
    n_competitors: int = 10,
    n_keywords_per_site: int = 1000,
    position_threshold: int = 10,
    exclude_competitor_brand: bool = True,
    seeds: Optional[list[str]] = None,
    n_results: int = 300,
) -> dict:
    """Keywords where semantic competitors rank in the top ``position_threshold`` and we do not."""
    pipeline = "content_gap"
    serp_date = serp_date or today()
    seeds = seeds or []

    base_result = await run_stage(
        "base keywords",
        lambda: client.call("/host/keywords", _keywords_params(host, lang, country, serp_date, n_keywords_per_site)),
        critical=True,
    )
    base_rows = keyword_rows(extract(require(base_result, pipeline, "base keywords"), "keywords"))
    base_ranks = base_best_ranks(base_rows)

    similar_result = await run_stage(
        "similar hosts",
        lambda: client.call("/host/similar", {"host": host, "n": n_competitors * 2}),
        critical=True,
    )
    candidates = competitor_candidates(require(similar_result, pipeline, "similar hosts"))
    candidates.sort(key=lambda c: -c.similarity_score)
    candidates = candidates[:n_competitors]

    if not candidates:
        return {"host": host, "message": "No competitors found by /host/similar.", "content_gap": []}

    async def fetch(candidate: CompetitorCandidate) -> list[KeywordRow]:
        response = await client.call(
            "/host/keywords",
            _keywords_params(candidate.host, lang, country, serp_date, n_keywords_per_site),
        )
        rows = keyword_rows(extract(response, "keywords"))
        return [r for r in rows if math.isfinite(r.rank) and r.rank <= position_threshold]

    executor = BoundedExecutor(COMPETITOR_CONCURRENCY)
    results = await executor.map(fetch, candidates)

    competitors = []
    failed = []
    for candidate, result in zip(candidates, results):
        if isinstance(result, BaseException):
            logger.warning("Keyword fetch failed for competitor %s: %s", candidate.host, result)
            failed.append({"host": candidate.host, "error": str(result)})
            continue
        competitors.append({
            "host": candidate.host,
            "keywords": result,
            "brand_tokens": brand_tokens_from_host(candidate.host),
        })

    gaps = aggregate_gaps(competitors, base_ranks, position_threshold, seeds, exclude_competitor_brand)
    limited = gaps[:n_results]

    return {
        "host": host,
        "params": {
            "lang": lang,
            "country": country,
            "date": serp_date,
            "n_competitors": n_competitors,
            "n_keywords_per_site": n_keywords_per_site,
            "position_threshold": position_threshold,
            "exclude_competitor_brand": exclude_competitor_brand,
            "seeds": seeds,
            "n_results": n_results,
        },
        "summary": {
            "base_keywords": len(base_rows),
            "competitors_requested": n_competitors,
            "competitors_fetched": len(competitors),
            "failed_competitors": failed,
            "content_gap_count": len(gaps),
            "returned": len(limited),
        },
        "content_gap": limited,
    }
