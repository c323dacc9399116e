"""Babbar Intelligence MCP Server.

FastMCP server exposing the Babbar SEO metrics API: one thin tool per
provider endpoint plus composite analyses (competitors, content gap,
backlink opportunities, duplication triage, audits).
Run: babbar-intelligence-mcp
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .core.cache import MemoryCache, ResponseCache
from .core.clients.babbar import (
    API_BASE,
    DEFAULT_COUNTRY,
    DEFAULT_LANG,
    DEFAULT_RATE_LIMIT_RETRIES,
    BabbarClient,
    today,
)
from .core.models import EntityType, InducedStrengthPair
from .core.pipelines import audits, batch, competitors
from .core.pipelines.backlinks import BacklinkSearchParams, find_backlink_opportunities
from .db import close_db, init_db
from .persistent_cache import SqliteResponseCache

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)

_client: Optional[BabbarClient] = None


def _cache_backend() -> str:
    return os.environ.get("BABBAR_CACHE_BACKEND", "memory").strip().lower()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Configure logging, open the persistent cache when selected, close the client on shutdown."""
    global _client
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    if _cache_backend() == "sqlite":
        await init_db()
    logger.info("Babbar MCP server started (cache backend: %s)", _cache_backend())
    try:
        yield
    finally:
        if _client is not None:
            await _client.close()
            _client = None
        await close_db()


mcp = FastMCP(
    "Babbar Intelligence",
    instructions=(
        "SEO intelligence from the Babbar API: host, domain and URL metrics, backlinks, "
        "keywords and SERPs, plus composite analyses: competitors, content gap, "
        "backlink opportunities, duplication and on-site quick wins."
    ),
    lifespan=lifespan,
)


def _get_api_key() -> str:
    key = os.environ.get("BABBAR_API_KEY", "")
    if not key:
        raise ValueError("BABBAR_API_KEY environment variable is required. Get a key at https://www.babbar.tech")
    return key


def _get_client() -> BabbarClient:
    """Process-wide client; its cache and rate budget are shared by every tool."""
    global _client
    if _client is None:
        cache: ResponseCache = SqliteResponseCache() if _cache_backend() == "sqlite" else MemoryCache()
        _client = BabbarClient(
            api_key=_get_api_key(),
            base_url=os.environ.get("BABBAR_API_BASE", API_BASE),
            cache=cache,
            max_rate_limit_retries=int(os.environ.get("BABBAR_RATE_LIMIT_RETRIES", DEFAULT_RATE_LIMIT_RETRIES)),
        )
    return _client


async def _call(endpoint: str, params: dict) -> dict:
    return await _get_client().call(endpoint, params)


# ─── Host ────────────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_overview(host: str) -> dict:
    """Full host overview: BAS, host value, host trust, semantic value (/100), languages, URL volume, HTTP status split, referrers.

    Args:
        host: Host to analyze (e.g., 'www.example.com').
    """
    return await _call("/host/overview/main", {"host": host})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_spotsfinder(content: str, lang: str = DEFAULT_LANG) -> dict:
    """Hosts semantically compatible with a piece of content.

    Args:
        content: Input text (brief).
        lang: Language code (e.g., 'fr', 'en', 'es').
    """
    return await _call("/host/spotsfinder", {"content": content, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_backlinks_host(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Top referring hosts of a host."""
    return await _call("/host/backlinks/host", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_backlinks_url(
    host: str,
    limit: int = 100,
    offset: int = 0,
    order: str = "desc",
    metric: str = "semanticValue",
) -> dict:
    """Top backlinks (referring URLs) of a host.

    Args:
        host: Host to analyze.
        limit: Number of rows. Default 100.
        offset: Pagination offset.
        order: 'asc' or 'desc'.
        metric: 'semanticValue', 'pageValue', 'pageTrust' or 'babbarAuthorityScore'.
    """
    return await _call("/host/backlinks/url", {
        "host": host, "limit": limit, "offset": offset, "order": order, "metric": metric,
    })


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_backlinks_url_list(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Best backlinks of a host ('list' variant)."""
    return await _call("/host/backlinks/url/list", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_backlinks_domain(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Top referring domains of a host. Prefer the host-level variant for analysis."""
    return await _call("/host/backlinks/domain", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_anchors(host: str) -> dict:
    """Anchor text profile of a host."""
    return await _call("/host/anchors", {"host": host})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_pages_top_pv(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Top internal pages by page value."""
    return await _call("/host/pages/top/pv", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_pages_top_pt(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Top internal pages by page trust."""
    return await _call("/host/pages/top/pt", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_pages_top_sv(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Top internal pages by semantic value."""
    return await _call("/host/pages/top/sv", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_pages_top_iev(host: str, limit: int = 100, offset: int = 0) -> dict:
    """Top internal pages by internal page value (within the host)."""
    return await _call("/host/pages/top/iev", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_health(host: str) -> dict:
    """Health score (/100) and HTTP 2xx/3xx/4xx/5xx/fail breakdown."""
    return await _call("/host/health", {"host": host})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_fetches_list(host: str, limit: int = 5000, offset: int = 0) -> dict:
    """Known pages of the host with HTTP code and detected language."""
    return await _call("/host/fetches/list", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_lang(host: str) -> dict:
    """Languages detected on the host."""
    return await _call("/host/lang", {"host": host})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_similar(host: str, n: int = 100) -> dict:
    """Up to 100 semantically close hosts (competitors)."""
    return await _call("/host/similar", {"host": host, "n": n})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_pages_internal(host: str, limit: int = 1000, offset: int = 0) -> dict:
    """Raw list of internal pages."""
    return await _call("/host/pages/internal", {"host": host, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_ip(host: str) -> dict:
    """Hosts sharing the analyzed host's IP address(es)."""
    return await _call("/host/ip", {"host": host})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_duplicate(
    host: str,
    threshold: float = 87.0,
    include_below: bool = False,
    examples: int = 5,
) -> dict:
    """Internal duplication buckets, triaged by severity and priority.

    Duplication is measured with RollingHash (Rabin–Karp): below 87% there is
    no duplication, from 87% up it is problematic.

    Args:
        host: Host to analyze.
        threshold: Percentage from which a bucket is problematic. Default 87.
        include_below: Also return the buckets under the threshold.
        examples: Example page pairs kept per bucket. Default 5.
    """
    return await audits.host_duplication_report(_get_client(), host, threshold, include_below, examples)


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_questions(host: str, lang: str = DEFAULT_LANG) -> dict:
    """Questions matching the host's global semantic vector."""
    return await _call("/host/questions", {"host": host, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_neighbours(host: str) -> dict:
    """Neighbours of a host."""
    return await _call("/host/neighbours", {"host": host})


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_keywords(
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    offset: int = 0,
    n: int = 500,
    min: int = 1,
    max: int = 100,
) -> dict:
    """Keywords and Google positions of a host.

    Args:
        host: Host to analyze.
        lang: Language code. Default 'fr'.
        country: Country code. Default 'FR'.
        date: SERP date, YYYY-MM-DD. Default today.
        offset: Pagination offset.
        n: Number of keywords. Default 500.
        min: Best position to include. Default 1.
        max: Worst position to include. Default 100.
    """
    return await _call("/host/keywords", {
        "host": host, "lang": lang, "country": country, "date": date or today(),
        "offset": offset, "n": n, "min": min, "max": max,
    })


@mcp.tool(annotations=READ_ONLY)
async def babbar_host_history(host: str) -> dict:
    """Metric history of a host."""
    return await _call("/host/history", {"host": host})


# ─── Domain ──────────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_overview(domain: str) -> dict:
    """Aggregated overview of a domain."""
    return await _call("/domain/overview/main", {"domain": domain})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_backlinks_host(domain: str, limit: int = 100, offset: int = 0) -> dict:
    """Referring hosts of a domain."""
    return await _call("/domain/backlinks/host", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_backlinks_url(domain: str, limit: int = 100, offset: int = 0) -> dict:
    """Referring URLs of a domain."""
    return await _call("/domain/backlinks/url", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_backlinks_domain(domain: str, limit: int = 100, offset: int = 0) -> dict:
    """Referring domains of a domain."""
    return await _call("/domain/backlinks/domain", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_anchors(domain: str) -> dict:
    """Anchor text profile at domain level."""
    return await _call("/domain/anchors", {"domain": domain})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_pages_top_pv(domain: str, limit: int = 100, offset: int = 0) -> dict:
    """Top pages of a domain by page value."""
    return await _call("/domain/pages/top/pv", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_pages_top_pt(domain: str, limit: int = 100, offset: int = 0) -> dict:
    """Top pages of a domain by page trust."""
    return await _call("/domain/pages/top/pt", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_pages_top_sv(domain: str, limit: int = 100, offset: int = 0) -> dict:
    """Top pages of a domain by semantic value."""
    return await _call("/domain/pages/top/sv", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_health(domain: str) -> dict:
    """Health score and HTTP status breakdown at domain level."""
    return await _call("/domain/health", {"domain": domain})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_fetches_list(domain: str, limit: int = 1000, offset: int = 0) -> dict:
    """Crawled pages of a domain and their status."""
    return await _call("/domain/fetches/list", {"domain": domain, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_lang(domain: str) -> dict:
    """Languages detected at domain level."""
    return await _call("/domain/lang", {"domain": domain})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_similar(domain: str, n: int = 100) -> dict:
    """Semantically close domains."""
    return await _call("/domain/similar", {"domain": domain, "n": n})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_ip(domain: str) -> dict:
    """Hosts sharing the domain's IP address(es)."""
    return await _call("/domain/ip", {"domain": domain})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_duplicate(domain: str) -> dict:
    """Duplicated page pairs and ratios within a domain."""
    return await _call("/domain/duplicate", {"domain": domain})


@mcp.tool(annotations=READ_ONLY)
async def babbar_domain_history(domain: str) -> dict:
    """Metric history of a domain."""
    return await _call("/domain/history", {"domain": domain})


# ─── URL ─────────────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_overview(url: str) -> dict:
    """Main metrics of a URL."""
    return await _call("/url/overview/main", {"url": url})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_backlinks_host(url: str, limit: int = 100, offset: int = 0) -> dict:
    """Referring hosts of a URL."""
    return await _call("/url/backlinks/host", {"url": url, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_backlinks_url(url: str, limit: int = 100, offset: int = 0) -> dict:
    """Referring URLs of a URL."""
    return await _call("/url/backlinks/url", {"url": url, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_backlinks_domain(url: str, limit: int = 100, offset: int = 0) -> dict:
    """Referring domains of a URL."""
    return await _call("/url/backlinks/domain", {"url": url, "limit": limit, "offset": offset})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_anchors(url: str) -> dict:
    """Anchor texts pointing to a URL."""
    return await _call("/url/anchors", {"url": url})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_links_internal(url: str) -> dict:
    """Internal links pointing to a URL."""
    return await _call("/url/linksInternal", {"url": url})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_links_external(url: str) -> dict:
    """External links of a URL."""
    return await _call("/url/linksExternal", {"url": url})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_semantic_similarity(source: str, target: str) -> dict:
    """Semantic similarity between two pages."""
    return await _call("/url/semanticSimilarity", {"source": source, "target": target})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_induced_strength(source: str, target: str) -> dict:
    """Induced strength (authority transfer) of a link from source to target."""
    return await _call("/url/fi", {"source": source, "target": target})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_questions(url: str, lang: str = DEFAULT_LANG) -> dict:
    """Questions matching the URL's semantic vector."""
    return await _call("/url/questions", {"url": url, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_keywords(
    url: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    offset: int = 0,
    n: int = 200,
    min: int = 1,
    max: int = 100,
) -> dict:
    """Keywords and positions of a URL.

    Args:
        url: URL to analyze.
        lang: Language code. Default 'fr'.
        country: Country code. Default 'FR'.
        date: SERP date, YYYY-MM-DD. Default today.
        offset: Pagination offset.
        n: Number of keywords. Default 200.
        min: Best position to include.
        max: Worst position to include.
    """
    return await _call("/url/keywords", {
        "url": url, "lang": lang, "country": country, "date": date or today(),
        "offset": offset, "n": n, "min": min, "max": max,
    })


@mcp.tool(annotations=READ_ONLY)
async def babbar_url_similar_links(url: str) -> dict:
    """The 10 internal pages of the same host semantically closest to the URL."""
    return await _call("/url/similar-links", {"url": url})


# ─── Keyword & semantic explorer ─────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_keyword_serp(
    keyword: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    feature: str = "ORGANIC",
    offset: int = 0,
    n: int = 100,
    min: int = 1,
    max: int = 100,
) -> dict:
    """Known SERP for a keyword.

    Args:
        keyword: Search query.
        lang: Language code. Default 'fr'.
        country: Country code. Default 'FR'.
        date: SERP date, YYYY-MM-DD. Default today.
        feature: SERP feature. Default 'ORGANIC'.
        offset: Pagination offset.
        n: Number of results. Default 100.
        min: Best position to include.
        max: Worst position to include.
    """
    return await _call("/keyword", {
        "keyword": keyword, "lang": lang, "country": country, "date": date or today(),
        "feature": feature, "offset": offset, "n": n, "min": min, "max": max,
    })


@mcp.tool(annotations=READ_ONLY)
async def babbar_semantic_paa(q: str, lang: str = DEFAULT_LANG) -> dict:
    """People Also Ask questions for a topic."""
    return await _call("/semantic-explorer/paa", {"q": q, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_semantic_questions(q: str, lang: str = DEFAULT_LANG) -> dict:
    """Alias of babbar_semantic_paa."""
    return await _call("/semantic-explorer/paa", {"q": q, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_semantic_related(q: str, lang: str = DEFAULT_LANG) -> dict:
    """Topics related to a topic."""
    return await _call("/semantic-explorer/related", {"q": q, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_semantic_suggests(q: str, lang: str = DEFAULT_LANG) -> dict:
    """Google Suggest completions for a topic."""
    return await _call("/semantic-explorer/suggests", {"q": q, "lang": lang})


@mcp.tool(annotations=READ_ONLY)
async def babbar_semantic_mindreader(q: str, lang: str = DEFAULT_LANG) -> dict:
    """Additional topic ideas from a complementary source."""
    return await _call("/semantic-explorer/mindreader", {"q": q, "lang": lang})


# ─── On-page ─────────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_analyze_on_page(url: str) -> dict:
    """Structure and markdown extraction of a page."""
    return await _call("/analyze-on-page", {"url": url})


# ─── Batch ───────────────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_batch_overview(items: list[str], type: EntityType = EntityType.HOST) -> dict:
    """Overview of a list of hosts, domains or URLs. Failed items are reported, not raised.

    Args:
        items: Hosts, domains or URLs.
        type: 'host', 'domain' or 'url'. Default 'host'.
    """
    return await batch.batch_overview(_get_client(), items, type)


@mcp.tool(annotations=READ_ONLY)
async def babbar_induced_strength_batch(pairs: list[InducedStrengthPair]) -> dict:
    """Induced strength (value of a link) for many (source URL, target URL) pairs.

    Args:
        pairs: List of {"source": ..., "target": ...} objects.
    """
    return await batch.induced_strength_batch(_get_client(), pairs)


# ─── Composite: Competitors ──────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_competitive_analysis(
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    n_competitors: int = 10,
    n_keywords_per_site: int = 1000,
) -> dict:
    """Real competitors (semantic similarity + shared keywords), BAS/trust/value comparison and keyword opportunities.

    Args:
        host: Host to analyze.
        lang: Language code. Default 'fr'.
        country: Country code. Default 'FR'.
        date: SERP date, YYYY-MM-DD. Default today.
        n_competitors: Competitors to keep. Default 10.
        n_keywords_per_site: Keywords fetched per host. Default 1000.
    """
    return await competitors.competitive_analysis(
        _get_client(), host, lang, country, date or None, n_competitors, n_keywords_per_site,
    )


@mcp.tool(annotations=READ_ONLY)
async def babbar_content_gap(
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    n_competitors: int = 10,
    n_keywords_per_site: int = 1000,
    position_threshold: int = 10,
    exclude_competitor_brand: bool = True,
    seeds: Optional[list[str]] = None,
    n_results: int = 300,
) -> dict:
    """Keywords where semantic competitors rank in the top positions and the host does not.

    Args:
        host: Host to analyze.
        lang: Language code. Default 'fr'.
        country: Country code. Default 'FR'.
        date: SERP date, YYYY-MM-DD. Default today.
        n_competitors: Competitors taken from /host/similar. Default 10.
        n_keywords_per_site: Keywords fetched per host. Default 1000.
        position_threshold: Rank at or under which a keyword counts as won. Default 10.
        exclude_competitor_brand: Drop keywords containing a competitor brand token.
        seeds: Keep only keywords containing one of these terms.
        n_results: Maximum gaps returned. Default 300.
    """
    return await competitors.content_gap(
        _get_client(), host, lang, country, date or None, n_competitors, n_keywords_per_site,
        position_threshold, exclude_competitor_brand, seeds, n_results,
    )


# ─── Composite: Backlink opportunities ───────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_backlink_opportunities_spotfinder(
    host: str,
    content: str = "",
    q: str = "",
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    targets: Optional[list[str]] = None,
    max_targets: int = 18,
    internal_page_limit: int = 2000,
    top_pages_per_host: int = 50,
    sources_pool_cap: int = 3000,
    max_candidates_per_target: int = 80,
    fi_threshold: float = 10.0,
    concurrency_fi: int = 8,
    top_limit: int = 25,
) -> dict:
    """Backlink sources not yet linking to the host, ranked by induced strength towards its pages.

    Args:
        host: Host to strengthen.
        content: Spotsfinder brief; synthesized from the host's keywords when empty.
        q: Alias of content.
        lang: Language code. Default 'fr'.
        country: Country code. Default 'FR'.
        date: SERP date, YYYY-MM-DD. Default today.
        targets: Target URLs; selected automatically when empty.
        max_targets: Targets selected automatically. Default 18.
        internal_page_limit: Internal pages scanned for targets. Default 2000.
        top_pages_per_host: Pages collected per compatible host. Default 50.
        sources_pool_cap: Maximum candidate sources. Default 3000.
        max_candidates_per_target: Sources tested per target. Default 80.
        fi_threshold: Minimum induced strength. Default 10.
        concurrency_fi: Concurrent induced strength calls. Default 8.
        top_limit: Opportunities returned. Default 25.
    """
    params = BacklinkSearchParams(
        lang=lang,
        country=country,
        date=date or None,
        max_targets=max_targets,
        internal_page_limit=internal_page_limit,
        top_pages_per_host=top_pages_per_host,
        sources_pool_cap=sources_pool_cap,
        max_candidates_per_target=max_candidates_per_target,
        fi_threshold=fi_threshold,
        concurrency_fi=concurrency_fi,
        top_limit=top_limit,
    )
    return await find_backlink_opportunities(_get_client(), host, targets, content or q, params)


# ─── Composite: Audits ───────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def babbar_onsite_quickwins(host: str, top_k: int = 10) -> dict:
    """On-site quick wins: health, duplication, internal linking suggestions for strategic pages.

    Args:
        host: Host to analyze.
        top_k: Top semantic value pages fetched. Default 10.
    """
    return await audits.onsite_quickwins(_get_client(), host, top_k)


@mcp.tool(annotations=READ_ONLY)
async def babbar_serp_bin_trend(
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
    bin_size: int = 5,
    max_pos: int = 100,
    n: int = 500,
) -> dict:
    """Keyword positions of a host grouped in bins (1-5, 6-10, ... up to max_pos)."""
    return await audits.serp_bin_trend(_get_client(), host, lang, country, date or None, bin_size, max_pos, n)


@mcp.tool(annotations=READ_ONLY)
async def babbar_anchor_profile_risk(
    host: str,
    brand_terms: Optional[list[str]] = None,
    money_terms: Optional[list[str]] = None,
) -> dict:
    """Anchor profile (brand/money/generic/other) and over-optimization signals.

    Args:
        host: Host to analyze.
        brand_terms: Terms identifying brand anchors.
        money_terms: Transactional terms to watch.
    """
    return await audits.anchor_profile_risk(_get_client(), host, brand_terms, money_terms)


@mcp.tool(annotations=READ_ONLY)
async def babbar_language_localization_audit(
    host: str,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
) -> dict:
    """Detected languages versus keywords ranked for one country and language."""
    return await audits.language_localization_audit(_get_client(), host, lang, country, date or None)


@mcp.tool(annotations=READ_ONLY)
async def babbar_duplicate_map(
    host: str,
    include_keywords: bool = False,
    lang: str = DEFAULT_LANG,
    country: str = DEFAULT_COUNTRY,
    date: str = "",
) -> dict:
    """Map of internal duplication (RollingHash scores of page pairs; under 87% is not duplication)."""
    return await audits.duplicate_map(_get_client(), host, include_keywords, lang, country, date or None)


@mcp.tool(annotations=READ_ONLY)
async def babbar_fetch_status_audit(host: str, limit: int = 5000, offset: int = 0) -> dict:
    """Fetch inventory (HTTP codes, languages) with counts per status."""
    return await audits.fetch_status_audit(_get_client(), host, limit, offset)


@mcp.tool(annotations=READ_ONLY)
async def babbar_ip_neighbourhood_audit(host: str) -> dict:
    """IP neighbourhood and neighbours (off-site hygiene, risky patterns)."""
    return await audits.ip_neighbourhood_audit(_get_client(), host)


def main():
    """Entry point for the CLI command."""
    if not os.environ.get("BABBAR_API_KEY"):
        logging.basicConfig(level=logging.ERROR, stream=sys.stderr)
        logger.error("BABBAR_API_KEY environment variable is required")
        sys.exit(1)
    mcp.run()


if __name__ == "__main__":
    main()
