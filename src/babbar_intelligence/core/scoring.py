"""Scoring and classification on top of provider metrics.

Competitor relevance, keyword-gap detection and duplication triage, plus the
smaller profile classifiers used by the audit tools. None of these recompute
provider scores (popularity, trust, semantic value); they only combine them.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, Optional

from .models import (
    UNRANKED_POSITION,
    DuplicationBucket,
    DuplicationReport,
    DuplicationSummary,
    KeywordOpportunity,
    PriorityTier,
    RelevanceAssessment,
    Severity,
)
from .normalizer import (
    RANK_FIELDS,
    VOLUME_FIELDS,
    first_field,
    keyword_key,
    keyword_of,
    normalize_keyword,
    to_number,
)

logger = logging.getLogger(__name__)

# Competitor admission
MIN_COMMON_KEYWORDS = 10
MIN_RELEVANCE_SCORE = 50.0
SIMILARITY_WEIGHT = 0.6
OVERLAP_WEIGHT = 0.4

# Keyword opportunities
TOP_POSITION = 10

# Duplication
DEFAULT_DUPLICATION_THRESHOLD = 87.0
BLOCKER_FROM = 95.0
CRITICAL_FROM = 92.0

RECOMMENDATIONS = {
    Severity.BLOCKER: "Merge/redirect duplicates; canonicalize; de-duplicate content immediately.",
    Severity.CRITICAL: "Canonicalize or consolidate; adjust internal linking; reduce boilerplate duplication.",
    Severity.HIGH: "Review clusters; add uniqueness (copy, metadata); consider canonicals.",
    Severity.INFO: "Monitor only; below the duplication threshold there is no duplication issue.",
}

# Anchor profile
RISKY_ANCHOR_PERCENT = 5.0
GENERIC_ANCHOR_TERMS = (
    "ici", "cliquez", "click here", "site", "homepage", "accueil",
    "www", "http", "https", "voir", "lire", "read more", "page", "article",
)

_TLDS = {"com", "net", "org", "io", "co", "uk", "fr", "de", "es", "it", "nl", "us", "ca"}
_COMMON_SUBDOMAINS = {"www", "m", "blog", "shop", "store"}


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


# ─── Competitor relevance ────────────────────────────────────────────────────


def score_competitor_relevance(
    base_keywords: Iterable[str],
    competitor_keywords: list[str],
    similarity_score: float,
) -> RelevanceAssessment:
    """Combine semantic similarity and keyword overlap into one relevance score.

    relevance = similarity * 0.6 + overlap_ratio * 100 * 0.4. A competitor is
    admitted when it shares at least 10 keywords and scores above 50.
    """
    base = {keyword_key(k) for k in base_keywords}
    normalized = [keyword_key(k) for k in competitor_keywords]

    common_count = sum(1 for k in normalized if k and k in base)
    common_ratio = common_count / len(normalized) if normalized else 0.0
    similarity = min(100.0, max(0.0, similarity_score))

    relevance_score = similarity * SIMILARITY_WEIGHT + common_ratio * 100 * OVERLAP_WEIGHT
    relevance_score = min(100.0, max(0.0, relevance_score))

    return RelevanceAssessment(
        common_count=common_count,
        common_ratio=common_ratio,
        relevance_score=relevance_score,
        is_relevant=common_count >= MIN_COMMON_KEYWORDS and relevance_score > MIN_RELEVANCE_SCORE,
    )


# ─── Keyword opportunities ───────────────────────────────────────────────────


def _position_of(row: Any) -> int:
    position = to_number(first_field(row, RANK_FIELDS), UNRANKED_POSITION)
    if position <= 0:
        return UNRANKED_POSITION
    return int(position)


def priority_for_position(position: int) -> PriorityTier:
    if position <= 3:
        return PriorityTier.HIGH
    if position <= 5:
        return PriorityTier.MEDIUM
    return PriorityTier.LOW


def find_keyword_opportunities(
    base_keywords: list[dict],
    competitor_keywords: list[dict],
    competitor: str,
) -> list[KeywordOpportunity]:
    """Keywords where the competitor ranks in the top 10 and the base host does not.

    Sorted by competitor position ascending, then search volume descending.
    """
    best_base_position: dict[str, int] = {}
    for row in base_keywords:
        keyword = keyword_key(keyword_of(row) or "")
        if not keyword:
            continue
        position = _position_of(row)
        if position < best_base_position.get(keyword, UNRANKED_POSITION + 1):
            best_base_position[keyword] = position

    opportunities = []
    for row in competitor_keywords:
        keyword = keyword_key(keyword_of(row) or "")
        if not keyword:
            continue
        competitor_position = _position_of(row)
        our_position = best_base_position.get(keyword, UNRANKED_POSITION)
        if competitor_position <= TOP_POSITION and our_position > TOP_POSITION:
            opportunities.append(KeywordOpportunity(
                keyword=keyword,
                competitor=competitor,
                competitor_position=competitor_position,
                our_position=our_position,
                volume=max(0.0, to_number(first_field(row, VOLUME_FIELDS), 0.0)),
                gap=our_position - competitor_position,
                priority=priority_for_position(competitor_position),
            ))

    opportunities.sort(key=lambda o: (o.competitor_position, -o.volume))
    return opportunities


# ─── Duplication triage ──────────────────────────────────────────────────────


def normalize_percentage(value: Any) -> float:
    """Rescale a duplication percentage into [0, 100], two decimals.

    Fractions (<= 1) are multiplied by 100. Returns NaN when the value is not
    a finite number.
    """
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        number = float(value)
    except (TypeError, ValueError):
        return math.nan
    if not math.isfinite(number):
        return math.nan
    if number <= 1:
        number *= 100
    number = min(100.0, max(0.0, number))
    return _round_half_up(number, 2)


def severity_of(percent_to: float, threshold: float = DEFAULT_DUPLICATION_THRESHOLD) -> Severity:
    if percent_to >= BLOCKER_FROM:
        return Severity.BLOCKER
    if percent_to >= CRITICAL_FROM:
        return Severity.CRITICAL
    if percent_to >= threshold:
        return Severity.HIGH
    return Severity.INFO


def priority_score(percent_to: float, pairs: int, threshold: float = DEFAULT_DUPLICATION_THRESHOLD) -> int:
    """Weigh intensity above the threshold by the (log) number of pairs."""
    return int(_round_half_up((percent_to - threshold + 1) * math.log10(pairs + 10)))


def _format_percent(value: float) -> str:
    return f"{value:g}"


def classify_duplication(
    raw_buckets: list[Any],
    threshold: float = DEFAULT_DUPLICATION_THRESHOLD,
    include_below: bool = False,
    max_examples: int = 5,
) -> DuplicationReport:
    """Normalize, triage and order duplication buckets.

    Problematic buckets (upper bound at or above ``threshold``) come first,
    by priority, upper bound and pair count, all descending. With
    ``include_below`` the other buckets follow, by upper bound then pair count.
    Buckets whose bounds cannot be normalized are dropped.
    """
    annotated: list[DuplicationBucket] = []
    for raw in raw_buckets:
        if not isinstance(raw, dict):
            continue
        percent_from = normalize_percentage(first_field(raw, ("percent_from", "from", "start")))
        percent_to = normalize_percentage(first_field(raw, ("percent_to", "to", "end")))
        if math.isnan(percent_from) or math.isnan(percent_to):
            logger.debug("Dropping malformed duplication bucket: %s", raw)
            continue
        if percent_to < percent_from:
            percent_from, percent_to = percent_to, percent_from

        pairs = int(max(0.0, to_number(first_field(raw, ("pairs", "count")), 0.0)))
        rank = to_number(raw.get("rank"), math.nan)
        examples = raw.get("pairs_example")
        severity = severity_of(percent_to, threshold)

        annotated.append(DuplicationBucket(
            label=f"{_format_percent(percent_from)}–{_format_percent(percent_to)}%",
            percent_from=percent_from,
            percent_to=percent_to,
            pairs=pairs,
            rank=None if math.isnan(rank) else int(rank),
            severity=severity,
            is_problematic=percent_to >= threshold,
            priority=priority_score(percent_to, pairs, threshold),
            recommendation=RECOMMENDATIONS[severity],
            pairs_example=list(examples[:max_examples]) if isinstance(examples, list) else [],
        ))

    problematic = sorted(
        (b for b in annotated if b.is_problematic),
        key=lambda b: (-b.priority, -b.percent_to, -b.pairs),
    )
    below = sorted(
        (b for b in annotated if not b.is_problematic),
        key=lambda b: (-b.percent_to, -b.pairs),
    )

    summary = DuplicationSummary(
        total_buckets=len(annotated),
        total_pairs=sum(b.pairs for b in annotated),
        problematic_buckets=len(problematic),
        problematic_pairs=sum(b.pairs for b in problematic),
        threshold=threshold,
    )
    return DuplicationReport(summary=summary, buckets=problematic + below if include_below else problematic)


# ─── Content gap helpers ─────────────────────────────────────────────────────


def brand_tokens_from_host(host: str) -> list[str]:
    """Distinctive tokens of a host name, e.g. www.example-shop.co.uk -> [example]."""
    hostname = re.sub(r"^https?://", "", host.strip().lower()).split("/")[0]
    parts = [p for p in hostname.split(".") if p and p not in _TLDS and p not in _COMMON_SUBDOMAINS]
    tokens: list[str] = []
    for part in parts:
        for token in part.split("-"):
            token = normalize_keyword(token)
            if token and token not in _COMMON_SUBDOMAINS and token not in tokens:
                tokens.append(token)
    return tokens


def is_branded_for(keyword: str, brand_tokens: list[str]) -> bool:
    """True when the keyword contains a distinctive (>= 3 chars) brand token."""
    return any(len(token) >= 3 and token in keyword for token in brand_tokens)


# ─── Anchor profile ──────────────────────────────────────────────────────────


def classify_anchor(text: str, brand_terms: list[str], money_terms: list[str]) -> str:
    """Bucket an anchor text into brand, money, generic or other."""
    if any(term in text for term in brand_terms):
        return "brand"
    if any(term in text for term in money_terms):
        return "money"
    if any(term in text for term in GENERIC_ANCHOR_TERMS):
        return "generic"
    return "other"


def score_anchor_profile(
    anchors: list[Any],
    brand_terms: Optional[list[str]] = None,
    money_terms: Optional[list[str]] = None,
    limit: int = 50,
) -> dict:
    """Distribution of anchors per bucket and the over-used non-brand anchors."""
    brand = [t.lower().strip() for t in (brand_terms or []) if t.strip()]
    money = [t.lower().strip() for t in (money_terms or []) if t.strip()]

    rows = [a for a in anchors if isinstance(a, dict)]
    total = sum(int(to_number(a.get("linkCount"), 0)) for a in rows)
    distribution = {"brand": 0, "money": 0, "generic": 0, "other": 0}

    items = []
    for anchor in rows:
        text = str(anchor.get("text") or "").lower().strip()
        count = int(to_number(anchor.get("linkCount"), 0))
        if not text or not count:
            continue
        bucket = classify_anchor(text, brand, money)
        distribution[bucket] += count
        percent = count / total * 100 if total else to_number(anchor.get("percent"), 0.0)
        items.append({"text": text, "link_count": count, "percent": _round_half_up(percent, 2), "bucket": bucket})

    risky = sorted(
        (i for i in items if i["bucket"] != "brand" and i["percent"] >= RISKY_ANCHOR_PERCENT),
        key=lambda i: -i["percent"],
    )
    ratios = {k: (v / total if total else 0.0) for k, v in distribution.items()}

    return {
        "total_link_count": total,
        "distribution": distribution,
        "ratios": ratios,
        "threshold_percent": RISKY_ANCHOR_PERCENT,
        "risky_anchors": risky[:limit],
    }


# ─── SERP position bins ──────────────────────────────────────────────────────


def bin_positions(rows: list[Any], bin_size: int = 5, max_pos: int = 100) -> dict[str, int]:
    """Histogram of keyword positions in ``bin_size`` wide bins up to ``max_pos``."""
    if bin_size < 1:
        raise ValueError("bin_size must be >= 1")
    bins: dict[str, int] = {}
    for start in range(1, max_pos + 1, bin_size):
        bins[f"{start}-{min(start + bin_size - 1, max_pos)}"] = 0

    for row in rows:
        position = int(to_number(first_field(row, ("position", "pos", "rank")), 0))
        if position < 1 or position > max_pos:
            continue
        start = (position - 1) // bin_size * bin_size + 1
        bins[f"{start}-{min(start + bin_size - 1, max_pos)}"] += 1
    return bins


# ─── Fetch status ────────────────────────────────────────────────────────────


def count_fetch_statuses(rows: list[Any]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for row in rows:
        code = str(first_field(row, ("status", "code"), "unknown"))
        counts[code] = counts.get(code, 0) + 1
    return counts
