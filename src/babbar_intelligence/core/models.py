"""Pydantic data models: the shared business objects.

The scoring functions, the pipelines and the MCP tools all exchange these
models; tools dump them to JSON with ``model_dump(mode="json")``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

UNRANKED_POSITION = 999

T = TypeVar("T")


class Severity(str, Enum):
    """Duplication severity tiers, lowest first."""

    INFO = "info"
    HIGH = "high"
    CRITICAL = "critical"
    BLOCKER = "blocker"


class PriorityTier(str, Enum):
    """Priority of a keyword opportunity or an on-site recommendation."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def weight(self) -> int:
        return {"High": 3, "Medium": 2, "Low": 1}[self.value]


class EntityType(str, Enum):
    """Kinds of entity the provider exposes overviews for."""

    HOST = "host"
    DOMAIN = "domain"
    URL = "url"


class InducedStrengthPair(BaseModel):
    """A (source URL, target URL) pair whose induced strength is requested."""

    source: str = Field(..., description="URL the link would come from")
    target: str = Field(..., description="URL the link would point to")


class KeywordRow(BaseModel):
    """A ranked keyword as returned by /host/keywords or /url/keywords."""

    keyword: str
    rank: float = Field(math.inf, description="SERP position; inf when unranked")
    url: Optional[str] = None
    feature: Optional[str] = None
    volume: float = 0.0


class CompetitorCandidate(BaseModel):
    """A host proposed by /host/similar."""

    host: str
    similarity_score: float = Field(ge=0.0, le=100.0, description="Semantic similarity, 0-100")
    keywords: list[str] = Field(default_factory=list)


class RelevanceAssessment(BaseModel):
    """How well a competitor matches the analyzed host."""

    common_count: int = Field(ge=0, description="Keywords shared with the analyzed host")
    common_ratio: float = Field(ge=0.0, le=1.0, description="Shared keywords / competitor keywords")
    relevance_score: float = Field(ge=0.0, le=100.0, description="60% similarity, 40% keyword overlap")
    is_relevant: bool


class KeywordOpportunity(BaseModel):
    """A keyword where a competitor is in the top 10 and we are not."""

    keyword: str
    competitor: str
    competitor_position: int = Field(ge=1)
    our_position: int = Field(ge=1, description=f"{UNRANKED_POSITION} means unranked")
    volume: float = Field(0.0, ge=0.0)
    gap: int
    priority: PriorityTier

    @property
    def is_unranked(self) -> bool:
        return self.our_position == UNRANKED_POSITION


class DuplicationBucket(BaseModel):
    """A duplication percentage range with its pair count and triage."""

    label: str
    percent_from: float = Field(ge=0.0, le=100.0)
    percent_to: float = Field(ge=0.0, le=100.0)
    pairs: int = Field(0, ge=0)
    rank: Optional[int] = None
    severity: Severity
    is_problematic: bool
    priority: int
    recommendation: str
    pairs_example: list[Any] = Field(default_factory=list)


class DuplicationSummary(BaseModel):
    total_buckets: int
    total_pairs: int
    problematic_buckets: int
    problematic_pairs: int
    threshold: float


class DuplicationReport(BaseModel):
    summary: DuplicationSummary
    buckets: list[DuplicationBucket]


class SourceMetrics(BaseModel):
    semantic_value: float = 0.0
    page_value: float = 0.0
    babbar_authority_score: float = 0.0


class SourcePage(BaseModel):
    """A candidate link source collected from a spotsfinder host."""

    url: str
    host: str
    metrics: SourceMetrics = Field(default_factory=SourceMetrics)
    spotfinder_score: float = 0.0


class BacklinkOpportunity(BaseModel):
    """A (source, target) pair whose induced strength passed the threshold."""

    source_url: str
    source_host: str
    target_url: str
    induced_strength: float = Field(description="Provider-computed induced strength (fi)")
    confidence: Optional[str] = None
    source_metrics: SourceMetrics
    spotfinder_score: float = 0.0


class StageStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass
class StageResult(Generic[T]):
    """Outcome of one pipeline stage.

    ``degraded`` carries a usable fallback value plus the reason it was
    needed; ``fatal`` carries the error that stops the pipeline.
    """

    status: StageStatus
    value: Optional[T] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(StageStatus.OK, value)

    @classmethod
    def degraded(cls, value: T, reason: str, error: Optional[BaseException] = None) -> "StageResult[T]":
        return cls(StageStatus.DEGRADED, value, reason, error)

    @classmethod
    def fatal(cls, error: BaseException) -> "StageResult[T]":
        return cls(StageStatus.FATAL, None, str(error), error)

    @property
    def is_ok(self) -> bool:
        return self.status is StageStatus.OK

    @property
    def is_fatal(self) -> bool:
        return self.status is StageStatus.FATAL
