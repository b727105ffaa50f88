"""
Pydantic models for API request/response validation.

These models define the HTTP contract of the hybrid search endpoint and
convert into the engine's per-query SearchRequest.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.search.options import (
    DistanceMetric,
    FusionMode,
    FusionOptions,
    NormalizationStrategy,
    RerankOptions,
    SearchRequest,
    Threshold,
    ThresholdKind,
    VectorSearchOptions,
)
from src.search.types import FusedResult, RankedResponse


# ==============================================================================
# Request Models
# ==============================================================================


class FusionConfig(BaseModel):
    """Fusion policy for one query."""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["rrf", "weighted"] = Field(default="rrf", description="Fusion policy")
    rrf_k: float | None = Field(
        default=None,
        description="RRF smoothing constant (default from settings, must be > 0)",
    )
    weights: dict[str, float] | None = Field(
        default=None,
        description="Per-source weights for weighted mode, e.g. {'vector': 0.7, 'lexical': 0.3}",
    )
    normalization: Literal["min_max", "fixed"] = Field(
        default="min_max",
        description="Score normalisation for weighted mode",
    )
    fixed_scales: dict[str, tuple[float, float]] | None = Field(
        default=None,
        description="Per-source (low, high) relevance bounds for fixed normalisation",
    )


class RerankConfig(BaseModel):
    """Second-stage re-ranking options."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Re-rank the fused prefix")
    top_m: int = Field(default=50, description="Number of fused results to re-rank")
    timeout_ms: int | None = Field(
        default=None,
        description="Re-ranking timeout in milliseconds (default from settings)",
    )


class ThresholdConfig(BaseModel):
    """Inclusive similarity (>=) or distance (<=) cut-off on the vector source."""

    model_config = ConfigDict(extra="forbid")

    value: float = Field(description="Threshold value")
    kind: Literal["similarity", "distance"] = Field(
        default="similarity",
        description="Whether value is a similarity or a distance",
    )


class VectorConfig(BaseModel):
    """Query-time ANN knobs."""

    model_config = ConfigDict(extra="forbid")

    ef_search: int | None = Field(default=None, description="Recall/speed trade-off")
    exact: bool = Field(default=False, description="Exhaustive search")
    iterative_scan: bool = Field(
        default=False,
        description="Relaxed ordering under filters; disclosed in the response",
    )
    metric: Literal["cosine", "euclidean", "inner_product"] = Field(
        default="cosine",
        description="Distance operator of the vector space",
    )


class SearchApiRequest(BaseModel):
    """Request model for the hybrid search endpoint."""

    model_config = ConfigDict(extra="forbid")

    query: str | None = Field(
        default=None,
        description="Text query for lexical search and re-ranking",
        max_length=10000,
    )
    embedding: list[float] | None = Field(
        default=None,
        description="Pre-computed query embedding",
    )
    limit: int = Field(
        default=10,
        description="Maximum number of results to return",
    )
    filter: dict[str, Any] | None = Field(
        default=None,
        description="Metadata equality filter, pushed down to every source",
    )
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    rerank: RerankConfig | None = Field(default=None)
    threshold: ThresholdConfig | None = Field(default=None)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    highlight: bool = Field(default=False, description="Attach highlighted snippets")

    def to_search_request(
        self,
        embedding: list[float] | None,
        default_rrf_k: float,
        default_timeout_ms: int,
        default_ef_search: int | None = None,
    ) -> SearchRequest:
        """Build the engine request, filling defaults from settings."""
        fusion = FusionOptions(
            mode=FusionMode(self.fusion.mode),
            rrf_k=self.fusion.rrf_k if self.fusion.rrf_k is not None else default_rrf_k,
            weights=self.fusion.weights,
            normalization=NormalizationStrategy(self.fusion.normalization),
            fixed_scales=self.fusion.fixed_scales,
        )
        rerank = None
        if self.rerank is not None:
            rerank = RerankOptions(
                enabled=self.rerank.enabled,
                top_m=self.rerank.top_m,
                timeout_ms=(
                    self.rerank.timeout_ms
                    if self.rerank.timeout_ms is not None
                    else default_timeout_ms
                ),
            )
        threshold = None
        if self.threshold is not None:
            threshold = Threshold(
                value=self.threshold.value,
                kind=ThresholdKind(self.threshold.kind),
            )
        vector = VectorSearchOptions(
            ef_search=self.vector.ef_search if self.vector.ef_search is not None else default_ef_search,
            exact=self.vector.exact,
            iterative_scan=self.vector.iterative_scan,
            metric=DistanceMetric(self.vector.metric),
        )
        return SearchRequest(
            query_embedding=embedding,
            query_text=self.query,
            limit=self.limit,
            filter=self.filter,
            fusion=fusion,
            rerank=rerank,
            threshold=threshold,
            vector=vector,
            highlight=self.highlight,
        )


# ==============================================================================
# Response Models
# ==============================================================================


class ContributionItem(BaseModel):
    """What one source contributed to a result."""

    rank: int = Field(description="1-based rank within the source")
    score: float = Field(description="Source-native raw score (distance or lexical)")
    contribution: float = Field(description="Amount added to the fused score")


class SearchResultItem(BaseModel):
    """Individual ranked result."""

    id: str = Field(description="Document identifier")
    fused_score: float = Field(description="Fused score")
    contributions: dict[str, ContributionItem] = Field(
        default_factory=dict,
        description="Per-source contributions",
    )
    rerank_score: float | None = Field(default=None, description="Re-ranker score")
    snippet: str | None = Field(default=None, description="Highlighted snippet")

    @classmethod
    def from_result(cls, result: FusedResult) -> SearchResultItem:
        return cls(
            id=result.doc_id,
            fused_score=result.fused_score,
            contributions={
                source: ContributionItem(
                    rank=c.rank,
                    score=c.score,
                    contribution=c.contribution,
                )
                for source, c in result.contributions.items()
            },
            rerank_score=result.rerank_score,
            snippet=result.snippet,
        )


class SearchApiResponse(BaseModel):
    """Response model for the hybrid search endpoint."""

    results: list[SearchResultItem] = Field(default_factory=list)
    total: int = Field(description="Number of results returned")
    degraded: bool = Field(description="A source failed or was empty and was omitted")
    reranked: bool = Field(description="The leading results were re-ranked")
    omitted_sources: dict[str, str] = Field(
        default_factory=dict,
        description="Omitted source to reason",
    )
    relaxed_ordering: bool = Field(
        default=False,
        description="Vector order was not strictly monotonic (iterative scan)",
    )
    fusion_mode: str = Field(description="Fusion policy applied")
    latency_ms: float = Field(description="Search latency in milliseconds")

    @classmethod
    def from_response(cls, response: RankedResponse) -> SearchApiResponse:
        return cls(
            results=[SearchResultItem.from_result(r) for r in response.results],
            total=len(response.results),
            degraded=response.degraded,
            reranked=response.reranked,
            omitted_sources=response.omitted_sources,
            relaxed_ordering=response.relaxed_ordering,
            fusion_mode=response.fusion_mode,
            latency_ms=response.latency_ms,
        )


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="Overall health status")
    sources: list[str] = Field(default_factory=list, description="Configured retrieval paths")
    services: dict[str, str] = Field(
        default_factory=dict,
        description="Individual service statuses",
    )
    version: str = Field(description="API version")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")

    error: str = Field(description="Error type")
    message: str = Field(description="Error message")
    detail: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details",
    )
