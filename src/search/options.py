"""
Per-query search options.

Every tunable a query depends on is passed explicitly with the query;
nothing here reads or writes process-wide state. Settings only provide
defaults and ceilings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.search.exceptions import InvalidConfigurationError
from src.search.types import ScoreKind

# =============================================================================
# Constants
# =============================================================================

_DEFAULT_RRF_K = 60
_DEFAULT_LIMIT = 10
_DEFAULT_TOP_M = 50
_DEFAULT_RERANK_TIMEOUT_MS = 2000


# =============================================================================
# Enums
# =============================================================================


class FusionMode(str, Enum):
    RRF = "rrf"
    WEIGHTED = "weighted"


class NormalizationStrategy(str, Enum):
    MIN_MAX = "min_max"
    FIXED = "fixed"


class ThresholdKind(str, Enum):
    SIMILARITY = "similarity"
    DISTANCE = "distance"


class DistanceMetric(str, Enum):
    """Vector distance operator the caller's vector space uses.

    Unnormalised vectors make cosine and inner product non-interchangeable,
    so the caller must name the metric explicitly.
    """

    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    INNER_PRODUCT = "inner_product"

    @property
    def score_kind(self) -> ScoreKind:
        return _METRIC_KINDS[self]


_METRIC_KINDS = {
    DistanceMetric.COSINE: ScoreKind.COSINE_DISTANCE,
    DistanceMetric.EUCLIDEAN: ScoreKind.EUCLIDEAN_DISTANCE,
    DistanceMetric.INNER_PRODUCT: ScoreKind.NEGATIVE_INNER_PRODUCT,
}


# =============================================================================
# Option Data Classes
# =============================================================================


@dataclass(frozen=True)
class FusionOptions:
    """How candidate sets are combined.

    Attributes:
        mode: "rrf" (default) or "weighted"
        rrf_k: RRF smoothing constant, strictly positive
        weights: Per-source weights for weighted mode; any positive sum
        normalization: Score normalisation for weighted mode
        fixed_scales: Per-source (low, high) bounds for fixed normalisation
    """

    mode: FusionMode = FusionMode.RRF
    rrf_k: float = _DEFAULT_RRF_K
    weights: dict[str, float] | None = None
    normalization: NormalizationStrategy = NormalizationStrategy.MIN_MAX
    fixed_scales: dict[str, tuple[float, float]] | None = None

    def validate(self) -> None:
        """Raise InvalidConfigurationError on unusable values."""
        if self.rrf_k <= 0:
            raise InvalidConfigurationError(f"rrf_k must be positive, got {self.rrf_k}")

        if self.weights is not None:
            if any(weight < 0 for weight in self.weights.values()):
                raise InvalidConfigurationError(
                    f"Fusion weights must be non-negative, got {self.weights}"
                )
            if sum(self.weights.values()) <= 0:
                raise InvalidConfigurationError(
                    f"Fusion weights must sum to a positive value, got {self.weights}"
                )

        if self.mode is FusionMode.WEIGHTED and self.normalization is NormalizationStrategy.FIXED:
            scales = self.fixed_scales or {}
            if not scales:
                raise InvalidConfigurationError(
                    "Fixed normalisation requires fixed_scales for every source"
                )
            for source, weight in (self.weights or {}).items():
                if weight > 0 and source not in scales:
                    raise InvalidConfigurationError(
                        f"Fixed normalisation has no scale for source '{source}'"
                    )
            for source, (low, high) in scales.items():
                if low >= high:
                    raise InvalidConfigurationError(
                        f"Scale for '{source}' must have low < high, got ({low}, {high})"
                    )

    def normalized_weights(self, sources: list[str]) -> dict[str, float]:
        """Weights for the given sources, scaled to sum to 1.

        Sources without an explicit weight get 0 when weights are given and
        an equal share when none are. Sources named in weights but not in
        ``sources`` are ignored and the rest renormalised.
        """
        if not sources:
            return {}
        if self.shares_equally(sources):
            # No weights given, or every weighted source is missing from this query
            return dict.fromkeys(sources, 1.0 / len(sources))
        raw = {source: float(self.weights.get(source, 0.0)) for source in sources}
        total = sum(raw.values())
        return {source: weight / total for source, weight in raw.items()}

    def shares_equally(self, sources: list[str]) -> bool:
        """True when the given sources fall back to equal weights."""
        if self.weights is None:
            return True
        return sum(float(self.weights.get(source, 0.0)) for source in sources) <= 0

    def validate_sources(self, sources: list[str]) -> None:
        """Check fixed scales against the sources a query will fuse.

        Every source that carries weight needs a declared scale; a source
        weighted 0 is never normalised and needs none.

        Raises:
            InvalidConfigurationError: If a weighted source has no scale
        """
        if self.mode is not FusionMode.WEIGHTED:
            return
        if self.normalization is not NormalizationStrategy.FIXED:
            return
        scales = self.fixed_scales or {}
        weights = self.normalized_weights(sources)
        for source in sources:
            if weights[source] > 0 and source not in scales:
                raise InvalidConfigurationError(
                    f"Fixed normalisation has no scale for source '{source}'"
                )


@dataclass(frozen=True)
class RerankOptions:
    """Second-stage re-ranking options."""

    enabled: bool = False
    top_m: int = _DEFAULT_TOP_M
    timeout_ms: int = _DEFAULT_RERANK_TIMEOUT_MS

    def validate(self) -> None:
        if self.top_m <= 0:
            raise InvalidConfigurationError(f"top_m must be positive, got {self.top_m}")
        if self.timeout_ms <= 0:
            raise InvalidConfigurationError(
                f"timeout_ms must be positive, got {self.timeout_ms}"
            )

    def capped_top_m(self, ceiling: int) -> int:
        """top_m bounded by the process-wide ceiling."""
        return min(self.top_m, ceiling)


@dataclass(frozen=True)
class Threshold:
    """Similarity or distance cut-off.

    Inclusive on both sides: a similarity threshold keeps documents with
    similarity >= value, a distance threshold keeps distance <= value.
    """

    value: float
    kind: ThresholdKind = ThresholdKind.SIMILARITY

    def admits(self, measured: float) -> bool:
        if self.kind is ThresholdKind.SIMILARITY:
            return measured >= self.value
        return measured <= self.value


@dataclass(frozen=True)
class VectorSearchOptions:
    """Query-time knobs for the ANN path.

    Attributes:
        ef_search: Recall/speed trade-off (higher = more accurate, slower)
        exact: Bypass the ANN index and search exhaustively
        iterative_scan: Let the index keep scanning under a filter; result
            order is then no longer strictly monotonic in distance
        metric: Distance operator of the vector space
    """

    ef_search: int | None = None
    exact: bool = False
    iterative_scan: bool = False
    metric: DistanceMetric = DistanceMetric.COSINE

    def validate(self) -> None:
        if self.ef_search is not None and self.ef_search <= 0:
            raise InvalidConfigurationError(
                f"ef_search must be positive, got {self.ef_search}"
            )


@dataclass(frozen=True)
class SearchRequest:
    """A single search query with all of its per-query configuration."""

    query_embedding: list[float] | None = None
    query_text: str | None = None
    limit: int = _DEFAULT_LIMIT
    filter: dict[str, Any] | None = None
    fusion: FusionOptions = field(default_factory=FusionOptions)
    rerank: RerankOptions | None = None
    threshold: Threshold | None = None
    vector: VectorSearchOptions = field(default_factory=VectorSearchOptions)
    highlight: bool = False

    @property
    def has_embedding(self) -> bool:
        return bool(self.query_embedding)

    @property
    def has_text(self) -> bool:
        return bool(self.query_text and self.query_text.strip())

    def validate(self) -> None:
        """Reject the request before any retrieval call is made.

        Raises:
            InvalidConfigurationError: If the request cannot be executed
        """
        if not self.has_embedding and not self.has_text:
            raise InvalidConfigurationError(
                "At least one of query_embedding or query_text is required"
            )
        if self.limit <= 0:
            raise InvalidConfigurationError(f"limit must be positive, got {self.limit}")
        if (
            self.threshold is not None
            and self.threshold.kind is ThresholdKind.SIMILARITY
            and self.vector.metric is DistanceMetric.EUCLIDEAN
        ):
            raise InvalidConfigurationError(
                "Euclidean distance has no similarity scale; use a distance threshold"
            )
        self.fusion.validate()
        self.vector.validate()
        if self.rerank is not None:
            self.rerank.validate()
