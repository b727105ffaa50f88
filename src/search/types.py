"""
Data model for hybrid retrieval and rank fusion.

Candidate sets are created per query, consumed once by the fusion engine
and discarded. Fused results live only for the duration of a request.

Score semantics:
- COSINE_DISTANCE: lower is better, similarity = 1 - distance
- EUCLIDEAN_DISTANCE: lower is better, unbounded, not a probability
- NEGATIVE_INNER_PRODUCT: lower is better, unbounded, not a probability
- LEXICAL: higher is better (BM25 / full-text rank)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# =============================================================================
# Score Kinds
# =============================================================================


class ScoreKind(str, Enum):
    """Native score semantics of a retrieval path."""

    COSINE_DISTANCE = "cosine_distance"
    EUCLIDEAN_DISTANCE = "euclidean_distance"
    NEGATIVE_INNER_PRODUCT = "negative_inner_product"
    LEXICAL = "lexical"

    @property
    def lower_is_better(self) -> bool:
        """Whether smaller raw scores mean more relevant."""
        return self is not ScoreKind.LEXICAL

    @property
    def is_distance(self) -> bool:
        """Whether raw scores are vector distances."""
        return self is not ScoreKind.LEXICAL

    def to_relevance(self, score: float) -> float:
        """Map a raw score onto a monotonic higher-is-better value.

        Cosine distance becomes cosine similarity; the other distances are
        negated, which keeps order but not any bounded scale.
        """
        if self is ScoreKind.COSINE_DISTANCE:
            return 1.0 - score
        if self.lower_is_better:
            return -score
        return score

    def to_similarity(self, score: float) -> float:
        """Convert a raw cosine distance to a similarity.

        Raises:
            ValueError: For kinds without a bounded similarity
        """
        if self is not ScoreKind.COSINE_DISTANCE:
            raise ValueError(f"{self.value} scores have no bounded similarity")
        return 1.0 - score


# =============================================================================
# Documents and Candidates
# =============================================================================


@dataclass(frozen=True)
class Document:
    """A stored document. Owned by storage; never mutated by the engine."""

    id: str
    text: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: list[float] | None = None


@dataclass(frozen=True)
class Candidate:
    """One entry of a candidate set.

    Attributes:
        doc_id: Document identifier
        score: Source-specific raw score (distance or lexical score)
        rank: 1-based position in the source's list
    """

    doc_id: str
    score: float
    rank: int


@dataclass(frozen=True)
class CandidateSet:
    """Ordered candidates from exactly one retrieval path."""

    source: str
    kind: ScoreKind
    candidates: tuple[Candidate, ...] = ()
    relaxed_ordering: bool = False

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for expected_rank, candidate in enumerate(self.candidates, start=1):
            if candidate.rank != expected_rank:
                raise ValueError(
                    f"Source '{self.source}' ranks must be 1-based and contiguous, "
                    f"got rank {candidate.rank} at position {expected_rank}"
                )
            if candidate.doc_id in seen:
                raise ValueError(
                    f"Duplicate document '{candidate.doc_id}' in source '{self.source}'"
                )
            seen.add(candidate.doc_id)

    @classmethod
    def from_scores(
        cls,
        source: str,
        kind: ScoreKind,
        scored: Iterable[tuple[str, float]],
        relaxed_ordering: bool = False,
    ) -> CandidateSet:
        """Build a set from (doc_id, raw_score) pairs already in relevance order."""
        candidates = tuple(
            Candidate(doc_id=doc_id, score=float(score), rank=rank)
            for rank, (doc_id, score) in enumerate(scored, start=1)
        )
        return cls(
            source=source,
            kind=kind,
            candidates=candidates,
            relaxed_ordering=relaxed_ordering,
        )

    @classmethod
    def empty(cls, source: str, kind: ScoreKind) -> CandidateSet:
        return cls(source=source, kind=kind)

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    def __bool__(self) -> bool:
        return bool(self.candidates)


@dataclass(frozen=True)
class SourceOutcome:
    """Result of invoking one retrieval path: a candidate set or a failure."""

    source: str
    candidate_set: CandidateSet | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.candidate_set is not None

    @property
    def has_results(self) -> bool:
        return self.succeeded and bool(self.candidate_set)


# =============================================================================
# Fused Results
# =============================================================================


@dataclass(frozen=True)
class SourceContribution:
    """What one source contributed to a fused score."""

    source: str
    rank: int
    score: float
    contribution: float


@dataclass
class FusedResult:
    """A document's fused score plus the per-source inputs it came from.

    The fused score is a function of the contributions only; it is never
    recomputed from the document itself.
    """

    doc_id: str
    fused_score: float
    contributions: dict[str, SourceContribution] = field(default_factory=dict)
    rerank_score: float | None = None
    snippet: str | None = None


@dataclass
class RankedResponse:
    """Final ranked output of a search."""

    results: list[FusedResult]
    degraded: bool = False
    reranked: bool = False
    omitted_sources: dict[str, str] = field(default_factory=dict)
    relaxed_ordering: bool = False
    state: str = "all_sources_ok"
    fusion_mode: str = "rrf"
    latency_ms: float = 0.0
    total_candidates: int = 0

    def __len__(self) -> int:
        return len(self.results)

    @property
    def ids(self) -> list[str]:
        """Result document ids in rank order."""
        return [result.doc_id for result in self.results]
