"""
Vector candidate retriever.

Adapts any client implementing VectorSearchClientProtocol (Qdrant, or the
in-memory client) into a CandidateSet of raw distances.

Distance semantics are explicit per metric:
- cosine: distance = 1 - cosine similarity
- euclidean: L2 distance, unbounded
- inner_product: negative inner product, unbounded

Ordering:
- Strict mode re-sorts hits by ascending distance, ties by id
- Iterative scan keeps provider order and, when combined with a filter,
  marks the set relaxed_ordering so the engine can disclose it
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from src.search.exceptions import SourceUnavailableError
from src.search.options import DistanceMetric, SearchRequest, VectorSearchOptions
from src.search.retrieval import CorpusProtocol
from src.search.types import CandidateSet

logger = logging.getLogger(__name__)

_DEFAULT_SOURCE_NAME = "vector"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class VectorHit:
    """A single ANN hit: document id and raw distance under the query metric."""

    id: str
    distance: float


# =============================================================================
# Protocol for Duck Typing
# =============================================================================


@runtime_checkable
class VectorSearchClientProtocol(Protocol):
    """Black-box ANN provider."""

    async def search(
        self,
        embedding: list[float],
        limit: int,
        filter_conditions: dict[str, Any] | None = None,
        options: VectorSearchOptions | None = None,
    ) -> list[VectorHit]:
        """Return up to ``limit`` hits, nearest first."""
        ...


# =============================================================================
# Distance Functions
# =============================================================================


def cosine_distance(a: list[float], b: list[float]) -> float:
    """1 - cosine similarity; zero vectors are at distance 1."""
    dot_product = sum(x * y for x, y in zip(a, b, strict=False))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))

    if norm_a == 0 or norm_b == 0:
        return 1.0
    return 1.0 - dot_product / (norm_a * norm_b)


def euclidean_distance(a: list[float], b: list[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b, strict=False)))


def negative_inner_product(a: list[float], b: list[float]) -> float:
    return -sum(x * y for x, y in zip(a, b, strict=False))


_DISTANCE_FUNCTIONS = {
    DistanceMetric.COSINE: cosine_distance,
    DistanceMetric.EUCLIDEAN: euclidean_distance,
    DistanceMetric.INNER_PRODUCT: negative_inner_product,
}


def distance(metric: DistanceMetric, a: list[float], b: list[float]) -> float:
    """Distance between two vectors under ``metric``."""
    if len(a) != len(b):
        raise ValueError(f"Dimension mismatch: {len(a)} != {len(b)}")
    return _DISTANCE_FUNCTIONS[metric](a, b)


# =============================================================================
# In-Memory Client
# =============================================================================


class InMemoryVectorClient:
    """Exhaustive in-memory vector search over a document corpus.

    Implements VectorSearchClientProtocol for tests and local use. Search is
    always exact, so ef_search has no effect.
    """

    def __init__(self, corpus: CorpusProtocol) -> None:
        self._corpus = corpus

    async def health_check(self) -> bool:
        return True

    async def search(
        self,
        embedding: list[float],
        limit: int,
        filter_conditions: dict[str, Any] | None = None,
        options: VectorSearchOptions | None = None,
    ) -> list[VectorHit]:
        metric = (options or VectorSearchOptions()).metric
        documents = await self._corpus.documents(filter_conditions)

        hits = [
            VectorHit(id=document.id, distance=distance(metric, embedding, document.embedding))
            for document in documents
            if document.embedding is not None
        ]
        hits.sort(key=lambda h: (h.distance, h.id))
        return hits[:limit]


# =============================================================================
# Retriever
# =============================================================================


class VectorCandidateRetriever:
    """Candidate retriever over an ANN provider.

    Usage:
        retriever = VectorCandidateRetriever(client=QdrantVectorClient(settings))
        candidate_set = await retriever.retrieve(request, limit=20)
    """

    def __init__(
        self,
        client: VectorSearchClientProtocol,
        name: str = _DEFAULT_SOURCE_NAME,
        default_ef_search: int | None = None,
    ) -> None:
        self._client = client
        self._name = name
        self._default_ef_search = default_ef_search

    @property
    def name(self) -> str:
        return self._name

    def applies_to(self, request: SearchRequest) -> bool:
        return request.has_embedding

    def validate(self, request: SearchRequest) -> None:
        """Providers bound to one distance reject other metrics."""
        check_metric = getattr(self._client, "check_metric", None)
        if check_metric is not None:
            check_metric(request.vector.metric)

    async def retrieve(self, request: SearchRequest, limit: int) -> CandidateSet:
        """Search the ANN provider and build a candidate set of distances.

        Raises:
            SourceUnavailableError: If the provider fails
        """
        options = self._effective_options(request.vector)
        kind = options.metric.score_kind

        try:
            hits = await self._client.search(
                embedding=list(request.query_embedding or []),
                limit=limit,
                filter_conditions=request.filter,
                options=options,
            )
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(
                self._name,
                f"Vector search failed: {e}",
                cause=e,
            ) from e

        hits = self._dedupe(hits)
        relaxed = options.iterative_scan and bool(request.filter)
        if relaxed:
            logger.warning(
                "Iterative scan with filter: '%s' order is not strictly monotonic in %s",
                self._name,
                options.metric.value,
            )
        else:
            hits.sort(key=lambda h: (h.distance, h.id))

        return CandidateSet.from_scores(
            source=self._name,
            kind=kind,
            scored=((hit.id, hit.distance) for hit in hits[:limit]),
            relaxed_ordering=relaxed,
        )

    def _effective_options(self, options: VectorSearchOptions) -> VectorSearchOptions:
        if options.ef_search is None and self._default_ef_search is not None:
            return VectorSearchOptions(
                ef_search=self._default_ef_search,
                exact=options.exact,
                iterative_scan=options.iterative_scan,
                metric=options.metric,
            )
        return options

    def _dedupe(self, hits: list[VectorHit]) -> list[VectorHit]:
        """Keep the first occurrence of each id (chunked indexes repeat ids)."""
        seen: set[str] = set()
        unique: list[VectorHit] = []
        for hit in hits:
            if hit.id not in seen:
                seen.add(hit.id)
                unique.append(hit)
        return unique
