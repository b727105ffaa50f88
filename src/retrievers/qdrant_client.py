"""
Qdrant vector search client.

Design:
- Repository Pattern: abstraction over vector storage
- Connection pooling: one AsyncQdrantClient reused across queries
- Lazy initialization: connect() or async context manager
- Filter pushdown: metadata equality conditions become a Qdrant Filter
- Per-query recall knobs: SearchParams(hnsw_ef, exact)
- HNSW build parameters (m, ef_construct) are configuration-plane only

Qdrant reports similarity for COSINE and DOT and distance for EUCLID. Scores
are converted to distances so every provider speaks the same language:
- cosine: 1 - score
- euclid: score
- dot: -score (negative inner product)

The conversion is only valid under the collection's own distance, so a query
naming a different metric is rejected. Point ids are unsigned integers or
UUIDs; document ids are their string form and all-digit ids map back to int.
"""

from __future__ import annotations

import logging
from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    HnswConfigDiff,
    MatchValue,
    SearchParams,
    VectorParams,
)

from src.retrievers.vector import VectorHit
from src.search.exceptions import InvalidConfigurationError, SourceUnavailableError
from src.search.options import DistanceMetric, VectorSearchOptions
from src.search.types import Document

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

_SOURCE_NAME = "vector"
_DEFAULT_COLLECTION = "documents"
_DEFAULT_HNSW_M = 16
_DEFAULT_HNSW_EF_CONSTRUCT = 100
_SCROLL_PAGE_SIZE = 256
_TEXT_FIELD = "text"

_QDRANT_DISTANCES = {
    DistanceMetric.COSINE: Distance.COSINE,
    DistanceMetric.EUCLIDEAN: Distance.EUCLID,
    DistanceMetric.INNER_PRODUCT: Distance.DOT,
}
_METRICS_BY_DISTANCE = {distance: metric for metric, distance in _QDRANT_DISTANCES.items()}


def score_to_distance(metric: DistanceMetric, score: float) -> float:
    """Convert a Qdrant point score to a distance under ``metric``."""
    if metric is DistanceMetric.COSINE:
        return 1.0 - score
    if metric is DistanceMetric.EUCLIDEAN:
        return score
    return -score


def to_point_id(doc_id: str) -> int | str:
    """Point id for a document id: unsigned integers stay integers."""
    if doc_id.isascii() and doc_id.isdigit():
        return int(doc_id)
    return doc_id


def build_filter(filter_conditions: dict[str, Any] | None) -> Filter | None:
    """Translate equality conditions into a Qdrant must-filter."""
    if not filter_conditions:
        return None
    return Filter(
        must=[
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in filter_conditions.items()
        ]
    )


# =============================================================================
# Real Implementation
# =============================================================================


class QdrantVectorClient:
    """Qdrant client implementing VectorSearchClientProtocol.

    Also serves as a document store and lexical corpus over point payloads
    (``text`` field plus metadata).

    Usage:
        async with QdrantVectorClient(settings=settings) as client:
            hits = await client.search(embedding=[0.1] * 384, limit=20)
    """

    def __init__(self, settings: Any) -> None:
        """Initialize client with Settings object.

        Note:
            Client is NOT created here - uses lazy initialization.
            Call connect() or use as async context manager.
        """
        self._url = settings.qdrant_url
        self._collection = getattr(settings, "qdrant_collection", _DEFAULT_COLLECTION)
        self._api_key = getattr(settings, "qdrant_api_key", None)
        self._hnsw_m = getattr(settings, "hnsw_m", _DEFAULT_HNSW_M)
        self._hnsw_ef_construct = getattr(
            settings, "hnsw_ef_construct", _DEFAULT_HNSW_EF_CONSTRUCT
        )
        self._client: AsyncQdrantClient | None = None
        self._metric: DistanceMetric | None = None

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def metric(self) -> DistanceMetric | None:
        """Distance of the collection, once known."""
        return self._metric

    async def connect(self) -> None:
        """Connect to Qdrant server and verify connectivity.

        Raises:
            SourceUnavailableError: If connection fails
        """
        try:
            self._client = AsyncQdrantClient(location=self._url, api_key=self._api_key)
            await self._client.get_collections()
            self._metric = await self._collection_metric(self._client)
        except Exception as e:
            self._client = None
            raise SourceUnavailableError(
                _SOURCE_NAME,
                f"Failed to connect to Qdrant at {self._url}: {e}",
                cause=e,
            ) from e

    async def close(self) -> None:
        """Close the Qdrant client connection. Idempotent."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> QdrantVectorClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.get_collections()
        except Exception as e:
            logger.warning("Qdrant health check failed: %s", e)
            return False
        return True

    def check_metric(self, metric: DistanceMetric) -> None:
        """Reject a query metric that differs from the collection's distance.

        Raises:
            InvalidConfigurationError: If the metrics differ
        """
        if self._metric is not None and metric is not self._metric:
            raise InvalidConfigurationError(
                f"Collection '{self._collection}' uses {self._metric.value} distance, "
                f"query asked for {metric.value}"
            )

    async def _collection_metric(self, client: AsyncQdrantClient) -> DistanceMetric | None:
        if not await client.collection_exists(collection_name=self._collection):
            return None
        info = await client.get_collection(collection_name=self._collection)
        vectors = info.config.params.vectors
        if isinstance(vectors, dict):
            # Named vectors; queries target the unnamed vector only
            return None
        return _METRICS_BY_DISTANCE.get(vectors.distance)

    def _ensure_connected(self) -> AsyncQdrantClient:
        if self._client is None:
            raise SourceUnavailableError(
                _SOURCE_NAME, "Client is not connected. Call connect() first."
            )
        return self._client

    async def search(
        self,
        embedding: list[float],
        limit: int,
        filter_conditions: dict[str, Any] | None = None,
        options: VectorSearchOptions | None = None,
    ) -> list[VectorHit]:
        """Execute ANN search with per-query recall settings.

        Raises:
            InvalidConfigurationError: If the metric differs from the collection's
            SourceUnavailableError: If not connected or the search fails
        """
        client = self._ensure_connected()
        options = options or VectorSearchOptions()
        self.check_metric(options.metric)

        try:
            response = await client.query_points(
                collection_name=self._collection,
                query=embedding,
                limit=limit,
                query_filter=build_filter(filter_conditions),
                search_params=SearchParams(hnsw_ef=options.ef_search, exact=options.exact),
                with_payload=False,
            )
        except Exception as e:
            raise SourceUnavailableError(
                _SOURCE_NAME,
                f"Search failed in collection '{self._collection}': {e}",
                cause=e,
            ) from e

        return [
            VectorHit(id=str(point.id), distance=score_to_distance(options.metric, point.score))
            for point in response.points
        ]

    async def get_documents(self, ids: list[str]) -> dict[str, Document]:
        """Fetch payloads for ``ids``; missing ids are omitted."""
        client = self._ensure_connected()
        if not ids:
            return {}
        try:
            records = await client.retrieve(
                collection_name=self._collection,
                ids=[to_point_id(doc_id) for doc_id in ids],
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            raise SourceUnavailableError(
                _SOURCE_NAME,
                f"Document lookup failed for {len(ids)} ids: {e}",
                cause=e,
            ) from e
        return {str(record.id): self._to_document(record.id, record.payload) for record in records}

    async def documents(
        self,
        filter_conditions: dict[str, Any] | None = None,
    ) -> list[Document]:
        """Scroll every point matching the filter."""
        client = self._ensure_connected()
        result: list[Document] = []
        offset = None
        try:
            while True:
                records, offset = await client.scroll(
                    collection_name=self._collection,
                    scroll_filter=build_filter(filter_conditions),
                    limit=_SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                result.extend(self._to_document(r.id, r.payload) for r in records)
                if offset is None:
                    break
        except Exception as e:
            raise SourceUnavailableError(
                _SOURCE_NAME,
                f"Scroll failed in collection '{self._collection}': {e}",
                cause=e,
            ) from e
        return result

    async def ensure_collection(
        self,
        vector_size: int,
        metric: DistanceMetric = DistanceMetric.COSINE,
    ) -> None:
        """Ensure collection exists with the configured HNSW build parameters.

        Raises:
            SourceUnavailableError: If collection creation fails
        """
        client = self._ensure_connected()
        try:
            exists = await client.collection_exists(collection_name=self._collection)
            if not exists:
                await client.create_collection(
                    collection_name=self._collection,
                    vectors_config=VectorParams(
                        size=vector_size,
                        distance=_QDRANT_DISTANCES[metric],
                    ),
                    hnsw_config=HnswConfigDiff(
                        m=self._hnsw_m,
                        ef_construct=self._hnsw_ef_construct,
                    ),
                )
                logger.info(
                    "Created collection '%s' (size=%d, metric=%s, m=%d, ef_construct=%d)",
                    self._collection,
                    vector_size,
                    metric.value,
                    self._hnsw_m,
                    self._hnsw_ef_construct,
                )
                self._metric = metric
            else:
                self._metric = await self._collection_metric(client)
        except Exception as e:
            raise SourceUnavailableError(
                _SOURCE_NAME,
                f"Failed to ensure collection '{self._collection}': {e}",
                cause=e,
            ) from e

    @staticmethod
    def _to_document(point_id: Any, payload: dict[str, Any] | None) -> Document:
        payload = dict(payload or {})
        text = payload.pop(_TEXT_FIELD, "")
        return Document(id=str(point_id), text=text or "", metadata=payload)
