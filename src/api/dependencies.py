"""
Dependency injection for API services.

Provides protocols, the service container, and factories that wire
retrieval paths into a HybridSearchEngine.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from src.core.config import Settings
from src.retrievers.document_store import InMemoryDocumentStore
from src.retrievers.lexical import LexicalCandidateRetriever, create_scorer
from src.retrievers.vector import InMemoryVectorClient, VectorCandidateRetriever
from src.search.hybrid import HybridSearchEngine
from src.search.rerank import RerankerProtocol
from src.search.types import Document


@runtime_checkable
class EmbeddingServiceProtocol(Protocol):
    """Protocol for embedding service."""

    @property
    def model_name(self) -> str:
        """Get the embedding model name."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for text."""
        ...


@dataclass
class ServiceConfig:
    """Configuration for the HTTP layer."""

    enable_search: bool = True
    max_limit: int = 100
    version: str = "1.0.0"


@dataclass
class ServiceContainer:
    """Container for all service dependencies."""

    config: ServiceConfig = field(default_factory=ServiceConfig)
    settings: Settings = field(default_factory=Settings)
    engine: HybridSearchEngine | None = None
    embedding_service: EmbeddingServiceProtocol | None = None
    vector_client: Any = None


def build_engine(
    settings: Settings,
    vector_client: Any,
    corpus: Any,
    document_store: Any = None,
    reranker: RerankerProtocol | None = None,
) -> HybridSearchEngine:
    """Wire the vector and lexical paths into an engine.

    Args:
        settings: Application settings
        vector_client: Provider implementing VectorSearchClientProtocol
        corpus: Provider implementing CorpusProtocol for lexical scoring
        document_store: Text lookup for re-ranking and snippets
        reranker: Optional second-stage scorer

    Returns:
        Configured HybridSearchEngine
    """
    vector = VectorCandidateRetriever(
        client=vector_client,
        default_ef_search=settings.default_ef_search,
    )
    lexical = LexicalCandidateRetriever(
        corpus=corpus,
        scorer=create_scorer(settings.lexical_scorer, k1=settings.bm25_k1, b=settings.bm25_b),
    )
    return HybridSearchEngine(
        retrievers=[vector, lexical],
        settings=settings,
        reranker=reranker,
        document_store=document_store,
    )


def build_in_memory_services(
    settings: Settings | None = None,
    documents: Iterable[Document] = (),
    reranker: RerankerProtocol | None = None,
    embedding_service: EmbeddingServiceProtocol | None = None,
    config: ServiceConfig | None = None,
) -> ServiceContainer:
    """Service container backed entirely by in-memory stores."""
    settings = settings or Settings()
    store = InMemoryDocumentStore(documents)
    vector_client = InMemoryVectorClient(store)
    engine = build_engine(
        settings,
        vector_client=vector_client,
        corpus=store,
        document_store=store,
        reranker=reranker,
    )
    return ServiceContainer(
        config=config or ServiceConfig(),
        settings=settings,
        engine=engine,
        embedding_service=embedding_service,
        vector_client=vector_client,
    )


class FakeEmbeddingService:
    """Fake embedding service for testing."""

    def __init__(self, dimension: int = 768, model_name: str = "fake-model") -> None:
        """Initialize with embedding dimension."""
        self._dimension = dimension
        self._model_name = model_name

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._model_name

    async def embed(self, text: str) -> list[float]:
        """Return fake embedding."""
        await asyncio.sleep(0)  # Yield to event loop
        # Generate deterministic embedding based on text hash
        # SECURITY: MD5 used only for test double determinism, not for security.
        hash_value = int(hashlib.md5(text.encode()).hexdigest(), 16)  # noqa: S324
        return [(hash_value >> i) % 256 / 255.0 for i in range(self._dimension)]
