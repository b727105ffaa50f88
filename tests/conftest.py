"""
Pytest configuration and fixtures for hybrid-search-service tests.
"""

from __future__ import annotations

import pytest

from src.core.config import Settings
from src.retrievers.document_store import InMemoryDocumentStore
from src.retrievers.lexical import Bm25Scorer, LexicalCandidateRetriever
from src.retrievers.vector import InMemoryVectorClient, VectorCandidateRetriever
from src.search.hybrid import HybridSearchEngine
from src.search.types import Document


@pytest.fixture
def settings() -> Settings:
    """Provide test settings with re-ranking enabled."""
    return Settings(
        qdrant_url="http://localhost:6333",
        qdrant_collection="test_documents",
        enable_rerank=True,
        rerank_max_candidates=100,
    )


@pytest.fixture
def documents() -> list[Document]:
    """Small corpus with 2-d embeddings and category metadata."""
    return [
        Document(
            id="rrf",
            text="Reciprocal rank fusion combines ranked lists without score normalisation.",
            metadata={"category": "fusion"},
            embedding=[1.0, 0.0],
        ),
        Document(
            id="bm25",
            text="BM25 is a lexical ranking function based on term frequency.",
            metadata={"category": "lexical"},
            embedding=[0.0, 1.0],
        ),
        Document(
            id="hnsw",
            text="HNSW graphs give approximate nearest neighbour search for vectors.",
            metadata={"category": "vector"},
            embedding=[0.8, 0.6],
        ),
        Document(
            id="weighted",
            text="Weighted fusion mixes normalised scores; rank fusion avoids that.",
            metadata={"category": "fusion"},
            embedding=[0.6, 0.8],
        ),
    ]


@pytest.fixture
def store(documents: list[Document]) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(documents)


@pytest.fixture
def engine(settings: Settings, store: InMemoryDocumentStore) -> HybridSearchEngine:
    """Engine over the in-memory vector client and BM25 lexical path."""
    return HybridSearchEngine(
        retrievers=[
            VectorCandidateRetriever(client=InMemoryVectorClient(store)),
            LexicalCandidateRetriever(corpus=store, scorer=Bm25Scorer()),
        ],
        settings=settings,
        document_store=store,
    )
