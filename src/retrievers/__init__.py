"""
Candidate retrievers for hybrid-search-service.

Adapters that turn black-box retrieval providers into ordered candidate
sets, plus a LangChain-compatible wrapper around the whole engine.

Modules:
- vector: ANN retriever, distance functions, in-memory vector client
- qdrant_client: Qdrant-backed vector provider and document store
- lexical: lexical retriever and the BM25 / full-text scorers
- document_store: in-memory document store and corpus
- langchain_retriever: BaseRetriever over HybridSearchEngine
"""

from src.retrievers.document_store import InMemoryDocumentStore, matches_filter
from src.retrievers.langchain_retriever import FusionRetriever
from src.retrievers.lexical import (
    Bm25Scorer,
    FullTextScorer,
    LexicalCandidateRetriever,
    LexicalScorer,
    create_scorer,
)
from src.retrievers.qdrant_client import QdrantVectorClient
from src.retrievers.vector import (
    InMemoryVectorClient,
    VectorCandidateRetriever,
    VectorHit,
    VectorSearchClientProtocol,
)

__all__ = [
    "Bm25Scorer",
    "FullTextScorer",
    "FusionRetriever",
    "InMemoryDocumentStore",
    "InMemoryVectorClient",
    "LexicalCandidateRetriever",
    "LexicalScorer",
    "QdrantVectorClient",
    "VectorCandidateRetriever",
    "VectorHit",
    "VectorSearchClientProtocol",
    "create_scorer",
    "matches_filter",
]
