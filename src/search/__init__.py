"""
Search module for hybrid-search-service.

Provides the rank fusion engine, degradation controller, re-ranking stage,
result assembler and the HybridSearchEngine that ties them together.

- types.py: candidates, candidate sets, fused results, responses
- options.py: per-query configuration
- ranker.py: RRF and weighted fusion
- degradation.py: partial/total failure classification
- rerank.py: bounded, best-effort second stage
- assembler.py: threshold, limit, snippets
- retrieval.py: retriever and document store contracts
- hybrid.py: the search entry point
"""

from __future__ import annotations

from src.search.assembler import ResultAssembler
from src.search.degradation import DegradationController, DegradationDecision, DegradationState
from src.search.exceptions import (
    AllSourcesFailedError,
    InvalidConfigurationError,
    RerankError,
    RerankTimeoutError,
    RerankUnavailableError,
    SearchError,
    SourceUnavailableError,
)
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
from src.search.ranker import RankFusionEngine
from src.search.rerank import CrossEncoderReranker, RerankerProtocol, RerankStage
from src.search.retrieval import (
    CandidateRetrieverProtocol,
    CorpusProtocol,
    DocumentStoreProtocol,
    retrieve_outcome,
)
from src.search.types import (
    Candidate,
    CandidateSet,
    Document,
    FusedResult,
    RankedResponse,
    ScoreKind,
    SourceContribution,
    SourceOutcome,
)
from src.search.hybrid import HybridSearchEngine

__all__ = [
    "AllSourcesFailedError",
    "Candidate",
    "CandidateRetrieverProtocol",
    "CandidateSet",
    "CorpusProtocol",
    "CrossEncoderReranker",
    "DegradationController",
    "DegradationDecision",
    "DegradationState",
    "DistanceMetric",
    "Document",
    "DocumentStoreProtocol",
    "FusedResult",
    "FusionMode",
    "FusionOptions",
    "HybridSearchEngine",
    "InvalidConfigurationError",
    "NormalizationStrategy",
    "RankFusionEngine",
    "RankedResponse",
    "RerankError",
    "RerankOptions",
    "RerankStage",
    "RerankTimeoutError",
    "RerankUnavailableError",
    "RerankerProtocol",
    "ResultAssembler",
    "ScoreKind",
    "SearchError",
    "SearchRequest",
    "SourceContribution",
    "SourceOutcome",
    "SourceUnavailableError",
    "Threshold",
    "ThresholdKind",
    "VectorSearchOptions",
    "retrieve_outcome",
]
