"""
Hybrid search engine.

Combines an ANN vector path and a lexical path into one ranking:

    query → {vector, lexical} (concurrent) → degradation controller
          → rank fusion → optional re-rank (capped prefix)
          → result assembler → RankedResponse

Design:
- Every tunable is per-query (SearchRequest); settings give defaults/ceilings
- Invalid requests are rejected before any retrieval call
- Retrieval paths run concurrently via asyncio.gather; cancelling the query
  cancels both in-flight calls and nothing partial is returned
- One path failing or empty → degraded=True, never a silent omission
- Every path failing or empty → AllSourcesFailedError, never an empty success
- Re-ranking is best-effort and bounded by a timeout
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Sequence
from typing import Any

from src.core.config import get_settings
from src.core.logging import query_scope
from src.search.assembler import ResultAssembler
from src.search.degradation import DegradationController
from src.search.options import SearchRequest
from src.search.ranker import RankFusionEngine
from src.search.rerank import RerankerProtocol, RerankStage
from src.search.retrieval import (
    CandidateRetrieverProtocol,
    DocumentStoreProtocol,
    retrieve_outcome,
)
from src.search.types import CandidateSet, FusedResult, RankedResponse

logger = logging.getLogger(__name__)


class HybridSearchEngine:
    """Polymorphic search entry point over any set of retrieval paths.

    Plain, filtered, highlighted and reranked searches are all the same
    ``search`` call with different SearchRequest options.

    Usage:
        engine = HybridSearchEngine(
            retrievers=[vector_retriever, lexical_retriever],
            settings=settings,
            reranker=CrossEncoderReranker(settings.reranker_model),
            document_store=store,
        )
        response = await engine.search(
            SearchRequest(query_embedding=embedding, query_text="bm25 ranking", limit=10)
        )
    """

    def __init__(
        self,
        retrievers: Sequence[CandidateRetrieverProtocol],
        settings: Any = None,
        reranker: RerankerProtocol | None = None,
        document_store: DocumentStoreProtocol | None = None,
        fusion_engine: RankFusionEngine | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            retrievers: Configured retrieval paths with distinct names
            settings: Settings (defaults to get_settings())
            reranker: Optional second-stage scorer
            document_store: Source of document text for re-ranking/snippets
            fusion_engine: Fusion implementation (default RankFusionEngine)

        Raises:
            ValueError: If no retrievers are given or names collide
        """
        if not retrievers:
            raise ValueError("At least one retriever is required")
        names = [retriever.name for retriever in retrievers]
        if len(set(names)) != len(names):
            raise ValueError(f"Retriever names must be distinct, got {names}")

        self._settings = settings if settings is not None else get_settings()
        self._retrievers = list(retrievers)
        self._document_store = document_store
        self._fusion = fusion_engine or RankFusionEngine()
        self._degradation = DegradationController()
        self._assembler = ResultAssembler(
            snippet_max_chars=getattr(self._settings, "snippet_max_chars", 200)
        )

        rerank_enabled = getattr(self._settings, "enable_rerank", True)
        self._rerank = RerankStage(
            reranker=reranker if rerank_enabled else None,
            max_candidates=getattr(self._settings, "rerank_max_candidates", 100),
        )

    @property
    def sources(self) -> list[str]:
        """Names of the configured retrieval paths."""
        return [retriever.name for retriever in self._retrievers]

    @property
    def document_store(self) -> DocumentStoreProtocol | None:
        return self._document_store

    @property
    def rerank_available(self) -> bool:
        return self._rerank.available

    def close(self) -> None:
        """Release resources held by the re-ranking scorer."""
        self._rerank.close()

    async def search(self, request: SearchRequest) -> RankedResponse:
        """Execute a hybrid search.

        Args:
            request: Query inputs and per-query configuration

        Returns:
            RankedResponse; empty only when a threshold excludes everything

        Raises:
            InvalidConfigurationError: Before any retrieval, on bad input
            AllSourcesFailedError: When no path produced candidates
        """
        request.validate()

        with query_scope(uuid.uuid4().hex[:12]):
            return await self._execute(request, time.perf_counter())

    async def _execute(self, request: SearchRequest, start_time: float) -> RankedResponse:
        fetch_limit = self._fetch_limit(request)
        applicable = [r for r in self._retrievers if r.applies_to(request)]
        request.fusion.validate_sources([r.name for r in applicable])
        for retriever in applicable:
            retriever.validate(request)
        logger.debug(
            "Retrieving from %s (limit=%d per source)",
            [r.name for r in applicable],
            fetch_limit,
        )

        outcomes = await asyncio.gather(
            *(retrieve_outcome(retriever, request, fetch_limit) for retriever in applicable)
        )

        decision = self._degradation.require_usable(self._degradation.classify(outcomes))
        fused = self._fusion.fuse(decision.surviving, request.fusion)
        total_candidates = len(fused)
        logger.debug(
            "Fused %d candidates with %s", total_candidates, request.fusion.mode.value
        )

        results, reranked = await self._apply_rerank(fused, request)

        vector_set = self._threshold_source(decision.surviving)
        results = self._assembler.assemble(
            results,
            limit=request.limit,
            threshold=request.threshold,
            vector_source=vector_set.source if vector_set else None,
            vector_kind=vector_set.kind if vector_set else None,
        )

        if request.highlight and request.has_text and results:
            texts = await self._fetch_texts([r.doc_id for r in results])
            self._assembler.highlight(results, request.query_text, texts)

        relaxed = any(s.relaxed_ordering for s in decision.surviving)
        if relaxed:
            logger.warning("Response ordering is relaxed (iterative scan with filter)")

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Search returned %d results (state=%s, reranked=%s, %.1fms)",
            len(results),
            decision.state.value,
            reranked,
            latency_ms,
            extra={
                "sources": [s.source for s in decision.surviving],
                "state": decision.state.value,
                "fusion_mode": request.fusion.mode.value,
                "reranked": reranked,
                "result_count": len(results),
                "latency_ms": round(latency_ms, 1),
            },
        )

        return RankedResponse(
            results=results,
            degraded=decision.degraded,
            reranked=reranked,
            omitted_sources=dict(decision.omitted),
            relaxed_ordering=relaxed,
            state=decision.state.value,
            fusion_mode=request.fusion.mode.value,
            latency_ms=latency_ms,
            total_candidates=total_candidates,
        )

    async def _apply_rerank(
        self,
        fused: list[FusedResult],
        request: SearchRequest,
    ) -> tuple[list[FusedResult], bool]:
        options = request.rerank
        if options is None or not options.enabled or not self._rerank.available:
            return await self._rerank.apply(fused, request.query_text, {}, options)
        if self._document_store is None:
            logger.warning("Re-ranking skipped: no document store for candidate text")
            return fused, False

        prefix_ids = [r.doc_id for r in fused[: self._rerank.prefix_size(options)]]
        try:
            texts = await self._load_texts(prefix_ids)
        except Exception as e:
            logger.warning("Re-ranking skipped, document text unavailable: %s", e)
            return fused, False

        return await self._rerank.apply(fused, request.query_text, texts, options)

    async def _fetch_texts(self, ids: list[str]) -> dict[str, str]:
        """Best-effort text lookup for display."""
        try:
            return await self._load_texts(ids)
        except Exception as e:
            logger.warning("Snippets skipped, document text unavailable: %s", e)
            return {}

    async def _load_texts(self, ids: list[str]) -> dict[str, str]:
        if self._document_store is None or not ids:
            return {}
        documents = await self._document_store.get_documents(ids)
        return {doc_id: document.text for doc_id, document in documents.items()}

    def _fetch_limit(self, request: SearchRequest) -> int:
        multiplier = getattr(self._settings, "candidate_multiplier", 2)
        ceiling = getattr(self._settings, "max_candidates_per_source", 200)
        limit = min(request.limit * multiplier, ceiling)
        limit = max(limit, request.limit)

        if request.rerank is not None and request.rerank.enabled:
            limit = max(limit, self._rerank.prefix_size(request.rerank))
        return limit

    @staticmethod
    def _threshold_source(candidate_sets: Sequence[CandidateSet]) -> CandidateSet | None:
        """The distance-scored set a threshold is judged against."""
        distance_sets = sorted(
            (s for s in candidate_sets if s.kind.is_distance),
            key=lambda s: s.source,
        )
        return distance_sets[0] if distance_sets else None
