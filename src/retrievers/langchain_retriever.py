"""
LangChain-compatible retriever over the hybrid search engine.

Wraps HybridSearchEngine with LangChain's BaseRetriever interface so fused
(and optionally re-ranked) results can be used in LCEL chains.

Usage:
    retriever = FusionRetriever(engine=engine, embedder=embedder, k=4)
    docs = retriever.invoke("reciprocal rank fusion")

    chain = retriever | prompt | llm
"""

from __future__ import annotations

import asyncio
from typing import Any

from langchain_core.callbacks import CallbackManagerForRetrieverRun
from langchain_core.documents import Document
from langchain_core.retrievers import BaseRetriever
from pydantic import Field

from src.search.options import FusionMode, FusionOptions, RerankOptions, SearchRequest


class FusionRetriever(BaseRetriever):
    """LangChain retriever returning fused hybrid search results.

    Attributes:
        k: Number of documents to return (default: 4)
        fusion_mode: "rrf" or "weighted"
        rerank: Enable the re-ranking stage
        rerank_top_m: Prefix size handed to the reranker
    """

    # Pydantic fields for LangChain BaseRetriever
    k: int = Field(default=4, description="Number of documents to return")
    fusion_mode: str = Field(default="rrf", description="Fusion mode: rrf or weighted")
    rerank: bool = Field(default=False, description="Re-rank the fused prefix")
    rerank_top_m: int = Field(default=20, description="Documents handed to the reranker")

    # Private attributes (not Pydantic fields)
    _engine: Any = None
    _embedder: Any = None

    def __init__(
        self,
        engine: Any,
        embedder: Any | None = None,
        k: int = 4,
        fusion_mode: str = "rrf",
        rerank: bool = False,
        rerank_top_m: int = 20,
        **kwargs: Any,
    ) -> None:
        """Initialize retriever.

        Args:
            engine: HybridSearchEngine instance
            embedder: Optional object with ``async embed(text)``; without it
                the search is lexical-only
            k: Number of documents to return
            fusion_mode: "rrf" or "weighted"
            rerank: Enable re-ranking
            rerank_top_m: Re-ranking prefix size
            **kwargs: Additional arguments for BaseRetriever
        """
        super().__init__(
            k=k,
            fusion_mode=fusion_mode,
            rerank=rerank,
            rerank_top_m=rerank_top_m,
            **kwargs,
        )
        self._engine = engine
        self._embedder = embedder

    def _get_relevant_documents(
        self,
        query: str,
        *,
        run_manager: CallbackManagerForRetrieverRun | None = None,
    ) -> list[Document]:
        """Retrieve documents synchronously."""
        _ = run_manager  # noqa: ARG002 - reserved for future tracing

        if not query or not query.strip():
            return []

        return asyncio.run(self._aget_relevant_documents(query))

    async def _aget_relevant_documents(
        self,
        query: str,
        *,
        run_manager: CallbackManagerForRetrieverRun | None = None,
    ) -> list[Document]:
        """Retrieve documents asynchronously.

        Raises:
            AllSourcesFailedError: If no retrieval path produced results
        """
        _ = run_manager  # noqa: ARG002 - reserved for future tracing

        if not query or not query.strip():
            return []

        embedding = None
        if self._embedder is not None:
            embedding = await self._embedder.embed(query)

        request = SearchRequest(
            query_embedding=embedding,
            query_text=query,
            limit=self.k,
            fusion=FusionOptions(mode=FusionMode(self.fusion_mode)),
            rerank=RerankOptions(enabled=True, top_m=self.rerank_top_m) if self.rerank else None,
        )
        response = await self._engine.search(request)

        ids = response.ids
        stored = {}
        store = getattr(self._engine, "document_store", None)
        if store is not None and ids:
            stored = await store.get_documents(ids)

        documents: list[Document] = []
        for result in response.results:
            document = stored.get(result.doc_id)
            metadata = dict(document.metadata) if document is not None else {}
            metadata.update(
                {
                    "id": result.doc_id,
                    "fused_score": result.fused_score,
                    "rerank_score": result.rerank_score,
                    "sources": sorted(result.contributions),
                    "degraded": response.degraded,
                    "reranked": response.reranked,
                }
            )
            page_content = document.text if document is not None else ""
            documents.append(Document(page_content=page_content, metadata=metadata))

        return documents
