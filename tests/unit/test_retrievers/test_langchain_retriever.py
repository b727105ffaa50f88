"""
Unit tests for FusionRetriever (LangChain BaseRetriever adapter).
"""

from __future__ import annotations

import pytest
from langchain_core.documents import Document
from langchain_core.retrievers import BaseRetriever

from src.api.dependencies import FakeEmbeddingService
from src.retrievers.langchain_retriever import FusionRetriever
from src.search.exceptions import AllSourcesFailedError


class TestFusionRetriever:
    """Tests for the LangChain wrapper."""

    def test_is_base_retriever(self, engine) -> None:
        assert isinstance(FusionRetriever(engine=engine), BaseRetriever)

    @pytest.mark.asyncio
    async def test_returns_langchain_documents(self, engine) -> None:
        retriever = FusionRetriever(engine=engine, k=2)

        docs = await retriever.ainvoke("reciprocal fusion")

        assert all(isinstance(d, Document) for d in docs)
        assert [d.metadata["id"] for d in docs] == ["rrf", "weighted"]
        assert docs[0].page_content.startswith("Reciprocal rank fusion")
        assert docs[0].metadata["category"] == "fusion"
        assert docs[0].metadata["sources"] == ["lexical"]
        assert docs[0].metadata["reranked"] is False

    @pytest.mark.asyncio
    async def test_embedder_enables_vector_path(self, engine) -> None:
        retriever = FusionRetriever(engine=engine, embedder=FakeEmbeddingService(dimension=2), k=4)

        docs = await retriever.ainvoke("reciprocal fusion")

        assert len(docs) == 4
        assert all("vector" in d.metadata["sources"] for d in docs)
        assert docs[0].metadata["degraded"] is False

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, engine) -> None:
        assert await FusionRetriever(engine=engine).ainvoke("   ") == []

    @pytest.mark.asyncio
    async def test_no_matches_propagates(self, engine) -> None:
        with pytest.raises(AllSourcesFailedError):
            await FusionRetriever(engine=engine).ainvoke("zebra")

    def test_sync_invoke(self, engine) -> None:
        docs = FusionRetriever(engine=engine, k=1).invoke("reciprocal")

        assert [d.metadata["id"] for d in docs] == ["rrf"]
