"""
Unit tests for RerankStage and CrossEncoderReranker.

Re-ranking only touches the leading top_m results, is bounded by a timeout,
and falls back to fused order on any scorer problem.
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest

from src.search.exceptions import RerankUnavailableError
from src.search.options import RerankOptions
from src.search.types import FusedResult
from tests.fakes import FakeReranker


def _fused(count: int) -> list[FusedResult]:
    return [FusedResult(doc_id=f"d{i:02d}", fused_score=1.0 - i * 0.01) for i in range(count)]


def _texts(results: list[FusedResult]) -> dict[str, str]:
    return {r.doc_id: f"text of {r.doc_id}" for r in results}


# =============================================================================
# Test: Prefix Re-ranking
# =============================================================================


class TestRerankPrefix:
    """Tests for reordering the top M results."""

    @pytest.mark.asyncio
    async def test_only_top_m_reordered(self) -> None:
        """With 20 fused results and top_m=5, results 6-20 keep fused order."""
        from src.search.rerank import RerankStage

        fused = _fused(20)
        # Reverse the first five
        reranker = FakeReranker(scores={f"text of d{i:02d}": float(i) for i in range(5)})
        stage = RerankStage(reranker=reranker)

        results, reranked = await stage.apply(
            fused, "query", _texts(fused), RerankOptions(enabled=True, top_m=5)
        )

        assert reranked is True
        assert [r.doc_id for r in results[:5]] == ["d04", "d03", "d02", "d01", "d00"]
        assert [r.doc_id for r in results[5:]] == [r.doc_id for r in fused[5:]]
        assert len(reranker.calls[0]) == 5

    @pytest.mark.asyncio
    async def test_scores_attached_by_index(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(3)
        reranker = FakeReranker(scores={"text of d00": 0.1, "text of d01": 0.9, "text of d02": 0.5})

        results, _ = await RerankStage(reranker).apply(
            fused, "query", _texts(fused), RerankOptions(enabled=True, top_m=3)
        )

        assert [(r.doc_id, r.rerank_score) for r in results] == [
            ("d01", 0.9),
            ("d02", 0.5),
            ("d00", 0.1),
        ]
        # Fused results are not mutated
        assert all(r.rerank_score is None for r in fused)

    @pytest.mark.asyncio
    async def test_equal_scores_keep_fused_order(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(4)

        results, reranked = await RerankStage(FakeReranker()).apply(
            fused, "query", _texts(fused), RerankOptions(enabled=True, top_m=4)
        )

        assert reranked is True
        assert [r.doc_id for r in results] == [r.doc_id for r in fused]

    @pytest.mark.asyncio
    async def test_top_m_capped_by_ceiling(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(30)
        reranker = FakeReranker()
        stage = RerankStage(reranker, max_candidates=10)

        await stage.apply(fused, "query", _texts(fused), RerankOptions(enabled=True, top_m=25))

        assert len(reranker.calls[0]) == 10
        assert stage.prefix_size(RerankOptions(enabled=True, top_m=25)) == 10

    @pytest.mark.asyncio
    async def test_top_m_larger_than_results(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(3)
        reranker = FakeReranker()

        results, reranked = await RerankStage(reranker).apply(
            fused, "query", _texts(fused), RerankOptions(enabled=True, top_m=50)
        )

        assert reranked is True
        assert len(results) == 3
        assert len(reranker.calls[0]) == 3


# =============================================================================
# Test: Skips and Fallbacks
# =============================================================================


class TestRerankFallback:
    """Tests for best-effort behaviour."""

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_fused_order(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(5)
        stage = RerankStage(FakeReranker(delay=1.0))

        results, reranked = await stage.apply(
            fused, "query", _texts(fused), RerankOptions(enabled=True, top_m=5, timeout_ms=10)
        )

        assert reranked is False
        assert results is fused

    @pytest.mark.asyncio
    async def test_scorer_error_falls_back(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(5)
        stage = RerankStage(FakeReranker(error=RuntimeError("model crashed")))

        results, reranked = await stage.apply(
            fused, "query", _texts(fused), RerankOptions(enabled=True)
        )

        assert reranked is False
        assert [r.doc_id for r in results] == [r.doc_id for r in fused]

    @pytest.mark.asyncio
    async def test_wrong_score_count_falls_back(self) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(5)
        stage = RerankStage(FakeReranker(wrong_length=True))

        _, reranked = await stage.apply(fused, "query", _texts(fused), RerankOptions(enabled=True))

        assert reranked is False

    @pytest.mark.asyncio
    async def test_fallback_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(2)
        stage = RerankStage(FakeReranker(error=RuntimeError("boom")))

        with caplog.at_level("WARNING", logger="src.search.rerank"):
            await stage.apply(fused, "query", _texts(fused), RerankOptions(enabled=True))

        assert "fell back to fused order" in caplog.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "options",
        [None, RerankOptions(enabled=False)],
    )
    async def test_disabled_is_skipped(self, options: RerankOptions | None) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(3)
        reranker = FakeReranker()

        _, reranked = await RerankStage(reranker).apply(fused, "query", _texts(fused), options)

        assert reranked is False
        assert reranker.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing_text", [None, "", "   "])
    async def test_candidate_without_text_falls_back(self, missing_text: str | None) -> None:
        from src.search.rerank import RerankStage

        fused = _fused(3)
        texts = _texts(fused)
        if missing_text is None:
            del texts["d01"]
        else:
            texts["d01"] = missing_text
        reranker = FakeReranker()

        results, reranked = await RerankStage(reranker).apply(
            fused, "query", texts, RerankOptions(enabled=True)
        )

        assert reranked is False
        assert results == fused
        assert reranker.calls == []

    @pytest.mark.asyncio
    async def test_no_reranker_configured(self) -> None:
        from src.search.rerank import RerankStage

        stage = RerankStage(reranker=None)

        _, reranked = await stage.apply(_fused(3), "query", {}, RerankOptions(enabled=True))

        assert stage.available is False
        assert reranked is False

    @pytest.mark.asyncio
    async def test_query_without_text_is_skipped(self) -> None:
        from src.search.rerank import RerankStage

        reranker = FakeReranker()

        _, reranked = await RerankStage(reranker).apply(
            _fused(3), None, {}, RerankOptions(enabled=True)
        )

        assert reranked is False
        assert reranker.calls == []


# =============================================================================
# Test: CrossEncoderReranker
# =============================================================================


class TestCrossEncoderReranker:
    """Tests for the sentence-transformers adapter."""

    @pytest.mark.asyncio
    async def test_scores_query_text_pairs(self) -> None:
        from src.search.rerank import CrossEncoderReranker

        model = MagicMock()
        model.predict.return_value = [0.2, 0.8]

        with patch("sentence_transformers.CrossEncoder", return_value=model) as factory:
            reranker = CrossEncoderReranker("cross-encoder/test-model")
            scores = await reranker.score("fusion", ["doc one", "doc two"])

        factory.assert_called_once_with("cross-encoder/test-model", device=None)
        model.predict.assert_called_once_with([("fusion", "doc one"), ("fusion", "doc two")])
        assert scores == [0.2, 0.8]

    @pytest.mark.asyncio
    async def test_model_error_becomes_unavailable(self) -> None:
        from src.search.rerank import CrossEncoderReranker

        model = MagicMock()
        model.predict.side_effect = RuntimeError("CUDA out of memory")

        with patch("sentence_transformers.CrossEncoder", return_value=model):
            reranker = CrossEncoderReranker("cross-encoder/test-model")
            with pytest.raises(RerankUnavailableError, match="CUDA"):
                await reranker.score("fusion", ["doc"])

    @pytest.mark.asyncio
    async def test_empty_input_skips_model(self) -> None:
        from src.search.rerank import CrossEncoderReranker

        reranker = CrossEncoderReranker("cross-encoder/test-model")

        assert await reranker.score("fusion", []) == []

    @pytest.mark.asyncio
    async def test_predict_runs_on_own_pool(self) -> None:
        """Timed-out predictions queue on the reranker's pool, not the loop's default one."""
        from src.search.rerank import CrossEncoderReranker

        thread_names: list[str] = []

        def predict(pairs):
            thread_names.append(threading.current_thread().name)
            return [0.5] * len(pairs)

        model = MagicMock()
        model.predict.side_effect = predict

        with patch("sentence_transformers.CrossEncoder", return_value=model):
            reranker = CrossEncoderReranker("cross-encoder/test-model")
            await reranker.score("fusion", ["doc"])
        reranker.close()

        assert thread_names[0].startswith("cross-encoder")

    @pytest.mark.asyncio
    async def test_closed_reranker_is_unavailable(self) -> None:
        from src.search.rerank import CrossEncoderReranker

        reranker = CrossEncoderReranker("cross-encoder/test-model")
        reranker.close()

        with pytest.raises(RerankUnavailableError):
            await reranker.score("fusion", ["doc"])
