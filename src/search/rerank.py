"""
Second-stage re-ranking.

Two-stage retrieval: fusion gives broad recall, then a cross-encoder scores
the query jointly with each of the top M documents and reorders that prefix.
Results beyond M keep their fused order.

Re-ranking is best-effort:
- Hard timeout via asyncio.wait_for; the awaiting task is cancelled
- Candidates without text are never scored; the stage falls back instead
- Scorer errors or timeouts fall back to fused order with reranked=False
- Scores map back to documents by index, never by content
- top_m is clamped to a ceiling the caller cannot exceed
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Protocol, runtime_checkable

from src.search.exceptions import RerankError, RerankTimeoutError, RerankUnavailableError
from src.search.options import RerankOptions
from src.search.types import FusedResult

logger = logging.getLogger(__name__)

_DEFAULT_MAX_CANDIDATES = 100
_DEFAULT_MAX_WORKERS = 1


# =============================================================================
# Protocol for Duck Typing
# =============================================================================


@runtime_checkable
class RerankerProtocol(Protocol):
    """Scores (query, text) pairs; one score per text, same order."""

    async def score(self, query: str, texts: Sequence[str]) -> list[float]:
        ...


# =============================================================================
# Cross-Encoder Implementation
# =============================================================================


class CrossEncoderReranker:
    """sentence-transformers CrossEncoder scorer.

    The model is loaded on first use and ``predict`` runs on the reranker's
    own thread pool so the event loop is not blocked. A timed-out call cannot
    be interrupted: its ``predict`` runs to completion in the background while
    the stage has already fallen back. The pool is bounded by ``max_workers``
    so late calls queue behind one another instead of piling up.
    """

    def __init__(
        self,
        model_name: str,
        device: str | None = None,
        max_workers: int = _DEFAULT_MAX_WORKERS,
    ) -> None:
        self._model_name = model_name
        self._device = device
        self._model: Any = None
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="cross-encoder",
        )

    @property
    def model_name(self) -> str:
        return self._model_name

    def _load(self) -> Any:
        if self._model is None:
            from sentence_transformers import CrossEncoder

            self._model = CrossEncoder(self._model_name, device=self._device)
        return self._model

    def _predict(self, query: str, texts: list[str]) -> list[float]:
        model = self._load()
        scores = model.predict([(query, text) for text in texts])
        return [float(s) for s in scores]

    async def score(self, query: str, texts: Sequence[str]) -> list[float]:
        if not texts:
            return []
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self._predict, query, list(texts))
        except Exception as e:
            raise RerankUnavailableError(
                f"Cross-encoder '{self._model_name}' failed: {e}",
                cause=e,
            ) from e

    def close(self) -> None:
        """Release the worker threads; pending predictions are not waited for."""
        self._executor.shutdown(wait=False, cancel_futures=True)


# =============================================================================
# RerankStage
# =============================================================================


class RerankStage:
    """Applies a reranker to a bounded prefix of fused results.

    Usage:
        stage = RerankStage(reranker=CrossEncoderReranker(model), max_candidates=100)
        results, reranked = await stage.apply(fused, "query", texts, options)
    """

    def __init__(
        self,
        reranker: RerankerProtocol | None,
        max_candidates: int = _DEFAULT_MAX_CANDIDATES,
    ) -> None:
        self._reranker = reranker
        self._max_candidates = max_candidates

    @property
    def max_candidates(self) -> int:
        return self._max_candidates

    @property
    def available(self) -> bool:
        return self._reranker is not None

    def close(self) -> None:
        close = getattr(self._reranker, "close", None)
        if close is not None:
            close()

    def prefix_size(self, options: RerankOptions) -> int:
        """Number of leading results the reranker will see."""
        return options.capped_top_m(self._max_candidates)

    async def apply(
        self,
        results: list[FusedResult],
        query_text: str | None,
        texts: dict[str, str],
        options: RerankOptions | None,
    ) -> tuple[list[FusedResult], bool]:
        """Rerank the top M results.

        Args:
            results: Fused results in fused order
            query_text: Original query text
            texts: Document text by id, for the prefix
            options: Re-ranking options (None or disabled skips the stage)

        Returns:
            (results, reranked) where reranked is False on any fallback
        """
        if options is None or not options.enabled:
            return results, False
        if self._reranker is None:
            logger.warning("Re-ranking requested but no reranker is configured")
            return results, False
        if not query_text or not query_text.strip():
            logger.info("Re-ranking skipped: query has no text")
            return results, False
        if not results:
            return results, False

        top_m = self.prefix_size(options)
        prefix = results[:top_m]
        rest = results[top_m:]

        try:
            scores = await self._score_prefix(query_text, prefix, texts, options.timeout_ms)
        except RerankError as e:
            logger.warning("Re-ranking fell back to fused order: %s", e)
            return results, False

        order = sorted(range(len(prefix)), key=lambda i: (-scores[i], i))
        reranked = [replace(prefix[i], rerank_score=scores[i]) for i in order]
        logger.debug("Re-ranked %d of %d results", len(prefix), len(results))
        return reranked + rest, True

    async def _score_prefix(
        self,
        query_text: str,
        prefix: list[FusedResult],
        texts: dict[str, str],
        timeout_ms: int,
    ) -> list[float]:
        """Score the prefix, mapping scores back by index.

        Raises:
            RerankTimeoutError: If the scorer exceeds timeout_ms
            RerankUnavailableError: If a candidate has no text, or the scorer
                errors or misbehaves
        """
        missing = [r.doc_id for r in prefix if not (texts.get(r.doc_id) or "").strip()]
        if missing:
            raise RerankUnavailableError(
                f"No text for {len(missing)} of {len(prefix)} candidates (first: {missing[0]})"
            )
        inputs = [texts[result.doc_id] for result in prefix]

        try:
            scores = await asyncio.wait_for(
                self._reranker.score(query_text, inputs),  # type: ignore[union-attr]
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            raise RerankTimeoutError(timeout_ms) from e
        except RerankError:
            raise
        except Exception as e:
            raise RerankUnavailableError(f"Reranker failed: {e}", cause=e) from e

        if len(scores) != len(inputs):
            raise RerankUnavailableError(
                f"Reranker returned {len(scores)} scores for {len(inputs)} documents"
            )
        if any(math.isnan(score) for score in scores):
            raise RerankUnavailableError("Reranker returned NaN scores")
        return [float(score) for score in scores]
