"""
Fake implementations for testing.

These test doubles implement the engine protocols for unit/integration testing
without requiring real infrastructure (Qdrant, cross-encoder models).
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from src.search.exceptions import SourceUnavailableError
from src.search.options import SearchRequest
from src.search.types import CandidateSet, ScoreKind


class FakeRetriever:
    """Retriever returning a fixed candidate set, or raising."""

    def __init__(
        self,
        name: str,
        ids: Sequence[str] = (),
        kind: ScoreKind = ScoreKind.COSINE_DISTANCE,
        scores: Sequence[float] | None = None,
        error: Exception | None = None,
        needs: str = "any",
        delay: float = 0.0,
        invalid: Exception | None = None,
    ) -> None:
        """Initialize with the ids to return in rank order.

        Args:
            name: Source name
            ids: Document ids, best first
            kind: Score kind of the set
            scores: Raw scores (defaults to rank-derived values)
            error: Raised from retrieve() instead of returning
            needs: "embedding", "text" or "any"
            delay: Seconds to sleep before answering
            invalid: Raised from validate() to reject the request
        """
        self._name = name
        self._ids = list(ids)
        self._kind = kind
        self._scores = list(scores) if scores is not None else None
        self._error = error
        self._needs = needs
        self._delay = delay
        self._invalid = invalid
        self.calls = 0
        self.last_limit: int | None = None
        self.cancelled = False

    @property
    def name(self) -> str:
        return self._name

    def applies_to(self, request: SearchRequest) -> bool:
        if self._needs == "embedding":
            return request.has_embedding
        if self._needs == "text":
            return request.has_text
        return True

    def validate(self, request: SearchRequest) -> None:
        _ = request
        if self._invalid is not None:
            raise self._invalid

    async def retrieve(self, request: SearchRequest, limit: int) -> CandidateSet:
        """Return the configured set."""
        _ = request
        self.calls += 1
        self.last_limit = limit
        try:
            await asyncio.sleep(self._delay)  # Yield to event loop
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error
        scores = self._scores or [
            0.1 * rank if self._kind.lower_is_better else 10.0 - rank
            for rank in range(1, len(self._ids) + 1)
        ]
        return CandidateSet.from_scores(self._name, self._kind, zip(self._ids, scores, strict=True))


class FakeReranker:
    """Reranker returning scores from a table, slowly, or failing."""

    def __init__(
        self,
        scores: dict[str, float] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        wrong_length: bool = False,
    ) -> None:
        """Initialize with text -> score table (unknown texts score 0)."""
        self._scores = scores or {}
        self._delay = delay
        self._error = error
        self._wrong_length = wrong_length
        self.calls: list[list[str]] = []

    async def score(self, query: str, texts: Sequence[str]) -> list[float]:
        """Return fake relevance scores."""
        _ = query
        self.calls.append(list(texts))
        await asyncio.sleep(self._delay)  # Yield to event loop
        if self._error is not None:
            raise self._error
        scores = [self._scores.get(text, 0.0) for text in texts]
        if self._wrong_length:
            scores.append(0.0)
        return scores


class BrokenDocumentStore:
    """Document store whose lookups always fail."""

    async def get_documents(self, ids: list[str]) -> dict:
        _ = ids
        await asyncio.sleep(0)  # Yield to event loop
        raise SourceUnavailableError("store", "document store offline")
