"""
Lexical candidate retriever and pluggable scorers.

LexicalScorer is the capability the retriever depends on; two
implementations are provided:
- FullTextScorer: plain full-text rank, matched term frequency normalised
  by document length (the ts_rank style)
- Bm25Scorer: Okapi BM25 via rank_bm25

Lexical search can legitimately return nothing (no matching terms); that is
an empty set, not a failure.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from rank_bm25 import BM25Okapi

from src.search.exceptions import SourceUnavailableError
from src.search.options import SearchRequest
from src.search.retrieval import CorpusProtocol
from src.search.text import tokenize
from src.search.types import CandidateSet, Document, ScoreKind

logger = logging.getLogger(__name__)

_DEFAULT_SOURCE_NAME = "lexical"
_DEFAULT_K1 = 1.5
_DEFAULT_B = 0.75


# =============================================================================
# Scorer Protocol
# =============================================================================


@runtime_checkable
class LexicalScorer(Protocol):
    """Scores documents against query text.

    Only documents containing at least one query term appear in the result.
    """

    @property
    def name(self) -> str:
        ...

    def score(self, query_text: str, documents: Sequence[Document]) -> dict[str, float]:
        ...


# =============================================================================
# Scorer Implementations
# =============================================================================


class FullTextScorer:
    """Term-frequency rank normalised by 1 + log(document length)."""

    @property
    def name(self) -> str:
        return "fulltext"

    def score(self, query_text: str, documents: Sequence[Document]) -> dict[str, float]:
        terms = set(tokenize(query_text))
        if not terms:
            return {}

        scores: dict[str, float] = {}
        for document in documents:
            tokens = tokenize(document.text)
            counts = Counter(tokens)
            matched = sum(counts[term] for term in terms)
            if matched:
                scores[document.id] = matched / (1.0 + math.log(1 + len(tokens)))
        return scores


class Bm25Scorer:
    """Okapi BM25 over the eligible documents.

    Corpus statistics (IDF, average length) are computed over the documents
    passed in, i.e. after filter pushdown.
    """

    def __init__(self, k1: float = _DEFAULT_K1, b: float = _DEFAULT_B) -> None:
        self._k1 = k1
        self._b = b

    @property
    def name(self) -> str:
        return "bm25"

    def score(self, query_text: str, documents: Sequence[Document]) -> dict[str, float]:
        query_tokens = tokenize(query_text)
        if not query_tokens or not documents:
            return {}

        tokenized = [tokenize(document.text) for document in documents]
        if not any(tokenized):
            return {}

        bm25 = BM25Okapi(tokenized, k1=self._k1, b=self._b)
        raw_scores = bm25.get_scores(query_tokens)
        terms = set(query_tokens)

        return {
            document.id: float(raw_scores[i])
            for i, document in enumerate(documents)
            if terms.intersection(tokenized[i])
        }


def create_scorer(name: str, k1: float = _DEFAULT_K1, b: float = _DEFAULT_B) -> LexicalScorer:
    """Build a scorer by configured name ("bm25" or "fulltext")."""
    if name == "bm25":
        return Bm25Scorer(k1=k1, b=b)
    if name == "fulltext":
        return FullTextScorer()
    raise ValueError(f"Unknown lexical scorer '{name}'. Valid options: bm25, fulltext")


# =============================================================================
# Retriever
# =============================================================================


class LexicalCandidateRetriever:
    """Candidate retriever over a corpus and a LexicalScorer.

    Usage:
        retriever = LexicalCandidateRetriever(corpus=store, scorer=Bm25Scorer())
        candidate_set = await retriever.retrieve(request, limit=20)
    """

    def __init__(
        self,
        corpus: CorpusProtocol,
        scorer: LexicalScorer,
        name: str = _DEFAULT_SOURCE_NAME,
    ) -> None:
        self._corpus = corpus
        self._scorer = scorer
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def scorer(self) -> LexicalScorer:
        return self._scorer

    def applies_to(self, request: SearchRequest) -> bool:
        return request.has_text

    def validate(self, request: SearchRequest) -> None:
        """Lexical scoring places no constraints beyond carrying text."""

    async def retrieve(self, request: SearchRequest, limit: int) -> CandidateSet:
        """Score the filtered corpus and return the top ``limit`` matches.

        Raises:
            SourceUnavailableError: If the corpus or scorer fails
        """
        try:
            documents = await self._corpus.documents(request.filter)
            scores = await asyncio.to_thread(
                self._scorer.score, request.query_text or "", documents
            )
        except Exception as e:
            raise SourceUnavailableError(
                self._name,
                f"Lexical search ({self._scorer.name}) failed: {e}",
                cause=e,
            ) from e

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]
        if not ranked:
            logger.info("Lexical source '%s' matched no documents", self._name)

        return CandidateSet.from_scores(
            source=self._name,
            kind=ScoreKind.LEXICAL,
            scored=ranked,
        )
