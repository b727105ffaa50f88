"""
Contracts the engine depends on: retrieval paths and document storage.

A retriever adapts one retrieval path (vector or lexical) into an ordered
CandidateSet. It returns an empty set for "no matches" and raises
SourceUnavailableError for "path broken", so the degradation controller can
tell the two apart.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from src.search.exceptions import SourceUnavailableError
from src.search.options import SearchRequest
from src.search.types import CandidateSet, Document, SourceOutcome

logger = logging.getLogger(__name__)


@runtime_checkable
class CandidateRetrieverProtocol(Protocol):
    """One configured retrieval path."""

    @property
    def name(self) -> str:
        """Source name used in contributions and weights."""
        ...

    def applies_to(self, request: SearchRequest) -> bool:
        """Whether the request carries the input this path needs."""
        ...

    def validate(self, request: SearchRequest) -> None:
        """Raise InvalidConfigurationError if this path cannot serve the request.

        Called before any retrieval starts.
        """
        ...

    async def retrieve(self, request: SearchRequest, limit: int) -> CandidateSet:
        """Return at most ``limit`` candidates in relevance order.

        Raises:
            SourceUnavailableError: If the path cannot search
        """
        ...


async def retrieve_outcome(
    retriever: CandidateRetrieverProtocol,
    request: SearchRequest,
    limit: int,
) -> SourceOutcome:
    """Run a retriever and capture success or failure as a SourceOutcome.

    Cancellation is not captured; it propagates to the caller.
    """
    try:
        candidate_set = await retriever.retrieve(request, limit)
    except SourceUnavailableError as e:
        logger.warning(
            "Source '%s' unavailable: %s", retriever.name, e, extra={"source": retriever.name}
        )
        return SourceOutcome(source=retriever.name, error=e)
    except Exception as e:
        logger.warning(
            "Source '%s' raised unexpectedly: %s",
            retriever.name,
            e,
            extra={"source": retriever.name},
        )
        return SourceOutcome(
            source=retriever.name,
            error=SourceUnavailableError(retriever.name, str(e), cause=e),
        )

    if len(candidate_set) > limit:
        candidate_set = CandidateSet(
            source=candidate_set.source,
            kind=candidate_set.kind,
            candidates=candidate_set.candidates[:limit],
            relaxed_ordering=candidate_set.relaxed_ordering,
        )
    return SourceOutcome(source=retriever.name, candidate_set=candidate_set)


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """Lookup of stored documents by id."""

    async def get_documents(self, ids: list[str]) -> dict[str, Document]:
        """Return the documents that exist among ``ids``."""
        ...


@runtime_checkable
class CorpusProtocol(Protocol):
    """Documents eligible for scoring, with metadata filter pushdown."""

    async def documents(
        self,
        filter_conditions: dict[str, Any] | None = None,
    ) -> list[Document]:
        ...
