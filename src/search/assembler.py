"""
Result assembler.

Applies, in order:
1. Similarity/distance threshold (inclusive boundary, see Threshold)
2. Limit truncation
3. Deterministic order (incoming order is already tie-broken by id)

Metadata filters are pushed down to retrieval and are NOT re-applied here;
post-filtering would leave result sets under-filled.

The threshold judges a document by its vector-source measurement. Documents
reached only through other sources carry no such measurement and are kept.
"""

from __future__ import annotations

import logging

from src.search.options import Threshold, ThresholdKind
from src.search.text import highlight_snippet
from src.search.types import FusedResult, ScoreKind

logger = logging.getLogger(__name__)


class ResultAssembler:
    """Produces the final bounded result list."""

    def __init__(self, snippet_max_chars: int = 200) -> None:
        self._snippet_max_chars = snippet_max_chars

    def assemble(
        self,
        results: list[FusedResult],
        limit: int,
        threshold: Threshold | None = None,
        vector_source: str | None = None,
        vector_kind: ScoreKind | None = None,
    ) -> list[FusedResult]:
        """Filter by threshold, then truncate to ``limit``.

        Args:
            results: Results in final order
            limit: Maximum number of results
            threshold: Optional similarity or distance cut-off
            vector_source: Source whose raw distance the threshold judges
            vector_kind: Score kind of that source

        Returns:
            At most ``limit`` results; possibly empty when the threshold
            excludes everything (a valid result, not an error)
        """
        kept = results
        if threshold is not None and vector_source is not None and vector_kind is not None:
            kept = [
                result
                for result in results
                if self._passes(result, threshold, vector_source, vector_kind)
            ]
            if results and not kept:
                logger.info("Threshold %s excluded all %d results", threshold, len(results))

        if len(kept) < limit:
            logger.debug("Assembled %d results for limit %d", len(kept), limit)
        return kept[:limit]

    def highlight(
        self,
        results: list[FusedResult],
        query_text: str | None,
        texts: dict[str, str],
    ) -> None:
        """Attach highlighted snippets in place."""
        if not query_text:
            return
        for result in results:
            text = texts.get(result.doc_id)
            if text:
                result.snippet = highlight_snippet(text, query_text, self._snippet_max_chars)

    def _passes(
        self,
        result: FusedResult,
        threshold: Threshold,
        vector_source: str,
        vector_kind: ScoreKind,
    ) -> bool:
        contribution = result.contributions.get(vector_source)
        if contribution is None:
            return True

        distance = contribution.score
        if threshold.kind is ThresholdKind.DISTANCE:
            return threshold.admits(distance)
        if vector_kind is ScoreKind.COSINE_DISTANCE:
            return threshold.admits(vector_kind.to_similarity(distance))
        # Inner product: similarity is the (un-negated) inner product
        return threshold.admits(vector_kind.to_relevance(distance))
