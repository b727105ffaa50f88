"""
Rank fusion engine.

Combines any number of ordered candidate sets into one ranking.

Strategies:
- rrf: Reciprocal Rank Fusion - sum of 1 / (k + rank) per source
- weighted: Σ w_s * normalize(relevance_s) with weights scaled to sum to 1

Design notes:
- RRF needs no cross-source normalisation, so it is the default
- Weighted fusion works on relevance (distances inverted) so higher is better
- Sources are processed in sorted name order so input order never changes
  floating point summation, and output is byte-identical across runs
- Deterministic tie-breaking by ascending document id
- A missing document contributes 0 for that source; it is not excluded
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.search.exceptions import InvalidConfigurationError
from src.search.options import FusionMode, FusionOptions, NormalizationStrategy
from src.search.types import CandidateSet, FusedResult, SourceContribution

logger = logging.getLogger(__name__)


# =============================================================================
# RankFusionEngine Class
# =============================================================================


class RankFusionEngine:
    """Fuses per-source candidate sets into a single ordered result list.

    Usage:
        engine = RankFusionEngine()
        fused = engine.fuse([vector_set, lexical_set], FusionOptions(rrf_k=60))
    """

    def fuse(
        self,
        candidate_sets: Sequence[CandidateSet],
        options: FusionOptions,
    ) -> list[FusedResult]:
        """Fuse candidate sets with the strategy named in ``options``.

        Args:
            candidate_sets: One set per source; empty sets contribute nothing
            options: Fusion mode and its parameters

        Returns:
            FusedResult list sorted by fused score descending, then id

        Raises:
            InvalidConfigurationError: If options are invalid for these sets
            ValueError: If two sets share a source name
        """
        options.validate()
        ordered = self._ordered_sets(candidate_sets)

        if options.mode is FusionMode.RRF:
            results = self.rrf_scores(ordered, options.rrf_k)
        elif options.mode is FusionMode.WEIGHTED:
            results = self.weighted_scores(ordered, options)
        else:
            raise InvalidConfigurationError(f"Unknown fusion mode '{options.mode}'")

        return self.sort_results(results.values())

    @staticmethod
    def sort_results(results) -> list[FusedResult]:
        """Sort by fused score descending, ties by ascending document id."""
        return sorted(results, key=lambda r: (-r.fused_score, r.doc_id))

    def rrf_scores(
        self,
        candidate_sets: Sequence[CandidateSet],
        rrf_k: float,
    ) -> dict[str, FusedResult]:
        """Reciprocal Rank Fusion.

        Formula: sum(1 / (k + rank)) over the sources where a doc appears.
        Higher k flattens the gap between top and lower ranks.
        """
        if rrf_k <= 0:
            raise InvalidConfigurationError(f"rrf_k must be positive, got {rrf_k}")

        fused: dict[str, FusedResult] = {}
        for candidate_set in candidate_sets:
            for candidate in candidate_set:
                contribution = 1.0 / (rrf_k + candidate.rank)
                result = fused.setdefault(
                    candidate.doc_id,
                    FusedResult(doc_id=candidate.doc_id, fused_score=0.0),
                )
                result.fused_score += contribution
                result.contributions[candidate_set.source] = SourceContribution(
                    source=candidate_set.source,
                    rank=candidate.rank,
                    score=candidate.score,
                    contribution=contribution,
                )
        return fused

    def weighted_scores(
        self,
        candidate_sets: Sequence[CandidateSet],
        options: FusionOptions,
    ) -> dict[str, FusedResult]:
        """Weighted linear combination of normalised relevance.

        Formula: Σ w_s * normalize(relevance_s(doc)), weights scaled to sum 1.

        Sensitive to scale mismatches between sources; callers choosing this
        mode accept that responsibility.
        """
        sources = [candidate_set.source for candidate_set in candidate_sets]
        weights = options.normalized_weights(sources)
        equal_share = options.weights is not None and options.shares_equally(sources)

        fused: dict[str, FusedResult] = {}
        for candidate_set in candidate_sets:
            weight = weights[candidate_set.source]
            if weight > 0:
                relevance = {
                    candidate.doc_id: candidate_set.kind.to_relevance(candidate.score)
                    for candidate in candidate_set
                }
                normalized = self._normalize(
                    candidate_set.source, relevance, options, equal_share
                )
            else:
                normalized = dict.fromkeys((c.doc_id for c in candidate_set), 0.0)

            for candidate in candidate_set:
                contribution = weight * normalized[candidate.doc_id]
                result = fused.setdefault(
                    candidate.doc_id,
                    FusedResult(doc_id=candidate.doc_id, fused_score=0.0),
                )
                result.fused_score += contribution
                result.contributions[candidate_set.source] = SourceContribution(
                    source=candidate_set.source,
                    rank=candidate.rank,
                    score=candidate.score,
                    contribution=contribution,
                )
        return fused

    def min_max_normalize(
        self,
        scores: dict[str, float],
    ) -> dict[str, float]:
        """Normalize scores to [0, 1] using min-max scaling.

        Args:
            scores: Dictionary of {doc_id: relevance}

        Returns:
            Dictionary of {doc_id: normalized_score}
        """
        if not scores:
            return {}

        values = list(scores.values())
        min_score = min(values)
        max_score = max(values)

        # Handle case where all scores are the same
        if max_score == min_score:
            return dict.fromkeys(scores, 1.0)

        return {
            doc_id: (score - min_score) / (max_score - min_score)
            for doc_id, score in scores.items()
        }

    def fixed_scale_normalize(
        self,
        scores: dict[str, float],
        low: float,
        high: float,
    ) -> dict[str, float]:
        """Map scores from a declared [low, high] scale onto [0, 1], clamped."""
        span = high - low
        return {
            doc_id: self._clamp_score((score - low) / span)
            for doc_id, score in scores.items()
        }

    def _normalize(
        self,
        source: str,
        relevance: dict[str, float],
        options: FusionOptions,
        equal_share: bool = False,
    ) -> dict[str, float]:
        if options.normalization is NormalizationStrategy.MIN_MAX:
            return self.min_max_normalize(relevance)

        scales = options.fixed_scales or {}
        if source not in scales and equal_share:
            # Weighted only through the equal-share fallback after degradation
            logger.warning("No fixed scale for '%s'; using min-max normalisation", source)
            return self.min_max_normalize(relevance)
        if source not in scales:
            raise InvalidConfigurationError(
                f"Fixed normalisation has no scale for source '{source}'"
            )
        low, high = scales[source]
        return self.fixed_scale_normalize(relevance, low, high)

    def _clamp_score(self, score: float) -> float:
        """Clamp score to [0, 1] range."""
        return max(0.0, min(1.0, score))

    def _ordered_sets(
        self,
        candidate_sets: Sequence[CandidateSet],
    ) -> list[CandidateSet]:
        names = [candidate_set.source for candidate_set in candidate_sets]
        if len(set(names)) != len(names):
            raise ValueError(f"Candidate sets must come from distinct sources, got {names}")
        return sorted(candidate_sets, key=lambda s: s.source)
