"""
Unit tests for RankFusionEngine.

Covers:
- Reciprocal Rank Fusion with a configurable k
- Weighted fusion with min-max and fixed-scale normalisation
- Deterministic tie-breaking by document id
- Independence from the order candidate sets are supplied in
- Option validation
"""

from __future__ import annotations

import pytest

from src.search.exceptions import InvalidConfigurationError
from src.search.options import FusionMode, FusionOptions, NormalizationStrategy
from src.search.types import CandidateSet, ScoreKind

# =============================================================================
# Test Fixtures
# =============================================================================


def _set(source: str, ids: list[str], scores: list[float] | None = None, kind=None) -> CandidateSet:
    kind = kind or (ScoreKind.LEXICAL if source == "lexical" else ScoreKind.COSINE_DISTANCE)
    if scores is None:
        scores = [float(i) for i in range(1, len(ids) + 1)]
    return CandidateSet.from_scores(source, kind, zip(ids, scores, strict=True))


@pytest.fixture
def source_a() -> CandidateSet:
    return _set("a", ["d1", "d2", "d3"])


@pytest.fixture
def source_b() -> CandidateSet:
    return _set("b", ["d2", "d4"])


# =============================================================================
# Test: Reciprocal Rank Fusion
# =============================================================================


class TestReciprocalRankFusion:
    """Tests for RRF scoring."""

    def test_overlap_ranks_first(self, source_a: CandidateSet, source_b: CandidateSet) -> None:
        """A document found by both sources outranks single-source documents."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse([source_a, source_b], FusionOptions(rrf_k=60))

        assert [r.doc_id for r in results] == ["d2", "d1", "d4", "d3"]

    def test_scores_follow_formula(self, source_a: CandidateSet, source_b: CandidateSet) -> None:
        """Fused score is the sum of 1/(k + rank) over the sources."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse([source_a, source_b], FusionOptions(rrf_k=60))
        by_id = {r.doc_id: r for r in results}

        assert by_id["d2"].fused_score == pytest.approx(1 / 62 + 1 / 61)
        assert by_id["d1"].fused_score == pytest.approx(1 / 61)
        assert by_id["d4"].fused_score == pytest.approx(1 / 62)
        assert by_id["d3"].fused_score == pytest.approx(1 / 63)

    def test_fused_score_equals_sum_of_contributions(self) -> None:
        """Every fused score is reproducible from its recorded contributions."""
        from src.search.ranker import RankFusionEngine

        vector = _set("vector", ["a", "b", "c", "d"])
        lexical = _set("lexical", ["e", "c", "a"])

        results = RankFusionEngine().fuse([vector, lexical], FusionOptions(rrf_k=60))

        assert len(results) == 5
        for result in results:
            assert result.fused_score == pytest.approx(
                sum(c.contribution for c in result.contributions.values())
            )
        c = next(r for r in results if r.doc_id == "c")
        assert c.contributions["vector"].rank == 3
        assert c.contributions["lexical"].rank == 2
        assert c.fused_score == pytest.approx(1 / 63 + 1 / 62)

    def test_missing_document_contributes_zero(self, source_a: CandidateSet, source_b: CandidateSet) -> None:
        """A document absent from a source has no contribution entry for it."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse([source_a, source_b], FusionOptions())
        d1 = next(r for r in results if r.doc_id == "d1")

        assert set(d1.contributions) == {"a"}

    def test_raw_scores_do_not_matter(self) -> None:
        """Order-preserving changes to raw scores leave RRF output unchanged."""
        from src.search.ranker import RankFusionEngine

        engine = RankFusionEngine()
        original = engine.fuse(
            [_set("a", ["x", "y", "z"], [0.1, 0.2, 0.3]), _set("b", ["z", "x"], [0.05, 0.5])],
            FusionOptions(),
        )
        rescaled = engine.fuse(
            [_set("a", ["x", "y", "z"], [10.0, 200.0, 3000.0]), _set("b", ["z", "x"], [1.0, 1.5])],
            FusionOptions(),
        )

        assert [r.doc_id for r in original] == [r.doc_id for r in rescaled]
        assert [r.fused_score for r in original] == [r.fused_score for r in rescaled]

    def test_larger_k_flattens_scores(self) -> None:
        """Higher k shrinks the gap between rank 1 and rank 2."""
        from src.search.ranker import RankFusionEngine

        engine = RankFusionEngine()
        candidate_set = _set("a", ["first", "second"])

        small = engine.fuse([candidate_set], FusionOptions(rrf_k=1))
        large = engine.fuse([candidate_set], FusionOptions(rrf_k=1000))

        small_gap = small[0].fused_score - small[1].fused_score
        large_gap = large[0].fused_score - large[1].fused_score
        assert small_gap > large_gap

    def test_empty_input_returns_empty(self) -> None:
        from src.search.ranker import RankFusionEngine

        assert RankFusionEngine().fuse([], FusionOptions()) == []

    def test_empty_set_contributes_nothing(self, source_a: CandidateSet) -> None:
        from src.search.ranker import RankFusionEngine

        engine = RankFusionEngine()
        with_empty = engine.fuse(
            [source_a, CandidateSet.empty("b", ScoreKind.LEXICAL)], FusionOptions()
        )
        alone = engine.fuse([source_a], FusionOptions())

        assert [(r.doc_id, r.fused_score) for r in with_empty] == [
            (r.doc_id, r.fused_score) for r in alone
        ]


# =============================================================================
# Test: Determinism
# =============================================================================


class TestDeterminism:
    """Tests for stable, reproducible ordering."""

    def test_ties_broken_by_document_id(self) -> None:
        """Equal fused scores are ordered by ascending id."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse(
            [_set("a", ["zeta", "alpha"]), _set("b", ["alpha", "zeta"])],
            FusionOptions(),
        )

        assert results[0].fused_score == results[1].fused_score
        assert [r.doc_id for r in results] == ["alpha", "zeta"]

    def test_input_order_does_not_change_output(self, source_a: CandidateSet, source_b: CandidateSet) -> None:
        """Supplying sets in a different order yields identical results."""
        from src.search.ranker import RankFusionEngine

        engine = RankFusionEngine()
        forward = engine.fuse([source_a, source_b], FusionOptions())
        backward = engine.fuse([source_b, source_a], FusionOptions())

        assert [(r.doc_id, r.fused_score) for r in forward] == [
            (r.doc_id, r.fused_score) for r in backward
        ]

    def test_repeated_runs_identical(self, source_a: CandidateSet, source_b: CandidateSet) -> None:
        from src.search.ranker import RankFusionEngine

        engine = RankFusionEngine()
        runs = [
            [(r.doc_id, r.fused_score) for r in engine.fuse([source_a, source_b], FusionOptions())]
            for _ in range(5)
        ]

        assert all(run == runs[0] for run in runs)

    def test_duplicate_source_names_rejected(self, source_a: CandidateSet) -> None:
        from src.search.ranker import RankFusionEngine

        with pytest.raises(ValueError, match="distinct sources"):
            RankFusionEngine().fuse([source_a, source_a], FusionOptions())


# =============================================================================
# Test: Weighted Fusion
# =============================================================================


class TestWeightedFusion:
    """Tests for weighted linear fusion over normalised relevance."""

    @pytest.fixture
    def vector_set(self) -> CandidateSet:
        # Cosine distances: relevance 0.9, 0.7, 0.5
        return _set("vector", ["a", "b", "c"], [0.1, 0.3, 0.5])

    @pytest.fixture
    def lexical_set(self) -> CandidateSet:
        return _set("lexical", ["b", "d"], [10.0, 5.0])

    def test_min_max_equal_weights(self, vector_set: CandidateSet, lexical_set: CandidateSet) -> None:
        """Without explicit weights every source gets an equal share."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse(
            [vector_set, lexical_set],
            FusionOptions(mode=FusionMode.WEIGHTED),
        )
        scores = {r.doc_id: r.fused_score for r in results}

        assert scores["a"] == pytest.approx(0.5)
        assert scores["b"] == pytest.approx(0.75)
        assert scores["c"] == pytest.approx(0.0)
        assert scores["d"] == pytest.approx(0.0)
        assert [r.doc_id for r in results] == ["b", "a", "c", "d"]

    def test_weights_are_normalised(self, vector_set: CandidateSet, lexical_set: CandidateSet) -> None:
        """Weights with any positive sum are scaled to sum to 1."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse(
            [vector_set, lexical_set],
            FusionOptions(mode=FusionMode.WEIGHTED, weights={"vector": 3.0, "lexical": 1.0}),
        )
        scores = {r.doc_id: r.fused_score for r in results}

        assert scores["a"] == pytest.approx(0.75)
        assert scores["b"] == pytest.approx(0.75 * 0.5 + 0.25)

    def test_fixed_scale_normalisation(self, vector_set: CandidateSet, lexical_set: CandidateSet) -> None:
        """Fixed scales map declared bounds onto [0, 1]."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse(
            [vector_set, lexical_set],
            FusionOptions(
                mode=FusionMode.WEIGHTED,
                normalization=NormalizationStrategy.FIXED,
                fixed_scales={"vector": (0.0, 1.0), "lexical": (0.0, 20.0)},
            ),
        )
        scores = {r.doc_id: r.fused_score for r in results}

        assert scores["a"] == pytest.approx(0.45)
        assert scores["b"] == pytest.approx(0.6)
        assert scores["c"] == pytest.approx(0.25)
        assert scores["d"] == pytest.approx(0.125)
        assert [r.doc_id for r in results] == ["b", "a", "c", "d"]

    def test_zero_weight_source_needs_no_scale(
        self, vector_set: CandidateSet, lexical_set: CandidateSet
    ) -> None:
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse(
            [vector_set, lexical_set],
            FusionOptions(
                mode=FusionMode.WEIGHTED,
                weights={"vector": 1.0, "lexical": 0.0},
                normalization=NormalizationStrategy.FIXED,
                fixed_scales={"vector": (0.0, 1.0)},
            ),
        )
        scores = {r.doc_id: r.fused_score for r in results}

        assert scores == pytest.approx({"a": 0.9, "b": 0.7, "c": 0.5, "d": 0.0})
        assert results[3].contributions["lexical"].contribution == 0.0

    def test_equal_share_fallback_min_max_for_unscaled(
        self, vector_set: CandidateSet, lexical_set: CandidateSet
    ) -> None:
        """Only unrequested sources survived: equal shares, unscaled ones via min-max."""
        from src.search.ranker import RankFusionEngine

        results = RankFusionEngine().fuse(
            [vector_set, lexical_set],
            FusionOptions(
                mode=FusionMode.WEIGHTED,
                weights={"graph": 1.0},
                normalization=NormalizationStrategy.FIXED,
                fixed_scales={"vector": (0.0, 1.0), "graph": (0.0, 1.0)},
            ),
        )
        scores = {r.doc_id: r.fused_score for r in results}

        assert scores["b"] == pytest.approx(0.35 + 0.5)
        assert scores["a"] == pytest.approx(0.45)
        assert scores["d"] == pytest.approx(0.0)
        assert [r.doc_id for r in results] == ["b", "a", "c", "d"]

    def test_fixed_scale_clamps_out_of_range(self) -> None:
        from src.search.ranker import RankFusionEngine

        normalized = RankFusionEngine().fixed_scale_normalize({"x": 30.0, "y": -5.0}, 0.0, 20.0)

        assert normalized == {"x": 1.0, "y": 0.0}

    def test_min_max_all_equal_scores(self) -> None:
        from src.search.ranker import RankFusionEngine

        assert RankFusionEngine().min_max_normalize({"x": 2.0, "y": 2.0}) == {"x": 1.0, "y": 1.0}

    def test_unbounded_distance_uses_relevance(self) -> None:
        """Euclidean distances are inverted before normalisation."""
        from src.search.ranker import RankFusionEngine

        euclid = _set("vector", ["near", "far"], [0.5, 40.0], kind=ScoreKind.EUCLIDEAN_DISTANCE)

        results = RankFusionEngine().fuse([euclid], FusionOptions(mode=FusionMode.WEIGHTED))

        assert [r.doc_id for r in results] == ["near", "far"]
        assert results[0].contributions["vector"].score == 0.5


# =============================================================================
# Test: Validation
# =============================================================================


class TestFusionValidation:
    """Tests for rejected fusion options."""

    @pytest.mark.parametrize("rrf_k", [0, -1])
    def test_non_positive_k_rejected(self, source_a: CandidateSet, rrf_k: int) -> None:
        from src.search.ranker import RankFusionEngine

        with pytest.raises(InvalidConfigurationError, match="rrf_k"):
            RankFusionEngine().fuse([source_a], FusionOptions(rrf_k=rrf_k))

    def test_zero_weight_sum_rejected(self, source_a: CandidateSet) -> None:
        from src.search.ranker import RankFusionEngine

        with pytest.raises(InvalidConfigurationError, match="positive"):
            RankFusionEngine().fuse(
                [source_a],
                FusionOptions(mode=FusionMode.WEIGHTED, weights={"a": 0.0}),
            )

    def test_negative_weight_rejected(self, source_a: CandidateSet) -> None:
        from src.search.ranker import RankFusionEngine

        with pytest.raises(InvalidConfigurationError, match="non-negative"):
            RankFusionEngine().fuse(
                [source_a],
                FusionOptions(mode=FusionMode.WEIGHTED, weights={"a": 2.0, "b": -1.0}),
            )

    def test_fixed_without_scale_for_source_rejected(self, source_a: CandidateSet) -> None:
        from src.search.ranker import RankFusionEngine

        with pytest.raises(InvalidConfigurationError, match="no scale"):
            RankFusionEngine().fuse(
                [source_a],
                FusionOptions(
                    mode=FusionMode.WEIGHTED,
                    normalization=NormalizationStrategy.FIXED,
                    fixed_scales={"other": (0.0, 1.0)},
                ),
            )
