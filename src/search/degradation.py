"""
Degradation controller.

Classifies the outcome of every invoked retrieval path and decides what
fusion may proceed with:

- ALL_SOURCES_OK: every path succeeded with results
- PARTIAL_FAILURE: at least one path failed or came back empty while another
  produced results; fuse the survivors and mark the response degraded
- ALL_FAILED: nothing usable; the request fails with AllSourcesFailedError

Lexical search can legitimately return nothing while vector search nearly
always returns neighbours, so requiring both would starve results.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from src.search.exceptions import AllSourcesFailedError
from src.search.types import CandidateSet, SourceOutcome

logger = logging.getLogger(__name__)

_EMPTY_REASON = "empty"


class DegradationState(str, Enum):
    ALL_SOURCES_OK = "all_sources_ok"
    PARTIAL_FAILURE = "partial_failure"
    ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class DegradationDecision:
    """Classification of one query's retrieval outcomes.

    Attributes:
        state: Overall state
        surviving: Candidate sets that may be fused
        omitted: Source name to reason ("empty" or "error: ...")
    """

    state: DegradationState
    surviving: tuple[CandidateSet, ...] = ()
    omitted: dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.state is DegradationState.PARTIAL_FAILURE


class DegradationController:
    """Decides fallback behaviour when a retrieval path fails or is empty."""

    def classify(self, outcomes: Sequence[SourceOutcome]) -> DegradationDecision:
        """Classify outcomes by (succeeded, non-empty) per source.

        Args:
            outcomes: One outcome per invoked source

        Returns:
            DegradationDecision describing what fusion may use
        """
        surviving: list[CandidateSet] = []
        omitted: dict[str, str] = {}

        for outcome in outcomes:
            if outcome.has_results:
                surviving.append(outcome.candidate_set)  # type: ignore[arg-type]
            elif outcome.succeeded:
                omitted[outcome.source] = _EMPTY_REASON
            else:
                omitted[outcome.source] = f"error: {outcome.error}"

        if not surviving:
            state = DegradationState.ALL_FAILED
        elif omitted:
            state = DegradationState.PARTIAL_FAILURE
        else:
            state = DegradationState.ALL_SOURCES_OK

        if state is DegradationState.PARTIAL_FAILURE:
            logger.warning(
                "Degraded search: fusing %s, omitted %s",
                sorted(s.source for s in surviving),
                omitted,
            )
        elif state is DegradationState.ALL_FAILED:
            logger.error("All retrieval sources failed: %s", omitted)

        return DegradationDecision(
            state=state,
            surviving=tuple(surviving),
            omitted=omitted,
        )

    def require_usable(self, decision: DegradationDecision) -> DegradationDecision:
        """Return the decision, or raise if no source produced data.

        Raises:
            AllSourcesFailedError: When the state is ALL_FAILED
        """
        if decision.state is DegradationState.ALL_FAILED:
            raise AllSourcesFailedError(decision.omitted)
        return decision
