"""
Custom exceptions for the search module.

Exception naming avoids shadowing Python builtins (TimeoutError,
ConnectionError): RerankTimeoutError, SourceUnavailableError.

Recovery map:
- SourceUnavailableError: recovered by degradation, surfaced as degraded=True
- AllSourcesFailedError: fatal for the request
- RerankTimeoutError / RerankUnavailableError: recovered, surfaced as reranked=False
- InvalidConfigurationError: fatal, raised before any retrieval call
"""

from __future__ import annotations


class SearchError(Exception):
    """Base exception for all search engine errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize with message and optional cause.

        Args:
            message: Human-readable error description
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.cause = cause


class InvalidConfigurationError(SearchError):
    """Raised when a query or its options are invalid."""

    pass


class SourceUnavailableError(SearchError):
    """Raised by a retrieval path that could not search.

    Distinct from an empty result: an empty candidate set means
    "no matches", this means "path broken".
    """

    def __init__(
        self,
        source: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.source = source


class AllSourcesFailedError(SearchError):
    """Raised when no retrieval path produced candidates."""

    def __init__(self, failures: dict[str, str]) -> None:
        """Initialize with the per-source failure reasons.

        Args:
            failures: Mapping of source name to omission reason
        """
        detail = ", ".join(f"{source}={reason}" for source, reason in sorted(failures.items()))
        super().__init__(f"All retrieval sources failed: {detail}")
        self.failures = dict(failures)


class RerankError(SearchError):
    """Base exception for re-ranking failures."""

    pass


class RerankTimeoutError(RerankError):
    """Raised when the re-ranking scorer exceeds its timeout."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Re-ranking exceeded {timeout_ms}ms timeout")
        self.timeout_ms = timeout_ms


class RerankUnavailableError(RerankError):
    """Raised when the re-ranking scorer errors or returns unusable output."""

    pass
