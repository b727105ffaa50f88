"""
API routes for hybrid search service.

Provides the hybrid search endpoint and the health check.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import ServiceContainer
from src.api.models import ErrorResponse, HealthResponse, SearchApiRequest, SearchApiResponse
from src.search.exceptions import AllSourcesFailedError, InvalidConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services() -> ServiceContainer:
    """Get service container - injected at runtime."""
    # This is overridden by dependency injection in create_app
    msg = "Services not configured"
    raise RuntimeError(msg)


@router.post(
    "/v1/search",
    response_model=SearchApiResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid search configuration"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
        503: {"model": ErrorResponse, "description": "No retrieval path produced candidates"},
    },
    tags=["search"],
    summary="Perform hybrid vector + lexical search",
)
async def hybrid_search(
    request: SearchApiRequest,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> SearchApiResponse:
    """
    Execute a hybrid search over the vector and lexical retrieval paths.

    Candidate lists are fused by Reciprocal Rank Fusion:
    `score(d) = Σ 1 / (k + rank_s(d))`
    or, with `fusion.mode = "weighted"`, by a weighted sum of normalised scores.
    A retrieval path that fails or returns nothing is omitted and the
    response is marked `degraded`.

    Args:
        request: Query, embedding and per-query options
        services: Injected service container

    Returns:
        SearchApiResponse with ranked results and metadata
    """
    if not services.config.enable_search or services.engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "search_disabled", "message": "Search is currently disabled"},
        )

    if request.limit > services.config.max_limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_configuration",
                "message": f"limit must be <= {services.config.max_limit}",
            },
        )

    settings = services.settings

    try:
        # Get embedding for query if not provided
        embedding = request.embedding
        if embedding is None and request.query and services.embedding_service is not None:
            embedding = await services.embedding_service.embed(request.query)

        search_request = request.to_search_request(
            embedding=embedding,
            default_rrf_k=settings.default_rrf_k,
            default_timeout_ms=settings.rerank_default_timeout_ms,
            default_ef_search=settings.default_ef_search,
        )
        response = await services.engine.search(search_request)

    except InvalidConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_configuration", "message": str(e)},
        ) from e

    except AllSourcesFailedError as e:
        logger.error("Search failed on every retrieval path: %s", e.failures)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "all_sources_failed",
                "message": str(e),
                "detail": e.failures,
            },
        ) from e

    except Exception as e:
        logger.exception("Hybrid search failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "search_failed", "message": str(e)},
        ) from e

    return SearchApiResponse.from_response(response)


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check endpoint",
)
async def health_check(
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> HealthResponse:
    """
    Check the health of the search stack.

    Returns the status of:
    - Vector search backend
    - Embedding service
    - Re-ranker

    Args:
        services: Injected service container

    Returns:
        HealthResponse with service statuses
    """
    service_statuses: dict[str, str] = {}

    # Check vector service
    try:
        if services.vector_client is not None:
            is_healthy = await services.vector_client.health_check()
            service_statuses["vector"] = "healthy" if is_healthy else "unhealthy"
        else:
            service_statuses["vector"] = "not_configured"
    except Exception:
        service_statuses["vector"] = "unhealthy"

    service_statuses["embedder"] = "loaded" if services.embedding_service else "not_configured"

    if services.engine is not None and services.engine.rerank_available:
        service_statuses["reranker"] = "loaded"
    else:
        service_statuses["reranker"] = "not_configured"

    # Determine overall status
    all_healthy = all(s in ("healthy", "loaded", "not_configured") for s in service_statuses.values())
    overall_status = "healthy" if all_healthy else "degraded"

    return HealthResponse(
        status=overall_status,
        sources=services.engine.sources if services.engine is not None else [],
        services=service_statuses,
        version=services.config.version,
    )
