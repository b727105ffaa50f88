"""
FastAPI application factory for hybrid search service.

Creates and configures the FastAPI application with routes and dependencies.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import (
    FakeEmbeddingService,
    ServiceConfig,
    ServiceContainer,
    build_in_memory_services,
)
from src.search.exceptions import SourceUnavailableError

logger = logging.getLogger(__name__)


def create_app(
    config: ServiceConfig | None = None,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Optional service configuration
        services: Optional pre-configured service container

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = app.state.services.vector_client
        connect = getattr(client, "connect", None)
        if connect is not None:
            try:
                await connect()
            except SourceUnavailableError as e:
                # Searches degrade to the lexical path until the backend returns
                logger.warning("Vector backend unavailable at startup: %s", e)
        yield
        close = getattr(client, "close", None)
        if close is not None:
            await close()
        engine = app.state.services.engine
        if engine is not None:
            engine.close()

    app = FastAPI(
        title="Hybrid Search Service",
        description="Hybrid vector + lexical search with rank fusion",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up service container
    if services is None:
        # Create default in-memory services for testing
        services = build_in_memory_services(
            embedding_service=FakeEmbeddingService(),
            config=config or ServiceConfig(),
        )

    # Store services in app state for dependency injection
    app.state.services = services

    # Import routes here to avoid circular imports
    from src.api.routes import get_services, router

    # Override the dependency to return our services
    def _get_services() -> ServiceContainer:
        return app.state.services

    app.dependency_overrides[get_services] = _get_services

    # Include routes
    app.include_router(router)

    return app


def configure_app_services(app: FastAPI, services: ServiceContainer) -> None:
    """
    Configure services for an existing app.

    This allows reconfiguring services after app creation,
    useful for testing.

    Args:
        app: FastAPI application instance
        services: Service container to use
    """
    from src.api.routes import get_services

    app.state.services = services

    def _get_services() -> ServiceContainer:
        return app.state.services

    app.dependency_overrides[get_services] = _get_services
