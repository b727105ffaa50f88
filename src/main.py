"""
Main entry point for hybrid-search-service.

Creates the FastAPI application instance for uvicorn, backed by Qdrant for
both the vector path and the lexical corpus.
"""

from src.api.app import create_app
from src.api.dependencies import ServiceContainer, build_engine
from src.core.config import get_settings
from src.core.logging import setup_structured_logging
from src.retrievers.qdrant_client import QdrantVectorClient
from src.search.rerank import CrossEncoderReranker

setup_structured_logging()

settings = get_settings()
qdrant = QdrantVectorClient(settings)

services = ServiceContainer(
    settings=settings,
    engine=build_engine(
        settings,
        vector_client=qdrant,
        corpus=qdrant,
        document_store=qdrant,
        reranker=CrossEncoderReranker(settings.reranker_model) if settings.enable_rerank else None,
    ),
    vector_client=qdrant,
)

# Create application instance
app = create_app(services=services)
