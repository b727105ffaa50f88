"""
API module for hybrid search service.

Provides FastAPI routes for hybrid search and health checks.
"""

from src.api.app import create_app
from src.api.models import (
    HealthResponse,
    SearchApiRequest,
    SearchApiResponse,
    SearchResultItem,
)
from src.api.routes import router

__all__ = [
    "create_app",
    "router",
    "HealthResponse",
    "SearchApiRequest",
    "SearchApiResponse",
    "SearchResultItem",
]
