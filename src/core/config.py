"""
Configuration module for hybrid-search-service.

Uses pydantic-settings for environment-based configuration. Values here are
process-wide defaults and ceilings; they are read at query start and never
mutated by the query path. Per-query tuning travels in SearchRequest.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Feature flags:
    - enable_rerank: Allow the second-stage re-ranking pass
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===========================================
    # SERVICE CONFIGURATION
    # ===========================================
    service_port: int = Field(default=8081, description="Service port")

    # ===========================================
    # QDRANT CONFIGURATION
    # ===========================================
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant REST API URL, or \":memory:\" for a local store",
    )
    qdrant_collection: str = Field(
        default="documents",
        description="Collection holding document vectors and payloads",
    )
    qdrant_api_key: str | None = Field(default=None, description="Qdrant API key")

    # ===========================================
    # ANN INDEX TUNING
    # ===========================================
    hnsw_m: int = Field(default=16, gt=0, description="HNSW graph degree (build time)")
    hnsw_ef_construct: int = Field(
        default=100,
        gt=0,
        description="HNSW candidate list size during build",
    )
    default_ef_search: int | None = Field(
        default=None,
        gt=0,
        description="Default search-time recall knob when a query sets none",
    )

    # ===========================================
    # FUSION / RETRIEVAL
    # ===========================================
    default_rrf_k: int = Field(default=60, gt=0, description="RRF smoothing constant")
    candidate_multiplier: int = Field(
        default=2,
        ge=1,
        description="Per-source fetch size as a multiple of the requested limit",
    )
    max_candidates_per_source: int = Field(
        default=200,
        gt=0,
        description="Hard cap on candidates fetched from one source",
    )

    # ===========================================
    # LEXICAL SCORING
    # ===========================================
    lexical_scorer: str = Field(
        default="bm25",
        pattern="^(bm25|fulltext)$",
        description="Lexical scorer implementation: bm25 or fulltext",
    )
    bm25_k1: float = Field(default=1.5, gt=0, description="BM25 term saturation")
    bm25_b: float = Field(default=0.75, ge=0, le=1, description="BM25 length normalisation")

    # ===========================================
    # RE-RANKING
    # ===========================================
    enable_rerank: bool = Field(default=True, description="Allow re-ranking stage")
    reranker_model: str = Field(
        default="cross-encoder/ms-marco-MiniLM-L-6-v2",
        description="Cross-encoder model for re-ranking",
    )
    rerank_max_candidates: int = Field(
        default=100,
        gt=0,
        description="Ceiling on top_m a caller may request",
    )
    rerank_default_timeout_ms: int = Field(
        default=2000,
        gt=0,
        description="Re-ranking timeout when a query sets none",
    )

    # ===========================================
    # DISPLAY
    # ===========================================
    snippet_max_chars: int = Field(
        default=200,
        gt=0,
        description="Maximum length of a highlighted snippet",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
