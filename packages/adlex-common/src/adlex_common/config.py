"""
Environment-based configuration management for AdLex.

Settings come from ``ADLEX_``-prefixed environment variables or a
local ``.env`` file via pydantic-settings. The check and embedding
services share one cached instance; components that take an explicit
argument (e.g. ``max_concurrent``) only fall back to it when the
argument is omitted.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from ``ADLEX_``-prefixed environment variables.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        queue_max_concurrent: Worker slots for the check queue.
        similarity_threshold: Minimum cosine similarity for a dictionary hit.
        embedding_api_url: Base URL of the OpenAI-compatible embedding API.
        embedding_api_key: Bearer token for the embedding API.
        embedding_model: Embedding model identifier.
        embedding_timeout_s: Per-request timeout for embedding calls.
        embedding_max_concurrent: Parallel embedding calls per job.
        embedding_max_retries: Retries per phrase on retryable errors.
        embedding_job_retention_s: How long finished jobs stay queryable.
        storage_url: Base URL of the hosted data API.
        storage_api_key: Service key for the hosted data API.
        api_host: Bind address for the HTTP surfaces.
        api_port: Bind port for the HTTP surfaces.
    """

    model_config = SettingsConfigDict(
        env_prefix="ADLEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──
    log_level: str = Field(default="INFO", description="Logging level.")

    # ── Check queue ──
    queue_max_concurrent: int = Field(
        default=3,
        ge=1,
        description="Maximum number of checks processed concurrently.",
    )

    # ── Detection ──
    similarity_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity for a dictionary match.",
    )

    # ── Embeddings ──
    embedding_api_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible embedding API.",
    )
    embedding_api_key: str = Field(default="", description="Embedding API key.")
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model identifier.",
    )
    embedding_timeout_s: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request timeout for embedding calls.",
    )
    embedding_max_concurrent: int = Field(
        default=3,
        ge=1,
        description="Parallel embedding calls per job.",
    )
    embedding_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries per phrase on retryable errors.",
    )
    embedding_job_retention_s: float = Field(
        default=24 * 60 * 60,
        gt=0.0,
        description="Seconds a finished embedding job stays queryable.",
    )

    # ── Storage ──
    storage_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the hosted data API.",
    )
    storage_api_key: str = Field(default="", description="Data API service key.")

    # ── API ──
    api_host: str = Field(default="0.0.0.0", description="HTTP bind address.")
    api_port: int = Field(default=8000, ge=1, le=65535, description="HTTP bind port.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Returns:
        The global ``Settings`` instance.
    """
    return Settings()
