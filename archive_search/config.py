from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    chunks_table: str = "chunks"
    recordings_table: str = "testimonies"

    # Embeddings
    embedding_provider: str = "http"  # "http" (nlp-processor) or "openai"
    embedding_service_url: str = "http://nlp-processor:7070"
    embedding_timeout_seconds: float = 30.0
    openai_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # Backend limits: offset + limit may never exceed the result ceiling
    backend_result_ceiling: int = 10_000
    rebuild_page_size: int = 100
    recording_count_page_size: int = 1000
    entity_search_limit: int = 100

    # Local files
    entity_counts_path: str = "json/entity-recording-counts.json"
    collections_metadata_dir: str = "json/interviews"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
