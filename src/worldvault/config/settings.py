"""Configuration settings using Pydantic Settings.

Provides typed configuration with environment variable support. Settings are
read at the edge (factories, entry points); services receive explicit values.

Usage:
    from worldvault.config import WorldVaultSettings, LLMSettings

    # Load from environment variables (WORLDVAULT_*, LLM_*)
    settings = WorldVaultSettings()
    llm_settings = LLMSettings()

    # Or override with explicit values
    settings = WorldVaultSettings(environment=Environment.SHARED_TEST)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from worldvault.core.types import Environment

DEFAULT_TOKEN_TTL_SECONDS = 4 * 60 * 60


class WorldVaultSettings(BaseSettings):
    """Deployment configuration for storage, world resolution and seeds.

    Attributes:
        environment: Deployment tier passed to the world resolver.
        database_url: SQLAlchemy URL for ``SqlStorage``.
        seeds_directory: Root directory holding exported snapshots.
        blob_root: Filesystem root for ``LocalBlobStore``.
        blob_base_url: Public URL prefix for stored blobs.
        token_secret: HMAC key for world-context tokens.
        token_ttl_seconds: Lifetime of issued world-context tokens.
        default_page_size: Page size for listings when callers give none.

    Environment Variables:
        WORLDVAULT_ENVIRONMENT
        WORLDVAULT_DATABASE_URL
        WORLDVAULT_SEEDS_DIRECTORY
        WORLDVAULT_BLOB_ROOT
        WORLDVAULT_BLOB_BASE_URL
        WORLDVAULT_TOKEN_SECRET
        WORLDVAULT_TOKEN_TTL_SECONDS
        WORLDVAULT_DEFAULT_PAGE_SIZE
    """

    model_config = SettingsConfigDict(
        env_prefix="WORLDVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Environment = Environment.LOCAL_DEV
    database_url: str = "sqlite:///worldvault.db"
    seeds_directory: Path = Path("seeds")
    blob_root: Path = Path("blobs")
    blob_base_url: str = "blob://"
    token_secret: SecretStr = SecretStr("dev-only-world-token-secret")
    token_ttl_seconds: int = Field(default=DEFAULT_TOKEN_TTL_SECONDS, gt=0)
    default_page_size: int = Field(default=10, gt=0, le=100)


class LLMSettings(BaseSettings):
    """Configuration for the summarizer LLM adapter.

    Attributes:
        model: Model name/identifier.
        temperature: Sampling temperature (0.0-2.0).
        max_tokens: Maximum tokens in response.
        api_key: API key (prefer environment variable).
        base_url: Custom API base URL (for proxies/local models).
        timeout: Request timeout in seconds.
        max_retries: Number of retries on failure.

    Environment Variables:
        LLM_MODEL
        LLM_TEMPERATURE
        LLM_MAX_TOKENS
        LLM_API_KEY
        LLM_BASE_URL
        LLM_TIMEOUT
        LLM_MAX_RETRIES
    """

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int | None = 120
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 60.0
    max_retries: int = 3
