"""
Router configuration.

Read once at startup from environment variables (and ``.env`` if present).
Variable names match the deployment's existing ones.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RouterSettings(BaseSettings):
    """Settings for the query router and its classifier backends."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- Switches --
    ENABLE_QUERY_ROUTER: bool = Field(
        default=True,
        description="When False every query gets the large model with all tools.",
    )
    USE_LOCAL_SLM_ROUTER: bool = Field(
        default=True,
        description="Try the self-hosted small model before the remote API.",
    )

    # -- Models --
    SMALL_MODEL_ID: str = "gpt-4o-mini"
    AZURE_OPENAI_DEPLOYMENT_NAME: str = Field(
        default="gpt-4o",
        description="Large model used for anything that is not a confident simple query.",
    )

    # -- Remote classifier backend --
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str = "2025-01-01-preview"

    # -- Local classifier backend --
    LOCAL_SLM_ENDPOINT: str = "http://localhost:8080/v1/chat/completions"
    LOCAL_SLM_API_KEY: str | None = None
    LOCAL_SLM_MODEL: str = "granite-3.1-3b"
    LOCAL_SLM_HEALTH_INTERVAL_S: float = Field(default=60.0, gt=0)
    LOCAL_SLM_TIMEOUT_S: float = Field(
        default=3.0,
        gt=0,
        description="Per-attempt bound for the local backend; must leave room for the remote one.",
    )

    # -- Classification --
    CLASSIFICATION_CACHE_TTL_S: float = Field(default=60.0, gt=0)
    CACHE_KEY_PREFIX_LENGTH: int = Field(default=100, gt=0)
    CLASSIFICATION_CACHE_MAX_ENTRIES: int = Field(default=1000, gt=0)
    CLASSIFICATION_TIMEOUT_S: float = Field(
        default=8.0,
        gt=0,
        description="Upper bound for the whole model-backed classification, all tiers included.",
    )
    CLASSIFIER_MAX_TOKENS: int = 150

    @model_validator(mode="after")
    def _local_timeout_within_budget(self) -> "RouterSettings":
        if self.USE_LOCAL_SLM_ROUTER and self.LOCAL_SLM_TIMEOUT_S >= self.CLASSIFICATION_TIMEOUT_S:
            raise ValueError(
                f"LOCAL_SLM_TIMEOUT_S ({self.LOCAL_SLM_TIMEOUT_S}) must be below "
                f"CLASSIFICATION_TIMEOUT_S ({self.CLASSIFICATION_TIMEOUT_S})"
            )
        return self

    @property
    def remote_configured(self) -> bool:
        return bool(self.AZURE_OPENAI_API_KEY and self.AZURE_OPENAI_ENDPOINT)
