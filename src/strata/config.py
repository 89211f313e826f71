from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from strata.masking import DEFAULT_MASKED_MESSAGE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRATA_", env_file=".env", extra="ignore")

    app_name: str = "strata"
    env: str = "dev"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Error masking
    mask_errors: bool = True
    masked_error_message: str = DEFAULT_MASKED_MESSAGE
    # Adds the original error message to extensions; never enable in production
    expose_error_details: bool = False

    # Document limits (None disables the limit)
    max_tokens: int | None = Field(default=None, ge=1)
    max_depth: int | None = Field(default=None, ge=1)
    disable_introspection: bool = False

    # Observability plugins
    enable_metrics: bool = False
    enable_tracing: bool = False
    trace_resolvers: bool = False

    # Plugin list file (YAML or JSON); overrides the settings-derived list
    plugins_config: str | None = None


settings = Settings()
