"""
QueryMesh Configuration

Settings come from the environment (and an optional ``.env`` file), grouped
into one pydantic-settings model per concern:

    LLM_*        providers, models, sampling          -> LLMSettings
    DATABASE_*   workspace database execution         -> DatabaseSettings
    LOG_*        log level, format, optional file     -> LoggingSettings
    PIPELINE_*   thresholds, budgets, credit size     -> PipelineSettings

Usage:
    from querymesh.config import get_settings

    settings = get_settings()
    settings.pipeline.tokens_per_credit     # 1000
    settings.database.row_limit             # 100
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "anthropic"]

_KEY_PREFIXES = {"openai_api_key": "sk-", "anthropic_api_key": "sk-ant-"}
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "asyncio")


def _env(prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(env_prefix=prefix, env_file=".env", extra="ignore")


class LLMSettings(BaseSettings):
    """Providers and models used by the pipeline stages."""

    default_provider: ProviderName = "openai"
    sql_provider: ProviderName | None = Field(
        None, description="Provider for SQL generation; default_provider when unset"
    )
    gate_model: Literal["main", "mini"] = Field(
        default="mini",
        description="Model tier for the safety, greeting and validation gates",
    )

    openai_api_key: str | None = Field(None, min_length=20)
    openai_model: str = "gpt-4o"
    openai_model_mini: str = "gpt-4o-mini"
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model used for source discovery",
    )

    anthropic_api_key: str | None = Field(None, min_length=20)
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    anthropic_model_mini: str = "claude-3-5-haiku-20241022"

    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, gt=0, le=16000)
    timeout: int = Field(default=30, gt=0, description="SDK request timeout in seconds")

    model_config = _env("LLM_")

    @field_validator("openai_api_key", "anthropic_api_key")
    @classmethod
    def check_key_prefix(cls, v: str | None, info: ValidationInfo) -> str | None:
        prefix = _KEY_PREFIXES[info.field_name]
        if v and not v.startswith(prefix):
            vendor = "OpenAI" if info.field_name == "openai_api_key" else "Anthropic"
            raise ValueError(f"{vendor} API key must start with '{prefix}'")
        return v

    @model_validator(mode="after")
    def require_keys_for_selected_providers(self) -> "LLMSettings":
        for provider in {self.default_provider, self.sql_provider} - {None}:
            if not getattr(self, f"{provider}_api_key"):
                raise ValueError(
                    f"API key required for {provider} provider. "
                    f"Set LLM_{provider.upper()}_API_KEY"
                )
        return self


class DatabaseSettings(BaseSettings):
    """Execution limits for generated SQL against workspace databases."""

    connect_timeout_seconds: int = Field(default=10, gt=0, le=120)
    statement_timeout_seconds: int = Field(default=30, gt=0, le=600)
    read_only: bool = Field(
        default=True,
        description="Run generated SQL inside a read-only transaction",
    )
    row_limit: int = Field(
        default=100,
        gt=0,
        le=10000,
        description="LIMIT appended to generated SQL that has none",
    )

    model_config = _env("DATABASE_")


class LoggingSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file: Path | None = Field(default=None, description="Also write logs here when set")
    library_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Level for HTTP and SDK loggers",
    )

    model_config = _env("LOG_")

    def configure(self) -> None:
        """Install root handlers and quiet the HTTP/SDK loggers."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]
        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=self.level,
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(self.library_level)


class PipelineSettings(BaseSettings):
    """Thresholds, budgets and accounting for one pipeline run."""

    tokens_per_credit: int = Field(
        default=1000,
        gt=0,
        description="Token block size billed as one credit.",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Upper bound for a single LLM or embedding call made by a stage.",
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0.0,
        le=900.0,
        description="Upper bound for the execution fan-out of one request.",
    )
    http_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Timeout for external API sources.",
    )
    stage_max_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Retries for stages raising recoverable errors.",
    )
    discovery_min_relevance: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Combined relevance a source must exceed to survive filtering.",
    )
    discovery_max_sources: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum sources passed from discovery to ranking.",
    )
    greeting_llm_max_chars: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Messages shorter than this get an LLM greeting check when no pattern matches.",
    )
    plan_cache_size: int = Field(
        default=256,
        ge=1,
        le=100000,
        description="Entries kept by the default in-process plan cache.",
    )
    plan_cache_ttl_seconds: int = Field(
        default=600,
        ge=0,
        le=86400,
        description="Plan cache TTL in seconds. Set to 0 for no expiry.",
    )
    chart_max_points: int = Field(
        default=200,
        ge=2,
        le=10000,
        description="Maximum data points embedded in a chart specification.",
    )
    max_follow_up_questions: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Cap on follow-up questions returned to the caller.",
    )

    model_config = _env("PIPELINE_")


class Settings(BaseSettings):
    """
    Top-level settings. Building one configures logging.

    Besides the nested groups, reads ENVIRONMENT, APP_NAME and
    QUERYMESH_CREDENTIALS_KEY (the Fernet key for stored source connections).
    """

    environment: Literal["development", "staging", "production"] = "development"
    app_name: str = "QueryMesh"
    credentials_key: str | None = Field(
        default=None,
        description="Fernet key used to decrypt stored source connection configs.",
        validation_alias="QUERYMESH_CREDENTIALS_KEY",
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def model_post_init(self, __context) -> None:
        self.logging.configure()
        logging.getLogger(__name__).info(
            f"{self.app_name} settings loaded ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_provider": self.llm.default_provider,
                "gate_model": self.llm.gate_model,
                "tokens_per_credit": self.pipeline.tokens_per_credit,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _load_project_dotenv() -> None:
    """Let the project .env override the process environment unless told not to."""
    if os.getenv("QUERYMESH_ENV_SOURCE", "dotenv").lower() not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    _load_project_dotenv()
    return Settings()


def clear_settings_cache() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
