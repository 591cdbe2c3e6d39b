"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Default model per provider when neither the config store nor ANALYSIS_MODEL
# names one.
DEFAULT_PROVIDER_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "azure_openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "CVStream"
    ENVIRONMENT: str = "development"  # development | production | test

    # Security
    # Tokens are issued by the external auth service; we only verify them.
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM provider configuration
    LLM_PROVIDER: Literal["openai", "azure_openai", "gemini"] = "openai"
    OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = "2024-10-21"
    GEMINI_API_KEY: str | None = None

    # Sampling defaults, used when the model config table has no active row
    ANALYSIS_MODEL: str | None = None
    ANALYSIS_TEMPERATURE: float = 0.1
    ANALYSIS_MAX_TOKENS: int = 4000
    ANALYSIS_TOP_P: float = 1.0
    ANALYSIS_STREAMING: bool = True
    MODEL_CONFIG_TTL_SECONDS: int = 300

    # Streaming engine
    CHECKPOINT_INTERVAL_SECONDS: float = 2.0
    PROGRESS_STEP: int = 5
    PROGRESS_CAP: int = 95
    MAX_DOCUMENT_BYTES: int = 10 * 1024 * 1024

    # Checkpoint retention
    RECOVERY_WINDOW_HOURS: int = 24
    CHECKPOINT_RETENTION_HOURS: int = 24
    CHECKPOINT_CLEANUP_INTERVAL_MINUTES: int = 60
    ENABLE_SCHEDULER: bool = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @field_validator("PROGRESS_CAP")
    @classmethod
    def _progress_cap_below_complete(cls, v: int) -> int:
        """Partial progress must stay strictly below the completion value."""
        if not 0 < v < 100:
            raise ValueError("PROGRESS_CAP must be between 1 and 99")
        return v

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    @property
    def default_analysis_model(self) -> str:
        return self.ANALYSIS_MODEL or DEFAULT_PROVIDER_MODELS[self.LLM_PROVIDER]


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""
    if env_file and not os.path.exists(env_file):  # pragma: no cover
        # Only provide a dev fallback in non-production environments
        if env == "development":
            os.environ.setdefault("SECRET_KEY", "dev-test-secret")
    # If we're in production, ensure SECRET_KEY is set and not the dev default
    if env == "production":
        sec = os.getenv("SECRET_KEY")
        if not sec or sec == "dev-test-secret":
            raise RuntimeError("SECRET_KEY must be set to a secure value in production")

    # `_env_file` is a runtime-only pydantic-settings kwarg.
    return Settings(_env_file=env_file)  # type: ignore[call-arg]
