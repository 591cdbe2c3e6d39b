"""Where provider and sampling parameters come from.

The active row of `analysis_model_configs` wins; when the table is empty or
unreachable the settings defaults apply. Lookups are cached for
`MODEL_CONFIG_TTL_SECONDS` so streams do not hit the database per request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, get_settings
from crud.model_configs import get_active_model_config


logger = logging.getLogger(__name__)

ProviderName = Literal["openai", "azure_openai", "gemini"]


class ModelConfig(BaseModel):
    """Provider selection plus sampling parameters. Compared by value."""

    provider: ProviderName
    model_name: str = Field(..., min_length=1)
    temperature: float = Field(0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(4000, gt=0)
    top_p: float = Field(1.0, gt=0.0, le=1.0)
    streaming: bool = True

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelConfig:
        return cls(
            provider=settings.LLM_PROVIDER,
            model_name=settings.default_analysis_model,
            temperature=settings.ANALYSIS_TEMPERATURE,
            max_tokens=settings.ANALYSIS_MAX_TOKENS,
            top_p=settings.ANALYSIS_TOP_P,
            streaming=settings.ANALYSIS_STREAMING,
        )


class ModelConfigSource:
    """Resolve the current `ModelConfig` with a time-based cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._clock = clock
        self._cached: ModelConfig | None = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._cached is not None
            and self._clock() - self._loaded_at < self._settings.MODEL_CONFIG_TTL_SECONDS
        )

    async def resolve(self) -> ModelConfig:
        if self._is_fresh():
            return self._cached  # type: ignore[return-value]
        async with self._lock:
            if not self._is_fresh():
                self._cached = await self._load()
                self._loaded_at = self._clock()
        return self._cached  # type: ignore[return-value]

    def invalidate(self) -> None:
        """Force the next `resolve()` to reload."""
        self._cached = None

    async def _load(self) -> ModelConfig:
        defaults = ModelConfig.from_settings(self._settings)
        if self._session_factory is None:
            return defaults

        try:
            async with self._session_factory() as db:
                row = await get_active_model_config(db)
        except SQLAlchemyError:
            logger.warning("Model config lookup failed; using settings defaults", exc_info=True)
            return defaults

        if row is None:
            return defaults

        try:
            config = ModelConfig(
                provider=row.provider,  # type: ignore[arg-type]
                model_name=row.model_name,
                temperature=row.temperature,
                max_tokens=row.max_tokens,
                top_p=row.top_p,
                streaming=row.streaming,
            )
        except ValidationError:
            logger.warning(
                "Active model config %s is invalid; using settings defaults",
                row.id,
                exc_info=True,
            )
            return defaults

        logger.info("Loaded model config %s (%s/%s)", row.id, config.provider, config.model_name)
        return config
