"""Long-lived holder of the current provider adapter.

Constructed once by the application lifespan and injected where needed. The
adapter is rebuilt only when the resolved `ModelConfig` differs by value from
the one it was built with.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from core.config import Settings, get_settings
from services.analysis.config_source import ModelConfig, ModelConfigSource
from services.analysis.interfaces import ProviderAdapter
from services.analysis.providers import create_provider


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ModelConfig, Settings, "AsyncClient | None"], ProviderAdapter]


class ProviderClient:
    def __init__(
        self,
        config_source: ModelConfigSource,
        settings: Settings | None = None,
        http_client: AsyncClient | None = None,
        factory: ProviderFactory = create_provider,
    ) -> None:
        self._config_source = config_source
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._factory = factory
        self._config: ModelConfig | None = None
        self._provider: ProviderAdapter | None = None

    @property
    def config(self) -> ModelConfig | None:
        """Configuration the current adapter was built with, if any."""
        return self._config

    async def get_provider(self) -> ProviderAdapter:
        """Return the adapter for the current configuration.

        Raises:
            ProviderConfigurationError: The configured provider cannot be built.
        """
        config = await self._config_source.resolve()
        if self._provider is None or config != self._config:
            if self._config is not None:
                logger.info(
                    "Model config changed (%s/%s -> %s/%s); rebuilding provider",
                    self._config.provider,
                    self._config.model_name,
                    config.provider,
                    config.model_name,
                )
            self._provider = self._factory(config, self._settings, self._http_client)
            self._config = config
        return self._provider

    def refresh(self) -> None:
        """Drop the cached adapter and configuration."""
        self._config = None
        self._provider = None
        self._config_source.invalidate()
