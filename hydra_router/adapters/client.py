"""
Shared HTTP session and adapter cache for provider backends
"""

from typing import Dict, Optional

import aiohttp

from ..core.errors import ConfigInvalid
from ..models.data_classes import ProviderConfig
from ..utils.logging import setup_logging
from . import ADAPTER_TYPES
from .base import ProviderAdapter

logger = setup_logging()


class LLMClient:
    """Owns the aiohttp session that every adapter posts through"""

    def __init__(self, request_timeout: float = 300.0):
        self.request_timeout = request_timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self._adapters: Dict[str, ProviderAdapter] = {}

    async def start(self):
        """Start the HTTP session"""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout)
        )

    async def stop(self):
        """Stop the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None

    def get_adapter(self, provider: ProviderConfig) -> ProviderAdapter:
        """Adapter for a provider, created on first use"""
        cache_key = f"{provider.id}|{provider.adapter}|{provider.base_url or ''}"
        adapter = self._adapters.get(cache_key)
        if adapter is None:
            adapter_type = ADAPTER_TYPES.get(provider.adapter)
            if adapter_type is None:
                raise ConfigInvalid([f"providers.{provider.id}.adapter: unknown adapter '{provider.adapter}'"])
            adapter = adapter_type(self, base_url=provider.base_url)
            self._adapters[cache_key] = adapter
            logger.info("Adapter created", provider=provider.id, adapter=provider.adapter)
        return adapter

    def clear_adapters(self):
        """Drop cached adapters, e.g. after a configuration reload"""
        self._adapters.clear()
