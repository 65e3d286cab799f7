"""
Orchestration engine: wires registry, ledger, selection, execution and background work
"""

import asyncio
from typing import Any, Dict, List, Optional

from .batch import BatchExecutor
from .config import ConfigManager
from .credentials import CredentialProvider, EnvCredentialProvider
from .executor import RequestExecutor
from .fallback import FallbackOrchestrator
from .health_probe import ConfigWatcher, HealthMonitor
from .rate_limits import RateLimiter
from .registry import ProviderRegistry
from .selector import ModelSelector
from .usage_ledger import UsageLedger
from ..adapters import ADAPTER_TYPES, LLMClient
from ..models.data_classes import BatchRequest, RequestOptions, RequestResult, TaskProfile
from ..utils.logging import setup_logging

logger = setup_logging()


class OrchestrationEngine:
    """Owns every engine component; nothing here lives in module globals"""

    def __init__(self, config_manager: ConfigManager, ledger: UsageLedger,
                 credentials: Optional[CredentialProvider] = None,
                 client: Optional[LLMClient] = None,
                 transaction_logger=None,
                 health_monitor_enabled: Optional[bool] = None,
                 config_reload_seconds: Optional[float] = None):
        self.config_manager = config_manager
        if self.config_manager.known_adapters is None:
            self.config_manager.known_adapters = frozenset(ADAPTER_TYPES)
        self.ledger = ledger
        self.credentials = credentials or EnvCredentialProvider()
        self.client = client or LLMClient()
        self.transaction_logger = transaction_logger

        registry_source = self._current_registry

        self.rate_limiter = RateLimiter(registry_source, ledger)
        self.health_monitor = HealthMonitor(registry_source, self.client, self.credentials,
                                            enabled=health_monitor_enabled)
        self.selector = ModelSelector(registry_source, self.rate_limiter, self.credentials,
                                      health=self.health_monitor)
        self.fallback = FallbackOrchestrator(registry_source, self.selector)
        self.executor = RequestExecutor(registry_source, self.selector, self.fallback,
                                        ledger, self.client, self.credentials,
                                        transaction_logger=transaction_logger)
        self.batch_executor = BatchExecutor(registry_source, self.executor)
        self.config_watcher = ConfigWatcher(config_manager, interval_seconds=config_reload_seconds,
                                            on_reload=self._on_reload)
        self._started = False

    def _current_registry(self) -> ProviderRegistry:
        return self.config_manager.registry

    @property
    def registry(self) -> ProviderRegistry:
        return self.config_manager.registry

    async def start(self):
        """Load configuration and ledger state, open the HTTP session, start background workers"""
        if self._started:
            return

        if not self.config_manager.is_loaded:
            await self.config_manager.load_configs()

        restored = await self.ledger.load()
        await self.client.start()
        await self.health_monitor.start()
        await self.config_watcher.start()
        self._started = True

        logger.info("Orchestration engine started",
                   providers=len(self.registry),
                   usage_records_restored=restored)

    async def stop(self):
        """Stop background workers and close the HTTP session"""
        await self.config_watcher.stop()
        await self.health_monitor.stop()
        await self.client.stop()
        self._started = False
        logger.info("Orchestration engine stopped")

    async def reload_config(self) -> ProviderRegistry:
        """Force a reload from disk; raises ConfigInvalid and keeps the old snapshot on failure"""
        registry = await self.config_manager.load_configs()
        self._on_reload(registry)
        return registry

    def _on_reload(self, registry: ProviderRegistry):
        self.client.clear_adapters()
        logger.info("Configuration reloaded", providers=len(registry))

    async def select_and_execute(self, profile: TaskProfile, messages: List,
                                 options: Optional[RequestOptions] = None,
                                 cancel_event: Optional[asyncio.Event] = None,
                                 client_id: Optional[str] = None) -> RequestResult:
        """Route one request; only ConfigInvalid escapes, everything else is in the result"""
        # Surfaces ConfigInvalid when nothing has been loaded
        self._current_registry()
        return await self.executor.execute(profile, messages, options,
                                           cancel_event=cancel_event, client_id=client_id)

    async def run_batch(self, requests: List[BatchRequest], max_concurrency: int,
                        deadline_seconds: Optional[float] = None,
                        cancel_event: Optional[asyncio.Event] = None,
                        client_id: Optional[str] = None) -> List[RequestResult]:
        return await self.batch_executor.run_batch(requests, max_concurrency,
                                                   deadline_seconds=deadline_seconds,
                                                   cancel_event=cancel_event,
                                                   client_id=client_id)

    def get_usage(self) -> Dict[str, Any]:
        """Rate limit view of every configured model plus raw ledger records"""
        return {
            "rate_limits": self.rate_limiter.snapshot(),
            "records": self.ledger.get_all_records(),
        }

    def describe_providers(self) -> List[Dict[str, Any]]:
        """Public view of the registry; credential handles are reported as present or absent"""
        registry = self.registry
        providers = []
        for provider in registry.providers_in_priority_order():
            providers.append({
                "id": provider.id,
                "name": provider.name,
                "adapter": provider.adapter,
                "enabled": provider.enabled,
                "priority": provider.priority,
                "credential_available": self.credentials.is_available(provider.credential),
                "healthy": self.health_monitor.is_healthy(provider.id),
                "fallback_chain": list(provider.fallback_chain),
                "models": [
                    {
                        "id": model.id,
                        "tier": model.tier.value,
                        "category": model.category.value,
                        "capabilities": sorted(model.capabilities),
                        "tokens_per_minute": model.tokens_per_minute,
                        "requests_per_minute": model.requests_per_minute,
                        "input_cost_per_million": model.input_cost_per_million,
                        "output_cost_per_million": model.output_cost_per_million,
                    }
                    for model in provider.models
                ],
            })
        return providers
