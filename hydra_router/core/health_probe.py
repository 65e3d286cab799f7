"""
Background workers: provider health monitoring and configuration hot-reload
"""

import os
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from .config import ConfigManager
from .credentials import CredentialProvider
from .errors import ConfigInvalid
from .registry import ProviderRegistry
from ..utils.logging import setup_logging

logger = setup_logging()


class BackgroundWorker(ABC):
    """Periodic task whose lifetime is owned by the engine"""

    name = "background worker"

    def __init__(self, interval_seconds: float, enabled: bool = True):
        self.interval_seconds = interval_seconds
        self.enabled = enabled and interval_seconds > 0
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the background worker"""
        if not self.enabled:
            logger.info("Background worker disabled", worker=self.name)
            return

        if self._running:
            logger.warning("Background worker already running", worker=self.name)
            return

        self._running = True
        self._task = asyncio.create_task(self._worker_loop())

        logger.info("Background worker started", worker=self.name,
                   interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the background worker"""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Background worker task cancelled", worker=self.name)
            self._task = None

        logger.info("Background worker stopped", worker=self.name)

    async def _worker_loop(self):
        """Main worker loop"""
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in background worker loop", worker=self.name, error=str(e))

            await asyncio.sleep(self.interval_seconds)

    @abstractmethod
    async def run_once(self):
        """One unit of periodic work"""


class HealthMonitor(BackgroundWorker):
    """Probes every enabled provider and caches reachability.

    Unknown or stale health counts as healthy, so a provider is only skipped
    after a recent failed probe.
    """

    name = "health monitor"

    def __init__(self, registry_source: Callable[[], ProviderRegistry], client,
                 credentials: CredentialProvider,
                 interval_seconds: Optional[float] = None,
                 enabled: Optional[bool] = None,
                 max_concurrent: Optional[int] = None,
                 probe_timeout_seconds: Optional[float] = None,
                 ttl_seconds: Optional[float] = None):
        if interval_seconds is None:
            interval_seconds = float(os.getenv("HEALTH_PROBE_INTERVAL_SECONDS", "30"))
        if enabled is None:
            enabled = os.getenv("HEALTH_PROBE_ENABLED", "true").lower() == "true"
        super().__init__(interval_seconds, enabled)

        self._registry_source = registry_source
        self.client = client
        self.credentials = credentials
        self.max_concurrent = max_concurrent or int(os.getenv("HEALTH_PROBE_CONCURRENT_MAX", "5"))
        self.probe_timeout_seconds = probe_timeout_seconds or float(
            os.getenv("HEALTH_PROBE_TIMEOUT_SECONDS", "5"))
        # A result older than two intervals no longer counts
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else self.interval_seconds * 2
        self._results: Dict[str, Tuple[bool, float]] = {}

    def is_healthy(self, provider_id: str) -> bool:
        entry = self._results.get(provider_id)
        if entry is None:
            return True
        healthy, checked_at = entry
        if time.monotonic() - checked_at > self.ttl_seconds:
            return True
        return healthy

    def mark(self, provider_id: str, healthy: bool):
        """Record a probe result"""
        self._results[provider_id] = (healthy, time.monotonic())

    def get_status(self) -> Dict[str, Dict[str, object]]:
        now = time.monotonic()
        return {
            provider_id: {
                "healthy": healthy,
                "age_seconds": round(now - checked_at, 1),
                "fresh": now - checked_at <= self.ttl_seconds,
            }
            for provider_id, (healthy, checked_at) in self._results.items()
        }

    async def run_once(self):
        """Probe all enabled, credentialed providers with bounded concurrency"""
        registry = self._registry_source()
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def probe(provider):
            async with semaphore:
                adapter = self.client.get_adapter(provider)
                credential = self.credentials.resolve(provider.credential)
                healthy = await adapter.health_check(credential, timeout=self.probe_timeout_seconds)
                self.mark(provider.id, healthy)
                if not healthy:
                    logger.warning("Provider unhealthy", provider=provider.id)
                return healthy

        providers = [
            p for p in registry.providers_in_priority_order()
            if p.enabled and self.credentials.is_available(p.credential)
        ]
        results = await asyncio.gather(*(probe(p) for p in providers), return_exceptions=True)

        for provider, result in zip(providers, results):
            if isinstance(result, Exception):
                logger.error("Health probe raised", provider=provider.id, error=str(result))
                self.mark(provider.id, False)

        logger.debug("Health probe cycle complete", providers=len(providers),
                    healthy=sum(1 for r in results if r is True))


class ConfigWatcher(BackgroundWorker):
    """Reloads the configuration document when its file changes"""

    name = "config watcher"

    def __init__(self, config_manager: ConfigManager, interval_seconds: Optional[float] = None,
                 on_reload: Optional[Callable[[ProviderRegistry], None]] = None):
        if interval_seconds is None:
            interval_seconds = float(os.getenv("HYDRA_CONFIG_RELOAD_SECONDS", "30"))
        super().__init__(interval_seconds)
        self.config_manager = config_manager
        self.on_reload = on_reload

    async def run_once(self):
        try:
            changed = await self.config_manager.refresh_if_changed()
        except ConfigInvalid as e:
            # Previous snapshot stays active
            logger.error("Configuration reload rejected", violations=e.violations)
            return

        if changed and self.on_reload is not None:
            self.on_reload(self.config_manager.registry)
