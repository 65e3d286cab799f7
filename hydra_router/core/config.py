"""
Configuration management for hydra_router
"""

import json
from pathlib import Path
from typing import Any, Collection, Dict, List, Optional

import aiofiles
from pydantic import ValidationError

from .errors import ConfigInvalid
from .registry import ProviderRegistry
from ..models.data_classes import GlobalSettings, ModelConfig, ProviderConfig
from ..models.schemas import ConfigDocument, ModelSchema
from ..utils.logging import setup_logging

logger = setup_logging()


def _format_validation_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "document"
    return f"{location}: {error.get('msg', 'invalid value')}"


def _cap(value, zero_means_unlimited: bool) -> Optional[int]:
    if value == "unlimited":
        return None
    if value == 0 and zero_means_unlimited:
        return None
    return int(value)


def build_registry(data: Dict[str, Any],
                   known_adapters: Optional[Collection[str]] = None) -> ProviderRegistry:
    """
    Validate a raw configuration document and build a registry from it

    Args:
        data: Parsed JSON document
        known_adapters: Adapter kinds the engine can drive (unchecked if None)

    Returns:
        ProviderRegistry snapshot

    Raises:
        ConfigInvalid: listing every violation found
    """
    try:
        document = ConfigDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigInvalid([_format_validation_error(err) for err in e.errors()]) from e

    violations: List[str] = []

    if not document.providers:
        violations.append("providers: at least one provider is required")

    seen_order = set()
    for provider_id in document.provider_order:
        if provider_id not in document.providers:
            violations.append(f"providerOrder: unknown provider '{provider_id}'")
        if provider_id in seen_order:
            violations.append(f"providerOrder: provider '{provider_id}' listed twice")
        seen_order.add(provider_id)

    for provider_id, provider in document.providers.items():
        if known_adapters is not None and provider.adapter not in known_adapters:
            violations.append(
                f"providers.{provider_id}.adapter: unknown adapter '{provider.adapter}'"
            )
        if not provider.models:
            violations.append(f"providers.{provider_id}.models: at least one model is required")
        if not provider.fallback_chain:
            violations.append(f"providers.{provider_id}.fallbackChain: must list at least one model")

        seen_chain = set()
        for model_id in provider.fallback_chain:
            if model_id not in provider.models:
                violations.append(
                    f"providers.{provider_id}.fallbackChain: unknown model '{model_id}'"
                )
            if model_id in seen_chain:
                violations.append(
                    f"providers.{provider_id}.fallbackChain: model '{model_id}' listed twice"
                )
            seen_chain.add(model_id)

    for kind, tiers in document.settings.task_tier_preferences.items():
        if not tiers:
            violations.append(f"settings.taskTierPreferences.{kind.value}: must not be empty")

    if violations:
        raise ConfigInvalid(violations)

    order = [p for p in document.provider_order if p in document.providers]
    order.extend(p for p in document.providers if p not in order)

    providers = [
        _build_provider(provider_id, document.providers[provider_id], index)
        for index, provider_id in enumerate(order)
    ]

    s = document.settings
    settings = GlobalSettings(
        max_retries=s.max_retries,
        rate_limit_threshold_percent=s.rate_limit_threshold_percent,
        auto_fallback=s.auto_fallback,
        retry_delay_ms=s.retry_delay_ms,
        cost_optimization=s.cost_optimization,
        output_token_ratio=s.output_token_ratio,
        request_timeout_seconds=s.request_timeout_seconds,
        fallback_scan_mode=s.fallback_scan_mode,
        prefer_local=s.prefer_local,
        task_tier_preferences={kind: tuple(tiers) for kind, tiers in s.task_tier_preferences.items()},
    )

    return ProviderRegistry(providers, settings)


def _build_model(provider_id: str, model_id: str, schema: ModelSchema) -> ModelConfig:
    return ModelConfig(
        id=model_id,
        provider_id=provider_id,
        tier=schema.tier,
        category=schema.category,
        capabilities=frozenset(schema.capabilities),
        tokens_per_minute=_cap(schema.tokens_per_minute, schema.zero_cap_means_unlimited),
        requests_per_minute=_cap(schema.requests_per_minute, schema.zero_cap_means_unlimited),
        input_cost_per_million=schema.input_cost_per_million,
        output_cost_per_million=schema.output_cost_per_million,
    )


def _build_provider(provider_id: str, schema, priority: int) -> ProviderConfig:
    return ProviderConfig(
        id=provider_id,
        name=schema.name or provider_id,
        adapter=schema.adapter,
        enabled=schema.enabled,
        credential=schema.credential,
        fallback_chain=tuple(schema.fallback_chain),
        priority=priority,
        models=tuple(_build_model(provider_id, mid, m) for mid, m in schema.models.items()),
        base_url=schema.base_url,
    )


class ConfigManager:
    """Loads, validates and hot-reloads the provider configuration document"""

    def __init__(self, config_dir: str = "config", file_name: str = "providers.json",
                 known_adapters: Optional[Collection[str]] = None):
        self.config_dir = Path(config_dir)
        self.known_adapters = known_adapters
        self.config_file = self.config_dir / file_name
        self._registry: Optional[ProviderRegistry] = None
        self._last_mtime = 0.0

    @property
    def registry(self) -> ProviderRegistry:
        """Current registry snapshot; raises ConfigInvalid if none was ever loaded"""
        if self._registry is None:
            raise ConfigInvalid(["no valid configuration has been loaded"])
        return self._registry

    @property
    def is_loaded(self) -> bool:
        return self._registry is not None

    def load_from_dict(self, data: Dict[str, Any]) -> ProviderRegistry:
        """Validate a document and swap it in as the current snapshot"""
        registry = build_registry(data, self.known_adapters)
        self._registry = registry
        logger.info("Loaded providers configuration",
                   provider_count=len(registry),
                   providers=[p.id for p in registry.providers_in_priority_order()])
        return registry

    async def load_configs(self) -> ProviderRegistry:
        """Read the config file and replace the snapshot; the old one stays on failure"""
        if not self.config_file.exists():
            logger.error("providers.json not found", file_path=str(self.config_file))
            raise ConfigInvalid([f"configuration file not found: {self.config_file}"])

        # A rejected file is not retried until it changes again
        self._last_mtime = self.config_file.stat().st_mtime

        try:
            async with aiofiles.open(self.config_file, 'r') as f:
                content = await f.read()
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse providers configuration", error=str(e))
            raise ConfigInvalid([f"document: invalid JSON ({e})"]) from e

        try:
            registry = self.load_from_dict(data)
        except ConfigInvalid as e:
            logger.error("Rejected providers configuration",
                        violations=e.violations,
                        keeping_previous=self._registry is not None)
            raise

        return registry

    async def refresh_if_changed(self) -> bool:
        """Reload only when the file changed on disk; returns True when a reload happened"""
        if not self.config_file.exists():
            return False

        if self.config_file.stat().st_mtime == self._last_mtime:
            return False

        await self.load_configs()
        return True
