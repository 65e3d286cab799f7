"""
Immutable catalog of providers and models built from a validated config document
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from ..models.data_classes import GlobalSettings, ModelConfig, ProviderConfig
from ..models.enums import TaskKind, Tier


DEFAULT_TIER_PREFERENCES: Mapping[TaskKind, Tuple[Tier, ...]] = MappingProxyType({
    TaskKind.SIMPLE: (Tier.LITE, Tier.STANDARD, Tier.PRO),
    TaskKind.CODE: (Tier.STANDARD, Tier.PRO, Tier.LITE),
    TaskKind.ANALYSIS: (Tier.PRO, Tier.STANDARD, Tier.LITE),
    TaskKind.COMPLEX: (Tier.PRO, Tier.STANDARD),
    TaskKind.CREATIVE: (Tier.STANDARD, Tier.PRO, Tier.LITE),
    TaskKind.VISION: (Tier.PRO, Tier.STANDARD, Tier.LITE),
})


class ProviderRegistry:
    """Read-only view over one loaded configuration.

    A registry never changes after construction; a config reload builds a
    new one and swaps the reference, so requests holding the old instance
    keep a consistent view.
    """

    def __init__(self, providers: List[ProviderConfig], settings: GlobalSettings):
        ordered = sorted(providers, key=lambda p: p.priority)
        self._providers: Dict[str, ProviderConfig] = {p.id: p for p in ordered}
        self._models: Dict[str, Dict[str, ModelConfig]] = {
            p.id: {m.id: m for m in p.models} for p in ordered
        }
        self.settings = settings

    def providers_in_priority_order(self) -> List[ProviderConfig]:
        return list(self._providers.values())

    def get_provider(self, provider_id: str) -> Optional[ProviderConfig]:
        return self._providers.get(provider_id)

    def models_of(self, provider_id: str) -> List[ModelConfig]:
        return list(self._models.get(provider_id, {}).values())

    def get_model(self, provider_id: str, model_id: str) -> Optional[ModelConfig]:
        return self._models.get(provider_id, {}).get(model_id)

    def fallback_chain_of(self, provider_id: str) -> Tuple[str, ...]:
        provider = self._providers.get(provider_id)
        return provider.fallback_chain if provider else ()

    def priority_index(self, provider_id: str) -> int:
        provider = self._providers.get(provider_id)
        return provider.priority if provider else len(self._providers)

    def tier_preferences(self, kind: TaskKind) -> Tuple[Tier, ...]:
        """Preferred tier ordering for a task kind, config overrides first"""
        if kind in self.settings.task_tier_preferences:
            return self.settings.task_tier_preferences[kind]
        return DEFAULT_TIER_PREFERENCES.get(kind, ())

    def total_chain_length(self) -> int:
        return sum(len(p.fallback_chain) for p in self._providers.values())

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def __len__(self) -> int:
        return len(self._providers)
