"""
Fallback candidate selection after a failed attempt
"""

from typing import AbstractSet, Callable, Optional, Sequence, Tuple

from .registry import ProviderRegistry
from .selector import ModelSelector
from ..models.data_classes import Candidate, ProviderConfig, RequestOptions, TaskProfile
from ..models.enums import FallbackScanMode
from ..utils.logging import setup_logging

logger = setup_logging()


class FallbackOrchestrator:
    """Picks the next candidate: rest of the current chain first, then other providers.

    Pairs in ``attempted`` are never returned, so a request cannot loop and
    the number of hops is bounded by the total length of all chains.
    """

    def __init__(self, registry_source: Callable[[], ProviderRegistry], selector: ModelSelector):
        self._registry_source = registry_source
        self.selector = selector

    def next_candidate(self, current_provider: str, current_model: str,
                       cross_provider_allowed: bool,
                       attempted: AbstractSet[Tuple[str, str]] = frozenset(),
                       profile: Optional[TaskProfile] = None,
                       options: Optional[RequestOptions] = None,
                       registry: Optional[ProviderRegistry] = None) -> Optional[Candidate]:
        """
        Next available candidate after ``current_provider/current_model`` failed

        Args:
            current_provider: Provider of the failed candidate
            current_model: Model of the failed candidate
            cross_provider_allowed: Whether other providers may be tried
            attempted: Pairs already tried in this logical request
            profile: Task profile, used for capability checks and scoring
            options: Per-request overrides
            registry: Snapshot to scan (current one if omitted)

        Returns:
            Candidate, or None when every option is exhausted
        """
        registry = registry or self._registry_source()
        attempted = set(attempted) | {(current_provider, current_model)}

        chain = registry.fallback_chain_of(current_provider)
        if current_model in chain:
            depth = chain.index(current_model)
            start = depth + 1
        else:
            depth = 0
            start = 0

        provider = registry.get_provider(current_provider)
        if provider is not None:
            candidate = self._scan_chain(registry, provider, chain[start:], attempted, profile, options)
            if candidate is not None:
                logger.info("Fallback within provider",
                           provider=current_provider,
                           from_model=current_model,
                           to_model=candidate.model)
                return candidate

        if not cross_provider_allowed:
            logger.info("Fallback chain exhausted, cross-provider fallback disabled",
                       provider=current_provider, model=current_model)
            return None

        for other in registry.providers_in_priority_order():
            if other.id == current_provider or not self.selector.provider_usable(other):
                continue

            other_chain = other.fallback_chain
            if registry.settings.fallback_scan_mode == FallbackScanMode.DEPTH:
                offset = min(depth, len(other_chain))
                other_chain = other_chain[offset:] + other_chain[:offset]

            candidate = self._scan_chain(registry, other, other_chain, attempted, profile, options)
            if candidate is not None:
                logger.info("Fallback across providers",
                           from_provider=current_provider,
                           from_model=current_model,
                           to_provider=candidate.provider,
                           to_model=candidate.model)
                return candidate

        logger.warning("No fallback candidate left",
                      provider=current_provider, model=current_model,
                      attempted=len(attempted))
        return None

    def _scan_chain(self, registry: ProviderRegistry, provider: ProviderConfig,
                    model_ids: Sequence[str], attempted: AbstractSet[Tuple[str, str]],
                    profile: Optional[TaskProfile],
                    options: Optional[RequestOptions]) -> Optional[Candidate]:
        for model_id in model_ids:
            if (provider.id, model_id) in attempted:
                continue

            model = registry.get_model(provider.id, model_id)
            if model is None or not self.selector.model_eligible(model, profile, options):
                continue

            status = self.selector.rate_limiter.status(provider.id, model_id, registry)
            if not status.available:
                continue

            return self.selector.build_candidate(
                registry, provider, model, profile or TaskProfile(), options, status
            )
        return None
