"""
Candidate ranking and selection for task profiles
"""

from typing import Callable, List, Optional

from .credentials import CredentialProvider
from .errors import NoCandidateAvailable
from .rate_limits import RateLimiter
from .registry import ProviderRegistry
from ..models.data_classes import (
    Candidate, ModelConfig, ProviderConfig, RateLimitStatus, RequestOptions, TaskProfile
)
from ..models.enums import ModelCategory, Tier
from ..utils.logging import setup_logging

logger = setup_logging()

TIER_SCORES = {
    Tier.PRO: 3,
    Tier.STANDARD: 2,
    Tier.LITE: 1,
    Tier.LOCAL: 1,
}

# Rank for a tier missing from the task kind's preference list
ABSENT_TIER_RANK = 99


class ModelSelector:
    """Ranks (provider, model) pairs for a task profile.

    Ranking is a pure function of the registry snapshot, the ledger contents
    and the arguments: the same inputs always produce the same order.
    """

    def __init__(self, registry_source: Callable[[], ProviderRegistry],
                 rate_limiter: RateLimiter, credentials: CredentialProvider,
                 health=None):
        self._registry_source = registry_source
        self.rate_limiter = rate_limiter
        self.credentials = credentials
        self.health = health

    def provider_usable(self, provider: ProviderConfig) -> bool:
        """Enabled, credentialed and not known to be unreachable"""
        if not provider.enabled:
            return False
        if not self.credentials.is_available(provider.credential):
            return False
        if self.health is not None and not self.health.is_healthy(provider.id):
            return False
        return True

    def model_eligible(self, model: ModelConfig, profile: Optional[TaskProfile],
                       options: Optional[RequestOptions] = None) -> bool:
        """Chat model with every capability the profile needs, not excluded by the caller"""
        if model.category != ModelCategory.CHAT:
            return False
        if options is not None and (model.provider_id, model.id) in options.exclude:
            return False
        if profile is not None and not model.has_capabilities(profile.effective_capabilities()):
            return False
        return True

    def estimate_cost(self, model: ModelConfig, profile: TaskProfile,
                      registry: ProviderRegistry) -> float:
        input_tokens = profile.estimated_input_tokens
        if profile.estimated_output_tokens is not None:
            output_tokens = profile.estimated_output_tokens
        else:
            output_tokens = input_tokens * registry.settings.output_token_ratio

        return (input_tokens / 1_000_000 * model.input_cost_per_million
                + output_tokens / 1_000_000 * model.output_cost_per_million)

    def build_candidate(self, registry: ProviderRegistry, provider: ProviderConfig,
                        model: ModelConfig, profile: TaskProfile,
                        options: Optional[RequestOptions],
                        status: RateLimitStatus) -> Candidate:
        """Score one pair for this profile"""
        preferences = registry.tier_preferences(profile.kind)
        prefer_local = registry.settings.prefer_local
        if options is not None and options.prefer_local is not None:
            prefer_local = options.prefer_local

        if prefer_local and model.tier == Tier.LOCAL:
            tier_preference = -1
        elif model.tier in preferences:
            tier_preference = preferences.index(model.tier)
        else:
            tier_preference = ABSENT_TIER_RANK

        preferred_provider = profile.preferred_provider
        if options is not None and options.preferred_provider:
            preferred_provider = options.preferred_provider

        provider_preference = -1 if provider.id == preferred_provider else provider.priority

        return Candidate(
            provider=provider.id,
            model=model.id,
            tier=model.tier,
            estimated_cost=self.estimate_cost(model, profile, registry),
            tier_score=TIER_SCORES[model.tier],
            tier_preference=tier_preference,
            provider_preference=provider_preference,
            rate_limit=status,
        )

    def prefers_cost(self, profile: TaskProfile, options: Optional[RequestOptions],
                     registry: ProviderRegistry) -> bool:
        return (profile.prefer_cheapest
                or (options is not None and options.prefer_cheapest)
                or registry.settings.cost_optimization)

    def rank_candidates(self, profile: TaskProfile, options: Optional[RequestOptions] = None,
                        registry: Optional[ProviderRegistry] = None) -> List[Candidate]:
        """
        Every admissible candidate for the profile, best first

        Args:
            profile: Task profile to route
            options: Per-request overrides
            registry: Snapshot to rank against (current one if omitted)

        Returns:
            Ordered list, possibly empty
        """
        registry = registry or self._registry_source()
        candidates: List[Candidate] = []

        for provider in registry.providers_in_priority_order():
            if not self.provider_usable(provider):
                logger.debug("Skipping provider", provider=provider.id,
                            enabled=provider.enabled,
                            has_credential=self.credentials.is_available(provider.credential))
                continue

            for model in registry.models_of(provider.id):
                if not self.model_eligible(model, profile, options):
                    continue

                status = self.rate_limiter.status(provider.id, model.id, registry)
                if not status.available:
                    logger.debug("Skipping rate limited model", provider=provider.id, model=model.id,
                                tokens_percent=status.tokens_percent,
                                requests_percent=status.requests_percent)
                    continue

                candidates.append(
                    self.build_candidate(registry, provider, model, profile, options, status)
                )

        # sorted() is stable, so full ties keep registry order
        if self.prefers_cost(profile, options, registry):
            return sorted(candidates, key=lambda c: (c.estimated_cost, c.tier_preference, c.provider_preference))
        return sorted(candidates, key=lambda c: (c.tier_preference, c.provider_preference, c.estimated_cost))

    def select_candidate(self, profile: TaskProfile, options: Optional[RequestOptions] = None,
                         registry: Optional[ProviderRegistry] = None) -> Candidate:
        """Best candidate for the profile; raises NoCandidateAvailable when none survives"""
        candidates = self.rank_candidates(profile, options, registry)

        if not candidates:
            logger.warning("No candidate available", task_kind=profile.kind.value,
                         required_capabilities=sorted(profile.effective_capabilities()))
            raise NoCandidateAvailable(f"No candidate available for task kind '{profile.kind.value}'")

        selected = candidates[0]
        logger.info("Selected candidate",
                   task_kind=profile.kind.value,
                   provider=selected.provider,
                   model=selected.model,
                   tier=selected.tier.value,
                   estimated_cost=selected.estimated_cost,
                   alternatives=len(candidates) - 1)
        return selected
