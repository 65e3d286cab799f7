"""
Rate limit admission control for hydra_router
"""

from typing import Callable, Dict, Optional

from .registry import ProviderRegistry
from .usage_ledger import UsageLedger, window_expired
from ..models.data_classes import ModelConfig, RateLimitStatus, UsageRecord
from ..models.enums import ErrorKind


def _percent(used: int, cap: Optional[int]) -> float:
    if cap is None:
        return 0.0
    if cap == 0:
        # A hard zero cap has no headroom at all
        return 100.0
    return used / cap * 100


def _remaining(used: int, cap: Optional[int]) -> Optional[int]:
    if cap is None:
        return None
    return max(0, cap - used)


class RateLimiter:
    """Computes availability from registry caps and ledger counts.

    Reads never take a lock and never modify the ledger: an expired window
    is treated as empty for the read only, the stored record is rewritten on
    the next ``UsageLedger.record`` call.
    """

    def __init__(self, registry_source: Callable[[], ProviderRegistry], ledger: UsageLedger):
        self._registry_source = registry_source
        self.ledger = ledger

    def status(self, provider: str, model: str,
               registry: Optional[ProviderRegistry] = None) -> RateLimitStatus:
        """
        Admission verdict for a (provider, model) pair

        Args:
            provider: Provider id
            model: Model id
            registry: Snapshot to evaluate against (current one if omitted)

        Returns:
            RateLimitStatus; unknown pairs are unavailable with reason MODEL_NOT_FOUND
        """
        registry = registry or self._registry_source()
        model_config = registry.get_model(provider, model)
        if model_config is None:
            return RateLimitStatus(available=False, reason=ErrorKind.MODEL_NOT_FOUND)

        record = self.ledger.get(provider, model)
        return self._evaluate(model_config, record, registry.settings.rate_limit_threshold_percent)

    def _evaluate(self, model: ModelConfig, record: Optional[UsageRecord],
                  threshold: float) -> RateLimitStatus:
        tokens_used = 0
        requests_used = 0
        if record is not None and not window_expired(record, self.ledger.clock()):
            tokens_used = record.tokens_this_window
            requests_used = record.requests_this_window

        tokens_percent = _percent(tokens_used, model.tokens_per_minute)
        requests_percent = _percent(requests_used, model.requests_per_minute)
        available = tokens_percent < threshold and requests_percent < threshold

        return RateLimitStatus(
            available=available,
            tokens_percent=round(tokens_percent, 2),
            requests_percent=round(requests_percent, 2),
            tokens_remaining=_remaining(tokens_used, model.tokens_per_minute),
            requests_remaining=_remaining(requests_used, model.requests_per_minute),
            reason=None if available else ErrorKind.RATE_LIMITED,
        )

    def snapshot(self, registry: Optional[ProviderRegistry] = None) -> Dict[str, Dict[str, object]]:
        """Status of every configured model, keyed by ``provider/model``"""
        registry = registry or self._registry_source()
        states = {}
        for provider in registry.providers_in_priority_order():
            for model in registry.models_of(provider.id):
                status = self.status(provider.id, model.id, registry)
                states[f"{provider.id}/{model.id}"] = {
                    "available": status.available,
                    "tokens_percent": status.tokens_percent,
                    "requests_percent": status.requests_percent,
                    "tokens_remaining": status.tokens_remaining,
                    "requests_remaining": status.requests_remaining,
                }
        return states
