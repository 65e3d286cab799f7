"""Shared fixtures: config documents, a scripted adapter client and a movable clock."""

import asyncio
import copy
from datetime import datetime, timedelta, timezone

import pytest

from hydra_router.adapters.base import AdapterResponse
from hydra_router.core.config import ConfigManager
from hydra_router.core.credentials import StaticCredentialProvider
from hydra_router.core.engine import OrchestrationEngine
from hydra_router.core.errors import ProviderError
from hydra_router.core.usage_ledger import UsageLedger
from hydra_router.models.enums import ErrorKind


BASE_CONFIG = {
    "providerOrder": ["p1", "p2"],
    "settings": {
        "maxRetries": 2,
        "retryDelayMs": 0,
        "rateLimitThresholdPercent": 85,
        "autoFallback": True,
        "costOptimization": False,
        "outputTokenRatio": 0.5,
        "requestTimeoutSeconds": 5,
    },
    "providers": {
        "p1": {
            "name": "Provider One",
            "adapter": "openai",
            "credential": "P1_KEY",
            "fallbackChain": ["m1", "m2", "m3"],
            "models": {
                "m1": {
                    "tier": "lite",
                    "tokensPerMinute": 100000,
                    "requestsPerMinute": 100,
                    "inputCostPerMillion": 0.1,
                    "outputCostPerMillion": 0.4,
                },
                "m2": {
                    "tier": "standard",
                    "capabilities": ["vision"],
                    "tokensPerMinute": 100000,
                    "requestsPerMinute": 100,
                    "inputCostPerMillion": 1.0,
                    "outputCostPerMillion": 4.0,
                },
                "m3": {
                    "tier": "pro",
                    "capabilities": ["vision"],
                    "tokensPerMinute": 100000,
                    "requestsPerMinute": 100,
                    "inputCostPerMillion": 3.0,
                    "outputCostPerMillion": 15.0,
                },
            },
        },
        "p2": {
            "name": "Provider Two",
            "adapter": "anthropic",
            "credential": "P2_KEY",
            "fallbackChain": ["n1", "n2"],
            "models": {
                "n1": {
                    "tier": "standard",
                    "tokensPerMinute": 100000,
                    "requestsPerMinute": 100,
                    "inputCostPerMillion": 0.5,
                    "outputCostPerMillion": 2.0,
                },
                "n2": {
                    "tier": "pro",
                    "capabilities": ["vision"],
                    "tokensPerMinute": 100000,
                    "requestsPerMinute": 100,
                    "inputCostPerMillion": 2.0,
                    "outputCostPerMillion": 8.0,
                },
            },
        },
    },
}


def make_config(**settings):
    """Deep copy of the base document with settings overridden (camelCase keys)"""
    document = copy.deepcopy(BASE_CONFIG)
    document["settings"].update(settings)
    return document


class MovableClock:
    """Injectable UTC clock for window tests"""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class ScriptedAdapter:
    """Stands in for a provider adapter; every call is answered by the owning client"""

    def __init__(self, client, provider_id):
        self.client = client
        self.provider_id = provider_id

    async def complete(self, request, credential, timeout):
        return await self.client.respond(self.provider_id, request, credential)

    async def health_check(self, credential, timeout=5.0):
        return self.client.health.get(self.provider_id, True)


class ScriptedClient:
    """LLMClient replacement that answers from per-(provider, model) scripts.

    A scripted outcome is an ``ErrorKind`` (raised as ProviderError), an
    exception instance (raised as is) or an ``AdapterResponse``. Unscripted
    calls succeed.
    """

    def __init__(self):
        self.scripts = {}
        self.handler = None
        self.delay = 0.0
        self.calls = []
        self.credentials_seen = []
        self.health = {}
        self.started = False

    def script(self, provider, model, *outcomes):
        self.scripts.setdefault((provider, model), []).extend(outcomes)

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    def get_adapter(self, provider):
        return ScriptedAdapter(self, provider.id)

    def clear_adapters(self):
        pass

    async def respond(self, provider, request, credential):
        self.calls.append((provider, request.model))
        self.credentials_seen.append(credential)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.handler is not None:
            outcome = self.handler(provider, request)
        else:
            queue = self.scripts.get((provider, request.model))
            outcome = queue.pop(0) if queue else None

        if outcome is None:
            return AdapterResponse(
                content=f"{provider}/{request.model}",
                input_tokens=10,
                output_tokens=5,
                finish_reason="stop",
            )
        if isinstance(outcome, ErrorKind):
            raise ProviderError(outcome, f"scripted {outcome.value}")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def clock():
    return MovableClock()


@pytest.fixture
def credentials():
    return StaticCredentialProvider({"P1_KEY": "secret-1", "P2_KEY": "secret-2"})


@pytest.fixture
def ledger(tmp_path, clock):
    return UsageLedger(state_dir=str(tmp_path / "usage"), clock=clock)


@pytest.fixture
def config_manager(tmp_path):
    manager = ConfigManager(config_dir=str(tmp_path / "config"))
    manager.load_from_dict(make_config())
    return manager


@pytest.fixture
def client():
    return ScriptedClient()


@pytest.fixture
def engine(config_manager, ledger, credentials, client):
    return OrchestrationEngine(
        config_manager=config_manager,
        ledger=ledger,
        credentials=credentials,
        client=client,
        health_monitor_enabled=False,
        config_reload_seconds=0,
    )
