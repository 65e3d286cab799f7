"""Tests for the usage ledger and rate limit admission."""

import asyncio
import json

import pytest

from hydra_router.core.config import build_registry
from hydra_router.core.rate_limits import RateLimiter
from hydra_router.core.usage_ledger import UsageLedger
from hydra_router.models.enums import ErrorKind

from conftest import make_config


def _registry_with_caps(tokens=1000, requests=100, threshold=85):
    document = make_config(rateLimitThresholdPercent=threshold)
    model = document["providers"]["p1"]["models"]["m1"]
    model["tokensPerMinute"] = tokens
    model["requestsPerMinute"] = requests
    return build_registry(document)


# ═══════════════════════════════════════════════════════════════
#  UsageLedger
# ═══════════════════════════════════════════════════════════════
class TestUsageLedger:
    @pytest.mark.asyncio
    async def test_record_accumulates_within_window(self, ledger, clock) -> None:
        await ledger.record("p1", "m1", 100, 50)
        clock.advance(10)
        record = await ledger.record("p1", "m1", 20, 5, is_error=True)

        assert record.tokens_this_window == 175
        assert record.requests_this_window == 2
        assert record.errors_this_window == 1
        assert record.last_request_time == clock.now

    @pytest.mark.asyncio
    async def test_window_resets_after_sixty_seconds(self, ledger, clock) -> None:
        first = await ledger.record("p1", "m1", 100, 50)
        clock.advance(60)
        record = await ledger.record("p1", "m1", 10, 0)

        assert record.tokens_this_window == 10
        assert record.requests_this_window == 1
        assert record.window_start == clock.now
        assert record.window_start > first.window_start

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, ledger) -> None:
        await asyncio.gather(*(ledger.record("p1", "m1", 1, 1) for _ in range(50)))
        record = ledger.get("p1", "m1")
        assert record.requests_this_window == 50
        assert record.tokens_this_window == 100

    @pytest.mark.asyncio
    async def test_different_keys_are_independent(self, ledger) -> None:
        await ledger.record("p1", "m1", 10, 0)
        await ledger.record("p2", "n1", 20, 0)
        assert ledger.get("p1", "m1").tokens_this_window == 10
        assert ledger.get("p2", "n1").tokens_this_window == 20

    @pytest.mark.asyncio
    async def test_records_persist_and_reload(self, tmp_path, clock) -> None:
        state_dir = tmp_path / "usage"
        ledger = UsageLedger(state_dir=str(state_dir), clock=clock)
        await ledger.record("p1", "m1", 30, 10)
        await ledger.record("p1", "m1", 30, 10)

        reloaded = UsageLedger(state_dir=str(state_dir), clock=clock)
        assert await reloaded.load() == 1
        record = reloaded.get("p1", "m1")
        assert record.tokens_this_window == 80
        assert record.version == 2
        assert not list(state_dir.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_unreadable_files_are_ignored(self, tmp_path, clock) -> None:
        state_dir = tmp_path / "usage"
        state_dir.mkdir()
        (state_dir / "broken.json").write_text("{")
        (state_dir / "partial.json").write_text(json.dumps({"provider": "p1"}))

        ledger = UsageLedger(state_dir=str(state_dir), clock=clock)
        assert await ledger.load() == 0
        assert ledger.get("p1", "m1") is None

    @pytest.mark.asyncio
    async def test_naive_timestamps_are_read_as_utc(self, tmp_path, clock) -> None:
        state_dir = tmp_path / "usage"
        state_dir.mkdir()
        (state_dir / "p1__m1.json").write_text(json.dumps({
            "provider": "p1",
            "model": "m1",
            "window_start": "2025-01-01T12:00:00",
            "tokens_this_window": 900,
            "requests_this_window": 3,
            "last_request_time": "2025-01-01T12:00:00",
            "version": 3,
        }))

        ledger = UsageLedger(state_dir=str(state_dir), clock=clock)
        assert await ledger.load() == 1
        assert ledger.get("p1", "m1").window_start == clock.now

        limiter = RateLimiter(lambda: _registry_with_caps(tokens=1000), ledger)
        status = limiter.status("p1", "m1")
        assert status.available is False
        assert status.tokens_percent == 90.0

        clock.advance(60)
        assert limiter.status("p1", "m1").available is True

    @pytest.mark.asyncio
    async def test_similar_model_ids_get_separate_files(self, tmp_path, clock) -> None:
        state_dir = tmp_path / "usage"
        ledger = UsageLedger(state_dir=str(state_dir), clock=clock)
        await ledger.record("ollama", "llama3.1:8b", 10, 0)
        await ledger.record("ollama", "llama3.1_8b", 20, 0)
        await ledger.record("a__b", "c", 30, 0)
        await ledger.record("a", "b__c", 40, 0)

        assert len(list(state_dir.glob("*.json"))) == 4

        reloaded = UsageLedger(state_dir=str(state_dir), clock=clock)
        assert await reloaded.load() == 4
        assert reloaded.get("ollama", "llama3.1:8b").tokens_this_window == 10
        assert reloaded.get("ollama", "llama3.1_8b").tokens_this_window == 20
        assert reloaded.get("a__b", "c").tokens_this_window == 30
        assert reloaded.get("a", "b__c").tokens_this_window == 40


# ═══════════════════════════════════════════════════════════════
#  RateLimiter
# ═══════════════════════════════════════════════════════════════
class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_threshold_blocks_admission(self, ledger) -> None:
        registry = _registry_with_caps(tokens=1000, threshold=85)
        limiter = RateLimiter(lambda: registry, ledger)

        assert limiter.status("p1", "m1").available is True
        await ledger.record("p1", "m1", input_tokens=500, output_tokens=400)

        status = limiter.status("p1", "m1")
        assert status.available is False
        assert status.tokens_percent == 90.0
        assert status.tokens_remaining == 100
        assert status.reason == ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_request_cap_blocks_admission(self, ledger) -> None:
        registry = _registry_with_caps(tokens=1_000_000, requests=2, threshold=85)
        limiter = RateLimiter(lambda: registry, ledger)

        await ledger.record("p1", "m1", 1, 0)
        assert limiter.status("p1", "m1").available is True
        await ledger.record("p1", "m1", 1, 0)
        assert limiter.status("p1", "m1").available is False

    @pytest.mark.asyncio
    async def test_expired_window_reads_as_empty(self, ledger, clock) -> None:
        registry = _registry_with_caps(tokens=1000)
        limiter = RateLimiter(lambda: registry, ledger)

        await ledger.record("p1", "m1", 900, 100)
        assert limiter.status("p1", "m1").available is False

        clock.advance(61)
        status = limiter.status("p1", "m1")
        assert status.available is True
        assert status.tokens_percent == 0.0
        # The read does not rewrite the stored record
        assert ledger.get("p1", "m1").tokens_this_window == 1000

    def test_unlimited_caps_always_available(self, ledger) -> None:
        document = make_config()
        model = document["providers"]["p1"]["models"]["m1"]
        model["tokensPerMinute"] = "unlimited"
        model["requestsPerMinute"] = "unlimited"
        registry = build_registry(document)
        limiter = RateLimiter(lambda: registry, ledger)

        status = limiter.status("p1", "m1")
        assert status.available is True
        assert status.tokens_remaining is None

    def test_zero_cap_never_available(self, ledger) -> None:
        registry = _registry_with_caps(tokens=0)
        limiter = RateLimiter(lambda: registry, ledger)
        assert limiter.status("p1", "m1").available is False

    def test_unknown_model_is_unavailable(self, ledger) -> None:
        registry = _registry_with_caps()
        limiter = RateLimiter(lambda: registry, ledger)
        status = limiter.status("p1", "nope")
        assert status.available is False
        assert status.reason == ErrorKind.MODEL_NOT_FOUND

    def test_snapshot_lists_every_model(self, ledger) -> None:
        registry = _registry_with_caps()
        limiter = RateLimiter(lambda: registry, ledger)
        snapshot = limiter.snapshot()
        assert set(snapshot) == {"p1/m1", "p1/m2", "p1/m3", "p2/n1", "p2/n2"}
