"""
Request execution: attempts, retries and fallback for one logical request
"""

import asyncio
import time
import traceback
import uuid
from typing import Callable, List, Optional, Set, Tuple

from .credentials import CredentialProvider
from .errors import NoCandidateAvailable, ProviderError
from .failure_classifier import FailureClassifier
from .fallback import FallbackOrchestrator
from .registry import ProviderRegistry
from .selector import ModelSelector
from .usage_ledger import UsageLedger
from ..adapters.base import CanonicalRequest
from ..models.data_classes import (
    AttemptOutcome, Candidate, RequestOptions, RequestResult, TaskProfile
)
from ..models.enums import ErrorKind, RequestState
from ..utils.logging import setup_logging

logger = setup_logging()


class RequestExecutor:
    """Drives one logical request to a terminal state.

    selecting -> attempting -> (retrying | falling_back) -> succeeded | exhausted,
    or cancelled when the cancel event is set at a decision point.
    """

    def __init__(self, registry_source: Callable[[], ProviderRegistry],
                 selector: ModelSelector, fallback: FallbackOrchestrator,
                 ledger: UsageLedger, client, credentials: CredentialProvider,
                 transaction_logger=None):
        self._registry_source = registry_source
        self.selector = selector
        self.fallback = fallback
        self.ledger = ledger
        self.client = client
        self.credentials = credentials
        self.transaction_logger = transaction_logger

    async def execute(self, profile: TaskProfile, messages: List,
                      options: Optional[RequestOptions] = None,
                      cancel_event: Optional[asyncio.Event] = None,
                      request_id: Optional[str] = None,
                      client_id: Optional[str] = None) -> RequestResult:
        """
        Run a request until it succeeds, exhausts every candidate or is cancelled

        Args:
            profile: Task profile used for selection
            messages: Chat messages to send
            options: Per-request overrides
            cancel_event: Checked at every retry/fallback decision point
            request_id: Identifier for logs (generated if omitted)
            client_id: Caller identifier for the transaction log

        Returns:
            RequestResult carrying the full ordered attempt history
        """
        start_time = time.monotonic()
        # One snapshot for the whole request; a reload mid-request does not affect it
        registry = self._registry_source()
        result = RequestResult(
            request_id=request_id or str(uuid.uuid4()),
            state=RequestState.SELECTING,
            task_kind=profile.kind,
        )

        try:
            await self._run(result, registry, profile, messages, options, cancel_event)
        finally:
            result.total_time_ms = int((time.monotonic() - start_time) * 1000)

        logger.info("Request finished",
                   request_id=result.request_id,
                   state=result.state.value,
                   provider=result.provider_used,
                   model=result.model_used,
                   attempts=len(result.attempts),
                   failure_reason=result.failure_reason.value if result.failure_reason else None,
                   total_time_ms=result.total_time_ms)

        if self.transaction_logger is not None:
            await self.transaction_logger.log_result(result, client_id=client_id)

        return result

    async def _run(self, result: RequestResult, registry: ProviderRegistry,
                   profile: TaskProfile, messages: List,
                   options: Optional[RequestOptions],
                   cancel_event: Optional[asyncio.Event]):
        settings = registry.settings
        max_retries = settings.max_retries
        timeout = settings.request_timeout_seconds
        cross_provider = settings.auto_fallback
        if options is not None:
            if options.max_retries is not None:
                max_retries = options.max_retries
            if options.timeout_seconds is not None:
                timeout = options.timeout_seconds
            if options.cross_provider_fallback is not None:
                cross_provider = options.cross_provider_fallback

        if self._cancelled(cancel_event):
            self._finish_cancelled(result)
            return

        try:
            candidate = self.selector.select_candidate(profile, options, registry)
        except NoCandidateAvailable as e:
            result.state = RequestState.EXHAUSTED
            result.failure_reason = ErrorKind.NO_CANDIDATE_AVAILABLE
            result.message = str(e)
            return

        attempted: Set[Tuple[str, str]] = set()
        # Each hop tries a pair not tried before, so this bound is never the limiting factor
        max_hops = registry.total_chain_length() + 1
        hops = 0

        while candidate is not None and hops < max_hops:
            hops += 1
            attempted.add(candidate.key)
            retries = 0

            while True:
                result.state = RequestState.ATTEMPTING
                outcome = await self._attempt(result, registry, candidate, profile, messages, options, timeout)
                result.attempts.append(outcome)

                if outcome.success:
                    return

                strategy = FailureClassifier.get_strategy(outcome.error_kind)
                if not strategy.retryable or retries >= max_retries:
                    break

                if self._cancelled(cancel_event):
                    self._finish_cancelled(result)
                    return

                retries += 1
                delay = settings.retry_delay_ms / 1000 * retries
                result.state = RequestState.RETRYING
                logger.info("Retrying after wait",
                           request_id=result.request_id,
                           provider=candidate.provider,
                           model=candidate.model,
                           error_kind=outcome.error_kind.value,
                           wait_seconds=delay,
                           retry=retries)

                if await self._sleep(delay, cancel_event):
                    self._finish_cancelled(result)
                    return

            if self._cancelled(cancel_event):
                self._finish_cancelled(result)
                return

            result.state = RequestState.FALLING_BACK
            candidate = self.fallback.next_candidate(
                candidate.provider, candidate.model,
                cross_provider_allowed=cross_provider,
                attempted=attempted,
                profile=profile,
                options=options,
                registry=registry,
            )

        last = result.attempts[-1] if result.attempts else None
        result.state = RequestState.EXHAUSTED
        result.failure_reason = ErrorKind.ALL_CANDIDATES_EXHAUSTED
        result.message = (
            f"All {len(result.candidates_tried)} candidates failed after {len(result.attempts)} attempts"
            + (f"; last error: {last.error_message}" if last is not None and last.error_message else "")
        )
        logger.error("All candidates exhausted",
                    request_id=result.request_id,
                    candidates_tried=len(result.candidates_tried),
                    total_attempts=len(result.attempts),
                    last_error_kind=last.error_kind.value if last is not None and last.error_kind else None)

    async def _attempt(self, result: RequestResult, registry: ProviderRegistry,
                       candidate: Candidate, profile: TaskProfile, messages: List,
                       options: Optional[RequestOptions], timeout: float) -> AttemptOutcome:
        attempt_number = len(result.attempts) + 1
        provider = registry.get_provider(candidate.provider)
        model = registry.get_model(candidate.provider, candidate.model)
        started = time.monotonic()

        logger.info("Attempt",
                   request_id=result.request_id,
                   attempt=attempt_number,
                   provider=candidate.provider,
                   model=candidate.model,
                   tier=candidate.tier.value)

        try:
            adapter = self.client.get_adapter(provider)
            credential = self.credentials.resolve(provider.credential)
            request = CanonicalRequest(
                model=candidate.model,
                messages=messages,
                options=options.generation if options is not None else None,
            )
            response = await asyncio.wait_for(
                adapter.complete(request, credential, timeout), timeout=timeout
            )

        except ProviderError as e:
            return await self._failed(result, candidate, profile, attempt_number, started, e.kind, str(e))
        except asyncio.TimeoutError:
            return await self._failed(result, candidate, profile, attempt_number, started,
                                      ErrorKind.NETWORK_ERROR, f"Attempt timed out after {timeout}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Unexpected error during attempt",
                        request_id=result.request_id,
                        attempt=attempt_number,
                        provider=candidate.provider,
                        model=candidate.model,
                        error=str(e),
                        traceback=traceback.format_exc())
            return await self._failed(result, candidate, profile, attempt_number, started,
                                      ErrorKind.SERVER_ERROR, f"Unexpected error: {e}")

        latency_ms = (time.monotonic() - started) * 1000
        input_tokens = response.input_tokens or profile.estimated_input_tokens
        output_tokens = response.output_tokens

        await self.ledger.record(candidate.provider, candidate.model, input_tokens, output_tokens)

        result.state = RequestState.SUCCEEDED
        result.content = response.content
        result.provider_used = candidate.provider
        result.model_used = candidate.model
        result.finish_reason = response.finish_reason
        result.input_tokens = input_tokens
        result.output_tokens = output_tokens
        result.cost_usd = (input_tokens / 1_000_000 * model.input_cost_per_million
                           + output_tokens / 1_000_000 * model.output_cost_per_million)

        logger.info("SUCCESS",
                   request_id=result.request_id,
                   attempt=attempt_number,
                   provider=candidate.provider,
                   model=candidate.model,
                   latency_ms=round(latency_ms, 1),
                   input_tokens=input_tokens,
                   output_tokens=output_tokens)

        return AttemptOutcome(
            provider=candidate.provider,
            model=candidate.model,
            attempt=attempt_number,
            success=True,
            latency_ms=latency_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def _failed(self, result: RequestResult, candidate: Candidate, profile: TaskProfile,
                      attempt_number: int, started: float, kind: ErrorKind,
                      message: str) -> AttemptOutcome:
        latency_ms = (time.monotonic() - started) * 1000
        await self.ledger.record(candidate.provider, candidate.model,
                                 profile.estimated_input_tokens, 0, is_error=True)

        logger.warning("Attempt failed",
                      request_id=result.request_id,
                      attempt=attempt_number,
                      provider=candidate.provider,
                      model=candidate.model,
                      error_kind=kind.value,
                      severity=FailureClassifier.get_failure_severity(kind),
                      error=message[:300])

        return AttemptOutcome(
            provider=candidate.provider,
            model=candidate.model,
            attempt=attempt_number,
            success=False,
            latency_ms=latency_ms,
            error_kind=kind,
            error_message=message,
            input_tokens=profile.estimated_input_tokens,
        )

    @staticmethod
    def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    async def _sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Backoff sleep; returns True if the cancel event fired first"""
        if cancel_event is None:
            if delay > 0:
                await asyncio.sleep(delay)
            return False
        if delay <= 0:
            return cancel_event.is_set()
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    def _finish_cancelled(self, result: RequestResult):
        result.state = RequestState.CANCELLED
        result.failure_reason = ErrorKind.CANCELLED
        result.message = "Request cancelled"
        logger.info("Request cancelled", request_id=result.request_id,
                   attempts=len(result.attempts))
