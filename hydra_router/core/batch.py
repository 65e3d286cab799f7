"""
Bounded-concurrency batch execution
"""

import asyncio
import traceback
import uuid
from typing import Callable, List, Optional

from .executor import RequestExecutor
from .registry import ProviderRegistry
from ..models.data_classes import BatchRequest, RequestResult
from ..models.enums import ErrorKind, RequestState
from ..utils.logging import setup_logging

logger = setup_logging()


class BatchExecutor:
    """Runs many requests through a fixed pool of worker tasks.

    ``results[i]`` always belongs to ``requests[i]``, whatever the
    completion order. One item failing never affects its siblings.
    """

    def __init__(self, registry_source: Callable[[], ProviderRegistry], executor: RequestExecutor):
        self._registry_source = registry_source
        self.executor = executor

    async def run_batch(self, requests: List[BatchRequest], max_concurrency: int,
                        deadline_seconds: Optional[float] = None,
                        cancel_event: Optional[asyncio.Event] = None,
                        client_id: Optional[str] = None) -> List[RequestResult]:
        """
        Execute a batch of requests

        Args:
            requests: Items to run
            max_concurrency: Number of worker tasks
            deadline_seconds: Overall batch deadline; remaining work is cancelled
            cancel_event: External cancellation signal, shared with every item
            client_id: Caller identifier for the transaction log

        Returns:
            One result per request, in input order

        Raises:
            ConfigInvalid: no valid configuration is loaded
            ValueError: max_concurrency below 1
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        # Surfaces ConfigInvalid before any work is dispatched
        self._registry_source()

        batch_id = str(uuid.uuid4())
        cancel_event = cancel_event or asyncio.Event()
        results: List[Optional[RequestResult]] = [None] * len(requests)

        queue: asyncio.Queue = asyncio.Queue()
        for index in range(len(requests)):
            queue.put_nowait(index)

        worker_count = min(max_concurrency, len(requests))
        logger.info("Batch started",
                   batch_id=batch_id,
                   size=len(requests),
                   workers=worker_count,
                   deadline_seconds=deadline_seconds)

        async def worker():
            while True:
                if cancel_event.is_set():
                    return
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[index] = await self._run_item(
                    batch_id, index, requests[index], cancel_event, client_id
                )

        workers = [asyncio.create_task(worker()) for _ in range(worker_count)]

        try:
            if workers:
                done, pending = await asyncio.wait(workers, timeout=deadline_seconds)
                if pending:
                    logger.warning("Batch deadline reached, cancelling remaining items",
                                  batch_id=batch_id,
                                  deadline_seconds=deadline_seconds,
                                  active_workers=len(pending))
                    cancel_event.set()
                    # In-flight items stop at their next decision point
                    await asyncio.wait(pending)
        finally:
            unfinished = [w for w in workers if not w.done()]
            if unfinished:
                # run_batch itself was cancelled; no worker may outlive it
                logger.warning("Batch abandoned by caller, stopping workers",
                              batch_id=batch_id,
                              active_workers=len(unfinished))
                cancel_event.set()
                for w in unfinished:
                    w.cancel()
                await asyncio.gather(*unfinished, return_exceptions=True)

        for index, result in enumerate(results):
            if result is None:
                results[index] = RequestResult(
                    request_id=f"{batch_id}-{index}",
                    state=RequestState.CANCELLED,
                    task_kind=requests[index].profile.kind,
                    failure_reason=ErrorKind.CANCELLED,
                    message="Batch cancelled before the item was dispatched",
                )

        succeeded = sum(1 for r in results if r.success)
        logger.info("Batch finished",
                   batch_id=batch_id,
                   size=len(results),
                   succeeded=succeeded,
                   failed=len(results) - succeeded)
        return results

    async def _run_item(self, batch_id: str, index: int, request: BatchRequest,
                        cancel_event: asyncio.Event,
                        client_id: Optional[str]) -> RequestResult:
        request_id = f"{batch_id}-{index}"
        try:
            return await self.executor.execute(
                request.profile,
                request.messages,
                request.options,
                cancel_event=cancel_event,
                request_id=request_id,
                client_id=client_id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Batch item failed unexpectedly",
                        batch_id=batch_id,
                        index=index,
                        error=str(e),
                        traceback=traceback.format_exc())
            kind = getattr(e, "kind", ErrorKind.SERVER_ERROR)
            return RequestResult(
                request_id=request_id,
                state=RequestState.EXHAUSTED,
                task_kind=request.profile.kind,
                failure_reason=kind if isinstance(kind, ErrorKind) else ErrorKind.SERVER_ERROR,
                message=str(e),
            )
