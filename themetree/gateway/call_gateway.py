"""
Call Gateway: one shared, rate-limited, retrying queue in front of the model.

Every model call in an analysis run goes through one CallGateway instance:

    gateway = CallGateway(llm_client.acomplete, GatewayConfig())
    result = await gateway.submit(prompt, context="expansion")
    if result.ok:
        ...

`submit` never raises for model failures. It resolves with a GatewayResult
that carries the response text or a tagged error.
"""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Optional, Set

from themetree.config.analysis_config import GatewayConfig
from themetree.llm_client.errors import FailureKind, QueueClearedError, classify_failure

from .circuit_breaker import BreakerStatus, CircuitBreaker
from .clock import SYSTEM_CLOCK, Clock


ModelCaller = Callable[[str], Awaitable[str]]


@dataclass
class GatewayError:
    kind: str  # FailureKind value, or "cleared"
    message: str
    error_type: str
    attempts: int


@dataclass
class GatewayResult:
    ok: bool
    text: Optional[str] = None
    error: Optional[GatewayError] = None
    attempts: int = 0
    context: str = "general"


@dataclass(eq=False)
class QueueItem:
    id: int
    prompt: str
    context: str
    future: asyncio.Future
    retry_count: int = 0
    enqueued_at: float = 0.0


@dataclass
class GatewayStatus:
    queue_length: int
    active_requests: int
    total_processed: int
    total_failed: int
    total_queued: int
    average_wait_time: float
    max_queue_length: int
    max_active_observed: int
    pending_retries: int
    is_processing: bool
    max_concurrency: int
    breaker: BreakerStatus
    contexts: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def to_dict(self):
        return {
            "queue_length": self.queue_length,
            "active_requests": self.active_requests,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "total_queued": self.total_queued,
            "average_wait_time": self.average_wait_time,
            "max_queue_length": self.max_queue_length,
            "max_active_observed": self.max_active_observed,
            "pending_retries": self.pending_retries,
            "is_processing": self.is_processing,
            "max_concurrency": self.max_concurrency,
            "breaker": self.breaker.to_dict(),
            "contexts": self.contexts,
        }


class CallGateway:
    def __init__(
        self,
        caller: ModelCaller,
        config: Optional[GatewayConfig] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.caller = caller
        self.config = config or GatewayConfig()
        self.clock = clock or SYSTEM_CLOCK
        self.logger = logger or logging.getLogger(__name__)
        self.breaker = CircuitBreaker(
            failure_threshold=self.config.breaker_failure_threshold,
            cooldown=self.config.breaker_cooldown,
            clock=self.clock,
            logger=self.logger,
        )

        self.max_concurrency = self.config.max_concurrency
        self._queue: Deque[QueueItem] = deque()
        self._ids = itertools.count(1)
        self._processor: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._backing_off: Set[QueueItem] = set()
        self._slot_free = asyncio.Event()
        self._space_free = asyncio.Event()
        self._last_dispatch: Optional[float] = None

        self._active = 0
        self._active_by_context: Dict[str, int] = {}
        self._reset_counters()

    def _reset_counters(self):
        self._processed = 0
        self._failed = 0
        self._total_queued = 0
        self._max_queue_length = 0
        self._max_active_observed = 0
        self._wait_total = 0.0
        self._dispatch_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def submit(self, prompt: str, context: str = "general") -> GatewayResult:
        """
        Queue one model call and wait for its outcome.

        Args:
            prompt: Full prompt text handed to the model caller.
            context: Label used for per-context diagnostics.

        Returns:
            GatewayResult: the response text, or a tagged error once retries
            are exhausted, the failure is permanent, or the queue was cleared.
        """
        # Bounded queue: fresh work waits for room instead of being rejected
        while len(self._queue) >= self.config.max_queue_length:
            self._space_free.clear()
            await self._space_free.wait()

        loop = asyncio.get_running_loop()
        item = QueueItem(
            id=next(self._ids),
            prompt=prompt,
            context=context,
            future=loop.create_future(),
            enqueued_at=self.clock.monotonic(),
        )
        self._queue.append(item)
        self._total_queued += 1
        self._on_enqueued()
        self.logger.debug(
            f"[CallGateway] Enqueued #{item.id} ({context}), queue={len(self._queue)}"
        )
        if self._total_queued % self.config.summary_every == 0:
            self._log_summary()
        return await item.future

    def clear(self) -> int:
        """
        Resolve every waiting request with a QueueClearedError result and reset counters.

        In-flight calls are left to finish. Returns the number of requests cleared.
        """
        waiting = list(self._queue) + list(self._backing_off)
        self._queue.clear()
        self._backing_off.clear()
        error = QueueClearedError("Request queue cleared")
        for item in waiting:
            self._resolve_error(item, error, "cleared")
        self._reset_counters()
        self._space_free.set()
        self.logger.warning(f"[CallGateway] Cleared {len(waiting)} waiting requests")
        return len(waiting)

    def set_max_concurrency(self, limit: int) -> bool:
        if not 1 <= limit <= 20:
            self.logger.warning(
                f"[CallGateway] Ignoring max concurrency {limit}, must be between 1 and 20"
            )
            return False
        self.max_concurrency = limit
        self._slot_free.set()
        self.logger.info(f"[CallGateway] Max concurrency set to {limit}")
        return True

    def status(self) -> GatewayStatus:
        contexts: Dict[str, Dict[str, int]] = {}
        for item in self._queue:
            contexts.setdefault(item.context, {"waiting": 0, "active": 0})["waiting"] += 1
        for ctx, count in self._active_by_context.items():
            if count:
                contexts.setdefault(ctx, {"waiting": 0, "active": 0})["active"] = count
        return GatewayStatus(
            queue_length=len(self._queue),
            active_requests=self._active,
            total_processed=self._processed,
            total_failed=self._failed,
            total_queued=self._total_queued,
            average_wait_time=self._wait_total / self._dispatch_count if self._dispatch_count else 0.0,
            max_queue_length=self._max_queue_length,
            max_active_observed=self._max_active_observed,
            pending_retries=len(self._backing_off),
            is_processing=self._processor is not None and not self._processor.done(),
            max_concurrency=self.max_concurrency,
            breaker=self.breaker.status(),
            contexts=contexts,
        )

    # ------------------------------------------------------------------
    # Queue processing
    # ------------------------------------------------------------------
    def _on_enqueued(self):
        self._max_queue_length = max(self._max_queue_length, len(self._queue))
        if self._processor is None or self._processor.done():
            self._processor = asyncio.get_running_loop().create_task(self._process())

    async def _process(self):
        poll = self.config.breaker_poll_interval
        interval = self.config.min_request_interval
        while self._queue:
            if self.breaker.is_open():
                await self.clock.sleep(min(poll, self.breaker.remaining()))
                continue
            if self._active >= self.max_concurrency:
                self._slot_free.clear()
                await self._slot_free.wait()
                continue
            if self._last_dispatch is not None:
                wait = self._last_dispatch + interval - self.clock.monotonic()
                if wait > 0:
                    await self.clock.sleep(wait)
                    continue
            self._dispatch(self._queue.popleft())
            self._space_free.set()

    def _dispatch(self, item: QueueItem):
        now = self.clock.monotonic()
        self._last_dispatch = now
        self._active += 1
        self._max_active_observed = max(self._max_active_observed, self._active)
        self._active_by_context[item.context] = self._active_by_context.get(item.context, 0) + 1
        self._wait_total += now - item.enqueued_at
        self._dispatch_count += 1
        self.logger.debug(
            f"[CallGateway] Dispatching #{item.id} ({item.context}), "
            f"attempt {item.retry_count + 1}, active={self._active}"
        )
        task = asyncio.get_running_loop().create_task(self._execute(item))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, item: QueueItem):
        error: Optional[BaseException] = None
        text: Optional[str] = None
        try:
            text = await self.caller(item.prompt)
        except asyncio.CancelledError:
            self._release(item)
            self._resolve_error(item, QueueClearedError("Model call cancelled"), "cleared")
            raise
        except Exception as e:
            error = e
        self._release(item)

        if error is None:
            self.breaker.record_success()
            self._processed += 1
            self.logger.debug(f"[CallGateway] Completed #{item.id} ({item.context})")
            if not item.future.done():
                item.future.set_result(
                    GatewayResult(ok=True, text=text, attempts=item.retry_count + 1, context=item.context)
                )
            return

        kind = classify_failure(error)
        if kind == FailureKind.RETRYABLE:
            self.breaker.record_failure()
            if item.retry_count < self.config.max_retries:
                await self._retry_later(item, error)
                return
            self.logger.error(
                f"[CallGateway] #{item.id} ({item.context}) failed after "
                f"{item.retry_count + 1} attempts: {error}"
            )
        else:
            self.logger.error(f"[CallGateway] #{item.id} ({item.context}) permanent failure: {error}")
        self._resolve_error(item, error, kind.value)

    async def _retry_later(self, item: QueueItem, error: BaseException):
        item.retry_count += 1
        delay = min(
            self.config.backoff_max,
            self.config.backoff_base * (2 ** (item.retry_count - 1)),
        )
        self.logger.warning(
            f"[CallGateway] #{item.id} ({item.context}) retryable failure: {error}; "
            f"retry {item.retry_count}/{self.config.max_retries} in {delay:.1f}s"
        )
        self._backing_off.add(item)
        await self.clock.sleep(delay)
        if item not in self._backing_off:
            return
        self._backing_off.discard(item)
        if item.future.done():
            return
        item.enqueued_at = self.clock.monotonic()
        # Retries are always re-admitted, even when the queue is at its bound
        if self.config.retry_at_front:
            self._queue.appendleft(item)
        else:
            self._queue.append(item)
        self._on_enqueued()

    def _release(self, item: QueueItem):
        self._active -= 1
        self._active_by_context[item.context] -= 1
        self._slot_free.set()

    def _resolve_error(self, item: QueueItem, error: BaseException, kind: str):
        if item.future.done():
            return
        self._failed += 1
        item.future.set_result(
            GatewayResult(
                ok=False,
                error=GatewayError(
                    kind=kind,
                    message=str(error),
                    error_type=type(error).__name__,
                    attempts=item.retry_count + 1,
                ),
                attempts=item.retry_count + 1,
                context=item.context,
            )
        )

    def _log_summary(self):
        status = self.status()
        breakdown = ", ".join(
            f"{ctx}: {c['waiting']} waiting/{c['active']} active"
            for ctx, c in sorted(status.contexts.items())
        )
        self.logger.info(
            f"[CallGateway] Queue: {status.queue_length} waiting, {status.active_requests} active, "
            f"{status.total_processed} completed, {status.total_failed} failed"
            + (f" ({breakdown})" if breakdown else "")
        )
