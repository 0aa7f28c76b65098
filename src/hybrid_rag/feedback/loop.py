"""
Background feedback and adaptation loop.

record() is the only call on the query path: a non-blocking enqueue. A
background task drains the queue in batches, asks the update policy for new
weights and publishes them as the next ranking-model version.
"""

import asyncio
import time
from typing import Optional, Protocol

from loguru import logger

from ..config import Config
from ..errors import ModelPublishRejected
from ..metrics import MetricsSink, NullMetrics
from ..models import FeedbackEvent, RankingModelState
from .model_state import ModelStateHolder
from .policy import FeedbackExample, PreferenceGradientPolicy, UpdatePolicy
from .sampler import FeedbackSampler


class ModelStateStore(Protocol):
    """Persistence for published model states (see RedisModelStateStore)."""

    async def save(self, state: RankingModelState) -> bool: ...

    async def load(self) -> RankingModelState | None: ...

    async def close(self) -> None: ...


class FeedbackLoop:
    """
    Feedback collector and model updater.

    Features:
    - Bounded queue; events are dropped (and counted) when it is full
    - Batches by size or flush interval, whichever comes first
    - Rejected or failing updates keep the last good model serving
    - Optional persistence of each published model

    record() must be called from the event loop thread.

    Example:
        loop = FeedbackLoop(holder, sampler)
        await loop.start()
        loop.record(FeedbackEvent(query_id=qid, selected=("c1",)))
        ...
        await loop.stop()
    """

    def __init__(
        self,
        holder: ModelStateHolder,
        sampler: FeedbackSampler | None = None,
        policy: UpdatePolicy | None = None,
        state_store: ModelStateStore | None = None,
        queue_size: int | None = None,
        batch_size: int | None = None,
        flush_interval_s: float | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.holder = holder
        self.sampler = sampler or FeedbackSampler()
        self.policy = policy or PreferenceGradientPolicy()
        self.state_store = state_store
        self.batch_size = Config.FEEDBACK_BATCH_SIZE if batch_size is None else batch_size
        self.flush_interval_s = (
            Config.FEEDBACK_FLUSH_INTERVAL_S if flush_interval_s is None else flush_interval_s
        )
        queue_size = Config.FEEDBACK_QUEUE_SIZE if queue_size is None else queue_size
        if queue_size <= 0 or self.batch_size <= 0 or self.flush_interval_s <= 0:
            raise ValueError(
                f"queue_size, batch_size and flush_interval_s must be > 0, got "
                f"{queue_size}, {self.batch_size}, {self.flush_interval_s}"
            )
        self.metrics = metrics or NullMetrics()

        self._queue: asyncio.Queue[FeedbackEvent] = asyncio.Queue(maxsize=queue_size)
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._collecting: list[FeedbackEvent] = []  # Batch taken off the queue, not yet processed
        self._process_lock = asyncio.Lock()

        # Counters
        self.received_count = 0
        self.dropped_count = 0
        self.unmatched_count = 0
        self.batch_count = 0
        self.publish_count = 0
        self.rejected_count = 0
        self._total_adaptation_ms = 0.0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._running

    def record(self, event: FeedbackEvent) -> bool:
        """
        Enqueue a feedback event without blocking.

        Returns:
            True if queued, False if dropped because the queue is full
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_count += 1
            self.metrics.increment("feedback.dropped")
            return False
        self.received_count += 1
        return True

    async def start(self) -> None:
        """Start the background update task."""
        if self._running:
            logger.warning("Feedback loop already running")
            return

        if self.state_store is not None:
            persisted = await self.state_store.load()
            if persisted is not None:
                self.holder.restore(persisted)

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Feedback loop started (batch={self.batch_size}, "
            f"interval={self.flush_interval_s}s, model v{self.holder.version})"
        )

    async def stop(self, drain: bool = True) -> None:
        """Stop the background task, optionally processing queued events first."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if drain:
            if self._collecting:
                batch, self._collecting = self._collecting, []
                await self._process(batch)
            await self.flush()
        logger.info("Feedback loop stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                batch = await self._next_batch()
                if batch:
                    await self._process(batch)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Feedback loop error: {e}")

    async def _next_batch(self) -> list[FeedbackEvent]:
        """Collect up to batch_size events, waiting at most flush_interval_s."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.flush_interval_s
        self._collecting = []
        while len(self._collecting) < self.batch_size:
            timeout = deadline - loop.time()
            if timeout <= 0:
                break
            try:
                self._collecting.append(
                    await asyncio.wait_for(self._queue.get(), timeout=timeout)
                )
            except asyncio.TimeoutError:
                break
        batch, self._collecting = self._collecting, []
        return batch

    async def flush(self) -> RankingModelState | None:
        """
        Process every queued event now.

        Returns:
            The last model state published during the flush, if any
        """
        published = None
        while not self._queue.empty():
            batch = []
            while len(batch) < self.batch_size and not self._queue.empty():
                batch.append(self._queue.get_nowait())
            published = await self._process(batch) or published
        return published

    async def _process(self, batch: list[FeedbackEvent]) -> RankingModelState | None:
        async with self._process_lock:
            start_time = time.perf_counter()
            self.batch_count += 1

            examples = []
            for event in batch:
                features = self.sampler.get(event.query_id)
                if features is None:
                    self.unmatched_count += 1
                    continue
                examples.append(FeedbackExample(event=event, features=features))

            if not examples:
                logger.debug(f"No sampled queries for {len(batch)} feedback events")
                return None

            state = self.holder.current
            try:
                try:
                    weights = self.policy.update(state, examples)
                except Exception as e:
                    raise ModelPublishRejected(f"update policy failed: {e}") from e
                published = self.holder.publish(weights, expected_version=state.version)
            except ModelPublishRejected as e:
                self.rejected_count += 1
                self.metrics.increment("feedback.publish_rejected")
                logger.warning(f"{e}; model v{self.holder.version} keeps serving")
                return None

            adaptation_ms = (time.perf_counter() - start_time) * 1000
            self.publish_count += 1
            self._total_adaptation_ms += adaptation_ms
            self.metrics.increment("feedback.published")
            self.metrics.observe("feedback.adaptation_ms", adaptation_ms)

            if self.state_store is not None:
                await self.state_store.save(published)

            return published

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "pending": self.pending,
            "received": self.received_count,
            "dropped": self.dropped_count,
            "unmatched": self.unmatched_count,
            "batches": self.batch_count,
            "published": self.publish_count,
            "rejected": self.rejected_count,
            "avg_adaptation_ms": (
                self._total_adaptation_ms / self.publish_count if self.publish_count else 0.0
            ),
            "model_version": self.holder.version,
        }
