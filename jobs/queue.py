"""
In-process Task Queue for Ofie Assistant.

Delayed tasks are kept in a heap ordered by run-at time and consumed
by a small pool of asyncio workers. Delivery is at-least-once from the
handler's point of view, so handlers must be idempotent.
"""

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from conversation.models import new_id, utcnow

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(order=True)
class QueuedTask:
    """A unit of work waiting for its run-at time."""
    run_at: datetime
    seq: int
    name: str = field(compare=False)
    payload: Dict[str, Any] = field(compare=False, default_factory=dict)
    id: str = field(compare=False, default_factory=new_id)
    enqueued_at: datetime = field(compare=False, default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "payload": self.payload,
            "run_at": self.run_at.isoformat(),
            "enqueued_at": self.enqueued_at.isoformat(),
        }


class TaskQueue:
    """
    Delayed task queue with named handlers.

    Usage:
        queue.register("generate_response", pipeline.run)
        queue.enqueue("generate_response", {...})
        await queue.start()
    """

    def __init__(
        self,
        concurrency: int = 2,
        poll_interval: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.concurrency = max(1, concurrency)
        self.poll_interval = poll_interval
        self._clock = clock
        self._handlers: Dict[str, Handler] = {}
        self._heap: List[QueuedTask] = []
        self._seq = itertools.count()
        self._workers: List[asyncio.Task] = []
        self._wakeup = asyncio.Event()
        self._running = False
        self.processed = 0
        self.failed = 0

    def register(self, name: str, handler: Handler):
        """Register the coroutine function that consumes tasks named ``name``."""
        self._handlers[name] = handler
        logger.info(f"Task handler registered: {name}")

    def enqueue(
        self,
        name: str,
        payload: Optional[Dict[str, Any]] = None,
        delay: Optional[timedelta] = None,
        task_id: Optional[str] = None,
    ) -> QueuedTask:
        """
        Schedule a task.

        Args:
            name: Registered handler name
            payload: JSON-like arguments for the handler
            delay: Run no earlier than now + delay
            task_id: Stable id, so re-deliveries can be recognised

        Returns:
            The queued task
        """
        if name not in self._handlers:
            raise ValueError(f"No handler registered for task '{name}'")

        now = self._clock()
        task = QueuedTask(
            run_at=now + (delay or timedelta(0)),
            seq=next(self._seq),
            name=name,
            payload=dict(payload or {}),
            enqueued_at=now,
        )
        if task_id:
            task.id = task_id
        heapq.heappush(self._heap, task)
        self._wakeup.set()
        logger.debug(f"Enqueued {name} ({task.id}) for {task.run_at.isoformat()}")
        return task

    def pending(self) -> List[QueuedTask]:
        """Tasks not yet run, earliest first."""
        return sorted(self._heap)

    def __len__(self) -> int:
        return len(self._heap)

    def _pop_due(self, now: datetime) -> Optional[QueuedTask]:
        if self._heap and self._heap[0].run_at <= now:
            return heapq.heappop(self._heap)
        return None

    async def _execute(self, task: QueuedTask):
        handler = self._handlers[task.name]
        try:
            await handler(task.payload)
            self.processed += 1
        except Exception as e:
            self.failed += 1
            logger.error(f"Task {task.name} ({task.id}) failed: {e}", exc_info=True)

    async def run_due(self, now: Optional[datetime] = None) -> int:
        """
        Run every task due at ``now``, one at a time.

        Returns:
            Number of tasks executed
        """
        now = now or self._clock()
        count = 0
        while True:
            task = self._pop_due(now)
            if task is None:
                return count
            await self._execute(task)
            count += 1

    def _idle_timeout(self) -> float:
        if not self._heap:
            return self.poll_interval
        wait = (self._heap[0].run_at - self._clock()).total_seconds()
        return min(max(wait, 0.0), self.poll_interval)

    async def _worker(self, index: int):
        logger.info(f"Worker {index} started")
        while self._running:
            task = self._pop_due(self._clock())
            if task is None:
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=self._idle_timeout())
                except asyncio.TimeoutError:
                    pass
                continue
            await self._execute(task)
        logger.info(f"Worker {index} stopped")

    async def start(self):
        """Start the worker pool."""
        if self._running:
            return
        self._running = True
        self._wakeup = asyncio.Event()
        self._workers = [
            asyncio.create_task(self._worker(i)) for i in range(self.concurrency)
        ]
        logger.info(f"TaskQueue started with {self.concurrency} workers")

    async def stop(self):
        """Stop the worker pool; tasks still in the heap are kept."""
        if not self._running:
            return
        self._running = False
        self._wakeup.set()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(f"TaskQueue stopped ({len(self._heap)} tasks pending)")

    @property
    def is_running(self) -> bool:
        return self._running
