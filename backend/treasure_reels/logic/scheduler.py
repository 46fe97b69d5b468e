"""Single-threaded deferred task queue driven by a virtual clock.

Continuations (free-spin chains, autoplay chains, bonus settlement) are
scheduled here instead of on ambient timers. Nothing runs until the owner
advances the clock, so the whole game stays single-threaded and tests can
step time deterministically.
"""
import heapq
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledTask:
    """A deferred callback with a cancellation token checked at fire time."""

    due_ms: int
    seq: int
    label: str = field(compare=False)
    callback: Callable[[], None] = field(compare=False, repr=False)
    cancelled: bool = field(default=False, compare=False)
    fired: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class EventQueue:
    """Min-heap of ScheduledTasks ordered by due time, then insertion order."""

    def __init__(self, start_ms: int = 0):
        self._now_ms = start_ms
        self._heap: list[ScheduledTask] = []
        self._counter = itertools.count()

    @property
    def now_ms(self) -> int:
        return self._now_ms

    def schedule(self, delay_ms: int, callback: Callable[[], None], label: str = "") -> ScheduledTask:
        task = ScheduledTask(
            due_ms=self._now_ms + max(0, delay_ms),
            seq=next(self._counter),
            label=label,
            callback=callback,
        )
        heapq.heappush(self._heap, task)
        logger.debug("scheduled %s at t=%d", label, task.due_ms)
        return task

    def pending(self) -> list[ScheduledTask]:
        return sorted(t for t in self._heap if t.pending)

    def next_due_ms(self) -> int | None:
        self._drop_cancelled()
        return self._heap[0].due_ms if self._heap else None

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward by delta_ms, firing due tasks. Returns count fired."""
        return self.advance_to(self._now_ms + delta_ms)

    def advance_to(self, target_ms: int) -> int:
        """Fire every task due at or before target_ms, in order."""
        fired = 0
        while True:
            self._drop_cancelled()
            if not self._heap or self._heap[0].due_ms > target_ms:
                break
            task = heapq.heappop(self._heap)
            self._now_ms = max(self._now_ms, task.due_ms)
            task.fired = True
            logger.debug("firing %s at t=%d", task.label, self._now_ms)
            task.callback()
            fired += 1
        self._now_ms = max(self._now_ms, target_ms)
        return fired

    def run_until_idle(self, max_tasks: int = 100_000) -> int:
        """Fire tasks until the queue is empty. Guards against runaway chains."""
        fired = 0
        while fired < max_tasks:
            due = self.next_due_ms()
            if due is None:
                break
            fired += self.advance_to(due)
        return fired

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
