"""
Async concurrency limiter

Admits at most a configurable number of tasks to run at once on the running
event loop and queues the rest in arrival order. The ceiling can be changed
while tasks are in flight.
"""

import asyncio
import functools
import inspect
import logging
import math
import numbers
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union

from ..observability.metrics import get_metrics
from ..observability.tracer import add_event, trace_operation
from .errors import InvalidConcurrency, QueueCleared

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

UNBOUNDED = math.inf

Concurrency = Union[int, float]

# Stands in for an omitted ceiling so it is rejected like any other bad value
_MISSING: Any = object()


def validate_concurrency(value: Any) -> Concurrency:
    """
    Validate a concurrency ceiling

    Args:
        value: Candidate ceiling

    Returns:
        The ceiling as an int, or UNBOUNDED

    Raises:
        InvalidConcurrency: If value is not a positive integer or UNBOUNDED
    """
    if value is _MISSING:
        raise InvalidConcurrency(
            "Expected `concurrency` to be an integer from 1 and up or UNBOUNDED, "
            "got nothing"
        )

    if isinstance(value, bool):
        valid = False
    elif isinstance(value, numbers.Integral):
        valid = value > 0
    else:
        valid = isinstance(value, float) and value == UNBOUNDED

    if not valid:
        raise InvalidConcurrency(
            "Expected `concurrency` to be an integer from 1 and up or UNBOUNDED, "
            f"got {value!r}"
        )

    return UNBOUNDED if isinstance(value, float) else int(value)


@dataclass
class LimiterStats:
    """Statistics for limiter usage"""

    name: str
    concurrency: Concurrency
    active_count: int
    pending_count: int
    total_submitted: int
    total_completed: int
    total_failed: int
    total_discarded: int
    average_run_time: float
    max_run_time: float

    @property
    def utilization(self) -> float:
        """Current utilization as percentage of the ceiling"""
        if self.concurrency == UNBOUNDED:
            return 0.0
        return (self.active_count / self.concurrency) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary"""
        return {
            "name": self.name,
            "concurrency": self.concurrency,
            "active_count": self.active_count,
            "pending_count": self.pending_count,
            "utilization_percent": self.utilization,
            "total_submitted": self.total_submitted,
            "total_completed": self.total_completed,
            "total_failed": self.total_failed,
            "total_discarded": self.total_discarded,
            "average_run_time": self.average_run_time,
            "max_run_time": self.max_run_time,
        }


@dataclass(eq=False)
class _Ticket:
    """A submission waiting for a free slot"""

    ticket_id: int
    fn: Callable[..., Any]
    args: tuple
    kwargs: dict[str, Any]
    future: asyncio.Future


class Limiter:
    """
    Concurrency-limiting gate for async tasks

    Features:
    - Strict FIFO admission of queued submissions
    - Ceiling adjustable at runtime
    - Sync and async task bodies settle the same way
    - Usage statistics and Prometheus metrics

    Every submission is admitted one event loop tick after submit() is
    called, so active_count stays 0 until the loop has run once.
    """

    def __init__(
        self,
        concurrency: Concurrency = _MISSING,
        *,
        name: str = "unnamed",
        reject_on_clear: bool = False,
    ):
        """
        Initialize limiter

        Args:
            concurrency: Maximum number of tasks running at once, or UNBOUNDED
            name: Name for identification, logging and metric labels
            reject_on_clear: Fail discarded futures with QueueCleared in clear_queue()

        Raises:
            InvalidConcurrency: If concurrency is missing, not a positive
                integer and not UNBOUNDED
        """
        self._concurrency = validate_concurrency(concurrency)
        self.name = name
        self.reject_on_clear = reject_on_clear

        self._queue: deque[_Ticket] = deque()
        self._active_count = 0
        self._admitting = False
        self._running: set[asyncio.Task] = set()
        self._idle_waiters: list[asyncio.Future] = []

        self._next_ticket_id = 0
        self._total_submitted = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_discarded = 0
        self._total_run_time = 0.0
        self._max_run_time = 0.0

        metrics = get_metrics()
        if metrics is not None:
            metrics.record_concurrency(self.name, self._concurrency)

    def __repr__(self) -> str:
        return (
            f"<Limiter name={self.name!r} concurrency={self._concurrency} "
            f"active={self._active_count} pending={len(self._queue)}>"
        )

    @property
    def active_count(self) -> int:
        """Number of tasks currently running"""
        return self._active_count

    @property
    def pending_count(self) -> int:
        """Number of submissions waiting for a slot, excluding cancelled ones"""
        return len(self._queue)

    @property
    def concurrency(self) -> Concurrency:
        """Current concurrency ceiling"""
        return self._concurrency

    @concurrency.setter
    def concurrency(self, value: Concurrency) -> None:
        new_value = validate_concurrency(value)
        old_value = self._concurrency
        self._concurrency = new_value

        logger.info(
            f"Limiter '{self.name}' concurrency changed from {old_value} to {new_value}"
        )
        metrics = get_metrics()
        if metrics is not None:
            metrics.record_concurrency(self.name, new_value, changed=True)
        add_event(
            "taskgate.concurrency_changed",
            {"limiter.name": self.name, "old": old_value, "new": new_value},
        )

        self._admit_pending()

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> asyncio.Future:
        """
        Submit a task to run once a slot is free

        Args:
            fn: Coroutine function, awaitable-returning function or plain function
            *args: Positional arguments for fn
            **kwargs: Keyword arguments for fn

        Returns:
            Future settled with the task's result or exception

        Raises:
            RuntimeError: If called without a running event loop
        """
        loop = asyncio.get_running_loop()

        ticket = _Ticket(
            ticket_id=self._next_ticket_id,
            fn=fn,
            args=args,
            kwargs=kwargs,
            future=loop.create_future(),
        )
        self._next_ticket_id += 1
        self._total_submitted += 1
        self._queue.append(ticket)
        ticket.future.add_done_callback(functools.partial(self._on_ticket_done, ticket))

        logger.debug(
            f"Limiter '{self.name}' queued task (id={ticket.ticket_id}, "
            f"pending={len(self._queue)})"
        )
        metrics = get_metrics()
        if metrics is not None:
            metrics.record_task_submitted(self.name)
            metrics.update_queue_state(self.name, self._active_count, len(self._queue))

        loop.call_soon(self._admit_pending)
        return ticket.future

    def __call__(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> asyncio.Future:
        return self.submit(fn, *args, **kwargs)

    async def map(self, iterable: Iterable[T], fn: Callable[[T], Any]) -> list[Any]:
        """
        Run fn once per item under this limiter

        Args:
            iterable: Items to process
            fn: Task applied to each item

        Returns:
            Results in input order
        """
        with trace_operation("taskgate.map", {"limiter.name": self.name}) as span:
            futures = [self.submit(fn, item) for item in iterable]
            span.set_attribute("map.items", len(futures))
            return list(await asyncio.gather(*futures))

    async def on_idle(self) -> None:
        """Wait until no task is queued or running"""
        if self._is_idle():
            return

        waiter = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter

    def clear_queue(self) -> None:
        """
        Discard every queued submission

        Running tasks are not affected. Discarded futures are left pending,
        or failed with QueueCleared when reject_on_clear is set.
        """
        discarded = list(self._queue)
        self._queue.clear()
        self._total_discarded += len(discarded)

        if self.reject_on_clear:
            for ticket in discarded:
                if not ticket.future.done():
                    ticket.future.set_exception(
                        QueueCleared(f"Limiter '{self.name}' cleared its queue")
                    )

        logger.info(f"Limiter '{self.name}' discarded {len(discarded)} queued tasks")
        metrics = get_metrics()
        if metrics is not None:
            metrics.record_tasks_discarded(self.name, len(discarded))
            metrics.update_queue_state(self.name, self._active_count, 0)
        add_event(
            "taskgate.queue_cleared",
            {"limiter.name": self.name, "discarded": len(discarded)},
        )

        self._notify_if_idle()

    def get_stats(self) -> LimiterStats:
        """Get detailed limiter statistics"""
        finished = self._total_completed + self._total_failed
        average_run_time = self._total_run_time / finished if finished else 0.0

        return LimiterStats(
            name=self.name,
            concurrency=self._concurrency,
            active_count=self._active_count,
            pending_count=len(self._queue),
            total_submitted=self._total_submitted,
            total_completed=self._total_completed,
            total_failed=self._total_failed,
            total_discarded=self._total_discarded,
            average_run_time=average_run_time,
            max_run_time=self._max_run_time,
        )

    def _is_idle(self) -> bool:
        return not self._queue and self._active_count == 0

    def _admit_pending(self) -> None:
        """Start queued tickets while there is room under the ceiling"""
        # A task body may release or resize synchronously; the outer pass picks that up.
        if self._admitting:
            return

        self._admitting = True
        try:
            while self._queue and self._active_count < self._concurrency:
                ticket = self._queue.popleft()
                if ticket.future.done():
                    logger.debug(
                        f"Limiter '{self.name}' skipped cancelled task (id={ticket.ticket_id})"
                    )
                    continue
                self._start(ticket)
        finally:
            self._admitting = False

        metrics = get_metrics()
        if metrics is not None:
            metrics.update_queue_state(self.name, self._active_count, len(self._queue))

        self._notify_if_idle()

    def _start(self, ticket: _Ticket) -> None:
        self._active_count += 1
        started_at = time.time()

        logger.debug(
            f"Limiter '{self.name}' started task (id={ticket.ticket_id}, "
            f"active={self._active_count})"
        )

        try:
            result = ticket.fn(*ticket.args, **ticket.kwargs)
        except asyncio.CancelledError:
            self._settle(ticket, started_at, cancelled=True)
            return
        except Exception as e:
            self._settle(ticket, started_at, exception=e)
            return
        except BaseException as e:
            # KeyboardInterrupt, SystemExit: free the slot, then let it propagate
            self._settle(ticket, started_at, exception=e)
            raise

        if not inspect.isawaitable(result):
            self._settle(ticket, started_at, result=result)
            return

        task = asyncio.ensure_future(result)
        self._running.add(task)
        task.add_done_callback(functools.partial(self._on_task_done, ticket, started_at))

    def _on_ticket_done(self, ticket: _Ticket, future: asyncio.Future) -> None:
        """Drop a submission its caller cancelled while it was still queued"""
        if not future.cancelled() or ticket not in self._queue:
            return

        self._queue.remove(ticket)
        logger.debug(
            f"Limiter '{self.name}' dropped cancelled task (id={ticket.ticket_id})"
        )
        metrics = get_metrics()
        if metrics is not None:
            metrics.update_queue_state(self.name, self._active_count, len(self._queue))

        self._notify_if_idle()

    def _on_task_done(self, ticket: _Ticket, started_at: float, task: asyncio.Future) -> None:
        self._running.discard(task)

        if task.cancelled():
            self._settle(ticket, started_at, cancelled=True)
            return

        exception = task.exception()
        if exception is not None:
            self._settle(ticket, started_at, exception=exception)
        else:
            self._settle(ticket, started_at, result=task.result())

    def _settle(
        self,
        ticket: _Ticket,
        started_at: float,
        *,
        result: Any = None,
        exception: Optional[BaseException] = None,
        cancelled: bool = False,
    ) -> None:
        run_time = time.time() - started_at
        failed = cancelled or exception is not None

        if isinstance(exception, StopIteration):
            # Futures cannot carry StopIteration
            wrapped = RuntimeError("Task raised StopIteration")
            wrapped.__cause__ = exception
            exception = wrapped

        future = ticket.future
        if future.done():
            logger.debug(
                f"Limiter '{self.name}' task finished after its caller gave up "
                f"(id={ticket.ticket_id})"
            )
        elif cancelled:
            future.cancel()
        elif exception is not None:
            future.set_exception(exception)
        else:
            future.set_result(result)

        if failed:
            self._total_failed += 1
        else:
            self._total_completed += 1
        self._total_run_time += run_time
        self._max_run_time = max(self._max_run_time, run_time)

        logger.debug(
            f"Limiter '{self.name}' released task (id={ticket.ticket_id}, "
            f"status={'failure' if failed else 'success'}, run_time={run_time:.3f}s)"
        )
        metrics = get_metrics()
        if metrics is not None:
            metrics.record_task_completed(
                self.name, "failure" if failed else "success", run_time
            )

        self._active_count -= 1
        self._admit_pending()

    def _notify_if_idle(self) -> None:
        if not self._is_idle() or not self._idle_waiters:
            return

        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


def limit_function(
    fn: Optional[Callable[..., Awaitable[R]]] = None,
    *,
    concurrency: Concurrency = _MISSING,
    name: Optional[str] = None,
    reject_on_clear: bool = False,
):
    """
    Bind a coroutine function to its own limiter

    Usable directly, limit_function(fetch, concurrency=2), or as a decorator,
    @limit_function(concurrency=2). The limiter is exposed as wrapper.limiter.

    Args:
        fn: Coroutine function to limit
        concurrency: Limiter ceiling
        name: Limiter name (defaults to the function's qualified name)
        reject_on_clear: Passed through to the Limiter

    Raises:
        InvalidConcurrency: If concurrency is missing or invalid
        TypeError: If fn is not a coroutine function
    """
    validate_concurrency(concurrency)

    def decorator(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(
                f"limit_function() expects a coroutine function, got {func!r}"
            )

        limiter = Limiter(
            concurrency,
            name=name or func.__qualname__,
            reject_on_clear=reject_on_clear,
        )

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            return await limiter.submit(func, *args, **kwargs)

        wrapper.limiter = limiter
        return wrapper

    if fn is None:
        return decorator
    return decorator(fn)
