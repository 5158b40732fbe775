"""Observable state and cancellable query subscriptions."""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, List, Optional, TypeVar

from .resource import Error, Loading, Resource, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class ReadOnlyStateFlow(Generic[T]):
    """Read side of a StateFlow handed to consumers."""

    def __init__(self, flow: "StateFlow[T]"):
        self._flow = flow

    @property
    def value(self) -> T:
        return self._flow.value

    def subscribe(self) -> AsyncIterator[T]:
        return self._flow.subscribe()


class StateFlow(Generic[T]):
    """Holds the latest value and wakes subscribers when it changes.

    Subscribers get the current value first, then later values. Delivery is
    conflated: a slow subscriber only sees the most recent value, never a
    backlog. Assigning a value equal to the current one is a no-op.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._version = 0
        self._waiters: List[asyncio.Future] = []

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new: T) -> None:
        if new == self._value:
            return
        self._value = new
        self._version += 1
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)

    def as_read_only(self) -> ReadOnlyStateFlow[T]:
        return ReadOnlyStateFlow(self)

    async def subscribe(self) -> AsyncIterator[T]:
        seen = -1
        while True:
            if self._version != seen:
                seen = self._version
                yield self._value
                continue
            fut = asyncio.get_running_loop().create_future()
            self._waiters.append(fut)
            await fut


class Subscription(Generic[T]):
    """A live query: an async stream of resources plus its cancel handle.

    The source runs in one background task started on creation. After
    ``cancel()`` returns, iteration ends and nothing further is delivered,
    even values the source had already produced.
    """

    def __init__(self, source: AsyncIterator[Resource[T]], name: str = "subscription"):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self._pump(source))

    async def _pump(self, source: AsyncIterator[Resource[T]]) -> None:
        try:
            async for item in source:
                if self._cancelled:
                    break
                self._queue.put_nowait(item)
        finally:
            self._queue.put_nowait(_CLOSED)

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._task.done()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()
        self._queue.put_nowait(_CLOSED)
        logger.debug("Cancelled %s", self.name)

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> Resource[T]:
        if self._cancelled:
            raise StopAsyncIteration
        item: Any = await self._queue.get()
        if item is _CLOSED or self._cancelled:
            raise StopAsyncIteration
        return item

    async def first(self, predicate: Optional[Callable[[Resource[T]], bool]] = None) -> Resource[T]:
        async for item in self:
            if predicate is None or predicate(item):
                return item
        raise LookupError(f"{self.name} ended without a matching value")


async def poll(fetch: Callable[[], Awaitable[Result[T]]], interval: float) -> AsyncIterator[Resource[T]]:
    """Emit Loading, then the query result whenever it differs from the last one.

    An Error from ``fetch`` is emitted once and ends the stream.
    """
    yield Loading()
    previous: Any = _CLOSED
    while True:
        result = await fetch()
        if isinstance(result, Error):
            yield result
            return
        if result.value != previous:
            previous = result.value
            yield result
        await asyncio.sleep(interval)
