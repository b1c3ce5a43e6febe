"""Closable FIFO channels and the worker pools that drain them."""

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ChannelClosed(Exception):
    """Raised by ``Channel.get`` once the channel is closed and drained."""


class Channel(Generic[T]):
    """A thread-safe FIFO queue that producers can close.

    After ``close()`` consumers keep receiving buffered items and then get
    ``ChannelClosed``. ``cancel()`` closes the channel and drops whatever is
    still buffered, so consumers stop at their next ``get``.
    """

    def __init__(self, maxsize: int = 0, name: str = "channel"):
        self.name = name
        self.maxsize = maxsize
        self._items: deque[T] = deque()
        self._closed = False
        self._cancelled = False
        self._mutex = threading.Lock()
        self._not_empty = threading.Condition(self._mutex)
        self._not_full = threading.Condition(self._mutex)

    @property
    def closed(self) -> bool:
        with self._mutex:
            return self._closed

    @property
    def cancelled(self) -> bool:
        with self._mutex:
            return self._cancelled

    def __len__(self) -> int:
        with self._mutex:
            return len(self._items)

    def put(self, item: T) -> bool:
        """Append an item, blocking while the channel is full.

        Returns False without enqueueing if the channel has been closed.
        """
        with self._not_full:
            while (
                not self._closed
                and self.maxsize > 0
                and len(self._items) >= self.maxsize
            ):
                self._not_full.wait()
            if self._closed:
                return False
            self._items.append(item)
            self._not_empty.notify()
            return True

    def get(self) -> T:
        """Remove and return the oldest item, blocking until one is available."""
        with self._not_empty:
            while not self._items and not self._closed:
                self._not_empty.wait()
            if not self._items:
                raise ChannelClosed(self.name)
            item = self._items.popleft()
            self._not_full.notify()
            return item

    def close(self) -> None:
        """Stop accepting items; buffered items are still delivered."""
        with self._mutex:
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

    def cancel(self) -> None:
        """Close the channel and discard everything still buffered."""
        with self._mutex:
            self._closed = True
            self._cancelled = True
            self._items.clear()
            self._not_empty.notify_all()
            self._not_full.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return


class WorkerPool(Generic[T]):
    """A fixed number of threads that each drain ``source`` into ``handler``.

    ``on_done`` runs exactly once, in the last worker to exit, after the
    source is exhausted and every handler call has returned. ``on_error``
    receives the item and the exception when a handler raises.
    """

    def __init__(
        self,
        name: str,
        size: int,
        source: Channel[T],
        handler: Callable[[T], None],
        on_done: Callable[[], None] | None = None,
        on_error: Callable[[T, Exception], None] | None = None,
    ):
        if size < 1:
            raise ValueError(f"{name}: worker count must be at least 1, got {size}")
        self.name = name
        self.size = size
        self.source = source
        self.handler = handler
        self.on_done = on_done
        self.on_error = on_error
        self._running = size
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    def start(self) -> "WorkerPool[T]":
        for i in range(self.size):
            thread = threading.Thread(
                target=self._work, name=f"{self.name}-{i}", daemon=True
            )
            self._threads.append(thread)
            thread.start()
        return self

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    @property
    def alive(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def _work(self) -> None:
        try:
            for item in self.source:
                try:
                    self.handler(item)
                except Exception as e:
                    logger.error(f"{self.name}: unexpected error on {item!r}: {e}", exc_info=True)
                    if self.on_error is not None:
                        self.on_error(item, e)
        finally:
            with self._lock:
                self._running -= 1
                last = self._running == 0
            if last and self.on_done is not None:
                self.on_done()
