"""One-directional hand-off from background producers to the foreground."""
from __future__ import annotations

import threading
from queue import Empty, Queue
from typing import Generic, List, TypeVar

T = TypeVar("T")


class ResultChannel(Generic[T]):
    """FIFO channel drained non-blockingly by the consumer.

    Closing a channel retires it: pending items are discarded and anything a
    lingering producer still puts is dropped.
    """

    def __init__(self) -> None:
        self._queue: Queue[T] = Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, item: T) -> bool:
        """Enqueue *item*; returns False when the channel has been retired."""

        if self._closed.is_set():
            return False
        self._queue.put(item)
        return True

    def try_receive(self) -> List[T]:
        """Return every pending item in arrival order without blocking."""

        items: List[T] = []
        if self._closed.is_set():
            return items
        while True:
            try:
                items.append(self._queue.get_nowait())
            except Empty:
                break
        return items

    def close(self) -> None:
        self._closed.set()
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break


__all__ = ["ResultChannel"]
