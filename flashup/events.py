"""Signals, a simulated millisecond event loop and timers."""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


class Signal:
    """A list of handlers, called in the order they were connected."""

    def __init__(self) -> None:
        self._handlers: list[Callable[..., Any]] = []

    def connect(self, handler: Callable[..., Any]) -> None:
        self._handlers.append(handler)

    def disconnect(self, handler: Callable[..., Any]) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            raise ValueError("handler is not connected") from None

    def emit(self, *args: Any) -> None:
        for handler in list(self._handlers):
            handler(*args)

    def __len__(self) -> int:
        return len(self._handlers)


@dataclass(order=True)
class _Call:
    due: int
    seq: int
    callback: Callable[[], Any] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class EventLoop:
    """Runs scheduled callbacks against a virtual clock counted in milliseconds."""

    def __init__(self) -> None:
        self._queue: list[_Call] = []
        self._seq = itertools.count()
        self._now = 0

    @property
    def now(self) -> int:
        return self._now

    @property
    def pending(self) -> int:
        return sum(not call.cancelled for call in self._queue)

    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> _Call:
        if delay_ms < 0:
            raise ValueError("delay must not be negative")
        call = _Call(self._now + delay_ms, next(self._seq), callback)
        heapq.heappush(self._queue, call)
        return call

    def cancel(self, handle: _Call) -> None:
        handle.cancelled = True

    def _pop_next(self, limit: Optional[int]) -> Optional[_Call]:
        while self._queue:
            head = self._queue[0]
            if head.cancelled:
                heapq.heappop(self._queue)
                continue
            if limit is not None and head.due > limit:
                return None
            return heapq.heappop(self._queue)
        return None

    def advance(self, ms: int) -> int:
        """Move the clock forward by ``ms``, running every callback that falls due."""
        if ms < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + ms
        ran = 0
        while (call := self._pop_next(target)) is not None:
            self._now = call.due
            call.callback()
            ran += 1
        self._now = target
        return ran

    def run_until_idle(self, max_steps: int = 10_000) -> int:
        """Run callbacks in time order until none are left or ``max_steps`` have run."""
        ran = 0
        while ran < max_steps and (call := self._pop_next(None)) is not None:
            self._now = max(self._now, call.due)
            call.callback()
            ran += 1
        return ran


class Timer:
    """A single-shot or repeating timer on an :class:`EventLoop`."""

    def __init__(
        self,
        loop: EventLoop,
        callback: Optional[Callable[[], Any]] = None,
        *,
        single_shot: bool = False,
        interval_ms: int = 0,
    ) -> None:
        self._loop = loop
        self.single_shot = single_shot
        self.interval_ms = interval_ms
        self.timeout = Signal()
        self._handle: Optional[_Call] = None
        if callback is not None:
            self.timeout.connect(callback)

    def start(self, interval_ms: Optional[int] = None) -> None:
        """Start or restart the timer."""
        self.stop()
        if interval_ms is not None:
            self.interval_ms = interval_ms
        self._handle = self._loop.call_later(self.interval_ms, self._fire)

    def stop(self) -> None:
        if self._handle is not None:
            self._loop.cancel(self._handle)
            self._handle = None

    def is_active(self) -> bool:
        return self._handle is not None

    def _fire(self) -> None:
        self._handle = None
        if not self.single_shot:
            self._handle = self._loop.call_later(self.interval_ms, self._fire)
        self.timeout.emit()