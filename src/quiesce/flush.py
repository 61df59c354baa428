"""Flush engine. Drains passive effects until nothing is left.

One pass is not enough: a flushed effect may start work that only lands
after the event loop gets a turn. run_to_fixed_point() keeps alternating
"flush everything" and "yield one turn" until a pass finds nothing to do.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol

from quiesce.scheduler import AsyncioScheduler, HostScheduler


class Renderer(Protocol):
    """What the barrier needs from a rendering engine."""

    def batched_updates(self, fn: Callable[..., object], *args: object) -> object: ...

    def flush_passive_effects(self) -> bool: ...


class FlushEngine:
    __slots__ = ("_renderer", "_scheduler")

    def __init__(self, renderer: Renderer, scheduler: HostScheduler | None = None) -> None:
        self._renderer = renderer
        self._scheduler = scheduler if scheduler is not None else AsyncioScheduler()

    @property
    def scheduler(self) -> HostScheduler:
        return self._scheduler

    def flush_once(self) -> bool:
        """Flush effect generations until the renderer reports none left.

        Returns True if at least one generation was flushed.
        """
        did_flush = False
        while self._renderer.flush_passive_effects():
            did_flush = True
        return did_flush

    async def run_to_fixed_point(self) -> int:
        """Flush, yield a turn, repeat until a pass flushes nothing.

        Returns how many passes flushed work. Exceptions stop the loop and
        propagate unchanged.
        """
        passes = 1 if self.flush_once() else 0
        while True:
            await self._scheduler.next_turn()
            if not self.flush_once():
                return passes
            passes += 1

    def flush_to_fixed_point(
        self, on_settled: Callable[[BaseException | None], None]
    ) -> asyncio.Task[int]:
        """Callback form of run_to_fixed_point() for non-async callers.

        on_settled(None) runs at the fixed point, on_settled(error) on failure.
        Must be called with a running event loop.
        """
        task = asyncio.ensure_future(self.run_to_fixed_point())

        def _done(t: asyncio.Task[int]) -> None:
            if t.cancelled():
                on_settled(asyncio.CancelledError())
            else:
                on_settled(t.exception())

        task.add_done_callback(_done)
        return task
