"""Host scheduler: where the flush loop yields between passes.

A scheduler only has to run a continuation after the current synchronous
work and after the callbacks already queued on the event loop. next_turn()
turns that into an awaitable step for the flush loop.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class HostScheduler(Protocol):
    def defer(self, continuation: Callable[[], None]) -> None: ...

    async def next_turn(self) -> None: ...


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


async def wait_deferred(scheduler: HostScheduler) -> None:
    """Suspend until a continuation deferred through scheduler has run.

    The awaiting task is woken through the loop as well, so it resumes after
    anything the already-queued callbacks scheduled before the continuation.
    """
    future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
    scheduler.defer(lambda: _resolve(future))
    await future


class AsyncioScheduler:
    """HostScheduler backed by the running asyncio loop."""

    __slots__ = ()

    def defer(self, continuation: Callable[[], None]) -> None:
        asyncio.get_running_loop().call_soon(continuation)

    async def next_turn(self) -> None:
        await wait_deferred(self)

    def __repr__(self) -> str:
        return "AsyncioScheduler()"
