"""Textual integration for quiesce. Opt-in — requires textual.

Lets act() drive effects that touch a running Textual app. Effects skip
themselves while the app is not running or its widgets are not mounted yet.

The flush loop always yields through the event loop, never through the app's
message queue: act_async() is often awaited from inside an app handler, and
a continuation queued behind that handler's message would never run while
the handler waits for it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine

from textual.css.query import NoMatches

from quiesce.act import Barrier
from quiesce.engine import Effect, Engine
from quiesce.scheduler import AsyncioScheduler, wait_deferred

_loop_scheduler = AsyncioScheduler()


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running


class TextualScheduler:
    """HostScheduler bound to a Textual app.

    defer() queues callback continuations behind the app's current message.
    next_turn() waits for one event-loop turn, so it is safe to await from
    inside the app's own handlers.
    """

    __slots__ = ("_app",)

    def __init__(self, app) -> None:
        self._app = app

    def defer(self, continuation: Callable[[], None]) -> None:
        if is_safe(self._app):
            self._app.call_next(continuation)
        else:
            asyncio.get_running_loop().call_soon(continuation)

    async def next_turn(self) -> None:
        await wait_deferred(_loop_scheduler)


async def _ignore_nomatch(coroutine: Coroutine[Any, Any, Any]) -> Any:
    try:
        return await coroutine
    except NoMatches:
        return None


def effect(app, engine: Engine, fn: Callable[[], Any]) -> Effect:
    """engine.effect() that safely touches Textual widgets.

    Skips while the app is not running and swallows NoMatches from widget
    queries, also inside coroutine effects. Any other exception propagates
    to whoever is flushing (or, for coroutine effects, is logged by the
    engine).
    """

    def _guarded():
        if not is_safe(app):
            return None
        try:
            result = fn()
        except NoMatches:
            return None
        if asyncio.iscoroutine(result):
            return _ignore_nomatch(result)
        return result

    return engine.effect(_guarded)


def barrier(app, engine: Engine, **kwargs: Any) -> Barrier:
    """Barrier for engine, bound to app."""
    return Barrier(engine, scheduler=TextualScheduler(app), **kwargs)
