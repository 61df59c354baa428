"""act(): run one unit of interaction, then wait for rendering to settle.

Two entry points, chosen by the caller:

    barrier.act(fn)               fn is synchronous; effects are flushed
                                  once before act() returns.
    await barrier.act_async(fn)   fn returns an awaitable; effects and
                                  loop work are drained to a fixed point
                                  before the await completes.

Only the outermost act() on a barrier flushes. Nested calls settle as soon
as their own callback finishes and leave the flushing to the outer scope.

A coroutine callback given to act_async() runs up to its first suspension
inside the engine's batch, the same span a synchronous callback gets. The
rest of its body runs when the completion is awaited.

Quirk: act() performs a single flush pass, act_async() loops to a fixed
point. Synchronous callbacks are not expected to start async work.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Awaitable, Callable, Coroutine, Generator

from quiesce._scope import ScopeSnapshot, ScopeTracker
from quiesce.diagnostics import Diagnostics
from quiesce.flush import FlushEngine, Renderer
from quiesce.scheduler import HostScheduler

NOT_AWAITED_WARNING = (
    "You called act_async(...) without await. "
    "This could lead to unexpected testing behaviour, interleaving multiple act "
    "calls and mixing their scopes. You should - await act_async(...);"
)
RETURN_VALUE_WARNING = (
    "The callback passed to act(...) function must return None, "
    "or be passed to act_async(...) if it returns an awaitable. You returned %r"
)
AWAITED_SYNC_WARNING = (
    "Do not await the result of calling act(...) with sync logic, it is not awaitable."
)


def _discard(awaitable: object) -> None:
    close = getattr(awaitable, "close", None)
    if inspect.iscoroutine(awaitable) and close is not None:
        close()


class _EagerCoroutine:
    """Coroutine whose first step has already run.

    The first step runs in __init__, so the code before the first suspension
    executes wherever the wrapper is created (inside batched_updates). Awaiting
    the wrapper resumes the coroutine from there.
    """

    __slots__ = ("_coro", "_pending", "_done", "_value", "_error")

    def __init__(self, coro: Coroutine[Any, Any, Any]) -> None:
        self._coro = coro
        self._pending: Any = None
        self._done = False
        self._value: Any = None
        self._error: BaseException | None = None
        try:
            self._pending = coro.send(None)
        except StopIteration as stop:
            self._done = True
            self._value = stop.value
        except BaseException as exc:
            # Like an async function raising before its first await: the
            # error surfaces when awaited, not at call time.
            self._done = True
            self._error = exc

    def __await__(self) -> Generator[Any, Any, Any]:
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        if self._done:
            return self._value
        coro = self._coro
        pending = self._pending
        while True:
            try:
                sent = yield pending
            except GeneratorExit:
                coro.close()
                raise
            except BaseException as exc:
                try:
                    pending = coro.throw(exc)
                except StopIteration as stop:
                    return stop.value
                continue
            try:
                pending = coro.send(sent)
            except StopIteration as stop:
                return stop.value

    def close(self) -> None:
        self._coro.close()


def _start_eagerly(callback: Callable[[], Any]) -> Any:
    result = callback()
    if inspect.iscoroutine(result):
        return _EagerCoroutine(result)
    return result


class Barrier:
    """Synchronization barrier bound to one rendering engine.

    Each barrier owns its scope tracker, so independent engines (or tests)
    never see each other's nesting depth.
    """

    def __init__(
        self,
        renderer: Renderer,
        *,
        scheduler: HostScheduler | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self._renderer = renderer
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._scope = ScopeTracker(self._diagnostics)
        self._flusher = FlushEngine(renderer, scheduler)

    @property
    def depth(self) -> int:
        """Number of act() scopes currently open on this barrier."""
        return self._scope.depth

    @property
    def rendering(self) -> bool:
        return self._scope.rendering

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    def act(self, callback: Callable[[], None]) -> SyncCompletion:
        """Run callback as one batched update, then flush pending effects once."""
        snapshot = self._scope.enter()
        result = self._run_batched(callback, snapshot)

        if inspect.isawaitable(result):
            self._scope.exit(snapshot)
            _discard(result)
            raise TypeError(
                "act() callback returned an awaitable; use 'await act_async(...)' instead"
            )
        if result is not None:
            self._diagnostics.warn(RETURN_VALUE_WARNING, result)

        try:
            if self._scope.depth == 1:
                # Leaving the outermost scope: flush now.
                self._flusher.flush_once()
        finally:
            self._scope.exit(snapshot)

        return SyncCompletion(self._diagnostics)

    def act_async(self, callback: Callable[[], Awaitable[Any]]) -> DeferredCompletion:
        """Run callback as one batched update and return an awaitable completion.

        Awaiting the completion waits for callback's awaitable, then (in the
        outermost scope) drains effects to a fixed point.
        """
        snapshot = self._scope.enter()
        # The coroutine runs up to its first suspension inside the batch.
        result = self._run_batched(functools.partial(_start_eagerly, callback), snapshot)

        if not inspect.isawaitable(result):
            self._scope.exit(snapshot)
            raise TypeError(
                f"act_async() callback must return an awaitable, got {type(result).__name__}; "
                "use act(...) for synchronous callbacks"
            )
        return DeferredCompletion(self, result, snapshot)

    def _run_batched(self, callback: Callable[[], Any], snapshot: ScopeSnapshot) -> Any:
        try:
            return self._renderer.batched_updates(callback)
        except BaseException:
            self._scope.exit(snapshot)
            raise

    async def _settle(self, result: Awaitable[Any], snapshot: ScopeSnapshot) -> None:
        try:
            await result
        except BaseException:
            self._scope.exit(snapshot)
            raise

        if self._scope.depth > 1:
            self._scope.exit(snapshot)
            return

        try:
            await self._flusher.run_to_fixed_point()
        finally:
            self._scope.exit(snapshot)

    def __repr__(self) -> str:
        return f"Barrier({self._renderer!r}, depth={self._scope.depth})"


class SyncCompletion:
    """Result of act(). Already complete; awaiting it only earns a warning."""

    __slots__ = ("_diagnostics",)

    def __init__(self, diagnostics: Diagnostics) -> None:
        self._diagnostics = diagnostics

    def __await__(self) -> Generator[Any, None, None]:
        self._diagnostics.warn(AWAITED_SYNC_WARNING)
        yield from ()


class DeferredCompletion:
    """Result of act_async(). Await it exactly once."""

    __slots__ = ("_barrier", "_result", "_snapshot", "_awaited", "_coro")

    def __init__(self, barrier: Barrier, result: Awaitable[Any], snapshot: ScopeSnapshot) -> None:
        self._barrier = barrier
        self._result = result
        self._snapshot = snapshot
        self._awaited = False
        self._coro = None
        if barrier.diagnostics.enabled:
            self._schedule_await_check()

    @property
    def awaited(self) -> bool:
        return self._awaited

    def _schedule_await_check(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        # After this synchronous turn and one more loop turn.
        loop.call_soon(loop.call_soon, self._check_awaited)

    def _check_awaited(self) -> None:
        if not self._awaited:
            self._barrier.diagnostics.warn(NOT_AWAITED_WARNING)

    def __await__(self) -> Generator[Any, None, None]:
        self._awaited = True
        if self._coro is None:
            self._coro = self._barrier._settle(self._result, self._snapshot)
        return self._coro.__await__()


def get_act(renderer: Renderer, **kwargs: Any) -> Barrier:
    """Create the barrier for one rendering engine binding."""
    return Barrier(renderer, **kwargs)
