"""
Call Rate Limiting

Debounce and throttle wrappers for bursty callers (keystrokes, toggles,
scroll handlers) running on the asyncio event loop.

- debounce: run once, `wait` seconds after the last call of a burst,
  with that last call's arguments
- throttle: run at most once per `wait` seconds; the first call of a
  burst runs immediately, one trailing call runs at the end of the
  window with the most recent arguments

Both accept plain functions and coroutine functions. A coroutine result
is scheduled as a task on the running loop. Wrapped calls must be made
from inside a running event loop.
"""

import asyncio
import inspect
from typing import Any, Callable, Optional

import structlog


logger = structlog.get_logger(__name__)


class _Scheduled:
    """Shared plumbing: invoke the wrapped function and track its tasks."""

    def __init__(self, fn: Callable[..., Any], wait: float):
        if wait < 0:
            raise ValueError("wait must be non-negative")
        self._fn = fn
        self._wait = wait
        self._handle: Optional[asyncio.TimerHandle] = None
        self._args: tuple = ()
        self._kwargs: dict = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def wait(self) -> float:
        return self._wait

    @property
    def pending(self) -> bool:
        """True while a delayed invocation is scheduled."""
        return self._handle is not None

    def cancel(self) -> None:
        """Drop the scheduled invocation, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def drain(self) -> None:
        """Wait for coroutine invocations that are still running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _invoke(self, args: tuple, kwargs: dict) -> None:
        try:
            result = self._fn(*args, **kwargs)
        except Exception:
            logger.exception("rate_limited_call_failed", fn=getattr(self._fn, "__name__", repr(self._fn)))
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "rate_limited_call_failed",
                fn=getattr(self._fn, "__name__", repr(self._fn)),
                error=str(task.exception()),
            )


class Debounced(_Scheduled):
    """
    Delays invoking `fn` until `wait` seconds have passed since the
    most recent call.
    """

    def __call__(self, *args, **kwargs) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._args, self._kwargs = args, kwargs
        self._handle = loop.call_later(self._wait, self._fire)

    def _fire(self) -> None:
        self._handle = None
        args, kwargs = self._args, self._kwargs
        self._args, self._kwargs = (), {}
        self._invoke(args, kwargs)

    def flush(self) -> bool:
        """
        Run the pending invocation now.

        Returns:
            True if there was one to run
        """
        if self._handle is None:
            return False
        self.cancel()
        self._fire()
        return True


class Throttled(_Scheduled):
    """
    Invokes `fn` at most once per `wait` seconds, leading edge first,
    with one trailing call carrying the latest arguments.
    """

    def __init__(self, fn: Callable[..., Any], wait: float):
        super().__init__(fn, wait)
        self._last_call: Optional[float] = None

    def __call__(self, *args, **kwargs) -> None:
        loop = asyncio.get_running_loop()
        now = loop.time()

        if self._last_call is None or now - self._last_call >= self._wait:
            if self._handle is None:
                self._last_call = now
                self._invoke(args, kwargs)
                return

        self._args, self._kwargs = args, kwargs
        if self._handle is None:
            delay = self._wait - (now - self._last_call)
            self._handle = loop.call_later(max(delay, 0.0), self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._last_call = asyncio.get_running_loop().time()
        args, kwargs = self._args, self._kwargs
        self._args, self._kwargs = (), {}
        self._invoke(args, kwargs)

    def cancel(self) -> None:
        super().cancel()
        self._args, self._kwargs = (), {}


def debounce(fn: Callable[..., Any], wait: float) -> Debounced:
    """Wrap `fn` so a burst of calls results in one trailing invocation."""
    return Debounced(fn, wait)


def throttle(fn: Callable[..., Any], wait: float) -> Throttled:
    """Wrap `fn` so it runs at most once per `wait` seconds."""
    return Throttled(fn, wait)
