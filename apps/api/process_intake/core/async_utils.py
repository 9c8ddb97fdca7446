from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Coroutine, TypeVar

import anyio

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run an async coroutine from sync code (CLI commands, sync endpoints).

    - In FastAPI sync endpoints, uses anyio.from_thread.run to execute on the main loop.
    - Falls back to anyio.run when no AnyIO worker thread is available (e.g., CLI/tests).
    - Raises if called from an async context in the same thread (use await instead).
    """

    async def _runner() -> T:
        if timeout is not None:
            with anyio.fail_after(timeout):
                return await coro
        return await coro

    try:
        return anyio.from_thread.run(_runner)
    except RuntimeError:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return anyio.run(_runner)
        raise RuntimeError("run_async called from async context; use await instead")


class BackendGate:
    """
    Bounds concurrent round trips to an external backend and applies a deadline.

    The limiter is created lazily on the running loop (and recreated if the
    loop changes, e.g. between CLI invocations or test cases).
    """

    def __init__(self, max_concurrency: int, timeout: float | None):
        self.max_concurrency = max(1, max_concurrency)
        self.timeout = timeout
        self._limiter: anyio.CapacityLimiter | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _get_limiter(self) -> anyio.CapacityLimiter:
        loop = asyncio.get_running_loop()
        if self._limiter is None or self._loop is not loop:
            self._limiter = anyio.CapacityLimiter(self.max_concurrency)
            self._loop = loop
        return self._limiter

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await func() within the concurrency bound. Raises TimeoutError on deadline."""
        async with self._get_limiter():
            if self.timeout is None:
                return await func()
            with anyio.fail_after(self.timeout):
                return await func()

    async def call_in_thread(self, func: Callable[..., T], *args: object) -> T:
        """Run blocking func(*args) in a worker thread within the bound and deadline."""

        async def _run() -> T:
            return await anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True)

        return await self.call(_run)
