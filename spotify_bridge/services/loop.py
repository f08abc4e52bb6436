"""
Goal: Run one asyncio event loop on a daemon thread so network I/O never blocks callers.

- submit(coro) -> concurrent.futures.Future (safe from any thread)
- call_later(delay, fn) schedules a plain callback on the loop
- stop() shuts the loop down and joins the thread
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Callable, Coroutine, TypeVar

from loguru import logger

T = TypeVar("T")


class EventLoopThread:
    def __init__(self, name: str = "spotify-bridge-loop") -> None:
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        self._ready.wait()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
            self._loop.close()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._loop.is_closed()

    def in_loop_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def submit(self, coro: Coroutine[Any, Any, T]) -> "Future[T]":
        if not self.running:
            coro.close()
            raise RuntimeError("Event loop is not running")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> None:
        if not self.running:
            raise RuntimeError("Event loop is not running")
        self._loop.call_soon_threadsafe(self._loop.call_later, delay, callback)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Event loop thread did not stop within {}s", timeout)
