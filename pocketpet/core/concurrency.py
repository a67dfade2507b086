# pocketpet/core/concurrency.py
import asyncio
from typing import Any, Callable, Optional

from fastapi.concurrency import run_in_threadpool


class StoreGate:
    """Runs blocking store calls in the threadpool, one at a time.

    The engine and its storage backends are synchronous. Request handlers and
    the background tick both go through one gate, so the event loop never waits
    on disk or MongoDB and the store keeps a single writer.
    """

    def __init__(self):
        self._lock: Optional[asyncio.Lock] = None

    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            return await run_in_threadpool(func, *args)
