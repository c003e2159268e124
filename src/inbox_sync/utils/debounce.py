"""asyncio debounce helper."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

DebouncedCallback = Callable[[], Union[Any, Awaitable[Any]]]


class Debouncer:
    """Coalesce bursts of ``trigger()`` calls into one callback run.

    Each trigger restarts the quiet window; the callback fires once the
    window elapses without another trigger.
    """

    def __init__(self, delay: float, callback: DebouncedCallback) -> None:
        self.delay = delay
        self.callback = callback
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        """Schedule the callback, restarting any pending window. Needs a running loop."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Wait for a pending run to complete."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self.runs += 1
        result = self.callback()
        if inspect.isawaitable(result):
            await result
