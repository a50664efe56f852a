"""Cancellable one-tick-per-second countdown on the event loop."""

import asyncio
import contextlib
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


def cancel_task(task: asyncio.Task | None) -> None:
    """Cancel *task* unless it is finished or is the caller itself."""
    if task is None or task.done():
        return
    try:
        current = asyncio.current_task()
    except RuntimeError:
        # No running loop (closing from synchronous code)
        current = None
    if task is not current:
        task.cancel()


class Countdown:
    """Counts down from *seconds* to 0, calling back on each tick.

    Usage::

        countdown = Countdown(10, on_tick=show, on_expire=reset).start()
        ...
        countdown.cancel()  # no callback fires after this returns

    ``start()`` returns the countdown itself so the caller keeps it as the
    cancellation handle.
    """

    def __init__(
        self,
        seconds: int,
        *,
        on_tick: Callable[[int], None] | None = None,
        on_expire: Callable[[], None] | None = None,
        interval: float = 1.0,
    ) -> None:
        self.total = seconds
        self.remaining = seconds
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "Countdown":
        """Begin ticking. Restarts from the current value if cancelled."""
        if self.running:
            return self
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def cancel(self) -> None:
        """Stop ticking; pending callbacks are dropped."""
        self._cancelled = True
        cancel_task(self._task)

    def reset(self) -> None:
        """Cancel and restore the initial value."""
        self.cancel()
        self.remaining = self.total

    async def wait(self) -> None:
        """Wait until the countdown expires or is cancelled."""
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self._interval)
            if self._cancelled:
                return
            self.remaining -= 1
            if self._on_tick is not None:
                self._on_tick(self.remaining)
        if self._cancelled:
            return
        logger.debug("Countdown of %ds expired", self.total)
        if self._on_expire is not None:
            self._on_expire()
