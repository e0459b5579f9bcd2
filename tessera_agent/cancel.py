"""
Cancellation
============
Cooperative cancellation signal threaded through one agent run: checked at the
top of each turn, raced against the completion call, and handed to every tool.
"""

import asyncio
from typing import Optional


class CancellationToken:
    """
    Usage:
        token = CancellationToken()
        task = asyncio.create_task(agent.run("...", cancel_token=token))
        token.cancel()   # from a UI handler, signal handler, etc.

    Long-running tools should either poll `token.cancelled` or
    `await token.checkpoint()` between units of work.

    The token may be built before any event loop runs; the underlying
    asyncio.Event is only created inside the loop that first waits on it.
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        """Block until cancel() is called."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    async def checkpoint(self) -> None:
        if self.cancelled:
            raise asyncio.CancelledError("Cancelled by caller")
