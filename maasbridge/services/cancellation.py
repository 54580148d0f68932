"""
Cancellation token threaded through the backend fetch path.

The caller owns the token and decides when to cancel; the fetch path only
observes it.
"""

import asyncio
from typing import Awaitable, TypeVar

from maasbridge.services.errors import RequestAbortedError

T = TypeVar("T")


class CancellationToken:
    """
    Cooperative cancellation flag for a single request.

    Usage:
        token = CancellationToken()
        data = await token.run(client.get("/machines/"))

        # elsewhere
        token.cancel()
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Request cancellation. Returns False if already cancelled."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestAbortedError(self._reason or "Request aborted by the client")

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        When the token wins, the pending work is cancelled and
        RequestAbortedError is raised. A result that completes in the same
        loop iteration as the cancellation is discarded in favour of the abort.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if self._event.is_set():
            if not work.done():
                work.cancel()
                try:
                    await work
                except (asyncio.CancelledError, Exception):
                    pass
            elif not work.cancelled():
                # Consume the outcome so it is not reported as never retrieved
                work.exception()
            raise RequestAbortedError(self._reason or "Request aborted by the client")

        return work.result()
