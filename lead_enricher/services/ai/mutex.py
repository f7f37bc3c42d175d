"""Single-owner async mutex with FIFO hand-off."""

import asyncio
from collections import deque


class Mutex:
    """
    Exclusive lock for read-modify-write cycles against the store.

    release() hands ownership straight to the earliest waiter, so a caller
    arriving between release and wake-up cannot jump the queue. There is no
    timeout: callers must release on every exit path, which `async with`
    guarantees.
    """

    def __init__(self):
        self._locked = False
        self._waiters: deque[asyncio.Future] = deque()

    def locked(self) -> bool:
        return self._locked

    async def acquire(self) -> None:
        if not self._locked:
            self._locked = True
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership was handed over just before cancellation
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        if not self._locked:
            raise RuntimeError("Mutex released while not locked")

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

        self._locked = False

    async def __aenter__(self) -> "Mutex":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
