import asyncio
from typing import Callable, Optional


DEFAULT_RENDER_TIMEOUT_S = 30.0


class TimeoutGuard:
    """
    Single-shot timer bound to one engine slot. Arming again replaces the
    previous timer; a disarmed guard never fires.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, on_expire: Callable[[], None]):
        self.disarm()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._expire, on_expire)

    def disarm(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self, on_expire: Callable[[], None]):
        self._handle = None
        on_expire()
