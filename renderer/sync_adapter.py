import asyncio
import concurrent.futures
import logging
import threading
from typing import Optional

from models import MetadataRecord, PreviewOutcome
from .preview_service import PreviewService

logger = logging.getLogger(__name__)


class SynchronousAdapter:
    """
    Blocking front for PreviewService.

    Work is always submitted to the adapter's event loop, which runs in its own
    thread unless a loop is passed in. Calling fetch_preview() from that loop's
    thread raises RuntimeError instead of blocking it forever.
    """

    def __init__(self, service: PreviewService, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.service = service
        self._owns_loop = loop is None
        self._thread: Optional[threading.Thread] = None
        if loop is None:
            loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._run_loop, args=(loop,), name="preview-loop", daemon=True
            )
            self._thread.start()
        self._loop = loop
        self._closed = False

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop):
        asyncio.set_event_loop(loop)
        loop.run_forever()

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def fetch_preview_outcome(self, url: str, timeout: Optional[float] = None) -> Optional[PreviewOutcome]:
        if self._closed:
            raise RuntimeError("adapter is closed")
        if self._on_loop_thread():
            raise RuntimeError("blocking fetch called from the preview event loop thread")

        fut = asyncio.run_coroutine_threadsafe(self.service.fetch_preview_outcome(url), self._loop)
        try:
            return fut.result(timeout)
        except concurrent.futures.TimeoutError:
            fut.cancel()
            logger.info("blocking fetch for %s gave up after %ss", url, timeout)
            return None

    def fetch_preview(self, url: str, timeout: Optional[float] = None) -> Optional[MetadataRecord]:
        outcome = self.fetch_preview_outcome(url, timeout)
        return outcome.record if outcome is not None else None

    def close(self):
        if self._closed:
            return
        if self._on_loop_thread():
            raise RuntimeError("close() called from the preview event loop thread")
        self._closed = True
        asyncio.run_coroutine_threadsafe(self.service.close(), self._loop).result()
        if self._owns_loop:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
