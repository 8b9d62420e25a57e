import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Callable, Deque, Dict, List, Optional

from models import EngineSlot, FailureKind, MetadataRecord, PreviewOutcome, PreviewRequest
from utils import url_key
from .errors import ExtractionFailure, NavigationFailure, RenderTimeout
from .js_renderer import RenderEngine
from .metadata_extractor import MetadataExtractor
from .timeout_guard import DEFAULT_RENDER_TIMEOUT_S, TimeoutGuard

logger = logging.getLogger(__name__)

Callback = Callable[[PreviewOutcome], None]
EngineFactory = Callable[[int], RenderEngine]
Normalizer = Callable[[str, str], MetadataRecord]


@dataclass
class Waiter:
    request: PreviewRequest
    callback: Callback


class RequestCoordinator:
    """
    Schedules renders over a small pool of engines.

    Concurrent requests for the same URL share one render; requests that find
    every engine busy wait in a FIFO queue. All state is touched only from the
    event loop the coordinator is bound to, so request() must be called on that
    loop (use request_threadsafe() from other threads).
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        pool_size: int = 1,
        render_timeout_s: float = DEFAULT_RENDER_TIMEOUT_S,
        normalizer: Optional[Normalizer] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        self._engine_factory = engine_factory
        self.pool_size = pool_size
        self.render_timeout_s = render_timeout_s
        self._normalize = normalizer or MetadataExtractor().extract
        self._loop = loop

        self._slots: List[EngineSlot] = []
        self._waiters: Dict[str, List[Waiter]] = {}
        self._wait_queue: Deque[str] = deque()
        self._tokens = itertools.count(1)
        self._closed = False

    # -------------------- INTROSPECTION --------------------

    @property
    def pending_urls(self) -> List[str]:
        return [s.current_url for s in self._slots if s.current_url is not None]

    @property
    def queued_urls(self) -> List[str]:
        return list(self._wait_queue)

    @property
    def engine_count(self) -> int:
        return len(self._slots)

    @property
    def idle_engine_count(self) -> int:
        return sum(1 for s in self._slots if s.idle)

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------- REQUESTS --------------------

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def request(self, url: str, on_complete: Callback) -> None:
        loop = self._bind_loop()
        key = url_key(url)
        waiter = Waiter(PreviewRequest(key), on_complete)

        if self._closed:
            loop.call_soon(
                self._deliver, [waiter], PreviewOutcome(key, failure=FailureKind.SHUTDOWN)
            )
            return

        if key in self._waiters:
            # Either rendering right now or already queued; join its waiters.
            self._waiters[key].append(waiter)
            where = "rendering" if key in self.pending_urls else "queued"
            logger.debug("joined %s url %s (waiters=%d)", where, key, len(self._waiters[key]))
            return

        slot = self._acquire_idle_slot()
        if slot is None:
            self._wait_queue.append(key)
            self._waiters[key] = [waiter]
            logger.info("url needs wait: %s, waitCount: %d", key, len(self._wait_queue))
            return

        self._waiters[key] = [waiter]
        self._start(slot, key)

    def request_threadsafe(self, url: str, on_complete: Callback) -> None:
        if self._loop is None:
            raise RuntimeError("coordinator is not bound to an event loop yet")
        self._loop.call_soon_threadsafe(self.request, url, on_complete)

    async def fetch_outcome(self, url: str) -> PreviewOutcome:
        loop = self._bind_loop()
        fut: asyncio.Future = loop.create_future()

        def _resolve(outcome: PreviewOutcome):
            if not fut.done():
                fut.set_result(outcome)

        self.request(url, _resolve)
        return await fut

    async def fetch(self, url: str) -> Optional[MetadataRecord]:
        outcome = await self.fetch_outcome(url)
        return outcome.record

    # -------------------- ENGINE ASSIGNMENT --------------------

    def _acquire_idle_slot(self) -> Optional[EngineSlot]:
        for slot in self._slots:
            if slot.idle:
                return slot
        if len(self._slots) < self.pool_size:
            engine = self._engine_factory(len(self._slots))
            slot = EngineSlot(engine=engine, timeout=TimeoutGuard(self._loop))
            self._slots.append(slot)
            logger.info("created engine %s (%d/%d)", engine.name, len(self._slots), self.pool_size)
            return slot
        return None

    def _start(self, slot: EngineSlot, url: str):
        token = next(self._tokens)
        slot.current_url = url
        slot.token = token
        slot.timeout.arm(
            self.render_timeout_s,
            partial(self._on_timeout, slot, token),
        )
        logger.info("[%s] loading %s", slot.engine.name, url)
        task = self._loop.create_task(slot.engine.render(url))
        slot.task = task
        task.add_done_callback(partial(self._on_render_done, slot, token))

    def _drain_queue(self, slot: EngineSlot):
        while self._wait_queue:
            url = self._wait_queue.popleft()
            if url not in self._waiters:
                continue
            logger.info("parsing waiting url: %s, waitCount: %d", url, len(self._wait_queue))
            self._start(slot, url)
            return

    # -------------------- COMPLETION --------------------

    def _on_timeout(self, slot: EngineSlot, token: int):
        if slot.token != token:
            return
        logger.warning(
            "[%s] timeout reached after %.1fs for %s",
            slot.engine.name, self.render_timeout_s, slot.current_url,
        )
        self._finish(slot, token, None, FailureKind.TIMEOUT)

    def _on_render_done(self, slot: EngineSlot, token: int, task: asyncio.Task):
        if task.cancelled():
            if slot.token == token:
                self._finish(slot, token, None, FailureKind.NAVIGATION)
            return

        exc = task.exception()
        if exc is None:
            markup = task.result()
            failure = None if markup else FailureKind.EXTRACTION
            self._finish(slot, token, markup, failure)
            return

        if isinstance(exc, RenderTimeout):
            failure = FailureKind.TIMEOUT
        elif isinstance(exc, ExtractionFailure):
            failure = FailureKind.EXTRACTION
        elif isinstance(exc, NavigationFailure):
            failure = FailureKind.NAVIGATION
        else:
            logger.error(
                "[%s] unexpected render error", slot.engine.name,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            failure = FailureKind.NAVIGATION
        if slot.token == token:
            logger.info("[%s] render failed: %s", slot.engine.name, exc)
        self._finish(slot, token, None, failure)

    def _finish(
        self,
        slot: EngineSlot,
        token: int,
        markup: Optional[str],
        failure: Optional[FailureKind],
    ):
        if slot.token != token:
            logger.debug("[%s] ignoring late completion (token %s)", slot.engine.name, token)
            return

        url = slot.current_url
        slot.timeout.disarm()
        task = slot.task
        slot.current_url = None
        slot.token = None
        slot.task = None
        if task is not None and not task.done():
            task.cancel()

        waiters = self._waiters.pop(url, None)
        self._drain_queue(slot)

        if not waiters:
            logger.warning("finished but no completion handler for url %s", url)
            return

        outcome = self._build_outcome(url, markup, failure)
        logger.info(
            "finished url %s (ok=%s, failure=%s, waiters=%d)",
            url, outcome.ok, outcome.failure and outcome.failure.value, len(waiters),
        )
        self._deliver(waiters, outcome)

    def _build_outcome(
        self, url: str, markup: Optional[str], failure: Optional[FailureKind]
    ) -> PreviewOutcome:
        if failure is not None or not markup:
            return PreviewOutcome(url, failure=failure or FailureKind.EXTRACTION)
        try:
            record = self._normalize(url, markup)
        except Exception:
            logger.exception("metadata extraction failed for %s", url)
            return PreviewOutcome(url, failure=FailureKind.EXTRACTION)
        return PreviewOutcome(url, record=record)

    def _deliver(self, waiters: List[Waiter], outcome: PreviewOutcome):
        for w in waiters:
            try:
                w.callback(outcome)
            except Exception:
                logger.exception("completion handler failed for %s", outcome.url)
            else:
                logger.debug("served %s after %.3fs", outcome.url, w.request.elapsed())

    # -------------------- SHUTDOWN --------------------

    async def close(self):
        if self._closed:
            return
        self._closed = True

        for slot in self._slots:
            slot.timeout.disarm()
            if slot.task is not None and not slot.task.done():
                slot.task.cancel()
            slot.current_url = None
            slot.token = None
            slot.task = None

        abandoned = self._waiters
        self._waiters = {}
        self._wait_queue.clear()
        for url, waiters in abandoned.items():
            self._deliver(waiters, PreviewOutcome(url, failure=FailureKind.SHUTDOWN))

        for slot in self._slots:
            try:
                await slot.engine.close()
            except Exception:
                logger.exception("[%s] close failed", slot.engine.name)
