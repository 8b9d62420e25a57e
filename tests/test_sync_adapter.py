import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeService, page
from models import FailureKind
from renderer.coordinator import RequestCoordinator
from renderer.js_renderer import RenderEngine
from renderer.preview_service import PreviewService
from renderer.sync_adapter import SynchronousAdapter

URL = "https://blog.example/post"


class SlowEngine(RenderEngine):
    def __init__(self, delay=0.1):
        self.delay = delay
        self.loaded = []
        self._lock = threading.Lock()

    async def navigate(self, url):
        with self._lock:
            self.loaded.append(url)
        await asyncio.sleep(self.delay)

    async def extract_rendered_markup(self):
        return page("Slow post")


def test_fetch_preview_blocks_until_result():
    service = FakeService()
    with SynchronousAdapter(service) as adapter:
        rec = adapter.fetch_preview(URL)

    assert rec.title == f"Title of {URL}"
    assert service.requested == [URL]
    assert service.closed


def test_failure_collapses_to_none(unavailable):
    with SynchronousAdapter(FakeService(unavailable)) as adapter:
        assert adapter.fetch_preview(URL) is None
        assert adapter.fetch_preview_outcome(URL).failure is FailureKind.NAVIGATION


def test_calling_from_loop_thread_raises_instead_of_deadlocking():
    adapter = SynchronousAdapter(FakeService())
    try:
        async def call_inside_loop():
            return adapter.fetch_preview(URL)

        fut = asyncio.run_coroutine_threadsafe(call_inside_loop(), adapter._loop)
        with pytest.raises(RuntimeError):
            fut.result(2)
    finally:
        adapter.close()


def test_wait_timeout_returns_none():
    engine = SlowEngine(delay=1.0)
    coord = RequestCoordinator(lambda i: engine, pool_size=1)
    with SynchronousAdapter(PreviewService(coord)) as adapter:
        started = time.monotonic()
        assert adapter.fetch_preview(URL, timeout=0.1) is None
        assert time.monotonic() - started < 0.9


def test_concurrent_blocking_callers_share_one_render():
    engine = SlowEngine(delay=0.2)
    coord = RequestCoordinator(lambda i: engine, pool_size=1)

    with SynchronousAdapter(PreviewService(coord)) as adapter:
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: adapter.fetch_preview(URL, timeout=5), range(4)))

    assert [r.title for r in results] == ["Slow post"] * 4
    assert engine.loaded == [URL]


def test_closed_adapter_rejects_calls():
    adapter = SynchronousAdapter(FakeService())
    adapter.close()
    with pytest.raises(RuntimeError):
        adapter.fetch_preview(URL)
