import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from models import FailureKind, MetadataRecord, PreviewOutcome
from renderer.errors import NavigationFailure
from renderer.js_renderer import RenderEngine


def page(title: str, extra: str = "") -> str:
    return f"<html><head><title>{title}</title>{extra}</head><body></body></html>"


async def settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeBrowser:
    """
    Stands in for the browser: every navigation blocks until the test calls
    complete() or fail() for its URL.
    """

    def __init__(self):
        self.navigations: List[Tuple[str, str]] = []
        self.engines: List["ScriptedEngine"] = []
        self._gates: Dict[str, asyncio.Future] = {}

    def gate(self, url: str) -> asyncio.Future:
        fut = self._gates.get(url)
        if fut is None:
            fut = asyncio.get_running_loop().create_future()
            self._gates[url] = fut
        return fut

    def release(self, url: str, fut: asyncio.Future):
        if self._gates.get(url) is fut:
            del self._gates[url]

    def complete(self, url: str, markup: Optional[str] = None):
        self.gate(url).set_result(page(url) if markup is None else markup)

    def complete_without_markup(self, url: str):
        self.gate(url).set_result(None)

    def fail(self, url: str, exc: Optional[Exception] = None):
        self.gate(url).set_exception(exc or NavigationFailure(url, "net::ERR_NAME_NOT_RESOLVED"))

    def factory(self, index: int) -> "ScriptedEngine":
        engine = ScriptedEngine(self, f"engine-{index + 1}")
        self.engines.append(engine)
        return engine

    @property
    def navigated_urls(self) -> List[str]:
        return [u for _, u in self.navigations]


class ScriptedEngine(RenderEngine):
    def __init__(self, browser: FakeBrowser, name: str):
        self.browser = browser
        self.name = name
        self.closed = False
        self._markup: Optional[str] = None

    async def navigate(self, url: str) -> None:
        self.browser.navigations.append((self.name, url))
        fut = self.browser.gate(url)
        try:
            self._markup = await fut
        finally:
            self.browser.release(url, fut)

    async def extract_rendered_markup(self) -> Optional[str]:
        return self._markup

    async def close(self) -> None:
        self.closed = True


class Recorder:
    """Collects outcomes delivered to waiter callbacks, in delivery order."""

    def __init__(self):
        self.calls: List[Tuple[str, PreviewOutcome]] = []

    def cb(self, tag: str):
        def _cb(outcome: PreviewOutcome):
            self.calls.append((tag, outcome))
        return _cb

    @property
    def tags(self) -> List[str]:
        return [t for t, _ in self.calls]

    def outcome(self, tag: str) -> PreviewOutcome:
        found = [o for t, o in self.calls if t == tag]
        assert len(found) == 1, f"{tag} resolved {len(found)} times"
        return found[0]


class FakeService:
    def __init__(self, outcome: Optional[PreviewOutcome] = None):
        self.outcome = outcome
        self.requested: List[str] = []
        self.closed = False
        self.coordinator = FakeCoordinatorStats()

    async def fetch_preview_outcome(self, url: str) -> PreviewOutcome:
        self.requested.append(url)
        if self.outcome is not None:
            return self.outcome
        return PreviewOutcome(url, record=MetadataRecord(url=url, title=f"Title of {url}"))

    async def fetch_preview(self, url: str):
        return (await self.fetch_preview_outcome(url)).record

    async def close(self):
        self.closed = True


class FakeCoordinatorStats:
    engine_count = 1
    idle_engine_count = 1
    pending_urls: List[str] = []
    queued_urls: List[str] = []


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def unavailable():
    return PreviewOutcome("https://down.example/", failure=FailureKind.NAVIGATION)
