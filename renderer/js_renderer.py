import abc
import asyncio
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from config import PreviewConfig
from .errors import NavigationFailure, RenderTimeout

logger = logging.getLogger(__name__)

OUTER_HTML_JS = "document.documentElement.outerHTML"


class RenderEngine(abc.ABC):
    """
    One page-rendering engine. Each render() call yields the rendered markup,
    None when the markup could not be read, or raises a PreviewError.
    """

    name: str = "engine"

    async def render(self, url: str) -> Optional[str]:
        await self.navigate(url)
        return await self.extract_rendered_markup()

    @abc.abstractmethod
    async def navigate(self, url: str) -> None:
        ...

    @abc.abstractmethod
    async def extract_rendered_markup(self) -> Optional[str]:
        ...

    async def close(self) -> None:
        pass


class BrowserHost:
    """Shared headless Chromium; every engine gets its own page from it."""

    def __init__(self, config: PreviewConfig, playwright_factory=async_playwright):
        self.config = config
        self._pw_factory = playwright_factory
        self._pw = None
        self._browser = None
        self._context = None
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return (
            self._context is not None
            and self._browser is not None
            and self._browser.is_connected()
        )

    async def start(self):
        async with self._lock:
            if self.started:
                return
            if self._browser is not None:
                logger.warning("chromium disconnected, relaunching")
                await self._discard_browser()
            if self._pw is None:
                self._pw = await self._pw_factory().start()
            logger.info("launching headless chromium")
            self._browser = await self._pw.chromium.launch(headless=True)
            self._context = await self._browser.new_context(
                java_script_enabled=self.config.javascript_enabled,
                ignore_https_errors=self.config.ignore_https_errors,
                user_agent=self.config.user_agent,
            )

    async def _discard_browser(self):
        try:
            await self._browser.close()
        except PlaywrightError as e:
            logger.debug("closing dead browser failed: %s", e)
        self._browser = None
        self._context = None

    async def new_page(self):
        await self.start()
        return await self._context.new_page()

    async def stop(self):
        async with self._lock:
            if self._context is not None:
                try:
                    await self._context.close()
                except PlaywrightError as e:
                    logger.warning("context close failed: %s", e)
            if self._browser is not None:
                await self._browser.close()
            if self._pw is not None:
                await self._pw.stop()
            self._context = None
            self._browser = None
            self._pw = None


class PlaywrightEngine(RenderEngine):
    def __init__(self, host: BrowserHost, config: PreviewConfig, name: str = "engine"):
        self._host = host
        self.config = config
        self.name = name
        self._page = None

    async def _ensure_page(self):
        if self._page is None or self._page.is_closed():
            self._page = await self._host.new_page()
        return self._page

    async def navigate(self, url: str) -> None:
        try:
            page = await self._ensure_page()
            await page.goto(
                url,
                wait_until=self.config.wait_until,
                timeout=self.config.render_timeout_s * 1000,
            )
        except PlaywrightTimeoutError as e:
            raise RenderTimeout(url, str(e)) from e
        except PlaywrightError as e:
            raise NavigationFailure(url, str(e)) from e

    async def extract_rendered_markup(self) -> Optional[str]:
        if self._page is None:
            return None
        try:
            result = await self._page.evaluate(OUTER_HTML_JS)
        except PlaywrightError as e:
            logger.warning("[%s] outerHTML evaluation failed: %s", self.name, e)
            return None
        return result if isinstance(result, str) else None

    async def close(self) -> None:
        if self._page is not None and not self._page.is_closed():
            try:
                await self._page.close()
            except PlaywrightError as e:
                logger.debug("[%s] page close failed: %s", self.name, e)
        self._page = None
