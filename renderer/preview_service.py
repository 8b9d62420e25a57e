import logging
from typing import Optional

from config import PreviewConfig
from models import MetadataRecord, PreviewOutcome
from utils import url_key
from .coordinator import RequestCoordinator
from .http_fetcher import HttpFetcher
from .js_renderer import BrowserHost, PlaywrightEngine
from .metadata_extractor import MetadataExtractor
from .native_provider import NativeMetadataProvider

logger = logging.getLogger(__name__)


class PreviewService:
    def __init__(
        self,
        coordinator: RequestCoordinator,
        native_provider: Optional[NativeMetadataProvider] = None,
        browser_host: Optional[BrowserHost] = None,
    ):
        self.coordinator = coordinator
        self.native_provider = native_provider
        self._host = browser_host

    async def fetch_preview_outcome(self, url: str) -> PreviewOutcome:
        key = url_key(url)
        seed = MetadataRecord(url=key)

        if self.native_provider is not None:
            try:
                record = await self.native_provider.load_metadata(seed, key)
            except Exception:
                logger.exception("native provider failed for %s, falling back to render", key)
                record = None
            if record is not None:
                logger.info("native provider served %s", key)
                return PreviewOutcome(key, record=record)

        outcome = await self.coordinator.fetch_outcome(key)
        if outcome.record is None:
            return outcome
        return PreviewOutcome(key, record=seed.merged(outcome.record))

    async def fetch_preview(self, url: str) -> Optional[MetadataRecord]:
        outcome = await self.fetch_preview_outcome(url)
        return outcome.record

    async def close(self):
        await self.coordinator.close()
        if self.native_provider is not None:
            await self.native_provider.close()
        if self._host is not None:
            await self._host.stop()


def build_preview_service(config: Optional[PreviewConfig] = None) -> PreviewService:
    config = config or PreviewConfig.from_env()
    host = BrowserHost(config)
    extractor = MetadataExtractor()

    coordinator = RequestCoordinator(
        engine_factory=lambda i: PlaywrightEngine(host, config, name=f"engine-{i + 1}"),
        pool_size=config.pool_size,
        render_timeout_s=config.render_timeout_s,
        normalizer=extractor.extract,
    )

    native = None
    if config.use_native_provider:
        fetcher = HttpFetcher(
            timeout_s=config.fetch_timeout_s,
            user_agent=config.user_agent,
            verify_ssl=not config.ignore_https_errors,
            max_bytes=config.max_fetch_bytes,
        )
        native = NativeMetadataProvider(fetcher, extractor)

    return PreviewService(coordinator, native_provider=native, browser_host=host)
