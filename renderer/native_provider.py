import logging
from typing import Optional

from models import MetadataRecord
from utils import decode_html, is_html
from .http_fetcher import HttpFetcher
from .metadata_extractor import MetadataExtractor

logger = logging.getLogger(__name__)


class NativeMetadataProvider:
    """
    Cheap first attempt: fetch the raw document without rendering and read its
    Open Graph / meta tags. Returns None whenever the page looks like it needs
    a real browser, so the caller falls back to the render pool.
    """

    def __init__(self, fetcher: HttpFetcher, extractor: Optional[MetadataExtractor] = None):
        self.fetcher = fetcher
        self.extractor = extractor or MetadataExtractor()

    async def load_metadata(self, seed: MetadataRecord, url: str) -> Optional[MetadataRecord]:
        data, ctype = await self.fetcher.fetch(url)
        if not data:
            return None
        if not is_html(ctype):
            logger.debug("native provider skipped %s (content-type %r)", url, ctype)
            return None

        found = self.extractor.extract(url, decode_html(data, ctype))
        if not found.title:
            logger.debug("native provider found no title for %s", url)
            return None
        return seed.merged(found)

    async def close(self):
        await self.fetcher.close()
