import asyncio
import logging
from typing import Optional, Tuple

import aiohttp

from utils import is_html

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 2 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


class HttpFetcher:
    def __init__(
        self,
        timeout_s: int = 20,
        user_agent: str = "link_preview/1.0",
        verify_ssl: bool = True,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ):
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None
        self._ua = user_agent
        self._verify_ssl = verify_ssl
        self.max_bytes = max_bytes

    async def open(self):
        if self._session is None or self._session.closed:
            headers = {"User-Agent": self._ua, "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"}
            connector = aiohttp.TCPConnector(ssl=None if self._verify_ssl else False)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, headers=headers, connector=connector
            )

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(self, url: str) -> Tuple[Optional[bytes], str]:
        """
        Returns (data_bytes, content_type) for an HTML document, at most
        max_bytes of it. data_bytes is None for failures, non-2xx responses
        and non-HTML content; in the last case the body is never read.
        """
        await self.open()
        assert self._session is not None

        try:
            async with self._session.get(url, allow_redirects=True) as resp:
                ctype = resp.headers.get("Content-Type", "") or ""
                if resp.status >= 400:
                    logger.info("fetch %s -> HTTP %d", url, resp.status)
                    return None, ctype
                if not is_html(ctype):
                    logger.debug("fetch %s skipped body (content-type %r)", url, ctype)
                    return None, ctype

                buf = bytearray()
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    buf.extend(chunk)
                    if len(buf) >= self.max_bytes:
                        logger.debug("fetch %s truncated at %d bytes", url, self.max_bytes)
                        break
                return bytes(buf[: self.max_bytes]), ctype
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.info("fetch %s failed: %s", url, e)
            return None, ""
