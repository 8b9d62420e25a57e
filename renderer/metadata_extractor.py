from typing import Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from models import MetadataRecord

TITLE_KEYS = ("og:title", "twitter:title")
DESCRIPTION_KEYS = ("og:description", "description", "twitter:description")
SITE_KEYS = ("og:site_name", "application-name", "apple-mobile-web-app-title")
IMAGE_KEYS = ("og:image", "og:image:url", "og:image:secure_url", "twitter:image", "twitter:image:src")
VIDEO_KEYS = ("og:video", "og:video:url", "og:video:secure_url", "twitter:player")
ICON_RELS = ("icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed")


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    v = " ".join(str(value).split())
    return v or None


class MetadataExtractor:
    """Turns a (rendered or raw) HTML document into a MetadataRecord."""

    def extract(self, base_url: str, html: str) -> MetadataRecord:
        soup = BeautifulSoup(html or "", "html.parser")
        meta = self._meta_index(soup)
        base = self._base_href(soup, base_url)

        title = self._first(meta, TITLE_KEYS)
        if not title and soup.title and soup.title.string:
            title = _clean(soup.title.string)

        return MetadataRecord(
            url=base_url,
            title=title,
            site=self._first(meta, SITE_KEYS),
            description=self._first(meta, DESCRIPTION_KEYS),
            icon=self._absolute(base, self._icon_href(soup)),
            image=self._absolute(base, self._first(meta, IMAGE_KEYS)),
            video=self._absolute(base, self._first(meta, VIDEO_KEYS)),
        )

    @staticmethod
    def _meta_index(soup: BeautifulSoup) -> dict:
        # first occurrence of each property/name wins
        index = {}
        for tag in soup.find_all("meta"):
            content = _clean(tag.get("content"))
            if not content:
                continue
            for attr in ("property", "name", "itemprop"):
                key = tag.get(attr)
                if key:
                    index.setdefault(str(key).strip().lower(), content)
        return index

    @staticmethod
    def _first(meta: dict, keys: Iterable[str]) -> Optional[str]:
        for k in keys:
            if meta.get(k):
                return meta[k]
        return None

    @staticmethod
    def _base_href(soup: BeautifulSoup, base_url: str) -> str:
        base = soup.find("base", href=True)
        if base:
            try:
                return urljoin(base_url, base["href"])
            except ValueError:
                return base_url
        return base_url

    @staticmethod
    def _icon_href(soup: BeautifulSoup) -> Optional[str]:
        found = {}
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            rel_value = " ".join(r.lower() for r in rel)
            if rel_value in ICON_RELS:
                found.setdefault(rel_value, link["href"])
        for r in ICON_RELS:
            if r in found:
                return _clean(found[r])
        return None

    @staticmethod
    def _absolute(base: str, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if value.startswith(("http://", "https://", "data:")):
            return value
        try:
            return urljoin(base, value)
        except ValueError:
            # malformed href, e.g. an unbalanced IPv6 bracket
            return None
