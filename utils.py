from typing import Optional
from urllib.parse import urlsplit, urlunsplit


def url_key(url: str) -> str:
    """
    Identity of a URL for request collapsing: scheme and host lower-cased,
    fragment dropped. Anything unparsable is returned stripped as-is.
    """
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if not parts.scheme or not parts.netloc:
        return raw
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


def is_html(content_type: Optional[str]) -> bool:
    ctype = (content_type or "").lower()
    return "text/html" in ctype or "application/xhtml+xml" in ctype


def decode_html(data: bytes, content_type: Optional[str]) -> str:
    """Decodes a fetched document using the charset announced in Content-Type, if any."""
    if content_type and "charset=" in content_type.lower():
        charset = content_type.lower().split("charset=")[-1].split(";")[0].strip().strip('"')
        try:
            return data.decode(charset)
        except (LookupError, UnicodeDecodeError):
            pass

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass

    return data.decode("latin-1", errors="replace")
