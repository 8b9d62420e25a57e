class PreviewError(Exception):
    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}" if reason else url)


class NavigationFailure(PreviewError):
    """Page could not be loaded (network, DNS, TLS)."""


class ExtractionFailure(PreviewError):
    """Page loaded but its rendered markup could not be read."""


class RenderTimeout(PreviewError):
    """Render did not finish within the configured bound."""
