import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0 Safari/537.36"
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _as_bool(raw: str, name: str) -> bool:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class PreviewConfig:
    pool_size: int = 1
    render_timeout_s: float = 30.0
    javascript_enabled: bool = True
    ignore_https_errors: bool = False
    wait_until: str = "load"
    user_agent: str = DEFAULT_USER_AGENT

    fetch_timeout_s: int = 20
    max_fetch_bytes: int = 2 * 1024 * 1024
    use_native_provider: bool = True

    log_level: str = "INFO"

    def __post_init__(self):
        if self.pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        if self.render_timeout_s <= 0:
            raise ValueError("render_timeout_s must be > 0")
        if self.fetch_timeout_s <= 0:
            raise ValueError("fetch_timeout_s must be > 0")
        if self.max_fetch_bytes < 1:
            raise ValueError("max_fetch_bytes must be >= 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PreviewConfig":
        env = os.environ if environ is None else environ
        kwargs = {}

        if "PREVIEW_POOL_SIZE" in env:
            kwargs["pool_size"] = int(env["PREVIEW_POOL_SIZE"])
        if "PREVIEW_RENDER_TIMEOUT" in env:
            kwargs["render_timeout_s"] = float(env["PREVIEW_RENDER_TIMEOUT"])
        if "PREVIEW_JAVASCRIPT" in env:
            kwargs["javascript_enabled"] = _as_bool(env["PREVIEW_JAVASCRIPT"], "PREVIEW_JAVASCRIPT")
        if "PREVIEW_IGNORE_HTTPS_ERRORS" in env:
            kwargs["ignore_https_errors"] = _as_bool(
                env["PREVIEW_IGNORE_HTTPS_ERRORS"], "PREVIEW_IGNORE_HTTPS_ERRORS"
            )
        if "PREVIEW_WAIT_UNTIL" in env:
            kwargs["wait_until"] = env["PREVIEW_WAIT_UNTIL"]
        if "PREVIEW_USER_AGENT" in env:
            kwargs["user_agent"] = env["PREVIEW_USER_AGENT"]
        if "PREVIEW_FETCH_TIMEOUT" in env:
            kwargs["fetch_timeout_s"] = int(env["PREVIEW_FETCH_TIMEOUT"])
        if "PREVIEW_MAX_FETCH_BYTES" in env:
            kwargs["max_fetch_bytes"] = int(env["PREVIEW_MAX_FETCH_BYTES"])
        if "PREVIEW_NATIVE_PROVIDER" in env:
            kwargs["use_native_provider"] = _as_bool(
                env["PREVIEW_NATIVE_PROVIDER"], "PREVIEW_NATIVE_PROVIDER"
            )
        if "PREVIEW_LOG_LEVEL" in env:
            kwargs["log_level"] = env["PREVIEW_LOG_LEVEL"].upper()

        return cls(**kwargs)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
