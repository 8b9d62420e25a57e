import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from renderer.js_renderer import RenderEngine
    from renderer.timeout_guard import TimeoutGuard


class FailureKind(str, Enum):
    NAVIGATION = "navigation"
    EXTRACTION = "extraction"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


@dataclass
class PreviewRequest:
    url: str
    requested_at: float = field(default_factory=time.monotonic)

    def elapsed(self) -> float:
        return time.monotonic() - self.requested_at


@dataclass(frozen=True)
class MetadataRecord:
    url: str
    title: Optional[str] = None
    site: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    image: Optional[str] = None
    video: Optional[str] = None

    def merged(self, other: "MetadataRecord") -> "MetadataRecord":
        """
        Returns a copy of self with every non-empty field of `other` laid over it.
        The url of self is kept.
        """
        updates = {}
        for f in fields(self):
            if f.name == "url":
                continue
            value = getattr(other, f.name)
            if value:
                updates[f.name] = value
        return replace(self, **updates)

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self) if f.name != "url")


@dataclass(frozen=True)
class PreviewOutcome:
    url: str
    record: Optional[MetadataRecord] = None
    failure: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass
class EngineSlot:
    engine: "RenderEngine"
    timeout: "TimeoutGuard"
    current_url: Optional[str] = None
    token: Optional[int] = None
    task: Optional[Any] = None

    @property
    def idle(self) -> bool:
        return self.current_url is None
