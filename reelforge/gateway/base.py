"""Contracts for generation gateway backends."""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from reelforge.workflow.models import GenerationKind


class GenerationFailure(RuntimeError):
    """
    Raised when a backend cannot fulfil a generation request.

    `retryable` separates transient trouble (timeouts, rate limits,
    provider outages) from terminal refusals (invalid input, content
    policy).
    """

    def __init__(self, reason: str, retryable: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.retryable = retryable


@dataclass(frozen=True)
class GenerationContext:
    """Everything a backend needs to produce one artifact."""

    kind: GenerationKind
    project_id: str
    title: str = ""
    description: str = ""
    story: str = ""
    segment_id: Optional[str] = None
    order: Optional[int] = None
    script: str = ""
    video_prompt: str = ""
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    voice: Optional[str] = None  # AUDIO only
    clip_urls: tuple[str, ...] = ()
    segment_count: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "story": self.story,
            "segment_id": self.segment_id,
            "order": self.order,
            "script": self.script,
            "video_prompt": self.video_prompt,
            "image_url": self.image_url,
            "video_url": self.video_url,
            "audio_url": self.audio_url,
            "voice": self.voice,
            "clip_urls": list(self.clip_urls),
            "segment_count": self.segment_count,
        }


@dataclass(frozen=True)
class ArtifactRef:
    """Opaque reference to one generated artifact."""

    url: str
    prompt: Optional[str] = None
    duration: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationResult:
    """
    Output of one generation call.

    Media kinds carry one or more artifacts (several candidates may be
    returned at once). Text kinds carry their payload in `metadata`:
    SCRIPT for a project → {"segments": [{"script", "video_prompt"}, ...]},
    SCRIPT for a segment → {"script", "video_prompt"},
    IDEA → {"title", "description"}.
    """

    provider: str
    artifacts: tuple[ArtifactRef, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


class GenerationGateway(Protocol):
    provider_name: str

    def generate(self, context: GenerationContext) -> GenerationResult:
        raise NotImplementedError
