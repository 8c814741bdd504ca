"""
Workflow data model - projects, segments and their generated media.

A Project owns an ordered list of Segments. Each Segment owns candidate
MediaAssets per media type and five independent approval slots
(script, image, video, audio, final).

Key concepts:
- Slot: one (segment, kind) pair with its own ApprovalStatus
- Candidate: a generated MediaAsset competing for selection within a slot
- In-flight: a pending generation recorded on the slot it will fill
- Version: bumped on every committed write, used for compare-and-set
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


class ApprovalStatus(str, Enum):
    """Status of one approval slot (and of each candidate asset)."""

    DRAFT = "DRAFT"                # Not generated yet
    PENDING = "PENDING"            # Generated, awaiting human approval
    APPROVED = "APPROVED"          # Human approved
    REJECTED = "REJECTED"          # Human rejected or generation failed
    REGENERATING = "REGENERATING"  # A new candidate is being produced


class ProjectStatus(str, Enum):
    """Overall lifecycle status of a project."""

    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WorkflowStage(str, Enum):
    """Pipeline phase currently gating a project's progress."""

    SCRIPT_GENERATION = "SCRIPT_GENERATION"
    IMAGE_GENERATION = "IMAGE_GENERATION"
    VIDEO_GENERATION = "VIDEO_GENERATION"
    AUDIO_GENERATION = "AUDIO_GENERATION"
    FINAL_ASSEMBLY = "FINAL_ASSEMBLY"
    COMPLETED = "COMPLETED"


class GenerationKind(str, Enum):
    """Kinds of work the generation gateway can perform."""

    IDEA = "IDEA"          # Title/description suggestion, no slot
    SCRIPT = "SCRIPT"      # Project script (segments) or one segment's text
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    FINAL = "FINAL"        # Segment clip: selected video merged with audio
    ASSEMBLY = "ASSEMBLY"  # Project final video: all clips concatenated


# Kinds that own an approval slot on every segment
SLOT_KINDS = (
    GenerationKind.SCRIPT,
    GenerationKind.IMAGE,
    GenerationKind.VIDEO,
    GenerationKind.AUDIO,
    GenerationKind.FINAL,
)

# Slots whose content is a list of selectable MediaAsset candidates
MEDIA_KINDS = (
    GenerationKind.IMAGE,
    GenerationKind.VIDEO,
    GenerationKind.AUDIO,
    GenerationKind.FINAL,
)

# Slots a user may explicitly skip
SKIPPABLE_KINDS = (
    GenerationKind.IMAGE,
    GenerationKind.VIDEO,
    GenerationKind.AUDIO,
)

# Slots that must be satisfied before the final slot may be requested or approved
COMPONENT_KINDS = (
    GenerationKind.SCRIPT,
    GenerationKind.IMAGE,
    GenerationKind.VIDEO,
    GenerationKind.AUDIO,
)

_STATUS_FIELDS = {
    GenerationKind.SCRIPT: "script_status",
    GenerationKind.IMAGE: "image_status",
    GenerationKind.VIDEO: "video_status",
    GenerationKind.AUDIO: "audio_status",
    GenerationKind.FINAL: "final_status",
}

_ASSET_FIELDS = {
    GenerationKind.IMAGE: "images",
    GenerationKind.VIDEO: "videos",
    GenerationKind.AUDIO: "audios",
    GenerationKind.FINAL: "clips",
}


def _parse_dt(value: Optional[str]) -> datetime:
    return datetime.fromisoformat(value) if value else datetime.now()


@dataclass
class MediaAsset:
    """
    One generated artifact.

    Immutable once created except for `status` and `selected`.
    """

    id: str
    url: str
    prompt: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    selected: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    duration: Optional[float] = None  # seconds, video/audio only
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(
        cls,
        url: str,
        prompt: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        duration: Optional[float] = None,
    ) -> "MediaAsset":
        return cls(
            id=f"asset_{uuid4().hex[:12]}",
            url=url,
            prompt=prompt,
            metadata=dict(metadata or {}),
            duration=duration,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "prompt": self.prompt,
            "status": self.status.value,
            "selected": self.selected,
            "metadata": self.metadata,
            "duration": self.duration,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MediaAsset":
        return cls(
            id=data["id"],
            url=data["url"],
            prompt=data.get("prompt"),
            status=ApprovalStatus(data.get("status", ApprovalStatus.PENDING.value)),
            selected=data.get("selected", False),
            metadata=data.get("metadata") or {},
            duration=data.get("duration"),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at")),
        )


@dataclass
class InFlightGeneration:
    """
    A generation request that has been dispatched but not yet resolved.

    The token is the job id. Results carrying any other token are stale
    and get discarded. The `previous_*` fields hold what the request
    changed so a cancel can put it back.
    """

    token: str
    kind: GenerationKind
    previous_status: ApprovalStatus
    previous_skipped: bool = False
    previous_final_status: Optional[ApprovalStatus] = None  # set if the request reset the final slot
    previous_final_video: Optional[MediaAsset] = None
    requested_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "kind": self.kind.value,
            "previous_status": self.previous_status.value,
            "previous_skipped": self.previous_skipped,
            "previous_final_status": self.previous_final_status.value if self.previous_final_status else None,
            "previous_final_video": self.previous_final_video.to_dict() if self.previous_final_video else None,
            "requested_at": self.requested_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InFlightGeneration":
        final_status = data.get("previous_final_status")
        final_video = data.get("previous_final_video")
        return cls(
            token=data["token"],
            kind=GenerationKind(data["kind"]),
            previous_status=ApprovalStatus(data["previous_status"]),
            previous_skipped=data.get("previous_skipped", False),
            previous_final_status=ApprovalStatus(final_status) if final_status else None,
            previous_final_video=MediaAsset.from_dict(final_video) if final_video else None,
            requested_at=_parse_dt(data.get("requested_at")),
        )


@dataclass
class Segment:
    """
    One narrative beat of a project.

    Holds its own script, candidates per media type and one approval
    status per slot. `version` is owned by the store.
    """

    id: str
    order: int
    script: str = ""
    video_prompt: str = ""

    # Candidates
    images: list[MediaAsset] = field(default_factory=list)
    videos: list[MediaAsset] = field(default_factory=list)
    audios: list[MediaAsset] = field(default_factory=list)
    clips: list[MediaAsset] = field(default_factory=list)

    # Approval slots
    script_status: ApprovalStatus = ApprovalStatus.DRAFT
    image_status: ApprovalStatus = ApprovalStatus.DRAFT
    video_status: ApprovalStatus = ApprovalStatus.DRAFT
    audio_status: ApprovalStatus = ApprovalStatus.DRAFT
    final_status: ApprovalStatus = ApprovalStatus.DRAFT

    # Per-slot bookkeeping, keyed by GenerationKind value
    in_flight: dict[str, InFlightGeneration] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    skipped: set[str] = field(default_factory=set)

    version: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(cls, order: int, script: str = "", video_prompt: str = "") -> "Segment":
        return cls(
            id=f"seg_{uuid4().hex[:12]}",
            order=order,
            script=script,
            video_prompt=video_prompt,
        )

    # === Slot accessors ===

    def status_of(self, kind: GenerationKind) -> ApprovalStatus:
        return getattr(self, _STATUS_FIELDS[kind])

    def set_status(self, kind: GenerationKind, status: ApprovalStatus) -> None:
        setattr(self, _STATUS_FIELDS[kind], status)

    def assets_of(self, kind: GenerationKind) -> list[MediaAsset]:
        return getattr(self, _ASSET_FIELDS[kind])

    def selected_asset(self, kind: GenerationKind) -> Optional[MediaAsset]:
        for asset in self.assets_of(kind):
            if asset.selected:
                return asset
        return None

    def find_asset(self, kind: GenerationKind, asset_id: str) -> Optional[MediaAsset]:
        for asset in self.assets_of(kind):
            if asset.id == asset_id:
                return asset
        return None

    def in_flight_for(self, kind: GenerationKind) -> Optional[InFlightGeneration]:
        return self.in_flight.get(kind.value)

    def is_skipped(self, kind: GenerationKind) -> bool:
        return kind.value in self.skipped

    def is_satisfied(self, kind: GenerationKind) -> bool:
        """Whether a slot counts as done for gating purposes."""
        return self.status_of(kind) == ApprovalStatus.APPROVED or self.is_skipped(kind)

    def components_satisfied(self) -> bool:
        return all(self.is_satisfied(kind) for kind in COMPONENT_KINDS)

    def estimated_duration(self, words_per_minute: int = 150, minimum: int = 5) -> float:
        """
        Estimate playback length in seconds.

        Longest video candidate, else longest audio candidate, else a
        reading-speed estimate from the script.
        """
        video = max((a.duration or 0 for a in self.videos), default=0)
        if video > 0:
            return video
        audio = max((a.duration or 0 for a in self.audios), default=0)
        if audio > 0:
            return audio
        words = len(self.script.split())
        return max(minimum, -(-words * 60 // words_per_minute))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order": self.order,
            "script": self.script,
            "video_prompt": self.video_prompt,
            "images": [a.to_dict() for a in self.images],
            "videos": [a.to_dict() for a in self.videos],
            "audios": [a.to_dict() for a in self.audios],
            "clips": [a.to_dict() for a in self.clips],
            "script_status": self.script_status.value,
            "image_status": self.image_status.value,
            "video_status": self.video_status.value,
            "audio_status": self.audio_status.value,
            "final_status": self.final_status.value,
            "in_flight": {k: v.to_dict() for k, v in self.in_flight.items()},
            "errors": dict(self.errors),
            "skipped": sorted(self.skipped),
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        return cls(
            id=data["id"],
            order=data["order"],
            script=data.get("script", ""),
            video_prompt=data.get("video_prompt", ""),
            images=[MediaAsset.from_dict(a) for a in data.get("images", [])],
            videos=[MediaAsset.from_dict(a) for a in data.get("videos", [])],
            audios=[MediaAsset.from_dict(a) for a in data.get("audios", [])],
            clips=[MediaAsset.from_dict(a) for a in data.get("clips", [])],
            script_status=ApprovalStatus(data.get("script_status", "DRAFT")),
            image_status=ApprovalStatus(data.get("image_status", "DRAFT")),
            video_status=ApprovalStatus(data.get("video_status", "DRAFT")),
            audio_status=ApprovalStatus(data.get("audio_status", "DRAFT")),
            final_status=ApprovalStatus(data.get("final_status", "DRAFT")),
            in_flight={
                k: InFlightGeneration.from_dict(v)
                for k, v in (data.get("in_flight") or {}).items()
            },
            errors=dict(data.get("errors") or {}),
            skipped=set(data.get("skipped") or []),
            version=data.get("version", 0),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at")),
        )


@dataclass
class Project:
    """
    Aggregate root: an ordered list of segments plus lifecycle state.

    `status` and `current_stage` are derived from the segments by the
    workflow engine and persisted for cheap listing.
    """

    id: str
    title: str
    user_id: str
    description: str = ""
    story: str = ""  # source material for script generation
    status: ProjectStatus = ProjectStatus.DRAFT
    current_stage: WorkflowStage = WorkflowStage.SCRIPT_GENERATION
    segments: list[Segment] = field(default_factory=list)

    # Project-level generation (script, assembly) and its output
    in_flight: Optional[InFlightGeneration] = None
    final_video: Optional[MediaAsset] = None
    # Set when a user cancels final assembly; cleared once a final approval is lost
    assembly_cancelled: bool = False

    # Failure bookkeeping
    failure_reason: Optional[str] = None
    failed_stage: Optional[WorkflowStage] = None

    history: list[dict] = field(default_factory=list)
    version: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(cls, title: str, user_id: str, description: str = "", story: str = "") -> "Project":
        return cls(
            id=f"proj_{uuid4().hex[:12]}",
            title=title,
            user_id=user_id,
            description=description,
            story=story,
        )

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        for segment in self.segments:
            if segment.id == segment_id:
                return segment
        return None

    def ordered_segments(self) -> list[Segment]:
        return sorted(self.segments, key=lambda s: s.order)

    def selected_clip_ids(self) -> list[Optional[str]]:
        """Selected merged clip per segment, in playback order."""
        clips = [s.selected_asset(GenerationKind.FINAL) for s in self.ordered_segments()]
        return [c.id if c else None for c in clips]

    def record(self, event: str, **details: Any) -> None:
        """Append an entry to the audit history."""
        self.history.append({
            "event": event,
            "timestamp": datetime.now().isoformat(),
            **details,
        })

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "user_id": self.user_id,
            "description": self.description,
            "story": self.story,
            "status": self.status.value,
            "current_stage": self.current_stage.value,
            "segments": [s.to_dict() for s in self.ordered_segments()],
            "in_flight": self.in_flight.to_dict() if self.in_flight else None,
            "final_video": self.final_video.to_dict() if self.final_video else None,
            "assembly_cancelled": self.assembly_cancelled,
            "failure_reason": self.failure_reason,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "history": self.history,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            id=data["id"],
            title=data["title"],
            user_id=data.get("user_id", ""),
            description=data.get("description") or "",
            story=data.get("story") or "",
            status=ProjectStatus(data.get("status", "DRAFT")),
            current_stage=WorkflowStage(data.get("current_stage", "SCRIPT_GENERATION")),
            segments=[Segment.from_dict(s) for s in data.get("segments", [])],
            in_flight=InFlightGeneration.from_dict(data["in_flight"]) if data.get("in_flight") else None,
            final_video=MediaAsset.from_dict(data["final_video"]) if data.get("final_video") else None,
            assembly_cancelled=data.get("assembly_cancelled", False),
            failure_reason=data.get("failure_reason"),
            failed_stage=WorkflowStage(data["failed_stage"]) if data.get("failed_stage") else None,
            history=data.get("history", []),
            version=data.get("version", 0),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at")),
        )
