"""Pydantic response models for API endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from reelforge.config import WorkflowConfig
from reelforge.workflow import Project, Segment
from reelforge.workflow.transitions import blocking_segments


class MediaAssetResponse(BaseModel):
    """One generated candidate."""

    id: str
    url: str
    prompt: str | None = None
    status: str
    selected: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    duration: float | None = None
    created_at: datetime
    updated_at: datetime


class InFlightResponse(BaseModel):
    """A dispatched generation that has not reported back."""

    token: str
    kind: str
    previous_status: str
    previous_skipped: bool = False
    requested_at: datetime


class SegmentResponse(BaseModel):
    """A segment with its candidates and approval slots."""

    id: str
    order: int
    script: str
    video_prompt: str
    images: list[MediaAssetResponse]
    videos: list[MediaAssetResponse]
    audios: list[MediaAssetResponse]
    clips: list[MediaAssetResponse]
    script_status: str
    image_status: str
    video_status: str
    audio_status: str
    final_status: str
    in_flight: dict[str, InFlightResponse]
    errors: dict[str, str]
    skipped: list[str]
    version: int
    estimated_duration: float = Field(description="Estimated playback length in seconds")
    created_at: datetime
    updated_at: datetime


class ProjectSummary(BaseModel):
    """Summary of a project for listing."""

    id: str
    title: str
    description: str
    user_id: str
    status: str
    current_stage: str
    segment_count: int
    has_final_video: bool
    updated_at: datetime


class ProjectDetail(BaseModel):
    """Detailed project information."""

    id: str
    title: str
    description: str
    story: str
    user_id: str
    status: str
    current_stage: str
    segments: list[SegmentResponse]
    blocking_segments: list[str] = Field(description="Segments holding the project at its current stage")
    in_flight: InFlightResponse | None = None
    final_video: MediaAssetResponse | None = None
    assembly_cancelled: bool = False
    failure_reason: str | None = None
    failed_stage: str | None = None
    estimated_duration: float
    history: list[dict[str, Any]]
    version: int
    created_at: datetime
    updated_at: datetime


class ActionResponse(BaseModel):
    """Result of a workflow action: the new snapshot and any dispatched job."""

    project: ProjectDetail
    job_id: str | None = None


class JobResponse(BaseModel):
    """Status of a background generation job."""

    job_id: str
    type: str
    project_id: str
    segment_id: str | None = None
    status: str
    progress: float
    message: str
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class JobAccepted(BaseModel):
    """A job was queued."""

    job_id: str


def segment_response(segment: Segment, config: WorkflowConfig) -> SegmentResponse:
    data = segment.to_dict()
    data["estimated_duration"] = segment.estimated_duration(
        words_per_minute=config.words_per_minute,
        minimum=config.min_segment_seconds,
    )
    return SegmentResponse.model_validate(data)


def project_summary(project: Project) -> ProjectSummary:
    return ProjectSummary(
        id=project.id,
        title=project.title,
        description=project.description,
        user_id=project.user_id,
        status=project.status.value,
        current_stage=project.current_stage.value,
        segment_count=len(project.segments),
        has_final_video=project.final_video is not None,
        updated_at=project.updated_at,
    )


def project_detail(project: Project, config: WorkflowConfig) -> ProjectDetail:
    data = project.to_dict()
    segments = [segment_response(s, config) for s in project.ordered_segments()]
    data["segments"] = segments
    data["blocking_segments"] = blocking_segments(project.segments, project.current_stage)
    data["estimated_duration"] = sum(s.estimated_duration for s in segments)
    return ProjectDetail.model_validate(data)
