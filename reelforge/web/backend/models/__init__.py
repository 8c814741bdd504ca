"""Pydantic models for API requests and responses."""

from .requests import (
    AddSegmentRequest,
    CreateProjectRequest,
    GenerateScriptRequest,
    GenerateSlotRequest,
    RejectRequest,
    ReorderSegmentsRequest,
    SelectCandidateRequest,
    SuggestIdeaRequest,
    UpdateProjectRequest,
    UpdateSegmentRequest,
)
from .responses import (
    ActionResponse,
    InFlightResponse,
    JobAccepted,
    JobResponse,
    MediaAssetResponse,
    ProjectDetail,
    ProjectSummary,
    SegmentResponse,
    project_detail,
    project_summary,
    segment_response,
)

__all__ = [
    # Requests
    "AddSegmentRequest",
    "CreateProjectRequest",
    "GenerateScriptRequest",
    "GenerateSlotRequest",
    "RejectRequest",
    "ReorderSegmentsRequest",
    "SelectCandidateRequest",
    "SuggestIdeaRequest",
    "UpdateProjectRequest",
    "UpdateSegmentRequest",
    # Responses
    "ActionResponse",
    "InFlightResponse",
    "JobAccepted",
    "JobResponse",
    "MediaAssetResponse",
    "ProjectDetail",
    "ProjectSummary",
    "SegmentResponse",
    "project_detail",
    "project_summary",
    "segment_response",
]
