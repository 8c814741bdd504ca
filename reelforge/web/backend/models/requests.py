"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field


class CreateProjectRequest(BaseModel):
    """Request to create a new project."""

    title: str = Field(..., min_length=1, max_length=200, description="Project title")
    description: str = Field(default="", description="Project description / idea")
    story: str = Field(default="", description="Source material the script is written from")


class UpdateProjectRequest(BaseModel):
    """Request to edit project text. Omitted fields are left alone."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    story: str | None = None


class GenerateScriptRequest(BaseModel):
    """Request to split the project idea into segments."""

    segment_count: int | None = Field(default=None, ge=1, le=20, description="Number of segments")


class GenerateSlotRequest(BaseModel):
    """Options for generating one slot."""

    voice: str | None = Field(default=None, min_length=1, description="Narration voice (audio only)")


class AddSegmentRequest(BaseModel):
    """Request to add a segment by hand."""

    script: str = Field(..., min_length=1, description="Segment script text")
    video_prompt: str = Field(default="", description="Visual prompt for image/video generation")
    order: int | None = Field(default=None, ge=0, description="Insert position (default: append)")


class UpdateSegmentRequest(BaseModel):
    """Request to edit segment text."""

    script: str | None = Field(default=None, description="New script text")
    video_prompt: str | None = Field(default=None, description="New visual prompt")


class ReorderSegmentsRequest(BaseModel):
    """Request to set a new playback order."""

    segment_ids: list[str] = Field(..., description="Every segment id, in the new order")


class RejectRequest(BaseModel):
    """Request to reject a slot."""

    reason: str | None = Field(default=None, description="Why the candidate was rejected")


class SelectCandidateRequest(BaseModel):
    """Request to make one candidate the active one."""

    asset_id: str = Field(..., min_length=1, description="Candidate asset id")


class SuggestIdeaRequest(BaseModel):
    """Request for a title/description suggestion."""

    topic: str = Field(..., min_length=1, max_length=500, description="Topic to build a video around")
