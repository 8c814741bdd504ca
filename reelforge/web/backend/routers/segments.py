"""Segment editing and per-slot approval router.

Slot routes take the kind as a path segment:
    POST /projects/{project_id}/segments/{segment_id}/{kind}/generate
where kind is one of script, image, video, audio, final.
"""

from fastapi import APIRouter, status

from ..dependencies import AppConfigDep, EngineDep
from ..errors import unwrap
from ..models.requests import (
    AddSegmentRequest,
    GenerateSlotRequest,
    RejectRequest,
    ReorderSegmentsRequest,
    SelectCandidateRequest,
    UpdateSegmentRequest,
)
from ..models.responses import ActionResponse, project_detail

router = APIRouter(prefix="/projects/{project_id}/segments", tags=["segments"])


def _respond(result, app_config) -> ActionResponse:
    result = unwrap(result)
    return ActionResponse(project=project_detail(result.project, app_config.workflow), job_id=result.job_id)


# === Editing ===


@router.post("", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
def add_segment(
    project_id: str,
    request: AddSegmentRequest,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Append a segment, or insert it at `order`."""
    return _respond(
        engine.add_segment(project_id, request.script, request.video_prompt, order=request.order),
        app_config,
    )


@router.put("/order", response_model=ActionResponse)
def reorder_segments(
    project_id: str,
    request: ReorderSegmentsRequest,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Set a new playback order."""
    return _respond(engine.reorder_segments(project_id, request.segment_ids), app_config)


@router.patch("/{segment_id}", response_model=ActionResponse)
def update_segment(
    project_id: str,
    segment_id: str,
    request: UpdateSegmentRequest,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Edit script or visual prompt. A script edit re-opens script review."""
    return _respond(
        engine.update_segment(project_id, segment_id, script=request.script, video_prompt=request.video_prompt),
        app_config,
    )


@router.delete("/{segment_id}", response_model=ActionResponse)
def delete_segment(
    project_id: str,
    segment_id: str,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Delete a segment and close the gap in the order."""
    return _respond(engine.delete_segment(project_id, segment_id), app_config)


# === Slots ===


@router.post(
    "/{segment_id}/{kind}/generate",
    response_model=ActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def request_generation(
    project_id: str,
    segment_id: str,
    kind: str,
    engine: EngineDep,
    app_config: AppConfigDep,
    request: GenerateSlotRequest | None = None,
) -> ActionResponse:
    """Generate or regenerate a slot. Returns the job id."""
    voice = request.voice if request else None
    return _respond(engine.request_generation(project_id, segment_id, kind.upper(), voice=voice), app_config)


@router.post("/{segment_id}/{kind}/approve", response_model=ActionResponse)
def approve(
    project_id: str,
    segment_id: str,
    kind: str,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Approve the slot's selected candidate."""
    return _respond(engine.approve(project_id, segment_id, kind.upper()), app_config)


@router.post("/{segment_id}/{kind}/reject", response_model=ActionResponse)
def reject(
    project_id: str,
    segment_id: str,
    kind: str,
    engine: EngineDep,
    app_config: AppConfigDep,
    request: RejectRequest | None = None,
) -> ActionResponse:
    """Reject the slot's selected candidate."""
    reason = request.reason if request else None
    return _respond(engine.reject(project_id, segment_id, kind.upper(), reason=reason), app_config)


@router.post("/{segment_id}/{kind}/select", response_model=ActionResponse)
def select_candidate(
    project_id: str,
    segment_id: str,
    kind: str,
    request: SelectCandidateRequest,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Make another candidate the active one."""
    return _respond(
        engine.select_candidate(project_id, segment_id, kind.upper(), request.asset_id),
        app_config,
    )


@router.post("/{segment_id}/{kind}/cancel", response_model=ActionResponse)
def cancel(
    project_id: str,
    segment_id: str,
    kind: str,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Cancel the slot's in-flight generation, restoring its previous status."""
    return _respond(engine.cancel(project_id, segment_id, kind.upper()), app_config)


@router.post("/{segment_id}/{kind}/skip", response_model=ActionResponse)
def skip_step(
    project_id: str,
    segment_id: str,
    kind: str,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ActionResponse:
    """Mark an image, video or audio slot as not needed."""
    return _respond(engine.skip_step(project_id, segment_id, kind.upper()), app_config)
