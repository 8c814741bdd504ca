"""Project CRUD and project-level generation router."""

from typing import Annotated

from fastapi import APIRouter, Header, status

from ..dependencies import AppConfigDep, ConfigDep, EngineDep
from ..errors import unwrap
from ..models.requests import CreateProjectRequest, GenerateScriptRequest, UpdateProjectRequest
from ..models.responses import (
    ActionResponse,
    ProjectDetail,
    ProjectSummary,
    project_detail,
    project_summary,
)

router = APIRouter(prefix="/projects", tags=["projects"])

UserIdHeader = Annotated[str | None, Header(alias="X-User-Id")]


@router.get("", response_model=list[ProjectSummary])
def list_projects(engine: EngineDep, x_user_id: UserIdHeader = None) -> list[ProjectSummary]:
    """List projects, newest first. With X-User-Id only that user's projects."""
    return [project_summary(p) for p in engine.list_projects(user_id=x_user_id)]


@router.post("", response_model=ProjectDetail, status_code=status.HTTP_201_CREATED)
def create_project(
    request: CreateProjectRequest,
    engine: EngineDep,
    config: ConfigDep,
    app_config: AppConfigDep,
    x_user_id: UserIdHeader = None,
) -> ProjectDetail:
    """Create a new project in DRAFT."""
    result = unwrap(engine.create_project(
        title=request.title,
        user_id=x_user_id or config.default_user_id,
        description=request.description,
        story=request.story,
    ))
    return project_detail(result.project, app_config.workflow)


@router.get("/{project_id}", response_model=ProjectDetail)
def get_project(project_id: str, engine: EngineDep, app_config: AppConfigDep) -> ProjectDetail:
    """Get a project with all segments, candidates and slot statuses."""
    result = unwrap(engine.get_project(project_id))
    return project_detail(result.project, app_config.workflow)


@router.patch("/{project_id}", response_model=ProjectDetail)
def update_project(
    project_id: str,
    request: UpdateProjectRequest,
    engine: EngineDep,
    app_config: AppConfigDep,
) -> ProjectDetail:
    """Edit title, description or story."""
    result = unwrap(engine.update_project(
        project_id,
        title=request.title,
        description=request.description,
        story=request.story,
    ))
    return project_detail(result.project, app_config.workflow)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: str, engine: EngineDep) -> None:
    """Delete a project and cancel its in-flight jobs."""
    unwrap(engine.delete_project(project_id))


@router.post("/{project_id}/script", response_model=ActionResponse, status_code=status.HTTP_202_ACCEPTED)
def generate_script(
    project_id: str,
    engine: EngineDep,
    app_config: AppConfigDep,
    request: GenerateScriptRequest | None = None,
) -> ActionResponse:
    """Generate the project's segments from its title and description."""
    segment_count = request.segment_count if request else None
    result = unwrap(engine.generate_script(project_id, segment_count=segment_count))
    return ActionResponse(project=project_detail(result.project, app_config.workflow), job_id=result.job_id)


@router.post("/{project_id}/cancel", response_model=ActionResponse)
def cancel_project_generation(project_id: str, engine: EngineDep, app_config: AppConfigDep) -> ActionResponse:
    """Cancel the in-flight script generation or final assembly, if any."""
    result = unwrap(engine.cancel(project_id))
    return ActionResponse(project=project_detail(result.project, app_config.workflow))


@router.post("/{project_id}/retry", response_model=ActionResponse)
def retry_project(project_id: str, engine: EngineDep, app_config: AppConfigDep) -> ActionResponse:
    """Leave FAILED and resume at the stage that failed."""
    result = unwrap(engine.retry_project(project_id))
    return ActionResponse(project=project_detail(result.project, app_config.workflow))
