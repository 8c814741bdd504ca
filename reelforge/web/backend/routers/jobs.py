"""Job status router."""

from fastapi import APIRouter, HTTPException, status

from reelforge.workflow import GenerationKind
from reelforge.workflow.jobs import JobStatus, JobType

from ..dependencies import EngineDep, JobManagerDep
from ..errors import unwrap
from ..models.responses import JobResponse

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[JobResponse])
def list_jobs(
    job_manager: JobManagerDep,
    project_id: str | None = None,
) -> list[JobResponse]:
    """List all jobs, optionally filtered by project."""
    return [JobResponse.model_validate(job.to_dict()) for job in job_manager.list_jobs(project_id=project_id)]


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: str,
    job_manager: JobManagerDep,
) -> JobResponse:
    """Get job status."""
    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job not found: {job_id}",
        )
    return JobResponse.model_validate(job.to_dict())


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_job(
    job_id: str,
    job_manager: JobManagerDep,
    engine: EngineDep,
) -> None:
    """Cancel a running job.

    Generation jobs are cancelled through the workflow so the slot they
    were filling gets its previous status back.
    """
    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job not found: {job_id}",
        )

    if job.status not in (JobStatus.PENDING, JobStatus.RUNNING):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot cancel job with status: {job.status.value}",
        )

    if job.type == JobType.IDEA:
        job_manager.cancel_job(job_id)
        return

    kind = GenerationKind(job.type.value)
    if job.segment_id is None:
        unwrap(engine.cancel(job.project_id))
    else:
        unwrap(engine.cancel(job.project_id, job.segment_id, kind))
