"""Idea suggestion router."""

from fastapi import APIRouter, status

from ..dependencies import EngineDep
from ..errors import unwrap
from ..models.requests import SuggestIdeaRequest
from ..models.responses import JobAccepted

router = APIRouter(prefix="/ideas", tags=["ideas"])


@router.post("", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED)
def suggest_idea(request: SuggestIdeaRequest, engine: EngineDep) -> JobAccepted:
    """Queue a title/description suggestion; poll /jobs/{job_id} for the result."""
    result = unwrap(engine.suggest_idea(request.topic))
    return JobAccepted(job_id=result.job_id)
