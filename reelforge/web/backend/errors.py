"""Translation of workflow results into HTTP responses."""

from fastapi import HTTPException, status

from reelforge.workflow import ErrorKind, WorkflowResult

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.CONFLICTING_OPERATION: status.HTTP_409_CONFLICT,
    ErrorKind.GENERATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.GENERATION_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}


def unwrap(result: WorkflowResult) -> WorkflowResult:
    """Return a successful result, or raise the matching HTTPException."""
    if result.ok:
        return result
    raise HTTPException(
        status_code=STATUS_BY_KIND[result.error.kind],
        detail=result.error.to_dict(),
    )
