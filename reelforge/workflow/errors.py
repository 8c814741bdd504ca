"""Typed workflow errors and the result envelope returned by the engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from reelforge.workflow.models import Project


class ErrorKind(str, Enum):
    """Business-level failure categories surfaced to callers."""

    INVALID_TRANSITION = "InvalidTransition"        # Action illegal from current status
    CONFLICTING_OPERATION = "ConflictingOperation"  # Lost a race or slot busy
    GENERATION_FAILED = "GenerationFailed"          # Gateway terminal failure
    GENERATION_TIMEOUT = "GenerationTimeout"        # Gateway retryable failure
    NOT_FOUND = "NotFound"
    VALIDATION_ERROR = "ValidationError"


class WorkflowError(Exception):
    """
    Raised inside the engine for expected business conditions.

    Never escapes a public engine operation: it is converted into a
    failed WorkflowResult at the boundary.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


@dataclass
class WorkflowResult:
    """Outcome of an engine operation: a project snapshot or a typed error."""

    project: Optional[Project] = None
    error: Optional[WorkflowError] = None
    job_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @classmethod
    def success(cls, project: Project, job_id: Optional[str] = None) -> "WorkflowResult":
        return cls(project=project, job_id=job_id)

    @classmethod
    def failure(cls, error: WorkflowError) -> "WorkflowResult":
        return cls(error=error)
