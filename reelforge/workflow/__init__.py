"""
Workflow - the approval-gated state machine behind every ReelForge project.

This module provides the core of segment-level video production:
- ProjectStore: JSON persistence with compare-and-set writes
- Transition table: every (slot status, event) pair and its outcome
- WorkflowEngine (reelforge.workflow.engine): validates, commits and
  dispatches generation jobs
- JobManager (reelforge.workflow.jobs): thread pool the jobs run on
- WorkflowResult: project snapshot or typed error, never a partial write

Architecture:
    Request → Engine (validate + CAS) → Job → Gateway → Completion → Refresh
"""

from reelforge.workflow.errors import ErrorKind, WorkflowError, WorkflowResult
from reelforge.workflow.models import (
    ApprovalStatus,
    GenerationKind,
    InFlightGeneration,
    MediaAsset,
    Project,
    ProjectStatus,
    Segment,
    WorkflowStage,
)
from reelforge.workflow.store import ProjectStore, RecordNotFound, StaleWrite
from reelforge.workflow.transitions import SlotEvent, compute_stage, compute_status, next_status

__all__ = [
    "ApprovalStatus",
    "ErrorKind",
    "GenerationKind",
    "InFlightGeneration",
    "MediaAsset",
    "Project",
    "ProjectStatus",
    "ProjectStore",
    "RecordNotFound",
    "Segment",
    "SlotEvent",
    "StaleWrite",
    "WorkflowError",
    "WorkflowResult",
    "WorkflowStage",
    "compute_stage",
    "compute_status",
    "next_status",
]
