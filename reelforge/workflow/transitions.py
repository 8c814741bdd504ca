"""
Transition rules for approval slots and project stages.

Slot transitions are an explicit (status x event) table. Every pair maps
to either the next status or the ErrorKind the engine must report.
The table is verified for completeness at import time.

Project stage and status are pure functions of the segments:
    SCRIPT_GENERATION → IMAGE_GENERATION → VIDEO_GENERATION →
    AUDIO_GENERATION → FINAL_ASSEMBLY → COMPLETED
"""

from enum import Enum
from typing import Optional, Union

from reelforge.workflow.errors import ErrorKind, WorkflowError
from reelforge.workflow.models import (
    ApprovalStatus,
    GenerationKind,
    MediaAsset,
    ProjectStatus,
    Segment,
    WorkflowStage,
)


class SlotEvent(str, Enum):
    """Events that act on a single approval slot."""

    REQUEST = "request"    # Generation requested (first try, retry or regenerate)
    COMPLETE = "complete"  # Generated candidate arrived
    FAIL = "fail"          # Generation failed
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"      # In-flight generation cancelled
    SELECT = "select"      # A different candidate was selected


# Marker for CANCEL: the slot returns to the status it had before the request
RESTORE_PREVIOUS = "restore_previous"

Target = Union[ApprovalStatus, ErrorKind, str]

_S = ApprovalStatus
_E = SlotEvent
_INVALID = ErrorKind.INVALID_TRANSITION
_CONFLICT = ErrorKind.CONFLICTING_OPERATION

SLOT_TRANSITIONS: dict[ApprovalStatus, dict[SlotEvent, Target]] = {
    _S.DRAFT: {
        _E.REQUEST: _S.REGENERATING,
        _E.COMPLETE: _CONFLICT,
        _E.FAIL: _CONFLICT,
        _E.APPROVE: _INVALID,
        _E.REJECT: _INVALID,
        _E.CANCEL: _INVALID,
        _E.SELECT: _INVALID,
    },
    _S.PENDING: {
        _E.REQUEST: _CONFLICT,
        _E.COMPLETE: _CONFLICT,
        _E.FAIL: _CONFLICT,
        _E.APPROVE: _S.APPROVED,
        _E.REJECT: _S.REJECTED,
        _E.CANCEL: _INVALID,
        _E.SELECT: _S.PENDING,
    },
    _S.APPROVED: {
        _E.REQUEST: _S.REGENERATING,
        _E.COMPLETE: _CONFLICT,
        _E.FAIL: _CONFLICT,
        _E.APPROVE: _INVALID,
        _E.REJECT: _INVALID,
        _E.CANCEL: _INVALID,
        _E.SELECT: _S.PENDING,
    },
    _S.REJECTED: {
        _E.REQUEST: _S.REGENERATING,
        _E.COMPLETE: _CONFLICT,
        _E.FAIL: _CONFLICT,
        _E.APPROVE: _INVALID,
        _E.REJECT: _INVALID,
        _E.CANCEL: _INVALID,
        _E.SELECT: _S.PENDING,
    },
    _S.REGENERATING: {
        _E.REQUEST: _CONFLICT,
        _E.COMPLETE: _S.PENDING,
        _E.FAIL: _S.REJECTED,
        _E.APPROVE: _INVALID,
        _E.REJECT: _INVALID,
        _E.CANCEL: RESTORE_PREVIOUS,
        _E.SELECT: _CONFLICT,
    },
}


def _verify_table() -> None:
    for status in ApprovalStatus:
        row = SLOT_TRANSITIONS.get(status)
        if row is None:
            raise RuntimeError(f"No transitions defined for status {status.value}")
        missing = [event.value for event in SlotEvent if event not in row]
        if missing:
            raise RuntimeError(f"Status {status.value} missing events: {', '.join(missing)}")


_verify_table()


def next_status(
    current: ApprovalStatus,
    event: SlotEvent,
    previous: Optional[ApprovalStatus] = None,
) -> ApprovalStatus:
    """
    Resolve a slot transition.

    Args:
        current: Current slot status
        event: Event being applied
        previous: Status recorded before the in-flight request (CANCEL only)

    Returns:
        The new status.

    Raises:
        WorkflowError: If the table rejects the transition.
        KeyError: On a status or event outside the table (programmer error).
    """
    target = SLOT_TRANSITIONS[ApprovalStatus(current)][SlotEvent(event)]
    if isinstance(target, ErrorKind):
        raise WorkflowError(
            target,
            f"Cannot {event.value} from {current.value}",
        )
    if target == RESTORE_PREVIOUS:
        if previous is None:
            raise ValueError("CANCEL requires the pre-request status")
        return previous
    return target


def stamp_selected(segment: Segment, kind: GenerationKind, status: ApprovalStatus) -> Optional[MediaAsset]:
    """Copy a slot decision onto the currently selected candidate."""
    if kind == GenerationKind.SCRIPT:
        return None
    asset = segment.selected_asset(kind)
    if asset is not None:
        asset.status = status
    return asset


def select_only(segment: Segment, kind: GenerationKind, asset_id: str) -> None:
    """Mark one candidate selected and deselect every other in the slot."""
    for asset in segment.assets_of(kind):
        asset.selected = asset.id == asset_id


# =============================================================================
# Project Stage Rules
# =============================================================================

STAGE_SLOTS = [
    (WorkflowStage.SCRIPT_GENERATION, GenerationKind.SCRIPT),
    (WorkflowStage.IMAGE_GENERATION, GenerationKind.IMAGE),
    (WorkflowStage.VIDEO_GENERATION, GenerationKind.VIDEO),
    (WorkflowStage.AUDIO_GENERATION, GenerationKind.AUDIO),
    (WorkflowStage.FINAL_ASSEMBLY, GenerationKind.FINAL),
]


def compute_stage(segments: list[Segment], has_final_video: bool) -> WorkflowStage:
    """
    The first stage whose slot is not satisfied on every segment.

    With every slot satisfied the project is assembling until the final
    video exists, then COMPLETED.
    """
    if not segments:
        return WorkflowStage.SCRIPT_GENERATION
    for stage, kind in STAGE_SLOTS:
        if not all(s.is_satisfied(kind) for s in segments):
            return stage
    return WorkflowStage.COMPLETED if has_final_video else WorkflowStage.FINAL_ASSEMBLY


def all_final_approved(segments: list[Segment]) -> bool:
    return bool(segments) and all(
        s.final_status == ApprovalStatus.APPROVED for s in segments
    )


def compute_status(
    current: ProjectStatus,
    segments: list[Segment],
    has_final_video: bool,
) -> ProjectStatus:
    """
    Derive the lifecycle status.

    FAILED sticks until an explicit retry. DRAFT holds until the first
    segment exists. COMPLETED requires every final slot approved and the
    final video attached.
    """
    if current == ProjectStatus.FAILED:
        return current
    if all_final_approved(segments) and has_final_video:
        return ProjectStatus.COMPLETED
    if current == ProjectStatus.DRAFT and not segments:
        return ProjectStatus.DRAFT
    return ProjectStatus.IN_PROGRESS


def blocking_segments(segments: list[Segment], stage: WorkflowStage) -> list[str]:
    """Segments holding the project at `stage` (empty past the slot stages)."""
    for slot_stage, kind in STAGE_SLOTS:
        if slot_stage == stage:
            return [s.id for s in segments if not s.is_satisfied(kind)]
    return []
