"""
Workflow Engine - drives projects through generation and approval.

The engine is the only writer of workflow state. Every public operation:
1. Reads the project aggregate from the store
2. Validates the request against the transition table
3. Commits the new record with compare-and-set; derived project fields
   (stage, status, final video, assembly trigger) are recomputed inside
   that same write
4. Returns a WorkflowResult (snapshot or typed error)

Generation work never runs on the caller's thread. A request records an
in-flight token on the slot, then submits a job whose task calls the
gateway and reports back through complete_generation / fail_generation.
A result is applied only if its token still matches the slot.

Usage:
    engine = WorkflowEngine(store, gateway, job_manager)
    result = engine.create_project("Deep sea creatures", user_id="u1")
    engine.generate_script(result.project.id)
"""

import time
from typing import Any, Callable, Optional, Protocol

from reelforge.config import WorkflowConfig
from reelforge.gateway.base import (
    GenerationContext,
    GenerationFailure,
    GenerationGateway,
    GenerationResult,
)
from reelforge.logger import get_logger
from reelforge.workflow.errors import ErrorKind, WorkflowError, WorkflowResult
from reelforge.workflow.jobs import JobManager, JobType
from reelforge.workflow.models import (
    COMPONENT_KINDS,
    MEDIA_KINDS,
    SKIPPABLE_KINDS,
    SLOT_KINDS,
    ApprovalStatus,
    GenerationKind,
    InFlightGeneration,
    MediaAsset,
    Project,
    ProjectStatus,
    Segment,
)
from reelforge.workflow.store import ProjectStore, RecordNotFound, StaleWrite
from reelforge.workflow.transitions import (
    SlotEvent,
    all_final_approved,
    compute_stage,
    compute_status,
    next_status,
    select_only,
    stamp_selected,
)

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 200


class ProjectListener(Protocol):
    """Receives the project snapshot after every committed write."""

    def publish_project(self, project: Project) -> None: ...


class _Derivation:
    """Options for one derive pass, and what it decided."""

    def __init__(
        self,
        fail_reason: Optional[str] = None,
        restore_final_video: Optional[MediaAsset] = None,
    ):
        self.fail_reason = fail_reason
        self.restore_final_video = restore_final_video
        self.assembly_token: Optional[str] = None
        self.dropped_token: Optional[str] = None


class WorkflowEngine:
    """
    Stateless coordinator over the project store, gateway and job manager.

    Holds no workflow state of its own; any number of engines may share a
    store.
    """

    # Bounded retries for writes that do not carry user intent
    CALLBACK_ATTEMPTS = 5

    def __init__(
        self,
        store: ProjectStore,
        gateway: GenerationGateway,
        job_manager: JobManager,
        config: Optional[WorkflowConfig] = None,
        listener: Optional[ProjectListener] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.job_manager = job_manager
        self.config = config or WorkflowConfig()
        self.listener = listener

    # =========================================================================
    # Boundary helpers
    # =========================================================================

    def _run(self, operation: str, action: Callable[[], WorkflowResult]) -> WorkflowResult:
        """Execute an operation, converting business errors into a result."""
        try:
            return action()
        except WorkflowError as e:
            logger.info("workflow_operation_rejected", operation=operation, kind=e.kind.value, reason=e.message)
            return WorkflowResult.failure(e)
        except RecordNotFound as e:
            error = WorkflowError(ErrorKind.NOT_FOUND, f"Not found: {e.args[0]}")
            logger.info("workflow_operation_rejected", operation=operation, kind=error.kind.value, reason=error.message)
            return WorkflowResult.failure(error)
        except StaleWrite as e:
            error = WorkflowError(ErrorKind.CONFLICTING_OPERATION, str(e))
            logger.info("workflow_operation_rejected", operation=operation, kind=error.kind.value, reason=error.message)
            return WorkflowResult.failure(error)

    def _load(self, project_id: str) -> Project:
        try:
            return self.store.get(project_id)
        except RecordNotFound:
            raise WorkflowError(ErrorKind.NOT_FOUND, f"Project {project_id} not found")

    @staticmethod
    def _segment(project: Project, segment_id: str) -> Segment:
        segment = project.get_segment(segment_id)
        if segment is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, f"Segment {segment_id} not found in project {project.id}")
        return segment

    @staticmethod
    def _slot_kind(kind: Any, allowed: tuple = SLOT_KINDS) -> GenerationKind:
        try:
            kind = GenerationKind(kind)
        except ValueError:
            raise WorkflowError(ErrorKind.VALIDATION_ERROR, f"Unknown generation kind: {kind}")
        if kind not in allowed:
            names = ", ".join(k.value for k in allowed)
            raise WorkflowError(ErrorKind.VALIDATION_ERROR, f"{kind.value} is not one of: {names}")
        return kind

    @staticmethod
    def _ensure_active(project: Project) -> None:
        if project.status == ProjectStatus.FAILED:
            stage = project.failed_stage.value if project.failed_stage else "unknown"
            raise WorkflowError(
                ErrorKind.INVALID_TRANSITION,
                f"Project {project.id} failed at {stage}; retry the project first",
            )

    @staticmethod
    def _invalidate_final(segment: Segment) -> bool:
        """A component left its satisfied state: the merged clip is stale.

        Returns True if the final slot was reset.
        """
        if segment.in_flight_for(GenerationKind.FINAL) is not None:
            raise WorkflowError(
                ErrorKind.CONFLICTING_OPERATION,
                f"Segment {segment.id} clip is being merged",
            )
        if segment.final_status == ApprovalStatus.DRAFT:
            return False
        segment.final_status = ApprovalStatus.DRAFT
        segment.errors.pop(GenerationKind.FINAL.value, None)
        return True

    # =========================================================================
    # Writes
    # =========================================================================

    def _write_segment(self, project_id: str, segment: Segment, **options: Any) -> Project:
        """Commit one segment and the project fields derived from it. Raises StaleWrite."""
        derivation = _Derivation(**options)
        project = self.store.commit_segment(
            project_id,
            segment,
            segment.version,
            derive=lambda p: self._derive(p, derivation),
        )
        return self._settle(project, derivation)

    def _write_project(self, project: Project, segments_changed: bool = False, **options: Any) -> Project:
        """Commit project-level fields and everything derived from them. Raises StaleWrite."""
        derivation = _Derivation(**options)
        project = self.store.commit_project(
            project,
            project.version,
            segments_changed=segments_changed,
            derive=lambda p: self._derive(p, derivation),
        )
        return self._settle(project, derivation)

    def _commit_segment(self, project_id: str, segment: Segment, **options: Any) -> Project:
        try:
            return self._write_segment(project_id, segment, **options)
        except StaleWrite as e:
            raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, str(e))

    def _commit_project(self, project: Project, segments_changed: bool = False, **options: Any) -> Project:
        try:
            return self._write_project(project, segments_changed, **options)
        except StaleWrite as e:
            raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, str(e))

    def _publish(self, project: Project) -> None:
        if self.listener is not None:
            self.listener.publish_project(project)

    # =========================================================================
    # Projects
    # =========================================================================

    @staticmethod
    def _clean_title(title: Optional[str]) -> str:
        clean_title = (title or "").strip()
        if not clean_title:
            raise WorkflowError(ErrorKind.VALIDATION_ERROR, "Title must not be empty")
        if len(clean_title) > MAX_TITLE_LENGTH:
            raise WorkflowError(
                ErrorKind.VALIDATION_ERROR,
                f"Title must be at most {MAX_TITLE_LENGTH} characters",
            )
        return clean_title

    def create_project(self, title: str, user_id: str, description: str = "", story: str = "") -> WorkflowResult:
        def action() -> WorkflowResult:
            clean_title = self._clean_title(title)
            if not (user_id or "").strip():
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "user_id must not be empty")

            project = Project.create(
                clean_title,
                user_id.strip(),
                (description or "").strip(),
                (story or "").strip(),
            )
            project.record("created", title=project.title)
            project = self.store.create(project)
            logger.info("project_created", project_id=project.id, user_id=project.user_id)
            self._publish(project)
            return WorkflowResult.success(project)

        return self._run("create_project", action)

    def update_project(
        self,
        project_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        story: Optional[str] = None,
    ) -> WorkflowResult:
        """Edit the project's title, description or story. Slots are untouched."""

        def action() -> WorkflowResult:
            if title is None and description is None and story is None:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "Nothing to update")
            project = self._load(project_id)
            self._ensure_active(project)

            changed = []
            if title is not None:
                clean_title = self._clean_title(title)
                if clean_title != project.title:
                    project.title = clean_title
                    changed.append("title")
            if description is not None and description.strip() != project.description:
                project.description = description.strip()
                changed.append("description")
            if story is not None and story.strip() != project.story:
                project.story = story.strip()
                changed.append("story")
            if not changed:
                return WorkflowResult.success(project)

            project.record("project_updated", fields=changed)
            project = self._commit_project(project)
            logger.info("project_updated", project_id=project_id, fields=changed)
            return WorkflowResult.success(project)

        return self._run("update_project", action)

    def get_project(self, project_id: str) -> WorkflowResult:
        return self._run("get_project", lambda: WorkflowResult.success(self._load(project_id)))

    def list_projects(self, user_id: Optional[str] = None) -> list[Project]:
        return self.store.list_all(user_id=user_id)

    def delete_project(self, project_id: str) -> WorkflowResult:
        """Delete a project. In-flight jobs are cancelled; their results are dropped."""

        def action() -> WorkflowResult:
            project = self._load(project_id)
            tokens = [f.token for s in project.segments for f in s.in_flight.values()]
            if project.in_flight is not None:
                tokens.append(project.in_flight.token)
            self.store.delete(project_id)
            for token in tokens:
                self.job_manager.cancel_job(token)
            logger.info("project_deleted", project_id=project_id, cancelled_jobs=len(tokens))
            return WorkflowResult()

        return self._run("delete_project", action)

    def retry_project(self, project_id: str) -> WorkflowResult:
        """Leave FAILED and resume at the stage that failed."""

        def action() -> WorkflowResult:
            project = self._load(project_id)
            if project.status != ProjectStatus.FAILED:
                raise WorkflowError(
                    ErrorKind.INVALID_TRANSITION,
                    f"Only a failed project can be retried (status is {project.status.value})",
                )
            failed_stage = project.failed_stage
            project.status = ProjectStatus.IN_PROGRESS if project.segments else ProjectStatus.DRAFT
            project.failure_reason = None
            project.failed_stage = None
            project.record("retried", stage=failed_stage.value if failed_stage else None)
            project = self._commit_project(project)
            logger.info("project_retried", project_id=project_id)
            return WorkflowResult.success(project)

        return self._run("retry_project", action)

    # =========================================================================
    # Generation requests
    # =========================================================================

    def generate_script(self, project_id: str, segment_count: Optional[int] = None) -> WorkflowResult:
        """Ask the gateway to split the project idea into segments."""

        def action() -> WorkflowResult:
            project = self._load(project_id)
            self._ensure_active(project)
            if project.in_flight is not None:
                raise WorkflowError(
                    ErrorKind.CONFLICTING_OPERATION,
                    f"Project {project_id} already has {project.in_flight.kind.value} in flight",
                )
            if project.segments:
                raise WorkflowError(
                    ErrorKind.INVALID_TRANSITION,
                    "Project already has segments; regenerate individual segment scripts instead",
                )
            count = segment_count or self.config.default_segment_count
            if count < 1:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "segment_count must be positive")

            token = self.job_manager.new_job_id()
            project.in_flight = InFlightGeneration(
                token=token,
                kind=GenerationKind.SCRIPT,
                previous_status=ApprovalStatus.DRAFT,
            )
            project.failure_reason = None
            project.record("script_requested", job_id=token, segment_count=count)
            project = self._commit_project(project)

            context = GenerationContext(
                kind=GenerationKind.SCRIPT,
                project_id=project.id,
                title=project.title,
                description=project.description,
                story=project.story,
                segment_count=count,
            )
            if not self._dispatch(project.id, None, GenerationKind.SCRIPT, token, context):
                self.cancel(project.id)
                raise WorkflowError(ErrorKind.GENERATION_FAILED, "Could not dispatch script generation")
            return WorkflowResult.success(project, job_id=token)

        return self._run("generate_script", action)

    def request_generation(
        self,
        project_id: str,
        segment_id: str,
        kind: Any,
        voice: Optional[str] = None,
    ) -> WorkflowResult:
        """
        Generate (or regenerate) one slot of one segment.

        Valid from DRAFT, REJECTED and APPROVED. The slot moves to
        REGENERATING until the job reports back. `voice` applies to AUDIO
        only and defaults to the configured voice.
        """

        def action() -> WorkflowResult:
            slot = self._slot_kind(kind)
            if voice is not None and slot != GenerationKind.AUDIO:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "voice applies to AUDIO generation only")
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)

            current = segment.status_of(slot)
            new_status = next_status(current, SlotEvent.REQUEST)
            if slot == GenerationKind.FINAL and not segment.components_satisfied():
                raise WorkflowError(
                    ErrorKind.INVALID_TRANSITION,
                    "Script, image, video and audio must be approved or skipped before merging the clip",
                )

            was_skipped = segment.is_skipped(slot)
            previous_final = segment.final_status
            final_reset = False
            if slot in COMPONENT_KINDS and segment.is_satisfied(slot):
                final_reset = self._invalidate_final(segment)
            segment.skipped.discard(slot.value)

            token = self.job_manager.new_job_id()
            segment.in_flight[slot.value] = InFlightGeneration(
                token=token,
                kind=slot,
                previous_status=current,
                previous_skipped=was_skipped,
                previous_final_status=previous_final if final_reset else None,
                previous_final_video=project.final_video,
            )
            segment.errors.pop(slot.value, None)
            segment.set_status(slot, new_status)
            context = self._segment_context(project, segment, slot, voice)
            project = self._commit_segment(project_id, segment)
            logger.info(
                "slot_transition",
                project_id=project_id,
                segment_id=segment_id,
                kind=slot.value,
                slot_event=SlotEvent.REQUEST.value,
                from_status=current.value,
                to_status=new_status.value,
                job_id=token,
            )

            if not self._dispatch(project_id, segment_id, slot, token, context):
                self.cancel(project_id, segment_id, slot)
                raise WorkflowError(ErrorKind.GENERATION_FAILED, f"Could not dispatch {slot.value} generation")
            return WorkflowResult.success(project, job_id=token)

        return self._run("request_generation", action)

    def suggest_idea(self, topic: str) -> WorkflowResult:
        """Ask the gateway for a title/description seed. The job result carries it."""

        def action() -> WorkflowResult:
            clean_topic = (topic or "").strip()
            if not clean_topic:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "Topic must not be empty")
            context = GenerationContext(kind=GenerationKind.IDEA, project_id="", title=clean_topic)

            def task(job_manager: JobManager, job_id: str) -> dict:
                job_manager.update_progress(job_id, 0.1, "Generating idea")
                try:
                    result = self.gateway.generate(context)
                except GenerationFailure as failure:
                    kind = ErrorKind.GENERATION_TIMEOUT if failure.retryable else ErrorKind.GENERATION_FAILED
                    raise WorkflowError(kind, failure.reason) from failure
                return {
                    "title": result.metadata.get("title", ""),
                    "description": result.metadata.get("description", ""),
                    "provider": result.provider,
                }

            job_id = self.job_manager.submit_job(JobType(GenerationKind.IDEA.value), "", task)
            return WorkflowResult(job_id=job_id)

        return self._run("suggest_idea", action)

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve(self, project_id: str, segment_id: str, kind: Any) -> WorkflowResult:
        def action() -> WorkflowResult:
            slot = self._slot_kind(kind)
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)

            current = segment.status_of(slot)
            new_status = next_status(current, SlotEvent.APPROVE)
            if slot == GenerationKind.FINAL and not segment.components_satisfied():
                raise WorkflowError(
                    ErrorKind.INVALID_TRANSITION,
                    "Final approval requires script, image, video and audio approved or skipped",
                )
            segment.set_status(slot, new_status)
            stamp_selected(segment, slot, new_status)
            project = self._commit_segment(project_id, segment)
            logger.info(
                "slot_transition",
                project_id=project_id,
                segment_id=segment_id,
                kind=slot.value,
                slot_event=SlotEvent.APPROVE.value,
                from_status=current.value,
                to_status=new_status.value,
            )
            return WorkflowResult.success(project)

        return self._run("approve", action)

    def reject(
        self,
        project_id: str,
        segment_id: str,
        kind: Any,
        reason: Optional[str] = None,
    ) -> WorkflowResult:
        def action() -> WorkflowResult:
            slot = self._slot_kind(kind)
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)

            current = segment.status_of(slot)
            new_status = next_status(current, SlotEvent.REJECT)
            segment.set_status(slot, new_status)
            stamp_selected(segment, slot, new_status)
            if reason:
                segment.errors[slot.value] = reason
            project = self._commit_segment(project_id, segment)
            logger.info(
                "slot_transition",
                project_id=project_id,
                segment_id=segment_id,
                kind=slot.value,
                slot_event=SlotEvent.REJECT.value,
                from_status=current.value,
                to_status=new_status.value,
            )
            return WorkflowResult.success(project)

        return self._run("reject", action)

    def select_candidate(self, project_id: str, segment_id: str, kind: Any, asset_id: str) -> WorkflowResult:
        """
        Make one candidate the active one for its slot.

        Re-selecting the active candidate changes nothing. Switching while
        the slot is APPROVED or REJECTED puts it back to PENDING.
        """

        def action() -> WorkflowResult:
            slot = self._slot_kind(kind, MEDIA_KINDS)
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)

            asset = segment.find_asset(slot, asset_id)
            if asset is None:
                raise WorkflowError(ErrorKind.NOT_FOUND, f"Asset {asset_id} not found in {slot.value} candidates")
            if asset.selected:
                return WorkflowResult.success(project)

            current = segment.status_of(slot)
            new_status = next_status(current, SlotEvent.SELECT)
            if slot in COMPONENT_KINDS and segment.is_satisfied(slot):
                self._invalidate_final(segment)
            segment.skipped.discard(slot.value)

            select_only(segment, slot, asset_id)
            segment.set_status(slot, new_status)
            project = self._commit_segment(project_id, segment)
            logger.info(
                "candidate_selected",
                project_id=project_id,
                segment_id=segment_id,
                kind=slot.value,
                asset_id=asset_id,
                from_status=current.value,
                to_status=new_status.value,
            )
            return WorkflowResult.success(project)

        return self._run("select_candidate", action)

    def skip_step(self, project_id: str, segment_id: str, kind: Any) -> WorkflowResult:
        """Mark an image, video or audio slot as deliberately not needed."""

        def action() -> WorkflowResult:
            slot = self._slot_kind(kind, SKIPPABLE_KINDS)
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)

            if segment.is_skipped(slot):
                return WorkflowResult.success(project)
            current = segment.status_of(slot)
            if segment.in_flight_for(slot) is not None:
                raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, f"{slot.value} generation is in flight")
            if current not in (ApprovalStatus.DRAFT, ApprovalStatus.REJECTED):
                raise WorkflowError(
                    ErrorKind.INVALID_TRANSITION,
                    f"Only a DRAFT or REJECTED slot can be skipped (is {current.value})",
                )
            segment.skipped.add(slot.value)
            project = self._commit_segment(project_id, segment)
            logger.info("slot_skipped", project_id=project_id, segment_id=segment_id, kind=slot.value)
            return WorkflowResult.success(project)

        return self._run("skip_step", action)

    def cancel(
        self,
        project_id: str,
        segment_id: Optional[str] = None,
        kind: Any = None,
    ) -> WorkflowResult:
        """
        Cancel in-flight work and put back what the request changed.

        For a segment slot that is its status, its skip flag, the final
        slot it reset and the final video that went with it. Without a
        segment id the project-level generation (script or assembly) is
        cancelled; a cancelled assembly is not dispatched again until some
        final approval is lost and re-granted. Nothing in flight: returns
        the snapshot.
        """

        def action() -> WorkflowResult:
            project = self._load(project_id)

            if segment_id is None:
                in_flight = project.in_flight
                if in_flight is None:
                    return WorkflowResult.success(project)
                project.in_flight = None
                if in_flight.kind == GenerationKind.ASSEMBLY:
                    project.assembly_cancelled = True
                project.record("cancelled", kind=in_flight.kind.value, job_id=in_flight.token)
                project = self._commit_project(project)
                self.job_manager.cancel_job(in_flight.token)
                logger.info("generation_cancelled", project_id=project_id, kind=in_flight.kind.value, job_id=in_flight.token)
                return WorkflowResult.success(project)

            if kind is None:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "kind is required to cancel a segment slot")
            slot = self._slot_kind(kind)
            segment = self._segment(project, segment_id)
            in_flight = segment.in_flight_for(slot)
            if in_flight is None:
                return WorkflowResult.success(project)

            current = segment.status_of(slot)
            restored = next_status(current, SlotEvent.CANCEL, previous=in_flight.previous_status)
            del segment.in_flight[slot.value]
            segment.set_status(slot, restored)
            if in_flight.previous_skipped:
                segment.skipped.add(slot.value)
            if (
                in_flight.previous_final_status is not None
                and segment.final_status == ApprovalStatus.DRAFT
                and segment.in_flight_for(GenerationKind.FINAL) is None
                and segment.components_satisfied()
            ):
                segment.final_status = in_flight.previous_final_status
            project = self._commit_segment(
                project_id,
                segment,
                restore_final_video=in_flight.previous_final_video,
            )
            self.job_manager.cancel_job(in_flight.token)
            logger.info(
                "slot_transition",
                project_id=project_id,
                segment_id=segment_id,
                kind=slot.value,
                slot_event=SlotEvent.CANCEL.value,
                from_status=current.value,
                to_status=restored.value,
                job_id=in_flight.token,
            )
            return WorkflowResult.success(project)

        return self._run("cancel", action)

    # =========================================================================
    # Segment editing
    # =========================================================================

    def add_segment(
        self,
        project_id: str,
        script: str,
        video_prompt: str = "",
        order: Optional[int] = None,
    ) -> WorkflowResult:
        """Append a segment, or insert it at `order` shifting later ones."""

        def action() -> WorkflowResult:
            project = self._load(project_id)
            self._ensure_active(project)
            if project.in_flight is not None and project.in_flight.kind == GenerationKind.SCRIPT:
                raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, "Script generation is in flight")
            text = (script or "").strip()
            if not text:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "Script must not be empty")

            ordered = project.ordered_segments()
            position = len(ordered) if order is None else order
            if position < 0 or position > len(ordered):
                raise WorkflowError(
                    ErrorKind.VALIDATION_ERROR,
                    f"order must be between 0 and {len(ordered)}",
                )

            segment = Segment.create(order=position, script=text, video_prompt=(video_prompt or "").strip())
            segment.script_status = ApprovalStatus.PENDING
            ordered.insert(position, segment)
            for index, item in enumerate(ordered):
                item.order = index
            project.segments = ordered
            project.record("segment_added", segment_id=segment.id, order=position)
            project = self._commit_project(project, segments_changed=True)
            logger.info("segment_added", project_id=project_id, segment_id=segment.id, order=position)
            return WorkflowResult.success(project)

        return self._run("add_segment", action)

    def update_segment(
        self,
        project_id: str,
        segment_id: str,
        script: Optional[str] = None,
        video_prompt: Optional[str] = None,
    ) -> WorkflowResult:
        """Edit segment text. A script edit re-opens the script slot for review."""

        def action() -> WorkflowResult:
            if script is None and video_prompt is None:
                raise WorkflowError(ErrorKind.VALIDATION_ERROR, "Nothing to update")
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)
            if segment.in_flight_for(GenerationKind.SCRIPT) is not None:
                raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, "Script generation is in flight")

            if video_prompt is not None:
                segment.video_prompt = video_prompt.strip()

            if script is not None:
                text = script.strip()
                if not text:
                    raise WorkflowError(ErrorKind.VALIDATION_ERROR, "Script must not be empty")
                if text != segment.script:
                    if segment.is_satisfied(GenerationKind.SCRIPT):
                        self._invalidate_final(segment)
                    segment.script = text
                    segment.script_status = ApprovalStatus.PENDING
                    segment.errors.pop(GenerationKind.SCRIPT.value, None)

            project = self._commit_segment(project_id, segment)
            logger.info("segment_updated", project_id=project_id, segment_id=segment_id)
            return WorkflowResult.success(project)

        return self._run("update_segment", action)

    def delete_segment(self, project_id: str, segment_id: str) -> WorkflowResult:
        def action() -> WorkflowResult:
            project = self._load(project_id)
            self._ensure_active(project)
            segment = self._segment(project, segment_id)

            remaining = [s for s in project.ordered_segments() if s.id != segment_id]
            for index, item in enumerate(remaining):
                item.order = index
            project.segments = remaining
            project.record("segment_deleted", segment_id=segment_id)
            project = self._commit_project(project, segments_changed=True)

            for in_flight in segment.in_flight.values():
                self.job_manager.cancel_job(in_flight.token)
            logger.info("segment_deleted", project_id=project_id, segment_id=segment_id)
            return WorkflowResult.success(project)

        return self._run("delete_segment", action)

    def reorder_segments(self, project_id: str, segment_ids: list[str]) -> WorkflowResult:
        """Apply a new playback order. `segment_ids` must list every segment once."""

        def action() -> WorkflowResult:
            project = self._load(project_id)
            self._ensure_active(project)
            current_ids = [s.id for s in project.ordered_segments()]
            if len(segment_ids) != len(current_ids) or set(segment_ids) != set(current_ids):
                raise WorkflowError(
                    ErrorKind.VALIDATION_ERROR,
                    "segment_ids must be a permutation of the project's segments",
                )
            if list(segment_ids) == current_ids:
                return WorkflowResult.success(project)

            position = {sid: index for index, sid in enumerate(segment_ids)}
            for segment in project.segments:
                segment.order = position[segment.id]
            if project.final_video is not None:
                # Assembled in the old order
                project.record("final_video_detached", reason="segments reordered")
                project.final_video = None
            project.record("segments_reordered", order=list(segment_ids))
            project = self._commit_project(project, segments_changed=True)
            logger.info("segments_reordered", project_id=project_id)
            return WorkflowResult.success(project)

        return self._run("reorder_segments", action)

    # =========================================================================
    # Completion callbacks
    # =========================================================================

    def complete_generation(
        self,
        project_id: str,
        segment_id: Optional[str],
        kind: GenerationKind,
        token: str,
        result: GenerationResult,
    ) -> WorkflowResult:
        """
        Apply a gateway result to the slot that requested it.

        Results whose token no longer matches the slot are discarded and
        reported as ConflictingOperation.
        """

        def action() -> WorkflowResult:
            for _ in range(self.CALLBACK_ATTEMPTS):
                project = self._load(project_id)
                try:
                    if segment_id is None:
                        applied = self._apply_project_result(project, kind, token, result)
                    else:
                        applied = self._apply_segment_result(project, segment_id, kind, token, result)
                except GenerationFailure as failure:
                    return self.fail_generation(project_id, segment_id, kind, token, failure.reason, failure.retryable)
                except StaleWrite:
                    continue
                if applied is None:
                    raise WorkflowError(
                        ErrorKind.CONFLICTING_OPERATION,
                        f"{kind.value} result for job {token} is stale and was discarded",
                    )
                return WorkflowResult.success(applied, job_id=token)
            raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, f"Could not apply {kind.value} result for job {token}")

        return self._run("complete_generation", action)

    def _apply_segment_result(
        self,
        project: Project,
        segment_id: str,
        kind: GenerationKind,
        token: str,
        result: GenerationResult,
    ) -> Optional[Project]:
        segment = self._segment(project, segment_id)
        in_flight = segment.in_flight_for(kind)
        if in_flight is None or in_flight.token != token:
            logger.info(
                "generation_result_discarded",
                project_id=project.id,
                segment_id=segment_id,
                kind=kind.value,
                job_id=token,
            )
            return None

        current = segment.status_of(kind)
        new_status = next_status(current, SlotEvent.COMPLETE)

        if kind == GenerationKind.SCRIPT:
            text = str(result.metadata.get("script") or "").strip()
            if not text:
                raise GenerationFailure("gateway returned an empty script")
            segment.script = text
            if result.metadata.get("video_prompt"):
                segment.video_prompt = str(result.metadata["video_prompt"]).strip()
        else:
            if not result.artifacts:
                raise GenerationFailure(f"gateway returned no {kind.value.lower()} artifacts")
            candidates = segment.assets_of(kind)
            new_assets = [
                MediaAsset.create(
                    url=artifact.url,
                    prompt=artifact.prompt,
                    metadata={**artifact.metadata, "provider": result.provider},
                    duration=artifact.duration,
                )
                for artifact in result.artifacts
            ]
            candidates.extend(new_assets)
            select_only(segment, kind, new_assets[0].id)

        del segment.in_flight[kind.value]
        segment.errors.pop(kind.value, None)
        segment.set_status(kind, new_status)
        project = self._write_segment(project.id, segment)
        logger.info(
            "slot_transition",
            project_id=project.id,
            segment_id=segment_id,
            kind=kind.value,
            slot_event=SlotEvent.COMPLETE.value,
            from_status=current.value,
            to_status=new_status.value,
            job_id=token,
        )
        return project

    def _apply_project_result(
        self,
        project: Project,
        kind: GenerationKind,
        token: str,
        result: GenerationResult,
    ) -> Optional[Project]:
        in_flight = project.in_flight
        if in_flight is None or in_flight.token != token or in_flight.kind != kind:
            logger.info("generation_result_discarded", project_id=project.id, kind=kind.value, job_id=token)
            return None

        if kind == GenerationKind.SCRIPT:
            entries = result.metadata.get("segments") or []
            scripts = [e for e in entries if isinstance(e, dict) and str(e.get("script") or "").strip()]
            if not scripts:
                raise GenerationFailure("gateway returned no segments")
            for index, entry in enumerate(scripts):
                segment = Segment.create(
                    order=index,
                    script=str(entry["script"]).strip(),
                    video_prompt=str(entry.get("video_prompt") or "").strip(),
                )
                segment.script_status = ApprovalStatus.PENDING
                project.segments.append(segment)
            project.in_flight = None
            project.record("script_generated", job_id=token, segments=len(scripts))
            project = self._write_project(project, segments_changed=True)
            logger.info("script_generated", project_id=project.id, segments=len(scripts), job_id=token)
            return project

        # ASSEMBLY. An in-flight assembly is dropped as soon as any final
        # approval is lost, so a matching token means the clips still stand.
        if not result.artifacts:
            raise GenerationFailure("gateway returned no final video")
        artifact = result.artifacts[0]
        final_video = MediaAsset.create(
            url=artifact.url,
            prompt=artifact.prompt,
            metadata={
                **artifact.metadata,
                "provider": result.provider,
                "clip_ids": project.selected_clip_ids(),
            },
            duration=artifact.duration,
        )
        final_video.status = ApprovalStatus.APPROVED
        final_video.selected = True
        project.in_flight = None
        project.final_video = final_video
        project.record("final_video_attached", job_id=token, asset_id=final_video.id)
        project = self._write_project(project)
        logger.info("final_video_attached", project_id=project.id, asset_id=final_video.id, job_id=token)
        return project

    def fail_generation(
        self,
        project_id: str,
        segment_id: Optional[str],
        kind: GenerationKind,
        token: str,
        reason: str,
        retryable: bool = False,
    ) -> WorkflowResult:
        """
        Record a generation failure on the slot that requested it.

        The slot becomes REJECTED with the reason. A retryable failure
        (retries already exhausted) or a failed assembly also fails the
        project, in the same write.
        """

        def action() -> WorkflowResult:
            fail_reason = reason if retryable or kind == GenerationKind.ASSEMBLY else None
            for _ in range(self.CALLBACK_ATTEMPTS):
                project = self._load(project_id)
                try:
                    if segment_id is None:
                        applied = self._apply_project_failure(project, kind, token, reason, fail_reason)
                    else:
                        applied = self._apply_segment_failure(project, segment_id, kind, token, reason, fail_reason)
                except StaleWrite:
                    continue
                if applied is None:
                    raise WorkflowError(
                        ErrorKind.CONFLICTING_OPERATION,
                        f"{kind.value} failure for job {token} is stale and was discarded",
                    )
                return WorkflowResult.success(applied, job_id=token)
            raise WorkflowError(ErrorKind.CONFLICTING_OPERATION, f"Could not record {kind.value} failure for job {token}")

        return self._run("fail_generation", action)

    def _apply_segment_failure(
        self,
        project: Project,
        segment_id: str,
        kind: GenerationKind,
        token: str,
        reason: str,
        fail_reason: Optional[str],
    ) -> Optional[Project]:
        segment = self._segment(project, segment_id)
        in_flight = segment.in_flight_for(kind)
        if in_flight is None or in_flight.token != token:
            logger.info("generation_failure_discarded", project_id=project.id, segment_id=segment_id, kind=kind.value, job_id=token)
            return None

        current = segment.status_of(kind)
        new_status = next_status(current, SlotEvent.FAIL)
        del segment.in_flight[kind.value]
        segment.errors[kind.value] = reason
        segment.set_status(kind, new_status)
        project = self._write_segment(project.id, segment, fail_reason=fail_reason)
        logger.warning(
            "slot_transition",
            project_id=project.id,
            segment_id=segment_id,
            kind=kind.value,
            slot_event=SlotEvent.FAIL.value,
            from_status=current.value,
            to_status=new_status.value,
            reason=reason,
            job_id=token,
        )
        return project

    def _apply_project_failure(
        self,
        project: Project,
        kind: GenerationKind,
        token: str,
        reason: str,
        fail_reason: Optional[str],
    ) -> Optional[Project]:
        in_flight = project.in_flight
        if in_flight is None or in_flight.token != token or in_flight.kind != kind:
            logger.info("generation_failure_discarded", project_id=project.id, kind=kind.value, job_id=token)
            return None
        project.in_flight = None
        project.failure_reason = reason
        project.record("generation_failed", kind=kind.value, job_id=token, reason=reason)
        project = self._write_project(project, fail_reason=fail_reason)
        logger.warning("project_generation_failed", project_id=project.id, kind=kind.value, reason=reason, job_id=token)
        return project

    # =========================================================================
    # Derived project state
    # =========================================================================

    def _derive(self, project: Project, derivation: _Derivation) -> None:
        """
        Recompute stage, status, final video and the assembly trigger.

        Runs inside the store write, on the merged project. Final assembly
        is armed when every segment is final-approved, no final video
        exists and the last assembly was not cancelled; losing any final
        approval drops an in-flight assembly and re-arms the trigger.
        """
        all_approved = all_final_approved(project.segments)

        if not all_approved:
            if project.in_flight is not None and project.in_flight.kind == GenerationKind.ASSEMBLY:
                derivation.dropped_token = project.in_flight.token
                project.record("assembly_discarded", job_id=project.in_flight.token)
                project.in_flight = None
            if project.final_video is not None:
                project.record("final_video_detached", asset_id=project.final_video.id)
                project.final_video = None
            if project.assembly_cancelled:
                project.assembly_cancelled = False
                project.record("assembly_rearmed")
        elif (
            derivation.restore_final_video is not None
            and project.final_video is None
            and project.in_flight is None
            and derivation.restore_final_video.metadata.get("clip_ids") == project.selected_clip_ids()
        ):
            project.final_video = derivation.restore_final_video
            project.record("final_video_restored", asset_id=project.final_video.id)

        has_final = project.final_video is not None
        stage = compute_stage(project.segments, has_final)
        if stage != project.current_stage:
            project.record("stage_changed", from_stage=project.current_stage.value, to_stage=stage.value)
            logger.info(
                "stage_changed",
                project_id=project.id,
                from_stage=project.current_stage.value,
                to_stage=stage.value,
            )
            project.current_stage = stage

        if derivation.fail_reason is not None and project.status != ProjectStatus.FAILED:
            project.record("status_changed", from_status=project.status.value, to_status=ProjectStatus.FAILED.value)
            project.status = ProjectStatus.FAILED
            project.failed_stage = project.current_stage
            project.failure_reason = derivation.fail_reason
            project.record("failed", stage=project.current_stage.value, reason=derivation.fail_reason)
            logger.warning("project_failed", project_id=project.id, stage=stage.value, reason=derivation.fail_reason)

        status = compute_status(project.status, project.segments, has_final)
        if status != project.status:
            project.record("status_changed", from_status=project.status.value, to_status=status.value)
            project.status = status

        if (
            project.status == ProjectStatus.IN_PROGRESS
            and project.in_flight is None
            and not has_final
            and all_approved
            and not project.assembly_cancelled
        ):
            token = self.job_manager.new_job_id()
            project.in_flight = InFlightGeneration(
                token=token,
                kind=GenerationKind.ASSEMBLY,
                previous_status=ApprovalStatus.DRAFT,
            )
            project.record("assembly_dispatched", job_id=token)
            derivation.assembly_token = token

    def _settle(self, project: Project, derivation: _Derivation) -> Project:
        """After a write: stop a dropped assembly, start an armed one, publish."""
        if derivation.dropped_token is not None:
            self.job_manager.cancel_job(derivation.dropped_token)
            logger.info("assembly_discarded", project_id=project.id, job_id=derivation.dropped_token)

        token = derivation.assembly_token
        if token is not None:
            logger.info("assembly_dispatched", project_id=project.id, job_id=token)
            if not self._dispatch(project.id, None, GenerationKind.ASSEMBLY, token, self._assembly_context(project)):
                # fail_generation publishes the failed snapshot itself
                failed = self.fail_generation(
                    project.id, None, GenerationKind.ASSEMBLY, token,
                    "Could not dispatch final assembly",
                )
                return failed.project if failed.ok else self._load(project.id)

        self._publish(project)
        return project

    # =========================================================================
    # Job dispatch
    # =========================================================================

    def _segment_context(
        self,
        project: Project,
        segment: Segment,
        kind: GenerationKind,
        voice: Optional[str] = None,
    ) -> GenerationContext:
        def selected_url(media: GenerationKind) -> Optional[str]:
            asset = segment.selected_asset(media)
            return asset.url if asset else None

        return GenerationContext(
            kind=kind,
            project_id=project.id,
            title=project.title,
            description=project.description,
            story=project.story,
            segment_id=segment.id,
            order=segment.order,
            script=segment.script,
            video_prompt=segment.video_prompt,
            image_url=selected_url(GenerationKind.IMAGE),
            video_url=selected_url(GenerationKind.VIDEO),
            audio_url=selected_url(GenerationKind.AUDIO),
            voice=(voice or self.config.default_voice) if kind == GenerationKind.AUDIO else None,
            segment_count=len(project.segments),
        )

    @staticmethod
    def _assembly_context(project: Project) -> GenerationContext:
        clip_urls = []
        for segment in project.ordered_segments():
            clip = segment.selected_asset(GenerationKind.FINAL)
            if clip is not None:
                clip_urls.append(clip.url)
        return GenerationContext(
            kind=GenerationKind.ASSEMBLY,
            project_id=project.id,
            title=project.title,
            description=project.description,
            clip_urls=tuple(clip_urls),
            segment_count=len(project.segments),
        )

    def _dispatch(
        self,
        project_id: str,
        segment_id: Optional[str],
        kind: GenerationKind,
        token: str,
        context: GenerationContext,
    ) -> bool:
        """Submit the generation job under the pre-recorded token."""

        def task(job_manager: JobManager, job_id: str) -> dict:
            return self._run_generation(job_manager, job_id, project_id, segment_id, kind, context)

        try:
            self.job_manager.submit_job(
                JobType(kind.value),
                project_id,
                task,
                segment_id=segment_id,
                job_id=token,
            )
        except RuntimeError as e:
            logger.error("job_dispatch_failed", project_id=project_id, kind=kind.value, job_id=token, error=str(e))
            return False
        return True

    def _run_generation(
        self,
        job_manager: JobManager,
        token: str,
        project_id: str,
        segment_id: Optional[str],
        kind: GenerationKind,
        context: GenerationContext,
    ) -> dict:
        """Job body: call the gateway with retries, then report back."""
        attempts = self.config.max_generation_attempts
        log = logger.bind(project_id=project_id, segment_id=segment_id, kind=kind.value, job_id=token)

        for attempt in range(1, attempts + 1):
            if job_manager.is_cancelled(token):
                log.info("generation_skipped_cancelled")
                return {"applied": False, "reason": "cancelled"}
            job_manager.update_progress(
                token,
                (attempt - 1) / attempts,
                f"Generating {kind.value.lower()} (attempt {attempt}/{attempts})",
            )
            try:
                result = self.gateway.generate(context)
            except GenerationFailure as failure:
                if failure.retryable and attempt < attempts:
                    log.warning("generation_retry", attempt=attempt, reason=failure.reason)
                    time.sleep(self.config.retry_backoff_seconds * attempt)
                    continue
                log.warning("generation_failed", attempt=attempt, reason=failure.reason, retryable=failure.retryable)
                self.fail_generation(project_id, segment_id, kind, token, failure.reason, failure.retryable)
                error_kind = ErrorKind.GENERATION_TIMEOUT if failure.retryable else ErrorKind.GENERATION_FAILED
                raise WorkflowError(error_kind, failure.reason) from failure
            except Exception as e:
                log.exception("generation_crashed")
                self.fail_generation(project_id, segment_id, kind, token, f"internal error: {e}")
                raise

            outcome = self.complete_generation(project_id, segment_id, kind, token, result)
            return {
                "applied": outcome.ok,
                "reason": outcome.error.message if outcome.error else None,
                "provider": result.provider,
                "artifacts": len(result.artifacts),
            }

        # attempts >= 1, so the loop always returns or raises
        raise RuntimeError("unreachable")

