"""Background generation jobs.

Every gateway call (script, image, video, audio, clip merge, final
assembly, idea) runs as a job on a thread pool so no request waits on a
provider. The job id doubles as the in-flight token the workflow records
on the slot, which is why callers may allocate it before submitting.

State changes are handed to an optional JobListener (the web layer pushes
them to WebSocket subscribers of the owning project).
"""

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from reelforge.logger import get_logger

logger = get_logger(__name__)

JobTask = Callable[["JobManager", str], dict[str, Any]]


class JobStatus(str, Enum):
    """Lifecycle of a generation job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobType(str, Enum):
    """What a job generates (same values as GenerationKind)."""

    IDEA = "IDEA"
    SCRIPT = "SCRIPT"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    FINAL = "FINAL"
    ASSEMBLY = "ASSEMBLY"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)


@dataclass
class Job:
    """One generation job and its latest reported state."""

    id: str
    type: JobType
    project_id: str
    segment_id: str | None = None
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    message: str = ""
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    _future: Future | None = field(default=None, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.id,
            "type": self.type.value,
            "project_id": self.project_id,
            "segment_id": self.segment_id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class JobListener(Protocol):
    """Receives every job state change. Called with the manager lock held."""

    def publish_job(self, job: Job) -> None: ...


class JobManager:
    """Thread-pool runner for generation jobs.

    A cancelled job is never interrupted mid-call: its task runs to the
    end, but the CANCELLED status sticks and consumers discard the output.
    Finished jobs older than `max_job_age_seconds` are forgotten whenever a
    new job is submitted.
    """

    def __init__(self, max_workers: int = 4, max_job_age_seconds: int = 3600):
        self._jobs: dict[str, Job] = {}
        self._lock = threading.RLock()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reelforge-job")
        self._listener: Optional[JobListener] = None
        self.max_job_age_seconds = max_job_age_seconds

    def set_listener(self, listener: Optional[JobListener]) -> None:
        self._listener = listener

    @staticmethod
    def new_job_id() -> str:
        return f"job_{uuid.uuid4().hex[:12]}"

    # === Submission ===

    def submit_job(
        self,
        job_type: JobType,
        project_id: str,
        task: JobTask,
        segment_id: str | None = None,
        job_id: str | None = None,
    ) -> str:
        """Queue `task(job_manager, job_id)` and return the job id.

        Pass `job_id` when the id was already recorded elsewhere (the
        workflow stores it on the slot before dispatching).
        """
        job = Job(
            id=job_id or self.new_job_id(),
            type=job_type,
            project_id=project_id,
            segment_id=segment_id,
            message=f"{job_type.value.lower()} queued",
        )
        # The worker's first status update waits on this lock, so the job is
        # registered before it runs. A shut-down pool raises RuntimeError
        # and nothing is registered.
        with self._lock:
            job._future = self._pool.submit(self._execute, job.id, task)
            self._jobs[job.id] = job
        self.cleanup_old_jobs(self.max_job_age_seconds)
        return job.id

    def _execute(self, job_id: str, task: JobTask) -> dict[str, Any]:
        self.update_status(job_id, JobStatus.RUNNING, "running")
        try:
            result = task(self, job_id)
        except Exception as e:
            logger.warning("job_failed", job_id=job_id, error=str(e))
            self.update_status(job_id, JobStatus.FAILED, str(e), error=str(e))
            raise
        self.update_status(job_id, JobStatus.COMPLETED, "done", result=result)
        return result

    # === Reporting ===

    def _mutate(self, job_id: str, apply: Callable[[Job], bool]) -> None:
        """Apply a change to a job under the lock and broadcast it if applied."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not apply(job):
                return
            job.updated_at = datetime.now()
            self._broadcast_update(job)

    def update_progress(self, job_id: str, progress: float, message: str) -> None:
        """Report progress in [0, 1] for an active job."""

        def apply(job: Job) -> bool:
            if not job.is_active:
                return False
            job.progress = min(max(progress, 0.0), 1.0)
            job.message = message
            return True

        self._mutate(job_id, apply)

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Move a job to a new status. A CANCELLED job is left as it is."""

        def apply(job: Job) -> bool:
            if job.status == JobStatus.CANCELLED:
                return False
            job.status = status
            job.message = message
            if result is not None:
                job.result = result
                job.progress = 1.0
            if error is not None:
                job.error = error
            return True

        self._mutate(job_id, apply)

    def _broadcast_update(self, job: Job) -> None:
        if self._listener is not None:
            self._listener.publish_job(job)

    # === Queries ===

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self, project_id: str | None = None) -> list[Job]:
        """Jobs newest first, optionally only those of one project."""
        with self._lock:
            jobs = [j for j in self._jobs.values() if project_id is None or j.project_id == project_id]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def is_cancelled(self, job_id: str) -> bool:
        job = self.get_job(job_id)
        return job is not None and job.status == JobStatus.CANCELLED

    # === Control ===

    def cancel_job(self, job_id: str) -> bool:
        """Mark an active job CANCELLED. Returns False if unknown or finished."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not job.is_active:
                return False
            if job._future is not None:
                job._future.cancel()
            job.status = JobStatus.CANCELLED
            job.message = "cancelled"
            job.updated_at = datetime.now()
            self._broadcast_update(job)
        logger.info("job_cancelled", job_id=job_id, project_id=job.project_id)
        return True

    def wait_for_job(self, job_id: str, timeout: float | None = None) -> Job | None:
        """Block until the job's task returns (used by tests and scripts)."""
        job = self.get_job(job_id)
        if job is not None and job._future is not None:
            wait([job._future], timeout=timeout)
        return self.get_job(job_id)

    def cleanup_old_jobs(self, max_age_seconds: int = 3600) -> int:
        """Forget finished jobs not updated within `max_age_seconds`. Returns how many."""
        cutoff = datetime.now() - timedelta(seconds=max_age_seconds)
        with self._lock:
            stale = [jid for jid, job in self._jobs.items() if not job.is_active and job.updated_at < cutoff]
            for jid in stale:
                del self._jobs[jid]
        return len(stale)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
