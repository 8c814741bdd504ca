"""Fixtures that drive projects through the workflow."""

import pytest

from reelforge.workflow import GenerationKind, Project, WorkflowResult
from reelforge.workflow.engine import WorkflowEngine
from reelforge.workflow.jobs import JobManager, JobType

JOB_TIMEOUT = 10


class WorkflowDriver:
    """Runs engine operations and waits for the jobs they dispatch."""

    def __init__(self, engine: WorkflowEngine, job_manager: JobManager):
        self.engine = engine
        self.job_manager = job_manager

    def ok(self, result: WorkflowResult) -> WorkflowResult:
        assert result.ok, result.error.to_dict()
        return result

    def wait(self, result: WorkflowResult, project_id: str) -> Project:
        """Wait for the job a result dispatched, then reload the project."""
        if result.job_id:
            self.job_manager.wait_for_job(result.job_id, timeout=JOB_TIMEOUT)
        return self.project(project_id)

    def project(self, project_id: str) -> Project:
        return self.ok(self.engine.get_project(project_id)).project

    def create_with_segments(self, count: int = 2, title: str = "Deep sea creatures") -> Project:
        project = self.ok(self.engine.create_project(title, user_id="user-1", description="Bioluminescence")).project
        result = self.ok(self.engine.generate_script(project.id, segment_count=count))
        return self.wait(result, project.id)

    def generate(self, project_id: str, segment_id: str, kind: GenerationKind) -> Project:
        result = self.ok(self.engine.request_generation(project_id, segment_id, kind))
        return self.wait(result, project_id)

    def approve(self, project_id: str, segment_id: str, kind: GenerationKind) -> Project:
        return self.ok(self.engine.approve(project_id, segment_id, kind)).project

    def generate_and_approve(self, project_id: str, segment_id: str, kind: GenerationKind) -> Project:
        self.generate(project_id, segment_id, kind)
        return self.approve(project_id, segment_id, kind)

    def approve_components(self, project_id: str, segment_id: str) -> Project:
        """Approve the script and generate+approve image, video and audio."""
        self.approve(project_id, segment_id, GenerationKind.SCRIPT)
        for kind in (GenerationKind.IMAGE, GenerationKind.VIDEO, GenerationKind.AUDIO):
            project = self.generate_and_approve(project_id, segment_id, kind)
        return project

    def finish_segment(self, project_id: str, segment_id: str) -> Project:
        self.approve_components(project_id, segment_id)
        return self.generate_and_approve(project_id, segment_id, GenerationKind.FINAL)

    def wait_for_project_job(self, project_id: str) -> Project:
        """Wait for every project-level job (script or assembly) to finish."""
        for job in self.job_manager.list_jobs(project_id=project_id):
            if job.segment_id is None and job.type in (JobType.SCRIPT, JobType.ASSEMBLY):
                self.job_manager.wait_for_job(job.id, timeout=JOB_TIMEOUT)
        return self.project(project_id)

    def complete_project(self, count: int = 2) -> Project:
        project = self.create_with_segments(count)
        for segment in project.ordered_segments():
            self.finish_segment(project.id, segment.id)
        return self.wait_for_project_job(project.id)


@pytest.fixture
def driver(engine: WorkflowEngine, job_manager: JobManager) -> WorkflowDriver:
    return WorkflowDriver(engine, job_manager)

