"""
Project Store - JSON persistence for project aggregates.

One JSON document per project under the data directory. Every read goes
to disk; nothing is cached between operations.

Writes are compare-and-set:
- commit_segment: replaces one segment if its stored version matches
  (bumps the project version too, so derived project fields computed
  from older segments cannot be written over it)
- commit_project: replaces project-level fields (and optionally the
  segment list) if the project version matches

A per-project lock only serialises the physical read-compare-write;
callers hold no lock while computing a transition. Both commits accept a
`derive` hook that runs on the merged project just before it is written,
so derived fields land in the same write as the change they follow from.
"""

import json
import os
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from reelforge.workflow.models import Project, Segment


class RecordNotFound(KeyError):
    """Project or segment does not exist in the store."""


class StaleWrite(RuntimeError):
    """The record changed since it was read."""


Derive = Callable[[Project], None]


class ProjectStore:
    """
    File-backed project repository with optimistic concurrency.

    Features:
    - One JSON document per project (atomic replace on write)
    - Segment-level compare-and-set on `Segment.version`
    - Project-level compare-and-set on `Project.version`
    """

    FILENAME = "project.json"

    def __init__(self, data_dir: Path | str):
        """
        Initialize the store.

        Args:
            data_dir: Root directory holding one sub-directory per project.
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, project_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[project_id] = lock
            return lock

    def _path(self, project_id: str) -> Path:
        return self.data_dir / project_id / self.FILENAME

    def _read(self, project_id: str) -> Project:
        path = self._path(project_id)
        if not path.exists():
            raise RecordNotFound(project_id)
        with open(path) as f:
            return Project.from_dict(json.load(f))

    def _write(self, project: Project) -> None:
        path = self._path(project.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".project_", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(project.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # === Queries ===

    def exists(self, project_id: str) -> bool:
        return self._path(project_id).exists()

    def get(self, project_id: str) -> Project:
        """
        Load a project snapshot.

        Raises:
            RecordNotFound: If the project does not exist.
        """
        return self._read(project_id)

    def list_all(self, user_id: str | None = None) -> list[Project]:
        """List projects, newest first, optionally filtered by owner."""
        projects = []
        for path in self.data_dir.glob(f"*/{self.FILENAME}"):
            with open(path) as f:
                project = Project.from_dict(json.load(f))
            if user_id is not None and project.user_id != user_id:
                continue
            projects.append(project)
        return sorted(projects, key=lambda p: p.created_at, reverse=True)

    # === Writes ===

    def create(self, project: Project) -> Project:
        """
        Persist a new project.

        Raises:
            ValueError: If a project with the same id already exists.
        """
        with self._lock_for(project.id):
            if self.exists(project.id):
                raise ValueError(f"Project {project.id} already exists")
            project.version = 1
            self._write(project)
            return project

    def delete(self, project_id: str) -> None:
        """
        Delete a project and everything it owns.

        Raises:
            RecordNotFound: If the project does not exist.
        """
        with self._lock_for(project_id):
            project_dir = self.data_dir / project_id
            if not project_dir.exists():
                raise RecordNotFound(project_id)
            shutil.rmtree(project_dir)
        with self._locks_guard:
            self._locks.pop(project_id, None)

    def commit_segment(
        self,
        project_id: str,
        segment: Segment,
        expected_version: int,
        derive: Optional[Derive] = None,
    ) -> Project:
        """
        Replace one segment if nobody wrote it since `expected_version`.

        Args:
            project_id: Owning project
            segment: New segment state
            expected_version: Version the caller read
            derive: Recomputes project-level fields on the merged project

        Returns:
            The project as stored after the write.

        Raises:
            RecordNotFound: If the project or segment is gone.
            StaleWrite: If the stored segment version differs.
        """
        with self._lock_for(project_id):
            stored = self._read(project_id)
            for index, current in enumerate(stored.segments):
                if current.id == segment.id:
                    break
            else:
                raise RecordNotFound(segment.id)

            if current.version != expected_version:
                raise StaleWrite(
                    f"Segment {segment.id} is at version {current.version}, expected {expected_version}"
                )

            segment.version = expected_version + 1
            segment.updated_at = datetime.now()
            stored.segments[index] = segment
            if derive is not None:
                derive(stored)
            stored.version += 1
            stored.updated_at = datetime.now()
            self._write(stored)
            return stored

    def commit_project(
        self,
        project: Project,
        expected_version: int,
        segments_changed: bool = False,
        derive: Optional[Derive] = None,
    ) -> Project:
        """
        Replace a project's own fields if its version is unchanged.

        Without `segments_changed` the stored segments are kept as they are,
        so concurrent segment commits are never overwritten. With it, the
        segment list is replaced too, provided none of the surviving
        segments moved past the version the caller read.

        Raises:
            RecordNotFound: If the project is gone.
            StaleWrite: If the project or any surviving segment changed.
        """
        with self._lock_for(project.id):
            stored = self._read(project.id)
            if stored.version != expected_version:
                raise StaleWrite(
                    f"Project {project.id} is at version {stored.version}, expected {expected_version}"
                )

            if segments_changed:
                stored_versions = {s.id: s.version for s in stored.segments}
                for segment in project.segments:
                    known = stored_versions.get(segment.id)
                    if known is not None and known != segment.version:
                        raise StaleWrite(f"Segment {segment.id} changed concurrently")
                for segment in project.segments:
                    segment.version += 1
            else:
                project.segments = stored.segments

            if derive is not None:
                derive(project)
            project.version = expected_version + 1
            project.updated_at = datetime.now()
            self._write(project)
            return project
