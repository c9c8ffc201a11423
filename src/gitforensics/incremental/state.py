"""Persistent per-build store for commit records and statistics.

Every build of a job owns a set of actions keyed by repository: the commit
record, the statistics snapshot, the reference search result and the diff
statistics. Actions are written once by the build that created them and are
read-only afterwards.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote, unquote

import structlog
from pydantic import BaseModel, Field

from gitforensics.models import (
    BuildCommitRecord,
    CommitStatistics,
    RecordedBuild,
    ReferenceSearchResult,
    RepositoryStatisticsSnapshot,
)

logger = structlog.get_logger(__name__)


def build_id(job: str, number: int) -> str:
    """Get the id of a build, e.g. ``project/main#42``."""
    return f"{job}#{number}"


def parse_build_id(value: str) -> Tuple[str, int]:
    """Split a build id into job name and build number.

    Raises:
        ValueError: If the id has no valid build number
    """
    job, separator, number = value.rpartition("#")
    if not separator or not job or not number.isdigit():
        raise ValueError(f"Invalid build id: {value}")
    return job, int(number)


class BuildState(BaseModel):
    """State of a single build."""

    job: str = Field(..., description="Name of the job")
    number: int = Field(..., description="Build number")
    started_at: datetime = Field(default_factory=datetime.now, description="Start of the build")
    completed: bool = Field(False, description="Whether the build has been completed")
    records: Dict[str, BuildCommitRecord] = Field(
        default_factory=dict, description="Commit record per repository key"
    )
    statistics: Dict[str, RepositoryStatisticsSnapshot] = Field(
        default_factory=dict, description="Statistics snapshot per repository key"
    )
    references: Dict[str, ReferenceSearchResult] = Field(
        default_factory=dict, description="Reference search result per repository key"
    )
    commit_statistics: Dict[str, CommitStatistics] = Field(
        default_factory=dict, description="Diff statistics per repository key"
    )

    @property
    def id(self) -> str:
        return build_id(self.job, self.number)

    def find_record(self, scm_filter: str = "") -> Optional[BuildCommitRecord]:
        """Get the first record whose repository key contains the filter."""
        return next((r for key, r in self.records.items() if scm_filter in key), None)

    def find_statistics(self, scm_filter: str = "") -> Optional[RepositoryStatisticsSnapshot]:
        """Get the first snapshot whose repository key contains the filter."""
        return next((s for key, s in self.statistics.items() if scm_filter in key), None)


class JobState(BaseModel):
    """State of all builds of a job."""

    builds: Dict[int, BuildState] = Field(default_factory=dict, description="Builds per number")


class ForensicsState(BaseModel):
    """Root state object of the build store."""

    version: str = Field("1.0", description="Store format version")
    jobs: Dict[str, JobState] = Field(default_factory=dict, description="State per job name")


class BuildStore:
    """Manages the persistent build store.

    Every build is stored in its own file ``<state_dir>/<job>/<number>.json``
    (the job name is URL-quoted), so builds of different jobs or different
    numbers never write to the same file. A build file is created exactly
    once; creating an existing build fails even if another store instance or
    process created it.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize the build store.

        Args:
            state_dir: Directory to store the build files. Defaults to ./.gitforensics/
        """
        if state_dir is None:
            state_dir = Path(".gitforensics")

        self.state_dir = Path(state_dir)

    def _job_dir(self, job: str) -> Path:
        return self.state_dir / quote(job, safe="")

    def build_file(self, job: str, number: int) -> Path:
        """Get the path of the file that stores a build."""
        return self._job_dir(job) / f"{number}.json"

    def _write_temp(self, build: BuildState) -> str:
        job_dir = self._job_dir(build.job)
        job_dir.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=job_dir, prefix=".build_", suffix=".json.tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(build.model_dump(mode="json"), f, indent=2)
        except Exception:
            os.unlink(temp_path)
            raise
        return temp_path

    def _save_build(self, build: BuildState) -> None:
        """Save a build to disk using atomic write.

        Uses a temporary file and rename to ensure atomicity.
        """
        temp_path = self._write_temp(build)
        try:
            os.replace(temp_path, self.build_file(build.job, build.number))
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def load_or_create(self) -> ForensicsState:
        """Load the state of all stored builds.

        Returns:
            ForensicsState object, empty if nothing has been stored yet
        """
        state = ForensicsState()
        for job in self.list_jobs():
            builds = {build.number: build for build in self.iter_builds(job)}
            if builds:
                state.jobs[job] = JobState(builds=builds)
        return state

    # ============================================================================
    # Builds
    # ============================================================================

    def _build_numbers(self, job: str) -> List[int]:
        job_dir = self._job_dir(job)
        if not job_dir.is_dir():
            return []
        return [int(path.stem) for path in job_dir.glob("*.json") if path.stem.isdigit()]

    def next_build_number(self, job: str) -> int:
        return max(self._build_numbers(job), default=0) + 1

    def create_build(self, job: str, number: Optional[int] = None) -> BuildState:
        """Create a new build of a job.

        Args:
            job: Name of the job
            number: Build number, defaults to the next free number

        Returns:
            The created BuildState

        Raises:
            ValueError: If the build already exists
        """
        if number is None:
            number = self.next_build_number(job)

        build = BuildState(job=job, number=number)
        temp_path = self._write_temp(build)
        try:
            # link fails if the file exists, unlike replace
            os.link(temp_path, self.build_file(job, number))
        except FileExistsError:
            raise ValueError(f"Build {build.id} already exists") from None
        finally:
            os.unlink(temp_path)

        logger.info("build_created", build=build.id)
        return build

    def get_build(self, job: str, number: int) -> Optional[BuildState]:
        """Read a build from disk.

        Returns:
            The BuildState, None if the build does not exist or cannot be read
        """
        path = self.build_file(job, number)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                data = json.load(f)
            return BuildState(**data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("build_file_unreadable", path=str(path), error=str(e))
            return None

    def get_or_create_build(self, job: str, number: int) -> BuildState:
        build = self.get_build(job, number)
        if build is not None:
            return build
        try:
            return self.create_build(job, number)
        except ValueError:
            # created by another store in the meantime
            build = self.get_build(job, number)
            if build is None:
                raise
            return build

    def complete_build(self, job: str, number: int) -> None:
        """Mark a build as completed.

        Raises:
            KeyError: If the build does not exist
        """
        build = self.get_build(job, number)
        if build is None:
            raise KeyError(build_id(job, number))
        build.completed = True
        self._save_build(build)

    def iter_builds(
        self, job: str, before: Optional[int] = None, completed_only: bool = False
    ) -> Iterator[BuildState]:
        """Iterate the builds of a job, newest first.

        Unreadable build files are skipped.

        Args:
            job: Name of the job
            before: Only builds with a lower number (optional)
            completed_only: Skip builds that are still running

        Yields:
            BuildState objects
        """
        for number in sorted(self._build_numbers(job), reverse=True):
            if before is not None and number >= before:
                continue
            build = self.get_build(job, number)
            if build is None:
                continue
            if completed_only and not build.completed:
                continue
            yield build

    def latest_completed_build(self, job: str) -> Optional[BuildState]:
        return next(self.iter_builds(job, completed_only=True), None)

    def list_jobs(self) -> List[str]:
        if not self.state_dir.is_dir():
            return []
        return sorted(unquote(path.name) for path in self.state_dir.iterdir() if path.is_dir())

    # ============================================================================
    # Actions
    # ============================================================================

    def save_record(self, job: str, number: int, record: BuildCommitRecord) -> bool:
        """Attach a commit record to a build.

        Args:
            job: Name of the job
            number: Build number
            record: The record to store

        Returns:
            True if stored, False if the build already has a record for this repository
        """
        build = self.get_or_create_build(job, number)
        if record.repository_key in build.records:
            logger.info("record_exists", build=build.id, repository=record.repository_key)
            return False
        build.records[record.repository_key] = record
        self._save_build(build)
        return True

    def save_statistics(
        self, job: str, number: int, repository_key: str, snapshot: RepositoryStatisticsSnapshot
    ) -> bool:
        """Attach a statistics snapshot to a build.

        Returns:
            True if stored, False if the build already has a snapshot for this repository
        """
        build = self.get_or_create_build(job, number)
        if repository_key in build.statistics:
            logger.info("statistics_exist", build=build.id, repository=repository_key)
            return False
        build.statistics[repository_key] = snapshot
        self._save_build(build)
        return True

    def save_reference(
        self, job: str, number: int, repository_key: str, result: ReferenceSearchResult
    ) -> None:
        build = self.get_or_create_build(job, number)
        build.references[repository_key] = result
        self._save_build(build)

    def save_commit_statistics(
        self, job: str, number: int, repository_key: str, statistics: CommitStatistics
    ) -> None:
        build = self.get_or_create_build(job, number)
        build.commit_statistics[repository_key] = statistics
        self._save_build(build)

    def previous_record(
        self, job: str, number: int, scm_filter: str = ""
    ) -> Tuple[Optional[BuildState], Optional[BuildCommitRecord]]:
        """Find the latest record of a previous build of the same job.

        Returns:
            Tuple of (build, record), both None if no previous build has a record
        """
        for build in self.iter_builds(job, before=number):
            record = build.find_record(scm_filter)
            if record is not None:
                return build, record
        return None, None

    def previous_statistics(
        self, job: str, number: int, scm_filter: str = ""
    ) -> Optional[RepositoryStatisticsSnapshot]:
        """Find the statistics snapshot of the latest previous build that has one."""
        for build in self.iter_builds(job, before=number):
            snapshot = build.find_statistics(scm_filter)
            if snapshot is not None:
                return snapshot
        return None

    def branch_history(
        self, job: str, number: int, scm_filter: str = ""
    ) -> Iterator[Optional[BuildCommitRecord]]:
        """Iterate the records of the previous builds of a job, newest first."""
        for build in self.iter_builds(job, before=number):
            yield build.find_record(scm_filter)

    def recorded_builds(self, job: str, scm_filter: str = "") -> Iterator[RecordedBuild]:
        """Iterate the completed builds of a job with their records, newest first."""
        for build in self.iter_builds(job, completed_only=True):
            yield RecordedBuild(build_id=build.id, record=build.find_record(scm_filter))
