"""The per-build record of new commits."""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from gitforensics.models.commit import ZERO_ID


class RecordingType(str, Enum):
    """Whether a record is the starting point or based on a previous record."""

    START = "START"
    INCREMENTAL = "INCREMENTAL"


class BuildCommitRecord(BaseModel):
    """Commits of a repository that are new in a build.

    One record exists per build and repository key. ``commits`` holds the
    commits since the previous build, newest first. ``head`` is the commit the
    build is considered to have built; for a local merge ``merge`` is the merge
    commit and ``target_parent`` its second parent.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "repository_key": "git https://github.com/example/project.git",
                "commits": ["9fceb02d0ae598e95dc970b74767f19372d61af8"],
                "head": "9fceb02d0ae598e95dc970b74767f19372d61af8",
                "target_parent": ZERO_ID,
                "merge": ZERO_ID,
                "recording_type": "INCREMENTAL",
                "previous_commit": "b5f5c3f3c0b4f0c9b3c1e6d7a0a1e2f3d4c5b6a7",
            }
        },
    )

    repository_key: str = Field(..., description="Key of the recorded repository")
    commits: List[str] = Field(default_factory=list, description="New commit ids, newest first")
    head: str = Field(ZERO_ID, description="Commit the build has built")
    target_parent: str = Field(ZERO_ID, description="Second parent of a local merge")
    merge: str = Field(ZERO_ID, description="The local merge commit")
    recording_type: RecordingType = Field(RecordingType.START, description="START or INCREMENTAL")
    previous_commit: str = Field(
        "", description="Latest commit of the previous record (empty for START)"
    )

    @property
    def latest_commit(self) -> str:
        """The newest commit of this record, or the previous one if nothing is new."""
        if self.commits:
            return self.commits[0]
        return self.previous_commit

    @property
    def is_first_build(self) -> bool:
        return self.recording_type == RecordingType.START

    @property
    def has_merge(self) -> bool:
        return self.merge != ZERO_ID

    @property
    def size(self) -> int:
        return len(self.commits)

    def __str__(self) -> str:
        return f"Commits in '{self.repository_key}': {self.size} (latest: {self.latest_commit[:7]})"
