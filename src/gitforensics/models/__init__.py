"""Data models for Git forensics."""

from gitforensics.models.commit import (
    ZERO_ID,
    BuildHead,
    ChangeKind,
    Commit,
    CommitDiff,
    FileChange,
)
from gitforensics.models.config import ForensicsSettings, RepositoryConfig
from gitforensics.models.record import BuildCommitRecord, RecordingType
from gitforensics.models.reference import RecordedBuild, ReferenceSearchResult, SearchOutcome
from gitforensics.models.statistics import (
    CommitDelta,
    CommitStatistics,
    FileStatistics,
    RepositoryStatisticsSnapshot,
)

__all__ = [
    "ZERO_ID",
    "Commit",
    "BuildHead",
    "ChangeKind",
    "FileChange",
    "CommitDiff",
    "BuildCommitRecord",
    "RecordingType",
    "CommitDelta",
    "FileStatistics",
    "RepositoryStatisticsSnapshot",
    "CommitStatistics",
    "ReferenceSearchResult",
    "SearchOutcome",
    "RecordedBuild",
    "RepositoryConfig",
    "ForensicsSettings",
]
