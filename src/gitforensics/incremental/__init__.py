"""Incremental recording and mining across builds.

Each build records the commits that are new since the previous build of the
same job and continues the per-file statistics of the previous build, so
history that has been processed once is never scanned again.
"""

from gitforensics.incremental.manager import ForensicsManager, StepResult
from gitforensics.incremental.miner import RepositoryStatisticsMiner
from gitforensics.incremental.recorder import BuildCommitRecorder
from gitforensics.incremental.state import BuildState, BuildStore, ForensicsState, JobState

__all__ = [
    "BuildStore",
    "ForensicsState",
    "JobState",
    "BuildState",
    "BuildCommitRecorder",
    "RepositoryStatisticsMiner",
    "ForensicsManager",
    "StepResult",
]
