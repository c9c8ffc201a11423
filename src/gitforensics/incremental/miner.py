"""Incremental mining of per-file repository statistics."""

import time
from typing import Dict, Iterator, List, Optional, Set

import git
import structlog

from gitforensics.cancellation import CancellationToken
from gitforensics.errors import RepositoryAccessError
from gitforensics.extraction.diffs import DiffCollector
from gitforensics.extraction.walker import CommitGraphWalker
from gitforensics.formatting import render_commit
from gitforensics.logs import FilteredLog
from gitforensics.models import (
    ChangeKind,
    Commit,
    CommitDelta,
    CommitDiff,
    CommitStatistics,
    FileChange,
    FileStatistics,
    RepositoryStatisticsSnapshot,
)

logger = structlog.get_logger(__name__)


class RepositoryStatisticsMiner:
    """Mines a Git repository and creates statistics for all available files.

    Mining is incremental: the statistics of the previous build are the
    starting point and only the commits since its latest commit are analyzed.
    The result is a new snapshot, the previous one is never modified.
    """

    def __init__(
        self,
        repo: git.Repo,
        cancellation: Optional[CancellationToken] = None,
        log: Optional[FilteredLog] = None,
    ) -> None:
        """Initialize the miner.

        Args:
            repo: GitPython repository object
            cancellation: Token polled between commits (optional)
            log: Log for the messages of this step (optional)
        """
        self.repo = repo
        self.cancellation = cancellation or CancellationToken()
        self.walker = CommitGraphWalker(repo, self.cancellation)
        self.differ = DiffCollector(repo)
        self.log = log if log is not None else FilteredLog("Errors while mining the Git repository")

    def mine(
        self,
        previous: Optional[RepositoryStatisticsSnapshot] = None,
        head: Optional[str] = None,
    ) -> RepositoryStatisticsSnapshot:
        """Create the statistics snapshot for the current build.

        Args:
            previous: Snapshot of the previous build (optional)
            head: Commit the build has built, resolved from HEAD if omitted

        Returns:
            New snapshot, or the unchanged previous snapshot if the repository
            could not be read

        Raises:
            CancellationError: If the build has been interrupted
        """
        if previous is None:
            previous = RepositoryStatisticsSnapshot()
        started = time.monotonic()
        self.log.log_info("Analyzing the commit log of the Git repository '%s'", self.repo.working_tree_dir)
        try:
            snapshot = self._mine(previous, head)
        except RepositoryAccessError as e:
            self.log.log_exception(e, "Exception occurred while mining the Git repository")
            return previous

        self.log.log_info("-> Created report in %d seconds", 1 + int(time.monotonic() - started))
        return snapshot

    def _mine(
        self, previous: RepositoryStatisticsSnapshot, head: Optional[str]
    ) -> RepositoryStatisticsSnapshot:
        if head is None:
            head = self.walker.resolve_build_head().head

        checkpoint = self._usable_checkpoint(previous, head)
        if checkpoint:
            files = {path: self._carry_over(stats) for path, stats in previous.files.items()}
        else:
            files = {}

        diffs = list(self._commit_diffs(head, checkpoint))
        if diffs:
            self.log.log_info("Found %d commits", len(diffs))
        else:
            self.log.log_info("No commits found since previous commit '%s'", render_commit(checkpoint))

        for diff in diffs:
            apply_commit_diff(files, diff)

        alive = self._tree_paths(head)
        evicted = [path for path in files if path not in alive]
        for path in evicted:
            del files[path]
        if evicted:
            logger.debug("evicted_deleted_files", count=len(evicted))

        self._log_statistics(CommitStatistics.from_commit_diffs(diffs))

        return RepositoryStatisticsSnapshot(latest_commit=head, files=files)

    def collect_commit_statistics(
        self, since_commit: Optional[str], head: Optional[str] = None
    ) -> CommitStatistics:
        """Compute the statistics of all commits between a baseline and the head.

        Args:
            since_commit: Baseline commit (exclusive), None for the whole history
            head: Commit the build has built, resolved from HEAD if omitted

        Returns:
            CommitStatistics of the new commits

        Raises:
            RepositoryAccessError: If the repository cannot be read
            CancellationError: If the build has been interrupted
        """
        if head is None:
            head = self.walker.resolve_build_head().head
        statistics = CommitStatistics.from_commit_diffs(self._commit_diffs(head, since_commit))
        self._log_statistics(statistics)
        return statistics

    def _usable_checkpoint(self, previous: RepositoryStatisticsSnapshot, head: str) -> Optional[str]:
        """Get the checkpoint commit if it is an ancestor of the head.

        Rewritten history (rebase, force push) invalidates the checkpoint, then
        the whole history is mined again.
        """
        checkpoint = previous.latest_commit
        if not checkpoint:
            return None
        try:
            checkpoint_commit = self.walker.resolve(checkpoint)
            head_commit = self.walker.resolve(head)
            if self.repo.is_ancestor(checkpoint_commit, head_commit):
                return checkpoint
        except (RepositoryAccessError, git.GitCommandError):
            pass

        self.log.log_info(
            "-> Previous commit '%s' is not part of the history anymore, mining the full history",
            render_commit(checkpoint),
        )
        return None

    def _commit_diffs(self, head: str, checkpoint: Optional[str]) -> Iterator[CommitDiff]:
        """Produce the diffs of all commits since the checkpoint, oldest first.

        Every commit is compared with its predecessor in the walk, the oldest
        one with the checkpoint (or the empty tree if there is none).
        """
        commits: List[Commit] = list(self.walker.walk(head, boundary=checkpoint))
        commits.reverse()

        base = checkpoint
        for commit in commits:
            self.cancellation.raise_if_cancelled()
            yield CommitDiff(commit=commit, changes=self.differ.diff(base, commit.hash))
            base = commit.hash

    def _tree_paths(self, head: str) -> Set[str]:
        commit = self.walker.resolve(head)
        return {item.path for item in commit.tree.traverse() if item.type == "blob"}

    @staticmethod
    def _carry_over(stats: FileStatistics) -> FileStatistics:
        copy = stats.model_copy(deep=True)
        copy.reset_churn()
        return copy

    def _log_statistics(self, statistics: CommitStatistics) -> None:
        self.log.log_info(
            "-> %d commits analyzed (%d authors, %d files, +%d -%d lines)",
            statistics.commit_count,
            statistics.author_count,
            statistics.files_count,
            statistics.added_lines,
            statistics.deleted_lines,
        )


def apply_commit_diff(files: Dict[str, FileStatistics], diff: CommitDiff) -> None:
    """Update the statistics of all files changed by a commit.

    A rename moves the statistics of the old path to the new path, so the
    history of the file continues under its new name. A delete removes the
    statistics; a file added again later starts with a fresh history.

    Args:
        files: Statistics per path, updated in place
        diff: Changes of a single commit
    """
    for change in diff.changes:
        stats = _statistics_for(files, change)
        if stats is None:
            continue
        stats.add_delta(
            CommitDelta(
                hash=diff.commit.hash,
                author=diff.commit.identity,
                time=diff.commit.timestamp,
                added=change.added,
                deleted=change.deleted,
            )
        )


def _statistics_for(files: Dict[str, FileStatistics], change: FileChange) -> Optional[FileStatistics]:
    kind = change.kind
    if kind is ChangeKind.DELETE:
        files.pop(change.old_path or "", None)
        return None
    if kind is ChangeKind.RENAME:
        stats = files.pop(change.old_path or "", None)
        if stats is None:
            stats = FileStatistics(path=change.path)
        stats.path = change.path
        files[change.path] = stats
        return stats
    if kind in (ChangeKind.ADD, ChangeKind.MODIFY, ChangeKind.COPY):
        return files.setdefault(change.path, FileStatistics(path=change.path))
    raise ValueError(f"Unsupported change kind: {kind}")
