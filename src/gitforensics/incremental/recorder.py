"""Recording of the commits that are new in a build."""

from typing import Optional

import git

from gitforensics.cancellation import CancellationToken
from gitforensics.extraction.walker import HEAD, CommitGraphWalker
from gitforensics.formatting import render_commit
from gitforensics.logs import FilteredLog
from gitforensics.models import BuildCommitRecord, RecordingType

MAX_RECORDED_COMMITS = 200


class BuildCommitRecorder:
    """Records the commits of a repository since the previous build of the same job.

    The record starts at the build's head commit (the first parent if HEAD is
    a local merge) and walks backwards until the latest commit of the
    previous record is reached, or until the initial commit if there is no
    previous record.
    """

    def __init__(
        self,
        repo: git.Repo,
        repository_key: str,
        max_commits: int = MAX_RECORDED_COMMITS,
        cancellation: Optional[CancellationToken] = None,
        log: Optional[FilteredLog] = None,
    ) -> None:
        """Initialize the recorder.

        Args:
            repo: GitPython repository object
            repository_key: Key of the repository the record belongs to
            max_commits: Maximum number of commits stored in a record
            cancellation: Token polled while walking the history (optional)
            log: Log for the messages of this step (optional)
        """
        self.repo = repo
        self.repository_key = repository_key
        self.max_commits = max_commits
        self.walker = CommitGraphWalker(repo, cancellation)
        self.log = log if log is not None else FilteredLog("Errors while recording commits")

    def record(
        self, previous_record: Optional[BuildCommitRecord] = None, rev: str = HEAD
    ) -> BuildCommitRecord:
        """Create the commit record for the current build.

        Args:
            previous_record: Record of the previous build of the same job (optional)
            rev: Revision that has been checked out

        Returns:
            BuildCommitRecord with the new commits, newest first

        Raises:
            NoHeadCommitError: If the repository has no HEAD commit
            RepositoryAccessError: If the history cannot be read
            CancellationError: If the build has been interrupted
        """
        build_head = self.walker.resolve_build_head(rev)
        if build_head.is_merge:
            self.log.log_info(
                "-> Multiple parent commits found - storing latest commit of local merge '%s'",
                render_commit(build_head.merge),
            )
            self.log.log_info(
                "-> Using parent commit '%s' of local merge as starting point",
                render_commit(build_head.head),
            )
            self.log.log_info(
                "-> Storing target branch head '%s' (second parent of local merge)",
                render_commit(build_head.target_parent),
            )
        else:
            self.log.log_info("-> Using head commit '%s' as starting point", render_commit(build_head.head))

        previous_commit = previous_record.latest_commit if previous_record else ""
        if previous_commit:
            self.log.log_info("-> Starting recording of new commits since '%s'", render_commit(previous_commit))
            recording_type = RecordingType.INCREMENTAL
        else:
            self.log.log_info("-> Starting initial recording of commits")
            recording_type = RecordingType.START

        commits = [
            commit.hash
            for commit in self.walker.walk(
                build_head.head, boundary=previous_commit or None, max_count=self.max_commits
            )
        ]

        if not commits:
            self.log.log_info("-> No new commits found")
        elif len(commits) == 1:
            self.log.log_info("-> Recorded one new commit")
        else:
            self.log.log_info("-> Recorded %d new commits", len(commits))

        return BuildCommitRecord(
            repository_key=self.repository_key,
            commits=commits,
            head=build_head.head,
            target_parent=build_head.target_parent,
            merge=build_head.merge,
            recording_type=recording_type,
            previous_commit=previous_commit,
        )
