"""Discovery of the reference build of a target job."""

from typing import Iterable, List, Optional

from gitforensics.cancellation import CancellationToken
from gitforensics.formatting import render_commit
from gitforensics.logs import FilteredLog
from gitforensics.models import (
    BuildCommitRecord,
    RecordedBuild,
    ReferenceSearchResult,
    SearchOutcome,
)

DEFAULT_MAX_COMMITS = 100


class ReferenceResolver:
    """Finds the build of a target job that matches best with the current build.

    The commits of the current branch (the current record, extended by the
    records of previous builds of the same job) are intersected with the
    commits of the target job's builds, newest build first. The first target
    build whose accumulated commits contain a branch commit is the reference.
    Scanning the branch commits newest first prefers the most recent common
    commit inside the search window.
    """

    def __init__(
        self,
        max_commits: int = DEFAULT_MAX_COMMITS,
        skip_unknown_commits: bool = False,
        latest_if_not_found: bool = False,
        cancellation: Optional[CancellationToken] = None,
        log: Optional[FilteredLog] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            max_commits: Size of the search window on both histories
            skip_unknown_commits: Skip target builds with commits unknown to the branch
            latest_if_not_found: Fall back to the latest target build if nothing matches
            cancellation: Token polled between builds (optional)
            log: Log for the messages of this step (optional)
        """
        self.max_commits = max_commits
        self.skip_unknown_commits = skip_unknown_commits
        self.latest_if_not_found = latest_if_not_found
        self.cancellation = cancellation or CancellationToken()
        self.log = log if log is not None else FilteredLog("Errors while discovering the reference build")

    def resolve(
        self,
        current_record: BuildCommitRecord,
        target_builds: Iterable[RecordedBuild],
        branch_history: Iterable[Optional[BuildCommitRecord]] = (),
    ) -> ReferenceSearchResult:
        """Search the reference build for the current build.

        Args:
            current_record: Commit record of the current build
            target_builds: Completed builds of the target job, newest first
            branch_history: Records of the previous builds of the current job,
                newest first (None for builds without a record)

        Returns:
            ReferenceSearchResult with the reference build, if any

        Raises:
            CancellationError: If the build has been interrupted
        """
        branch_commits = self._collect_branch_commits(current_record, branch_history)
        known_commits = set(branch_commits)

        target_commits = set()
        target_count = 0
        latest_build: Optional[str] = None
        for build in target_builds:
            self.cancellation.raise_if_cancelled()
            if latest_build is None:
                latest_build = build.build_id
            if target_count >= self.max_commits:
                break

            commits = build.commits
            if self.skip_unknown_commits and not known_commits.issuperset(commits):
                self.log.log_info("-> skipping build '%s' since it contains unknown commits", build.build_id)
                continue

            target_commits.update(commits)
            target_count += len(commits)
            match = next((commit for commit in branch_commits if commit in target_commits), None)
            if match is not None:
                self.log.log_info(
                    "-> found build '%s' in reference job with matching commit '%s'",
                    build.build_id,
                    render_commit(match),
                )
                return ReferenceSearchResult(
                    build_id=build.build_id,
                    outcome=SearchOutcome.MATCH,
                    matching_commit=match,
                )

        self.log.log_info("-> found no build with matching commits")
        if self.latest_if_not_found and latest_build is not None:
            self.log.log_info("-> falling back to latest build '%s' of reference job", latest_build)
            return ReferenceSearchResult(build_id=latest_build, outcome=SearchOutcome.FALLBACK)

        self.log.log_info("-> no reference build found")
        return ReferenceSearchResult.not_found()

    def _collect_branch_commits(
        self,
        current_record: BuildCommitRecord,
        branch_history: Iterable[Optional[BuildCommitRecord]],
    ) -> List[str]:
        branch_commits = list(current_record.commits)
        for record in branch_history:
            if len(branch_commits) >= self.max_commits:
                break
            self.cancellation.raise_if_cancelled()
            if record is not None:
                branch_commits.extend(record.commits)
        return branch_commits
