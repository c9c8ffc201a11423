"""Build steps - orchestrates recording, mining and reference discovery."""

from typing import Generic, List, Optional, TypeVar

import git
import structlog

from gitforensics.cancellation import CancellationToken
from gitforensics.errors import RepositoryAccessError
from gitforensics.extraction.walker import (
    CommitGraphWalker,
    is_shallow,
    open_repository,
    repository_key,
)
from gitforensics.formatting import render_commit
from gitforensics.incremental.miner import RepositoryStatisticsMiner
from gitforensics.incremental.recorder import MAX_RECORDED_COMMITS, BuildCommitRecorder
from gitforensics.incremental.state import BuildStore, parse_build_id
from gitforensics.logs import FilteredLog
from gitforensics.models import (
    BuildCommitRecord,
    CommitStatistics,
    ForensicsSettings,
    ReferenceSearchResult,
    RepositoryConfig,
    RepositoryStatisticsSnapshot,
)
from gitforensics.reference.resolver import ReferenceResolver

logger = structlog.get_logger(__name__)

T = TypeVar("T")

INFO_SHALLOW_CLONE = "Skipping analysis since Git has been configured with shallow clone"


class StepResult(Generic[T]):
    """Result of a single build step."""

    def __init__(
        self,
        name: str,
        log: FilteredLog,
        value: Optional[T] = None,
        success: bool = True,
        skipped: bool = False,
    ):
        self.name = name
        self.log = log
        self.value = value
        self.success = success
        self.skipped = skipped

    @property
    def info_messages(self) -> List[str]:
        return self.log.info_messages

    @property
    def error_messages(self) -> List[str]:
        return self.log.error_messages


class ForensicsManager:
    """Runs the forensics steps of a build.

    Every step is auxiliary to the build itself: repository problems are
    logged and produce a neutral result instead of an exception. Only a
    cancellation of the build is propagated.
    """

    def __init__(self, store: BuildStore, settings: Optional[ForensicsSettings] = None):
        """Initialize the manager.

        Args:
            store: Build store holding the records of all jobs
            settings: Forensics settings, loaded from the environment if None
        """
        self.store = store
        self.settings = settings or ForensicsSettings()

    def _new_log(self, title: str) -> FilteredLog:
        return FilteredLog(title, self.settings.max_error_lines)

    def _token(self, cancellation: Optional[CancellationToken]) -> CancellationToken:
        return cancellation or CancellationToken(self.settings.timeout_seconds)

    def _render(self, commit_id: str) -> str:
        return render_commit(commit_id, self.settings.commit_format, self.settings.browser_url)

    def open_repository(self, config: RepositoryConfig, log: FilteredLog) -> Optional[git.Repo]:
        """Open the work tree of a build if it can be analyzed.

        Args:
            config: Repository configuration
            log: Log of the current step

        Returns:
            GitPython repository object, or None if the work tree must be skipped
        """
        try:
            repo = open_repository(config.repo_path)
        except RepositoryAccessError as e:
            log.log_info("-> skipping not supported repository: %s", e)
            return None

        if is_shallow(repo):
            log.log_info(INFO_SHALLOW_CLONE)
            return None
        return repo

    def record_commits(
        self,
        job: str,
        number: int,
        config: RepositoryConfig,
        cancellation: Optional[CancellationToken] = None,
    ) -> StepResult[BuildCommitRecord]:
        """Record the new commits of a build.

        Args:
            job: Name of the job
            number: Build number
            config: Repository configuration
            cancellation: Token of the build (optional)

        Returns:
            StepResult with the stored record
        """
        log = self._new_log("Errors while recording commits")
        repo = self.open_repository(config, log)
        if repo is None:
            return StepResult("record", log, skipped=True)

        key = config.repository_key or repository_key(repo)
        log.log_info("Recording commits of '%s'", key)

        build = self.store.get_or_create_build(job, number)
        if key in build.records:
            log.log_info("Skipping recording, since SCM '%s' already has been processed", key)
            return StepResult("record", log, value=build.records[key], skipped=True)

        previous_build, previous_record = self.store.previous_record(job, number, key)
        if previous_build is not None:
            log.log_info("Found previous build '%s' that contains recorded Git commits", previous_build.id)
        else:
            log.log_info("Found no previous build with recorded Git commits")

        recorder = BuildCommitRecorder(
            repo,
            key,
            max_commits=min(self.settings.max_commits, MAX_RECORDED_COMMITS),
            cancellation=self._token(cancellation),
            log=log,
        )
        try:
            record = recorder.record(previous_record)
        except RepositoryAccessError as e:
            log.log_exception(e, "Unable to record commits of git repository '%s'", key)
            log.log_summary()
            return StepResult("record", log, success=False)

        if not self.store.save_record(job, number, record):
            log.log_info("Skipping recording, since SCM '%s' already has been processed", key)
        log.log_summary()
        return StepResult("record", log, value=record)

    def mine_statistics(
        self,
        job: str,
        number: int,
        config: RepositoryConfig,
        cancellation: Optional[CancellationToken] = None,
    ) -> StepResult[RepositoryStatisticsSnapshot]:
        """Mine the repository statistics of a build incrementally.

        The snapshot of the latest previous build is the starting point. Mining
        starts at the head commit of this build's record, so mining and
        recording agree on the commit of the build.

        Returns:
            StepResult with the new snapshot (not stored if mining failed)
        """
        log = self._new_log("Errors while mining the Git repository")
        repo = self.open_repository(config, log)
        if repo is None:
            return StepResult("mine", log, skipped=True)

        key = config.repository_key or repository_key(repo)
        build = self.store.get_or_create_build(job, number)
        record = build.records.get(key)
        head = record.head if record is not None else None

        previous = self.store.previous_statistics(job, number, key)
        if previous is None:
            log.log_info("-> No previous statistics found, mining the full history")
        else:
            log.log_info("-> Mining commits since '%s'", self._render(previous.latest_commit))

        miner = RepositoryStatisticsMiner(repo, self._token(cancellation), log)
        errors = len(log)
        snapshot = miner.mine(previous, head)
        log.log_summary()
        if len(log) > errors:
            return StepResult("mine", log, value=previous, success=False)

        self.store.save_statistics(job, number, key, snapshot)
        log.log_info("-> Stored statistics for %d files", len(snapshot))
        return StepResult("mine", log, value=snapshot)

    def find_reference(
        self,
        job: str,
        number: int,
        cancellation: Optional[CancellationToken] = None,
    ) -> StepResult[ReferenceSearchResult]:
        """Find the reference build of the configured target job.

        Returns:
            StepResult with the search result
        """
        log = self._new_log("Errors while discovering the reference build")
        target_job = self.settings.resolve_target_job(job)
        if target_job is None:
            log.log_info("-> no reference job configured")
            return StepResult("reference", log, value=ReferenceSearchResult.not_found(), skipped=True)

        build = self.store.get_build(job, number)
        record = build.find_record(self.settings.scm_key) if build else None
        if record is None:
            log.log_info("-> found no commit record in current build '%s#%d'", job, number)
            return StepResult("reference", log, value=ReferenceSearchResult.not_found())

        latest = self.store.latest_completed_build(target_job)
        if latest is None:
            log.log_info("-> reference job '%s' has no completed builds", target_job)
        elif latest.find_record(self.settings.scm_key) is None:
            log.log_info("-> selected build '%s' of reference job does not yet contain a commit record", latest.id)

        resolver = ReferenceResolver(
            max_commits=self.settings.max_commits,
            skip_unknown_commits=self.settings.skip_unknown_commits,
            latest_if_not_found=self.settings.latest_build_if_not_found,
            cancellation=self._token(cancellation),
            log=log,
        )
        result = resolver.resolve(
            record,
            self.store.recorded_builds(target_job, self.settings.scm_key),
            self.store.branch_history(job, number, self.settings.scm_key),
        )
        self.store.save_reference(job, number, record.repository_key, result)
        log.log_summary()
        return StepResult("reference", log, value=result)

    def diff_statistics(
        self,
        job: str,
        number: int,
        config: RepositoryConfig,
        cancellation: Optional[CancellationToken] = None,
    ) -> StepResult[CommitStatistics]:
        """Compute the statistics of the commits since a baseline.

        The baseline is the merge base with the latest commit of the
        reference build, or the latest commit of the previous completed build
        if no reference build has been found.

        Returns:
            StepResult with the diff statistics
        """
        log = self._new_log("Errors while computing diff statistics")
        log.log_info("Analyzing commits to obtain diff statistics for affected repository files")
        repo = self.open_repository(config, log)
        if repo is None:
            return StepResult("diffstat", log, skipped=True)

        key = config.repository_key or repository_key(repo)
        token = self._token(cancellation)
        walker = CommitGraphWalker(repo, token)
        build = self.store.get_or_create_build(job, number)
        record = build.records.get(key)
        head = record.head if record is not None else None

        try:
            baseline = self._find_baseline(job, number, key, walker, head, log)
            if baseline is None:
                log.log_summary()
                return StepResult("diffstat", log, skipped=True)
            miner = RepositoryStatisticsMiner(repo, token, log)
            statistics = miner.collect_commit_statistics(baseline, head)
        except RepositoryAccessError as e:
            log.log_exception(e, "-> skipping due to exception")
            log.log_summary()
            return StepResult("diffstat", log, success=False)

        self.store.save_commit_statistics(job, number, key, statistics)
        log.log_summary()
        return StepResult("diffstat", log, value=statistics)

    def _find_baseline(
        self,
        job: str,
        number: int,
        key: str,
        walker: CommitGraphWalker,
        head: Optional[str],
        log: FilteredLog,
    ) -> Optional[str]:
        build = self.store.get_build(job, number)
        reference = build.references.get(key) if build else None
        if reference is not None and reference.build_id:
            log.log_info("-> found reference build '%s'", reference.build_id)
            reference_job, reference_number = parse_build_id(reference.build_id)
            reference_build = self.store.get_build(reference_job, reference_number)
            reference_record = reference_build.find_record(self.settings.scm_key) if reference_build else None
            if reference_record is None or not reference_record.latest_commit:
                log.log_info("-> skipping since reference build '%s' has no recorded commits", reference.build_id)
                return None
            latest = reference_record.latest_commit
            ancestor = walker.merge_base(latest, head or "HEAD")
            log.log_info(
                "-> found best common ancestor '%s' between HEAD and target branch commit '%s'",
                self._render(ancestor),
                self._render(latest),
            )
            return ancestor

        previous = next(self.store.iter_builds(job, before=number, completed_only=True), None)
        if previous is None:
            log.log_info("-> skipping step since no previous build has been completed yet")
            return None
        log.log_info("-> no reference build found, using previous build '%s' as baseline", previous.id)
        previous_record = previous.records.get(key)
        if previous_record is None or not previous_record.latest_commit:
            log.log_info("-> skipping since previous completed build '%s' has no recorded commits", previous.id)
            return None
        log.log_info("-> found latest previous commit '%s'", self._render(previous_record.latest_commit))
        return previous_record.latest_commit

    def run_build(
        self,
        job: str,
        config: RepositoryConfig,
        number: Optional[int] = None,
        mine: bool = True,
        reference: bool = True,
        diffstat: bool = False,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[StepResult]:
        """Run all enabled steps for a new build and mark it completed.

        Args:
            job: Name of the job
            config: Repository configuration
            number: Build number, defaults to the next free number
            mine: Whether to mine the repository statistics
            reference: Whether to search a reference build
            diffstat: Whether to compute the diff statistics
            cancellation: Token of the build (optional)

        Returns:
            Results of the executed steps

        Raises:
            CancellationError: If the build has been interrupted
        """
        build = self.store.create_build(job, number)
        token = self._token(cancellation)
        logger.info("build_started", build=build.id)

        results: List[StepResult] = [self.record_commits(job, build.number, config, token)]
        if mine:
            results.append(self.mine_statistics(job, build.number, config, token))
        if reference:
            results.append(self.find_reference(job, build.number, token))
        if diffstat:
            results.append(self.diff_statistics(job, build.number, config, token))

        self.store.complete_build(job, build.number)
        logger.info(
            "build_completed",
            build=build.id,
            steps=len(results),
            failed=sum(1 for result in results if not result.success),
        )
        return results
