"""Commit graph traversal of a Git repository."""

from pathlib import Path
from typing import Iterator, Optional, Union

import git
import structlog

from gitforensics.cancellation import CancellationToken
from gitforensics.errors import NoHeadCommitError, RepositoryAccessError
from gitforensics.models import BuildHead, Commit

logger = structlog.get_logger(__name__)

HEAD = "HEAD"


def open_repository(repo_path: Union[str, Path]) -> git.Repo:
    """Open the Git repository of a work tree.

    Args:
        repo_path: Path to the work tree

    Returns:
        GitPython repository object

    Raises:
        RepositoryAccessError: If the path does not exist or is no Git repository
    """
    path = Path(repo_path)
    if not path.exists():
        raise RepositoryAccessError(f"Repository path does not exist: {path}")
    try:
        return git.Repo(path)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
        raise RepositoryAccessError(f"Invalid Git repository: {path}") from e


def is_shallow(repo: git.Repo) -> bool:
    """Check whether the repository has been cloned with a limited depth."""
    return (Path(repo.git_dir) / "shallow").exists()


def repository_key(repo: git.Repo) -> str:
    """Get a stable key for the repository: the origin URL or the work tree path."""
    try:
        return f"git {repo.remotes.origin.url}"
    except (AttributeError, IndexError, ValueError):
        return f"git {repo.working_tree_dir or repo.git_dir}"


def to_commit(commit: git.Commit) -> Commit:
    """Convert a GitPython commit into a Commit model.

    Args:
        commit: GitPython Commit object

    Returns:
        Commit model
    """
    author = commit.author
    committer = commit.committer
    return Commit(
        hash=commit.hexsha,
        parent_hashes=[parent.hexsha for parent in commit.parents],
        author_name=(author.name or "") if author else "",
        author_email=(author.email or "") if author else "",
        committer_name=(committer.name or "") if committer else "",
        committer_email=(committer.email or "") if committer else "",
        timestamp=commit.authored_date,
    )


class CommitGraphWalker:
    """Walks the commit graph of a repository by following parent links.

    Commits are produced lazily in ``git log`` order (newest commit time
    first, all parents followed), so callers only pay for the part of the
    history they actually consume.
    """

    def __init__(self, repo: git.Repo, cancellation: Optional[CancellationToken] = None) -> None:
        """Initialize the walker.

        Args:
            repo: GitPython repository object
            cancellation: Token polled between commits (optional)
        """
        self.repo = repo
        self.cancellation = cancellation or CancellationToken()

    def resolve(self, rev: str) -> git.Commit:
        """Resolve a revision to a commit.

        Args:
            rev: Commit id, branch name or any other revision

        Returns:
            GitPython Commit object

        Raises:
            RepositoryAccessError: If the revision cannot be resolved
        """
        try:
            return self.repo.commit(rev)
        except (git.BadName, git.BadObject, ValueError) as e:
            raise RepositoryAccessError(f"Commit not found: {rev}") from e

    def resolve_head(self, rev: str = HEAD) -> git.Commit:
        """Resolve the HEAD commit of the work tree.

        Raises:
            NoHeadCommitError: If there is no HEAD commit (e.g., empty repository)
        """
        try:
            return self.resolve(rev)
        except RepositoryAccessError as e:
            raise NoHeadCommitError(f"No HEAD commit found in {self.repo.working_tree_dir}") from e

    def resolve_build_head(self, rev: str = HEAD) -> BuildHead:
        """Determine the commit that the current build has built.

        A HEAD with two parents is a local merge of the target branch into
        the built branch: then the first parent is the build's head, the
        second parent the target parent.

        Args:
            rev: Revision of the checked out commit

        Returns:
            BuildHead of the work tree

        Raises:
            NoHeadCommitError: If there is no HEAD commit
        """
        head = self.resolve_head(rev)
        parents = head.parents
        if len(parents) == 2:
            return BuildHead(
                head=parents[0].hexsha,
                target_parent=parents[1].hexsha,
                merge=head.hexsha,
            )
        return BuildHead(head=head.hexsha)

    def walk(
        self,
        start: str,
        boundary: Optional[str] = None,
        max_count: Optional[int] = None,
    ) -> Iterator[Commit]:
        """Walk the history backwards from a start commit.

        Args:
            start: Revision to start from
            boundary: Commit id to stop at (exclusive)
            max_count: Maximum number of commits to produce

        Returns:
            Lazy iterator of commits, newest first

        Raises:
            RepositoryAccessError: If the start cannot be resolved
        """
        start_commit = self.resolve(start)
        return self._walk(start_commit, boundary, max_count)

    def _walk(
        self,
        start_commit: git.Commit,
        boundary: Optional[str],
        max_count: Optional[int],
    ) -> Iterator[Commit]:
        emitted = 0
        try:
            for commit in self.repo.iter_commits(start_commit):
                self.cancellation.raise_if_cancelled()
                if boundary and commit.hexsha == boundary:
                    return
                if max_count is not None and emitted >= max_count:
                    return
                yield to_commit(commit)
                emitted += 1
        except (git.GitCommandError, ValueError) as e:
            raise RepositoryAccessError(
                f"Unable to walk the history of {start_commit.hexsha}: {e}"
            ) from e

    def merge_base(self, commit_id: str, start: str = HEAD) -> str:
        """Find the best common ancestor of the build head and another commit.

        Args:
            commit_id: Commit of the other history (e.g., of the target branch)
            start: Revision of the build head

        Returns:
            Id of the merge base, or ``commit_id`` if the histories are unrelated

        Raises:
            RepositoryAccessError: If one of the commits cannot be resolved
        """
        head = self.resolve(start)
        other = self.resolve(commit_id)
        try:
            bases = self.repo.merge_base(head, other)
        except git.GitCommandError as e:
            raise RepositoryAccessError(f"Unable to compute merge base with {commit_id}: {e}") from e

        if not bases:
            logger.info("no_merge_base_found", head=head.hexsha, other=other.hexsha)
            return other.hexsha
        return bases[0].hexsha
