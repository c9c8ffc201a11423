"""Tree diffs with added and deleted line counts."""

from typing import List, Optional, Tuple

import git
from git import Diff

from gitforensics.errors import RepositoryAccessError
from gitforensics.models import ChangeKind, FileChange

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
BINARY_MARKER = "Binary files"


def count_changed_lines(patch: str) -> Tuple[int, int]:
    """Count added and deleted lines of a unified diff.

    Only lines inside hunks are counted, so file headers never show up as
    changes.

    Args:
        patch: Unified diff text of a single file

    Returns:
        Tuple of (added, deleted)
    """
    added = 0
    deleted = 0
    in_hunk = False
    # git separates patch lines with \n only, content may hold other line breaks
    for line in patch.split("\n"):
        if line.startswith("@@"):
            in_hunk = True
        elif not in_hunk:
            continue
        elif line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            deleted += 1
    return added, deleted


def change_kind(diff: Diff) -> ChangeKind:
    """Classify the structural change of a GitPython diff entry."""
    if diff.new_file:
        return ChangeKind.ADD
    if diff.deleted_file:
        return ChangeKind.DELETE
    if diff.renamed_file:
        return ChangeKind.RENAME
    if diff.copied_file:
        return ChangeKind.COPY
    return ChangeKind.MODIFY


class DiffCollector:
    """Computes the file changes between the trees of two commits.

    Renames are detected by git's similarity heuristic (``-M``).
    """

    def __init__(self, repo: git.Repo) -> None:
        self.repo = repo
        self._empty_tree = git.Tree(repo, bytes.fromhex(EMPTY_TREE_SHA))

    def diff(self, old_commit: Optional[str], new_commit: str) -> List[FileChange]:
        """Compute the changes from one commit to another.

        Args:
            old_commit: Commit to compare against, None for the empty tree
            new_commit: Commit with the changes

        Returns:
            List of FileChange objects

        Raises:
            RepositoryAccessError: If a commit or tree cannot be read
        """
        new = self._resolve(new_commit)
        old = self._resolve(old_commit) if old_commit else self._empty_tree
        try:
            diff_index = old.diff(new, create_patch=True)
        except (git.GitCommandError, ValueError) as e:
            raise RepositoryAccessError(
                f"Unable to diff {old_commit or 'empty tree'} and {new_commit}: {e}"
            ) from e

        return [self._to_file_change(entry) for entry in diff_index]

    def _resolve(self, commit_id: str) -> git.Commit:
        try:
            return self.repo.commit(commit_id)
        except (git.BadName, git.BadObject, ValueError) as e:
            raise RepositoryAccessError(f"No commit found with ID {commit_id}") from e

    def _to_file_change(self, diff: Diff) -> FileChange:
        kind = change_kind(diff)

        raw = diff.diff or b""
        if isinstance(raw, bytes):
            # Only the leading +/- of each line matters, the encoding of the content does not
            text = raw.decode("utf-8", errors="replace")
        else:
            text = raw
        is_binary = text.startswith(BINARY_MARKER)

        added, deleted = (0, 0) if is_binary else count_changed_lines(text)

        return FileChange(
            kind=kind,
            old_path=None if kind is ChangeKind.ADD else diff.a_path,
            new_path=None if kind is ChangeKind.DELETE else diff.b_path,
            added=added,
            deleted=deleted,
            is_binary=is_binary,
        )
