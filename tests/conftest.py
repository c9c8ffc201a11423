"""Shared fixtures: temporary Git repositories with a controlled history."""

import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import git
import pytest

ALICE = git.Actor("Alice", "alice@example.com")
BOB = git.Actor("Bob", "bob@example.com")


class RepoBuilder:
    """Creates commits in a temporary repository with increasing timestamps."""

    def __init__(self, path: Path):
        self.path = path
        self.repo = git.Repo.init(path)
        self.repo.config_writer().set_value("user", "name", "Test User").release()
        self.repo.config_writer().set_value("user", "email", "test@example.com").release()
        self._time = 1700000000

    def commit(
        self,
        files: Optional[Dict[str, str]] = None,
        delete: Iterable[str] = (),
        rename: Optional[Dict[str, str]] = None,
        message: str = "change",
        author: git.Actor = ALICE,
        parents: Optional[List[str]] = None,
    ) -> str:
        """Apply the changes to the work tree and commit them.

        Returns:
            Id of the new commit
        """
        for name, content in (files or {}).items():
            file_path = self.path / name
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content)
            self.repo.index.add([name])

        for old, new in (rename or {}).items():
            content = (self.path / old).read_text()
            (self.path / new).parent.mkdir(parents=True, exist_ok=True)
            (self.path / new).write_text(content)
            self.repo.index.add([new])
            self.repo.index.remove([old], working_tree=True)

        for name in delete:
            self.repo.index.remove([name], working_tree=True)

        self._time += 60
        date = f"{self._time} +0000"
        parent_commits = [self.repo.commit(p) for p in parents] if parents is not None else None
        commit = self.repo.index.commit(
            message,
            parent_commits=parent_commits,
            author=author,
            committer=author,
            author_date=date,
            commit_date=date,
        )
        return commit.hexsha

    def checkout(self, name: str, start: Optional[str] = None) -> None:
        """Check out a branch, creating it at ``start`` if given."""
        if start is not None:
            self.repo.create_head(name, start)
        self.repo.heads[name].checkout()


def lines(count: int, prefix: str = "line") -> str:
    return "".join(f"{prefix} {i}\n" for i in range(count))


@pytest.fixture
def repo_builder():
    """Empty repository with a builder for commits."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield RepoBuilder(Path(tmpdir))


@pytest.fixture
def linear_history(repo_builder):
    """Linear history covering additions, modifications, a rename, a delete and a re-add.

    Returns the builder and the commit ids, oldest first.
    """
    b = repo_builder
    commits = [
        b.commit({"README.md": lines(2), "src/app.py": lines(5)}, message="Initial commit"),
        b.commit({"src/app.py": lines(8)}, message="Extend app", author=BOB),
        b.commit({"src/util.py": lines(10, "util")}, message="Add util"),
        b.commit(rename={"src/util.py": "src/helpers.py"}, message="Rename util"),
        b.commit({"docs/guide.md": lines(3, "doc")}, message="Add guide", author=BOB),
        b.commit(delete=["docs/guide.md"], message="Remove guide"),
        b.commit({"src/app.py": lines(4)}, message="Shrink app"),
        b.commit({"docs/guide.md": lines(6, "doc")}, message="Restore guide", author=BOB),
    ]
    return b, commits


@pytest.fixture
def store_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "state"
