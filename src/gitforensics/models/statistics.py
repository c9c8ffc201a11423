"""Statistics of repository files and commits."""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gitforensics.models.commit import CommitDiff


class CommitDelta(BaseModel):
    """Lines changed in a single file by a single commit."""

    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., description="Commit id")
    author: str = Field("", description="Author identity")
    time: int = Field(0, description="Author time in epoch seconds")
    added: int = Field(0, description="Number of added lines")
    deleted: int = Field(0, description="Number of deleted lines")

    @property
    def loc(self) -> int:
        return self.added - self.deleted

    @property
    def churn(self) -> int:
        return abs(self.added) + abs(self.deleted)


class FileStatistics(BaseModel):
    """Accumulated history of a single repository file.

    ``loc`` is cumulative over all recorded deltas while ``churn`` only
    counts the changes of the current mining run.
    """

    path: str = Field(..., description="Path of the file in the repository")
    authors: List[str] = Field(default_factory=list, description="Distinct author identities")
    commits: List[CommitDelta] = Field(default_factory=list, description="Per commit deltas, oldest first")
    loc: int = Field(0, description="Lines of code (added minus deleted)")
    churn: int = Field(0, description="Added plus deleted lines in the current mining run")

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "path": "src/auth.py",
                "authors": ["john@example.com"],
                "commits": [
                    {
                        "hash": "9fceb02d0ae598e95dc970b74767f19372d61af8",
                        "author": "john@example.com",
                        "time": 1705314600,
                        "added": 12,
                        "deleted": 2,
                    }
                ],
                "loc": 10,
                "churn": 14,
            }
        }

    def add_delta(self, delta: CommitDelta) -> None:
        """Record the changes of a commit."""
        if delta.author and delta.author not in self.authors:
            self.authors.append(delta.author)
        self.commits.append(delta)
        self.loc += delta.loc
        self.churn += delta.churn

    def reset_churn(self) -> None:
        self.churn = 0

    @property
    def number_of_commits(self) -> int:
        return len(self.commits)

    @property
    def number_of_authors(self) -> int:
        return len(self.authors)

    @property
    def total_churn(self) -> int:
        return sum(delta.churn for delta in self.commits)

    @property
    def creation_time(self) -> Optional[int]:
        if not self.commits:
            return None
        return min(delta.time for delta in self.commits)

    @property
    def last_modification_time(self) -> Optional[int]:
        if not self.commits:
            return None
        return max(delta.time for delta in self.commits)


class RepositoryStatisticsSnapshot(BaseModel):
    """Checkpoint of the statistics miner.

    Holds the latest fully processed commit and the statistics of all files
    alive at that commit. A snapshot is never changed once created, the miner
    returns a new instance for every build.
    """

    latest_commit: str = Field("", description="Latest processed commit (empty before the first run)")
    files: Dict[str, FileStatistics] = Field(default_factory=dict, description="Statistics per file path")

    @property
    def is_empty(self) -> bool:
        return not self.latest_commit and not self.files

    def get(self, path: str) -> Optional[FileStatistics]:
        return self.files.get(path)

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, path: object) -> bool:
        return path in self.files


class CommitStatistics(BaseModel):
    """Aggregated statistics for a list of commits."""

    commit_count: int = 0
    author_count: int = 0
    files_count: int = 0
    added_lines: int = 0
    deleted_lines: int = 0

    @classmethod
    def from_commit_diffs(cls, diffs: Iterable[CommitDiff]) -> "CommitStatistics":
        """Aggregate the changes of several commits.

        Args:
            diffs: Commits together with their file changes

        Returns:
            CommitStatistics for all given commits
        """
        commits = set()
        authors = set()
        files = set()
        added = 0
        deleted = 0
        for diff in diffs:
            commits.add(diff.commit.hash)
            if diff.commit.identity:
                authors.add(diff.commit.identity)
            for change in diff.changes:
                files.add(change.path)
                added += change.added
                deleted += change.deleted

        return cls(
            commit_count=len(commits),
            author_count=len(authors),
            files_count=len(files),
            added_lines=added,
            deleted_lines=deleted,
        )

    @property
    def loc_delta(self) -> int:
        return self.added_lines - self.deleted_lines
