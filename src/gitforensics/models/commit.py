"""Data models for Git commits and tree changes."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

ZERO_ID = "0" * 40
"""Sentinel for an absent commit id."""


class Commit(BaseModel):
    """An immutable commit of the repository graph."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "hash": "9fceb02d0ae598e95dc970b74767f19372d61af8",
                "parent_hashes": ["b5f5c3f3c0b4f0c9b3c1e6d7a0a1e2f3d4c5b6a7"],
                "author_name": "John Doe",
                "author_email": "john@example.com",
                "committer_name": "John Doe",
                "committer_email": "john@example.com",
                "timestamp": 1705314600,
            }
        },
    )

    hash: str = Field(..., description="Full 40 character commit id")
    parent_hashes: List[str] = Field(default_factory=list, description="Parent commit ids")
    author_name: str = Field("", description="Author name")
    author_email: str = Field("", description="Author email")
    committer_name: str = Field("", description="Committer name")
    committer_email: str = Field("", description="Committer email")
    timestamp: int = Field(0, description="Author time in epoch seconds")

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    @property
    def is_merge(self) -> bool:
        return len(self.parent_hashes) > 1

    @property
    def identity(self) -> str:
        """Key of the author: the email, or the name if no email is set.

        Falls back to the committer if the author is empty.
        """
        return (
            self.author_email
            or self.author_name
            or self.committer_email
            or self.committer_name
        )


class BuildHead(BaseModel):
    """The commit a build is considered to have built.

    If the checked out HEAD is a local merge (e.g. the target branch merged
    into a feature branch), ``head`` is the first parent, ``target_parent``
    the second parent and ``merge`` the merge commit itself.
    """

    model_config = ConfigDict(frozen=True)

    head: str
    target_parent: str = ZERO_ID
    merge: str = ZERO_ID

    @property
    def is_merge(self) -> bool:
        return self.merge != ZERO_ID


class ChangeKind(str, Enum):
    """Structural change of a file between two trees."""

    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"
    COPY = "copy"


class FileChange(BaseModel):
    """Change of a single file between two trees."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind = Field(..., description="Structural change kind")
    old_path: Optional[str] = Field(None, description="Path in the old tree (None for additions)")
    new_path: Optional[str] = Field(None, description="Path in the new tree (None for deletions)")
    added: int = Field(0, description="Number of added lines")
    deleted: int = Field(0, description="Number of deleted lines")
    is_binary: bool = Field(False, description="Whether the file is binary")

    @property
    def path(self) -> str:
        """The live path of the file after the change."""
        return self.new_path or self.old_path or ""


class CommitDiff(BaseModel):
    """All file changes introduced by a commit."""

    model_config = ConfigDict(frozen=True)

    commit: Commit
    changes: List[FileChange] = Field(default_factory=list)
