"""Result of a reference build search."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gitforensics.models.record import BuildCommitRecord


class SearchOutcome(str, Enum):
    MATCH = "match"
    FALLBACK = "fallback"
    NOT_FOUND = "not_found"


class ReferenceSearchResult(BaseModel):
    """The reference build found for the current build, if any."""

    model_config = ConfigDict(frozen=True)

    build_id: Optional[str] = Field(None, description="Id of the reference build")
    outcome: SearchOutcome = Field(SearchOutcome.NOT_FOUND, description="How the build has been selected")
    matching_commit: Optional[str] = Field(None, description="Newest commit shared by both histories")

    @property
    def found(self) -> bool:
        return self.build_id is not None

    @classmethod
    def not_found(cls) -> "ReferenceSearchResult":
        return cls()


class RecordedBuild(BaseModel):
    """A build of a job together with its commit record for the searched repository."""

    model_config = ConfigDict(frozen=True)

    build_id: str = Field(..., description="Id of the build (e.g., 'main#42')")
    record: Optional[BuildCommitRecord] = Field(None, description="Commit record, None if not recorded")

    @property
    def commits(self) -> List[str]:
        return self.record.commits if self.record else []
