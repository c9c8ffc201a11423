"""Configuration models."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gitforensics.formatting import CommitFormat


class RepositoryConfig(BaseModel):
    """Configuration for a Git work tree checked out by a build."""

    repo_path: Path = Field(..., description="Path to the Git work tree")
    repository_key: Optional[str] = Field(
        None, description="Key of the repository (defaults to the origin URL or the path)"
    )

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "repo_path": "/var/lib/ci/workspace/project",
                "repository_key": "git https://github.com/example/project.git",
            }
        }


class ForensicsSettings(BaseSettings):
    """Settings for recording, mining and reference discovery.

    Settings can be loaded from environment variables or .env file.
    All settings are prefixed with GITFORENSICS_ (e.g., GITFORENSICS_MAX_COMMITS).
    """

    model_config = SettingsConfigDict(
        env_prefix="GITFORENSICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Reference discovery
    max_commits: int = Field(
        default=100,
        ge=1,
        description="Maximum number of commits compared while searching a reference build",
    )
    skip_unknown_commits: bool = Field(
        default=False,
        description="Skip builds of the target job that contain commits unknown to the branch",
    )
    latest_build_if_not_found: bool = Field(
        default=False,
        description="Use the latest target build if no intersection has been found",
    )
    target_job: Optional[str] = Field(default=None, description="Job whose builds are searched")
    target_branch: Optional[str] = Field(
        default=None, description="Branch of the same multibranch project to search"
    )
    scm_key: str = Field(
        default="", description="Substring selecting the repository of a multi repository build"
    )

    # Storage
    state_dir: Path = Field(
        default=Path("./.gitforensics"),
        description="Directory of the build store",
    )

    # Output
    log_level: str = Field(default="INFO", description="Minimum log level")
    max_error_lines: int = Field(default=20, ge=1, description="Error lines kept per step")
    commit_format: CommitFormat = Field(default=CommitFormat.TEXT, description="Rendering of commit ids")
    browser_url: Optional[str] = Field(
        default=None, description="Commit link template with a {commit} placeholder"
    )
    timeout_seconds: Optional[float] = Field(
        default=None, description="Abort long running walks after this many seconds"
    )

    def resolve_target_job(self, job: str) -> Optional[str]:
        """Get the job whose builds are searched for a reference.

        Args:
            job: Name of the current job (e.g., "project/feature-x")

        Returns:
            The explicit target job, the sibling job of the target branch,
            or None if neither is configured
        """
        if self.target_job:
            return self.target_job
        if self.target_branch:
            parent, _, _ = job.rpartition("/")
            return f"{parent}/{self.target_branch}" if parent else self.target_branch
        return None
