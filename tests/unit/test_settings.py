"""Unit tests for configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from gitforensics.formatting import CommitFormat
from gitforensics.models import ForensicsSettings, RepositoryConfig


def test_defaults(monkeypatch, tmp_path):
    """Test the default settings."""
    monkeypatch.chdir(tmp_path)
    settings = ForensicsSettings()

    assert settings.max_commits == 100
    assert not settings.skip_unknown_commits
    assert not settings.latest_build_if_not_found
    assert settings.target_job is None
    assert settings.scm_key == ""
    assert settings.state_dir == Path("./.gitforensics")
    assert settings.max_error_lines == 20
    assert settings.commit_format is CommitFormat.TEXT
    assert settings.timeout_seconds is None


def test_environment(monkeypatch, tmp_path):
    """Test loading settings from GITFORENSICS_ variables."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GITFORENSICS_MAX_COMMITS", "50")
    monkeypatch.setenv("GITFORENSICS_SKIP_UNKNOWN_COMMITS", "true")
    monkeypatch.setenv("GITFORENSICS_TARGET_JOB", "project/main")
    monkeypatch.setenv("GITFORENSICS_COMMIT_FORMAT", "full")

    settings = ForensicsSettings()

    assert settings.max_commits == 50
    assert settings.skip_unknown_commits
    assert settings.target_job == "project/main"
    assert settings.commit_format is CommitFormat.FULL


def test_invalid_max_commits():
    """Test that the search window must be positive."""
    with pytest.raises(ValidationError):
        ForensicsSettings(max_commits=0)


class TestResolveTargetJob:
    """Test selecting the job to search a reference build in."""

    def test_explicit_job(self):
        """Test that an explicit job wins."""
        settings = ForensicsSettings(target_job="other/main", target_branch="develop")
        assert settings.resolve_target_job("project/feature") == "other/main"

    def test_sibling_branch(self):
        """Test the target branch of a multibranch project."""
        settings = ForensicsSettings(target_branch="main")
        assert settings.resolve_target_job("folder/project/feature-x") == "folder/project/main"

    def test_branch_without_parent(self):
        """Test a job name without project folder."""
        settings = ForensicsSettings(target_branch="main")
        assert settings.resolve_target_job("feature") == "main"

    def test_nothing_configured(self):
        """Test that no target job is returned without configuration."""
        assert ForensicsSettings().resolve_target_job("project/feature") is None


def test_repository_config():
    """Test the repository configuration."""
    config = RepositoryConfig(repo_path="/var/lib/ci/workspace")

    assert config.repo_path == Path("/var/lib/ci/workspace")
    assert config.repository_key is None
