"""Tests for the build steps of the forensics manager."""

from pathlib import Path

import pytest

from gitforensics.cancellation import CancellationToken
from gitforensics.errors import CancellationError
from gitforensics.incremental import BuildStore, ForensicsManager
from gitforensics.models import (
    ForensicsSettings,
    RecordingType,
    RepositoryConfig,
    SearchOutcome,
)

from conftest import lines

KEY = "git https://github.com/example/project.git"


@pytest.fixture
def store(store_dir):
    return BuildStore(store_dir)


def _config(builder) -> RepositoryConfig:
    return RepositoryConfig(repo_path=builder.path, repository_key=KEY)


class TestRecordCommits:
    """Test the recording step."""

    def test_first_and_second_build(self, linear_history, store):
        """Test that consecutive builds record disjoint commits."""
        builder, commits = linear_history
        manager = ForensicsManager(store, ForensicsSettings())

        first = manager.record_commits("main", 1, _config(builder))
        assert first.success
        assert first.value.recording_type == RecordingType.START
        store.complete_build("main", 1)

        builder.commit({"new.txt": "new\n"})
        second = manager.record_commits("main", 2, _config(builder))

        assert second.value.recording_type == RecordingType.INCREMENTAL
        assert second.value.size == 1
        assert second.value.previous_commit == commits[-1]
        assert any("previous build 'main#1'" in m for m in second.info_messages)

    def test_record_is_capped(self, linear_history, store):
        """Test that records are limited by max_commits."""
        builder, _ = linear_history
        manager = ForensicsManager(store, ForensicsSettings(max_commits=2))

        result = manager.record_commits("main", 1, _config(builder))

        assert result.value.size == 2

    def test_already_processed(self, linear_history, store):
        """Test that a repository is only recorded once per build."""
        builder, _ = linear_history
        manager = ForensicsManager(store, ForensicsSettings())
        manager.record_commits("main", 1, _config(builder))

        result = manager.record_commits("main", 1, _config(builder))

        assert result.skipped
        assert any("already has been processed" in m for m in result.info_messages)

    def test_default_repository_key(self, linear_history, store):
        """Test that the key defaults to the work tree path."""
        builder, _ = linear_history
        manager = ForensicsManager(store, ForensicsSettings())

        result = manager.record_commits("main", 1, RepositoryConfig(repo_path=builder.path))

        assert result.value.repository_key == f"git {builder.repo.working_tree_dir}"

    def test_shallow_clone_is_skipped(self, linear_history, store):
        """Test that shallow clones are not analyzed."""
        builder, _ = linear_history
        (Path(builder.repo.git_dir) / "shallow").write_text("0" * 40 + "\n")
        manager = ForensicsManager(store, ForensicsSettings())

        result = manager.record_commits("main", 1, _config(builder))

        assert result.skipped
        assert result.value is None
        assert any("shallow clone" in m for m in result.info_messages)

    def test_invalid_repository_is_skipped(self, store, tmp_path):
        """Test that directories without Git are not analyzed."""
        manager = ForensicsManager(store, ForensicsSettings())

        result = manager.record_commits("main", 1, RepositoryConfig(repo_path=tmp_path))

        assert result.skipped
        assert result.success

    def test_empty_repository_fails(self, repo_builder, store):
        """Test that a repository without HEAD is reported as failure."""
        manager = ForensicsManager(store, ForensicsSettings())

        result = manager.record_commits("main", 1, _config(repo_builder))

        assert not result.success
        assert result.error_messages[0] == "Errors while recording commits"


class TestMineStatistics:
    """Test the mining step."""

    def test_mining_uses_previous_snapshot(self, linear_history, store):
        """Test that mining continues from the previous build."""
        builder, commits = linear_history
        manager = ForensicsManager(store, ForensicsSettings())
        manager.record_commits("main", 1, _config(builder))
        first = manager.mine_statistics("main", 1, _config(builder))
        store.complete_build("main", 1)

        builder.commit({"src/app.py": "x\n"})
        manager.record_commits("main", 2, _config(builder))
        second = manager.mine_statistics("main", 2, _config(builder))

        assert first.value.latest_commit == commits[-1]
        assert second.success
        assert second.value.get("src/app.py").loc == 1
        assert second.value.get("src/app.py").churn == 5
        assert store.get_build("main", 2).statistics[KEY] == second.value

    def test_mining_follows_recorded_head(self, repo_builder, store):
        """Test that a local merge is mined at its first parent."""
        b = repo_builder
        base = b.commit({"a.txt": "a\n"})
        target = b.commit({"b.txt": "b\n"})
        b.checkout("feature", base)
        feature = b.commit({"c.txt": "c\n"})
        b.commit({"b.txt": "b\n"}, parents=[feature, target])
        manager = ForensicsManager(store, ForensicsSettings())

        manager.record_commits("feature", 1, _config(b))
        result = manager.mine_statistics("feature", 1, _config(b))

        assert result.value.latest_commit == feature
        assert "b.txt" not in result.value


class TestFindReference:
    """Test the reference discovery step."""

    def _build_main(self, manager, store, builder, number):
        manager.record_commits("project/main", number, _config(builder))
        store.complete_build("project/main", number)

    def test_target_branch(self, repo_builder, store):
        """Test finding the build of the target branch a feature was forked from."""
        b = repo_builder
        settings = ForensicsSettings(target_branch="main")
        manager = ForensicsManager(store, settings)

        base = b.commit({"a.txt": "a\n"})
        self._build_main(manager, store, b, 1)
        b.commit({"b.txt": "b\n"})
        self._build_main(manager, store, b, 2)

        b.checkout("feature", base)
        b.commit({"c.txt": "c\n"})
        manager.record_commits("project/feature", 1, _config(b))
        result = manager.find_reference("project/feature", 1)

        assert result.value.build_id == "project/main#1"
        assert result.value.outcome is SearchOutcome.MATCH
        assert result.value.matching_commit == base
        assert store.get_build("project/feature", 1).references[KEY] == result.value

    def test_no_target_configured(self, store):
        """Test that the step is skipped without a target job."""
        manager = ForensicsManager(store, ForensicsSettings())

        result = manager.find_reference("project/feature", 1)

        assert result.skipped
        assert not result.value.found

    def test_current_build_without_record(self, store):
        """Test a build that has not recorded any commits."""
        manager = ForensicsManager(store, ForensicsSettings(target_job="project/main"))
        store.create_build("project/feature", 1)

        result = manager.find_reference("project/feature", 1)

        assert not result.value.found
        assert any("found no commit record" in m for m in result.info_messages)


class TestDiffStatistics:
    """Test the diff statistics step."""

    def test_against_previous_build(self, linear_history, store):
        """Test the statistics of the commits since the previous completed build."""
        builder, _ = linear_history
        manager = ForensicsManager(store, ForensicsSettings())
        manager.record_commits("main", 1, _config(builder))
        store.complete_build("main", 1)

        builder.commit({"x.txt": lines(3)})
        manager.record_commits("main", 2, _config(builder))
        result = manager.diff_statistics("main", 2, _config(builder))

        assert result.value.commit_count == 1
        assert result.value.added_lines == 3
        assert store.get_build("main", 2).commit_statistics[KEY] == result.value

    def test_without_previous_build(self, linear_history, store):
        """Test that the first build has no baseline."""
        builder, _ = linear_history
        manager = ForensicsManager(store, ForensicsSettings())
        manager.record_commits("main", 1, _config(builder))

        result = manager.diff_statistics("main", 1, _config(builder))

        assert result.skipped
        assert result.value is None


class TestRunBuild:
    """Test running all steps of a build."""

    def test_run_build(self, linear_history, store):
        """Test a complete build."""
        builder, commits = linear_history
        manager = ForensicsManager(store, ForensicsSettings())

        results = manager.run_build("main", _config(builder), diffstat=True)

        assert [r.name for r in results] == ["record", "mine", "reference", "diffstat"]
        build = store.get_build("main", 1)
        assert build.completed
        assert build.records[KEY].size == len(commits)
        assert len(build.statistics[KEY]) == 4

    def test_run_build_cancelled(self, linear_history, store):
        """Test that a cancelled build propagates the cancellation."""
        builder, _ = linear_history
        manager = ForensicsManager(store, ForensicsSettings())
        token = CancellationToken()
        token.cancel()

        with pytest.raises(CancellationError):
            manager.run_build("main", _config(builder), cancellation=token)
        assert not store.get_build("main", 1).completed