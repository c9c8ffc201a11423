"""Unit tests for logging helpers, commit rendering and cancellation."""

import pytest

from gitforensics.cancellation import CancellationToken
from gitforensics.errors import CancellationError, RepositoryAccessError
from gitforensics.formatting import CommitFormat, render_commit
from gitforensics.logs import FilteredLog, configure_logging

COMMIT = "9fceb02d0ae598e95dc970b74767f19372d61af8"


class TestFilteredLog:
    """Test the bounded step log."""

    def test_info_messages(self):
        """Test that info messages are formatted and kept."""
        log = FilteredLog("Errors")
        log.log_info("Found %d commits in '%s'", 3, "repo")
        log.log_info("plain message with 100%")

        assert log.info_messages == ["Found 3 commits in 'repo'", "plain message with 100%"]
        assert len(log) == 0
        assert log.error_messages == []

    def test_title_before_first_error(self):
        """Test that the title is written once before the errors."""
        log = FilteredLog("Errors while mining")
        log.log_error("first")
        log.log_error("second %s", "error")

        assert log.error_messages == ["Errors while mining", "first", "second error"]
        assert len(log) == 2

    def test_error_lines_are_limited(self):
        """Test that only max_lines errors are kept and the rest is summarized."""
        log = FilteredLog("Errors", max_lines=3)
        for i in range(10):
            log.log_error("error %d", i)
        log.log_summary()

        assert log.error_messages == [
            "Errors",
            "error 0",
            "error 1",
            "error 2",
            "  ... skipped logging of 7 additional errors ...",
        ]
        assert len(log) == 10

    def test_summary_without_overflow(self):
        """Test that the summary adds nothing below the limit."""
        log = FilteredLog("Errors", max_lines=3)
        log.log_error("error")
        log.log_summary()

        assert log.error_messages == ["Errors", "error"]

    def test_log_exception(self):
        """Test that exceptions are logged with their details."""
        log = FilteredLog("Errors")
        log.log_exception(RepositoryAccessError("Commit not found: abc"), "Unable to read '%s'", "repo")

        assert len(log.error_messages) == 2
        assert log.error_messages[0] == "Errors"
        assert log.error_messages[1].startswith("Unable to read 'repo': ")
        assert "RepositoryAccessError: Commit not found: abc" in log.error_messages[1]

    def test_exceptions_respect_line_limit(self):
        """Test that exception details never exceed max_lines."""
        log = FilteredLog("Errors", max_lines=2)
        for i in range(5):
            log.log_exception(ValueError(f"bad value {i}"), "Failed step %d", i)
        log.log_summary()

        assert log.error_messages == [
            "Errors",
            "Failed step 0: ValueError: bad value 0",
            "Failed step 1: ValueError: bad value 1",
            "  ... skipped logging of 3 additional errors ...",
        ]

    def test_configure_logging(self):
        """Test configuring structlog with known and unknown levels."""
        configure_logging("debug")
        configure_logging("no-such-level")
        FilteredLog("Errors").log_info("still works")


class TestRenderCommit:
    """Test rendering of commit ids."""

    def test_text(self):
        """Test the default short rendering."""
        assert render_commit(COMMIT) == "9fceb02"

    def test_full(self):
        """Test rendering the full id."""
        assert render_commit(COMMIT, CommitFormat.FULL) == COMMIT

    def test_link(self):
        """Test rendering a link to a repository browser."""
        rendered = render_commit(COMMIT, CommitFormat.LINK, "https://github.com/example/project/commit/{commit}")

        assert rendered == f'<a href="https://github.com/example/project/commit/{COMMIT}">9fceb02</a>'

    def test_link_without_browser(self):
        """Test that links fall back to text without a URL template."""
        assert render_commit(COMMIT, CommitFormat.LINK) == "9fceb02"

    @pytest.mark.parametrize("value", ["", None])
    def test_empty(self, value):
        """Test that missing commits render as empty string."""
        assert render_commit(value, CommitFormat.FULL) == ""


class TestCancellationToken:
    """Test cooperative cancellation."""

    def test_not_cancelled(self):
        """Test a fresh token."""
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        """Test explicit cancellation."""
        token = CancellationToken()
        token.cancel()

        assert token.cancelled
        with pytest.raises(CancellationError, match="cancelled"):
            token.raise_if_cancelled()

    def test_timeout(self, monkeypatch):
        """Test cancellation by an elapsed timeout."""
        token = CancellationToken(timeout=5)
        now = token._deadline

        monkeypatch.setattr("gitforensics.cancellation.time.monotonic", lambda: now + 1)

        assert token.cancelled
        with pytest.raises(CancellationError, match="timed out"):
            token.raise_if_cancelled()
