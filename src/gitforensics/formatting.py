"""Rendering of commit ids for logs and reports."""

from enum import Enum
from html import escape
from typing import Optional

SHORT_LENGTH = 7


class CommitFormat(str, Enum):
    """Target format for a rendered commit id."""

    TEXT = "text"
    FULL = "full"
    LINK = "link"


def render_commit(
    commit_id: Optional[str],
    fmt: CommitFormat = CommitFormat.TEXT,
    browser_url: Optional[str] = None,
) -> str:
    """Render a commit id in the given format.

    Args:
        commit_id: Full commit id (empty or None renders as an empty string)
        fmt: Target format
        browser_url: URL template with a ``{commit}`` placeholder, used for LINK

    Returns:
        The rendered commit. LINK falls back to TEXT if no template is given.
    """
    if not commit_id:
        return ""
    short = commit_id[:SHORT_LENGTH]
    if fmt is CommitFormat.FULL:
        return commit_id
    if fmt is CommitFormat.LINK and browser_url:
        href = browser_url.format(commit=commit_id)
        return f'<a href="{escape(href, quote=True)}">{short}</a>'
    return short
