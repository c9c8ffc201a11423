"""Exceptions raised by the forensics components."""


class ForensicsError(Exception):
    """Base exception for all forensics errors."""


class RepositoryAccessError(ForensicsError):
    """A ref or object cannot be resolved in the repository."""


class NoHeadCommitError(RepositoryAccessError):
    """The repository has no resolvable HEAD commit."""


class CancellationError(ForensicsError):
    """The operation has been interrupted by the build (cancel or timeout)."""
