"""Git repository traversal and diff extraction."""

from gitforensics.extraction.diffs import DiffCollector
from gitforensics.extraction.walker import CommitGraphWalker, open_repository

__all__ = ["CommitGraphWalker", "DiffCollector", "open_repository"]
