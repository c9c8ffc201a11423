"""Reference build discovery."""

from gitforensics.reference.resolver import ReferenceResolver

__all__ = ["ReferenceResolver"]
