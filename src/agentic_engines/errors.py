"""Exception types raised by workflow compilation."""

from __future__ import annotations


class WorkflowCompileError(Exception):
    """Base class for errors surfaced to the caller of the compiler."""


class UnknownEngineError(WorkflowCompileError, LookupError):
    """Raised when a catalog lookup names an engine that is not registered."""

    def __init__(self, message: str, engine_id: str = "") -> None:
        super().__init__(message)
        self.engine_id = engine_id


class WorkflowConfigError(WorkflowCompileError, ValueError):
    """Raised when workflow frontmatter cannot be parsed or validated."""
