"""Workflow run driver."""

from .run_driver import WorkflowRunDriver

__all__ = ["WorkflowRunDriver"]
