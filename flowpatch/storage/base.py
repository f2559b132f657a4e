"""
Workflow Store Interface
Protocol every store backend implements, plus store error types
"""
from typing import Protocol, runtime_checkable

from flowpatch.schemas.workflow import Workflow


class WorkflowStoreError(Exception):
    """Store failed to fetch, persist or toggle a workflow"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class WorkflowNotFoundError(WorkflowStoreError):
    """No workflow with the requested id"""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}", status_code=404)
        self.workflow_id = workflow_id


class ActivationError(WorkflowStoreError):
    """Activation or deactivation was refused"""


@runtime_checkable
class WorkflowStore(Protocol):
    """
    Canonical holder of workflows

    The diff engine never talks to a store; the service fetches before a
    batch, persists after it, and toggles run state as a separate step.
    """

    async def fetch(self, workflow_id: str) -> Workflow:
        ...

    async def persist(self, workflow_id: str, workflow: Workflow) -> Workflow:
        ...

    async def activate(self, workflow_id: str) -> Workflow:
        ...

    async def deactivate(self, workflow_id: str) -> Workflow:
        ...
