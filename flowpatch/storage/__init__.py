"""
Workflow Stores
Filesystem and remote backends behind one async protocol
"""
from flowpatch.storage.base import (
    ActivationError,
    WorkflowNotFoundError,
    WorkflowStore,
    WorkflowStoreError,
)
from flowpatch.storage.filesystem import FilesystemWorkflowStore
from flowpatch.storage.remote import RemoteWorkflowStore

__all__ = [
    "ActivationError",
    "WorkflowNotFoundError",
    "WorkflowStore",
    "WorkflowStoreError",
    "FilesystemWorkflowStore",
    "RemoteWorkflowStore",
]
