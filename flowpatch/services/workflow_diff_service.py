"""
Workflow Diff Service
Orchestrates fetch -> apply -> validate -> persist -> activate for one workflow

The engine is pure; every I/O step lives here. Concurrent edits to the same
workflow id must be serialized by the caller: this is a read-modify-write
against the store with no versioning of its own.
"""
from typing import Any, Dict, List, Optional, Union

from flowpatch.core.config import get_settings
from flowpatch.core.constants import BATCH_LEVEL_INDEX, DiffErrorCode
from flowpatch.core.logging import get_logger
from flowpatch.diff.engine import WorkflowDiffEngine
from flowpatch.schemas.api_models import (
    ApplyDiffResponse,
    Diagnostic,
    DiffRequest,
    DiffResult,
    ValidateWorkflowResponse,
)
from flowpatch.schemas.workflow import Workflow
from flowpatch.services.activation import ActivationController
from flowpatch.storage.base import WorkflowNotFoundError, WorkflowStore, WorkflowStoreError
from flowpatch.storage.filesystem import FilesystemWorkflowStore
from flowpatch.storage.remote import RemoteWorkflowStore
from flowpatch.validator.structural import validate_workflow_structure

logger = get_logger(__name__)


def create_workflow_store() -> WorkflowStore:
    """Build the store selected by STORE_BACKEND"""
    settings = get_settings()
    if settings.STORE_BACKEND == "remote":
        return RemoteWorkflowStore()
    return FilesystemWorkflowStore()


class WorkflowDiffService:
    """
    Service layer for applying diffs to stored workflows

    Store failures become STORE_ERROR diagnostics, except an unknown
    workflow id, which propagates as WorkflowNotFoundError.
    """

    def __init__(
        self,
        store: Optional[WorkflowStore] = None,
        engine: Optional[WorkflowDiffEngine] = None
    ):
        self.store = store or create_workflow_store()
        self.engine = engine or WorkflowDiffEngine()
        self.activation = ActivationController(self.store)
        logger.info(f"WorkflowDiffService initialized ({type(self.store).__name__})")

    async def apply_diff(
        self,
        workflow_id: str,
        request: Union[DiffRequest, Dict[str, Any]]
    ) -> ApplyDiffResponse:
        """
        Apply a batch of operations to a stored workflow

        Args:
            workflow_id: Id of the workflow in the store
            request: Operations plus validateOnly/continueOnError flags

        Returns:
            ApplyDiffResponse (success=False for batch, store or activation failures)

        Raises:
            WorkflowNotFoundError: No workflow with that id
        """
        if not isinstance(request, DiffRequest):
            request = DiffRequest.model_validate(request)

        logger.info(
            f"Applying diff to workflow {workflow_id}: {len(request.operations)} operation(s)"
        )

        try:
            workflow = await self.store.fetch(workflow_id)
        except WorkflowNotFoundError:
            raise
        except WorkflowStoreError as e:
            logger.error(f"Failed to fetch workflow {workflow_id}: {e.message}")
            return self._store_failure(workflow_id, f"Failed to fetch workflow: {e.message}")

        result = self.engine.apply_diff(workflow, request)

        if not result.success:
            logger.info(f"Diff rejected for workflow {workflow_id}: {result.message}")
            return self._response(workflow_id, result, workflow=None)

        if request.validate_only:
            return self._response(workflow_id, result, workflow=result.workflow)

        try:
            persisted = await self.store.persist(workflow_id, result.workflow)
        except WorkflowNotFoundError:
            raise
        except WorkflowStoreError as e:
            logger.error(f"Failed to persist workflow {workflow_id}: {e.message}")
            return self._store_failure(
                workflow_id,
                f"Failed to update workflow: {e.message}",
                result=result
            )

        outcome, toggled = await self.activation.apply_intent(
            workflow_id,
            should_activate=result.should_activate,
            should_deactivate=result.should_deactivate
        )

        if outcome is not None and not outcome.succeeded:
            error = Diagnostic(
                operation=BATCH_LEVEL_INDEX,
                code=DiffErrorCode.ACTIVATION_FAILED,
                message=f"Workflow updated successfully but {outcome.requested} failed: {outcome.error}"
            )
            return self._response(
                workflow_id,
                result,
                workflow=persisted,
                success=False,
                errors=[error],
                message=f"Workflow updated successfully but {outcome.requested} failed",
                activation=outcome,
                workflow_updated=True
            )

        message = result.message
        if outcome is not None:
            message = f"{message}; workflow {outcome.requested}d"

        return self._response(
            workflow_id,
            result,
            workflow=toggled or persisted,
            message=message,
            activation=outcome,
            workflow_updated=True
        )

    def validate_workflow(self, workflow: Workflow) -> ValidateWorkflowResponse:
        """Run the structural validator on a workflow body"""
        errors = validate_workflow_structure(workflow)
        return ValidateWorkflowResponse(valid=not errors, errors=errors)

    # ------------------------------------------------------------------------
    # Response assembly
    # ------------------------------------------------------------------------

    @staticmethod
    def _response(
        workflow_id: str,
        result: DiffResult,
        workflow: Optional[Workflow],
        success: Optional[bool] = None,
        errors: Optional[List[Diagnostic]] = None,
        message: Optional[str] = None,
        **extra
    ) -> ApplyDiffResponse:
        return ApplyDiffResponse(
            success=result.success if success is None else success,
            workflow_id=workflow_id,
            workflow=workflow,
            operations_applied=result.operations_applied,
            applied_indices=result.applied_indices,
            failed_indices=result.failed_indices,
            errors=result.errors + (errors or []),
            warnings=result.warnings,
            message=message or result.message,
            stale_connections_removed=result.stale_connections_removed,
            **extra
        )

    def _store_failure(
        self,
        workflow_id: str,
        message: str,
        result: Optional[DiffResult] = None
    ) -> ApplyDiffResponse:
        error = Diagnostic(
            operation=BATCH_LEVEL_INDEX,
            code=DiffErrorCode.STORE_ERROR,
            message=message
        )
        if result is None:
            return ApplyDiffResponse(
                success=False,
                workflow_id=workflow_id,
                errors=[error],
                message=message
            )
        return self._response(workflow_id, result, workflow=None, success=False, errors=[error], message=message)


_workflow_diff_service: Optional[WorkflowDiffService] = None


def get_workflow_diff_service() -> WorkflowDiffService:
    """
    Get singleton workflow diff service instance

    Returns:
        WorkflowDiffService instance
    """
    global _workflow_diff_service

    if _workflow_diff_service is None:
        _workflow_diff_service = WorkflowDiffService()

    return _workflow_diff_service
