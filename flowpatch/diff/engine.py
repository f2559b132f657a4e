"""
Workflow Diff Engine
Applies an ordered batch of edit operations to a workflow as one transaction

The input workflow is cloned once per batch and the clone is mutated; on
failure the clone is discarded, so callers get either a fully applied
workflow or none at all. No I/O happens here.
"""
from typing import Any, Callable, Dict, List, Optional, Union

from flowpatch.core.config import get_settings
from flowpatch.core.logging import get_logger
from flowpatch.diff.applier import PatchApplier
from flowpatch.diff.errors import (
    DiffOperationError,
    OperationDiagnostic,
    engine_failure,
    structural_findings,
)
from flowpatch.schemas.api_models import Diagnostic, DiffRequest, DiffResult
from flowpatch.schemas.workflow import Workflow
from flowpatch.validator.structural import validate_workflow_structure

logger = get_logger(__name__)

StructuralValidator = Callable[[Workflow], List[str]]


class WorkflowDiffEngine:
    """
    Batch transaction over the patch applier

    Modes:
    - default (strict): stop at the first failing operation; after a clean
      batch, structural findings the batch introduced fail it (findings the
      input already had are returned as warnings)
    - validate_only: same algorithm, findings reported as warnings and the
      caller is told not to persist
    - continue_on_error: skip failing operations, keep the rest
    """

    def __init__(
        self,
        validator: Optional[StructuralValidator] = None,
        skip_validation: Optional[bool] = None
    ):
        """
        Args:
            validator: Structural validator (defaults to validate_workflow_structure)
            skip_validation: Downgrade strict-mode findings to warnings
                (defaults to SKIP_WORKFLOW_VALIDATION)
        """
        self.validator = validator or validate_workflow_structure
        if skip_validation is None:
            skip_validation = get_settings().SKIP_WORKFLOW_VALIDATION
        self.skip_validation = skip_validation

    def apply_diff(
        self,
        workflow: Workflow,
        request: Union[DiffRequest, Dict[str, Any]]
    ) -> DiffResult:
        """
        Apply a batch of operations to a copy of `workflow`

        Never raises for operation failures; they are reported in the result.

        Args:
            workflow: Workflow as fetched from the store (not mutated)
            request: Operations plus mode flags

        Returns:
            DiffResult with the new workflow only when the batch succeeded
        """
        try:
            if not isinstance(request, DiffRequest):
                request = DiffRequest.model_validate(request)
            return self._apply(workflow, request)
        except Exception as e:
            logger.error(f"Diff engine error: {e}", exc_info=True)
            return DiffResult(
                success=False,
                errors=[Diagnostic.from_diagnostic(engine_failure(e))],
                message=f"Diff engine error: {e}"
            )

    def _apply(self, workflow: Workflow, request: DiffRequest) -> DiffResult:
        total = len(request.operations)
        logger.info(
            f"Applying {total} operation(s) to workflow {workflow.id or workflow.name!r}"
            f"{' (validate only)' if request.validate_only else ''}"
        )

        applier = PatchApplier(workflow.clone())
        applied: List[int] = []
        failed: List[int] = []
        errors: List[OperationDiagnostic] = []

        for index, operation in enumerate(request.operations):
            try:
                applier.apply(index, operation)
            except DiffOperationError as e:
                logger.info(f"Operation {index} failed: [{e.code.value}] {e.message}")
                failed.append(index)
                errors.append(e.to_diagnostic(index))
                if request.continue_on_error:
                    continue
                break
            applied.append(index)

        warnings = list(applier.warnings)

        if failed and not request.continue_on_error:
            return self._result(
                success=False,
                applied=applied,
                failed=failed,
                errors=errors,
                warnings=warnings,
                message=f"Failed at operation {failed[0]}: {errors[0].message}"
            )

        if failed and not applied:
            return self._result(
                success=False,
                applied=applied,
                failed=failed,
                errors=errors,
                warnings=warnings,
                message=f"All {len(failed)} operation(s) failed (continueOnError mode)"
            )

        findings = self.validator(applier.workflow)

        if request.validate_only:
            warnings.extend(structural_findings(findings))
            message = "Validation successful. Operations are valid but not applied."
            if failed:
                message = (
                    f"Validation finished: {len(applied)} operation(s) valid, "
                    f"{len(failed)} invalid. Nothing was applied."
                )
            return self._result(
                success=True,
                applied=applied,
                failed=failed,
                errors=errors,
                warnings=warnings,
                message=message,
                applier=applier
            )

        if findings:
            # Issues the input already had are reported but never block the batch
            existing = set(self.validator(workflow))
            introduced = [finding for finding in findings if finding not in existing]
            inherited = [finding for finding in findings if finding in existing]

            if introduced and not self.skip_validation:
                logger.info(f"Batch rejected: {len(introduced)} structural issue(s)")
                return self._result(
                    success=False,
                    applied=applied,
                    failed=failed,
                    errors=errors + structural_findings(introduced),
                    warnings=warnings + structural_findings(inherited),
                    message=f"Workflow validation failed with {len(introduced)} structural issue(s)"
                )
            if introduced:
                logger.warning(
                    f"Ignoring {len(introduced)} structural issue(s) (SKIP_WORKFLOW_VALIDATION)"
                )
            if inherited:
                logger.info(f"Workflow already had {len(inherited)} structural issue(s)")
            warnings.extend(structural_findings(findings))

        if failed:
            message = (
                f"Applied {len(applied)} operation(s), {len(failed)} failed "
                f"(continueOnError mode)"
            )
        else:
            message = f"Successfully applied {len(applied)} operation(s)"

        logger.info(message)
        return self._result(
            success=True,
            applied=applied,
            failed=failed,
            errors=errors,
            warnings=warnings,
            message=message,
            applier=applier
        )

    @staticmethod
    def _result(
        success: bool,
        applied: List[int],
        failed: List[int],
        errors: List[OperationDiagnostic],
        warnings: List[OperationDiagnostic],
        message: str,
        applier: Optional[PatchApplier] = None
    ) -> DiffResult:
        """Assemble a DiffResult; the working copy is only attached on success"""
        committed: Dict[str, Any] = {}
        if success and applier is not None:
            committed = {
                "workflow": applier.workflow,
                "should_activate": applier.should_activate,
                "should_deactivate": applier.should_deactivate,
                "stale_connections_removed": applier.stale_connections_removed,
            }

        return DiffResult(
            success=success,
            operations_applied=len(applied),
            applied_indices=applied,
            failed_indices=failed,
            errors=[Diagnostic.from_diagnostic(item) for item in errors],
            warnings=[Diagnostic.from_diagnostic(item) for item in warnings],
            message=message,
            **committed
        )
