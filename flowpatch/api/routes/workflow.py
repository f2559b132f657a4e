"""
Workflow Diff API Routes
Apply edit batches to stored workflows and validate workflow bodies
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from flowpatch.core.constants import DiffErrorCode
from flowpatch.core.logging import get_logger
from flowpatch.schemas.api_models import ApplyDiffResponse, DiffRequest, ValidateWorkflowResponse
from flowpatch.schemas.workflow import Workflow
from flowpatch.services.workflow_diff_service import WorkflowDiffService, get_workflow_diff_service
from flowpatch.storage.base import WorkflowNotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


def response_status(response: ApplyDiffResponse) -> int:
    """
    HTTP status for a diff response

    200 on success, 502 when the store failed or only activation failed
    (the edits are saved), 422 when the batch or validation rejected it.
    """
    if response.success:
        return status.HTTP_200_OK
    if response.workflow_updated:
        return status.HTTP_502_BAD_GATEWAY
    if any(error.code == DiffErrorCode.STORE_ERROR for error in response.errors):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_422_UNPROCESSABLE_ENTITY


@router.post("/validate", response_model=ValidateWorkflowResponse)
async def validate_workflow(
    workflow: Workflow,
    service: WorkflowDiffService = Depends(get_workflow_diff_service)
) -> ValidateWorkflowResponse:
    """
    Run the structural validator on a workflow body

    Always 200; `valid` and `errors` carry the verdict.
    """
    try:
        return service.validate_workflow(workflow)
    except Exception as e:
        logger.error(f"Workflow validation failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Validation failed: {str(e)}"
        )


@router.post("/{workflow_id}/diff", response_model=ApplyDiffResponse)
async def apply_workflow_diff(
    workflow_id: str,
    request: DiffRequest,
    service: WorkflowDiffService = Depends(get_workflow_diff_service)
):
    """
    Apply an ordered batch of edit operations to a stored workflow

    Operations apply all-or-nothing unless continueOnError is set.
    validateOnly applies and validates without saving.
    """
    try:
        response = await service.apply_diff(workflow_id, request)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Diff failed for workflow {workflow_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Diff failed: {str(e)}"
        )

    return JSONResponse(
        status_code=response_status(response),
        content=response.model_dump(by_alias=True, exclude_none=True, mode="json")
    )
