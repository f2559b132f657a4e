"""
Activation Controller
Flips a persisted workflow's run state after a committed batch
"""
from typing import Optional, Tuple

from flowpatch.core.logging import get_logger
from flowpatch.schemas.api_models import ActivationOutcome
from flowpatch.schemas.workflow import Workflow
from flowpatch.storage.base import WorkflowStore, WorkflowStoreError

logger = get_logger(__name__)


class ActivationController:
    """
    Second, independent step after persistence

    Never rolled back into the batch: a refused activation is reported as
    its own outcome while the saved edits stay saved.
    """

    def __init__(self, store: WorkflowStore):
        self.store = store

    async def apply_intent(
        self,
        workflow_id: str,
        should_activate: bool = False,
        should_deactivate: bool = False
    ) -> Tuple[Optional[ActivationOutcome], Optional[Workflow]]:
        """
        Activate or deactivate a workflow if the batch asked for it

        Returns:
            (outcome, workflow): both None when nothing was requested;
            workflow is None when the call failed
        """
        if not should_activate and not should_deactivate:
            return None, None

        action = "activate" if should_activate else "deactivate"
        try:
            if should_activate:
                workflow = await self.store.activate(workflow_id)
            else:
                workflow = await self.store.deactivate(workflow_id)
        except WorkflowStoreError as e:
            logger.warning(f"Failed to {action} workflow {workflow_id}: {e.message}")
            return ActivationOutcome(requested=action, succeeded=False, error=e.message), None

        logger.info(f"Workflow {workflow_id} {action}d")
        return ActivationOutcome(requested=action, succeeded=True), workflow
