"""
API Request/Response Models for the Workflow Diff Engine
"""
from typing import Any, Dict, List, Optional

from pydantic import Field

from flowpatch.core.constants import DiffErrorCode
from flowpatch.schemas.workflow import Workflow, WireModel


# ============================================================================
# DIAGNOSTICS
# ============================================================================

class Diagnostic(WireModel):
    """One error or warning, tied to an operation index (-1 = whole batch)"""
    operation: int = Field(..., description="Index of the operation in the batch")
    code: DiffErrorCode
    message: str
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_diagnostic(cls, diagnostic) -> "Diagnostic":
        """Build from an OperationDiagnostic"""
        return cls(
            operation=diagnostic.operation,
            code=diagnostic.code,
            message=diagnostic.message,
            details=diagnostic.details
        )


class StaleConnection(WireModel):
    """A (source, target) pair removed by cleanStaleConnections"""
    from_: str = Field(..., alias="from")
    to: str


# ============================================================================
# DIFF ENGINE MODELS
# ============================================================================

class DiffRequest(WireModel):
    """
    Ordered batch of edit operations

    Operations are kept raw here and parsed one by one by the engine, so a
    malformed operation is reported against its own index.
    """
    id: Optional[str] = Field(default=None, description="Workflow id the batch targets")
    operations: List[Any] = Field(default_factory=list)
    validate_only: bool = Field(default=False, description="Apply and validate without persisting")
    continue_on_error: bool = Field(default=False, description="Skip failing operations instead of aborting")


class DiffResult(WireModel):
    """Outcome of one batch"""
    success: bool
    workflow: Optional[Workflow] = Field(default=None, description="Present only on success")
    operations_applied: int = 0
    applied_indices: List[int] = Field(default_factory=list)
    failed_indices: List[int] = Field(default_factory=list)
    errors: List[Diagnostic] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
    message: str = ""
    stale_connections_removed: List[StaleConnection] = Field(default_factory=list)
    should_activate: bool = False
    should_deactivate: bool = False

    @property
    def failed_index(self) -> Optional[int]:
        """First failing operation index, if any"""
        return self.failed_indices[0] if self.failed_indices else None


# ============================================================================
# HTTP MODELS
# ============================================================================

class ActivationOutcome(WireModel):
    """Result of the post-commit activation step"""
    requested: str = Field(..., description="\"activate\" or \"deactivate\"")
    succeeded: bool
    error: Optional[str] = None


class ApplyDiffResponse(WireModel):
    """Response for POST /workflows/{workflow_id}/diff"""
    success: bool
    workflow_id: str
    workflow: Optional[Workflow] = None
    operations_applied: int = 0
    applied_indices: List[int] = Field(default_factory=list)
    failed_indices: List[int] = Field(default_factory=list)
    errors: List[Diagnostic] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
    message: str = ""
    stale_connections_removed: List[StaleConnection] = Field(default_factory=list)
    activation: Optional[ActivationOutcome] = None
    workflow_updated: bool = False


class ValidateWorkflowResponse(WireModel):
    """Response for POST /workflows/validate"""
    valid: bool
    errors: List[str] = Field(default_factory=list)
