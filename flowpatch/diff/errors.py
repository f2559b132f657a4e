"""
Diff Error Types
Structured failures raised by the patch applier and diagnostics reported by the engine
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from flowpatch.core.constants import BATCH_LEVEL_INDEX, DiffErrorCode


# ============================================================================
# STRUCTURED DIAGNOSTIC
# ============================================================================

@dataclass
class OperationDiagnostic:
    """
    One error or warning tied to an operation index

    Unlike DiffOperationError, this is a data structure that can be collected
    and reported. `operation` is BATCH_LEVEL_INDEX for batch-wide findings.
    """
    operation: int
    code: DiffErrorCode
    message: str
    details: Optional[Dict[str, Any]] = None


# ============================================================================
# EXCEPTION TYPES
# ============================================================================

class DiffOperationError(Exception):
    """
    Base exception for an operation that cannot be applied

    Raised inside the applier, converted into an OperationDiagnostic by the
    engine. Never escapes WorkflowDiffEngine.apply_diff.
    """
    code: DiffErrorCode = DiffErrorCode.INVALID_OPERATION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_diagnostic(self, index: int) -> OperationDiagnostic:
        return OperationDiagnostic(
            operation=index,
            code=self.code,
            message=self.message,
            details=self.details
        )


class NodeNotFoundError(DiffOperationError):
    """A node reference matched neither an id nor a name"""
    code = DiffErrorCode.NODE_NOT_FOUND


class DuplicateIdentifierError(DiffOperationError):
    """An add or rename would collide with an existing id or name"""
    code = DiffErrorCode.DUPLICATE_IDENTIFIER


class InvalidOperationError(DiffOperationError):
    """Malformed payload or an operation that does not apply to the current graph"""
    code = DiffErrorCode.INVALID_OPERATION


# ============================================================================
# DIAGNOSTIC BUILDERS (convenience functions)
# ============================================================================

def operation_warning(
    index: int,
    message: str,
    code: DiffErrorCode = DiffErrorCode.INVALID_OPERATION
) -> OperationDiagnostic:
    """Build a non-blocking warning for one operation"""
    return OperationDiagnostic(operation=index, code=code, message=message)


def structural_findings(findings: Iterable[str]) -> List[OperationDiagnostic]:
    """Wrap structural validator findings as batch-level diagnostics"""
    return [
        OperationDiagnostic(
            operation=BATCH_LEVEL_INDEX,
            code=DiffErrorCode.STRUCTURAL_VIOLATION,
            message=finding
        )
        for finding in findings
    ]


def engine_failure(exc: Exception) -> OperationDiagnostic:
    """Build the diagnostic for an unexpected engine exception"""
    return OperationDiagnostic(
        operation=BATCH_LEVEL_INDEX,
        code=DiffErrorCode.INVALID_OPERATION,
        message=f"Diff engine error: {exc}"
    )
