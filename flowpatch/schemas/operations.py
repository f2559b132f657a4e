"""
Workflow Edit Operations
Closed, tagged family of structural edits, discriminated on `type`
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, ConfigDict, Field, TypeAdapter, model_validator

from flowpatch.core.constants import DEFAULT_CONNECTION_KIND, MAX_CONNECTION_INDEX
from flowpatch.schemas.workflow import Endpoint, Number, WireModel


class OperationBase(WireModel):
    """Fields shared by every operation"""
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = None


class NodeReference(OperationBase):
    """Operation addressing one node by stable id and/or display name"""
    node_id: Optional[str] = None
    node_name: Optional[str] = None

    @model_validator(mode="after")
    def check_reference(self):
        if not self.node_id and not self.node_name:
            raise ValueError("requires 'nodeId' or 'nodeName'")
        return self

    @property
    def reference(self) -> str:
        return self.node_id or self.node_name or ""


class BranchSelector(OperationBase):
    """
    Source port selection shared by connection operations

    `branch` ("true"/"false") and `case` (n) are readable shorthands for the
    output index of IF and Switch nodes; an explicit `sourceIndex` wins.
    """
    source: str = Field(..., min_length=1)
    source_kind: str = Field(
        default=DEFAULT_CONNECTION_KIND,
        min_length=1,
        validation_alias=AliasChoices("sourceKind", "sourceOutput", "source_kind")
    )
    source_index: Optional[int] = Field(default=None, ge=0, le=MAX_CONNECTION_INDEX)
    branch: Optional[Literal["true", "false"]] = None
    case: Optional[int] = Field(default=None, ge=0, le=MAX_CONNECTION_INDEX)

    def resolved_source_index(self) -> int:
        if self.source_index is not None:
            return self.source_index
        if self.branch is not None:
            return 0 if self.branch == "true" else 1
        if self.case is not None:
            return self.case
        return 0


# ============================================================================
# NODE OPERATIONS
# ============================================================================

class NewNode(WireModel):
    """Node payload for addNode; `id` is generated when omitted"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    type_version: Number = 1
    position: Tuple[Number, Number]
    parameters: Dict[str, Any] = Field(default_factory=dict)


class AddNodeOperation(OperationBase):
    type: Literal["addNode"] = "addNode"
    node: NewNode


class RemoveNodeOperation(NodeReference):
    type: Literal["removeNode"] = "removeNode"


class UpdateNodeOperation(NodeReference):
    type: Literal["updateNode"] = "updateNode"
    updates: Dict[str, Any] = Field(..., min_length=1)


class MoveNodeOperation(NodeReference):
    type: Literal["moveNode"] = "moveNode"
    position: Tuple[Number, Number]


class EnableNodeOperation(NodeReference):
    type: Literal["enableNode"] = "enableNode"


class DisableNodeOperation(NodeReference):
    type: Literal["disableNode"] = "disableNode"


# ============================================================================
# CONNECTION OPERATIONS
# ============================================================================

class AddConnectionOperation(BranchSelector):
    type: Literal["addConnection"] = "addConnection"
    target: str = Field(..., min_length=1)
    target_kind: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("targetKind", "targetInput", "target_kind")
    )
    target_index: int = Field(default=0, ge=0, le=MAX_CONNECTION_INDEX)


class RemoveConnectionOperation(BranchSelector):
    type: Literal["removeConnection"] = "removeConnection"
    target: str = Field(..., min_length=1)
    ignore_errors: bool = False


class RewireConnectionOperation(BranchSelector):
    """
    Point one endpoint of a branch at a different node

    The endpoint is located by `position` within the branch, or by `from`
    (the node it currently points at).
    """
    type: Literal["rewireConnection"] = "rewireConnection"
    to: str = Field(..., min_length=1, validation_alias=AliasChoices("to", "newTarget"))
    from_: Optional[str] = Field(default=None, alias="from")
    position: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_locator(self):
        if self.from_ is None and self.position is None:
            raise ValueError("requires 'from' or 'position' to locate the endpoint")
        return self


class ReplaceConnectionsOperation(OperationBase):
    type: Literal["replaceConnections"] = "replaceConnections"
    source: str = Field(..., min_length=1)
    source_kind: str = Field(
        default=DEFAULT_CONNECTION_KIND,
        min_length=1,
        validation_alias=AliasChoices("sourceKind", "sourceOutput", "source_kind")
    )
    new_branches: List[List[Endpoint]] = Field(
        ...,
        validation_alias=AliasChoices("newBranches", "branches", "new_branches")
    )


class CleanStaleConnectionsOperation(OperationBase):
    type: Literal["cleanStaleConnections"] = "cleanStaleConnections"
    dry_run: bool = False


# ============================================================================
# METADATA OPERATIONS
# ============================================================================

class UpdateSettingsOperation(OperationBase):
    type: Literal["updateSettings"] = "updateSettings"
    settings: Dict[str, Any]


class UpdateNameOperation(OperationBase):
    type: Literal["updateName"] = "updateName"
    name: str = Field(..., min_length=1)


class AddTagOperation(OperationBase):
    type: Literal["addTag"] = "addTag"
    tag: str = Field(..., min_length=1)


class RemoveTagOperation(OperationBase):
    type: Literal["removeTag"] = "removeTag"
    tag: str = Field(..., min_length=1)


class ActivateWorkflowOperation(OperationBase):
    type: Literal["activateWorkflow"] = "activateWorkflow"


class DeactivateWorkflowOperation(OperationBase):
    type: Literal["deactivateWorkflow"] = "deactivateWorkflow"


Operation = Annotated[
    Union[
        AddNodeOperation,
        RemoveNodeOperation,
        UpdateNodeOperation,
        MoveNodeOperation,
        EnableNodeOperation,
        DisableNodeOperation,
        AddConnectionOperation,
        RemoveConnectionOperation,
        RewireConnectionOperation,
        ReplaceConnectionsOperation,
        CleanStaleConnectionsOperation,
        UpdateSettingsOperation,
        UpdateNameOperation,
        AddTagOperation,
        RemoveTagOperation,
        ActivateWorkflowOperation,
        DeactivateWorkflowOperation,
    ],
    Field(discriminator="type")
]

OPERATION_ADAPTER: TypeAdapter = TypeAdapter(Operation)
