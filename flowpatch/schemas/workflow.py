"""
Workflow Graph Model
Value types for nodes, connection endpoints, the connection table and workflows

Wire format is the automation platform's camelCase JSON; Python attributes are
snake_case. Unknown fields on nodes and workflows are preserved so a fetched
workflow round-trips through the engine without losing data.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flowpatch.core.constants import DEFAULT_CONNECTION_KIND

Number = Union[int, float]


class WireModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase JSON keys"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the platform's JSON shape"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ============================================================================
# NODES
# ============================================================================

class Node(WireModel):
    """
    One step in a workflow

    `id` is stable for the node's lifetime. `name` is the mutable display
    identifier and doubles as the key into the connection table.
    """
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    type_version: Number = 1
    position: Tuple[Number, Number] = (0, 0)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    credentials: Optional[Dict[str, Any]] = None
    disabled: Optional[bool] = None
    notes: Optional[str] = None
    notes_in_flow: Optional[bool] = None
    continue_on_fail: Optional[bool] = None
    on_error: Optional[str] = None
    retry_on_fail: Optional[bool] = None
    max_tries: Optional[int] = None
    wait_between_tries: Optional[int] = None
    always_output_data: Optional[bool] = None
    execute_once: Optional[bool] = None

    @property
    def is_disabled(self) -> bool:
        return bool(self.disabled)


# ============================================================================
# CONNECTIONS
# ============================================================================

class Endpoint(WireModel):
    """
    Pointer into a target node's input slot

    Endpoints have no identity of their own; `node` is a node *name*.
    """
    node: str
    kind: str = Field(default=DEFAULT_CONNECTION_KIND, alias="type")
    index: int = Field(default=0, ge=0)


# source name -> connection kind -> branches (output ports) -> fan-out endpoints
Branch = List[Endpoint]
ConnectionTable = Dict[str, Dict[str, List[Branch]]]


# ============================================================================
# WORKFLOW
# ============================================================================

class Workflow(WireModel):
    """Directed graph of nodes and their wiring; the unit of storage and edit"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str = ""
    active: bool = False
    nodes: List[Node] = Field(default_factory=list)
    connections: ConnectionTable = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)
    tags: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def node_names(self) -> List[str]:
        return [node.name for node in self.nodes]

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def clone(self) -> "Workflow":
        """Deep copy used as a batch's working copy"""
        return self.model_copy(deep=True)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Workflow":
        return cls.model_validate(data)
