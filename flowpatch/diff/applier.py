"""
Patch Applier
Applies one edit operation to a workflow working copy

Each handler resolves and checks everything it needs before it touches the
working copy, so a failing operation never leaves partial state behind.
"""
import uuid
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from flowpatch.core.constants import DiffErrorCode, NodeTypes, OperationType
from flowpatch.core.logging import get_logger
from flowpatch.diff import connections
from flowpatch.diff.errors import (
    DiffOperationError,
    DuplicateIdentifierError,
    InvalidOperationError,
    NodeNotFoundError,
    OperationDiagnostic,
    operation_warning,
)
from flowpatch.diff.resolver import (
    describe_available_nodes,
    find_node,
    find_node_by_name,
    normalize_node_name,
    resolve_node,
)
from flowpatch.schemas.operations import (
    OPERATION_ADAPTER,
    AddConnectionOperation,
    AddNodeOperation,
    AddTagOperation,
    BranchSelector,
    CleanStaleConnectionsOperation,
    DisableNodeOperation,
    EnableNodeOperation,
    MoveNodeOperation,
    Operation,
    OperationBase,
    RemoveConnectionOperation,
    RemoveNodeOperation,
    RemoveTagOperation,
    ReplaceConnectionsOperation,
    RewireConnectionOperation,
    UpdateNameOperation,
    UpdateNodeOperation,
    UpdateSettingsOperation,
)
from flowpatch.schemas.workflow import Endpoint, Node, Workflow
from flowpatch.validator.node_types import enabled_activatable_triggers

logger = get_logger(__name__)

_CONNECTION_TYPES = {
    OperationType.ADD_CONNECTION.value,
    OperationType.REMOVE_CONNECTION.value,
    OperationType.REWIRE_CONNECTION.value,
}


# ============================================================================
# OPERATION PARSING
# ============================================================================

def parse_operation(raw: Union[Operation, Dict[str, Any]]) -> Operation:
    """
    Parse a raw operation payload into its typed model

    Common payload mistakes get a pointed message instead of a generic
    schema error.

    Raises:
        InvalidOperationError: Payload is not a valid operation
    """
    if isinstance(raw, OperationBase):
        return raw

    if not isinstance(raw, dict):
        raise InvalidOperationError(
            f"Operation must be an object, got {type(raw).__name__}"
        )

    op_type = raw.get("type")
    known_types = [item.value for item in OperationType]
    if op_type not in known_types:
        raise InvalidOperationError(
            f"Unknown operation type: {op_type!r}. Valid types: {', '.join(known_types)}"
        )

    if op_type == OperationType.UPDATE_NODE.value and "changes" in raw and "updates" not in raw:
        raise InvalidOperationError(
            "Invalid parameter 'changes'. The updateNode operation requires 'updates' "
            "(not 'changes'). Example: {type: \"updateNode\", nodeId: \"abc\", "
            "updates: {name: \"New Name\", \"parameters.url\": \"https://example.com\"}}"
        )

    if op_type in _CONNECTION_TYPES:
        wrong = [key for key in ("sourceNodeId", "targetNodeId") if key in raw]
        if wrong:
            raise InvalidOperationError(
                f"Invalid parameter(s): {', '.join(wrong)}. Use 'source' and 'target' "
                f"instead. Example: {{type: \"addConnection\", source: \"Node Name\", "
                f"target: \"Target Name\"}}"
            )

    try:
        return OPERATION_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise InvalidOperationError(
            f"Invalid {op_type} operation: {_format_validation_error(e)}",
            details={"errors": e.errors(include_url=False, include_context=False)}
        )


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        # First loc entry is the union tag
        location = ".".join(str(part) for part in item["loc"][1:]) or "operation"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def _tag_name(tag: Union[str, Dict[str, Any]]) -> Optional[str]:
    if isinstance(tag, dict):
        return tag.get("name")
    return tag


# ============================================================================
# APPLIER
# ============================================================================

class PatchApplier:
    """
    Applies operations, in order, to one working copy

    The working copy is mutated in place; the batch owns the clone. Also
    collects the side products of a batch: warnings, activation intent and
    stale connections removed.
    """

    def __init__(self, workflow: Workflow):
        self.workflow = workflow
        self.warnings: List[OperationDiagnostic] = []
        self.should_activate = False
        self.should_deactivate = False
        self.stale_connections_removed: List[Dict[str, str]] = []

        self._handlers: Dict[str, Callable[[int, Any], None]] = {
            OperationType.ADD_NODE.value: self._add_node,
            OperationType.REMOVE_NODE.value: self._remove_node,
            OperationType.UPDATE_NODE.value: self._update_node,
            OperationType.MOVE_NODE.value: self._move_node,
            OperationType.ENABLE_NODE.value: self._enable_node,
            OperationType.DISABLE_NODE.value: self._disable_node,
            OperationType.ADD_CONNECTION.value: self._add_connection,
            OperationType.REMOVE_CONNECTION.value: self._remove_connection,
            OperationType.REWIRE_CONNECTION.value: self._rewire_connection,
            OperationType.REPLACE_CONNECTIONS.value: self._replace_connections,
            OperationType.CLEAN_STALE_CONNECTIONS.value: self._clean_stale_connections,
            OperationType.UPDATE_SETTINGS.value: self._update_settings,
            OperationType.UPDATE_NAME.value: self._update_name,
            OperationType.ADD_TAG.value: self._add_tag,
            OperationType.REMOVE_TAG.value: self._remove_tag,
            OperationType.ACTIVATE_WORKFLOW.value: self._activate_workflow,
            OperationType.DEACTIVATE_WORKFLOW.value: self._deactivate_workflow,
        }

    def apply(self, index: int, operation: Union[Operation, Dict[str, Any]]) -> None:
        """
        Apply one operation to the working copy

        Args:
            index: Position of the operation in its batch (used for warnings)
            operation: Typed operation or raw wire payload

        Raises:
            DiffOperationError: The operation cannot be applied (its warnings are dropped)
        """
        op = parse_operation(operation)
        logger.debug(f"Applying operation {index}: {op.type}")

        mark = len(self.warnings)
        try:
            self._handlers[op.type](index, op)
        except DiffOperationError:
            del self.warnings[mark:]
            raise

    # ------------------------------------------------------------------------
    # Node operations
    # ------------------------------------------------------------------------

    def _add_node(self, index: int, op: AddNodeOperation) -> None:
        payload = op.node

        duplicate = find_node_by_name(self.workflow, payload.name)
        if duplicate is not None:
            raise DuplicateIdentifierError(
                f"Node with name \"{payload.name}\" already exists "
                f"(normalized name matches existing node \"{duplicate.name}\")",
                details={"name": payload.name, "existingId": duplicate.id}
            )
        if payload.id and payload.id in self.workflow.node_ids():
            raise DuplicateIdentifierError(
                f"Node with id \"{payload.id}\" already exists",
                details={"id": payload.id}
            )
        _check_node_type(payload.type)

        data = payload.model_dump(by_alias=True, exclude_none=True)
        data["id"] = payload.id or str(uuid.uuid4())
        node = _build_node(data)

        self.workflow.nodes.append(node)
        logger.debug(f"Added node \"{node.name}\" ({node.type}, id: {node.id})")

    def _remove_node(self, index: int, op: RemoveNodeOperation) -> None:
        node = resolve_node(self.workflow, op.node_id, op.node_name)

        removed = connections.remove_node_references(self.workflow.connections, node.name)
        if removed:
            logger.warning(
                f"Removing node \"{node.name}\" broke {removed} existing connection(s)"
            )

        self.workflow.nodes = [item for item in self.workflow.nodes if item is not node]
        logger.debug(f"Removed node \"{node.name}\" (id: {node.id})")

    def _update_node(self, index: int, op: UpdateNodeOperation) -> None:
        node = resolve_node(self.workflow, op.node_id, op.node_name)

        if "id" in op.updates and op.updates["id"] != node.id:
            raise InvalidOperationError(
                f"Cannot change the id of node \"{node.name}\"; ids are stable. "
                f"Remove and re-add the node instead."
            )

        data = node.model_dump(by_alias=True)
        for path, value in op.updates.items():
            _set_path(data, path, deepcopy(value))
        updated = _build_node(data)
        if updated.type != node.type:
            _check_node_type(updated.type)

        old_name = node.name
        new_name = updated.name
        if new_name != old_name and normalize_node_name(new_name) != normalize_node_name(old_name):
            collision = find_node_by_name(self.workflow, new_name)
            if collision is not None and collision is not node:
                raise DuplicateIdentifierError(
                    f"Cannot rename node \"{old_name}\" to \"{new_name}\": a node with that "
                    f"name already exists (id: {collision.id[:8]}...). "
                    f"Please choose a different name.",
                    details={"name": new_name, "existingId": collision.id}
                )

        if new_name != old_name and new_name in self.workflow.connections:
            raise DuplicateIdentifierError(
                f"Cannot rename node \"{old_name}\" to \"{new_name}\": the connection table "
                f"still has an entry for \"{new_name}\" from a node that no longer exists. "
                f"Run cleanStaleConnections first or choose a different name.",
                details={"name": new_name}
            )

        position = next(i for i, item in enumerate(self.workflow.nodes) if item is node)
        self.workflow.nodes[position] = updated

        if new_name != old_name:
            retargeted = connections.rename_node_references(
                self.workflow.connections, old_name, new_name
            )
            logger.debug(
                f"Renamed node \"{old_name}\" -> \"{new_name}\" "
                f"({retargeted} connection reference(s) updated)"
            )

    def _move_node(self, index: int, op: MoveNodeOperation) -> None:
        node = resolve_node(self.workflow, op.node_id, op.node_name)
        node.position = tuple(op.position)

    def _enable_node(self, index: int, op: EnableNodeOperation) -> None:
        node = resolve_node(self.workflow, op.node_id, op.node_name)
        node.disabled = False

    def _disable_node(self, index: int, op: DisableNodeOperation) -> None:
        node = resolve_node(self.workflow, op.node_id, op.node_name)
        node.disabled = True

    # ------------------------------------------------------------------------
    # Connection operations
    # ------------------------------------------------------------------------

    def _source_index(self, index: int, op: BranchSelector, source: Node) -> int:
        """Resolve branch/case shorthands and nudge raw indexes on IF/Switch nodes"""
        if op.source_index is not None and op.branch is None and op.case is None:
            if source.type == NodeTypes.IF:
                self.warnings.append(operation_warning(
                    index,
                    f"Connection from If node \"{source.name}\" uses "
                    f"sourceIndex={op.source_index}. Consider using branch=\"true\" or "
                    f"branch=\"false\" for better clarity. If node outputs: "
                    f"main[0]=TRUE branch, main[1]=FALSE branch."
                ))
            elif source.type == NodeTypes.SWITCH:
                self.warnings.append(operation_warning(
                    index,
                    f"Connection from Switch node \"{source.name}\" uses "
                    f"sourceIndex={op.source_index}. Consider using case=N for better "
                    f"clarity (case=0 for first output, case=1 for second, etc.)."
                ))
        return op.resolved_source_index()

    def _add_connection(self, index: int, op: AddConnectionOperation) -> None:
        source = resolve_node(self.workflow, op.source, role="Source node")
        target = resolve_node(self.workflow, op.target, role="Target node")
        source_index = self._source_index(index, op, source)

        endpoint = Endpoint(
            node=target.name,
            kind=op.target_kind or op.source_kind,
            index=op.target_index
        )
        branch = connections.get_branch(
            self.workflow.connections, source.name, op.source_kind, source_index
        )
        if connections.contains_endpoint(branch, endpoint):
            raise InvalidOperationError(
                f"Connection already exists from \"{source.name}\" to \"{target.name}\" "
                f"on output \"{op.source_kind}\" at index {source_index}"
            )

        connections.append_endpoint(
            self.workflow.connections, source.name, op.source_kind, source_index, endpoint
        )
        logger.debug(
            f"Connected \"{source.name}\"[{op.source_kind}][{source_index}] -> "
            f"\"{target.name}\"[{endpoint.kind}][{endpoint.index}]"
        )

    def _remove_connection(self, index: int, op: RemoveConnectionOperation) -> None:
        source = find_node(self.workflow, op.source)
        target = find_node(self.workflow, op.target)
        if source is None or target is None:
            if op.ignore_errors:
                return
            resolve_node(self.workflow, op.source, role="Source node")
            resolve_node(self.workflow, op.target, role="Target node")

        source_index = self._source_index(index, op, source)
        removed = connections.remove_endpoints(
            self.workflow.connections, source.name, op.source_kind, source_index, target.name
        )
        if not removed and not op.ignore_errors:
            raise InvalidOperationError(
                f"No connection exists from \"{source.name}\" to \"{target.name}\" "
                f"on output \"{op.source_kind}\" at index {source_index}"
            )

    def _rewire_connection(self, index: int, op: RewireConnectionOperation) -> None:
        source = resolve_node(self.workflow, op.source, role="Source node")
        new_target = resolve_node(self.workflow, op.to, role="\"To\" node")
        source_index = self._source_index(index, op, source)

        branch = connections.get_branch(
            self.workflow.connections, source.name, op.source_kind, source_index
        )

        # The current target may already be gone, so fall back to the raw reference
        from_name = None
        if op.from_ is not None:
            from_node = find_node(self.workflow, op.from_)
            from_name = from_node.name if from_node is not None else op.from_

        if op.position is not None:
            if op.position >= len(branch):
                raise InvalidOperationError(
                    f"No connection at position {op.position} on output "
                    f"\"{op.source_kind}\" index {source_index} of \"{source.name}\" "
                    f"(branch has {len(branch)} connection(s))"
                )
            position = op.position
            if from_name is not None and branch[position].node != from_name:
                raise InvalidOperationError(
                    f"Connection at position {position} points to \"{branch[position].node}\", "
                    f"not \"{from_name}\""
                )
        else:
            matches = [i for i, endpoint in enumerate(branch) if endpoint.node == from_name]
            if not matches:
                raise InvalidOperationError(
                    f"No connection exists from \"{source.name}\" to \"{from_name}\" "
                    f"on output \"{op.source_kind}\" at index {source_index}"
                )
            position = matches[0]

        current = branch[position]
        rewired = current.model_copy(update={"node": new_target.name})
        others = [endpoint for i, endpoint in enumerate(branch) if i != position]
        if connections.contains_endpoint(others, rewired):
            raise InvalidOperationError(
                f"Connection already exists from \"{source.name}\" to \"{new_target.name}\" "
                f"on output \"{op.source_kind}\" at index {source_index}"
            )

        previous = connections.rewire_endpoint(
            self.workflow.connections,
            source.name,
            op.source_kind,
            source_index,
            position,
            new_target.name
        )
        logger.debug(
            f"Rewired \"{source.name}\"[{op.source_kind}][{source_index}][{position}]: "
            f"\"{previous}\" -> \"{new_target.name}\""
        )

    def _replace_connections(self, index: int, op: ReplaceConnectionsOperation) -> None:
        source = resolve_node(self.workflow, op.source, role="Source node")

        branches = []
        for branch in op.new_branches:
            rebuilt = []
            for endpoint in branch:
                target = find_node(self.workflow, endpoint.node)
                if target is None:
                    raise NodeNotFoundError(
                        f"Target node not found in connections: \"{endpoint.node}\". "
                        f"Available nodes: {describe_available_nodes(self.workflow)}",
                        details={"reference": endpoint.node}
                    )
                rebuilt.append(Endpoint(node=target.name, kind=endpoint.kind, index=endpoint.index))
            branches.append(rebuilt)

        connections.replace_branches(
            self.workflow.connections, source.name, op.source_kind, branches
        )
        logger.debug(
            f"Replaced {len(branches)} branch(es) of \"{source.name}\"[{op.source_kind}]"
        )

    def _clean_stale_connections(self, index: int, op: CleanStaleConnectionsOperation) -> None:
        existing = set(self.workflow.node_names())

        if op.dry_run:
            stale = connections.find_stale_endpoints(self.workflow.connections, existing)
            logger.info(f"[DryRun] Would remove {len(stale)} stale connection(s)")
        else:
            stale = connections.remove_stale_endpoints(self.workflow.connections, existing)
            logger.info(f"Removed {len(stale)} stale connection(s)")

        self.stale_connections_removed.extend(
            {"from": source, "to": target} for source, target in stale
        )

    # ------------------------------------------------------------------------
    # Metadata operations
    # ------------------------------------------------------------------------

    def _update_settings(self, index: int, op: UpdateSettingsOperation) -> None:
        self.workflow.settings.update(deepcopy(op.settings))

    def _update_name(self, index: int, op: UpdateNameOperation) -> None:
        self.workflow.name = op.name

    def _add_tag(self, index: int, op: AddTagOperation) -> None:
        if any(_tag_name(tag) == op.tag for tag in self.workflow.tags):
            return
        self.workflow.tags.append(op.tag)

    def _remove_tag(self, index: int, op: RemoveTagOperation) -> None:
        self.workflow.tags = [tag for tag in self.workflow.tags if _tag_name(tag) != op.tag]

    def _activate_workflow(self, index: int, op: OperationBase) -> None:
        if not enabled_activatable_triggers(self.workflow.nodes):
            self.warnings.append(operation_warning(
                index,
                "Workflow has no enabled trigger node (webhook, schedule, "
                "executeWorkflowTrigger, etc.); activation after saving will likely fail.",
                code=DiffErrorCode.STRUCTURAL_VIOLATION
            ))
        self.should_activate = True
        self.should_deactivate = False

    def _deactivate_workflow(self, index: int, op: OperationBase) -> None:
        self.should_deactivate = True
        self.should_activate = False


# ============================================================================
# HELPERS
# ============================================================================

def apply_operation(workflow: Workflow, operation: Union[Operation, Dict[str, Any]]) -> Workflow:
    """
    Apply a single operation to a copy of `workflow`

    The input workflow is never mutated.

    Raises:
        DiffOperationError: The operation cannot be applied
    """
    applier = PatchApplier(workflow.clone())
    applier.apply(0, operation)
    return applier.workflow


def _check_node_type(node_type: str) -> None:
    if node_type.startswith("nodes-base."):
        raise InvalidOperationError(
            f"Invalid node type \"{node_type}\". "
            f"Use \"n8n-nodes-base.{node_type[len('nodes-base.'):]}\" instead"
        )
    if "." not in node_type:
        raise InvalidOperationError(
            f"Invalid node type \"{node_type}\". Must include package prefix "
            f"(e.g., \"n8n-nodes-base.webhook\")"
        )


def _build_node(data: Dict[str, Any]) -> Node:
    try:
        return Node.model_validate(data)
    except ValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
            for item in e.errors()
        )
        raise InvalidOperationError(f"Invalid node: {messages}")


def _set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """
    Set a top-level field, or one nested key for dotted paths

    "parameters" replaces the whole field; "parameters.url" sets only `url`.
    Snake_case field names are mapped to their wire names.
    """
    head, *rest = path.split(".")
    field = Node.model_fields.get(head)
    if field is not None and field.alias:
        head = field.alias

    if not rest:
        data[head] = value
        return

    target = data.get(head)
    if target is None:
        target = data[head] = {}
    for key in rest[:-1]:
        if not isinstance(target, dict):
            raise InvalidOperationError(f"Cannot set \"{path}\": \"{key}\" is not an object")
        target = target.setdefault(key, {})
        if target is None:
            raise InvalidOperationError(f"Cannot set \"{path}\": \"{key}\" is null")
    if not isinstance(target, dict):
        raise InvalidOperationError(f"Cannot set \"{path}\": parent is not an object")
    target[rest[-1]] = value
