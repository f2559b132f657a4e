"""
Structural Validation Rules
Graph-level shape checks run after a batch (no per-field node validation)
"""
from typing import Dict, List, Set

from flowpatch.core.constants import NodeTypes
from flowpatch.core.logging import get_logger
from flowpatch.diff.connections import iter_endpoints
from flowpatch.schemas.workflow import Workflow
from flowpatch.validator.node_types import (
    enabled_activatable_triggers,
    executable_nodes,
    is_trigger_node,
)

logger = get_logger(__name__)


# ============================================================================
# BASICS
# ============================================================================

def validate_basics(workflow: Workflow) -> List[str]:
    errors = []

    if not workflow.name:
        errors.append("Workflow name is required")

    if not workflow.nodes:
        errors.append("Workflow must have at least one node")
    elif not executable_nodes(workflow.nodes):
        errors.append(
            "Workflow must have at least one executable node. "
            "Sticky notes alone cannot form a valid workflow."
        )

    return errors


# ============================================================================
# CONNECTIVITY
# ============================================================================

def _connected_names(workflow: Workflow) -> Set[str]:
    """Every name that appears as a source key or endpoint target, under any kind"""
    connected = set(workflow.connections)
    for _source, _kind, _branch, _position, endpoint in iter_endpoints(workflow.connections):
        connected.add(endpoint.node)
    return connected


def validate_connectivity(workflow: Workflow) -> List[str]:
    """
    Report executable nodes that have no connection at all

    Annotation nodes are exempt. A single executable node needs no
    connections. Any connection kind counts, so a model wired to an agent
    only through ai_languageModel is connected.
    """
    executable = executable_nodes(workflow.nodes)
    if len(executable) <= 1 and not workflow.connections:
        return []

    if not workflow.connections and len(executable) > 1:
        first, second = executable[0].name, executable[1].name
        return [
            f"Multi-node workflow has no connections between nodes. Add a connection "
            f"using: {{type: 'addConnection', source: '{first}', target: '{second}', "
            f"sourceKind: 'main', targetKind: 'main'}}"
        ]

    connected = _connected_names(workflow)
    disconnected = []
    for node in executable:
        if is_trigger_node(node.type):
            # Triggers only need an outgoing connection (or an inbound one)
            has_outgoing = bool(workflow.connections.get(node.name))
            if not has_outgoing and node.name not in connected:
                disconnected.append(node)
        elif node.name not in connected:
            disconnected.append(node)

    if not disconnected or len(executable) <= 1:
        return []

    listing = ", ".join(f"\"{node.name}\" ({node.type})" for node in disconnected)
    suggested_source = next(
        (node.name for node in executable if node.name in connected),
        executable[0].name
    )
    return [
        f"Disconnected nodes detected: {listing}. Each node must have at least one "
        f"connection. Add a connection: {{type: 'addConnection', "
        f"source: '{suggested_source}', target: '{disconnected[0].name}'}}"
    ]


# ============================================================================
# NODE TYPES
# ============================================================================

def validate_node_types(workflow: Workflow) -> List[str]:
    errors = []
    for index, node in enumerate(workflow.nodes):
        if node.type.startswith("nodes-base."):
            errors.append(
                f"Invalid node type \"{node.type}\" at index {index}. "
                f"Use \"n8n-nodes-base.{node.type[len('nodes-base.'):]}\" instead."
            )
        elif "." not in node.type:
            errors.append(
                f"Invalid node type \"{node.type}\" at index {index}. Node types must "
                f"include package prefix (e.g., \"n8n-nodes-base.webhook\")."
            )
    return errors


# ============================================================================
# CONNECTION REFERENCES
# ============================================================================

def validate_connection_references(workflow: Workflow) -> List[str]:
    """Source keys and endpoint targets must be node names (ids are a common mistake)"""
    errors = []
    names = set(workflow.node_names())
    id_to_name: Dict[str, str] = {node.id: node.name for node in workflow.nodes}

    for source in workflow.connections:
        if source in names:
            continue
        if source in id_to_name:
            correct = id_to_name[source]
            errors.append(
                f"Connection uses node ID '{source}' but must use node name '{correct}'. "
                f"Change connections.{source} to connections['{correct}']"
            )
        else:
            errors.append(f"Connection references non-existent node: {source}")

    for source, kind, branch, position, endpoint in iter_endpoints(workflow.connections):
        if endpoint.node in names:
            continue
        where = f"from {source}[{kind}][{branch}][{position}]"
        if endpoint.node in id_to_name:
            errors.append(
                f"Connection target uses node ID '{endpoint.node}' but must use node name "
                f"'{id_to_name[endpoint.node]}' ({where})"
            )
        else:
            errors.append(
                f"Connection references non-existent target node: {endpoint.node} ({where})"
            )

    return errors


# ============================================================================
# ACTIVATION
# ============================================================================

def validate_activation(workflow: Workflow) -> List[str]:
    if not workflow.active or not workflow.nodes:
        return []
    if enabled_activatable_triggers(workflow.nodes):
        return []
    return [
        "Cannot activate workflow: No activatable trigger nodes found. Workflows must "
        "have at least one enabled trigger node (webhook, schedule, "
        "executeWorkflowTrigger, etc.)."
    ]


# ============================================================================
# SWITCH OUTPUTS
# ============================================================================

def _rule_label(rule: Dict, index: int) -> str:
    key = rule.get("outputKey") if isinstance(rule, dict) else None
    return f"\"{key}\" (index {index})" if key else f"Rule {index}"


def validate_switch_outputs(workflow: Workflow) -> List[str]:
    """Switch nodes in rules mode need one connected main branch per rule"""
    errors = []

    for node in workflow.nodes:
        if node.type != NodeTypes.SWITCH:
            continue
        mode = node.parameters.get("mode")
        if mode and mode != "rules":
            continue

        rules_param = node.parameters.get("rules")
        rules = []
        if isinstance(rules_param, dict):
            rules = rules_param.get("rules") or []
        branches = workflow.connections.get(node.name, {}).get("main")
        if not rules or not branches:
            continue

        if len(branches) != len(rules):
            labels = ", ".join(_rule_label(rule, i) for i, rule in enumerate(rules))
            errors.append(
                f"Switch node \"{node.name}\" has {len(rules)} rules [{labels}] but only "
                f"{len(branches)} output branch{'es' if len(branches) != 1 else ''} in "
                f"connections. Each rule needs its own output branch. When connecting to "
                f"Switch outputs, specify sourceIndex: "
                f"{', '.join(str(i) for i in range(len(rules)))} "
                f"(or use case parameter for clarity)."
            )

        empty = [i for i, branch in enumerate(branches) if not branch and i < len(rules)]
        if empty:
            plural = "s" if len(empty) != 1 else ""
            labels = ", ".join(_rule_label(rules[i], i) for i in empty)
            errors.append(
                f"Switch node \"{node.name}\" has unconnected output{plural}: {labels}. "
                f"Add connection{plural} using sourceIndex: "
                f"{' or '.join(str(i) for i in empty)}."
            )

    return errors


# ============================================================================
# ENTRY POINT
# ============================================================================

def validate_workflow_structure(workflow: Workflow) -> List[str]:
    """
    Check graph-level invariants of a workflow

    Returns:
        Ordered violation messages (empty list means valid)
    """
    errors: List[str] = []
    errors.extend(validate_basics(workflow))
    errors.extend(validate_connectivity(workflow))
    errors.extend(validate_node_types(workflow))
    errors.extend(validate_connection_references(workflow))
    errors.extend(validate_activation(workflow))
    errors.extend(validate_switch_outputs(workflow))

    if errors:
        logger.debug(f"Structural validation found {len(errors)} issue(s)")
    return errors
