"""
Node Reference Resolver
Resolves an operation's node reference against the live working copy

An id match always wins over a name match, so a later operation in a batch
can still address a node renamed earlier in the same batch by its id.
"""
import re
from typing import Optional

from flowpatch.diff.errors import NodeNotFoundError
from flowpatch.schemas.workflow import Node, Workflow

_WHITESPACE = re.compile(r"\s+")


def normalize_node_name(name: str) -> str:
    """
    Canonical form used when comparing node names

    Trims, unescapes backslash-escaped quotes and backslashes, and collapses
    whitespace runs, so names copied out of JSON strings still match.
    """
    normalized = name.strip()
    normalized = normalized.replace("\\\\", "\\")
    normalized = normalized.replace("\\'", "'")
    normalized = normalized.replace('\\"', '"')
    return _WHITESPACE.sub(" ", normalized)


def find_node(
    workflow: Workflow,
    node_id: Optional[str] = None,
    node_name: Optional[str] = None
) -> Optional[Node]:
    """
    Find a node by id first, then by normalized name

    When only an id is given and nothing has that id, the value is retried
    as a name; connection operations pass one string that may be either.
    """
    if node_id:
        for node in workflow.nodes:
            if node.id == node_id:
                return node

    name = node_name or node_id
    if name:
        wanted = normalize_node_name(name)
        for node in workflow.nodes:
            if normalize_node_name(node.name) == wanted:
                return node

    return None


def find_node_by_name(workflow: Workflow, name: str) -> Optional[Node]:
    """Find a node by normalized name only (no id matching)"""
    wanted = normalize_node_name(name)
    for node in workflow.nodes:
        if normalize_node_name(node.name) == wanted:
            return node
    return None


def resolve_node(
    workflow: Workflow,
    node_id: Optional[str] = None,
    node_name: Optional[str] = None,
    role: str = "Node"
) -> Node:
    """
    Resolve a node reference or raise NodeNotFoundError

    Args:
        workflow: Current working copy
        node_id: Stable node id (preferred)
        node_name: Display name
        role: Label used in the error message ("Source node", "Target node", ...)

    Returns:
        The matching Node (the working copy's own instance)
    """
    node = find_node(workflow, node_id, node_name)
    if node is None:
        reference = node_id or node_name or ""
        raise NodeNotFoundError(
            f"{role} not found: \"{reference}\". "
            f"Available nodes: {describe_available_nodes(workflow)}. "
            f"Tip: use the node id for names with special characters.",
            details={"reference": reference}
        )
    return node


def describe_available_nodes(workflow: Workflow) -> str:
    """Short listing of node names and id prefixes for error messages"""
    if not workflow.nodes:
        return "(none)"
    return ", ".join(f"\"{node.name}\" (id: {node.id[:8]}...)" for node in workflow.nodes)
