"""
Node Classification
Annotation, trigger and activatable-trigger checks shared by the applier, validator and stores
"""
from typing import Iterable, List

from flowpatch.core.constants import NodeTypes
from flowpatch.schemas.workflow import Node


def normalize_node_type(node_type: str) -> str:
    """Short package form: "n8n-nodes-base.x" -> "nodes-base.x", langchain likewise"""
    if not node_type:
        return node_type
    if node_type.startswith("n8n-nodes-base."):
        return "nodes-base." + node_type[len("n8n-nodes-base."):]
    if node_type.startswith("@n8n/n8n-nodes-langchain."):
        return "nodes-langchain." + node_type[len("@n8n/n8n-nodes-langchain."):]
    return node_type


def is_annotation_node(node_type: str) -> bool:
    """Purely visual nodes (sticky notes) that never execute or connect"""
    return node_type in NodeTypes.STICKY_NOTES


def is_trigger_node(node_type: str) -> bool:
    """
    Check if a node type starts workflow execution

    Matches any type containing "trigger", webhook types other than
    respond-to-webhook, and a few named triggers.
    """
    normalized = normalize_node_type(node_type)
    lowered = normalized.lower()

    if "trigger" in lowered:
        return True
    if "webhook" in lowered and "respond" not in lowered:
        return True
    return normalized in NodeTypes.NAMED_TRIGGERS


def is_activatable_trigger(node_type: str) -> bool:
    # Every trigger can activate a workflow, including sub-workflow triggers
    return is_trigger_node(node_type)


def executable_nodes(nodes: Iterable[Node]) -> List[Node]:
    return [node for node in nodes if not is_annotation_node(node.type)]


def enabled_activatable_triggers(nodes: Iterable[Node]) -> List[Node]:
    return [
        node for node in nodes
        if not node.is_disabled and is_activatable_trigger(node.type)
    ]
