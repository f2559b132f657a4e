"""
Structural Validator
Graph-level shape checks and node classification
"""
from flowpatch.validator.node_types import (
    enabled_activatable_triggers,
    executable_nodes,
    is_activatable_trigger,
    is_annotation_node,
    is_trigger_node,
)
from flowpatch.validator.structural import validate_workflow_structure

__all__ = [
    "enabled_activatable_triggers",
    "executable_nodes",
    "is_activatable_trigger",
    "is_annotation_node",
    "is_trigger_node",
    "validate_workflow_structure",
]
