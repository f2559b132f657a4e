"""
Core Constants and Enums
Central source of truth for connection kinds, operation types, error codes and node types
"""
from enum import Enum


# ============================================================================
# CONNECTION KINDS
# ============================================================================

class ConnectionKind(str, Enum):
    """
    Well-known connection kinds

    The connection table treats kinds as free-form strings; these are only the
    kinds the platform ships with. Any other string is accepted unchanged.

    MAIN: Ordinary data flow
    ERROR: Exception flow from a node's error output
    AI_*: Agent/tool provider relationships (not data flow)
    """
    MAIN = "main"
    ERROR = "error"
    AI_LANGUAGE_MODEL = "ai_languageModel"
    AI_MEMORY = "ai_memory"
    AI_EMBEDDING = "ai_embedding"
    AI_TOOL = "ai_tool"
    AI_VECTOR_STORE = "ai_vectorStore"
    AI_DOCUMENT = "ai_document"
    AI_TEXT_SPLITTER = "ai_textSplitter"
    AI_OUTPUT_PARSER = "ai_outputParser"
    AI_RETRIEVER = "ai_retriever"


DEFAULT_CONNECTION_KIND = ConnectionKind.MAIN.value

# Highest output or input slot an operation may address; skipped slots are padded
MAX_CONNECTION_INDEX = 999


# ============================================================================
# OPERATION TYPES
# ============================================================================

class OperationType(str, Enum):
    """Edit operations accepted by the diff engine"""
    ADD_NODE = "addNode"
    REMOVE_NODE = "removeNode"
    UPDATE_NODE = "updateNode"
    MOVE_NODE = "moveNode"
    ENABLE_NODE = "enableNode"
    DISABLE_NODE = "disableNode"
    ADD_CONNECTION = "addConnection"
    REMOVE_CONNECTION = "removeConnection"
    REWIRE_CONNECTION = "rewireConnection"
    REPLACE_CONNECTIONS = "replaceConnections"
    CLEAN_STALE_CONNECTIONS = "cleanStaleConnections"
    UPDATE_SETTINGS = "updateSettings"
    UPDATE_NAME = "updateName"
    ADD_TAG = "addTag"
    REMOVE_TAG = "removeTag"
    ACTIVATE_WORKFLOW = "activateWorkflow"
    DEACTIVATE_WORKFLOW = "deactivateWorkflow"


# ============================================================================
# ERROR CODES
# ============================================================================

class DiffErrorCode(str, Enum):
    """
    Error kinds reported by the diff engine and the diff service

    NODE_NOT_FOUND: A node reference resolved to nothing
    DUPLICATE_IDENTIFIER: An add/rename would collide on id or name
    INVALID_OPERATION: Malformed or inapplicable operation payload
    STRUCTURAL_VIOLATION: Post-batch structural validator finding
    ACTIVATION_FAILED: Post-commit activation/deactivation call failed
    WORKFLOW_NOT_FOUND: The store has no workflow with that id
    STORE_ERROR: The store failed to fetch or persist
    """
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    DUPLICATE_IDENTIFIER = "DUPLICATE_IDENTIFIER"
    INVALID_OPERATION = "INVALID_OPERATION"
    STRUCTURAL_VIOLATION = "STRUCTURAL_VIOLATION"
    ACTIVATION_FAILED = "ACTIVATION_FAILED"
    WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
    STORE_ERROR = "STORE_ERROR"


# Diagnostic index for findings that belong to the batch rather than one operation
BATCH_LEVEL_INDEX = -1


# ============================================================================
# NODE TYPES
# ============================================================================

class NodeTypes:
    """Node type identifiers the engine and validator need to recognize"""
    IF = "n8n-nodes-base.if"
    SWITCH = "n8n-nodes-base.switch"

    # Purely visual annotation nodes (never executed, never connected)
    STICKY_NOTES = frozenset({
        "n8n-nodes-base.stickyNote",
        "nodes-base.stickyNote",
        "@n8n/n8n-nodes-base.stickyNote",
    })

    # Triggers that do not carry "trigger" or "webhook" in their type name
    NAMED_TRIGGERS = frozenset({
        "nodes-base.start",
        "nodes-base.manualTrigger",
        "nodes-base.formTrigger",
    })


# ============================================================================
# WORKFLOW SETTINGS
# ============================================================================

# Settings keys the remote platform accepts on update
KNOWN_SETTINGS_KEYS = frozenset({
    "saveExecutionProgress",
    "saveManualExecutions",
    "saveDataErrorExecution",
    "saveDataSuccessExecution",
    "executionTimeout",
    "errorWorkflow",
    "timezone",
    "executionOrder",
    "callerPolicy",
    "callerIds",
    "timeSavedPerExecution",
    "availableInMCP",
})

DEFAULT_UPDATE_SETTINGS = {"executionOrder": "v1"}
