"""
Shared fixtures: workflow builders and small sample graphs
"""
import pytest

from flowpatch.schemas.workflow import Workflow

WEBHOOK = "n8n-nodes-base.webhook"
SET = "n8n-nodes-base.set"
HTTP = "n8n-nodes-base.httpRequest"
IF = "n8n-nodes-base.if"
SWITCH = "n8n-nodes-base.switch"
STICKY = "n8n-nodes-base.stickyNote"
AGENT = "@n8n/n8n-nodes-langchain.agent"
CHAT_MODEL = "@n8n/n8n-nodes-langchain.lmChatOpenAi"
MEMORY = "@n8n/n8n-nodes-langchain.memoryBufferWindow"
TOOL = "@n8n/n8n-nodes-langchain.toolCalculator"
CHAT_TRIGGER = "@n8n/n8n-nodes-langchain.chatTrigger"


def node(name, node_type=SET, node_id=None, **extra):
    data = {
        "id": node_id or f"id-{name.lower().replace(' ', '-')}",
        "name": name,
        "type": node_type,
        "typeVersion": 1,
        "position": [0, 0],
        "parameters": {},
    }
    data.update(extra)
    return data


def link(target, kind="main", index=0):
    return {"node": target, "type": kind, "index": index}


@pytest.fixture
def make_node():
    """Factory for wire-format node dicts"""
    return node


@pytest.fixture
def make_link():
    """Factory for wire-format endpoint dicts"""
    return link


@pytest.fixture
def make_workflow():
    """Factory: build a Workflow from wire-format nodes and connections"""
    def _make(nodes, connections=None, name="Test Workflow", **extra):
        data = {
            "id": "wf-1",
            "name": name,
            "active": False,
            "nodes": nodes,
            "connections": connections or {},
            "settings": {"executionOrder": "v1"},
            "tags": [],
        }
        data.update(extra)
        return Workflow.from_wire(data)
    return _make


@pytest.fixture
def linear_workflow(make_workflow):
    """Webhook -> Set -> HTTP Request"""
    return make_workflow(
        [node("Webhook", WEBHOOK), node("Set"), node("HTTP Request", HTTP)],
        {
            "Webhook": {"main": [[link("Set")]]},
            "Set": {"main": [[link("HTTP Request")]]},
        }
    )


@pytest.fixture
def gate_workflow(make_workflow):
    """Webhook -> Gate (IF); true branch -> Accept, false branch -> Reject"""
    return make_workflow(
        [
            node("Webhook", WEBHOOK),
            node("Gate", IF),
            node("Accept"),
            node("Reject"),
        ],
        {
            "Webhook": {"main": [[link("Gate")]]},
            "Gate": {"main": [[link("Accept")], [link("Reject")]]},
        }
    )


@pytest.fixture
def chain_workflow(make_workflow):
    """
    A -> B -> C over main; A's error output -> D; D -> A over error

    A carries both a main and an error sub-map, and is also an error target.
    """
    return make_workflow(
        [
            node("Trigger", WEBHOOK),
            node("A"),
            node("B"),
            node("C"),
            node("D"),
        ],
        {
            "Trigger": {"main": [[link("A")]]},
            "A": {"main": [[link("B")]], "error": [[link("D")]]},
            "B": {"main": [[link("C")]]},
            "D": {"error": [[link("A", "error")]]},
        }
    )


@pytest.fixture
def agent_workflow(make_workflow):
    """Chat trigger -> Agent, with model, memory and tool wired through service kinds"""
    return make_workflow(
        [
            node("Chat Trigger", CHAT_TRIGGER),
            node("Agent", AGENT),
            node("Model", CHAT_MODEL),
            node("Memory", MEMORY),
            node("Calculator", TOOL),
        ],
        {
            "Chat Trigger": {"main": [[link("Agent")]]},
            "Model": {"ai_languageModel": [[link("Agent", "ai_languageModel")]]},
            "Memory": {"ai_memory": [[link("Agent", "ai_memory")]]},
            "Calculator": {"ai_tool": [[link("Agent", "ai_tool")]]},
        }
    )
