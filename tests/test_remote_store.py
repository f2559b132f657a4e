"""
Tests for the remote workflow store against a mocked HTTP transport
"""
import asyncio
import json

import httpx
import pytest

from flowpatch.schemas.workflow import Workflow
from flowpatch.storage.base import ActivationError, WorkflowNotFoundError, WorkflowStoreError
from flowpatch.storage.remote import (
    API_KEY_HEADER,
    RemoteWorkflowStore,
    api_base_url,
    clean_workflow_for_update,
)

BASE_URL = "https://automation.example.com"


def remote_workflow(**extra):
    data = {
        "id": "wf-1",
        "name": "Remote",
        "active": False,
        "nodes": [{
            "id": "id-hook",
            "name": "Hook",
            "type": "n8n-nodes-base.webhook",
            "typeVersion": 2,
            "position": [0, 0],
            "parameters": {},
        }],
        "connections": {},
        "settings": {"executionOrder": "v1"},
        "versionId": "abc",
    }
    data.update(extra)
    return data


def make_store(handler):
    """Store whose HTTP calls go to `handler` and are recorded"""
    calls = []

    def record(request):
        calls.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return RemoteWorkflowStore(base_url=BASE_URL, api_key="secret", client=client), calls


class TestApiBaseUrl:
    """Prefix handling."""

    @pytest.mark.parametrize("url", [BASE_URL, f"{BASE_URL}/", f"{BASE_URL}/api/v1"])
    def test_single_prefix(self, url):
        assert api_base_url(url) == f"{BASE_URL}/api/v1"


class TestCleanWorkflowForUpdate:
    """PUT payload shaping."""

    def test_drops_read_only_fields(self, linear_workflow):
        workflow = linear_workflow.model_copy(update={"active": True, "tags": ["x"]})
        payload = clean_workflow_for_update(workflow)

        for key in ("id", "active", "tags"):
            assert key not in payload
        assert payload["name"] == "Test Workflow"
        assert payload["connections"]["Webhook"]["main"][0][0]["node"] == "Set"

    def test_drops_extra_read_only_fields(self, make_workflow, make_node):
        workflow = make_workflow([make_node("Set")], versionId="v9", staticData={"a": 1})
        payload = clean_workflow_for_update(workflow)
        assert "versionId" not in payload
        assert "staticData" not in payload

    def test_filters_unknown_settings(self, make_workflow, make_node):
        workflow = make_workflow([make_node("Set")])
        workflow.settings = {"executionOrder": "v1", "timezone": "UTC", "bogus": True}

        assert clean_workflow_for_update(workflow)["settings"] == {
            "executionOrder": "v1",
            "timezone": "UTC",
        }

    def test_settings_fallback(self, make_workflow, make_node):
        workflow = make_workflow([make_node("Set")])
        workflow.settings = {"bogus": True}
        assert clean_workflow_for_update(workflow)["settings"] == {"executionOrder": "v1"}


class TestRequests:
    """Wire behaviour of fetch, persist and toggles."""

    def test_fetch_sends_key_and_prefix(self):
        store, calls = make_store(lambda request: httpx.Response(200, json=remote_workflow()))

        workflow = asyncio.run(store.fetch("wf-1"))

        assert workflow.name == "Remote"
        assert calls[0].method == "GET"
        assert str(calls[0].url) == f"{BASE_URL}/api/v1/workflows/wf-1"
        assert calls[0].headers[API_KEY_HEADER] == "secret"

    def test_unknown_fields_survive_fetch(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=remote_workflow()))
        workflow = asyncio.run(store.fetch("wf-1"))
        assert workflow.to_wire()["versionId"] == "abc"

    def test_persist_puts_cleaned_body(self, linear_workflow):
        store, calls = make_store(
            lambda request: httpx.Response(200, json=json.loads(request.content))
        )

        asyncio.run(store.persist("wf-1", linear_workflow))

        body = json.loads(calls[0].content)
        assert calls[0].method == "PUT"
        assert "id" not in body
        assert body["settings"] == {"executionOrder": "v1"}

    def test_not_found(self):
        store, _ = make_store(lambda request: httpx.Response(404, json={"message": "nope"}))
        with pytest.raises(WorkflowNotFoundError):
            asyncio.run(store.fetch("wf-1"))

    def test_error_detail_from_body(self):
        store, _ = make_store(
            lambda request: httpx.Response(400, json={"message": "request/body must NOT have additional properties"})
        )
        with pytest.raises(WorkflowStoreError) as exc_info:
            asyncio.run(store.persist("wf-1", Workflow.from_wire(remote_workflow())))

        assert exc_info.value.status_code == 400
        assert "additional properties" in exc_info.value.message

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        store, _ = make_store(handler)
        with pytest.raises(WorkflowStoreError) as exc_info:
            asyncio.run(store.fetch("wf-1"))
        assert exc_info.value.status_code == 502

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        store, _ = make_store(handler)
        with pytest.raises(WorkflowStoreError) as exc_info:
            asyncio.run(store.fetch("wf-1"))
        assert exc_info.value.status_code == 504


class TestToggles:
    """Activation endpoints."""

    def test_activate(self):
        store, calls = make_store(
            lambda request: httpx.Response(200, json=remote_workflow(active=True))
        )

        workflow = asyncio.run(store.activate("wf-1"))

        assert workflow.active is True
        assert calls[0].method == "POST"
        assert calls[0].url.path == "/api/v1/workflows/wf-1/activate"

    def test_activation_refused(self):
        store, _ = make_store(
            lambda request: httpx.Response(400, json={"message": "Workflow has no node to start the workflow"})
        )
        with pytest.raises(ActivationError) as exc_info:
            asyncio.run(store.activate("wf-1"))
        assert "no node to start" in exc_info.value.message

    def test_deactivate_not_found_is_not_activation_error(self):
        store, _ = make_store(lambda request: httpx.Response(404))
        with pytest.raises(WorkflowNotFoundError):
            asyncio.run(store.deactivate("wf-1"))