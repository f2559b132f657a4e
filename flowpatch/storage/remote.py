"""
Remote Workflow Store
HTTP client for the automation platform's public REST API
"""
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from flowpatch.core.config import get_settings
from flowpatch.core.constants import DEFAULT_UPDATE_SETTINGS, KNOWN_SETTINGS_KEYS
from flowpatch.core.logging import get_logger
from flowpatch.schemas.workflow import Workflow
from flowpatch.storage.base import ActivationError, WorkflowNotFoundError, WorkflowStoreError

logger = get_logger(__name__)

API_KEY_HEADER = "X-N8N-API-KEY"

# Fields the platform manages itself and rejects on update
READ_ONLY_FIELDS = frozenset({
    "id",
    "createdAt",
    "updatedAt",
    "versionId",
    "versionCounter",
    "meta",
    "staticData",
    "pinData",
    "tags",
    "description",
    "isArchived",
    "usedCredentials",
    "sharedWithProjects",
    "triggerCount",
    "shared",
    "active",
    "activeVersionId",
    "activeVersion",
})


def api_base_url(url: str) -> str:
    """Append the /api/v1 prefix unless the URL already carries it"""
    url = url.rstrip("/")
    return url if url.endswith("/api/v1") else f"{url}/api/v1"


def clean_workflow_for_update(workflow: Workflow) -> Dict[str, Any]:
    """
    Build the PUT payload for a workflow

    Drops read-only fields and unknown settings keys; when no known setting
    survives, settings fall back to {"executionOrder": "v1"}.
    """
    payload = {
        key: value for key, value in workflow.to_wire().items()
        if key not in READ_ONLY_FIELDS
    }

    settings = {
        key: value for key, value in (workflow.settings or {}).items()
        if key in KNOWN_SETTINGS_KEYS
    }
    payload["settings"] = settings or dict(DEFAULT_UPDATE_SETTINGS)
    return payload


class RemoteWorkflowStore:
    """
    Workflow store backed by the platform's REST API

    Pass `client` to reuse a configured httpx.AsyncClient (tests hand in one
    built on httpx.MockTransport); otherwise a client is created per call.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        settings = get_settings()
        base_url = base_url or settings.REMOTE_API_URL
        if not base_url:
            raise WorkflowStoreError("REMOTE_API_URL is not configured")

        self.base_url = api_base_url(base_url)
        self.api_key = api_key if api_key is not None else settings.REMOTE_API_KEY
        self.timeout = timeout or settings.REMOTE_TIMEOUT_SECONDS
        self._client = client

        logger.info(f"Remote workflow store using: {self.base_url}")

    # ------------------------------------------------------------------------
    # WorkflowStore protocol
    # ------------------------------------------------------------------------

    async def fetch(self, workflow_id: str) -> Workflow:
        data = await self._request("GET", f"/workflows/{workflow_id}", workflow_id)
        return self._to_workflow(data, workflow_id)

    async def persist(self, workflow_id: str, workflow: Workflow) -> Workflow:
        payload = clean_workflow_for_update(workflow)
        data = await self._request("PUT", f"/workflows/{workflow_id}", workflow_id, json=payload)
        logger.info(f"Workflow persisted: {workflow_id}")
        return self._to_workflow(data, workflow_id)

    async def activate(self, workflow_id: str) -> Workflow:
        data = await self._toggle(workflow_id, "activate")
        return self._to_workflow(data, workflow_id)

    async def deactivate(self, workflow_id: str) -> Workflow:
        data = await self._toggle(workflow_id, "deactivate")
        return self._to_workflow(data, workflow_id)

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    async def _toggle(self, workflow_id: str, action: str) -> Dict[str, Any]:
        try:
            return await self._request("POST", f"/workflows/{workflow_id}/{action}", workflow_id)
        except WorkflowNotFoundError:
            raise
        except WorkflowStoreError as e:
            raise ActivationError(e.message, status_code=e.status_code)

    async def _request(
        self,
        method: str,
        path: str,
        workflow_id: str,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key

        logger.debug(f"Remote API request: {method} {path}")

        try:
            if self._client is not None:
                response = await self._client.request(
                    method, f"{self.base_url}{path}", json=json, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        method, f"{self.base_url}{path}", json=json, headers=headers, timeout=self.timeout
                    )
        except httpx.TimeoutException:
            raise WorkflowStoreError(f"Remote API timed out: {method} {path}", status_code=504)
        except httpx.HTTPError as e:
            raise WorkflowStoreError(f"Remote API HTTP error: {e}", status_code=502)

        if response.status_code == 404:
            raise WorkflowNotFoundError(workflow_id)
        if response.status_code >= 400:
            raise WorkflowStoreError(
                f"Remote API call failed with status {response.status_code}: "
                f"{_error_detail(response)}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError:
            raise WorkflowStoreError(f"Remote API returned invalid JSON for {method} {path}")

    @staticmethod
    def _to_workflow(data: Dict[str, Any], workflow_id: str) -> Workflow:
        try:
            return Workflow.from_wire(data)
        except ValidationError as e:
            raise WorkflowStoreError(f"Remote API returned an invalid workflow {workflow_id}: {e}")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "message" in body:
        return str(body["message"])
    return response.text
