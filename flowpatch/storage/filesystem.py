"""
Filesystem Workflow Store
One JSON file per workflow; local and development backend
"""
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from flowpatch.core.config import get_settings
from flowpatch.core.logging import get_logger
from flowpatch.schemas.workflow import Workflow
from flowpatch.storage.base import ActivationError, WorkflowNotFoundError, WorkflowStoreError
from flowpatch.validator.node_types import enabled_activatable_triggers

logger = get_logger(__name__)


class FilesystemWorkflowStore:
    """
    Stores workflows as <WORKFLOWS_PATH>/<id>.json

    Writes go to a temp file first and are renamed into place, so a crash
    never leaves a half-written workflow. The async protocol methods run
    their file I/O in a worker thread to keep the event loop free.
    """

    def __init__(self, base_path: Optional[Path] = None):
        settings = get_settings()
        self.base_path = Path(base_path or settings.WORKFLOWS_PATH)
        self.base_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"Workflow store initialized at: {self.base_path}")

    # ------------------------------------------------------------------------
    # WorkflowStore protocol
    # ------------------------------------------------------------------------

    async def fetch(self, workflow_id: str) -> Workflow:
        return await asyncio.to_thread(self._load, self._path(workflow_id), workflow_id)

    async def persist(self, workflow_id: str, workflow: Workflow) -> Workflow:
        """
        Replace the stored copy of an existing workflow

        Raises:
            WorkflowNotFoundError: Nothing stored under that id
        """
        file_path = self._path(workflow_id)
        if not file_path.exists():
            raise WorkflowNotFoundError(workflow_id)

        stored = workflow.model_copy(update={
            "id": workflow_id,
            "updated_at": datetime.now(timezone.utc)
        })
        await asyncio.to_thread(self._write_json, file_path, stored.to_wire())

        logger.info(f"Workflow persisted: {workflow_id}")
        return stored

    async def activate(self, workflow_id: str) -> Workflow:
        """
        Mark a workflow active

        Raises:
            ActivationError: No enabled trigger node to start it
        """
        workflow = await self.fetch(workflow_id)
        if not enabled_activatable_triggers(workflow.nodes):
            raise ActivationError(
                "Workflow has no enabled trigger node (webhook, schedule, "
                "executeWorkflowTrigger, etc.) and cannot be activated"
            )
        return await self._set_active(workflow_id, workflow, True)

    async def deactivate(self, workflow_id: str) -> Workflow:
        workflow = await self.fetch(workflow_id)
        return await self._set_active(workflow_id, workflow, False)

    # ------------------------------------------------------------------------
    # Seeding and inspection
    # ------------------------------------------------------------------------

    def save(self, workflow: Workflow) -> Workflow:
        """Create or overwrite a workflow, assigning an id from its name if missing"""
        workflow_id = workflow.id or _slugify(workflow.name)
        if not workflow_id:
            raise WorkflowStoreError("Workflow needs an id or a name to be saved")

        now = datetime.now(timezone.utc)
        stored = workflow.model_copy(update={
            "id": workflow_id,
            "created_at": workflow.created_at or now,
            "updated_at": now
        })
        self._write_json(self._path(workflow_id), stored.to_wire())

        logger.info(f"Workflow saved: {workflow_id}")
        return stored

    def list_workflows(self) -> List[dict]:
        """Summaries of every stored workflow, sorted by id"""
        summaries = []
        for file_path in sorted(self.base_path.glob("*.json")):
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable workflow file {file_path.name}: {e}")
                continue
            summaries.append({
                "id": data.get("id", file_path.stem),
                "name": data.get("name", ""),
                "active": data.get("active", False),
                "nodes": len(data.get("nodes", [])),
                "updatedAt": data.get("updatedAt")
            })
        return summaries

    def delete(self, workflow_id: str) -> bool:
        file_path = self._path(workflow_id)
        if file_path.exists():
            file_path.unlink()
            logger.info(f"Workflow deleted: {workflow_id}")
            return True
        return False

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    def _path(self, workflow_id: str) -> Path:
        if not workflow_id or "/" in workflow_id or "\\" in workflow_id or workflow_id.startswith("."):
            raise WorkflowStoreError(f"Invalid workflow id: {workflow_id!r}", status_code=400)
        return self.base_path / f"{workflow_id}.json"

    async def _set_active(self, workflow_id: str, workflow: Workflow, active: bool) -> Workflow:
        stored = workflow.model_copy(update={
            "active": active,
            "updated_at": datetime.now(timezone.utc)
        })
        await asyncio.to_thread(self._write_json, self._path(workflow_id), stored.to_wire())

        logger.info(f"Workflow {'activated' if active else 'deactivated'}: {workflow_id}")
        return stored

    def _write_json(self, file_path: Path, data: dict) -> None:
        """Write JSON atomically"""
        temp_path = file_path.with_suffix(".tmp")

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        # Atomic rename
        temp_path.replace(file_path)

    def _load(self, file_path: Path, workflow_id: str) -> Workflow:
        if not file_path.exists():
            raise WorkflowNotFoundError(workflow_id)

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Workflow.from_wire(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise WorkflowStoreError(f"Stored workflow {workflow_id} is corrupt: {e}")


def _slugify(name: str) -> str:
    return "-".join(part for part in "".join(
        ch.lower() if ch.isalnum() else " " for ch in name
    ).split())
