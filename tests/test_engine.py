"""
Tests for batch transaction semantics of WorkflowDiffEngine
"""
import pytest

from flowpatch.core.constants import BATCH_LEVEL_INDEX, DiffErrorCode
from flowpatch.diff.engine import WorkflowDiffEngine
from flowpatch.schemas.api_models import DiffRequest


@pytest.fixture
def engine():
    """Strict engine with the real structural validator."""
    return WorkflowDiffEngine(skip_validation=False)


def add_node(name, node_type="n8n-nodes-base.set"):
    return {"type": "addNode", "node": {"name": name, "type": node_type, "position": [0, 0]}}


class TestBatchBasics:
    """Ordering, empty batches and result shape."""

    def test_empty_batch_is_identity(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {"operations": []})

        assert result.success is True
        assert result.operations_applied == 0
        assert result.workflow.to_wire() == linear_workflow.to_wire()
        assert result.workflow is not linear_workflow

    def test_empty_batch_is_identity_for_invalid_workflow(self, engine, make_workflow, make_node):
        workflow = make_workflow([make_node("A"), make_node("B")])
        result = engine.apply_diff(workflow, {"operations": []})

        assert result.success is True
        assert result.errors == []
        assert result.workflow.to_wire() == workflow.to_wire()
        assert result.warnings[0].code == DiffErrorCode.STRUCTURAL_VIOLATION

    def test_operation_sees_earlier_operations(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, DiffRequest(operations=[
            add_node("N"),
            {"type": "addConnection", "source": "HTTP Request", "target": "N"},
        ]))

        assert result.success is True
        assert result.applied_indices == [0, 1]
        assert result.workflow.connections["HTTP Request"]["main"][0][0].node == "N"

    def test_rename_then_reference_by_id(self, engine, gate_workflow):
        result = engine.apply_diff(gate_workflow, {"operations": [
            {"type": "updateNode", "nodeId": "id-reject", "updates": {"name": "Denied"}},
            {"type": "moveNode", "nodeId": "id-reject", "position": [5, 5]},
            {"type": "removeConnection", "source": "Gate", "target": "Denied", "branch": "false"},
            {"type": "addConnection", "source": "Gate", "target": "Denied", "branch": "false"},
        ]})

        assert result.success is True
        assert result.workflow.connections["Gate"]["main"][1][0].node == "Denied"
        assert "Reject" not in result.workflow.node_names()

    def test_input_is_not_mutated(self, engine, linear_workflow):
        before = linear_workflow.to_wire()
        engine.apply_diff(linear_workflow, {"operations": [
            {"type": "updateNode", "nodeName": "Set", "updates": {"name": "Set Fields"}},
        ]})
        assert linear_workflow.to_wire() == before


class TestAtomicity:
    """A failure anywhere discards the whole working copy."""

    def test_failure_returns_no_workflow(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {"operations": [
            add_node("N"),
            {"type": "addConnection", "source": "Set", "target": "N"},
            {"type": "removeNode", "nodeName": "Ghost"},
            {"type": "updateName", "name": "never applied"},
        ]})

        assert result.success is False
        assert result.workflow is None
        assert result.applied_indices == [0, 1]
        assert result.failed_indices == [2]
        assert result.failed_index == 2
        assert result.errors[0].operation == 2
        assert result.errors[0].code == DiffErrorCode.NODE_NOT_FOUND
        assert "operation 2" in result.message

    def test_prefix_reproduces_applied_indices(self, engine, linear_workflow):
        operations = [
            add_node("N"),
            {"type": "addConnection", "source": "Set", "target": "N"},
            add_node("N"),
        ]
        failed = engine.apply_diff(linear_workflow, {"operations": operations})
        prefix = engine.apply_diff(linear_workflow, {"operations": operations[:2]})

        assert failed.success is False
        assert failed.errors[0].code == DiffErrorCode.DUPLICATE_IDENTIFIER
        assert prefix.success is True
        assert prefix.applied_indices == failed.applied_indices

    def test_malformed_operation_reported_at_its_index(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {"operations": [
            {"type": "updateName", "name": "ok"},
            {"type": "updateNode", "nodeName": "Set", "changes": {"name": "x"}},
        ]})

        assert result.success is False
        assert result.errors[0].operation == 1
        assert result.errors[0].code == DiffErrorCode.INVALID_OPERATION

    def test_activation_intent_dropped_on_failure(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {"operations": [
            {"type": "activateWorkflow"},
            {"type": "removeNode", "nodeName": "Ghost"},
        ]})
        assert result.should_activate is False


class TestContinueOnError:
    """Opt-in best-effort mode."""

    def test_skips_failures_and_keeps_the_rest(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {
            "continueOnError": True,
            "operations": [
                {"type": "updateName", "name": "Renamed"},
                {"type": "removeNode", "nodeName": "Ghost"},
                {"type": "addTag", "tag": "prod"},
            ],
        })

        assert result.success is True
        assert result.applied_indices == [0, 2]
        assert result.failed_indices == [1]
        assert result.workflow.name == "Renamed"
        assert result.workflow.tags == ["prod"]
        assert "continueOnError" in result.message

    def test_skipped_operation_drops_its_warnings(self, engine, gate_workflow):
        result = engine.apply_diff(gate_workflow, {
            "continueOnError": True,
            "operations": [
                {"type": "addConnection", "source": "Gate", "target": "Accept", "sourceIndex": 0},
                {"type": "updateName", "name": "Renamed"},
            ],
        })

        assert result.success is True
        assert result.failed_indices == [0]
        assert result.warnings == []

    def test_all_failed(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {
            "continueOnError": True,
            "operations": [{"type": "removeNode", "nodeName": "Ghost"}],
        })
        assert result.success is False
        assert result.workflow is None


class TestStructuralValidation:
    """Strict mode, validate-only mode and the skip switch."""

    def test_strict_mode_rejects_findings(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {"operations": [add_node("Orphan")]})

        assert result.success is False
        assert result.workflow is None
        assert result.applied_indices == [0]
        assert all(error.operation == BATCH_LEVEL_INDEX for error in result.errors)
        assert result.errors[0].code == DiffErrorCode.STRUCTURAL_VIOLATION
        assert "Orphan" in result.errors[0].message

    def test_validate_only_reports_warnings(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {
            "validateOnly": True,
            "operations": [add_node("Orphan")],
        })

        assert result.success is True
        assert result.errors == []
        assert result.warnings[0].code == DiffErrorCode.STRUCTURAL_VIOLATION
        assert "not applied" in result.message

    def test_skip_validation_downgrades_findings(self, linear_workflow):
        engine = WorkflowDiffEngine(skip_validation=True)
        result = engine.apply_diff(linear_workflow, {"operations": [add_node("Orphan")]})

        assert result.success is True
        assert result.workflow is not None
        assert result.warnings[0].code == DiffErrorCode.STRUCTURAL_VIOLATION

    def test_custom_validator(self, linear_workflow):
        def no_drafts(workflow):
            return ["nope"] if workflow.name.startswith("Draft") else []

        engine = WorkflowDiffEngine(validator=no_drafts, skip_validation=False)
        result = engine.apply_diff(linear_workflow, {"operations": [
            {"type": "updateName", "name": "Draft 2"},
        ]})

        assert result.success is False
        assert result.errors[0].message == "nope"

    def test_existing_findings_do_not_block(self, engine, make_workflow, make_node):
        workflow = make_workflow([make_node("A"), make_node("B")])
        result = engine.apply_diff(workflow, {"operations": [
            {"type": "updateName", "name": "Still unwired"},
        ]})

        assert result.success is True
        assert result.errors == []
        assert result.warnings[0].code == DiffErrorCode.STRUCTURAL_VIOLATION
        assert result.warnings[0].message.startswith("Multi-node workflow has no connections")

    def test_new_findings_block_while_existing_ones_warn(self, engine, make_workflow, make_node, make_link):
        workflow = make_workflow(
            [make_node("Hook", "n8n-nodes-base.webhook"), make_node("Set")],
            {"Hook": {"main": [[make_link("Set")]]}},
            name=""
        )
        result = engine.apply_diff(workflow, {"operations": [add_node("Orphan")]})

        assert result.success is False
        assert len(result.errors) == 1
        assert "Orphan" in result.errors[0].message
        assert [warning.message for warning in result.warnings] == ["Workflow name is required"]

class TestResultExtras:
    """Intent flags, stale cleanup report and unexpected failures."""

    def test_activation_intent(self, engine, linear_workflow):
        result = engine.apply_diff(linear_workflow, {"operations": [{"type": "activateWorkflow"}]})
        assert result.success is True
        assert result.should_activate is True
        assert result.should_deactivate is False

    def test_stale_connections_reported(self, engine, make_workflow, make_node, make_link):
        workflow = make_workflow(
            [make_node("Hook", "n8n-nodes-base.webhook"), make_node("Set")],
            {"Hook": {"main": [[make_link("Set"), make_link("Gone")]]}}
        )
        result = engine.apply_diff(workflow, {"operations": [{"type": "cleanStaleConnections"}]})

        assert result.success is True
        assert [item.to_wire() for item in result.stale_connections_removed] == [
            {"from": "Hook", "to": "Gone"}
        ]

    def test_unexpected_exception_becomes_batch_error(self, linear_workflow):
        def broken(workflow):
            raise RuntimeError("boom")

        engine = WorkflowDiffEngine(validator=broken, skip_validation=False)
        result = engine.apply_diff(linear_workflow, {"operations": []})

        assert result.success is False
        assert result.errors[0].operation == BATCH_LEVEL_INDEX
        assert "boom" in result.errors[0].message
