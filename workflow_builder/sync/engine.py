"""
Sync engine: diff the graph against the last confirmed server state and save it.

A save runs in two passes. Pass 1 hands every new step a provisional
identifier counted up from the workflow's watermark (new_step_id), so that
new steps can point at each other. Pass 2 resolves each step's actions and
emits either a full create payload (new steps) or a partial update payload
holding only what differs from the snapshot (existing steps). Creates and
updates go out as two independent bulk calls.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..api.client import StepStore
from ..api.schema import BulkCreateRequest, BulkUpdateRequest, StepPayload
from ..core.errors import RemoteStoreError, SaveValidationError, SchemaError
from ..core.logging import get_logger
from ..graph.actions import resolve_actions
from ..graph.model import GraphModel
from ..graph.models import Action, ConditionStep, Position
from ..layout.engine import layout_graph, step_positions
from .snapshot import MISSING, OriginalSnapshot

logger = get_logger(__name__)

POSITION_TOLERANCE = 0.01


class SaveStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    NO_CHANGES = "no_changes"
    INVALID = "invalid"
    BUSY = "busy"


@dataclass
class SaveReport:
    """ Outcome of one save attempt; becomes exactly one operator notification """
    status: SaveStatus
    created: int = 0
    updated: int = 0
    messages: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (SaveStatus.SUCCESS, SaveStatus.NO_CHANGES)

    @property
    def summary(self) -> str:
        return "; ".join(self.messages)


@dataclass
class SavePlan:
    """ What a save would send, before anything is sent """
    watermark: int
    workflow_id: Optional[int]
    provisional: Dict[str, int] = field(default_factory=dict)
    creates: List[StepPayload] = field(default_factory=list)
    create_nodes: List[str] = field(default_factory=list)
    updates: List[Dict[str, Any]] = field(default_factory=list)
    update_nodes: List[str] = field(default_factory=list)
    actions: Dict[str, tuple] = field(default_factory=dict)
    positions: Dict[str, Position] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.creates and not self.updates


Notifier = Callable[[SaveReport], None]


def _log_notifier(report: SaveReport) -> None:
    if report.status in (SaveStatus.FAILED, SaveStatus.INVALID, SaveStatus.PARTIAL):
        logger.error(f"Save {report.status.value}: {report.summary}")
    else:
        logger.info(f"Save {report.status.value}: {report.summary}")


def _position_fields(position: Optional[Position]) -> Dict[str, float]:
    position = (position or Position(0, 0)).rounded()
    return {"x": position.x, "y": position.y}


def _action_fields(true_action: Action, false_action: Action) -> Dict[str, Any]:
    return {
        "if_true_action": true_action.type.value,
        "if_true_action_data": dict(true_action.data),
        "if_false_action": false_action.type.value,
        "if_false_action_data": dict(false_action.data),
    }


def default_failure_message(name: str) -> str:
    return f"{name or 'Step'} validation failed"


def is_new_step(graph: GraphModel, step: ConditionStep) -> bool:
    return step.step_id is None or step.step_id >= graph.workflow.new_step_id


def provisional_ids(graph: GraphModel) -> Dict[str, int]:
    """
    Pass 1: number every new step from the watermark, in graph order.

    Identifiers from an earlier unsaved attempt are recomputed the same
    way, so the assigned set is always watermark .. watermark+N-1.
    """
    next_id = graph.workflow.new_step_id
    assigned: Dict[str, int] = {}
    for step in graph.condition_steps():
        if is_new_step(graph, step):
            assigned[step.node_id] = next_id
            next_id += 1
    return assigned


class SyncEngine:

    def __init__(self, graph: GraphModel, store: StepStore, snapshot: Optional[OriginalSnapshot] = None,
                 notifier: Optional[Notifier] = None):
        self.graph = graph
        self.store = store
        self.snapshot = snapshot if snapshot is not None else OriginalSnapshot()
        self.notifier = notifier or _log_notifier
        self._saving = False

    @property
    def saving(self) -> bool:
        return self._saving

    @property
    def watermark(self) -> int:
        return self.graph.workflow.new_step_id

    def is_new(self, step: ConditionStep) -> bool:
        return is_new_step(self.graph, step)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def assign_provisional_ids(self) -> Dict[str, int]:
        return provisional_ids(self.graph)

    def plan(self) -> SavePlan:
        """
        Compute the creates and updates a save would send, without sending anything.

        Provisional identifiers are returned in the plan rather than written to
        the steps, and positions for steps that lack one are computed into
        the plan; the graph itself is not changed.
        """
        workflow_id = self.graph.workflow.workflow_id
        if workflow_id is None:
            raise SaveValidationError("Workflow ID is required. Please create a workflow first.")

        plan = SavePlan(watermark=self.watermark, workflow_id=workflow_id)
        plan.provisional = self.assign_provisional_ids()
        plan.positions = step_positions(self.graph)

        for order, step in enumerate(self.graph.condition_steps(), start=1):
            true_action, false_action = resolve_actions(self.graph, step, plan.provisional)
            plan.actions[step.node_id] = (true_action, false_action)

            if step.node_id in plan.provisional:
                plan.creates.append(self._create_payload(step, plan.provisional[step.node_id], order,
                                                         plan.positions[step.node_id],
                                                         true_action, false_action))
                plan.create_nodes.append(step.node_id)
                continue

            update = self._update_payload(step, workflow_id, order, plan.positions[step.node_id],
                                          true_action, false_action)
            if update is not None:
                plan.updates.append(update)
                plan.update_nodes.append(step.node_id)

        return plan

    def pending_changes(self) -> SavePlan:
        return self.plan()

    @property
    def dirty(self) -> bool:
        try:
            return not self.plan().is_empty
        except SaveValidationError:
            return True

    def _create_payload(self, step: ConditionStep, step_id: int, order: int, position: Optional[Position],
                        true_action: Action, false_action: Action) -> StepPayload:
        name = step.name or f"Step {order}"
        return StepPayload(
            id=step_id,
            name=name,
            description=step.description or f"Validation step: {step.name}",
            order=order,
            left_expression=step.left_expression or "",
            operation=step.operator or "==",
            right_expression=step.right_expression or "",
            failure_message=step.failure_message or default_failure_message(step.name),
            is_active=step.is_active,
            **_position_fields(position),
            **_action_fields(true_action, false_action),
        )

    def _update_payload(self, step: ConditionStep, workflow_id: int, order: int, position: Optional[Position],
                        true_action: Action, false_action: Action) -> Optional[Dict[str, Any]]:
        """
        Pass 2 for an existing step: only changed fields, plus identifier,
        order and position which always go out. None when nothing changed.
        """
        current = {
            "name": step.name,
            "left_expression": step.left_expression,
            "operation": step.operator,
            "right_expression": step.right_expression,
            "failure_message": step.failure_message,
            "is_active": step.is_active,
            **_action_fields(true_action, false_action),
        }
        coords = _position_fields(position)
        payload: Dict[str, Any] = {"step_id": step.step_id, "workflow_id": workflow_id, "order": order, **coords}

        if step.node_id not in self.snapshot:
            payload.update(current)
            return payload

        changed = self.snapshot.value(step.node_id, "order") != order
        for axis in ("x", "y"):
            original = self.snapshot.value(step.node_id, axis)
            if original is MISSING or original is None or abs(coords[axis] - original) > POSITION_TOLERANCE:
                changed = True

        for key, value in current.items():
            if self.snapshot.value(step.node_id, key) != value:
                payload[key] = value
                changed = True

        return payload if changed else None

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def save(self) -> SaveReport:
        """
        Send pending creates and updates and reconcile the results.

        The two calls are independent: a rejected create leaves the new steps
        with their provisional identifiers for a retry and does not undo a
        successful update, and the other way round.
        """
        if self._saving:
            report = SaveReport(SaveStatus.BUSY, messages=["A save is already in progress"])
            self.notifier(report)
            return report

        self._saving = True
        try:
            report = self._save()
        finally:
            self._saving = False
        self.notifier(report)
        return report

    def _save(self) -> SaveReport:
        try:
            plan = self.plan()
        except SaveValidationError as e:
            return SaveReport(SaveStatus.INVALID, messages=[str(e)])

        if plan.is_empty:
            return SaveReport(SaveStatus.NO_CHANGES, messages=["No changes to save"])

        # positions sent in the plan become the steps' own
        layout_graph(self.graph)
        for node_id, step_id in plan.provisional.items():
            self.graph.get_node(node_id).step_id = step_id
        for node_id, (true_action, false_action) in plan.actions.items():
            step = self.graph.get_node(node_id)
            step.if_true_action, step.if_false_action = true_action, false_action

        report = SaveReport(SaveStatus.SUCCESS)
        failures = 0
        attempted = 0

        if plan.creates:
            attempted += 1
            try:
                report.created = self._send_creates(plan)
                report.messages.append(f"Successfully created {report.created} steps")
            except (RemoteStoreError, SchemaError) as e:
                failures += 1
                report.messages.append(f"Failed to create steps: {e}")

        if plan.updates:
            attempted += 1
            try:
                report.updated = self._send_updates(plan)
                report.messages.append(f"Successfully updated {report.updated} steps")
            except (RemoteStoreError, SchemaError) as e:
                failures += 1
                report.messages.append(f"Failed to update steps: {e}")

        if failures == attempted:
            report.status = SaveStatus.FAILED
        elif failures:
            report.status = SaveStatus.PARTIAL
        return report

    def _send_creates(self, plan: SavePlan) -> int:
        request = BulkCreateRequest(workflow_id=plan.workflow_id, new_step_id=plan.watermark, steps=plan.creates)
        logger.info(f"Creating {len(plan.creates)} steps (watermark {plan.watermark})")
        response = self.store.bulk_create(request)

        created = response.created
        confirmed_ids = []
        for index, (node_id, payload) in enumerate(zip(plan.create_nodes, plan.creates)):
            returned = created[index] if index < len(created) else None
            step_id = returned.id if returned is not None and returned.id is not None else payload.id
            confirmed_ids.append(step_id)

            step = self.graph.get_node(node_id)
            step.step_id = step_id
            # defaults filled in by the payload are now the stored values
            step.name = payload.name
            step.description = payload.description
            step.operator = payload.operation
            step.failure_message = payload.failure_message
            fields = payload.model_dump()
            fields["id"] = step_id
            self.snapshot.record(node_id, fields)

        next_watermark = response.new_step_id or max(confirmed_ids) + 1
        if next_watermark > self.graph.workflow.new_step_id:
            self.graph.workflow.new_step_id = next_watermark
        return response.created_count or len(created) or len(plan.creates)

    def _send_updates(self, plan: SavePlan) -> int:
        request = BulkUpdateRequest(new_step_id=plan.watermark, updates=plan.updates)
        logger.info(f"Updating {len(plan.updates)} steps")
        response = self.store.bulk_update(request)

        for node_id, update in zip(plan.update_nodes, plan.updates):
            self.snapshot.merge(node_id, update)
        return response.updated_count or len(response.steps) or len(plan.updates)
