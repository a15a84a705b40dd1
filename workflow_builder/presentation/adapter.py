""" Convert between the store's step list and the presentation graph. """
from typing import Any, Dict, List, Optional, Tuple

from ..api.schema import StepDetail, WorkflowResponse
from ..core.logging import get_logger
from ..graph.factory import condition_node_id, edge_id, terminal_node_id
from ..graph.model import GraphModel
from ..graph.models import (
    Action,
    ActionType,
    Branch,
    ConditionStep,
    Edge,
    NodeType,
    Position,
    TerminalNode,
    WorkflowMeta,
)
from ..layout.engine import LayoutStep, compute_layout, terminal_offset
from ..sync.snapshot import OriginalSnapshot

logger = get_logger(__name__)

BRANCH_COLORS = {Branch.TRUE: "#22C55E", Branch.FALSE: "#EF4444"}
TERMINAL_LABELS = {NodeType.SUCCESS: "Action: Success", NodeType.FAIL: "Action: Fail"}


def _action_from_wire(action_name: str, data: Optional[Dict[str, Any]], branch: Branch) -> Action:
    action_type = ActionType.parse(action_name)
    if action_type is None:
        logger.warning(f"Unknown action '{action_name}', using the {branch.value} branch default")
        return Action.default_for(branch)
    return Action(action_type, dict(data or {}))


def _step_from_detail(detail: StepDetail) -> ConditionStep:
    return ConditionStep(
        node_id=condition_node_id(detail.id),
        step_id=detail.id,
        name=detail.name,
        description=detail.description or "",
        left_expression=detail.left_expression,
        operator=detail.operation,
        right_expression=detail.right_expression,
        if_true_action=_action_from_wire(detail.if_true_action, detail.if_true_action_data, Branch.TRUE),
        if_false_action=_action_from_wire(detail.if_false_action, detail.if_false_action_data, Branch.FALSE),
        failure_message=detail.failure_message or "",
        is_active=detail.is_active,
    )


def _layout_step(step: ConditionStep, detail: StepDetail, known_ids) -> LayoutStep:
    targets = {}
    for branch in Branch:
        next_id = step.action_for(branch).next_step_id
        targets[branch] = next_id if next_id in known_ids else None
    return LayoutStep(
        key=detail.id,
        true_target=targets[Branch.TRUE],
        false_target=targets[Branch.FALSE],
        has_terminal_child=any(step.action_for(b).type is not ActionType.PROCEED_TO_STEP_BY_ID for b in Branch),
        position=Position(detail.x, detail.y) if detail.has_position else None,
    )


def load_graph(workflow: WorkflowResponse) -> Tuple[GraphModel, OriginalSnapshot]:
    """
    Build the presentation graph and its snapshot from a fetched workflow.

    Steps are taken in ascending order. Success/failure actions become terminal
    nodes next to their step; proceed actions become step-to-step edges when
    the target step belongs to the workflow.
    """
    meta = WorkflowMeta(
        workflow_id=workflow.id,
        name=workflow.name,
        description=workflow.description or "",
        execution_point=workflow.execution_point,
        status=workflow.status,
        is_default=workflow.is_default,
        initial_step=workflow.initial_step,
        new_step_id=workflow.new_step_id,
    )
    graph = GraphModel(meta)
    snapshot = OriginalSnapshot()

    details = sorted(workflow.steps, key=lambda d: d.order)
    steps = [_step_from_detail(detail) for detail in details]
    known_ids = {detail.id for detail in details}

    initial = workflow.initial_step if workflow.initial_step in known_ids else None
    positions = compute_layout(
        [_layout_step(step, detail, known_ids) for step, detail in zip(steps, details)],
        initial,
    )

    for step in steps:
        step.position = positions[step.step_id]
        graph.add_node(step)

    for step in steps:
        for branch in Branch:
            _connect_loaded_branch(graph, step, branch, known_ids)

    for order, step in enumerate(steps, start=1):
        position = step.position.rounded()
        snapshot.record(step.node_id, {
            "id": step.step_id,
            "name": step.name,
            "order": order,
            "x": position.x,
            "y": position.y,
            "left_expression": step.left_expression,
            "operation": step.operator,
            "right_expression": step.right_expression,
            "if_true_action": step.if_true_action.type.value,
            "if_true_action_data": step.if_true_action.data,
            "if_false_action": step.if_false_action.type.value,
            "if_false_action_data": step.if_false_action.data,
            "failure_message": step.failure_message,
            "is_active": step.is_active,
        })

    logger.info(f"Loaded workflow {workflow.id} with {len(steps)} steps")
    return graph, snapshot


def _connect_loaded_branch(graph: GraphModel, step: ConditionStep, branch: Branch, known_ids) -> None:
    action = step.action_for(branch)

    if action.type is ActionType.PROCEED_TO_STEP_BY_ID:
        next_id = action.next_step_id
        if next_id not in known_ids:
            if next_id is not None:
                logger.warning(f"Step {step.step_id} {branch.value} branch points to unknown step {next_id}")
            return
        target = condition_node_id(next_id)
        if graph.incoming(target):
            # the first branch into the target keeps the edge; this one keeps its stored action
            logger.warning(f"Step {next_id} already has an incoming edge, holding {step.node_id} {branch.value}")
            graph.hold_branch(step.node_id, branch)
            return
        graph.add_edge(Edge(edge_id(step.node_id, branch, target), step.node_id, target, branch))
        return

    if action.type is ActionType.COMPLETE_SUCCESS:
        node_type, text = NodeType.SUCCESS, action.data.get("message") or ""
    else:
        node_type, text = NodeType.FAIL, action.data.get("error") or ""

    terminal = TerminalNode(
        node_id=terminal_node_id(node_type, step.step_id, branch),
        type=node_type,
        text=text,
        position=terminal_offset(step.position, branch),
    )
    graph.add_node(terminal)
    graph.add_edge(Edge(edge_id(step.node_id, branch, terminal.node_id), step.node_id, terminal.node_id, branch))


# ============================================================================
# RENDERING
# ============================================================================

def _render_node(node) -> Dict[str, Any]:
    position = (node.position or Position(0, 0)).to_dict()
    if isinstance(node, ConditionStep):
        data = {
            "id": node.step_id,
            "label": node.name,
            "leftSide": node.left_expression,
            "operator": node.operator,
            "rightSide": node.right_expression,
            "ifTrueAction": node.if_true_action.type.value,
            "ifTrueActionData": dict(node.if_true_action.data),
            "ifFalseAction": node.if_false_action.type.value,
            "ifFalseActionData": dict(node.if_false_action.data),
            "failureMessage": node.failure_message,
            "isActive": node.is_active,
        }
    else:
        action_type = ActionType.COMPLETE_SUCCESS if node.type is NodeType.SUCCESS else ActionType.COMPLETE_FAILURE
        text_key = "message" if node.type is NodeType.SUCCESS else "error"
        data = {"label": TERMINAL_LABELS[node.type], text_key: node.text, "actionType": action_type.value}
    return {"id": node.node_id, "type": node.type.value, "position": position, "data": data}


def _render_edge(edge: Edge) -> Dict[str, Any]:
    rendered: Dict[str, Any] = {
        "id": edge.edge_id,
        "source": edge.source,
        "target": edge.target,
        "type": "smoothstep",
    }
    if edge.branch is not None:
        color = BRANCH_COLORS[edge.branch]
        rendered.update({
            "sourceHandle": edge.branch.value,
            "label": edge.branch.label,
            "style": {"stroke": color, "strokeWidth": 2},
            "labelStyle": {"fill": color, "fontWeight": 500},
            "markerEnd": {"type": "arrowclosed", "color": color},
        })
    return rendered


def render(graph: GraphModel) -> Dict[str, List[Dict[str, Any]]]:
    """Node and edge lists in the shape the canvas draws."""
    return {
        "nodes": [_render_node(node) for node in graph.nodes],
        "edges": [_render_edge(edge) for edge in graph.edges],
    }


def step_payload(step: ConditionStep, order: int, actions: Tuple[Action, Action],
                 step_id: Optional[int] = None) -> Dict[str, Any]:
    """Full wire dict of a step with its resolved (true, false) actions."""
    true_action, false_action = actions
    position = (step.position or Position(0, 0)).rounded()
    return {
        "id": step_id if step_id is not None else step.step_id,
        "name": step.name,
        "description": step.description,
        "order": order,
        "x": position.x,
        "y": position.y,
        "left_expression": step.left_expression,
        "operation": step.operator,
        "right_expression": step.right_expression,
        "if_true_action": true_action.type.value,
        "if_true_action_data": dict(true_action.data),
        "if_false_action": false_action.type.value,
        "if_false_action_data": dict(false_action.data),
        "failure_message": step.failure_message,
        "is_active": step.is_active,
    }
