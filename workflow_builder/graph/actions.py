""" Resolve a step's branches into persisted actions by following the graph's edges. """
from typing import Mapping, Optional, Tuple

from ..core.errors import SaveValidationError
from .model import GraphModel
from .models import Action, ActionType, Branch, ConditionStep, NodeType

PASSED_NOTE = "Condition passed"
FAILED_NOTE = "Condition failed"


def _generic_note(branch: Branch) -> str:
    return PASSED_NOTE if branch is Branch.TRUE else FAILED_NOTE


def _same_effect(current: Action, resolved: Action) -> bool:
    if current.type is not resolved.type:
        return False
    if resolved.type is ActionType.PROCEED_TO_STEP_BY_ID:
        return current.next_step_id == resolved.next_step_id
    key = "message" if resolved.type is ActionType.COMPLETE_SUCCESS else "error"
    return (current.data.get(key) or "") == resolved.data[key]


def resolve_action(graph: GraphModel, step: ConditionStep, branch: Branch,
                   ids: Optional[Mapping[str, int]] = None) -> Action:
    """
    Build the action for one branch of a step.

    A terminal node that is itself chained on to a condition is a pass-through,
    so the branch proceeds to that condition. A branch with no edge at all gets
    the default success/failure action with an empty text, unless the graph
    holds the branch, in which case its stored proceed action is kept. When
    the result has the same effect as the step's current action, the current
    action's data is kept as is.

    Args:
        ids: identifiers to use in place of step_id, keyed by node id
             (provisional identifiers not yet written to the steps)
    """
    ids = ids or {}

    def proceed(target: ConditionStep, note: str) -> Action:
        target_id = ids.get(target.node_id, target.step_id)
        if target_id is None:
            raise SaveValidationError(
                f"Branch {branch.value} of '{step.name or step.node_id}' leads to "
                f"'{target.name or target.node_id}' which has no identifier"
            )
        return Action.proceed(target_id, note)

    resolved: Action
    edge = graph.outgoing(step.node_id, branch)
    if not edge:
        current = step.action_for(branch)
        if graph.is_held(step.node_id, branch) and current.type is ActionType.PROCEED_TO_STEP_BY_ID:
            return Action(current.type, dict(current.data))
        resolved = Action.default_for(branch)
    else:
        target = graph.get_node(edge.target)
        onward = graph.outgoing(target.node_id, None) if not isinstance(target, ConditionStep) else None
        nxt = graph.get_node(onward.target) if onward else None

        if isinstance(target, ConditionStep):
            resolved = proceed(target, _generic_note(branch))
        elif isinstance(nxt, ConditionStep):
            resolved = proceed(nxt, target.text or _generic_note(branch))
        elif target.type is NodeType.SUCCESS:
            resolved = Action.success(target.text)
        else:
            resolved = Action.failure(target.text)

    current = step.action_for(branch)
    if _same_effect(current, resolved):
        return Action(current.type, dict(current.data))
    return resolved


def resolve_actions(graph: GraphModel, step: ConditionStep,
                    ids: Optional[Mapping[str, int]] = None) -> Tuple[Action, Action]:
    return resolve_action(graph, step, Branch.TRUE, ids), resolve_action(graph, step, Branch.FALSE, ids)
