from typing import Any, Dict, List

import yaml

from ..api.schema import WorkflowResponse, parse_model
from ..core.errors import SchemaError
from ..graph.actions import resolve_actions
from ..graph.model import GraphModel
from ..layout.engine import layout_graph
from ..presentation.adapter import step_payload
from ..sync.engine import provisional_ids
from ..workflow.expressions import referenced_datasources


def export_workflow(graph: GraphModel) -> Dict[str, Any]:
    """
    Convert the graph into a workflow document with resolved steps.

    The document has the same shape the store returns for a workflow, so it
    can be fed back through load_workflow_yaml. Steps not saved yet carry the
    identifiers the next save would give them; nothing in the graph changes
    apart from laying out steps that have no position.
    """
    if any(step.position is None for step in graph.condition_steps()):
        layout_graph(graph)

    ids = provisional_ids(graph)
    steps: List[Dict[str, Any]] = []
    for order, step in enumerate(graph.condition_steps(), start=1):
        actions = resolve_actions(graph, step, ids)
        payload = step_payload(step, order, actions, step_id=ids.get(step.node_id))
        payload["referenced_datasources_left"] = referenced_datasources(step.left_expression)
        payload["referenced_datasources_right"] = referenced_datasources(step.right_expression)
        steps.append(payload)

    meta = graph.workflow
    step_ids = [s["id"] for s in steps]
    initial_step = meta.initial_step if meta.initial_step in step_ids else (step_ids[0] if step_ids else None)

    return {
        "id": meta.workflow_id,
        "name": meta.name,
        "description": meta.description,
        "execution_point": meta.execution_point,
        "status": meta.status,
        "is_default": meta.is_default,
        "initial_step": initial_step,
        "new_step_id": meta.new_step_id + len(ids),
        "steps": steps,
    }


def dump_workflow_yaml(graph: GraphModel) -> str:
    return yaml.safe_dump(export_workflow(graph), sort_keys=False, allow_unicode=True)


def load_workflow_yaml(text: str) -> WorkflowResponse:
    """
    Parse and validate a workflow document.

    Raises SchemaError for malformed YAML or a document that does not
    describe a workflow.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaError(f"Invalid workflow YAML: {e}")
    if not isinstance(raw, dict):
        raise SchemaError("Workflow YAML must be a mapping")
    return parse_model(WorkflowResponse, raw)
