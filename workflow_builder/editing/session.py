"""
Edit session.
Applies operator edits to the graph, repairing it around each request.

Connecting never fails because of an existing edge: the edge that would be
doubled up is replaced instead. Deleting a condition step takes its own
terminal nodes with it; a step already stored remotely is only removed
locally once the store has confirmed the delete.
"""
from typing import List, Optional

from ..api.client import StepStore
from ..core.errors import RemoteStoreError
from ..core.logging import get_logger
from ..graph.factory import conventional_terminal_ids, edge_id as make_edge_id, step_id_from_node_id
from ..graph.model import GraphModel
from ..graph.models import Branch, ConditionStep, Edge, NodeType, Operator, Position, TerminalNode
from ..sync.snapshot import OriginalSnapshot
from ..workflow.expressions import add_list_value, is_set_operator, normalize_list_expression, remove_list_value

logger = get_logger(__name__)

EDITABLE_STEP_FIELDS = ("name", "left_expression", "operator", "right_expression", "failure_message", "is_active")


class EditSession:

    def __init__(self, graph: GraphModel, store: Optional[StepStore] = None,
                 snapshot: Optional[OriginalSnapshot] = None):
        self.graph = graph
        self.store = store
        self.snapshot = snapshot

    # ------------------------------------------------------------------
    # Adding
    # ------------------------------------------------------------------

    def add_condition(self, position: Position, name: str = "", **fields) -> ConditionStep:
        step = self.graph.factory.make_node(NodeType.CONDITION, position, name=name, **fields)
        return self.graph.add_node(step)

    def add_terminal(self, node_type, position: Position, text: str = "") -> TerminalNode:
        node_type = NodeType(node_type)
        if node_type is NodeType.CONDITION:
            raise ValueError("Use add_condition for condition steps")
        terminal = self.graph.factory.make_node(node_type, position, text=text)
        return self.graph.add_node(terminal)

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    def connect(self, source: str, branch: Optional[Branch], target: str) -> Edge:
        """
        Draw an edge from source's branch to target.

        An edge already leaving that branch is replaced; if it led to a
        terminal node other than target, that terminal goes too. An edge
        already entering target is removed, but target itself is kept.
        """
        source_node = self.graph.get_node(source)
        self.graph.get_node(target)
        if isinstance(source_node, ConditionStep):
            if branch is None:
                raise ValueError(f"Connecting from condition {source} requires a branch")
            branch = Branch(branch)
        else:
            branch = None

        existing = self.graph.outgoing(source, branch)
        if existing:
            self.graph.remove_edge(existing.edge_id)
            old_target = self.graph.get_node(existing.target)
            if isinstance(old_target, TerminalNode) and existing.target != target:
                logger.debug(f"Dropping abandoned terminal {existing.target}")
                self._remove_with_edges([existing.target])

        incoming = self.graph.incoming(target)
        if incoming:
            logger.debug(f"Replacing incoming edge {incoming.edge_id} of {target}")
            self.graph.remove_edge(incoming.edge_id)

        return self.graph.add_edge(Edge(make_edge_id(source, branch, target), source, target, branch))

    def disconnect(self, edge_id: str) -> Edge:
        """Remove an edge; neither end is deleted."""
        return self.graph.remove_edge(edge_id)

    # ------------------------------------------------------------------
    # Deleting
    # ------------------------------------------------------------------

    def _owned_terminals(self, step: ConditionStep) -> List[str]:
        owned = []
        step_id = step_id_from_node_id(step.node_id)
        if step_id is not None:
            owned.extend(nid for nid in conventional_terminal_ids(step_id) if self.graph.has_node(nid))
        for edge in self.graph.outgoing_edges(step.node_id):
            target = self.graph.get_node(edge.target)
            if isinstance(target, TerminalNode) and edge.target not in owned:
                owned.append(edge.target)
        return owned

    def is_persisted(self, step: ConditionStep) -> bool:
        return step.step_id is not None and step.step_id < self.graph.workflow.new_step_id

    def delete_node(self, node_id: str) -> List[str]:
        """
        Delete a node and every edge touching it.

        Returns the ids of the removed nodes. Raises RemoteStoreError, leaving
        the graph untouched, when the store refuses to delete a stored step.
        """
        node = self.graph.get_node(node_id)
        if isinstance(node, TerminalNode):
            self._remove_with_edges([node_id])
            return [node_id]

        doomed = [node_id] + self._owned_terminals(node)

        if self.is_persisted(node):
            if self.store is None:
                raise RemoteStoreError(f"No step store available to delete step {node.step_id}")
            self.store.delete_step(node.step_id)
            logger.info(f"Deleted step {node.step_id}")
            if self.snapshot is not None:
                self.snapshot.discard(node_id)
            self._release_held_into(node.step_id)

        self._remove_with_edges(doomed)
        return doomed

    def _release_held_into(self, step_id: int) -> None:
        # held branches still proceed by stored id; that step is gone now
        for source, branch in self.graph.held_branches():
            if self.graph.get_node(source).action_for(branch).next_step_id == step_id:
                self.graph.release_branch(source, branch)

    def _remove_with_edges(self, node_ids: List[str]) -> None:
        for nid in node_ids:
            for edge in self.graph.edges_touching(nid):
                self.graph.remove_edge(edge.edge_id)
        for nid in node_ids:
            self.graph.remove_node(nid)

    # ------------------------------------------------------------------
    # Editing properties
    # ------------------------------------------------------------------

    def update_step(self, node_id: str, **fields) -> ConditionStep:
        step = self.graph.get_node(node_id)
        if not isinstance(step, ConditionStep):
            raise ValueError(f"{node_id} is not a condition step")
        unknown = set(fields) - set(EDITABLE_STEP_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported step fields: {sorted(unknown)}")
        if "operator" in fields:
            fields["operator"] = Operator(fields["operator"]).value

        for key, value in fields.items():
            setattr(step, key, value)

        if is_set_operator(step.operator) and step.right_expression:
            step.right_expression = normalize_list_expression(step.right_expression)
        return step

    def add_list_value(self, node_id: str, value: str) -> ConditionStep:
        """Append a value to a set-membership step's list; blank values are ignored."""
        step = self._list_step(node_id)
        step.right_expression = add_list_value(step.right_expression, value)
        return step

    def remove_list_value(self, node_id: str, index: int) -> ConditionStep:
        step = self._list_step(node_id)
        step.right_expression = remove_list_value(step.right_expression, index)
        return step

    def _list_step(self, node_id: str) -> ConditionStep:
        step = self.graph.get_node(node_id)
        if not isinstance(step, ConditionStep) or not is_set_operator(step.operator):
            raise ValueError(f"{node_id} is not a set-membership condition step")
        return step

    def update_terminal(self, node_id: str, text: str) -> TerminalNode:
        terminal = self.graph.get_node(node_id)
        if not isinstance(terminal, TerminalNode):
            raise ValueError(f"{node_id} is not a terminal node")
        terminal.text = text
        return terminal

    def move_node(self, node_id: str, x: float, y: float) -> None:
        self.graph.get_node(node_id).position = Position(x, y)
