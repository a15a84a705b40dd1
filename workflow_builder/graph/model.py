"""
In-memory graph of condition steps and terminal nodes.

The model answers structural queries and refuses any primitive mutation that
would give a condition branch more than one outgoing edge, a terminal more
than one outgoing edge, or any node more than one incoming edge. Repairing
the graph around an operator's request is the edit session's job.
"""
from typing import Dict, List, Optional, Set, Tuple

from ..core.errors import GraphInvariantError
from ..core.logging import get_logger
from .factory import NodeFactory
from .models import Branch, ConditionStep, Edge, GraphNode, NodeType, TerminalNode, WorkflowMeta

logger = get_logger(__name__)


class GraphModel:

    def __init__(self, workflow: Optional[WorkflowMeta] = None):
        self.workflow = workflow or WorkflowMeta()
        self.factory = NodeFactory()
        self._nodes: Dict[str, GraphNode] = {}
        self._edges: Dict[str, Edge] = {}
        self._held: Set[Tuple[str, Branch]] = set()

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, node: GraphNode) -> GraphNode:
        if node.node_id in self._nodes:
            raise GraphInvariantError(f"Duplicate node id: {node.node_id}")
        self._nodes[node.node_id] = node
        return node

    def remove_node(self, node_id: str) -> GraphNode:
        node = self.get_node(node_id)
        if self.edges_touching(node_id):
            raise GraphInvariantError(f"Node {node_id} still has edges attached")
        del self._nodes[node_id]
        self._held = {held for held in self._held if held[0] != node_id}
        return node

    def get_node(self, node_id: str) -> GraphNode:
        if node_id not in self._nodes:
            raise KeyError(f"Unknown node: {node_id}")
        return self._nodes[node_id]

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    @property
    def nodes(self) -> List[GraphNode]:
        return list(self._nodes.values())

    def condition_steps(self) -> List[ConditionStep]:
        return [n for n in self._nodes.values() if isinstance(n, ConditionStep)]

    def terminal_nodes(self) -> List[TerminalNode]:
        return [n for n in self._nodes.values() if isinstance(n, TerminalNode)]

    def find_by_step_id(self, step_id: int) -> Optional[ConditionStep]:
        for step in self.condition_steps():
            if step.step_id == step_id:
                return step
        return None

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def add_edge(self, edge: Edge) -> Edge:
        source = self.get_node(edge.source)
        self.get_node(edge.target)

        if edge.edge_id in self._edges:
            raise GraphInvariantError(f"Duplicate edge id: {edge.edge_id}")
        if source.type is NodeType.CONDITION and edge.branch is None:
            raise GraphInvariantError(f"Edge from condition {edge.source} must name a branch")
        if source.type is not NodeType.CONDITION and edge.branch is not None:
            raise GraphInvariantError(f"Edge from terminal {edge.source} cannot name a branch")

        existing = self.outgoing(edge.source, edge.branch)
        if existing:
            raise GraphInvariantError(
                f"{edge.source} already has an outgoing {edge.branch.value if edge.branch else 'next'} edge: {existing.edge_id}"
            )
        incoming = self.incoming(edge.target)
        if incoming:
            raise GraphInvariantError(f"{edge.target} already has an incoming edge: {incoming.edge_id}")

        self._edges[edge.edge_id] = edge
        if edge.branch is not None:
            self._held.discard((edge.source, edge.branch))
        return edge

    def remove_edge(self, edge_id: str) -> Edge:
        if edge_id not in self._edges:
            raise KeyError(f"Unknown edge: {edge_id}")
        return self._edges.pop(edge_id)

    def get_edge(self, edge_id: str) -> Edge:
        if edge_id not in self._edges:
            raise KeyError(f"Unknown edge: {edge_id}")
        return self._edges[edge_id]

    def outgoing(self, node_id: str, branch: Optional[Branch] = None) -> Optional[Edge]:
        """The edge leaving node_id on branch (terminals use branch=None)."""
        for edge in self._edges.values():
            if edge.source == node_id and edge.branch == branch:
                return edge
        return None

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.source == node_id]

    def incoming(self, node_id: str) -> Optional[Edge]:
        for edge in self._edges.values():
            if edge.target == node_id:
                return edge
        return None

    def edges_touching(self, node_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if node_id in (e.source, e.target)]

    def next_step(self, node_id: str, branch: Branch) -> Optional[ConditionStep]:
        """
        The condition step reached from node_id's branch, looking through a
        terminal node that is chained on to another condition.
        """
        edge = self.outgoing(node_id, branch)
        if not edge:
            return None
        target = self._nodes[edge.target]
        if isinstance(target, ConditionStep):
            return target

        onward = self.outgoing(target.node_id, None)
        if onward:
            nxt = self._nodes[onward.target]
            if isinstance(nxt, ConditionStep):
                return nxt
        return None

    # ------------------------------------------------------------------
    # Held branches
    # ------------------------------------------------------------------

    def hold_branch(self, node_id: str, branch: Branch) -> None:
        """
        Mark a stored proceed branch that has no edge because its target
        already has an incoming one. Its stored action is kept on save until
        the branch is edited.
        """
        if self.outgoing(node_id, branch):
            raise GraphInvariantError(f"{node_id} {branch.value} branch has an edge and cannot be held")
        self.get_node(node_id)
        self._held.add((node_id, branch))

    def release_branch(self, node_id: str, branch: Optional[Branch]) -> None:
        self._held.discard((node_id, branch))

    def is_held(self, node_id: str, branch: Branch) -> bool:
        return (node_id, branch) in self._held

    def held_branches(self) -> List[Tuple[str, Branch]]:
        return sorted(self._held, key=lambda held: (held[0], held[1].value))

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def check_invariants(self) -> List[str]:
        """Return a description of every cardinality violation (empty when the graph is sound)."""
        problems: List[str] = []
        outgoing_seen = set()
        incoming_seen = set()

        for edge in self._edges.values():
            if edge.source not in self._nodes or edge.target not in self._nodes:
                problems.append(f"Edge {edge.edge_id} references unknown node: {edge.source} -> {edge.target}")
                continue
            key = (edge.source, edge.branch)
            if key in outgoing_seen:
                problems.append(f"Multiple outgoing edges from {edge.source} on {edge.branch}")
            outgoing_seen.add(key)
            if edge.target in incoming_seen:
                problems.append(f"Multiple incoming edges into {edge.target}")
            incoming_seen.add(edge.target)

        return problems
